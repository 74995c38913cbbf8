"""
Immutable value types shared by the grid and ring layout solvers.

Everything here is created fresh per call and never mutated afterwards, so a
LayoutResult can be handed to a renderer (or serialized by the API) without
copying.
"""

from enum import Enum
from typing import List, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class InvalidRequest(ValueError):
    """Raised for a structurally invalid layout request, before any search runs."""


class Rectangle(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: int
    y: int
    w: int
    h: int

    @property
    def right(self) -> int:
        return self.x + self.w

    @property
    def bottom(self) -> int:
        return self.y + self.h

    def overlaps(self, other: "Rectangle") -> bool:
        """True when the two rectangles share a positive-area region."""
        if self.w <= 0 or self.h <= 0 or other.w <= 0 or other.h <= 0:
            return False
        return (
            self.x < other.right and other.x < self.right
            and self.y < other.bottom and other.y < self.bottom
        )


class LayoutRequest(BaseModel):
    """Input of the grid solver.

    Ranges are checked by the solver (see grid_layout.validate_request) so that
    violations surface as InvalidRequest rather than being coerced here. Values
    that are not integers fail at construction with pydantic's ValidationError,
    which is also a ValueError.
    """
    model_config = ConfigDict(frozen=True)

    page_width: int
    page_height: int
    gap: int
    total_photo_count: int
    main_photo_index: int = 0

    @property
    def side_count(self) -> int:
        return self.total_photo_count - 1


class EdgeCounts(BaseModel):
    model_config = ConfigDict(frozen=True)

    top: int = Field(default=0, ge=0)
    bottom: int = Field(default=0, ge=0)
    left: int = Field(default=0, ge=0)
    right: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.top + self.bottom + self.left + self.right

    @property
    def horizontal(self) -> int:
        # photos competing for page width
        return self.left + self.right

    @property
    def vertical(self) -> int:
        return self.top + self.bottom

    @property
    def longest(self) -> int:
        return max(self.top, self.bottom, self.left, self.right)

    @property
    def symmetry(self) -> int:
        """Balance score, 0 for a perfectly balanced split, more negative otherwise."""
        return -(abs(self.top - self.bottom) + abs(self.left - self.right))


class Configuration(BaseModel):
    """A sized candidate: how big the main photo and side cells are for given edge counts."""
    model_config = ConfigDict(frozen=True)

    cell_size: int
    main_size: int
    gap: int
    edge_counts: EdgeCounts
    fill_ratio: float
    meets_fill_target: bool = False


class LayoutResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    main: Rectangle
    side: List[Rectangle] = Field(default_factory=list)
    degraded: bool = False
    warnings: List[str] = Field(default_factory=list)
    configuration: Configuration
    side_photo_indices: List[int] = Field(default_factory=list)
    page_width: int = 0
    page_height: int = 0

    def all_rectangles(self) -> List[Rectangle]:
        return [self.main, *self.side]


class GridLayoutOptions(BaseModel):
    """Tunable policy of the grid solver; one canonical set of defaults."""
    model_config = ConfigDict(frozen=True)

    fill_ratio_target: float = Field(default=0.90, gt=0.0, le=1.0)
    min_cell_size: int = Field(default=30, ge=1)
    min_main_size: int = Field(default=60, ge=1)
    main_fraction_range: Tuple[float, float] = (0.30, 0.60)
    main_fraction_step: float = Field(default=0.01, gt=0.0, le=1.0)
    explore_distributions: bool = False

    @field_validator('main_fraction_range')
    @classmethod
    def validate_fraction_range(cls, v):
        lo, hi = v
        if not (0.0 < lo <= hi <= 1.0):
            raise ValueError('main_fraction_range must satisfy 0 < min <= max <= 1')
        return v

    @classmethod
    def from_settings(cls, settings) -> "GridLayoutOptions":
        return cls(
            fill_ratio_target=settings.layout_fill_ratio_target,
            min_cell_size=settings.layout_min_cell_size,
            min_main_size=settings.layout_min_main_size,
            main_fraction_range=(settings.layout_main_fraction_min, settings.layout_main_fraction_max),
        )


class RingPattern(str, Enum):
    HEXAGON = "hexagon"
    CIRCULAR = "circular"


class HexPosition(BaseModel):
    """Center of a ring cell plus its half-diagonal (circumradius)."""
    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    size: float


class RingLayoutResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    pattern: RingPattern
    center: HexPosition
    side: List[HexPosition] = Field(default_factory=list)
    rings: int = 0
    degraded: bool = False
    warnings: List[str] = Field(default_factory=list)
    page_width: int = 0
    page_height: int = 0
