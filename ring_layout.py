"""
Ring layouts: the main photo in the middle, side photos around it either on
concentric hexagonal rings or evenly spaced on a single circle.

Cells are described by their center and half-diagonal (HexPosition); the
renderer clips photos to a hexagon or disc of that size.
"""

import logging
import math
from typing import List, Sequence, Tuple, Union

import numpy as np
from pydantic import ValidationError

from grid_layout import validate_request
from layout_types import HexPosition, InvalidRequest, LayoutRequest, RingLayoutResult, RingPattern

logger = logging.getLogger(__name__)

SQRT3 = math.sqrt(3.0)
DEFAULT_MAX_RINGS = 4

# Axial unit steps on a flat-top grid, as seen on the page (y grows downward)
NORTH_EAST = (1, -1)
SOUTH_EAST = (1, 0)
SOUTH = (0, 1)
SOUTH_WEST = (-1, 1)
NORTH_WEST = (-1, 0)
NORTH = (0, -1)

# Sides of a ring, walked clockwise starting from its north-east corner
RING_WALK = (SOUTH, SOUTH_WEST, NORTH_WEST, NORTH, NORTH_EAST, SOUTH_EAST)

# axial (q, r) -> pixel (x, y) for flat-top hexagons of unit spacing
AXIAL_TO_PIXEL = np.array([[1.5, 0.0], [SQRT3 / 2.0, SQRT3]])


def ring_capacity(rings: int) -> int:
    """Side cells available in rings 1..rings (ring k holds 6k cells)."""
    return 3 * rings * (rings + 1)


def rings_needed(side_count: int) -> int:
    rings = 0
    while ring_capacity(rings) < side_count:
        rings += 1
    return rings


def ring_coordinates(ring: int) -> List[Tuple[int, int]]:
    """Axial coordinates of one ring, clockwise from its north-east corner."""
    if ring == 0:
        return [(0, 0)]
    q, r = NORTH_EAST[0] * ring, NORTH_EAST[1] * ring
    coords = []
    for dq, dr in RING_WALK:
        for _ in range(ring):
            coords.append((q, r))
            q, r = q + dq, r + dr
    return coords


def axial_to_pixel(coords: Sequence[Tuple[int, int]], spacing: float) -> np.ndarray:
    axial = np.asarray(coords, dtype=float).reshape(-1, 2)
    return axial @ AXIAL_TO_PIXEL.T * spacing


def hexagon_size(page_width: float, page_height: float, gap: float, rings: int) -> float:
    """Largest hexagon circumradius for which `rings` full rings fit inside the page margins.

    Horizontally the outermost cells sit 1.5*rings*D from the center and reach
    `size` further; vertically the north/south cells sit sqrt(3)*rings*D away
    and reach sqrt(3)/2*size further, with D = size + gap/sqrt(3).
    """
    half_w = page_width / 2.0 - gap
    half_h = page_height / 2.0 - gap
    by_width = (half_w - 1.5 * rings * gap / SQRT3) / (1.5 * rings + 1.0)
    by_height = (half_h - rings * gap) / (SQRT3 * (rings + 0.5))
    return min(by_width, by_height)


def _hexagon_layout(page_width: int, page_height: int, gap: int, side_count: int):
    rings = rings_needed(side_count)
    size = hexagon_size(page_width, page_height, gap, rings)
    warnings = []
    if size <= 0:
        warnings.append(f"page too small for {rings} rings with a {gap}px gap; cells collapsed to zero size")
        size = 0.0

    coords = [c for ring in range(1, rings + 1) for c in ring_coordinates(ring)][:side_count]
    spacing = size + gap / SQRT3
    cx, cy = page_width / 2.0, page_height / 2.0
    pixels = axial_to_pixel(coords, spacing) + (cx, cy)

    center = HexPosition(x=cx, y=cy, size=size)
    side = [HexPosition(x=float(x), y=float(y), size=size) for x, y in pixels]
    return center, side, rings, warnings


def _circular_layout(page_width: int, page_height: int, gap: int, side_count: int):
    outer = min(page_width, page_height) / 2.0 - gap
    cx, cy = page_width / 2.0, page_height / 2.0
    warnings = []

    if side_count == 0:
        size = max(outer, 0.0)
        if outer <= 0:
            warnings.append(f"page too small for a {gap}px gap; cells collapsed to zero size")
        return HexPosition(x=cx, y=cy, size=size), [], 0, warnings

    # the central disc must stay at least as large as a side disc
    bounds = [(outer - gap) / 3.0]
    if side_count > 1:
        half_angle = math.pi / side_count
        # adjacent chord 2*r*sin(pi/n) >= 2*size + gap, with r = outer - size
        bounds.append((2.0 * outer * math.sin(half_angle) - gap) / (2.0 * math.sin(half_angle) + 2.0))
    size = min(bounds)
    if size <= 0:
        warnings.append(
            f"page too small for {side_count} photos on a circle with a {gap}px gap; cells collapsed to zero size"
        )
        size = 0.0
        radius = 0.0
        center_size = max(outer, 0.0)
    else:
        radius = outer - size
        center_size = radius - size - gap

    angles = -math.pi / 2.0 + 2.0 * math.pi * np.arange(side_count) / side_count
    xs = cx + radius * np.cos(angles)
    ys = cy + radius * np.sin(angles)
    side = [HexPosition(x=float(x), y=float(y), size=size) for x, y in zip(xs, ys)]
    return HexPosition(x=cx, y=cy, size=center_size), side, 1, warnings


def compute_ring_layout(
    page_width: int,
    page_height: int,
    gap: int,
    total_photo_count: int,
    pattern: Union[RingPattern, str] = RingPattern.HEXAGON,
    max_rings: int = DEFAULT_MAX_RINGS,
) -> RingLayoutResult:
    """Lay out the main photo at the page center and the others around it.

    Raises InvalidRequest for invalid input, an unknown pattern, or more side
    photos than `max_rings` hexagonal rings can hold.
    """
    try:
        request = LayoutRequest(
            page_width=page_width,
            page_height=page_height,
            gap=gap,
            total_photo_count=total_photo_count,
        )
    except ValidationError as e:
        raise InvalidRequest(f"Invalid ring layout request: {e.error_count()} invalid field(s)") from e
    validate_request(request)
    page_width, page_height, gap = request.page_width, request.page_height, request.gap
    try:
        pattern = RingPattern(pattern)
    except ValueError:
        raise InvalidRequest(f"Unknown ring pattern: {pattern}")

    side_count = total_photo_count - 1
    capacity = ring_capacity(max_rings)
    if side_count > capacity:
        raise InvalidRequest(
            f"{pattern.value} layout holds at most {capacity + 1} photos, got {total_photo_count}"
        )

    if pattern == RingPattern.HEXAGON:
        center, side, rings, warnings = _hexagon_layout(page_width, page_height, gap, side_count)
    else:
        center, side, rings, warnings = _circular_layout(page_width, page_height, gap, side_count)

    degraded = bool(warnings)
    if degraded:
        logger.warning(f"Degraded {pattern.value} layout on {page_width}x{page_height}: {'; '.join(warnings)}")
    else:
        logger.debug(f"{pattern.value} layout for {total_photo_count} photos: rings={rings} size={center.size:.1f}")

    return RingLayoutResult(
        pattern=pattern,
        center=center,
        side=side,
        rings=rings,
        degraded=degraded,
        warnings=warnings,
        page_width=page_width,
        page_height=page_height,
    )
