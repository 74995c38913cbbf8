"""
Frame layout solver.

One square main photo sits in the middle of the page; the remaining (side)
photos are equal squares laid out in bands along its top, bottom, left and
right edges, with the same gap between every pair of neighbours and towards
the page border.

The solver is three pure steps:

1. distribute_side_photos  - how many side photos go on each edge
2. search_configuration    - how large the main photo and the side cells are
3. place_configuration     - absolute rectangles, centered on the page

compute_grid_layout chains them, validates the request up front and falls back
to progressively relaxed searches instead of failing when a page is crowded.
All geometry is integer arithmetic, so identical requests give identical
results.
"""

import logging
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from layout_types import (
    Configuration,
    EdgeCounts,
    GridLayoutOptions,
    InvalidRequest,
    LayoutRequest,
    LayoutResult,
    Rectangle,
)

logger = logging.getLogger(__name__)

# Fractions are handled in basis points so main-size steps are exact integers
BASIS_POINTS = 10_000


def validate_request(request: LayoutRequest) -> None:
    """Reject requests that cannot describe a page of photos. Nothing is coerced."""
    if request.total_photo_count < 1:
        raise InvalidRequest(f"total_photo_count must be at least 1, got {request.total_photo_count}")
    if not 0 <= request.main_photo_index < request.total_photo_count:
        raise InvalidRequest(
            f"main_photo_index {request.main_photo_index} out of range for {request.total_photo_count} photos"
        )
    if request.page_width <= 0 or request.page_height <= 0:
        raise InvalidRequest(
            f"page dimensions must be positive, got {request.page_width}x{request.page_height}"
        )
    if request.gap < 0:
        raise InvalidRequest(f"gap must be non-negative, got {request.gap}")


def distribute_side_photos(side_count: int) -> EdgeCounts:
    """Distribute side photos over the four edges.

    Every edge gets side_count // 4; the remaining 0-3 photos go one each to
    top, bottom, left and right, in that order.
    """
    base, remainder = divmod(max(0, side_count), 4)
    extra = [1 if i < remainder else 0 for i in range(4)]
    return EdgeCounts(
        top=base + extra[0],
        bottom=base + extra[1],
        left=base + extra[2],
        right=base + extra[3],
    )


def candidate_distributions(side_count: int) -> List[EdgeCounts]:
    """The default distribution followed by its neighbouring splits.

    Top and bottom each range over floor(n/4) .. ceil(n/4) + 1; whatever is
    left goes to left/right, left taking the odd photo.
    """
    candidates = [distribute_side_photos(side_count)]
    low = side_count // 4
    high = -(-side_count // 4) + 1
    for top in range(low, high + 1):
        for bottom in range(low, high + 1):
            remaining = side_count - top - bottom
            if remaining < 0:
                continue
            left = -(-remaining // 2)
            counts = EdgeCounts(top=top, bottom=bottom, left=left, right=remaining - left)
            if counts not in candidates:
                candidates.append(counts)
    return candidates


def side_photo_order(total_photo_count: int, main_photo_index: int) -> List[int]:
    """Original photo indices in side-slot order (caller order, main photo removed)."""
    return [i for i in range(total_photo_count) if i != main_photo_index]


def main_size_steps(page_width: int, fraction_range: Tuple[float, float], step: float) -> List[int]:
    """Main photo sizes from the largest allowed fraction of the page width down to the smallest."""
    low_bp = int(round(fraction_range[0] * BASIS_POINTS))
    high_bp = int(round(fraction_range[1] * BASIS_POINTS))
    step_bp = max(1, int(round(step * BASIS_POINTS)))

    sizes: List[int] = []
    for bp in range(high_bp, low_bp - 1, -step_bp):
        size = page_width * bp // BASIS_POINTS
        if size > 0 and (not sizes or sizes[-1] != size):
            sizes.append(size)
    return sizes


def max_cell_size(main_size: int, counts: EdgeCounts, gap: int, page_width: int, page_height: int) -> Optional[int]:
    """Largest square side cell that fits around a main photo of main_size.

    Constraints (nH = left + right, nV = top + bottom, k = longest band):
        nH*s + m + (nH + 2)*gap <= page_width
        nV*s + m + (nV + 2)*gap <= page_height
        k*s + (k - 1)*gap       <= m          (each band shares the main photo's span)

    Returns None when the main photo alone does not fit the page, 0 when there
    are no side photos. The value may be zero or negative when the bands do not
    fit; callers decide what is acceptable.
    """
    if main_size + 2 * gap > page_width or main_size + 2 * gap > page_height:
        return None

    bounds = []
    if counts.horizontal:
        bounds.append((page_width - main_size - (counts.horizontal + 2) * gap) // counts.horizontal)
    if counts.vertical:
        bounds.append((page_height - main_size - (counts.vertical + 2) * gap) // counts.vertical)
    if counts.longest:
        bounds.append((main_size - (counts.longest - 1) * gap) // counts.longest)
    if not bounds:
        return 0
    return min(bounds)


def composition_size(main_size: int, cell_size: int, counts: EdgeCounts, gap: int) -> Tuple[int, int]:
    """Bounding box of main photo + non-empty bands, including the outer gap on every side."""
    band = cell_size + gap
    width = main_size + 2 * gap + band * (int(counts.left > 0) + int(counts.right > 0))
    height = main_size + 2 * gap + band * (int(counts.top > 0) + int(counts.bottom > 0))
    return width, height


def evaluate_candidate(
    main_size: int,
    counts: EdgeCounts,
    gap: int,
    page_width: int,
    page_height: int,
    options: GridLayoutOptions,
    enforce_floors: bool = True,
) -> Optional[Configuration]:
    """Size the side cells for one main size and score the result, or None if it is not acceptable."""
    cell_size = max_cell_size(main_size, counts, gap, page_width, page_height)
    if cell_size is None or main_size < 1:
        return None
    if counts.total and cell_size < 1:
        return None
    if enforce_floors:
        if main_size < options.min_main_size:
            return None
        if counts.total and cell_size < options.min_cell_size:
            return None

    width, height = composition_size(main_size, cell_size, counts, gap)
    fill_ratio = (width * height) / (page_width * page_height)
    return Configuration(
        cell_size=cell_size,
        main_size=main_size,
        gap=gap,
        edge_counts=counts,
        fill_ratio=fill_ratio,
        meets_fill_target=fill_ratio >= options.fill_ratio_target,
    )


def search_configuration(
    request: LayoutRequest,
    edge_counts: Union[EdgeCounts, Sequence[EdgeCounts]],
    options: Optional[GridLayoutOptions] = None,
    main_sizes: Optional[Iterable[int]] = None,
    gap: Optional[int] = None,
    enforce_floors: bool = True,
) -> Optional[Configuration]:
    """Pick the (main size, cell size) pair that fills the page best.

    Candidates are scored by (fill_ratio, symmetry); the first best one wins,
    so among equal scores the larger main photo (tried first) is kept. A
    candidate below the fill-ratio target is still returned when nothing
    reaches it; check Configuration.meets_fill_target.
    """
    options = options or GridLayoutOptions()
    gap = request.gap if gap is None else gap
    if isinstance(edge_counts, EdgeCounts):
        edge_counts = [edge_counts]
    if main_sizes is None:
        main_sizes = main_size_steps(request.page_width, options.main_fraction_range, options.main_fraction_step)
    main_sizes = list(main_sizes)

    best: Optional[Configuration] = None
    best_score = None
    for counts in edge_counts:
        for main_size in main_sizes:
            config = evaluate_candidate(
                main_size, counts, gap, request.page_width, request.page_height, options, enforce_floors
            )
            if config is None:
                continue
            score = (config.fill_ratio, counts.symmetry)
            if best is None or score > best_score:
                best, best_score = config, score

    if best is not None and not best.meets_fill_target:
        logger.debug(
            f"Best configuration fills {best.fill_ratio:.1%} of the page, "
            f"below target {options.fill_ratio_target:.0%}"
        )
    return best


def _row(count: int, span_start: int, span: int, y: int, cell: int, gap: int) -> List[Rectangle]:
    if not count:
        return []
    length = count * cell + (count - 1) * gap
    x0 = span_start + (span - length) // 2
    return [Rectangle(x=x0 + i * (cell + gap), y=y, w=cell, h=cell) for i in range(count)]


def _column(count: int, span_start: int, span: int, x: int, cell: int, gap: int) -> List[Rectangle]:
    if not count:
        return []
    length = count * cell + (count - 1) * gap
    y0 = span_start + (span - length) // 2
    return [Rectangle(x=x, y=y0 + i * (cell + gap), w=cell, h=cell) for i in range(count)]


def place_configuration(
    configuration: Configuration, page_width: int, page_height: int
) -> Tuple[Rectangle, List[Rectangle]]:
    """Turn a configuration into the main rectangle and the side rectangles.

    Side rectangles come back in assignment order: the top row left to right,
    the bottom row left to right, the left column top to bottom, then the right
    column top to bottom.
    """
    counts = configuration.edge_counts
    main_size = configuration.main_size
    cell = configuration.cell_size
    gap = configuration.gap
    band = cell + gap

    width, height = composition_size(main_size, cell, counts, gap)
    origin_x = (page_width - width) // 2
    origin_y = (page_height - height) // 2

    main_x = origin_x + gap + (band if counts.left else 0)
    main_y = origin_y + gap + (band if counts.top else 0)
    main = Rectangle(x=main_x, y=main_y, w=main_size, h=main_size)

    side: List[Rectangle] = []
    side.extend(_row(counts.top, main_x, main_size, main_y - gap - cell, cell, gap))
    side.extend(_row(counts.bottom, main_x, main_size, main_y + main_size + gap, cell, gap))
    side.extend(_column(counts.left, main_y, main_size, main_x - gap - cell, cell, gap))
    side.extend(_column(counts.right, main_y, main_size, main_x + main_size + gap, cell, gap))
    return main, side


def _main_size_candidates(request: LayoutRequest, options: GridLayoutOptions, gap: int, relaxed: bool) -> List[int]:
    if request.side_count == 0:
        # a lone main photo takes the largest square the page allows
        return [min(request.page_width, request.page_height) - 2 * gap]
    low, high = options.main_fraction_range
    if relaxed:
        low = min(low, options.main_fraction_step)
    return main_size_steps(request.page_width, (low, high), options.main_fraction_step)


def _relaxation_steps(gap: int) -> List[Tuple[int, bool]]:
    """(gap, enforce_floors) pairs tried in order once the main size range is extended.

    Size floors are dropped before the gap, and only when no candidate meets them.
    """
    steps = [(gap, True), (gap, False)]
    if gap > 0:
        steps += [(0, True), (0, False)]
    return steps


def _floor_warnings(config: Configuration, request: LayoutRequest, options: GridLayoutOptions) -> List[str]:
    warnings = []
    if request.side_count and config.cell_size < options.min_cell_size:
        warnings.append(
            f"large photo count may reduce legibility: side photos are {config.cell_size}px "
            f"(minimum {options.min_cell_size}px)"
        )
    if config.main_size < options.min_main_size:
        warnings.append(f"main photo is {config.main_size}px (minimum {options.min_main_size}px)")
    elif request.side_count and config.main_size < int(request.page_width * options.main_fraction_range[0]):
        warnings.append(
            f"main photo shrunk to {config.main_size / request.page_width:.0%} of the page width "
            f"to fit {request.side_count} side photos"
        )
    return warnings


def _collapsed_layout(request: LayoutRequest, counts: EdgeCounts) -> Tuple[Rectangle, List[Rectangle], Configuration]:
    """Last resort: main photo only, side photos reduced to zero-size rectangles at its center."""
    gap = request.gap
    main_size = min(request.page_width, request.page_height) - 2 * gap
    if main_size < 1:
        gap = 0
        main_size = min(request.page_width, request.page_height)
    x = (request.page_width - main_size) // 2
    y = (request.page_height - main_size) // 2
    main = Rectangle(x=x, y=y, w=main_size, h=main_size)
    center = Rectangle(x=x + main_size // 2, y=y + main_size // 2, w=0, h=0)
    config = Configuration(
        cell_size=0,
        main_size=main_size,
        gap=gap,
        edge_counts=counts,
        fill_ratio=((main_size + 2 * gap) ** 2) / (request.page_width * request.page_height),
    )
    return main, [center] * request.side_count, config


def compute_grid_layout(request: LayoutRequest, options: Optional[GridLayoutOptions] = None) -> LayoutResult:
    """Compute the frame layout for a request.

    Raises InvalidRequest for invalid input. Otherwise always returns a result;
    when the page is too crowded for the size floors, the result is marked
    degraded and carries human-readable warnings.
    """
    validate_request(request)
    options = options or GridLayoutOptions()
    side_count = request.side_count

    distribution = distribute_side_photos(side_count)
    if options.explore_distributions:
        distributions = candidate_distributions(side_count)
    else:
        distributions = [distribution]

    warnings: List[str] = []
    degraded = False

    config = search_configuration(
        request, distributions, options,
        main_sizes=_main_size_candidates(request, options, request.gap, relaxed=False),
    )

    if config is None:
        degraded = True
        for gap, enforce_floors in _relaxation_steps(request.gap):
            config = search_configuration(
                request, distributions, options,
                main_sizes=_main_size_candidates(request, options, gap, relaxed=True),
                gap=gap,
                enforce_floors=enforce_floors,
            )
            if config is not None:
                break
        if config is not None:
            warnings.extend(_floor_warnings(config, request, options))
            if config.gap < request.gap:
                warnings.append(f"gap reduced from {request.gap}px to 0px to fit {side_count} side photos")

    if config is None:
        main, side, config = _collapsed_layout(request, distribution)
        warnings.append(f"page too small for {side_count} side photos; side photos were not placed")
    else:
        main, side = place_configuration(config, request.page_width, request.page_height)

    if degraded:
        if not warnings:
            warnings.append(f"layout constraints relaxed to fit {side_count} side photos")
        logger.warning(
            f"Degraded grid layout for {request.total_photo_count} photos on "
            f"{request.page_width}x{request.page_height}: {'; '.join(warnings)}"
        )
    else:
        logger.debug(
            f"Grid layout for {request.total_photo_count} photos: main={config.main_size}px "
            f"cell={config.cell_size}px fill={config.fill_ratio:.1%}"
        )

    return LayoutResult(
        main=main,
        side=side,
        degraded=degraded,
        warnings=warnings,
        configuration=config,
        side_photo_indices=side_photo_order(request.total_photo_count, request.main_photo_index),
        page_width=request.page_width,
        page_height=request.page_height,
    )
