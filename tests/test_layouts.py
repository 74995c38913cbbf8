import pytest
from pydantic import ValidationError

from grid_layout import (
    candidate_distributions,
    compute_grid_layout,
    distribute_side_photos,
    main_size_steps,
    max_cell_size,
    place_configuration,
    search_configuration,
    side_photo_order,
)
from layout_types import EdgeCounts, GridLayoutOptions, InvalidRequest, LayoutRequest, Rectangle

A4 = (794, 1123)


def _request(total, width=A4[0], height=A4[1], gap=5, main=0):
    return LayoutRequest(page_width=width, page_height=height, gap=gap, total_photo_count=total, main_photo_index=main)


def _assert_invariants(result, request):
    assert len(result.side) == request.total_photo_count - 1

    rects = result.all_rectangles()
    for i, a in enumerate(rects):
        assert 0 <= a.x and a.right <= request.page_width
        assert 0 <= a.y and a.bottom <= request.page_height
        for b in rects[i + 1:]:
            assert not a.overlaps(b)

    sizes = {(r.w, r.h) for r in result.side}
    assert len(sizes) <= 1
    for w, h in sizes:
        assert w == h


@pytest.mark.parametrize("n, expected", [
    (0, (0, 0, 0, 0)),
    (1, (1, 0, 0, 0)),
    (2, (1, 1, 0, 0)),
    (3, (1, 1, 1, 0)),
    (4, (1, 1, 1, 1)),
    (5, (2, 1, 1, 1)),
    (8, (2, 2, 2, 2)),
    (11, (3, 3, 3, 2)),
    (199, (50, 50, 50, 49)),
])
def test_distribution_table(n, expected):
    counts = distribute_side_photos(n)
    assert (counts.top, counts.bottom, counts.left, counts.right) == expected
    assert counts.total == n


def test_distribution_remainder_goes_top_bottom_left_right():
    for n in range(0, 60):
        counts = distribute_side_photos(n)
        values = [counts.top, counts.bottom, counts.left, counts.right]
        assert max(values) - min(values) <= 1
        # extras are handed out in order, so the sequence never increases
        assert values == sorted(values, reverse=True)


def test_symmetric_scenario_a():
    request = _request(9)
    result = compute_grid_layout(request)

    counts = result.configuration.edge_counts
    assert (counts.top, counts.bottom, counts.left, counts.right) == (2, 2, 2, 2)
    assert not result.degraded
    assert result.warnings == []
    _assert_invariants(result, request)

    main = result.main
    assert main.w == main.h == 476
    assert all(r.w == 72 for r in result.side)
    assert main.w > result.side[0].w

    top, bottom, left, right = result.side[0:2], result.side[2:4], result.side[4:6], result.side[6:8]
    # adjacent cells on the same edge are exactly one gap apart
    assert top[1].x - top[0].right == 5
    assert bottom[1].x - bottom[0].right == 5
    assert left[1].y - left[0].bottom == 5
    assert right[1].y - right[0].bottom == 5
    # bands sit one gap away from the main photo
    assert main.y - top[0].bottom == 5
    assert bottom[0].y - main.bottom == 5
    assert main.x - left[0].right == 5
    assert right[0].x - main.right == 5
    # centered composition with at least one gap to the border
    assert left[0].x >= 5 and A4[0] - right[0].right >= 5
    assert abs(left[0].x - (A4[0] - right[0].right)) <= 1
    assert abs(top[0].y - (A4[1] - bottom[0].bottom)) <= 1


def test_scenario_a_reports_fill_target_miss_without_degrading():
    result = compute_grid_layout(_request(9))
    assert result.configuration.meets_fill_target is False
    assert 0.45 < result.configuration.fill_ratio < 0.47
    assert not result.degraded


def test_single_photo_scenario_b():
    request = _request(1)
    result = compute_grid_layout(request)

    assert result.side == []
    assert not result.degraded
    main = result.main
    assert main.w == main.h == 784
    assert main.x == 5
    assert A4[0] - main.right == 5
    top_margin, bottom_margin = main.y, A4[1] - main.bottom
    assert top_margin >= 5 and bottom_margin >= 5
    assert abs(top_margin - bottom_margin) <= 1


def test_crowded_page_scenario_c_degrades_gracefully():
    request = _request(200, width=400, height=400)
    result = compute_grid_layout(request)

    assert result.degraded
    assert result.warnings
    assert any("legibility" in w for w in result.warnings)
    assert any("gap reduced" in w for w in result.warnings)
    _assert_invariants(result, request)
    assert result.side[0].w >= 1


def test_crowded_a4_page_keeps_every_photo():
    request = _request(200)
    result = compute_grid_layout(request)

    assert result.degraded
    assert len(result.side) == 199
    _assert_invariants(result, request)


def test_tiny_page_collapses_side_photos():
    request = _request(101, width=50, height=50, gap=0)
    result = compute_grid_layout(request)

    assert result.degraded
    assert any("not placed" in w for w in result.warnings)
    assert result.main.w >= 2
    _assert_invariants(result, request)
    assert all(r.w == 0 and r.h == 0 for r in result.side)
    # collapsed cells sit inside the main photo, at its center
    assert result.side[0].x == result.main.x + result.main.w // 2


def test_zero_size_rectangles_never_overlap():
    main = Rectangle(x=0, y=0, w=50, h=50)
    point = Rectangle(x=25, y=25, w=0, h=0)
    assert not main.overlaps(point)
    assert not point.overlaps(main)
    assert not Rectangle(x=10, y=0, w=0, h=50).overlaps(main)
    assert main.overlaps(Rectangle(x=49, y=49, w=5, h=5))


def test_crowded_landscape_page_keeps_size_floors():
    request = _request(26, width=1123, height=794)
    result = compute_grid_layout(request)

    assert result.degraded
    assert result.configuration.cell_size >= 30
    assert result.configuration.main_size >= 60
    assert result.configuration.gap == 5
    assert any("shrunk" in w for w in result.warnings)
    assert not any("legibility" in w for w in result.warnings)
    _assert_invariants(result, request)


def test_wide_strip_shrinks_main_before_dropping_floors():
    request = _request(2, width=2000, height=500)
    result = compute_grid_layout(request)

    assert result.degraded
    assert result.configuration.cell_size == 45
    assert result.main.w == 440
    _assert_invariants(result, request)


@pytest.mark.parametrize("page", [A4, (1123, 794), (400, 400), (300, 900)])
def test_invariants_hold_for_all_counts(page):
    for total in range(1, 201):
        request = _request(total, width=page[0], height=page[1])
        result = compute_grid_layout(request)
        _assert_invariants(result, request)
        if not result.degraded:
            assert result.configuration.cell_size >= 30 or total == 1
            assert result.configuration.main_size >= 60


def test_non_degraded_gaps_are_exact():
    for total in (2, 3, 5, 7, 13, 21):
        result = compute_grid_layout(_request(total))
        assert not result.degraded
        counts = result.configuration.edge_counts
        main = result.main
        side = iter(result.side)
        top = [next(side) for _ in range(counts.top)]
        bottom = [next(side) for _ in range(counts.bottom)]
        left = [next(side) for _ in range(counts.left)]
        right = [next(side) for _ in range(counts.right)]
        for row in (top, bottom):
            for a, b in zip(row, row[1:]):
                assert b.x - a.right == 5
        for column in (left, right):
            for a, b in zip(column, column[1:]):
                assert b.y - a.bottom == 5
        if top:
            assert main.y - top[0].bottom == 5
        if bottom:
            assert bottom[0].y - main.bottom == 5
        if left:
            assert main.x - left[0].right == 5
        if right:
            assert right[0].x - main.right == 5


def test_deterministic():
    request = _request(37)
    assert compute_grid_layout(request) == compute_grid_layout(request)


@pytest.mark.parametrize("kwargs", [
    dict(total_photo_count=0),
    dict(total_photo_count=3, main_photo_index=3),
    dict(total_photo_count=3, main_photo_index=-1),
    dict(page_width=0),
    dict(page_height=-10),
    dict(gap=-1),
])
def test_invalid_requests_raise(kwargs):
    params = dict(page_width=794, page_height=1123, gap=5, total_photo_count=5, main_photo_index=0)
    params.update(kwargs)
    with pytest.raises(InvalidRequest):
        compute_grid_layout(LayoutRequest(**params))


def test_invalid_request_is_value_error():
    assert issubclass(InvalidRequest, ValueError)


def test_assignment_order_top_bottom_left_right():
    result = compute_grid_layout(_request(9, main=4))
    assert result.side_photo_indices == [0, 1, 2, 3, 5, 6, 7, 8]

    main = result.main
    top, bottom, left, right = result.side[0:2], result.side[2:4], result.side[4:6], result.side[6:8]
    assert all(r.bottom <= main.y for r in top)
    assert all(r.y >= main.bottom for r in bottom)
    assert all(r.right <= main.x for r in left)
    assert all(r.x >= main.right for r in right)
    # rows run left to right, columns top to bottom
    assert top[0].x < top[1].x and bottom[0].x < bottom[1].x
    assert left[0].y < left[1].y and right[0].y < right[1].y


def test_side_photo_order_skips_main():
    assert side_photo_order(4, 0) == [1, 2, 3]
    assert side_photo_order(4, 2) == [0, 1, 3]
    assert side_photo_order(1, 0) == []


def test_main_size_steps_are_descending_and_bounded():
    sizes = main_size_steps(794, (0.30, 0.60), 0.01)
    assert sizes[0] == 476
    assert sizes[-1] == 238
    assert len(sizes) == 31
    assert sizes == sorted(sizes, reverse=True)


def test_max_cell_size_respects_all_constraints():
    counts = EdgeCounts(top=2, bottom=2, left=2, right=2)
    assert max_cell_size(476, counts, 5, 794, 1123) == 72
    assert max_cell_size(800, counts, 5, 794, 1123) is None
    assert max_cell_size(300, EdgeCounts(), 5, 794, 1123) == 0
    # a long band is limited by the main photo's span
    assert max_cell_size(100, EdgeCounts(top=5), 0, 2000, 2000) == 20


def test_search_returns_none_when_floors_cannot_be_met():
    request = _request(200, width=400, height=400)
    counts = distribute_side_photos(199)
    assert search_configuration(request, counts) is None


def test_place_configuration_matches_search():
    request = _request(6)
    counts = distribute_side_photos(5)
    config = search_configuration(request, counts)
    main, side = place_configuration(config, request.page_width, request.page_height)
    assert main.w == config.main_size
    assert len(side) == 5
    assert all(r.w == config.cell_size for r in side)


def test_candidate_distributions_start_with_policy_split():
    candidates = candidate_distributions(9)
    assert candidates[0] == distribute_side_photos(9)
    assert len(candidates) == len(set((c.top, c.bottom, c.left, c.right) for c in candidates))
    assert all(c.total == 9 for c in candidates)
    assert len(candidates) <= 9


def test_explore_distributions_never_fills_less():
    request = _request(10)
    plain = compute_grid_layout(request)
    explored = compute_grid_layout(request, GridLayoutOptions(explore_distributions=True))
    assert explored.configuration.edge_counts.total == 9
    assert explored.configuration.fill_ratio >= plain.configuration.fill_ratio
    _assert_invariants(explored, request)


def test_custom_options_change_the_search():
    request = _request(9)
    narrow = GridLayoutOptions(main_fraction_range=(0.40, 0.40))
    result = compute_grid_layout(request, narrow)
    assert result.main.w == 794 * 40 // 100


@pytest.mark.parametrize("kwargs", [
    dict(fill_ratio_target=0.0),
    dict(fill_ratio_target=1.5),
    dict(min_cell_size=0),
    dict(min_main_size=0),
    dict(main_fraction_range=(0.6, 0.3)),
    dict(main_fraction_range=(0.0, 0.5)),
    dict(main_fraction_step=0.0),
])
def test_invalid_options_rejected(kwargs):
    with pytest.raises(ValidationError):
        GridLayoutOptions(**kwargs)


def test_non_integer_request_fields_raise_value_error():
    with pytest.raises(ValueError):
        LayoutRequest(page_width="wide", page_height=1123, gap=5, total_photo_count=3)
