import numpy as np
import pytest
from scipy.spatial import cKDTree

from engraver_fill.config import EngineConfig, get_engine_config, set_engine_config
from engraver_fill.fields import CircularField, ExternalMapField, LinearField, RadialField
from engraver_fill.growth import grow_lines, grow_lines_finish, grow_lines_init, grow_lines_iterate


def _coverage_gap(lines, spacing):
    """Largest distance from a scan-grid point to the nearest grown point."""

    coords = np.array([p.st for line in lines for p in line])
    step = spacing / 2
    xs = np.clip(np.arange(0.0, 1.0 + step / 2, step), 0.0, 1.0)
    gx, gy = np.meshgrid(xs, xs)
    dists, _ = cKDTree(coords).query(np.column_stack([gx.ravel(), gy.ravel()]))
    return float(dists.max())


def test_linear_growth_starts_on_the_inward_edge():
    result = grow_lines(LinearField((1.0, 0.0)), 0.1, 0.01)

    assert not result.incomplete
    assert len(result.lines) == 10
    starts = sorted(line.first.t for line in result.lines)
    assert starts == pytest.approx([0.05 + 0.1 * i for i in range(10)])
    for line in result.lines:
        assert line.first.s == 0.0
        assert line.last.s == pytest.approx(0.9, abs=0.11)


def test_growth_covers_the_square():
    result = grow_lines(LinearField((1.0, 0.5)), 0.1, 0.01)

    assert not result.incomplete
    assert _coverage_gap(result.lines, 0.1) <= 1.5 * 0.1


def test_circular_growth_terminates():
    result = grow_lines(CircularField((0.5, 0.5)), 0.1, 0.01)

    assert not result.incomplete
    assert result.lines
    assert all(len(line) >= 2 for line in result.lines)


def test_radial_growth_seeds_a_ring():
    context = grow_lines_init(RadialField((0.5, 0.5)), 0.1, 0.01)

    assert len(context.lines) >= 3
    assert len(context.tips) == 2 * len(context.lines)

    while grow_lines_iterate(context):
        pass
    result = grow_lines_finish(context)

    assert not result.incomplete
    assert all(len(line) >= 2 for line in result.lines)


def test_seeds_grow_in_both_directions():
    context = grow_lines_init(LinearField((1.0, 0.0)), 0.1, 0.01, seeds=[(0.5, 0.5)])

    assert len(context.tips) == 2
    grow_lines_iterate(context)
    line = context.lines[0]

    assert [p.s for p in line] == pytest.approx([0.4, 0.5, 0.6])


def test_iteration_limit_marks_result_incomplete():
    result = grow_lines(LinearField((1.0, 0.0)), 0.05, 0.01, iteration_limit=3)

    assert result.incomplete
    assert result.iterations == 3


def test_finishing_early_marks_result_incomplete():
    context = grow_lines_init(LinearField((1.0, 0.0)), 0.1, 0.01)
    grow_lines_iterate(context)

    result = grow_lines_finish(context)

    assert result.incomplete
    assert not grow_lines_iterate(context)


def test_zero_field_stops_every_tip():
    result = grow_lines(ExternalMapField(lambda s, t: (0.0, 0.0)), 0.1, 0.01, seeds=[(0.5, 0.5)])

    assert result.lines == []


def test_weight_map_sets_point_weights():
    result = grow_lines(
        LinearField((1.0, 0.0)),
        0.1,
        0.01,
        weight_map=lambda s, t: 0.02 * s,
    )

    for line in result.lines:
        for p in line:
            assert p.weight == pytest.approx(0.02 * p.s)


def test_spacing_is_divided_by_local_scaling():
    context = grow_lines_init(
        LinearField((1.0, 0.0)),
        0.1,
        0.01,
        spacing_map=lambda s, t: 0.2 if s > 0.5 else 0.0,
        scaling=lambda s, t: 1.0 + t,
    )

    assert context.spacing_at(0.8, 0.0) == pytest.approx(0.2)
    assert context.spacing_at(0.8, 1.0) == pytest.approx(0.1)
    assert context.spacing_at(0.2, 1.0) == pytest.approx(0.05)
    assert context.finest_spacing() == pytest.approx(0.05)


def test_growth_steps_shrink_where_scaling_grows():
    result = grow_lines(LinearField((1.0, 0.0)), 0.1, 0.01, scaling=lambda s, t: 1.0 + t)

    assert not result.incomplete
    for line in result.lines:
        pts = [p.st for p in line]
        for a, b in zip(pts, pts[1:]):
            assert b[0] - a[0] == pytest.approx(0.1 / (1.0 + a[1]))
    starts = sorted(line.first.t for line in result.lines)
    gaps = np.diff(starts)
    assert gaps[0] > gaps[-1]


def test_config_sets_default_iteration_limit():
    saved = get_engine_config()
    try:
        set_engine_config(EngineConfig(iteration_limit=2))
        context = grow_lines_init(LinearField((1.0, 0.0)), 0.1, 0.01)
    finally:
        set_engine_config(saved)

    assert context.iteration_limit == 2


def test_non_positive_spacing_is_rejected():
    with pytest.raises(ValueError):
        grow_lines_init(LinearField((1.0, 0.0)), 0.0, 0.01)
