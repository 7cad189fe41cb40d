import pytest

from engraver_fill.chain import DASH_KINDS, CacheKind, LineChain, PointState
from engraver_fill.dashes import apply_blockout, strip_dashes, update_dash_cache
from engraver_fill.geometry import distance
from engraver_fill.settings import DashSettings

VISIBLE = (PointState.ON, PointState.START)


def _line(weights):
    n = len(weights)
    return LineChain.from_records([(i / (n - 1), 0.5, w, PointState.ON) for i, w in enumerate(weights)])


def _drawn_length(line):
    nodes = line.cache_nodes()
    return sum(distance(a.p, b.p) for a, b in zip(nodes, nodes[1:]) if a.dashon in VISIBLE)


def _signature(line):
    return [(node.kind, round(node.bt, 9), node.dashon) for node in line.cache_nodes()]


def _dash_states(line):
    return [node.dashon for node in line.cache_nodes() if node.kind in DASH_KINDS]


def _dash_bts_by_segment(line):
    """Dash boundary ``bt`` values keyed by the ordinal of their segment."""

    segments = {}
    ordinal = -1
    for node in line.cache_nodes():
        if node.kind == CacheKind.ORIGINAL:
            ordinal += 1
        elif node.kind in DASH_KINDS:
            segments.setdefault(ordinal, []).append(node.bt)
    return segments


def _settings(**kwargs):
    defaults = dict(zero_threshold=0.01, broken_threshold=0.05, dash_length=2.0)
    defaults.update(kwargs)
    return DashSettings(**defaults)


def test_disabled_settings_only_baseline():
    line = _line([0.1] * 5)

    units = update_dash_cache([line], DashSettings(), 0.1)

    assert units == 0
    assert len(line.cache_nodes()) == 5
    assert not any(node.kind in DASH_KINDS for node in line.cache_nodes())


def test_weights_above_broken_draw_solid():
    line = _line([0.08] * 11)

    units = update_dash_cache([line], _settings(), 0.1)

    assert units == 0
    assert all(node.dashon == PointState.ON for node in line.cache_nodes())
    assert _drawn_length(line) == pytest.approx(1.0)


def test_weights_below_zero_draw_nothing():
    line = _line([0.005] * 11)

    update_dash_cache([line], _settings(), 0.1)

    assert all(node.dashon == PointState.OFF for node in line.cache_nodes())
    assert not any(node.kind in DASH_KINDS for node in line.cache_nodes())
    assert _drawn_length(line) == 0.0


def test_dash_coverage_grows_with_weight():
    drawn = []
    for weight in (0.02, 0.03, 0.04):
        line = _line([weight] * 11)
        units = update_dash_cache([line], _settings(), 0.1)
        assert units > 0
        drawn.append(_drawn_length(line))

    assert 0.0 < drawn[0] < drawn[1] < drawn[2] < 1.0


def test_dash_boundaries_alternate():
    line = _line([0.03] * 11)

    update_dash_cache([line], _settings(), 0.1)

    states = [node.dashon for node in line.cache_nodes() if node.kind in DASH_KINDS]
    assert states
    assert all(a != b for a, b in zip(states, states[1:]))
    assert set(states) == {PointState.START, PointState.END}


def test_same_seed_reproduces_dashes():
    settings = _settings(dash_randomness=0.5, random_seed=7)
    a = _line([0.03] * 11)
    b = _line([0.03] * 11)

    update_dash_cache([a], settings, 0.1)
    update_dash_cache([b], settings, 0.1)

    assert _signature(a) == _signature(b)


def test_different_seed_moves_dashes():
    a = _line([0.03] * 21)
    b = _line([0.03] * 21)

    update_dash_cache([a], _settings(dash_randomness=0.5, random_seed=1), 0.1)
    update_dash_cache([b], _settings(dash_randomness=0.5, random_seed=2), 0.1)

    assert _signature(a) != _signature(b)


def test_redash_reuses_existing_cache():
    settings = _settings(dash_randomness=0.3, random_seed=3)
    line = _line([0.03] * 11)

    update_dash_cache([line], settings, 0.1)
    first = _signature(line)
    update_dash_cache([line], settings, 0.1)

    assert _signature(line) == first


def test_blockout_wins_over_solid_weights():
    line = _line([0.08] * 6)
    points = list(line)
    points[3].on = PointState.OFF

    update_dash_cache([line], _settings(), 0.1)

    assert line.node(points[1].cache).dashon == PointState.ON
    assert line.node(points[2].cache).dashon == PointState.OFF
    assert line.node(points[3].cache).dashon == PointState.OFF
    assert line.node(points[4].cache).dashon == PointState.ON


def test_blockout_applies_when_dashing_is_disabled():
    line = _line([0.1] * 4)
    points = list(line)
    points[0].on = PointState.OFF

    update_dash_cache([line], DashSettings(), 0.1)

    assert line.node(points[0].cache).on == PointState.OFF
    assert line.node(points[1].cache).on == PointState.ON


def test_apply_blockout_without_cache_is_a_no_op():
    line = _line([0.1] * 3)
    list(line)[1].on = PointState.OFF

    apply_blockout(line)

    assert line.cache_head is None


def test_strip_dashes_restores_originals():
    line = _line([0.03] * 11)
    update_dash_cache([line], _settings(), 0.1)

    strip_dashes([line])

    assert len(line.cache_nodes()) == 11
    assert all(node.dashon == PointState.ON for node in line.cache_nodes())


def test_non_positive_dash_length_falls_back():
    line = _line([0.03] * 11)

    units = update_dash_cache([line], _settings(dash_length=0.0), 0.1)

    assert units > 0


def test_ramp_into_solid_is_reproducible_and_ordered():
    weights = [0.006 * i for i in range(11)]
    settings = _settings(dash_randomness=0.5, random_seed=7)
    a = _line(weights)
    b = _line(weights)

    units_a = update_dash_cache([a], settings, 0.1)
    units_b = update_dash_cache([b], settings, 0.1)

    assert units_a == units_b > 0
    assert _signature(a) == _signature(b)
    for bts in _dash_bts_by_segment(a).values():
        assert bts == sorted(bts)
        assert all(0.0 <= bt < 1.0 for bt in bts)
    states = _dash_states(a)
    assert all(x != y for x, y in zip(states, states[1:]))
    assert states[0] == PointState.START
    assert states[-1] == PointState.START
    assert a.cache_nodes()[-1].dashon == PointState.ON


def test_ramp_out_of_solid_ends_with_one_end_dash():
    line = _line([0.06 - 0.006 * i for i in range(11)])

    update_dash_cache([line], _settings(), 0.1)

    states = _dash_states(line)
    assert all(x != y for x, y in zip(states, states[1:]))
    assert states[0] == PointState.END
    assert states[-1] == PointState.END
    assert states.count(PointState.END) == states.count(PointState.START) + 1
    nodes = line.cache_nodes()
    last_dash = max(i for i, node in enumerate(nodes) if node.kind in DASH_KINDS)
    assert all(node.dashon == PointState.OFF for node in nodes[last_dash + 1 :])


def test_dip_below_broken_dashes_only_the_dip():
    line = _line([0.08] * 4 + [0.03] * 3 + [0.08] * 4)
    points = list(line)

    units = update_dash_cache([line], _settings(), 0.1)

    assert units > 0
    assert set(_dash_bts_by_segment(line)) <= {3, 4, 5, 6}
    states = _dash_states(line)
    assert all(x != y for x, y in zip(states, states[1:]))
    assert states[0] == PointState.END
    assert states[-1] == PointState.START
    for i in (0, 1, 2, 3, 7, 8, 9, 10):
        assert line.node(points[i].cache).dashon == PointState.ON
    assert 0.7 < _drawn_length(line) < 1.0


def test_weights_at_zero_threshold_draw_nothing():
    line = _line([0.01] * 11)

    units = update_dash_cache([line], _settings(), 0.1)

    assert units == 0
    assert all(node.dashon == PointState.OFF for node in line.cache_nodes())
    assert not any(node.kind in DASH_KINDS for node in line.cache_nodes())


def test_dash_weight_interpolates_inside_band():
    settings = _settings(dash_taper=0.0)

    assert settings.dash_weight(0.08) == 0.08
    assert settings.dash_weight(0.005) == 0.005
    assert settings.dash_weight(0.03) == pytest.approx(0.03)
