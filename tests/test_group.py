import numpy as np
import pytest

from engraver_fill.chain import LineChain, LinePointCache, PointState
from engraver_fill.config import EngineConfig, get_engine_config, set_engine_config
from engraver_fill.geometry import distance
from engraver_fill.group import FillData, PointGroup
from engraver_fill.settings import DashSettings, FieldKind
from engraver_fill.surface import BilinearSurface, RectSurface
from engraver_fill.trace import LinearGradientSource


def test_default_group_takes_height_based_spacing():
    data = FillData(RectSurface(0, 0, 4, 2))

    group = data.make_default_group()

    assert group.name == 'Default'
    assert group.spacing.spacing == pytest.approx(0.1)
    assert data.make_default_group().name == 'Default 2'


def test_group_names_are_made_unique():
    data = FillData()
    data.add_group(name='Hatch')
    data.add_group(name='Hatch')
    data.add_group(name='Layer 7')

    assert data.make_group_name_unique('Hatch') == 'Hatch 3'
    assert data.make_group_name_unique('Layer 7') == 'Layer 8'
    assert data.make_group_name_unique('Other') == 'Other'


def test_fill_regular_lines_creates_and_dashes_a_group():
    data = FillData()

    group = data.fill_regular_lines(spacing=0.1)

    assert data.groups == [group]
    assert 9 <= len(group.lines) <= 11
    assert group.default_weight == pytest.approx(0.01)
    assert all(line.cache_head is not None for line in group.lines)
    assert not group.needtodash


def test_fill_with_object_spacing_on_larger_surface():
    data = FillData(RectSurface(0, 0, 2, 2))
    group = data.add_group()
    group.spacing.spacing = 0.2

    group.fill(data.surface)

    assert 9 <= len(group.lines) <= 11
    # positions are resolved in object space
    assert max(p.p[0] for line in group.lines for p in line) > 1.5


def test_fill_grows_when_requested():
    data = FillData()
    group = data.add_group()
    group.spacing.spacing = 0.1
    group.direction.grow = True

    count = group.fill(data.surface)

    assert count == 10
    assert group.grow_context is None
    assert not group.last_growth.incomplete

    group.direction.grow = False
    group.fill(data.surface)
    assert group.last_growth is None


def test_growth_steps_follow_local_surface_scaling():
    surface = BilinearSurface([(0.0, 0.0), (1.0, 0.0), (4.0, 1.0), (0.0, 1.0)])
    data = FillData(surface)
    group = data.add_group()
    group.spacing.spacing = 0.1
    group.direction.grow = True

    group.fill(surface)

    first_steps = {}
    for line in group.lines:
        pts = [p.st for p in line]
        for a, b in zip(pts, pts[1:]):
            assert distance(a, b) == pytest.approx(0.1 / surface.get_scaling(*a))
        first_steps[pts[0][1]] = distance(pts[0], pts[1])
    bottom = first_steps[min(first_steps)]
    top = first_steps[max(first_steps)]
    assert bottom > 1.5 * top


def test_update_reports_incomplete_growth(caplog):
    data = FillData()
    group = data.add_group()
    group.spacing.spacing = 0.1
    group.direction.grow = True
    group.needtoreline = True

    saved = get_engine_config()
    try:
        set_engine_config(EngineConfig(iteration_limit=5))
        with caplog.at_level('WARNING'):
            incomplete = data.update()
    finally:
        set_engine_config(saved)

    assert incomplete == [group]
    assert group.last_growth.incomplete
    assert group.last_growth.iterations == 5
    assert group.lines
    assert 'stopped early' in caplog.text


def test_stepwise_growth_can_be_resumed():
    data = FillData()
    group = data.add_group()
    group.spacing.spacing = 0.1

    group.start_growth(data.surface)
    assert group.continue_growth(3)
    result = group.finish_growth()

    assert result.incomplete
    assert group.lines is result.lines
    assert group.continue_growth() is False


def test_shared_settings_are_seen_by_every_user():
    data = FillData()
    first = data.add_group(name='A')
    second = data.add_group(name='B')

    second.install_dashes(first.handle('dashes'))
    first.dashes.zero_threshold = 0.3

    assert second.dashes.zero_threshold == 0.3
    assert data.is_sharing('dashes', first)
    assert data.group_for_settings('dashes', first.dashes.id) is first


def test_remove_group_releases_shared_settings():
    data = FillData()
    first = data.add_group(name='A')
    second = data.add_group(name='B')
    second.install_dashes(first.handle('dashes'))

    data.remove_group(first.id)

    assert second.handle('dashes').owner == second.id
    assert not data.is_sharing('dashes', second)
    with pytest.raises(KeyError):
        data.remove_group(first.id)


def test_merge_down_moves_lines_into_next_group():
    data = FillData()
    top = data.add_group(name='Top')
    bottom = data.add_group(name='Bottom')
    top.lines = [LineChain.from_coords([(0.0, 0.5), (1.0, 0.5)], 0.01)]
    bottom.lines = [LineChain.from_coords([(0.0, 0.2), (1.0, 0.2)], 0.01)]

    merged = data.merge_down(top.id)

    assert merged is bottom
    assert bottom.name == 'Bottom+Top'
    assert len(bottom.lines) == 2
    assert data.groups == [bottom]
    with pytest.raises(ValueError):
        data.merge_down(bottom.id)


def test_copy_from_links_or_copies_settings():
    source = PointGroup(1, 'Source')
    source.lines = [LineChain.from_coords([(0.0, 0.5), (1.0, 0.5)], 0.01)]
    copy = PointGroup(2)

    copy.copy_from(source, link_spacing=True)

    assert copy.spacing is source.spacing
    assert copy.dashes is not source.dashes
    assert copy.dashes.id != source.dashes.id
    assert copy.lines[0] is not source.lines[0]
    assert copy.lines[0].records() == source.lines[0].records()


def test_fill_data_copy_preserves_sharing():
    data = FillData()
    first = data.add_group(name='A')
    second = data.add_group(name='B')
    second.install_trace(first.handle('trace'))

    duplicate = FillData()
    duplicate.copy_from(data)

    a, b = duplicate.groups
    assert a.trace_settings is b.trace_settings
    assert a.trace_settings is not first.trace_settings
    assert a.dashes is not b.dashes


def test_sync_and_reverse_sync_round_trip():
    surface = RectSurface(0, 0, 2, 4)
    group = PointGroup(1)
    group.lines = [LineChain.from_coords([(0.25, 0.5), (0.75, 0.5)], 0.01)]

    group.sync(surface)
    assert [p.p for p in group.lines[0]] == [(0.5, 2.0), (1.5, 2.0)]

    group.lines[0].first.p = (1.0, 1.0)
    group.reverse_sync(surface)
    assert group.lines[0].first.st == pytest.approx((0.5, 0.25))


def test_trace_sets_weights_and_redashes():
    data = FillData()
    group = data.fill_regular_lines(spacing=0.1)
    group.trace_settings.source = LinearGradientSource()
    group.needtotrace = True

    data.update()

    weights = [p.weight for p in group.lines[len(group.lines) // 2]]
    assert weights[0] > weights[-1]
    assert not group.needtotrace


def test_quick_adjust_scales_weights():
    group = PointGroup(1)
    group.spacing.spacing = 0.1
    group.lines = [LineChain.from_coords([(0.0, 0.5), (1.0, 0.5)], 0.01)]
    group.update_dash_cache()

    group.quick_adjust(2.0)

    assert [p.weight for p in group.lines[0]] == pytest.approx([0.02, 0.02])


def test_point_visibility_uses_zero_threshold():
    group = PointGroup(1)
    group.install_dashes(DashSettings(zero_threshold=0.02, broken_threshold=0.05))

    assert group.point_on(LinePointCache(weight=0.03))
    assert not group.point_on(LinePointCache(weight=0.01))
    assert not group.point_on(LinePointCache(weight=0.03, on=PointState.OFF))
    assert group.point_on_dash(LinePointCache(weight=0.03, dashon=PointState.START))
    assert not group.cache_point_on(LinePointCache(weight=0.03, dashon=PointState.END))


def test_direction_at_uses_group_position():
    group = PointGroup(1, position=(0.2, 0.2))
    group.direction.set_kind(FieldKind.RADIAL)

    assert group.direction_at(0.7, 0.2) == pytest.approx((0.5, 0.0))


def test_update_relines_groups_marked_for_it():
    data = FillData()
    group = data.make_default_group()
    group.direction.set_kind(FieldKind.RADIAL)
    group.needtoreline = True

    data.update()

    assert len(group.lines) == int(2 * np.pi / 0.1)
    assert not group.needtoreline
