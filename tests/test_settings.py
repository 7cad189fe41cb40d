import numpy as np
import pytest

from engraver_fill.settings import (
    DashSettings,
    DirectionSettings,
    FieldKind,
    Parameter,
    ResponseCurve,
    SharedSettings,
    SpacingSettings,
)


def test_response_curve_interpolates_and_clamps():
    curve = ResponseCurve([(0.0, 0.0), (0.5, 1.0), (1.0, 0.0)], ymin=0.0, ymax=2.0)

    assert curve(0.25) == pytest.approx(1.0)
    assert curve(0.5) == pytest.approx(2.0)
    assert curve(1.5) == pytest.approx(0.0)
    assert ResponseCurve([])(0.3) == 0.0


def test_field_kind_from_name():
    assert FieldKind.from_name(' Radial ') is FieldKind.RADIAL
    assert FieldKind.from_name('wobbly') is FieldKind.UNKNOWN


def test_spiral_kind_adds_its_parameters_once():
    direction = DirectionSettings()
    direction.set_kind(FieldKind.SPIRAL)
    direction.set_kind(FieldKind.SPIRAL)

    assert [p.name for p in direction.parameters] == ['arms', 'spin']
    assert direction.spiral_arms() == 2
    assert direction.spiral_spin() == 1
    direction.find_parameter('spin').value = 1
    assert direction.spiral_spin() == -1


def test_parameter_clamp():
    arms = Parameter('arms', dtype='int', min=1, min_bounded=True)
    spin = Parameter('spin', dtype='boolean')

    assert arms.clamp(0.2) == 1.0
    assert arms.clamp(2.6) == 3.0
    assert spin.clamp(0.3) == 1.0


def test_start_end_without_profile_is_full_line():
    assert DirectionSettings().start_end(np.random.default_rng(0), True) == (0.0, 1.0, 1)


def test_start_end_randomises_within_width():
    direction = DirectionSettings(profile_start=0.2, start_rand_width=0.1, profile_end=0.8)
    rng = np.random.default_rng(1)

    for _ in range(20):
        start, end, order = direction.start_end(rng, True)
        assert 0.1 <= start <= 0.3
        assert end == 0.8
        assert order == 1


def test_start_end_keeps_increasing_order():
    direction = DirectionSettings(profile_start=0.9, profile_end=0.1)

    assert direction.start_end(np.random.default_rng(0), True) == (0.1, 0.9, 1)
    assert direction.start_end(np.random.default_rng(0), False) == (0.9, 0.1, -1)


def test_dash_settings_disabled_by_default():
    assert DashSettings().is_disabled()
    assert not DashSettings(broken_threshold=0.05).is_disabled()


def test_spacing_map_overrides_constant():
    spacing = SpacingSettings(spacing=0.1)
    assert spacing.value_at(0.3, 0.3) == 0.1

    spacing.map = lambda x, y: x
    assert spacing.value_at(0.3, 0.7) == 0.3


def test_settings_ids_are_unique():
    assert DashSettings().id != DashSettings().id


def test_shared_settings_owner_and_links():
    handle = SharedSettings(DashSettings(), owner=1)

    handle.attach(2)
    handle.attach(2)
    assert handle.users == [1, 2]
    assert handle.is_shared()

    handle.release(1)
    assert handle.owner == 2
    assert handle.count == 1

    handle.rename_user(2, 5)
    assert handle.users == [5]
    handle.release(5)
    assert handle.owner is None
    assert handle.attach(7).owner == 7
