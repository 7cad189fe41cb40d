import math

import pytest

from engraver_fill.chain import LineChain, PointState
from engraver_fill.group import FillData, PointGroup
from engraver_fill.parser import load_fill_data
from engraver_fill.settings import FieldKind
from engraver_fill.surface import RectSurface
from engraver_fill.validate import ValidationError, normalize_fill_data, validate_fill_data


def test_validate_accepts_default_data():
    data = FillData()
    data.make_default_group()

    validate_fill_data(data)
    assert normalize_fill_data(data) == []


def test_duplicate_group_ids_are_rejected():
    data = FillData()
    data.groups = [PointGroup(1, 'A'), PointGroup(1, 'B')]

    with pytest.raises(ValidationError) as exc:
        validate_fill_data(data)

    assert 'duplicate group id 1' in str(exc.value)


def test_non_finite_points_are_repaired(caplog):
    data = FillData()
    group = data.add_group(name='Broken')
    group.spacing.spacing = 0.1
    line = LineChain.from_coords([(0.0, 0.5), (math.nan, 0.5), (1.0, 0.5)], 0.01)
    line.last.weight = math.inf
    group.lines = [line, LineChain.from_coords([(math.inf, 0.2)], 0.01)]

    with caplog.at_level('WARNING'):
        warnings = normalize_fill_data(data)

    assert [w.kind for w in warnings] == ['non-finite', 'non-finite']
    assert len(group.lines) == 1
    assert group.lines[0].records() == [(0.0, 0.5, 0.01, PointState.ON), (1.0, 0.5, 0.0, PointState.ON)]
    assert "'Broken': 2 points with non-finite coordinates dropped" in caplog.text
    assert '1 non-finite weights set to 0' in caplog.text


def test_nan_weight_in_a_file_loads_with_a_warning():
    text = 'group\n  name N\n  spacing\n    spacing 0.1\n  line \\\n    (0, 0.5) nan\n    (1, 0.5) 0.01\n'

    data, warnings = load_fill_data(text)

    assert [w.kind for w in warnings] == ['non-finite']
    assert [p.weight for p in data.groups[0].lines[0]] == [0.0, 0.01]


def test_inverted_thresholds_are_repaired(caplog):
    data = FillData()
    group = data.add_group(name='A')
    group.spacing.spacing = 0.1
    group.dashes.zero_threshold = 0.05
    group.dashes.broken_threshold = 0.02

    with caplog.at_level('WARNING'):
        warnings = normalize_fill_data(data)

    assert [w.kind for w in warnings] == ['inverted-thresholds']
    assert warnings[0].group == group.id
    assert group.dashes.broken_threshold == 0.05
    assert 'below zero threshold' in caplog.text


@pytest.mark.parametrize(
    'name, value, expected',
    [('dash_density', 1.5, 1.0), ('dash_randomness', -0.2, 0.0), ('dash_taper', 3.0, 1.0)],
)
def test_dash_fractions_are_clamped(name, value, expected):
    data = FillData()
    group = data.add_group()
    group.spacing.spacing = 0.1
    setattr(group.dashes, name, value)

    warnings = normalize_fill_data(data)

    assert getattr(group.dashes, name) == expected
    assert [w.kind for w in warnings] == ['fraction']


def test_direction_and_spacing_defaults_are_restored():
    data = FillData(RectSurface(0, 0, 1, 4))
    group = data.add_group()
    group.direction.kind = FieldKind.UNKNOWN
    group.direction.resolution = 0.0
    group.direction.profile_end = 1.2

    warnings = normalize_fill_data(data)

    kinds = {w.kind for w in warnings}
    assert kinds == {'unknown-direction', 'resolution', 'fraction', 'spacing'}
    assert group.direction.kind is FieldKind.LINEAR
    assert group.direction.resolution == 1.0
    assert group.direction.profile_end == 1.0
    assert group.spacing.spacing == pytest.approx(0.2)


def test_negative_weights_are_zeroed():
    data = FillData()
    group = data.add_group()
    group.spacing.spacing = 0.1
    group.lines = [LineChain.from_coords([(0.0, 0.5), (1.0, 0.5)], -0.01)]

    warnings = normalize_fill_data(data)

    assert [p.weight for p in group.lines[0]] == [0.0, 0.0]
    assert warnings[0].message.endswith('2 negative weights set to 0')


def test_shared_settings_are_repaired_once():
    data = FillData()
    first = data.add_group(name='A')
    second = data.add_group(name='B')
    second.install_spacing(first.handle('spacing'))

    warnings = normalize_fill_data(data)

    assert [w.kind for w in warnings] == ['spacing']
    assert second.spacing.spacing == pytest.approx(0.05)
