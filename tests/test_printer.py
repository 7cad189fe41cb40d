from engraver_fill.ast import Attribute
from engraver_fill.chain import LineChain, PointState
from engraver_fill.group import FillData
from engraver_fill.parser import parse_fill_data
from engraver_fill.printer import color_str, format_attributes, print_fill_data, record_str
from engraver_fill.settings import FieldKind
from engraver_fill.surface import BilinearSurface
from engraver_fill.trace import ImageSource, RadialGradientSource


def test_record_prints_canonical_form():
    assert record_str(0.25, 0.5, 0.01, PointState.END) == '(0.25, 0.5) 0.01 end'
    assert record_str(1.0, 0.0, 2.0, PointState.ON) == '(1, 0) 2 on'


def test_color_prints_unit_channels():
    assert color_str((0.0, 0.5, 1.0, 1.0)) == 'rgbaf(0, 0.5, 1, 1)'


def test_format_attributes_indents_children_and_blocks():
    root = Attribute('group')
    root.add('name', '"A"')
    line = root.add('line')
    line.block = ['(0, 0) 1 on', '(1, 0) 1 on']

    assert format_attributes([root]) == 'group\n  name "A"\n  line \\\n    (0, 0) 1 on\n    (1, 0) 1 on'


def test_shared_settings_print_as_references():
    data = FillData()
    first = data.add_group(name='Hatch A')
    second = data.add_group(name='B')
    second.install_dashes(first.handle('dashes'))

    text = print_fill_data(data)

    assert '  dashes with: "Hatch A"\n' in text
    assert text.count('\n  dashes\n') == 1
    assert text.endswith('\n')


def test_print_then_parse_keeps_lines_and_settings():
    data = FillData(BilinearSurface([(0.0, 0.0), (2.0, 0.5), (2.0, 1.5), (0.0, 1.0)]))
    first = data.add_group(name='Hatch A')
    first.color = (1.0, 0.0, 0.0, 0.5)
    first.direction.set_kind(FieldKind.SPIRAL)
    first.direction.find_parameter('arms').value = 4
    first.dashes.zero_threshold = 0.02
    first.dashes.broken_threshold = 0.06
    first.spacing.spacing = 0.125
    first.trace_settings.source = RadialGradientSource((0.5, 0.5), 0.25)
    line = LineChain.from_coords([(0.0, 0.5), (0.5, 0.5), (1.0, 0.5)], 0.01)
    line.point(line.indices()[1]).on = PointState.OFF
    first.lines = [line]
    second = data.add_group(name='Second')
    second.install_trace(first.handle('trace'))
    second.install_spacing(first.handle('spacing'))

    parsed = parse_fill_data(print_fill_data(data))

    assert parsed.surface.corners == data.surface.corners
    a, b = parsed.groups
    assert (a.id, a.name, b.id, b.name) == (first.id, 'Hatch A', second.id, 'Second')
    assert a.color == (1.0, 0.0, 0.0, 0.5)
    assert a.direction.kind is FieldKind.SPIRAL
    assert a.direction.spiral_arms() == 4
    assert [p.name for p in a.direction.parameters] == ['arms', 'spin']
    assert a.dashes.id == first.dashes.id
    assert (a.dashes.zero_threshold, a.dashes.broken_threshold) == (0.02, 0.06)
    assert a.lines[0].records() == line.records()
    assert b.spacing is a.spacing
    assert b.trace_settings is a.trace_settings
    assert b.dashes is not a.dashes
    source = a.trace_settings.source
    assert isinstance(source, RadialGradientSource)
    assert (source.center, source.radius) == ((0.5, 0.5), 0.25)


def test_image_trace_path_is_quoted(tmp_path):
    data = FillData()
    group = data.add_group(name='G')
    image_path = tmp_path / 'my scan.png'
    group.trace_settings.source = ImageSource(image_path)

    text = print_fill_data(data)

    assert f'traceobject image "{image_path}"' in text
    source = parse_fill_data(text).groups[0].trace_settings.source
    assert isinstance(source, ImageSource)
    assert source.path == image_path


def test_non_ascii_names_survive_print_and_parse():
    data = FillData()
    data.add_group(name='Café "Noir" \\ 2')
    second = data.add_group(name='Zweite Größe')
    second.install_dashes(data.groups[0].handle('dashes'))

    parsed = parse_fill_data(print_fill_data(data))

    assert [g.name for g in parsed.groups] == ['Café "Noir" \\ 2', 'Zweite Größe']
    assert parsed.groups[1].dashes is parsed.groups[0].dashes
