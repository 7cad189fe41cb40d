from typing import Any, Dict, Iterable, List, Sequence

from .ast import Attribute
from .chain import LineChain, PointState
from .geometry import Vec
from .group import SETTING_KINDS, FillData, PointGroup
from .lexer import quote
from .settings import DashSettings, DirectionSettings, ResponseCurve, SpacingSettings, TraceSettings
from .trace import describe_source

STATE_WORDS = {
    PointState.ON: 'on',
    PointState.OFF: 'off',
    PointState.END: 'end',
    PointState.START: 'start',
}

_DASH_FIELDS = (
    'dash_length',
    'dash_density',
    'dash_randomness',
    'random_seed',
    'zero_threshold',
    'broken_threshold',
    'dash_taper',
    'indashcaps',
    'outdashcaps',
    'startcaps',
    'endcaps',
)

_DIRECTION_FIELDS = (
    'resolution',
    'default_weight',
    'seed',
    'line_offset',
    'point_offset',
    'noise_scale',
    'start_type',
    'start_rand_width',
    'profile_start',
    'end_type',
    'end_rand_width',
    'profile_end',
    'max_height',
    'scale_profile',
    'grow',
    'fill',
    'merge',
    'spread',
    'spread_depth',
    'merge_angle',
)

_PARAMETER_FIELDS = ('label', 'dtype', 'value', 'min', 'min_bounded', 'max', 'max_bounded', 'mingap')

_TRACE_FIELDS = ('view_opacity', 'show_trace', 'continuous', 'lock_ref_to_obj')


def _fmt(value: Any) -> str:
    if isinstance(value, bool):
        return 'yes' if value else 'no'
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, str):
        return value if value and value.isidentifier() else quote(value)
    return str(value)


def pair_str(p: Vec) -> str:
    return f'({_fmt(float(p[0]))}, {_fmt(float(p[1]))})'


def pairs_str(points: Iterable[Vec]) -> str:
    return ' '.join(pair_str(p) for p in points)


def color_str(color: Sequence[float]) -> str:
    return 'rgbaf(' + ', '.join(_fmt(float(c)) for c in color) + ')'


def record_str(s: float, t: float, weight: float, state: PointState) -> str:
    return f'{pair_str((s, t))} {_fmt(float(weight))} {STATE_WORDS[state]}'


def _fields(node: Attribute, settings: Any, names: Sequence[str]) -> None:
    for name in names:
        node.add(name, _fmt(getattr(settings, name)))


def _curve(node: Attribute, name: str, curve: ResponseCurve) -> None:
    node.add(name, pairs_str(curve.points))


def dashes_attribute(dashes: DashSettings) -> Attribute:
    node = Attribute('dashes')
    node.add('id', _fmt(dashes.id))
    _fields(node, dashes, _DASH_FIELDS)
    return node


def direction_attribute(direction: DirectionSettings) -> Attribute:
    node = Attribute('direction')
    node.add('id', _fmt(direction.id))
    node.add('type', direction.kind.value)
    _fields(node, direction, _DIRECTION_FIELDS)
    if direction.profile is not None:
        _curve(node, 'profile', direction.profile)
    for param in direction.parameters:
        child = node.add('parameter')
        child.add('name', _fmt(param.name))
        _fields(child, param, _PARAMETER_FIELDS)
    return node


def spacing_attribute(spacing: SpacingSettings) -> Attribute:
    node = Attribute('spacing')
    node.add('id', _fmt(spacing.id))
    node.add('type', _fmt(spacing.kind))
    node.add('spacing', _fmt(float(spacing.spacing)))
    return node


def trace_attribute(trace: TraceSettings) -> Attribute:
    node = Attribute('trace')
    node.add('id', _fmt(trace.id))
    node.add('trace_type', trace.trace_type.value)
    _fields(node, trace, _TRACE_FIELDS)
    _curve(node, 'curve', trace.curve)
    description = describe_source(trace.source)
    if description is not None:
        kind, args = description
        if kind == 'image':
            args = tuple(quote(a) for a in args)
        node.add('traceobject', ' '.join((kind,) + tuple(args)))
    return node


_SETTINGS_ATTRIBUTE = {
    'dashes': dashes_attribute,
    'direction': direction_attribute,
    'spacing': spacing_attribute,
    'trace': trace_attribute,
}


def line_attribute(line: LineChain) -> Attribute:
    node = Attribute('line')
    node.block = [record_str(*record) for record in line.records()]
    return node


def group_attribute(group: PointGroup, first_user: Dict[int, str]) -> Attribute:
    """``first_user`` maps ``id(handle)`` to the name of the group printed with it first."""

    node = Attribute('group')
    node.add('id', group.id)
    node.add('name', quote(group.name))
    node.add('active', _fmt(group.active))
    node.add('linked', _fmt(group.linked))
    node.add('color', color_str(group.color))
    node.add('position', pair_str(group.position))
    node.add('directionv', pair_str(group.directionv))
    node.add('default_weight', _fmt(float(group.default_weight)))
    for kind in SETTING_KINDS:
        handle = group.handle(kind)
        owner = first_user.get(id(handle))
        if owner is not None:
            node.add(kind, f'with: {quote(owner)}')
        else:
            first_user[id(handle)] = group.name
            node.children.append(_SETTINGS_ATTRIBUTE[kind](handle.value))
    for line in group.lines:
        node.children.append(line_attribute(line))
    return node


def surface_attribute(data: FillData) -> Attribute:
    node = Attribute('surface')
    corners = getattr(data.surface, 'corners', None)
    if corners is not None:
        node.add('corners', pairs_str(corners))
    return node


def fill_data_to_attributes(data: FillData) -> List[Attribute]:
    attrs = [surface_attribute(data)]
    first_user: Dict[int, str] = {}
    for group in data.groups:
        attrs.append(group_attribute(group, first_user))
    return attrs


def format_attributes(attrs: Iterable[Attribute], indent: int = 0) -> str:
    out: List[str] = []
    pad = '  ' * indent
    for attr in attrs:
        head = f'{pad}{attr.name}'
        if attr.value:
            head += f' {attr.value}'
        if attr.block is not None:
            head += ' \\'
        out.append(head)
        if attr.block is not None:
            out.extend(f'{pad}  {row}' if row else '' for row in attr.block)
        if attr.children:
            out.append(format_attributes(attr.children, indent + 1))
    return '\n'.join(out)


def print_fill_data(data: FillData) -> str:
    return format_attributes(fill_data_to_attributes(data)) + '\n'
