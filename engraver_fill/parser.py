import logging
import re
from typing import Any, Callable, Dict, List, Tuple

from .ast import Attribute, Span
from .chain import LineChain, LineRecord, PointState
from .geometry import Vec
from .group import SETTING_KINDS, FillData, PointGroup
from .lexer import Token, strip_comment, tokenize_line, unquote
from .settings import (
    DashSettings,
    DirectionSettings,
    FieldKind,
    Parameter,
    ResponseCurve,
    SpacingSettings,
    TraceSettings,
    TraceType,
)
from .surface import BilinearSurface, RectSurface, Surface
from .trace import source_from_description
from .validate import NormalizationWarning, normalize_fill_data

logger = logging.getLogger(__name__)

_ATTR_RE = re.compile(r'(\S+)\s*(.*)$')
_SHARE_RE = re.compile(r'(with|resource)\s*:\s*(.+)$')

STATE_NAMES = {
    'on': PointState.ON,
    'off': PointState.OFF,
    'end': PointState.END,
    'start': PointState.START,
}

_TRUE = {'yes', 'true', 'on', '1'}
_FALSE = {'no', 'false', 'off', '0'}


class Cursor:
    def __init__(self, tokens: List[Token], span: Span):
        self.toks = tokens
        self.i = 0
        self.span = span

    def peek(self):
        return self.toks[self.i] if self.i < len(self.toks) else None

    def match(self, *types: str):
        if self.i < len(self.toks) and self.toks[self.i][0] in types:
            t = self.toks[self.i]
            self.i += 1
            return t
        return None

    def expect(self, *types: str):
        t = self.peek()
        if t and t[0] in types:
            self.i += 1
            return t
        want = '|'.join(types)
        if t:
            raise SyntaxError(f'[line {t[2]}, col {t[3]}] expected {want}, got {t[0]}')
        raise SyntaxError(f'[line {self.span.line}, col {self.span.col}] unexpected end of value: expected {want}')

    def at_end(self) -> bool:
        return self.i >= len(self.toks)

    def expect_end(self) -> None:
        t = self.peek()
        if t:
            raise SyntaxError(f'[line {t[2]}, col {t[3]}] unexpected {t[0]} {t[1]!r}')


def parse_attributes(text: str) -> List[Attribute]:
    """Split indented ``name value`` text into an attribute tree."""

    roots: List[Attribute] = []
    stack: List[Tuple[int, Attribute]] = []
    lines = text.splitlines()
    i = 0
    while i < len(lines):
        line_no = i + 1
        body = strip_comment(lines[i].expandtabs(2)).rstrip()
        i += 1
        if not body.strip():
            continue
        indent = len(body) - len(body.lstrip(' '))
        m = _ATTR_RE.match(body, indent)
        assert m is not None
        name, value = m.group(1), m.group(2)
        attr = Attribute(name, value, Span(line_no, indent + 1), Span(line_no, m.start(2) + 1))

        if name.endswith('\\') and not value:
            attr.name = name[:-1]
            value = '\\'
        if value.endswith('\\'):
            attr.value = value[:-1].rstrip()
            block: List[str] = []
            first = i + 1
            while i < len(lines):
                raw = strip_comment(lines[i].expandtabs(2)).rstrip()
                if raw.strip() and len(raw) - len(raw.lstrip(' ')) <= indent:
                    break
                block.append(raw)
                i += 1
            while block and not block[-1].strip():
                block.pop()
            base = min((len(b) - len(b.lstrip(' ')) for b in block if b.strip()), default=indent + 2)
            attr.block = [b[base:] for b in block]
            attr.block_span = Span(first, base + 1)

        while stack and stack[-1][0] >= indent:
            stack.pop()
        if stack:
            stack[-1][1].children.append(attr)
        else:
            roots.append(attr)
        stack.append((indent, attr))
    return roots


def _cursor(attr: Attribute) -> Cursor:
    span = attr.value_span or attr.span
    return Cursor(tokenize_line(attr.value, span.line, span.col - 1), span)


def _error(attr: Attribute, message: str) -> SyntaxError:
    span = attr.value_span or attr.span
    return SyntaxError(f'[line {span.line}, col {span.col}] {attr.name}: {message}')


def parse_number(attr: Attribute) -> float:
    cur = _cursor(attr)
    t = cur.expect('NUMBER')
    cur.expect_end()
    return float(t[1])


def parse_int(attr: Attribute) -> int:
    value = parse_number(attr)
    if value != int(value):
        raise _error(attr, f'expected an integer, got {attr.value}')
    return int(value)


def parse_flag(attr: Attribute) -> bool:
    word = attr.value.strip().lower()
    if not word or word in _TRUE:
        return True
    if word in _FALSE:
        return False
    raise _error(attr, f'expected yes|no, got {attr.value!r}')


def parse_word(attr: Attribute) -> str:
    value = attr.value.strip()
    if value.startswith('"'):
        cur = _cursor(attr)
        t = cur.expect('STRING')
        cur.expect_end()
        return t[1]
    return value


def parse_pair(cur: Cursor) -> Vec:
    cur.expect('LPAREN')
    x = float(cur.expect('NUMBER')[1])
    cur.expect('COMMA')
    y = float(cur.expect('NUMBER')[1])
    cur.expect('RPAREN')
    return x, y


def parse_pairs(attr: Attribute) -> List[Vec]:
    cur = _cursor(attr)
    pairs: List[Vec] = []
    while not cur.at_end():
        pairs.append(parse_pair(cur))
    return pairs


def parse_single_pair(attr: Attribute) -> Vec:
    cur = _cursor(attr)
    pair = parse_pair(cur)
    cur.expect_end()
    return pair


def parse_color(attr: Attribute) -> Tuple[float, float, float, float]:
    cur = _cursor(attr)
    fn = cur.expect('ID')
    if fn[1] not in ('rgbaf', 'rgba'):
        raise SyntaxError(f'[line {fn[2]}, col {fn[3]}] expected rgbaf(...) or rgba(...), got {fn[1]}')
    cur.expect('LPAREN')
    values: List[float] = []
    while True:
        values.append(float(cur.expect('NUMBER')[1]))
        if not cur.match('COMMA'):
            break
    cur.expect('RPAREN')
    cur.expect_end()
    if len(values) == 3:
        values.append(255.0 if fn[1] == 'rgba' else 1.0)
    if len(values) != 4:
        raise _error(attr, f'expected 3 or 4 color channels, got {len(values)}')
    if fn[1] == 'rgba':
        values = [v / 255 for v in values]
    return values[0], values[1], values[2], values[3]


def parse_point_record(text: str, line_no: int, col: int) -> LineRecord:
    """``(s, t) weight [on|off|end|start]``"""

    cur = Cursor(tokenize_line(text, line_no, col - 1), Span(line_no, col))
    s, t = parse_pair(cur)
    weight = float(cur.expect('NUMBER')[1])
    state = PointState.ON
    tok = cur.match('ID', 'NUMBER')
    if tok is not None:
        if tok[0] == 'NUMBER':
            state = PointState(int(float(tok[1])))
        elif tok[1].lower() in STATE_NAMES:
            state = STATE_NAMES[tok[1].lower()]
        else:
            raise SyntaxError(f'[line {tok[2]}, col {tok[3]}] unknown point state {tok[1]!r}')
    cur.expect_end()
    return s, t, weight, state


def parse_line_block(attr: Attribute) -> LineChain:
    records: List[LineRecord] = []
    span = attr.block_span or attr.span
    for offset, text in enumerate(attr.block or []):
        if not text.strip():
            continue
        records.append(parse_point_record(text, span.line + offset, span.col))
    return LineChain.from_records(records)


def _curve(attr: Attribute) -> ResponseCurve:
    points = parse_pairs(attr)
    return ResponseCurve(points=points) if points else ResponseCurve()


Converter = Callable[[Attribute], Any]

_DASH_FIELDS: Dict[str, Converter] = {
    'dash_length': parse_number,
    'dash_density': parse_number,
    'dash_randomness': parse_number,
    'random_seed': parse_int,
    'zero_threshold': parse_number,
    'broken_threshold': parse_number,
    'dash_taper': parse_number,
    'indashcaps': parse_int,
    'outdashcaps': parse_int,
    'startcaps': parse_int,
    'endcaps': parse_int,
}

_DIRECTION_FIELDS: Dict[str, Converter] = {
    'resolution': parse_number,
    'default_weight': parse_number,
    'seed': parse_int,
    'line_offset': parse_number,
    'point_offset': parse_number,
    'noise_scale': parse_number,
    'start_type': parse_word,
    'start_rand_width': parse_number,
    'profile_start': parse_number,
    'end_type': parse_word,
    'end_rand_width': parse_number,
    'profile_end': parse_number,
    'max_height': parse_number,
    'scale_profile': parse_flag,
    'profile': _curve,
    'grow': parse_flag,
    'fill': parse_flag,
    'merge': parse_flag,
    'spread': parse_number,
    'spread_depth': parse_number,
    'merge_angle': parse_number,
}

_PARAMETER_FIELDS: Dict[str, Converter] = {
    'label': parse_word,
    'dtype': parse_word,
    'value': parse_number,
    'min': parse_number,
    'min_bounded': parse_flag,
    'max': parse_number,
    'max_bounded': parse_flag,
    'mingap': parse_number,
}

_SPACING_FIELDS: Dict[str, Converter] = {
    'spacing': parse_number,
}

_TRACE_FIELDS: Dict[str, Converter] = {
    'view_opacity': parse_number,
    'show_trace': parse_flag,
    'continuous': parse_flag,
    'lock_ref_to_obj': parse_flag,
    'curve': _curve,
}


def _apply_fields(target: Any, attr: Attribute, fields: Dict[str, Converter], handled: Tuple[str, ...] = ()) -> None:
    for child in attr.children:
        if child.name == 'id':
            target.id = parse_word(child)
        elif child.name in fields:
            setattr(target, child.name, fields[child.name](child))
        elif child.name not in handled:
            logger.debug('Ignoring unknown %s attribute %r at line %d', attr.name, child.name, child.span.line)


def build_dashes(attr: Attribute) -> DashSettings:
    dashes = DashSettings()
    _apply_fields(dashes, attr, _DASH_FIELDS)
    return dashes


def build_direction(attr: Attribute) -> DirectionSettings:
    direction = DirectionSettings()
    kind = attr.find('type')
    if kind is not None:
        direction.set_kind(FieldKind.from_name(parse_word(kind)))
    _apply_fields(direction, attr, _DIRECTION_FIELDS, handled=('type', 'parameter'))
    for child in attr.find_all('parameter'):
        name_attr = child.find('name')
        if name_attr is None:
            raise _error(child, 'parameter without a name')
        name = parse_word(name_attr)
        param = direction.find_parameter(name)
        if param is None:
            param = Parameter(name, kind=direction.kind)
            direction.parameters.append(param)
        _apply_fields(param, child, _PARAMETER_FIELDS, handled=('name',))
    return direction


def build_spacing(attr: Attribute) -> SpacingSettings:
    spacing = SpacingSettings()
    kind = attr.find('type')
    if kind is not None:
        spacing.kind = parse_word(kind)
    _apply_fields(spacing, attr, _SPACING_FIELDS, handled=('type',))
    return spacing


def build_trace(attr: Attribute) -> TraceSettings:
    trace = TraceSettings()
    kind = attr.find('trace_type')
    if kind is not None:
        word = parse_word(kind).lower()
        try:
            trace.trace_type = TraceType(word)
        except ValueError:
            raise _error(kind, f'unknown trace type {word!r}') from None
    _apply_fields(trace, attr, _TRACE_FIELDS, handled=('trace_type', 'traceobject'))
    source_attr = attr.find('traceobject')
    if source_attr is not None:
        cur = _cursor(source_attr)
        kind_tok = cur.expect('ID')
        args = []
        while not cur.at_end():
            args.append(cur.expect('STRING', 'NUMBER', 'ID')[1])
        trace.source = source_from_description(kind_tok[1], args)
        if trace.source is None:
            logger.warning('Unknown trace object %r at line %d; trace has no source', source_attr.value, source_attr.span.line)
    return trace


_BUILDERS: Dict[str, Callable[[Attribute], Any]] = {
    'dashes': build_dashes,
    'direction': build_direction,
    'spacing': build_spacing,
    'trace': build_trace,
}


def _shared_handle(attr: Attribute, kind: str, data: FillData):
    """Resolve ``with: <group name>`` or ``resource: <settings id>``."""

    m = _SHARE_RE.match(attr.value.strip())
    if not m:
        raise _error(attr, f'expected with: <group> or resource: <id>, got {attr.value!r}')
    how, target = m.group(1), m.group(2).strip()
    if target.startswith('"') and target.endswith('"') and len(target) > 1:
        target = unquote(target)
    if how == 'with':
        other = data.group_by_name(target)
    else:
        other = data.group_for_settings(kind, target)
    if other is None:
        raise _error(attr, f'no earlier group provides {kind} for {target!r}')
    return other.handle(kind)


def build_group(attr: Attribute, data: FillData) -> PointGroup:
    id_attr = attr.find('id')
    group = PointGroup(parse_int(id_attr) if id_attr is not None else data.next_group_id())
    if id_attr is not None and data.find_group(group.id) is not None:
        raise _error(id_attr, f'duplicate group id {group.id}')
    for child in attr.children:
        name = child.name
        if name == 'id':
            continue
        if name == 'name':
            group.name = parse_word(child)
        elif name == 'active':
            group.active = parse_flag(child)
        elif name == 'linked':
            group.linked = parse_flag(child)
        elif name == 'default_weight':
            group.default_weight = parse_number(child)
        elif name == 'position':
            group.position = parse_single_pair(child)
        elif name == 'directionv':
            group.directionv = parse_single_pair(child)
        elif name == 'color':
            group.color = parse_color(child)
        elif name in SETTING_KINDS:
            if child.value.strip():
                group.install(name, _shared_handle(child, name, data))
            else:
                group.install(name, _BUILDERS[name](child))
        elif name == 'line':
            line = parse_line_block(child)
            if len(line):
                group.lines.append(line)
        else:
            logger.debug('Ignoring unknown group attribute %r at line %d', name, child.span.line)
    return group


def build_surface(attr: Attribute) -> Surface:
    corners_attr = attr.find('corners')
    if corners_attr is None:
        return RectSurface()
    corners = parse_pairs(corners_attr)
    if len(corners) != 4:
        raise _error(corners_attr, f'expected 4 corners, got {len(corners)}')
    (x0, y0), (x1, y1), (x2, y2), (x3, y3) = corners
    if y0 == y1 and x1 == x2 and y2 == y3 and x3 == x0:
        return RectSurface(x0, y0, x1 - x0, y3 - y0)
    return BilinearSurface(corners)


def parse_fill_data(text: str) -> FillData:
    """Build fill data from its persisted text; nothing is normalized yet."""

    data = FillData()
    for attr in parse_attributes(text):
        if attr.name == 'surface':
            data.surface = build_surface(attr)
        elif attr.name == 'group':
            data.add_group(build_group(attr, data))
        else:
            logger.debug('Ignoring unknown top-level attribute %r at line %d', attr.name, attr.span.line)
    return data


def load_fill_data(text: str) -> Tuple[FillData, List[NormalizationWarning]]:
    """Parse, normalize, then rebuild positions and render caches."""

    data = parse_fill_data(text)
    warnings = normalize_fill_data(data)
    for group in data.groups:
        group.sync(data.surface)
        group.update_dash_cache()
    logger.info(
        'Loaded %d groups with %d lines',
        len(data.groups),
        sum(len(group.lines) for group in data.groups),
    )
    return data, warnings
