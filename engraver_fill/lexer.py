import re
from typing import List, Tuple

Token = Tuple[str, str, int, int]  # (type, value, line, col)

SYMBOLS = {
    '(': 'LPAREN',
    ')': 'RPAREN',
    ',': 'COMMA',
    ':': 'COLON',
    '\\': 'BACKSLASH',
}

WS = ' \t\r'

_id_re = re.compile(r'[A-Za-z_][A-Za-z0-9_.+\-]*')
_num_re = re.compile(r'[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?|[+-]?(?:inf|nan)\b')
_str_re = re.compile(r'"([^"\\]|\\.)*"')  # double-quoted with escapes


def strip_comment(s: str) -> str:
    """Drop a ``#`` comment that is not inside a string literal."""

    quoted = False
    escaped = False
    for i, ch in enumerate(s):
        if quoted:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                quoted = False
            continue
        if ch == '"':
            quoted = True
        elif ch == '#' and (i == 0 or s[i - 1] in WS):
            return s[:i]
    return s


def unquote(raw: str) -> str:
    return re.sub(r'\\(.)', r'\1', raw[1:-1])


def quote(value: str) -> str:
    return '"' + value.replace('\\', '\\\\').replace('"', '\\"') + '"'


def tokenize_line(s: str, line_no: int, col_offset: int = 0) -> List[Token]:
    tokens: List[Token] = []
    i = 0
    n = len(s)
    while i < n:
        ch = s[i]
        col = col_offset + i + 1
        if ch == '#' and (i == 0 or s[i - 1] in WS):
            break
        if ch in WS:
            i += 1
            continue
        if ch == '"':
            m = _str_re.match(s, i)
            if not m:
                raise SyntaxError(f'[line {line_no}, col {col}] unterminated string literal')
            tokens.append(('STRING', unquote(m.group(0)), line_no, col))
            i = m.end()
            continue
        m = _num_re.match(s, i)
        if m:
            tokens.append(('NUMBER', m.group(0), line_no, col))
            i = m.end()
            continue
        m = _id_re.match(s, i)
        if m:
            tokens.append(('ID', m.group(0), line_no, col))
            i = m.end()
            continue
        if ch in SYMBOLS:
            tokens.append((SYMBOLS[ch], ch, line_no, col))
            i += 1
            continue
        raise SyntaxError(f'[line {line_no}, col {col}] unexpected character: {ch!r}')
    return tokens
