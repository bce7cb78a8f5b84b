"""
String Literal Helpers
======================

Decoding of PHP string literals (escape sequences, heredoc/nowdoc bodies,
variable interpolation) and the reverse direction used by the printer.
"""

import re
from typing import Callable, List, Optional, Tuple, Union

from .nodes import Node

_SIMPLE_ESCAPES = {
    'n': '\n', 't': '\t', 'r': '\r', 'v': '\v', 'e': '\x1b', 'f': '\f',
    '\\': '\\', '$': '$', '"': '"',
}

_ESCAPE_RE = re.compile(
    r'\\(?:(?P<oct>[0-7]{1,3})|x(?P<hex>[0-9A-Fa-f]{1,2})|u\{(?P<uni>[0-9A-Fa-f]+)\}|(?P<chr>.))',
    re.S,
)

_NAME_RE = re.compile(r'[A-Za-z_\x80-\uffff][A-Za-z0-9_\x80-\uffff]*')
_HEREDOC_RE = re.compile(
    r'<<<[ \t]*(?P<quote>["\']?)(?P<label>[A-Za-z_]\w*)(?P=quote)\r?\n(?P<body>[\s\S]*?)^(?P<indent>[ \t]*)(?P=label)\b',
    re.M,
)


def unescape_single(text: str) -> str:
    """Body of a single-quoted literal: only ``\\\\`` and ``\\'`` are escapes."""
    return re.sub(r"\\([\\'])", r'\1', text)


def unescape_double(text: str, heredoc: bool = False) -> str:
    """Resolve escape sequences of a double-quoted (or heredoc) segment."""
    def repl(m):
        if m.group('oct') is not None:
            return chr(int(m.group('oct'), 8) & 0xFF)
        if m.group('hex') is not None:
            return chr(int(m.group('hex'), 16))
        if m.group('uni') is not None:
            return chr(int(m.group('uni'), 16))
        ch = m.group('chr')
        if heredoc and ch == '"':
            return m.group(0)
        if ch in _SIMPLE_ESCAPES:
            return _SIMPLE_ESCAPES[ch]
        return m.group(0)
    return _ESCAPE_RE.sub(repl, text)


def split_heredoc(token: str) -> Tuple[str, bool]:
    """Return ``(body, is_nowdoc)`` of a heredoc/nowdoc token.

    The closing marker's indentation is removed from every body line and the
    newline preceding the marker is not part of the value.
    """
    m = _HEREDOC_RE.match(token)
    if m is None:
        raise ValueError(f'malformed heredoc: {token[:20]!r}')
    body = m.group('body')
    if body.endswith('\n'):
        body = body[:-1]
        if body.endswith('\r'):
            body = body[:-1]
    indent = m.group('indent')
    if indent:
        body = '\n'.join(
            line[len(indent):] if line.startswith(indent) else line.lstrip(' \t')
            for line in body.split('\n')
        )
    return body, m.group('quote') == "'"


# ═══════════════════════════════════════════════════════════════════
#  Interpolation
# ═══════════════════════════════════════════════════════════════════

ExpressionParser = Callable[[str], Node]


def interpolate(text: str, parse_expression: ExpressionParser,
                heredoc: bool = False) -> List[Node]:
    """Split the raw body of a double-quoted string into parts.

    Literal runs become ``String`` nodes; embedded variables become
    expression nodes. Supported forms: ``$v``, ``$v[key]``, ``$v->prop``,
    ``{$expr}`` and ``${name}``.
    """
    parts: List[Node] = []
    literal: List[str] = []
    i = 0
    n = len(text)

    def flush():
        if literal:
            raw = ''.join(literal)
            parts.append(Node('String', value=unescape_double(raw, heredoc)))
            literal.clear()

    while i < n:
        ch = text[i]
        if ch == '\\' and i + 1 < n:
            literal.append(text[i:i + 2])
            i += 2
            continue
        if ch == '{' and i + 1 < n and text[i + 1] == '$':
            end = _matching_brace(text, i)
            if end is None:
                literal.append(ch)
                i += 1
                continue
            flush()
            parts.append(parse_expression(text[i + 1:end]))
            i = end + 1
            continue
        if ch == '$' and i + 1 < n and text[i + 1] == '{':
            end = _matching_brace(text, i + 1)
            inner = text[i + 2:end] if end is not None else ''
            if end is not None and _NAME_RE.fullmatch(inner):
                flush()
                parts.append(Node('Variable', name=inner))
                i = end + 1
                continue
            if end is not None:
                flush()
                parts.append(Node('Variable', name=parse_expression(inner)))
                i = end + 1
                continue
        if ch == '$':
            m = _NAME_RE.match(text, i + 1)
            if m is not None:
                flush()
                node, i = _simple_variable(text, m)
                parts.append(node)
                continue
        literal.append(ch)
        i += 1
    flush()
    return parts


def _simple_variable(text: str, m) -> Tuple[Node, int]:
    node = Node('Variable', name=m.group(0))
    i = m.end()
    if i < len(text) and text[i] == '[':
        close = text.find(']', i)
        if close != -1:
            key = text[i + 1:close]
            dim: Optional[Node] = None
            if re.fullmatch(r'-?(0|[1-9][0-9]*)', key):
                dim = Node('Int', value=int(key))
            elif key.startswith('$') and _NAME_RE.fullmatch(key[1:]):
                dim = Node('Variable', name=key[1:])
            elif _NAME_RE.fullmatch(key):
                dim = Node('String', value=key)
            if dim is not None:
                return Node('ArrayDimFetch', var=node, dim=dim), close + 1
    if text.startswith('->', i):
        pm = _NAME_RE.match(text, i + 2)
        if pm is not None:
            return Node('PropertyFetch', var=node, name=pm.group(0), nullsafe=False), pm.end()
    return node, i


def _matching_brace(text: str, start: int) -> Optional[int]:
    depth = 0
    quote = None
    i = start
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == '\\':
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in ('"', "'"):
            quote = ch
        elif ch == '{':
            depth += 1
        elif ch == '}':
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return None


# ═══════════════════════════════════════════════════════════════════
#  Printing
# ═══════════════════════════════════════════════════════════════════

_DQ_ESCAPES = {
    '\\': '\\\\', '"': '\\"', '$': '\\$', '\n': '\\n', '\t': '\\t',
    '\r': '\\r', '\v': '\\v', '\f': '\\f', '\x1b': '\\e',
}


def needs_double_quotes(value: str) -> bool:
    return any(ord(ch) < 32 or ord(ch) == 127 for ch in value)


def quote_single(value: str) -> str:
    return "'" + value.replace('\\', '\\\\').replace("'", "\\'") + "'"


def escape_double(value: str) -> str:
    out = []
    for ch in value:
        if ch in _DQ_ESCAPES:
            out.append(_DQ_ESCAPES[ch])
        elif ord(ch) < 32 or ord(ch) == 127:
            out.append('\\x%02X' % ord(ch))
        else:
            out.append(ch)
    return ''.join(out)


def quote_string(value: str) -> str:
    if needs_double_quotes(value):
        return '"' + escape_double(value) + '"'
    return quote_single(value)


def escape_interpolated_literal(value: str) -> str:
    """Escape a literal run inside ``"..."``; the escaped ``\\$`` cannot start an interpolation."""
    return escape_double(value)
