"""
PHP Parser
==========

Builds ``Node`` trees from PHP source with lark (LALR, contextual lexer).

    >>> res = parse('<?php echo 1 + 2;')
    >>> res.unwrap()[0].kind
    'Echo'

``parse`` returns a ``Result``; ``parse_or_raise`` raises ``ParseError``
for callers where a parse failure is fatal (the entry file).
"""

import bisect
import functools
import logging
import re
from typing import Any, List, Optional

from lark import Lark, Token, Transformer, v_args
from lark.exceptions import UnexpectedInput, VisitError

from ..errors import ParseError
from ..result import Err, Ok, Result
from .grammar import BINARY_ALIASES, CAST_TYPES, GRAMMAR, MAGIC_CONSTANTS
from .nodes import NO_POSITION, Node, Position, name_node, walk
from .strings import interpolate, split_heredoc, unescape_single

logger = logging.getLogger(__name__)

_OPEN_TAG_RE = re.compile(r'<\?php\b')


class _CommentSink:
    """Receives COMMENT tokens from the lexer callback."""

    def __init__(self):
        self.tokens: List[Token] = []

    def __call__(self, token: Token) -> Token:
        self.tokens.append(token)
        return token


_SINK = _CommentSink()


@functools.lru_cache(maxsize=1)
def _lark() -> Lark:
    return Lark(
        GRAMMAR,
        parser='lalr',
        lexer='contextual',
        start=['start', 'expr'],
        propagate_positions=True,
        maybe_placeholders=False,
        lexer_callbacks={'COMMENT': _SINK},
    )


# ═══════════════════════════════════════════════════════════════════
#  Tree building
# ═══════════════════════════════════════════════════════════════════

class _Flag:
    """Marker produced by flag-like rules (``&``, ``...``, modifiers)."""

    def __init__(self, name: str):
        self.name = name


class _Type:
    def __init__(self, text: str):
        self.text = text


def _pos(meta) -> Position:
    if meta is None or getattr(meta, 'empty', True):
        return NO_POSITION
    return Position(meta.line, meta.end_line, meta.start_pos, meta.end_pos)


def _token_pos(token: Token) -> Position:
    return Position(token.line, token.end_line, token.start_pos, token.end_pos)


def _flatten(items) -> List[Node]:
    out: List[Node] = []
    for item in items:
        if isinstance(item, list):
            out.extend(item)
        elif isinstance(item, Node):
            out.append(item)
    return out


def _body(item) -> List[Node]:
    """Statement used as a control-structure body, as a statement list."""
    if isinstance(item, list):
        return item
    if item.kind == 'Block':
        return item.stmts
    return [item]


def _class_ref(node: Node) -> Node:
    """Class position of ``new``/``::``/``instanceof``: bare names become ``Name``."""
    if node.kind == 'ConstFetch':
        return node.name
    return node


def _with_html(stmt: Node, children) -> Any:
    last = children[-1] if children else None
    if isinstance(last, Token) and last.type == 'INLINE_HTML':
        html = _html_node(last)
        return [stmt, html] if html is not None else stmt
    return stmt


def _html_node(token: Token) -> Optional[Node]:
    text = str(token)[2:]
    if text.startswith('\r\n'):
        text = text[2:]
    elif text.startswith('\n'):
        text = text[1:]
    if text.endswith('<?php'):
        text = text[:-5]
    if not text:
        return None
    return Node('InlineHTML', position=_token_pos(token), value=text)


def _parse_number(text: str) -> Node:
    raw = text.replace('_', '')
    lower = raw.lower()
    if lower.startswith('0x'):
        value = int(raw[2:], 16)
    elif lower.startswith('0b'):
        value = int(raw[2:], 2)
    elif lower.startswith('0o'):
        value = int(raw[2:], 8)
    elif any(c in lower for c in '.e'):
        return Node('Float', value=float(raw))
    elif len(raw) > 1 and raw.startswith('0'):
        value = int(raw, 8)
    else:
        value = int(raw)
    if value > 0x7FFFFFFFFFFFFFFF:
        return Node('Float', value=float(value))
    return Node('Int', value=value)


@v_args(meta=True)
class AstBuilder(Transformer):
    """Turns the lark parse tree into ``Node`` objects."""

    def _n(self, kind: str, meta, **values) -> Node:
        return Node(kind, position=_pos(meta), **values)

    def __default__(self, data, children, meta):
        op = BINARY_ALIASES.get(data)
        if op is None:
            raise ValueError(f'no builder for rule {data!r}')
        left, right = children
        return Node('BinaryOp', position=_pos(meta), op=op, left=left, right=right)

    # ── statements ──

    def start(self, meta, children):
        return _flatten(children)

    def block(self, meta, children):
        return self._n('Block', meta, stmts=_flatten(children))

    def if_stmt(self, meta, children):
        cond, body, *clauses = children
        elseifs = [c for c in clauses if c.kind == 'ElseIf']
        else_ = next((c for c in clauses if c.kind == 'Else'), None)
        return self._n('If', meta, cond=cond, stmts=_body(body), elseifs=elseifs, else_=else_)

    def elseif_clause(self, meta, children):
        return self._n('ElseIf', meta, cond=children[0], stmts=_body(children[1]))

    def else_clause(self, meta, children):
        return self._n('Else', meta, stmts=_body(children[0]))

    def while_stmt(self, meta, children):
        return self._n('While', meta, cond=children[0], stmts=_body(children[1]))

    def do_while_stmt(self, meta, children):
        return self._n('DoWhile', meta, stmts=_body(children[0]), cond=children[1])

    def for_stmt(self, meta, children):
        init, cond, loop, body = children
        return self._n('For', meta, init=init, cond=cond, loop=loop, stmts=_body(body))

    def for_exprs(self, meta, children):
        return list(children)

    def foreach_stmt(self, meta, children):
        if len(children) == 4:
            expr, (key, _), (value, by_ref), body = children
        else:
            expr, (value, by_ref), body = children
            key = None
        return self._n('Foreach', meta, expr=expr, key=key, value=value,
                       by_ref=by_ref, stmts=_body(body))

    def foreach_target(self, meta, children):
        return children[0], False

    def foreach_ref_target(self, meta, children):
        return children[0], True

    def switch_stmt(self, meta, children):
        return self._n('Switch', meta, cond=children[0], cases=list(children[1:]))

    def case_clause(self, meta, children):
        return self._n('Case', meta, cond=children[0], stmts=_flatten(children[1:]))

    def default_clause(self, meta, children):
        return self._n('Case', meta, cond=None, stmts=_flatten(children))

    def try_stmt(self, meta, children):
        block, *rest = children
        catches = [c for c in rest if c.kind == 'Catch']
        finally_ = next((c for c in rest if c.kind == 'Finally'), None)
        return self._n('Try', meta, stmts=block.stmts, catches=catches, finally_=finally_)

    def catch_clause(self, meta, children):
        types = children[0]
        var = None
        if isinstance(children[1], Token):
            var = Node('Variable', position=_token_pos(children[1]), name=str(children[1])[1:])
        return self._n('Catch', meta, types=types, var=var, stmts=children[-1].stmts)

    def catch_types(self, meta, children):
        return [Node('Name', position=_token_pos(t), value=str(t)) for t in children]

    def finally_clause(self, meta, children):
        return self._n('Finally', meta, stmts=children[0].stmts)

    def throw_stmt(self, meta, children):
        return self._n('Throw', meta, expr=children[0])

    def echo_stmt(self, meta, children):
        return _with_html(self._n('Echo', meta, exprs=children[0]), children)

    def return_stmt(self, meta, children):
        expr = children[0] if children and isinstance(children[0], Node) else None
        return _with_html(self._n('Return', meta, expr=expr), children)

    def expr_stmt(self, meta, children):
        return _with_html(self._n('Expression', meta, expr=children[0]), children)

    def break_stmt(self, meta, children):
        num = _parse_number(str(children[0])) if children else None
        return self._n('Break', meta, num=num)

    def continue_stmt(self, meta, children):
        num = _parse_number(str(children[0])) if children else None
        return self._n('Continue', meta, num=num)

    def global_stmt(self, meta, children):
        return self._n('Global', meta, vars=[
            Node('Variable', position=_token_pos(t), name=str(t)[1:]) for t in children])

    def static_stmt(self, meta, children):
        return self._n('Static', meta, vars=list(children))

    def static_var(self, meta, children):
        var = Node('Variable', position=_token_pos(children[0]), name=str(children[0])[1:])
        default = children[1] if len(children) > 1 else None
        return self._n('StaticVar', meta, var=var, default=default)

    def unset_stmt(self, meta, children):
        return self._n('Unset', meta, vars=list(children))

    def const_stmt(self, meta, children):
        return self._n('ConstStmt', meta, consts=list(children))

    def const_item(self, meta, children):
        return self._n('Const', meta, name=str(children[0]), value=children[1])

    def namespace_stmt(self, meta, children):
        return self._n('Namespace', meta, name=str(children[0]), stmts=[], braced=False)

    def namespace_block(self, meta, children):
        name = None
        if children and isinstance(children[0], Token):
            name = str(children[0])
            children = children[1:]
        return self._n('Namespace', meta, name=name, stmts=_flatten(children), braced=True)

    def use_stmt(self, meta, children):
        kind = None
        if children and isinstance(children[0], _Flag):
            kind = children[0].name
            children = children[1:]
        return self._n('Use', meta, type=kind, uses=list(children))

    def use_kind(self, meta, children):
        return _Flag(str(children[0]))

    def use_item(self, meta, children):
        alias = str(children[1]) if len(children) > 1 else None
        return self._n('UseItem', meta, name=str(children[0]), alias=alias)

    def declare_stmt(self, meta, children):
        return self._n('Declare', meta, declares=list(children))

    def declare_item(self, meta, children):
        return self._n('DeclareItem', meta, key=str(children[0]), value=children[1])

    def inline_html(self, meta, children):
        node = _html_node(children[0])
        return node if node is not None else []

    def nop(self, meta, children):
        return self._n('Nop', meta)

    # ── declarations ──

    def function_decl(self, meta, children):
        items = list(children)
        by_ref = bool(items and isinstance(items[0], _Flag) and items.pop(0))
        name = str(items.pop(0))
        params = items.pop(0)
        return_type = items.pop(0).text if isinstance(items[0], _Type) else None
        return self._n('Function', meta, name=name, by_ref=by_ref, params=params,
                       return_type=return_type, stmts=items[0].stmts)

    def params(self, meta, children):
        return list(children)

    def param(self, meta, children):
        flags: List[str] = []
        type_ = None
        by_ref = variadic = False
        default = None
        var = None
        for child in children:
            if isinstance(child, _Flag):
                if child.name == '&':
                    by_ref = True
                elif child.name == '...':
                    variadic = True
                else:
                    flags.append(child.name)
            elif isinstance(child, _Type):
                type_ = child.text
            elif isinstance(child, Token):
                var = Node('Variable', position=_token_pos(child), name=str(child)[1:])
            else:
                default = child
        return self._n('Param', meta, var=var, default=default, type=type_,
                       by_ref=by_ref, variadic=variadic, flags=flags)

    def param_modifier(self, meta, children):
        return _Flag(str(children[0]))

    def ref_flag(self, meta, children):
        return _Flag('&')

    def variadic(self, meta, children):
        return _Flag('...')

    def static_flag(self, meta, children):
        return _Flag('static')

    def return_type(self, meta, children):
        return children[0]

    def nullable_type(self, meta, children):
        return _Type('?' + children[0])

    def union_type(self, meta, children):
        return _Type('|'.join(children))

    def type_atom(self, meta, children):
        return str(children[0])

    def class_decl(self, meta, children):
        items = list(children)
        flags = []
        while items and isinstance(items[0], _Flag):
            flags.append(items.pop(0).name)
        name = str(items.pop(0))
        extends = None
        implements: List[Node] = []
        members = []
        for item in items:
            if isinstance(item, tuple) and item[0] == 'extends':
                extends = item[1]
            elif isinstance(item, tuple) and item[0] == 'implements':
                implements = item[1]
            else:
                members.append(item)
        return self._n('Class', meta, name=name, flags=flags, extends=extends,
                       implements=implements, stmts=_flatten(members))

    def class_modifier(self, meta, children):
        return _Flag(str(children[0]))

    def class_extends(self, meta, children):
        return 'extends', Node('Name', position=_token_pos(children[0]), value=str(children[0]))

    def class_implements(self, meta, children):
        return 'implements', children[0]

    def interface_extends(self, meta, children):
        return 'extends', children[0]

    def name_list(self, meta, children):
        return [Node('Name', position=_token_pos(t), value=str(t)) for t in children]

    def interface_decl(self, meta, children):
        name = str(children[0])
        extends: List[Node] = []
        members = []
        for item in children[1:]:
            if isinstance(item, tuple):
                extends = item[1]
            else:
                members.append(item)
        return self._n('Interface', meta, name=name, extends=extends, stmts=_flatten(members))

    def trait_decl(self, meta, children):
        return self._n('Trait', meta, name=str(children[0]), stmts=_flatten(children[1:]))

    def method_decl(self, meta, children):
        items = list(children)
        flags = items.pop(0)
        by_ref = bool(isinstance(items[0], _Flag) and items.pop(0))
        name = str(items.pop(0))
        params = items.pop(0)
        return_type = None
        if items and isinstance(items[0], _Type):
            return_type = items.pop(0).text
        stmts = items[0].stmts if items else None
        return self._n('ClassMethod', meta, name=name, flags=flags, by_ref=by_ref,
                       params=params, return_type=return_type, stmts=stmts)

    def property_decl(self, meta, children):
        items = list(children)
        flags = items.pop(0)
        type_ = items.pop(0).text if items and isinstance(items[0], _Type) else None
        return self._n('Property', meta, flags=flags, type=type_, props=items)

    def property_item(self, meta, children):
        default = children[1] if len(children) > 1 else None
        return self._n('PropertyItem', meta, name=str(children[0])[1:], default=default)

    def class_const_decl(self, meta, children):
        return self._n('ClassConst', meta, flags=children[0], consts=list(children[1:]))

    def trait_use(self, meta, children):
        return self._n('TraitUse', meta, traits=children[0])

    def member_modifiers(self, meta, children):
        return [c.name for c in children]

    def member_modifier(self, meta, children):
        return _Flag(str(children[0]))

    # ── expressions ──

    def expr_list(self, meta, children):
        return list(children)

    def ternary(self, meta, children):
        cond, then, otherwise = children
        return self._n('Ternary', meta, cond=cond, then=then, otherwise=otherwise)

    def short_ternary(self, meta, children):
        return self._n('Ternary', meta, cond=children[0], then=None, otherwise=children[1])

    def not_(self, meta, children):
        return self._n('UnaryOp', meta, op='!', expr=children[0])

    def neg(self, meta, children):
        return self._n('UnaryOp', meta, op='-', expr=children[0])

    def pos(self, meta, children):
        return self._n('UnaryOp', meta, op='+', expr=children[0])

    def bit_not(self, meta, children):
        return self._n('UnaryOp', meta, op='~', expr=children[0])

    def cast(self, meta, children):
        word = str(children[0]).strip('()').strip().lower()
        return self._n('Cast', meta, type=CAST_TYPES[word], expr=children[1])

    def silence(self, meta, children):
        return self._n('ErrorSuppress', meta, expr=children[0])

    def pre_inc(self, meta, children):
        return self._n('IncDec', meta, op='++', prefix=True, var=children[0])

    def pre_dec(self, meta, children):
        return self._n('IncDec', meta, op='--', prefix=True, var=children[0])

    def post_inc(self, meta, children):
        return self._n('IncDec', meta, op='++', prefix=False, var=children[0])

    def post_dec(self, meta, children):
        return self._n('IncDec', meta, op='--', prefix=False, var=children[0])

    def clone(self, meta, children):
        return self._n('Clone', meta, expr=children[0])

    def print_expr(self, meta, children):
        return self._n('Print', meta, expr=children[0])

    def include_expr(self, meta, children):
        return self._n('Include', meta, type=children[0].name, expr=children[1])

    def include_kind(self, meta, children):
        return _Flag(str(children[0]))

    def exit_kind(self, meta, children):
        return _Flag(str(children[0]))

    def assign(self, meta, children):
        return self._n('Assign', meta, var=children[0], expr=children[1])

    def assign_ref(self, meta, children):
        return self._n('AssignRef', meta, var=children[0], expr=children[1])

    def assign_op(self, meta, children):
        var, op, expr = children
        return self._n('AssignOp', meta, op=str(op)[:-1], var=var, expr=expr)

    def instanceof(self, meta, children):
        return self._n('Instanceof', meta, expr=children[0], cls=_class_ref(children[1]))

    def dim_fetch(self, meta, children):
        dim = children[1] if len(children) > 1 else None
        return self._n('ArrayDimFetch', meta, var=children[0], dim=dim)

    def prop_fetch(self, meta, children):
        return self._n('PropertyFetch', meta, var=children[0], name=children[1], nullsafe=False)

    def nullsafe_prop_fetch(self, meta, children):
        return self._n('PropertyFetch', meta, var=children[0], name=children[1], nullsafe=True)

    def method_call(self, meta, children):
        return self._n('MethodCall', meta, var=children[0], name=children[1],
                       args=children[2], nullsafe=False)

    def nullsafe_method_call(self, meta, children):
        return self._n('MethodCall', meta, var=children[0], name=children[1],
                       args=children[2], nullsafe=True)

    def static_call(self, meta, children):
        return self._n('StaticCall', meta, cls=_class_ref(children[0]),
                       name=str(children[1]), args=children[2])

    def static_prop(self, meta, children):
        return self._n('StaticPropertyFetch', meta, cls=_class_ref(children[0]),
                       name=str(children[1])[1:])

    def class_const(self, meta, children):
        return self._n('ClassConstFetch', meta, cls=_class_ref(children[0]), name=str(children[1]))

    def class_name_const(self, meta, children):
        return self._n('ClassConstFetch', meta, cls=_class_ref(children[0]), name='class')

    def call(self, meta, children):
        callee, args = children
        if callee.kind == 'ConstFetch':
            callee = callee.name
        return self._n('FuncCall', meta, name=callee, args=args)

    def member_name(self, meta, children):
        child = children[0]
        if isinstance(child, Token):
            if child.type == 'VARIABLE':
                return Node('Variable', position=_token_pos(child), name=str(child)[1:])
            return str(child)
        return child

    def arguments(self, meta, children):
        return [c if c.kind == 'Arg' else Node('Arg', position=c.position, value=c,
                                               unpack=False, by_ref=False)
                for c in children]

    def spread_arg(self, meta, children):
        return self._n('Arg', meta, value=children[0], unpack=True, by_ref=False)

    def named_arg(self, meta, children):
        return self._n('Arg', meta, value=children[1], unpack=False, by_ref=False,
                       name=str(children[0]))

    def variable(self, meta, children):
        return self._n('Variable', meta, name=str(children[0])[1:])

    def var_var(self, meta, children):
        return self._n('Variable', meta, name=children[0])

    def name(self, meta, children):
        text = str(children[0])
        if text in MAGIC_CONSTANTS:
            return self._n('MagicConst', meta, name=text)
        return self._n('ConstFetch', meta, name=self._name(text, meta))

    def _name(self, text: str, meta) -> Node:
        node = Node('Name', position=_pos(meta), value=text.lstrip('\\'))
        if text.startswith('\\'):
            node.set_attr('fully_qualified', True)
        return node

    def static_ref(self, meta, children):
        return self._n('ConstFetch', meta, name=name_node('static'))

    def number(self, meta, children):
        node = _parse_number(str(children[0]))
        node.position = _pos(meta)
        return node

    def sq_string(self, meta, children):
        return self._n('String', meta, value=unescape_single(str(children[0])[1:-1]))

    def dq_string(self, meta, children):
        return self._interpolated(str(children[0])[1:-1], meta, heredoc=False)

    def heredoc(self, meta, children):
        body, nowdoc = split_heredoc(str(children[0]))
        if nowdoc:
            return self._n('String', meta, value=body)
        return self._interpolated(body, meta, heredoc=True)

    def shell(self, meta, children):
        parts = interpolate(str(children[0])[1:-1], parse_expression, heredoc=True)
        return self._n('ShellExec', meta, parts=parts)

    def _interpolated(self, body: str, meta, heredoc: bool) -> Node:
        parts = interpolate(body, parse_expression, heredoc=heredoc)
        if all(p.kind == 'String' for p in parts):
            return self._n('String', meta, value=''.join(p.value for p in parts))
        return self._n('Interpolated', meta, parts=parts)

    def short_array(self, meta, children):
        return self._n('Array', meta, items=children[0], style='short')

    def long_array(self, meta, children):
        return self._n('Array', meta, items=children[0], style='long')

    def list_array(self, meta, children):
        return self._n('Array', meta, items=children[0], style='list')

    def array_items(self, meta, children):
        items = list(children)
        if items and items[-1] is None:
            items.pop()
        return items

    def array_entry(self, meta, children):
        return children[0] if children else None

    def item(self, meta, children):
        return self._n('ArrayItem', meta, key=None, value=children[0], by_ref=False, unpack=False)

    def keyed_item(self, meta, children):
        return self._n('ArrayItem', meta, key=children[0], value=children[1],
                       by_ref=False, unpack=False)

    def ref_item(self, meta, children):
        return self._n('ArrayItem', meta, key=None, value=children[0], by_ref=True, unpack=False)

    def keyed_ref_item(self, meta, children):
        return self._n('ArrayItem', meta, key=children[0], value=children[1],
                       by_ref=True, unpack=False)

    def spread_item(self, meta, children):
        return self._n('ArrayItem', meta, key=None, value=children[0], by_ref=False, unpack=True)

    def isset(self, meta, children):
        return self._n('Isset', meta, vars=list(children))

    def empty(self, meta, children):
        return self._n('Empty', meta, expr=children[0])

    def eval_expr(self, meta, children):
        return self._n('Eval', meta, expr=children[0])

    def exit_expr(self, meta, children):
        expr = children[1] if len(children) > 1 else None
        return self._n('Exit', meta, type=children[0].name, expr=expr)

    def new_expr(self, meta, children):
        args = children[1] if len(children) > 1 else []
        return self._n('New', meta, cls=_class_ref(children[0]), args=args)

    def closure(self, meta, children):
        items = list(children)
        static = bool(isinstance(items[0], _Flag) and items[0].name == 'static' and items.pop(0))
        by_ref = bool(isinstance(items[0], _Flag) and items.pop(0))
        params = items.pop(0)
        uses: List[Node] = []
        if isinstance(items[0], tuple):
            uses = items.pop(0)[1]
        return_type = items.pop(0).text if isinstance(items[0], _Type) else None
        return self._n('Closure', meta, static=static, by_ref=by_ref, params=params,
                       uses=uses, return_type=return_type, stmts=items[0].stmts)

    def closure_uses(self, meta, children):
        return 'uses', list(children)

    def closure_use(self, meta, children):
        token = children[-1]
        var = Node('Variable', position=_token_pos(token), name=str(token)[1:])
        return self._n('ClosureUse', meta, var=var, by_ref=len(children) > 1)

    def arrow_fn(self, meta, children):
        items = list(children)
        static = bool(isinstance(items[0], _Flag) and items[0].name == 'static' and items.pop(0))
        by_ref = bool(isinstance(items[0], _Flag) and items.pop(0))
        params = items.pop(0)
        return_type = items.pop(0).text if isinstance(items[0], _Type) else None
        return self._n('ArrowFunction', meta, static=static, by_ref=by_ref, params=params,
                       return_type=return_type, expr=items[0])

    def match_expr(self, meta, children):
        return self._n('Match', meta, cond=children[0], arms=list(children[1:]))

    def match_arm(self, meta, children):
        return self._n('MatchArm', meta, conds=list(children[:-1]), body=children[-1])

    def match_default(self, meta, children):
        return self._n('MatchArm', meta, conds=None, body=children[0])


# ═══════════════════════════════════════════════════════════════════
#  Entry points
# ═══════════════════════════════════════════════════════════════════

def parse(source: str, path: Optional[str] = None) -> Result:
    """Parse a PHP file. Returns ``Ok(List[Node])`` or ``Err(ParseError)``."""
    try:
        return Ok(parse_or_raise(source, path))
    except ParseError as exc:
        return Err(exc)


def parse_or_raise(source: str, path: Optional[str] = None) -> List[Node]:
    match = _OPEN_TAG_RE.search(source)
    if match is None:
        return [Node('InlineHTML', value=source)] if source else []

    leading = source[:match.start()]
    # keep offsets and line numbers of the original text
    masked = re.sub(r'[^\n]', ' ', source[:match.end()]) + source[match.end():]

    _SINK.tokens = []
    try:
        tree = _lark().parse(masked, start='start')
        comments = list(_SINK.tokens)
        stmts = AstBuilder().transform(tree)
    except UnexpectedInput as exc:
        message = str(exc).strip().splitlines()[0] if str(exc).strip() else 'syntax error'
        raise ParseError(message, getattr(exc, 'line', None),
                         getattr(exc, 'column', None), path) from exc
    except VisitError as exc:
        raise ParseError(str(exc.orig_exc), path=path) from exc

    _attach_comments(stmts, comments)
    if leading:
        stmts.insert(0, Node('InlineHTML', value=leading))
    logger.debug("Parsed %s: %d top-level statements, %d comments",
                 path or '<source>', len(stmts), len(comments))
    return stmts


def parse_expression(source: str) -> Node:
    """Parse a single expression (used for ``{$...}`` interpolation)."""
    tree = _lark().parse(source, start='expr')
    return AstBuilder().transform(tree)


def _attach_comments(stmts: List[Node], comments: List[Token]) -> None:
    """Attach every comment to the first statement starting after it."""
    if not comments:
        return
    targets = sorted(
        (n for n in walk(stmts) if n.is_statement() and n.position.start_pos >= 0),
        key=lambda n: n.position.start_pos,
    )
    starts = [n.position.start_pos for n in targets]
    trailing: List[str] = []
    for token in comments:
        idx = bisect.bisect_left(starts, token.end_pos)
        text = str(token).rstrip()
        if idx < len(targets):
            targets[idx].attributes.setdefault('comments', []).append(text)
        else:
            trailing.append(text)
    if trailing:
        stmts.append(Node('Nop', attributes={'comments': trailing}))
