"""
Syntax Tree Model
=================

A PHP program is a list of ``Node`` objects. Like the stdlib ``ast`` module,
a node is a tagged record: ``node.kind`` names the syntactic category and
``SCHEMA[kind]`` lists its fields in source order. Field values are either
child nodes, lists of child nodes, or plain Python values (operator strings,
identifiers, modifier flags).

Besides structural fields, every node carries

  - ``position``: start/end line and start/end character offset in the
    source it was parsed from (``NO_POSITION`` for synthesized nodes);
  - ``attributes``: an open map of pass-scoped annotations
    (``remove``, ``replace``, ``side_effect``, ``comments``, ``arg_index``,
    ``arg_default`` ...).

Parent and sibling links are *derived* attributes written by the connecting
pre-pass (:mod:`recombinator.engine.connecting`). They are stored as weak
references so the tree never owns a reference cycle; ``clone()`` drops them.
"""

from collections import namedtuple
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union
import weakref


Position = namedtuple('Position', ['start_line', 'end_line', 'start_pos', 'end_pos'])
NO_POSITION = Position(-1, -1, -1, -1)


# ═══════════════════════════════════════════════════════════════════
#  Node kinds
# ═══════════════════════════════════════════════════════════════════
# Field names ending in '*' hold lists of nodes.

_RAW_SCHEMA = {
    # ── expressions ──
    'Variable': ('name',),
    'String': ('value',),
    'Int': ('value',),
    'Float': ('value',),
    'Interpolated': ('parts*',),
    'ShellExec': ('parts*',),
    'Array': ('items*', 'style'),
    'ArrayItem': ('key', 'value', 'by_ref', 'unpack'),
    'BinaryOp': ('op', 'left', 'right'),
    'UnaryOp': ('op', 'expr'),
    'Cast': ('type', 'expr'),
    'Assign': ('var', 'expr'),
    'AssignRef': ('var', 'expr'),
    'AssignOp': ('op', 'var', 'expr'),
    'IncDec': ('op', 'prefix', 'var'),
    'Ternary': ('cond', 'then', 'otherwise'),
    'Isset': ('vars*',),
    'Empty': ('expr',),
    'Name': ('value',),
    'ConstFetch': ('name',),
    'MagicConst': ('name',),
    'FuncCall': ('name', 'args*'),
    'Arg': ('value', 'unpack', 'by_ref', 'name'),
    'MethodCall': ('var', 'name', 'args*', 'nullsafe'),
    'StaticCall': ('cls', 'name', 'args*'),
    'PropertyFetch': ('var', 'name', 'nullsafe'),
    'StaticPropertyFetch': ('cls', 'name'),
    'ClassConstFetch': ('cls', 'name'),
    'ArrayDimFetch': ('var', 'dim'),
    'New': ('cls', 'args*'),
    'Instanceof': ('expr', 'cls'),
    'Closure': ('static', 'by_ref', 'params*', 'uses*', 'return_type', 'stmts*'),
    'ClosureUse': ('var', 'by_ref'),
    'ArrowFunction': ('static', 'by_ref', 'params*', 'return_type', 'expr'),
    'Include': ('type', 'expr'),
    'Eval': ('expr',),
    'Exit': ('type', 'expr'),
    'Print': ('expr',),
    'Match': ('cond', 'arms*'),
    'MatchArm': ('conds*', 'body'),
    'ErrorSuppress': ('expr',),
    'Clone': ('expr',),
    # ── statements ──
    'Expression': ('expr',),
    'Echo': ('exprs*',),
    'Return': ('expr',),
    'If': ('cond', 'stmts*', 'elseifs*', 'else_'),
    'ElseIf': ('cond', 'stmts*'),
    'Else': ('stmts*',),
    'While': ('cond', 'stmts*'),
    'DoWhile': ('stmts*', 'cond'),
    'For': ('init*', 'cond*', 'loop*', 'stmts*'),
    'Foreach': ('expr', 'key', 'value', 'by_ref', 'stmts*'),
    'Switch': ('cond', 'cases*'),
    'Case': ('cond', 'stmts*'),
    'Break': ('num',),
    'Continue': ('num',),
    'Try': ('stmts*', 'catches*', 'finally_'),
    'Catch': ('types*', 'var', 'stmts*'),
    'Finally': ('stmts*',),
    'Throw': ('expr',),
    'Function': ('name', 'by_ref', 'params*', 'return_type', 'stmts*'),
    'Param': ('var', 'default', 'type', 'by_ref', 'variadic', 'flags'),
    'Class': ('name', 'flags', 'extends', 'implements*', 'stmts*'),
    'Interface': ('name', 'extends*', 'stmts*'),
    'Trait': ('name', 'stmts*'),
    'ClassMethod': ('name', 'flags', 'by_ref', 'params*', 'return_type', 'stmts'),
    'Property': ('flags', 'type', 'props*'),
    'PropertyItem': ('name', 'default'),
    'ClassConst': ('flags', 'consts*'),
    'Const': ('name', 'value'),
    'ConstStmt': ('consts*',),
    'TraitUse': ('traits*',),
    'Global': ('vars*',),
    'Static': ('vars*',),
    'StaticVar': ('var', 'default'),
    'Unset': ('vars*',),
    'InlineHTML': ('value',),
    'Nop': (),
    'Block': ('stmts*',),
    'Namespace': ('name', 'stmts*', 'braced'),
    'Use': ('type', 'uses*'),
    'UseItem': ('name', 'alias'),
    'Declare': ('declares*',),
    'DeclareItem': ('key', 'value'),
}

SCHEMA: Dict[str, Tuple[str, ...]] = {
    kind: tuple(f.rstrip('*') for f in spec) for kind, spec in _RAW_SCHEMA.items()
}
LIST_FIELDS: Dict[str, frozenset] = {
    kind: frozenset(f[:-1] for f in spec if f.endswith('*'))
    for kind, spec in _RAW_SCHEMA.items()
}

STATEMENT_KINDS = frozenset({
    'Expression', 'Echo', 'Return', 'If', 'While', 'DoWhile', 'For', 'Foreach',
    'Switch', 'Break', 'Continue', 'Try', 'Throw', 'Function', 'Class',
    'Interface', 'Trait', 'ConstStmt', 'Global', 'Static', 'Unset',
    'InlineHTML', 'Nop', 'Block', 'Namespace', 'Use', 'Declare',
    'ClassMethod', 'Property', 'ClassConst', 'TraitUse',
})

SCALAR_KINDS = frozenset({'String', 'Int', 'Float'})

LOOP_KINDS = frozenset({'While', 'DoWhile', 'For', 'Foreach'})

FUNCTION_LIKE_KINDS = frozenset({'Function', 'ClassMethod', 'Closure', 'ArrowFunction'})

CLASS_LIKE_KINDS = frozenset({'Class', 'Interface', 'Trait'})

# Attributes that describe tree shape rather than facts about a node.
_LINK_ATTRIBUTES = ('parent', 'next', 'previous')


class Node:
    """One syntax tree element (statement or expression)."""

    def __init__(self, kind: str, position: Optional[Position] = None,
                 attributes: Optional[Dict[str, Any]] = None, **values):
        if kind not in SCHEMA:
            raise ValueError(f'unknown node kind {kind!r}')
        unknown = set(values) - set(SCHEMA[kind])
        if unknown:
            raise ValueError(f'{kind} has no field(s) {", ".join(sorted(unknown))}')
        self.kind = kind
        self.position = position or NO_POSITION
        self.attributes = attributes if attributes is not None else {}
        list_fields = LIST_FIELDS[kind]
        for name in SCHEMA[kind]:
            if name in values:
                value = values[name]
            else:
                value = [] if name in list_fields else None
            object.__setattr__(self, name, value)

    # ── structure ───────────────────────────────────────────────────

    @property
    def field_names(self) -> Tuple[str, ...]:
        return SCHEMA[self.kind]

    def iter_fields(self) -> Iterator[Tuple[str, Any]]:
        for name in SCHEMA[self.kind]:
            yield name, getattr(self, name)

    def child_nodes(self) -> Iterator['Node']:
        """Direct children in source order (like ``ast.iter_child_nodes``)."""
        for _, value in self.iter_fields():
            if isinstance(value, Node):
                yield value
            elif isinstance(value, list):
                for item in value:
                    if isinstance(item, Node):
                        yield item

    def is_statement(self) -> bool:
        return self.kind in STATEMENT_KINDS

    def is_scalar(self) -> bool:
        return self.kind in SCALAR_KINDS

    # ── attributes ──────────────────────────────────────────────────

    def get_attr(self, name: str, default: Any = None) -> Any:
        return self.attributes.get(name, default)

    def set_attr(self, name: str, value: Any) -> None:
        self.attributes[name] = value

    def has_attr(self, name: str) -> bool:
        return name in self.attributes

    def del_attr(self, name: str) -> None:
        self.attributes.pop(name, None)

    @property
    def comments(self) -> List[str]:
        return self.attributes.get('comments', [])

    @property
    def parent(self) -> Optional['Node']:
        return _deref(self.attributes.get('parent'))

    @property
    def next_sibling(self) -> Optional['Node']:
        return _deref(self.attributes.get('next'))

    @property
    def previous_sibling(self) -> Optional['Node']:
        return _deref(self.attributes.get('previous'))

    def link(self, name: str, target: Optional['Node']) -> None:
        if target is None:
            self.attributes.pop(name, None)
        else:
            self.attributes[name] = weakref.ref(target)

    def ancestors(self) -> Iterator['Node']:
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    # ── copying ─────────────────────────────────────────────────────

    def clone(self) -> 'Node':
        """Deep copy of the subtree. Link attributes are not copied."""
        attributes = {k: v for k, v in self.attributes.items()
                      if k not in _LINK_ATTRIBUTES and k != 'replace' and k != 'remove'}
        if 'comments' in attributes:
            attributes['comments'] = list(attributes['comments'])
        values = {}
        for name, value in self.iter_fields():
            if isinstance(value, Node):
                value = value.clone()
            elif isinstance(value, list):
                value = [v.clone() if isinstance(v, Node) else v for v in value]
            values[name] = value
        return Node(self.kind, position=self.position, attributes=attributes, **values)

    @property
    def node_id(self) -> str:
        return f'{self.kind}_{self.position.start_pos}_{self.position.end_pos}'

    def __repr__(self) -> str:
        parts = []
        for name, value in self.iter_fields():
            if isinstance(value, Node):
                parts.append(f'{name}={value.kind}(...)')
            elif isinstance(value, list):
                parts.append(f'{name}=[{len(value)}]')
            elif value is not None:
                parts.append(f'{name}={value!r}')
        return f'{self.kind}({", ".join(parts)})'


def _deref(ref) -> Optional[Node]:
    if ref is None:
        return None
    return ref()


# ═══════════════════════════════════════════════════════════════════
#  Tree helpers
# ═══════════════════════════════════════════════════════════════════

NodeOrList = Union[Node, List[Node]]


def walk(tree: Union[Node, Iterable[Optional[Node]]]) -> Iterator[Node]:
    """Yield every node of ``tree`` in document (pre-)order."""
    stack: List[Node] = []
    if isinstance(tree, Node):
        stack.append(tree)
    else:
        stack.extend(n for n in reversed(list(tree)) if n is not None)
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(list(node.child_nodes())))


def walk_scope(tree: Union[Node, Iterable[Node]]) -> Iterator[Node]:
    """Like ``walk`` but does not descend into nested functions or classes.

    The roots themselves are always yielded and, if they are function-like,
    entered.
    """
    roots = [tree] if isinstance(tree, Node) else [n for n in tree if n is not None]
    stack = list(reversed(roots))
    root_ids = {id(n) for n in roots}
    while stack:
        node = stack.pop()
        yield node
        if id(node) not in root_ids and (
                node.kind in FUNCTION_LIKE_KINDS or node.kind in CLASS_LIKE_KINDS):
            continue
        stack.extend(reversed(list(node.child_nodes())))


class NodeVisitor:
    """Read-only walker in the manner of ``ast.NodeVisitor``.

    ``visit`` dispatches to ``visit_<Kind>`` if defined, else to
    ``generic_visit``, which visits every child.
    """

    def visit(self, node: Union[Node, Iterable[Node]]) -> Any:
        if not isinstance(node, Node):
            for item in node:
                if isinstance(item, Node):
                    self.visit(item)
            return None
        method = getattr(self, 'visit_' + node.kind, self.generic_visit)
        return method(node)

    def generic_visit(self, node: Node) -> None:
        for child in node.child_nodes():
            self.visit(child)


def equal(a: Any, b: Any) -> bool:
    """Structural equality ignoring positions and attributes."""
    if isinstance(a, Node) and isinstance(b, Node):
        if a.kind != b.kind:
            return False
        return all(equal(getattr(a, f), getattr(b, f)) for f in a.field_names)
    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and all(equal(x, y) for x, y in zip(a, b))
    if isinstance(a, Node) or isinstance(b, Node):
        return False
    if type(a) is not type(b) and not (a is None or b is None):
        return False
    return a == b


def dump(tree: NodeOrList, indent: int = 0) -> str:
    """Readable multi-line rendering of a tree, for debugging and tests."""
    pad = '  ' * indent
    if isinstance(tree, list):
        return '\n'.join(dump(n, indent) for n in tree if n is not None)
    lines = [f'{pad}{tree.kind}']
    for name, value in tree.iter_fields():
        if isinstance(value, Node):
            lines.append(f'{pad}  {name}:')
            lines.append(dump(value, indent + 2))
        elif isinstance(value, list) and any(isinstance(v, Node) for v in value):
            lines.append(f'{pad}  {name}:')
            lines.append(dump([v for v in value if isinstance(v, Node)], indent + 2))
        elif value not in (None, [], False):
            lines.append(f'{pad}  {name}: {value!r}')
    return '\n'.join(lines)


def clone_list(nodes: Iterable[Node]) -> List[Node]:
    return [n.clone() for n in nodes]


# ── small constructors used across passes ──

def name_node(value: str) -> Node:
    return Node('Name', value=value)


def const_fetch(value: str) -> Node:
    return Node('ConstFetch', name=name_node(value))


def variable(name: str) -> Node:
    return Node('Variable', name=name)


def expression_stmt(expr: Node) -> Node:
    return Node('Expression', expr=expr)


def name_of(node: Optional[Node]) -> Optional[str]:
    """Static identifier of a ``Name``/``Variable``/``ConstFetch`` node, else None."""
    if node is None:
        return None
    if isinstance(node, str):
        return node
    if node.kind == 'Name':
        return node.value
    if node.kind == 'Variable' and isinstance(node.name, str):
        return node.name
    if node.kind == 'ConstFetch':
        return name_of(node.name)
    return None


def is_true_false_null(node: Optional[Node]) -> bool:
    return (node is not None and node.kind == 'ConstFetch'
            and (name_of(node) or '').lower() in ('true', 'false', 'null'))


def is_scalar_literal(node: Optional[Node]) -> bool:
    """String/int/float literal or one of ``true``, ``false``, ``null``."""
    return node is not None and (node.kind in SCALAR_KINDS or is_true_false_null(node))


def is_literal(node: Optional[Node]) -> bool:
    """Scalar literal, or an array literal built only from literals."""
    if is_scalar_literal(node):
        return True
    if node is None or node.kind != 'Array':
        return False
    for item in node.items:
        if item is None or item.by_ref or item.unpack:
            return False
        if item.key is not None and not is_scalar_literal(item.key):
            return False
        if not is_literal(item.value):
            return False
    return True
