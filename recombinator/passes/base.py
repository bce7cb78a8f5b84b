"""
Pass Helpers
============

Building blocks shared by the rewrite passes:

  - literal values: reading PHP values out of literal nodes and back;
  - scopes: the program's variable scopes (top level, functions, methods,
    closures) and, per scope, how each variable is used;
  - substitution: turning a captured function or method body into the
    expression for one call site.

A variable *occurrence* is one ``Variable`` node. Its kind is decided from
the node's parent chain, so the connecting pre-pass must have run.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from ..analysis.classifier import SUPERGLOBALS, is_pure_function
from ..engine.traverser import Traverser
from ..engine.visitor import Visitor
from ..sandbox.errors import SandboxError
from ..sandbox.values import to_node
from ..syntax.nodes import (
    CLASS_LIKE_KINDS, FUNCTION_LIKE_KINDS, Node, const_fetch,
    is_scalar_literal, name_of, variable, walk,
)

logger = logging.getLogger(__name__)

NOT_LITERAL = object()

_LITERAL_CONSTANTS = {'true': True, 'false': False, 'null': None}

# Calls that read or write the local symbol table by name.
SCOPE_INTROSPECTION = frozenset({
    'extract', 'compact', 'get_defined_vars', 'parse_str', 'func_get_args',
    'func_get_arg', 'eval',
})


# ═══════════════════════════════════════════════════════════════════
#  Literals
# ═══════════════════════════════════════════════════════════════════

def literal_value(node: Optional[Node]) -> Any:
    """PHP value of a scalar literal node, or ``NOT_LITERAL``."""
    if node is None:
        return NOT_LITERAL
    if node.kind in ('Int', 'Float', 'String'):
        return node.value
    if node.kind == 'ConstFetch':
        name = (name_of(node) or '').lower()
        if name in _LITERAL_CONSTANTS:
            return _LITERAL_CONSTANTS[name]
    return NOT_LITERAL


def is_numeric_literal(node: Optional[Node]) -> bool:
    return node is not None and node.kind in ('Int', 'Float')


def literal_node(value: Any) -> Optional[Node]:
    """Literal node for a PHP value; None when the value has no literal form."""
    try:
        return to_node(value)
    except SandboxError:
        return None


def bool_node(value: bool) -> Node:
    return const_fetch('true' if value else 'false')


def null_node() -> Node:
    return const_fetch('null')


def is_constant_expr(node: Optional[Node]) -> bool:
    """Built only from literals, constant fetches and operators over them."""
    if node is None:
        return False
    kind = node.kind
    if kind in ('Int', 'Float', 'String', 'ConstFetch'):
        return True
    if kind == 'Array':
        for item in node.items:
            if item is None or item.by_ref or item.unpack:
                return False
            if item.key is not None and not is_constant_expr(item.key):
                return False
            if not is_constant_expr(item.value):
                return False
        return True
    if kind == 'UnaryOp':
        return is_constant_expr(node.expr)
    if kind == 'BinaryOp':
        return is_constant_expr(node.left) and is_constant_expr(node.right)
    return False


def call_name(node: Node) -> Optional[str]:
    """Lower-cased name of a ``FuncCall`` with a static name."""
    if node.kind != 'FuncCall' or node.name is None or node.name.kind != 'Name':
        return None
    return node.name.value.lstrip('\\').lower()


def plain_args(args: List[Node]) -> bool:
    """Positional arguments only: no unpacking, no names, no references."""
    return all(a.kind == 'Arg' and not a.unpack and not a.by_ref and not a.name for a in args)


def has_kind(tree, kinds) -> bool:
    return any(n.kind in kinds for n in walk(tree))


# ═══════════════════════════════════════════════════════════════════
#  Scopes
# ═══════════════════════════════════════════════════════════════════

@dataclass
class Scope:
    """One variable scope: its statement list and the parameters bound on entry."""
    name: str
    body: List[Node]
    params: List[Node] = field(default_factory=list)
    owner: Optional[Node] = None


def iter_scopes(nodes: List[Node]) -> Iterator[Scope]:
    """Every scope of the program, the top level first."""
    yield Scope('', nodes)
    yield from _nested_scopes(nodes)


def _nested_scopes(nodes) -> Iterator[Scope]:
    for node in walk(nodes):
        if node.kind == 'Function':
            yield Scope(node.name, node.stmts, node.params, node)
        elif node.kind == 'ClassMethod' and node.stmts is not None:
            owner = _enclosing_class(node)
            yield Scope(f'{owner}::{node.name}', node.stmts, node.params, node)
        elif node.kind == 'Closure':
            yield Scope(f'{{closure}}@{node.position.start_pos}', node.stmts,
                        node.params + [u.var for u in node.uses], node)


def _enclosing_class(method: Node) -> str:
    for ancestor in method.ancestors():
        if ancestor.kind in CLASS_LIKE_KINDS:
            return ancestor.name or 'class@anonymous'
    return ''


def scope_nodes(body: List[Node]) -> Iterator[Tuple[Node, bool]]:
    """Nodes belonging to a scope, in document order, with a *captured* flag.

    Nested functions and classes are yielded but not entered. Variables a
    nested closure imports with ``use``, and every variable an arrow
    function mentions, are yielded with ``captured=True``.
    """
    stack: List[Tuple[Node, bool]] = [(n, False) for n in reversed(body) if n is not None]
    while stack:
        node, captured = stack.pop()
        yield node, captured
        if captured:
            stack.extend((c, True) for c in reversed(list(node.child_nodes())))
        elif node.kind == 'Closure':
            stack.extend((u, True) for u in reversed(node.uses))
        elif node.kind == 'ArrowFunction':
            stack.extend((c, True) for c in reversed(list(node.child_nodes())))
        elif node.kind in FUNCTION_LIKE_KINDS or node.kind in CLASS_LIKE_KINDS:
            continue
        else:
            stack.extend((c, False) for c in reversed(list(node.child_nodes())))


# ═══════════════════════════════════════════════════════════════════
#  Variable occurrences
# ═══════════════════════════════════════════════════════════════════

READ = 'read'
WRITE = 'write'
BASE = 'base'          # object or array a fetch/call is applied to
PIN = 'pin'            # bound by reference, import, parameter ...


def _destructured(item: Node) -> bool:
    node = item.parent
    while node is not None and node.kind in ('Array', 'ArrayItem'):
        parent = node.parent
        if parent is None:
            return False
        if parent.kind in ('Assign', 'AssignRef') and parent.var is node:
            return True
        if parent.kind == 'Foreach' and parent.value is node:
            return True
        node = parent
    return False


def _fetch_target_kind(fetch: Node) -> str:
    """Kind of the position the outermost fetch of a chain sits in."""
    top = fetch
    while top.parent is not None and top.parent.kind in ('ArrayDimFetch', 'PropertyFetch') \
            and top.parent.var is top:
        top = top.parent
    parent = top.parent
    if parent is None:
        return BASE
    if parent.kind in ('Assign', 'AssignOp', 'IncDec') and parent.var is top:
        return WRITE
    if parent.kind == 'AssignRef':
        return PIN
    if parent.kind == 'Unset':
        return WRITE
    if parent.kind == 'Foreach' and (parent.value is top or parent.key is top):
        return PIN if parent.by_ref else WRITE
    if parent.kind == 'ArrayItem' and parent.value is top and (parent.by_ref or _destructured(parent)):
        return PIN if parent.by_ref else WRITE
    if parent.kind == 'Arg':
        return PIN
    return BASE


def occurrence_kind(var: Node, by_value_call=None) -> str:
    """How a ``Variable`` node uses its variable: read, write, base or pin."""
    parent = var.parent
    if parent is None:
        return READ
    kind = parent.kind
    if kind in ('Assign', 'AssignOp', 'IncDec') and parent.var is var:
        return WRITE
    if kind in ('AssignRef', 'Isset', 'Unset', 'Global', 'ClosureUse', 'Param'):
        return PIN
    if kind == 'StaticVar' and parent.var is var:
        return PIN
    if kind == 'Catch':
        return WRITE
    if kind == 'Foreach' and (parent.value is var or parent.key is var):
        return PIN if parent.by_ref and parent.value is var else WRITE
    if kind == 'ArrayItem' and parent.value is var:
        if parent.by_ref:
            return PIN
        if _destructured(parent):
            return WRITE
        return READ
    if kind in ('ArrayDimFetch', 'PropertyFetch') and parent.var is var:
        return _fetch_target_kind(parent)
    if kind == 'MethodCall' and parent.var is var:
        return BASE
    if kind in ('StaticCall', 'StaticPropertyFetch', 'ClassConstFetch', 'New', 'Instanceof') \
            and parent.cls is var:
        return BASE
    if kind == 'Arg' and parent.value is var:
        if parent.by_ref or parent.unpack:
            return PIN
        call = parent.parent
        if by_value_call is None or call is None or not by_value_call(call, parent):
            return PIN
    return READ


@dataclass
class VariableUse:
    """Every occurrence of one variable inside one scope."""
    name: str
    writes: int = 0
    reads: List[Node] = field(default_factory=list)
    occurrences: List[Node] = field(default_factory=list)
    assignments: List[Tuple[Node, Node]] = field(default_factory=list)
    pinned: bool = False
    base_reads: int = 0

    @property
    def single_assignment(self) -> Optional[Tuple[Node, Node]]:
        """The one straight-line ``$name = expr;`` statement, if that is the only write."""
        if self.writes == 1 and len(self.assignments) == 1:
            return self.assignments[0]
        return None


class ScopeUsage:
    """
    Variable usage of one scope.

    ``opaque`` is set when the scope can reach its variables by name
    (``$$name``, ``extract()``, ``compact()``, ``eval``, ``include`` ...); no
    variable of an opaque scope may be rewritten.

    Args:
        scope: the scope to analyze
        functions: user functions declared in the program, by lower-cased name,
            to tell by-value from by-reference arguments
        global_names: variables some function imports with ``global``
    """

    def __init__(self, scope: Scope, functions: Optional[Dict[str, Node]] = None,
                 global_names: Optional[Set[str]] = None):
        self.scope = scope
        self.functions = functions or {}
        self.variables: Dict[str, VariableUse] = {}
        self.order: Dict[int, int] = {}
        self.opaque = False
        self._analyze(global_names or set())

    def use(self, name: str) -> VariableUse:
        if name not in self.variables:
            self.variables[name] = VariableUse(name)
        return self.variables[name]

    def _analyze(self, global_names: Set[str]) -> None:
        top_level = {id(s) for s in self.scope.body}
        for param in self.scope.params:
            if param is not None:
                name = param.var.name if param.kind == 'Param' else param.name
                if isinstance(name, str):
                    self.use(name).pinned = True
        if self.scope.name == '':
            for name in global_names:
                self.use(name).pinned = True

        for index, (node, captured) in enumerate(scope_nodes(self.scope.body)):
            self.order[id(node)] = index
            kind = node.kind
            if kind in ('Eval', 'Include'):
                self.opaque = True
            elif kind == 'FuncCall' and call_name(node) in SCOPE_INTROSPECTION:
                self.opaque = True
            elif kind == 'Expression' and id(node) in top_level:
                self._straight_line_assignment(node)
            if kind != 'Variable':
                continue
            if not isinstance(node.name, str):
                self.opaque = True
                continue
            if node.name == 'GLOBALS' and self.scope.name == '':
                self.opaque = True
            use = self.use(node.name)
            use.occurrences.append(node)
            if captured or node.name == 'this' or node.name in SUPERGLOBALS:
                use.pinned = True
                continue
            how = occurrence_kind(node, self._by_value_call)
            if how == WRITE:
                use.writes += 1
            elif how == PIN:
                use.pinned = True
            else:
                use.reads.append(node)
                if how == BASE:
                    use.base_reads += 1

    def _straight_line_assignment(self, stmt: Node) -> None:
        expr = stmt.expr
        if expr is not None and expr.kind == 'Assign' and expr.var.kind == 'Variable' \
                and isinstance(expr.var.name, str):
            self.use(expr.var.name).assignments.append((stmt, expr))

    def _by_value_call(self, call: Node, arg: Node) -> bool:
        name = call_name(call)
        if name is None:
            return False
        if is_pure_function(name):
            return True
        function = self.functions.get(name)
        if function is None:
            return False
        index = call.args.index(arg)
        params = function.params
        if index < len(params):
            return not params[index].by_ref
        return bool(params) and params[-1].variadic and not params[-1].by_ref

    def position(self, node: Node) -> int:
        return self.order.get(id(node), -1)

    def reads_after(self, use: VariableUse, stmt: Node) -> List[Node]:
        start = self.position(stmt)
        return [r for r in use.reads if self.position(r) > start]

    def inside(self, node: Node, container: Node) -> bool:
        return any(a is container for a in node.ancestors())

    def names(self) -> Set[str]:
        return set(self.variables)


def declared_functions(nodes: List[Node]) -> Dict[str, Node]:
    return {n.name.lower(): n for n in walk(nodes) if n.kind == 'Function'}


def global_imports(nodes: List[Node]) -> Set[str]:
    """Variables any function imports with ``global``."""
    names = set()
    for node in walk(nodes):
        if node.kind == 'Global':
            for var in node.vars:
                if var.kind == 'Variable' and isinstance(var.name, str):
                    names.add(var.name)
    return names


def program_usages(nodes: List[Node]) -> Iterator[ScopeUsage]:
    """Usage of every scope. ``$GLOBALS`` anywhere makes the top level opaque."""
    functions = declared_functions(nodes)
    imported = global_imports(nodes)
    globals_used = any(n.kind == 'Variable' and n.name == 'GLOBALS' for n in walk(nodes))
    for scope in iter_scopes(nodes):
        usage = ScopeUsage(scope, functions, imported)
        if scope.name == '' and globals_used:
            usage.opaque = True
        yield usage


def write_positions(usage: ScopeUsage, use: VariableUse) -> List[int]:
    return [usage.position(o) for o in use.occurrences
            if occurrence_kind(o, usage._by_value_call) == WRITE]


def free_variables(expr: Node) -> Set[str]:
    return {n.name for n in walk(expr) if n.kind == 'Variable' and isinstance(n.name, str)}


# ═══════════════════════════════════════════════════════════════════
#  Call-site substitution
# ═══════════════════════════════════════════════════════════════════

def markup_params(params: List[Node], expr: Node) -> Node:
    """Clone of ``expr`` whose parameter variables carry ``arg_index``/``arg_default``."""
    index = {}
    for i, param in enumerate(params):
        if param.var is not None and isinstance(param.var.name, str):
            index[param.var.name] = (i, param.default)
    body = expr.clone()
    for node in walk(body):
        if node.kind == 'Variable' and node.name in index:
            i, default = index[node.name]
            node.set_attr('arg_index', i)
            node.set_attr('arg_default', default.clone() if default is not None else None)
    return body


class ParametersToArgs(Visitor):
    """Replaces marked-up parameter variables by the call's arguments.

    Falls back to the parameter default, then to ``null``.
    """

    def __init__(self, args: List[Node], this_properties: Optional[Dict[str, str]] = None):
        super().__init__()
        self.args = args
        self.this_properties = this_properties or {}

    def enter(self, node):
        if node.kind == 'Variable' and node.has_attr('arg_index'):
            i = node.get_attr('arg_index')
            if i < len(self.args):
                return self.args[i].value.clone()
            default = node.get_attr('arg_default')
            return default.clone() if default is not None else null_node()
        if node.kind == 'PropertyFetch' and is_this(node.var) and node.name in self.this_properties:
            return variable(self.this_properties[node.name])
        return None


def substitute(body: Node, args: List[Node],
               this_properties: Optional[Dict[str, str]] = None) -> Node:
    """Copy of a marked-up body specialized for one call."""
    result = Traverser(ParametersToArgs(args, this_properties)).traverse([body.clone()])
    return result[0]


def is_this(node: Optional[Node]) -> bool:
    return node is not None and node.kind == 'Variable' and node.name == 'this'


def is_scalar_assignment(expr: Node) -> bool:
    return expr.kind == 'Assign' and is_scalar_literal(expr.expr)
