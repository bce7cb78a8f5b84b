"""
Function Inlining
=================

  - ``function_body_collector``: records top-level functions whose whole
    body is ``return <expr>;`` and removes them once nothing refers to them;
  - ``call_function``: replaces calls of recorded functions by the return
    expression specialized for the call's arguments;
  - ``ternary_return``: ``if (c) { return a; } return b;`` → ``return c ? a : b;``.

Example::

    function double($x) { return $x * 2; }
    echo double(21);                  →   echo 21 * 2;
"""

import logging
from typing import List, Optional

from ..analysis.effects import EffectKind
from ..domain.scope_store import FunctionInfo
from ..engine.visitor import Visitor
from ..syntax.nodes import Node, walk
from .base import (
    NOT_LITERAL, call_name, is_constant_expr, literal_value, markup_params,
    plain_args, substitute,
)

logger = logging.getLogger(__name__)

# PHP type declaration → Python types a literal argument must have.
_SCALAR_TYPES = {
    'int': (int,),
    'float': (float,),
    'string': (str,),
    'bool': (bool,),
    'false': (bool,),
    'true': (bool,),
}


def arg_fits_type(type_text: Optional[str], value: Node) -> bool:
    """True when passing ``value`` to a parameter of this type involves no coercion."""
    if type_text is None or type_text.lower() == 'mixed':
        return True
    literal = literal_value(value)
    if literal is NOT_LITERAL:
        return False
    nullable = type_text.startswith('?')
    options = [t.strip().lower() for t in type_text.lstrip('?').split('|')]
    if literal is None:
        return nullable or 'null' in options
    for option in options:
        python_types = _SCALAR_TYPES.get(option)
        if python_types is None:
            continue
        if isinstance(literal, bool) != (bool in python_types):
            continue
        if isinstance(literal, python_types):
            return True
    return False


def single_return_expr(stmts: Optional[List[Node]]) -> Optional[Node]:
    if stmts is None or len(stmts) != 1:
        return None
    stmt = stmts[0]
    if stmt.kind != 'Return' or stmt.expr is None:
        return None
    return stmt.expr


class FunctionBodyCollectorVisitor(Visitor):
    """
    Collects inlinable functions into the scope store.

    A function is collected when it is declared at top level, its body is a
    single ``return`` of an expression that only reads its parameters, it
    neither returns nor takes anything by reference, takes no variadic
    parameter, declares no return type (or ``mixed``), and does not call
    itself. A collected function whose name no call and no string literal
    mentions any more is removed.
    """

    id = 'function_body_collector'
    name = 'Function body collection'
    description = 'Records single-return functions and removes unused ones'

    def before_traverse(self, nodes):
        for node in nodes:
            if node.kind == 'Function' and self.store.get_function(node.name) is None:
                if self._collectable(node):
                    expr = single_return_expr(node.stmts)
                    self.store.set_function(node.name, FunctionInfo(
                        node.name, [p.clone() for p in node.params],
                        markup_params(node.params, expr)))
                    self.context.count(self.id, 'collected')
                    logger.debug("Collected function %s()", node.name)

        referenced = _referenced_functions(nodes)
        kept = []
        for node in nodes:
            if node.kind == 'Function' and self.store.get_function(node.name) is not None \
                    and node.name.lower() not in referenced:
                self.context.count(self.id, 'removed')
                logger.debug("Removed unused function %s()", node.name)
                continue
            kept.append(node)
        return kept

    @staticmethod
    def _collectable(node: Node) -> bool:
        expr = single_return_expr(node.stmts)
        if expr is None or node.by_ref:
            return False
        if node.return_type is not None and node.return_type.lower() != 'mixed':
            return False
        params = set()
        for param in node.params:
            if param.by_ref or param.variadic or not isinstance(param.var.name, str):
                return False
            if param.default is not None and not is_constant_expr(param.default):
                return False
            params.add(param.var.name)
        own_name = node.name.lower()
        for inner in walk(expr):
            if inner.kind == 'Variable' and inner.name not in params:
                return False
            if inner.kind in ('MagicConst', 'Closure', 'ArrowFunction', 'Static', 'Global'):
                return False
            if call_name(inner) == own_name:
                return False
        return True


def _referenced_functions(nodes: List[Node]) -> set:
    names = set()
    for node in walk(nodes):
        name = call_name(node)
        if name is not None:
            names.add(name)
        elif node.kind == 'String':
            names.add(node.value.lstrip('\\').lower())
    return names


class CallFunctionVisitor(Visitor):
    """
    Replaces calls of collected functions with the function's return
    expression, parameters bound to the call's arguments (missing ones to
    their defaults).

    Only positional, pure arguments are substituted, and only when binding
    them involves no type coercion.
    """

    id = 'call_function'
    name = 'Call inlining'
    description = 'Inlines calls of collected single-return functions'

    def leave(self, node):
        if node.kind != 'FuncCall':
            return None
        name = call_name(node)
        info = self.store.get_function(name) if name is not None else None
        if info is None or not self._bindable(info, node.args):
            return None
        self.context.count(self.id, 'inlined')
        return substitute(info.expr, node.args)

    def _bindable(self, info: FunctionInfo, args: List[Node]) -> bool:
        if not plain_args(args) or len(args) > len(info.params):
            return False
        for param in info.params[len(args):]:
            if param.default is None:
                return False
        for param, arg in zip(info.params, args):
            if self.context.classifier.classify(arg.value) is not EffectKind.PURE:
                return False
            if not arg_fits_type(param.type, arg.value):
                return False
        return True


class TernaryReturnVisitor(Visitor):
    """
    Folds a two-way return into a ternary when it is the whole body of a
    function, method or closure::

        if ($n > 0) {
            return 'positive';        →   return $n > 0 ? 'positive' : 'other';
        }
        return 'other';
    """

    id = 'ternary_return'
    name = 'Ternary return'
    description = 'Turns if (c) { return a; } return b; into return c ? a : b;'

    def leave(self, node):
        if node.kind not in ('Function', 'ClassMethod', 'Closure') or not node.stmts:
            return None
        if len(node.stmts) != 2:
            return None
        branch, fallback = node.stmts
        if branch.kind != 'If' or branch.elseifs or branch.else_ is not None:
            return None
        then = single_return_expr(branch.stmts)
        if then is None or fallback.kind != 'Return' or fallback.expr is None:
            return None
        ternary = Node('Ternary', cond=branch.cond, then=then, otherwise=fallback.expr)
        stmt = Node('Return', position=branch.position, expr=ternary)
        comments = branch.comments + fallback.comments
        if comments:
            stmt.set_attr('comments', comments)
        node.stmts = [stmt]
        self.context.count(self.id, 'folded')
        return None
