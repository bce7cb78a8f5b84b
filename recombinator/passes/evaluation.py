"""
Compile-time Evaluation
=======================

  - ``eval_standard_function``: type predicates on literal arguments;
  - ``pre_execution``: whitelisted pure builtins with constant arguments,
    evaluated in the sandbox.

Example::

    $ok = is_string('abc');           →   $ok = true;
    $n  = strlen(str_repeat('ab', 3)); →   $n  = 6;
"""

import logging
from typing import Optional

from ..engine.visitor import Visitor
from ..sandbox.functions import is_allowed
from ..sandbox.sandbox import Sandbox
from ..sandbox.values import is_numeric_string
from ..syntax.nodes import Node, is_literal, is_true_false_null, name_of
from .base import bool_node, call_name, is_constant_expr, literal_node, plain_args

logger = logging.getLogger(__name__)


def _type_of(node: Node) -> Optional[str]:
    """PHP type name of a literal node."""
    if node.kind == 'Int':
        return 'int'
    if node.kind == 'Float':
        return 'float'
    if node.kind == 'String':
        return 'string'
    if node.kind == 'Array':
        return 'array'
    if is_true_false_null(node):
        return 'null' if name_of(node).lower() == 'null' else 'bool'
    return None


TYPE_PREDICATES = {
    'is_array': lambda t, node: t == 'array',
    'is_string': lambda t, node: t == 'string',
    'is_int': lambda t, node: t == 'int',
    'is_integer': lambda t, node: t == 'int',
    'is_long': lambda t, node: t == 'int',
    'is_float': lambda t, node: t == 'float',
    'is_double': lambda t, node: t == 'float',
    'is_bool': lambda t, node: t == 'bool',
    'is_null': lambda t, node: t == 'null',
    'is_numeric': lambda t, node: t in ('int', 'float') or (t == 'string' and is_numeric_string(node.value)),
    'is_scalar': lambda t, node: t in ('int', 'float', 'string', 'bool'),
}


class EvalStandardFunctionVisitor(Visitor):
    """
    Replaces ``is_*`` type predicates whose single argument is a literal by
    ``true``/``false``.
    """

    id = 'eval_standard_function'
    name = 'Standard function evaluation'
    description = 'Evaluates type predicates on literal arguments'

    def leave(self, node):
        if node.kind != 'FuncCall':
            return None
        predicate = TYPE_PREDICATES.get(call_name(node) or '')
        if predicate is None or len(node.args) != 1 or not plain_args(node.args):
            return None
        value = node.args[0].value
        if not is_literal(value):
            return None
        self.context.count(self.id, 'evaluated')
        return bool_node(predicate(_type_of(value), value))


class PreExecutionVisitor(Visitor):
    """
    Runs whitelisted pure builtins whose arguments are constant expressions
    in the sandbox, and substitutes the result literal.

    Constants recorded by earlier passes (``define``/``const``) are visible
    to the evaluation. Calls the sandbox rejects or that fail are left as
    they are; ``executed`` and ``failed`` counters are kept.
    """

    id = 'pre_execution'
    name = 'Pre-execution'
    description = 'Evaluates pure builtin calls with constant arguments in the sandbox'

    def before_traverse(self, nodes):
        self.constants = Sandbox.context_from_nodes(self.store.global_consts)
        return None

    def leave(self, node):
        if node.kind != 'FuncCall':
            return None
        name = call_name(node)
        if name is None or not is_allowed(name) or not plain_args(node.args):
            return None
        if not all(is_constant_expr(a.value) for a in node.args):
            return None

        result = self.context.sandbox.execute(node, self.constants)
        if result is None:
            return None
        if result.is_err():
            self.context.count(self.id, 'failed')
            return None
        replacement = literal_node(result.unwrap())
        if replacement is None:
            self.context.count(self.id, 'failed')
            return None
        self.context.count(self.id, 'executed')
        return replacement
