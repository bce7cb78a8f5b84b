"""
Expression Folding
==================

Three syntax-level folding passes:

  - ``binary_and_isset``: arithmetic and concatenation of literals, and the
    ``if (isset($v)) { $x = $v; }`` → ``$x = $v ?? $x ?? null;`` rewrite;
    literal parts of interpolated strings are merged into the text;
  - ``coalesce_null_remove``: ``X ?? null`` → ``X``;
  - ``const_fold``: comparisons, logical operators and ternaries over literals.

Values are computed with the sandbox's PHP value semantics, so
``10 / 4`` is ``2.5``, ``10 / 5`` is ``2`` and integer overflow gives a float.
Operations PHP would reject (division by zero, ``%`` by zero ...) are left
unfolded.
"""

import logging

from ..engine.visitor import Visitor
from ..sandbox.errors import SandboxError
from ..sandbox.evaluator import binary
from ..sandbox.values import negate, to_bool, to_string
from ..syntax.nodes import Node, equal, expression_stmt, name_of
from ..syntax.printer import is_variable_like
from .base import (
    NOT_LITERAL, bool_node, is_numeric_literal, literal_node, literal_value, null_node,
)

logger = logging.getLogger(__name__)

ARITHMETIC_OPERATORS = frozenset({'+', '-', '*', '/', '%', '**'})
COMPARISON_OPERATORS = frozenset({'===', '!==', '==', '!=', '<>', '<', '<=', '>', '>=', '<=>'})
LOGICAL_OPERATORS = frozenset({'&&', '||', 'and', 'or', 'xor'})


def _fold(op: str, left, right):
    """Literal node for ``left op right``, or None if it cannot be folded."""
    try:
        return literal_node(binary(op, left, right))
    except SandboxError as exc:
        logger.debug("Not folding %r %s %r: %s", left, op, right, exc.message)
        return None


class BinaryAndIssetVisitor(Visitor):
    """
    Folds arithmetic and concatenation over literals, bottom-up, so
    ``2 + 3 * 4`` becomes ``14`` in one traversal.

    ``true`` and ``false`` operands of arithmetic are typed to ``1``/``0``,
    of concatenation to ``'1'``/``''``::

        $n = true + 1;        →   $n = 2;
        echo false . 'x';     →   echo 'x';

    It also turns a guarded copy into a coalesce::

        if (isset($v)) {
            $x = $v;          →   $x = $v ?? $x ?? null;
        }
    """

    id = 'binary_and_isset'
    name = 'Arithmetic and isset folding'
    description = 'Folds literal arithmetic and concatenation; if (isset($v)) { $x = $v; } becomes $x = $v ?? $x ?? null'

    def enter(self, node):
        if node.kind == 'If':
            return self._isset_to_coalesce(node)
        return None

    def leave(self, node):
        if node.kind == 'BinaryOp':
            return self._binary(node)
        if node.kind == 'Interpolated':
            return self._interpolated(node)
        if node.kind == 'UnaryOp' and node.op in ('-', '+') and is_numeric_literal(node.expr):
            value = node.expr.value if node.op == '+' else negate(node.expr.value)
            self.context.count(self.id, 'folded')
            return literal_node(value)
        return None

    def _isset_to_coalesce(self, node: Node):
        if node.elseifs or node.else_ is not None or len(node.stmts) != 1:
            return None
        cond = node.cond
        if cond.kind != 'Isset' or len(cond.vars) != 1:
            return None
        stmt = node.stmts[0]
        if stmt.kind != 'Expression' or stmt.expr.kind != 'Assign':
            return None
        assign = stmt.expr
        if not equal(assign.expr, cond.vars[0]):
            return None
        fallback = Node('BinaryOp', op='??', left=assign.var.clone(), right=null_node())
        value = Node('BinaryOp', op='??', left=assign.expr.clone(), right=fallback)
        replacement = expression_stmt(Node('Assign', var=assign.var.clone(), expr=value))
        if node.comments:
            replacement.set_attr('comments', list(node.comments))
        self.context.count(self.id, 'isset')
        return replacement

    def _interpolated(self, node: Node):
        """
        Merges literal parts of an interpolated string into its text. When a
        part cannot appear inside ``{...}`` the string becomes the
        concatenation chain it prints as.
        """
        parts = []
        changed = False
        for part in node.parts:
            value = literal_value(part)
            if value is NOT_LITERAL:
                parts.append(part)
                continue
            changed = changed or part.kind != 'String'
            if parts and parts[-1].kind == 'String':
                parts[-1] = Node('String', value=parts[-1].value + to_string(value))
                changed = True
            else:
                parts.append(Node('String', value=to_string(value)))
        if all(p.kind == 'String' for p in parts):
            self.context.count(self.id, 'folded')
            return Node('String', position=node.position, value=''.join(p.value for p in parts))
        if not all(p.kind == 'String' or is_variable_like(p) for p in parts):
            chain = parts[0]
            for part in parts[1:]:
                chain = Node('BinaryOp', op='.', left=chain, right=part)
            chain.position = node.position
            return chain
        if changed:
            self.context.count(self.id, 'folded')
            return Node('Interpolated', position=node.position, parts=parts)
        return None

    def _binary(self, node: Node):
        op = node.op
        if op in ARITHMETIC_OPERATORS or op == '.':
            node.left = self._typed_bool(node.left, op)
            node.right = self._typed_bool(node.right, op)
        left, right = node.left, node.right
        if op in ARITHMETIC_OPERATORS:
            if not (is_numeric_literal(left) and is_numeric_literal(right)):
                return None
        elif op == '.':
            if left.kind not in ('Int', 'Float', 'String') or right.kind not in ('Int', 'Float', 'String'):
                return None
        else:
            return None
        folded = _fold(op, left.value, right.value)
        if folded is not None:
            self.context.count(self.id, 'folded')
        return folded

    @staticmethod
    def _typed_bool(operand: Node, op: str) -> Node:
        if operand.kind != 'ConstFetch':
            return operand
        name = (name_of(operand) or '').lower()
        if name not in ('true', 'false'):
            return operand
        if op == '.':
            return Node('String', value='1' if name == 'true' else '')
        return Node('Int', value=1 if name == 'true' else 0)


class CoalesceNullRemoveVisitor(Visitor):
    """
    ``X ?? null`` → ``X``. Works bottom-up, so ``$a ?? ($b ?? null)`` becomes
    ``$a ?? $b`` in one traversal.
    """

    id = 'coalesce_null_remove'
    name = 'Coalesce-null removal'
    description = 'Removes a redundant trailing ?? null'

    def leave(self, node):
        if node.kind == 'BinaryOp' and node.op == '??' and node.right.kind == 'ConstFetch' \
                and (name_of(node.right) or '').lower() == 'null':
            self.context.count(self.id, 'removed')
            return node.left
        return None


class ConstFoldVisitor(Visitor):
    """
    Folds comparisons (``=== !== == != < <= > >= <=>``), logical operators
    (``&& || and or xor !``) and ternaries whose operands are literals.
    Loose and strict comparison follow PHP 8 rules.
    """

    id = 'const_fold'
    name = 'Comparison and ternary folding'
    description = 'Folds literal comparisons, logical operators and ternaries'

    def leave(self, node):
        kind = node.kind
        if kind == 'BinaryOp' and (node.op in COMPARISON_OPERATORS or node.op in LOGICAL_OPERATORS):
            left, right = literal_value(node.left), literal_value(node.right)
            if left is NOT_LITERAL or right is NOT_LITERAL:
                return None
            folded = _fold(node.op, left, right)
            if folded is not None:
                self.context.count(self.id, 'comparison')
            return folded
        if kind == 'UnaryOp' and node.op == '!':
            value = literal_value(node.expr)
            if value is NOT_LITERAL:
                return None
            self.context.count(self.id, 'not')
            return bool_node(not to_bool(value))
        if kind == 'Ternary':
            value = literal_value(node.cond)
            if value is NOT_LITERAL:
                return None
            self.context.count(self.id, 'ternary')
            if to_bool(value):
                return node.then if node.then is not None else node.cond
            return node.otherwise
        return None
