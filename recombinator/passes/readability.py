"""
Readability Stage
=================

Runs once after the main passes have converged. These passes do not make
the program smaller; they undo the shapes the main passes leave behind that
are hard to read:

  - ``readability``: nested ternaries and ``??`` chains are hoisted into
    temporaries;
  - ``concat_interpolate``: concatenations of strings and plain variables
    become one double-quoted string;
  - ``code_block``: top-level statements are grouped by what they do, each
    group labeled with a comment.

All three are idempotent.
"""

import logging
from typing import List, Optional, Set

from ..analysis.effects import EffectKind
from ..engine.visitor import Visitor
from ..syntax.nodes import Node, expression_stmt, variable, walk
from .base import SCOPE_INTROSPECTION, call_name

logger = logging.getLogger(__name__)

_SHORT_CIRCUIT = frozenset({'&&', '||', 'and', 'or'})
_WRITE_KINDS = frozenset({'Assign', 'AssignRef', 'AssignOp', 'IncDec'})
# Subtrees evaluated conditionally or lazily: nothing is hoisted out of them.
_BARRIERS = frozenset({'Closure', 'ArrowFunction', 'Isset', 'Empty', 'ErrorSuppress', 'Match'})


def _is_conditional(node: Node) -> bool:
    return node.kind == 'Ternary' or (node.kind == 'BinaryOp' and node.op == '??')


def _statement_lists(node: Node):
    for name, value in node.iter_fields():
        if isinstance(value, list) and value and all(isinstance(v, Node) and v.is_statement()
                                                     for v in value):
            yield name, value


class ReadabilityVisitor(Visitor):
    """
    Hoists ternaries and ``??`` nested inside a larger expression into
    temporaries, innermost first::

        echo 'Total: ' . ($n > 0 ? $n : 'none');
                                  →   $tmp1 = $n > 0 ? $n : 'none';
                                      echo 'Total: ' . $tmp1;

    A subexpression is hoisted only when neither it nor anything the
    statement evaluates before it has a side effect (superglobal reads are
    fine). Nothing is hoisted out of a branch that may not run (right side
    of ``&&``/``||``/``??``, ternary branches, closures ...).
    """

    id = 'readability'
    name = 'Conditional hoisting'
    description = 'Moves nested ternaries and coalesces into temporaries'

    def before_traverse(self, nodes):
        self.used: Set[str] = {n.name for n in walk(nodes)
                               if n.kind == 'Variable' and isinstance(n.name, str)}
        self.counter = 0
        self.enabled = not any(
            n.kind in ('Eval', 'Include')
            or (n.kind == 'Variable' and not isinstance(n.name, str))
            or call_name(n) in SCOPE_INTROSPECTION
            for n in walk(nodes))
        return None

    def leave(self, node):
        if not self.enabled:
            return None
        for name, stmts in _statement_lists(node):
            setattr(node, name, self._rewrite(stmts))
        return None

    def after_traverse(self, nodes):
        if not self.enabled:
            return None
        return self._rewrite(nodes)

    def _rewrite(self, stmts: List[Node]) -> List[Node]:
        out: List[Node] = []
        for stmt in stmts:
            hoisted: List[Node] = []
            self._hoist_statement(stmt, hoisted)
            if hoisted:
                if stmt.comments:
                    hoisted[0].set_attr('comments', list(stmt.comments))
                    stmt.del_attr('comments')
                self.context.count(self.id, 'hoisted', len(hoisted))
            out.extend(hoisted)
            out.append(stmt)
        return out

    def _hoist_statement(self, stmt: Node, hoisted: List[Node]) -> None:
        self.clean = True
        if stmt.kind == 'Expression':
            expr = stmt.expr
            if expr.kind == 'Assign' and expr.var.kind == 'Variable':
                expr.expr = self._hoist(expr.expr, hoisted, root=True)
            elif expr.kind not in _WRITE_KINDS:
                stmt.expr = self._hoist(expr, hoisted, root=True)
        elif stmt.kind == 'Return' and stmt.expr is not None:
            stmt.expr = self._hoist(stmt.expr, hoisted, root=True)
        elif stmt.kind == 'Echo':
            stmt.exprs = [self._hoist(e, hoisted, root=True) for e in stmt.exprs]

    def _quiet(self, expr: Node) -> bool:
        """No writes and no effect beyond reading external state."""
        if not self.context.classifier.classify(expr).is_cacheable():
            return False
        return not any(node.kind in _WRITE_KINDS for node in walk(expr))

    def _hoist(self, expr: Node, hoisted: List[Node], root: bool = False) -> Node:
        # Children are visited in evaluation order; ``self.clean`` drops once
        # anything with an effect has been evaluated in this statement.
        kind = expr.kind
        if kind in _BARRIERS or (kind == 'BinaryOp' and expr.op == '??'):
            pass
        elif kind == 'Ternary':
            expr.cond = self._hoist(expr.cond, hoisted)
        elif kind == 'BinaryOp' and expr.op in _SHORT_CIRCUIT:
            expr.left = self._hoist(expr.left, hoisted)
        else:
            for name, value in expr.iter_fields():
                if isinstance(value, Node):
                    setattr(expr, name, self._hoist(value, hoisted))
                elif isinstance(value, list):
                    setattr(expr, name, [self._hoist(v, hoisted) if isinstance(v, Node) else v
                                         for v in value])
        if not root and self.clean and _is_conditional(expr) and self._quiet(expr):
            name = self._temp_name()
            hoisted.append(expression_stmt(Node('Assign', var=variable(name), expr=expr)))
            return variable(name)
        if self.clean and not self._quiet(expr):
            self.clean = False
        return expr

    def _temp_name(self) -> str:
        while True:
            self.counter += 1
            name = f'tmp{self.counter}'
            if name not in self.used:
                self.used.add(name)
                return name


class ConcatInterpolateVisitor(Visitor):
    """
    Rewrites concatenations of string literals and plain variables as one
    interpolated string::

        'Hello, ' . $name . '!'   →   "Hello, {$name}!"

    A chain with any other operand is left as it is from that operand on.
    """

    id = 'concat_interpolate'
    name = 'Concatenation to interpolation'
    description = 'Turns string and variable concatenations into interpolated strings'

    def leave(self, node):
        if node.kind != 'BinaryOp' or node.op != '.':
            return None
        parts = self._parts(node.left)
        right = self._parts(node.right)
        if parts is None or right is None:
            return None
        parts = self._merge_strings(parts + right)
        self.context.count(self.id, 'interpolated')
        if all(p.kind == 'String' for p in parts):
            return Node('String', position=node.position, value=''.join(p.value for p in parts))
        return Node('Interpolated', position=node.position, parts=parts)

    @staticmethod
    def _parts(node: Node) -> Optional[List[Node]]:
        if node.kind == 'String':
            return [node]
        if node.kind == 'Variable' and isinstance(node.name, str):
            return [node]
        if node.kind == 'Interpolated' and all(
                p.kind == 'String' or (p.kind == 'Variable' and isinstance(p.name, str))
                for p in node.parts):
            return list(node.parts)
        return None

    @staticmethod
    def _merge_strings(parts: List[Node]) -> List[Node]:
        merged: List[Node] = []
        for part in parts:
            if part.kind == 'String' and merged and merged[-1].kind == 'String':
                merged[-1] = Node('String', position=merged[-1].position,
                                  value=merged[-1].value + part.value)
            else:
                merged.append(part)
        return [p for p in merged if not (p.kind == 'String' and p.value == '')] \
            or [Node('String', value='')]


INPUT = 'input'
OUTPUT = 'output'
RETURN = 'return'
CONTROL = 'control'
COMPUTE = 'compute'
OTHER = 'other'

LABELS = {
    INPUT: 'Read global state',
    OUTPUT: 'Output',
    RETURN: 'Return value',
    CONTROL: 'Control flow',
    COMPUTE: 'Computation',
    OTHER: 'Other',
}

_CONTROL_KINDS = frozenset({'If', 'While', 'DoWhile', 'For', 'Foreach', 'Switch', 'Try', 'Block'})
_NEUTRAL_KINDS = frozenset({'InlineHTML', 'Nop'})


class CodeBlockVisitor(Visitor):
    """
    Groups consecutive top-level statements by role (input, output, return,
    control flow, computation, other). The first statement of each group
    gets a ``# Label`` comment and every group after the first is preceded
    by a blank line. Programs that form a single group are left as they are.
    """

    id = 'code_block'
    name = 'Code blocks'
    description = 'Groups top-level statements and labels each group'

    def category(self, stmt: Node) -> Optional[str]:
        kind = stmt.kind
        if kind in _NEUTRAL_KINDS:
            return None
        if kind == 'Return' or (kind == 'Expression' and stmt.expr.kind == 'Exit'):
            return RETURN
        if kind in _CONTROL_KINDS:
            return CONTROL
        effect = self.context.classifier.classify(stmt)
        if kind == 'Echo' or effect is EffectKind.IO:
            return OUTPUT
        if kind == 'Global' or effect in (EffectKind.EXTERNAL_STATE, EffectKind.GLOBAL_STATE):
            return INPUT
        if kind == 'Expression' and effect is EffectKind.PURE:
            return COMPUTE
        return OTHER

    def after_traverse(self, nodes):
        groups = []
        current = None
        for stmt in nodes:
            category = self.category(stmt)
            if category is None or category == current:
                continue
            groups.append((stmt, category))
            current = category
        if len(groups) < 2:
            return None

        for index, (stmt, category) in enumerate(groups):
            label = '# ' + LABELS[category]
            if label not in stmt.comments:
                stmt.set_attr('comments', [label] + list(stmt.comments))
                self.context.count(self.id, 'labels')
            if index > 0:
                stmt.set_attr('separator', True)
        return None
