"""
Variable Propagation
====================

``var_to_scalar`` and ``single_use_inliner`` remove variables whose value is
known at every read. Both work per scope (top level, each function, method
and closure) on the usage computed by :class:`~recombinator.passes.base.ScopeUsage`,
and leave alone:

  - scopes that can reach variables by name (``$$v``, ``extract``,
    ``compact``, ``eval``, ``include`` ...);
  - variables bound by reference, imported with ``global``/``static``,
    captured by a closure, or used as parameters;
  - variables written more than once, or not by a plain ``$v = expr;``
    statement at the top of their scope.
"""

import logging
from typing import List, Set

from ..analysis.effects import EffectKind
from ..engine.visitor import Visitor, mark_remove, mark_replace
from ..syntax.nodes import Node, is_scalar_literal
from .base import ScopeUsage, free_variables, has_kind, program_usages, write_positions

logger = logging.getLogger(__name__)

# The value of these may differ at the read site.
_UNSTABLE_KINDS = frozenset({
    'Closure', 'ArrowFunction', 'MagicConst', 'PropertyFetch', 'StaticPropertyFetch',
})


class VarToScalarVisitor(Visitor):
    """
    Propagates scalar literals::

        $a = 5;
        $b = 10;              →   echo 5 + 10;
        echo $a + $b;

    The propagated values are recorded in the scope store under the scope
    name.
    """

    id = 'var_to_scalar'
    name = 'Scalar propagation'
    description = 'Replaces reads of variables assigned a scalar literal once'

    def before_traverse(self, nodes):
        for usage in program_usages(nodes):
            if usage.opaque:
                continue
            for use in usage.variables.values():
                if use.pinned or use.base_reads:
                    continue
                assignment = use.single_assignment
                if assignment is None or not is_scalar_literal(assignment[1].expr):
                    continue
                stmt, assign = assignment
                start = usage.position(stmt)
                if any(usage.position(r) < start for r in use.reads):
                    continue
                for read in use.reads:
                    mark_replace(read, assign.expr.clone())
                mark_remove(stmt)
                self.store.set_current_scope(usage.scope.name)
                self.store.set_var(use.name, assign.expr)
                self.context.count(self.id, 'propagated')
                logger.debug("Propagated $%s in scope %r to %d read(s)",
                             use.name, usage.scope.name, len(use.reads))
        return None


class SingleUseInlinerVisitor(Visitor):
    """
    Inlines a pure expression assigned once and read once::

        $sum = $a + $b;
        return $sum * 2;      →   return ($a + $b) * 2;

    Variables the expression reads must not change between the assignment
    and the read, so each may only be written before the assignment.
    """

    id = 'single_use_inliner'
    name = 'Single-use inlining'
    description = 'Inlines pure expressions assigned once and read once'

    def before_traverse(self, nodes):
        for usage in program_usages(nodes):
            if not usage.opaque:
                self._inline_scope(usage)
        return None

    def _inline_scope(self, usage: ScopeUsage) -> None:
        planned_stmts: List[Node] = []
        planned_reads: List[Node] = []
        for use in usage.variables.values():
            if use.pinned or len(use.reads) != 1:
                continue
            assignment = use.single_assignment
            if assignment is None:
                continue
            stmt, assign = assignment
            read = use.reads[0]
            if usage.position(read) <= usage.position(stmt) or usage.inside(read, stmt):
                continue
            if not self._inlinable(usage, assign.expr, usage.position(stmt)):
                continue
            if use.base_reads and assign.expr.kind in ('Int', 'Float', 'ConstFetch'):
                continue
            if any(usage.inside(read, s) for s in planned_stmts) \
                    or any(usage.inside(r, stmt) for r in planned_reads):
                continue
            mark_replace(read, assign.expr.clone())
            mark_remove(stmt)
            planned_stmts.append(stmt)
            planned_reads.append(read)
            self.context.count(self.id, 'inlined')
            logger.debug("Inlined single-use $%s in scope %r", use.name, usage.scope.name)

    def _inlinable(self, usage: ScopeUsage, expr: Node, start: int) -> bool:
        if self.context.classifier.classify(expr) is not EffectKind.PURE:
            return False
        if has_kind(expr, _UNSTABLE_KINDS):
            return False
        return self._stable(usage, free_variables(expr), start)

    @staticmethod
    def _stable(usage: ScopeUsage, names: Set[str], start: int) -> bool:
        for name in names:
            use = usage.variables.get(name)
            if use is None:
                continue
            if use.pinned:
                return False
            if any(p > start for p in write_positions(usage, use)):
                return False
        return True
