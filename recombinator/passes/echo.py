"""
Echo concatenation: consecutive ``echo`` statements become one.
"""

import logging
from typing import List, Optional

from ..analysis.effects import EffectKind
from ..engine.visitor import Visitor
from ..syntax.nodes import Node

logger = logging.getLogger(__name__)

_MERGEABLE = (EffectKind.PURE, EffectKind.EXTERNAL_STATE)


class ConcatAssertVisitor(Visitor):
    """
    Merges runs of sibling ``echo`` statements into a single ``echo`` of a
    concatenation::

        echo 'Hello, ';
        echo $name;           →   echo 'Hello, ' . $name . "\\n";
        echo "\\n";

    A run is only merged when none of its expressions can write anything or
    produce output itself, so evaluating them all before printing gives the
    same output.
    """

    id = 'concat_assert'
    name = 'Echo concatenation'
    description = 'Merges consecutive echo statements into one'

    def leave(self, node):
        for name, value in node.iter_fields():
            if isinstance(value, list) and any(isinstance(v, Node) and v.kind == 'Echo' for v in value):
                merged = self._merge(value)
                if merged is not None:
                    setattr(node, name, merged)
        return None

    def after_traverse(self, nodes):
        return self._merge(nodes)

    def _mergeable(self, stmt: Node) -> bool:
        if stmt.kind != 'Echo' or not stmt.exprs:
            return False
        return all(self.context.classifier.classify(e) in _MERGEABLE for e in stmt.exprs)

    def _merge(self, stmts: List[Node]) -> Optional[List[Node]]:
        out: List[Node] = []
        run: List[Node] = []
        changed = False

        def flush():
            nonlocal changed
            if len(run) > 1:
                out.append(self._combine(run))
                changed = True
            else:
                out.extend(run)
            run.clear()

        for stmt in stmts:
            if isinstance(stmt, Node) and self._mergeable(stmt):
                run.append(stmt)
                continue
            flush()
            out.append(stmt)
        flush()
        return out if changed else None

    def _combine(self, run: List[Node]) -> Node:
        exprs = [e for stmt in run for e in stmt.exprs]
        expr = exprs[0]
        for right in exprs[1:]:
            expr = Node('BinaryOp', op='.', left=expr, right=right)
        merged = Node('Echo', position=run[0].position, exprs=[expr])
        comments = [c for stmt in run for c in stmt.comments]
        if comments:
            merged.set_attr('comments', comments)
        self.context.count(self.id, 'merged', len(run))
        logger.debug("Merged %d echo statements", len(run))
        return merged
