"""
Side-Effect Separation
======================

Splits a program's top-level statements by effect kind:

  1. build the statement dependency graph;
  2. find maximal runs of pure statements (:class:`PureBlockFinder`);
  3. group statements by effect, most benign kind first;
  4. record every boundary where the kind changes between neighbours;
  5. count transitions and reorderable statements per group;
  6. describe each pure run as a :class:`PureComputation`.

Statements without a ``side_effect`` attribute are classified on the fly.
"""

import logging
from typing import Any, Dict, List, Optional

from ..domain.artifacts import (
    EffectBoundary, EffectGroup, PureBlock, PureComputation, SeparationResult,
)
from ..syntax.nodes import Node
from .classifier import SideEffectClassifier, mark_effects
from .dependency_graph import EffectDependencyGraph, graph_id
from .effects import EffectKind

logger = logging.getLogger(__name__)


def _is_pure(node: Node) -> bool:
    return node.get_attr('side_effect') is EffectKind.PURE


class PureBlockFinder:
    """Maximal runs of consecutive pure statements."""

    def __init__(self, min_block_size: int = 1):
        self.min_block_size = max(1, min_block_size)
        self.blocks: List[PureBlock] = []

    def find_blocks(self, ast: List[Node]) -> List[PureBlock]:
        statements = [n for n in ast if isinstance(n, Node) and n.is_statement()]
        self.blocks = self._scan(statements, 'top_level')
        return self.blocks

    def _scan(self, stmts: List[Node], context: str) -> List[PureBlock]:
        blocks = []
        current: List[Node] = []
        start = 0
        for index, stmt in enumerate(stmts):
            if _is_pure(stmt):
                if not current:
                    start = index
                current.append(stmt)
                continue
            if len(current) >= self.min_block_size:
                blocks.append(PureBlock(start, index - 1, current, context))
            current = []
        if len(current) >= self.min_block_size:
            blocks.append(PureBlock(start, len(stmts) - 1, current, context))
        return blocks

    def find_nested_blocks(self, ast: List[Node]) -> Dict[str, List[List[PureBlock]]]:
        """Pure runs inside the bodies of top-level compound statements."""
        nested: Dict[str, List[List[PureBlock]]] = {}

        def add(key: str, stmts, context: str) -> None:
            nested.setdefault(key, []).append(self._scan(list(stmts or []), context))

        for node in ast:
            if not isinstance(node, Node):
                continue
            kind = node.kind
            if kind == 'If':
                add('if', node.stmts, 'if_then')
                for elseif in node.elseifs:
                    add('if', elseif.stmts, 'if_elseif')
                if node.else_ is not None:
                    add('if', node.else_.stmts, 'if_else')
            elif kind in ('While', 'DoWhile', 'For', 'Foreach'):
                add(kind.lower(), node.stmts, kind.lower() + '_body')
            elif kind == 'Function':
                add('function', node.stmts, 'function_' + node.name)
            elif kind == 'Class':
                for member in node.stmts:
                    if member.kind == 'ClassMethod':
                        add('method', member.stmts, 'method_' + member.name)
            elif kind == 'Try':
                add('try', node.stmts, 'try_block')
                for catch in node.catches:
                    add('try', catch.stmts, 'catch_block')
                if node.finally_ is not None:
                    add('try', node.finally_.stmts, 'finally_block')
        return {k: v for k, v in nested.items() if any(v)}

    @property
    def block_count(self) -> int:
        return len(self.blocks)

    @property
    def total_pure_nodes(self) -> int:
        return sum(b.size for b in self.blocks)

    def largest_block(self) -> Optional[PureBlock]:
        return max(self.blocks, key=lambda b: b.size, default=None)

    def blocks_by_size(self) -> List[PureBlock]:
        return sorted(self.blocks, key=lambda b: b.size, reverse=True)

    def stats(self) -> Dict[str, Any]:
        if not self.blocks:
            return {
                'total_blocks': 0,
                'total_pure_nodes': 0,
                'average_block_size': 0.0,
                'largest_block_size': 0,
                'smallest_block_size': 0,
            }
        sizes = [b.size for b in self.blocks]
        return {
            'total_blocks': len(sizes),
            'total_pure_nodes': sum(sizes),
            'average_block_size': round(sum(sizes) / len(sizes), 2),
            'largest_block_size': max(sizes),
            'smallest_block_size': min(sizes),
        }


class SideEffectSeparator:
    """
    Groups top-level statements by effect kind.

    Args:
        classifier: used for statements not yet marked
        min_pure_block_size: shortest pure run reported as a computation
    """

    def __init__(self, classifier: Optional[SideEffectClassifier] = None,
                 min_pure_block_size: int = 1):
        self.classifier = classifier or SideEffectClassifier()
        self.block_finder = PureBlockFinder(min_pure_block_size)

    def separate(self, ast: List[Node]) -> SeparationResult:
        ast = [n for n in ast if isinstance(n, Node)]
        mark_effects(ast, self.classifier)
        statements = [n for n in ast if n.is_statement()]

        graph = EffectDependencyGraph().build(ast, self.classifier)
        pure_blocks = self.block_finder.find_blocks(statements)
        groups = self._group_by_effect(statements)
        boundaries = self._find_boundaries(statements)
        self._count_interactions(groups, boundaries, graph)
        computations = self._pure_computations(pure_blocks, graph)

        result = SeparationResult(
            groups=groups,
            pure_computations=computations,
            boundaries=boundaries,
            pure_blocks=pure_blocks,
            dependency_graph=graph,
            stats=self._stats(groups, computations),
        )
        logger.debug("Separated %d statements into %d groups (%d boundaries)",
                     len(statements), len(groups), len(boundaries))
        return result

    @staticmethod
    def _group_by_effect(statements: List[Node]) -> Dict[EffectKind, EffectGroup]:
        groups: Dict[EffectKind, EffectGroup] = {}
        for stmt in statements:
            effect = stmt.get_attr('side_effect')
            if effect not in groups:
                groups[effect] = EffectGroup(effect=effect, nodes=[], priority=effect.priority)
            groups[effect].nodes.append(stmt)
        return dict(sorted(groups.items(), key=lambda item: item[1].priority))

    @staticmethod
    def _find_boundaries(statements: List[Node]) -> List[EffectBoundary]:
        boundaries = []
        prev_effect = None
        prev_index = 0
        for index, stmt in enumerate(statements):
            effect = stmt.get_attr('side_effect')
            if prev_effect is not None and effect is not prev_effect:
                boundaries.append(EffectBoundary(prev_effect, effect, index, prev_index))
            prev_effect = effect
            prev_index = index
        return boundaries

    @staticmethod
    def _count_interactions(groups: Dict[EffectKind, EffectGroup],
                            boundaries: List[EffectBoundary],
                            graph: EffectDependencyGraph) -> None:
        transitions: Dict[EffectKind, int] = {}
        for boundary in boundaries:
            transitions[boundary.from_effect] = transitions.get(boundary.from_effect, 0) + 1
        for effect, group in groups.items():
            group.transition_count = transitions.get(effect, 0)
            group.reorderable_count = sum(1 for n in group.nodes if graph.can_reorder(graph_id(n)))

    def _pure_computations(self, blocks: List[PureBlock],
                           graph: EffectDependencyGraph) -> List[PureComputation]:
        computations = []
        for index, block in enumerate(blocks):
            dependencies: List[str] = []
            for node in block.nodes:
                for dep in graph.dependencies(graph_id(node)):
                    if dep not in dependencies:
                        dependencies.append(dep)
            computations.append(PureComputation(
                nodes=block.nodes,
                start_position=block.start,
                end_position=block.end,
                size=block.size,
                id=f'pure_block_{index}',
                dependencies=dependencies,
                compile_time_evaluable=self._compile_time_evaluable(block.nodes, graph),
            ))
        return computations

    @staticmethod
    def _compile_time_evaluable(nodes: List[Node], graph: EffectDependencyGraph) -> bool:
        for node in nodes:
            effect = node.get_attr('side_effect')
            if not isinstance(effect, EffectKind) or not effect.is_compile_time_evaluable():
                return False
            for dep in graph.dependencies(graph_id(node)):
                dep_effect = graph.effects.get(dep)
                if dep_effect is None or not dep_effect.is_compile_time_evaluable():
                    return False
        return True

    @staticmethod
    def _stats(groups: Dict[EffectKind, EffectGroup],
               computations: List[PureComputation]) -> Dict[str, Any]:
        total = sum(g.size for g in groups.values())
        pure_nodes = sum(c.size for c in computations)
        return {
            'total_nodes': total,
            'total_groups': len(groups),
            'effect_counts': {effect.value: g.size for effect, g in groups.items()},
            'total_pure_computations': len(computations),
            'total_pure_nodes': pure_nodes,
            'pure_percentage': round(pure_nodes / total * 100, 2) if total else 0.0,
            'compile_time_evaluable': sum(1 for c in computations if c.compile_time_evaluable),
        }
