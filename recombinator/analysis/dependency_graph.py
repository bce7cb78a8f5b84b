"""
Effect Dependency Graph
=======================

Graph over the statements of a program. An edge ``a → b`` means statement
``a`` reads a variable last assigned by statement ``b``.

Node ids are ``Kind_start_end`` (source offsets), so they are stable
across re-parses of the same text.

    graph = EffectDependencyGraph()
    graph.build(stmts, classifier)
    graph.can_reorder(graph_id)   # pure, and so is everything it depends on
    graph.topological_sort()      # definitions before uses

Cycles cannot arise from straight-line code but can from loops
(``$a = $b; $b = $a;`` inside ``while``). The sort tolerates them: the edge
closing a cycle is ignored, the node still appears in the order, and the
cycle is recorded in ``cycles``.
"""

import logging
from typing import Dict, Iterable, List, Optional, Set

from ..syntax.nodes import Node, walk
from .classifier import SideEffectClassifier
from .effects import EffectKind

logger = logging.getLogger(__name__)

_ASSIGN_KINDS = frozenset({'Assign', 'AssignOp', 'AssignRef'})


def graph_id(node: Node) -> str:
    if node.position.start_pos < 0:
        return f'{node.kind}_synthetic_{id(node)}'
    return node.node_id


def assigned_variable(stmt: Node) -> Optional[str]:
    """Name of the plain variable a statement assigns, if any."""
    expr = stmt.expr if stmt.kind == 'Expression' else stmt
    if expr is not None and expr.kind in _ASSIGN_KINDS:
        var = expr.var
        if var.kind == 'Variable' and isinstance(var.name, str):
            return var.name
    return None


def used_variables(node: Node) -> Set[str]:
    """Variables read by ``node``; the target of its own assignment is excluded."""
    target_node = None
    expr = node.expr if node.kind == 'Expression' else node
    if expr is not None and expr.kind in ('Assign', 'AssignRef'):
        target_node = expr.var
    names = set()
    for sub in walk(node):
        if sub is target_node:
            continue
        if sub.kind == 'Variable' and isinstance(sub.name, str):
            names.add(sub.name)
    if target_node is not None and target_node.kind != 'Variable':
        return names
    if target_node is not None and _reads_itself(expr):
        names.add(target_node.name)
    return names


def _reads_itself(assign: Node) -> bool:
    name = assign.var.name
    return any(n.kind == 'Variable' and n.name == name for n in walk(assign.expr))


class EffectDependencyGraph:
    """Statement dependency graph with per-node effect kinds."""

    def __init__(self):
        self.nodes: Dict[str, Node] = {}
        self.effects: Dict[str, EffectKind] = {}
        self.edges: Dict[str, List[str]] = {}
        self.reverse_edges: Dict[str, List[str]] = {}
        self.cycles: List[List[str]] = []

    def build(self, ast: Iterable[Node],
              classifier: Optional[SideEffectClassifier] = None) -> 'EffectDependencyGraph':
        classifier = classifier or SideEffectClassifier()
        self.__init__()
        stmts = [n for n in walk(list(ast)) if n.is_statement()]
        for stmt in stmts:
            gid = graph_id(stmt)
            self.nodes[gid] = stmt
            effect = stmt.get_attr('side_effect')
            self.effects[gid] = effect if isinstance(effect, EffectKind) else classifier.classify(stmt)

        definitions: Dict[str, str] = {}
        for stmt in stmts:
            gid = graph_id(stmt)
            for name in sorted(used_variables(stmt)):
                definer = definitions.get(name)
                if definer is not None and definer != gid and not _contains(stmt, self.nodes[definer]):
                    self.add_edge(gid, definer)
            name = assigned_variable(stmt)
            if name is not None:
                definitions[name] = gid
        logger.debug("Dependency graph: %d nodes, %d edges",
                     len(self.nodes), sum(len(v) for v in self.edges.values()))
        return self

    def add_edge(self, from_id: str, to_id: str) -> None:
        targets = self.edges.setdefault(from_id, [])
        if to_id not in targets:
            targets.append(to_id)
        sources = self.reverse_edges.setdefault(to_id, [])
        if from_id not in sources:
            sources.append(from_id)

    def dependencies(self, node_id: str) -> List[str]:
        return list(self.edges.get(node_id, []))

    def dependents(self, node_id: str) -> List[str]:
        return list(self.reverse_edges.get(node_id, []))

    def can_reorder(self, node_id: str) -> bool:
        """True iff the node and all of its transitive dependencies are pure."""
        if node_id not in self.nodes:
            return False
        seen = set()
        stack = [node_id]
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            effect = self.effects.get(current)
            if effect is not None and not effect.is_pure():
                return False
            stack.extend(d for d in self.edges.get(current, []) if d in self.nodes)
        return True

    def nodes_by_effect(self) -> Dict[EffectKind, List[str]]:
        groups: Dict[EffectKind, List[str]] = {}
        for gid, effect in self.effects.items():
            groups.setdefault(effect, []).append(gid)
        return groups

    def topological_sort(self) -> List[str]:
        """Node ids with every dependency before its dependents."""
        order: List[str] = []
        done: Set[str] = set()
        active: List[str] = []
        self.cycles = []

        def visit(node_id: str) -> None:
            if node_id in done:
                return
            if node_id in active:
                cycle = active[active.index(node_id):] + [node_id]
                self.cycles.append(cycle)
                logger.debug("Dependency cycle ignored: %s", ' -> '.join(cycle))
                return
            active.append(node_id)
            for dep in self.edges.get(node_id, []):
                if dep in self.nodes:
                    visit(dep)
            active.pop()
            done.add(node_id)
            order.append(node_id)

        for node_id in self.nodes:
            visit(node_id)
        return order


def _contains(outer: Node, inner: Node) -> bool:
    return any(n is inner for n in walk(outer))
