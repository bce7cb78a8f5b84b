"""
Tree Traverser
==============

Depth-first driver for :class:`~recombinator.engine.visitor.Visitor` objects.

Several visitors given to one ``Traverser`` run as a pipeline: the first
visitor's complete traversal, then the second's on the result, and so on.
"""

import logging
from typing import List, Union

from ..errors import TraversalError
from ..syntax.nodes import Node
from .visitor import Action, Replace, ReplaceMany, Visitor

logger = logging.getLogger(__name__)


def normalize(result, node: Node):
    """Map a hook return value to ``(action, replacement list or None)``."""
    if result is None or result is Action.KEEP:
        return Action.KEEP, None
    if isinstance(result, Action):
        return result, None
    if isinstance(result, Replace):
        return Action.KEEP, [result.node]
    if isinstance(result, ReplaceMany):
        return Action.KEEP, list(result.nodes)
    if isinstance(result, Node):
        if result is node:
            return Action.KEEP, None
        return Action.KEEP, [result]
    if isinstance(result, list):
        return Action.KEEP, [n for n in result if n is not None]
    raise TraversalError(f'unexpected visitor result {result!r} for {node.kind}')


def pending(node: Node):
    """Resolve a ``remove``/``replace`` flag left on ``node``; None if unflagged."""
    if node.get_attr('remove'):
        node.del_attr('remove')
        return []
    if node.has_attr('replace'):
        replacement = node.get_attr('replace')
        node.del_attr('replace')
        if replacement is None:
            return []
        return list(replacement) if isinstance(replacement, list) else [replacement]
    return None


class Traverser:
    """Runs visitors over a statement list."""

    def __init__(self, *visitors: Visitor):
        self.visitors = list(visitors)
        self._visitor: Visitor = None
        self._stopped = False

    def traverse(self, nodes: List[Node]) -> List[Node]:
        for visitor in self.visitors:
            nodes = self._run(visitor, list(nodes))
        return nodes

    def _run(self, visitor: Visitor, nodes: List[Node]) -> List[Node]:
        self._visitor = visitor
        self._stopped = False
        result = visitor.before_traverse(nodes)
        if result is not None:
            nodes = result
        nodes = self._traverse_list(nodes)
        result = visitor.after_traverse(nodes)
        if result is not None:
            nodes = result
        return nodes

    def _traverse_list(self, nodes: list) -> list:
        out = []
        for node in nodes:
            if not isinstance(node, Node) or self._stopped:
                out.append(node)
                continue
            out.extend(self._visit(node))
        return out

    def _visit(self, node: Node) -> List[Node]:
        action, replacement = normalize(self._visitor.enter(node), node)
        if action is Action.STOP:
            self._stopped = True
            return [node]
        if action is Action.REMOVE:
            return []
        if replacement is not None:
            return replacement

        if action is not Action.SKIP_CHILDREN:
            self._traverse_children(node)

        action, replacement = normalize(self._visitor.leave(node), node)
        if action is Action.STOP:
            self._stopped = True
        elif action is Action.REMOVE:
            return []
        elif replacement is not None:
            return replacement

        resolved = pending(node)
        if resolved is not None:
            return resolved
        return [node]

    def _traverse_children(self, node: Node) -> None:
        for name, value in node.iter_fields():
            if self._stopped:
                return
            if isinstance(value, Node):
                result = self._visit(value)
                if len(result) != 1:
                    raise TraversalError(
                        f'{node.kind}.{name} needs exactly one node, visitor '
                        f'{type(self._visitor).__name__} produced {len(result)}')
                if result[0] is not value:
                    setattr(node, name, result[0])
            elif isinstance(value, list):
                setattr(node, name, self._traverse_list(value))


def sweep(nodes: Union[List[Node], Node]) -> List[Node]:
    """Resolve every pending ``remove``/``replace`` flag in the tree."""
    if isinstance(nodes, Node):
        nodes = [nodes]
    return _sweep_list(nodes)


def _sweep_list(nodes: list) -> list:
    out = []
    for node in nodes:
        if not isinstance(node, Node):
            out.append(node)
            continue
        resolved = pending(node)
        if resolved is None:
            _sweep_children(node)
            out.append(node)
        else:
            out.extend(_sweep_list(resolved))
    return out


def _sweep_children(node: Node) -> None:
    for name, value in node.iter_fields():
        if isinstance(value, Node):
            result = _sweep_list([value])
            if len(result) != 1:
                raise TraversalError(f'{node.kind}.{name} left with {len(result)} nodes')
            setattr(node, name, result[0])
        elif isinstance(value, list):
            setattr(node, name, _sweep_list(value))
