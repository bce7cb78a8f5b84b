"""
Node Connecting Pre-Pass
========================

Writes the derived ``parent``, ``next`` and ``previous`` links. Passes that
look at ancestors or siblings rely on it having run in the current
traversal round; the pipeline runs it before every pass.
"""

from typing import List

from ..syntax.nodes import Node
from .traverser import Traverser
from .visitor import Visitor


def _link_siblings(items: list) -> None:
    nodes = [n for n in items if isinstance(n, Node)]
    for i, node in enumerate(nodes):
        node.link('previous', nodes[i - 1] if i > 0 else None)
        node.link('next', nodes[i + 1] if i + 1 < len(nodes) else None)


class NodeConnectingVisitor(Visitor):
    id = 'connecting'
    name = 'Node connecting'
    description = 'Links every node to its parent and siblings'

    def __init__(self, context=None):
        super().__init__(context)
        self._stack: List[Node] = []

    def before_traverse(self, nodes):
        self._stack = []
        _link_siblings(nodes)
        return None

    def enter(self, node):
        node.link('parent', self._stack[-1] if self._stack else None)
        for _, value in node.iter_fields():
            if isinstance(value, list):
                _link_siblings(value)
            elif isinstance(value, Node):
                value.link('previous', None)
                value.link('next', None)
        self._stack.append(node)
        return None

    def leave(self, node):
        self._stack.pop()
        return None


def connect(nodes: List[Node]) -> List[Node]:
    return Traverser(NodeConnectingVisitor()).traverse(nodes)
