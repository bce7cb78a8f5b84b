"""
Visitor Protocol
================

A pass is a ``Visitor`` driven by :class:`~recombinator.engine.traverser.Traverser`.
``enter`` is called before a node's children are visited, ``leave`` after.
Both may return:

    None / Action.KEEP        continue unchanged
    Action.SKIP_CHILDREN      (enter only) do not descend into this node
    Action.REMOVE             excise the node from its parent list
    Action.STOP               end this visitor's traversal
    Node / Replace(node)      substitute the node
    list / ReplaceMany(nodes) substitute the node by several siblings

A replacement returned from ``enter`` is not descended into.

Besides returning a result, a visitor may flag nodes it cannot return for
(e.g. a sibling it already left) with the ``remove`` or ``replace``
attribute; such flags are resolved when the flagged node is left, or by the
sweep that ends every pass.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import List, Optional, TYPE_CHECKING

from ..syntax.nodes import Node

if TYPE_CHECKING:
    from .pipeline import PassContext


class Action(Enum):
    KEEP = auto()
    SKIP_CHILDREN = auto()
    REMOVE = auto()
    STOP = auto()


@dataclass
class Replace:
    node: Node


@dataclass
class ReplaceMany:
    nodes: List[Node]


class Visitor:
    """Base class for all passes. Every hook is optional."""

    #: registry id, set by subclasses
    id = ''
    name = ''
    description = ''

    def __init__(self, context: Optional['PassContext'] = None):
        self.context = context

    @property
    def store(self):
        return self.context.store

    def before_traverse(self, nodes: List[Node]) -> Optional[List[Node]]:
        return None

    def enter(self, node: Node):
        return None

    def leave(self, node: Node):
        return None

    def after_traverse(self, nodes: List[Node]) -> Optional[List[Node]]:
        return None


def mark_remove(node: Node) -> None:
    node.set_attr('remove', True)


def mark_replace(node: Node, replacement) -> None:
    node.set_attr('replace', replacement)
