"""
Side-effect marking: every node gets a ``side_effect`` attribute.
"""

import logging

from ..analysis.effects import EffectKind
from ..engine.visitor import Visitor

logger = logging.getLogger(__name__)


class SideEffectMarkerVisitor(Visitor):
    """
    Classifies every node and stores the result in its ``side_effect``
    attribute. Marks are refreshed on every run because earlier passes may
    have changed what a node contains.

    Counters per effect kind are kept in the run statistics under the pass id.
    """

    id = 'side_effect_marker'
    name = 'Side-effect marker'
    description = 'Annotates every node with its side-effect kind'

    def __init__(self, context=None):
        super().__init__(context)
        self.counts = {kind: 0 for kind in EffectKind}

    def enter(self, node):
        effect = self.context.classifier.classify(node)
        node.set_attr('side_effect', effect)
        self.counts[effect] += 1
        return None

    def after_traverse(self, nodes):
        total = sum(self.counts.values())
        for kind, n in self.counts.items():
            if n:
                self.context.count(self.id, kind.value, n)
        logger.debug("Marked %d node(s): %s", total,
                     ', '.join(f'{k.value}={n}' for k, n in self.counts.items() if n))
        return None
