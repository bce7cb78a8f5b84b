"""
Pass engine: visitor protocol, traversal, fixed-point pipeline.
"""

from recombinator.engine.visitor import (
    Action, Replace, ReplaceMany, Visitor, mark_remove, mark_replace,
)
from recombinator.engine.traverser import Traverser, sweep
from recombinator.engine.connecting import NodeConnectingVisitor, connect
from recombinator.engine.registry import (
    STAGE_MAIN, STAGE_READABILITY, PassInfo, PassRegistry,
)
from recombinator.engine.diff import PassDiff, colorize, make_diff
from recombinator.engine.pipeline import (
    PassContext, Pipeline, PipelineResult, PipelineStatus,
)

__all__ = [
    'Action', 'Replace', 'ReplaceMany', 'Visitor', 'mark_remove', 'mark_replace',
    'Traverser', 'sweep', 'NodeConnectingVisitor', 'connect',
    'STAGE_MAIN', 'STAGE_READABILITY', 'PassInfo', 'PassRegistry',
    'PassDiff', 'colorize', 'make_diff',
    'PassContext', 'Pipeline', 'PipelineResult', 'PipelineStatus',
]
