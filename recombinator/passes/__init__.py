"""
Rewrite passes and their registration table.

``REGISTRY`` lists every pass in canonical run order; the pipeline resolves
configured pass ids against it.
"""

from recombinator.engine.registry import (
    STAGE_MAIN, STAGE_READABILITY, PassInfo, PassRegistry,
)
from recombinator.passes.marker import SideEffectMarkerVisitor
from recombinator.passes.comments import RemoveCommentsVisitor
from recombinator.passes.folding import (
    BinaryAndIssetVisitor, CoalesceNullRemoveVisitor, ConstFoldVisitor,
)
from recombinator.passes.echo import ConcatAssertVisitor
from recombinator.passes.evaluation import EvalStandardFunctionVisitor, PreExecutionVisitor
from recombinator.passes.variables import SingleUseInlinerVisitor, VarToScalarVisitor
from recombinator.passes.functions import (
    CallFunctionVisitor, FunctionBodyCollectorVisitor, TernaryReturnVisitor,
)
from recombinator.passes.classes import (
    ClassInlinerVisitor, ConstClassVisitor, ConstructorAndMethodsVisitor,
    PropertyAccessVisitor, instance_key,
)
from recombinator.passes.readability import (
    CodeBlockVisitor, ConcatInterpolateVisitor, ReadabilityVisitor,
)

MAIN_PASSES = [
    SideEffectMarkerVisitor,
    RemoveCommentsVisitor,
    BinaryAndIssetVisitor,
    CoalesceNullRemoveVisitor,
    ConcatAssertVisitor,
    EvalStandardFunctionVisitor,
    PreExecutionVisitor,
    VarToScalarVisitor,
    ConstFoldVisitor,
    SingleUseInlinerVisitor,
    FunctionBodyCollectorVisitor,
    CallFunctionVisitor,
    ConstructorAndMethodsVisitor,
    PropertyAccessVisitor,
    ConstClassVisitor,
    TernaryReturnVisitor,
    ClassInlinerVisitor,
]

READABILITY_PASSES = [
    ReadabilityVisitor,
    ConcatInterpolateVisitor,
    CodeBlockVisitor,
]


def _info(cls, stage: str) -> PassInfo:
    return PassInfo(cls.id, cls.name, cls.description, cls, stage)


REGISTRY = PassRegistry(
    [_info(cls, STAGE_MAIN) for cls in MAIN_PASSES]
    + [_info(cls, STAGE_READABILITY) for cls in READABILITY_PASSES]
)

__all__ = [
    'REGISTRY', 'MAIN_PASSES', 'READABILITY_PASSES',
    'SideEffectMarkerVisitor', 'RemoveCommentsVisitor',
    'BinaryAndIssetVisitor', 'CoalesceNullRemoveVisitor', 'ConstFoldVisitor',
    'ConcatAssertVisitor', 'EvalStandardFunctionVisitor', 'PreExecutionVisitor',
    'VarToScalarVisitor', 'SingleUseInlinerVisitor',
    'FunctionBodyCollectorVisitor', 'CallFunctionVisitor', 'TernaryReturnVisitor',
    'ConstructorAndMethodsVisitor', 'PropertyAccessVisitor', 'ConstClassVisitor',
    'ClassInlinerVisitor', 'instance_key',
    'ReadabilityVisitor', 'ConcatInterpolateVisitor', 'CodeBlockVisitor',
]
