"""
Shared run state (scope store) and analysis records.
"""

from recombinator.domain.scope_store import (
    GLOBAL_SCOPE, ClassInfo, FunctionInfo, ScopeStore,
)
from recombinator.domain.artifacts import (
    EffectBoundary, EffectGroup, ExtractionResult, FunctionCandidate,
    ImprovementType, PureBlock, PureComputation, SeparationResult, StructureImprovement,
)

__all__ = [
    'GLOBAL_SCOPE', 'ClassInfo', 'FunctionInfo', 'ScopeStore',
    'EffectBoundary', 'EffectGroup', 'ExtractionResult', 'FunctionCandidate',
    'ImprovementType', 'PureBlock', 'PureComputation', 'SeparationResult',
    'StructureImprovement',
]
