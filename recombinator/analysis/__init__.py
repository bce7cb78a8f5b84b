"""
Read-only program analysis: side effects, complexity, dependencies and
abstraction recovery.
"""

# effects first: recombinator.domain imports it while this package initializes
from recombinator.analysis.effects import EffectKind, combine_all
from recombinator.analysis.classifier import (
    SideEffectClassifier, is_pure_function, mark_effects,
)
from recombinator.analysis.complexity import (
    CognitiveComplexityCalculator, ComplexityComparison, ComplexityMetrics,
    CyclomaticComplexityCalculator, NestingDepthVisitor, nesting_depth,
)
from recombinator.analysis.dependency_graph import EffectDependencyGraph
from recombinator.analysis.variables import VariableAnalyzer
from recombinator.analysis.separator import PureBlockFinder, SideEffectSeparator
from recombinator.analysis.recovery import (
    AbstractionRecovery, FunctionExtractor, StructureAdvisor,
)

__all__ = [
    'EffectKind', 'combine_all',
    'SideEffectClassifier', 'is_pure_function', 'mark_effects',
    'CognitiveComplexityCalculator', 'ComplexityComparison', 'ComplexityMetrics',
    'CyclomaticComplexityCalculator', 'NestingDepthVisitor', 'nesting_depth',
    'EffectDependencyGraph', 'VariableAnalyzer',
    'PureBlockFinder', 'SideEffectSeparator',
    'AbstractionRecovery', 'FunctionExtractor', 'StructureAdvisor',
]
