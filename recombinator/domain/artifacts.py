"""
Analysis Artifacts
==================

Read-only records produced by the analysis layer
(:mod:`recombinator.analysis.separator`, :mod:`recombinator.analysis.recovery`).
They describe runs of statements and refactoring opportunities; none of them
mutates the tree.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..analysis.effects import EffectKind
from ..syntax.nodes import Node


@dataclass
class EffectGroup:
    """All top-level statements sharing one effect kind."""
    effect: EffectKind
    nodes: List[Node]
    priority: int
    transition_count: int = 0
    reorderable_count: int = 0

    @property
    def size(self) -> int:
        return len(self.nodes)

    def is_pure(self) -> bool:
        return self.effect.is_pure()

    @property
    def reorderable_percentage(self) -> float:
        if not self.nodes:
            return 0.0
        return round(self.reorderable_count / len(self.nodes) * 100, 2)


@dataclass(frozen=True)
class EffectBoundary:
    """A point where the effect kind changes between neighbouring statements."""
    from_effect: EffectKind
    to_effect: EffectKind
    position: int
    prev_position: int

    @property
    def distance(self) -> int:
        return self.position - self.prev_position

    def is_pure_to_impure(self) -> bool:
        return self.from_effect.is_pure() and not self.to_effect.is_pure()

    def is_impure_to_pure(self) -> bool:
        return not self.from_effect.is_pure() and self.to_effect.is_pure()


@dataclass
class PureBlock:
    """Maximal run of consecutive pure statements in one statement list."""
    start: int
    end: int
    nodes: List[Node]
    context: str = 'top_level'

    @property
    def size(self) -> int:
        return len(self.nodes)


@dataclass
class PureComputation:
    """A contiguous run of pure statements."""
    nodes: List[Node]
    start_position: int
    end_position: int
    size: int
    id: str
    dependencies: List[str] = field(default_factory=list)
    compile_time_evaluable: bool = False

    def has_dependencies(self) -> bool:
        return bool(self.dependencies)


_NAME_PREFIXES = {
    EffectKind.PURE: 'calculate',
    EffectKind.IO: 'print',
    EffectKind.EXTERNAL_STATE: 'get',
    EffectKind.DATABASE: 'query',
    EffectKind.HTTP: 'fetch',
    EffectKind.NON_DETERMINISTIC: 'generate',
}


@dataclass
class FunctionCandidate:
    """A block that could be extracted into its own function."""
    nodes: List[Node]
    effect: EffectKind
    size: int
    complexity: int
    used_variables: List[str]
    defined_variables: List[str]
    return_variable: Optional[str] = None
    start_line: int = 0
    end_line: int = 0

    def matches_pure_block_rule(self) -> bool:
        return self.effect is EffectKind.PURE and self.size >= 5

    def matches_effect_block_rule(self) -> bool:
        return self.effect not in (EffectKind.PURE, EffectKind.MIXED) and self.size >= 3

    def is_viable(self) -> bool:
        return self.matches_pure_block_rule() or self.matches_effect_block_rule()

    @property
    def priority(self) -> int:
        """pure bonus + size*10 + complexity*5 - parameters*3."""
        score = 100 if self.effect.is_pure() else 0
        score += self.size * 10
        score += self.complexity * 5
        score -= len(self.used_variables) * 3
        return score

    def suggest_name(self) -> str:
        prefix = _NAME_PREFIXES.get(self.effect, 'process')
        if self.return_variable:
            name = self.return_variable.lstrip('$')
            return prefix + name[:1].upper() + name[1:]
        return f'{prefix}Block{self.start_line}'

    @property
    def parameters(self) -> List[str]:
        defined = set(self.defined_variables)
        return [v for v in self.used_variables if v not in defined]


@dataclass
class ExtractionResult:
    """Function synthesized from a candidate plus the statement replacing the block."""
    function: Node
    call: Node
    name: str
    parameters: List[str]
    return_variable: Optional[str] = None


class ImprovementType:
    EXTRACT_FUNCTION = 'extract_function'
    SIMPLIFY_CONDITION = 'simplify_condition'
    REDUCE_NESTING = 'reduce_nesting'
    SPLIT_LOGIC = 'split_logic'
    INTRODUCE_VARIABLE = 'introduce_variable'
    MERGE_OPERATIONS = 'merge_operations'


_IMPROVEMENT_LABELS = {
    ImprovementType.EXTRACT_FUNCTION: 'Extract Function',
    ImprovementType.SIMPLIFY_CONDITION: 'Simplify Condition',
    ImprovementType.REDUCE_NESTING: 'Reduce Nesting',
    ImprovementType.SPLIT_LOGIC: 'Split Logic',
    ImprovementType.INTRODUCE_VARIABLE: 'Introduce Variable',
    ImprovementType.MERGE_OPERATIONS: 'Merge Operations',
}


@dataclass
class StructureImprovement:
    type: str
    description: str
    target: Node
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def priority(self) -> int:
        try:
            return int(self.metadata.get('priority', 5))
        except (TypeError, ValueError):
            return 5

    @property
    def label(self) -> str:
        return _IMPROVEMENT_LABELS.get(self.type, 'Improvement')

    @property
    def expected_benefit(self) -> str:
        if self.type == ImprovementType.EXTRACT_FUNCTION:
            return f"Reduce complexity by {self.metadata.get('complexity_reduction', 'N/A')}"
        if self.type == ImprovementType.REDUCE_NESTING:
            return f"Reduce nesting depth by {self.metadata.get('depth_reduction', 'N/A')}"
        if self.type == ImprovementType.SIMPLIFY_CONDITION:
            return 'Simplify logic, improve readability'
        if self.type == ImprovementType.INTRODUCE_VARIABLE:
            return 'Improve readability, reduce expression complexity'
        return 'Improve code quality'

    def format(self) -> str:
        return (f'[{self.label}] Line {self.target.position.start_line}\n'
                f'  {self.description}\n'
                f'  Expected benefit: {self.expected_benefit}\n')


@dataclass
class SeparationResult:
    """Output of :class:`~recombinator.analysis.separator.SideEffectSeparator`."""
    groups: Dict[EffectKind, EffectGroup]
    pure_computations: List[PureComputation]
    boundaries: List[EffectBoundary]
    pure_blocks: List[PureBlock]
    dependency_graph: Any
    stats: Dict[str, Any]

    def group(self, effect: EffectKind) -> Optional[EffectGroup]:
        return self.groups.get(effect)

    @property
    def boundary_count(self) -> int:
        return len(self.boundaries)

    def compile_time_evaluable(self) -> List[PureComputation]:
        return [c for c in self.pure_computations if c.compile_time_evaluable]
