"""
Complexity Metrics
==================

Read-only measures over statement lists.

Cognitive complexity:
    +depth  for each nesting construct entered (if/elseif/else, loops,
            switch/case, try/catch, closures), where depth counts the
            enclosing constructs including this one
    +1      per binary operator (logical operators count once more)
    +2      per call (function, method, static)
    +1      per array or property access
    +2      per ternary

Cyclomatic complexity (McCabe):
    1 + decision points (if, elseif, loops, non-default case, catch,
    ternary, logical operator, ``??``, non-default match arm)
"""

from dataclasses import dataclass
from typing import List, Optional, Union

from ..syntax.nodes import Node, NodeVisitor

NodesLike = Union[Node, List[Node]]

_NESTING_KINDS = frozenset({
    'If', 'ElseIf', 'Else', 'For', 'Foreach', 'While', 'DoWhile',
    'Switch', 'Case', 'Try', 'Catch',
})
_COGNITIVE_NESTING_KINDS = _NESTING_KINDS | {'Closure', 'ArrowFunction'}
_LOGICAL_OPS = frozenset({'&&', '||', 'and', 'or'})
_CALL_KINDS = frozenset({'FuncCall', 'MethodCall', 'StaticCall'})
_ACCESS_KINDS = frozenset({'ArrayDimFetch', 'PropertyFetch'})
_LOOP_KINDS = frozenset({'For', 'Foreach', 'While', 'DoWhile'})


def _as_list(nodes: NodesLike) -> List[Node]:
    return [nodes] if isinstance(nodes, Node) else [n for n in nodes if isinstance(n, Node)]


class _CognitiveVisitor(NodeVisitor):

    def __init__(self):
        self.complexity = 0
        self.level = 0

    def generic_visit(self, node):
        nesting = node.kind in _COGNITIVE_NESTING_KINDS
        if nesting:
            self.level += 1
            self.complexity += self.level
        kind = node.kind
        if kind == 'BinaryOp':
            self.complexity += 1
            if node.op in _LOGICAL_OPS:
                self.complexity += 1
        elif kind in _CALL_KINDS:
            self.complexity += 2
        elif kind in _ACCESS_KINDS:
            self.complexity += 1
        elif kind == 'Ternary':
            self.complexity += 2
        super().generic_visit(node)
        if nesting:
            self.level -= 1


class _CyclomaticVisitor(NodeVisitor):

    def __init__(self):
        self.complexity = 1

    def generic_visit(self, node):
        kind = node.kind
        if kind in ('If', 'ElseIf', 'Catch', 'Ternary') or kind in _LOOP_KINDS:
            self.complexity += 1
        elif kind == 'Case' and node.cond is not None:
            self.complexity += 1
        elif kind == 'BinaryOp' and (node.op in _LOGICAL_OPS or node.op == '??'):
            self.complexity += 1
        elif kind == 'Match':
            self.complexity += sum(1 for arm in node.arms if arm.conds is not None)
        super().generic_visit(node)


class NestingDepthVisitor(NodeVisitor):
    """Maximum depth of nested control structures."""

    def __init__(self):
        self.depth = 0
        self.max_depth = 0

    def generic_visit(self, node):
        nesting = node.kind in _NESTING_KINDS
        if nesting:
            self.depth += 1
            self.max_depth = max(self.max_depth, self.depth)
        super().generic_visit(node)
        if nesting:
            self.depth -= 1


def nesting_depth(nodes: NodesLike) -> int:
    visitor = NestingDepthVisitor()
    visitor.visit(_as_list(nodes))
    return visitor.max_depth


class CognitiveComplexityCalculator:

    def calculate(self, nodes: NodesLike) -> int:
        visitor = _CognitiveVisitor()
        visitor.visit(_as_list(nodes))
        return visitor.complexity

    @staticmethod
    def level(complexity: int) -> str:
        if complexity <= 2:
            return 'simple'
        if complexity <= 5:
            return 'medium'
        return 'complex'


class CyclomaticComplexityCalculator:

    def calculate(self, nodes: NodesLike) -> int:
        """Complexity of the whole input (one graph, one base path)."""
        visitor = _CyclomaticVisitor()
        visitor.visit(_as_list(nodes))
        return visitor.complexity

    @staticmethod
    def level(complexity: int) -> str:
        if complexity <= 10:
            return 'simple'
        if complexity <= 20:
            return 'moderate'
        if complexity <= 50:
            return 'complex'
        return 'very_complex'

    @staticmethod
    def is_acceptable(complexity: int, threshold: int = 10) -> bool:
        return complexity <= threshold

    def calculate_average(self, functions: List[NodesLike]) -> float:
        if not functions:
            return 0.0
        return sum(self.calculate(f) for f in functions) / len(functions)


def count_statements(nodes: NodesLike) -> int:
    count = 0
    stack = _as_list(nodes)
    while stack:
        node = stack.pop()
        if node.is_statement():
            count += 1
        stack.extend(node.child_nodes())
    return count


def count_lines(nodes: NodesLike) -> int:
    """Source lines spanned by the nodes (0 for synthesized nodes)."""
    starts = [n.position.start_line for n in _as_list(nodes) if n.position.start_line != -1]
    ends = [n.position.end_line for n in _as_list(nodes) if n.position.end_line != -1]
    if not starts or not ends:
        return 0
    return max(ends) - min(starts) + 1


@dataclass(frozen=True)
class ComplexityMetrics:
    cognitive: int
    cyclomatic: int
    lines: int = 0
    nesting: int = 0
    statements: int = 0
    name: Optional[str] = None

    @classmethod
    def from_nodes(cls, nodes: NodesLike, name: Optional[str] = None) -> 'ComplexityMetrics':
        return cls(
            cognitive=CognitiveComplexityCalculator().calculate(nodes),
            cyclomatic=CyclomaticComplexityCalculator().calculate(nodes),
            lines=count_lines(nodes),
            nesting=nesting_depth(nodes),
            statements=count_statements(nodes),
            name=name,
        )

    @property
    def overall(self) -> float:
        """Weighted score; cognitive complexity counts for 70%."""
        return self.cognitive * 0.7 + self.cyclomatic * 0.3

    @property
    def cognitive_level(self) -> str:
        return CognitiveComplexityCalculator.level(self.cognitive)

    @property
    def cyclomatic_level(self) -> str:
        return CyclomaticComplexityCalculator.level(self.cyclomatic)

    def compare_to(self, after: 'ComplexityMetrics') -> 'ComplexityComparison':
        return ComplexityComparison(self, after)

    def format(self) -> str:
        prefix = f'{self.name}: ' if self.name else ''
        return (f'{prefix}Cognitive: {self.cognitive} ({self.cognitive_level}), '
                f'Cyclomatic: {self.cyclomatic} ({self.cyclomatic_level}), '
                f'LOC: {self.lines}, Nesting: {self.nesting}')


@dataclass(frozen=True)
class ComplexityComparison:
    before: ComplexityMetrics
    after: ComplexityMetrics

    @property
    def cognitive_delta(self) -> int:
        return self.after.cognitive - self.before.cognitive

    @property
    def cyclomatic_delta(self) -> int:
        return self.after.cyclomatic - self.before.cyclomatic

    @property
    def cognitive_improvement(self) -> float:
        """Reduction in percent (positive = better)."""
        if self.before.cognitive == 0:
            return 0.0
        return -self.cognitive_delta / self.before.cognitive * 100

    @property
    def cyclomatic_improvement(self) -> float:
        if self.before.cyclomatic == 0:
            return 0.0
        return -self.cyclomatic_delta / self.before.cyclomatic * 100

    def is_improved(self) -> bool:
        return self.cognitive_delta < 0 or self.cyclomatic_delta < 0

    def is_worse(self) -> bool:
        return self.cognitive_delta > 0 or self.cyclomatic_delta > 0

    def format(self) -> str:
        return (f'Cognitive: {self.before.cognitive} -> {self.after.cognitive} '
                f'({self.cognitive_delta:+d}, {self.cognitive_improvement:.1f}%), '
                f'Cyclomatic: {self.before.cyclomatic} -> {self.after.cyclomatic} '
                f'({self.cyclomatic_delta:+d}, {self.cyclomatic_improvement:.1f}%)')
