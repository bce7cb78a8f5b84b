"""
Abstraction Recovery
====================

Finds blocks worth turning back into functions and suggests structural
refactorings. Nothing here rewrites the input tree:
:class:`FunctionExtractor` builds *new* nodes from clones.

Rules for function candidates:

    pure run of >= 5 statements              -> calculateX / calculateBlockN
    >= 3 statements of one effect kind
    (not pure, not mixed)                    -> printX, queryX, fetchX, ...

Candidates are ranked by :attr:`FunctionCandidate.priority`.
"""

import logging
from typing import List, Optional

from ..domain.artifacts import (
    EffectGroup, ExtractionResult, FunctionCandidate, ImprovementType,
    PureComputation, StructureImprovement,
)
from ..syntax.nodes import Node, NodeVisitor, clone_list, expression_stmt, name_node, variable
from .complexity import CognitiveComplexityCalculator
from .effects import EffectKind
from .separator import SideEffectSeparator
from .variables import VariableAnalyzer

logger = logging.getLogger(__name__)


def _lines(nodes: List[Node]):
    if not nodes:
        return 0, 0
    return max(nodes[0].position.start_line, 0), max(nodes[-1].position.end_line, 0)


def _return_variable(nodes: List[Node]) -> Optional[str]:
    """Variable assigned by the last statement of a block, if any."""
    last = nodes[-1] if nodes else None
    if last is not None and last.kind == 'Expression' and last.expr.kind == 'Assign':
        var = last.expr.var
        if var.kind == 'Variable' and isinstance(var.name, str):
            return '$' + var.name
    return None


class AbstractionRecovery:

    def __init__(self, separator: Optional[SideEffectSeparator] = None,
                 min_pure_block_size: int = 5, min_effect_block_size: int = 3):
        self.separator = separator or SideEffectSeparator()
        self.complexity = CognitiveComplexityCalculator()
        self.variables = VariableAnalyzer()
        self.min_pure_block_size = min_pure_block_size
        self.min_effect_block_size = min_effect_block_size

    def analyze(self, ast: List[Node]) -> List[FunctionCandidate]:
        separation = self.separator.separate(ast)
        candidates = []
        for computation in separation.pure_computations:
            candidate = self._from_pure_block(computation)
            if candidate is not None:
                candidates.append(candidate)
        for group in separation.groups.values():
            candidate = self._from_effect_group(group)
            if candidate is not None:
                candidates.append(candidate)
        candidates.sort(key=lambda c: c.priority, reverse=True)
        logger.debug("Found %d function candidates", len(candidates))
        return candidates

    def _from_pure_block(self, computation: PureComputation) -> Optional[FunctionCandidate]:
        nodes = computation.nodes
        if len(nodes) < self.min_pure_block_size:
            return None
        return self._candidate(nodes, EffectKind.PURE, _return_variable(nodes))

    def _from_effect_group(self, group: EffectGroup) -> Optional[FunctionCandidate]:
        if group.effect in (EffectKind.PURE, EffectKind.MIXED):
            return None
        if group.size < self.min_effect_block_size:
            return None
        return self._candidate(group.nodes, group.effect, None)

    def _candidate(self, nodes: List[Node], effect: EffectKind,
                   return_variable: Optional[str]) -> FunctionCandidate:
        usage = self.variables.analyze(nodes)
        start, end = _lines(nodes)
        return FunctionCandidate(
            nodes=nodes,
            effect=effect,
            size=len(nodes),
            complexity=self.complexity.calculate(nodes),
            used_variables=usage['used'],
            defined_variables=usage['defined'],
            return_variable=return_variable,
            start_line=start,
            end_line=end,
        )


_DOC_DESCRIPTIONS = {
    EffectKind.PURE: 'Pure computation (no side effects)',
    EffectKind.IO: 'I/O operations',
    EffectKind.EXTERNAL_STATE: 'External state access',
    EffectKind.DATABASE: 'Database operations',
    EffectKind.HTTP: 'HTTP requests',
    EffectKind.NON_DETERMINISTIC: 'Non-deterministic operations',
}


class FunctionExtractor:
    """Builds a function declaration and its call site from a candidate."""

    def extract(self, candidate: FunctionCandidate, name: Optional[str] = None) -> ExtractionResult:
        name = name or candidate.suggest_name()
        parameters = candidate.parameters
        return ExtractionResult(
            function=self._function(candidate, name, parameters),
            call=self._call(candidate, name, parameters),
            name=name,
            parameters=parameters,
            return_variable=candidate.return_variable,
        )

    def _function(self, candidate: FunctionCandidate, name: str, parameters: List[str]) -> Node:
        params = [Node('Param', var=variable(p.lstrip('$')), by_ref=False,
                       variadic=False, flags=[]) for p in parameters]
        stmts = clone_list(candidate.nodes)
        if candidate.return_variable:
            stmts.append(Node('Return', expr=variable(candidate.return_variable.lstrip('$'))))
        function = Node('Function', name=name, by_ref=False, params=params, stmts=stmts)
        function.set_attr('comments', [self._doc_comment(candidate, parameters)])
        return function

    @staticmethod
    def _call(candidate: FunctionCandidate, name: str, parameters: List[str]) -> Node:
        args = [Node('Arg', value=variable(p.lstrip('$')), unpack=False, by_ref=False)
                for p in parameters]
        call = Node('FuncCall', name=name_node(name), args=args)
        if candidate.return_variable:
            call = Node('Assign', var=variable(candidate.return_variable.lstrip('$')), expr=call)
        return expression_stmt(call)

    @staticmethod
    def _doc_comment(candidate: FunctionCandidate, parameters: List[str]) -> str:
        lines = ['/**', ' * ' + _DOC_DESCRIPTIONS.get(candidate.effect, 'Extracted function'), ' *']
        lines.extend(f' * @param mixed {p}' for p in parameters)
        if candidate.return_variable:
            lines.append(' * @return mixed')
        lines.extend([
            ' *',
            f' * Complexity: {candidate.complexity}',
            f' * Effect type: {candidate.effect.value}',
            f' * Original lines: {candidate.start_line}-{candidate.end_line}',
            ' */',
        ])
        return '\n'.join(lines)


_NESTING_KINDS = frozenset({
    'If', 'While', 'DoWhile', 'For', 'Foreach', 'Switch', 'Try',
})
_LOGICAL_OPS = frozenset({'&&', '||', 'and', 'or', 'xor'})


def count_logical_operators(node: Node) -> int:
    count = 0
    stack = [node]
    while stack:
        current = stack.pop()
        if current.kind == 'BinaryOp' and current.op in _LOGICAL_OPS:
            count += 1
        stack.extend(current.child_nodes())
    return count


class _StructureVisitor(NodeVisitor):

    def __init__(self, advisor: 'StructureAdvisor'):
        self.advisor = advisor
        self.depth = 0
        self.improvements: List[StructureImprovement] = []

    def generic_visit(self, node):
        nesting = node.kind in _NESTING_KINDS
        if nesting:
            self.depth += 1
        self.advisor.inspect(node, self.depth, self.improvements)
        super().generic_visit(node)
        if nesting:
            self.depth -= 1


class StructureAdvisor:
    """
    Suggests refactorings for a program.

    Rules:
        extract function      every viable function candidate
        reduce nesting        an ``if`` more than ``max_nesting`` levels deep
        simplify condition    a condition with >= ``max_logical_ops`` logical operators
        introduce variable    an assigned expression with cognitive score
                              >= ``expression_threshold``
        split logic           a function with cognitive score > ``function_threshold``
    """

    def __init__(self, recovery: Optional[AbstractionRecovery] = None,
                 max_nesting: int = 3, max_logical_ops: int = 4,
                 expression_threshold: int = 8, function_threshold: int = 20):
        self.recovery = recovery or AbstractionRecovery()
        self.complexity = CognitiveComplexityCalculator()
        self.max_nesting = max_nesting
        self.max_logical_ops = max_logical_ops
        self.expression_threshold = expression_threshold
        self.function_threshold = function_threshold

    def suggest(self, ast: List[Node]) -> List[StructureImprovement]:
        improvements = []
        for candidate in self.recovery.analyze(ast):
            if not candidate.is_viable():
                continue
            improvements.append(StructureImprovement(
                ImprovementType.EXTRACT_FUNCTION,
                f'Extract {candidate.size} {candidate.effect.value} statements '
                f'into {candidate.suggest_name()}()',
                candidate.nodes[0],
                {'complexity_reduction': candidate.complexity,
                 'candidate': candidate,
                 'priority': 7 if candidate.effect.is_pure() else 5},
            ))
        visitor = _StructureVisitor(self)
        visitor.visit(ast)
        improvements.extend(visitor.improvements)
        improvements.sort(key=lambda i: i.priority, reverse=True)
        return improvements

    def inspect(self, node: Node, depth: int, out: List[StructureImprovement]) -> None:
        kind = node.kind
        if kind == 'If' and depth > self.max_nesting:
            out.append(StructureImprovement(
                ImprovementType.REDUCE_NESTING,
                f'Reduce nesting depth from {depth} to {self.max_nesting}',
                node,
                {'current_depth': depth, 'target_depth': self.max_nesting,
                 'depth_reduction': depth - self.max_nesting, 'priority': 8},
            ))
        if kind in ('If', 'ElseIf', 'While', 'DoWhile', 'Ternary') and node.cond is not None:
            operators = count_logical_operators(node.cond)
            if operators >= self.max_logical_ops:
                out.append(StructureImprovement(
                    ImprovementType.SIMPLIFY_CONDITION,
                    f'Complex condition ({operators} logical operators), '
                    f'consider introducing variables',
                    node,
                    {'logical_operators': operators, 'priority': 6},
                ))
        if kind in ('Assign', 'AssignOp'):
            score = self.complexity.calculate(node.expr)
            if score >= self.expression_threshold:
                out.append(StructureImprovement(
                    ImprovementType.INTRODUCE_VARIABLE,
                    f'Complex expression (complexity: {score}) could be split '
                    f'into intermediate variables',
                    node,
                    {'complexity': score, 'priority': 7},
                ))
        if kind in ('Function', 'ClassMethod'):
            score = self.complexity.calculate(node.stmts or [])
            if score > self.function_threshold:
                out.append(StructureImprovement(
                    ImprovementType.SPLIT_LOGIC,
                    f'Function is too complex (complexity: {score}), consider splitting',
                    node,
                    {'complexity': score, 'priority': 9},
                ))
