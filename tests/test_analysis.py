"""
Tests for the read-only analysis layer.

Validates:
  - cognitive and cyclomatic complexity, nesting depth and comparisons
  - variable usage analysis
  - the statement dependency graph (edges, reordering, cycle-tolerant sort)
  - side-effect separation into groups, boundaries and pure runs
  - abstraction recovery, function extraction and structure advice
"""

import pytest

from recombinator.analysis import (
    AbstractionRecovery, CognitiveComplexityCalculator, ComplexityMetrics,
    CyclomaticComplexityCalculator, EffectDependencyGraph, EffectKind,
    FunctionExtractor, PureBlockFinder, SideEffectSeparator, StructureAdvisor,
    VariableAnalyzer, mark_effects, nesting_depth,
)
from recombinator.analysis.dependency_graph import graph_id
from recombinator.domain.artifacts import ImprovementType
from recombinator.syntax import parse_or_raise, print_nodes


def php(src: str):
    return parse_or_raise('<?php ' + src)


# ═══════════════════════════════════════════════════════════════════
#  Complexity
# ═══════════════════════════════════════════════════════════════════

class TestComplexity:

    def setup_method(self):
        self.cognitive = CognitiveComplexityCalculator()
        self.cyclomatic = CyclomaticComplexityCalculator()

    @pytest.mark.parametrize('src,cognitive,cyclomatic', [
        ('echo 1;', 0, 1),
        ('if ($a && $b) { echo $c; }', 3, 3),
        ('if ($a) { if ($b) { echo 1; } }', 3, 3),
        ('echo strlen($s);', 2, 1),
        ('$x = $a ? 1 : 2;', 2, 2),
        ('$x = $a ?? $b;', 1, 2),
        ('foreach ($xs as $x) { echo $x[0]; }', 2, 2),
    ])
    def test_scores(self, src, cognitive, cyclomatic):
        nodes = php(src)
        assert self.cognitive.calculate(nodes) == cognitive
        assert self.cyclomatic.calculate(nodes) == cyclomatic

    def test_nesting_depth(self):
        assert nesting_depth(php('echo 1;')) == 0
        assert nesting_depth(php('if ($a) { while ($b) { echo 1; } }')) == 2

    @pytest.mark.parametrize('score,level', [(2, 'simple'), (5, 'medium'), (6, 'complex')])
    def test_cognitive_levels(self, score, level):
        assert CognitiveComplexityCalculator.level(score) == level

    @pytest.mark.parametrize('score,level', [
        (10, 'simple'), (11, 'moderate'), (21, 'complex'), (51, 'very_complex'),
    ])
    def test_cyclomatic_levels(self, score, level):
        assert CyclomaticComplexityCalculator.level(score) == level

    def test_average(self):
        assert self.cyclomatic.calculate_average([]) == 0.0
        assert self.cyclomatic.calculate_average([php('echo 1;'), php('if ($a) {}')]) == 1.5

    def test_metrics_from_nodes(self):
        metrics = ComplexityMetrics.from_nodes(
            parse_or_raise('<?php\nif ($a) {\n    echo 1;\n}\n'), name='main')
        assert metrics.cognitive == 1
        assert metrics.cyclomatic == 2
        assert metrics.lines == 3
        assert metrics.nesting == 1
        assert metrics.statements == 2
        assert metrics.format().startswith('main: Cognitive: 1 (simple)')

    def test_overall_weighting(self):
        assert ComplexityMetrics(cognitive=10, cyclomatic=20).overall == pytest.approx(13.0)

    def test_comparison(self):
        comparison = ComplexityMetrics(4, 2).compare_to(ComplexityMetrics(2, 2))
        assert comparison.cognitive_delta == -2
        assert comparison.cognitive_improvement == pytest.approx(50.0)
        assert comparison.is_improved()
        assert not comparison.is_worse()
        assert comparison.format() == \
            'Cognitive: 4 -> 2 (-2, 50.0%), Cyclomatic: 2 -> 2 (+0, 0.0%)'


# ═══════════════════════════════════════════════════════════════════
#  Variable Analysis
# ═══════════════════════════════════════════════════════════════════

class TestVariableAnalyzer:

    def setup_method(self):
        self.analyzer = VariableAnalyzer()

    def test_used_and_defined(self):
        nodes = php('$a = $b + 1; $c = $a * 2; echo $c, $d;')
        assert self.analyzer.analyze(nodes) == {
            'used': ['$b', '$a', '$c', '$d'],
            'defined': ['$a', '$c'],
        }
        assert self.analyzer.parameters(nodes) == ['$b', '$d']

    def test_locals(self):
        assert self.analyzer.locals(php('$a = 1; $b = $a;')) == ['$b']

    def test_superglobals_ignored(self):
        assert self.analyzer.analyze(php("$x = $_GET['q'];")) == {'used': [], 'defined': ['$x']}

    def test_functions_are_opaque(self):
        usage = self.analyzer.analyze(php('function f() { $y = 1; } $z = 2;'))
        assert usage['defined'] == ['$z']

    def test_closure_contributes_captures(self):
        usage = self.analyzer.analyze(php('$f = function () use ($k) { return $m; };'))
        assert usage == {'used': ['$k'], 'defined': ['$f']}

    def test_foreach_targets_are_written(self):
        nodes = php('foreach ($items as $k => $v) { echo $v; }')
        assert self.analyzer.analyze(nodes) == {
            'used': ['$items', '$v'],
            'defined': ['$k', '$v'],
        }
        assert self.analyzer.parameters(nodes) == ['$items']


# ═══════════════════════════════════════════════════════════════════
#  Dependency Graph
# ═══════════════════════════════════════════════════════════════════

class TestDependencyGraph:

    def test_edges_follow_last_definition(self):
        nodes = php('$a = 1; $b = $a + 1; echo $b;')
        graph = EffectDependencyGraph().build(nodes)
        ids = [graph_id(n) for n in nodes]
        assert graph.dependencies(ids[1]) == [ids[0]]
        assert graph.dependencies(ids[2]) == [ids[1]]
        assert graph.dependents(ids[0]) == [ids[1]]
        assert graph.topological_sort() == ids
        assert graph.cycles == []

    def test_ids_are_stable_across_parses(self):
        src = '$a = 1; echo $a;'
        first = EffectDependencyGraph().build(php(src))
        second = EffectDependencyGraph().build(php(src))
        assert list(first.nodes) == list(second.nodes)
        assert all(gid.startswith(('Expression_', 'Echo_')) for gid in first.nodes)

    def test_self_update_depends_on_previous_definition(self):
        nodes = php('$a = 1; $a = $a + 1;')
        graph = EffectDependencyGraph().build(nodes)
        assert graph.dependencies(graph_id(nodes[1])) == [graph_id(nodes[0])]

    def test_can_reorder_is_transitive(self):
        nodes = php('$a = time(); $b = $a + 1; $c = 2;')
        graph = EffectDependencyGraph().build(nodes)
        ids = [graph_id(n) for n in nodes]
        assert graph.effects[ids[1]] is EffectKind.PURE
        assert not graph.can_reorder(ids[0])
        assert not graph.can_reorder(ids[1])
        assert graph.can_reorder(ids[2])
        assert not graph.can_reorder('Nope_0_0')

    def test_nodes_by_effect(self):
        nodes = php('$a = 1; echo $a;')
        groups = EffectDependencyGraph().build(nodes).nodes_by_effect()
        assert groups[EffectKind.PURE] == [graph_id(nodes[0])]
        assert groups[EffectKind.IO] == [graph_id(nodes[1])]

    def test_cycles_are_tolerated(self):
        nodes = php('$a = 1; $b = 2;')
        graph = EffectDependencyGraph().build(nodes)
        first, second = (graph_id(n) for n in nodes)
        graph.add_edge(first, second)
        graph.add_edge(second, first)
        order = graph.topological_sort()
        assert sorted(order) == sorted([first, second])
        assert graph.cycles == [[first, second, first]]


# ═══════════════════════════════════════════════════════════════════
#  Side-Effect Separation
# ═══════════════════════════════════════════════════════════════════

class TestSeparator:

    def setup_method(self):
        self.result = SideEffectSeparator().separate(php('$a = 1; $b = 2; echo $a; $c = 3;'))

    def test_groups_ordered_by_priority(self):
        assert list(self.result.groups) == [EffectKind.PURE, EffectKind.IO]
        pure = self.result.group(EffectKind.PURE)
        assert pure.size == 3
        assert pure.transition_count == 1
        assert pure.reorderable_count == 3
        assert pure.reorderable_percentage == 100.0
        assert self.result.group(EffectKind.IO).reorderable_count == 0

    def test_boundaries(self):
        assert self.result.boundary_count == 2
        first, second = self.result.boundaries
        assert (first.from_effect, first.to_effect, first.position) == \
            (EffectKind.PURE, EffectKind.IO, 2)
        assert first.is_pure_to_impure()
        assert second.is_impure_to_pure()
        assert second.distance == 1

    def test_pure_runs(self):
        assert [(b.start, b.end, b.size) for b in self.result.pure_blocks] == [(0, 1, 2), (3, 3, 1)]
        assert [c.id for c in self.result.pure_computations] == ['pure_block_0', 'pure_block_1']
        assert len(self.result.compile_time_evaluable()) == 2

    def test_stats(self):
        assert self.result.stats == {
            'total_nodes': 4,
            'total_groups': 2,
            'effect_counts': {'pure': 3, 'io': 1},
            'total_pure_computations': 2,
            'total_pure_nodes': 3,
            'pure_percentage': 75.0,
            'compile_time_evaluable': 2,
        }

    def test_dependent_run_is_not_compile_time(self):
        result = SideEffectSeparator().separate(php('$t = time(); $u = $t + 1;'))
        assert [c.compile_time_evaluable for c in result.pure_computations] == [False]
        assert result.pure_computations[0].has_dependencies()


class TestPureBlockFinder:

    def test_min_block_size(self):
        nodes = php('$a = 1; echo 1; $b = 2; $c = 3;')
        mark_effects(nodes)
        finder = PureBlockFinder(min_block_size=2)
        blocks = finder.find_blocks(nodes)
        assert [(b.start, b.end) for b in blocks] == [(2, 3)]
        assert finder.largest_block() is blocks[0]
        assert finder.stats()['total_pure_nodes'] == 2

    def test_nested_blocks(self):
        nodes = php('if ($x) { $a = 1; echo $a; } function f() { $a = 1; $b = 2; }')
        mark_effects(nodes)
        nested = PureBlockFinder().find_nested_blocks(nodes)
        assert nested['if'][0][0].context == 'if_then'
        assert nested['function'][0][0].context == 'function_f'
        assert nested['function'][0][0].size == 2

    def test_empty_stats(self):
        assert PureBlockFinder().stats() == {
            'total_blocks': 0,
            'total_pure_nodes': 0,
            'average_block_size': 0.0,
            'largest_block_size': 0,
            'smallest_block_size': 0,
        }


# ═══════════════════════════════════════════════════════════════════
#  Abstraction Recovery
# ═══════════════════════════════════════════════════════════════════

PURE_RUN = '$a = 1; $b = $a + 2; $c = $b * 3; $d = $c - 4; $total = $d + $x;'


class TestAbstractionRecovery:

    def test_pure_run_candidate(self):
        candidates = AbstractionRecovery().analyze(php(PURE_RUN))
        assert len(candidates) == 1
        candidate = candidates[0]
        assert candidate.effect is EffectKind.PURE
        assert candidate.size == 5
        assert candidate.return_variable == '$total'
        assert candidate.suggest_name() == 'calculateTotal'
        assert candidate.parameters == ['$x']
        assert candidate.is_viable()

    def test_short_pure_run_ignored(self):
        assert AbstractionRecovery().analyze(php('$a = 1; $b = 2;')) == []

    def test_effect_group_candidate(self):
        candidates = AbstractionRecovery().analyze(php('echo 1; echo 2; echo 3;'))
        assert [c.effect for c in candidates] == [EffectKind.IO]
        assert candidates[0].suggest_name() == 'printBlock1'

    def test_pure_candidates_rank_first(self):
        candidates = AbstractionRecovery().analyze(php(PURE_RUN + ' echo 1; echo 2; echo 3;'))
        assert [c.effect for c in candidates] == [EffectKind.PURE, EffectKind.IO]

    def test_extraction(self):
        nodes = php(PURE_RUN)
        candidate = AbstractionRecovery().analyze(nodes)[0]
        result = FunctionExtractor().extract(candidate)
        assert result.name == 'calculateTotal'
        assert result.parameters == ['$x']
        assert print_nodes([result.call]) == '$total = calculateTotal($x);'
        function = print_nodes([result.function])
        assert 'function calculateTotal($x)' in function
        assert 'return $total;' in function
        assert ' * @param mixed $x' in function
        # the input tree is untouched
        assert print_nodes(nodes).startswith('$a = 1;')


class TestStructureAdvisor:

    def setup_method(self):
        self.advisor = StructureAdvisor()

    def test_reduce_nesting(self):
        improvements = self.advisor.suggest(php(
            'if ($a) { if ($b) { if ($c) { if ($d) { echo 1; } } } }'))
        assert [i.type for i in improvements] == [ImprovementType.REDUCE_NESTING]
        assert improvements[0].metadata['current_depth'] == 4
        assert improvements[0].format().startswith('[Reduce Nesting] Line 1')

    def test_simplify_condition(self):
        improvements = self.advisor.suggest(php('if ($a && $b && $c && $d && $e) { echo 1; }'))
        assert [i.type for i in improvements] == [ImprovementType.SIMPLIFY_CONDITION]
        assert improvements[0].metadata['logical_operators'] == 4

    def test_introduce_variable(self):
        improvements = self.advisor.suggest(php('$x = f($a) + g($b) + h($c);'))
        assert [i.type for i in improvements] == [ImprovementType.INTRODUCE_VARIABLE]
        assert improvements[0].metadata['complexity'] == 8

    def test_split_logic_ranks_first(self):
        body = '$x = f($a) + g($a) + h($a); ' * 3
        improvements = self.advisor.suggest(php('function big($a) { ' + body + '}'))
        assert improvements[0].type == ImprovementType.SPLIT_LOGIC
        assert improvements[0].metadata['complexity'] == 24

    def test_extract_function(self):
        improvements = self.advisor.suggest(php('echo 1; echo 2; echo 3;'))
        assert improvements[0].type == ImprovementType.EXTRACT_FUNCTION
        assert improvements[0].description == 'Extract 3 io statements into printBlock1()'
