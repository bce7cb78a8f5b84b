"""
Tests for the pass engine.

Covers:
    1. traverser.py  - hook results, pending flags, sweep, protocol errors
    2. connecting.py - parent and sibling links
    3. registry.py   - registration table and stage resolution
    4. pipeline.py   - rounds, convergence, round cap, diagnostics
    5. diff.py       - change counting and colored diffs
"""

import pytest

from recombinator.config import OptimizerConfig
from recombinator.engine import (
    STAGE_MAIN, STAGE_READABILITY, Action, PassContext, PassInfo, PassRegistry,
    Pipeline, PipelineStatus, Replace, ReplaceMany, Traverser, Visitor,
    colorize, connect, make_diff, mark_remove, mark_replace, sweep,
)
from recombinator.engine.diff import count_changes
from recombinator.engine.traverser import normalize
from recombinator.errors import ConfigError, TraversalError
from recombinator.syntax import Node, parse_or_raise, print_nodes


def code(src: str):
    return parse_or_raise('<?php ' + src)


# ═══════════════════════════════════════════════════════════════════
#  Test Fixtures: Toy Visitors
# ═══════════════════════════════════════════════════════════════════

class RecordingVisitor(Visitor):
    def __init__(self):
        super().__init__()
        self.entered = []
        self.left = []

    def enter(self, node):
        self.entered.append(node.kind)

    def leave(self, node):
        self.left.append(node.kind)


class EchoRemover(Visitor):
    def enter(self, node):
        if node.kind == 'Echo':
            return Action.REMOVE


class SkipFunctions(RecordingVisitor):
    def enter(self, node):
        super().enter(node)
        if node.kind == 'Function':
            return Action.SKIP_CHILDREN


class StopAtFirstEcho(Visitor):
    def __init__(self):
        super().__init__()
        self.seen = 0

    def enter(self, node):
        if node.kind == 'Echo':
            self.seen += 1
            return Action.STOP


class IntDoubler(Visitor):
    def leave(self, node):
        if node.kind == 'Int':
            return Replace(Node('Int', value=node.value * 2))


class EchoSplitter(Visitor):
    def leave(self, node):
        if node.kind == 'Echo' and len(node.exprs) > 1:
            return ReplaceMany([Node('Echo', exprs=[e]) for e in node.exprs])


class BadSplitter(Visitor):
    """Returns two nodes for a single-node field."""

    def leave(self, node):
        if node.kind == 'Variable':
            return [Node('Variable', name='a'), Node('Variable', name='b')]


class PreviousRemover(Visitor):
    """Flags the statement before every ``return``."""

    def enter(self, node):
        if node.kind == 'Return' and node.previous_sibling is not None:
            mark_remove(node.previous_sibling)


class CountDown(Visitor):
    """Decrements every positive integer literal once per application."""
    id = 'count_down'

    def leave(self, node):
        if node.kind == 'Int' and node.value > 0:
            self.context.count(self.id, 'decrements')
            return Node('Int', value=node.value - 1)


def toy_registry() -> PassRegistry:
    return PassRegistry([
        PassInfo('count_down', 'Count down', 'decrements literals', CountDown),
    ])


# ═══════════════════════════════════════════════════════════════════
#  Traverser
# ═══════════════════════════════════════════════════════════════════

class TestTraverser:

    def test_enter_and_leave_order(self):
        visitor = RecordingVisitor()
        Traverser(visitor).traverse(code('echo $a + 1;'))
        assert visitor.entered == ['Echo', 'BinaryOp', 'Variable', 'Int']
        assert visitor.left == ['Variable', 'Int', 'BinaryOp', 'Echo']

    def test_remove(self):
        nodes = Traverser(EchoRemover()).traverse(code('echo 1; $a = 2; echo 3;'))
        assert print_nodes(nodes) == '$a = 2;'

    def test_skip_children(self):
        visitor = SkipFunctions()
        Traverser(visitor).traverse(code('function f() { echo 1; } echo 2;'))
        assert visitor.entered.count('Echo') == 1
        assert 'Function' in visitor.left

    def test_stop(self):
        visitor = StopAtFirstEcho()
        nodes = Traverser(visitor).traverse(code('echo 1; echo 2; echo 3;'))
        assert visitor.seen == 1
        assert len(nodes) == 3

    def test_replace(self):
        nodes = Traverser(IntDoubler()).traverse(code('echo 2 + 3;'))
        assert print_nodes(nodes) == 'echo 4 + 6;'

    def test_replace_many_in_statement_list(self):
        nodes = Traverser(EchoSplitter()).traverse(code('echo 1, 2;'))
        assert print_nodes(nodes) == 'echo 1;\necho 2;'

    def test_many_nodes_for_single_field_is_an_error(self):
        with pytest.raises(TraversalError):
            Traverser(BadSplitter()).traverse(code('echo $x + 1;'))

    def test_visitors_run_in_sequence(self):
        nodes = Traverser(IntDoubler(), IntDoubler()).traverse(code('echo 1;'))
        assert print_nodes(nodes) == 'echo 4;'

    def test_mark_remove_resolved(self):
        nodes = connect(code('$a = 1; return 2;'))
        nodes = Traverser(PreviousRemover()).traverse(nodes)
        nodes = sweep(nodes)
        assert print_nodes(nodes) == 'return 2;'

    def test_sweep_resolves_replace_flag(self):
        nodes = code('echo 1; echo 2;')
        mark_replace(nodes[0], Node('Echo', exprs=[Node('Int', value=9)]))
        assert print_nodes(sweep(nodes)) == 'echo 9;\necho 2;'

    def test_sweep_replace_with_none_removes(self):
        nodes = code('echo 1; echo 2;')
        mark_replace(nodes[1], None)
        assert print_nodes(sweep(nodes)) == 'echo 1;'

    def test_normalize(self):
        node = Node('Int', value=1)
        assert normalize(None, node) == (Action.KEEP, None)
        assert normalize(node, node) == (Action.KEEP, None)
        with pytest.raises(TraversalError):
            normalize(42, node)


class TestConnecting:

    def test_parent_and_siblings(self):
        nodes = connect(code('echo $a; echo $b;'))
        first, second = nodes
        assert first.exprs[0].parent is first
        assert first.next_sibling is second
        assert second.previous_sibling is first
        assert first.previous_sibling is None

    def test_ancestors(self):
        nodes = connect(code('if ($a) { echo 1 + 2; }'))
        literal = nodes[0].stmts[0].exprs[0].left
        assert [n.kind for n in literal.ancestors()] == ['BinaryOp', 'Echo', 'If']


# ═══════════════════════════════════════════════════════════════════
#  Registry
# ═══════════════════════════════════════════════════════════════════

class TestRegistry:

    def setup_method(self):
        self.registry = PassRegistry([
            PassInfo('a', 'A', '', Visitor),
            PassInfo('b', 'B', '', Visitor),
            PassInfo('r', 'R', '', Visitor, stage=STAGE_READABILITY),
        ])

    def test_order_and_stage(self):
        assert self.registry.ids() == ['a', 'b']
        assert self.registry.ids(STAGE_READABILITY) == ['r']
        assert len(self.registry) == 3
        assert 'a' in self.registry

    def test_duplicate_registration(self):
        with pytest.raises(ValueError):
            self.registry.register(PassInfo('a', 'A', '', Visitor))

    def test_unknown_pass(self):
        with pytest.raises(ConfigError):
            self.registry.get('nope')

    def test_resolve(self):
        assert self.registry.resolve(None) == ['a', 'b']
        assert self.registry.resolve(['b']) == ['b']
        with pytest.raises(ConfigError):
            self.registry.resolve(['r'], STAGE_MAIN)

    def test_create_passes_context(self):
        context = PassContext()
        visitor = self.registry.create('a', context)
        assert visitor.context is context


# ═══════════════════════════════════════════════════════════════════
#  Pipeline
# ═══════════════════════════════════════════════════════════════════

class TestPipeline:

    def test_converges(self):
        pipeline = Pipeline(toy_registry(), OptimizerConfig())
        result = pipeline.run(code('echo 2;'))
        assert print_nodes(result.nodes) == 'echo 0;'
        assert result.status is PipelineStatus.CONVERGED
        assert result.converged and not result.still_changing
        assert result.rounds == 3
        assert result.pass_changes == {'count_down': 4}

    def test_round_cap(self):
        pipeline = Pipeline(toy_registry(), OptimizerConfig(max_rounds=3))
        result = pipeline.run(code('echo 10;'))
        assert print_nodes(result.nodes) == 'echo 7;'
        assert result.still_changing
        assert result.rounds == 3

    def test_single_round(self):
        result = Pipeline(toy_registry(), OptimizerConfig(max_rounds=1)).run(code('echo 5;'))
        assert print_nodes(result.nodes) == 'echo 4;'
        assert result.status is PipelineStatus.MAX_ROUNDS

    def test_unchanged_program_converges_in_one_round(self):
        result = Pipeline(toy_registry()).run(code('echo $a;'))
        assert result.rounds == 1
        assert result.converged
        assert result.pass_changes == {}

    def test_context_counters(self):
        context = PassContext()
        Pipeline(toy_registry()).run(code('echo 2;'), context)
        assert context.stats['count_down']['decrements'] == 2

    def test_diffs_only_with_diagnostics(self):
        quiet = Pipeline(toy_registry()).run(code('echo 1;'))
        assert quiet.diffs == []
        loud = Pipeline(toy_registry(), OptimizerConfig(diagnostics=True)).run(code('echo 1;'))
        assert len(loud.diffs) == 1
        diff = loud.diffs[0]
        assert diff.pass_id == 'count_down'
        assert diff.round == 1
        assert (diff.added, diff.removed) == (1, 1)
        assert '-echo 1;' in diff.text and '+echo 0;' in diff.text

    def test_unknown_configured_pass(self):
        with pytest.raises(ConfigError):
            Pipeline(toy_registry(), OptimizerConfig(passes=['missing']))


class TestDiff:

    def test_count_changes(self):
        assert count_changes('a\nb\nc', 'a\nx\nc\nd') == (2, 1)
        assert count_changes('same', 'same') == (0, 0)

    def test_make_diff(self):
        diff = make_diff('p', 2, 'echo 1;', 'echo 2;')
        assert diff.changed_lines == 2
        assert diff.text.startswith('--- p (before)')

    def test_colorize(self):
        text = colorize('--- a\n+++ b\n-old\n+new\n same')
        assert '\033[32m+new' in text
        assert '\033[31m-old' in text
        assert text.endswith(' same')
