"""
Tests for the side-effect lattice and the classifier.
"""

import itertools
import pytest

from recombinator.analysis.classifier import SideEffectClassifier, mark_effects
from recombinator.analysis.effects import EffectKind, combine_all
from recombinator.syntax import parse_expression, parse_or_raise, walk

ALL_KINDS = list(EffectKind)


def stmt(src: str):
    return parse_or_raise('<?php ' + src)[0]


# ═══════════════════════════════════════════════════════════════════
#  Lattice
# ═══════════════════════════════════════════════════════════════════

class TestEffectLattice:

    @pytest.mark.parametrize('kind', ALL_KINDS)
    def test_pure_is_identity(self, kind):
        assert EffectKind.PURE.combine(kind) is kind
        assert kind.combine(EffectKind.PURE) is kind

    @pytest.mark.parametrize('kind', ALL_KINDS)
    def test_mixed_absorbs(self, kind):
        assert EffectKind.MIXED.combine(kind) is EffectKind.MIXED
        assert kind.combine(EffectKind.MIXED) is EffectKind.MIXED

    @pytest.mark.parametrize('kind', ALL_KINDS)
    def test_idempotent(self, kind):
        assert kind.combine(kind) is kind

    def test_commutative_and_associative(self):
        for a, b in itertools.product(ALL_KINDS, repeat=2):
            assert a.combine(b) is b.combine(a)
        for a, b, c in itertools.product(ALL_KINDS, repeat=3):
            assert a.combine(b).combine(c) is a.combine(b.combine(c))

    def test_distinct_effects_become_mixed(self):
        assert EffectKind.IO.combine(EffectKind.DATABASE) is EffectKind.MIXED

    def test_combine_all(self):
        assert combine_all([]) is EffectKind.PURE
        assert combine_all([EffectKind.PURE, EffectKind.IO, EffectKind.IO]) is EffectKind.IO

    def test_priority_order(self):
        assert [k.priority for k in ALL_KINDS] == list(range(8))

    def test_properties(self):
        assert EffectKind.PURE.is_pure()
        assert EffectKind.EXTERNAL_STATE.is_cacheable()
        assert not EffectKind.IO.is_cacheable()
        assert not EffectKind.NON_DETERMINISTIC.is_deterministic()
        assert EffectKind.IO.label == 'Output'
        assert EffectKind.DATABASE.description == 'Database access'


# ═══════════════════════════════════════════════════════════════════
#  Classifier
# ═══════════════════════════════════════════════════════════════════

class TestClassifier:

    def setup_method(self):
        self.classifier = SideEffectClassifier()

    def classify(self, src: str) -> EffectKind:
        return self.classifier.classify(parse_expression(src))

    @pytest.mark.parametrize('src,expected', [
        ('strlen("abc")', EffectKind.PURE),
        ('time()', EffectKind.NON_DETERMINISTIC),
        ('rand(1, 6)', EffectKind.NON_DETERMINISTIC),
        ("file_get_contents('a.txt')", EffectKind.IO),
        ("mysqli_query($db, 'SELECT 1')", EffectKind.DATABASE),
        ('curl_exec($ch)', EffectKind.HTTP),
        ("header('Location: /')", EffectKind.GLOBAL_STATE),
        ('my_function(1)', EffectKind.MIXED),
        ('$f(1)', EffectKind.MIXED),
    ])
    def test_function_calls(self, src, expected):
        assert self.classify(src) is expected

    def test_call_combines_arguments(self):
        assert self.classify('strlen(time())') is EffectKind.NON_DETERMINISTIC
        assert self.classify("strtoupper($_GET['q'])") is EffectKind.EXTERNAL_STATE

    @pytest.mark.parametrize('src,expected', [
        ("$db->query('SELECT 1')", EffectKind.DATABASE),
        ('$pdo->prepare($sql)', EffectKind.DATABASE),
        ("$client->get('/')", EffectKind.HTTP),
        ('$obj->render()', EffectKind.MIXED),
        ('Cache::execute()', EffectKind.DATABASE),
    ])
    def test_method_calls(self, src, expected):
        assert self.classify(src) is expected

    def test_variables(self):
        assert self.classify('$a') is EffectKind.PURE
        assert self.classify("$_POST['name']") is EffectKind.EXTERNAL_STATE
        assert self.classify('$_SERVER') is EffectKind.EXTERNAL_STATE

    def test_assignment(self):
        assert self.classify('$a = 1 + 2') is EffectKind.PURE
        assert self.classify('$a = time()') is EffectKind.NON_DETERMINISTIC
        assert self.classify("$_SESSION['n'] = 1") is EffectKind.EXTERNAL_STATE

    def test_new_is_mixed(self):
        assert self.classify('new Point(1, 2)') is EffectKind.MIXED

    def test_statements(self):
        classify = self.classifier.classify
        assert classify(stmt('echo 1;')) is EffectKind.IO
        assert classify(stmt('$a = 1;')) is EffectKind.PURE
        assert classify(stmt('global $x;')) is EffectKind.GLOBAL_STATE
        assert classify(stmt("include 'a.php';")) is EffectKind.MIXED
        assert classify(stmt("eval('1;');")) is EffectKind.GLOBAL_STATE

    def test_composites_combine_children(self):
        classify = self.classifier.classify
        assert classify(stmt('if ($a) { $b = 1; }')) is EffectKind.PURE
        assert classify(stmt('if ($a) { echo 1; }')) is EffectKind.IO
        assert classify(stmt('if ($a) { echo 1; } else { $x = time(); }')) is EffectKind.MIXED

    def test_classify_block(self):
        nodes = parse_or_raise('<?php $a = 1; echo $a; echo 2;')
        assert self.classifier.classify_block(nodes) is EffectKind.IO
        assert self.classifier.classify_block([]) is EffectKind.PURE

    def test_unknown_kind_is_configurable(self):
        node = stmt('function f() {}')
        assert SideEffectClassifier().classify(node) is EffectKind.PURE
        assert SideEffectClassifier(EffectKind.MIXED).classify(node) is EffectKind.MIXED

    def test_mark_effects(self):
        nodes = parse_or_raise('<?php echo time();')
        mark_effects(nodes, self.classifier)
        effects = {n.kind: n.get_attr('side_effect') for n in walk(nodes)}
        assert effects['Echo'] is EffectKind.IO
        assert effects['FuncCall'] is EffectKind.NON_DETERMINISTIC
