"""
Tests for the rewrite-pass catalog.

Each section runs either a single pass (``passes=[...]``) or the whole main
stage with the readability stage switched off, and checks the printed
program.
"""

import textwrap
import pytest

from recombinator.config import OptimizerConfig
from recombinator.optimizer import Recombinator
from recombinator.passes import MAIN_PASSES, READABILITY_PASSES, REGISTRY


def run(src: str, **config) -> str:
    config.setdefault('readability', False)
    return Recombinator(OptimizerConfig(**config)).optimize_source(src).code


def body(code: str) -> str:
    """Program text without the open tag."""
    assert code.startswith('<?php\n')
    return code[len('<?php\n'):].strip()


def php(src: str) -> str:
    return '<?php\n' + textwrap.dedent(src).strip() + '\n'


# ═══════════════════════════════════════════════════════════════════
#  Registration
# ═══════════════════════════════════════════════════════════════════

class TestRegistry:

    def test_canonical_order(self):
        assert REGISTRY.ids() == [
            'side_effect_marker', 'remove_comments', 'binary_and_isset',
            'coalesce_null_remove', 'concat_assert', 'eval_standard_function',
            'pre_execution', 'var_to_scalar', 'const_fold', 'single_use_inliner',
            'function_body_collector', 'call_function', 'constructor_and_methods',
            'property_access', 'const_class', 'ternary_return', 'class_inliner',
        ]
        assert REGISTRY.ids('readability') == ['readability', 'concat_interpolate', 'code_block']

    def test_every_pass_is_described(self):
        for cls in MAIN_PASSES + READABILITY_PASSES:
            assert cls.id and cls.name and cls.description


# ═══════════════════════════════════════════════════════════════════
#  Single passes
# ═══════════════════════════════════════════════════════════════════

class TestRemoveComments:

    def test_comments_removed(self):
        code = run('<?php\n// one\n/** doc */\necho 1;\n', passes=['remove_comments'])
        assert code == '<?php\n\necho 1;\n'


class TestBinaryAndIsset:

    @pytest.mark.parametrize('src,expected', [
        ('echo 2 + 3 * 4;', 'echo 14;'),
        ('echo 10 / 4;', 'echo 2.5;'),
        ('echo 10 / 5;', 'echo 2;'),
        ("echo 'a' . 'b' . 1;", "echo 'ab1';"),
        ("echo true . 'x';", "echo '1x';"),
        ("echo false . 'x';", "echo 'x';"),
        ('echo true + 1;', 'echo 2;'),
        ('echo -(2 * 3);', 'echo -6;'),
    ])
    def test_folding(self, src, expected):
        assert body(run('<?php ' + src, passes=['binary_and_isset'])) == expected

    @pytest.mark.parametrize('src', [
        'echo 10 / 0;',
        'echo 10 % 0;',
        "echo 'abc' + 1;",
        'echo $a + 1;',
    ])
    def test_not_folded(self, src):
        assert body(run('<?php ' + src, passes=['binary_and_isset'])) == src

    def test_isset_to_coalesce(self):
        code = run("<?php if (isset($_GET['a'])) { $a = $_GET['a']; }",
                   passes=['binary_and_isset'])
        assert body(code) == "$a = $_GET['a'] ?? $a ?? null;"

    def test_isset_with_else_untouched(self):
        src = "if (isset($v)) {\n    $x = $v;\n} else {\n    $x = 1;\n}"
        assert body(run('<?php ' + src, passes=['binary_and_isset'])) == src


class TestCoalesceNullRemove:

    def test_trailing_null_removed(self):
        assert body(run('<?php echo $a ?? $b ?? null;', passes=['coalesce_null_remove'])) \
            == 'echo $a ?? $b;'

    def test_other_defaults_kept(self):
        assert body(run("<?php echo $a ?? 'x';", passes=['coalesce_null_remove'])) \
            == "echo $a ?? 'x';"


class TestConcatAssert:

    def test_consecutive_echoes_merged(self):
        code = run("<?php echo 'Hello, '; echo $name; echo '!';", passes=['concat_assert'])
        assert body(code) == "echo 'Hello, ' . $name . '!';"

    def test_effectful_echo_breaks_the_run(self):
        code = run("<?php echo 'a'; echo time(); echo 'b';", passes=['concat_assert'])
        assert body(code) == "echo 'a';\necho time();\necho 'b';"

    def test_nested_lists(self):
        code = run("<?php if ($a) { echo 1; echo 2; }", passes=['concat_assert'])
        assert body(code) == 'if ($a) {\n    echo 1 . 2;\n}'


class TestEvaluation:

    @pytest.mark.parametrize('src,expected', [
        ("echo is_string('abc');", 'echo true;'),
        ('echo is_int(1.5);', 'echo false;'),
        ('echo is_null(null);', 'echo true;'),
        ("echo is_numeric('12');", 'echo true;'),
        ('echo is_array([1, 2]);', 'echo true;'),
    ])
    def test_type_predicates(self, src, expected):
        assert body(run('<?php ' + src, passes=['eval_standard_function'])) == expected

    def test_predicate_on_variable_untouched(self):
        assert body(run('<?php echo is_string($a);', passes=['eval_standard_function'])) \
            == 'echo is_string($a);'

    @pytest.mark.parametrize('src,expected', [
        ("echo strtoupper('abc');", "echo 'ABC';"),
        ("echo strlen(str_repeat('ab', 3));", 'echo 6;'),
        ("echo implode('-', ['a', 'b']);", "echo 'a-b';"),
        ('echo max(1, 7, 3);', 'echo 7;'),
    ])
    def test_pre_execution(self, src, expected):
        assert body(run('<?php ' + src, passes=['pre_execution'])) == expected

    @pytest.mark.parametrize('src', [
        "echo exec('ls');",
        'echo strlen($input);',
        'echo intdiv(1, 0);',
        'echo time();',
    ])
    def test_pre_execution_leaves_unsafe_calls(self, src):
        assert body(run('<?php ' + src, passes=['pre_execution'])) == src

    def test_pre_execution_counters(self):
        cfg = OptimizerConfig(passes=['pre_execution'], max_rounds=1, readability=False)
        report = Recombinator(cfg).optimize_source(
            "<?php echo strtoupper('a'); echo intdiv(1, 0);")
        assert report.pass_stats['pre_execution']['executed'] == 1
        assert report.pass_stats['pre_execution']['failed'] == 1

    def test_failed_evaluation_retried_next_round(self):
        cfg = OptimizerConfig(passes=['pre_execution'], readability=False)
        report = Recombinator(cfg).optimize_source(
            "<?php echo strtoupper('a'); echo intdiv(1, 0);")
        assert report.rounds == 2
        assert report.pass_stats['pre_execution']['failed'] == 2
        assert report.sandbox_stats['sets'] == 1


class TestConstFold:

    @pytest.mark.parametrize('src,expected', [
        ("echo 1 < 2 ? 'yes' : 'no';", "echo 'yes';"),
        ('echo !false;', 'echo true;'),
        ("echo 'abc' == 0;", 'echo false;'),
        ("echo '1e3' == '1000';", 'echo true;'),
        ('echo 1 === 1.0;', 'echo false;'),
        ('echo 2 <=> 1;', 'echo 1;'),
        ("echo 0 ?: 'fallback';", "echo 'fallback';"),
    ])
    def test_folding(self, src, expected):
        assert body(run('<?php ' + src, passes=['const_fold'])) == expected

    def test_non_literal_operands_untouched(self):
        assert body(run('<?php echo $a < 2;', passes=['const_fold'])) == 'echo $a < 2;'


class TestVariablePropagation:

    def test_var_to_scalar(self):
        code = run('<?php $a = 5; $b = 10; echo $a + $b;', passes=['var_to_scalar'])
        assert body(code) == 'echo 5 + 10;'

    def test_reassigned_variable_kept(self):
        src = '$a = 5;\n$a = 6;\necho $a;'
        assert body(run('<?php ' + src, passes=['var_to_scalar'])) == src

    def test_variable_variables_make_scope_opaque(self):
        src = "$a = 5;\n$name = 'a';\necho $$name;"
        assert body(run('<?php ' + src, passes=['var_to_scalar'])) == src

    def test_single_use_inliner(self):
        code = run('<?php $total = $price * $qty; echo $total;', passes=['single_use_inliner'])
        assert body(code) == 'echo $price * $qty;'

    def test_self_reference_not_inlined(self):
        src = '$x = $x + 1;\necho $x;'
        assert body(run('<?php ' + src, passes=['single_use_inliner'])) == src

    def test_single_use_inliner_keeps_effectful_values(self):
        src = '$now = time();\necho $now;'
        assert body(run('<?php ' + src, passes=['single_use_inliner'])) == src


# ═══════════════════════════════════════════════════════════════════
#  Whole main stage
# ═══════════════════════════════════════════════════════════════════

class TestMainStage:

    def test_arithmetic_program(self):
        assert run('<?php $a=5;$b=10;echo $a+$b;') == '<?php\n\necho 15;\n'

    def test_round_cap(self):
        report = Recombinator(OptimizerConfig(max_rounds=1, readability=False)) \
            .optimize_source('<?php $a=5;$b=10;echo $a+$b;')
        assert report.code == '<?php\n\necho 5 + 10;\n'
        assert report.still_changing
        assert not report.converged
        assert report.rounds == 1

    def test_report(self):
        report = Recombinator(OptimizerConfig(readability=False)) \
            .optimize_source('<?php $a=5;$b=10;echo $a+$b;')
        assert report.converged
        assert report.changed
        assert 'var_to_scalar' in report.pass_changes
        assert 'binary_and_isset' in report.pass_changes
        assert report.summary().startswith(f'{report.rounds} round(s), converged')

    def test_isset_program(self):
        code = run("<?php if (isset($_GET['a'])) { $a = $_GET['a']; } echo $a;")
        assert "$a = $_GET['a'] ?? $a;" in code

    def test_division_by_zero_left(self):
        assert run('<?php echo 10 / 0;') == '<?php\n\necho 10 / 0;\n'

    def test_function_inlined_and_removed(self):
        code = run('<?php function double($x) { return $x * 2; } echo double(21);')
        assert code == '<?php\n\necho 42;\n'

    def test_branching_function(self):
        code = run(php('''
            function sign($n) {
                if ($n > 0) {
                    return 'pos';
                }
                return 'neg';
            }
            echo sign(5);
        '''))
        assert code == "<?php\n\necho 'pos';\n"

    def test_object_inlined(self):
        code = run(php('''
            class Point {
                public function __construct(public $x, public $y) {}
                public function sum() { return $this->x + $this->y; }
            }
            $p = new Point(1, 2);
            echo $p->sum();
        '''))
        assert 'echo 3;' in code
        assert 'class Point' not in code

    def test_class_constant(self):
        code = run('<?php class Config { const LIMIT = 10; } echo Config::LIMIT * 2;')
        assert code == '<?php\n\necho 20;\n'

    def test_global_constant(self):
        code = run('<?php const LIMIT = 3; echo LIMIT * 2;')
        assert 'echo 6;' in code

    def test_type_predicate_drives_ternary(self):
        assert run("<?php echo is_int(1.5) ? 'i' : 'f';") == "<?php\n\necho 'f';\n"

    def test_unsafe_builtin_untouched(self):
        assert run("<?php echo exec('ls');") == "<?php\n\necho exec('ls');\n"

    def test_output_is_stable(self):
        src = php('''
            $greeting = 'Hello';
            function shout($s) { return strtoupper($s) . '!'; }
            echo shout($greeting);
        ''')
        once = run(src)
        assert run(once) == once

    def test_constant_in_interpolation(self):
        assert run('<?php $n = 3; echo "v=$n";') == "<?php\n\necho 'v=3';\n"

    def test_partly_constant_interpolation(self):
        code = run('<?php $n = 3; echo "v=$n, w=$w";')
        assert code == '<?php\n\necho "v=3, w={$w}";\n'

    @pytest.mark.parametrize('src', [
        '<?php $n = 3; echo "v=$n";',
        '<?php $n = 3; echo "v=$n, w=$w";',
        '<?php $t = $a * 2; echo "v=$t!";',
        '<?php $a=5;$b=10;echo $a+$b;',
        "<?php if (isset($_GET['a'])) { $a = $_GET['a']; } echo $a;",
        '<?php function double($x) { return $x * 2; } echo double(21) . " ($y)";',
    ])
    def test_pipeline_is_idempotent(self, src):
        for readability in (False, True):
            once = run(src, readability=readability)
            assert run(once, readability=readability) == once
