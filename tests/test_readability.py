"""
Tests for the readability stage: conditional hoisting, concatenation to
interpolation and code-block labeling.
"""

import pytest

from recombinator.config import OptimizerConfig
from recombinator.optimizer import Recombinator


def tidy(src: str, *passes: str) -> str:
    """Run only the given readability passes over ``src``."""
    cfg = OptimizerConfig(passes=[], readability_passes=list(passes) or None)
    code = Recombinator(cfg).optimize_source(src).code
    return code[len('<?php\n'):].strip()


# ═══════════════════════════════════════════════════════════════════
#  Conditional hoisting
# ═══════════════════════════════════════════════════════════════════

class TestHoisting:

    def test_nested_ternary_hoisted(self):
        out = tidy("<?php echo 'Total: ' . ($n > 0 ? $n : 'none');", 'readability')
        assert out == "$tmp1 = $n > 0 ? $n : 'none';\necho 'Total: ' . $tmp1;"

    def test_innermost_first(self):
        out = tidy('<?php echo ($a ? 1 : 2) + ($b ? 3 : 4);', 'readability')
        assert out == '$tmp1 = $a ? 1 : 2;\n$tmp2 = $b ? 3 : 4;\necho $tmp1 + $tmp2;'

    def test_temporary_names_avoid_existing_variables(self):
        out = tidy("<?php $tmp1 = 1; echo 'x' . ($a ?: 'y');", 'readability')
        assert out == "$tmp1 = 1;\n$tmp2 = $a ?: 'y';\necho 'x' . $tmp2;"

    def test_comments_move_to_first_hoisted_statement(self):
        out = tidy("<?php\n// total\necho 'T' . ($n ? 1 : 2);", 'readability')
        assert out == "// total\n$tmp1 = $n ? 1 : 2;\necho 'T' . $tmp1;"

    def test_superglobal_read_hoisted(self):
        out = tidy("<?php echo ($_GET['x'] ?? 'default') . \"\\n\";", 'readability')
        assert out == "$tmp1 = $_GET['x'] ?? 'default';\necho $tmp1 . \"\\n\";"

    def test_hoisted_out_of_call_arguments(self):
        out = tidy('<?php $r = f(($a ?? 1) + 2);', 'readability')
        assert out == '$tmp1 = $a ?? 1;\n$r = f($tmp1 + 2);'

    def test_effect_after_the_conditional_allowed(self):
        out = tidy("<?php echo ($a ? 'x' : 'y') . time();", 'readability')
        assert out == "$tmp1 = $a ? 'x' : 'y';\necho $tmp1 . time();"

    @pytest.mark.parametrize('src', [
        '$x = $a ? 1 : 2;',
        '$r = $a && ($b ? 1 : 0);',
        'echo f() . ($a ? 1 : 2);',
        'echo $$n . ($a ? 1 : 2);',
        "echo time() . ($a ? 'x' : 'y');",
    ])
    def test_left_alone(self, src):
        assert tidy('<?php ' + src, 'readability') == src


# ═══════════════════════════════════════════════════════════════════
#  Concatenation to interpolation
# ═══════════════════════════════════════════════════════════════════

class TestConcatInterpolate:

    @pytest.mark.parametrize('src,expected', [
        ("echo 'Hello, ' . $name . '!';", 'echo "Hello, {$name}!";'),
        ("echo 'a' . 'b';", "echo 'ab';"),
        ("echo 'n: ' . $n . f();", 'echo "n: {$n}" . f();'),
        ("echo '$x: ' . $v;", 'echo "\\$x: {$v}";'),
    ])
    def test_rewrites(self, src, expected):
        assert tidy('<?php ' + src, 'concat_interpolate') == expected

    def test_other_operands_untouched(self):
        src = "echo 'a' . strlen($s);"
        assert tidy('<?php ' + src, 'concat_interpolate') == src


# ═══════════════════════════════════════════════════════════════════
#  Code blocks
# ═══════════════════════════════════════════════════════════════════

class TestCodeBlock:

    def test_groups_labeled(self):
        out = tidy("<?php $a = $_GET['a']; $b = $a . 'x'; echo $b;", 'code_block')
        assert out == (
            "# Read global state\n$a = $_GET['a'];\n\n"
            "# Computation\n$b = $a . 'x';\n\n"
            "# Output\necho $b;"
        )

    def test_control_and_return(self):
        out = tidy('<?php if ($a) { echo 1; } return 2;', 'code_block')
        assert out == '# Control flow\nif ($a) {\n    echo 1;\n}\n\n# Return value\nreturn 2;'

    def test_single_group_untouched(self):
        assert tidy('<?php echo 1; echo 2;', 'code_block') == 'echo 1;\necho 2;'


# ═══════════════════════════════════════════════════════════════════
#  Whole stage
# ═══════════════════════════════════════════════════════════════════

class TestReadabilityStage:

    def test_stage_is_idempotent(self):
        src = "<?php $who = $_GET['who']; echo 'Hi ' . $who . ' ' . ($n ? 'x' : 'y');"
        cfg = OptimizerConfig(passes=[])
        once = Recombinator(cfg).optimize_source(src).code
        assert Recombinator(cfg).optimize_source(once).code == once

    def test_stage_can_be_disabled(self):
        src = "<?php echo 'Hello, ' . $name;"
        code = Recombinator(OptimizerConfig(passes=[], readability=False)).optimize_source(src).code
        assert code == "<?php\n\necho 'Hello, ' . $name;\n"
