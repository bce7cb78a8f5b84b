"""
Tests for the PHP front end.

Covers:
    1. nodes.py   - Node schema, attributes, walking, equality
    2. parser.py  - lark grammar, positions, comments, parse errors
    3. printer.py - canonical output, precedence, idempotent re-printing
"""

import textwrap
import pytest

from recombinator.errors import ParseError
from recombinator.result import Err, Ok
from recombinator.syntax import (
    Node, dump, equal, parse, parse_expression, parse_or_raise,
    print_expr, print_file, print_nodes, walk,
)
from recombinator.syntax.nodes import (
    const_fetch, is_literal, is_scalar_literal, is_true_false_null, name_of, variable,
)


def php(code: str) -> str:
    return textwrap.dedent(code).strip() + '\n'


# ═══════════════════════════════════════════════════════════════════
#  Node model
# ═══════════════════════════════════════════════════════════════════

class TestNode:

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            Node('Banana')

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError):
            Node('Variable', colour='red')

    def test_list_fields_default_to_empty(self):
        node = Node('Echo')
        assert node.exprs == []

    def test_attributes(self):
        node = variable('a')
        assert not node.has_attr('effect')
        node.set_attr('effect', 'pure')
        assert node.get_attr('effect') == 'pure'
        node.del_attr('effect')
        assert node.get_attr('effect', 'missing') == 'missing'

    def test_clone_is_deep(self):
        stmt = parse_or_raise('<?php echo $a + 1;')[0]
        copy = stmt.clone()
        assert equal(stmt, copy)
        copy.exprs[0].right.value = 2
        assert stmt.exprs[0].right.value == 1

    def test_equal_ignores_positions(self):
        a = parse_expression('$x * 2')
        b = parse_or_raise('<?php\n\n\n$x * 2;')[0].expr
        assert equal(a, b)

    def test_walk_visits_every_node(self):
        stmt = parse_or_raise('<?php echo $a + $b;')[0]
        kinds = [n.kind for n in walk(stmt)]
        assert kinds == ['Echo', 'BinaryOp', 'Variable', 'Variable']

    def test_literal_helpers(self):
        assert is_true_false_null(const_fetch('TRUE'))
        assert not is_true_false_null(const_fetch('LIMIT'))
        assert is_scalar_literal(Node('Int', value=1))
        assert is_literal(parse_expression("[1, 'a' => 2]"))
        assert not is_literal(parse_expression('[$a]'))

    def test_name_of(self):
        assert name_of(variable('a')) == 'a'
        assert name_of(const_fetch('PHP_EOL')) == 'PHP_EOL'
        assert name_of(Node('Int', value=1)) is None

    def test_dump(self):
        text = dump(parse_expression('1 + 2'))
        assert text.splitlines()[0] == 'BinaryOp'
        assert "op: '+'" in text


# ═══════════════════════════════════════════════════════════════════
#  Parser
# ═══════════════════════════════════════════════════════════════════

class TestParser:

    def test_parse_returns_ok(self):
        result = parse('<?php echo 1;')
        assert isinstance(result, Ok)
        assert result.unwrap()[0].kind == 'Echo'

    def test_parse_error_is_err(self):
        result = parse('<?php echo ;', 'bad.php')
        assert isinstance(result, Err)
        assert isinstance(result.error, ParseError)
        assert result.error.path == 'bad.php'

    def test_parse_error_line(self):
        with pytest.raises(ParseError) as info:
            parse_or_raise('<?php\n$a = 1;\n$b = ;\n')
        assert info.value.line == 3
        assert info.value.describe().startswith('<source>:3:')

    def test_no_open_tag_is_inline_html(self):
        nodes = parse_or_raise('hello')
        assert len(nodes) == 1
        assert nodes[0].kind == 'InlineHTML'
        assert nodes[0].value == 'hello'

    def test_empty_source(self):
        assert parse_or_raise('') == []

    def test_precedence(self):
        expr = parse_expression('1 + 2 * 3')
        assert expr.kind == 'BinaryOp' and expr.op == '+'
        assert expr.right.kind == 'BinaryOp' and expr.right.op == '*'

    def test_positions(self):
        nodes = parse_or_raise('<?php\n$a = 1;\necho $a;\n')
        assert nodes[0].position.start_line == 2
        assert nodes[1].position.start_line == 3

    def test_function_declaration(self):
        fn = parse_or_raise('<?php function double($x) { return $x * 2; }')[0]
        assert fn.kind == 'Function'
        assert fn.name == 'double'
        assert [p.var.name for p in fn.params] == ['x']
        assert fn.stmts[0].kind == 'Return'

    def test_call_name(self):
        call = parse_expression("strtoupper('abc')")
        assert call.kind == 'FuncCall'
        assert name_of(call.name) == 'strtoupper'
        assert call.args[0].value.value == 'abc'

    def test_double_quoted_interpolation(self):
        expr = parse_expression('"Hello $name!"')
        assert expr.kind == 'Interpolated'
        assert [p.kind for p in expr.parts] == ['String', 'Variable', 'String']

    def test_plain_double_quoted_string(self):
        expr = parse_expression('"a\\tb"')
        assert expr.kind == 'String'
        assert expr.value == 'a\tb'

    def test_comment_attached_to_next_statement(self):
        nodes = parse_or_raise('<?php\n// greet\necho 1;\n')
        assert nodes[0].comments == ['// greet']

    def test_class_with_promoted_constructor(self):
        src = php('''
            <?php
            class Point {
                public function __construct(public $x, public $y) {}
                public function sum() { return $this->x + $this->y; }
            }
        ''')
        cls = parse_or_raise(src)[0]
        assert cls.kind == 'Class'
        assert [m.name for m in cls.stmts] == ['__construct', 'sum']


# ═══════════════════════════════════════════════════════════════════
#  Printer
# ═══════════════════════════════════════════════════════════════════

class TestPrinter:

    def test_file_layout(self):
        assert print_file(parse_or_raise('<?php echo 1;')) == '<?php\n\necho 1;\n'

    def test_empty_file(self):
        assert print_file([]) == '<?php\n'

    def test_single_quoted_strings(self):
        assert print_expr(parse_expression('"abc"')) == "'abc'"

    def test_function_layout(self):
        out = print_nodes(parse_or_raise('<?php function double($x){return $x*2;}'))
        assert out == 'function double($x)\n{\n    return $x * 2;\n}'

    def test_if_layout(self):
        out = print_nodes(parse_or_raise('<?php if ($a) { echo 1; }'))
        assert out == 'if ($a) {\n    echo 1;\n}'

    def test_parentheses_kept_where_needed(self):
        assert print_expr(parse_expression('(1 + 2) * 3')) == '(1 + 2) * 3'
        assert print_expr(parse_expression('1 + 2 * 3')) == '1 + 2 * 3'

    @pytest.mark.parametrize('src', [
        '<?php $a = [1, 2, 3]; foreach ($a as $k => $v) { echo $k, $v; }',
        '<?php $f = function ($x) use ($y) { return $x + $y; };',
        '<?php $g = fn($x) => $x * 2;',
        "<?php echo match ($a) { 1, 2 => 'low', default => 'high' };",
        '<?php class A extends B { const X = 1; private $y = 2; public function get(): int { return $this->y; } }',
        '<?php while ($i < 10) { $i++; if ($i % 2) { continue; } }',
        '<?php try { f(); } catch (Exception $e) { echo $e->getMessage(); } finally { g(); }',
        '<?php echo (int) $a, (string) $b, $c ?? \'d\';',
    ])
    def test_reprint_is_stable(self, src):
        first = print_file(parse_or_raise(src))
        second = print_file(parse_or_raise(first))
        assert first == second
