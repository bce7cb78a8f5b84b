"""
Tests for include flattening and symbol prefixing.
"""

import os
import pytest

from recombinator.errors import IncludeError, ParseError
from recombinator.inliner import (
    GlobalRenamer, Inliner, collect_names, resolve_include_expr,
)
from recombinator.engine import Traverser
from recombinator.syntax import parse_expression, parse_or_raise, print_nodes


# ═══════════════════════════════════════════════════════════════════
#  Test Fixtures
# ═══════════════════════════════════════════════════════════════════

@pytest.fixture
def project(tmp_path):
    """Returns a writer for PHP files under tmp_path."""
    def write(name, source):
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source)
        return str(path)
    return write


def flatten(entry: str):
    inliner = Inliner(entry)
    return inliner, inliner.inline_code()


# ═══════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════

class TestHelpers:

    def test_resolve_include_expr(self):
        assert resolve_include_expr(parse_expression("'lib.php'"), '/app') == 'lib.php'
        assert resolve_include_expr(parse_expression("__DIR__ . '/lib.php'"), '/app') == '/app/lib.php'
        assert resolve_include_expr(parse_expression('$file'), '/app') is None
        assert resolve_include_expr(None, '/app') is None

    def test_collect_names(self):
        names = collect_names(parse_or_raise(
            "<?php function f() {} class A {} interface I {} const X = 1; define('Y', 2);"))
        assert names.functions == ['f']
        assert names.classes == ['A', 'I']
        assert names.constants == ['X', 'Y']

    def test_global_renamer(self):
        nodes = parse_or_raise('<?php echo helper(LIMIT), Point::ORIGIN, true; $p = new point();')
        nodes = Traverser(GlobalRenamer({'helper': 'f1_helper'}, {'point': 'f1_Point'},
                                        {'LIMIT': 'f1_LIMIT'})).traverse(nodes)
        assert print_nodes(nodes) == (
            'echo f1_helper(f1_LIMIT), f1_Point::ORIGIN, true;\n$p = new f1_Point();')


# ═══════════════════════════════════════════════════════════════════
#  Inliner
# ═══════════════════════════════════════════════════════════════════

class TestInliner:

    def test_function_prefixed(self, project):
        project('lib.php', '<?php function double($x) { return $x * 2; }')
        entry = project('index.php', "<?php include 'lib.php'; echo double(2);")
        inliner, code = flatten(entry)
        assert 'function f1_double($x)' in code
        assert 'echo f1_double(2);' in code
        assert 'include' not in code
        assert inliner.inlined_files == [os.path.join(os.path.dirname(entry), 'lib.php')]
        assert inliner.function_renames == {'double': 'f1_double'}

    def test_classes_and_constants_prefixed(self, project):
        project('lib.php', '<?php class Point {} const LIMIT = 3;')
        entry = project('index.php', "<?php require 'lib.php'; $p = new Point(); echo LIMIT;")
        _, code = flatten(entry)
        assert 'class f1_Point' in code
        assert 'const f1_LIMIT = 3;' in code
        assert '$p = new f1_Point();' in code
        assert 'echo f1_LIMIT;' in code

    def test_each_file_gets_its_own_prefix(self, project):
        project('a.php', '<?php function a() { return 1; }')
        project('b.php', '<?php function b() { return 2; }')
        entry = project('index.php', "<?php include 'a.php'; include 'b.php'; echo a() + b();")
        _, code = flatten(entry)
        assert 'echo f1_a() + f2_b();' in code

    def test_entry_names_keep_their_meaning(self, project):
        project('lib.php', '<?php function helper() { return 2; }')
        entry = project('index.php',
                        "<?php function helper() { return 1; } include 'lib.php'; echo helper();")
        _, code = flatten(entry)
        assert 'function f1_helper()' in code
        assert 'echo helper();' in code

    def test_once_forms(self, project):
        project('lib.php', "<?php echo 'lib';")
        entry = project('index.php', "<?php require_once 'lib.php'; require_once 'lib.php';")
        inliner, code = flatten(entry)
        assert code.count("echo 'lib';") == 1
        assert len(inliner.inlined_files) == 1

    def test_plain_include_repeats(self, project):
        project('lib.php', "<?php echo 'lib';")
        entry = project('index.php', "<?php include 'lib.php'; include 'lib.php';")
        _, code = flatten(entry)
        assert code.count("echo 'lib';") == 2

    def test_dir_constant(self, project):
        project('sub/lib.php', '<?php echo __DIR__;')
        entry = project('index.php', "<?php include __DIR__ . '/sub/lib.php';")
        _, code = flatten(entry)
        expected = os.path.abspath(os.path.join(os.path.dirname(entry), 'sub'))
        assert f"echo '{expected}';" in code

    def test_nested_includes_resolve_from_including_file(self, project):
        project('sub/inner.php', "<?php echo 'inner';")
        project('sub/outer.php', "<?php include 'inner.php';")
        entry = project('index.php', "<?php include 'sub/outer.php';")
        inliner, code = flatten(entry)
        assert "echo 'inner';" in code
        assert len(inliner.inlined_files) == 2

    def test_missing_file_left_in_place(self, project):
        entry = project('index.php', "<?php include 'missing.php'; echo 1;")
        inliner, code = flatten(entry)
        assert "include 'missing.php';" in code
        assert inliner.unresolved == [os.path.join(os.path.dirname(entry), 'missing.php')]

    def test_dynamic_path_left_in_place(self, project):
        entry = project('index.php', '<?php include $file;')
        inliner, code = flatten(entry)
        assert 'include $file;' in code
        assert inliner.unresolved == ['<dynamic>']

    def test_unparseable_include_inlined_as_empty(self, project):
        project('bad.php', '<?php echo ;')
        entry = project('index.php', "<?php include 'bad.php'; echo 1;")
        _, code = flatten(entry)
        assert code == '<?php\n\necho 1;\n'

    def test_namespaced_file_not_inlined(self, project):
        project('ns.php', '<?php namespace App; function f() {}')
        entry = project('index.php', "<?php include 'ns.php';")
        _, code = flatten(entry)
        assert "include 'ns.php';" in code

    def test_returning_file_not_inlined(self, project):
        project('config.php', "<?php return ['debug' => true];")
        entry = project('index.php', "<?php include 'config.php';")
        _, code = flatten(entry)
        assert "include 'config.php';" in code

    def test_recursive_include_left_in_place(self, project):
        project('b.php', "<?php include 'a.php'; echo 'b';")
        entry = project('a.php', "<?php include 'b.php'; echo 'a';")
        _, code = flatten(entry)
        assert "include 'a.php';" in code
        assert "echo 'b';" in code

    def test_missing_entry(self, tmp_path):
        with pytest.raises(IncludeError):
            Inliner(str(tmp_path / 'nope.php')).inline()

    def test_unparseable_entry(self, project):
        entry = project('index.php', '<?php echo ;')
        with pytest.raises(ParseError):
            Inliner(entry).inline()

    def test_custom_reader(self, project):
        entry = project('index.php', '<?php echo 1;')
        inliner = Inliner(entry, reader=lambda path: '<?php echo 2;')
        assert inliner.inline_code() == '<?php\n\necho 2;\n'
