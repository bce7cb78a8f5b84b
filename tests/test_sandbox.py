"""
Tests for the compile-time evaluation sandbox.

Covers:
    1. cache.py     - LRU memo, statistics, export/import
    2. values.py    - PHP 8 arrays, type juggling, arithmetic, comparison
    3. functions.py - builtin whitelist and forbidden list
    4. evaluator.py - safety check and evaluation
    5. sandbox.py   - execute() outcomes and caching
"""

import pytest

from recombinator.result import Err, Ok
from recombinator.sandbox import (
    BUILTINS, FORBIDDEN, Evaluator, ExecutionCache, PhpArray, Sandbox, SandboxError,
    is_allowed, is_safe, to_node, unsafe_reason,
)
from recombinator.sandbox import values
from recombinator.sandbox.evaluator import binary
from recombinator.syntax import parse_expression, print_expr


def evaluate(src: str, context=None):
    return Evaluator(context).evaluate(parse_expression(src))


# ═══════════════════════════════════════════════════════════════════
#  Execution Cache
# ═══════════════════════════════════════════════════════════════════

class TestExecutionCache:

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            ExecutionCache(0)

    def test_set_get(self):
        cache = ExecutionCache(4)
        cache.set('a', 1)
        assert cache.has('a')
        assert cache.get('a') == 1
        assert cache.get('missing', 'dflt') == 'dflt'
        assert cache.size == 1 and len(cache) == 1
        assert 'a' in cache

    def test_lru_eviction(self):
        cache = ExecutionCache(2)
        cache.set('a', 1)
        cache.set('b', 2)
        cache.get('a')
        cache.set('c', 3)
        assert cache.keys() == ['a', 'c']
        assert not cache.has('b')
        assert cache.stats()['evictions'] == 1

    def test_stats(self):
        cache = ExecutionCache(10)
        cache.set('a', 1)
        cache.get('a')
        cache.get('a')
        cache.get('b')
        stats = cache.stats()
        assert stats['hits'] == 2
        assert stats['misses'] == 1
        assert stats['sets'] == 1
        assert stats['size'] == 1
        assert stats['max_size'] == 10
        assert stats['hit_rate'] == pytest.approx(66.67)

    def test_delete_and_clear(self):
        cache = ExecutionCache()
        cache.set('a', 1)
        assert cache.delete('a')
        assert not cache.delete('a')
        cache.set('b', 2)
        cache.clear()
        assert cache.is_empty()
        assert cache.stats()['sets'] == 0

    def test_export_import(self):
        source = ExecutionCache()
        source.set('a', 1)
        source.set('b', 2)
        target = ExecutionCache()
        target.import_(source.export())
        assert target.keys() == ['a', 'b']
        assert target.values() == [1, 2]


# ═══════════════════════════════════════════════════════════════════
#  PHP Values
# ═══════════════════════════════════════════════════════════════════

class TestPhpArray:

    def test_integer_string_keys_normalized(self):
        array = PhpArray()
        array.set('5', 'x')
        assert array.keys() == [5]
        assert array.get(5) == 'x'

    def test_non_canonical_keys_stay_strings(self):
        array = PhpArray({'05': 1, '-0': 2})
        assert array.keys() == ['05', '-0']

    def test_append_continues_after_largest_int(self):
        array = PhpArray({7: 'a'})
        array.append('b')
        assert array.keys() == [7, 8]

    def test_bool_and_null_keys(self):
        array = PhpArray({True: 'a', None: 'b'})
        assert array.keys() == [1, '']

    def test_is_list(self):
        assert PhpArray.from_values([1, 2]).is_list()
        assert not PhpArray({1: 'a'}).is_list()


class TestTypeJuggling:

    @pytest.mark.parametrize('value,expected', [
        ('', False), ('0', False), ('0.0', True), ('a', True),
        (0, False), (0.0, False), (None, False), (PhpArray(), False),
        (PhpArray.from_values([0]), True),
    ])
    def test_to_bool(self, value, expected):
        assert values.to_bool(value) is expected

    @pytest.mark.parametrize('value,expected', [
        (1.0, '1'), (0.1 + 0.2, '0.3'), (True, '1'), (False, ''), (None, ''), (-3, '-3'),
    ])
    def test_to_string(self, value, expected):
        assert values.to_string(value) == expected

    def test_to_string_of_array_fails(self):
        with pytest.raises(SandboxError):
            values.to_string(PhpArray())

    def test_to_int(self):
        assert values.to_int('12abc') == 12
        assert values.to_int('abc') == 0
        assert values.to_int(3.9) == 3
        assert values.to_int(None) == 0

    def test_is_numeric_string(self):
        assert values.is_numeric_string('1e3')
        assert values.is_numeric_string(' 42')
        assert not values.is_numeric_string('abc')


class TestArithmetic:

    def test_add(self):
        assert values.add(2, 3) == 5
        assert values.add('5', 3) == 8
        assert values.add(1, 0.5) == 1.5

    def test_integer_overflow_becomes_float(self):
        result = values.add(values.PHP_INT_MAX, 1)
        assert isinstance(result, float)

    def test_divide(self):
        assert values.divide(10, 4) == 2.5
        result = values.divide(10, 5)
        assert result == 2 and isinstance(result, int)

    def test_division_by_zero(self):
        with pytest.raises(SandboxError) as info:
            values.divide(1, 0)
        assert info.value.code == SandboxError.DIVISION_BY_ZERO

    def test_modulo_sign_follows_dividend(self):
        assert values.modulo(-7, 3) == -1
        assert values.modulo(7, -3) == 1

    def test_non_numeric_operand(self):
        with pytest.raises(SandboxError) as info:
            values.add('abc', 1)
        assert info.value.code == SandboxError.TYPE_ERROR

    def test_concat(self):
        assert values.concat('a', 1.5) == 'a1.5'
        assert values.concat(True, None) == '1'


class TestComparison:

    @pytest.mark.parametrize('a,b,expected', [
        ('abc', 0, False),
        ('1e3', '1000', True),
        (None, False, True),
        ('', None, True),
        (1, 1.0, True),
        ('1', '01', True),
        ('abc', 'ABC', False),
    ])
    def test_loose_equals(self, a, b, expected):
        assert values.loose_equals(a, b) is expected

    def test_identical(self):
        assert not values.identical(1, 1.0)
        assert values.identical('a', 'a')
        assert values.identical(PhpArray.from_values([1]), PhpArray.from_values([1]))

    def test_compare(self):
        assert values.compare(2, 10) == -1
        assert values.compare('abc', 'abd') == -1
        assert values.compare('10', '9') == 1
        assert values.compare(PhpArray.from_values([1, 2]), PhpArray.from_values([1])) == 1

    def test_binary_dispatch(self):
        assert binary('<=>', 1, 2) == -1
        assert binary('.', 'a', 'b') == 'ab'
        assert binary('===', 1, '1') is False
        with pytest.raises(SandboxError):
            binary('instanceof', 1, 2)


class TestToNode:

    def test_scalars(self):
        assert print_expr(to_node(None)) == 'null'
        assert print_expr(to_node(True)) == 'true'
        assert print_expr(to_node(42)) == '42'
        assert print_expr(to_node('x')) == "'x'"

    def test_arrays(self):
        assert print_expr(to_node(PhpArray.from_values([1, 2]))) == '[1, 2]'
        assert print_expr(to_node(PhpArray({'a': 1}))) == "['a' => 1]"

    def test_non_finite_float_rejected(self):
        with pytest.raises(SandboxError):
            to_node(float('inf'))


# ═══════════════════════════════════════════════════════════════════
#  Builtins and Evaluator
# ═══════════════════════════════════════════════════════════════════

class TestBuiltins:

    def test_whitelist(self):
        assert is_allowed('strtoupper')
        assert is_allowed('STRLEN')
        assert 'range' in BUILTINS
        assert not is_allowed('exec')
        assert not is_allowed('no_such_function')

    def test_forbidden(self):
        for name in ('exec', 'eval', 'file_get_contents', 'header', 'curl_exec'):
            assert name in FORBIDDEN
            assert not is_allowed(name)

    @pytest.mark.parametrize('src,expected', [
        ("strtoupper('abc')", 'ABC'),
        ("strlen('hello')", 5),
        ("str_repeat('ab', 3)", 'ababab'),
        ("substr('abcdef', 1, 3)", 'bcd'),
        ("substr('abcdef', -2)", 'ef'),
        ("implode(',', [1, 2, 3])", '1,2,3'),
        ("count([1, 2, 3])", 3),
        ('intdiv(7, 2)', 3),
        ('intdiv(-7, 2)', -3),
        ("md5('')", 'd41d8cd98f00b204e9800998ecf8427e'),
        ("sprintf('%d items', 3)", '3 items'),
        ("is_string('abc')", True),
        ('is_int(1.0)', False),
        ('max(1, 5, 3)', 5),
    ])
    def test_evaluation(self, src, expected):
        assert evaluate(src) == expected

    def test_range(self):
        assert evaluate('range(1, 3)') == PhpArray.from_values([1, 2, 3])

    def test_intdiv_by_zero(self):
        with pytest.raises(SandboxError):
            evaluate('intdiv(1, 0)')


class TestEvaluator:

    def test_safety(self):
        assert is_safe(parse_expression('1 + 2'))
        assert unsafe_reason(parse_expression("exec('ls')")) == 'exec() is forbidden'
        assert unsafe_reason(parse_expression('$a + 1')) == 'unbound variable'
        assert is_safe(parse_expression('$a + 1'), {'a': 1})
        assert unsafe_reason(parse_expression('$f(1)')) == 'dynamic call'
        assert unsafe_reason(parse_expression('new Foo()')) == 'New is not allowed'
        assert 'not whitelisted' in unsafe_reason(parse_expression('my_func()'))

    def test_context(self):
        assert evaluate('$a * LIMIT', {'a': 3, 'LIMIT': 4}) == 12

    def test_operators(self):
        assert evaluate('2 + 3 * 4') == 14
        assert evaluate("'a' . 1") == 'a1'
        assert evaluate('true && false') is False
        assert evaluate('null ?? 5') == 5
        assert evaluate('1 ? 2 : 3') == 2
        assert evaluate("0 ?: 'x'") == 'x'
        assert evaluate('-(3)') == -3
        assert evaluate('!0') is True

    def test_casts(self):
        assert evaluate("(int) '12abc'") == 12
        assert evaluate('(string) 1.5') == '1.5'
        assert evaluate('(bool) []') is False

    def test_array_access(self):
        assert evaluate("['a' => 1, 'b' => 2]['b']") == 2
        assert evaluate("'abc'[1]") == 'b'
        with pytest.raises(SandboxError):
            evaluate("['a' => 1]['z']")

    def test_constants(self):
        assert evaluate('PHP_INT_MAX') == 2 ** 63 - 1
        assert evaluate('PHP_EOL') == '\n'
        with pytest.raises(SandboxError):
            evaluate('UNKNOWN_CONSTANT')


# ═══════════════════════════════════════════════════════════════════
#  Sandbox
# ═══════════════════════════════════════════════════════════════════

class TestSandbox:

    def setup_method(self):
        self.sandbox = Sandbox(cache_size=10)

    def test_success(self):
        result = self.sandbox.execute(parse_expression("strtoupper('abc')"))
        assert isinstance(result, Ok)
        assert result.unwrap() == 'ABC'

    def test_unsafe_returns_none(self):
        assert self.sandbox.execute(parse_expression("exec('ls')")) is None
        assert self.sandbox.cache_stats()['rejected'] == 1

    def test_runtime_error(self):
        result = self.sandbox.execute(parse_expression('intdiv(1, 0)'))
        assert isinstance(result, Err)
        assert result.error.code == SandboxError.DIVISION_BY_ZERO
        assert Sandbox.is_error(result)
        stats = self.sandbox.cache_stats()
        assert stats['failed'] == 1
        assert stats['size'] == 0

    def test_results_are_cached(self):
        node = parse_expression("str_repeat('x', 3)")
        self.sandbox.execute(node)
        self.sandbox.execute(node)
        stats = self.sandbox.cache_stats()
        assert stats['sets'] == 1
        assert stats['hits'] == 1
        assert stats['misses'] == 1
        assert stats['hit_rate'] == pytest.approx(50.0)

    def test_cache_key_depends_on_context(self):
        node = parse_expression('$a + 1')
        assert Sandbox.cache_key(node, {'a': 1}) != Sandbox.cache_key(node, {'a': 2})
        assert self.sandbox.execute(node, {'a': 1}).unwrap() == 2
        assert self.sandbox.execute(node, {'a': 2}).unwrap() == 3

    def test_context_from_nodes(self):
        context = Sandbox.context_from_nodes({
            'a': parse_expression('5'),
            'b': parse_expression("['x' => true]"),
            'c': parse_expression('$other'),
        })
        assert context['a'] == 5
        assert context['b'] == PhpArray({'x': True})
        assert 'c' not in context

    def test_shared_cache(self):
        cache = ExecutionCache(5)
        Sandbox(cache=cache).execute(parse_expression("strlen('abc')"))
        assert cache.size == 1
