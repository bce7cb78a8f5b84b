"""
PHP Value Semantics
===================

PHP 8 values mapped onto Python:

    null    -> None          int    -> int (64-bit, overflow -> float)
    bool    -> bool          float  -> float
    string  -> str           array  -> PhpArray (ordered, normalized keys)

Conversions and operators follow PHP 8 rules. Anything that would make PHP
emit a warning or deprecation (leading-numeric strings in arithmetic, array
to string conversion, lossy float to int) raises :class:`SandboxError`, so
folding never hides a diagnostic the original program would print.
"""

import math
import re
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..syntax.nodes import Node, const_fetch
from .errors import SandboxError

PHP_INT_MAX = 2 ** 63 - 1
PHP_INT_MIN = -2 ** 63
PHP_INT_SIZE = 8
PHP_FLOAT_EPSILON = 2.220446049250313e-16
PRECISION = 14

MAX_STRING_BYTES = 1024 * 1024
MAX_ARRAY_ELEMENTS = 10000

_WHITESPACE = ' \t\n\r\v\f'
_NUMERIC_RE = re.compile(
    r'^[ \t\n\r\v\f]*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?[ \t\n\r\v\f]*$')
_LEADING_NUMERIC_RE = re.compile(
    r'^[ \t\n\r\v\f]*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?')
_INTEGER_KEY_RE = re.compile(r'^(?:0|-?[1-9][0-9]*)$')


def fits_int(value: int) -> bool:
    return PHP_INT_MIN <= value <= PHP_INT_MAX


def check_string(value: str) -> str:
    if len(value) > MAX_STRING_BYTES // 4 and len(value.encode('utf-8')) > MAX_STRING_BYTES:
        raise SandboxError('string result exceeds 1 MiB', SandboxError.LIMIT_EXCEEDED)
    return value


# ═══════════════════════════════════════════════════════════════════
#  Arrays
# ═══════════════════════════════════════════════════════════════════

def normalize_key(key: Any):
    """Array key as PHP stores it: decimal integer strings become ints."""
    if key is None:
        return ''
    if isinstance(key, bool):
        return int(key)
    if isinstance(key, int):
        return key
    if isinstance(key, float):
        if not math.isfinite(key) or key != int(key):
            raise SandboxError(f'implicit conversion from float {float_to_string(key)} to int',
                               SandboxError.TYPE_ERROR)
        return int(key)
    if isinstance(key, str):
        if _INTEGER_KEY_RE.match(key) and fits_int(int(key)):
            return int(key)
        return key
    raise SandboxError('illegal offset type', SandboxError.TYPE_ERROR)


class PhpArray:
    """Ordered hash map with PHP key normalization and append index."""

    def __init__(self, entries: Optional[Dict[Any, Any]] = None):
        self._data: Dict[Any, Any] = {}
        self.next_index = 0
        if entries:
            for key, value in entries.items():
                self.set(key, value)

    @classmethod
    def from_values(cls, values) -> 'PhpArray':
        array = cls()
        for value in values:
            array.append(value)
        return array

    def _check_size(self) -> None:
        if len(self._data) > MAX_ARRAY_ELEMENTS:
            raise SandboxError(f'array exceeds {MAX_ARRAY_ELEMENTS} elements',
                               SandboxError.LIMIT_EXCEEDED)

    def append(self, value: Any) -> None:
        if self.next_index > PHP_INT_MAX:
            raise SandboxError('cannot add element: next index is already occupied',
                               SandboxError.VALUE_ERROR)
        self._data[self.next_index] = value
        self.next_index += 1
        self._check_size()

    def set(self, key: Any, value: Any) -> None:
        key = normalize_key(key)
        self._data[key] = value
        if isinstance(key, int) and key >= self.next_index:
            self.next_index = key + 1
        self._check_size()

    def get(self, key: Any, default: Any = None) -> Any:
        return self._data.get(normalize_key(key), default)

    def has(self, key: Any) -> bool:
        return normalize_key(key) in self._data

    def keys(self) -> List[Any]:
        return list(self._data)

    def values(self) -> List[Any]:
        return list(self._data.values())

    def items(self) -> List[Tuple[Any, Any]]:
        return list(self._data.items())

    def is_list(self) -> bool:
        return all(k == i for i, k in enumerate(self._data))

    def copy(self) -> 'PhpArray':
        clone = PhpArray()
        clone._data = dict(self._data)
        clone.next_index = self.next_index
        return clone

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._data)

    def __contains__(self, key) -> bool:
        return self.has(key)

    def __eq__(self, other) -> bool:
        return isinstance(other, PhpArray) and identical(self, other)

    def __repr__(self) -> str:
        return f'PhpArray({self._data!r})'


# ═══════════════════════════════════════════════════════════════════
#  Type juggling
# ═══════════════════════════════════════════════════════════════════

def type_name(value: Any) -> str:
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'bool'
    if isinstance(value, int):
        return 'int'
    if isinstance(value, float):
        return 'float'
    if isinstance(value, str):
        return 'string'
    if isinstance(value, PhpArray):
        return 'array'
    return type(value).__name__


def is_numeric_string(value: str) -> bool:
    return bool(_NUMERIC_RE.match(value))


def _numeric_literal(text: str):
    text = text.strip(_WHITESPACE)
    if re.match(r'^[+-]?\d+$', text):
        number = int(text)
        return number if fits_int(number) else float(number)
    return float(text)


def to_bool(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (bool, int, float)):
        return bool(value)
    if isinstance(value, str):
        return value not in ('', '0')
    if isinstance(value, PhpArray):
        return len(value) > 0
    raise SandboxError(f'cannot convert {type_name(value)} to bool', SandboxError.TYPE_ERROR)


def to_int(value: Any) -> int:
    """``(int)`` cast: never warns, strings use their numeric prefix."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return 0
        if not fits_int(int(value)):
            raise SandboxError('float is out of integer range', SandboxError.VALUE_ERROR)
        return int(value)
    if isinstance(value, str):
        match = _LEADING_NUMERIC_RE.match(value)
        if not match:
            return 0
        number = _numeric_literal(match.group(0))
        return to_int(number)
    if isinstance(value, PhpArray):
        return 1 if len(value) else 0
    raise SandboxError(f'cannot convert {type_name(value)} to int', SandboxError.TYPE_ERROR)


def to_float(value: Any) -> float:
    if isinstance(value, float):
        return value
    if isinstance(value, str):
        match = _LEADING_NUMERIC_RE.match(value)
        return float(match.group(0).strip(_WHITESPACE)) if match else 0.0
    return float(to_int(value))


def float_to_string(value: float, precision: int = PRECISION) -> str:
    if math.isnan(value):
        return 'NAN'
    if math.isinf(value):
        return 'INF' if value > 0 else '-INF'
    if value == 0:
        return '-0' if math.copysign(1.0, value) < 0 else '0'
    text = '%.*G' % (precision, value)
    if 'E' in text:
        mantissa, exponent = text.split('E')
        if '.' not in mantissa:
            mantissa += '.0'
        sign = '-' if exponent.startswith('-') else '+'
        return f'{mantissa}E{sign}{int(exponent.lstrip("+-"))}'
    return text


def to_string(value: Any) -> str:
    if value is None or value is False:
        return ''
    if value is True:
        return '1'
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return float_to_string(value)
    if isinstance(value, str):
        return value
    if isinstance(value, PhpArray):
        raise SandboxError('array to string conversion', SandboxError.TYPE_ERROR)
    raise SandboxError(f'cannot convert {type_name(value)} to string', SandboxError.TYPE_ERROR)


def to_number(value: Any, operator: str = '+'):
    """Operand of an arithmetic operator (PHP 8 rules, warnings are errors)."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        if is_numeric_string(value):
            return _numeric_literal(value)
        if _LEADING_NUMERIC_RE.match(value):
            raise SandboxError(f'a non-numeric value encountered: "{value}"',
                               SandboxError.VALUE_ERROR)
        raise SandboxError(f'unsupported operand types: string {operator} number',
                           SandboxError.TYPE_ERROR)
    raise SandboxError(f'unsupported operand types: {type_name(value)} {operator}',
                       SandboxError.TYPE_ERROR)


def to_int_operand(value: Any, operator: str) -> int:
    """Operand of ``%``, bitwise and shift operators."""
    number = to_number(value, operator)
    if isinstance(number, float):
        if not math.isfinite(number) or number != int(number):
            raise SandboxError(
                f'implicit conversion from float {float_to_string(number)} to int loses precision',
                SandboxError.VALUE_ERROR)
        number = int(number)
        if not fits_int(number):
            raise SandboxError('float is out of integer range', SandboxError.VALUE_ERROR)
    return number


# ═══════════════════════════════════════════════════════════════════
#  Arithmetic
# ═══════════════════════════════════════════════════════════════════

def _int_result(value: int):
    return value if fits_int(value) else float(value)


def add(a: Any, b: Any):
    if isinstance(a, PhpArray) and isinstance(b, PhpArray):
        result = a.copy()
        for key, value in b.items():
            if not result.has(key):
                result.set(key, value)
        return result
    x, y = to_number(a, '+'), to_number(b, '+')
    if isinstance(x, int) and isinstance(y, int):
        return _int_result(x + y)
    return float(x) + float(y)


def subtract(a: Any, b: Any):
    x, y = to_number(a, '-'), to_number(b, '-')
    if isinstance(x, int) and isinstance(y, int):
        return _int_result(x - y)
    return float(x) - float(y)


def multiply(a: Any, b: Any):
    x, y = to_number(a, '*'), to_number(b, '*')
    if isinstance(x, int) and isinstance(y, int):
        return _int_result(x * y)
    return float(x) * float(y)


def divide(a: Any, b: Any):
    x, y = to_number(a, '/'), to_number(b, '/')
    if y == 0:
        raise SandboxError('division by zero', SandboxError.DIVISION_BY_ZERO)
    if isinstance(x, int) and isinstance(y, int) and x % y == 0:
        return _int_result(x // y)
    return float(x) / float(y)


def modulo(a: Any, b: Any) -> int:
    x, y = to_int_operand(a, '%'), to_int_operand(b, '%')
    if y == 0:
        raise SandboxError('modulo by zero', SandboxError.DIVISION_BY_ZERO)
    remainder = abs(x) % abs(y)
    return remainder if x >= 0 else -remainder


def power(a: Any, b: Any):
    x, y = to_number(a, '**'), to_number(b, '**')
    if isinstance(x, int) and isinstance(y, int) and y >= 0 and (abs(x) <= 1 or y <= 64):
        return _int_result(x ** y)
    try:
        result = float(x) ** float(y)
    except ZeroDivisionError as exc:
        raise SandboxError('zero raised to a negative power', SandboxError.VALUE_ERROR, exc)
    except OverflowError as exc:
        raise SandboxError('float overflow', SandboxError.VALUE_ERROR, exc)
    if isinstance(result, complex):
        raise SandboxError('result is NAN', SandboxError.VALUE_ERROR)
    return result


def negate(a: Any):
    x = to_number(a, '*')
    if isinstance(x, int):
        return _int_result(-x)
    return -x


def concat(a: Any, b: Any) -> str:
    return check_string(to_string(a) + to_string(b))


def _wrap64(value: int) -> int:
    value &= 0xFFFFFFFFFFFFFFFF
    return value - (1 << 64) if value > PHP_INT_MAX else value


def bitwise(op: str, a: Any, b: Any) -> int:
    if isinstance(a, str) and isinstance(b, str):
        raise SandboxError('bitwise operations on strings are not evaluated',
                           SandboxError.UNSUPPORTED)
    x, y = to_int_operand(a, op), to_int_operand(b, op)
    if op == '&':
        return x & y
    if op == '|':
        return x | y
    if op == '^':
        return x ^ y
    if y < 0:
        raise SandboxError('bit shift by negative number', SandboxError.VALUE_ERROR)
    if op == '<<':
        return 0 if y >= 64 else _wrap64(x << y)
    if y >= 64:
        return -1 if x < 0 else 0
    return x >> y


def bitwise_not(a: Any) -> int:
    if isinstance(a, str):
        raise SandboxError('bitwise not on strings is not evaluated', SandboxError.UNSUPPORTED)
    return ~to_int_operand(a, '~')


# ═══════════════════════════════════════════════════════════════════
#  Comparison
# ═══════════════════════════════════════════════════════════════════

def identical(a: Any, b: Any) -> bool:
    if isinstance(a, PhpArray) or isinstance(b, PhpArray):
        if not (isinstance(a, PhpArray) and isinstance(b, PhpArray)):
            return False
        if a.keys() != b.keys():
            return False
        return all(identical(x, y) for x, y in zip(a.values(), b.values()))
    if type(a) is not type(b):
        return False
    if isinstance(a, float) and math.isnan(a):
        return False
    return a == b


def _sign(value) -> int:
    return (value > 0) - (value < 0)


def _compare_numbers(x, y) -> int:
    if isinstance(x, float) or isinstance(y, float):
        x, y = float(x), float(y)
    return _sign(x - y) if not (x == y) else 0


def compare(a: Any, b: Any) -> int:
    """``a <=> b`` under PHP 8 loose comparison."""
    if isinstance(a, str) and isinstance(b, str):
        if is_numeric_string(a) and is_numeric_string(b):
            return _compare_numbers(_numeric_literal(a), _numeric_literal(b))
        return _sign((a > b) - (a < b))
    if isinstance(a, bool) or isinstance(b, bool) or a is None or b is None:
        if a is None and isinstance(b, str):
            return compare('', b)
        if b is None and isinstance(a, str):
            return compare(a, '')
        return int(to_bool(a)) - int(to_bool(b))
    if isinstance(a, PhpArray) and isinstance(b, PhpArray):
        if len(a) != len(b):
            return _sign(len(a) - len(b))
        for key, value in a.items():
            if not b.has(key):
                return 1
            result = compare(value, b.get(key))
            if result:
                return result
        return 0
    if isinstance(a, PhpArray):
        return 1
    if isinstance(b, PhpArray):
        return -1
    if isinstance(a, str):
        if is_numeric_string(a):
            return _compare_numbers(_numeric_literal(a), b)
        return compare(a, to_string(b))
    if isinstance(b, str):
        if is_numeric_string(b):
            return _compare_numbers(a, _numeric_literal(b))
        return compare(to_string(a), b)
    if isinstance(a, float) and math.isnan(a) or isinstance(b, float) and math.isnan(b):
        raise SandboxError('comparison with NAN', SandboxError.VALUE_ERROR)
    return _compare_numbers(a, b)


def loose_equals(a: Any, b: Any) -> bool:
    if isinstance(a, PhpArray) and isinstance(b, PhpArray):
        if len(a) != len(b):
            return False
        return all(b.has(k) and loose_equals(v, b.get(k)) for k, v in a.items())
    if isinstance(a, PhpArray) and not (b is None or isinstance(b, bool)):
        return False
    if isinstance(b, PhpArray) and not (a is None or isinstance(a, bool)):
        return False
    return compare(a, b) == 0


# ═══════════════════════════════════════════════════════════════════
#  Literal nodes
# ═══════════════════════════════════════════════════════════════════

def to_node(value: Any) -> Node:
    """Literal node for a value; INF, NAN and non-PHP values are rejected."""
    if value is None:
        return const_fetch('null')
    if isinstance(value, bool):
        return const_fetch('true' if value else 'false')
    if isinstance(value, int):
        return Node('Int', value=value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise SandboxError(f'{float_to_string(value)} has no literal form',
                               SandboxError.VALUE_ERROR)
        return Node('Float', value=value)
    if isinstance(value, str):
        return Node('String', value=check_string(value))
    if isinstance(value, PhpArray):
        keyed = not value.is_list()
        items = [Node('ArrayItem', key=to_node(k) if keyed else None, value=to_node(v),
                      by_ref=False, unpack=False)
                 for k, v in value.items()]
        return Node('Array', items=items, style='short')
    raise SandboxError(f'{type_name(value)} has no literal form', SandboxError.UNSUPPORTED)
