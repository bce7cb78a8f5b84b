"""
Restricted Evaluator
====================

Evaluates an expression tree directly, with PHP 8 value semantics, instead
of running generated code. Only a closed set of node kinds is understood;
:func:`is_safe` checks a tree against that set (and against the builtin
whitelist) before anything is evaluated.

Every evaluation step checks a wall-clock deadline, so a pathological input
(a huge ``str_repeat`` chain, say) ends in a ``TIMEOUT`` error instead of
stalling the pipeline.
"""

import math
import time
from typing import Any, Callable, Dict, Mapping, Optional

from ..syntax.nodes import Node, name_of, walk
from .errors import SandboxError
from .functions import BUILTINS, FORBIDDEN, is_allowed
from .values import (
    PHP_FLOAT_EPSILON, PHP_INT_MAX, PHP_INT_MIN, PHP_INT_SIZE, PhpArray, add,
    bitwise, bitwise_not, check_string, compare, concat, divide, identical,
    loose_equals, modulo, multiply, negate, normalize_key, power, subtract,
    to_bool, to_float, to_int, to_number, to_string, type_name,
)

CONSTANTS: Dict[str, Any] = {
    'PHP_EOL': '\n',
    'PHP_INT_MAX': PHP_INT_MAX,
    'PHP_INT_MIN': PHP_INT_MIN,
    'PHP_INT_SIZE': PHP_INT_SIZE,
    'PHP_FLOAT_EPSILON': PHP_FLOAT_EPSILON,
    'PHP_FLOAT_MAX': 1.7976931348623157e308,
    'PHP_FLOAT_MIN': 2.2250738585072014e-308,
    'PHP_FLOAT_DIG': 15,
    'M_PI': math.pi,
    'M_E': math.e,
    'M_SQRT2': math.sqrt(2),
    'M_LN2': math.log(2),
    'M_LN10': math.log(10),
    'STR_PAD_LEFT': 0,
    'STR_PAD_RIGHT': 1,
    'STR_PAD_BOTH': 2,
    'COUNT_RECURSIVE': 1,
    'COUNT_NORMAL': 0,
}

_LITERAL_CONSTANTS = {'true': True, 'false': False, 'null': None}

# Kinds the evaluator understands. Anything else makes a tree unsafe.
SAFE_KINDS = frozenset({
    'Int', 'Float', 'String', 'Interpolated', 'ConstFetch', 'Name', 'Variable',
    'Array', 'ArrayItem', 'UnaryOp', 'BinaryOp', 'Cast', 'Ternary', 'FuncCall',
    'Arg', 'ArrayDimFetch',
})

# Reported separately so rejections say why.
DANGEROUS_KINDS = frozenset({
    'Eval', 'Include', 'Exit', 'ShellExec', 'Print', 'New', 'Clone',
    'Assign', 'AssignRef', 'AssignOp', 'IncDec', 'MethodCall', 'StaticCall',
    'Closure', 'ArrowFunction', 'ErrorSuppress',
})

_CASTS = {
    'int': to_int,
    'float': to_float,
    'string': to_string,
    'bool': to_bool,
}


def call_name(node: Node) -> Optional[str]:
    """Lower-cased static name of a ``FuncCall``, or None for dynamic calls."""
    if node.kind != 'FuncCall' or not isinstance(node.name, Node) or node.name.kind != 'Name':
        return None
    return node.name.value.lstrip('\\').lower()


def unsafe_reason(node: Node, context: Optional[Mapping[str, Any]] = None) -> Optional[str]:
    """Why ``node`` may not be evaluated, or None if it may."""
    context = context or {}
    for current in walk(node):
        kind = current.kind
        if kind in DANGEROUS_KINDS:
            return f'{kind} is not allowed'
        if kind not in SAFE_KINDS:
            return f'{kind} is not supported'
        if kind == 'FuncCall':
            name = call_name(current)
            if name is None:
                return 'dynamic call'
            if name in FORBIDDEN:
                return f'{name}() is forbidden'
            if not is_allowed(name):
                return f'{name}() is not whitelisted'
            for arg in current.args:
                if arg.unpack or arg.by_ref or arg.name is not None:
                    return 'unsupported argument form'
        elif kind == 'Variable':
            if not isinstance(current.name, str) or current.name not in context:
                return 'unbound variable'
        elif kind == 'ArrayItem':
            if current.by_ref or current.unpack:
                return 'unsupported array item'
        elif kind == 'Cast' and current.type not in _CASTS and current.type != 'array':
            return f'({current.type}) cast is not supported'
    return None


def is_safe(node: Node, context: Optional[Mapping[str, Any]] = None) -> bool:
    return unsafe_reason(node, context) is None


class Evaluator:
    """
    Evaluates one expression against a name -> value context.

    Context names double as variables (``$name``) and constants (``NAME``).
    Raises ``SandboxError`` for PHP runtime errors, for PHP warnings and
    deprecations (their output would be lost by folding), and on timeout.
    """

    def __init__(self, context: Optional[Mapping[str, Any]] = None, timeout: float = 1.0):
        self.context = dict(context or {})
        self.timeout = timeout
        self._deadline = 0.0

    def evaluate(self, node: Node) -> Any:
        self._deadline = time.perf_counter() + self.timeout
        try:
            return self._eval(node)
        except SandboxError:
            raise
        except ZeroDivisionError as exc:
            raise SandboxError('division by zero', SandboxError.DIVISION_BY_ZERO, exc)
        except (ArithmeticError, ValueError) as exc:
            raise SandboxError(str(exc), SandboxError.VALUE_ERROR, exc)
        except (TypeError, KeyError, IndexError) as exc:
            raise SandboxError(str(exc), SandboxError.TYPE_ERROR, exc)
        except RecursionError as exc:
            raise SandboxError('expression nested too deeply', SandboxError.LIMIT_EXCEEDED, exc)

    def _eval(self, node: Node) -> Any:
        if time.perf_counter() > self._deadline:
            raise SandboxError(f'evaluation exceeded {self.timeout}s', SandboxError.TIMEOUT)
        method: Callable = getattr(self, 'e_' + node.kind, None)
        if method is None:
            raise SandboxError(f'{node.kind} is not supported', SandboxError.UNSUPPORTED)
        return method(node)

    # ── literals and names ──

    def e_Int(self, node):
        return node.value

    def e_Float(self, node):
        return node.value

    def e_String(self, node):
        return check_string(node.value)

    def e_Interpolated(self, node):
        return check_string(''.join(to_string(self._eval(p)) for p in node.parts))

    def e_ConstFetch(self, node):
        name = name_of(node).lstrip('\\')
        lower = name.lower()
        if lower in _LITERAL_CONSTANTS:
            return _LITERAL_CONSTANTS[lower]
        if name in self.context:
            return self.context[name]
        if name in CONSTANTS:
            return CONSTANTS[name]
        raise SandboxError(f'undefined constant "{name}"', SandboxError.UNSUPPORTED)

    def e_Variable(self, node):
        if not isinstance(node.name, str) or node.name not in self.context:
            raise SandboxError('undefined variable', SandboxError.UNSUPPORTED)
        return self.context[node.name]

    def e_Array(self, node):
        result = PhpArray()
        for item in node.items:
            if item is None:
                raise SandboxError('cannot use empty array elements', SandboxError.UNSUPPORTED)
            value = self._eval(item.value)
            if item.key is None:
                result.append(value)
            else:
                result.set(self._array_key(self._eval(item.key)), value)
        return result

    @staticmethod
    def _array_key(key: Any):
        if isinstance(key, PhpArray):
            raise SandboxError('illegal offset type', SandboxError.TYPE_ERROR)
        if isinstance(key, float):
            if not math.isfinite(key) or key != int(key):
                raise SandboxError('implicit conversion from float to int loses precision',
                                   SandboxError.VALUE_ERROR)
        return normalize_key(key)

    def e_ArrayDimFetch(self, node):
        if node.dim is None:
            raise SandboxError('cannot use [] for reading', SandboxError.UNSUPPORTED)
        container = self._eval(node.var)
        key = self._eval(node.dim)
        if isinstance(container, PhpArray):
            key = self._array_key(key)
            if not container.has(key):
                raise SandboxError(f'undefined array key {key!r}', SandboxError.VALUE_ERROR)
            return container.get(key)
        if isinstance(container, str):
            if not isinstance(key, int) or isinstance(key, bool):
                raise SandboxError('string offset must be an integer', SandboxError.TYPE_ERROR)
            data = container.encode('utf-8')
            index = key + len(data) if key < 0 else key
            if not 0 <= index < len(data) or data[index] > 127:
                raise SandboxError('uninitialized string offset', SandboxError.VALUE_ERROR)
            return chr(data[index])
        raise SandboxError(f'cannot use {type_name(container)} as an array',
                           SandboxError.TYPE_ERROR)

    # ── operators ──

    def e_UnaryOp(self, node):
        value = self._eval(node.expr)
        op = node.op
        if op == '!':
            return not to_bool(value)
        if op == '-':
            return negate(value)
        if op == '+':
            return to_number(value, '+')
        if op == '~':
            return bitwise_not(value)
        raise SandboxError(f'unary {op} is not supported', SandboxError.UNSUPPORTED)

    def e_BinaryOp(self, node):
        op = node.op
        if op in ('&&', 'and'):
            return to_bool(self._eval(node.left)) and to_bool(self._eval(node.right))
        if op in ('||', 'or'):
            return to_bool(self._eval(node.left)) or to_bool(self._eval(node.right))
        if op == '??':
            left = self._eval(node.left)
            return self._eval(node.right) if left is None else left
        left = self._eval(node.left)
        right = self._eval(node.right)
        return binary(op, left, right)

    def e_Cast(self, node):
        value = self._eval(node.expr)
        if node.type == 'array':
            if isinstance(value, PhpArray):
                return value
            return PhpArray() if value is None else PhpArray.from_values([value])
        cast = _CASTS.get(node.type)
        if cast is None:
            raise SandboxError(f'({node.type}) cast is not supported', SandboxError.UNSUPPORTED)
        return cast(value)

    def e_Ternary(self, node):
        cond = self._eval(node.cond)
        if to_bool(cond):
            return cond if node.then is None else self._eval(node.then)
        return self._eval(node.otherwise)

    # ── calls ──

    def e_FuncCall(self, node):
        name = call_name(node)
        if name is None or not is_allowed(name):
            raise SandboxError(f'call to {name or "dynamic function"} is not allowed',
                               SandboxError.UNSUPPORTED)
        args = [self._eval(arg.value) for arg in node.args]
        return BUILTINS[name](*args)


def binary(op: str, left: Any, right: Any) -> Any:
    """Apply a non-short-circuit binary operator to two PHP values."""
    if op == '+':
        return add(left, right)
    if op == '-':
        return subtract(left, right)
    if op == '*':
        return multiply(left, right)
    if op == '/':
        return divide(left, right)
    if op == '%':
        return modulo(left, right)
    if op == '**':
        return power(left, right)
    if op == '.':
        return concat(left, right)
    if op in ('&', '|', '^', '<<', '>>'):
        return bitwise(op, left, right)
    if op == '===':
        return identical(left, right)
    if op == '!==':
        return not identical(left, right)
    if op == '==':
        return loose_equals(left, right)
    if op in ('!=', '<>'):
        return not loose_equals(left, right)
    if op == '<':
        return compare(left, right) < 0
    if op == '<=':
        return compare(left, right) <= 0
    if op == '>':
        return compare(left, right) > 0
    if op == '>=':
        return compare(left, right) >= 0
    if op == '<=>':
        return compare(left, right)
    if op == 'xor':
        return to_bool(left) != to_bool(right)
    if op in ('&&', 'and'):
        return to_bool(left) and to_bool(right)
    if op in ('||', 'or'):
        return to_bool(left) or to_bool(right)
    if op == '??':
        return right if left is None else left
    raise SandboxError(f'operator {op} is not supported', SandboxError.UNSUPPORTED)
