"""
Pure Builtins
=============

Python implementations of the PHP functions the sandbox may evaluate.
``BUILTINS`` is the whitelist: a call to anything not in it is rejected
before evaluation, and ``FORBIDDEN`` names are rejected outright even if a
later change adds them to the table.

Arguments arrive as PHP values (see :mod:`recombinator.sandbox.values`) and
are coerced the way PHP 8 coerces scalar parameters of internal functions in
non-strict mode. Coercions PHP would warn about raise ``SandboxError``.
"""

import base64
import hashlib
import math
import urllib.parse
import zlib
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, List

from .errors import SandboxError
from .values import (
    PHP_INT_MAX, PhpArray, add, check_string, compare, fits_int, float_to_string,
    identical, is_numeric_string, loose_equals, multiply, power, to_bool, to_float, to_int,
    to_number, to_string, type_name,
)

FORBIDDEN = frozenset({
    # code execution
    'eval', 'exec', 'system', 'passthru', 'shell_exec', 'popen', 'proc_open',
    'pcntl_exec', 'assert', 'create_function', 'include', 'include_once',
    'require', 'require_once',
    # filesystem
    'file_put_contents', 'file_get_contents', 'fopen', 'fwrite', 'fputs',
    'fread', 'file', 'readfile', 'unlink', 'rmdir', 'mkdir', 'chmod',
    'chown', 'chgrp', 'touch', 'symlink', 'link', 'copy', 'rename',
    'tmpfile', 'tempnam',
    # network
    'curl_exec', 'curl_init', 'curl_multi_exec', 'fsockopen',
    'socket_connect', 'socket_create', 'socket_send', 'socket_write',
    'mail', 'stream_socket_client', 'stream_socket_server',
    # process state
    'header', 'setcookie', 'session_start', 'session_destroy',
    'session_regenerate_id', 'set_time_limit', 'ini_set', 'ini_alter',
    'putenv', 'apache_setenv',
    # databases
    'mysqli_query', 'mysql_query', 'pg_query', 'oci_execute',
    'exit', 'die', 'register_shutdown_function', 'register_tick_function',
    'pcntl_signal', 'pcntl_alarm',
    # dynamic dispatch
    'call_user_func', 'call_user_func_array', 'forward_static_call',
    'forward_static_call_array',
})

BUILTINS: Dict[str, Callable] = {}


def builtin(*names: str):
    def register(func: Callable) -> Callable:
        for name in names or (func.__name__.rstrip('_'),):
            BUILTINS[name] = func
        return func
    return register


def is_allowed(name: str) -> bool:
    name = name.lower()
    return name in BUILTINS and name not in FORBIDDEN


# ── parameter coercion ──

def _type_error(expected: str, value: Any) -> SandboxError:
    return SandboxError(f'argument must be of type {expected}, {type_name(value)} given',
                        SandboxError.TYPE_ERROR)


def _str(value: Any) -> str:
    if value is None:
        raise SandboxError('passing null to a string parameter is deprecated',
                           SandboxError.TYPE_ERROR)
    if isinstance(value, PhpArray):
        raise _type_error('string', value)
    return to_string(value)


def _int(value: Any) -> int:
    if value is None or isinstance(value, PhpArray):
        raise _type_error('int', value)
    number = to_number(value)
    if isinstance(number, float):
        if not math.isfinite(number) or number != int(number) or not fits_int(int(number)):
            raise _type_error('int', value)
        return int(number)
    return number


def _num(value: Any):
    if value is None or isinstance(value, PhpArray):
        raise _type_error('int|float', value)
    return to_number(value)


def _float(value: Any) -> float:
    return float(_num(value))


def _array(value: Any) -> PhpArray:
    if not isinstance(value, PhpArray):
        raise _type_error('array', value)
    return value


def _bytes(value: str) -> bytes:
    return value.encode('utf-8')


def _text(data: bytes) -> str:
    try:
        return check_string(data.decode('utf-8'))
    except UnicodeDecodeError as exc:
        raise SandboxError('result is not valid UTF-8', SandboxError.UNSUPPORTED, exc)


def _offset(offset: int, length: int) -> int:
    return max(length + offset, 0) if offset < 0 else offset


# ═══════════════════════════════════════════════════════════════════
#  Math
# ═══════════════════════════════════════════════════════════════════

@builtin()
def abs_(value):
    number = _num(value)
    if isinstance(number, int):
        return abs(number) if fits_int(abs(number)) else float(abs(number))
    return abs(number)


@builtin()
def ceil(value):
    return float(math.ceil(_float(value)))


@builtin()
def floor(value):
    return float(math.floor(_float(value)))


def php_round(value: float, precision: int = 0) -> float:
    """Round half away from zero, on the shortest decimal representation."""
    if not math.isfinite(value):
        return value
    quantum = Decimal(1).scaleb(-precision)
    rounded = Decimal(repr(float(value))).quantize(quantum, rounding=ROUND_HALF_UP)
    return float(rounded)


@builtin()
def round_(value, precision=0):
    return php_round(_float(value), _int(precision))


@builtin()
def sqrt(value):
    number = _float(value)
    if number < 0:
        return math.nan
    return math.sqrt(number)


@builtin('pow')
def pow_(base, exponent):
    return power(_num(base), _num(exponent))


@builtin()
def intdiv(num1, num2):
    x, y = _int(num1), _int(num2)
    if y == 0:
        raise SandboxError('division by zero', SandboxError.DIVISION_BY_ZERO)
    quotient = abs(x) // abs(y)
    quotient = quotient if (x >= 0) == (y >= 0) else -quotient
    if not fits_int(quotient):
        raise SandboxError('division of PHP_INT_MIN by -1 is not an integer',
                           SandboxError.VALUE_ERROR)
    return quotient


@builtin()
def fmod(num1, num2):
    y = _float(num2)
    if y == 0:
        return math.nan
    return math.fmod(_float(num1), y)


def _extreme(args, sign: int):
    if len(args) == 1:
        values = _array(args[0]).values()
        if not values:
            raise SandboxError('argument must contain at least one element',
                               SandboxError.VALUE_ERROR)
    elif not args:
        raise SandboxError('expects at least 1 argument', SandboxError.TYPE_ERROR)
    else:
        values = list(args)
    result = values[0]
    for value in values[1:]:
        if compare(value, result) * sign > 0:
            result = value
    return result


@builtin()
def max_(*args):
    return _extreme(args, 1)


@builtin()
def min_(*args):
    return _extreme(args, -1)


@builtin()
def pi():
    return math.pi


def _unary_math(func: Callable) -> Callable:
    def wrapper(value):
        try:
            return func(_float(value))
        except ValueError:
            return math.nan
        except OverflowError:
            return math.inf
    return wrapper


for _name, _func in (('sin', math.sin), ('cos', math.cos), ('tan', math.tan),
                     ('asin', math.asin), ('acos', math.acos), ('atan', math.atan),
                     ('sinh', math.sinh), ('cosh', math.cosh), ('tanh', math.tanh),
                     ('asinh', math.asinh), ('acosh', math.acosh), ('atanh', math.atanh),
                     ('exp', math.exp), ('expm1', math.expm1), ('log10', math.log10),
                     ('log1p', math.log1p), ('deg2rad', math.radians),
                     ('rad2deg', math.degrees)):
    BUILTINS[_name] = _unary_math(_func)


@builtin()
def atan2(y, x):
    return math.atan2(_float(y), _float(x))


@builtin()
def hypot(x, y):
    return math.hypot(_float(x), _float(y))


@builtin()
def log(num, base=math.e):
    x, b = _float(num), _float(base)
    if b <= 0 or b == 1:
        raise SandboxError('base must be greater than 0 and not equal to 1',
                           SandboxError.VALUE_ERROR)
    if x < 0:
        return math.nan
    if x == 0:
        return -math.inf
    return math.log(x) if b == math.e else math.log(x) / math.log(b)


@builtin()
def is_nan(value):
    return math.isnan(_float(value))


@builtin()
def is_finite(value):
    return math.isfinite(_float(value))


@builtin()
def is_infinite(value):
    return math.isinf(_float(value))


def _from_base(value, base: int, digits: str):
    text = ''.join(c for c in _str(value).lower() if c in digits)
    number = int(text, base) if text else 0
    return number if fits_int(number) else float(number)


def _to_base(value, fmt: str) -> str:
    number = _int(value)
    return format(number & 0xFFFFFFFFFFFFFFFF, fmt)


@builtin()
def hexdec(value):
    return _from_base(value, 16, '0123456789abcdef')


@builtin()
def bindec(value):
    return _from_base(value, 2, '01')


@builtin()
def octdec(value):
    return _from_base(value, 8, '01234567')


@builtin()
def dechex(value):
    return _to_base(value, 'x')


@builtin()
def decbin(value):
    return _to_base(value, 'b')


@builtin()
def decoct(value):
    return _to_base(value, 'o')


@builtin()
def number_format(num, decimals=0, decimal_separator='.', thousands_separator=','):
    decimals = max(_int(decimals), 0)
    value = php_round(_float(num), decimals)
    text = f'{abs(value):.{decimals}f}'
    whole, _, fraction = text.partition('.')
    groups = []
    while len(whole) > 3:
        groups.insert(0, whole[-3:])
        whole = whole[:-3]
    groups.insert(0, whole)
    result = _str(thousands_separator).join(groups)
    if decimals:
        result += _str(decimal_separator) + fraction
    if value < 0 and any(c not in '0.,' for c in text):
        result = '-' + result
    return result


# ═══════════════════════════════════════════════════════════════════
#  Strings
# ═══════════════════════════════════════════════════════════════════

_TRIM_DEFAULT = ' \n\r\t\v\x00'


def _charlist(characters: str) -> str:
    out = []
    i = 0
    while i < len(characters):
        if characters[i + 1:i + 3] == '..' and i + 3 < len(characters):
            start, end = ord(characters[i]), ord(characters[i + 3])
            out.extend(chr(c) for c in range(start, end + 1))
            i += 4
        else:
            out.append(characters[i])
            i += 1
    return ''.join(out)


@builtin()
def strlen(string):
    return len(_bytes(_str(string)))


def _ascii_map(text: str, upper: bool) -> str:
    if upper:
        return ''.join(c.upper() if 'a' <= c <= 'z' else c for c in text)
    return ''.join(c.lower() if 'A' <= c <= 'Z' else c for c in text)


@builtin()
def strtolower(string):
    return _ascii_map(_str(string), False)


@builtin()
def strtoupper(string):
    return _ascii_map(_str(string), True)


@builtin()
def ucfirst(string):
    text = _str(string)
    return _ascii_map(text[:1], True) + text[1:]


@builtin()
def lcfirst(string):
    text = _str(string)
    return _ascii_map(text[:1], False) + text[1:]


@builtin()
def ucwords(string, separators=' \t\r\n\f\v'):
    text, seps = _str(string), _str(separators)
    out = []
    capitalize = True
    for ch in text:
        out.append(_ascii_map(ch, True) if capitalize else ch)
        capitalize = ch in seps
    return ''.join(out)


@builtin()
def trim(string, characters=_TRIM_DEFAULT):
    return _str(string).strip(_charlist(_str(characters)))


@builtin()
def ltrim(string, characters=_TRIM_DEFAULT):
    return _str(string).lstrip(_charlist(_str(characters)))


@builtin('rtrim', 'chop')
def rtrim(string, characters=_TRIM_DEFAULT):
    return _str(string).rstrip(_charlist(_str(characters)))


@builtin()
def str_repeat(string, times):
    count = _int(times)
    if count < 0:
        raise SandboxError('argument #2 ($times) must be greater than or equal to 0',
                           SandboxError.VALUE_ERROR)
    text = _str(string)
    if len(_bytes(text)) * count > 1024 * 1024:
        raise SandboxError('string result exceeds 1 MiB', SandboxError.LIMIT_EXCEEDED)
    return text * count


@builtin()
def strrev(string):
    return _text(_bytes(_str(string))[::-1])


@builtin()
def str_pad(string, length, pad_string=' ', pad_type=1):
    text, pad, mode = _str(string), _str(pad_string), _int(pad_type)
    target = _int(length)
    missing = target - len(_bytes(text))
    if missing <= 0:
        return text
    if not pad:
        raise SandboxError('argument #3 ($pad_string) must be a non-empty string',
                           SandboxError.VALUE_ERROR)
    if mode not in (0, 1, 2):
        raise SandboxError('argument #4 ($pad_type) is invalid', SandboxError.VALUE_ERROR)

    def fill(n: int) -> str:
        return _text((_bytes(pad) * (n // max(len(_bytes(pad)), 1) + 1))[:n])

    if mode == 0:
        return fill(missing) + text
    if mode == 1:
        return text + fill(missing)
    left = missing // 2
    return fill(left) + text + fill(missing - left)


@builtin()
def substr(string, offset, length=None):
    data = _bytes(_str(string))
    start = _offset(_int(offset), len(data))
    if start > len(data):
        return ''
    if length is None:
        return _text(data[start:])
    count = _int(length)
    end = len(data) + count if count < 0 else start + count
    return _text(data[start:max(end, start)])


def _find(haystack, needle, offset, reverse=False, fold=False):
    data, pattern = _bytes(_str(haystack)), _bytes(_str(needle))
    if fold:
        data, pattern = data.lower(), pattern.lower()
    position = _int(offset)
    if abs(position) > len(data) if position < 0 else position > len(data):
        raise SandboxError('offset not contained in string', SandboxError.VALUE_ERROR)
    if reverse:
        if position < 0:
            index = data.rfind(pattern, 0, len(data) + position + len(pattern))
        else:
            index = data.rfind(pattern, position)
    else:
        index = data.find(pattern, _offset(position, len(data)))
    return False if index < 0 else index


@builtin()
def strpos(haystack, needle, offset=0):
    return _find(haystack, needle, offset)


@builtin()
def stripos(haystack, needle, offset=0):
    return _find(haystack, needle, offset, fold=True)


@builtin()
def strrpos(haystack, needle, offset=0):
    return _find(haystack, needle, offset, reverse=True)


@builtin()
def strripos(haystack, needle, offset=0):
    return _find(haystack, needle, offset, reverse=True, fold=True)


@builtin()
def str_contains(haystack, needle):
    return _str(needle) in _str(haystack)


@builtin()
def str_starts_with(haystack, needle):
    return _str(haystack).startswith(_str(needle))


@builtin()
def str_ends_with(haystack, needle):
    return _str(haystack).endswith(_str(needle))


@builtin()
def strstr(haystack, needle, before_needle=False):
    text, pattern = _str(haystack), _str(needle)
    index = text.find(pattern)
    if index < 0:
        return False
    return text[:index] if to_bool(before_needle) else text[index:]


@builtin()
def substr_count(haystack, needle):
    pattern = _str(needle)
    if not pattern:
        raise SandboxError('argument #2 ($needle) cannot be empty', SandboxError.VALUE_ERROR)
    return _str(haystack).count(pattern)


def _replace_one(subject: str, search, replace) -> str:
    if isinstance(search, PhpArray):
        searches = [_str(s) for s in search.values()]
        if isinstance(replace, PhpArray):
            replacements = [_str(r) for r in replace.values()]
        else:
            replacements = [_str(replace)] * len(searches)
        for i, pattern in enumerate(searches):
            if pattern:
                subject = subject.replace(pattern, replacements[i] if i < len(replacements) else '')
        return subject
    if isinstance(replace, PhpArray):
        raise SandboxError('argument #2 ($replace) must be of type string when '
                           'argument #1 ($search) is a string', SandboxError.TYPE_ERROR)
    pattern = _str(search)
    return subject.replace(pattern, _str(replace)) if pattern else subject


@builtin()
def str_replace(search, replace, subject):
    if isinstance(subject, PhpArray):
        result = PhpArray()
        for key, value in subject.items():
            result.set(key, value if isinstance(value, PhpArray)
                       else check_string(_replace_one(_str(value), search, replace)))
        return result
    return check_string(_replace_one(_str(subject), search, replace))


@builtin()
def strtr(string, *args):
    text = _str(string)
    if len(args) == 2:
        source, target = _str(args[0]), _str(args[1])
        size = min(len(source), len(target))
        return text.translate(str.maketrans(source[:size], target[:size]))
    if len(args) != 1:
        raise SandboxError('strtr() expects 2 or 3 arguments', SandboxError.TYPE_ERROR)
    pairs = {_str(k): _str(v) for k, v in _array(args[0]).items() if _str(k)}
    if not pairs:
        return text
    keys = sorted(pairs, key=len, reverse=True)
    out = []
    i = 0
    while i < len(text):
        for key in keys:
            if text.startswith(key, i):
                out.append(pairs[key])
                i += len(key)
                break
        else:
            out.append(text[i])
            i += 1
    return check_string(''.join(out))


@builtin('implode', 'join')
def implode(separator, array=None):
    if array is None:
        separator, array = '', separator
    elif isinstance(separator, PhpArray) and not isinstance(array, PhpArray):
        raise SandboxError('argument #1 ($separator) must be of type string',
                           SandboxError.TYPE_ERROR)
    pieces = [to_string(v) for v in _array(array).values()]
    return check_string(_str(separator).join(pieces))


@builtin()
def explode(separator, string, limit=PHP_INT_MAX):
    sep, text, count = _str(separator), _str(string), _int(limit)
    if not sep:
        raise SandboxError('argument #1 ($separator) cannot be empty', SandboxError.VALUE_ERROR)
    parts = text.split(sep)
    if count > 0:
        if len(parts) > count:
            parts = parts[:count - 1] + [sep.join(parts[count - 1:])]
    elif count < 0:
        parts = parts[:count]
    else:
        parts = [sep.join(parts)] if len(parts) > 1 else parts
    return PhpArray.from_values(parts)


@builtin()
def str_split(string, length=1):
    data, size = _bytes(_str(string)), _int(length)
    if size < 1:
        raise SandboxError('argument #2 ($length) must be greater than 0', SandboxError.VALUE_ERROR)
    if not data:
        return PhpArray.from_values([''])
    return PhpArray.from_values([_text(data[i:i + size]) for i in range(0, len(data), size)])


def _cmp_result(a: bytes, b: bytes) -> int:
    return (a > b) - (a < b)


@builtin()
def strcmp(string1, string2):
    return _cmp_result(_bytes(_str(string1)), _bytes(_str(string2)))


@builtin()
def strcasecmp(string1, string2):
    return _cmp_result(_bytes(_str(string1)).lower(), _bytes(_str(string2)).lower())


@builtin()
def strncmp(string1, string2, length):
    n = _int(length)
    if n < 0:
        raise SandboxError('argument #3 ($length) must be greater than or equal to 0',
                           SandboxError.VALUE_ERROR)
    return _cmp_result(_bytes(_str(string1))[:n], _bytes(_str(string2))[:n])


@builtin()
def ord_(character):
    data = _bytes(_str(character))
    return data[0] if data else 0


@builtin()
def chr_(codepoint):
    value = _int(codepoint) % 256
    if value > 127:
        raise SandboxError('non-ASCII byte is not representable', SandboxError.UNSUPPORTED)
    return chr(value)


@builtin()
def md5(string):
    return hashlib.md5(_bytes(_str(string))).hexdigest()


@builtin()
def sha1(string):
    return hashlib.sha1(_bytes(_str(string))).hexdigest()


@builtin()
def crc32(string):
    return zlib.crc32(_bytes(_str(string)))


@builtin()
def bin2hex(string):
    return _bytes(_str(string)).hex()


@builtin()
def base64_encode(string):
    return base64.b64encode(_bytes(_str(string))).decode('ascii')


@builtin()
def base64_decode(string, strict=False):
    text = _str(string)
    try:
        data = base64.b64decode(text + '=' * (-len(text) % 4), validate=to_bool(strict))
    except ValueError:
        return False
    return _text(data)


@builtin()
def urlencode(string):
    return urllib.parse.quote_plus(_str(string), safe='-_.')


@builtin()
def rawurlencode(string):
    return urllib.parse.quote(_str(string), safe='-_.~')


@builtin()
def urldecode(string):
    return urllib.parse.unquote_plus(_str(string))


@builtin()
def rawurldecode(string):
    return urllib.parse.unquote(_str(string))


@builtin()
def htmlspecialchars(string):
    text = _str(string)
    for char, entity in (('&', '&amp;'), ('<', '&lt;'), ('>', '&gt;'),
                         ('"', '&quot;'), ("'", '&#039;')):
        text = text.replace(char, entity)
    return check_string(text)


@builtin()
def nl2br(string):
    text = _str(string)
    out = []
    i = 0
    while i < len(text):
        pair = text[i:i + 2]
        if pair in ('\r\n', '\n\r'):
            out.append('<br />' + pair)
            i += 2
        elif text[i] in '\r\n':
            out.append('<br />' + text[i])
            i += 1
        else:
            out.append(text[i])
            i += 1
    return check_string(''.join(out))


@builtin()
def addslashes(string):
    text = _str(string)
    for char, escaped in (('\\', '\\\\'), ("'", "\\'"), ('"', '\\"'), ('\x00', '\\0')):
        text = text.replace(char, escaped)
    return text


# ── sprintf ──

def _format_spec(spec: str, value: Any) -> str:
    """One ``%[flags][width][.precision]conv`` directive (without ``%``/argnum)."""
    conv = spec[-1]
    body = spec[:-1]
    left = plus = False
    pad = ' '
    i = 0
    while i < len(body) and body[i] in "-+ 0'":
        if body[i] == '-':
            left = True
        elif body[i] == '+':
            plus = True
        elif body[i] == '0':
            pad = '0'
        elif body[i] == ' ':
            pad = ' '
        elif body[i] == "'":
            i += 1
            pad = body[i]
        i += 1
    rest = body[i:]
    width_text, _, precision_text = rest.partition('.')
    width = int(width_text) if width_text else 0
    precision = int(precision_text) if precision_text else None

    if conv == 's':
        text = to_string(value)
        if precision is not None:
            text = text[:precision]
    elif conv in 'dui':
        number = _int_for_format(value)
        if conv == 'u' and number < 0:
            number += 1 << 64
        text = str(number)
        if plus and number >= 0:
            text = '+' + text
    elif conv in 'fF':
        number = php_round(to_float(value), 6 if precision is None else precision)
        text = f'{number:.{6 if precision is None else precision}f}'
        if plus and number >= 0:
            text = '+' + text
    elif conv in 'eE':
        number = to_float(value)
        text = f'{number:.{6 if precision is None else precision}e}'
        mantissa, exponent = text.split('e')
        text = f'{mantissa}e{exponent[0]}{int(exponent[1:])}'
        if conv == 'E':
            text = text.upper()
        if plus and number >= 0:
            text = '+' + text
    elif conv in 'gG':
        text = float_to_string(to_float(value), precision or 6)
        if conv == 'g':
            text = text.lower()
    elif conv in 'xXob':
        number = _int_for_format(value) & 0xFFFFFFFFFFFFFFFF
        text = format(number, {'x': 'x', 'X': 'X', 'o': 'o', 'b': 'b'}[conv])
    elif conv == 'c':
        return chr_(_int_for_format(value))
    else:
        raise SandboxError(f'unknown format specifier "{conv}"', SandboxError.VALUE_ERROR)

    if len(text) < width:
        if left:
            filler = ' ' if pad == '0' else pad
            text = text + filler * (width - len(text))
        elif pad == '0' and text[:1] in '+-' and conv not in 's':
            text = text[0] + '0' * (width - len(text)) + text[1:]
        else:
            text = pad * (width - len(text)) + text
    return text


def _int_for_format(value: Any) -> int:
    if isinstance(value, float):
        return int(value) if math.isfinite(value) and fits_int(int(value)) else 0
    return to_int(value)


_SPEC_CHARS = set("-+ 0'.0123456789")


def php_sprintf(fmt: str, args: List[Any]) -> str:
    out = []
    i = 0
    next_arg = 0
    while i < len(fmt):
        ch = fmt[i]
        if ch != '%':
            out.append(ch)
            i += 1
            continue
        if fmt[i + 1:i + 2] == '%':
            out.append('%')
            i += 2
            continue
        j = i + 1
        argnum = None
        k = j
        while k < len(fmt) and fmt[k].isdigit():
            k += 1
        if k > j and fmt[k:k + 1] == '$':
            argnum = int(fmt[j:k]) - 1
            j = k + 1
        k = j
        while k < len(fmt) and (fmt[k] in _SPEC_CHARS or (fmt[k - 1:k] == "'" and k > j)):
            k += 1
        if k >= len(fmt):
            raise SandboxError('missing format specifier at end of string', SandboxError.VALUE_ERROR)
        index = argnum if argnum is not None else next_arg
        if argnum is None:
            next_arg += 1
        if index < 0 or index >= len(args):
            raise SandboxError(f'{len(args) + 1} arguments are required, '
                               f'{len(args)} given', SandboxError.VALUE_ERROR)
        out.append(_format_spec(fmt[j:k + 1], args[index]))
        i = k + 1
    return check_string(''.join(out))


@builtin()
def sprintf(format, *values):
    return php_sprintf(_str(format), list(values))


@builtin()
def vsprintf(format, values):
    return php_sprintf(_str(format), _array(values).values())


# ── json ──

def _json_string(text: str) -> str:
    out = ['"']
    for ch in text:
        if ch == '"':
            out.append('\\"')
        elif ch == '\\':
            out.append('\\\\')
        elif ch == '/':
            out.append('\\/')
        elif ch in '\b\f\n\r\t':
            out.append({'\b': '\\b', '\f': '\\f', '\n': '\\n', '\r': '\\r', '\t': '\\t'}[ch])
        elif ord(ch) < 0x20 or ord(ch) > 0x7e:
            code = ord(ch)
            if code > 0xFFFF:
                code -= 0x10000
                out.append('\\u%04x\\u%04x' % (0xD800 + (code >> 10), 0xDC00 + (code & 0x3FF)))
            else:
                out.append('\\u%04x' % code)
        else:
            out.append(ch)
    out.append('"')
    return ''.join(out)


def _json(value: Any) -> str:
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise SandboxError('Inf and NaN cannot be JSON encoded', SandboxError.VALUE_ERROR)
        return repr(value) if value != int(value) or abs(value) >= 1e15 else repr(value)
    if isinstance(value, str):
        return _json_string(value)
    if value.is_list():
        return '[' + ','.join(_json(v) for v in value.values()) + ']'
    return '{' + ','.join(f'{_json_string(str(k))}:{_json(v)}' for k, v in value.items()) + '}'


@builtin()
def json_encode(value):
    return check_string(_json(value))


# ═══════════════════════════════════════════════════════════════════
#  Arrays
# ═══════════════════════════════════════════════════════════════════

@builtin('count', 'sizeof')
def count(value, mode=0):
    array = _array(value)
    if _int(mode):
        total = 0
        for item in array.values():
            total += 1
            if isinstance(item, PhpArray):
                total += count(item, 1)
        return total
    return len(array)


def _fold_numbers(array: PhpArray, start, op):
    result = start
    for value in array.values():
        if isinstance(value, PhpArray):
            raise SandboxError('addition is not supported on type array', SandboxError.TYPE_ERROR)
        result = op(result, to_number(value))
    return result


@builtin()
def array_sum(array):
    return _fold_numbers(_array(array), 0, add)


@builtin()
def array_product(array):
    return _fold_numbers(_array(array), 1, multiply)


@builtin()
def array_keys(array, filter_value=None, strict=False):
    keys = _array(array).keys()
    if filter_value is not None:
        match = identical if to_bool(strict) else loose_equals
        keys = [k for k, v in array.items() if match(v, filter_value)]
    return PhpArray.from_values(keys)


@builtin()
def array_values(array):
    return PhpArray.from_values(_array(array).values())


@builtin()
def array_merge(*arrays):
    result = PhpArray()
    for array in arrays:
        for key, value in _array(array).items():
            if isinstance(key, int):
                result.append(value)
            else:
                result.set(key, value)
    return result


@builtin()
def array_reverse(array, preserve_keys=False):
    result = PhpArray()
    for key, value in reversed(_array(array).items()):
        if isinstance(key, int) and not to_bool(preserve_keys):
            result.append(value)
        else:
            result.set(key, value)
    return result


@builtin()
def array_slice(array, offset, length=None, preserve_keys=False):
    items = _array(array).items()
    start = _offset(_int(offset), len(items))
    if length is None:
        end = len(items)
    else:
        size = _int(length)
        end = len(items) + size if size < 0 else start + size
    result = PhpArray()
    for key, value in items[start:max(end, start)]:
        if isinstance(key, int) and not to_bool(preserve_keys):
            result.append(value)
        else:
            result.set(key, value)
    return result


@builtin()
def in_array(needle, haystack, strict=False):
    match = identical if to_bool(strict) else loose_equals
    return any(match(v, needle) for v in _array(haystack).values())


@builtin()
def array_search(needle, haystack, strict=False):
    match = identical if to_bool(strict) else loose_equals
    for key, value in _array(haystack).items():
        if match(value, needle):
            return key
    return False


@builtin('array_key_exists', 'key_exists')
def array_key_exists(key, array):
    if isinstance(key, PhpArray):
        raise _type_error('string|int', key)
    return _array(array).has(key)


@builtin()
def array_unique(array):
    seen = []
    result = PhpArray()
    for key, value in _array(array).items():
        marker = to_string(value)
        if marker not in seen:
            seen.append(marker)
            result.set(key, value)
    return result


@builtin()
def array_flip(array):
    result = PhpArray()
    for key, value in _array(array).items():
        if isinstance(value, (int, str)) and not isinstance(value, bool):
            result.set(value, key)
        else:
            raise SandboxError('can only flip string and integer values', SandboxError.VALUE_ERROR)
    return result


@builtin()
def array_fill(start_index, count_, value):
    start, size = _int(start_index), _int(count_)
    if size < 0:
        raise SandboxError('argument #2 ($count) must be greater than or equal to 0',
                           SandboxError.VALUE_ERROR)
    result = PhpArray()
    for i in range(size):
        result.set(start + i, value)
    return result


@builtin()
def array_fill_keys(keys, value):
    result = PhpArray()
    for key in _array(keys).values():
        result.set(key if isinstance(key, int) and not isinstance(key, bool) else to_string(key),
                   value)
    return result


@builtin()
def array_combine(keys, values):
    key_list, value_list = _array(keys).values(), _array(values).values()
    if len(key_list) != len(value_list):
        raise SandboxError('both parameters should have an equal number of elements',
                           SandboxError.VALUE_ERROR)
    result = PhpArray()
    for key, value in zip(key_list, value_list):
        result.set(key if isinstance(key, int) and not isinstance(key, bool) else to_string(key),
                   value)
    return result


@builtin()
def array_pad(array, length, value):
    source = _array(array)
    size = _int(length)
    missing = abs(size) - len(source)
    if missing <= 0:
        return source.copy()
    padding = [value] * missing
    if size > 0:
        result = array_merge(source, PhpArray.from_values(padding))
    else:
        result = array_merge(PhpArray.from_values(padding), source)
    return result


@builtin()
def array_count_values(array):
    result = PhpArray()
    for value in _array(array).values():
        if isinstance(value, (int, str)) and not isinstance(value, bool):
            result.set(value, result.get(value, 0) + 1)
        else:
            raise SandboxError('can only count string and integer values', SandboxError.VALUE_ERROR)
    return result


@builtin()
def array_key_first(array):
    keys = _array(array).keys()
    return keys[0] if keys else None


@builtin()
def array_key_last(array):
    keys = _array(array).keys()
    return keys[-1] if keys else None


@builtin()
def array_is_list(array):
    return _array(array).is_list()


@builtin()
def array_chunk(array, length, preserve_keys=False):
    size = _int(length)
    if size < 1:
        raise SandboxError('argument #2 ($length) must be greater than 0', SandboxError.VALUE_ERROR)
    result = PhpArray()
    chunk = None
    for key, value in _array(array).items():
        if chunk is None or len(chunk) == size:
            chunk = PhpArray()
            result.append(chunk)
        if to_bool(preserve_keys):
            chunk.set(key, value)
        else:
            chunk.append(value)
    return result


@builtin()
def range_(start, end, step=1):
    if isinstance(start, str) and isinstance(end, str) and len(start) == 1 and len(end) == 1 \
            and not start.isdigit() and not end.isdigit():
        a, b = ord(start), ord(end)
        stride = abs(_int(step)) or 1
        codes = range(a, b + 1, stride) if a <= b else range(a, b - 1, -stride)
        return PhpArray.from_values([chr(c) for c in codes])
    first, last, stride = _num(start), _num(end), _num(step)
    if stride == 0:
        raise SandboxError('argument #3 ($step) cannot be 0', SandboxError.VALUE_ERROR)
    stride = abs(stride)
    values = []
    use_float = any(isinstance(v, float) for v in (first, last, stride))
    count_ = int(abs(last - first) // stride) + 1
    if count_ > 10000:
        raise SandboxError('array exceeds 10000 elements', SandboxError.LIMIT_EXCEEDED)
    direction = 1 if last >= first else -1
    for i in range(count_):
        value = first + direction * i * stride
        values.append(float(value) if use_float else value)
    return PhpArray.from_values(values)


# ═══════════════════════════════════════════════════════════════════
#  Types
# ═══════════════════════════════════════════════════════════════════

@builtin()
def is_array(value):
    return isinstance(value, PhpArray)


@builtin()
def is_string(value):
    return isinstance(value, str)


@builtin('is_int', 'is_integer', 'is_long')
def is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)


@builtin('is_float', 'is_double')
def is_float(value):
    return isinstance(value, float)


@builtin()
def is_bool(value):
    return isinstance(value, bool)


@builtin()
def is_null(value):
    return value is None


@builtin()
def is_numeric(value):
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    return isinstance(value, str) and is_numeric_string(value)


@builtin()
def is_scalar(value):
    return isinstance(value, (bool, int, float, str))


@builtin('is_iterable', 'is_countable')
def is_iterable(value):
    return isinstance(value, PhpArray)


@builtin()
def intval(value, base=10):
    radix = _int(base)
    if radix != 10 and isinstance(value, str):
        text = value.strip(' \t\n\r\v\f').lower()
        sign = -1 if text.startswith('-') else 1
        text = text.lstrip('+-')
        if radix == 16 and text.startswith('0x') or radix == 8 and text.startswith('0o') \
                or radix == 2 and text.startswith('0b'):
            text = text[2:]
        digits = '0123456789abcdefghijklmnopqrstuvwxyz'[:radix]
        prefix = ''
        for ch in text:
            if ch not in digits:
                break
            prefix += ch
        number = sign * int(prefix, radix) if prefix else 0
        return max(min(number, PHP_INT_MAX), -PHP_INT_MAX - 1)
    return to_int(value)


@builtin('floatval', 'doubleval')
def floatval(value):
    return to_float(value)


@builtin()
def strval(value):
    return to_string(value)


@builtin()
def boolval(value):
    return to_bool(value)


@builtin()
def gettype(value):
    return {
        'null': 'NULL', 'bool': 'boolean', 'int': 'integer', 'float': 'double',
        'string': 'string', 'array': 'array',
    }.get(type_name(value), 'unknown type')
