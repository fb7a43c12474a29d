"""
Per-run builtins installed into the global environment.

Usage:
    from jsstep.builtins import register_builtins
    register_builtins(global_env, realm, logger, rng)

Native implementations share one signature:
    native_impl(interp, this, args)
where `interp` is the running Interpreter, `this` the receiver and `args` the
evaluated arguments. Callbacks into user functions go through
`interp.invoke`, so their steps are recorded like any other call. A native
that needs to raise a catchable language error returns a `Throw` signal.
"""
import functools
import json
import logging
import math
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, List

from .errors import JSRangeError, JSTypeError
from .signals import Throw
from .values import (
    JSArray, JSObject, NativeFunction, apply_operator, array_index, array_join, check_array_growth, is_callable,
    is_nullish, is_number, is_object, number_to_string, strict_equals, to_boolean, to_int32, to_number,
    to_property_key, to_string, to_uint32, undefined,
)

log = logging.getLogger("jsstep.builtins")

ERROR_NAMES = ("Error", "TypeError", "RangeError", "ReferenceError", "SyntaxError")

MAX_SAFE_INTEGER = 2 ** 53
MAX_STRING_LENGTH = 2 ** 29 - 24

_FLOAT_PREFIX = re.compile(r"[+-]?(Infinity|(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?)", re.ASCII)


def _arg(args: List[Any], index: int, default=undefined):
    return args[index] if len(args) > index else default


def _to_integer(value) -> float:
    n = to_number(value)
    if math.isnan(n):
        return 0.0
    if math.isinf(n):
        return n
    return float(math.trunc(n))


def _to_int(value) -> int:
    """`_to_integer` as a Python int, with the infinities pinned to +/-2**53."""
    n = _to_integer(value)
    return int(min(max(n, -MAX_SAFE_INTEGER), MAX_SAFE_INTEGER))


def _check_string_length(length: int):
    if length > MAX_STRING_LENGTH:
        raise JSRangeError("Invalid string length")


def _relative_index(value, length: int, default: int) -> int:
    """Resolve a possibly negative start/end argument against `length` (slice semantics)."""
    if value is undefined:
        return default
    n = _to_integer(value)
    if n < 0:
        return int(max(length + n, 0))
    return int(min(n, length))


def same_value_zero(a, b) -> bool:
    if is_number(a) and is_number(b) and math.isnan(a) and math.isnan(b):
        return True
    return strict_equals(a, b)


def parse_int(text, radix=undefined) -> float:
    s = to_string(text).strip()
    sign = 1
    if s[:1] in ("+", "-"):
        sign = -1 if s[0] == "-" else 1
        s = s[1:]
    base = int(to_int32(radix)) if radix is not undefined else 0
    if base == 0:
        base = 10
        if s[:2].lower() == "0x":
            base, s = 16, s[2:]
    elif base == 16 and s[:2].lower() == "0x":
        s = s[2:]
    if not 2 <= base <= 36:
        return math.nan
    allowed = "0123456789abcdefghijklmnopqrstuvwxyz"[:base]
    digits = ""
    for ch in s:
        if ch not in allowed and ch not in allowed.upper():
            break
        digits += ch
    if not digits:
        return math.nan
    return float(sign * int(digits, base))


def parse_float(text) -> float:
    m = _FLOAT_PREFIX.match(to_string(text).strip())
    if m is None:
        return math.nan
    value = m.group(0)
    if value.lstrip("+-") == "Infinity":
        return -math.inf if value.startswith("-") else math.inf
    return float(value)


def to_fixed(value, digits=undefined) -> str:
    x = to_number(value)
    places = _to_int(digits)
    if not 0 <= places <= 100:
        raise JSRangeError("toFixed() digits argument must be between 0 and 100")
    if math.isnan(x) or math.isinf(x) or abs(x) >= 1e21:
        return number_to_string(x)
    quantum = Decimal(1).scaleb(-places)
    text = str(Decimal(x).quantize(quantum, rounding=ROUND_HALF_UP))
    if text.startswith("-") and Decimal(text) == 0:
        text = text[1:]
    return text


def number_to_radix(value, radix) -> str:
    x = to_number(value)
    base = 10 if radix is undefined else _to_int(radix)
    if not 2 <= base <= 36:
        raise JSRangeError("toString() radix must be between 2 and 36")
    if base == 10 or math.isnan(x) or math.isinf(x) or not x.is_integer():
        return number_to_string(x)
    n = abs(int(x))
    chars = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    while True:
        n, rem = divmod(n, base)
        out = chars[rem] + out
        if n == 0:
            break
    return ("-" if x < 0 else "") + out


def js_round(x=undefined, *_rest) -> float:
    n = to_number(x)
    if math.isnan(n) or math.isinf(n):
        return n
    return float(math.floor(n + 0.5))


def _math_unary(fn):
    def wrapper(x=undefined, *_rest):
        n = to_number(x)
        try:
            return float(fn(n))
        except (ValueError, OverflowError):
            return math.nan
    return wrapper


def _math_extreme(pick, empty):
    def wrapper(*values):
        nums = [to_number(v) for v in values]
        if any(math.isnan(n) for n in nums):
            return math.nan
        return pick(nums) if nums else empty
    return wrapper


def _integral_or_same(fn):
    def op(n):
        if math.isnan(n) or math.isinf(n):
            return n
        return fn(n)
    return op


def _sign(n):
    if math.isnan(n) or n == 0:
        return n
    return 1.0 if n > 0 else -1.0


def register_builtins(global_env, realm, logger, rng) -> None:
    """Install console, Math and the standard library subset for one run."""

    def native(name, impl, builtin=None, construct=None):
        return NativeFunction(name, impl, builtin=builtin, construct=construct,
                              function_proto=realm.function_prototype)

    def install(target: JSObject, name, impl, **kwargs):
        target.define_hidden(name, native(name, impl, **kwargs))

    def declare(name, value):
        global_env.create_mutable_binding(name, "builtin", value)

    def throw_error(name, message):
        return Throw(realm.new_error(name, message))

    def make_array(items=()) -> JSArray:
        return JSArray(items)

    def this_array(this, method) -> JSArray:
        if not isinstance(this, JSArray):
            raise JSTypeError(f"Array.prototype.{method} called on a non-array value")
        return this

    def callback_of(args, method):
        cb = _arg(args, 0)
        if not is_callable(cb):
            raise JSTypeError(f"{to_string(cb) if not is_object(cb) else 'object'} is not a function "
                              f"(in Array.prototype.{method})")
        return cb

    # --- console --------------------------------------------------------------
    def _console_log(interp, this, args):
        logger.log_output(*args)
        return undefined

    console = realm.new_object()
    for level in ("log", "info", "warn", "error"):
        install(console, level, _console_log, builtin=f"console.{level}")
    declare("console", console)

    # --- Math -------------------------------------------------------------------
    # members are plain callables applied directly by the call evaluator
    math_ns = realm.new_object(class_name="Math")
    math_members = {
        "floor": _math_unary(_integral_or_same(math.floor)),
        "ceil": _math_unary(_integral_or_same(math.ceil)),
        "trunc": _math_unary(_integral_or_same(math.trunc)),
        "round": js_round,
        "abs": _math_unary(abs),
        "sqrt": _math_unary(lambda n: math.nan if n < 0 else math.sqrt(n)),
        "cbrt": _math_unary(lambda n: math.copysign(abs(n) ** (1.0 / 3), n)),
        "pow": lambda x=undefined, y=undefined, *_: apply_operator("**", x, y),
        "sign": _math_unary(_sign),
        "log": _math_unary(lambda n: math.nan if n < 0 else (-math.inf if n == 0 else math.log(n))),
        "exp": _math_unary(math.exp),
        "sin": _math_unary(math.sin),
        "cos": _math_unary(math.cos),
        "tan": _math_unary(math.tan),
        "atan2": lambda y=undefined, x=undefined, *_: math.atan2(to_number(y), to_number(x)),
        "max": _math_extreme(max, -math.inf),
        "min": _math_extreme(min, math.inf),
        "random": lambda *_: rng.random(),
    }
    for name, fn in math_members.items():
        math_ns.define_hidden(name, fn)
    for name, value in (("PI", math.pi), ("E", math.e), ("LN2", math.log(2)), ("SQRT2", math.sqrt(2))):
        math_ns.define_hidden(name, value)
    declare("Math", math_ns)

    # --- Array ------------------------------------------------------------------
    def _array_ctor(interp, this, args):
        if len(args) == 1 and is_number(args[0]):
            n = args[0]
            if n < 0 or not float(n).is_integer():
                raise JSRangeError("Invalid array length")
            check_array_growth(0, int(n))
            return make_array([undefined] * int(n))
        return make_array(args)

    def _array_is_array(interp, this, args):
        return isinstance(_arg(args, 0), JSArray)

    def _array_from(interp, this, args):
        source = _arg(args, 0)
        items = realm.iterate(source) if not is_nullish(source) else []
        map_fn = _arg(args, 1)
        if not is_callable(map_fn):
            return make_array(items)
        out = make_array()
        for i, value in enumerate(items):
            result = interp.invoke(map_fn, undefined, [value, float(i)])
            if isinstance(result, Throw):
                return result
            out.append(result)
        return out

    def _array_of(interp, this, args):
        return make_array(args)

    Arr = native("Array", _array_ctor, construct=lambda interp, args, new_target: _array_ctor(interp, None, args))
    Arr.properties.define_hidden("prototype", realm.array_prototype)
    install(Arr.properties, "isArray", _array_is_array)
    install(Arr.properties, "from", _array_from)
    install(Arr.properties, "of", _array_of)
    realm.array_prototype.define_hidden("constructor", Arr)

    def _array_push(interp, this, args):
        arr = this_array(this, "push")
        arr.extend(args)
        return float(len(arr))

    def _array_pop(interp, this, args):
        arr = this_array(this, "pop")
        return arr.pop() if arr else undefined

    def _array_shift(interp, this, args):
        arr = this_array(this, "shift")
        return arr.pop(0) if arr else undefined

    def _array_unshift(interp, this, args):
        arr = this_array(this, "unshift")
        arr[0:0] = args
        return float(len(arr))

    def _array_slice(interp, this, args):
        arr = this_array(this, "slice")
        start = _relative_index(_arg(args, 0), len(arr), 0)
        end = _relative_index(_arg(args, 1), len(arr), len(arr))
        return make_array(arr[start:end])

    def _array_splice(interp, this, args):
        arr = this_array(this, "splice")
        length = len(arr)
        start = _relative_index(_arg(args, 0, 0.0), length, 0)
        if len(args) < 2:
            count = length - start
        else:
            count = int(min(max(_to_integer(args[1]), 0), length - start))
        removed = make_array(arr[start:start + count])
        arr[start:start + count] = args[2:]
        return removed

    def _array_concat(interp, this, args):
        out = make_array(this_array(this, "concat"))
        for value in args:
            if isinstance(value, JSArray):
                out.extend(value)
            else:
                out.append(value)
        return out

    def _array_join(interp, this, args):
        sep = _arg(args, 0)
        return array_join(this_array(this, "join"), "," if sep is undefined else to_string(sep))

    def _array_index_of(interp, this, args):
        arr = this_array(this, "indexOf")
        target = _arg(args, 0)
        start = _relative_index(_arg(args, 1), len(arr), 0)
        for i in range(start, len(arr)):
            if strict_equals(arr[i], target):
                return float(i)
        return -1.0

    def _array_last_index_of(interp, this, args):
        arr = this_array(this, "lastIndexOf")
        target = _arg(args, 0)
        for i in range(len(arr) - 1, -1, -1):
            if strict_equals(arr[i], target):
                return float(i)
        return -1.0

    def _array_includes(interp, this, args):
        target = _arg(args, 0)
        return any(same_value_zero(v, target) for v in this_array(this, "includes"))

    def _array_reverse(interp, this, args):
        arr = this_array(this, "reverse")
        arr.reverse()
        return arr

    def _array_fill(interp, this, args):
        arr = this_array(this, "fill")
        start = _relative_index(_arg(args, 1), len(arr), 0)
        end = _relative_index(_arg(args, 2), len(arr), len(arr))
        for i in range(start, end):
            arr[i] = _arg(args, 0)
        return arr

    def _array_at(interp, this, args):
        arr = this_array(this, "at")
        idx = _to_int(_arg(args, 0, 0.0))
        if idx < 0:
            idx += len(arr)
        return arr[idx] if 0 <= idx < len(arr) else undefined

    def _array_flat(interp, this, args):
        depth = _arg(args, 0)
        depth = 1 if depth is undefined else _to_int(depth)

        def flatten(items, level):
            out = []
            for value in items:
                if isinstance(value, JSArray) and level > 0:
                    out.extend(flatten(value, level - 1))
                else:
                    out.append(value)
            return out
        return make_array(flatten(this_array(this, "flat"), depth))

    def _iterate_with(method):
        """Shared driver for callback-taking array methods; yields (index, value, result)."""
        def run(interp, this, args):
            arr = this_array(this, method)
            cb = callback_of(args, method)
            this_arg = _arg(args, 1)
            for i in range(len(arr)):
                if i >= len(arr):
                    break
                value = arr[i]
                result = interp.invoke(cb, this_arg, [value, float(i), arr])
                yield i, value, result
        return run

    def _array_for_each(interp, this, args):
        for _i, _v, result in _iterate_with("forEach")(interp, this, args):
            if isinstance(result, Throw):
                return result
        return undefined

    def _array_map(interp, this, args):
        out = make_array()
        for _i, _v, result in _iterate_with("map")(interp, this, args):
            if isinstance(result, Throw):
                return result
            out.append(result)
        return out

    def _array_filter(interp, this, args):
        out = make_array()
        for _i, value, result in _iterate_with("filter")(interp, this, args):
            if isinstance(result, Throw):
                return result
            if to_boolean(result):
                out.append(value)
        return out

    def _array_find(interp, this, args):
        for _i, value, result in _iterate_with("find")(interp, this, args):
            if isinstance(result, Throw):
                return result
            if to_boolean(result):
                return value
        return undefined

    def _array_find_index(interp, this, args):
        for i, _v, result in _iterate_with("findIndex")(interp, this, args):
            if isinstance(result, Throw):
                return result
            if to_boolean(result):
                return float(i)
        return -1.0

    def _array_some(interp, this, args):
        for _i, _v, result in _iterate_with("some")(interp, this, args):
            if isinstance(result, Throw):
                return result
            if to_boolean(result):
                return True
        return False

    def _array_every(interp, this, args):
        for _i, _v, result in _iterate_with("every")(interp, this, args):
            if isinstance(result, Throw):
                return result
            if not to_boolean(result):
                return False
        return True

    def _array_reduce(interp, this, args):
        arr = this_array(this, "reduce")
        cb = callback_of(args, "reduce")
        start = 0
        if len(args) > 1:
            acc = args[1]
        elif arr:
            acc, start = arr[0], 1
        else:
            raise JSTypeError("Reduce of empty array with no initial value")
        for i in range(start, len(arr)):
            acc = interp.invoke(cb, undefined, [acc, arr[i], float(i), arr])
            if isinstance(acc, Throw):
                return acc
        return acc

    def _array_sort(interp, this, args):
        arr = this_array(this, "sort")
        compare = _arg(args, 0)
        defined = [v for v in arr if v is not undefined]
        holes = len(arr) - len(defined)
        thrown: List[Throw] = []

        def by_callback(a, b):
            if thrown:
                return 0
            result = interp.invoke(compare, undefined, [a, b])
            if isinstance(result, Throw):
                thrown.append(result)
                return 0
            n = to_number(result)
            return 0 if math.isnan(n) else (-1 if n < 0 else (1 if n > 0 else 0))

        if is_callable(compare):
            defined.sort(key=functools.cmp_to_key(by_callback))
        else:
            defined.sort(key=to_string)
        if thrown:
            return thrown[0]
        arr[:] = defined + [undefined] * holes
        return arr

    array_methods = {
        "push": _array_push, "pop": _array_pop, "shift": _array_shift, "unshift": _array_unshift,
        "slice": _array_slice, "splice": _array_splice, "concat": _array_concat, "join": _array_join,
        "indexOf": _array_index_of, "lastIndexOf": _array_last_index_of, "includes": _array_includes,
        "reverse": _array_reverse, "fill": _array_fill, "at": _array_at, "flat": _array_flat,
        "forEach": _array_for_each, "map": _array_map, "filter": _array_filter, "find": _array_find,
        "findIndex": _array_find_index, "some": _array_some, "every": _array_every,
        "reduce": _array_reduce, "sort": _array_sort,
        "toString": lambda interp, this, args: array_join(this_array(this, "toString"), ","),
    }
    for name, impl in array_methods.items():
        install(realm.array_prototype, name, impl)
    declare("Array", Arr)

    # --- String -----------------------------------------------------------------
    def _string_ctor(interp, this, args):
        return to_string(args[0]) if args else ""

    def _from_char_code(interp, this, args):
        return "".join(chr(to_int32(a) & 0xFFFF) for a in args)

    Str = native("String", _string_ctor)
    Str.properties.define_hidden("prototype", realm.string_prototype)
    install(Str.properties, "fromCharCode", _from_char_code)
    realm.string_prototype.define_hidden("constructor", Str)

    def _split(interp, this, args):
        s = to_string(this)
        sep = _arg(args, 0)
        limit = _arg(args, 1)
        if sep is undefined:
            parts = [s]
        elif to_string(sep) == "":
            parts = list(s)
        else:
            parts = s.split(to_string(sep))
        if limit is not undefined:
            parts = parts[:to_uint32(limit)]
        return make_array(parts)

    def _replace(interp, this, args, replace_all=False):
        s = to_string(this)
        pattern = to_string(_arg(args, 0))
        replacement = _arg(args, 1)
        out, pos = [], 0
        while True:
            idx = s.find(pattern, pos)
            if idx < 0:
                break
            if is_callable(replacement):
                result = interp.invoke(replacement, undefined, [pattern, float(idx), s])
                if isinstance(result, Throw):
                    return result
                piece = to_string(result)
            else:
                piece = to_string(replacement).replace("$&", pattern)
            out.append(s[pos:idx] + piece)
            pos = idx + len(pattern)
            if not replace_all:
                break
            if not pattern:
                if pos >= len(s):
                    break
                out.append(s[pos])
                pos += 1
        out.append(s[pos:])
        return "".join(out)

    def _substring(interp, this, args):
        s = to_string(this)

        def clamp(v, default):
            if v is undefined:
                return default
            return int(min(max(_to_integer(v), 0), len(s)))
        start, end = clamp(_arg(args, 0), 0), clamp(_arg(args, 1), len(s))
        if start > end:
            start, end = end, start
        return s[start:end]

    def _pad(at_start):
        def impl(interp, this, args):
            s = to_string(this)
            target = _to_int(_arg(args, 0))
            filler = _arg(args, 1)
            filler = " " if filler is undefined else to_string(filler)
            if target <= len(s) or not filler:
                return s
            _check_string_length(target)
            needed = target - len(s)
            pad = (filler * (needed // len(filler) + 1))[:needed]
            return pad + s if at_start else s + pad
        return impl

    def _repeat(interp, this, args):
        count = _to_integer(_arg(args, 0))
        if count < 0 or math.isinf(count):
            raise JSRangeError(f"Invalid count value: {number_to_string(count)}")
        s = to_string(this)
        if s:
            _check_string_length(len(s) * count)
        return s * int(count)

    def _char_at(interp, this, args):
        s = to_string(this)
        idx = _to_int(_arg(args, 0))
        return s[idx] if 0 <= idx < len(s) else ""

    def _char_code_at(interp, this, args):
        s = to_string(this)
        idx = _to_int(_arg(args, 0))
        return float(ord(s[idx])) if 0 <= idx < len(s) else math.nan

    def _string_index_of(interp, this, args):
        s = to_string(this)
        start = int(min(max(_to_integer(_arg(args, 1)), 0), len(s)))
        return float(s.find(to_string(_arg(args, 0)), start))

    def _string_at(interp, this, args):
        s = to_string(this)
        idx = _to_int(_arg(args, 0, 0.0))
        if idx < 0:
            idx += len(s)
        return s[idx] if 0 <= idx < len(s) else undefined

    def _starts_with(interp, this, args):
        s = to_string(this)
        pos = int(min(max(_to_integer(_arg(args, 1)), 0), len(s)))
        return s.startswith(to_string(_arg(args, 0)), pos)

    def _ends_with(interp, this, args):
        s = to_string(this)
        end = _arg(args, 1)
        end = len(s) if end is undefined else int(min(max(_to_integer(end), 0), len(s)))
        return s[:end].endswith(to_string(_arg(args, 0)))

    string_methods = {
        "toUpperCase": lambda interp, this, args: to_string(this).upper(),
        "toLowerCase": lambda interp, this, args: to_string(this).lower(),
        "trim": lambda interp, this, args: to_string(this).strip(),
        "trimStart": lambda interp, this, args: to_string(this).lstrip(),
        "trimEnd": lambda interp, this, args: to_string(this).rstrip(),
        "split": _split,
        "charAt": _char_at,
        "charCodeAt": _char_code_at,
        "indexOf": _string_index_of,
        "lastIndexOf": lambda interp, this, args: float(to_string(this).rfind(to_string(_arg(args, 0)))),
        "includes": lambda interp, this, args: to_string(_arg(args, 0)) in to_string(this),
        "slice": lambda interp, this, args: to_string(this)[
            _relative_index(_arg(args, 0), len(to_string(this)), 0):
            _relative_index(_arg(args, 1), len(to_string(this)), len(to_string(this)))],
        "substring": _substring,
        "startsWith": _starts_with,
        "endsWith": _ends_with,
        "repeat": _repeat,
        "padStart": _pad(True),
        "padEnd": _pad(False),
        "replace": _replace,
        "replaceAll": lambda interp, this, args: _replace(interp, this, args, replace_all=True),
        "concat": lambda interp, this, args: to_string(this) + "".join(to_string(a) for a in args),
        "at": _string_at,
        "toString": lambda interp, this, args: to_string(this),
    }
    for name, impl in string_methods.items():
        install(realm.string_prototype, name, impl)
    declare("String", Str)

    # --- Number / Boolean -------------------------------------------------------------
    def _number_ctor(interp, this, args):
        return to_number(args[0]) if args else 0.0

    Num = native("Number", _number_ctor)
    Num.properties.define_hidden("prototype", realm.number_prototype)
    install(Num.properties, "isInteger",
            lambda interp, this, args: is_number(_arg(args, 0)) and math.isfinite(args[0])
            and float(args[0]).is_integer())
    install(Num.properties, "isFinite",
            lambda interp, this, args: is_number(_arg(args, 0)) and math.isfinite(args[0]))
    install(Num.properties, "isNaN",
            lambda interp, this, args: is_number(_arg(args, 0)) and math.isnan(args[0]))
    install(Num.properties, "parseFloat", lambda interp, this, args: parse_float(_arg(args, 0)))
    install(Num.properties, "parseInt", lambda interp, this, args: parse_int(_arg(args, 0), _arg(args, 1)))
    for name, value in (("MAX_SAFE_INTEGER", 9007199254740991.0), ("MIN_SAFE_INTEGER", -9007199254740991.0),
                        ("EPSILON", 2.0 ** -52), ("POSITIVE_INFINITY", math.inf),
                        ("NEGATIVE_INFINITY", -math.inf), ("NaN", math.nan)):
        Num.properties.define_hidden(name, value)
    install(realm.number_prototype, "toFixed", lambda interp, this, args: to_fixed(this, _arg(args, 0)))
    install(realm.number_prototype, "toString", lambda interp, this, args: number_to_radix(this, _arg(args, 0)))
    realm.number_prototype.define_hidden("constructor", Num)
    declare("Number", Num)

    Bool = native("Boolean", lambda interp, this, args: to_boolean(_arg(args, 0)))
    Bool.properties.define_hidden("prototype", realm.boolean_prototype)
    install(realm.boolean_prototype, "toString", lambda interp, this, args: to_string(this))
    declare("Boolean", Bool)

    # --- Object -------------------------------------------------------------------
    def _object_ctor(interp, this, args):
        value = _arg(args, 0)
        return value if is_object(value) else realm.new_object()

    def _object_keys(interp, this, args):
        return make_array(realm.own_keys(_require_object(_arg(args, 0), "keys")))

    def _object_values(interp, this, args):
        obj = _require_object(_arg(args, 0), "values")
        return make_array(realm.get_property(obj, k) for k in realm.own_keys(obj))

    def _object_entries(interp, this, args):
        obj = _require_object(_arg(args, 0), "entries")
        return make_array(make_array([k, realm.get_property(obj, k)]) for k in realm.own_keys(obj))

    def _object_assign(interp, this, args):
        target = _require_object(_arg(args, 0), "assign")
        for source in args[1:]:
            if is_nullish(source):
                continue
            for key in realm.own_keys(source):
                realm.set_property(target, key, realm.get_property(source, key))
        return target

    def _object_create(interp, this, args):
        proto = _arg(args, 0)
        if proto is not None and not isinstance(proto, JSObject):
            raise JSTypeError("Object prototype may only be an Object or null")
        return JSObject(proto=proto)

    def _object_from_entries(interp, this, args):
        out = realm.new_object()
        for pair in realm.iterate(_arg(args, 0)):
            out[to_property_key(realm.get_property(pair, 0))] = realm.get_property(pair, 1)
        return out

    def _require_object(value, method):
        if is_nullish(value):
            raise JSTypeError(f"Cannot convert {to_string(value)} to object (in Object.{method})")
        return value

    def _has_own_property(interp, this, args):
        key = to_property_key(_arg(args, 0))
        if isinstance(this, JSArray):
            idx = array_index(key)
            return (idx is not None and idx < len(this)) or key == "length" or (
                this.props is not None and key in this.props)
        if isinstance(this, JSObject):
            return key in this
        if isinstance(this, str):
            idx = array_index(key)
            return (idx is not None and idx < len(this)) or key == "length"
        return hasattr(this, "properties") and key in this.properties

    Obj = native("Object", _object_ctor,
                 construct=lambda interp, args, new_target: _object_ctor(interp, None, args))
    Obj.properties.define_hidden("prototype", realm.object_prototype)
    for name, impl in (("keys", _object_keys), ("values", _object_values), ("entries", _object_entries),
                       ("assign", _object_assign), ("create", _object_create),
                       ("fromEntries", _object_from_entries)):
        install(Obj.properties, name, impl)
    install(realm.object_prototype, "hasOwnProperty", _has_own_property)
    install(realm.object_prototype, "toString", lambda interp, this, args: "[object Object]")
    realm.object_prototype.define_hidden("constructor", Obj)
    declare("Object", Obj)

    # --- Function.prototype.call / apply / bind ------------------------------
    def _target_function(this, method):
        if not is_callable(this):
            raise JSTypeError(f"Function.prototype.{method} called on a non-function")
        return this

    def _fn_call(interp, this, args):
        target = _target_function(this, "call")
        return interp.invoke(target, _arg(args, 0), list(args[1:]))

    def _fn_apply(interp, this, args):
        target = _target_function(this, "apply")
        arg_array = _arg(args, 1)
        real_args = [] if is_nullish(arg_array) else realm.iterate(arg_array)
        return interp.invoke(target, _arg(args, 0), real_args)

    def _fn_bind(interp, this, args):
        target = _target_function(this, "bind")
        bound_this = _arg(args, 0)
        bound_args = list(args[1:])

        def _bound_native(interp2, this2, call_args):
            return interp2.invoke(target, bound_this, bound_args + list(call_args))

        return native(f"bound {getattr(target, 'name', '') or ''}".rstrip(), _bound_native)

    install(realm.function_prototype, "call", _fn_call)
    install(realm.function_prototype, "apply", _fn_apply)
    install(realm.function_prototype, "bind", _fn_bind)

    # --- JSON -------------------------------------------------------------------
    class _CircularStructure(Exception):
        pass

    def _json_quote(s):
        return json.dumps(s, ensure_ascii=False)

    def _json_serialize(value, indent, current, stack):
        if isinstance(value, bool):
            return "true" if value else "false"
        if value is None:
            return "null"
        if is_number(value):
            return number_to_string(value) if math.isfinite(value) else "null"
        if isinstance(value, str):
            return _json_quote(value)
        if value is undefined or is_callable(value):
            return None
        if any(value is seen for seen in stack):
            raise _CircularStructure()
        stack.append(value)
        inner = current + indent
        sep = ",\n" + inner if indent else ","
        try:
            if isinstance(value, JSArray):
                parts = [_json_serialize(v, indent, inner, stack) or "null" for v in value]
                if not parts:
                    return "[]"
                return "[\n" + inner + sep.join(parts) + "\n" + current + "]" if indent else "[" + sep.join(parts) + "]"
            if isinstance(value, JSObject):
                if is_callable(value.get("toJSON")):
                    return _json_serialize(to_string(value), indent, current, stack)
                parts = []
                colon = ": " if indent else ":"
                for key in value.own_enumerable_keys():
                    text = _json_serialize(value[key], indent, inner, stack)
                    if text is not None:
                        parts.append(_json_quote(key) + colon + text)
                if not parts:
                    return "{}"
                return "{\n" + inner + sep.join(parts) + "\n" + current + "}" if indent else "{" + sep.join(parts) + "}"
            return _json_quote(to_string(value))
        finally:
            stack.pop()

    def _json_stringify(interp, this, args):
        space = _arg(args, 2)
        if is_number(space):
            indent = " " * int(min(max(_to_integer(space), 0), 10))
        elif isinstance(space, str):
            indent = space[:10]
        else:
            indent = ""
        try:
            text = _json_serialize(_arg(args, 0), indent, "", [])
        except _CircularStructure:
            return throw_error("TypeError", "Converting circular structure to JSON")
        return undefined if text is None else text

    def _to_js(value):
        if isinstance(value, list):
            return make_array(_to_js(v) for v in value)
        if isinstance(value, JSObject):
            for key in list(value.keys()):
                value[key] = _to_js(value[key])
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return float(value)
        return value

    def _json_parse(interp, this, args):
        text = to_string(_arg(args, 0))
        try:
            parsed = json.loads(text, object_pairs_hook=lambda pairs: realm.new_object(dict(pairs)),
                                parse_int=float, parse_constant=lambda name: math.nan)
        except json.JSONDecodeError as err:
            log.debug("JSON.parse failed: %s", err)
            return throw_error("SyntaxError", f"Unexpected token in JSON at position {err.pos}")
        return _to_js(parsed)

    json_ns = realm.new_object(class_name="JSON")
    install(json_ns, "stringify", _json_stringify)
    install(json_ns, "parse", _json_parse)
    declare("JSON", json_ns)

    # --- Errors -----------------------------------------------------------------
    def _error_class(name):
        proto = realm.error_prototype if name == "Error" else JSObject(proto=realm.error_prototype, class_name=name)
        realm.error_prototypes[name] = proto
        proto.define_hidden("name", name)
        proto.define_hidden("message", "")

        def construct(interp, args, new_target):
            message = _arg(args, 0)
            err = realm.new_error(name, "" if message is undefined else to_string(message))
            target_proto = getattr(new_target, "prototype", undefined)
            if isinstance(target_proto, JSObject) and target_proto is not proto:
                # subclass instance: keep the subclass prototype and class name
                err.proto = target_proto
                err.class_name = getattr(new_target, "name", None) or name
            return err

        ctor = native(name, lambda interp, this, args: construct(interp, args, None), construct=construct)
        ctor.properties.define_hidden("prototype", proto)
        proto.define_hidden("constructor", ctor)
        install(proto, "toString",
                lambda interp, this, args: to_string(this) if isinstance(this, JSObject) else name)
        return ctor

    for name in ERROR_NAMES:
        declare(name, _error_class(name))

    # --- global functions and values -------------------------------------------
    declare("parseInt", native("parseInt", lambda interp, this, args: parse_int(_arg(args, 0), _arg(args, 1))))
    declare("parseFloat", native("parseFloat", lambda interp, this, args: parse_float(_arg(args, 0))))
    declare("isNaN", native("isNaN", lambda interp, this, args: math.isnan(to_number(_arg(args, 0)))))
    declare("isFinite", native("isFinite", lambda interp, this, args: math.isfinite(to_number(_arg(args, 0)))))
    declare("undefined", undefined)
    declare("NaN", math.nan)
    declare("Infinity", math.inf)
    log.debug("builtins registered: %d globals", len(global_env.record))
