"""
Value model: the `undefined` sentinel, objects, arrays, function values and the
ECMAScript coercion / operator rules the evaluator builds on.

Mapping of language values onto Python:
 - undefined -> `undefined` singleton, null -> None
 - booleans -> bool, numbers -> float, strings -> str
 - objects -> JSObject (dict subclass with a `proto` link), arrays -> JSArray
 - functions -> FunctionValue / ClassConstructor / NativeFunction, or a plain
   Python callable for host helpers such as the Math namespace
"""
from __future__ import annotations

import math
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional

from .errors import JSRangeError, JSTypeError

# Arrays stay dense Python lists; growth past this many slots in one write is refused.
MAX_ARRAY_GROWTH = 1_000_000


class Undefined:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "undefined"

    def __bool__(self):
        return False


undefined = Undefined()


class SideEffectPlaceholder:
    """Result of a safe-mode preview that would have needed a call."""

    def __repr__(self):
        return "[Side Effect]"


SIDE_EFFECT = SideEffectPlaceholder()


class JSObject(dict):
    """Plain object: own enumerable properties in insertion order plus a prototype link."""

    def __init__(self, *args, proto: Optional['JSObject'] = None, class_name: str = "Object", **kwargs):
        super().__init__(*args, **kwargs)
        self.proto = proto
        self.class_name = class_name
        self.non_enumerable: set = set()

    def define_hidden(self, key: str, value: Any):
        self[key] = value
        self.non_enumerable.add(key)

    def own_enumerable_keys(self) -> List[str]:
        if not self.non_enumerable:
            return list(self.keys())
        return [k for k in self.keys() if k not in self.non_enumerable]

    def __repr__(self):
        return f"<JSObject {self.class_name} {dict.__repr__(self)}>"

    # identity semantics: two distinct objects are never equal
    def __eq__(self, other):
        return self is other

    def __ne__(self, other):
        return self is not other

    __hash__ = object.__hash__


class JSArray(list):
    """Array value; holes are stored as `undefined`."""

    def __init__(self, items: Iterable[Any] = ()):
        super().__init__(items)
        self.props: Optional[JSObject] = None

    def __eq__(self, other):
        return self is other

    def __ne__(self, other):
        return self is not other

    __hash__ = object.__hash__

    def __repr__(self):
        return f"<JSArray {list.__repr__(self)}>"


class FunctionValue:
    """A user-defined function closing over the environment it was created in."""

    is_class_constructor = False

    def __init__(self, node, arena, env_handle: int, name: Optional[str] = None,
                 lexical_this: Any = undefined, home_object: Optional[JSObject] = None,
                 function_proto: Optional[JSObject] = None):
        self.node = node
        self.params = list(getattr(node, 'params', None) or [])
        self.body = getattr(node, 'body', None)
        self.arena = arena
        self.env_handle = env_handle
        self.is_arrow = node.type == "ArrowFunctionExpression"
        self.name = name if name is not None else (node.id.name if getattr(node, 'id', None) else None)
        self.lexical_this = lexical_this
        # object whose prototype `super.x` starts from (class methods only)
        self.home_object = home_object
        self.properties = JSObject(proto=function_proto)
        self.closure_explained = False
        if not self.is_arrow and not getattr(node, 'method', False):
            prototype = JSObject(proto=None)
            prototype.define_hidden("constructor", self)
            self.properties.define_hidden("prototype", prototype)

    @property
    def env(self):
        return self.arena.resolve(self.env_handle)

    @property
    def prototype(self) -> Any:
        return self.properties.get("prototype", undefined)

    def display_name(self) -> str:
        if self.name:
            return self.name
        return "(arrow closure)" if self.is_arrow else "Function"

    def call(self, interp, this, args):
        return interp.call_function(self, this, list(args))

    def __repr__(self):
        return f"<FunctionValue {self.name or '<anon>'}>"


class ClassConstructor(FunctionValue):
    """Function value produced by a class declaration or expression."""

    is_class_constructor = True

    def __init__(self, node, arena, env_handle: int, name: Optional[str],
                 constructor_node=None, parent: Any = None,
                 function_proto: Optional[JSObject] = None):
        super().__init__(node, arena, env_handle, name, function_proto=function_proto)
        self.constructor_node = constructor_node
        self.params = list(constructor_node.params) if constructor_node is not None else []
        self.body = constructor_node.body if constructor_node is not None else None
        self.parent = parent
        # (key, value node, is_static) for class fields, evaluated per instance
        self.fields: List[Any] = []

    def construct(self, interp, args, new_target=None):
        return interp.construct_class(self, list(args), new_target or self)

    def __repr__(self):
        return f"<ClassConstructor {self.name or '<anon>'}>"


class NativeFunction:
    """Host function exposed to programs; impl(interp, this, args) -> value."""

    def __init__(self, name: str, impl: Callable, builtin: Optional[str] = None,
                 construct: Optional[Callable] = None, function_proto: Optional[JSObject] = None):
        self.name = name
        self.impl = impl
        # tag consulted by the call evaluator, e.g. "console.log"
        self.builtin = builtin
        self.construct_impl = construct
        self.properties = JSObject(proto=function_proto)

    @property
    def prototype(self) -> Any:
        return self.properties.get("prototype", undefined)

    def call(self, interp, this, args):
        return self.impl(interp, this, list(args))

    def __repr__(self):
        return f"<NativeFunction {self.name}>"


def is_callable(value) -> bool:
    if isinstance(value, (FunctionValue, NativeFunction)):
        return True
    return callable(value) and not isinstance(value, (type, JSObject, JSArray, Undefined))


def is_object(value) -> bool:
    return isinstance(value, (JSObject, JSArray, FunctionValue, NativeFunction)) or (
        value is not None and not isinstance(value, (bool, int, float, str, Undefined)))


def is_nullish(value) -> bool:
    return value is None or value is undefined


def is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# --- Coercions ---------------------------------------------------------------

def typeof_value(v) -> str:
    if v is undefined:
        return "undefined"
    if v is None:
        return "object"
    if isinstance(v, bool):
        return "boolean"
    if is_number(v):
        return "number"
    if isinstance(v, str):
        return "string"
    if is_callable(v):
        return "function"
    return "object"


def to_boolean(v) -> bool:
    if v is undefined or v is None:
        return False
    if isinstance(v, bool):
        return v
    if is_number(v):
        return not (v == 0 or math.isnan(v))
    if isinstance(v, str):
        return v != ""
    return True


def number_to_string(n) -> str:
    """Number::toString for radix 10."""
    if isinstance(n, int):
        n = float(n)
    if math.isnan(n):
        return "NaN"
    if n == 0:
        return "0"
    if math.isinf(n):
        return "Infinity" if n > 0 else "-Infinity"
    sign = "-" if n < 0 else ""
    # shortest round-trip digits, then lay them out the way JS does
    dec = Decimal(repr(abs(n)))
    _, digit_tuple, exp = dec.as_tuple()
    digits = "".join(str(d) for d in digit_tuple).lstrip("0")
    stripped = digits.rstrip("0")
    exp += len(digits) - len(stripped)
    digits = stripped or "0"
    k = len(digits)
    point = k + exp
    if k <= point <= 21:
        out = digits + "0" * (point - k)
    elif 0 < point <= 21:
        out = digits[:point] + "." + digits[point:]
    elif -6 < point <= 0:
        out = "0." + "0" * (-point) + digits
    else:
        e = point - 1
        e_str = ("+" if e >= 0 else "-") + str(abs(e))
        out = digits[0] + ("." + digits[1:] if k > 1 else "") + "e" + e_str
    return sign + out


def _string_to_number(s: str) -> float:
    text = s.strip()
    if text == "":
        return 0.0
    if not text.isascii() or "_" in text:
        return math.nan
    lowered = text.lower()
    try:
        if lowered.startswith(("0x", "0o", "0b")):
            return float(int(text[2:], {"x": 16, "o": 8, "b": 2}[lowered[1]]))
        if text in ("Infinity", "+Infinity"):
            return math.inf
        if text == "-Infinity":
            return -math.inf
        if lowered in ("inf", "+inf", "-inf", "infinity", "+infinity", "-infinity", "nan"):
            return math.nan
        return float(text)
    except ValueError:
        return math.nan


def to_number(v) -> float:
    if v is undefined:
        return math.nan
    if v is None:
        return 0.0
    if isinstance(v, bool):
        return 1.0 if v else 0.0
    if is_number(v):
        return float(v)
    if isinstance(v, str):
        return _string_to_number(v)
    return to_number(to_primitive(v))


def to_primitive(v, hint: str = "default"):
    if not is_object(v):
        return v
    if isinstance(v, JSArray):
        return array_join(v, ",")
    if isinstance(v, JSObject):
        if is_error_object(v):
            return error_to_string(v)
        return "[object Object]"
    if isinstance(v, (FunctionValue, NativeFunction)):
        name = v.name or ""
        if isinstance(v, ClassConstructor):
            return f"class {name} {{ ... }}"
        return f"function {name}() {{ [code] }}"
    return str(v)


def to_string(v) -> str:
    if v is undefined:
        return "undefined"
    if v is None:
        return "null"
    if isinstance(v, bool):
        return "true" if v else "false"
    if is_number(v):
        return number_to_string(v)
    if isinstance(v, str):
        return v
    return to_string(to_primitive(v, "string"))


def to_property_key(v) -> str:
    if isinstance(v, str):
        return v
    return to_string(v)


def to_int32(v) -> int:
    n = to_number(v)
    if math.isnan(n) or math.isinf(n):
        return 0
    i = int(n) & 0xFFFFFFFF
    return i - 0x100000000 if i & 0x80000000 else i


def to_uint32(v) -> int:
    n = to_number(v)
    if math.isnan(n) or math.isinf(n):
        return 0
    return int(n) & 0xFFFFFFFF


def array_index(key) -> Optional[int]:
    """Canonical array index for a property key, or None."""
    if is_number(key):
        if key >= 0 and float(key).is_integer():
            return int(key)
        return None
    if isinstance(key, str) and key.isascii() and key.isdigit() and (key == "0" or not key.startswith("0")):
        return int(key)
    return None


def check_array_growth(current: int, new_length: int):
    if new_length - current > MAX_ARRAY_GROWTH:
        raise JSRangeError(f"Array length {new_length} exceeds the supported size")


def array_join(arr: JSArray, sep: str) -> str:
    return sep.join("" if is_nullish(x) else to_string(x) for x in arr)


def is_error_object(v) -> bool:
    return isinstance(v, JSObject) and v.class_name.endswith("Error") and "message" in v


def error_to_string(v: JSObject) -> str:
    name = to_string(v.get("name", v.class_name))
    message = to_string(v.get("message", ""))
    return f"{name}: {message}" if message else name


# --- Equality and operators --------------------------------------------------

def strict_equals(a, b) -> bool:
    if is_number(a) and is_number(b):
        return float(a) == float(b)
    if type(a) is not type(b):
        return False
    if isinstance(a, (str, bool)):
        return a == b
    return a is b


def loose_equals(a, b) -> bool:
    if is_nullish(a) and is_nullish(b):
        return True
    if is_nullish(a) or is_nullish(b):
        return False
    if is_number(a) and is_number(b):
        return float(a) == float(b)
    if type(a) is type(b):
        return strict_equals(a, b)
    if isinstance(a, bool):
        return loose_equals(to_number(a), b)
    if isinstance(b, bool):
        return loose_equals(a, to_number(b))
    if is_number(a) and isinstance(b, str):
        return float(a) == to_number(b)
    if isinstance(a, str) and is_number(b):
        return to_number(a) == float(b)
    if is_object(a) and not is_object(b):
        return loose_equals(to_primitive(a), b)
    if is_object(b) and not is_object(a):
        return loose_equals(a, to_primitive(b))
    return a is b


def js_add(a, b):
    pa, pb = to_primitive(a), to_primitive(b)
    if isinstance(pa, str) or isinstance(pb, str):
        return to_string(pa) + to_string(pb)
    return to_number(pa) + to_number(pb)


def _divide(x: float, y: float) -> float:
    if y == 0:
        if x == 0 or math.isnan(x):
            return math.nan
        negative = (x < 0) != (math.copysign(1.0, y) < 0)
        return -math.inf if negative else math.inf
    return x / y


def _modulo(x: float, y: float) -> float:
    if y == 0 or math.isinf(x) or math.isnan(x) or math.isnan(y):
        return math.nan
    if math.isinf(y):
        return x
    return math.fmod(x, y)


def _power(x: float, y: float) -> float:
    if math.isnan(y):
        return math.nan
    if y == 0:
        return 1.0
    if abs(x) == 1 and math.isinf(y):
        return math.nan
    try:
        return math.pow(x, y)
    except OverflowError:
        return math.inf if x > 0 or float(y).is_integer() and int(y) % 2 == 0 else -math.inf
    except ValueError:
        return math.nan


def _compare(a, b, op: str) -> bool:
    pa, pb = to_primitive(a, "number"), to_primitive(b, "number")
    if isinstance(pa, str) and isinstance(pb, str):
        if op == "<":
            return pa < pb
        if op == ">":
            return pa > pb
        if op == "<=":
            return pa <= pb
        return pa >= pb
    na, nb = to_number(pa), to_number(pb)
    if math.isnan(na) or math.isnan(nb):
        return False
    if op == "<":
        return na < nb
    if op == ">":
        return na > nb
    if op == "<=":
        return na <= nb
    return na >= nb


def _shift(op: str, a, b) -> float:
    count = to_uint32(b) & 0x1F
    if op == "<<":
        r = (to_int32(a) << count) & 0xFFFFFFFF
        return float(r - 0x100000000 if r & 0x80000000 else r)
    if op == ">>":
        return float(to_int32(a) >> count)
    return float(to_uint32(a) >> count)


def _bitwise(op: str, a, b) -> float:
    ai, bi = to_int32(a), to_int32(b)
    if op == "&":
        r = ai & bi
    elif op == "|":
        r = ai | bi
    else:
        r = ai ^ bi
    r &= 0xFFFFFFFF
    return float(r - 0x100000000 if r & 0x80000000 else r)


ARITHMETIC_OPERATORS = {
    "-": lambda a, b: to_number(a) - to_number(b),
    "*": lambda a, b: to_number(a) * to_number(b),
    "/": lambda a, b: _divide(to_number(a), to_number(b)),
    "%": lambda a, b: _modulo(to_number(a), to_number(b)),
    "**": lambda a, b: _power(to_number(a), to_number(b)),
}


def apply_operator(op: str, a, b, realm: Optional['Realm'] = None):
    """Evaluate a non-short-circuit binary operator on two already-evaluated operands."""
    if op == "+":
        return js_add(a, b)
    if op in ARITHMETIC_OPERATORS:
        try:
            return ARITHMETIC_OPERATORS[op](a, b)
        except OverflowError:
            return math.inf
    if op == "===":
        return strict_equals(a, b)
    if op == "!==":
        return not strict_equals(a, b)
    if op == "==":
        return loose_equals(a, b)
    if op == "!=":
        return not loose_equals(a, b)
    if op in ("<", ">", "<=", ">="):
        return _compare(a, b, op)
    if op in ("<<", ">>", ">>>"):
        return _shift(op, a, b)
    if op in ("&", "|", "^"):
        return _bitwise(op, a, b)
    if op == "in":
        if not is_object(b):
            raise JSTypeError(f"Cannot use 'in' operator to search for '{to_string(a)}' in {to_string(b)}")
        return (realm or Realm.bare()).has_property(b, to_property_key(a))
    if op == "instanceof":
        return instance_of(a, b)
    raise JSTypeError(f"Unsupported binary operator: {op}")


def instance_of(value, ctor) -> bool:
    if not is_callable(ctor) or not hasattr(ctor, "properties"):
        raise JSTypeError("Right-hand side of 'instanceof' is not callable")
    target = ctor.properties.get("prototype")
    if not isinstance(value, JSObject) or target is None:
        return False
    cur = value.proto
    seen = set()
    while cur is not None and id(cur) not in seen:
        if cur is target:
            return True
        seen.add(id(cur))
        cur = cur.proto
    return False


# --- Property access ---------------------------------------------------------

class Realm:
    """Per-run intrinsic prototypes consulted by property lookup."""

    def __init__(self):
        self.object_prototype = JSObject(proto=None)
        self.function_prototype = JSObject(proto=self.object_prototype)
        self.array_prototype = JSObject(proto=self.object_prototype)
        self.string_prototype = JSObject(proto=self.object_prototype)
        self.number_prototype = JSObject(proto=self.object_prototype)
        self.boolean_prototype = JSObject(proto=self.object_prototype)
        self.error_prototype = JSObject(proto=self.object_prototype, class_name="Error")
        self.error_prototypes: Dict[str, JSObject] = {"Error": self.error_prototype}

    @classmethod
    def bare(cls) -> 'Realm':
        return cls()

    def new_object(self, items: Optional[Dict[str, Any]] = None, class_name: str = "Object") -> JSObject:
        obj = JSObject(proto=self.object_prototype, class_name=class_name)
        if items:
            obj.update(items)
        return obj

    def new_error(self, name: str, message: str = "") -> JSObject:
        """Error instance: `name` is a hidden own property, `message` is enumerable."""
        err = JSObject(proto=self.error_prototypes.get(name, self.error_prototype), class_name=name)
        err.define_hidden("name", name)
        err["message"] = message
        return err

    def prototype_of(self, value) -> Optional[JSObject]:
        if isinstance(value, JSObject):
            return value.proto
        if isinstance(value, JSArray):
            return self.array_prototype
        if isinstance(value, str):
            return self.string_prototype
        if isinstance(value, bool):
            return self.boolean_prototype
        if is_number(value):
            return self.number_prototype
        if isinstance(value, (FunctionValue, NativeFunction)):
            return self.function_prototype
        return None

    @staticmethod
    def _lookup_chain(obj: Optional[JSObject], key: str):
        seen = set()
        while obj is not None and id(obj) not in seen:
            if key in obj:
                return obj[key]
            seen.add(id(obj))
            obj = obj.proto
        return undefined

    def get_property(self, obj, key):
        if obj is undefined or obj is None:
            raise JSTypeError(f"Cannot read properties of {to_string(obj)} (reading '{to_property_key(key)}')")
        if isinstance(obj, JSArray):
            idx = array_index(key)
            if idx is not None:
                return obj[idx] if idx < len(obj) else undefined
            skey = to_property_key(key)
            if skey == "length":
                return float(len(obj))
            if obj.props is not None and skey in obj.props:
                return obj.props[skey]
            return self._lookup_chain(self.array_prototype, skey)
        if isinstance(obj, str):
            idx = array_index(key)
            if idx is not None:
                return obj[idx] if idx < len(obj) else undefined
            skey = to_property_key(key)
            if skey == "length":
                return float(len(obj))
            return self._lookup_chain(self.string_prototype, skey)
        skey = to_property_key(key)
        if isinstance(obj, JSObject):
            return self._lookup_chain(obj, skey)
        if isinstance(obj, (FunctionValue, NativeFunction)):
            if skey in obj.properties:
                return obj.properties[skey]
            if skey == "name":
                return obj.name or ""
            if skey == "length" and isinstance(obj, FunctionValue):
                return float(len([p for p in obj.params if p.type != "RestElement"]))
            parent = getattr(obj, "parent", None)
            if parent is not None:
                return self.get_property(parent, skey)
            return self._lookup_chain(self.function_prototype, skey)
        if isinstance(obj, bool):
            return self._lookup_chain(self.boolean_prototype, skey)
        if is_number(obj):
            return self._lookup_chain(self.number_prototype, skey)
        # host object (e.g. a Python module-like namespace)
        return getattr(obj, skey, undefined)

    def set_property(self, obj, key, value):
        if obj is undefined or obj is None:
            raise JSTypeError(f"Cannot set properties of {to_string(obj)} (setting '{to_property_key(key)}')")
        if isinstance(obj, JSArray):
            idx = array_index(key)
            if idx is not None:
                if idx >= len(obj):
                    check_array_growth(len(obj), idx + 1)
                    obj.extend([undefined] * (idx + 1 - len(obj)))
                obj[idx] = value
                return value
            skey = to_property_key(key)
            if skey == "length":
                new_len = to_number(value)
                if new_len < 0 or not float(new_len).is_integer():
                    raise JSRangeError("Invalid array length")
                new_len = int(new_len)
                check_array_growth(len(obj), new_len)
                if new_len < len(obj):
                    del obj[new_len:]
                else:
                    obj.extend([undefined] * (new_len - len(obj)))
                return value
            if obj.props is None:
                obj.props = JSObject(proto=None)
            obj.props[skey] = value
            return value
        skey = to_property_key(key)
        if isinstance(obj, JSObject):
            obj[skey] = value
            return value
        if isinstance(obj, (FunctionValue, NativeFunction)):
            obj.properties[skey] = value
            return value
        # assignments to primitives are silently dropped (sloppy mode)
        return value

    def delete_property(self, obj, key) -> bool:
        if obj is undefined or obj is None:
            raise JSTypeError(f"Cannot convert {to_string(obj)} to object")
        skey = to_property_key(key)
        if isinstance(obj, JSObject):
            obj.pop(skey, None)
            obj.non_enumerable.discard(skey)
            return True
        if isinstance(obj, JSArray):
            idx = array_index(key)
            if idx is not None and idx < len(obj):
                obj[idx] = undefined
            elif obj.props is not None:
                obj.props.pop(skey, None)
            return True
        if isinstance(obj, (FunctionValue, NativeFunction)):
            obj.properties.pop(skey, None)
        return True

    def has_property(self, obj, key) -> bool:
        skey = to_property_key(key)
        if isinstance(obj, JSArray):
            idx = array_index(skey)
            if idx is not None:
                return idx < len(obj)
            if skey == "length" or (obj.props is not None and skey in obj.props):
                return True
            return self._lookup_chain(self.array_prototype, skey) is not undefined or skey in self.array_prototype
        if isinstance(obj, JSObject):
            cur, seen = obj, set()
            while cur is not None and id(cur) not in seen:
                if skey in cur:
                    return True
                seen.add(id(cur))
                cur = cur.proto
            return False
        if isinstance(obj, (FunctionValue, NativeFunction)):
            return skey in obj.properties or skey in ("name", "length") or skey in self.function_prototype
        return hasattr(obj, skey)

    def own_keys(self, obj) -> List[str]:
        """Own enumerable string keys (Object.keys order)."""
        if isinstance(obj, JSArray):
            keys = [str(i) for i in range(len(obj))]
            if obj.props is not None:
                keys.extend(obj.props.own_enumerable_keys())
            return keys
        if isinstance(obj, str):
            return [str(i) for i in range(len(obj))]
        if isinstance(obj, JSObject):
            return obj.own_enumerable_keys()
        if isinstance(obj, (FunctionValue, NativeFunction)):
            return obj.properties.own_enumerable_keys()
        return []

    def enumerable_keys(self, obj) -> List[str]:
        """Own then inherited enumerable keys, as `for-in` visits them."""
        if obj is undefined or obj is None:
            return []
        keys = self.own_keys(obj)
        seen_keys = set(keys)
        proto = obj.proto if isinstance(obj, JSObject) else None
        seen = set()
        while proto is not None and id(proto) not in seen:
            seen.add(id(proto))
            for k in proto.own_enumerable_keys():
                if k not in seen_keys:
                    seen_keys.add(k)
                    keys.append(k)
            proto = proto.proto
        return keys

    def iterate(self, value) -> List[Any]:
        """Eagerly materialize a `for-of` / spread source."""
        if isinstance(value, JSArray):
            return list(value)
        if isinstance(value, str):
            return list(value)
        if isinstance(value, JSObject) and "length" in value:
            length = to_number(value["length"])
            if math.isnan(length) or length <= 0:
                return []
            if math.isinf(length):
                raise JSRangeError("Invalid array length")
            length = int(length)
            check_array_growth(0, length)
            return [value.get(str(i), undefined) for i in range(length)]
        raise JSTypeError(f"{to_string(type_label(value))} is not iterable")


def type_label(value) -> str:
    if isinstance(value, JSArray):
        return "array"
    if isinstance(value, JSObject):
        return "object"
    return typeof_value(value) if not is_nullish(value) else to_string(value)
