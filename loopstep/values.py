"""
Runtime value model.

JS values map onto Python as follows: the `undefined` singleton, None for null,
bool, float, str, list for arrays, dict for plain objects, and the host classes
below for functions, errors, promises and message channels. The helpers
implement the handful of JS coercion rules the interpreter needs.
"""
from __future__ import annotations
import json
import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional


class Undefined:
    __slots__ = ()

    def __repr__(self):
        return "undefined"

    def __bool__(self):
        return False


undefined = Undefined()


class FunctionValue:
    """Common base of user closures and native functions."""
    name: Optional[str] = None

    def __init__(self):
        self.props: Dict[str, Any] = {}


class NativeFunction(FunctionValue):
    """Builtin function; impl(interp, this, args) like every native in the runtime.

    `construct(interp, args)` is used by `new`; natives without it are not
    constructors.
    """

    def __init__(self, name: str, impl: Callable, construct: Optional[Callable] = None,
                 props: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.name = name
        self.impl = impl
        self.construct = construct
        if props:
            self.props.update(props)

    def __repr__(self):
        return f"<native function {self.name}>"


class ErrorObject(dict):
    """Result of `new Error(msg)` and friends; a dict so `err.message` just works."""

    def __init__(self, message: str = '', name: str = 'Error'):
        super().__init__()
        self['name'] = name
        self['message'] = message

    def __str__(self):
        name = self.get('name', 'Error')
        message = self.get('message', '')
        return f"{name}: {message}" if message != '' else str(name)


class ObjectInstance(dict):
    """Object created by `new F()` for a user function F."""

    def __init__(self, constructor: FunctionValue):
        super().__init__()
        self.constructor = constructor


def type_error(message: str) -> ErrorObject:
    return ErrorObject(message, 'TypeError')


# --- promises ----------------------------------------------------------------
PENDING = 'pending'
FULFILLED = 'fulfilled'
REJECTED = 'rejected'


@dataclass(eq=False)
class PromiseReaction:
    """One registered handler; `internal` handlers run synchronously (combinators, adoption)."""
    callback: Optional[FunctionValue] = None
    chained: Optional['SimulatedPromise'] = None
    internal: Optional[Callable[[Any], None]] = None
    # queue label for the scheduled callback (Promise.then, await, ...)
    source: Optional[str] = None


@dataclass(eq=False)
class SimulatedPromise:
    id: str
    state: str = PENDING
    # fulfillment value or rejection reason
    value: Any = undefined
    on_fulfilled: List[PromiseReaction] = field(default_factory=list)
    on_rejected: List[PromiseReaction] = field(default_factory=list)

    def __repr__(self):
        return f"Promise {{ <{self.state}> }}"


# --- message channels --------------------------------------------------------
class MessagePort:
    def __init__(self, port_id: str, channel_id: str):
        self.id = port_id
        self.channel_id = channel_id
        self.onmessage: Any = None
        self.other: Optional['MessagePort'] = None


class MessageChannel:
    def __init__(self, channel_id: str):
        self.id = channel_id
        self.port1 = MessagePort(f"{channel_id}:port1", channel_id)
        self.port2 = MessagePort(f"{channel_id}:port2", channel_id)
        self.port1.other = self.port2
        self.port2.other = self.port1


# --- coercions ---------------------------------------------------------------
def is_callable(value) -> bool:
    return isinstance(value, FunctionValue)


def is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def to_boolean(value) -> bool:
    if value is undefined or value is None:
        return False
    if isinstance(value, bool):
        return value
    if is_number(value):
        return not (value == 0 or math.isnan(value))
    if isinstance(value, str):
        return value != ''
    return True


_NUMERIC_RE = re.compile(r'^[+-]?(?:\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?)$')


def to_number(value) -> float:
    if value is undefined:
        return math.nan
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if is_number(value):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if text == '':
            return 0.0
        if text[:2] in ('0x', '0X'):
            try:
                return float(int(text[2:], 16))
            except ValueError:
                return math.nan
        if text in ('Infinity', '+Infinity'):
            return math.inf
        if text == '-Infinity':
            return -math.inf
        if _NUMERIC_RE.match(text):
            return float(text)
        return math.nan
    if isinstance(value, list):
        return to_number(to_js_string(value))
    return math.nan


def to_integer(value) -> float:
    num = to_number(value)
    if math.isnan(num):
        return 0
    if math.isinf(num):
        return num
    return int(num)


def to_int32(value) -> int:
    num = to_number(value)
    if math.isnan(num) or math.isinf(num):
        return 0
    num = int(num) % 2 ** 32
    return num - 2 ** 32 if num >= 2 ** 31 else num


def to_uint32(value) -> int:
    num = to_number(value)
    if math.isnan(num) or math.isinf(num):
        return 0
    return int(num) % 2 ** 32


def format_number(value) -> str:
    if math.isnan(value):
        return "NaN"
    if value == math.inf:
        return "Infinity"
    if value == -math.inf:
        return "-Infinity"
    if value == 0:
        return "0"
    if float(value).is_integer() and abs(value) < 1e21:
        return str(int(value))
    text = repr(float(value))
    # Python writes 1e-07 where JS writes 1e-7
    return re.sub(r'e([+-])0*(\d)', r'e\1\2', text)


def to_js_string(value, _seen=frozenset()) -> str:
    if value is undefined:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_number(value):
        return format_number(value)
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        # an array nested inside itself joins as ''
        if id(value) in _seen:
            return ''
        seen = _seen | {id(value)}
        return ','.join('' if v is undefined or v is None else to_js_string(v, seen) for v in value)
    if isinstance(value, ErrorObject):
        return str(value)
    if isinstance(value, FunctionValue):
        return f"function {value.name or ''}() {{ [code] }}"
    if isinstance(value, SimulatedPromise):
        return "[object Promise]"
    return "[object Object]"


def to_property_key(value) -> str:
    return to_js_string(value)


def type_of(value) -> str:
    if value is undefined:
        return 'undefined'
    if value is None:
        return 'object'
    if isinstance(value, bool):
        return 'boolean'
    if is_number(value):
        return 'number'
    if isinstance(value, str):
        return 'string'
    if isinstance(value, FunctionValue):
        return 'function'
    return 'object'


def strict_equals(a, b) -> bool:
    if is_number(a) and is_number(b):
        return a == b
    if isinstance(a, bool) and isinstance(b, bool):
        return a == b
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    return a is b


def loose_equals(a, b) -> bool:
    a_nullish = a is undefined or a is None
    b_nullish = b is undefined or b is None
    if a_nullish or b_nullish:
        return a_nullish and b_nullish
    if type_of(a) == type_of(b):
        return strict_equals(a, b)
    if isinstance(a, bool) or isinstance(b, bool):
        return loose_equals(to_number(a), to_number(b))
    if (is_number(a) and isinstance(b, str)) or (isinstance(a, str) and is_number(b)):
        return to_number(a) == to_number(b)
    # object compared with a primitive: compare by string form
    if isinstance(a, (list, dict)) and not isinstance(b, (list, dict)):
        return loose_equals(to_js_string(a), b)
    if isinstance(b, (list, dict)) and not isinstance(a, (list, dict)):
        return loose_equals(a, to_js_string(b))
    return False


# --- JSON --------------------------------------------------------------------
_OMIT = object()


class NotSerializable(ValueError):
    pass


def _to_json_data(value, stack):
    if value is undefined or isinstance(value, FunctionValue):
        return _OMIT
    if value is None or isinstance(value, (bool, str)):
        return value
    if is_number(value):
        if math.isnan(value) or math.isinf(value):
            return None
        return int(value) if float(value).is_integer() else value
    if any(value is seen for seen in stack):
        raise NotSerializable("Converting circular structure to JSON")
    stack.append(value)
    try:
        if isinstance(value, list):
            out = []
            for item in value:
                data = _to_json_data(item, stack)
                out.append(None if data is _OMIT else data)
            return out
        if isinstance(value, ErrorObject):
            return {}
        if isinstance(value, dict):
            out = {}
            for key, item in value.items():
                data = _to_json_data(item, stack)
                if data is not _OMIT:
                    out[key] = data
            return out
        return {}
    finally:
        stack.pop()


def json_stringify(value, indent=None):
    """JSON.stringify; returns `undefined` for values JSON cannot represent."""
    data = _to_json_data(value, [])
    if data is _OMIT:
        return undefined
    if indent:
        return json.dumps(data, ensure_ascii=False, indent=indent)
    return json.dumps(data, ensure_ascii=False, separators=(',', ':'))


def json_parse(text: str):
    def _number(raw):
        return float(raw)
    return json.loads(text, parse_int=_number, parse_float=_number,
                      parse_constant=_reject_constant)


def _reject_constant(name):
    raise ValueError(f"Unexpected token {name[0]} in JSON")


# --- display -----------------------------------------------------------------
ARRAY_DISPLAY_LIMIT = 10


def format_value(value, _seen=frozenset()) -> str:
    """Console rendering of a value (what console.log prints)."""
    if value is None:
        return "null"
    if value is undefined:
        return "undefined"
    if isinstance(value, str):
        return value
    if isinstance(value, bool) or is_number(value):
        return to_js_string(value)
    if isinstance(value, FunctionValue):
        return "[Function]"
    if isinstance(value, list):
        if id(value) in _seen:
            return "[Circular]"
        seen = _seen | {id(value)}
        items = [format_value(v, seen) for v in value[:ARRAY_DISPLAY_LIMIT]]
        more = ", ..." if len(value) > ARRAY_DISPLAY_LIMIT else ""
        return f"[{', '.join(items)}{more}]"
    if isinstance(value, SimulatedPromise):
        return f"Promise {{ <{value.state}> }}"
    if isinstance(value, ErrorObject):
        return str(value)
    if isinstance(value, MessageChannel):
        return "MessageChannel {}"
    if isinstance(value, MessagePort):
        return "MessagePort {}"
    if isinstance(value, dict):
        try:
            text = json_stringify(value)
        except NotSerializable:
            return "[Object]"
        return text if isinstance(text, str) else "[Object]"
    return "[Object]"


def inspect_value(value) -> str:
    """Short rendering used in step descriptions; strings are quoted."""
    if isinstance(value, str):
        return f'"{value}"'
    return format_value(value)


def serialize_value(value, _seen=frozenset()):
    """JSON-safe form of a value for stack frame variable snapshots."""
    if value is None or isinstance(value, (bool, str)):
        return value
    if value is undefined:
        return "undefined"
    if is_number(value):
        if math.isnan(value) or math.isinf(value):
            return format_number(value)
        return int(value) if float(value).is_integer() else value
    if isinstance(value, FunctionValue):
        return "[Function]"
    if isinstance(value, list):
        if id(value) in _seen:
            return "[Circular]"
        seen = _seen | {id(value)}
        return [serialize_value(v, seen) for v in value[:ARRAY_DISPLAY_LIMIT]]
    if isinstance(value, SimulatedPromise):
        return f"[Promise: {value.state}]"
    if isinstance(value, ErrorObject):
        return str(value)
    return "[Object]"
