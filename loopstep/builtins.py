"""
Builtin objects and the promise engine.

BuiltinHandlers owns the promise state machine, timers, console formatting and
message channels. register_builtins() wraps those operations as NativeFunction
values for the global environment; every native has the signature

    impl(interp, this, args)

where `interp` is the running Interpreter, `this` the receiver of a method call
and `args` the list of evaluated arguments.
"""
from __future__ import annotations
import itertools
import logging
import math
from typing import Any, Callable, Dict, List, Optional

from .errors import JSError
from .values import (FULFILLED, PENDING, REJECTED, ErrorObject, FunctionValue,
                     MessageChannel, MessagePort, NativeFunction, NotSerializable,
                     PromiseReaction, SimulatedPromise, format_number, format_value,
                     inspect_value, is_callable, is_number, json_parse, json_stringify,
                     strict_equals, to_boolean, to_int32, to_integer, to_js_string,
                     to_number, type_error, undefined)

log = logging.getLogger(__name__)

ANIMATION_FRAME_DELAY = 16

# parseInt digits, case-insensitive; ASCII only
_DIGIT_VALUES = {ch: idx for idx, ch in enumerate("0123456789abcdefghijklmnopqrstuvwxyz")}
_DIGIT_VALUES.update({ch.upper(): idx for ch, idx in _DIGIT_VALUES.items()})


def _arg(args: List[Any], idx: int, default=undefined):
    return args[idx] if len(args) > idx else default


def normalize_delay(delay: Any) -> int:
    """Timer delay in whole milliseconds; NaN and negatives become 0."""
    ms = to_number(delay)
    if math.isnan(ms) or ms < 0:
        return 0
    if math.isinf(ms):
        return 2 ** 31 - 1
    return int(ms)


def _default_preview(fn) -> str:
    name = getattr(fn, 'name', None)
    return f"{name}()" if name else "anonymous callback"


class BuiltinHandlers:
    def __init__(self, event_loop, describe: Optional[Callable[[Any], str]] = None):
        self.event_loop = event_loop
        self.describe = describe or _default_preview
        self.reset()

    def reset(self):
        self._promise_ids = itertools.count(1)
        self._timer_ids = itertools.count(1)
        self._channel_ids = itertools.count(1)
        self.timers: Dict[int, str] = {}

    # --- console -------------------------------------------------------------------
    def console_log(self, level: str, args: List[Any]):
        message = ' '.join(format_value(a) for a in args)
        self.event_loop.add_console_log(level, message)

    # --- timers --------------------------------------------------------------------
    def set_timeout(self, callback: FunctionValue, delay: Any = 0, args=None,
                    source: str = 'setTimeout') -> int:
        ms = normalize_delay(delay)
        timer_id = next(self._timer_ids)
        preview = f"{source}({ms}ms): {self.describe(callback)}"
        task = self.event_loop.schedule_task(callback, source, ms, preview, args)
        self.timers[timer_id] = task.id
        return timer_id

    def clear_timeout(self, timer_id: Any) -> bool:
        if not is_number(timer_id):
            return False
        task_id = self.timers.pop(int(timer_id), None)
        if task_id is None:
            return False
        return self.event_loop.cancel_task(task_id)

    def queue_microtask(self, callback: FunctionValue):
        self.event_loop.schedule_microtask(callback, 'queueMicrotask',
                                           f"queueMicrotask: {self.describe(callback)}")

    # --- message channels ------------------------------------------------------------
    def new_channel(self) -> MessageChannel:
        return MessageChannel(f"channel-{next(self._channel_ids)}")

    def post_message(self, port: MessagePort, data: Any) -> bool:
        target = port.other
        if target is None or not is_callable(target.onmessage):
            return False
        self.event_loop.schedule_task(target.onmessage, 'MessageChannel', 0,
                                      f"MessageChannel: {self.describe(target.onmessage)}",
                                      [{'data': data}])
        return True

    # --- promises --------------------------------------------------------------------
    def new_promise(self) -> SimulatedPromise:
        return SimulatedPromise(f"promise-{next(self._promise_ids)}")

    @staticmethod
    def is_promise(value) -> bool:
        return isinstance(value, SimulatedPromise)

    def promise_resolve(self, value: Any) -> SimulatedPromise:
        """Promise.resolve: promises pass through, anything else is wrapped."""
        if isinstance(value, SimulatedPromise):
            return value
        promise = self.new_promise()
        self.resolve_promise(promise, value)
        return promise

    def promise_reject(self, reason: Any) -> SimulatedPromise:
        promise = self.new_promise()
        self.reject_promise(promise, reason)
        return promise

    def resolve_promise(self, promise: SimulatedPromise, value: Any):
        if promise.state != PENDING:
            return
        if value is promise:
            self.reject_promise(promise, type_error("Chaining cycle detected for promise"))
            return
        if isinstance(value, SimulatedPromise):
            # adoption: settle exactly as the inner promise does
            if value.state == FULFILLED:
                self.resolve_promise(promise, value.value)
            elif value.state == REJECTED:
                self.reject_promise(promise, value.value)
            else:
                value.on_fulfilled.append(PromiseReaction(
                    chained=promise, internal=lambda v: self.resolve_promise(promise, v)))
                value.on_rejected.append(PromiseReaction(
                    chained=promise, internal=lambda r: self.reject_promise(promise, r)))
            return
        self._settle(promise, FULFILLED, value)

    def reject_promise(self, promise: SimulatedPromise, reason: Any):
        if promise.state != PENDING:
            return
        self._settle(promise, REJECTED, reason)

    def _settle(self, promise: SimulatedPromise, state: str, value: Any):
        promise.state = state
        promise.value = value
        reactions = promise.on_fulfilled if state == FULFILLED else promise.on_rejected
        promise.on_fulfilled = []
        promise.on_rejected = []
        log.debug("%s %s", promise.id, state)
        for reaction in reactions:
            self._fire(reaction, state, value)

    def _fire(self, reaction: PromiseReaction, state: str, value: Any):
        if reaction.internal is not None:
            reaction.internal(value)
        elif reaction.callback is not None:
            source = reaction.source or ('Promise.then' if state == FULFILLED else 'Promise.catch')
            self.event_loop.schedule_microtask(
                reaction.callback, source, f"{source}: {self.describe(reaction.callback)}",
                args=[value], chained=reaction.chained)
        elif reaction.chained is not None:
            # no handler for this outcome: pass it straight through
            if state == FULFILLED:
                self.resolve_promise(reaction.chained, value)
            else:
                self.reject_promise(reaction.chained, value)

    def then(self, promise: SimulatedPromise, on_fulfilled: Any = None, on_rejected: Any = None,
             source: Optional[str] = None) -> SimulatedPromise:
        """Register handlers; always returns the new chained promise."""
        chained = self.new_promise()
        fulfill = PromiseReaction(callback=on_fulfilled if is_callable(on_fulfilled) else None,
                                  chained=chained, source=source)
        reject = PromiseReaction(callback=on_rejected if is_callable(on_rejected) else None,
                                 chained=chained, source=source)
        if promise.state == PENDING:
            promise.on_fulfilled.append(fulfill)
            promise.on_rejected.append(reject)
        elif promise.state == FULFILLED:
            self._fire(fulfill, FULFILLED, promise.value)
        else:
            self._fire(reject, REJECTED, promise.value)
        return chained

    def catch(self, promise: SimulatedPromise, on_rejected: Any) -> SimulatedPromise:
        return self.then(promise, None, on_rejected)

    def _watch(self, promise: SimulatedPromise, on_value: Callable, on_reason: Callable):
        promise.on_fulfilled.append(PromiseReaction(internal=on_value))
        promise.on_rejected.append(PromiseReaction(internal=on_reason))

    def all(self, items: List[Any]) -> SimulatedPromise:
        result = self.new_promise()
        if not items:
            self.resolve_promise(result, [])
            return result

        values: List[Any] = [undefined] * len(items)
        state = {'remaining': len(items), 'settled': False}

        def fail(reason):
            if state['settled']:
                return
            state['settled'] = True
            self.reject_promise(result, reason)

        def collect(index, value):
            if state['settled']:
                return
            values[index] = value
            state['remaining'] -= 1
            if state['remaining'] == 0:
                state['settled'] = True
                self.resolve_promise(result, values)

        for index, item in enumerate(items):
            promise = self.promise_resolve(item)
            if promise.state == FULFILLED:
                values[index] = promise.value
                state['remaining'] -= 1
            elif promise.state == REJECTED:
                fail(promise.value)
            else:
                self._watch(promise, lambda v, i=index: collect(i, v), fail)

        if state['remaining'] == 0 and not state['settled']:
            state['settled'] = True
            self.resolve_promise(result, values)
        return result

    def race(self, items: List[Any]) -> SimulatedPromise:
        result = self.new_promise()
        state = {'settled': False}

        def settle(outcome, value):
            if state['settled']:
                return
            state['settled'] = True
            if outcome == FULFILLED:
                self.resolve_promise(result, value)
            else:
                self.reject_promise(result, value)

        for item in items:
            promise = self.promise_resolve(item)
            if promise.state == PENDING:
                self._watch(promise, lambda v: settle(FULFILLED, v), lambda r: settle(REJECTED, r))
                continue
            # an input that is already settled still takes one microtask turn
            outcome, value = promise.state, promise.value
            state['settled'] = True
            self.event_loop.schedule_microtask(
                None, 'Promise.race', 'Promise.race result',
                internal=lambda: self._settle_race(result, outcome, value))
            break
        return result

    def _settle_race(self, result: SimulatedPromise, outcome: str, value: Any):
        if outcome == FULFILLED:
            self.resolve_promise(result, value)
        else:
            self.reject_promise(result, value)


# --- method tables -------------------------------------------------------------------
def _call(interp, fn, args):
    if not is_callable(fn):
        raise JSError(type_error(f"{format_value(fn)} is not a function"))
    return interp.call_function(fn, undefined, args)


def _relative(value, length: int, default: int) -> int:
    if value is undefined:
        return default
    idx = to_integer(value)
    if idx < 0:
        return int(max(length + idx, 0))
    return int(min(idx, length))


def _make_array_methods() -> Dict[str, NativeFunction]:
    def _push(interp, this, args):
        this.extend(args)
        return float(len(this))

    def _pop(interp, this, args):
        return this.pop() if this else undefined

    def _shift(interp, this, args):
        return this.pop(0) if this else undefined

    def _unshift(interp, this, args):
        this[:0] = args
        return float(len(this))

    def _slice(interp, this, args):
        start = _relative(_arg(args, 0), len(this), 0)
        end = _relative(_arg(args, 1), len(this), len(this))
        return this[start:end]

    def _concat(interp, this, args):
        out = list(this)
        for item in args:
            if isinstance(item, list):
                out.extend(item)
            else:
                out.append(item)
        return out

    def _join(interp, this, args):
        sep = _arg(args, 0)
        sep = ',' if sep is undefined else to_js_string(sep)
        return sep.join('' if v is undefined or v is None else to_js_string(v) for v in this)

    def _index_of(interp, this, args):
        target = _arg(args, 0)
        for idx, item in enumerate(this):
            if strict_equals(item, target):
                return float(idx)
        return -1.0

    def _includes(interp, this, args):
        target = _arg(args, 0)
        for item in this:
            if strict_equals(item, target):
                return True
            if is_number(item) and is_number(target) and math.isnan(item) and math.isnan(target):
                return True
        return False

    def _for_each(interp, this, args):
        fn = _arg(args, 0)
        for idx, item in enumerate(list(this)):
            _call(interp, fn, [item, float(idx), this])
        return undefined

    def _map(interp, this, args):
        fn = _arg(args, 0)
        return [_call(interp, fn, [item, float(idx), this]) for idx, item in enumerate(list(this))]

    def _filter(interp, this, args):
        fn = _arg(args, 0)
        return [item for idx, item in enumerate(list(this))
                if to_boolean(_call(interp, fn, [item, float(idx), this]))]

    def _reduce(interp, this, args):
        fn = _arg(args, 0)
        items = list(this)
        start = 0
        if len(args) > 1:
            acc = args[1]
        elif items:
            acc = items[0]
            start = 1
        else:
            raise JSError(type_error("Reduce of empty array with no initial value"))
        for idx in range(start, len(items)):
            acc = _call(interp, fn, [acc, items[idx], float(idx), this])
        return acc

    def _find(interp, this, args):
        fn = _arg(args, 0)
        for idx, item in enumerate(list(this)):
            if to_boolean(_call(interp, fn, [item, float(idx), this])):
                return item
        return undefined

    def _some(interp, this, args):
        fn = _arg(args, 0)
        return any(to_boolean(_call(interp, fn, [item, float(idx), this]))
                   for idx, item in enumerate(list(this)))

    def _every(interp, this, args):
        fn = _arg(args, 0)
        return all(to_boolean(_call(interp, fn, [item, float(idx), this]))
                   for idx, item in enumerate(list(this)))

    impls = {
        'push': _push, 'pop': _pop, 'shift': _shift, 'unshift': _unshift,
        'slice': _slice, 'concat': _concat, 'join': _join, 'indexOf': _index_of,
        'includes': _includes, 'forEach': _for_each, 'map': _map, 'filter': _filter,
        'reduce': _reduce, 'find': _find, 'some': _some, 'every': _every,
    }
    return {name: NativeFunction(name, impl) for name, impl in impls.items()}


def _make_string_methods() -> Dict[str, NativeFunction]:
    def _split(interp, this, args):
        sep = _arg(args, 0)
        if sep is undefined:
            return [this]
        sep = to_js_string(sep)
        if sep == '':
            return list(this)
        return this.split(sep)

    def _index_of(interp, this, args):
        return float(this.find(to_js_string(_arg(args, 0))))

    def _slice(interp, this, args):
        start = _relative(_arg(args, 0), len(this), 0)
        end = _relative(_arg(args, 1), len(this), len(this))
        return this[start:end]

    def _pad_start(interp, this, args):
        width = to_integer(_arg(args, 0))
        fill = _arg(args, 1)
        fill = ' ' if fill is undefined else to_js_string(fill)
        if width <= len(this) or not fill:
            return this
        if math.isinf(width):
            raise JSError(ErrorObject("Invalid string length", 'RangeError'))
        needed = int(width) - len(this)
        return (fill * (needed // len(fill) + 1))[:needed] + this

    def _repeat(interp, this, args):
        count = to_integer(_arg(args, 0, 0.0))
        if count < 0 or math.isinf(count):
            raise JSError(ErrorObject(f"Invalid count value: {format_number(count)}", 'RangeError'))
        return this * int(count)

    impls = {
        'toUpperCase': lambda interp, this, args: this.upper(),
        'toLowerCase': lambda interp, this, args: this.lower(),
        'trim': lambda interp, this, args: this.strip(),
        'split': _split,
        'includes': lambda interp, this, args: to_js_string(_arg(args, 0)) in this,
        'indexOf': _index_of,
        'slice': _slice,
        'startsWith': lambda interp, this, args: this.startswith(to_js_string(_arg(args, 0))),
        'endsWith': lambda interp, this, args: this.endswith(to_js_string(_arg(args, 0))),
        'padStart': _pad_start,
        'repeat': _repeat,
    }
    return {name: NativeFunction(name, impl) for name, impl in impls.items()}


def _make_number_methods() -> Dict[str, NativeFunction]:
    def _to_fixed(interp, this, args):
        digits = to_integer(_arg(args, 0, 0.0))
        if digits < 0 or digits > 100:
            raise JSError(ErrorObject("toFixed() digits argument must be between 0 and 100", 'RangeError'))
        if math.isnan(this) or math.isinf(this):
            return format_number(this)
        return f"{this:.{int(digits)}f}"

    return {
        'toFixed': NativeFunction('toFixed', _to_fixed),
        'toString': NativeFunction('toString', lambda interp, this, args: format_number(this)),
    }


def _make_promise_methods() -> Dict[str, NativeFunction]:
    def _then(interp, this, args):
        interp.record_step("Promise.then() registered")
        return interp.builtins.then(this, _arg(args, 0, None), _arg(args, 1, None))

    def _catch(interp, this, args):
        interp.record_step("Promise.catch() registered")
        return interp.builtins.catch(this, _arg(args, 0, None))

    return {'then': NativeFunction('then', _then), 'catch': NativeFunction('catch', _catch)}


def _make_port_methods() -> Dict[str, NativeFunction]:
    def _post_message(interp, this, args):
        interp.builtins.post_message(this, _arg(args, 0))
        interp.record_step("port.postMessage() called")
        return undefined

    return {'postMessage': NativeFunction('postMessage', _post_message)}


# Names only; the NativeFunction objects themselves are built per run by
# make_method_tables() so properties assigned to them never outlive the run.
ARRAY_METHOD_NAMES = frozenset(_make_array_methods())


def make_method_tables() -> Dict[str, Dict[str, NativeFunction]]:
    """Fresh method tables keyed by receiver kind."""
    return {
        'array': _make_array_methods(),
        'string': _make_string_methods(),
        'number': _make_number_methods(),
        'promise': _make_promise_methods(),
        'port': _make_port_methods(),
    }


# --- globals -------------------------------------------------------------------------
def register_builtins(handlers: BuiltinHandlers) -> Dict[str, Any]:
    """Build the global bindings (console, timers, Promise, ...) around `handlers`."""
    context: Dict[str, Any] = {
        'undefined': undefined,
        'NaN': math.nan,
        'Infinity': math.inf,
    }

    # --- console ---
    def _console(level):
        def _log(interp, this, args):
            handlers.console_log(level, args)
            interp.record_step(f"console.{level}() called")
            return undefined
        return NativeFunction(f"console.{level}", _log)

    context['console'] = {level: _console(level) for level in ('log', 'info', 'warn', 'error')}

    # --- timers ---
    def _require_callback(fn, api):
        if not is_callable(fn):
            raise JSError(type_error(f"The callback passed to {api}() must be a function"))

    def _set_timeout(interp, this, args):
        callback = _arg(args, 0)
        _require_callback(callback, 'setTimeout')
        delay = normalize_delay(_arg(args, 1, 0.0))
        timer_id = handlers.set_timeout(callback, delay, args[2:])
        interp.record_step(f"setTimeout() registered ({delay}ms)")
        return float(timer_id)

    def _clear_timeout(interp, this, args):
        if handlers.clear_timeout(_arg(args, 0)):
            interp.record_step("clearTimeout() cancelled a timer")
        return undefined

    def _queue_microtask(interp, this, args):
        callback = _arg(args, 0)
        _require_callback(callback, 'queueMicrotask')
        handlers.queue_microtask(callback)
        interp.record_step("queueMicrotask() registered")
        return undefined

    def _request_animation_frame(interp, this, args):
        callback = _arg(args, 0)
        _require_callback(callback, 'requestAnimationFrame')
        timer_id = handlers.set_timeout(callback, ANIMATION_FRAME_DELAY, [float(ANIMATION_FRAME_DELAY)],
                                        source='requestAnimationFrame')
        interp.record_step("requestAnimationFrame() registered")
        return float(timer_id)

    context['setTimeout'] = NativeFunction('setTimeout', _set_timeout)
    context['clearTimeout'] = NativeFunction('clearTimeout', _clear_timeout)
    context['queueMicrotask'] = NativeFunction('queueMicrotask', _queue_microtask)
    context['requestAnimationFrame'] = NativeFunction('requestAnimationFrame', _request_animation_frame)
    context['cancelAnimationFrame'] = NativeFunction('cancelAnimationFrame', _clear_timeout)

    # --- Promise ---
    def _promise_call(interp, this, args):
        raise JSError(type_error("Promise constructor cannot be invoked without 'new'"))

    def _promise_construct(interp, args):
        executor = _arg(args, 0)
        if not is_callable(executor):
            raise JSError(type_error("Promise resolver is not a function"))
        promise = handlers.new_promise()

        def _resolve(interp, this, a):
            handlers.resolve_promise(promise, _arg(a, 0))
            interp.record_step(f"resolve({inspect_value(_arg(a, 0))}) called")
            return undefined

        def _reject(interp, this, a):
            handlers.reject_promise(promise, _arg(a, 0))
            interp.record_step(f"reject({inspect_value(_arg(a, 0))}) called")
            return undefined

        interp.record_step("new Promise() created")
        try:
            interp.call_function(executor, undefined,
                                 [NativeFunction('resolve', _resolve), NativeFunction('reject', _reject)],
                                 name='Promise executor')
        except JSError as exc:
            handlers.reject_promise(promise, exc.value)
        return promise

    def _list_arg(args, api):
        items = _arg(args, 0)
        if not isinstance(items, list):
            raise JSError(type_error(f"{api}() expects an array"))
        return items

    def _promise_all(interp, this, args):
        items = _list_arg(args, 'Promise.all')
        interp.record_step("Promise.all() called")
        return handlers.all(items)

    def _promise_race(interp, this, args):
        items = _list_arg(args, 'Promise.race')
        interp.record_step("Promise.race() called")
        return handlers.race(items)

    context['Promise'] = NativeFunction('Promise', _promise_call, construct=_promise_construct, props={
        'resolve': NativeFunction('Promise.resolve', lambda interp, this, args: handlers.promise_resolve(_arg(args, 0))),
        'reject': NativeFunction('Promise.reject', lambda interp, this, args: handlers.promise_reject(_arg(args, 0))),
        'all': NativeFunction('Promise.all', _promise_all),
        'race': NativeFunction('Promise.race', _promise_race),
    })

    # --- MessageChannel ---
    def _channel_call(interp, this, args):
        raise JSError(type_error("Failed to construct 'MessageChannel': Please use the 'new' operator"))

    def _channel_construct(interp, args):
        channel = handlers.new_channel()
        interp.record_step("new MessageChannel() created")
        return channel

    context['MessageChannel'] = NativeFunction('MessageChannel', _channel_call, construct=_channel_construct)

    # --- errors ---
    def _error_type(name):
        def _make(interp, args):
            message = _arg(args, 0)
            return ErrorObject('' if message is undefined else to_js_string(message), name)
        return NativeFunction(name, lambda interp, this, args: _make(interp, args), construct=_make)

    for name in ('Error', 'TypeError', 'RangeError', 'SyntaxError', 'ReferenceError'):
        context[name] = _error_type(name)

    # --- JSON ---
    def _json_stringify(interp, this, args):
        indent = _arg(args, 2)
        # JSON.stringify caps indentation at 10 spaces
        width = int(max(0, min(to_integer(indent), 10))) if is_number(indent) else None
        try:
            text = json_stringify(_arg(args, 0), width)
        except NotSerializable as exc:
            raise JSError(type_error(str(exc)))
        interp.record_step("JSON.stringify() called")
        return text

    def _json_parse(interp, this, args):
        text = to_js_string(_arg(args, 0))
        try:
            value = json_parse(text)
        except ValueError as exc:
            raise JSError(ErrorObject(f"Unexpected token in JSON: {exc}", 'SyntaxError'))
        interp.record_step("JSON.parse() called")
        return value

    context['JSON'] = {
        'stringify': NativeFunction('JSON.stringify', _json_stringify),
        'parse': NativeFunction('JSON.parse', _json_parse),
    }

    # --- Math (no random: runs must be reproducible) ---
    def _math1(name, fn):
        def _impl(interp, this, args):
            x = to_number(_arg(args, 0))
            if math.isnan(x):
                return math.nan
            try:
                return float(fn(x))
            except (ValueError, OverflowError):
                return math.nan
        return NativeFunction(f"Math.{name}", _impl)

    def _round(x):
        if math.isinf(x):
            return x
        return math.floor(x + 0.5)

    def _extreme(pick, empty):
        def _impl(interp, this, args):
            nums = [to_number(a) for a in args]
            if any(math.isnan(n) for n in nums):
                return math.nan
            return pick(nums) if nums else empty
        return _impl

    def _pow(interp, this, args):
        return js_pow(to_number(_arg(args, 0)), to_number(_arg(args, 1)))

    context['Math'] = {
        'PI': math.pi,
        'E': math.e,
        'floor': _math1('floor', lambda x: x if math.isinf(x) else math.floor(x)),
        'ceil': _math1('ceil', lambda x: x if math.isinf(x) else math.ceil(x)),
        'round': _math1('round', _round),
        'trunc': _math1('trunc', lambda x: x if math.isinf(x) else math.trunc(x)),
        'abs': _math1('abs', abs),
        'sqrt': _math1('sqrt', math.sqrt),
        'sign': _math1('sign', lambda x: (x > 0) - (x < 0)),
        'max': NativeFunction('Math.max', _extreme(max, -math.inf)),
        'min': NativeFunction('Math.min', _extreme(min, math.inf)),
        'pow': NativeFunction('Math.pow', _pow),
    }

    # --- conversions and statics ---
    def _object_keys(interp, this, args):
        obj = _arg(args, 0)
        if isinstance(obj, list):
            return [format_number(i) for i in range(len(obj))]
        if isinstance(obj, dict):
            return list(obj.keys())
        return []

    def _object_values(interp, this, args):
        obj = _arg(args, 0)
        if isinstance(obj, list):
            return list(obj)
        if isinstance(obj, dict):
            return list(obj.values())
        return []

    def _object_entries(interp, this, args):
        keys = _object_keys(interp, this, args)
        values = _object_values(interp, this, args)
        return [[k, v] for k, v in zip(keys, values)]

    context['Object'] = NativeFunction('Object', lambda interp, this, args: {}, props={
        'keys': NativeFunction('Object.keys', _object_keys),
        'values': NativeFunction('Object.values', _object_values),
        'entries': NativeFunction('Object.entries', _object_entries),
    })
    context['Array'] = NativeFunction('Array', lambda interp, this, args: list(args), props={
        'isArray': NativeFunction('Array.isArray', lambda interp, this, args: isinstance(_arg(args, 0), list)),
    })
    context['String'] = NativeFunction(
        'String', lambda interp, this, args: to_js_string(_arg(args, 0)) if args else '')
    context['Number'] = NativeFunction(
        'Number', lambda interp, this, args: to_number(_arg(args, 0)) if args else 0.0)
    context['Boolean'] = NativeFunction(
        'Boolean', lambda interp, this, args: to_boolean(_arg(args, 0)))

    def _parse_float(interp, this, args):
        text = to_js_string(_arg(args, 0)).strip()
        best = math.nan
        for end in range(len(text), 0, -1):
            num = to_number(text[:end])
            if not math.isnan(num) and text[:end].strip() == text[:end]:
                best = num
                break
        return best

    def _parse_int(interp, this, args):
        text = to_js_string(_arg(args, 0)).strip()
        radix = _arg(args, 1)
        base = to_int32(radix) if radix is not undefined else 10
        sign = 1
        if text[:1] in ('+', '-'):
            sign = -1 if text[0] == '-' else 1
            text = text[1:]
        if base in (0, 16) and text[:2].lower() == '0x':
            text, base = text[2:], 16
        base = base or 10
        if base < 2 or base > 36:
            return math.nan
        digits = ''
        for ch in text:
            value = _DIGIT_VALUES.get(ch)
            if value is None or value >= base:
                break
            digits += ch
        return float(sign * int(digits, base)) if digits else math.nan

    context['parseFloat'] = NativeFunction('parseFloat', _parse_float)
    context['parseInt'] = NativeFunction('parseInt', _parse_int)
    context['isNaN'] = NativeFunction('isNaN', lambda interp, this, args: math.isnan(to_number(_arg(args, 0))))
    return context


def js_pow(base: float, exponent: float) -> float:
    if math.isnan(exponent) or (math.isnan(base) and exponent != 0):
        return math.nan
    try:
        return float(math.pow(base, exponent))
    except OverflowError:
        return math.inf
    except (ValueError, ZeroDivisionError):
        if base == 0:
            return math.inf
        return math.nan


__all__ = [
    'ARRAY_METHOD_NAMES', 'BuiltinHandlers', 'js_pow', 'make_method_tables', 'normalize_delay',
    'register_builtins',
]
