"""
Tree-walking interpreter that records an ExecutionStep after every observable
state change, then runs the simulated event loop to completion.

Evaluation dispatches on the node class through a table built from
ast_nodes.NODE_TYPES; a node kind without an `_eval_<node_type>` method is an
import-time error, not a silent no-op at run time.

Control flow uses flags rather than Python exceptions: `has_returned`,
`breaking` and `continuing` are checked after every statement. The only
exception user code can raise is JSError, which is what simulated try/catch and
promise reaction jobs catch. Everything else (SimulatorError subclasses) aborts
the run.
"""
from __future__ import annotations
import logging
import math
import sys
from typing import Any, Dict, List, Optional, Tuple

from . import ast_nodes as ast
from .builtins import (ARRAY_METHOD_NAMES, BuiltinHandlers, js_pow, make_method_tables,
                       register_builtins)
from .config import InterpreterConfig
from .errors import (ExecutionLimitError, JSError, NotCallable, PropertyAccessError,
                     SimulatorError, UncaughtException, UnsupportedOperation)
from .event_loop import EventLoopSimulator, ExecutionStep, ScheduledTask
from .parser import function_preview
from .scope import BLOCK, LET, VAR, Binding, Closure, ExecutionContext
from .values import (ErrorObject, FunctionValue, MessageChannel, MessagePort,
                     NativeFunction, ObjectInstance, SimulatedPromise, format_value,
                     inspect_value, is_callable, is_number, loose_equals, strict_equals,
                     to_boolean, to_int32, to_js_string, to_number, to_property_key,
                     to_uint32, type_error, type_of, undefined)

log = logging.getLogger(__name__)

# Ceiling on event-loop turns (one microtask drain plus at most one task).
EVENT_LOOP_TURN_LIMIT = 1000

# Python frames used per simulated call, with headroom for nested expressions.
_PY_FRAMES_PER_CALL = 40


# --- operators -----------------------------------------------------------------------
def _is_object(value) -> bool:
    return isinstance(value, (list, dict, FunctionValue, SimulatedPromise, MessageChannel, MessagePort))


def _divide(a: float, b: float) -> float:
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def _remainder(a: float, b: float) -> float:
    if b == 0 or math.isnan(a) or math.isnan(b) or math.isinf(a):
        return math.nan
    if math.isinf(b):
        return a
    return math.fmod(a, b)


def _compare(op: str, a, b) -> bool:
    if isinstance(a, str) and isinstance(b, str):
        x, y = a, b
    else:
        x, y = to_number(a), to_number(b)
        if math.isnan(x) or math.isnan(y):
            return False
    if op == '<':
        return x < y
    if op == '>':
        return x > y
    if op == '<=':
        return x <= y
    return x >= y


def _instance_of(value, ctor) -> bool:
    if not is_callable(ctor):
        raise JSError(type_error("Right-hand side of 'instanceof' is not callable"))
    if isinstance(value, ObjectInstance):
        return value.constructor is ctor
    name = ctor.name if isinstance(ctor, NativeFunction) else None
    if isinstance(value, ErrorObject):
        return name == 'Error' or name == value.get('name')
    if isinstance(value, SimulatedPromise):
        return name == 'Promise'
    if isinstance(value, list):
        return name in ('Array', 'Object')
    if isinstance(value, MessageChannel):
        return name == 'MessageChannel'
    return name == 'Object' and _is_object(value)


def _has_property(key, obj) -> bool:
    if isinstance(obj, dict):
        return to_property_key(key) in obj
    if isinstance(obj, list):
        name = to_property_key(key)
        return name == 'length' or (name.isdigit() and int(name) < len(obj)) or name in ARRAY_METHOD_NAMES
    if isinstance(obj, FunctionValue):
        return to_property_key(key) in obj.props
    raise JSError(type_error(f"Cannot use 'in' operator to search for '{to_property_key(key)}' "
                             f"in {to_js_string(obj)}"))


def apply_binary(op: str, a, b):
    """Evaluate a binary operator on two already-evaluated operands."""
    if op == '+':
        if isinstance(a, str) or isinstance(b, str) or _is_object(a) or _is_object(b):
            return to_js_string(a) + to_js_string(b)
        return to_number(a) + to_number(b)
    if op == '-':
        return to_number(a) - to_number(b)
    if op == '*':
        x, y = to_number(a), to_number(b)
        if (math.isinf(x) and y == 0) or (x == 0 and math.isinf(y)):
            return math.nan
        return x * y
    if op == '/':
        return _divide(to_number(a), to_number(b))
    if op == '%':
        return _remainder(to_number(a), to_number(b))
    if op == '**':
        return js_pow(to_number(a), to_number(b))
    if op == '===':
        return strict_equals(a, b)
    if op == '!==':
        return not strict_equals(a, b)
    if op == '==':
        return loose_equals(a, b)
    if op == '!=':
        return not loose_equals(a, b)
    if op in ('<', '>', '<=', '>='):
        return _compare(op, a, b)
    if op == '&':
        return float(to_int32(a) & to_int32(b))
    if op == '|':
        return float(to_int32(a) | to_int32(b))
    if op == '^':
        return float(to_int32(a) ^ to_int32(b))
    if op == '<<':
        return float(to_int32(float(to_int32(a) << (to_uint32(b) & 31))))
    if op == '>>':
        return float(to_int32(a) >> (to_uint32(b) & 31))
    if op == '>>>':
        return float(to_uint32(a) >> (to_uint32(b) & 31))
    if op == 'in':
        return _has_property(a, b)
    if op == 'instanceof':
        return _instance_of(a, b)
    raise UnsupportedOperation(f"Unsupported operator {op!r}")


def _await_operand(stmt: ast.Node) -> Optional[ast.AwaitExpression]:
    """The AwaitExpression of a statement written in one of the suspendable forms."""
    if isinstance(stmt, ast.ExpressionStatement):
        expr = stmt.expression
        if isinstance(expr, ast.AwaitExpression):
            return expr
        if isinstance(expr, ast.AssignmentExpression) and expr.operator == '=' \
                and isinstance(expr.left, ast.Identifier) and isinstance(expr.right, ast.AwaitExpression):
            return expr.right
    elif isinstance(stmt, ast.VariableDeclaration):
        if len(stmt.declarations) == 1 and isinstance(stmt.declarations[0].init, ast.AwaitExpression):
            return stmt.declarations[0].init
    elif isinstance(stmt, ast.ReturnStatement):
        if isinstance(stmt.argument, ast.AwaitExpression):
            return stmt.argument
    return None


def _var_names(body: List[ast.Node]) -> List[str]:
    """Names declared with `var` anywhere in `body`, not looking into nested functions."""
    names: List[str] = []
    stack = list(reversed(body))
    while stack:
        node = stack.pop()
        if node is None or isinstance(node, ast.FUNCTION_TYPES):
            continue
        if isinstance(node, ast.VariableDeclaration):
            if node.kind == VAR:
                names.extend(d.id.name for d in node.declarations if d.id.name not in names)
            continue
        if isinstance(node, (ast.BlockStatement, ast.IfStatement, ast.ForStatement, ast.WhileStatement,
                             ast.DoWhileStatement, ast.SwitchStatement, ast.SwitchCase,
                             ast.TryStatement, ast.CatchClause)):
            stack.extend(reversed(list(ast.iter_child_nodes(node))))
    return names


class Interpreter:
    def __init__(self, config: Optional[InterpreterConfig] = None, source: str = ''):
        self.config = config or InterpreterConfig()
        self.source = source
        self.event_loop = EventLoopSimulator()
        self.builtins = BuiltinHandlers(self.event_loop, describe=self.describe_callback)
        self.context = ExecutionContext()
        self.reset()

    def reset(self):
        """Forget everything from a previous run; ids restart so runs are reproducible."""
        self.event_loop.reset()
        self.builtins.reset()
        self.context.reset()
        # globals and method tables are rebuilt so user assignments die with the run
        self.context.builtins = register_builtins(self.builtins)
        self.methods = make_method_tables()
        self.steps: List[ExecutionStep] = []
        self.error: Optional[SimulatorError] = None
        self.source_map: Dict[int, int] = {}
        self.loop_counters: Dict[ast.Node, int] = {}
        self._clear_flags()

    # --- entry point -----------------------------------------------------------------
    def interpret(self, program: ast.Program, source_map: Optional[Dict[int, int]] = None) -> List[ExecutionStep]:
        """Run `program` and its event loop; returns every recorded step.

        A failure (runtime error, limit, uncaught throw) ends the list with a
        step whose description starts with "Error:"; the failure itself is kept
        in `self.error`.
        """
        self.reset()
        self.source_map = dict(source_map or {})
        needed = self.config.max_call_stack_depth * _PY_FRAMES_PER_CALL + 1000
        if sys.getrecursionlimit() < needed:
            sys.setrecursionlimit(needed)

        self.event_loop.push_frame('global', 'script')
        try:
            self.evaluate(program)
            self.event_loop.pop_frame()
            self.record_step("Synchronous code finished")
            self.run_event_loop()
        except JSError as exc:
            self._fail(UncaughtException(f"Uncaught {format_value(exc.value)}", exc.value))
        except RecursionError:
            self._fail(ExecutionLimitError("Maximum call stack size exceeded", 'call_stack'))
        except SimulatorError as exc:
            self._fail(exc)
        return self.steps

    def _fail(self, exc: SimulatorError):
        if exc.line is None:
            exc.line = self.event_loop.current_line
        self.error = exc
        log.warning("execution aborted after %d steps: %s", len(self.steps), exc.message)
        self.event_loop.set_description(f"Error: {exc.message}")
        self.steps.append(self.event_loop.get_snapshot(error=exc.to_dict()))

    # --- steps -------------------------------------------------------------------------
    @property
    def current_line(self) -> Optional[int]:
        return self.event_loop.current_line

    def record_step(self, description: str):
        if len(self.steps) >= self.config.max_steps:
            raise ExecutionLimitError(f"Maximum steps ({self.config.max_steps}) exceeded",
                                      'steps', self.current_line)
        if self.event_loop.peek_frame() is not None:
            self.event_loop.set_frame_variables(self.context.variables_snapshot())
        self.event_loop.set_description(description)
        self.steps.append(self.event_loop.get_snapshot())

    def set_line(self, node: ast.Node):
        line = self.source_map.get(node.start)
        if line is not None:
            self.event_loop.set_current_line(line)

    def describe_callback(self, fn) -> str:
        if isinstance(fn, Closure):
            if isinstance(fn.node, ast.AwaitContinuation):
                return "resume after await"
            if self.source:
                return function_preview(self.source, fn.node)
        name = getattr(fn, 'name', None)
        return f"{name}()" if name else "anonymous"

    # --- control-flow flags ----------------------------------------------------------------
    def _clear_flags(self):
        self.has_returned = False
        self.return_value: Any = undefined
        self.breaking = False
        self.continuing = False

    def _save_flags(self) -> Tuple[bool, Any, bool, bool]:
        return self.has_returned, self.return_value, self.breaking, self.continuing

    def _restore_flags(self, flags: Tuple[bool, Any, bool, bool]):
        self.has_returned, self.return_value, self.breaking, self.continuing = flags

    def _interrupted(self) -> bool:
        return self.has_returned or self.breaking or self.continuing

    # --- dispatch ------------------------------------------------------------------------
    def evaluate(self, node: ast.Node):
        handler = _DISPATCH.get(type(node))
        if handler is None:
            raise UnsupportedOperation(f"Unsupported syntax: {type(node).__name__}", self.current_line)
        return handler(self, node)

    def execute(self, stmt: ast.Node):
        self.set_line(stmt)
        return self.evaluate(stmt)

    def run_statements(self, body: List[ast.Node]) -> Optional[SimulatedPromise]:
        """Execute statements in order.

        Returns the promise the block suspended on when one of its statements
        awaits; the remaining statements then run later as a continuation.
        """
        for idx, stmt in enumerate(body):
            if self._interrupted():
                break
            awaited = _await_operand(stmt)
            if awaited is not None:
                self.set_line(stmt)
                return self.suspend(awaited, stmt, body[idx + 1:])
            self.execute(stmt)
        return None

    # --- hoisting ------------------------------------------------------------------------
    def hoist_declarations(self, body: List[ast.Node], function_level: bool):
        if function_level:
            scope = self.context.function_scope()
            for name in _var_names(body):
                if name not in scope.bindings:
                    binding = self.context.declare_variable(name, VAR)
                    binding.initialized = True
        for stmt in body:
            if isinstance(stmt, ast.VariableDeclaration) and stmt.kind != VAR:
                for decl in stmt.declarations:
                    self.context.declare_variable(decl.id.name, stmt.kind)
            elif isinstance(stmt, ast.FunctionDeclaration):
                closure = self.context.create_closure(stmt, stmt.id.name, stmt.is_async)
                self.context.declare_function(stmt.id.name, closure)

    def _bind_declared(self, kind: str, name: str, value):
        if kind == VAR:
            scope = self.context.function_scope()
            binding = scope.bindings.get(name) or self.context.declare_variable(name, VAR)
        else:
            binding = self.context.current_scope.bindings.get(name)
            if binding is None:
                binding = self.context.declare_variable(name, kind)
        binding.value = value
        binding.initialized = True

    # --- async suspension ------------------------------------------------------------------
    def suspend(self, awaited: ast.AwaitExpression, stmt: ast.Node, rest: List[ast.Node]) -> SimulatedPromise:
        """Park the rest of the block behind the awaited value's settlement."""
        promise = self.builtins.promise_resolve(self.evaluate(awaited.argument))
        self.record_step("Awaiting...")
        node = ast.AwaitContinuation(stmt.start, stmt.end, list(rest), stmt)
        continuation = Closure(node, self.context.current_scope)
        return self.builtins.then(promise, continuation, None, source='await')

    def resume(self, stmt: ast.Node, value):
        """Finish the statement that awaited, now that its value is known."""
        if isinstance(stmt, ast.VariableDeclaration):
            decl = stmt.declarations[0]
            self._bind_declared(stmt.kind, decl.id.name, value)
            self.record_step(f"Declare variable: {stmt.kind} {decl.id.name} = {inspect_value(value)}")
        elif isinstance(stmt, ast.ReturnStatement):
            self.record_step(f"return {inspect_value(value)}")
            self.has_returned = True
            self.return_value = value
        elif isinstance(stmt.expression, ast.AssignmentExpression):
            name = stmt.expression.left.name
            self.context.set_variable(name, value)
            self.record_step(f"Assign {name} = {inspect_value(value)}")

    # --- calls ---------------------------------------------------------------------------
    def call_function(self, fn, this, args: List[Any], name: Optional[str] = None, frame: bool = True):
        """Call a native or user function.

        With frame=False the caller has already pushed a stack frame (event-loop
        callbacks) and no call/exit steps are recorded.
        """
        if isinstance(fn, NativeFunction):
            return fn.impl(self, this, args)
        if not isinstance(fn, Closure):
            raise NotCallable(f"{name or format_value(fn)} is not a function", self.current_line)
        label = fn.name or name or 'anonymous'
        if fn.is_async:
            return self.call_async(fn, this, args, label, frame)
        result, suspended = self.invoke(fn, this, args, label, frame)
        # only await continuations suspend outside an async function
        return suspended if suspended is not None else result

    def call_async(self, fn: Closure, this, args, label: str, frame: bool) -> SimulatedPromise:
        outer = self.builtins.new_promise()
        try:
            result, suspended = self.invoke(fn, this, args, label, frame)
        except JSError as exc:
            self.builtins.reject_promise(outer, exc.value)
            return outer
        self.builtins.resolve_promise(outer, suspended if suspended is not None else result)
        return outer

    def invoke(self, fn: Closure, this, args: List[Any], label: str,
               frame: bool = True) -> Tuple[Any, Optional[SimulatedPromise]]:
        """Run a closure body; returns (return value, promise it suspended on or None)."""
        node = fn.node
        if frame:
            if self.event_loop.depth >= self.config.max_call_stack_depth:
                raise ExecutionLimitError(
                    f"Maximum call stack size exceeded ({self.config.max_call_stack_depth} frames)",
                    'call_stack', self.current_line)
            line = self.source_map.get(node.start)
            self.event_loop.push_frame(f"{label}()", f"line {line}" if line is not None else 'unknown')
            self.record_step(f"Call function: {label}()")
            log.debug("enter %s", label)

        saved_scope = self.context.current_scope
        saved_flags = self._save_flags()
        self._clear_flags()
        suspended = None
        try:
            if isinstance(node, ast.AwaitContinuation):
                self.context.restore_scope(fn.scope)
                self.resume(node.resume, args[0] if args else undefined)
                suspended = self.run_statements(node.body)
                result = self.return_value if self.has_returned else undefined
            else:
                self.context.enter_closure_scope(fn, this)
                self._bind_params(fn, args)
                if isinstance(node, ast.ArrowFunctionExpression) and node.expression:
                    if isinstance(node.body, ast.AwaitExpression):
                        ret = ast.ReturnStatement(node.body.start, node.body.end, node.body)
                        suspended = self.run_statements([ret])
                        result = self.return_value if self.has_returned else undefined
                    else:
                        result = self.evaluate(node.body)
                else:
                    self.hoist_declarations(node.body.body, function_level=True)
                    suspended = self.run_statements(node.body.body)
                    result = self.return_value if self.has_returned else undefined
        finally:
            self.context.restore_scope(saved_scope)
            self._restore_flags(saved_flags)
            if frame:
                self.event_loop.pop_frame()
        if frame:
            log.debug("exit %s", label)
            self.record_step(f"Exit function: {label}()")
        return result, suspended

    def _bind_params(self, fn: Closure, args: List[Any]):
        node = fn.node
        if isinstance(node, ast.FunctionExpression) and node.id is not None:
            # a named function expression can refer to itself
            self._bind_declared(VAR, node.id.name, fn)
        for idx, param in enumerate(node.params):
            self._bind_declared(VAR, param.name, args[idx] if idx < len(args) else undefined)

    @staticmethod
    def callee_label(node: ast.Node) -> str:
        if isinstance(node, ast.Identifier):
            return node.name
        if isinstance(node, ast.ThisExpression):
            return 'this'
        if isinstance(node, ast.MemberExpression):
            owner = Interpreter.callee_label(node.object)
            if node.computed:
                return f"{owner}[...]"
            return f"{owner}.{node.property.name}"
        return 'expression'

    # --- properties ----------------------------------------------------------------------
    def member_key(self, node: ast.MemberExpression):
        if node.computed:
            return self.evaluate(node.property)
        return node.property.name

    def get_property(self, obj, key):
        if obj is undefined or obj is None:
            raise PropertyAccessError(
                f"Cannot read properties of {to_js_string(obj)} (reading '{to_property_key(key)}')",
                self.current_line)
        name = to_property_key(key)
        if isinstance(obj, (list, str)):
            if name == 'length':
                return float(len(obj))
            if name.isdigit():
                idx = int(name)
                return obj[idx] if idx < len(obj) else undefined
            table = self.methods['array' if isinstance(obj, list) else 'string']
            return table.get(name, undefined)
        if isinstance(obj, SimulatedPromise):
            return self.methods['promise'].get(name, undefined)
        if isinstance(obj, MessageChannel):
            return {'port1': obj.port1, 'port2': obj.port2}.get(name, undefined)
        if isinstance(obj, MessagePort):
            if name == 'onmessage':
                return obj.onmessage
            return self.methods['port'].get(name, undefined)
        if isinstance(obj, dict):
            return obj.get(name, undefined)
        if isinstance(obj, FunctionValue):
            if name == 'name':
                return obj.name or ''
            return obj.props.get(name, undefined)
        if is_number(obj):
            return self.methods['number'].get(name, undefined)
        return undefined

    def set_property(self, obj, key, value):
        if obj is undefined or obj is None:
            raise PropertyAccessError(
                f"Cannot set properties of {to_js_string(obj)} (setting '{to_property_key(key)}')",
                self.current_line)
        name = to_property_key(key)
        if isinstance(obj, list):
            if name == 'length':
                size = to_number(value)
                if math.isnan(size) or math.isinf(size) or size < 0 or size != int(size):
                    raise JSError(ErrorObject("Invalid array length", 'RangeError'))
                size = int(size)
                del obj[size:]
                obj.extend([undefined] * (size - len(obj)))
            elif name.isdigit():
                idx = int(name)
                if idx >= len(obj):
                    obj.extend([undefined] * (idx + 1 - len(obj)))
                obj[idx] = value
            return
        if isinstance(obj, MessagePort):
            if name == 'onmessage':
                obj.onmessage = value
                self.record_step("port.onmessage registered")
            return
        if isinstance(obj, dict):
            obj[name] = value
        elif isinstance(obj, FunctionValue):
            obj.props[name] = value
        # assignments to primitive properties are dropped, as in sloppy mode

    # --- program and statements --------------------------------------------------------------
    def _eval_program(self, node: ast.Program):
        self.hoist_declarations(node.body, function_level=True)
        self.run_statements(node.body)

    def _eval_expression_statement(self, node: ast.ExpressionStatement):
        self.evaluate(node.expression)

    def _eval_block_statement(self, node: ast.BlockStatement):
        saved = self.context.current_scope
        self.context.enter_scope(BLOCK)
        try:
            self.hoist_declarations(node.body, function_level=False)
            return self.run_statements(node.body)
        finally:
            self.context.restore_scope(saved)

    def _eval_empty_statement(self, node: ast.EmptyStatement):
        return None

    def _eval_variable_declaration(self, node: ast.VariableDeclaration):
        for decl in node.declarations:
            name = decl.id.name
            if decl.init is None and node.kind == VAR:
                # `var x;` keeps whatever x already holds
                if name not in self.context.function_scope().bindings:
                    self._bind_declared(VAR, name, undefined)
                self.record_step(f"Declare variable: var {name}")
                continue
            value = undefined if decl.init is None else self.evaluate(decl.init)
            if isinstance(value, Closure) and value.name is None:
                value.name = name
            self._bind_declared(node.kind, name, value)
            self.record_step(f"Declare variable: {node.kind} {name} = {inspect_value(value)}")

    def _eval_function_declaration(self, node: ast.FunctionDeclaration):
        prefix = 'async ' if node.is_async else ''
        self.record_step(f"Declare function: {prefix}{node.id.name}()")

    def _eval_return_statement(self, node: ast.ReturnStatement):
        value = undefined if node.argument is None else self.evaluate(node.argument)
        self.record_step(f"return {inspect_value(value)}")
        self.has_returned = True
        self.return_value = value

    def _eval_if_statement(self, node: ast.IfStatement):
        if to_boolean(self.evaluate(node.test)):
            self.execute(node.consequent)
        elif node.alternate is not None:
            self.execute(node.alternate)

    # --- loops ---------------------------------------------------------------------------
    def check_loop_limit(self, node: ast.Node):
        count = self.loop_counters.get(node, 0) + 1
        self.loop_counters[node] = count
        if count > self.config.max_loop_iterations:
            raise ExecutionLimitError(
                f"Maximum loop iterations ({self.config.max_loop_iterations}) exceeded",
                'loop', self.source_map.get(node.start))

    def _run_loop_body(self, body: ast.Node) -> bool:
        """One iteration; False when the loop has to stop."""
        self.execute(body)
        if self.breaking:
            self.breaking = False
            return False
        self.continuing = False
        return not self.has_returned

    def _eval_while_statement(self, node: ast.WhileStatement):
        self.loop_counters[node] = 0
        while to_boolean(self.evaluate(node.test)):
            self.check_loop_limit(node)
            if not self._run_loop_body(node.body):
                break

    def _eval_do_while_statement(self, node: ast.DoWhileStatement):
        self.loop_counters[node] = 0
        while True:
            self.check_loop_limit(node)
            if not self._run_loop_body(node.body):
                break
            if not to_boolean(self.evaluate(node.test)):
                break

    def _next_iteration_scope(self):
        """Give the loop body fresh copies of the `let` bindings (one scope per iteration)."""
        previous = self.context.current_scope
        self.context.restore_scope(previous.parent)
        fresh = self.context.enter_scope(BLOCK)
        for name, binding in previous.bindings.items():
            fresh.bindings[name] = Binding(name, binding.kind, binding.value, binding.initialized)

    def _eval_for_statement(self, node: ast.ForStatement):
        saved = self.context.current_scope
        per_iteration = isinstance(node.init, ast.VariableDeclaration) and node.init.kind != VAR
        self.context.enter_scope(BLOCK)
        try:
            if node.init is not None:
                self.evaluate(node.init)
            self.loop_counters[node] = 0
            if per_iteration:
                self._next_iteration_scope()
            while node.test is None or to_boolean(self.evaluate(node.test)):
                self.check_loop_limit(node)
                if not self._run_loop_body(node.body):
                    break
                if per_iteration:
                    self._next_iteration_scope()
                if node.update is not None:
                    self.evaluate(node.update)
        finally:
            self.context.restore_scope(saved)

    def _eval_switch_statement(self, node: ast.SwitchStatement):
        discriminant = self.evaluate(node.discriminant)
        saved = self.context.current_scope
        self.context.enter_scope(BLOCK)
        try:
            self.hoist_declarations([s for case in node.cases for s in case.consequent], function_level=False)
            start = None
            for idx, case in enumerate(node.cases):
                if case.test is not None and strict_equals(discriminant, self.evaluate(case.test)):
                    start = idx
                    break
            if start is None:
                start = next((i for i, case in enumerate(node.cases) if case.test is None), None)
            if start is not None:
                for case in node.cases[start:]:
                    self.run_statements(case.consequent)
                    if self._interrupted():
                        break
            self.breaking = False
        finally:
            self.context.restore_scope(saved)

    def _eval_break_statement(self, node: ast.BreakStatement):
        self.breaking = True

    def _eval_continue_statement(self, node: ast.ContinueStatement):
        self.continuing = True

    # --- exceptions ----------------------------------------------------------------------------
    def _eval_throw_statement(self, node: ast.ThrowStatement):
        value = self.evaluate(node.argument)
        self.record_step(f"throw {inspect_value(value)}")
        raise JSError(value)

    def _eval_try_statement(self, node: ast.TryStatement):
        self.record_step("try block started")
        pending: Optional[JSError] = None
        try:
            self.execute(node.block)
        except JSError as exc:
            if node.handler is None:
                pending = exc
            else:
                try:
                    self._run_catch(node.handler, exc.value)
                except JSError as inner:
                    pending = inner
        if node.finalizer is not None:
            flags = self._save_flags()
            self._clear_flags()
            self.record_step("finally block started")
            self.execute(node.finalizer)
            if self._interrupted():
                # return/break in finally wins over the earlier completion
                pending = None
            else:
                self._restore_flags(flags)
        if pending is not None:
            raise pending

    def _run_catch(self, handler: ast.CatchClause, value):
        saved = self.context.current_scope
        self.context.enter_scope(BLOCK)
        try:
            if handler.param is not None:
                self._bind_declared(LET, handler.param.name, value)
            self.record_step("catch block started")
            self.execute(handler.body)
        finally:
            self.context.restore_scope(saved)

    # --- expressions ---------------------------------------------------------------------------
    def _eval_identifier(self, node: ast.Identifier):
        return self.context.get_variable(node.name)

    def _eval_literal(self, node: ast.Literal):
        return node.value

    def _eval_template_literal(self, node: ast.TemplateLiteral):
        parts = [node.quasis[0]]
        for expr, quasi in zip(node.expressions, node.quasis[1:]):
            parts.append(to_js_string(self.evaluate(expr)))
            parts.append(quasi)
        return ''.join(parts)

    def _eval_this_expression(self, node: ast.ThisExpression):
        return self.context.lookup_this()

    def _eval_array_expression(self, node: ast.ArrayExpression):
        return [undefined if el is None else self.evaluate(el) for el in node.elements]

    def _eval_object_expression(self, node: ast.ObjectExpression):
        obj: Dict[str, Any] = {}
        for prop in node.properties:
            if prop.computed:
                key = to_property_key(self.evaluate(prop.key))
            elif isinstance(prop.key, ast.Identifier):
                key = prop.key.name
            else:
                key = to_property_key(prop.key.value)
            value = self.evaluate(prop.value)
            if isinstance(value, Closure) and value.name is None:
                value.name = key
            obj[key] = value
        return obj

    def _eval_function_expression(self, node: ast.FunctionExpression):
        name = node.id.name if node.id is not None else None
        return self.context.create_closure(node, name, node.is_async)

    def _eval_arrow_function_expression(self, node: ast.ArrowFunctionExpression):
        return self.context.create_closure(node, None, node.is_async)

    def _eval_member_expression(self, node: ast.MemberExpression):
        obj = self.evaluate(node.object)
        return self.get_property(obj, self.member_key(node))

    def _eval_call_expression(self, node: ast.CallExpression):
        callee = node.callee
        if isinstance(callee, ast.MemberExpression):
            this = self.evaluate(callee.object)
            fn = self.get_property(this, self.member_key(callee))
        else:
            this = undefined
            fn = self.evaluate(callee)
        label = self.callee_label(callee)
        args = [self.evaluate(arg) for arg in node.arguments]
        if not is_callable(fn):
            raise NotCallable(f"{label} is not a function", self.current_line)
        return self.call_function(fn, this, args, label)

    def _eval_new_expression(self, node: ast.NewExpression):
        ctor = self.evaluate(node.callee)
        label = self.callee_label(node.callee)
        args = [self.evaluate(arg) for arg in node.arguments]
        if isinstance(ctor, NativeFunction) and ctor.construct is not None:
            return ctor.construct(self, args)
        if isinstance(ctor, Closure) and not ctor.is_arrow and not ctor.is_async:
            instance = ObjectInstance(ctor)
            result = self.call_function(ctor, instance, args, label)
            return result if isinstance(result, (dict, list, FunctionValue)) else instance
        raise NotCallable(f"{label} is not a constructor", self.current_line)

    def _eval_unary_expression(self, node: ast.UnaryExpression):
        op = node.operator
        if op == 'typeof':
            if isinstance(node.argument, ast.Identifier) and not self.context.has_variable(node.argument.name):
                return 'undefined'
            return type_of(self.evaluate(node.argument))
        if op == 'delete':
            target = node.argument
            if isinstance(target, ast.MemberExpression):
                obj = self.evaluate(target.object)
                name = to_property_key(self.member_key(target))
                if isinstance(obj, dict):
                    obj.pop(name, None)
                elif isinstance(obj, list) and name.isdigit() and int(name) < len(obj):
                    obj[int(name)] = undefined
            return True
        value = self.evaluate(node.argument)
        if op == '!':
            return not to_boolean(value)
        if op == '-':
            return -to_number(value)
        if op == '+':
            return to_number(value)
        if op == '~':
            return float(~to_int32(value))
        if op == 'void':
            return undefined
        raise UnsupportedOperation(f"Unsupported unary operator {op!r}", self.current_line)

    def _reference(self, target: ast.Node) -> Tuple[bool, Any, Any]:
        """(is_member, object, key) for an assignment target, evaluating the object once."""
        if isinstance(target, ast.Identifier):
            return False, None, target.name
        if isinstance(target, ast.MemberExpression):
            return True, self.evaluate(target.object), self.member_key(target)
        raise UnsupportedOperation("Invalid assignment target", self.current_line)

    def _read_reference(self, ref):
        is_member, obj, key = ref
        return self.get_property(obj, key) if is_member else self.context.get_variable(key)

    def _write_reference(self, ref, value):
        is_member, obj, key = ref
        if is_member:
            self.set_property(obj, key, value)
        else:
            self.context.set_variable(key, value)

    def _eval_update_expression(self, node: ast.UpdateExpression):
        ref = self._reference(node.argument)
        old = to_number(self._read_reference(ref))
        new = old + 1 if node.operator == '++' else old - 1
        self._write_reference(ref, new)
        return new if node.prefix else old

    def _eval_binary_expression(self, node: ast.BinaryExpression):
        left = self.evaluate(node.left)
        right = self.evaluate(node.right)
        return apply_binary(node.operator, left, right)

    def _eval_logical_expression(self, node: ast.LogicalExpression):
        left = self.evaluate(node.left)
        if node.operator == '&&':
            return self.evaluate(node.right) if to_boolean(left) else left
        if node.operator == '||':
            return left if to_boolean(left) else self.evaluate(node.right)
        # ??
        return self.evaluate(node.right) if left is undefined or left is None else left

    def _eval_assignment_expression(self, node: ast.AssignmentExpression):
        op = node.operator
        ref = self._reference(node.left)
        if op == '=':
            value = self.evaluate(node.right)
        elif op in ('&&=', '||=', '??='):
            current = self._read_reference(ref)
            if op == '&&=' and not to_boolean(current):
                return current
            if op == '||=' and to_boolean(current):
                return current
            if op == '??=' and not (current is undefined or current is None):
                return current
            value = self.evaluate(node.right)
        else:
            current = self._read_reference(ref)
            value = apply_binary(op[:-1], current, self.evaluate(node.right))
        if isinstance(value, Closure) and value.name is None and not ref[0]:
            value.name = ref[2]
        self._write_reference(ref, value)
        self.record_step(f"Assign {self.callee_label(node.left)} = {inspect_value(value)}")
        return value

    def _eval_conditional_expression(self, node: ast.ConditionalExpression):
        if to_boolean(self.evaluate(node.test)):
            return self.evaluate(node.consequent)
        return self.evaluate(node.alternate)

    def _eval_sequence_expression(self, node: ast.SequenceExpression):
        value = undefined
        for expr in node.expressions:
            value = self.evaluate(expr)
        return value

    def _eval_await_expression(self, node: ast.AwaitExpression):
        raise UnsupportedOperation(
            "await is only supported as a statement, a declaration initializer, "
            "an assignment to a variable or a return value", self.current_line)

    # --- event loop ------------------------------------------------------------------------
    def run_event_loop(self):
        """Drain all microtasks, then run one task; repeat until both queues are empty."""
        loop = self.event_loop
        turns = 0
        while loop.has_pending_tasks():
            turns += 1
            if turns > EVENT_LOOP_TURN_LIMIT:
                raise ExecutionLimitError(f"Event loop exceeded {EVENT_LOOP_TURN_LIMIT} turns", 'event_loop')
            while loop.has_microtasks():
                self.run_microtask(loop.pop_microtask())
            task = loop.pop_task()
            if task is not None:
                self.run_task(task)
        self.record_step("Execution finished")

    def run_microtask(self, task: ScheduledTask):
        if task.internal is not None:
            task.internal()
            return
        loop = self.event_loop
        log.debug("microtask %s (%s)", task.id, task.source)
        self.record_step(f"Run microtask: {task.preview}")
        loop.push_frame(f"{task.source} callback", 'microtask')
        try:
            result = self.call_function(task.callback, undefined, task.args, frame=False)
        except JSError as exc:
            if task.chained is None:
                raise
            loop.pop_frame()
            self.builtins.reject_promise(task.chained, exc.value)
        else:
            loop.pop_frame()
            if task.chained is not None:
                self.builtins.resolve_promise(task.chained, result)
        self.record_step(f"Microtask finished: {task.preview}")

    def run_task(self, task: ScheduledTask):
        loop = self.event_loop
        loop.advance_time(task.delay)
        log.debug("task %s (%s) at t=%d", task.id, task.source, loop.current_time)
        self.record_step(f"Run task: {task.preview}")
        loop.push_frame(f"{task.source} callback", 'task')
        self.call_function(task.callback, undefined, task.args, frame=False)
        loop.pop_frame()
        self.record_step(f"Task finished: {task.preview}")


def _build_dispatch():
    table = {}
    for node_cls in ast.NODE_TYPES:
        handler = getattr(Interpreter, f"_eval_{node_cls.node_type}", None)
        if handler is None:
            raise TypeError(f"Interpreter has no handler for {node_cls.__name__}")
        table[node_cls] = handler
    return table


_DISPATCH = _build_dispatch()
