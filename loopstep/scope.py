"""
Lexical scopes, bindings and closures.

Scopes form a parent-linked chain. A Closure keeps a reference to the scope it
was created in, and calling it always starts a new function scope under that
captured scope, never under the caller's. Python's reference counting keeps a
captured scope alive for exactly as long as a frame or a closure still needs it.
"""
from __future__ import annotations
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from . import ast_nodes as ast
from .errors import (ConstReassignment, DuplicateDeclaration,
                     TemporalDeadZoneAccess, UndeclaredVariable)
from .values import FunctionValue, serialize_value, undefined

log = logging.getLogger(__name__)

GLOBAL = 'global'
FUNCTION = 'function'
BLOCK = 'block'

VAR = 'var'
LET = 'let'
CONST = 'const'

# marker for scopes that do not bind `this` (blocks, arrow function bodies)
NO_THIS = object()


@dataclass(eq=False)
class Binding:
    name: str
    kind: str
    value: Any = undefined
    initialized: bool = False


class Scope:
    def __init__(self, scope_id: str, kind: str, parent: Optional['Scope'] = None,
                 this_binding: Any = NO_THIS):
        self.id = scope_id
        self.kind = kind
        self.parent = parent
        self.bindings: Dict[str, Binding] = {}
        self.this_binding = this_binding

    def __repr__(self):
        return f"<Scope {self.id} {self.kind} {sorted(self.bindings)}>"


class Closure(FunctionValue):
    """A user function paired with the scope active where it was defined."""

    def __init__(self, node: ast.Node, scope: Scope, name: Optional[str] = None,
                 is_async: bool = False):
        super().__init__()
        self.node = node
        self.scope = scope
        self.name = name
        self.is_async = is_async

    @property
    def is_arrow(self) -> bool:
        return isinstance(self.node, ast.ArrowFunctionExpression)

    def __repr__(self):
        return f"<Closure {self.name or '(anonymous)'}>"


class ExecutionContext:
    """Owns the scope chain of one interpreter run.

    Builtins live outside the chain so they never show up in variable snapshots;
    they are consulted only after every scope misses.
    """

    def __init__(self, builtins: Optional[Dict[str, Any]] = None):
        self.builtins: Dict[str, Any] = dict(builtins or {})
        self.reset()

    def reset(self):
        self._scope_ids = itertools.count(1)
        self.global_scope = self._new_scope(GLOBAL, None, undefined)
        self.current_scope = self.global_scope

    def _new_scope(self, kind: str, parent: Optional[Scope], this_binding: Any = NO_THIS) -> Scope:
        return Scope(f"scope-{next(self._scope_ids)}", kind, parent, this_binding)

    # --- scope stack -----------------------------------------------------------
    def enter_scope(self, kind: str, this_binding: Any = NO_THIS) -> Scope:
        self.current_scope = self._new_scope(kind, self.current_scope, this_binding)
        return self.current_scope

    def exit_scope(self) -> Optional[Scope]:
        """Pop to the parent scope; a no-op at the root."""
        scope = self.current_scope
        if scope.parent is None:
            return None
        self.current_scope = scope.parent
        return scope

    def restore_scope(self, scope: Scope):
        self.current_scope = scope

    def function_scope(self) -> Scope:
        scope = self.current_scope
        while scope.kind == BLOCK and scope.parent is not None:
            scope = scope.parent
        return scope

    # --- bindings ----------------------------------------------------------------
    def find_binding(self, name: str) -> Optional[Binding]:
        scope = self.current_scope
        while scope is not None:
            binding = scope.bindings.get(name)
            if binding is not None:
                return binding
            scope = scope.parent
        return None

    def declare_variable(self, name: str, kind: str) -> Binding:
        """Create a binding; `var` goes to the nearest function scope.

        Re-declaring a `var` returns the existing binding unchanged; any clash
        involving `let`/`const` raises DuplicateDeclaration.
        """
        target = self.function_scope() if kind == VAR else self.current_scope
        existing = target.bindings.get(name)
        if existing is not None:
            if kind == VAR and existing.kind == VAR:
                return existing
            raise DuplicateDeclaration(f"Identifier '{name}' has already been declared")
        binding = Binding(name, kind)
        target.bindings[name] = binding
        return binding

    def declare_function(self, name: str, closure: FunctionValue) -> Binding:
        """Bind a hoisted function declaration in the current scope."""
        existing = self.current_scope.bindings.get(name)
        if existing is not None and existing.kind != VAR:
            raise DuplicateDeclaration(f"Identifier '{name}' has already been declared")
        binding = existing or Binding(name, VAR)
        binding.value = closure
        binding.initialized = True
        self.current_scope.bindings[name] = binding
        return binding

    def initialize_variable(self, name: str, value: Any):
        binding = self.find_binding(name)
        if binding is None:
            raise UndeclaredVariable(f"{name} is not defined")
        binding.value = value
        binding.initialized = True

    def set_variable(self, name: str, value: Any):
        binding = self.find_binding(name)
        if binding is None:
            # sloppy-mode assignment to an undeclared name creates a global
            log.debug("implicit global %r", name)
            self.global_scope.bindings[name] = Binding(name, VAR, value, True)
            return
        if binding.kind == CONST and binding.initialized:
            raise ConstReassignment("Assignment to constant variable.")
        if not binding.initialized and binding.kind != VAR:
            raise TemporalDeadZoneAccess(f"Cannot access '{name}' before initialization")
        binding.value = value
        binding.initialized = True

    def get_variable(self, name: str) -> Any:
        binding = self.find_binding(name)
        if binding is None:
            if name in self.builtins:
                return self.builtins[name]
            raise UndeclaredVariable(f"{name} is not defined")
        if not binding.initialized and binding.kind != VAR:
            raise TemporalDeadZoneAccess(f"Cannot access '{name}' before initialization")
        return binding.value

    def has_variable(self, name: str) -> bool:
        return self.find_binding(name) is not None or name in self.builtins

    def lookup_this(self) -> Any:
        scope = self.current_scope
        while scope is not None:
            if scope.this_binding is not NO_THIS:
                return scope.this_binding
            scope = scope.parent
        return undefined

    # --- closures ------------------------------------------------------------------
    def create_closure(self, node: ast.Node, name: Optional[str] = None, is_async: bool = False) -> Closure:
        return Closure(node, self.current_scope, name, is_async)

    def enter_closure_scope(self, closure: Closure, this_binding: Any = NO_THIS) -> Scope:
        """Start a function scope whose parent is the closure's captured scope."""
        if closure.is_arrow:
            this_binding = NO_THIS
        elif this_binding is NO_THIS:
            this_binding = undefined
        self.current_scope = self._new_scope(FUNCTION, closure.scope, this_binding)
        return self.current_scope

    # --- snapshots -------------------------------------------------------------------
    def variables_snapshot(self) -> Dict[str, Any]:
        """Initialized bindings from the current scope out to the nearest function scope."""
        variables: Dict[str, Any] = {}
        scope = self.current_scope
        while scope is not None:
            for name, binding in scope.bindings.items():
                if name not in variables and binding.initialized:
                    variables[name] = serialize_value(binding.value)
            if scope.kind != BLOCK:
                break
            scope = scope.parent
        return variables
