"""
Error taxonomy for loopstep.

Everything the interpreter reports to its caller derives from SimulatorError.
JSError is different: it is the internal marker that carries a value thrown by
user code, and it is the only exception simulated try/catch is allowed to catch.
"""
from __future__ import annotations
from typing import Any, List, Optional


class SimulatorError(Exception):
    """Base class for failures reported by interpret()."""

    def __init__(self, message: str, line: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.line = line

    def to_dict(self) -> dict:
        return {'type': type(self).__name__, 'message': self.message, 'line': self.line}


# --- runtime errors ---------------------------------------------------------
class JSRuntimeError(SimulatorError):
    pass


class UndeclaredVariable(JSRuntimeError):
    pass


class TemporalDeadZoneAccess(JSRuntimeError):
    pass


class ConstReassignment(JSRuntimeError):
    pass


class DuplicateDeclaration(JSRuntimeError):
    pass


class NotCallable(JSRuntimeError):
    pass


class PropertyAccessError(JSRuntimeError):
    pass


class UnsupportedOperation(JSRuntimeError):
    pass


# --- resource limits --------------------------------------------------------
class ExecutionLimitError(SimulatorError):
    """A configured ceiling was exceeded (steps, call stack, loop, event loop)."""

    def __init__(self, message: str, limit: str, line: Optional[int] = None):
        super().__init__(message, line)
        self.limit = limit

    def to_dict(self) -> dict:
        out = super().to_dict()
        out['limit'] = self.limit
        return out


class UncaughtException(SimulatorError):
    """A user-thrown value escaped every try block."""

    def __init__(self, message: str, value: Any = None, line: Optional[int] = None):
        super().__init__(message, line)
        self.value = value


# --- user throws ------------------------------------------------------------
class JSError(Exception):
    """Wraps a value thrown by `throw` in user code."""

    def __init__(self, value):
        super().__init__(value)
        self.value = value


# --- parsing / configuration -------------------------------------------------
class SourceParseError(Exception):
    """Raised by the convenience entry points when the source does not parse."""

    def __init__(self, errors: List[Any]):
        self.errors = list(errors)
        first = self.errors[0] if self.errors else None
        if first is not None:
            msg = f"{first.message} (line {first.line}, column {first.column})"
        else:
            msg = "parse failed"
        if len(self.errors) > 1:
            msg += f" and {len(self.errors) - 1} more"
        super().__init__(msg)


class ConfigError(ValueError):
    pass
