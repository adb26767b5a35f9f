"""loopstep: a steppable simulator of the JavaScript call stack and event loop."""
from .config import DEFAULT_CONFIG, InterpreterConfig, load_config
from .engine import ExecutionEngine, LoadCodeResult, run, run_source
from .errors import (ConfigError, ConstReassignment, DuplicateDeclaration,
                     ExecutionLimitError, JSError, JSRuntimeError, NotCallable,
                     PropertyAccessError, SimulatorError, SourceParseError,
                     TemporalDeadZoneAccess, UncaughtException, UndeclaredVariable,
                     UnsupportedOperation)
from .event_loop import (ConsoleLog, EventLoopSimulator, ExecutionStep, QueueItem,
                         ScheduledTask, StackFrame)
from .interpreter import Interpreter
from .parser import ParseError, ParseResult, format_parse_error, parse

__version__ = "0.1.0"

__all__ = [
    'ConfigError', 'ConsoleLog', 'ConstReassignment', 'DEFAULT_CONFIG',
    'DuplicateDeclaration', 'EventLoopSimulator', 'ExecutionEngine',
    'ExecutionLimitError', 'ExecutionStep', 'Interpreter', 'InterpreterConfig',
    'JSError', 'JSRuntimeError', 'LoadCodeResult', 'NotCallable', 'ParseError',
    'ParseResult', 'PropertyAccessError', 'QueueItem', 'ScheduledTask',
    'SimulatorError', 'SourceParseError', 'StackFrame', 'TemporalDeadZoneAccess',
    'UncaughtException', 'UndeclaredVariable', 'UnsupportedOperation',
    'format_parse_error', 'load_config', 'parse', 'run', 'run_source',
]
