"""
Step-by-step facade over parse() and Interpreter.

ExecutionEngine computes every step up front and then hands them out one at
a time; it has no notion of playback speed.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .config import InterpreterConfig
from .errors import SimulatorError, SourceParseError
from .event_loop import ExecutionStep
from .interpreter import Interpreter
from .parser import ParseError, parse

log = logging.getLogger(__name__)


@dataclass
class LoadCodeResult:
    success: bool
    errors: List[ParseError] = field(default_factory=list)


class ExecutionEngine:
    def __init__(self, config: Optional[InterpreterConfig] = None):
        self.config = config or InterpreterConfig()
        self.steps: List[ExecutionStep] = []
        self.parse_errors: List[ParseError] = []
        self.error: Optional[SimulatorError] = None
        self._cursor = 0

    def load_code(self, source: str) -> LoadCodeResult:
        """Parse and run `source`, replacing whatever was loaded before."""
        self.reset()
        self.steps = []
        self.parse_errors = []
        self.error = None
        result = parse(source)
        if not result.success:
            self.parse_errors = list(result.errors)
            return LoadCodeResult(False, list(result.errors))
        interp = Interpreter(self.config, source)
        self.steps = interp.interpret(result.ast, result.source_map)
        self.error = interp.error
        log.info("recorded %d steps", len(self.steps))
        return LoadCodeResult(True)

    def step(self) -> Optional[ExecutionStep]:
        if self._cursor >= len(self.steps):
            return None
        current = self.steps[self._cursor]
        self._cursor += 1
        return current

    def has_more_steps(self) -> bool:
        return self._cursor < len(self.steps)

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    @property
    def current_step_number(self) -> int:
        """Number of steps handed out so far."""
        return self._cursor

    def current_description(self) -> str:
        if self._cursor == 0:
            return ''
        return self.steps[self._cursor - 1].description

    def reset(self):
        """Rewind to the first step; the recorded steps are kept."""
        self._cursor = 0


def run_source(source: str, config: Optional[InterpreterConfig] = None) -> List[ExecutionStep]:
    """Parse and interpret `source` in one call; raises SourceParseError on bad input."""
    result = parse(source)
    if not result.success:
        raise SourceParseError(result.errors)
    return Interpreter(config, source).interpret(result.ast, result.source_map)


def run(source: str, config: Optional[InterpreterConfig] = None) -> Interpreter:
    """Like run_source() but returns the interpreter, so `error` and the event loop can be inspected."""
    result = parse(source)
    if not result.success:
        raise SourceParseError(result.errors)
    interp = Interpreter(config, source)
    interp.interpret(result.ast, result.source_map)
    return interp
