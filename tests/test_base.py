import sys
import unittest
from typing import List, Optional

from loopstep import Interpreter, InterpreterConfig, parse


def run_js(source: str, **limits) -> Interpreter:
    """Parse and interpret `source`; limits are InterpreterConfig field overrides."""
    result = parse(source)
    if not result.success:
        raise AssertionError(f"parse failed: {[e.message for e in result.errors]}")
    interp = Interpreter(InterpreterConfig().with_overrides(**limits), source)
    interp.interpret(result.ast, result.source_map)
    return interp


def console_messages(interp: Interpreter) -> List[str]:
    if not interp.steps:
        return []
    return [entry.message for entry in interp.steps[-1].console_output]


def descriptions(interp: Interpreter) -> List[str]:
    return [step.description for step in interp.steps]


class CleanTestCase(unittest.TestCase):
    """Base class that keeps the last interpreter on `self.interp` and flushes stdio in tearDown."""

    def setUp(self):
        self.interp: Optional[Interpreter] = None

    def tearDown(self):
        self.interp = None
        # Flush stdio to avoid buffered writes during finalization
        try:
            sys.stdout.flush()
        except Exception:
            pass
        try:
            sys.stderr.flush()
        except Exception:
            pass

    def run_js(self, source: str, **limits) -> Interpreter:
        self.interp = run_js(source, **limits)
        return self.interp

    def assertConsole(self, source: str, expected: List[str], **limits):
        interp = self.run_js(source, **limits)
        self.assertIsNone(interp.error, interp.error.message if interp.error else None)
        self.assertEqual(console_messages(interp), expected)

    def assertFailsWith(self, source: str, exc_type, **limits):
        interp = self.run_js(source, **limits)
        self.assertIsInstance(interp.error, exc_type)
        self.assertTrue(interp.steps[-1].description.startswith("Error: "))
        return interp.error
