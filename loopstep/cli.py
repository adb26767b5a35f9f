"""
Command line front end: run a script through the simulator and print the steps.

    python -m loopstep examples/ordering.js --format json
"""
from __future__ import annotations
import argparse
import json
import logging
import sys
from typing import List, Optional

import yaml

from .config import load_config
from .errors import ConfigError
from .event_loop import ExecutionStep
from .interpreter import Interpreter
from .parser import format_parse_error, parse

log = logging.getLogger(__name__)


def _frame_names(step: ExecutionStep) -> str:
    return ' > '.join(f.function_name for f in step.call_stack) or '(empty)'


def render_text(steps: List[ExecutionStep]) -> str:
    out = []
    for idx, step in enumerate(steps, 1):
        line = f"line {step.current_line}" if step.current_line is not None else "line -"
        out.append(f"[{idx:>4}] {line:<9} {step.description}")
        out.append(f"       stack: {_frame_names(step)}")
        if step.microtask_queue:
            out.append(f"       microtasks: {', '.join(t.callback for t in step.microtask_queue)}")
        if step.task_queue:
            out.append(f"       tasks: {', '.join(t.callback for t in step.task_queue)}")
    if steps and steps[-1].console_output:
        out.append("--- console ---")
        out.extend(f"{c.level}: {c.message}" for c in steps[-1].console_output)
    return '\n'.join(out)


def render(steps: List[ExecutionStep], fmt: str, console_only: bool) -> str:
    if console_only:
        logs = steps[-1].console_output if steps else ()
        if fmt == 'text':
            return '\n'.join(c.message for c in logs)
        data = [c.to_dict() for c in logs]
    elif fmt == 'text':
        return render_text(steps)
    else:
        data = [s.to_dict() for s in steps]
    if fmt == 'json':
        return json.dumps(data, indent=2, ensure_ascii=False)
    return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)


def main(argv: Optional[list] = None) -> int:
    p = argparse.ArgumentParser(prog="loopstep",
                                description="Step through a script's call stack, task queue and microtask queue")
    p.add_argument("file", help="JavaScript source file ('-' reads stdin)")
    p.add_argument("--config", default=None, help="Interpreter limits (.ini/.cfg or .yaml/.yml)")
    p.add_argument("--max-steps", type=int, default=None, help="Override maxSteps")
    p.add_argument("--max-call-stack-depth", type=int, default=None, help="Override maxCallStackDepth")
    p.add_argument("--max-loop-iterations", type=int, default=None, help="Override maxLoopIterations")
    p.add_argument("--format", choices=("text", "json", "yaml"), default="text", help="Output format")
    p.add_argument("--console-only", action="store_true", help="Print only the console output")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    args = p.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)

    try:
        config = load_config(args.config).with_overrides(
            max_steps=args.max_steps,
            max_call_stack_depth=args.max_call_stack_depth,
            max_loop_iterations=args.max_loop_iterations,
        )
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    try:
        if args.file == '-':
            source = sys.stdin.read()
        else:
            with open(args.file, encoding='utf-8') as fh:
                source = fh.read()
    except OSError as e:
        print(f"ERROR: unable to read '{args.file}': {e}", file=sys.stderr)
        return 2

    result = parse(source)
    if not result.success:
        for err in result.errors:
            print(format_parse_error(source, err), file=sys.stderr)
        return 2

    interp = Interpreter(config, source)
    steps = interp.interpret(result.ast, result.source_map)
    print(render(steps, args.format, args.console_only))
    if interp.error is not None:
        print(f"ERROR: {interp.error.message} (line {interp.error.line})", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
