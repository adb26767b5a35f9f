"""
Event-loop state: call stack, task queue, microtask queue, console and clock.

The simulator only stores state and hands out snapshots; the draining
algorithm itself lives in the interpreter, which decides when a step is worth
recording.
"""
from __future__ import annotations
import copy
import itertools
import logging
from collections import deque
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Tuple

from .values import FunctionValue, SimulatedPromise

log = logging.getLogger(__name__)

TASK = 'task'
MICROTASK = 'microtask'


@dataclass(frozen=True)
class StackFrame:
    id: str
    function_name: str
    location: str
    variables: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'function_name': self.function_name,
            'location': self.location,
            'variables': dict(self.variables),
        }

    def frozen_copy(self) -> StackFrame:
        """A copy whose variables are a private, read-only mapping."""
        return StackFrame(self.id, self.function_name, self.location,
                          MappingProxyType(copy.deepcopy(dict(self.variables))))


@dataclass(frozen=True)
class QueueItem:
    id: str
    type: str
    source: str
    callback: str
    timestamp: int
    created_at: int

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'type': self.type,
            'source': self.source,
            'callback': self.callback,
            'timestamp': self.timestamp,
            'created_at': self.created_at,
        }


@dataclass(frozen=True)
class ConsoleLog:
    id: str
    timestamp: int
    level: str
    message: str

    def to_dict(self) -> dict:
        return {'id': self.id, 'timestamp': self.timestamp, 'level': self.level, 'message': self.message}


@dataclass(eq=False)
class ScheduledTask:
    id: str
    type: str
    callback: Optional[FunctionValue]
    source: str
    delay: int = 0
    created_at: int = 0
    preview: str = ''
    args: List[Any] = field(default_factory=list)
    # promise settled with the callback's outcome
    chained: Optional[SimulatedPromise] = None
    # bookkeeping callbacks (Promise.race) run without recording steps
    internal: Optional[Callable[[], None]] = None

    @property
    def due(self) -> int:
        return self.created_at + self.delay

    def to_queue_item(self) -> QueueItem:
        return QueueItem(self.id, self.type, self.source, self.preview, self.delay, self.created_at)


@dataclass(frozen=True)
class ExecutionStep:
    call_stack: Tuple[StackFrame, ...]
    task_queue: Tuple[QueueItem, ...]
    microtask_queue: Tuple[QueueItem, ...]
    console_output: Tuple[ConsoleLog, ...]
    current_line: Optional[int]
    description: str
    error: Optional[Dict[str, Any]] = None

    def to_dict(self) -> dict:
        out = {
            'call_stack': [f.to_dict() for f in self.call_stack],
            'task_queue': [t.to_dict() for t in self.task_queue],
            'microtask_queue': [t.to_dict() for t in self.microtask_queue],
            'console_output': [c.to_dict() for c in self.console_output],
            'current_line': self.current_line,
            'description': self.description,
        }
        if self.error is not None:
            out['error'] = dict(self.error)
        return out


class EventLoopSimulator:
    def __init__(self):
        self.reset()

    def reset(self):
        self.call_stack: List[StackFrame] = []
        self.task_queue: List[ScheduledTask] = []
        self.microtask_queue: Deque[ScheduledTask] = deque()
        self.console_output: List[ConsoleLog] = []
        self.current_time = 0
        self.current_line: Optional[int] = None
        self.description = ''
        self._frame_ids = itertools.count(1)
        self._task_ids = itertools.count(1)
        self._log_ids = itertools.count(1)

    # --- call stack ----------------------------------------------------------------
    def push_frame(self, function_name: str, location: str,
                   variables: Optional[Dict[str, Any]] = None) -> StackFrame:
        frame = StackFrame(f"frame-{next(self._frame_ids)}", function_name, location,
                           dict(variables or {}))
        self.call_stack.append(frame)
        return frame

    def pop_frame(self) -> Optional[StackFrame]:
        return self.call_stack.pop() if self.call_stack else None

    def peek_frame(self) -> Optional[StackFrame]:
        return self.call_stack[-1] if self.call_stack else None

    def set_frame_variables(self, variables: Dict[str, Any]):
        """Replace the innermost frame with one holding `variables`."""
        if self.call_stack:
            self.call_stack[-1] = replace(self.call_stack[-1], variables=variables)

    @property
    def depth(self) -> int:
        return len(self.call_stack)

    # --- queues --------------------------------------------------------------------
    def schedule_task(self, callback: Optional[FunctionValue], source: str, delay: int = 0,
                      preview: str = '', args: Optional[List[Any]] = None) -> ScheduledTask:
        task = ScheduledTask(f"task-{next(self._task_ids)}", TASK, callback, source,
                             delay=delay, created_at=self.current_time, preview=preview,
                             args=list(args or []))
        self.task_queue.append(task)
        # list.sort is stable, so equal due times keep insertion order
        self.task_queue.sort(key=lambda t: t.due)
        log.debug("scheduled %s %s due at %d", task.id, source, task.due)
        return task

    def schedule_microtask(self, callback: Optional[FunctionValue], source: str, preview: str = '',
                           args: Optional[List[Any]] = None,
                           chained: Optional[SimulatedPromise] = None,
                           internal: Optional[Callable[[], None]] = None) -> ScheduledTask:
        task = ScheduledTask(f"task-{next(self._task_ids)}", MICROTASK, callback, source,
                             created_at=self.current_time, preview=preview,
                             args=list(args or []), chained=chained, internal=internal)
        self.microtask_queue.append(task)
        log.debug("queued microtask %s %s", task.id, source)
        return task

    def cancel_task(self, task_id: str) -> bool:
        for idx, task in enumerate(self.task_queue):
            if task.id == task_id:
                del self.task_queue[idx]
                return True
        return False

    def pop_task(self) -> Optional[ScheduledTask]:
        return self.task_queue.pop(0) if self.task_queue else None

    def pop_microtask(self) -> Optional[ScheduledTask]:
        return self.microtask_queue.popleft() if self.microtask_queue else None

    def has_tasks(self) -> bool:
        return bool(self.task_queue)

    def has_microtasks(self) -> bool:
        return bool(self.microtask_queue)

    def has_pending_tasks(self) -> bool:
        return self.has_tasks() or self.has_microtasks()

    # --- console / clock -----------------------------------------------------------
    def add_console_log(self, level: str, message: str) -> ConsoleLog:
        entry = ConsoleLog(f"log-{next(self._log_ids)}", self.current_time, level, message)
        self.console_output.append(entry)
        return entry

    def advance_time(self, ms: int):
        self.current_time += ms

    def set_current_line(self, line: Optional[int]):
        self.current_line = line

    def set_description(self, description: str):
        self.description = description

    def get_snapshot(self, error: Optional[Dict[str, Any]] = None) -> ExecutionStep:
        return ExecutionStep(
            call_stack=tuple(f.frozen_copy() for f in self.call_stack),
            task_queue=tuple(t.to_queue_item() for t in self.task_queue),
            microtask_queue=tuple(t.to_queue_item() for t in self.microtask_queue),
            console_output=tuple(self.console_output),
            current_line=self.current_line,
            description=self.description,
            error=error,
        )
