import dataclasses
import json
import unittest

from loopstep.event_loop import MICROTASK, TASK, EventLoopSimulator


class TestQueues(unittest.TestCase):
    def setUp(self):
        self.loop = EventLoopSimulator()

    def test_tasks_ordered_by_due_time_with_stable_ties(self):
        for source, delay in (('a', 10), ('b', 0), ('c', 10), ('d', 0)):
            self.loop.schedule_task(None, source, delay)
        self.assertEqual([t.source for t in self.loop.task_queue], ['b', 'd', 'a', 'c'])

    def test_due_time_includes_creation_time(self):
        self.loop.schedule_task(None, 'early', 10)
        self.loop.advance_time(100)
        self.loop.schedule_task(None, 'late', 0)
        self.loop.schedule_task(None, 'middle', 50)
        self.assertEqual([t.source for t in self.loop.task_queue], ['early', 'late', 'middle'])
        self.assertEqual(self.loop.task_queue[1].due, 100)

    def test_microtasks_are_fifo(self):
        for source in ('first', 'second', 'third'):
            self.loop.schedule_microtask(None, source)
        popped = [self.loop.pop_microtask().source for _ in range(3)]
        self.assertEqual(popped, ['first', 'second', 'third'])
        self.assertIsNone(self.loop.pop_microtask())

    def test_queue_kinds_and_pending_checks(self):
        self.assertFalse(self.loop.has_pending_tasks())
        task = self.loop.schedule_task(None, 'setTimeout', 5)
        micro = self.loop.schedule_microtask(None, 'queueMicrotask')
        self.assertEqual((task.type, micro.type), (TASK, MICROTASK))
        self.assertTrue(self.loop.has_tasks() and self.loop.has_microtasks())

    def test_cancel_task(self):
        keep = self.loop.schedule_task(None, 'keep', 0)
        drop = self.loop.schedule_task(None, 'drop', 0)
        self.assertTrue(self.loop.cancel_task(drop.id))
        self.assertFalse(self.loop.cancel_task(drop.id))
        self.assertEqual(self.loop.pop_task(), keep)

    def test_clock_only_moves_when_told(self):
        self.loop.schedule_task(None, 'setTimeout', 250)
        self.assertEqual(self.loop.current_time, 0)
        self.loop.advance_time(250)
        self.assertEqual(self.loop.current_time, 250)
        entry = self.loop.add_console_log('log', 'hi')
        self.assertEqual(entry.timestamp, 250)


class TestSnapshots(unittest.TestCase):
    def setUp(self):
        self.loop = EventLoopSimulator()

    def test_snapshot_is_independent_of_later_changes(self):
        frame = self.loop.push_frame('global', 'script', {'xs': [1]})
        self.loop.schedule_microtask(None, 'Promise.then', 'Promise.then: cb')
        self.loop.add_console_log('log', 'one')
        snap = self.loop.get_snapshot()

        frame.variables['xs'].append(2)
        self.loop.pop_microtask()
        self.loop.add_console_log('log', 'two')
        self.loop.push_frame('f()', 'line 3')

        self.assertEqual(snap.call_stack[0].variables, {'xs': [1]})
        self.assertEqual(len(snap.call_stack), 1)
        self.assertEqual([m.callback for m in snap.microtask_queue], ['Promise.then: cb'])
        self.assertEqual([c.message for c in snap.console_output], ['one'])

    def test_snapshot_frames_are_read_only(self):
        self.loop.push_frame('global', 'script', {'x': 1})
        frame = self.loop.get_snapshot().call_stack[0]
        with self.assertRaises(dataclasses.FrozenInstanceError):
            frame.variables = {}
        with self.assertRaises(TypeError):
            frame.variables['x'] = 2
        self.loop.set_frame_variables({'x': 3})
        self.assertEqual(frame.variables, {'x': 1})
        self.assertEqual(self.loop.get_snapshot().call_stack[0].variables, {'x': 3})

    def test_step_serializes_to_json(self):
        self.loop.push_frame('global', 'script', {'x': 1})
        self.loop.schedule_task(None, 'setTimeout', 10, 'setTimeout(10ms): cb')
        self.loop.set_current_line(4)
        self.loop.set_description("setTimeout() registered (10ms)")
        data = self.loop.get_snapshot().to_dict()
        self.assertNotIn('error', data)
        self.assertEqual(data['current_line'], 4)
        self.assertEqual(data['task_queue'][0]['timestamp'], 10)
        self.assertEqual(data['call_stack'][0]['function_name'], 'global')
        json.dumps(data)

    def test_error_field_only_on_failure_steps(self):
        data = self.loop.get_snapshot(error={'type': 'X', 'message': 'm', 'line': None}).to_dict()
        self.assertEqual(data['error']['type'], 'X')

    def test_ids_restart_after_reset(self):
        self.loop.push_frame('global', 'script')
        self.loop.schedule_task(None, 'setTimeout')
        self.loop.reset()
        self.assertEqual(self.loop.push_frame('global', 'script').id, 'frame-1')
        self.assertEqual(self.loop.schedule_task(None, 'setTimeout').id, 'task-1')
        self.assertEqual(self.loop.depth, 1)


if __name__ == '__main__':
    unittest.main()
