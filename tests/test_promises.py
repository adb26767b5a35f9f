import pytest

from loopstep.builtins import BuiltinHandlers
from loopstep.event_loop import EventLoopSimulator
from loopstep.values import (FULFILLED, PENDING, REJECTED, MessageChannel,
                             NativeFunction, undefined)

from test_base import CleanTestCase


def _noop(interp, this, args):
    return undefined


@pytest.fixture
def handlers():
    return BuiltinHandlers(EventLoopSimulator())


def callback(name='cb'):
    return NativeFunction(name, _noop)


def test_then_on_fulfilled_promise_schedules_one_microtask(handlers):
    loop = handlers.event_loop
    source = handlers.promise_resolve(1.0)
    chained = handlers.then(source, callback())
    assert chained.state == PENDING
    assert len(loop.microtask_queue) == 1
    job = loop.microtask_queue[0]
    assert job.args == [1.0]
    assert job.chained is chained
    assert job.source == 'Promise.then'


def test_then_on_pending_promise_waits(handlers):
    loop = handlers.event_loop
    source = handlers.new_promise()
    handlers.then(source, callback())
    assert not loop.has_microtasks()
    handlers.resolve_promise(source, 'v')
    assert len(loop.microtask_queue) == 1


def test_catch_on_fulfilled_forwards_without_a_microtask(handlers):
    source = handlers.promise_resolve('v')
    chained = handlers.catch(source, callback())
    assert not handlers.event_loop.has_microtasks()
    assert chained.state == FULFILLED
    assert chained.value == 'v'


def test_rejection_uses_catch_source(handlers):
    source = handlers.promise_reject('boom')
    handlers.catch(source, callback())
    assert handlers.event_loop.microtask_queue[0].source == 'Promise.catch'


def test_promise_resolve_passes_promises_through(handlers):
    p = handlers.new_promise()
    assert handlers.promise_resolve(p) is p


def test_settles_at_most_once(handlers):
    p = handlers.new_promise()
    handlers.resolve_promise(p, 1.0)
    handlers.reject_promise(p, 'late')
    handlers.resolve_promise(p, 2.0)
    assert (p.state, p.value) == (FULFILLED, 1.0)


def test_resolving_with_pending_promise_adopts_it(handlers):
    inner = handlers.new_promise()
    outer = handlers.new_promise()
    handlers.resolve_promise(outer, inner)
    assert outer.state == PENDING
    handlers.reject_promise(inner, 'no')
    assert (outer.state, outer.value) == (REJECTED, 'no')


def test_resolving_with_settled_promise_unwraps(handlers):
    outer = handlers.new_promise()
    handlers.resolve_promise(outer, handlers.promise_resolve('inner'))
    assert (outer.state, outer.value) == (FULFILLED, 'inner')


def test_self_resolution_rejects_with_type_error(handlers):
    p = handlers.new_promise()
    handlers.resolve_promise(p, p)
    assert p.state == REJECTED
    assert p.value['name'] == 'TypeError'


def test_all_of_nothing_is_an_empty_list(handlers):
    result = handlers.all([])
    assert (result.state, result.value) == (FULFILLED, [])


def test_all_keeps_input_order(handlers):
    a, b = handlers.new_promise(), handlers.new_promise()
    result = handlers.all([a, b, 'plain'])
    handlers.resolve_promise(b, 'B')
    assert result.state == PENDING
    handlers.resolve_promise(a, 'A')
    assert (result.state, result.value) == (FULFILLED, ['A', 'B', 'plain'])


def test_all_rejects_on_first_rejection_and_ignores_the_rest(handlers):
    a, b = handlers.new_promise(), handlers.new_promise()
    result = handlers.all([a, b])
    handlers.reject_promise(b, 'err')
    handlers.resolve_promise(a, 1.0)
    assert (result.state, result.value) == (REJECTED, 'err')


@pytest.mark.parametrize("make_input, state", [
    (lambda h: h.promise_resolve('x'), FULFILLED),
    (lambda h: h.promise_reject('x'), REJECTED),
])
def test_race_with_settled_input_takes_one_microtask(handlers, make_input, state):
    loop = handlers.event_loop
    result = handlers.race([make_input(handlers), handlers.new_promise()])
    assert result.state == PENDING
    job = loop.pop_microtask()
    assert job.internal is not None
    job.internal()
    assert (result.state, result.value) == (state, 'x')


def test_race_with_pending_inputs_follows_first_settlement(handlers):
    a, b = handlers.new_promise(), handlers.new_promise()
    result = handlers.race([a, b])
    handlers.resolve_promise(b, 'b wins')
    handlers.resolve_promise(a, 'a loses')
    assert result.value == 'b wins'


def test_timers_get_sequential_ids_and_can_be_cleared(handlers):
    loop = handlers.event_loop
    first = handlers.set_timeout(callback(), 50.0)
    second = handlers.set_timeout(callback(), -5.0)
    assert (first, second) == (1, 2)
    assert [t.delay for t in loop.task_queue] == [0, 50]
    assert handlers.clear_timeout(float(first))
    assert not handlers.clear_timeout(float(first))
    assert len(loop.task_queue) == 1


def test_console_log_joins_formatted_arguments(handlers):
    handlers.console_log('warn', ['a', 1.0, [1.0, 2.5], None, undefined, {'k': True}])
    entry = handlers.event_loop.console_output[0]
    assert entry.level == 'warn'
    assert entry.message == 'a 1 [1, 2.5] null undefined {"k":true}'


def test_post_message_needs_a_handler_on_the_other_port(handlers):
    channel = MessageChannel('channel-1')
    assert not handlers.post_message(channel.port1, 'dropped')
    channel.port2.onmessage = callback('onmessage')
    assert handlers.post_message(channel.port1, 'hi')
    task = handlers.event_loop.pop_task()
    assert task.source == 'MessageChannel'
    assert task.args == [{'data': 'hi'}]


class TestPromiseOrdering(CleanTestCase):
    def test_microtasks_before_timers(self):
        src = """
        console.log('a');
        setTimeout(() => console.log('b'), 0);
        Promise.resolve().then(() => console.log('c'));
        console.log('d');
        """
        self.assertConsole(src, ['a', 'd', 'c', 'b'])

    def test_chained_microtasks_drain_before_a_task(self):
        src = """
        console.log('S');
        setTimeout(() => console.log('T'), 0);
        Promise.resolve()
          .then(() => console.log('M1'))
          .then(() => console.log('M2'));
        console.log('E');
        """
        self.assertConsole(src, ['S', 'E', 'M1', 'M2', 'T'])

    def test_returning_a_promise_from_then_unwraps_it(self):
        src = "Promise.resolve().then(() => Promise.resolve('inner')).then(v => console.log(v));"
        self.assertConsole(src, ['inner'])

    def test_all_preserves_order_regardless_of_timing(self):
        src = """
        const slow = new Promise(resolve => setTimeout(() => resolve('slow'), 10));
        const fast = Promise.resolve('fast');
        Promise.all([slow, fast, 3]).then(values => console.log(values.join(',')));
        """
        self.assertConsole(src, ['slow,fast,3'])

    def test_race_settles_one_turn_later(self):
        src = """
        const never = new Promise(() => {});
        Promise.race([Promise.resolve('first'), never]).then(v => console.log(v));
        Promise.resolve().then(() => console.log('tick'));
        """
        self.assertConsole(src, ['tick', 'first'])

    def test_executor_throw_rejects(self):
        src = """
        new Promise(() => { throw new Error('inside'); })
          .catch(e => console.log('caught', e.message));
        """
        self.assertConsole(src, ['caught inside'])

    def test_rejection_skips_then_handlers(self):
        src = """
        Promise.reject('bad')
          .then(() => console.log('never'))
          .catch(r => { console.log('handled ' + r); return 'ok'; })
          .then(v => console.log(v));
        """
        self.assertConsole(src, ['handled bad', 'ok'])

    def test_throw_in_then_rejects_chained_promise(self):
        src = """
        Promise.resolve(1)
          .then(() => { throw new TypeError('wrong'); })
          .catch(e => console.log(e.name + ': ' + e.message));
        """
        self.assertConsole(src, ['TypeError: wrong'])

    def test_queue_microtask_and_timer_delays(self):
        src = """
        setTimeout(() => console.log('late'), 100);
        setTimeout(() => console.log('early'), 10);
        setTimeout(() => console.log('zero'));
        queueMicrotask(() => console.log('micro'));
        """
        self.assertConsole(src, ['micro', 'zero', 'early', 'late'])

    def test_clear_timeout_cancels(self):
        src = "const id = setTimeout(() => console.log('x'), 0);\nclearTimeout(id);\nconsole.log('y');"
        self.assertConsole(src, ['y'])

    def test_message_channel_is_a_task(self):
        src = """
        const ch = new MessageChannel();
        ch.port2.onmessage = (e) => console.log('got ' + e.data);
        ch.port1.postMessage('hi');
        Promise.resolve().then(() => console.log('micro'));
        """
        self.assertConsole(src, ['micro', 'got hi'])

    def test_then_registration_is_recorded(self):
        interp = self.run_js("Promise.resolve(1).then(v => v);")
        descs = [s.description for s in interp.steps]
        self.assertIn("Promise.then() registered", descs)
        self.assertTrue(any(d.startswith("Run microtask: Promise.then") for d in descs))
        self.assertTrue(any(d.startswith("Microtask finished: Promise.then") for d in descs))
        self.assertEqual(descs[-1], "Execution finished")


class TestAsyncFunctions(CleanTestCase):
    def test_await_defers_the_rest_of_the_body(self):
        src = """
        async function main() {
          console.log('start');
          await null;
          console.log('after await');
        }
        main();
        console.log('end');
        """
        self.assertConsole(src, ['start', 'end', 'after await'])

    def test_async_result_flows_into_then(self):
        src = """
        async function getValue() {
          const x = await Promise.resolve(21);
          return x * 2;
        }
        getValue().then(v => console.log(v));
        """
        self.assertConsole(src, ['42'])

    def test_async_throw_rejects_outer_promise(self):
        src = """
        async function fail() { throw new Error('nope'); }
        fail().catch(e => console.log(e.message));
        """
        self.assertConsole(src, ['nope'])

    def test_awaiting_a_timer_promise(self):
        src = """
        function delay(ms) { return new Promise(resolve => setTimeout(resolve, ms)); }
        async function run() {
          let n = 1;
          await delay(5);
          n = await Promise.resolve(n + 1);
          console.log('n =', n);
          return await Promise.resolve('done');
        }
        run().then(r => console.log(r));
        console.log('sync');
        """
        self.assertConsole(src, ['sync', 'n = 2', 'done'])

    def test_async_arrow_with_await_body(self):
        src = "const f = async () => await Promise.resolve('arrow');\nf().then(v => console.log(v));"
        self.assertConsole(src, ['arrow'])

    def test_top_level_await(self):
        src = "console.log('a');\nawait Promise.resolve();\nconsole.log('b');"
        interp = self.run_js(src)
        self.assertIsNone(interp.error)
        self.assertEqual([c.message for c in interp.steps[-1].console_output], ['a', 'b'])
        self.assertIn("Awaiting...", [s.description for s in interp.steps])
