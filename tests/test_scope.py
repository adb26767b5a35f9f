import unittest

from loopstep.errors import (ConstReassignment, DuplicateDeclaration,
                             TemporalDeadZoneAccess, UndeclaredVariable)
from loopstep.parser import parse
from loopstep.scope import BLOCK, CONST, FUNCTION, GLOBAL, LET, VAR, ExecutionContext
from loopstep.values import undefined

from test_base import CleanTestCase


class TestBindings(unittest.TestCase):
    def setUp(self):
        self.ctx = ExecutionContext({'console': 'builtin-console'})

    def test_let_redeclaration_in_same_scope_fails(self):
        self.ctx.declare_variable('a', LET)
        with self.assertRaises(DuplicateDeclaration):
            self.ctx.declare_variable('a', LET)

    def test_let_may_shadow_in_inner_block(self):
        self.ctx.declare_variable('a', LET)
        self.ctx.initialize_variable('a', 1.0)
        self.ctx.enter_scope(BLOCK)
        self.ctx.declare_variable('a', LET)
        self.ctx.initialize_variable('a', 2.0)
        self.assertEqual(self.ctx.get_variable('a'), 2.0)
        self.ctx.exit_scope()
        self.assertEqual(self.ctx.get_variable('a'), 1.0)

    def test_var_redeclaration_returns_existing_binding(self):
        first = self.ctx.declare_variable('v', VAR)
        first.value = 3.0
        first.initialized = True
        second = self.ctx.declare_variable('v', VAR)
        self.assertIs(first, second)
        self.assertEqual(self.ctx.get_variable('v'), 3.0)

    def test_var_in_block_goes_to_function_scope(self):
        fn_scope = self.ctx.enter_scope(FUNCTION)
        self.ctx.enter_scope(BLOCK)
        self.ctx.declare_variable('v', VAR)
        self.assertIn('v', fn_scope.bindings)
        self.assertNotIn('v', self.ctx.current_scope.bindings)

    def test_const_reassignment_fails(self):
        self.ctx.declare_variable('c', CONST)
        self.ctx.initialize_variable('c', 1.0)
        with self.assertRaises(ConstReassignment):
            self.ctx.set_variable('c', 2.0)

    def test_read_before_initialization_is_tdz(self):
        self.ctx.declare_variable('x', LET)
        with self.assertRaises(TemporalDeadZoneAccess):
            self.ctx.get_variable('x')

    def test_uninitialized_var_reads_undefined(self):
        self.ctx.declare_variable('x', VAR)
        self.assertIs(self.ctx.get_variable('x'), undefined)

    def test_unknown_name_is_undeclared(self):
        with self.assertRaises(UndeclaredVariable) as cm:
            self.ctx.get_variable('nope')
        self.assertEqual(cm.exception.message, "nope is not defined")

    def test_assignment_to_unknown_name_creates_global(self):
        self.ctx.enter_scope(FUNCTION)
        self.ctx.enter_scope(BLOCK)
        self.ctx.set_variable('leak', 7.0)
        self.assertEqual(self.ctx.global_scope.bindings['leak'].value, 7.0)

    def test_builtins_resolve_but_stay_out_of_snapshots(self):
        self.assertEqual(self.ctx.get_variable('console'), 'builtin-console')
        self.assertTrue(self.ctx.has_variable('console'))
        self.assertEqual(self.ctx.variables_snapshot(), {})

    def test_exit_scope_at_root_is_noop(self):
        self.assertIsNone(self.ctx.exit_scope())
        self.assertIs(self.ctx.current_scope, self.ctx.global_scope)
        self.assertEqual(self.ctx.global_scope.kind, GLOBAL)

    def test_scope_ids_restart_on_reset(self):
        self.ctx.enter_scope(BLOCK)
        self.ctx.reset()
        self.assertEqual(self.ctx.global_scope.id, 'scope-1')
        self.assertEqual(self.ctx.enter_scope(BLOCK).id, 'scope-2')


class TestClosures(unittest.TestCase):
    def setUp(self):
        self.ctx = ExecutionContext()
        self.fn_node = parse("function f() {}").ast.body[0]

    def test_closure_scope_parent_is_definition_scope(self):
        defining = self.ctx.enter_scope(FUNCTION)
        closure = self.ctx.create_closure(self.fn_node, 'f')
        self.ctx.restore_scope(self.ctx.global_scope)
        caller = self.ctx.enter_scope(FUNCTION)
        entered = self.ctx.enter_closure_scope(closure)
        self.assertIs(entered.parent, defining)
        self.assertIsNot(entered.parent, caller)

    def test_this_binding_lookup(self):
        receiver = {'n': 1.0}
        closure = self.ctx.create_closure(self.fn_node, 'f')
        self.ctx.enter_closure_scope(closure, receiver)
        self.ctx.enter_scope(BLOCK)
        self.assertIs(self.ctx.lookup_this(), receiver)

    def test_snapshot_stops_at_function_scope(self):
        self.ctx.declare_variable('outer', VAR)
        self.ctx.initialize_variable('outer', 1.0)
        self.ctx.enter_scope(FUNCTION)
        self.ctx.declare_variable('inner', LET)
        self.ctx.initialize_variable('inner', 'x')
        self.ctx.enter_scope(BLOCK)
        self.ctx.declare_variable('deep', CONST)
        self.ctx.initialize_variable('deep', [1.0, 2.5])
        self.assertEqual(self.ctx.variables_snapshot(), {'deep': [1, 2.5], 'inner': 'x'})


class TestScopeRulesInPrograms(CleanTestCase):
    def test_closure_counter_keeps_private_state(self):
        src = """
        function makeCounter() {
          let count = 0;
          return function () { count++; return count; };
        }
        const a = makeCounter();
        const b = makeCounter();
        a(); a();
        console.log(a(), b());
        """
        self.assertConsole(src, ['3 1'])

    def test_lexical_scope_ignores_call_site(self):
        src = """
        const x = 'global';
        function show() { return x; }
        function caller() { const x = 'local'; return show(); }
        console.log(caller());
        """
        self.assertConsole(src, ['global'])

    def test_hoisting_of_functions_and_var(self):
        src = """
        console.log(typeof hoisted, v);
        function hoisted() {}
        var v = 1;
        console.log(v);
        """
        self.assertConsole(src, ['function undefined', '1'])

    def test_let_per_iteration_bindings(self):
        src = """
        const fns = [];
        for (let i = 0; i < 3; i++) { fns.push(() => i); }
        console.log(fns.map(f => f()).join(','));
        """
        self.assertConsole(src, ['0,1,2'])

    def test_var_loop_shares_one_binding(self):
        src = """
        var fns = [];
        for (var i = 0; i < 3; i++) { fns.push(function () { return i; }); }
        console.log(fns.map(f => f()).join(','));
        """
        self.assertConsole(src, ['3,3,3'])

    def test_implicit_global_from_function(self):
        src = "function g() { leak = 7; }\ng();\nconsole.log(leak);"
        self.assertConsole(src, ['7'])

    def test_method_call_binds_this(self):
        src = "const o = { n: 2, value() { return this.n * 10; } };\nconsole.log(o.value());"
        self.assertConsole(src, ['20'])

    def test_named_function_expression_sees_itself(self):
        src = "const fact = function f(n) { return n <= 1 ? 1 : n * f(n - 1); };\nconsole.log(fact(5));"
        self.assertConsole(src, ['120'])


if __name__ == '__main__':
    unittest.main()
