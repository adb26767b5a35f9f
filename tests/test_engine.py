import pytest

from loopstep import (ExecutionEngine, ExecutionLimitError, InterpreterConfig,
                      SourceParseError, UncaughtException, run, run_source)


SOURCE = "console.log('a');\nsetTimeout(() => console.log('b'), 0);"


def test_load_code_and_step_through():
    engine = ExecutionEngine()
    result = engine.load_code(SOURCE)
    assert result.success and result.errors == []
    assert engine.error is None
    total = engine.total_steps
    assert total > 0
    assert engine.current_step_number == 0
    assert engine.current_description() == ''

    first = engine.step()
    assert engine.current_step_number == 1
    assert engine.current_description() == first.description

    seen = [first]
    while engine.has_more_steps():
        seen.append(engine.step())
    assert len(seen) == total
    assert engine.step() is None
    assert seen[-1].description == "Execution finished"
    assert [c.message for c in seen[-1].console_output] == ['a', 'b']


def test_reset_rewinds_without_rerunning():
    engine = ExecutionEngine()
    engine.load_code(SOURCE)
    steps = list(engine.steps)
    engine.step()
    engine.step()
    engine.reset()
    assert engine.current_step_number == 0
    assert engine.steps == steps


def test_load_code_reports_parse_errors():
    engine = ExecutionEngine()
    engine.load_code(SOURCE)
    result = engine.load_code("let = ;")
    assert not result.success
    assert result.errors and result.errors[0].line == 1
    assert engine.total_steps == 0
    assert engine.parse_errors == result.errors
    assert not engine.has_more_steps()


def test_runtime_failure_is_kept_on_the_engine():
    engine = ExecutionEngine(InterpreterConfig(max_loop_iterations=5))
    assert engine.load_code("while (true) {}").success
    assert isinstance(engine.error, ExecutionLimitError)
    assert engine.steps[-1].error['limit'] == 'loop'


def test_run_source_and_run():
    steps = run_source("console.log(1 + 1);")
    assert [c.message for c in steps[-1].console_output] == ['2']
    interp = run("throw 'x';")
    assert isinstance(interp.error, UncaughtException)
    assert interp.error.value == 'x'


def test_convenience_entry_points_raise_on_bad_source():
    with pytest.raises(SourceParseError) as info:
        run_source("class A {}")
    assert "Unsupported syntax: class declaration" in str(info.value)
