import pytest

from loopstep.config import DEFAULT_CONFIG, SECTION, InterpreterConfig, load_config
from loopstep.errors import ConfigError


def test_defaults():
    config = load_config()
    assert config == InterpreterConfig()
    assert config.to_dict() == {'maxSteps': 1000, 'maxCallStackDepth': 100, 'maxLoopIterations': 100}
    assert {k: int(v) for k, v in DEFAULT_CONFIG[SECTION].items()} == config.to_dict()


def test_from_mapping_accepts_both_spellings():
    config = InterpreterConfig.from_mapping({'maxSteps': '50', 'max_loop_iterations': 7})
    assert (config.max_steps, config.max_loop_iterations, config.max_call_stack_depth) == (50, 7, 100)


@pytest.mark.parametrize("mapping", [
    {'maxSteps': 0},
    {'maxSteps': 'lots'},
    {'maxCallStackDepth': True},
    {'maxStepz': 10},
])
def test_bad_mappings_are_rejected(mapping):
    with pytest.raises(ConfigError):
        InterpreterConfig.from_mapping(mapping)


def test_with_overrides_ignores_none():
    base = InterpreterConfig(max_steps=20)
    assert base.with_overrides(max_steps=None) is base
    assert base.with_overrides(max_loop_iterations=3).max_loop_iterations == 3
    assert base.with_overrides(max_loop_iterations=3).max_steps == 20


def test_ini_file(tmp_path):
    path = tmp_path / "limits.ini"
    path.write_text("[interpreter]\nmaxSteps = 2000\nmaxCallStackDepth = 50\n", encoding='utf-8')
    config = load_config(str(path))
    assert (config.max_steps, config.max_call_stack_depth, config.max_loop_iterations) == (2000, 50, 100)


def test_yaml_file_top_level_and_section(tmp_path):
    flat = tmp_path / "flat.yaml"
    flat.write_text("maxLoopIterations: 9\n", encoding='utf-8')
    nested = tmp_path / "nested.yml"
    nested.write_text("interpreter:\n  max_steps: 12\n", encoding='utf-8')
    empty = tmp_path / "empty.yaml"
    empty.write_text("", encoding='utf-8')
    assert load_config(str(flat)).max_loop_iterations == 9
    assert load_config(str(nested)).max_steps == 12
    assert load_config(str(empty)) == InterpreterConfig()


def test_yaml_must_be_a_mapping(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n", encoding='utf-8')
    with pytest.raises(ConfigError):
        load_config(str(path))


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(str(tmp_path / "nope.ini"))


def test_unsupported_extension(tmp_path):
    path = tmp_path / "limits.toml"
    path.write_text("maxSteps = 1\n", encoding='utf-8')
    with pytest.raises(ConfigError, match="unsupported config format"):
        load_config(str(path))
