import io
import json

import yaml

from loopstep.cli import main


def _script(tmp_path, text, name="script.js"):
    path = tmp_path / name
    path.write_text(text, encoding='utf-8')
    return str(path)


def test_text_output(tmp_path, capsys):
    path = _script(tmp_path, "console.log('hi');")
    assert main([path]) == 0
    out = capsys.readouterr().out
    assert "console.log() called" in out
    assert "--- console ---" in out
    assert "log: hi" in out


def test_console_only(tmp_path, capsys):
    path = _script(tmp_path, "setTimeout(() => console.log('b'));\nconsole.log('a');")
    assert main([path, "--console-only"]) == 0
    assert capsys.readouterr().out.splitlines() == ['a', 'b']


def test_json_output(tmp_path, capsys):
    path = _script(tmp_path, "let x = 1;")
    assert main([path, "--format", "json"]) == 0
    steps = json.loads(capsys.readouterr().out)
    assert steps[0]['description'] == "Declare variable: let x = 1"
    assert steps[-1]['description'] == "Execution finished"


def test_yaml_console_only(tmp_path, capsys):
    path = _script(tmp_path, "console.warn('careful');")
    assert main([path, "--format", "yaml", "--console-only"]) == 0
    logs = yaml.safe_load(capsys.readouterr().out)
    assert [(c['level'], c['message']) for c in logs] == [('warn', 'careful')]


def test_stdin(monkeypatch, capsys):
    monkeypatch.setattr('sys.stdin', io.StringIO("console.log(40 + 2);"))
    assert main(["-", "--console-only"]) == 0
    assert capsys.readouterr().out.strip() == '42'


def test_runtime_error_exit_code(tmp_path, capsys):
    path = _script(tmp_path, "let n = 0;\nwhile (true) { n++; }")
    assert main([path, "--max-loop-iterations", "3"]) == 1
    err = capsys.readouterr().err
    assert "ERROR: Maximum loop iterations (3) exceeded (line 2)" in err


def test_parse_error_exit_code(tmp_path, capsys):
    path = _script(tmp_path, "let ok = 1;\nclass A {}")
    assert main([path]) == 2
    err = capsys.readouterr().err
    assert "Line 2, Col 0: Unsupported syntax: class declaration" in err


def test_missing_script(tmp_path, capsys):
    assert main([str(tmp_path / "absent.js")]) == 2
    assert "unable to read" in capsys.readouterr().err


def test_config_file_and_override(tmp_path, capsys):
    cfg = tmp_path / "limits.yaml"
    cfg.write_text("interpreter:\n  maxSteps: 3\n", encoding='utf-8')
    path = _script(tmp_path, "console.log(1);\nconsole.log(2);\nconsole.log(3);\nconsole.log(4);")
    assert main([path, "--config", str(cfg)]) == 1
    capsys.readouterr()
    assert main([path, "--config", str(cfg), "--max-steps", "100", "--console-only"]) == 0
    assert capsys.readouterr().out.splitlines() == ['1', '2', '3', '4']


def test_bad_config(tmp_path, capsys):
    cfg = tmp_path / "limits.ini"
    cfg.write_text("[interpreter]\nmaxSteps = many\n", encoding='utf-8')
    path = _script(tmp_path, "console.log(1);")
    assert main([path, "--config", str(cfg)]) == 2
    assert "maxSteps must be an integer" in capsys.readouterr().err
