import pytest

from loopstep import ast_nodes as ast
from loopstep.parser import format_parse_error, function_preview, parse
from loopstep.tokenizer import JSSyntaxError, tokenize


def test_empty_source_is_rejected():
    result = parse("   \n  ")
    assert not result.success
    assert result.ast is None
    assert len(result.errors) == 1
    err = result.errors[0]
    assert (err.line, err.column) == (1, 0)
    assert err.message == "Source code is empty"


def test_source_map_points_at_lines():
    src = "let x = 1;\nconsole.log(x);\n\nx = 2;"
    result = parse(src)
    assert result.success
    body = result.ast.body
    assert result.source_map[body[0].start] == 1
    assert result.source_map[body[1].start] == 2
    assert result.source_map[body[2].start] == 4


def test_supported_subset_parses():
    src = """
    var a = 1, b = 'two';
    const f = async (x) => { await g(x); return x ** 2; };
    function g(n) { return n > 0 ? n : -n; }
    for (let i = 0; i < 3; i++) { if (i % 2) continue; else a += i; }
    do { a--; } while (a > 0);
    switch (a) { case 1: break; default: a = `v${a}`; }
    try { throw new Error('x'); } catch { a = null; } finally { a ??= 0; }
    const o = { a, [b]: 2, m() { return this.a; }, 'k': [1, , 3] };
    """
    result = parse(src)
    assert result.success, result.errors
    kinds = [type(node) for node in result.ast.body]
    assert kinds[:4] == [ast.VariableDeclaration, ast.VariableDeclaration,
                         ast.FunctionDeclaration, ast.ForStatement]


def test_async_arrow_and_await_nodes():
    result = parse("const f = async () => await p;")
    arrow = result.ast.body[0].declarations[0].init
    assert isinstance(arrow, ast.ArrowFunctionExpression)
    assert arrow.is_async and arrow.expression
    assert isinstance(arrow.body, ast.AwaitExpression)


def test_template_literal_parts():
    expr = parse("`a${1 + 2}b${x}`;").ast.body[0].expression
    assert isinstance(expr, ast.TemplateLiteral)
    assert expr.quasis == ['a', 'b', '']
    assert len(expr.expressions) == 2
    assert isinstance(expr.expressions[0], ast.BinaryExpression)


@pytest.mark.parametrize("src, name", [
    ("class A {}", "class declaration"),
    ("const B = class {};", "class expression"),
    ("import x from 'y';", "import declaration"),
    ("export default 1;", "export default declaration"),
    ("function* gen() {}", "generator function"),
    ("with (o) { x; }", "with statement"),
])
def test_unsupported_constructs_are_rejected(src, name):
    result = parse(src)
    assert not result.success
    assert result.ast is None
    assert any(e.message == f"Unsupported syntax: {name}" for e in result.errors)


def test_one_diagnostic_per_unsupported_node():
    result = parse("let ok = 1;\nclass A {}\nclass B {}")
    assert not result.success
    assert [(e.line, e.column) for e in result.errors] == [(2, 0), (3, 0)]


def test_syntax_error_is_structured():
    result = parse("let x = ;")
    assert not result.success
    assert result.ast is None
    assert len(result.errors) == 1
    assert result.errors[0].line == 1
    assert result.errors[0].to_dict().keys() == {'line', 'column', 'message'}


def test_unterminated_string_reports_position():
    result = parse("let a = 1;\nlet s = 'oops;")
    assert not result.success
    assert result.errors[0].line == 2


def test_deep_nesting_is_reported_not_raised():
    assert parse("x = " + "(" * 50 + "1" + ")" * 50 + ";").success
    result = parse("x = " + "(" * 5000 + "1" + ")" * 5000 + ";")
    assert not result.success
    assert result.ast is None
    assert [e.message for e in result.errors] == ["Expression nested too deeply"]
    assert result.errors[0].line == 1


def test_format_parse_error_has_caret():
    src = "let a = 1;\nlet b = ;"
    err = parse(src).errors[0]
    text = format_parse_error(src, err)
    lines = text.split('\n')
    assert lines[0].startswith(f"Line 2, Col {err.column}: ")
    assert lines[1] == "let b = ;"
    assert lines[2] == ' ' * err.column + '^'


def test_function_preview_shortens_multiline_source():
    src = "setTimeout(function tick() {\n  console.log(1);\n}, 0);"
    fn = parse(src).ast.body[0].expression.arguments[0]
    assert function_preview(src, fn) == "function tick() {..."


def test_tokenizer_marks_newlines_and_ends_with_eof():
    tokens = tokenize("a\n+ b")
    assert tokens[-1][0] == 'EOF'
    plus = [t for t in tokens if t[1] == '+'][0]
    assert plus[4] is True


def test_tokenizer_rejects_unknown_character():
    with pytest.raises(JSSyntaxError):
        tokenize("let a = #;")
