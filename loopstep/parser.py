"""
Parser for the JavaScript subset understood by the interpreter.

parse() turns source text into a Program of dataclass nodes plus a source map
(node start offset -> 1-based line). Syntax errors and unsupported constructs
are reported as ParseError records; a failed parse never returns a tree.
"""
from __future__ import annotations
import bisect
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from . import ast_nodes as ast
from .tokenizer import JSSyntaxError, Token, decode_escapes, tokenize

log = logging.getLogger(__name__)

# words that can never be used as a plain identifier expression
RESERVED = {
    'break', 'case', 'catch', 'class', 'const', 'continue', 'debugger',
    'default', 'delete', 'do', 'else', 'export', 'extends', 'finally', 'for',
    'function', 'if', 'import', 'in', 'instanceof', 'new', 'return', 'super',
    'switch', 'throw', 'try', 'typeof', 'var', 'void', 'while', 'with',
}

ASSIGN_OPS = ('=', '+=', '-=', '*=', '/=', '%=', '**=', '<<=', '>>=', '>>>=',
              '&=', '|=', '^=', '&&=', '||=', '??=')

LOGICAL_OPS = ('||', '&&', '??')


@dataclass
class ParseError:
    line: int
    column: int
    message: str

    def to_dict(self) -> dict:
        return {'line': self.line, 'column': self.column, 'message': self.message}


@dataclass
class ParseResult:
    success: bool
    ast: Optional[ast.Program] = None
    errors: List[ParseError] = field(default_factory=list)
    source_map: Dict[int, int] = field(default_factory=dict)


class Parser:
    def __init__(self, tokens: List[Token], src: str):
        self.tokens = tokens
        self.src = src
        self.i = 0
        self.prev_end = tokens[0][2] if tokens else 0
        # (is_async, is_generator) for every enclosing function; empty at top level
        self.functions: List[tuple] = []
        self.no_in = False

    # --- token helpers ---------------------------------------------------------
    def peek(self, offset: int = 0) -> Token:
        idx = min(self.i + offset, len(self.tokens) - 1)
        return self.tokens[idx]

    def eat(self, typ: Optional[str] = None, val: Optional[str] = None) -> Token:
        tok = self.peek()
        t, v = tok[0], tok[1]
        if (typ and t != typ) or (val is not None and v != val):
            self.unexpected(tok)
        self.i += 1
        self.prev_end = tok[3]
        return tok

    def match(self, typ: str, val: Optional[str] = None, offset: int = 0) -> bool:
        tok = self.peek(offset)
        if tok[0] != typ:
            return False
        if val is not None and tok[1] != val:
            return False
        return True

    def unexpected(self, tok: Optional[Token] = None):
        tok = tok or self.peek()
        if tok[0] == 'EOF':
            raise JSSyntaxError("Unexpected end of input", tok[2])
        shown = tok[1] if tok[0] != 'TEMPLATE' else '`'
        raise JSSyntaxError(f"Unexpected token {shown!r}", tok[2])

    def start(self) -> int:
        return self.peek()[2]

    def consume_semicolon(self):
        """Automatic semicolon insertion: `;`, `}`, end of input or a line break."""
        if self.match('PUNC', ';'):
            self.eat('PUNC', ';')
            return
        tok = self.peek()
        if tok[0] == 'EOF' or (tok[0] == 'PUNC' and tok[1] == '}') or tok[4]:
            return
        raise JSSyntaxError("Missing semicolon", self.prev_end)

    @property
    def in_async(self) -> bool:
        # top-level await is allowed
        return not self.functions or self.functions[-1][0]

    @property
    def in_generator(self) -> bool:
        return bool(self.functions) and self.functions[-1][1]

    def skip_balanced(self, open_val: str, close_val: str):
        self.eat('PUNC', open_val)
        depth = 1
        while depth:
            tok = self.peek()
            if tok[0] == 'EOF':
                self.unexpected(tok)
            if tok[0] == 'PUNC' and tok[1] == open_val:
                depth += 1
            elif tok[0] == 'PUNC' and tok[1] == close_val:
                depth -= 1
            self.eat()

    # --- statements --------------------------------------------------------------
    def parse_program(self) -> ast.Program:
        start = self.start()
        body = []
        while not self.match('EOF'):
            body.append(self.parse_statement())
        return ast.Program(start, self.peek()[3], body)

    def parse_statement(self) -> ast.Node:
        t, v = self.peek()[0], self.peek()[1]
        start = self.start()
        if t == 'PUNC' and v == ';':
            self.eat()
            return ast.EmptyStatement(start, self.prev_end)
        if t == 'PUNC' and v == '{':
            return self.parse_block()
        if t != 'IDENT':
            return self.parse_expression_statement()

        if v in ('var', 'let', 'const'):
            node = self.parse_var_decl()
            self.consume_semicolon()
            node.end = self.prev_end
            return node
        if v == 'function':
            return self.parse_function(start, declaration=True)
        if v == 'async' and self.match('IDENT', 'function', 1) and not self.peek(1)[4]:
            self.eat()
            return self.parse_function(start, declaration=True, is_async=True)
        if v == 'class':
            return self.parse_class(start, declaration=True)
        if v == 'import' and not (self.match('PUNC', '(', 1) or self.match('PUNC', '.', 1)):
            return self.parse_import(start)
        if v == 'export':
            return self.parse_export(start)
        if v == 'return':
            self.eat()
            argument = None
            tok = self.peek()
            if not (tok[4] or tok[0] == 'EOF' or (tok[0] == 'PUNC' and tok[1] in (';', '}'))):
                argument = self.parse_expression()
            self.consume_semicolon()
            return ast.ReturnStatement(start, self.prev_end, argument)
        if v == 'if':
            self.eat()
            test = self.parse_paren_expression()
            consequent = self.parse_statement()
            alternate = None
            if self.match('IDENT', 'else'):
                self.eat()
                alternate = self.parse_statement()
            return ast.IfStatement(start, self.prev_end, test, consequent, alternate)
        if v == 'while':
            self.eat()
            test = self.parse_paren_expression()
            body = self.parse_statement()
            return ast.WhileStatement(start, self.prev_end, test, body)
        if v == 'do':
            self.eat()
            body = self.parse_statement()
            self.eat('IDENT', 'while')
            test = self.parse_paren_expression()
            if self.match('PUNC', ';'):
                self.eat()
            return ast.DoWhileStatement(start, self.prev_end, body, test)
        if v == 'for':
            return self.parse_for(start)
        if v == 'switch':
            return self.parse_switch(start)
        if v == 'try':
            return self.parse_try(start)
        if v == 'throw':
            self.eat()
            if self.peek()[4]:
                raise JSSyntaxError("Illegal newline after throw", self.prev_end)
            argument = self.parse_expression()
            self.consume_semicolon()
            return ast.ThrowStatement(start, self.prev_end, argument)
        if v in ('break', 'continue'):
            self.eat()
            if self.match('IDENT') and not self.peek()[4]:
                raise JSSyntaxError("Labeled break/continue is not supported", self.start())
            self.consume_semicolon()
            cls = ast.BreakStatement if v == 'break' else ast.ContinueStatement
            return cls(start, self.prev_end)
        if v == 'with':
            self.eat()
            obj = self.parse_paren_expression()
            body = self.parse_statement()
            return ast.WithStatement(start, self.prev_end, obj, body)
        if self.match('PUNC', ':', 1) and v not in RESERVED:
            raise JSSyntaxError("Labeled statements are not supported", start)
        return self.parse_expression_statement()

    def parse_expression_statement(self) -> ast.ExpressionStatement:
        start = self.start()
        expr = self.parse_expression()
        self.consume_semicolon()
        return ast.ExpressionStatement(start, self.prev_end, expr)

    def parse_block(self) -> ast.BlockStatement:
        start = self.start()
        self.eat('PUNC', '{')
        body = []
        while not self.match('PUNC', '}'):
            if self.match('EOF'):
                self.unexpected()
            body.append(self.parse_statement())
        self.eat('PUNC', '}')
        return ast.BlockStatement(start, self.prev_end, body)

    def parse_paren_expression(self) -> ast.Node:
        self.eat('PUNC', '(')
        expr = self.parse_expression()
        self.eat('PUNC', ')')
        return expr

    def parse_var_decl(self) -> ast.VariableDeclaration:
        """Parse `var`/`let`/`const` with one or more declarators (no trailing `;`)."""
        start = self.start()
        kind = self.eat('IDENT')[1]
        decls = []
        while True:
            id_tok = self.peek()
            if id_tok[0] != 'IDENT' or id_tok[1] in RESERVED:
                if id_tok[0] == 'PUNC' and id_tok[1] in ('[', '{'):
                    raise JSSyntaxError("Destructuring declarations are not supported", id_tok[2])
                self.unexpected(id_tok)
            self.eat()
            ident = ast.Identifier(id_tok[2], id_tok[3], id_tok[1])
            init = None
            if self.match('OP', '='):
                self.eat()
                init = self.parse_assignment()
            elif kind == 'const' and not (self.match('IDENT', 'in') or self.match('IDENT', 'of')):
                raise JSSyntaxError("Missing initializer in const declaration", self.prev_end)
            decls.append(ast.VariableDeclarator(id_tok[2], self.prev_end, ident, init))
            if self.match('PUNC', ','):
                self.eat()
                continue
            break
        return ast.VariableDeclaration(start, self.prev_end, kind, decls)

    def parse_params(self) -> List[ast.Identifier]:
        self.eat('PUNC', '(')
        params = []
        while not self.match('PUNC', ')'):
            tok = self.peek()
            if tok[0] != 'IDENT' or tok[1] in RESERVED:
                if tok[0] == 'OP' and tok[1] == '...':
                    raise JSSyntaxError("Rest parameters are not supported", tok[2])
                self.unexpected(tok)
            self.eat()
            if self.match('OP', '='):
                raise JSSyntaxError("Default parameters are not supported", self.start())
            params.append(ast.Identifier(tok[2], tok[3], tok[1]))
            if not self.match('PUNC', ')'):
                self.eat('PUNC', ',')
        self.eat('PUNC', ')')
        return params

    def parse_function_body(self, is_async: bool, generator: bool) -> ast.BlockStatement:
        self.functions.append((is_async, generator))
        saved_no_in, self.no_in = self.no_in, False
        try:
            return self.parse_block()
        finally:
            self.functions.pop()
            self.no_in = saved_no_in

    def parse_function(self, start: int, declaration: bool, is_async: bool = False) -> ast.Node:
        self.eat('IDENT', 'function')
        generator = False
        if self.match('OP', '*'):
            self.eat()
            generator = True
        ident = None
        if self.match('IDENT') and self.peek()[1] not in RESERVED:
            tok = self.eat()
            ident = ast.Identifier(tok[2], tok[3], tok[1])
        elif declaration:
            self.unexpected()
        params = self.parse_params()
        body = self.parse_function_body(is_async, generator)
        cls = ast.FunctionDeclaration if declaration else ast.FunctionExpression
        return cls(start, self.prev_end, ident, params, body, is_async, generator)

    def parse_class(self, start: int, declaration: bool) -> ast.Node:
        # class bodies are not interpreted; keep the node so it can be reported
        self.eat('IDENT', 'class')
        ident = None
        if self.match('IDENT') and self.peek()[1] not in ('extends',):
            tok = self.eat()
            ident = ast.Identifier(tok[2], tok[3], tok[1])
        while not self.match('PUNC', '{'):
            if self.match('EOF'):
                self.unexpected()
            self.eat()
        self.skip_balanced('{', '}')
        if declaration:
            return ast.ClassDeclaration(start, self.prev_end, ident)
        return ast.ClassExpression(start, self.prev_end, ident)

    def _skip_module_specifier(self):
        # everything up to and including the module string
        while not self.match('STRING'):
            if self.match('EOF'):
                self.unexpected()
            self.eat()
        self.eat('STRING')
        self.consume_semicolon()

    def parse_import(self, start: int) -> ast.ImportDeclaration:
        self.eat('IDENT', 'import')
        self._skip_module_specifier()
        return ast.ImportDeclaration(start, self.prev_end)

    def parse_export(self, start: int) -> ast.Node:
        self.eat('IDENT', 'export')
        if self.match('OP', '*'):
            self._skip_module_specifier()
            return ast.ExportAllDeclaration(start, self.prev_end)
        if self.match('IDENT', 'default'):
            self.eat()
            if self.match('IDENT', 'function') or self.match('IDENT', 'class') or \
                    (self.match('IDENT', 'async') and self.match('IDENT', 'function', 1)):
                decl = self.parse_statement()
            else:
                decl = self.parse_assignment()
                self.consume_semicolon()
            return ast.ExportDefaultDeclaration(start, self.prev_end, decl)
        if self.match('PUNC', '{'):
            self.skip_balanced('{', '}')
            if self.match('IDENT', 'from'):
                self.eat()
                self.eat('STRING')
            self.consume_semicolon()
            return ast.ExportNamedDeclaration(start, self.prev_end, None)
        decl = self.parse_statement()
        return ast.ExportNamedDeclaration(start, self.prev_end, decl)

    def parse_for(self, start: int) -> ast.ForStatement:
        self.eat('IDENT', 'for')
        if self.match('IDENT', 'await'):
            raise JSSyntaxError("for await...of loops are not supported", self.start())
        self.eat('PUNC', '(')
        init = None
        if not self.match('PUNC', ';'):
            self.no_in = True
            try:
                if self.match('IDENT', 'var') or self.match('IDENT', 'let') or self.match('IDENT', 'const'):
                    init = self.parse_var_decl()
                else:
                    init = self.parse_expression()
            finally:
                self.no_in = False
            if self.match('IDENT', 'in') or self.match('IDENT', 'of'):
                raise JSSyntaxError(f"for...{self.peek()[1]} loops are not supported", self.start())
        self.eat('PUNC', ';')
        test = None if self.match('PUNC', ';') else self.parse_expression()
        self.eat('PUNC', ';')
        update = None if self.match('PUNC', ')') else self.parse_expression()
        self.eat('PUNC', ')')
        body = self.parse_statement()
        return ast.ForStatement(start, self.prev_end, init, test, update, body)

    def parse_switch(self, start: int) -> ast.SwitchStatement:
        self.eat('IDENT', 'switch')
        discriminant = self.parse_paren_expression()
        self.eat('PUNC', '{')
        cases = []
        seen_default = False
        while not self.match('PUNC', '}'):
            case_start = self.start()
            if self.match('IDENT', 'case'):
                self.eat()
                test = self.parse_expression()
            else:
                self.eat('IDENT', 'default')
                if seen_default:
                    raise JSSyntaxError("Multiple default clauses", case_start)
                seen_default = True
                test = None
            self.eat('PUNC', ':')
            consequent = []
            while not (self.match('IDENT', 'case') or self.match('IDENT', 'default')
                       or self.match('PUNC', '}')):
                if self.match('EOF'):
                    self.unexpected()
                consequent.append(self.parse_statement())
            cases.append(ast.SwitchCase(case_start, self.prev_end, test, consequent))
        self.eat('PUNC', '}')
        return ast.SwitchStatement(start, self.prev_end, discriminant, cases)

    def parse_try(self, start: int) -> ast.TryStatement:
        self.eat('IDENT', 'try')
        block = self.parse_block()
        handler = finalizer = None
        if self.match('IDENT', 'catch'):
            catch_start = self.start()
            self.eat()
            param = None
            if self.match('PUNC', '('):
                self.eat()
                tok = self.eat('IDENT')
                param = ast.Identifier(tok[2], tok[3], tok[1])
                self.eat('PUNC', ')')
            body = self.parse_block()
            handler = ast.CatchClause(catch_start, self.prev_end, param, body)
        if self.match('IDENT', 'finally'):
            self.eat()
            finalizer = self.parse_block()
        if handler is None and finalizer is None:
            raise JSSyntaxError("Missing catch or finally after try", self.start())
        return ast.TryStatement(start, self.prev_end, block, handler, finalizer)

    # --- expressions -------------------------------------------------------------
    def parse_expression(self) -> ast.Node:
        start = self.start()
        node = self.parse_assignment()
        if not self.match('PUNC', ','):
            return node
        exprs = [node]
        while self.match('PUNC', ','):
            self.eat()
            exprs.append(self.parse_assignment())
        return ast.SequenceExpression(start, self.prev_end, exprs)

    def _arrow_ahead(self) -> bool:
        """True if the tokens at the cursor start an arrow function."""
        offset = 0
        if self.match('IDENT', 'async') and not self.peek(1)[4]:
            if self.match('IDENT', offset=1) and self.match('OP', '=>', 2):
                return True
            if not self.match('PUNC', '(', 1):
                return False
            offset = 1
        if self.match('IDENT') and self.peek()[1] not in RESERVED and self.match('OP', '=>', 1):
            return not self.peek(1)[4]
        if not self.match('PUNC', '(', offset):
            return False
        depth = 0
        j = self.i + offset
        while j < len(self.tokens):
            t, v = self.tokens[j][0], self.tokens[j][1]
            if t == 'EOF':
                return False
            if t == 'PUNC' and v in '([{':
                depth += 1
            elif t == 'PUNC' and v in ')]}':
                depth -= 1
                if depth == 0:
                    nxt = self.tokens[j + 1]
                    return nxt[0] == 'OP' and nxt[1] == '=>' and not nxt[4]
            j += 1
        return False

    def parse_arrow(self) -> ast.ArrowFunctionExpression:
        start = self.start()
        is_async = False
        if self.match('IDENT', 'async') and not self.match('OP', '=>', 1):
            self.eat()
            is_async = True
        if self.match('IDENT'):
            tok = self.eat()
            params = [ast.Identifier(tok[2], tok[3], tok[1])]
        else:
            params = self.parse_params()
        self.eat('OP', '=>')
        if self.match('PUNC', '{'):
            body = self.parse_function_body(is_async, False)
            return ast.ArrowFunctionExpression(start, self.prev_end, params, body, is_async, False)
        self.functions.append((is_async, False))
        try:
            body = self.parse_assignment()
        finally:
            self.functions.pop()
        return ast.ArrowFunctionExpression(start, self.prev_end, params, body, is_async, True)

    def parse_assignment(self) -> ast.Node:
        if self._arrow_ahead():
            return self.parse_arrow()
        if self.match('IDENT', 'yield') and self.in_generator:
            start = self.start()
            self.eat()
            argument = None
            tok = self.peek()
            if not (tok[4] or tok[0] == 'EOF' or (tok[0] == 'PUNC' and tok[1] in (')', ']', '}', ',', ';', ':'))):
                argument = self.parse_assignment()
            return ast.YieldExpression(start, self.prev_end, argument)

        start = self.start()
        left = self.parse_conditional()
        if self.match('OP') and self.peek()[1] in ASSIGN_OPS:
            if not isinstance(left, (ast.Identifier, ast.MemberExpression)):
                raise JSSyntaxError("Invalid assignment target", left.start)
            op = self.eat()[1]
            right = self.parse_assignment()
            return ast.AssignmentExpression(start, self.prev_end, op, left, right)
        return left

    def parse_conditional(self) -> ast.Node:
        start = self.start()
        test = self.parse_binary(0)
        if not self.match('PUNC', '?'):
            return test
        self.eat()
        saved_no_in, self.no_in = self.no_in, False
        try:
            consequent = self.parse_assignment()
        finally:
            self.no_in = saved_no_in
        self.eat('PUNC', ':')
        alternate = self.parse_assignment()
        return ast.ConditionalExpression(start, self.prev_end, test, consequent, alternate)

    # Precedence climbing; higher binds tighter. `**` is right associative.
    BINOPS = {
        '??': 1, '||': 1,
        '&&': 2,
        '|': 3, '^': 4, '&': 5,
        '==': 6, '!=': 6, '===': 6, '!==': 6,
        '<': 7, '>': 7, '<=': 7, '>=': 7, 'instanceof': 7, 'in': 7,
        '<<': 8, '>>': 8, '>>>': 8,
        '+': 9, '-': 9,
        '*': 10, '/': 10, '%': 10,
        '**': 11,
    }

    def parse_binary(self, min_prec: int) -> ast.Node:
        start = self.start()
        left = self.parse_unary()
        while True:
            t, v = self.peek()[0], self.peek()[1]
            if t not in ('OP', 'IDENT') or v not in self.BINOPS:
                break
            if t == 'IDENT' and v not in ('in', 'instanceof'):
                break
            if v == 'in' and self.no_in:
                break
            prec = self.BINOPS[v]
            if prec < min_prec:
                break
            self.eat()
            right = self.parse_binary(prec if v == '**' else prec + 1)
            cls = ast.LogicalExpression if v in LOGICAL_OPS else ast.BinaryExpression
            left = cls(start, self.prev_end, v, left, right)
        return left

    def parse_unary(self) -> ast.Node:
        start = self.start()
        t, v = self.peek()[0], self.peek()[1]
        if t == 'OP' and v in ('!', '-', '+', '~'):
            self.eat()
            argument = self.parse_unary()
            return ast.UnaryExpression(start, self.prev_end, v, argument)
        if t == 'OP' and v in ('++', '--'):
            self.eat()
            argument = self.parse_unary()
            if not isinstance(argument, (ast.Identifier, ast.MemberExpression)):
                raise JSSyntaxError("Invalid left-hand side in prefix operation", argument.start)
            return ast.UpdateExpression(start, self.prev_end, v, argument, True)
        if t == 'IDENT' and v in ('typeof', 'void', 'delete'):
            self.eat()
            argument = self.parse_unary()
            return ast.UnaryExpression(start, self.prev_end, v, argument)
        if t == 'IDENT' and v == 'await':
            if not self.in_async:
                raise JSSyntaxError("'await' is only valid in async functions and the top level", start)
            self.eat()
            argument = self.parse_unary()
            return ast.AwaitExpression(start, self.prev_end, argument)
        return self.parse_postfix()

    def parse_postfix(self) -> ast.Node:
        start = self.start()
        node = self.parse_call_member()
        tok = self.peek()
        if tok[0] == 'OP' and tok[1] in ('++', '--') and not tok[4]:
            if not isinstance(node, (ast.Identifier, ast.MemberExpression)):
                raise JSSyntaxError("Invalid left-hand side in postfix operation", node.start)
            self.eat()
            return ast.UpdateExpression(start, self.prev_end, tok[1], node, False)
        return node

    def parse_arguments(self) -> List[ast.Node]:
        self.eat('PUNC', '(')
        args = []
        while not self.match('PUNC', ')'):
            if self.match('OP', '...'):
                raise JSSyntaxError("Spread arguments are not supported", self.start())
            args.append(self.parse_assignment())
            if not self.match('PUNC', ')'):
                self.eat('PUNC', ',')
        self.eat('PUNC', ')')
        return args

    def parse_member_tail(self, node: ast.Node, start: int, allow_calls: bool) -> ast.Node:
        while True:
            if self.match('PUNC', '.'):
                self.eat()
                tok = self.eat('IDENT')
                prop = ast.Identifier(tok[2], tok[3], tok[1])
                node = ast.MemberExpression(start, self.prev_end, node, prop, False)
                continue
            if self.match('PUNC', '['):
                self.eat()
                saved_no_in, self.no_in = self.no_in, False
                try:
                    prop = self.parse_expression()
                finally:
                    self.no_in = saved_no_in
                self.eat('PUNC', ']')
                node = ast.MemberExpression(start, self.prev_end, node, prop, True)
                continue
            if allow_calls and self.match('PUNC', '('):
                args = self.parse_arguments()
                node = ast.CallExpression(start, self.prev_end, node, args)
                continue
            if self.match('TEMPLATE'):
                raise JSSyntaxError("Tagged templates are not supported", self.start())
            return node

    def parse_call_member(self) -> ast.Node:
        start = self.start()
        if self.match('IDENT', 'new'):
            self.eat()
            if self.match('PUNC', '.'):
                self.eat()
                prop = self.eat('IDENT')[1]
                node = ast.MetaProperty(start, self.prev_end, 'new', prop)
            else:
                callee_start = self.start()
                if self.match('IDENT', 'new'):
                    callee = self.parse_call_member()
                else:
                    callee = self.parse_member_tail(self.parse_primary(), callee_start, allow_calls=False)
                args = self.parse_arguments() if self.match('PUNC', '(') else []
                node = ast.NewExpression(start, self.prev_end, callee, args)
        else:
            node = self.parse_primary()
        return self.parse_member_tail(node, start, allow_calls=True)

    def parse_template(self) -> ast.TemplateLiteral:
        tok = self.eat('TEMPLATE')
        quasis: List[str] = []
        expressions: List[ast.Node] = []
        for part in tok[1]:
            if part[0] == 'str':
                quasis.append(decode_escapes(part[1]))
                continue
            sub = Parser(tokenize(self.src, part[1], part[2]), self.src)
            sub.functions = list(self.functions)
            if sub.match('EOF'):
                raise JSSyntaxError("Empty template expression", part[1])
            expressions.append(sub.parse_expression())
            if not sub.match('EOF'):
                sub.unexpected()
        return ast.TemplateLiteral(tok[2], tok[3], quasis, expressions)

    def parse_primary(self) -> ast.Node:
        tok = self.peek()
        t, v, start = tok[0], tok[1], tok[2]
        if t == 'NUMBER':
            self.eat()
            value = float(int(v, 16)) if v[:2] in ('0x', '0X') else float(v)
            return ast.Literal(start, self.prev_end, value, v)
        if t == 'STRING':
            self.eat()
            return ast.Literal(start, self.prev_end, decode_escapes(v[1:-1]), v)
        if t == 'TEMPLATE':
            return self.parse_template()
        if t == 'IDENT':
            if v == 'function':
                return self.parse_function(start, declaration=False)
            if v == 'async' and self.match('IDENT', 'function', 1) and not self.peek(1)[4]:
                self.eat()
                return self.parse_function(start, declaration=False, is_async=True)
            if v == 'class':
                return self.parse_class(start, declaration=False)
            if v == 'import':
                self.eat()
                if self.match('PUNC', '.'):
                    self.eat()
                    prop = self.eat('IDENT')[1]
                    return ast.MetaProperty(start, self.prev_end, 'import', prop)
                raise JSSyntaxError("Dynamic import() is not supported", start)
            if v in ('true', 'false', 'null'):
                self.eat()
                value = {'true': True, 'false': False, 'null': None}[v]
                return ast.Literal(start, self.prev_end, value, v)
            if v == 'this':
                self.eat()
                return ast.ThisExpression(start, self.prev_end)
            if v == 'super':
                raise JSSyntaxError("'super' keyword unexpected here", start)
            if v in RESERVED:
                raise JSSyntaxError(f"Unexpected keyword {v!r}", start)
            self.eat()
            return ast.Identifier(start, self.prev_end, v)
        if t == 'PUNC' and v == '(':
            self.eat()
            saved_no_in, self.no_in = self.no_in, False
            try:
                expr = self.parse_expression()
            finally:
                self.no_in = saved_no_in
            self.eat('PUNC', ')')
            return expr
        if t == 'PUNC' and v == '[':
            return self.parse_array()
        if t == 'PUNC' and v == '{':
            return self.parse_object()
        self.unexpected(tok)

    def parse_array(self) -> ast.ArrayExpression:
        start = self.start()
        self.eat('PUNC', '[')
        elems: List[Optional[ast.Node]] = []
        # trailing commas and holes ([a, b,] and [a,,b])
        while not self.match('PUNC', ']'):
            if self.match('PUNC', ','):
                self.eat()
                elems.append(None)
                continue
            if self.match('OP', '...'):
                raise JSSyntaxError("Spread elements are not supported", self.start())
            elems.append(self.parse_assignment())
            if not self.match('PUNC', ']'):
                self.eat('PUNC', ',')
        self.eat('PUNC', ']')
        return ast.ArrayExpression(start, self.prev_end, elems)

    def parse_object(self) -> ast.ObjectExpression:
        start = self.start()
        self.eat('PUNC', '{')
        props = []
        while not self.match('PUNC', '}'):
            props.append(self.parse_property())
            if not self.match('PUNC', '}'):
                self.eat('PUNC', ',')
        self.eat('PUNC', '}')
        return ast.ObjectExpression(start, self.prev_end, props)

    def parse_property(self) -> ast.Property:
        start = self.start()
        is_async = False
        if self.match('IDENT', 'async') and not (self.match('PUNC', ':', 1) or self.match('PUNC', '(', 1)
                                                 or self.match('PUNC', ',', 1) or self.match('PUNC', '}', 1)):
            self.eat()
            is_async = True
        tok = self.peek()
        computed = False
        if tok[0] == 'OP' and tok[1] == '...':
            raise JSSyntaxError("Object spread is not supported", tok[2])
        if tok[0] == 'PUNC' and tok[1] == '[':
            self.eat()
            key = self.parse_assignment()
            self.eat('PUNC', ']')
            computed = True
        elif tok[0] == 'IDENT':
            self.eat()
            key = ast.Identifier(tok[2], tok[3], tok[1])
        elif tok[0] == 'STRING':
            self.eat()
            key = ast.Literal(tok[2], tok[3], decode_escapes(tok[1][1:-1]), tok[1])
        elif tok[0] == 'NUMBER':
            key = self.parse_primary()
        else:
            self.unexpected(tok)

        if self.match('PUNC', '('):
            # method shorthand: { name(a) { ... } }
            fn_start = self.start()
            params = self.parse_params()
            body = self.parse_function_body(is_async, False)
            value = ast.FunctionExpression(fn_start, self.prev_end, None, params, body, is_async, False)
            return ast.Property(start, self.prev_end, key, value, computed, False)
        if is_async:
            self.unexpected()
        if self.match('PUNC', ':'):
            self.eat()
            value = self.parse_assignment()
            return ast.Property(start, self.prev_end, key, value, computed, False)
        if isinstance(key, ast.Identifier) and not computed and key.name not in RESERVED:
            value = ast.Identifier(key.start, key.end, key.name)
            return ast.Property(start, self.prev_end, key, value, False, True)
        self.unexpected()


# --- public entry points --------------------------------------------------------
def _line_starts(source: str) -> List[int]:
    starts = [0]
    for idx, ch in enumerate(source):
        if ch == '\n':
            starts.append(idx + 1)
    return starts


def offset_to_position(line_starts: List[int], offset: int) -> tuple:
    """Map a source offset to (1-based line, 0-based column)."""
    idx = bisect.bisect_right(line_starts, offset) - 1
    return idx + 1, offset - line_starts[idx]


def _unsupported_errors(program: ast.Program, line_starts: List[int]) -> List[ParseError]:
    errors = []
    for node in ast.walk(program):
        name = ast.UNSUPPORTED_SYNTAX.get(type(node))
        if name is None and isinstance(node, (ast.FunctionDeclaration, ast.FunctionExpression)) \
                and node.generator:
            name = 'generator function'
        if name is None:
            continue
        line, col = offset_to_position(line_starts, node.start)
        errors.append(ParseError(line, col, f"Unsupported syntax: {name}"))
    return errors


def build_source_map(program: ast.Program, line_starts: List[int]) -> Dict[int, int]:
    source_map: Dict[int, int] = {}
    for node in ast.walk(program):
        source_map.setdefault(node.start, offset_to_position(line_starts, node.start)[0])
    return source_map


def parse(source: str) -> ParseResult:
    """Parse `source`; see ParseResult. Never raises for bad input."""
    if not source or not source.strip():
        return ParseResult(False, errors=[ParseError(1, 0, "Source code is empty")])

    line_starts = _line_starts(source)
    parser = None
    try:
        parser = Parser(tokenize(source), source)
        program = parser.parse_program()
    except JSSyntaxError as exc:
        line, col = offset_to_position(line_starts, min(exc.pos, len(source)))
        log.info("syntax error at %d:%d: %s", line, col, exc.message)
        return ParseResult(False, errors=[ParseError(line, col, exc.message)])
    except RecursionError:
        pos = parser.peek()[2] if parser is not None else 0
        line, col = offset_to_position(line_starts, min(pos, len(source)))
        log.info("nesting too deep at %d:%d", line, col)
        return ParseResult(False, errors=[ParseError(line, col, "Expression nested too deeply")])

    errors = _unsupported_errors(program, line_starts)
    if errors:
        log.info("rejected %d unsupported construct(s)", len(errors))
        return ParseResult(False, errors=errors)

    return ParseResult(True, program, [], build_source_map(program, line_starts))


def format_parse_error(source: str, error: ParseError, window: int = 40) -> str:
    """Return a short snippet around the error with a caret marker and position info."""
    lines = source.split('\n')
    line_text = lines[error.line - 1] if 0 < error.line <= len(lines) else ''
    # truncate very long (minified) lines around the column
    start = max(0, error.column - window)
    snippet = line_text[start:error.column + window]
    caret_line = ' ' * (error.column - start) + '^'
    return f"Line {error.line}, Col {error.column}: {error.message}\n{snippet}\n{caret_line}"


def function_preview(source: str, node: ast.Node, max_length: int = 50) -> str:
    """First line of a function's source text, shortened for queue displays."""
    text = source[node.start:node.end]
    first, _, rest = text.partition('\n')
    first = first.strip()
    if len(first) > max_length:
        return first[:max_length] + '...'
    return first + '...' if rest else first
