"""
Regex tokenizer for the JavaScript subset.

Tokens are 5-tuples (type, value, start, end, newline_before). Keywords come out
as IDENT tokens; the parser decides what they mean. Template literals are
scanned by hand and come out as a single TEMPLATE token whose value is the list
of its parts.
"""
from __future__ import annotations
import re
from typing import Any, List, Optional, Tuple

Token = Tuple[str, Any, int, int, bool]


class JSSyntaxError(SyntaxError):
    """Syntax error with the source offset it was detected at."""

    def __init__(self, message: str, pos: int):
        super().__init__(message)
        self.message = message
        self.pos = pos


TOKEN_SPEC = [
    ('NUMBER',   r'0[xX][0-9a-fA-F]+|(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?'),
    ('STRING',   r'"([^"\\\n]|\\.)*"|\'([^\'\\\n]|\\.)*\''),
    ('IDENT',    r'[A-Za-z_$][A-Za-z0-9_$]*'),
    ('COMMENT',  r'//[^\n]*|/\*[\s\S]*?\*/'),
    # longer operators first
    ('OP',       r'>>>=|\.\.\.|===|!==|\*\*=|<<=|>>=|&&=|\|\|=|\?\?=|>>>|=>|==|!=|<=|>=|&&|\|\||\?\?|\+\+|--|\+=|-=|\*=|/=|%=|&=|\|=|\^=|\*\*|<<|>>|!|&|\^|\||~|\+|-|\*|/|%|<|>|='),
    ('PUNC',     r'[(){},;\[\].:?]'),
    ('SKIP',     r'[ \t\r\n\f\v\u00a0\ufeff]+'),
]
TOKEN_RE = re.compile('|'.join('(?P<%s>%s)' % pair for pair in TOKEN_SPEC))

_ESCAPES = {'n': '\n', 't': '\t', 'r': '\r', 'b': '\b', 'f': '\f', 'v': '\v', '0': '\0'}
_ESCAPE_RE = re.compile(r'\\(u\{[0-9a-fA-F]+\}|u[0-9a-fA-F]{4}|x[0-9a-fA-F]{2}|\r\n|[\s\S])')


def decode_escapes(raw: str) -> str:
    """Cook the escape sequences of a string or template chunk."""
    def _sub(m):
        esc = m.group(1)
        if esc[0] == 'u':
            digits = esc[2:-1] if esc[1] == '{' else esc[1:]
            return chr(int(digits, 16))
        if esc[0] == 'x':
            return chr(int(esc[1:], 16))
        if esc in ('\n', '\r\n', '\r'):
            return ''  # line continuation
        return _ESCAPES.get(esc, esc)
    return _ESCAPE_RE.sub(_sub, raw)


def _scan_template(src: str, pos: int, end: int) -> Tuple[int, List[tuple]]:
    """Scan a template literal starting at the backtick at `pos`.

    Returns (end_offset, parts) where parts are ('str', raw) or
    ('expr', start, end) entries in source order.
    """
    parts: List[tuple] = []
    i = pos + 1
    chunk_start = i
    while i < end:
        ch = src[i]
        if ch == '\\':
            i += 2
            continue
        if ch == '`':
            parts.append(('str', src[chunk_start:i]))
            return i + 1, parts
        if ch == '$' and i + 1 < end and src[i + 1] == '{':
            parts.append(('str', src[chunk_start:i]))
            expr_start = i + 2
            j = expr_start
            depth = 1
            while j < end and depth:
                c = src[j]
                if c in '"\'':
                    m = TOKEN_RE.match(src, j)
                    if not m or m.lastgroup != 'STRING':
                        raise JSSyntaxError("Unterminated string constant", j)
                    j = m.end()
                    continue
                if c == '`':
                    j, _ = _scan_template(src, j, end)
                    continue
                if c == '{':
                    depth += 1
                elif c == '}':
                    depth -= 1
                j += 1
            if depth:
                raise JSSyntaxError("Unterminated template literal", pos)
            parts.append(('expr', expr_start, j - 1))
            i = j
            chunk_start = i
            continue
        i += 1
    raise JSSyntaxError("Unterminated template literal", pos)


def tokenize(src: str, pos: int = 0, end: Optional[int] = None) -> List[Token]:
    """Tokenize src[pos:end]; offsets in the result are absolute offsets into src."""
    out: List[Token] = []
    if end is None:
        end = len(src)
    newline_before = False

    while pos < end:
        if src[pos] == '`':
            stop, parts = _scan_template(src, pos, end)
            out.append(('TEMPLATE', parts, pos, stop, newline_before))
            newline_before = False
            pos = stop
            continue
        m = TOKEN_RE.match(src, pos, end)
        if not m:
            ch = src[pos]
            if ch in '"\'':
                raise JSSyntaxError("Unterminated string constant", pos)
            if src.startswith('/*', pos):
                raise JSSyntaxError("Unterminated comment", pos)
            raise JSSyntaxError(f"Unexpected character {ch!r}", pos)
        typ = m.lastgroup
        val = m.group(0)
        start, stop = m.start(), m.end()

        # whitespace and comments only matter for automatic semicolon insertion
        if typ == 'SKIP' or typ == 'COMMENT':
            if '\n' in val:
                newline_before = True
            pos = stop
            continue

        if typ == 'NUMBER' and stop < end and (src[stop].isalpha() or src[stop] in '_$'):
            raise JSSyntaxError("Identifier directly after number", stop)

        out.append((typ, val, start, stop, newline_before))
        newline_before = False
        pos = stop

    out.append(('EOF', '', end, end, newline_before))
    return out
