"""
AST node classes for the supported JavaScript subset.

One dataclass per node kind (ESTree names). Every node records the `start`
and `end` offsets of its source text. Nodes compare by identity so they can key
per-node bookkeeping such as loop counters.
"""
from __future__ import annotations
import re
from dataclasses import dataclass, fields
from typing import Any, Iterator, List, Optional


def _snake(name: str) -> str:
    return re.sub(r'(?<!^)(?=[A-Z])', '_', name).lower()


@dataclass(eq=False)
class Node:
    start: int
    end: int

    node_type = 'node'

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        cls.node_type = _snake(cls.__name__)


# --- program / statements ---------------------------------------------------
@dataclass(eq=False)
class Program(Node):
    body: List[Node]


@dataclass(eq=False)
class ExpressionStatement(Node):
    expression: Node


@dataclass(eq=False)
class BlockStatement(Node):
    body: List[Node]


@dataclass(eq=False)
class EmptyStatement(Node):
    pass


@dataclass(eq=False)
class VariableDeclarator(Node):
    id: 'Identifier'
    init: Optional[Node] = None


@dataclass(eq=False)
class VariableDeclaration(Node):
    kind: str  # 'var' | 'let' | 'const'
    declarations: List[VariableDeclarator]


@dataclass(eq=False)
class FunctionDeclaration(Node):
    id: Optional['Identifier']
    params: List['Identifier']
    body: 'BlockStatement'
    is_async: bool = False
    generator: bool = False


@dataclass(eq=False)
class ReturnStatement(Node):
    argument: Optional[Node] = None


@dataclass(eq=False)
class IfStatement(Node):
    test: Node
    consequent: Node
    alternate: Optional[Node] = None


@dataclass(eq=False)
class ForStatement(Node):
    init: Optional[Node]
    test: Optional[Node]
    update: Optional[Node]
    body: Node


@dataclass(eq=False)
class WhileStatement(Node):
    test: Node
    body: Node


@dataclass(eq=False)
class DoWhileStatement(Node):
    body: Node
    test: Node


@dataclass(eq=False)
class SwitchCase(Node):
    test: Optional[Node]
    consequent: List[Node]


@dataclass(eq=False)
class SwitchStatement(Node):
    discriminant: Node
    cases: List[SwitchCase]


@dataclass(eq=False)
class BreakStatement(Node):
    pass


@dataclass(eq=False)
class ContinueStatement(Node):
    pass


@dataclass(eq=False)
class ThrowStatement(Node):
    argument: Node


@dataclass(eq=False)
class CatchClause(Node):
    param: Optional['Identifier']
    body: BlockStatement


@dataclass(eq=False)
class TryStatement(Node):
    block: BlockStatement
    handler: Optional[CatchClause] = None
    finalizer: Optional[BlockStatement] = None


# --- expressions --------------------------------------------------------------
@dataclass(eq=False)
class Identifier(Node):
    name: str


@dataclass(eq=False)
class Literal(Node):
    value: Any
    raw: str


@dataclass(eq=False)
class TemplateLiteral(Node):
    quasis: List[str]
    expressions: List[Node]


@dataclass(eq=False)
class ThisExpression(Node):
    pass


@dataclass(eq=False)
class ArrayExpression(Node):
    elements: List[Optional[Node]]


@dataclass(eq=False)
class Property(Node):
    key: Node
    value: Node
    computed: bool = False
    shorthand: bool = False


@dataclass(eq=False)
class ObjectExpression(Node):
    properties: List[Property]


@dataclass(eq=False)
class FunctionExpression(Node):
    id: Optional[Identifier]
    params: List[Identifier]
    body: BlockStatement
    is_async: bool = False
    generator: bool = False


@dataclass(eq=False)
class ArrowFunctionExpression(Node):
    params: List[Identifier]
    body: Node  # BlockStatement, or an expression when `expression` is true
    is_async: bool = False
    expression: bool = False


@dataclass(eq=False)
class MemberExpression(Node):
    object: Node
    property: Node
    computed: bool = False


@dataclass(eq=False)
class CallExpression(Node):
    callee: Node
    arguments: List[Node]


@dataclass(eq=False)
class NewExpression(Node):
    callee: Node
    arguments: List[Node]


@dataclass(eq=False)
class UnaryExpression(Node):
    operator: str
    argument: Node


@dataclass(eq=False)
class UpdateExpression(Node):
    operator: str
    argument: Node
    prefix: bool


@dataclass(eq=False)
class BinaryExpression(Node):
    operator: str
    left: Node
    right: Node


@dataclass(eq=False)
class LogicalExpression(Node):
    operator: str
    left: Node
    right: Node


@dataclass(eq=False)
class AssignmentExpression(Node):
    operator: str
    left: Node
    right: Node


@dataclass(eq=False)
class ConditionalExpression(Node):
    test: Node
    consequent: Node
    alternate: Node


@dataclass(eq=False)
class SequenceExpression(Node):
    expressions: List[Node]


@dataclass(eq=False)
class AwaitExpression(Node):
    argument: Node


# --- constructs rejected at parse time ----------------------------------------
@dataclass(eq=False)
class ClassDeclaration(Node):
    id: Optional[Identifier]


@dataclass(eq=False)
class ClassExpression(Node):
    id: Optional[Identifier]


@dataclass(eq=False)
class ImportDeclaration(Node):
    pass


@dataclass(eq=False)
class ExportNamedDeclaration(Node):
    declaration: Optional[Node] = None


@dataclass(eq=False)
class ExportDefaultDeclaration(Node):
    declaration: Optional[Node] = None


@dataclass(eq=False)
class ExportAllDeclaration(Node):
    pass


@dataclass(eq=False)
class YieldExpression(Node):
    argument: Optional[Node] = None


@dataclass(eq=False)
class MetaProperty(Node):
    meta: str
    property: str


@dataclass(eq=False)
class WithStatement(Node):
    object: Node
    body: Node


# --- synthesized by the interpreter -------------------------------------------
@dataclass(eq=False)
class AwaitContinuation(Node):
    """Statements left in a block after an `await`; `resume` is the awaiting statement."""
    body: List[Node]
    resume: Node


# Kinds the interpreter dispatches on; each needs an `_eval_<node_type>` handler.
NODE_TYPES = (
    Program, ExpressionStatement, BlockStatement, EmptyStatement,
    VariableDeclaration, FunctionDeclaration, ReturnStatement, IfStatement,
    ForStatement, WhileStatement, DoWhileStatement, SwitchStatement,
    BreakStatement, ContinueStatement, ThrowStatement, TryStatement,
    Identifier, Literal, TemplateLiteral, ThisExpression, ArrayExpression,
    ObjectExpression, FunctionExpression, ArrowFunctionExpression,
    MemberExpression, CallExpression, NewExpression, UnaryExpression,
    UpdateExpression, BinaryExpression, LogicalExpression,
    AssignmentExpression, ConditionalExpression, SequenceExpression,
    AwaitExpression,
)

# Structural parts evaluated by their parent node.
PART_TYPES = (VariableDeclarator, SwitchCase, CatchClause, Property)

UNSUPPORTED_SYNTAX = {
    ClassDeclaration: 'class declaration',
    ClassExpression: 'class expression',
    ImportDeclaration: 'import declaration',
    ExportNamedDeclaration: 'export declaration',
    ExportDefaultDeclaration: 'export default declaration',
    ExportAllDeclaration: 'export * declaration',
    YieldExpression: 'yield expression (generators)',
    MetaProperty: 'meta property',
    WithStatement: 'with statement',
}

FUNCTION_TYPES = (FunctionDeclaration, FunctionExpression, ArrowFunctionExpression)


def iter_child_nodes(node: Node) -> Iterator[Node]:
    """Yield the direct child nodes of `node` in field order."""
    for f in fields(node):
        value = getattr(node, f.name)
        if isinstance(value, Node):
            yield value
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, Node):
                    yield item


def walk(node: Node) -> Iterator[Node]:
    """Depth-first pre-order traversal of the whole tree."""
    stack = [node]
    while stack:
        cur = stack.pop()
        yield cur
        children = list(iter_child_nodes(cur))
        stack.extend(reversed(children))
