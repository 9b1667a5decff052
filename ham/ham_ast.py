"""
AST node types produced by the parser and walked by the evaluator.

Every node carries a `loc` dict ({'line', 'col', 'offset'}) pointing at the
token that starts it. `loc` is excluded from equality so that tests can
compare trees structurally.
"""
from dataclasses import dataclass, field
from typing import Any, List, Optional


def _loc():
    return field(default=None, compare=False, repr=False)


class Node:
    """Base class for all AST nodes."""
    loc: Optional[dict]


class Expr(Node):
    pass


class Stmt(Node):
    pass


# -----------------------------------------------------------------
# Expressions
# -----------------------------------------------------------------

@dataclass
class Literal(Expr):
    value: Any          # int, float, str or bool
    loc: Optional[dict] = _loc()


@dataclass
class Identifier(Expr):
    name: str
    loc: Optional[dict] = _loc()


@dataclass
class Reference(Expr):
    """`&name`: refers to the binding itself rather than its current value."""
    name: str
    loc: Optional[dict] = _loc()


@dataclass
class BinaryOp(Expr):
    op: str
    left: Expr
    right: Expr
    loc: Optional[dict] = _loc()


@dataclass
class UnaryOp(Expr):
    op: str
    operand: Expr
    loc: Optional[dict] = _loc()


@dataclass
class Assign(Expr):
    target: Identifier
    value: Expr
    loc: Optional[dict] = _loc()


@dataclass
class Call(Expr):
    callee: Expr
    args: List[Expr]
    loc: Optional[dict] = _loc()


@dataclass
class MethodCall(Expr):
    """`receiver.method(args)`, dispatched on the receiver's runtime tag."""
    receiver: Expr
    method: str
    args: List[Expr]
    loc: Optional[dict] = _loc()


@dataclass
class FnLiteral(Expr):
    params: List[str]
    body: 'Block'
    loc: Optional[dict] = _loc()


# -----------------------------------------------------------------
# Statements
# -----------------------------------------------------------------

@dataclass
class Block(Node):
    statements: List[Stmt]
    loc: Optional[dict] = _loc()


@dataclass
class Let(Stmt):
    name: str
    value: Expr
    loc: Optional[dict] = _loc()


@dataclass
class FnDecl(Stmt):
    name: str
    params: List[str]
    body: Block
    loc: Optional[dict] = _loc()


@dataclass
class If(Stmt):
    condition: Expr
    body: Block
    loc: Optional[dict] = _loc()


@dataclass
class While(Stmt):
    condition: Expr
    body: Block
    loc: Optional[dict] = _loc()


@dataclass
class Break(Stmt):
    loc: Optional[dict] = _loc()


@dataclass
class Return(Stmt):
    value: Optional[Expr]
    loc: Optional[dict] = _loc()


@dataclass
class ExprStmt(Stmt):
    expr: Expr
    loc: Optional[dict] = _loc()


@dataclass
class Program(Node):
    statements: List[Stmt]
    loc: Optional[dict] = _loc()
