"""
Recursive-descent parser for Ham, with a Pratt sub-parser for expressions.
"""
from contextlib import contextmanager
from typing import Iterable, List, Optional

from ham.ham_ast import (
    Assign, BinaryOp, Block, Break, Call, Expr, ExprStmt, FnDecl, FnLiteral,
    Identifier, If, Let, Literal, MethodCall, Program, Reference, Return, Stmt, UnaryOp,
    While,
)
from ham.ham_datatypes import ParseError
from ham.ham_lexer import Lexer, Token

# Binding powers, low → high. Assignment is right-associative.
ASSIGN_BP = 10
BINARY_BP = {
    '==': 20, '!=': 20,
    '<': 30, '>': 30, '<=': 30, '>=': 30,
    '+': 40, '-': 40,
    '*': 50, '/': 50,
}
UNARY_BP = 60
POSTFIX_BP = 70

# Deepest nesting of expressions and blocks the parser accepts.
MAX_NESTING_DEPTH = 100


class Parser:
    """Builds a Program from a token stream.

    The first mismatch raises ParseError; no partial tree is returned.
    """

    def __init__(self, tokens: Iterable[Token]):
        self.tokens: List[Token] = list(tokens)
        if not self.tokens or self.tokens[-1].kind != 'EOF':
            raise ValueError("token stream must end with an EOF token")
        self.pos = 0
        # Number of enclosing `while` bodies in the current function.
        self.loop_depth = 0
        self.depth = 0

    # --- Token helpers ---

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    @property
    def previous(self) -> Token:
        return self.tokens[self.pos - 1]

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        if tok.kind != 'EOF':
            self.pos += 1
        return tok

    def check(self, kind: str, value: Optional[str] = None) -> bool:
        tok = self.current
        return tok.kind == kind and (value is None or tok.value == value)

    def match(self, kind: str, value: Optional[str] = None) -> bool:
        if self.check(kind, value):
            self.advance()
            return True
        return False

    def expect(self, kind: str, value: Optional[str] = None, what: Optional[str] = None) -> Token:
        if self.check(kind, value):
            return self.advance()
        expected = what or (f"'{value}'" if value is not None else kind.lower())
        raise self.error(f"expected {expected}, found {self.current.describe()}")

    def error(self, message: str, tok: Optional[Token] = None) -> ParseError:
        tok = tok or self.current
        return ParseError(message, tok.line, tok.col)

    @contextmanager
    def nested(self, what: str):
        self.depth += 1
        if self.depth > MAX_NESTING_DEPTH:
            raise self.error(f"{what} nested too deeply")
        try:
            yield
        finally:
            self.depth -= 1

    # --- Statements ---

    def parse_program(self) -> Program:
        start = self.current
        statements = []
        while not self.check('EOF'):
            statements.append(self.parse_statement())
        return Program(statements, loc=start.loc)

    def parse_statement(self) -> Stmt:
        tok = self.current
        if tok.kind == 'KEYWORD':
            match tok.value:
                case 'let':
                    return self.parse_let()
                case 'fn' if self.tokens[self.pos + 1].kind == 'IDENT':
                    return self.parse_fn_decl()
                case 'if':
                    return self.parse_if()
                case 'while':
                    return self.parse_while()
                case 'break':
                    return self.parse_break()
                case 'return':
                    return self.parse_return()
        expr = self.parse_expression()
        return ExprStmt(expr, loc=tok.loc)

    def parse_let(self) -> Let:
        start = self.expect('KEYWORD', 'let')
        name = self.expect('IDENT', what="identifier after 'let'")
        self.expect('OP', '=')
        value = self.parse_expression()
        return Let(name.value, value, loc=start.loc)

    def parse_fn_decl(self) -> FnDecl:
        start = self.expect('KEYWORD', 'fn')
        name = self.expect('IDENT', what="function name")
        params = self.parse_params()
        body = self.parse_function_body()
        return FnDecl(name.value, params, body, loc=start.loc)

    def parse_if(self) -> If:
        start = self.expect('KEYWORD', 'if')
        condition = self.parse_expression()
        body = self.parse_block()
        return If(condition, body, loc=start.loc)

    def parse_while(self) -> While:
        start = self.expect('KEYWORD', 'while')
        condition = self.parse_expression()
        self.loop_depth += 1
        try:
            body = self.parse_block()
        finally:
            self.loop_depth -= 1
        return While(condition, body, loc=start.loc)

    def parse_break(self) -> Break:
        start = self.expect('KEYWORD', 'break')
        if self.loop_depth == 0:
            raise self.error("'break' outside of a while loop", start)
        return Break(loc=start.loc)

    def parse_return(self) -> Return:
        start = self.expect('KEYWORD', 'return')
        nxt = self.current
        # The value must start on the same line as `return`.
        if nxt.kind == 'EOF' or (nxt.kind == 'PUNCT' and nxt.value == '}') or nxt.line != start.line:
            return Return(None, loc=start.loc)
        return Return(self.parse_expression(), loc=start.loc)

    def parse_block(self) -> Block:
        start = self.expect('PUNCT', '{')
        with self.nested("block"):
            statements = []
            while not self.check('PUNCT', '}'):
                if self.check('EOF'):
                    raise self.error(f"expected '}}' to close block opened at line {start.line}, found end of input")
                statements.append(self.parse_statement())
            self.expect('PUNCT', '}')
            return Block(statements, loc=start.loc)

    def parse_function_body(self) -> Block:
        saved, self.loop_depth = self.loop_depth, 0
        try:
            return self.parse_block()
        finally:
            self.loop_depth = saved

    def parse_params(self) -> List[str]:
        self.expect('PUNCT', '(')
        params: List[str] = []
        if not self.check('PUNCT', ')'):
            while True:
                tok = self.expect('IDENT', what="parameter name")
                if tok.value in params:
                    raise self.error(f"duplicate parameter '{tok.value}'", tok)
                params.append(tok.value)
                if not self.match('PUNCT', ','):
                    break
        self.expect('PUNCT', ')', what="',' or ')'")
        return params

    def parse_args(self) -> List[Expr]:
        self.expect('PUNCT', '(')
        args: List[Expr] = []
        if not self.check('PUNCT', ')'):
            while True:
                args.append(self.parse_expression())
                if not self.match('PUNCT', ','):
                    break
        self.expect('PUNCT', ')', what="',' or ')'")
        return args

    # --- Expressions ---

    def parse_expression(self, min_bp: int = 0) -> Expr:
        with self.nested("expression"):
            left = self.parse_prefix()
            while True:
                tok = self.current
                if tok.kind == 'PUNCT' and tok.value == '(':
                    # A call must open on the line its callee ends on.
                    if POSTFIX_BP < min_bp or tok.line != self.previous.line:
                        break
                    left = Call(left, self.parse_args(), loc=left.loc)
                    continue
                if tok.kind != 'OP':
                    break
                op = tok.value
                if op == '.':
                    if POSTFIX_BP < min_bp:
                        break
                    self.advance()
                    name = self.expect('IDENT', what="method name after '.'")
                    if not self.check('PUNCT', '('):
                        raise self.error(f"expected '(' after method name '{name.value}', found {self.current.describe()}")
                    left = MethodCall(left, name.value, self.parse_args(), loc=name.loc)
                    continue
                if op == '=':
                    if ASSIGN_BP < min_bp:
                        break
                    if not isinstance(left, Identifier):
                        raise self.error("invalid assignment target", tok)
                    self.advance()
                    value = self.parse_expression(ASSIGN_BP)
                    left = Assign(left, value, loc=left.loc)
                    continue
                bp = BINARY_BP.get(op)
                if bp is None or bp <= min_bp:
                    break
                self.advance()
                right = self.parse_expression(bp)
                left = BinaryOp(op, left, right, loc=tok.loc)
            return left

    def parse_prefix(self) -> Expr:
        tok = self.current
        match tok.kind:
            case 'INT' | 'FLOAT' | 'STRING':
                self.advance()
                return Literal(tok.value, loc=tok.loc)
            case 'IDENT':
                self.advance()
                return Identifier(tok.value, loc=tok.loc)
            case 'KEYWORD' if tok.value in ('true', 'false'):
                self.advance()
                return Literal(tok.value == 'true', loc=tok.loc)
            case 'KEYWORD' if tok.value == 'fn':
                self.advance()
                params = self.parse_params()
                body = self.parse_function_body()
                return FnLiteral(params, body, loc=tok.loc)
            case 'PUNCT' if tok.value == '(':
                self.advance()
                expr = self.parse_expression()
                self.expect('PUNCT', ')')
                return expr
            case 'OP' if tok.value == '-':
                self.advance()
                operand = self.parse_expression(UNARY_BP)
                return UnaryOp('-', operand, loc=tok.loc)
            case 'OP' if tok.value == '&':
                self.advance()
                name = self.expect('IDENT', what="identifier after '&'")
                return Reference(name.value, loc=tok.loc)
        raise self.error(f"expected expression, found {tok.describe()}")


def parse(source: str) -> Program:
    """Lexes and parses a complete source text."""
    return Parser(Lexer(source)).parse_program()
