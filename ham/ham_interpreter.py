"""
The core Ham interpreter: a tree-walking Evaluator over the AST.
"""
import inspect
import os
import sys
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple

from ham.ham_ast import (
    Assign, BinaryOp, Block, Break, Call, Expr, ExprStmt, FnDecl, FnLiteral,
    Identifier, If, Let, Literal, MethodCall, Program, Reference, Return, Stmt, UnaryOp,
    While,
)
from ham.ham_datatypes import (
    BREAK, NORMAL, Builtin, HamFunction, HamReference, HamRuntimeError, Outcome,
    Scope, StackOverflow, deref, is_number, is_return, returning, type_name,
)
from ham.ham_printer import Printer

DEFAULT_MAX_CALL_DEPTH = 256
# Upper bound on host frames consumed by one Ham call (call → block → stmt → expr → call).
FRAMES_PER_CALL = 16


class Method(NamedTuple):
    """An entry of the (value tag, method name) dispatch table."""
    func: Callable[..., Any]
    mutates: bool = False


MethodTable = Dict[Tuple[str, str], Method]


def _type_error(message: str) -> HamRuntimeError:
    return HamRuntimeError(f"type mismatch: {message}")


class Evaluator:
    """The Ham execution engine."""

    def __init__(self, max_call_depth: Optional[int] = None):
        self.side_effects: List[Dict[str, Any]] = []
        self.call_stack: List[Dict[str, Any]] = []
        self.current_node = None
        self.methods: MethodTable = {}
        self.output = None
        self.max_call_depth = max_call_depth or DEFAULT_MAX_CALL_DEPTH
        self.printer = Printer()

    def _dbg(self, *parts):
        if os.environ.get("HAM_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    # --- Output side channel ---

    def write(self, text: str, end: str = "\n"):
        """Records one ordered output write and mirrors it to `output` if set."""
        self.side_effects.append({'topics': ['stdout'], 'message': text, 'end': end})
        if self.output is not None:
            self.output.write(text + end)
            self.output.flush()

    # --- Call frames ---

    def _push_frame(self, name, func, args, call_site_node):
        if len(self.call_stack) >= self.max_call_depth:
            raise StackOverflow(
                f"stack overflow: maximum call depth of {self.max_call_depth} exceeded"
            ).at(call_site_node)
        self.call_stack.append({
            'name': name,
            'func': func,
            'args': args,
            'call_site': getattr(call_site_node, 'loc', None),
        })

    def _pop_frame(self):
        if self.call_stack:
            self.call_stack.pop()

    # --- Programs and statements ---

    def run(self, program: Program, scope: Scope) -> Any:
        """Executes a program and returns its final value.

        The final value is that of the last top-level expression statement
        executed (Unit if there is none), or the value of a top-level
        `return`, which also ends the program.
        """
        limit = sys.getrecursionlimit()
        needed = self.max_call_depth * FRAMES_PER_CALL + 1000
        if needed > limit:
            sys.setrecursionlimit(needed)
        try:
            result = None
            for stmt in program.statements:
                outcome = self._exec(stmt, scope)
                if is_return(outcome):
                    return outcome.value
                if isinstance(stmt, ExprStmt):
                    result = outcome.value
            return result
        except RecursionError:
            raise StackOverflow("stack overflow: host recursion limit reached").at(self.current_node)
        finally:
            sys.setrecursionlimit(limit)

    def exec_block(self, block: Block, scope: Scope) -> Outcome:
        """Runs statements in `scope` until one produces a non-normal outcome."""
        for stmt in block.statements:
            outcome = self._exec(stmt, scope)
            if outcome.status != 'normal':
                return outcome
        return NORMAL

    def _exec(self, stmt: Stmt, scope: Scope) -> Outcome:
        self.current_node = stmt
        match stmt:
            case ExprStmt():
                return Outcome('normal', self.eval(stmt.expr, scope))
            case Let():
                scope[stmt.name] = self.eval(stmt.value, scope)
                return NORMAL
            case FnDecl():
                # Bound before the body ever runs, so the body can call itself.
                scope[stmt.name] = HamFunction(stmt.name, stmt.params, stmt.body, scope)
                return NORMAL
            case If():
                if self._condition(stmt.condition, scope, 'if'):
                    outcome = self.exec_block(stmt.body, scope.child())
                    if outcome.status != 'normal':
                        return outcome
                return NORMAL
            case While():
                while self._condition(stmt.condition, scope, 'while'):
                    outcome = self.exec_block(stmt.body, scope.child())
                    if outcome.status == 'break':
                        break
                    if is_return(outcome):
                        return outcome
                return NORMAL
            case Break():
                return BREAK
            case Return():
                value = self.eval(stmt.value, scope) if stmt.value is not None else None
                return returning(value)
        raise TypeError(f"unknown statement node: {stmt!r}")

    def _condition(self, expr: Expr, scope: Scope, keyword: str) -> bool:
        value = self.eval(expr, scope)
        if not isinstance(value, bool):
            raise _type_error(f"'{keyword}' condition must be a Boolean, got {type_name(value)}").at(expr)
        return value

    # --- Expressions ---

    def eval(self, node: Expr, scope: Scope) -> Any:
        """Evaluates an expression node to a Ham value."""
        self.current_node = node
        match node:
            case Literal():
                return node.value
            case Identifier():
                try:
                    value = scope[node.name]
                except KeyError:
                    raise HamRuntimeError(f"undefined identifier '{node.name}'").at(node) from None
                try:
                    return deref(value)
                except HamRuntimeError as e:
                    raise e.at(node)
            case Reference():
                return self._reference(node, scope)
            case BinaryOp():
                left = self.eval(node.left, scope)
                right = self.eval(node.right, scope)
                try:
                    return self._binary(node.op, left, right)
                except HamRuntimeError as e:
                    raise e.at(node)
                except OverflowError:
                    raise HamRuntimeError(f"numeric overflow in '{node.op}'").at(node) from None
            case UnaryOp():
                operand = self.eval(node.operand, scope)
                if not is_number(operand):
                    raise _type_error(f"unary '-' expects a Number, got {type_name(operand)}").at(node)
                return -operand
            case Assign():
                value = self.eval(node.value, scope)
                try:
                    scope.assign(node.target.name, value)
                except KeyError:
                    raise HamRuntimeError(
                        f"cannot assign to undefined identifier '{node.target.name}'"
                    ).at(node) from None
                except HamRuntimeError as e:
                    raise e.at(node)
                return value
            case Call():
                func = self.eval(node.callee, scope)
                args = [self.eval(arg, scope) for arg in node.args]
                return self.call(func, args, node)
            case MethodCall():
                return self._eval_method_call(node, scope)
            case FnLiteral():
                return HamFunction(None, node.params, node.body, scope)
        raise TypeError(f"unknown expression node: {node!r}")

    def _reference(self, node: Reference, scope: Scope) -> HamReference:
        owner = scope.find_owner(node.name)
        if owner is None:
            raise HamRuntimeError(f"undefined identifier '{node.name}'").at(node)
        current = owner.bindings[node.name]
        # A reference to a variable holding a reference is that same reference.
        if isinstance(current, HamReference):
            return current
        return HamReference(owner, node.name)

    def _binary(self, op: str, left: Any, right: Any) -> Any:
        lt, rt = type_name(left), type_name(right)
        match op:
            case '==' | '!=':
                if lt != rt:
                    raise _type_error(f"cannot compare {lt} with {rt} using '{op}'")
                equal = left is right if lt == 'Function' else left == right
                return equal if op == '==' else not equal
            case '+':
                # Number + Number adds, String + String concatenates.
                if lt == rt and lt in ('Number', 'String'):
                    return left + right
            case '-' | '*' | '/':
                if lt == rt == 'Number':
                    if op == '-':
                        return left - right
                    if op == '*':
                        return left * right
                    if right == 0:
                        raise HamRuntimeError("division by zero")
                    if isinstance(left, int) and isinstance(right, int) and left % right == 0:
                        return left // right
                    return left / right
            case '<' | '>' | '<=' | '>=':
                if lt == rt and lt in ('Number', 'String'):
                    match op:
                        case '<':
                            return left < right
                        case '>':
                            return left > right
                        case '<=':
                            return left <= right
                        case '>=':
                            return left >= right
        raise _type_error(f"unsupported operand types for '{op}': {lt} and {rt}")

    # --- Calls ---

    def call(self, func: Any, args: List[Any], call_site=None) -> Any:
        """Calls a Ham function or builtin with already-evaluated arguments."""
        if isinstance(func, HamFunction):
            return self._call_function(func, args, call_site)
        if isinstance(func, Builtin):
            return self._call_builtin(func.name, func.func, args, call_site)
        raise _type_error(f"{type_name(func)} value is not callable").at(call_site)

    def _call_function(self, func: HamFunction, args: List[Any], call_site) -> Any:
        name = func.name or '<anonymous>'
        if len(args) != func.arity:
            raise HamRuntimeError(
                f"wrong arity: {name}() takes {func.arity} argument(s) but {len(args)} were given"
            ).at(call_site)
        self._push_frame(name, func, args, call_site)
        self._dbg("call", name, "depth", len(self.call_stack), "args", *map(self.printer.summarize, args))

        call_scope = Scope(parent=func.closure)
        for param, arg in zip(func.params, args):
            call_scope[param] = arg
        outcome = self.exec_block(func.body, call_scope)

        self._pop_frame()
        result = outcome.value if is_return(outcome) else None
        self._dbg("return", name, "->", self.printer.summarize(result))
        return result

    def _call_builtin(self, name: str, func: Callable[..., Any], args: List[Any], call_site,
                      receiver_offset: int = 0) -> Any:
        # Builtins and methods always see plain values.
        try:
            args = [deref(a) for a in args]
        except HamRuntimeError as e:
            raise e.at(call_site)
        sig = inspect.signature(func)
        try:
            sig.bind(*args)
        except TypeError:
            raise HamRuntimeError(self._arity_message(name, sig, len(args), receiver_offset)).at(call_site) from None
        self._push_frame(name, func, args, call_site)
        try:
            result = func(*args)
        except HamRuntimeError as e:
            raise e.at(call_site)
        self._pop_frame()
        return result

    def _arity_message(self, name: str, sig: inspect.Signature, given: int, offset: int) -> str:
        params = list(sig.parameters.values())
        positional = [p for p in params if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)]
        required = [p for p in positional if p.default is p.empty]
        given -= offset
        if any(p.kind == p.VAR_POSITIONAL for p in params):
            expected = f"at least {len(required) - offset}"
        elif len(required) != len(positional):
            expected = f"{len(required) - offset} to {len(positional) - offset}"
        else:
            expected = f"{len(positional) - offset}"
        return f"wrong arity: {name}() takes {expected} argument(s) but {given} were given"

    def _eval_method_call(self, node: MethodCall, scope: Scope) -> Any:
        held = self.eval(node.receiver, scope)
        args = [self.eval(arg, scope) for arg in node.args]
        try:
            receiver = deref(held)
        except HamRuntimeError as e:
            raise e.at(node)
        tag = type_name(receiver)
        method = self.methods.get((tag, node.method))
        if method is None:
            raise HamRuntimeError(f"unsupported method: {tag} has no method '{node.method}'").at(node)
        if method.mutates and not isinstance(node.receiver, (Identifier, Reference)):
            raise HamRuntimeError(
                f"'{node.method}' mutates its receiver and must be called on a variable"
            ).at(node)

        result = self._call_builtin(node.method, method.func, [receiver, *args], node, receiver_offset=1)

        if method.mutates:
            # Rebinds the variable in the scope that owns it, not a local copy;
            # a variable holding a reference writes through to its target.
            try:
                if isinstance(held, HamReference):
                    held.set(result)
                else:
                    scope.assign(node.receiver.name, result)
            except HamRuntimeError as e:
                raise e.at(node)
        return result

