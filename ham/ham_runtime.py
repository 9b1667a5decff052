# ham_runtime.py

import inspect
import os
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from ham.ham_ast import Expr
from ham.ham_datatypes import (
    Builtin, HamError, HamRuntimeError, ParseError, Scope, is_number, type_name,
)
from ham.ham_interpreter import DEFAULT_MAX_CALL_DEPTH, Evaluator, Method, MethodTable
from ham.ham_lexer import Lexer
from ham.ham_parser import Parser
from ham.ham_printer import Printer

# Innermost frames shown in a stacktrace; deep recursion is elided in the middle.
STACKTRACE_FRAMES = 12


# ===================================================================
# 1. The Standard Library
# ===================================================================

class StdLib:
    """Python implementations of the Ham builtin functions.

    Every method named `_name` is bound into the root scope as `name`.
    """
    def __init__(self, evaluator: Evaluator):
        self.evaluator = evaluator
        self.printer = evaluator.printer
        evaluator.methods.update(METHODS)

    def bind(self, scope: Scope):
        for name, member in inspect.getmembers(self):
            if name.startswith('_') and not name.startswith('__') and callable(member):
                ham_name = name[1:]
                scope[ham_name] = Builtin(ham_name, member)

    # --- Output ---
    def _println(self, *values):
        self.evaluator.write(''.join(self.printer.display(v) for v in values))

    def _print(self, *values):
        self.evaluator.write(' '.join(self.printer.display(v) for v in values), end='')

    # --- Strings ---
    def _format(self, template, *args):
        if not isinstance(template, str):
            raise HamRuntimeError(f"type mismatch: format() template must be a String, got {type_name(template)}")
        placeholders = template.count('{}')
        if placeholders != len(args):
            raise HamRuntimeError(
                f"format() template has {placeholders} placeholder(s) but {len(args)} argument(s) were given"
            )
        parts = template.split('{}')
        out = [parts[0]]
        for arg, rest in zip(args, parts[1:]):
            out.append(self.printer.display(arg))
            out.append(rest)
        return ''.join(out)

    # --- Time ---
    def _wait(self, ms):
        if not is_number(ms):
            raise HamRuntimeError(f"type mismatch: wait() expects a Number of milliseconds, got {type_name(ms)}")
        if ms < 0:
            raise HamRuntimeError(f"wait() expects a non-negative duration, got {self.printer.summarize(ms)}")
        try:
            time.sleep(ms / 1000)
        except (OverflowError, ValueError):
            raise HamRuntimeError(f"wait() duration is out of range: {self.printer.summarize(ms)}") from None


# ===================================================================
# 2. Value methods, keyed by (value tag, method name)
# ===================================================================

def _number_sum(receiver, amount):
    if not is_number(amount):
        raise HamRuntimeError(f"type mismatch: expected a Number argument, got {type_name(amount)}")
    try:
        return receiver + amount
    except OverflowError:
        raise HamRuntimeError("numeric overflow in 'sum'") from None


def _string_len(receiver):
    return len(receiver)


METHODS: MethodTable = {
    ('Number', 'sum'): Method(_number_sum),
    ('Number', 'mut_sum'): Method(_number_sum, mutates=True),
    ('String', 'len'): Method(_string_len),
}


# ===================================================================
# 3. Script Execution
# ===================================================================

# Source position of an error: {'line': ..., 'col': ...}.
Location = Dict[str, Any]


@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_kind: Optional[str] = None
    error_token: Optional[Location] = None
    side_effects: List[Dict] = field(default_factory=list)

    @property
    def output(self) -> str:
        """All stdout writes concatenated in order."""
        return ''.join(
            e['message'] + e.get('end', '\n')
            for e in self.side_effects if e.get('topics') == ['stdout']
        )

    def format_error(self) -> str:
        """Formats an error message with line and column if available."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_token and 'line' in self.error_token and "(line " not in msg:
            line = self.error_token.get('line')
            col = self.error_token.get('col')
            col_info = f", col {col}" if col is not None else ""
            return f"Error on line {line}{col_info}: {msg}"
        return msg


def default_max_call_depth() -> int:
    """Reads HAM_MAX_CALL_DEPTH, falling back to the built-in default."""
    raw = os.environ.get("HAM_MAX_CALL_DEPTH")
    if not raw:
        return DEFAULT_MAX_CALL_DEPTH
    if not raw.isdigit() or int(raw) == 0:
        raise ValueError(f"HAM_MAX_CALL_DEPTH must be a positive integer, got {raw!r}")
    return int(raw)


class ScriptRunner:
    """Lexes, parses and executes Ham code against one root scope."""

    def __init__(self, max_call_depth: Optional[int] = None, output=None):
        self.max_call_depth = max_call_depth or default_max_call_depth()
        self.root_scope = Scope()
        self.printer = Printer()
        self.evaluator = Evaluator(max_call_depth=self.max_call_depth)
        self.evaluator.output = output

        # Load the builtins once; top-level bindings persist across runs.
        StdLib(self.evaluator).bind(self.root_scope)

    def _source_context(self, source: str, line: int, col: Optional[int], radius: int = 2) -> str:
        lines = source.splitlines()
        if not line or line < 1 or line > len(lines):
            return ""
        start = max(1, line - radius)
        end = min(len(lines), line + radius)
        width = len(str(end))
        out = []
        for i in range(start, end + 1):
            prefix = ">" if i == line else " "
            ln = str(i).rjust(width)
            out.append(f"{prefix} {ln} | {lines[i - 1]}")
            if i == line and col is not None:
                caret = " " * max(col - 1, 0)
                out.append(f"  {' ' * width} | {caret}^")
        return "\n".join(out)

    def _format_stacktrace(self) -> str:
        stack = self.evaluator.call_stack
        if not stack:
            return ""
        frames = []
        for frame in stack:
            args = " ".join(self.printer.summarize(a) for a in frame.get('args') or [])
            frames.append(f"({frame['name']} {args})" if args else f"({frame['name']})")
        if len(frames) > STACKTRACE_FRAMES:
            hidden = len(frames) - STACKTRACE_FRAMES
            frames = frames[:2] + [f"... {hidden} more ..."] + frames[-(STACKTRACE_FRAMES - 2):]
        return "Ham stacktrace: " + " ".join(frames)

    def _format_error(self, e: HamError, source: str) -> str:
        msg = str(e)
        offender = getattr(e, 'node', None)
        if isinstance(offender, Expr):
            msg = f"{msg}\nIn expression: {self.printer.pformat(offender)}"
        if e.line is not None:
            context = self._source_context(source, e.line, e.col)
            if context:
                msg = f"{msg}\n{context}"
        if isinstance(e, HamRuntimeError):
            st = self._format_stacktrace()
            if st:
                msg += "\n" + st
        return msg

    def parse(self, source_code: str):
        try:
            return Parser(Lexer(source_code)).parse_program()
        except RecursionError:
            raise ParseError("program nested too deeply") from None

    def handle_script(self, source_code: str) -> 'ExecutionResult':
        """The main entry point to execute a script."""
        self.evaluator.side_effects = []
        self.evaluator.call_stack.clear()
        try:
            program = self.parse(source_code)
            value = self.evaluator.run(program, self.root_scope)
            return ExecutionResult(
                status='success',
                value=value,
                side_effects=self.evaluator.side_effects,
            )
        except HamError as e:
            self.evaluator._dbg("error", e.kind, e.message)
            err_msg = self._format_error(e, source_code)
            self.evaluator.side_effects.append({'topics': ['stderr'], 'message': err_msg})
            return ExecutionResult(
                status='error',
                error_message=err_msg,
                error_kind=e.kind,
                error_token=e.loc,
                side_effects=self.evaluator.side_effects,
            )


def evaluate(source_code: str, max_call_depth: Optional[int] = None, output=None) -> Any:
    """Runs `source_code` in a fresh runner and returns its final value.

    Raises the first LexError, ParseError or HamRuntimeError encountered.
    """
    runner = ScriptRunner(max_call_depth=max_call_depth, output=output)
    program = runner.parse(source_code)
    runner.evaluator.call_stack.clear()
    return runner.evaluator.run(program, runner.root_scope)

