"""
A printer for Ham values and AST nodes.
"""
import math
from decimal import Decimal

from ham.ham_ast import (
    Assign, BinaryOp, Call, FnLiteral, Identifier, Literal, MethodCall, Reference, UnaryOp,
)
from ham.ham_datatypes import Builtin, HamFunction, HamReference, HamRuntimeError

# Integers with more decimal digits than this cannot be converted to text.
MAX_DISPLAY_DIGITS = 4300
_DISPLAY_LIMIT = 10 ** MAX_DISPLAY_DIGITS


class Printer:
    """Formats Ham objects either for display or as Ham source.

    `display` is what `println` and `format` write: strings are raw text.
    `pformat` is used in diagnostics: strings are quoted and expressions
    are rendered back to source.
    """

    def __init__(self):
        self._handlers = self._create_handlers()

    def display(self, obj) -> str:
        if isinstance(obj, str):
            return obj
        return self.pformat(obj)

    def pformat(self, obj) -> str:
        """Public entry point to format an object."""
        handler = self._handlers.get(type(obj))
        if handler is None:
            return repr(obj)
        return handler(obj)

    def summarize(self, obj) -> str:
        """Like pformat, but stands in a placeholder for numbers too large to display."""
        try:
            return self.pformat(obj)
        except HamRuntimeError:
            return f"<Number of {obj.bit_length()} bits>"

    def _create_handlers(self):
        return {
            str: self._pformat_str,
            int: self._pformat_int,
            float: self._pformat_float,
            bool: self._pformat_bool,
            type(None): self._pformat_unit,
            HamFunction: self._pformat_function,
            Builtin: self._pformat_function,
            HamReference: lambda ref: f"&{ref.name}",
            Literal: self._pformat_literal,
            Identifier: lambda node: node.name,
            Reference: lambda node: f"&{node.name}",
            BinaryOp: self._pformat_binary,
            UnaryOp: lambda node: f"-{self._pformat_operand(node.operand)}",
            Assign: lambda node: f"{node.target.name} = {self.pformat(node.value)}",
            Call: self._pformat_call,
            MethodCall: self._pformat_method_call,
            FnLiteral: lambda node: f"fn({', '.join(node.params)}) {{ ... }}",
        }

    # --- Values ---

    def _pformat_str(self, obj):
        escaped = obj.replace('\\', '\\\\').replace('"', '\\"').replace('\n', '\\n').replace('\t', '\\t')
        return f'"{escaped}"'

    def _pformat_int(self, obj):
        if abs(obj) >= _DISPLAY_LIMIT:
            raise HamRuntimeError(f"number too large to display (more than {MAX_DISPLAY_DIGITS} digits)")
        return repr(obj)

    def _pformat_float(self, obj):
        # Plain decimal text, never exponent notation.
        if not math.isfinite(obj):
            return repr(obj)
        text = format(Decimal(repr(obj)), 'f')
        return text if '.' in text else f"{text}.0"

    def _pformat_bool(self, obj):
        return 'true' if obj else 'false'

    def _pformat_unit(self, obj):
        return 'unit'

    def _pformat_function(self, obj):
        return f"<fn {obj.name}>" if obj.name else "<fn>"

    # --- Expressions ---

    def _pformat_literal(self, node):
        return self.pformat(node.value)

    def _pformat_operand(self, node):
        if isinstance(node, (BinaryOp, Assign)):
            return f"({self.pformat(node)})"
        return self.pformat(node)

    def _pformat_binary(self, node):
        return f"{self._pformat_operand(node.left)} {node.op} {self._pformat_operand(node.right)}"

    def _pformat_args(self, args):
        return ', '.join(self.pformat(a) for a in args)

    def _pformat_call(self, node):
        return f"{self._pformat_operand(node.callee)}({self._pformat_args(node.args)})"

    def _pformat_method_call(self, node):
        return f"{self._pformat_operand(node.receiver)}.{node.method}({self._pformat_args(node.args)})"
