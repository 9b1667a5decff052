"""
Defines the core data types for the Ham language runtime.

This module provides the scope chain, the function values the evaluator
works with, the control-flow outcomes threaded through statement
execution, and the error hierarchy shared by every stage of the pipeline.
"""

from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING
import collections.abc

if TYPE_CHECKING:
    from ham.ham_ast import Block


# =================================================================
# Errors
# =================================================================

class HamError(Exception):
    """Base class for every error surfaced by the Ham core."""
    kind = "Error"

    def __init__(self, message: str, line: Optional[int] = None, col: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.line = line
        self.col = col

    @property
    def loc(self) -> Optional[Dict[str, int]]:
        if self.line is None:
            return None
        return {'line': self.line, 'col': self.col}

    def __str__(self) -> str:
        if self.line is not None:
            return f"{self.kind}: {self.message} (line {self.line}, col {self.col})"
        return f"{self.kind}: {self.message}"


class LexError(HamError):
    """Unrecognized character or unterminated string literal."""
    kind = "LexError"


class ParseError(HamError):
    """Unexpected or missing token."""
    kind = "ParseError"


class HamRuntimeError(HamError):
    """Raised while evaluating a program (undefined names, type errors, arity...)."""
    kind = "RuntimeError"

    def __init__(self, message: str, line: Optional[int] = None, col: Optional[int] = None,
                 node: Any = None):
        super().__init__(message, line, col)
        self.node = node

    def at(self, node) -> 'HamRuntimeError':
        """Attaches the position of `node` unless a position is already known."""
        if self.line is None and node is not None:
            loc = getattr(node, 'loc', None) or {}
            self.line = loc.get('line')
            self.col = loc.get('col')
            self.node = node
        return self


class StackOverflow(HamRuntimeError):
    """The configured maximum call depth was exceeded."""


# =================================================================
# Scopes
# =================================================================

class Scope(collections.abc.MutableMapping):
    """A lexical environment: local bindings plus an optional parent.

    Lookup (`scope[name]`, `name in scope`) walks the chain from this
    scope to the root and stops at the first match. Writes (`scope[name] =
    value`) always bind locally, which is what `let` and parameter binding
    need. `assign` rebinds an existing name in the scope that owns it.
    """
    def __init__(self, parent: Optional['Scope'] = None):
        self.bindings: Dict[str, Any] = {}
        self.parent = parent

    def find_owner(self, key: str) -> Optional['Scope']:
        """Finds the Scope in the chain (self → parent → ...) that owns key."""
        scope = self
        while scope is not None:
            if key in scope.bindings:
                return scope
            scope = scope.parent
        return None

    def __getitem__(self, key: str) -> Any:
        owner = self.find_owner(key)
        if owner is None:
            raise KeyError(key)
        return owner.bindings[key]

    def __setitem__(self, key: str, value: Any):
        if not isinstance(key, str):
            raise TypeError(f"Scope key must be a str, not {type(key)}")
        self.bindings[key] = value

    def __delitem__(self, key: str):
        del self.bindings[key]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.find_owner(key) is not None

    def __iter__(self):
        return iter(self.bindings)

    def __len__(self) -> int:
        return len(self.bindings)

    def assign(self, key: str, value: Any):
        """Rebinds `key` where it is already bound. Raises KeyError if unbound.

        A binding that holds a HamReference is written through to its
        target, unless the new value is itself a reference.
        """
        owner = self.find_owner(key)
        if owner is None:
            raise KeyError(key)
        current = owner.bindings[key]
        if isinstance(current, HamReference) and not isinstance(value, HamReference):
            current.set(value)
        else:
            owner.bindings[key] = value

    def child(self) -> 'Scope':
        return Scope(parent=self)

    # Scopes are compared by identity, not by contents.
    __eq__ = object.__eq__
    __hash__ = object.__hash__

    def __repr__(self) -> str:
        keys = ', '.join(self.bindings.keys())
        parent_id = f", parent=#{id(self.parent)}" if self.parent else ""
        return f"<Scope bindings=[{keys}]{parent_id}>"


# =================================================================
# Callables
# =================================================================

class HamCallable:
    """Base class for all values callable within Ham."""
    name: Optional[str] = None


class HamFunction(HamCallable):
    """A function defined in Ham with `fn`.

    This is a closure, bundling the parameter names, the body (a shared
    reference into the AST) and the scope in which it was defined.
    """
    def __init__(self, name: Optional[str], params: List[str], body: 'Block', closure: Scope):
        self.name = name
        self.params = params
        self.body = body
        self.closure = closure

    @property
    def arity(self) -> int:
        return len(self.params)

    def __repr__(self) -> str:
        label = self.name or "<anonymous>"
        return f"<HamFunction {label}({', '.join(self.params)})>"


class Builtin(HamCallable):
    """A host-provided function bound into the root scope."""
    def __init__(self, name: str, func: Callable[..., Any]):
        self.name = name
        self.func = func

    def __call__(self, *args):
        return self.func(*args)

    def __repr__(self) -> str:
        return f"<Builtin {self.name}>"


# =================================================================
# References
# =================================================================

class HamReference:
    """A `&name` value: one binding in one scope, shared by every holder.

    Reading a variable that holds a reference yields the target's value;
    assigning to it writes the target.
    """
    __slots__ = ('scope', 'name')

    def __init__(self, scope: Scope, name: str):
        self.scope = scope
        self.name = name

    def resolve(self) -> 'HamReference':
        """Follows references held by the target binding to the last one."""
        ref, seen = self, set()
        while True:
            if ref in seen:
                raise HamRuntimeError(f"reference cycle through '{ref.name}'")
            seen.add(ref)
            if ref.name not in ref.scope.bindings:
                raise HamRuntimeError(f"broken reference: '{ref.name}' is no longer bound")
            target = ref.scope.bindings[ref.name]
            if not isinstance(target, HamReference):
                return ref
            ref = target

    def get(self) -> Any:
        ref = self.resolve()
        return ref.scope.bindings[ref.name]

    def set(self, value: Any):
        ref = self.resolve()
        ref.scope.bindings[ref.name] = value

    def __eq__(self, other):
        if not isinstance(other, HamReference):
            return NotImplemented
        return self.scope is other.scope and self.name == other.name

    def __hash__(self):
        return hash((id(self.scope), self.name))

    def __repr__(self) -> str:
        return f"<HamReference &{self.name}>"


def deref(value: Any) -> Any:
    """The value a reference points at; any other value unchanged."""
    if isinstance(value, HamReference):
        return value.get()
    return value


# =================================================================
# Execution outcomes
# =================================================================

class Outcome:
    """The result of executing one statement.

    `status` is one of 'normal', 'return' or 'break'. Only 'return'
    carries a meaningful `value`.
    """
    __slots__ = ('status', 'value')

    def __init__(self, status: str, value: Any = None):
        self.status = status
        self.value = value

    def __repr__(self) -> str:
        if self.status == 'return':
            return f"Outcome(return {self.value!r})"
        return f"Outcome({self.status})"

    def __eq__(self, other):
        if not isinstance(other, Outcome):
            return NotImplemented
        return self.status == other.status and self.value == other.value


NORMAL = Outcome('normal')
BREAK = Outcome('break')


def returning(value: Any) -> Outcome:
    return Outcome('return', value)


def is_return(x) -> bool:
    return isinstance(x, Outcome) and x.status == 'return'


# =================================================================
# Value tags
# =================================================================

def type_name(value: Any) -> str:
    """Returns the runtime tag of a Ham value."""
    # bool is checked first: it is an int subclass but never a Number.
    if isinstance(value, bool):
        return "Boolean"
    if isinstance(value, (int, float)):
        return "Number"
    if isinstance(value, str):
        return "String"
    if value is None:
        return "Unit"
    if isinstance(value, HamCallable):
        return "Function"
    if isinstance(value, HamReference):
        return "Reference"
    raise TypeError(f"not a Ham value: {value!r}")


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
