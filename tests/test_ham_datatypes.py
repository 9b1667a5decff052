import pytest
from ham.ham_datatypes import (
    Scope, HamFunction, Builtin, Outcome, NORMAL, BREAK,
    returning, is_return, type_name, is_number, HamReference, deref,
    HamError, LexError, ParseError, HamRuntimeError, StackOverflow,
)
from ham.ham_ast import Block, Identifier

# --- Scope Tests ---

def test_scope_init():
    parent = Scope()
    child = Scope(parent=parent)
    assert child.parent is parent
    assert not child.bindings
    assert Scope().parent is None

def test_scope_setitem_getitem():
    scope = Scope()
    scope["a"] = 1
    assert scope["a"] == 1
    with pytest.raises(KeyError):
        _ = scope["b"]

def test_scope_rejects_non_string_keys():
    with pytest.raises(TypeError):
        Scope()[1] = "x"

def test_scope_chain_lookup_and_shadowing():
    parent = Scope()
    parent["a"] = 100
    parent["b"] = 200

    child = parent.child()
    child["b"] = 20  # shadow parent

    assert child["a"] == 100
    assert child["b"] == 20
    assert parent["b"] == 200
    assert "a" in child and "a" not in child.bindings

def test_scope_find_owner():
    root = Scope()
    root["x"] = 1
    mid = root.child()
    leaf = mid.child()
    assert leaf.find_owner("x") is root
    assert leaf.find_owner("nope") is None

def test_scope_assign_rebinds_in_owner():
    root = Scope()
    root["n"] = 0
    leaf = root.child().child()
    leaf.assign("n", 5)
    assert root["n"] == 5
    assert "n" not in leaf.bindings

def test_scope_assign_unbound_raises():
    with pytest.raises(KeyError):
        Scope().assign("ghost", 1)

def test_scope_len_and_iter_are_local():
    root = Scope()
    root["a"] = 1
    child = root.child()
    child["b"] = 2
    assert list(child) == ["b"]
    assert len(child) == 1

def test_scopes_compare_by_identity():
    a, b = Scope(), Scope()
    assert a != b
    assert a == a
    assert len({a, b}) == 2

# --- Callables ---

def test_ham_function_arity_and_repr():
    fn = HamFunction("add", ["a", "b"], Block([]), Scope())
    assert fn.arity == 2
    assert repr(fn) == "<HamFunction add(a, b)>"
    anon = HamFunction(None, [], Block([]), Scope())
    assert "<anonymous>" in repr(anon)

def test_builtin_is_callable():
    b = Builtin("double", lambda x: x * 2)
    assert b(4) == 8
    assert repr(b) == "<Builtin double>"

# --- Outcomes ---

def test_outcome_helpers():
    r = returning(3)
    assert is_return(r)
    assert not is_return(NORMAL)
    assert not is_return(BREAK)
    assert returning(None) == Outcome('return', None)
    assert repr(r) == "Outcome(return 3)"
    assert repr(BREAK) == "Outcome(break)"

# --- Value tags ---

@pytest.mark.parametrize("value, tag", [
    (1, "Number"),
    (2.5, "Number"),
    (True, "Boolean"),
    (False, "Boolean"),
    ("s", "String"),
    (None, "Unit"),
    (Builtin("f", print), "Function"),
])
def test_type_name(value, tag):
    assert type_name(value) == tag

def test_type_name_rejects_host_objects():
    with pytest.raises(TypeError):
        type_name([1, 2])

def test_booleans_are_not_numbers():
    assert is_number(3)
    assert not is_number(True)

# --- Errors ---

def test_error_kinds_and_str():
    assert str(LexError("bad", 1, 2)) == "LexError: bad (line 1, col 2)"
    assert str(ParseError("oops")) == "ParseError: oops"
    assert HamRuntimeError("x").kind == "RuntimeError"
    assert isinstance(StackOverflow("deep"), HamRuntimeError)
    assert isinstance(LexError("x"), HamError)

def test_runtime_error_at_keeps_first_location():
    node = Identifier("x", loc={'line': 3, 'col': 4, 'offset': 20})
    err = HamRuntimeError("boom").at(node)
    assert err.loc == {'line': 3, 'col': 4}
    assert err.node is node
    other = Identifier("y", loc={'line': 9, 'col': 9, 'offset': 99})
    err.at(other)
    assert err.line == 3 and err.node is node

# --- References ---

def test_reference_reads_and_writes_its_target():
    root = Scope()
    root["x"] = 1
    ref = HamReference(root, "x")
    assert ref.get() == 1
    ref.set(2)
    assert root["x"] == 2
    assert deref(ref) == 2
    assert deref(5) == 5
    assert repr(ref) == "<HamReference &x>"

def test_reference_chains_resolve_to_the_last_reference():
    root = Scope()
    root["x"] = 1
    to_x = HamReference(root, "x")
    root["y"] = to_x
    to_y = HamReference(root, "y")
    assert to_y.resolve() == to_x
    to_y.set(3)
    assert root.bindings["x"] == 3
    assert root.bindings["y"] is to_x

def test_references_compare_by_scope_and_name():
    a, b = Scope(), Scope()
    a["x"] = b["x"] = 0
    assert HamReference(a, "x") == HamReference(a, "x")
    assert HamReference(a, "x") != HamReference(b, "x")
    assert len({HamReference(a, "x"), HamReference(a, "x")}) == 1

def test_reference_cycle():
    root = Scope()
    root["x"] = HamReference(root, "x")
    with pytest.raises(HamRuntimeError) as exc:
        root["x"].get()
    assert exc.value.message == "reference cycle through 'x'"

def test_broken_reference():
    root = Scope()
    ref = HamReference(root, "gone")
    with pytest.raises(HamRuntimeError) as exc:
        ref.get()
    assert "broken reference" in exc.value.message

def test_scope_assign_writes_through_references():
    root = Scope()
    root["x"] = 1
    frame = root.child()
    frame["r"] = HamReference(root, "x")
    frame.assign("r", 10)
    assert root["x"] == 10
    other = Scope()
    other["z"] = 0
    frame.assign("r", HamReference(other, "z"))
    assert frame.bindings["r"] == HamReference(other, "z")
    assert root["x"] == 10

def test_reference_type_name():
    root = Scope()
    root["x"] = 1
    assert type_name(HamReference(root, "x")) == "Reference"
