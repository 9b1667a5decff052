import pytest
from ham.ham_printer import Printer
from ham.ham_parser import parse
from ham.ham_datatypes import Builtin, HamFunction, HamReference, HamRuntimeError, Scope
from ham.ham_ast import Block


@pytest.fixture
def printer():
    return Printer()


def expr(src):
    return parse(src).statements[0].expr


@pytest.mark.parametrize("value, shown", [
    (42, "42"),
    (2.5, "2.5"),
    (3.0, "3.0"),
    (True, "true"),
    (False, "false"),
    (None, "unit"),
    ("raw text", "raw text"),
])
def test_display(printer, value, shown):
    assert printer.display(value) == shown


def test_pformat_quotes_and_escapes_strings(printer):
    assert printer.pformat('say "hi"\n\ttab\\') == r'"say \"hi\"\n\ttab\\"'


def test_functions(printer):
    assert printer.pformat(HamFunction("add", ["a", "b"], Block([]), Scope())) == "<fn add>"
    assert printer.pformat(HamFunction(None, [], Block([]), Scope())) == "<fn>"
    assert printer.display(Builtin("println", print)) == "<fn println>"


def test_unknown_objects_fall_back_to_repr(printer):
    assert printer.pformat([1, 2]) == "[1, 2]"


@pytest.mark.parametrize("src, rendered", [
    ("1 + 2", "1 + 2"),
    ("(1 + 2) * x", "(1 + 2) * x"),
    ("1 + 2 * x", "1 + (2 * x)"),
    ("-x", "-x"),
    ("-(a + b)", "-(a + b)"),
    ('f(1, "a")', 'f(1, "a")'),
    ("n.mut_sum(1)", "n.mut_sum(1)"),
    ("f(&x)", "f(&x)"),
    ("&n.mut_sum(1)", "&n.mut_sum(1)"),
    ("(a + b).sum(2)", "(a + b).sum(2)"),
    ("a = b = 1", "a = b = 1"),
    ("true == false", "true == false"),
    ("fn(a, b) { return a }", "fn(a, b) { ... }"),
    ('println(format("Value is {}", n))', 'println(format("Value is {}", n))'),
])
def test_expressions_render_back_to_source(printer, src, rendered):
    assert printer.pformat(expr(src)) == rendered


@pytest.mark.parametrize("value, shown", [
    (1e16, "10000000000000000.0"),
    (1.5e20, "150000000000000000000.0"),
    (1e-20, "0.00000000000000000001"),
    (-2.5e-7, "-0.00000025"),
    (0.1, "0.1"),
    (float("inf"), "inf"),
    (float("-inf"), "-inf"),
])
def test_floats_display_without_exponents(printer, value, shown):
    assert printer.display(value) == shown


def test_reference_values(printer):
    scope = Scope()
    scope["x"] = 1
    assert printer.pformat(HamReference(scope, "x")) == "&x"


def test_integers_too_large_to_display(printer):
    assert printer.display(10 ** 4299) == "1" + "0" * 4299
    with pytest.raises(HamRuntimeError) as exc:
        printer.display(-(10 ** 5000))
    assert "number too large to display" in exc.value.message
    assert printer.summarize(2 ** 20000) == "<Number of 20001 bits>"
    assert printer.summarize(7) == "7"
