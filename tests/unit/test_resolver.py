import pytest

from stepflow.errors import MissingVariableError, UnsupportedValueTypeError
from stepflow.resolver import (
    evaluate_condition,
    extract_placeholders,
    resolve_mapping,
    resolve_structured,
    resolve_text,
)


def test_resolve_text_substitutes_tokens():
    assert resolve_text("{{x}}", {"x": "a"}) == "a"
    assert resolve_text("cd {{dir}} && ls {{dir}}", {"dir": "/tmp"}) == "cd /tmp && ls /tmp"


def test_text_without_tokens_is_unchanged():
    text = "echo {not a token} {{ spaced }} {{}}"
    assert resolve_text(text, {}) == text


def test_missing_variable_names_the_token():
    with pytest.raises(MissingVariableError) as excinfo:
        resolve_text("hello {{x}}", {})
    assert excinfo.value.name == "x"


@pytest.mark.parametrize(
    "value, expected",
    [(3, "3"), (2.5, "2.5"), (True, "true"), (False, "false"), ("", "")],
)
def test_scalar_rendering(value, expected):
    assert resolve_text("{{v}}", {"v": value}) == expected


@pytest.mark.parametrize("value, type_name", [([1], "array"), ({"a": 1}, "object"), (None, "null")])
def test_unsupported_values(value, type_name):
    with pytest.raises(UnsupportedValueTypeError) as excinfo:
        resolve_text("{{v}}", {"v": value})
    assert excinfo.value.name == "v"
    assert excinfo.value.type_name == type_name


def test_substitution_is_single_pass():
    assert resolve_text("{{a}}", {"a": "{{b}}", "b": "nope"}) == "{{b}}"


def test_resolve_structured_preserves_shape():
    value = {"a": "{{x}}", "b": [1, "{{x}}"], "c": {"{{x}}": None}}
    assert resolve_structured(value, {"x": "v"}) == {"a": "v", "b": [1, "v"], "c": {"{{x}}": None}}


def test_resolve_mapping():
    assert resolve_mapping({"HOME": "/home/{{user}}"}, {"user": "ada"}) == {"HOME": "/home/ada"}


def test_extract_placeholders_in_order():
    assert extract_placeholders("{{b}} {{a}} {{b}}") == ["b", "a", "b"]


@pytest.mark.parametrize(
    "expression, expected",
    [
        (None, True),
        ("  ", True),
        ("{{flag}}", True),
        ("{{off}}", False),
        ("{{answer}} == yes", True),
        ("{{answer}} != yes", False),
        ("'{{answer}}' == \"yes\"", True),
        ("{{empty}}", False),
        ("no", False),
    ],
)
def test_evaluate_condition(expression, expected):
    context = {"flag": True, "off": "false", "answer": "yes", "empty": ""}
    assert evaluate_condition(expression, context) is expected


def test_condition_with_missing_variable_raises():
    with pytest.raises(MissingVariableError):
        evaluate_condition("{{nope}} == 1", {})
