"""Placeholder substitution and step condition evaluation.

Tokens have the form ``{{identifier}}`` where the identifier consists of
letters, digits and underscores. Substitution is single pass: a substituted
value is never scanned for further tokens.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Mapping, Optional

from .errors import MissingVariableError, UnsupportedValueTypeError

PLACEHOLDER_PATTERN = re.compile(r"\{\{([A-Za-z0-9_]+)\}\}")

_FALSE_LITERALS = {"", "false", "0", "no", "n", "off"}


def render_value(name: str, value: Any) -> str:
    """Render a context value as placeholder replacement text."""
    # bool first: bool is a subclass of int
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return json.dumps(value)
    raise UnsupportedValueTypeError(name, _type_name(value))


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def resolve_text(text: str, context: Mapping[str, Any]) -> str:
    """Substitute every ``{{name}}`` token in ``text`` from ``context``.

    Raises:
        MissingVariableError: a token names a variable absent from ``context``.
        UnsupportedValueTypeError: the variable holds an array, object or null.
    """

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in context:
            raise MissingVariableError(name)
        return render_value(name, context[name])

    return PLACEHOLDER_PATTERN.sub(_replace, text)


def resolve_structured(value: Any, context: Mapping[str, Any]) -> Any:
    """Apply :func:`resolve_text` to every string leaf of ``value``.

    Mapping keys and non-string leaves are left untouched; container shapes are
    preserved.
    """
    if isinstance(value, str):
        return resolve_text(value, context)
    if isinstance(value, Mapping):
        return {key: resolve_structured(item, context) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [resolve_structured(item, context) for item in value]
    return value


def resolve_mapping(values: Mapping[str, str], context: Mapping[str, Any]) -> Dict[str, str]:
    """Resolve the values of a flat string mapping such as an environment."""
    return {key: resolve_text(item, context) for key, item in values.items()}


def extract_placeholders(text: str) -> List[str]:
    """Return token names found in ``text`` in order of appearance."""
    return [match.group(1) for match in PLACEHOLDER_PATTERN.finditer(text)]


def _unquote(text: str) -> str:
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return text[1:-1]
    return text


def evaluate_condition(expression: Optional[str], context: Mapping[str, Any]) -> bool:
    """Decide whether a step guarded by ``expression`` should run.

    Supports a single ``==`` or ``!=`` comparison between two text operands, or
    a plain truthiness test. A blank expression always passes.
    """
    if expression is None or not expression.strip():
        return True

    resolved = resolve_text(expression, context)
    for operator in ("!=", "=="):
        if operator in resolved:
            left, right = resolved.split(operator, 1)
            equal = _unquote(left) == _unquote(right)
            return not equal if operator == "!=" else equal

    return _unquote(resolved).lower() not in _FALSE_LITERALS
