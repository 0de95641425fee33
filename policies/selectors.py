# policies/selectors.py
"""Translate a Kubernetes label selector into a Calico selector expression.

Kubernetes:
    {"matchLabels": {"tier": "prod"},
     "matchExpressions": [{"key": "app", "operator": "NotIn", "values": ["chat"]}]}

Calico:
    tier == 'prod' && app not in {'chat'}
"""

from __future__ import annotations

from typing import Any, Dict, List


class TranslationError(ValueError):
    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path


class MalformedSelector(TranslationError):
    pass


class InvalidOperator(TranslationError):
    pass


class MissingValues(TranslationError):
    pass


class UnexpectedValues(TranslationError):
    pass


SET_OPERATORS = {"In": "in", "NotIn": "not in"}
EXISTENCE_OPERATORS = {"Exists": "has", "DoesNotExist": "!has"}


def escape(value: str) -> str:
    # Backslashes first, otherwise the quote's own backslash gets doubled.
    return value.replace("\\", "\\\\").replace("'", "\\'")


def unescape(value: str) -> str:
    out: List[str] = []
    chars = iter(value)
    for c in chars:
        if c == "\\":
            c = next(chars, "\\")
        out.append(c)
    return "".join(out)


def _quote(value: str) -> str:
    return "'" + escape(value) + "'"


def _label_clauses(selector: Dict[str, Any]) -> List[str]:
    labels = selector.get("matchLabels")
    if labels is None:
        return []
    if not isinstance(labels, dict):
        raise MalformedSelector("matchLabels", "expected a mapping")

    if not all(isinstance(key, str) for key in labels):
        raise MalformedSelector("matchLabels", "expected string keys")

    clauses: List[str] = []
    # Sorted so the same selector always yields the same string.
    for key in sorted(labels):
        value = labels[key]
        if not isinstance(value, str):
            raise MalformedSelector(f"matchLabels[{key!r}]", "expected a string value")
        clauses.append(f"{key} == {_quote(value)}")
    return clauses


def _string_field(expr: Dict[str, Any], field: str, path: str) -> str:
    if field not in expr:
        raise MalformedSelector(f"{path}.{field}", "missing")
    value = expr[field]
    if not isinstance(value, str):
        raise MalformedSelector(f"{path}.{field}", "expected a string")
    return value


def _expression_clause(expr: Any, path: str) -> str:
    if not isinstance(expr, dict):
        raise MalformedSelector(path, "expected a mapping")

    key = _string_field(expr, "key", path)
    operator = _string_field(expr, "operator", path)

    if operator in SET_OPERATORS:
        values = expr.get("values")
        if values is None:
            raise MissingValues(f"{path}.values", f"required for operator {operator!r}")
        if not isinstance(values, list):
            raise MalformedSelector(f"{path}.values", "expected a list")
        quoted = []
        for j, value in enumerate(values):
            if not isinstance(value, str):
                raise MalformedSelector(f"{path}.values[{j}]", "expected a string")
            quoted.append(_quote(value))
        return f"{key} {SET_OPERATORS[operator]} {{{', '.join(quoted)}}}"

    if operator in EXISTENCE_OPERATORS:
        if "values" in expr:
            raise UnexpectedValues(f"{path}.values", f"not allowed for operator {operator!r}")
        return f"{EXISTENCE_OPERATORS[operator]}({key})"

    raise InvalidOperator(f"{path}.operator", f"unknown operator {operator!r}")


def _expression_clauses(selector: Dict[str, Any]) -> List[str]:
    expressions = selector.get("matchExpressions")
    if expressions is None:
        return []
    if not isinstance(expressions, list):
        raise MalformedSelector("matchExpressions", "expected a list")
    return [
        _expression_clause(expr, f"matchExpressions[{i}]")
        for i, expr in enumerate(expressions)
    ]


def translate(selector: Dict[str, Any]) -> str:
    """Return the Calico selector for a Kubernetes LabelSelector.

    An empty selector gives "", which Calico treats as matching everything.
    Raises a TranslationError subclass naming the offending path.
    """
    if not isinstance(selector, dict):
        raise MalformedSelector("<selector>", "expected a mapping")
    clauses = _label_clauses(selector) + _expression_clauses(selector)
    return " && ".join(clauses)
