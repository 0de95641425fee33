# policies/document.py
from __future__ import annotations

from typing import Any, Dict, Sequence

# Scalars a template may contain (what yaml.safe_load produces for plain YAML).
SCALARS = (str, bool, int, float, type(None))


class UnsupportedValue(TypeError):
    """A document tree holds a value that is not a mapping, list or plain scalar."""


class PathError(KeyError):
    pass


def deep_clone(value: Any) -> Any:
    """Recursive copy of a dict/list/scalar tree.

    Anything else (dates, sets, custom objects) is a programming error in how
    the tree was built, so it raises instead of being shared by reference.
    """
    if isinstance(value, dict):
        return {k: deep_clone(v) for k, v in value.items()}
    if isinstance(value, list):
        return [deep_clone(v) for v in value]
    if isinstance(value, SCALARS):
        return value
    raise UnsupportedValue(f"can't deep copy {type(value).__name__}")


def check_tree(value: Any, path: str = "") -> None:
    """Raise UnsupportedValue naming the first unclonable node."""
    if isinstance(value, dict):
        for k, v in value.items():
            if not isinstance(k, str):
                raise UnsupportedValue(f"{path or '<root>'}: non-string key {k!r}")
            check_tree(v, f"{path}.{k}" if path else k)
    elif isinstance(value, list):
        for i, v in enumerate(value):
            check_tree(v, f"{path}[{i}]")
    elif not isinstance(value, SCALARS):
        raise UnsupportedValue(f"{path or '<root>'}: can't deep copy {type(value).__name__}")


def get_path(doc: Dict[str, Any], path: Sequence[str]) -> Any:
    node: Any = doc
    for i, key in enumerate(path):
        if not isinstance(node, dict):
            raise PathError(".".join(path[:i]) or "<root>")
        if key not in node:
            return None
        node = node[key]
    return node


def set_path(doc: Dict[str, Any], path: Sequence[str], value: Any) -> None:
    if not path:
        raise PathError("<empty path>")
    node = doc
    for i, key in enumerate(path[:-1]):
        child = node.get(key)
        if child is None:
            child = {}
            node[key] = child
        elif not isinstance(child, dict):
            raise PathError(".".join(path[: i + 1]))
        node = child
    node[path[-1]] = value
