"""Deep merge for self-directive results."""

from collections.abc import Mapping
from typing import Any

from lazytree.errors import EvaluationError
from lazytree.paths import SELF_KEY, TreePath, twin_key


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``override`` onto ``base``; override wins at every depth.

    Nested mappings merge recursively, sequences and scalars are replaced.
    A key in ``override`` also displaces its twin in ``base`` so a static
    ``x`` and a directive ``.x`` never both survive.

    Example:
        deep_merge({"a": 1, "b": {"c": 2, "d": 3}}, {"b": {"c": 4}})
        # -> {"a": 1, "b": {"c": 4, "d": 3}}
    """
    result: dict[str, Any] = dict(base)

    for key, value in override.items():
        twin = twin_key(key)
        if twin is not None:
            result.pop(twin, None)

        existing = result.get(key)
        if isinstance(existing, Mapping) and isinstance(value, Mapping):
            result[key] = deep_merge(existing, value)
        else:
            result[key] = value

    return result


def merge_self_directive(
    node: Mapping[str, Any],
    evaluated: Any,
    path: TreePath | None = None,
) -> dict[str, Any]:
    """Merge a self-directive's result under the mapping's sibling properties.

    Raises:
        EvaluationError: If the self-directive did not produce a mapping
    """
    if not isinstance(evaluated, Mapping):
        raise EvaluationError(
            f"Self-directive must evaluate to an object, got {type(evaluated).__name__}",
            path,
        )

    siblings = {key: value for key, value in node.items() if key != SELF_KEY}
    merged = deep_merge(evaluated, siblings)
    merged.pop(SELF_KEY, None)
    return merged
