"""Hierarchical variant context collection.

The effective context for a path is the caller's base context with every
declaration found between the root and the path's parent layered on top,
shallow to deep. A level declares context through:

- a declaration mapping under ``@context`` (configurable), and
- well-known dimensions held as plain scalar properties (``lang``,
  ``gender``, ``form``, ``version``) when ``inherit_dimensions`` is on.

Deeper declarations override same-named keys but never delete keys set at
shallower levels.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from lazytree.paths import TreePath
from lazytree.variants.types import VariantContext, WELL_KNOWN_KEYS

DEFAULT_DECLARATION_KEY = "@context"


def _is_dimension_value(key: str, value: Any) -> bool:
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        return True
    # Versions may also be declared as {"major": 3, "minor": 4}
    return key == "version" and isinstance(value, Mapping)


def declared_context(
    node: Mapping[str, Any],
    declaration_key: str = DEFAULT_DECLARATION_KEY,
    inherit_dimensions: bool = True,
) -> dict[str, Any]:
    """Context entries declared directly on one mapping level."""
    declared: dict[str, Any] = {}
    if inherit_dimensions:
        for key in WELL_KNOWN_KEYS:
            value = node.get(key)
            if value is not None and _is_dimension_value(key, value):
                declared[key] = value

    declaration = node.get(declaration_key)
    if isinstance(declaration, Mapping):
        for key, value in declaration.items():
            if value is not None and _is_dimension_value(str(key), value):
                declared[str(key)] = value
    return declared


def collect_context(
    tree: Any,
    path: TreePath | Sequence[Any],
    base_context: VariantContext | Mapping[str, Any] | None = None,
    declaration_key: str = DEFAULT_DECLARATION_KEY,
    inherit_dimensions: bool = True,
) -> VariantContext:
    """Compute the effective variant context for ``path``.

    Walks the raw tree from the root to the parent of ``path``. The walk
    stops early at a segment that is not a literal child (for example a
    value produced by a directive), since nothing below it is declared
    in the tree.
    """
    context = VariantContext.coerce(base_context)
    node = tree

    for depth in range(len(path)):
        if isinstance(node, Mapping):
            context = context.extend(
                declared_context(node, declaration_key, inherit_dimensions)
            )
        if depth == len(path) - 1:
            break

        segment = path[depth]
        if isinstance(node, Mapping) and str(segment) in node:
            node = node[str(segment)]
        elif isinstance(node, list) and isinstance(segment, int) and 0 <= segment < len(node):
            node = node[segment]
        else:
            break

    return context
