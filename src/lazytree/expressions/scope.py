"""Scoped name resolution.

Turns a name as written in an expression into the tree paths to try,
relative to the property being evaluated:

- ``name`` and ``.name`` search outward: the property's parent first, then
  each shallower ancestor, finally the root. The first existing path wins.
- ``..name`` (N+1 leading dots, N parent markers) skips straight to the
  N-th ancestor above the property's parent and is never searched.

Dotted names (``manager.name``) keep their tail: every candidate is the
scope joined with all of the name's parts.
"""

from dataclasses import dataclass

from lazytree.errors import OutOfBoundsParentReferenceError
from lazytree.paths import SIGIL, TreePath, intern_path


@dataclass(frozen=True)
class ScopedName:
    """A name reference with its parent-traversal markers split off.

    Attributes:
        parents: Number of parent markers (0 for a fallback search)
        parts: Dotted name segments
        raw: The name as written
    """

    parents: int
    parts: tuple[str, ...]
    raw: str

    @classmethod
    def parse(cls, text: str) -> "ScopedName":
        """Parse ``"...company.name"`` into parents=2, parts=("company", "name")."""
        raw = text.strip()
        dots = len(raw) - len(raw.lstrip(SIGIL))
        body = raw[dots:]
        if not body:
            raise ValueError(f"Reference '{text}' has no name")
        parts = tuple(body.split(SIGIL))
        if any(part == "" for part in parts):
            raise ValueError(f"Reference '{text}' has an empty segment")
        return cls(max(dots - 1, 0), parts, raw)

    @property
    def is_parent_reference(self) -> bool:
        return self.parents > 0


def candidate_paths(name: ScopedName, current: TreePath) -> list[TreePath]:
    """Paths to try, in order, for ``name`` referenced from ``current``.

    Args:
        name: The parsed reference
        current: Path of the property whose expression holds the reference

    Returns:
        Fallback search candidates innermost first, or the single target
        of a parent reference

    Raises:
        OutOfBoundsParentReferenceError: If a parent reference climbs above
            the outermost named ancestor

    Example:
        candidate_paths(ScopedName.parse("..name"), ("a", "b", "c", "d"))
        # -> [("a", "b", "name")]
    """
    scope = current[:-1]

    if name.is_parent_reference:
        available = max(len(scope) - 1, 0)
        if name.parents > available:
            raise OutOfBoundsParentReferenceError(
                name.raw, name.parents, available, current
            )
        return [intern_path(scope[: len(scope) - name.parents] + name.parts)]

    return [
        intern_path(scope[:depth] + name.parts)
        for depth in range(len(scope), -1, -1)
    ]
