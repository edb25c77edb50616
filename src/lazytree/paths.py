"""Tree paths and key classification.

A TreePath is a tuple of segments from the document root. String segments
are interned so equal paths share segment objects and hash cheaply; the
tuples themselves serve as cache and dependency-graph keys.

Key kinds inside a mapping:
- static: ``name`` or ``name:es:formal`` holds a literal value
- directive: ``.name`` or ``.name:es`` holds an expression for ``name``
- self-directive: the bare ``.`` key, merged into the mapping itself
"""

import sys
from typing import Iterable, Union

Segment = Union[str, int]
TreePath = tuple[Segment, ...]

ROOT: TreePath = ()
SIGIL = "."
SELF_KEY = "."
VARIANT_SEPARATOR = ":"


def intern_path(segments: Iterable[Segment]) -> TreePath:
    """Build a TreePath, interning string segments."""
    return tuple(
        sys.intern(segment) if isinstance(segment, str) else segment
        for segment in segments
    )


def parse_path(path: "str | Iterable[Segment] | None") -> TreePath:
    """Parse a dotted path string (or a sequence of segments) into a TreePath.

    A leading ``.`` addresses a directive property by its expression key
    (``".sum"`` is the same path as ``"sum"``), and ``"."`` alone is the root.
    Purely numeric segments become list indices.
    """
    if path is None:
        return ROOT
    if not isinstance(path, str):
        return intern_path(path)

    text = path.strip()
    if text in ("", SELF_KEY):
        return ROOT
    if text.startswith(SIGIL):
        text = text[1:]

    segments: list[Segment] = []
    for part in text.split("."):
        if part == "":
            raise ValueError(f"Empty segment in path '{path}'")
        segments.append(int(part) if part.isdigit() else part)
    return intern_path(segments)


def format_path(path: TreePath) -> str:
    """Render a TreePath as a dotted string."""
    if not path:
        return "(root)"
    return ".".join(str(segment) for segment in path)


def is_directive_key(key: str) -> bool:
    """True for ``.name`` style keys (the bare self-directive excluded)."""
    return key.startswith(SIGIL) and key != SELF_KEY


def strip_sigil(key: str) -> str:
    """Drop the directive sigil from a key, leaving any variant suffix."""
    return key[1:] if is_directive_key(key) else key


def property_name(key: str) -> str:
    """The property a key addresses: no sigil and no variant suffix."""
    return strip_sigil(key).split(VARIANT_SEPARATOR, 1)[0]


def is_descendant(path: TreePath, ancestor: TreePath) -> bool:
    """True when ``path`` lies strictly below ``ancestor``."""
    return len(path) > len(ancestor) and path[: len(ancestor)] == ancestor


def twin_key(key: str) -> str | None:
    """The key addressing the same property in the other form (``x`` <-> ``.x``)."""
    if key == SELF_KEY:
        return None
    if is_directive_key(key):
        return key[1:]
    return SIGIL + key
