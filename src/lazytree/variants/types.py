"""Core types for variant selection.

A variant candidate is a base identifier plus ordered suffix segments,
written ``base[:segment]*`` (``greeting:es:formal``, ``tool:3.4.5``).
Each segment is classified into exactly one dimension:

- lang: ISO 639-1 code with optional region (``es``, ``es-MX``)
- gender: ``m``, ``f`` or ``x``
- form: formality register (``casual`` ... ``honorific``)
- version: semantic version, up to three numeric components (``3.4.5``)
- custom: anything else, keyed by its own text
"""

import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any

from lazytree.paths import VARIANT_SEPARATOR


class Dimension(Enum):
    """Variant dimensions, well-known first."""

    LANG = "lang"
    GENDER = "gender"
    FORM = "form"
    VERSION = "version"
    CUSTOM = "custom"


DIMENSION_WEIGHTS: dict[Dimension, int] = {
    Dimension.LANG: 1000,
    Dimension.GENDER: 100,
    Dimension.VERSION: 75,
    Dimension.FORM: 50,
    Dimension.CUSTOM: 10,
}

# Dimensions with a small closed set of legal values. A candidate whose
# segment contradicts the active context in one of these is disqualified.
CLOSED_DIMENSIONS = frozenset({Dimension.GENDER, Dimension.FORM})

GENDERS = ("m", "f", "x")
FORMALITY_LEVELS = ("casual", "informal", "neutral", "polite", "formal", "honorific")
WELL_KNOWN_KEYS = tuple(d.value for d in Dimension if d is not Dimension.CUSTOM)

VERSION_PATTERN = re.compile(r"^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?$")

# Order matters only for readability; the patterns do not overlap.
VARIANT_PATTERNS: list[tuple[Dimension, re.Pattern[str]]] = [
    (Dimension.LANG, re.compile(r"^[a-z]{2}(-[A-Z]{2})?$")),
    (Dimension.GENDER, re.compile(r"^[mfx]$")),
    (Dimension.FORM, re.compile(r"^(" + "|".join(FORMALITY_LEVELS) + r")$")),
    (Dimension.VERSION, VERSION_PATTERN),
]


@dataclass(frozen=True, order=True)
class Version:
    """A semantic version of one to three numeric components."""

    components: tuple[int, ...]

    @classmethod
    def parse(cls, value: Any) -> "Version":
        """Parse a version from a string, sequence, mapping or Version.

        Accepts ``"3.4"``, ``"v3.4.5"``, ``(3, 4)``, ``3`` and
        ``{"major": 3, "minor": 4}``.

        Raises:
            ValueError: If the value is not a recognizable version
        """
        if isinstance(value, Version):
            return value

        if isinstance(value, Mapping):
            components: list[int] = []
            for key in ("major", "minor", "patch"):
                if value.get(key) is None:
                    break
                components.append(int(value[key]))
        elif isinstance(value, (tuple, list)):
            components = [int(c) for c in value]
        elif isinstance(value, bool):
            raise ValueError(f"Not a version: {value!r}")
        elif isinstance(value, (int, float, str)):
            match = VERSION_PATTERN.match(str(value).strip())
            if not match:
                raise ValueError(f"Not a version: {value!r}")
            components = [int(g) for g in match.groups() if g is not None]
        else:
            raise ValueError(f"Not a version: {value!r}")

        if not components or len(components) > 3 or any(c < 0 for c in components):
            raise ValueError(f"Not a version: {value!r}")
        return cls(tuple(components))

    def startswith(self, prefix: "Version") -> bool:
        """True when ``prefix`` matches this version's leading components."""
        size = len(prefix.components)
        return size <= len(self.components) and self.components[:size] == prefix.components

    def __str__(self) -> str:
        return ".".join(str(c) for c in self.components)


@dataclass(frozen=True)
class VariantSegment:
    """One classified suffix segment.

    Attributes:
        text: The segment as written
        dimension: The dimension it belongs to
        value: Normalized value (a Version for version segments, else text)
    """

    text: str
    dimension: Dimension
    value: Any

    @classmethod
    def classify(cls, text: str) -> "VariantSegment":
        for dimension, pattern in VARIANT_PATTERNS:
            if pattern.match(text):
                if dimension is Dimension.VERSION:
                    return cls(text, dimension, Version.parse(text))
                return cls(text, dimension, text)
        return cls(text, Dimension.CUSTOM, text)


@dataclass(frozen=True)
class VariantCandidate:
    """A base name plus its variant segments.

    Attributes:
        name: The full identifier (``greeting:es:formal``)
        base: The base name (``greeting``)
        segments: Classified suffix segments, in written order
    """

    name: str
    base: str
    segments: tuple[VariantSegment, ...] = ()

    @classmethod
    def parse(cls, name: str) -> "VariantCandidate":
        parts = name.split(VARIANT_SEPARATOR)
        segments = tuple(VariantSegment.classify(p) for p in parts[1:] if p)
        return cls(name=name, base=parts[0], segments=segments)

    @property
    def is_base(self) -> bool:
        return not self.segments


def parse_variant_name(name: str) -> VariantCandidate:
    """Convenience wrapper around VariantCandidate.parse."""
    return VariantCandidate.parse(name)


def _normalize(key: str, value: Any) -> Any:
    if key == Dimension.VERSION.value:
        try:
            return Version.parse(value)
        except ValueError:
            return value
    return value


class VariantContext(Mapping[str, Any]):
    """Immutable mapping from dimension name to value.

    Well-known keys are ``lang``, ``gender``, ``form`` and ``version``; any
    other key is a custom dimension. ``None`` values are dropped. Contexts
    are never mutated; ``extend`` returns a new one.

    Example:
        ctx = VariantContext(lang="es")
        ctx.extend({"form": "formal"})  # new context, ctx unchanged
    """

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any] | None = None, **kwargs: Any):
        merged = dict(data or {})
        merged.update(kwargs)
        self._data = MappingProxyType(
            {str(k): _normalize(str(k), v) for k, v in merged.items() if v is not None}
        )

    @classmethod
    def coerce(cls, value: "VariantContext | Mapping[str, Any] | None") -> "VariantContext":
        if isinstance(value, VariantContext):
            return value
        return cls(value)

    @classmethod
    def from_pairs(cls, pairs: Iterable[str]) -> "VariantContext":
        """Build a context from ``key=value`` strings."""
        data: dict[str, str] = {}
        for pair in pairs:
            key, sep, value = pair.partition("=")
            if not sep or not key.strip():
                raise ValueError(f"Expected key=value, got '{pair}'")
            data[key.strip()] = value.strip()
        return cls(data)

    def extend(self, other: Mapping[str, Any] | None) -> "VariantContext":
        """Return a new context with ``other`` layered over this one."""
        if not other:
            return self
        merged = dict(self._data)
        merged.update(other)
        return VariantContext(merged)

    def custom_values(self) -> set[str]:
        """String values of all custom (non well-known) dimensions."""
        return {
            str(v) for k, v in self._data.items() if k not in WELL_KNOWN_KEYS
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            k: str(v) if isinstance(v, Version) else v for k, v in self._data.items()
        }

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"VariantContext({dict(self._data)!r})"
