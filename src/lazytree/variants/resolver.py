"""Variant path resolution: pick the best candidate for a base name."""

from collections.abc import Iterable, Mapping
from typing import Any

from lazytree.paths import VARIANT_SEPARATOR
from lazytree.variants.scorer import Score, score
from lazytree.variants.types import (
    Dimension,
    VariantCandidate,
    VariantContext,
    WELL_KNOWN_KEYS,
)


def _as_candidate(candidate: VariantCandidate | str) -> VariantCandidate:
    if isinstance(candidate, VariantCandidate):
        return candidate
    return VariantCandidate.parse(candidate)


def rank(
    base: str,
    candidates: Iterable[VariantCandidate | str],
    context: VariantContext | Mapping[str, Any] | None,
) -> list[tuple[VariantCandidate, Score]]:
    """Score every matchable candidate sharing ``base``, best first.

    Ordering is by points (descending), then extra segments (ascending),
    then declaration order; the sort is stable.
    """
    ctx = VariantContext.coerce(context)
    scored: list[tuple[VariantCandidate, Score]] = []
    for raw in candidates:
        candidate = _as_candidate(raw)
        if candidate.base != base:
            continue
        result = score(candidate, ctx)
        if result is not None:
            scored.append((candidate, result))
    scored.sort(key=lambda item: item[1].sort_key)
    return scored


def resolve(
    base: str,
    candidates: Iterable[VariantCandidate | str],
    context: VariantContext | Mapping[str, Any] | None,
) -> VariantCandidate | None:
    """Select the single best candidate for ``base``.

    Returns:
        The winning candidate, or None when no candidate shares the base
        name or none of them can match (callers then fall back to the
        unsuffixed base).

    Example:
        resolve("bio", ["bio", "bio:es", "bio:f", "bio:es:f"], {"lang": "es", "gender": "f"})
        # -> VariantCandidate(name="bio:es:f", ...)
    """
    ranked = rank(base, candidates, context)
    return ranked[0][0] if ranked else None


def serialize_variant_name(
    base: str, context: VariantContext | Mapping[str, Any] | None = None
) -> str:
    """Deterministic identifier for a base name under a context.

    Well-known dimensions come first in priority order, then custom values
    sorted by their dimension name: ``strings:es:f:formal:3.4:pirate``.
    """
    ctx = VariantContext.coerce(context)
    parts = [base]
    for dimension in (Dimension.LANG, Dimension.GENDER, Dimension.FORM, Dimension.VERSION):
        value = ctx.get(dimension.value)
        if value is None:
            continue
        parts.append(str(value))
    for key in sorted(k for k in ctx if k not in WELL_KNOWN_KEYS):
        parts.append(str(ctx[key]))
    return VARIANT_SEPARATOR.join(parts)
