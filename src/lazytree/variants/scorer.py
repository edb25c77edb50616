"""Variant scoring.

Scores how well one candidate's segments match a variant context.

Weights (highest to lowest): lang 1000, gender 100, version prefix 75,
form 50, each custom dimension 10. A version match also earns a bonus in
[0, 1) that grows with the candidate's components beyond the requested
prefix, so among ``tool:3.4.5`` and ``tool:3.4.100`` a request for ``3.4``
prefers the higher patch without ever outranking a heavier dimension.
"""

from dataclasses import dataclass

from lazytree.variants.types import (
    CLOSED_DIMENSIONS,
    DIMENSION_WEIGHTS,
    Dimension,
    VariantCandidate,
    VariantContext,
    Version,
)

MAX_VERSION_BONUS = 0.99


@dataclass(frozen=True)
class Score:
    """Result of scoring one candidate.

    Attributes:
        points: Sum of matched dimension weights (higher wins)
        extra_count: Segments that did not match the context (lower wins)
    """

    points: float
    extra_count: int

    @property
    def sort_key(self) -> tuple[float, int]:
        return (-self.points, self.extra_count)


def version_bonus(candidate: Version, requested: Version) -> float:
    """Fractional tiebreaker for a candidate matching a requested prefix.

    The trailing components (those past the requested prefix) are folded
    into one number, most significant first, and mapped into [0, 0.99).
    """
    trailing = candidate.components[len(requested.components):]
    if not trailing:
        return 0.0
    specificity = sum(c / 1000**i for i, c in enumerate(trailing))
    return MAX_VERSION_BONUS * specificity / (specificity + 1)


def score(candidate: VariantCandidate, context: VariantContext) -> Score | None:
    """Score a candidate against a context.

    Returns:
        The score, or None when the candidate cannot match: it contradicts
        the context in a closed dimension (gender, form), or it carries
        segments of which none match.
    """
    if candidate.is_base:
        return Score(0, 0)

    points = 0.0
    extra = 0
    custom_values = context.custom_values()

    for segment in candidate.segments:
        dimension = segment.dimension
        weight = DIMENSION_WEIGHTS[dimension]

        if dimension is Dimension.CUSTOM:
            if segment.text in custom_values:
                points += weight
            else:
                extra += 1
            continue

        wanted = context.get(dimension.value)
        if wanted is None:
            extra += 1
            continue

        if dimension is Dimension.VERSION:
            if isinstance(wanted, Version) and segment.value.startswith(wanted):
                points += weight + version_bonus(segment.value, wanted)
            else:
                extra += 1
            continue

        if segment.value == wanted:
            points += weight
        elif dimension in CLOSED_DIMENSIONS:
            return None
        else:
            extra += 1

    if points == 0:
        return None
    return Score(points, extra)
