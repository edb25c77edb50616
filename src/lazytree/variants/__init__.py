"""Variant selection for lazytree.

This module provides:
- VariantCandidate / VariantContext: parsed suffixed names and active context
- score: Variant Scorer (points plus extra-segment tiebreaker)
- resolve / rank: Variant Path Resolver over a set of candidates
- collect_context: Hierarchical Context Collector over a document tree
"""

from lazytree.variants.context import (
    DEFAULT_DECLARATION_KEY,
    collect_context,
    declared_context,
)
from lazytree.variants.resolver import rank, resolve, serialize_variant_name
from lazytree.variants.scorer import Score, score, version_bonus
from lazytree.variants.types import (
    DIMENSION_WEIGHTS,
    FORMALITY_LEVELS,
    GENDERS,
    WELL_KNOWN_KEYS,
    Dimension,
    VariantCandidate,
    VariantContext,
    VariantSegment,
    Version,
    parse_variant_name,
)

__all__ = [
    # Context
    "DEFAULT_DECLARATION_KEY",
    "collect_context",
    "declared_context",
    # Resolver
    "rank",
    "resolve",
    "serialize_variant_name",
    # Scorer
    "Score",
    "score",
    "version_bonus",
    # Types
    "DIMENSION_WEIGHTS",
    "FORMALITY_LEVELS",
    "GENDERS",
    "WELL_KNOWN_KEYS",
    "Dimension",
    "VariantCandidate",
    "VariantContext",
    "VariantSegment",
    "Version",
    "parse_variant_name",
]
