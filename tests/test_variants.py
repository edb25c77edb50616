"""Tests for variant selection.

Tests cover:
- Segment classification and name parsing
- Scorer: weights, disqualification, version bonus
- Resolver: tie-breaking and determinism
- Context collection over a document tree
"""

import pytest

from lazytree.variants import (
    Dimension,
    Score,
    VariantCandidate,
    VariantContext,
    VariantSegment,
    Version,
    collect_context,
    declared_context,
    rank,
    resolve,
    score,
    serialize_variant_name,
)


# =============================================================================
# Types
# =============================================================================


class TestClassification:
    @pytest.mark.parametrize(
        "text,dimension",
        [
            ("es", Dimension.LANG),
            ("es-MX", Dimension.LANG),
            ("f", Dimension.GENDER),
            ("x", Dimension.GENDER),
            ("formal", Dimension.FORM),
            ("casual", Dimension.FORM),
            ("3.4.5", Dimension.VERSION),
            ("v2", Dimension.VERSION),
            ("pirate", Dimension.CUSTOM),
            ("ES", Dimension.CUSTOM),
        ],
    )
    def test_classify(self, text, dimension):
        assert VariantSegment.classify(text).dimension is dimension

    def test_parse_candidate(self):
        candidate = VariantCandidate.parse("greeting:es:formal")
        assert candidate.base == "greeting"
        assert [s.text for s in candidate.segments] == ["es", "formal"]
        assert not candidate.is_base

    def test_parse_base_candidate(self):
        candidate = VariantCandidate.parse("greeting")
        assert candidate.is_base
        assert candidate.segments == ()


class TestVersion:
    def test_parse_forms(self):
        assert Version.parse("3.4") == Version((3, 4))
        assert Version.parse("v3.4.5") == Version((3, 4, 5))
        assert Version.parse((3, 4)) == Version((3, 4))
        assert Version.parse({"major": 3, "minor": 4}) == Version((3, 4))
        assert Version.parse(3) == Version((3,))

    def test_parse_invalid(self):
        with pytest.raises(ValueError):
            Version.parse("three")
        with pytest.raises(ValueError):
            Version.parse(True)

    def test_startswith(self):
        assert Version((3, 4, 5)).startswith(Version((3, 4)))
        assert not Version((3, 5, 0)).startswith(Version((3, 4)))
        assert not Version((3,)).startswith(Version((3, 4)))


class TestVariantContext:
    def test_drops_none_values(self):
        ctx = VariantContext({"lang": "es", "gender": None})
        assert dict(ctx) == {"lang": "es"}

    def test_normalizes_version(self):
        ctx = VariantContext(version={"major": 3, "minor": 4})
        assert ctx["version"] == Version((3, 4))
        assert ctx.to_dict() == {"version": "3.4"}

    def test_extend_returns_new_context(self):
        ctx = VariantContext(lang="en")
        extended = ctx.extend({"lang": "es", "form": "formal"})
        assert ctx["lang"] == "en"
        assert extended.to_dict() == {"lang": "es", "form": "formal"}

    def test_from_pairs(self):
        ctx = VariantContext.from_pairs(["lang=es", " form = formal "])
        assert ctx.to_dict() == {"lang": "es", "form": "formal"}

    def test_from_pairs_rejects_malformed(self):
        with pytest.raises(ValueError):
            VariantContext.from_pairs(["lang"])


# =============================================================================
# Scorer
# =============================================================================


class TestScore:
    def test_base_candidate_scores_zero(self):
        assert score(VariantCandidate.parse("greeting"), VariantContext(lang="es")) == Score(0, 0)

    def test_language_match(self):
        result = score(VariantCandidate.parse("greeting:es"), VariantContext(lang="es"))
        assert result == Score(1000, 0)

    def test_unmatched_segment_counts_as_extra(self):
        result = score(VariantCandidate.parse("greeting:es:formal"), VariantContext(lang="es"))
        assert result == Score(1000, 1)

    def test_exact_context_has_no_extra(self):
        ctx = VariantContext(lang="es", form="formal")
        result = score(VariantCandidate.parse("greeting:es:formal"), ctx)
        assert result == Score(1050, 0)

    def test_gender_mismatch_disqualifies(self):
        ctx = VariantContext(lang="es", gender="f")
        assert score(VariantCandidate.parse("bio:es:m"), ctx) is None

    def test_form_mismatch_disqualifies(self):
        ctx = VariantContext(form="casual")
        assert score(VariantCandidate.parse("greeting:formal"), ctx) is None

    def test_language_mismatch_does_not_disqualify(self):
        ctx = VariantContext(lang="fr", form="formal")
        result = score(VariantCandidate.parse("greeting:es:formal"), ctx)
        assert result == Score(50, 1)

    def test_no_matching_segment_is_no_match(self):
        assert score(VariantCandidate.parse("greeting:es"), VariantContext(lang="fr")) is None
        assert score(VariantCandidate.parse("greeting:es"), VariantContext()) is None

    def test_custom_dimension_matches_by_value(self):
        candidate = VariantCandidate.parse("greeting:pirate")
        assert score(candidate, VariantContext(style="pirate")) == Score(10, 0)
        assert score(candidate, VariantContext(pirate="pirate")) == Score(10, 0)

    def test_version_bonus_stays_below_next_tier(self):
        ctx = VariantContext(version="3.4")
        result = score(VariantCandidate.parse("tool:3.4.100"), ctx)
        assert 75 < result.points < 76


# =============================================================================
# Resolver
# =============================================================================


class TestResolve:
    def test_prefers_fewer_extra_segments(self):
        candidates = ["greeting", "greeting:es", "greeting:es:formal"]
        chosen = resolve("greeting", candidates, {"lang": "es"})
        assert chosen.name == "greeting:es"

    def test_exact_context_prefers_most_specific(self):
        candidates = ["greeting", "greeting:es", "greeting:es:formal"]
        chosen = resolve("greeting", candidates, {"lang": "es", "form": "formal"})
        assert chosen.name == "greeting:es:formal"

    def test_version_tiebreak_prefers_higher_patch(self):
        candidates = ["tool:3.4.5", "tool:3.4.100"]
        chosen = resolve("tool", candidates, {"version": {"major": 3, "minor": 4}})
        assert chosen.name == "tool:3.4.100"

    def test_version_prefix_mismatch_falls_back_to_base(self):
        chosen = resolve("tool", ["tool", "tool:2.0"], {"version": "3.4"})
        assert chosen.name == "tool"

    def test_disqualified_candidates_are_skipped(self):
        chosen = resolve("bio", ["bio", "bio:m", "bio:f"], {"gender": "f"})
        assert chosen.name == "bio:f"
        chosen = resolve("bio", ["bio", "bio:m"], {"gender": "f"})
        assert chosen.name == "bio"

    def test_equal_scores_keep_declaration_order(self):
        candidates = ["label:pirate", "label:robot"]
        ctx = {"style": "pirate", "voice": "robot"}
        for _ in range(5):
            assert resolve("label", candidates, ctx).name == "label:pirate"

    def test_no_candidate_shares_base(self):
        assert resolve("greeting", ["farewell", "farewell:es"], {"lang": "es"}) is None

    def test_rank_orders_best_first(self):
        ranked = rank("bio", ["bio", "bio:es", "bio:f", "bio:es:f"], {"lang": "es", "gender": "f"})
        assert [c.name for c, _ in ranked] == ["bio:es:f", "bio:es", "bio:f", "bio"]

    def test_serialize_variant_name(self):
        ctx = {"form": "formal", "lang": "es", "style": "pirate", "version": "3.4"}
        assert serialize_variant_name("strings", ctx) == "strings:es:formal:3.4:pirate"
        assert serialize_variant_name("strings") == "strings"


# =============================================================================
# Context collection
# =============================================================================


class TestCollectContext:
    def test_declarations_layer_shallow_to_deep(self):
        tree = {
            "@context": {"lang": "es", "form": "casual"},
            "a": {
                "@context": {"form": "formal"},
                "b": {"c": 1},
            },
        }
        ctx = collect_context(tree, ("a", "b", "c"))
        assert ctx.to_dict() == {"lang": "es", "form": "formal"}

    def test_base_context_is_overridden_not_replaced(self):
        tree = {"a": {"@context": {"form": "formal"}, "b": 1}}
        ctx = collect_context(tree, ("a", "b"), {"lang": "en", "form": "casual"})
        assert ctx.to_dict() == {"lang": "en", "form": "formal"}

    def test_scalar_dimension_properties(self):
        tree = {"user": {"gender": "f", "bio": "..."}}
        ctx = collect_context(tree, ("user", "bio"))
        assert ctx["gender"] == "f"

    def test_scalar_dimensions_can_be_disabled(self):
        tree = {"user": {"gender": "f", "bio": "..."}}
        ctx = collect_context(tree, ("user", "bio"), inherit_dimensions=False)
        assert "gender" not in ctx

    def test_declaration_at_path_itself_is_ignored(self):
        tree = {"a": {"@context": {"lang": "es"}, "b": 1}}
        assert "lang" not in collect_context(tree, ("a",))

    def test_custom_declaration_key(self):
        tree = {"$ctx": {"lang": "de"}, "a": 1}
        assert collect_context(tree, ("a",), declaration_key="$ctx")["lang"] == "de"

    def test_declared_context(self):
        node = {"lang": "es", "version": {"major": 2}, "@context": {"style": "pirate"}}
        assert declared_context(node) == {
            "lang": "es",
            "version": {"major": 2},
            "style": "pirate",
        }
