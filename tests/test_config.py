"""Tests for EngineOptions."""

import pytest

from lazytree.config import DEFAULT_MAX_EVALUATION_DEPTH, EngineOptions
from lazytree.variants import VariantContext


class TestEngineOptions:
    def test_defaults(self):
        options = EngineOptions()
        assert options.max_evaluation_depth == DEFAULT_MAX_EVALUATION_DEPTH == 10
        assert options.on_error is None
        assert options.context_key == "@context"
        assert not options.has_fallback
        assert len(options.base_context) == 0

    def test_context_is_coerced(self):
        options = EngineOptions(base_context={"lang": "es"})
        assert isinstance(options.base_context, VariantContext)
        assert options.base_context["lang"] == "es"

    def test_fallback_none_counts(self):
        assert EngineOptions(fallback=None).has_fallback

    def test_with_overrides(self):
        options = EngineOptions()
        changed = options.with_overrides(max_evaluation_depth=3)
        assert changed.max_evaluation_depth == 3
        assert options.max_evaluation_depth == 10
        assert options.with_overrides() is options

    def test_with_overrides_validates(self):
        with pytest.raises(ValueError):
            EngineOptions().with_overrides(max_evaluation_depth=0)


class TestFromEnv:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("LAZYTREE_MAX_DEPTH", "4")
        monkeypatch.setenv("LAZYTREE_CONTEXT", "lang=es, form=formal")
        monkeypatch.setenv("LAZYTREE_CONTEXT_KEY", "$ctx")

        options = EngineOptions.from_env()
        assert options.max_evaluation_depth == 4
        assert options.base_context.to_dict() == {"lang": "es", "form": "formal"}
        assert options.context_key == "$ctx"

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("LAZYTREE_MAX_DEPTH", "4")
        options = EngineOptions.from_env(max_evaluation_depth=7)
        assert options.max_evaluation_depth == 7

    def test_empty_environment(self, monkeypatch):
        for name in ("LAZYTREE_MAX_DEPTH", "LAZYTREE_CONTEXT", "LAZYTREE_CONTEXT_KEY"):
            monkeypatch.delenv(name, raising=False)
        assert EngineOptions.from_env() == EngineOptions()
