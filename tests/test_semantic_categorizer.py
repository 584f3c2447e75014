"""
Tests for semantic categorization.

Tests cover:
- Seed similarity, context analysis and cooccurrence signals
- Winner selection, confidence and fallback
- User corrections and other learned state
- Persistence of learned state
"""

import sys
from pathlib import Path

import pytest

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from prompt_lens.config import CATEGORIZER_STORAGE_KEY  # noqa: E402
from prompt_lens.highlighting.categories import CATEGORY_TABLE, Category  # noqa: E402
from prompt_lens.highlighting.models import Occurrence, PhraseCandidate  # noqa: E402
from prompt_lens.highlighting.result_cache import PatternCache  # noqa: E402
from prompt_lens.highlighting.semantic_categorizer import (  # noqa: E402
    SemanticCategorizer,
    round_half_up,
)
from prompt_lens.storage import MemoryStore  # noqa: E402

SCENE = "golden hour lighting creates soft shadows"


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def categorizer(store):
    """Fresh categorizer backed by an in-memory store."""
    return SemanticCategorizer(storage=store)


class TestSignals:
    """Tests for the individual scoring signals."""

    def test_exact_seed_match(self, categorizer):
        assert categorizer.calculate_semantic_similarity("bokeh", Category.TECHNICAL) == pytest.approx(2.0)

    def test_stemmed_seed_match(self, categorizer):
        """Test plural phrase tokens match singular seeds."""
        assert categorizer.calculate_semantic_similarity("shadows", Category.LIGHTING) == pytest.approx(2.0)

    def test_substring_match(self, categorizer):
        assert categorizer.calculate_semantic_similarity("grainy", Category.TECHNICAL) == pytest.approx(1.5)

    def test_fuzzy_match(self, categorizer):
        """Test a one-letter misspelling scores 1 - distance / length."""
        assert categorizer.calculate_semantic_similarity("bokah", Category.TECHNICAL) == pytest.approx(0.8)

    def test_similarity_averages_tokens(self, categorizer):
        assert categorizer.calculate_semantic_similarity("soft shadows", Category.LIGHTING) == pytest.approx(1.0)

    def test_no_similarity(self, categorizer):
        assert categorizer.calculate_semantic_similarity("xyzzy", Category.CAMERA) == 0.0
        assert categorizer.calculate_semantic_similarity("", Category.CAMERA) == 0.0

    def test_analyze_context_counts_seed_prefixed_words(self, categorizer):
        counts = categorizer.analyze_context("x", "neon rain under neon signs", 0)
        assert counts[Category.COLORS] == 2
        assert counts[Category.ENVIRONMENT] == 1
        assert counts[Category.CAMERA] == 0

    def test_analyze_context_window(self, categorizer):
        """Test seed words beyond 100 characters are not counted."""
        text = "fog " + "x" * 200 + " bokeh"
        counts = categorizer.analyze_context("bokeh", text, len(text) - 5)
        assert counts[Category.TECHNICAL] == 1
        assert counts[Category.ENVIRONMENT] == 0

    def test_context_patterns_come_from_shared_cache(self, store):
        cache = PatternCache()
        categorizer = SemanticCategorizer(storage=store, pattern_cache=cache)
        categorizer.analyze_context("x", "neon rain", 0)
        compiled = cache.compilations
        categorizer.analyze_context("x", "neon rain", 0)

        assert compiled > 0
        assert cache.compilations == compiled
        assert cache.hits > 0


class TestCategorize:
    """Tests for category selection and confidence."""

    def test_context_decides(self, categorizer):
        """Test a phrase with no seed overlap is categorized by its surroundings."""
        result = categorizer.categorize("golden hour", SCENE, 0)
        assert result.category == Category.LIGHTING
        assert result.confidence == 100
        assert result.source == "context"
        assert result.color == CATEGORY_TABLE[Category.LIGHTING].color

    def test_similarity_decides(self, categorizer):
        result = categorizer.categorize("soft shadows", SCENE, SCENE.index("soft"))
        assert result.category == Category.LIGHTING
        assert result.confidence >= 50
        assert result.source == "seed-similarity"

    def test_fallback_when_no_signal(self, categorizer):
        """Test phrases with no signal default to descriptive at 50."""
        result = categorizer.categorize("xyzzy")
        assert result.category == Category.DESCRIPTIVE
        assert result.confidence == 50
        assert result.source == "seed-similarity"

    def test_ties_follow_declaration_order(self, categorizer):
        categorizer.add_seed_word("environment", "xyzzy")
        categorizer.add_seed_word("colors", "xyzzy")

        result = categorizer.categorize("xyzzy")
        assert result.category == Category.COLORS
        assert result.confidence == 50

    def test_cooccurrence_decides(self, categorizer):
        categorizer.update_cooccurrence("xyzzy", "camera", 1.0)
        categorizer.update_cooccurrence("xyzzy", "lighting", 1.0)

        result = categorizer.categorize("xyzzy")
        assert result.category == Category.LIGHTING
        assert result.source == "cooccurrence"
        # 3.0 / (3.0 + 2.85)
        assert result.confidence == 51

    def test_idempotent(self, categorizer):
        first = categorizer.categorize("soft shadows", SCENE, 29)
        second = categorizer.categorize("soft shadows", SCENE, 29)
        assert first == second

    def test_scores_reported_per_category(self, categorizer):
        result = categorizer.categorize("bokeh")
        assert set(result.scores) == {c.value for c in Category}
        assert result.scores["technical"] == pytest.approx(20.0)

    @pytest.mark.parametrize("value,expected", [(62.5, 63), (2.5, 3), (0.49, 0), (99.5, 100)])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_batch_categorize(self, categorizer):
        candidate = PhraseCandidate(text="bokeh", normalized="bokeh", score=7.0, word_count=1)
        occurrences = [Occurrence(candidate=candidate, start=5, end=10, text="bokeh")]

        results = categorizer.batch_categorize(occurrences, "soft bokeh")
        assert len(results) == 1
        assert results[0][0] is occurrences[0]
        assert results[0][1].category == Category.TECHNICAL


class TestLearning:
    """Tests for user corrections, cooccurrence and weights."""

    def test_user_override_wins(self, categorizer):
        """Test a correction beats every other signal."""
        categorizer.learn_from_user_correction("soft shadows", "camera")

        result = categorizer.categorize("soft shadows", SCENE, 29)
        assert result.category == Category.CAMERA
        assert result.confidence == 95
        assert result.source == "user-override"

    def test_override_lookup_is_normalized(self, categorizer):
        categorizer.learn_from_user_correction("Soft  Shadows", "camera")
        assert categorizer.categorize("soft shadows").category == Category.CAMERA

    def test_correction_reinforces_cooccurrence(self, categorizer):
        categorizer.learn_from_user_correction("neon glow", Category.COLORS)
        assert categorizer.get_cooccurrence_score("neon glow", "colors") == pytest.approx(5.0)

    def test_clear_user_correction(self, categorizer):
        categorizer.learn_from_user_correction("neon glow", "camera")
        assert categorizer.clear_user_correction("neon glow") is True
        assert categorizer.clear_user_correction("neon glow") is False
        assert categorizer.categorize("neon glow").source != "user-override"

    def test_cooccurrence_decays_other_categories(self, categorizer):
        categorizer.update_cooccurrence("xyzzy", "camera", 1.0)
        categorizer.update_cooccurrence("xyzzy", "lighting", 1.0)

        assert categorizer.get_cooccurrence_score("xyzzy", "camera") == pytest.approx(0.95)
        assert categorizer.get_cooccurrence_score("xyzzy", "lighting") == pytest.approx(1.0)

    def test_unknown_category_is_ignored(self, categorizer):
        categorizer.update_cooccurrence("xyzzy", "sounds", 1.0)
        categorizer.learn_from_user_correction("xyzzy", "sounds")

        assert categorizer.cooccurrence == {}
        assert categorizer.user_corrections == {}
        assert categorizer.get_cooccurrence_score("xyzzy", "sounds") == 0.0

    def test_add_seed_word(self, categorizer):
        assert categorizer.add_seed_word("descriptive", "sparkle") is True
        assert categorizer.add_seed_word("descriptive", "sparkle") is False
        assert categorizer.add_seed_word("sounds", "boom") is False

        assert categorizer.categorize("sparkle").category == Category.DESCRIPTIVE

    def test_category_weight_clamped(self, categorizer):
        categorizer.adjust_category_weight("camera", 5.0)
        assert categorizer.weights[Category.CAMERA] == pytest.approx(2.0)

        categorizer.adjust_category_weight("camera", -5.0)
        assert categorizer.weights[Category.CAMERA] == pytest.approx(0.1)

    def test_statistics(self, categorizer):
        categorizer.learn_from_user_correction("neon glow", "colors")
        stats = categorizer.get_statistics()

        assert stats["categories"] == 9
        assert stats["user_corrections"] == 1
        assert stats["learned_patterns"] == 1
        assert stats["category_weights"]["descriptive"] == pytest.approx(0.8)


class TestPersistence:
    """Tests for saving and restoring learned state."""

    def test_round_trip(self, store, categorizer):
        categorizer.learn_from_user_correction("neon glow", "colors")
        categorizer.adjust_category_weight("camera", 0.5)
        categorizer.add_seed_word("technical", "gimbal")

        restored = SemanticCategorizer(storage=store)
        assert restored.categorize("neon glow").category == Category.COLORS
        assert restored.categorize("neon glow").confidence == 95
        assert restored.weights[Category.CAMERA] == pytest.approx(1.5)
        assert "gimbal" in restored.seeds(Category.TECHNICAL)

    def test_unknown_categories_dropped_on_load(self, store):
        store.set(CATEGORIZER_STORAGE_KEY, {"userCorrections": {"foo": "sounds", "bar": "camera"}})
        categorizer = SemanticCategorizer(storage=store)
        assert categorizer.user_corrections == {"bar": Category.CAMERA}

    def test_malformed_snapshot_uses_defaults(self, store):
        store.set(CATEGORIZER_STORAGE_KEY, {"cooccurrence": [1, 2]})
        categorizer = SemanticCategorizer(storage=store)
        assert categorizer.cooccurrence == {}
        assert categorizer.weights[Category.DESCRIPTIVE] == pytest.approx(0.8)

    def test_reset(self, store, categorizer):
        categorizer.learn_from_user_correction("neon glow", "camera")
        categorizer.reset()

        assert CATEGORIZER_STORAGE_KEY not in store
        assert categorizer.categorize("neon glow").source != "user-override"
        assert SemanticCategorizer(storage=store).user_corrections == {}
