"""
Semantic Categorization

Assigns each located phrase to one of the closed highlight categories and
reports a 0-100 confidence. Three signals are combined per category:

    score = similarity * 10 * weight      (phrase tokens vs. seed words)
          + context * 2                    (seed words within +/-100 chars)
          + cooccurrence * 3               (learned phrase -> category strength)

The winner is the highest score (ties go to declaration order) and
confidence is its share of the total. A user correction pins a phrase to
a category at confidence 95 until it is cleared or the categorizer is reset.

Learned state (cooccurrence strengths, user corrections, category weights
and user-added seed words) persists through the injected KeyValueStore.
"""

import math
from typing import Any, Iterable

import numpy as np
from nltk.metrics.distance import edit_distance

from prompt_lens.config import (
    CATEGORIZER_STORAGE_KEY,
    CATEGORY_WEIGHT_MAX,
    CATEGORY_WEIGHT_MIN,
    CONTEXT_MULTIPLIER,
    CONTEXT_WINDOW_CHARS,
    COOCCURRENCE_DECAY,
    COOCCURRENCE_MULTIPLIER,
    DEFAULT_CATEGORY_CONFIDENCE,
    SIMILARITY_MULTIPLIER,
    USER_CORRECTION_STRENGTH,
    USER_OVERRIDE_CONFIDENCE,
)
from prompt_lens.highlighting import text_utils
from prompt_lens.highlighting.categories import CATEGORY_TABLE, FALLBACK_CATEGORY, Category
from prompt_lens.highlighting.models import (
    SOURCE_CONTEXT,
    SOURCE_COOCCURRENCE,
    SOURCE_SEED_SIMILARITY,
    SOURCE_USER_OVERRIDE,
    CategoryAssignment,
    Occurrence,
)
from prompt_lens.highlighting.result_cache import PatternCache
from prompt_lens.logging_config import debug_log, warning
from prompt_lens.storage import KeyValueStore

# Per-token similarity levels
EXACT_MATCH_SCORE = 2.0
SUBSTRING_MATCH_SCORE = 1.5
MIN_FUZZY_LENGTH = 4

CATEGORIES = tuple(Category)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class SemanticCategorizer:
    """
    Seed-similarity / context / cooccurrence categorizer with user overrides.

    Attributes:
        weights: Category -> similarity multiplier in [0.1, 2.0]
        cooccurrence: normalized phrase -> {Category: strength}
        user_corrections: normalized phrase -> pinned Category
        added_seeds: Category -> seed words added at runtime
    """

    def __init__(
        self,
        storage: KeyValueStore | None = None,
        storage_key: str = CATEGORIZER_STORAGE_KEY,
        pattern_cache: PatternCache | None = None,
    ):
        """
        Initialize the categorizer.

        Args:
            storage: Persistence port. None keeps learned state in memory only.
            storage_key: Namespace for the persisted snapshot
            pattern_cache: Shared compiled-pattern cache for context analysis
        """
        self.storage = storage
        self.storage_key = storage_key
        self.pattern_cache = pattern_cache if pattern_cache is not None else PatternCache()

        self._set_defaults()
        self.load()

    def _set_defaults(self) -> None:
        self.weights: dict[Category, float] = {c: spec.weight for c, spec in CATEGORY_TABLE.items()}
        self.cooccurrence: dict[str, dict[Category, float]] = {}
        self.user_corrections: dict[str, Category] = {}
        self.added_seeds: dict[Category, list[str]] = {c: [] for c in CATEGORIES}
        self._seed_stems: dict[Category, tuple[str, ...]] = {}
        self._rebuild_seed_stems()

    def _rebuild_seed_stems(self) -> None:
        for category in CATEGORIES:
            stems = dict.fromkeys(text_utils.stem(s) for s in self.seeds(category))
            self._seed_stems[category] = tuple(stems)

    def seeds(self, category: Category) -> list[str]:
        """Built-in seeds followed by runtime additions."""
        return list(CATEGORY_TABLE[category].seeds) + self.added_seeds[category]

    # =========================================================================
    # Signals
    # =========================================================================

    @staticmethod
    def _token_similarity(word: str, seed: str) -> float:
        if word == seed:
            return EXACT_MATCH_SCORE
        if len(seed) >= MIN_FUZZY_LENGTH and seed in word:
            return SUBSTRING_MATCH_SCORE
        if len(word) >= MIN_FUZZY_LENGTH and word in seed:
            return SUBSTRING_MATCH_SCORE
        if len(word) >= MIN_FUZZY_LENGTH and len(seed) >= MIN_FUZZY_LENGTH:
            distance = edit_distance(word, seed)
            max_allowed = max(1, min(len(word), len(seed)) // 3)
            if distance <= max_allowed:
                return 1.0 - distance / max(len(word), len(seed))
        return 0.0

    def calculate_semantic_similarity(self, phrase: str, category: Category) -> float:
        """
        Average best per-token similarity between a phrase and a category's seeds.

        Each stemmed phrase token scores its best match over the stemmed
        seeds: 2 for an exact match, 1.5 for a meaningful substring, or
        1 - d/max_len for a close Levenshtein match. The sum is divided by
        the token count.

        Returns:
            Similarity in [0, 2]; 0 for an empty phrase
        """
        words = text_utils.tokenize(phrase, apply_stemming=True)
        if not words:
            return 0.0

        seed_stems = self._seed_stems[category]
        total = 0.0
        for word in words:
            best = 0.0
            for seed in seed_stems:
                best = max(best, self._token_similarity(word, seed))
                if best >= EXACT_MATCH_SCORE:
                    break
            total += best
        return total / len(words)

    def analyze_context(self, phrase: str, full_text: str, position: int) -> dict[Category, int]:
        """
        Count seed-prefixed words around a phrase occurrence.

        The window is [position - 100, position + len(phrase) + 100) of the
        lowercased text and includes the phrase itself.

        Returns:
            Category -> number of words in the window that begin with one of
            its seeds (each seed counted separately)
        """
        counts = {category: 0 for category in CATEGORIES}
        if not full_text:
            return counts

        start = max(0, position - CONTEXT_WINDOW_CHARS)
        end = min(len(full_text), position + len(phrase) + CONTEXT_WINDOW_CHARS)
        context = full_text[start:end].lower()
        if not context.strip():
            return counts

        for category in CATEGORIES:
            total = 0
            for seed in self.seeds(category):
                pattern = self.pattern_cache.get(text_utils.seed_prefix_pattern_source(seed))
                total += len(pattern.findall(context))
            counts[category] = total
        return counts

    def get_cooccurrence_score(self, phrase: str, category) -> float:
        resolved = Category.parse(category)
        if resolved is None:
            return 0.0
        entry = self.cooccurrence.get(text_utils.normalize_phrase(phrase))
        if not entry:
            return 0.0
        return entry.get(resolved, 0.0)

    # =========================================================================
    # Categorization
    # =========================================================================

    def categorize(self, phrase: str, full_text: str = "", position: int = 0) -> CategoryAssignment:
        """
        Pick a category and confidence for one phrase occurrence.

        Args:
            phrase: The phrase text
            full_text: Text the phrase was found in (for context analysis)
            position: Start offset of the occurrence in full_text

        Returns:
            CategoryAssignment. User corrections win at confidence 95;
            phrases with no signal at all fall back to descriptive at 50.
        """
        key = text_utils.normalize_phrase(phrase)
        pinned = self.user_corrections.get(key)
        if pinned is not None:
            return CategoryAssignment(
                category=pinned,
                confidence=USER_OVERRIDE_CONFIDENCE,
                color=CATEGORY_TABLE[pinned].color,
                source=SOURCE_USER_OVERRIDE,
            )

        context_counts = self.analyze_context(phrase, full_text, position) if full_text else None

        # rows: similarity, context, cooccurrence contributions per category
        contributions = np.zeros((3, len(CATEGORIES)))
        for i, category in enumerate(CATEGORIES):
            contributions[0, i] = (
                self.calculate_semantic_similarity(phrase, category)
                * SIMILARITY_MULTIPLIER
                * self.weights[category]
            )
            if context_counts is not None:
                contributions[1, i] = context_counts[category] * CONTEXT_MULTIPLIER
            contributions[2, i] = self.get_cooccurrence_score(phrase, category) * COOCCURRENCE_MULTIPLIER

        scores = contributions.sum(axis=0)
        total = float(scores.sum())
        score_map = {category.value: float(scores[i]) for i, category in enumerate(CATEGORIES)}

        if total <= 0:
            return CategoryAssignment(
                category=FALLBACK_CATEGORY,
                confidence=DEFAULT_CATEGORY_CONFIDENCE,
                color=CATEGORY_TABLE[FALLBACK_CATEGORY].color,
                source=SOURCE_SEED_SIMILARITY,
                scores=score_map,
            )

        # argmax returns the first index on ties, i.e. declaration order
        best_index = int(np.argmax(scores))
        best = CATEGORIES[best_index]
        confidence = min(100, round_half_up(100 * float(scores[best_index]) / total))

        signal = int(np.argmax(contributions[:, best_index]))
        source = (SOURCE_SEED_SIMILARITY, SOURCE_CONTEXT, SOURCE_COOCCURRENCE)[signal]

        return CategoryAssignment(
            category=best,
            confidence=confidence,
            color=CATEGORY_TABLE[best].color,
            source=source,
            scores=score_map,
        )

    def batch_categorize(
        self,
        occurrences: Iterable[Occurrence],
        full_text: str = "",
    ) -> list[tuple[Occurrence, CategoryAssignment]]:
        """Categorize each occurrence independently, preserving order."""
        return [
            (occurrence, self.categorize(occurrence.text, full_text, occurrence.start))
            for occurrence in occurrences
        ]

    # =========================================================================
    # Learning
    # =========================================================================

    def update_cooccurrence(self, phrase: str, category, strength: float = 1.0) -> None:
        """
        Reinforce a phrase -> category association.

        Adds strength to the pair and decays every other positive category
        entry for the phrase by 5%. Unknown categories are ignored.
        """
        resolved = Category.parse(category)
        if resolved is None:
            debug_log(f"[CATEGORIZER] Ignoring cooccurrence for unknown category {category!r}")
            return
        key = text_utils.normalize_phrase(phrase)
        if not key:
            return

        entry = self.cooccurrence.setdefault(key, {})
        for other, value in entry.items():
            if other is not resolved and value > 0:
                entry[other] = value * COOCCURRENCE_DECAY
        entry[resolved] = entry.get(resolved, 0.0) + max(0.0, float(strength))
        self.save()

    def learn_from_user_correction(self, phrase: str, category) -> None:
        """Pin a phrase to a category and reinforce the association strongly."""
        resolved = Category.parse(category)
        if resolved is None:
            debug_log(f"[CATEGORIZER] Ignoring correction to unknown category {category!r}")
            return
        key = text_utils.normalize_phrase(phrase)
        if not key:
            return

        self.user_corrections[key] = resolved
        debug_log(f"[CATEGORIZER] User pinned '{key}' to {resolved.value}")
        # update_cooccurrence persists both changes
        self.update_cooccurrence(key, resolved, USER_CORRECTION_STRENGTH)

    def clear_user_correction(self, phrase: str) -> bool:
        """
        Remove a pinned category for one phrase.

        Returns:
            True if a correction existed
        """
        key = text_utils.normalize_phrase(phrase)
        if self.user_corrections.pop(key, None) is None:
            return False
        self.save()
        return True

    def add_seed_word(self, category, word: str) -> bool:
        """
        Add a seed word to a category.

        Returns:
            True if the word was added; False for unknown categories, empty
            words and words already present
        """
        resolved = Category.parse(category)
        seed = word.strip().lower() if isinstance(word, str) else ""
        if resolved is None or not seed or seed in self.seeds(resolved):
            return False

        self.added_seeds[resolved].append(seed)
        self._rebuild_seed_stems()
        self.save()
        return True

    def adjust_category_weight(self, category, delta: float) -> None:
        """Shift a category's similarity weight, clamped to [0.1, 2.0]."""
        resolved = Category.parse(category)
        if resolved is None:
            return
        weight = self.weights[resolved] + delta
        self.weights[resolved] = min(CATEGORY_WEIGHT_MAX, max(CATEGORY_WEIGHT_MIN, weight))
        self.save()

    # =========================================================================
    # Reporting
    # =========================================================================

    def get_statistics(self) -> dict[str, Any]:
        return {
            "categories": len(CATEGORIES),
            "seed_words": sum(len(self.seeds(c)) for c in CATEGORIES),
            "learned_patterns": sum(len(entry) for entry in self.cooccurrence.values()),
            "user_corrections": len(self.user_corrections),
            "category_weights": {c.value: w for c, w in self.weights.items()},
        }

    # =========================================================================
    # Persistence
    # =========================================================================

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "cooccurrence": {
                phrase: {c.value: v for c, v in entry.items()}
                for phrase, entry in self.cooccurrence.items()
            },
            "userCorrections": {phrase: c.value for phrase, c in self.user_corrections.items()},
            "categoryWeights": {c.value: w for c, w in self.weights.items()},
            "addedSeeds": {c.value: list(words) for c, words in self.added_seeds.items() if words},
        }

    def save(self) -> bool:
        """
        Persist learned state.

        Returns:
            True if the snapshot was written. Failures are logged, never raised.
        """
        if self.storage is None:
            return False
        try:
            self.storage.set(self.storage_key, self.to_snapshot())
            return True
        except Exception as e:
            warning(f"[CATEGORIZER] Failed to save categorizer data: {e}")
            return False

    def load(self) -> bool:
        """
        Restore learned state from storage.

        Entries naming unknown categories are dropped. A malformed snapshot
        leaves the defaults in place.

        Returns:
            True if a snapshot was loaded
        """
        if self.storage is None:
            return False
        try:
            data = self.storage.get(self.storage_key)
            if not data:
                debug_log("[CATEGORIZER] No saved categorizer data, using defaults")
                return False

            cooccurrence: dict[str, dict[Category, float]] = {}
            for phrase, entry in dict(data.get("cooccurrence", {})).items():
                parsed = {}
                for name, value in dict(entry).items():
                    category = Category.parse(name)
                    if category is not None:
                        parsed[category] = max(0.0, float(value))
                if parsed:
                    cooccurrence[str(phrase)] = parsed

            corrections = {}
            for phrase, name in dict(data.get("userCorrections", {})).items():
                category = Category.parse(name)
                if category is not None:
                    corrections[str(phrase)] = category

            weights = {c: spec.weight for c, spec in CATEGORY_TABLE.items()}
            for name, value in dict(data.get("categoryWeights", {})).items():
                category = Category.parse(name)
                if category is not None:
                    weights[category] = min(CATEGORY_WEIGHT_MAX, max(CATEGORY_WEIGHT_MIN, float(value)))

            added: dict[Category, list[str]] = {c: [] for c in CATEGORIES}
            for name, words in dict(data.get("addedSeeds", {})).items():
                category = Category.parse(name)
                if category is not None:
                    added[category] = [str(w) for w in words]
        except Exception as e:
            warning(f"[CATEGORIZER] Failed to load categorizer data, using defaults: {e}")
            return False

        self.cooccurrence = cooccurrence
        self.user_corrections = corrections
        self.weights = weights
        self.added_seeds = added
        self._rebuild_seed_stems()
        debug_log(
            f"[CATEGORIZER] Loaded {len(cooccurrence)} learned phrases, "
            f"{len(corrections)} user corrections"
        )
        return True

    def reset(self) -> None:
        """Forget everything learned and delete the persisted snapshot."""
        self._set_defaults()
        if self.storage is not None:
            try:
                self.storage.delete(self.storage_key)
            except Exception as e:
                warning(f"[CATEGORIZER] Failed to delete saved categorizer data: {e}")
