"""
Highlight Engine

Orchestrates the highlighting pipeline for one editing session:

    raw text
      -> typo correction (injected collaborator)
      -> PhraseExtractor: score candidates, keep the top 50, locate occurrences
      -> SemanticCategorizer: category + base confidence per occurrence
      -> BehaviorLearner: adjust confidence, exploration/exploitation gate
      -> min_confidence floor
      -> overlap resolution, sort by start, cap to max_highlights
      -> update corpus statistics
      -> HighlightResult

Feedback from the rendering layer (shown / click / ignored /
recategorization) flows back into the learner and the categorizer and is
persisted. process_text never raises; feedback calls log failures instead
of propagating them.

Example:
    engine = HighlightEngine(storage=JsonFileStore())
    result = engine.process_text("golden hour lighting creates soft shadows")
    for match in result.matches:
        engine.record_shown(match.phrase, match.category, match.confidence)
"""

import copy
import dataclasses
import random
import time
from collections.abc import Callable
from typing import Any

from prompt_lens.config import (
    CLICK_COOCCURRENCE_STRENGTH,
    EXTRACTION_MIN_SCORE,
    EXTRACTION_TOP_N,
    RESULT_CACHE_CAPACITY,
    SHOWN_COOCCURRENCE_STRENGTH,
    EngineSettings,
)
from prompt_lens.highlighting.behavior_learner import BehaviorLearner
from prompt_lens.highlighting.categories import Category
from prompt_lens.highlighting.models import HighlightResult, Match, ProcessStats
from prompt_lens.highlighting.overlap_resolver import resolve_overlaps
from prompt_lens.highlighting.phrase_extractor import PhraseExtractor
from prompt_lens.highlighting.result_cache import ResultCache
from prompt_lens.highlighting.semantic_categorizer import SemanticCategorizer
from prompt_lens.logging_config import Timer, debug_log, error, info, warning
from prompt_lens.storage import KeyValueStore, MemoryStore
from prompt_lens.typo_correction import TypoCorrector

ACTIVE_CATEGORIES = tuple(c.value for c in Category)


class HighlightEngine:
    """
    Adaptive phrase highlighting for prompt text.

    Attributes:
        extractor: Statistical phrase extractor
        categorizer: Semantic categorizer
        learner: Engagement learner
        cache: Compiled-pattern and result caches
        settings: Current runtime knobs
    """

    def __init__(
        self,
        storage: KeyValueStore | None = None,
        typo_corrector: TypoCorrector | None = None,
        settings: EngineSettings | None = None,
        clock: Callable[[], float] | None = None,
        rng: random.Random | None = None,
        cache_capacity: int = RESULT_CACHE_CAPACITY,
    ):
        """
        Initialize the engine and load any persisted learning state.

        Args:
            storage: Persistence port shared by all components. Defaults to an
                in-memory store, so learning lasts for the session only.
            typo_corrector: Callable applied to raw text before extraction.
                None skips correction.
            settings: Runtime knobs. When given, its learning and exploration
                rates override the persisted ones.
            clock: Epoch-seconds time source (for engagement decay)
            rng: Random source for exploration decisions
            cache_capacity: Maximum cached results
        """
        self.storage = storage if storage is not None else MemoryStore()
        self.typo_corrector = typo_corrector
        self.cache = ResultCache(cache_capacity)

        self.extractor = PhraseExtractor(storage=self.storage)
        self.categorizer = SemanticCategorizer(storage=self.storage, pattern_cache=self.cache.patterns)
        self.learner = BehaviorLearner(
            storage=self.storage,
            clock=clock if clock is not None else time.time,
            rng=rng,
            learning_rate=settings.learning_rate if settings is not None else None,
            exploration_rate=settings.exploration_rate if settings is not None else None,
        )

        base = settings if settings is not None else EngineSettings()
        self.settings = dataclasses.replace(
            base,
            learning_rate=self.learner.learning_rate,
            exploration_rate=self.learner.exploration_rate,
        )

        debug_log(
            f"[ENGINE] Initialized (min_confidence={self.settings.min_confidence}, "
            f"max_highlights={self.settings.max_highlights})"
        )

    # =========================================================================
    # Processing
    # =========================================================================

    def _correct(self, text: str) -> tuple[str, bool]:
        """Run the typo corrector, falling back to the raw text on failure."""
        if self.typo_corrector is None:
            return text, False
        try:
            corrected = self.typo_corrector(text)
        except Exception as e:
            warning(f"[ENGINE] Typo correction failed, using raw text: {e}")
            return text, False
        if not isinstance(corrected, str):
            warning(f"[ENGINE] Typo corrector returned {type(corrected).__name__}, using raw text")
            return text, False
        return corrected, corrected != text

    def _highlight(self, text: str, stats: ProcessStats) -> HighlightResult:
        corrected, stats.typo_corrected = self._correct(text)

        candidates = self.extractor.extract_important_phrases(corrected, min_score=EXTRACTION_MIN_SCORE)
        stats.phrases_extracted = len(candidates)
        candidates = candidates[:EXTRACTION_TOP_N]

        occurrences = self.extractor.find_occurrences(corrected, candidates)
        stats.occurrences_found = len(occurrences)

        visible: list[Match] = []
        for occurrence, assignment in self.categorizer.batch_categorize(occurrences, corrected):
            phrase = occurrence.candidate.normalized
            adjusted = self.learner.adjust_confidence(phrase, assignment.category, assignment.confidence)
            if not self.learner.should_show(phrase, assignment.category, assignment.confidence):
                continue
            if adjusted < self.settings.min_confidence:
                continue
            visible.append(Match(
                text=occurrence.text,
                phrase=phrase,
                start=occurrence.start,
                end=occurrence.end,
                category=assignment.category,
                confidence=adjusted,
                base_confidence=assignment.confidence,
                color=assignment.color,
                source=assignment.source,
                score=occurrence.candidate.score,
                word_count=occurrence.candidate.word_count,
                is_technical=occurrence.candidate.is_technical,
            ))
        stats.after_filtering = len(visible)

        matches = sorted(resolve_overlaps(visible), key=lambda m: m.start)
        matches = matches[:self.settings.max_highlights]
        stats.final_highlights = len(matches)

        self.extractor.update_statistics(corrected)
        self.extractor.save()

        return HighlightResult(matches=matches, stats=stats, corrected_text=corrected)

    def process_text(self, text) -> HighlightResult:
        """
        Highlight one piece of prompt text.

        Never raises. Non-string input is treated as empty text; an internal
        failure is logged and yields an empty result with stats.error set.

        Args:
            text: Raw prompt text

        Returns:
            HighlightResult with non-overlapping matches sorted by start
        """
        if not isinstance(text, str):
            text = ""

        stats = ProcessStats()
        if not text.strip():
            return HighlightResult(stats=stats, corrected_text=text)

        cached = self.cache.get_result(text, ACTIVE_CATEGORIES)
        if cached is not None:
            debug_log("[ENGINE] Serving cached result")
            result = copy.deepcopy(cached)
            result.stats.cache_hit = True
            return result

        timer = Timer("[ENGINE] process_text")
        try:
            with timer:
                result = self._highlight(text, stats)
        except Exception as e:
            error(f"[ENGINE] Highlighting failed: {e}", exc_info=True)
            failed = ProcessStats(error=str(e), processing_time_ms=timer.duration_ms or 0.0)
            return HighlightResult(stats=failed, corrected_text=text)

        result.stats.processing_time_ms = timer.get_duration_ms()
        # Cached entries are private copies; callers may mutate what they get back
        self.cache.put_result(text, ACTIVE_CATEGORIES, copy.deepcopy(result))
        debug_log(
            f"[ENGINE] {stats.phrases_extracted} phrases, {stats.occurrences_found} occurrences, "
            f"{stats.after_filtering} after filtering, {stats.final_highlights} highlights"
        )
        return result

    # =========================================================================
    # Feedback
    # =========================================================================

    def record_shown(self, phrase: str, category, confidence: float) -> None:
        """A highlight was displayed to the user."""
        try:
            self.learner.record_shown(phrase, category, confidence)
            self.categorizer.update_cooccurrence(phrase, category, SHOWN_COOCCURRENCE_STRENGTH)
        except Exception as e:
            error(f"[ENGINE] Failed to record impression for '{phrase}': {e}")
        finally:
            self.cache.invalidate_results()

    def record_click(self, phrase: str, category) -> None:
        """The user clicked a highlight."""
        try:
            self.learner.record_click(phrase, category)
            self.categorizer.update_cooccurrence(phrase, category, CLICK_COOCCURRENCE_STRENGTH)
        except Exception as e:
            error(f"[ENGINE] Failed to record click for '{phrase}': {e}")
        finally:
            self.cache.invalidate_results()

    def record_ignored(self, phrase: str) -> None:
        """A displayed highlight was not interacted with."""
        try:
            self.learner.record_ignored(phrase)
        except Exception as e:
            error(f"[ENGINE] Failed to record ignore for '{phrase}': {e}")
        finally:
            self.cache.invalidate_results()

    def record_recategorization(self, phrase: str, old_category, new_category) -> None:
        """
        The user moved a highlight to a different category.

        Pins the phrase to new_category. Category weights are not changed.
        Unknown target categories are ignored.
        """
        try:
            new = Category.parse(new_category)
            if new is None:
                warning(f"[ENGINE] Ignoring recategorization to unknown category {new_category!r}")
                return
            self.categorizer.learn_from_user_correction(phrase, new)
            info(f"[ENGINE] Recategorized '{phrase}' to {new.value}")
        except Exception as e:
            error(f"[ENGINE] Failed to record recategorization for '{phrase}': {e}")
        finally:
            self.cache.invalidate_results()

    # =========================================================================
    # Administration
    # =========================================================================

    def configure(
        self,
        min_confidence: float | None = None,
        max_highlights: int | None = None,
        learning_rate: float | None = None,
        exploration_rate: float | None = None,
    ) -> None:
        """
        Change runtime knobs. Omitted knobs keep their current values.

        Learning and exploration rates are clamped by the learner.

        Raises:
            ValueError: If min_confidence is outside 0-100 or max_highlights < 1
        """
        changes = {
            key: value
            for key, value in (
                ('min_confidence', min_confidence),
                ('max_highlights', max_highlights),
                ('learning_rate', learning_rate),
                ('exploration_rate', exploration_rate),
            )
            if value is not None
        }
        if not changes:
            return

        # Validates everything before anything is applied
        updated = dataclasses.replace(self.settings, **changes)

        if learning_rate is not None:
            self.learner.set_learning_rate(learning_rate)
        if exploration_rate is not None:
            self.learner.set_exploration_rate(exploration_rate)

        self.settings = dataclasses.replace(
            updated,
            learning_rate=self.learner.learning_rate,
            exploration_rate=self.learner.exploration_rate,
        )
        self.cache.invalidate_results()
        debug_log(f"[ENGINE] Configuration updated: {changes}")

    def get_configuration(self) -> dict[str, Any]:
        return self.settings.to_dict()

    def get_statistics(self) -> dict[str, Any]:
        return {
            "extractor": self.extractor.get_statistics(),
            "categorizer": self.categorizer.get_statistics(),
            "behavior": self.learner.get_statistics(),
            "cache": self.cache.get_statistics(),
            "configuration": self.get_configuration(),
        }

    def get_insights(self) -> list[dict[str, str]]:
        return self.learner.get_insights()

    def export_data(self) -> dict[str, Any]:
        """Dump learned engagement plus component statistics for analysis."""
        data = self.learner.export_data()
        data["categorizer"] = self.categorizer.get_statistics()
        data["extractor"] = self.extractor.get_statistics()
        data["configuration"] = self.get_configuration()
        return data

    def reset_learning(self) -> None:
        """Forget everything learned by all three components."""
        self.extractor.reset()
        self.categorizer.reset()
        self.learner.reset()
        self.settings = dataclasses.replace(
            self.settings,
            learning_rate=self.learner.learning_rate,
            exploration_rate=self.learner.exploration_rate,
        )
        self.cache.invalidate_results()
        info("[ENGINE] Learning state reset")

    def save(self) -> bool:
        """
        Persist every component.

        Returns:
            True if all three snapshots were written
        """
        results = [self.extractor.save(), self.categorizer.save(), self.learner.save()]
        return all(results)
