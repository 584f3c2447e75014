"""
Behavior Learning

Learns which highlights a user engages with and feeds that back into
highlight confidence:

- record_shown / record_click / record_ignored update per-phrase
  EngagementRecords and per-category CategoryEngagement counts
- get_phrase_score blends the learned score with click-through rate and
  decays it over time (30-day time constant)
- adjust_confidence shifts a base confidence by up to +/-20 points
- should_show applies an exploration/exploitation threshold

Time and randomness are injected (clock, rng) so behavior is reproducible
under test. Every mutation persists through the injected KeyValueStore.
"""

import math
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from prompt_lens.config import (
    BEHAVIOR_STORAGE_KEY,
    CATEGORY_BLEND_WEIGHT,
    CONFIDENCE_SWING,
    DECAY_DAYS,
    DEFAULT_EXPLORATION_RATE,
    DEFAULT_LEARNING_RATE,
    EXPLOIT_THRESHOLD,
    EXPLORE_THRESHOLD,
    IGNORE_PENALTY_FACTOR,
    INSIGHT_HIGH_CLICK_RATE,
    INSIGHT_LOW_CLICK_RATE,
    INSIGHT_MIN_SHOWN,
    LEARNING_RATE_MAX,
    LEARNING_RATE_MIN,
    NEUTRAL_SCORE,
    PHRASE_BLEND_WEIGHT,
    UNDERPERFORMING_MIN_SHOWN,
)
from prompt_lens.highlighting import text_utils
from prompt_lens.highlighting.categories import Category
from prompt_lens.highlighting.models import CategoryEngagement, EngagementRecord
from prompt_lens.logging_config import debug_log, warning
from prompt_lens.storage import KeyValueStore

SECONDS_PER_DAY = 86400.0


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _format_rate(rate: float) -> str:
    return f"{rate * 100:.1f}%"


@dataclass
class _LearnerState:
    """Everything the learner persists, swapped as a unit on reset."""
    phrases: dict[str, EngagementRecord] = field(default_factory=dict)
    categories: dict[Category, CategoryEngagement] = field(default_factory=dict)
    learning_rate: float = DEFAULT_LEARNING_RATE
    exploration_rate: float = DEFAULT_EXPLORATION_RATE
    interaction_count: int = 0
    last_interaction: float | None = None


class BehaviorLearner:
    """
    Reinforcement-style engagement tracker.

    Example:
        learner = BehaviorLearner()
        learner.record_shown("golden hour", "lighting", 80)
        learner.record_click("golden hour", "lighting")
        learner.get_phrase_score("golden hour")  # > 0.5
    """

    def __init__(
        self,
        storage: KeyValueStore | None = None,
        storage_key: str = BEHAVIOR_STORAGE_KEY,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
        learning_rate: float | None = None,
        exploration_rate: float | None = None,
    ):
        """
        Initialize the learner.

        Args:
            storage: Persistence port. None keeps engagement in memory only.
            storage_key: Namespace for the persisted snapshot
            clock: Returns the current time in epoch seconds
            rng: Random source for exploration decisions
            learning_rate: Overrides the persisted/default learning rate
            exploration_rate: Overrides the persisted/default exploration rate
        """
        self.storage = storage
        self.storage_key = storage_key
        self.clock = clock
        self.rng = rng if rng is not None else random.Random()

        self._state = _LearnerState()
        self.load()

        if learning_rate is not None:
            self._state.learning_rate = _clamp(float(learning_rate), LEARNING_RATE_MIN, LEARNING_RATE_MAX)
        if exploration_rate is not None:
            self._state.exploration_rate = _clamp(float(exploration_rate), 0.0, 1.0)

    # Read-only views of the current state

    @property
    def phrase_engagement(self) -> dict[str, EngagementRecord]:
        return self._state.phrases

    @property
    def category_engagement(self) -> dict[Category, CategoryEngagement]:
        return self._state.categories

    @property
    def learning_rate(self) -> float:
        return self._state.learning_rate

    @property
    def exploration_rate(self) -> float:
        return self._state.exploration_rate

    @property
    def interaction_count(self) -> int:
        return self._state.interaction_count

    # =========================================================================
    # Events
    # =========================================================================

    def _record_for(self, phrase: str, now: float) -> EngagementRecord | None:
        key = text_utils.normalize_phrase(phrase) if isinstance(phrase, str) else ""
        if not key:
            return None
        record = self._state.phrases.get(key)
        if record is None:
            record = EngagementRecord(first_seen=now, last_seen=now)
            self._state.phrases[key] = record
        return record

    def _category_for(self, category) -> CategoryEngagement | None:
        resolved = Category.parse(category)
        if resolved is None:
            return None
        return self._state.categories.setdefault(resolved, CategoryEngagement())

    def record_shown(self, phrase: str, category, confidence: float) -> None:
        """Count one impression of a highlighted phrase."""
        now = self.clock()
        record = self._record_for(phrase, now)
        if record is None:
            return
        record.shown += 1
        record.total_confidence += float(confidence)
        record.last_seen = now

        category_data = self._category_for(category)
        if category_data is not None:
            category_data.shown += 1
        else:
            debug_log(f"[BEHAVIOR] Unknown category {category!r}, skipping category counts")

        self._state.interaction_count += 1
        self._state.last_interaction = now
        self.save()

    def record_click(self, phrase: str, category) -> None:
        """Positive reinforcement: learned score rises by the learning rate (max 1.0)."""
        now = self.clock()
        record = self._record_for(phrase, now)
        if record is None:
            return
        record.clicked += 1
        record.learned_score = min(1.0, record.learned_score + self._state.learning_rate)
        record.last_seen = now

        category_data = self._category_for(category)
        if category_data is not None:
            category_data.clicked += 1

        self._state.last_interaction = now
        self.save()

    def record_ignored(self, phrase: str) -> None:
        """Negative reinforcement: learned score drops by half the learning rate (min 0.0)."""
        now = self.clock()
        record = self._record_for(phrase, now)
        if record is None:
            return
        record.ignored += 1
        record.learned_score = max(0.0, record.learned_score - self._state.learning_rate * IGNORE_PENALTY_FACTOR)
        record.last_seen = now

        self._state.last_interaction = now
        self.save()

    # =========================================================================
    # Scores
    # =========================================================================

    def get_phrase_score(self, phrase: str) -> float:
        """
        Engagement score for a phrase in [0, 1].

        (0.7 * learned_score + 0.3 * click_through_rate) * exp(-days / 30),
        where days is the time since the phrase was last seen. Unseen
        phrases score a neutral 0.5 with no decay.
        """
        record = self._state.phrases.get(text_utils.normalize_phrase(phrase))
        if record is None:
            return NEUTRAL_SCORE

        combined = record.learned_score * PHRASE_BLEND_WEIGHT + record.click_through_rate * CATEGORY_BLEND_WEIGHT
        days = max(0.0, self.clock() - record.last_seen) / SECONDS_PER_DAY
        return combined * math.exp(-days / DECAY_DAYS)

    def get_category_score(self, category) -> float:
        """Click-through rate of a category; 0.5 before any impression or click."""
        resolved = Category.parse(category)
        data = self._state.categories.get(resolved) if resolved is not None else None
        if data is None or (data.shown == 0 and data.clicked == 0):
            return NEUTRAL_SCORE
        return data.click_through_rate

    def adjust_confidence(self, phrase: str, category, base_confidence: float) -> float:
        """
        Shift a base confidence by learned behavior, at most +/-20 points.

        Returns:
            Adjusted confidence clamped to [0, 100]
        """
        boost = (
            self.get_phrase_score(phrase) * PHRASE_BLEND_WEIGHT
            + self.get_category_score(category) * CATEGORY_BLEND_WEIGHT
        )
        return _clamp(base_confidence + (boost - NEUTRAL_SCORE) * CONFIDENCE_SWING, 0.0, 100.0)

    def should_show(self, phrase: str, category, confidence: float) -> bool:
        """
        Exploration/exploitation gate.

        With probability exploration_rate the adjusted confidence only needs
        to exceed 30; otherwise it must reach 50.
        """
        adjusted = self.adjust_confidence(phrase, category, confidence)
        if self.rng.random() < self._state.exploration_rate:
            return adjusted > EXPLORE_THRESHOLD
        return adjusted >= EXPLOIT_THRESHOLD

    # =========================================================================
    # Tuning
    # =========================================================================

    def set_learning_rate(self, rate: float) -> None:
        self._state.learning_rate = _clamp(float(rate), LEARNING_RATE_MIN, LEARNING_RATE_MAX)
        self.save()

    def set_exploration_rate(self, rate: float) -> None:
        self._state.exploration_rate = _clamp(float(rate), 0.0, 1.0)
        self.save()

    # =========================================================================
    # Reporting
    # =========================================================================

    def _phrase_row(self, phrase: str, record: EngagementRecord) -> dict[str, Any]:
        return {
            "phrase": phrase,
            "score": self.get_phrase_score(phrase),
            "click_rate": _format_rate(record.click_through_rate),
            "shown": record.shown,
            "clicked": record.clicked,
            "ignored": record.ignored,
        }

    def get_top_phrases(self, n: int = 20) -> list[dict[str, Any]]:
        """Highest-scoring phrases first."""
        rows = [self._phrase_row(p, r) for p, r in self._state.phrases.items()]
        rows.sort(key=lambda row: row["score"], reverse=True)
        return rows[:n]

    def get_underperforming_phrases(self, n: int = 20) -> list[dict[str, Any]]:
        """Lowest-scoring phrases among those shown at least 5 times."""
        rows = [
            self._phrase_row(p, r)
            for p, r in self._state.phrases.items()
            if r.shown >= UNDERPERFORMING_MIN_SHOWN
        ]
        rows.sort(key=lambda row: row["score"])
        return rows[:n]

    def get_category_metrics(self) -> list[dict[str, Any]]:
        rows = [
            {
                "category": category.value,
                "shown": data.shown,
                "clicked": data.clicked,
                "click_rate": _format_rate(data.click_through_rate),
                "score": self.get_category_score(category),
            }
            for category, data in self._state.categories.items()
        ]
        rows.sort(key=lambda row: row["score"], reverse=True)
        return rows

    def get_insights(self) -> list[dict[str, str]]:
        """
        Human-readable observations about engagement.

        Returns:
            List of {type, category, message, suggestion} dicts
        """
        insights = []

        well_sampled = [
            (category, data)
            for category, data in self._state.categories.items()
            if data.shown > INSIGHT_MIN_SHOWN
        ]
        low = [c.value for c, d in well_sampled if d.click_through_rate * 100 < INSIGHT_LOW_CLICK_RATE]
        high = [c.value for c, d in well_sampled if d.click_through_rate * 100 > INSIGHT_HIGH_CLICK_RATE]

        if low:
            insights.append({
                "type": "warning",
                "category": "engagement",
                "message": f"Low engagement in categories: {', '.join(low)}",
                "suggestion": "Consider reducing highlight frequency for these categories",
            })
        if high:
            insights.append({
                "type": "success",
                "category": "engagement",
                "message": f"High engagement in categories: {', '.join(high)}",
                "suggestion": "These categories resonate well with users",
            })

        total = len(self._state.phrases)
        seen_once = sum(1 for r in self._state.phrases.values() if r.shown == 1)
        if total > 0 and seen_once / total > 0.5:
            insights.append({
                "type": "info",
                "category": "exploration",
                "message": "Many phrases shown only once. Need more data to learn preferences.",
                "suggestion": "System is still exploring. Patterns will improve with more usage.",
            })

        return insights

    def get_statistics(self) -> dict[str, Any]:
        records = self._state.phrases.values()
        total_shown = sum(r.shown for r in records)
        total_clicked = sum(r.clicked for r in records)
        return {
            "total_phrases": len(self._state.phrases),
            "total_categories": len(self._state.categories),
            "total_interactions": self._state.interaction_count,
            "total_shown": total_shown,
            "total_clicks": total_clicked,
            "overall_click_rate": _format_rate(total_clicked / total_shown) if total_shown else "0.0%",
            "learning_rate": self._state.learning_rate,
            "exploration_rate": self._state.exploration_rate,
        }

    def export_data(self) -> dict[str, Any]:
        """Full engagement dump for analysis."""
        return {
            "phrases": [
                {"phrase": phrase, **record.to_dict(), "score": self.get_phrase_score(phrase)}
                for phrase, record in self._state.phrases.items()
            ],
            "categories": self.get_category_metrics(),
            "statistics": self.get_statistics(),
            "insights": self.get_insights(),
        }

    # =========================================================================
    # Persistence
    # =========================================================================

    def to_snapshot(self) -> dict[str, Any]:
        state = self._state
        return {
            "phraseEngagement": {p: r.to_dict() for p, r in state.phrases.items()},
            "categoryEngagement": {c.value: d.to_dict() for c, d in state.categories.items()},
            "learningRate": state.learning_rate,
            "explorationRate": state.exploration_rate,
            "interactionCount": state.interaction_count,
            "lastInteraction": state.last_interaction,
        }

    def save(self) -> bool:
        """
        Persist engagement state.

        Returns:
            True if the snapshot was written. Failures are logged, never raised.
        """
        if self.storage is None:
            return False
        try:
            self.storage.set(self.storage_key, self.to_snapshot())
            return True
        except Exception as e:
            warning(f"[BEHAVIOR] Failed to save behavior learning data: {e}")
            return False

    def load(self) -> bool:
        """
        Restore engagement state from storage.

        The snapshot is parsed completely before it replaces the current
        state, so a malformed snapshot leaves the learner untouched.

        Returns:
            True if a snapshot was loaded
        """
        if self.storage is None:
            return False
        try:
            data = self.storage.get(self.storage_key)
            if not data:
                debug_log("[BEHAVIOR] No saved behavior data, starting fresh")
                return False

            state = _LearnerState(
                phrases={
                    str(p): EngagementRecord.from_dict(r)
                    for p, r in dict(data.get("phraseEngagement", {})).items()
                },
                learning_rate=_clamp(
                    float(data.get("learningRate", DEFAULT_LEARNING_RATE)),
                    LEARNING_RATE_MIN,
                    LEARNING_RATE_MAX,
                ),
                exploration_rate=_clamp(float(data.get("explorationRate", DEFAULT_EXPLORATION_RATE)), 0.0, 1.0),
                interaction_count=int(data.get("interactionCount", 0)),
                last_interaction=data.get("lastInteraction"),
            )
            for name, counts in dict(data.get("categoryEngagement", {})).items():
                category = Category.parse(name)
                if category is not None:
                    state.categories[category] = CategoryEngagement.from_dict(counts)
        except Exception as e:
            warning(f"[BEHAVIOR] Failed to load behavior learning data, starting fresh: {e}")
            return False

        self._state = state
        debug_log(f"[BEHAVIOR] Loaded engagement for {len(state.phrases)} phrases")
        return True

    def reset(self) -> None:
        """Replace all learned engagement with a fresh state and delete the snapshot."""
        self._state = _LearnerState()
        if self.storage is not None:
            try:
                self.storage.delete(self.storage_key)
            except Exception as e:
                warning(f"[BEHAVIOR] Failed to delete saved behavior data: {e}")
