"""
Tests for engagement-based behavior learning.

Tests cover:
- Shown / click / ignored events and their score effects
- Time decay, confidence adjustment and the exploration gate
- Reporting views (top phrases, category metrics, insights)
- Persistence and reset
"""

import math
import random
import sys
from pathlib import Path

import pytest

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from prompt_lens.config import BEHAVIOR_STORAGE_KEY  # noqa: E402
from prompt_lens.highlighting.behavior_learner import BehaviorLearner  # noqa: E402
from prompt_lens.highlighting.categories import Category  # noqa: E402
from prompt_lens.storage import MemoryStore  # noqa: E402

DAY = 86400.0


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, days):
        self.now += days * DAY


class FixedRandom(random.Random):
    """Random source that always returns the same draw."""

    def __init__(self, value):
        super().__init__(0)
        self.value = value

    def random(self):
        return self.value


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def learner(store, clock):
    """Learner that never explores (draw above the 0.15 exploration rate)."""
    return BehaviorLearner(storage=store, clock=clock, rng=FixedRandom(0.99))


class TestEvents:
    """Tests for recording engagement events."""

    def test_unseen_phrase_is_neutral(self, learner):
        assert learner.get_phrase_score("golden hour") == 0.5

    def test_record_shown(self, learner, clock):
        learner.record_shown("Golden Hour", "lighting", 80)
        record = learner.phrase_engagement["golden hour"]

        assert record.shown == 1
        assert record.total_confidence == pytest.approx(80)
        assert record.first_seen == clock.now
        assert learner.category_engagement[Category.LIGHTING].shown == 1
        assert learner.interaction_count == 1

    def test_ignored_drives_score_below_neutral(self, learner):
        """Test one impression plus three ignores lands below 0.5."""
        learner.record_shown("bokeh", "technical", 75)
        for _ in range(3):
            learner.record_ignored("bokeh")

        assert learner.phrase_engagement["bokeh"].learned_score == pytest.approx(0.35)
        assert learner.get_phrase_score("bokeh") < 0.5

    def test_click_raises_score(self, learner):
        learner.record_shown("golden hour", "lighting", 80)
        learner.record_click("golden hour", "lighting")

        # 0.7 * 0.6 + 0.3 * (1 / 1)
        assert learner.get_phrase_score("golden hour") == pytest.approx(0.72)

    def test_repeated_clicks_are_monotonic(self, learner, clock):
        """Test clicks never lower the score and converge to 1.0."""
        learner.record_shown("neon glow", "colors", 60)
        previous = learner.get_phrase_score("neon glow")
        for _ in range(15):
            clock.advance(0.5)
            learner.record_click("neon glow", "colors")
            current = learner.get_phrase_score("neon glow")
            assert current >= previous
            previous = current

        assert previous == pytest.approx(1.0)

    def test_learned_score_bounds(self, learner):
        learner.record_shown("rain", "environment", 50)
        for _ in range(30):
            learner.record_ignored("rain")
        assert learner.phrase_engagement["rain"].learned_score == 0.0

        for _ in range(30):
            learner.record_click("rain", "environment")
        assert learner.phrase_engagement["rain"].learned_score == 1.0

    def test_click_before_shown_creates_record(self, learner):
        learner.record_click("fog", "environment")
        record = learner.phrase_engagement["fog"]

        assert record.shown == 0
        assert record.clicked == 1
        assert record.click_through_rate == pytest.approx(1.0)

    def test_unknown_category_skips_category_counts(self, learner):
        learner.record_shown("fog", "sounds", 50)
        assert learner.phrase_engagement["fog"].shown == 1
        assert learner.category_engagement == {}

    def test_blank_phrase_ignored(self, learner):
        learner.record_shown("   ", "camera", 50)
        learner.record_click("", "camera")
        assert learner.phrase_engagement == {}


class TestScores:
    """Tests for decay, confidence adjustment and exploration."""

    def test_time_decay(self, learner, clock):
        learner.record_shown("golden hour", "lighting", 80)
        learner.record_click("golden hour", "lighting")
        fresh = learner.get_phrase_score("golden hour")

        clock.advance(30)
        assert learner.get_phrase_score("golden hour") == pytest.approx(fresh * math.exp(-1))

    def test_category_score(self, learner):
        assert learner.get_category_score("camera") == 0.5

        for i in range(4):
            learner.record_shown(f"shot {i}", "camera", 50)
        learner.record_click("shot 0", "camera")
        assert learner.get_category_score("camera") == pytest.approx(0.25)

    def test_adjust_confidence_neutral(self, learner):
        assert learner.adjust_confidence("unseen", "camera", 62) == pytest.approx(62)

    def test_adjust_confidence_penalty(self, learner):
        learner.record_shown("bokeh", "technical", 75)
        for _ in range(3):
            learner.record_ignored("bokeh")

        # phrase 0.245, category 0.0 -> (0.1715 - 0.5) * 40
        assert learner.adjust_confidence("bokeh", "technical", 75) == pytest.approx(75 - 13.14)

    def test_adjust_confidence_clamped(self, learner):
        learner.record_shown("neon", "colors", 90)
        for _ in range(10):
            learner.record_click("neon", "colors")
        assert learner.adjust_confidence("neon", "colors", 95) == 100

        learner.record_shown("mist", "environment", 10)
        for _ in range(10):
            learner.record_ignored("mist")
        assert learner.adjust_confidence("mist", "environment", 5) == 0

    def test_should_show_exploit(self, learner):
        assert learner.should_show("unseen", "camera", 50) is True
        assert learner.should_show("unseen", "camera", 45) is False

    def test_should_show_explore(self, store, clock):
        learner = BehaviorLearner(storage=store, clock=clock, rng=FixedRandom(0.0))
        assert learner.should_show("unseen", "camera", 45) is True
        assert learner.should_show("unseen", "camera", 30) is False

    def test_rate_clamping(self, learner):
        learner.set_learning_rate(5)
        assert learner.learning_rate == 1.0
        learner.set_learning_rate(0)
        assert learner.learning_rate == pytest.approx(0.01)

        learner.set_exploration_rate(-1)
        assert learner.exploration_rate == 0.0
        learner.set_exploration_rate(2)
        assert learner.exploration_rate == 1.0


class TestReporting:
    """Tests for read-only reporting views."""

    def test_top_and_underperforming(self, learner):
        for _ in range(5):
            learner.record_shown("good", "lighting", 70)
            learner.record_shown("bad", "camera", 70)
        learner.record_click("good", "lighting")
        learner.record_ignored("bad")
        learner.record_shown("rare", "colors", 70)

        top = learner.get_top_phrases()
        assert top[0]["phrase"] == "good"
        assert top[0]["click_rate"] == "20.0%"

        under = learner.get_underperforming_phrases()
        assert [row["phrase"] for row in under] == ["bad", "good"]

    def test_reporting_is_read_only(self, learner, store):
        learner.record_shown("good", "lighting", 70)
        before = store.get(BEHAVIOR_STORAGE_KEY)
        learner.get_top_phrases()
        learner.get_category_metrics()
        learner.get_insights()
        learner.export_data()
        assert store.get(BEHAVIOR_STORAGE_KEY) == before

    def test_category_metrics(self, learner):
        learner.record_shown("a shot", "camera", 50)
        learner.record_shown("a glow", "lighting", 50)
        learner.record_click("a glow", "lighting")

        metrics = learner.get_category_metrics()
        assert metrics[0]["category"] == "lighting"
        assert metrics[0]["click_rate"] == "100.0%"
        assert metrics[1]["score"] == 0.0

    def test_insights(self, learner):
        for i in range(21):
            learner.record_shown(f"angle {i}", "camera", 50)
            learner.record_shown(f"glow {i}", "lighting", 50)
        for i in range(10):
            learner.record_click(f"glow {i}", "lighting")

        insights = learner.get_insights()
        messages = {i["type"]: i["message"] for i in insights}
        assert messages["warning"] == "Low engagement in categories: camera"
        assert messages["success"] == "High engagement in categories: lighting"
        assert "info" in messages

    def test_no_insights_without_data(self, learner):
        assert learner.get_insights() == []

    def test_statistics_and_export(self, learner):
        learner.record_shown("golden hour", "lighting", 80)
        learner.record_click("golden hour", "lighting")

        stats = learner.get_statistics()
        assert stats["total_phrases"] == 1
        assert stats["total_clicks"] == 1
        assert stats["overall_click_rate"] == "100.0%"

        exported = learner.export_data()
        assert exported["phrases"][0]["phrase"] == "golden hour"
        assert exported["phrases"][0]["clicked"] == 1
        assert set(exported) == {"phrases", "categories", "statistics", "insights"}


class TestPersistence:
    """Tests for saving, restoring and resetting engagement."""

    def test_round_trip(self, store, clock, learner):
        """Test a clicked phrase scores the same after a restart."""
        learner.record_shown("golden hour", "lighting", 80)
        learner.record_click("golden hour", "lighting")
        learner.set_learning_rate(0.3)
        expected = learner.get_phrase_score("golden hour")

        restored = BehaviorLearner(storage=store, clock=clock)
        assert restored.get_phrase_score("golden hour") == pytest.approx(expected)
        assert restored.get_category_score("lighting") == pytest.approx(1.0)
        assert restored.learning_rate == pytest.approx(0.3)

    def test_constructor_rates_override_snapshot(self, store, clock, learner):
        learner.set_exploration_rate(0.5)
        restored = BehaviorLearner(storage=store, clock=clock, exploration_rate=0.2)
        assert restored.exploration_rate == pytest.approx(0.2)

    def test_malformed_snapshot_starts_fresh(self, store, clock):
        store.set(BEHAVIOR_STORAGE_KEY, {"phraseEngagement": {"fog": {"first_seen": "bad", "last_seen": 0}}})
        learner = BehaviorLearner(storage=store, clock=clock)
        assert learner.phrase_engagement == {}

    def test_reset(self, store, learner):
        learner.record_shown("golden hour", "lighting", 80)
        learner.set_learning_rate(0.5)
        learner.reset()

        assert BEHAVIOR_STORAGE_KEY not in store
        assert learner.phrase_engagement == {}
        assert learner.category_engagement == {}
        assert learner.learning_rate == pytest.approx(0.1)
        assert learner.get_phrase_score("golden hour") == 0.5
