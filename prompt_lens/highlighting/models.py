"""
Data structures for the highlighting pipeline.

Ephemeral (produced per processed text):
- PhraseCandidate: a scored phrase from statistical extraction
- Occurrence: a candidate located at [start, end) in the text
- CategoryAssignment: category + confidence for one occurrence
- Match: final highlight unit returned to the rendering layer
- ProcessStats / HighlightResult: per-call output

Durable (persisted by the learning components):
- EngagementRecord: per-phrase shown/clicked/ignored history
- CategoryEngagement: per-category shown/clicked counts
"""

from dataclasses import asdict, dataclass, field
from typing import Any

from prompt_lens.highlighting.categories import Category, CategoryColor

# CategoryAssignment.source values
SOURCE_SEED_SIMILARITY = "seed-similarity"
SOURCE_CONTEXT = "context"
SOURCE_COOCCURRENCE = "cooccurrence"
SOURCE_USER_OVERRIDE = "user-override"


@dataclass
class PhraseCandidate:
    """
    A phrase surfaced by statistical extraction.

    Attributes:
        text: The phrase as extracted (lowercase tokens joined by spaces)
        normalized: Lookup key (lowercase, single-spaced)
        score: Importance score (TF-IDF, length, technical, PMI, capitalization)
        word_count: Number of tokens in the phrase
        is_technical: Whether any token is in the technical lexicon
        frequency: Occurrences of the phrase in the current text
        document_frequency: Number of processed texts containing the phrase
    """
    text: str
    normalized: str
    score: float
    word_count: int
    is_technical: bool = False
    frequency: int = 1
    document_frequency: int = 0


@dataclass
class Occurrence:
    """A candidate located at [start, end) in a specific text."""
    candidate: PhraseCandidate
    start: int
    end: int
    text: str

    @property
    def phrase(self) -> str:
        return self.candidate.text

    @property
    def length(self) -> int:
        return self.end - self.start


@dataclass
class CategoryAssignment:
    """
    Category decision for one phrase occurrence.

    Attributes:
        category: Winning category
        confidence: 0-100
        color: Rendering token for the category
        source: Signal that decided the category
        scores: Raw per-category scores (empty for user overrides)
    """
    category: Category
    confidence: int
    color: CategoryColor
    source: str
    scores: dict[str, float] = field(default_factory=dict)


@dataclass
class Match:
    """
    A highlight: occurrence + category + behavior-adjusted confidence.
    """
    text: str
    phrase: str
    start: int
    end: int
    category: Category
    confidence: float
    base_confidence: int
    color: CategoryColor
    source: str
    score: float
    word_count: int
    is_technical: bool = False

    @property
    def length(self) -> int:
        return self.end - self.start

    def overlaps(self, other: "Match") -> bool:
        return self.start < other.end and other.start < self.end

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "phrase": self.phrase,
            "start": self.start,
            "end": self.end,
            "category": self.category.value,
            "confidence": round(self.confidence, 2),
            "baseConfidence": self.base_confidence,
            "color": self.color.to_dict(),
            "source": self.source,
            "score": round(self.score, 4),
            "wordCount": self.word_count,
            "isTechnical": self.is_technical,
        }


@dataclass
class EngagementRecord:
    """
    Durable engagement history for one normalized phrase.

    learned_score starts neutral (0.5) and moves with clicks and ignores.
    Timestamps are epoch seconds from the learner's clock.
    """
    first_seen: float
    last_seen: float
    shown: int = 0
    clicked: int = 0
    ignored: int = 0
    total_confidence: float = 0.0
    learned_score: float = 0.5

    @property
    def click_through_rate(self) -> float:
        """Clicks per impression, capped at 1.0 when clicks outnumber impressions."""
        if self.clicked <= 0:
            return 0.0
        return self.clicked / max(self.shown, self.clicked)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EngagementRecord":
        """
        Rebuild a record from its snapshot.

        Raises:
            KeyError, TypeError, ValueError: If the snapshot is malformed
        """
        return cls(
            first_seen=float(data["first_seen"]),
            last_seen=float(data["last_seen"]),
            shown=int(data.get("shown", 0)),
            clicked=int(data.get("clicked", 0)),
            ignored=int(data.get("ignored", 0)),
            total_confidence=float(data.get("total_confidence", 0.0)),
            learned_score=min(1.0, max(0.0, float(data.get("learned_score", 0.5)))),
        )


@dataclass
class CategoryEngagement:
    """Durable shown/clicked counts for one category."""
    shown: int = 0
    clicked: int = 0

    @property
    def click_through_rate(self) -> float:
        if self.clicked <= 0:
            return 0.0
        return self.clicked / max(self.shown, self.clicked)

    def to_dict(self) -> dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CategoryEngagement":
        return cls(shown=int(data.get("shown", 0)), clicked=int(data.get("clicked", 0)))


@dataclass
class ProcessStats:
    """Per-stage counts and timing for one process_text call."""
    phrases_extracted: int = 0
    occurrences_found: int = 0
    after_filtering: int = 0
    final_highlights: int = 0
    processing_time_ms: float = 0.0
    cache_hit: bool = False
    typo_corrected: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "phrasesExtracted": self.phrases_extracted,
            "occurrencesFound": self.occurrences_found,
            "afterFiltering": self.after_filtering,
            "finalHighlights": self.final_highlights,
            "processingTimeMs": round(self.processing_time_ms, 3),
            "cacheHit": self.cache_hit,
            "typoCorrected": self.typo_corrected,
            "error": self.error,
        }


@dataclass
class HighlightResult:
    """
    Output of HighlightEngine.process_text.

    Attributes:
        matches: Non-overlapping highlights sorted by start offset
        stats: Per-stage counts
        corrected_text: The text the offsets refer to (after typo correction)
    """
    matches: list[Match] = field(default_factory=list)
    stats: ProcessStats = field(default_factory=ProcessStats)
    corrected_text: str = ""

    def __len__(self) -> int:
        return len(self.matches)

    def to_dict(self) -> dict[str, Any]:
        return {
            "matches": [m.to_dict() for m in self.matches],
            "stats": self.stats.to_dict(),
            "correctedText": self.corrected_text,
        }
