"""
Highlighting Package

Adaptive phrase recognition for prompt text: statistical extraction,
semantic categorization, behavior learning, overlap resolution and caching.

Main Components:
- HighlightEngine: Orchestrator and feedback/admin API
- PhraseExtractor: TF-IDF / n-gram / PMI candidate scoring
- SemanticCategorizer: Seed-similarity, context and cooccurrence categories
- BehaviorLearner: Engagement tracking and confidence adjustment
- ResultCache: Compiled-pattern and LRU result caches

Usage:
    from prompt_lens.highlighting import HighlightEngine

    engine = HighlightEngine()
    result = engine.process_text("golden hour lighting creates soft shadows")

    # Feedback loop
    for match in result.matches:
        engine.record_shown(match.phrase, match.category, match.confidence)
    engine.record_click("golden hour", "lighting")
"""

from .categories import Category, CategoryColor, CATEGORY_TABLE
from .models import HighlightResult, Match, ProcessStats
from .phrase_extractor import PhraseExtractor
from .semantic_categorizer import SemanticCategorizer
from .behavior_learner import BehaviorLearner
from .overlap_resolver import resolve_overlaps
from .result_cache import LRUResultCache, PatternCache, ResultCache
from .engine import HighlightEngine

__all__ = [
    'HighlightEngine',
    'PhraseExtractor',
    'SemanticCategorizer',
    'BehaviorLearner',
    'resolve_overlaps',
    'ResultCache',
    'PatternCache',
    'LRUResultCache',
    # Data types
    'Category',
    'CategoryColor',
    'CATEGORY_TABLE',
    'HighlightResult',
    'Match',
    'ProcessStats',
]
