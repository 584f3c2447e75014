"""
PromptLens - adaptive phrase highlighting for media-generation prompts.

Usage:
    from prompt_lens import HighlightEngine, JsonFileStore

    engine = HighlightEngine(storage=JsonFileStore())
    result = engine.process_text("slow dolly shot through neon rain")
"""

from .highlighting import Category, HighlightEngine, HighlightResult, Match
from .storage import JsonFileStore, KeyValueStore, MemoryStore
from .typo_correction import DictionaryTypoCorrector, PassthroughCorrector

__version__ = "0.1.0"

__all__ = [
    'HighlightEngine',
    'HighlightResult',
    'Match',
    'Category',
    'KeyValueStore',
    'MemoryStore',
    'JsonFileStore',
    'DictionaryTypoCorrector',
    'PassthroughCorrector',
]
