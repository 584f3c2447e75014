"""
Text primitives shared by the extractor and the categorizer.
"""

import re

STOPWORDS = frozenset({
    'the', 'a', 'an', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for',
    'of', 'with', 'by', 'from', 'as', 'is', 'was', 'are', 'were', 'been',
    'be', 'have', 'has', 'had', 'do', 'does', 'did', 'will', 'would',
    'should', 'could', 'may', 'might', 'must', 'can', 'this', 'that',
    'these', 'those', 'i', 'you', 'he', 'she', 'it', 'we', 'they',
})

# Cinematography / creative domain indicators
TECHNICAL_LEXICON = frozenset({
    'shot', 'camera', 'lens', 'focus', 'light', 'lighting', 'shadow',
    'frame', 'angle', 'motion', 'depth', 'field', 'exposure', 'fps',
    'zoom', 'pan', 'tilt', 'dolly', 'crane', 'aerial', 'bokeh',
    'color', 'grade', 'grading', 'lut', 'grain', 'contrast', 'saturation',
})

# Checked in order, first match wins. Longer suffixes come first so that
# "ies" -> "y" and "es" are reachable before the bare "s".
STEM_SUFFIXES = (
    ('ies', 'y'),
    ('ing', ''),
    ('est', ''),
    ('ed', ''),
    ('es', ''),
    ('er', ''),
    ('ly', ''),
    ('s', ''),
)
MIN_STEM_LENGTH = 5

_NON_WORD = re.compile(r"[^\w\s'-]")
_WHITESPACE = re.compile(r"\s+")


def stem(word: str) -> str:
    """
    Strip one common English suffix.

    Only words longer than 4 characters are stemmed.

    Example:
        >>> stem("shadows")
        'shadow'
        >>> stem("stories")
        'story'
        >>> stem("lens")
        'lens'
    """
    stemmed = word.lower()
    if len(stemmed) < MIN_STEM_LENGTH:
        return stemmed
    for suffix, replacement in STEM_SUFFIXES:
        if stemmed.endswith(suffix):
            return stemmed[:-len(suffix)] + replacement
    return stemmed


def split_words(text: str) -> list[str]:
    """
    Case-preserving word split used by tokenize().

    Lowercasing each returned word gives exactly the tokenize() tokens.
    """
    if not text:
        return []
    words = [w.strip("'-") for w in _NON_WORD.sub(' ', text).split()]
    return [w for w in words if w]


def tokenize(text: str, apply_stemming: bool = False) -> list[str]:
    """
    Lowercase, drop punctuation, split on whitespace.

    Apostrophes and hyphens survive inside words ("close-up", "director's")
    but are trimmed from token edges.

    Args:
        text: Raw text
        apply_stemming: Run stem() over every token

    Returns:
        List of tokens (empty for empty text)
    """
    tokens = [w.lower() for w in split_words(text)]
    if apply_stemming:
        return [stem(t) for t in tokens]
    return tokens


def normalize_phrase(phrase: str) -> str:
    """Lookup key for a phrase: lowercase, trimmed, single-spaced."""
    return _WHITESPACE.sub(' ', phrase.strip().lower())


def phrase_pattern_source(phrase: str) -> str:
    """
    Regex source matching a phrase as whole words.

    Words may be separated by any run of whitespace in the target text.
    Lookarounds are used instead of \\b so phrases that start or end with
    an apostrophe or hyphen still match.
    """
    words = normalize_phrase(phrase).split(' ')
    body = r'\s+'.join(re.escape(w) for w in words)
    return rf"(?<!\w){body}(?!\w)"


def seed_prefix_pattern_source(seed: str) -> str:
    """Regex source matching whitespace-delimited words that begin with seed."""
    return rf"(?<!\S){re.escape(seed.lower())}"
