"""
Typo Correction Collaborators

The engine runs a typo corrector over raw prompt text before extracting
phrases. Any callable taking and returning a string qualifies; the engine
treats it as a black box.

Shipped correctors:
- PassthroughCorrector: returns text unchanged (default)
- DictionaryTypoCorrector: case-insensitive whole-word replacement from a
  misspelling -> correction map. Add entries as you discover them.
"""

import re
from typing import Protocol

from prompt_lens.logging_config import debug_log


class TypoCorrector(Protocol):
    """Anything that maps raw text to corrected text."""

    def __call__(self, text: str) -> str:
        ...


# Common misspellings in cinematography prompts
DEFAULT_CORRECTIONS = {
    "ligthing": "lighting",
    "lighitng": "lighting",
    "shaddow": "shadow",
    "shaddows": "shadows",
    "bokhe": "bokeh",
    "boke": "bokeh",
    "dolley": "dolly",
    "zooom": "zoom",
    "anamorphc": "anamorphic",
    "apperture": "aperture",
    "atmospher": "atmosphere",
    "silhoutte": "silhouette",
    "silouette": "silhouette",
    "exposre": "exposure",
    "saturaton": "saturation",
    "resoluton": "resolution",
    "colour": "color",
    "colours": "colors",
}


class PassthroughCorrector:
    """Corrector that leaves text untouched."""

    def __call__(self, text: str) -> str:
        return text


class DictionaryTypoCorrector:
    """
    Replaces known misspellings with their corrections.

    Matching is case-insensitive and whole-word. The replacement keeps a
    leading capital when the misspelling started with one, so
    "Shaddow play" becomes "Shadow play".

    Example:
        corrector = DictionaryTypoCorrector({"bokhe": "bokeh"})
        corrector("soft bokhe")  # "soft bokeh"
    """

    def __init__(self, corrections: dict[str, str] | None = None):
        """
        Args:
            corrections: misspelling -> correction map. Defaults to
                         DEFAULT_CORRECTIONS.
        """
        source = DEFAULT_CORRECTIONS if corrections is None else corrections
        self.corrections = {
            wrong.lower().strip(): right
            for wrong, right in source.items()
            if wrong.strip() and wrong.lower().strip() != right.lower()
        }
        self._pattern = self._compile()

    def _compile(self) -> re.Pattern | None:
        if not self.corrections:
            return None
        # Longest first so multi-word entries win over their parts
        alternatives = sorted(self.corrections, key=len, reverse=True)
        body = '|'.join(re.escape(wrong) for wrong in alternatives)
        return re.compile(rf"(?<!\w)(?:{body})(?!\w)", re.IGNORECASE)

    def add_correction(self, wrong: str, right: str) -> None:
        """Register another misspelling and rebuild the matcher."""
        key = wrong.lower().strip()
        if not key or key == right.lower():
            return
        self.corrections[key] = right
        self._pattern = self._compile()

    def _replace(self, match: re.Match) -> str:
        found = match.group(0)
        right = self.corrections[found.lower()]
        if found[:1].isupper():
            return right[:1].upper() + right[1:]
        return right

    def __call__(self, text: str) -> str:
        if not text or self._pattern is None:
            return text

        corrected = self._pattern.sub(self._replace, text)
        if corrected != text:
            debug_log(f"[TYPO] Corrected text ({len(text)} chars)")
        return corrected
