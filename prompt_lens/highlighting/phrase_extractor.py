"""
Statistical Phrase Extraction

Identifies noteworthy phrases in prompt text without any trained model.
Every candidate 1-4 gram gets an importance score built from:

    score = TF * IDF * 10                 (term importance vs. past prompts)
          + word_count * 2                (prefer phrases over single words)
          + 5 if technical                (cinematography lexicon hit)
          + PMI * 3                       (collocation strength, n > 1, PMI > 0)
          + 2 if >= 30% capitalized       (proper nouns / brand terms)

Where:
    TF  = occurrences(term) / token_count
    IDF = ln(total_documents / document_frequency(term)), 0 if never seen
    PMI = log2(P(ngram) / prod(P(word))), 0 if the ngram was never seen

Document and n-gram frequencies grow online: the engine calls
update_statistics() once per processed text, and the counters persist
through the injected KeyValueStore.

Example:
    extractor = PhraseExtractor()
    candidates = extractor.extract_important_phrases("golden hour lighting")
    occurrences = extractor.find_occurrences("golden hour lighting", candidates)
"""

import math
import re
from collections import Counter, OrderedDict
from typing import Any

from prompt_lens.config import (
    CAPITALIZATION_BONUS,
    CAPITALIZATION_RATIO,
    EXTRACTION_MIN_SCORE,
    EXTRACTOR_STORAGE_KEY,
    LENGTH_BONUS,
    MAX_NGRAM_LENGTH,
    MIN_UNIGRAM_LENGTH,
    PMI_MULTIPLIER,
    REGEX_CACHE_MAX_SIZE,
    TECHNICAL_BONUS,
    TFIDF_MULTIPLIER,
)
from prompt_lens.highlighting import text_utils
from prompt_lens.highlighting.models import Occurrence, PhraseCandidate
from prompt_lens.logging_config import debug_log, warning
from prompt_lens.storage import KeyValueStore


class PhraseExtractor:
    """
    TF-IDF / n-gram / PMI phrase extractor with online corpus statistics.

    Attributes:
        document_frequency: term -> number of processed texts containing it
        ngram_frequency: ngram (n > 1) -> total occurrences across processed texts
        total_documents: number of texts fed to update_statistics()
    """

    def __init__(
        self,
        storage: KeyValueStore | None = None,
        storage_key: str = EXTRACTOR_STORAGE_KEY,
        regex_cache_size: int = REGEX_CACHE_MAX_SIZE,
    ):
        """
        Initialize the extractor.

        Args:
            storage: Persistence port. None keeps statistics in memory only.
            storage_key: Namespace for the persisted snapshot
            regex_cache_size: Max compiled phrase patterns kept
        """
        self.storage = storage
        self.storage_key = storage_key
        self.regex_cache_size = regex_cache_size

        self.document_frequency: dict[str, int] = {}
        self.ngram_frequency: dict[str, int] = {}
        self.total_documents = 0

        # normalized phrase -> compiled pattern, insertion ordered for FIFO eviction
        self._regex_cache: OrderedDict[str, re.Pattern] = OrderedDict()

        self.load()

    # =========================================================================
    # Tokenization
    # =========================================================================

    @staticmethod
    def stem(word: str) -> str:
        return text_utils.stem(word)

    @staticmethod
    def tokenize(text: str, stem: bool = False) -> list[str]:
        return text_utils.tokenize(text, apply_stemming=stem)

    @staticmethod
    def extract_ngrams(tokens: list[str], n: int) -> list[str]:
        """
        All contiguous n-token windows.

        For n > 1, windows starting with a stopword are skipped. Windows may
        end with a stopword ("depth of field" style phrases stay possible
        through their longer forms).

        Args:
            tokens: Token list from tokenize()
            n: Window size

        Returns:
            List of space-joined n-grams in text order
        """
        if n < 1 or len(tokens) < n:
            return []
        ngrams = []
        for i in range(len(tokens) - n + 1):
            if n > 1 and tokens[i] in text_utils.STOPWORDS:
                continue
            ngrams.append(' '.join(tokens[i:i + n]))
        return ngrams

    # =========================================================================
    # Statistics
    # =========================================================================

    @staticmethod
    def _count_windows(tokens: list[str]) -> Counter:
        """Occurrence counts of every 1..MAX_NGRAM_LENGTH window in tokens."""
        counts, _ = PhraseExtractor._count_windows_with_case(tokens, tokens)
        return counts

    @staticmethod
    def _count_windows_with_case(tokens: list[str], words: list[str]) -> tuple[Counter, Counter]:
        """
        Window occurrence counts plus how many of them contain an uppercase letter.

        Args:
            tokens: Lowercased tokens
            words: The same tokens with their original case (split_words)

        Returns:
            (window -> occurrences, window -> capitalized occurrences)
        """
        has_upper = [any(c.isupper() for c in w) for w in words]
        counts: Counter = Counter()
        capitalized: Counter = Counter()
        for n in range(1, MAX_NGRAM_LENGTH + 1):
            for i in range(len(tokens) - n + 1):
                window = ' '.join(tokens[i:i + n])
                counts[window] += 1
                if any(has_upper[i:i + n]):
                    capitalized[window] += 1
        return counts, capitalized

    def calculate_tf(self, term: str, tokens: list[str], window_counts: Counter | None = None) -> float:
        """
        Term frequency: occurrences of term in tokens / token count.

        Args:
            term: Space-joined phrase
            tokens: Document tokens
            window_counts: Precomputed _count_windows(tokens), if available
        """
        if not tokens:
            return 0.0
        if window_counts is None:
            window_counts = self._count_windows(tokens)
        return window_counts.get(term, 0) / len(tokens)

    def calculate_idf(self, term: str) -> float:
        """Inverse document frequency: ln(N / df). 0 for unseen terms."""
        doc_freq = self.document_frequency.get(term, 0)
        if doc_freq <= 0 or self.total_documents <= 0:
            return 0.0
        return math.log(self.total_documents / doc_freq)

    def calculate_tfidf(self, term: str, tokens: list[str], window_counts: Counter | None = None) -> float:
        return self.calculate_tf(term, tokens, window_counts) * self.calculate_idf(term)

    def calculate_pmi(self, ngram: str) -> float:
        """
        Pointwise mutual information of a multi-word phrase.

        PMI = log2(P(ngram) / (P(w1) * P(w2) * ...)), with probabilities taken
        over processed documents. Returns 0 (not -inf) when the ngram or any
        of its words has never been seen, and for single words.
        """
        words = ngram.split(' ')
        if len(words) < 2 or self.total_documents <= 0:
            return 0.0

        ngram_freq = self.ngram_frequency.get(ngram, 0)
        if ngram_freq == 0:
            return 0.0

        p_ngram = ngram_freq / self.total_documents
        p_product = 1.0
        for word in words:
            p_product *= self.document_frequency.get(word, 0) / self.total_documents
        if p_product == 0:
            return 0.0

        return math.log2(p_ngram / p_product)

    @staticmethod
    def is_technical_phrase(phrase: str) -> bool:
        return any(word in text_utils.TECHNICAL_LEXICON for word in phrase.lower().split())

    def update_statistics(self, text: str) -> None:
        """
        Count a processed text into the corpus statistics.

        Every unique unigram and 2-4 gram gets +1 document frequency; 2-4
        grams also accumulate occurrence frequency for PMI. Call once per
        processed text. Empty text is ignored.
        """
        tokens = self.tokenize(text)
        if not tokens:
            return

        unique_terms = set(tokens)
        for n in range(2, MAX_NGRAM_LENGTH + 1):
            ngrams = self.extract_ngrams(tokens, n)
            unique_terms.update(ngrams)
            for ngram in ngrams:
                self.ngram_frequency[ngram] = self.ngram_frequency.get(ngram, 0) + 1

        for term in unique_terms:
            self.document_frequency[term] = self.document_frequency.get(term, 0) + 1

        self.total_documents += 1

    # =========================================================================
    # Extraction
    # =========================================================================

    def _get_regex(self, phrase: str) -> re.Pattern:
        """
        Compiled case-insensitive whole-word pattern for a phrase.

        Cached by normalized phrase; the oldest entry is evicted once the
        cache exceeds regex_cache_size.
        """
        key = text_utils.normalize_phrase(phrase)
        pattern = self._regex_cache.get(key)
        if pattern is None:
            pattern = re.compile(text_utils.phrase_pattern_source(key), re.IGNORECASE)
            self._regex_cache[key] = pattern
            while len(self._regex_cache) > self.regex_cache_size:
                self._regex_cache.popitem(last=False)
        return pattern

    @staticmethod
    def _capitalization_bonus(phrase: str, window_counts: Counter, capitalized_counts: Counter) -> float:
        occurrences = window_counts.get(phrase, 0)
        capitalized = capitalized_counts.get(phrase, 0)
        if capitalized > 0 and capitalized >= occurrences * CAPITALIZATION_RATIO:
            return CAPITALIZATION_BONUS
        return 0.0

    def extract_important_phrases(self, text: str, min_score: float = EXTRACTION_MIN_SCORE) -> list[PhraseCandidate]:
        """
        Extract and score candidate phrases.

        Candidates are unigrams (non-stopword, longer than 2 characters) and
        all 2-4 grams that do not start with a stopword.

        Args:
            text: Raw text (capitalization is read from it)
            min_score: Candidates scoring below this are dropped

        Returns:
            PhraseCandidate list sorted by score, highest first. Ties keep
            first-appearance order. Empty text yields [].
        """
        words = text_utils.split_words(text)
        if not words:
            return []
        tokens = [w.lower() for w in words]

        window_counts, capitalized_counts = self._count_windows_with_case(tokens, words)

        # phrase -> word count, in first-appearance order
        candidates: dict[str, int] = {}
        for token in tokens:
            if token not in text_utils.STOPWORDS and len(token) >= MIN_UNIGRAM_LENGTH:
                candidates.setdefault(token, 1)
        for n in range(2, MAX_NGRAM_LENGTH + 1):
            for ngram in self.extract_ngrams(tokens, n):
                candidates.setdefault(ngram, n)

        phrases = []
        for phrase, length in candidates.items():
            score = self.calculate_tfidf(phrase, tokens, window_counts) * TFIDF_MULTIPLIER
            score += length * LENGTH_BONUS

            is_technical = self.is_technical_phrase(phrase)
            if is_technical:
                score += TECHNICAL_BONUS

            if length > 1:
                pmi = self.calculate_pmi(phrase)
                if pmi > 0:
                    score += pmi * PMI_MULTIPLIER

            score += self._capitalization_bonus(phrase, window_counts, capitalized_counts)

            if score >= min_score:
                phrases.append(PhraseCandidate(
                    text=phrase,
                    normalized=text_utils.normalize_phrase(phrase),
                    score=score,
                    word_count=length,
                    is_technical=is_technical,
                    frequency=window_counts.get(phrase, 0),
                    document_frequency=self.document_frequency.get(phrase, 0),
                ))

        phrases.sort(key=lambda c: c.score, reverse=True)

        debug_log(
            f"[EXTRACTOR] Scored {len(candidates)} candidates from {len(tokens)} tokens, "
            f"{len(phrases)} at or above {min_score}"
        )
        return phrases

    def find_occurrences(self, text: str, candidates: list[PhraseCandidate]) -> list[Occurrence]:
        """
        Locate every case-insensitive whole-word occurrence of each candidate.

        Args:
            text: Text to search
            candidates: Phrases from extract_important_phrases()

        Returns:
            Occurrences grouped by candidate order, then text order
        """
        if not text:
            return []

        occurrences = []
        for candidate in candidates:
            pattern = self._get_regex(candidate.normalized)
            for match in pattern.finditer(text):
                occurrences.append(Occurrence(
                    candidate=candidate,
                    start=match.start(),
                    end=match.end(),
                    text=match.group(0),
                ))
        return occurrences

    # =========================================================================
    # Reporting
    # =========================================================================

    def get_statistics(self, top_n: int = 20) -> dict[str, Any]:
        """Corpus statistics: document count, vocabulary size, most frequent terms."""
        top_terms = sorted(self.document_frequency.items(), key=lambda kv: kv[1], reverse=True)[:top_n]
        return {
            "total_documents": self.total_documents,
            "unique_terms": len(self.document_frequency),
            "unique_ngrams": len(self.ngram_frequency),
            "regex_cache_size": len(self._regex_cache),
            "top_terms": [{"term": term, "freq": freq} for term, freq in top_terms],
        }

    # =========================================================================
    # Persistence
    # =========================================================================

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "documentFrequency": dict(self.document_frequency),
            "ngramFrequency": dict(self.ngram_frequency),
            "totalDocuments": self.total_documents,
        }

    def save(self) -> bool:
        """
        Persist corpus statistics.

        Returns:
            True if the snapshot was written. Failures are logged, never raised.
        """
        if self.storage is None:
            return False
        try:
            self.storage.set(self.storage_key, self.to_snapshot())
            return True
        except Exception as e:
            warning(f"[EXTRACTOR] Failed to save phrase statistics: {e}")
            return False

    def load(self) -> bool:
        """
        Restore corpus statistics from storage.

        Malformed snapshots are ignored and the extractor starts empty.

        Returns:
            True if a snapshot was loaded
        """
        if self.storage is None:
            return False
        try:
            data = self.storage.get(self.storage_key)
            if not data:
                debug_log("[EXTRACTOR] No saved statistics, starting fresh")
                return False

            document_frequency = {str(k): int(v) for k, v in dict(data["documentFrequency"]).items()}
            ngram_frequency = {str(k): int(v) for k, v in dict(data.get("ngramFrequency", {})).items()}
            total_documents = int(data["totalDocuments"])
            if total_documents < 0:
                raise ValueError(f"negative document count {total_documents}")
        except Exception as e:
            warning(f"[EXTRACTOR] Failed to load phrase statistics, starting fresh: {e}")
            return False

        self.document_frequency = document_frequency
        self.ngram_frequency = ngram_frequency
        self.total_documents = total_documents
        debug_log(
            f"[EXTRACTOR] Loaded statistics for {total_documents} documents, "
            f"{len(document_frequency)} terms"
        )
        return True

    def reset(self) -> None:
        """Forget all corpus statistics and delete the persisted snapshot."""
        self.document_frequency = {}
        self.ngram_frequency = {}
        self.total_documents = 0
        self._regex_cache.clear()
        if self.storage is not None:
            try:
                self.storage.delete(self.storage_key)
            except Exception as e:
                warning(f"[EXTRACTOR] Failed to delete saved statistics: {e}")
