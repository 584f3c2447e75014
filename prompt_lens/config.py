"""
PromptLens Configuration Module
Centralized configuration for the highlighting engine.
"""

import os
from dataclasses import asdict, dataclass
from pathlib import Path

import yaml

# Debug Mode Configuration
DEBUG_MODE = os.environ.get('DEBUG', 'false').lower() == 'true'

# Application Paths
# Directories are created lazily by the components that write to them.
APP_NAME = "PromptLens"
APPDATA_DIR = Path(os.environ.get('APPDATA', os.path.expanduser('~/.config'))) / APP_NAME
STATE_DIR = APPDATA_DIR / "state"
CONFIG_DIR = APPDATA_DIR / "config"
SETTINGS_FILE = CONFIG_DIR / "settings.yaml"

# Logging Configuration
LOG_FILE = os.environ.get('PROMPT_LENS_LOG_FILE')
LOG_FORMAT = "[%(levelname)s %(asctime)s] %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"

# Persistence namespaces (one durable record per component)
STORAGE_KEY_PREFIX = "prompt_lens"
EXTRACTOR_STORAGE_KEY = f"{STORAGE_KEY_PREFIX}.extractor"
CATEGORIZER_STORAGE_KEY = f"{STORAGE_KEY_PREFIX}.categorizer"
BEHAVIOR_STORAGE_KEY = f"{STORAGE_KEY_PREFIX}.behavior"

# ============================================================================
# Phrase Extraction (fixed)
# ============================================================================

EXTRACTION_MIN_SCORE = 0.1       # Candidates below this importance are dropped
EXTRACTION_TOP_N = 50            # Only the top-N candidates are located in the text
MAX_NGRAM_LENGTH = 4             # 1-4 grams
MIN_UNIGRAM_LENGTH = 3           # Unigrams need more than 2 characters
REGEX_CACHE_MAX_SIZE = 500       # Oldest compiled phrase regex evicted past this
TFIDF_MULTIPLIER = 10
LENGTH_BONUS = 2
TECHNICAL_BONUS = 5
PMI_MULTIPLIER = 3
CAPITALIZATION_BONUS = 2
CAPITALIZATION_RATIO = 0.3       # Share of capitalized occurrences for the bonus

# ============================================================================
# Semantic Categorization (fixed)
# ============================================================================

USER_OVERRIDE_CONFIDENCE = 95
DEFAULT_CATEGORY_CONFIDENCE = 50   # When every category scores 0
CONTEXT_WINDOW_CHARS = 100
SIMILARITY_MULTIPLIER = 10
CONTEXT_MULTIPLIER = 2
COOCCURRENCE_MULTIPLIER = 3
COOCCURRENCE_DECAY = 0.95
USER_CORRECTION_STRENGTH = 5.0
CATEGORY_WEIGHT_MIN = 0.1
CATEGORY_WEIGHT_MAX = 2.0

# ============================================================================
# Behavior Learning (fixed)
# ============================================================================

NEUTRAL_SCORE = 0.5
DECAY_DAYS = 30                    # exp(-days / 30)
PHRASE_BLEND_WEIGHT = 0.7          # learned score vs click-through rate
CATEGORY_BLEND_WEIGHT = 0.3        # phrase score vs category score
CONFIDENCE_SWING = 40              # (boost - 0.5) * 40 -> +/-20 points
IGNORE_PENALTY_FACTOR = 0.5
EXPLOIT_THRESHOLD = 50
EXPLORE_THRESHOLD = 30
LEARNING_RATE_MIN = 0.01
LEARNING_RATE_MAX = 1.0
UNDERPERFORMING_MIN_SHOWN = 5
INSIGHT_MIN_SHOWN = 20
INSIGHT_LOW_CLICK_RATE = 10.0      # percent
INSIGHT_HIGH_CLICK_RATE = 30.0     # percent

# Feedback reinforcement strengths for co-occurrence learning
SHOWN_COOCCURRENCE_STRENGTH = 0.5
CLICK_COOCCURRENCE_STRENGTH = 2.0

# ============================================================================
# Result Cache
# ============================================================================

RESULT_CACHE_CAPACITY = 100

# ============================================================================
# Runtime-Tunable Defaults
# ============================================================================

DEFAULT_MIN_CONFIDENCE = 30
DEFAULT_MAX_HIGHLIGHTS = 100
DEFAULT_LEARNING_RATE = 0.1
DEFAULT_EXPLORATION_RATE = 0.15


@dataclass
class EngineSettings:
    """
    Runtime-tunable knobs for a HighlightEngine.

    Attributes:
        min_confidence: Floor (0-100) on behavior-adjusted confidence
        max_highlights: Maximum matches returned per processed text
        learning_rate: Click reinforcement step (0.01-1.0)
        exploration_rate: Probability of the lowered exploration threshold (0-1)
    """
    min_confidence: float = DEFAULT_MIN_CONFIDENCE
    max_highlights: int = DEFAULT_MAX_HIGHLIGHTS
    learning_rate: float = DEFAULT_LEARNING_RATE
    exploration_rate: float = DEFAULT_EXPLORATION_RATE

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """
        Check every knob is inside its allowed range.

        Raises:
            ValueError: If a value is out of range or of the wrong type
        """
        if isinstance(self.min_confidence, bool) or not isinstance(self.min_confidence, (int, float)) \
                or not 0 <= self.min_confidence <= 100:
            raise ValueError(f"min_confidence must be 0-100, got {self.min_confidence}")
        if isinstance(self.max_highlights, bool) or not isinstance(self.max_highlights, int) \
                or self.max_highlights < 1:
            raise ValueError(f"max_highlights must be a positive integer, got {self.max_highlights}")
        if isinstance(self.learning_rate, bool) or not isinstance(self.learning_rate, (int, float)):
            raise ValueError(f"learning_rate must be a number, got {self.learning_rate}")
        if isinstance(self.exploration_rate, bool) or not isinstance(self.exploration_rate, (int, float)):
            raise ValueError(f"exploration_rate must be a number, got {self.exploration_rate}")

    def to_dict(self) -> dict:
        return asdict(self)


SETTING_KEYS = ('min_confidence', 'max_highlights', 'learning_rate', 'exploration_rate')


def load_settings(path: Path | None = None) -> EngineSettings:
    """
    Load engine settings from a YAML file.

    The file holds a flat mapping, optionally nested under a top-level
    ``engine`` key. Unknown keys are ignored; a missing, unreadable, or
    invalid file falls back to the defaults.

    Args:
        path: Settings file. Defaults to SETTINGS_FILE.

    Returns:
        EngineSettings instance
    """
    from prompt_lens.logging_config import debug_log, warning

    settings_path = Path(path) if path else SETTINGS_FILE
    try:
        with open(settings_path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        debug_log(f"[Config] No settings file at {settings_path}. Using defaults.")
        return EngineSettings()
    except (OSError, yaml.YAMLError) as e:
        warning(f"[Config] Failed to read settings file {settings_path}: {e}")
        return EngineSettings()

    if not isinstance(data, dict):
        warning(f"[Config] Settings file {settings_path} is not a mapping. Using defaults.")
        return EngineSettings()

    section = data.get('engine', data)
    if not isinstance(section, dict):
        warning(f"[Config] 'engine' section in {settings_path} is not a mapping. Using defaults.")
        return EngineSettings()

    values = {key: section[key] for key in SETTING_KEYS if key in section}
    try:
        settings = EngineSettings(**values)
    except ValueError as e:
        warning(f"[Config] Invalid settings in {settings_path}: {e}. Using defaults.")
        return EngineSettings()

    debug_log(f"[Config] Loaded {len(values)} engine settings from {settings_path}")
    return settings
