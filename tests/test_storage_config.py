"""
Tests for persistence adapters, settings loading, typo correction and timing.
"""

import json
import sys
from pathlib import Path

import pytest

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from prompt_lens.config import EngineSettings, load_settings  # noqa: E402
from prompt_lens.logging_config import Timer  # noqa: E402
from prompt_lens.storage import JsonFileStore, MemoryStore  # noqa: E402
from prompt_lens.typo_correction import DictionaryTypoCorrector, PassthroughCorrector  # noqa: E402


class TestMemoryStore:
    """Tests for the in-process store."""

    def test_round_trip(self):
        store = MemoryStore()
        store.set("prompt_lens.behavior", {"a": [1, 2]})
        assert store.get("prompt_lens.behavior") == {"a": [1, 2]}
        assert "prompt_lens.behavior" in store

    def test_values_are_copied(self):
        """Test callers cannot mutate a stored snapshot."""
        store = MemoryStore()
        value = {"a": 1}
        store.set("k", value)
        value["a"] = 2
        store.get("k")["a"] = 3
        assert store.get("k") == {"a": 1}

    def test_missing_and_delete(self):
        store = MemoryStore()
        assert store.get("missing") is None
        store.delete("missing")
        store.set("k", 1)
        store.delete("k")
        assert len(store) == 0

    def test_unserializable_value_raises(self):
        with pytest.raises(TypeError):
            MemoryStore().set("k", {"a": object()})


class TestJsonFileStore:
    """Tests for the directory-backed store."""

    def test_round_trip(self, tmp_path):
        store = JsonFileStore(tmp_path / "state")
        store.set("prompt_lens.extractor", {"totalDocuments": 3})

        assert store.get("prompt_lens.extractor") == {"totalDocuments": 3}
        path = tmp_path / "state" / "prompt_lens.extractor.json"
        assert json.loads(path.read_text(encoding="utf-8")) == {"totalDocuments": 3}
        assert not list((tmp_path / "state").glob("*.tmp"))

    def test_unsafe_key_characters_replaced(self, tmp_path):
        store = JsonFileStore(tmp_path)
        store.set("../escape/key", 1)
        assert (tmp_path / ".._escape_key.json").exists()
        assert store.get("../escape/key") == 1

    def test_missing_and_delete(self, tmp_path):
        store = JsonFileStore(tmp_path)
        assert store.get("missing") is None
        store.delete("missing")
        store.set("k", [1])
        store.delete("k")
        assert store.get("k") is None

    def test_corrupt_file_raises(self, tmp_path):
        (tmp_path / "k.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(json.JSONDecodeError):
            JsonFileStore(tmp_path).get("k")

    def test_failed_write_leaves_no_temp_file(self, tmp_path):
        """Test an unserializable value keeps the previous snapshot and no temp file."""
        store = JsonFileStore(tmp_path)
        store.set("k", {"a": 1})

        with pytest.raises(TypeError):
            store.set("k", {"a": object()})

        assert store.get("k") == {"a": 1}
        assert not list(tmp_path.glob("*.tmp"))


class TestSettings:
    """Tests for EngineSettings and the YAML loader."""

    def test_defaults(self):
        settings = EngineSettings()
        assert settings.min_confidence == 30
        assert settings.max_highlights == 100

    @pytest.mark.parametrize("kwargs", [
        {"min_confidence": 150},
        {"min_confidence": True},
        {"max_highlights": 0},
        {"max_highlights": 2.5},
        {"exploration_rate": "often"},
    ])
    def test_validation(self, kwargs):
        with pytest.raises(ValueError):
            EngineSettings(**kwargs)

    def test_load_flat_file(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("min_confidence: 45\nmax_highlights: 12\nunknown: 1\n", encoding="utf-8")

        settings = load_settings(path)
        assert settings.min_confidence == 45
        assert settings.max_highlights == 12
        assert settings.learning_rate == pytest.approx(0.1)

    def test_load_engine_section(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("engine:\n  exploration_rate: 0.3\n", encoding="utf-8")
        assert load_settings(path).exploration_rate == pytest.approx(0.3)

    def test_missing_file_uses_defaults(self, tmp_path):
        assert load_settings(tmp_path / "nope.yaml") == EngineSettings()

    @pytest.mark.parametrize("content", [
        "min_confidence: [unclosed\n",
        "- just\n- a list\n",
        "min_confidence: 500\n",
        "engine: 7\n",
    ])
    def test_invalid_file_uses_defaults(self, tmp_path, content):
        path = tmp_path / "settings.yaml"
        path.write_text(content, encoding="utf-8")
        assert load_settings(path) == EngineSettings()


class TestTypoCorrection:
    """Tests for the shipped typo correctors."""

    def test_passthrough(self):
        assert PassthroughCorrector()("ligthing") == "ligthing"

    def test_default_corrections(self):
        corrector = DictionaryTypoCorrector()
        assert corrector("soft ligthing with bokhe") == "soft lighting with bokeh"

    def test_keeps_leading_capital(self):
        corrector = DictionaryTypoCorrector()
        assert corrector("Shaddow play") == "Shadow play"

    def test_whole_words_only(self):
        corrector = DictionaryTypoCorrector({"boke": "bokeh"})
        assert corrector("bokeh stays, boke changes") == "bokeh stays, bokeh changes"

    def test_multi_word_entries_win(self):
        corrector = DictionaryTypoCorrector({"slo mo": "slow motion", "mo": "more"})
        assert corrector("slo mo shot") == "slow motion shot"

    def test_add_correction(self):
        corrector = DictionaryTypoCorrector({})
        assert corrector("dolley zoom") == "dolley zoom"
        corrector.add_correction("dolley", "dolly")
        assert corrector("dolley zoom") == "dolly zoom"


class TestTimer:
    """Tests for the timing context manager."""

    def test_duration_recorded(self):
        with Timer("unit", auto_log=False) as timer:
            sum(range(100))
        assert timer.get_duration_ms() >= 0

    def test_duration_before_exit_raises(self):
        timer = Timer("unit", auto_log=False)
        with pytest.raises(ValueError):
            timer.get_duration_ms()
