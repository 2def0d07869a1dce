"""
Tests for snapocr/utils/config.py
"""

import json

import pytest

from snapocr.processing.languages import LanguageProfile, SegmentationMode
from snapocr.processing.text_normalizer import NormalizationRules
from snapocr.utils.config import DEFAULT_CONFIG, ConfigManager, merge_settings, validate_settings


class TestValidateSettings:
    def test_defaults_are_valid(self):
        assert validate_settings({}) == DEFAULT_CONFIG

    def test_invalid_values_fall_back(self):
        settings = validate_settings({
            "language": "",
            "segmentation_mode": "diagonal",
            "ocr_backend": "cloud",
            "max_history_entries": 0,
            "log_level": "chatty",
        })

        assert settings["language"] == "jpn+eng"
        assert settings["segmentation_mode"] == "sparse_text"
        assert settings["ocr_backend"] == "easyocr"
        assert settings["max_history_entries"] == 1
        assert settings["log_level"] == "INFO"

    def test_language_is_canonicalized(self):
        assert validate_settings({"language": "eng + jpn + eng"})["language"] == "eng+jpn"

    def test_booleans_are_coerced(self):
        settings = validate_settings({"auto_copy": 0, "text_normalization": {"collapse_whitespace": 1}})

        assert settings["auto_copy"] is False
        assert settings["text_normalization"]["collapse_whitespace"] is True
        assert settings["text_normalization"]["trim_whitespace"] is True


class TestMergeSettings:
    def test_nested_sections_merge(self):
        merged = merge_settings(DEFAULT_CONFIG, {"text_normalization": {"flatten_line_breaks": True}})

        assert merged["text_normalization"] == {
            "trim_whitespace": True,
            "collapse_whitespace": False,
            "flatten_line_breaks": True,
        }

    def test_does_not_mutate_input(self):
        merge_settings(DEFAULT_CONFIG, {"image_preprocessing": {"deskew": True}})
        assert DEFAULT_CONFIG["image_preprocessing"]["deskew"] is False


class TestConfigManager:
    def test_creates_default_file(self, tmp_path):
        manager = ConfigManager(tmp_path)

        assert manager.config_path.exists()
        assert json.loads(manager.config_path.read_text()) == DEFAULT_CONFIG
        assert manager.history_db_path == tmp_path / "ocr_history.db"
        assert manager.image_dir == tmp_path / "images"

    def test_loads_user_values(self, tmp_path):
        (tmp_path / "config.json").write_text(json.dumps({"language": "eng", "auto_copy": False}))

        manager = ConfigManager(tmp_path)

        assert manager.get("language") == "eng"
        assert manager.auto_copy is False
        assert manager.get("max_history_entries") == 200

    def test_corrupt_file_uses_defaults(self, tmp_path):
        (tmp_path / "config.json").write_text("{not json")

        manager = ConfigManager(tmp_path)

        assert manager.config == DEFAULT_CONFIG

    def test_update_persists(self, tmp_path):
        manager = ConfigManager(tmp_path)

        assert manager.update({"max_history_entries": 50}) is True

        assert ConfigManager(tmp_path).max_history_entries == 50

    def test_update_failure_keeps_memory_value(self, tmp_path, monkeypatch):
        manager = ConfigManager(tmp_path)

        def failing_open(*args, **kwargs):
            raise PermissionError("read-only filesystem")

        monkeypatch.setattr("builtins.open", failing_open)
        persisted = manager.set("auto_copy", False)
        monkeypatch.undo()

        assert persisted is False
        assert manager.auto_copy is False

    def test_typed_accessors(self, tmp_path):
        manager = ConfigManager(tmp_path)
        manager.update({
            "language": "eng+kor",
            "segmentation_mode": "single_line",
            "text_normalization": {"collapse_whitespace": True},
            "image_preprocessing": {"binarize": True},
        })

        assert manager.language_profile == LanguageProfile.parse("eng+kor")
        assert manager.segmentation_mode is SegmentationMode.SINGLE_LINE
        assert manager.normalization_rules == NormalizationRules(
            trim_whitespace=True, collapse_whitespace=True, flatten_line_breaks=False,
        )
        assert manager.upscale_enabled is True
        assert manager.binarize_enabled is True
        assert manager.deskew_enabled is False

    @pytest.mark.parametrize("payload", ["[]", "42"])
    def test_non_object_file_uses_defaults(self, tmp_path, payload):
        (tmp_path / "config.json").write_text(payload)
        assert ConfigManager(tmp_path).config == DEFAULT_CONFIG
