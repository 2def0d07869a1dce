# src/snapocr/utils/config.py

"""
Manages application configuration settings.

This module provides a ConfigManager class that handles loading settings from a
JSON file, providing default values, validating user edits, and saving changes.
The recognition pipeline reads its language, segmentation mode, text clean-up
rules, history cap and auto-copy flag through the typed accessors at the start
of every run, so changes take effect on the next run without being pushed.
"""

import copy
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from snapocr.processing.languages import (
    DEFAULT_LANGUAGE,
    DEFAULT_SEGMENTATION_MODE,
    LanguageProfile,
    SegmentationMode,
)
from snapocr.processing.text_normalizer import NormalizationRules

# Constants
APP_NAME = "snapocr"
CONFIG_FILE_NAME = "config.json"
HISTORY_DB_FILE_NAME = "ocr_history.db"
IMAGE_DIR_NAME = "images"

KNOWN_BACKENDS = ("easyocr", "tesseract")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Default settings for the application
DEFAULT_CONFIG = {
    "hotkey": "<ctrl>+<alt>+o",
    "language": DEFAULT_LANGUAGE,
    "segmentation_mode": DEFAULT_SEGMENTATION_MODE.key,
    "ocr_backend": "easyocr",
    "use_gpu": False,
    "auto_copy": True,
    "auto_process_clipboard": True,
    "max_history_entries": 200,
    "text_normalization": {
        "trim_whitespace": True,
        "collapse_whitespace": False,
        "flatten_line_breaks": False,
    },
    "image_preprocessing": {
        "upscale": True,
        "binarize": False,
        "deskew": False,
    },
    "log_level": "INFO",
}

# Settings that are objects; they are merged key by key rather than replaced.
NESTED_SECTIONS = ("text_normalization", "image_preprocessing")

# Set up a logger for this module
logger = logging.getLogger(__name__)


def get_config_dir() -> Path:
    """
    Determines the appropriate application configuration directory based on the OS.

    Returns:
        Path: The absolute path to the configuration directory.
    """
    if sys.platform == "win32":
        # Windows: %APPDATA%/snapocr
        return Path.home() / "AppData" / "Roaming" / APP_NAME
    elif sys.platform == "darwin":
        # macOS: ~/Library/Application Support/snapocr
        return Path.home() / "Library" / "Application Support" / APP_NAME
    else:
        # Linux/other: ~/.config/snapocr
        return Path.home() / ".config" / APP_NAME


def merge_settings(current: dict, partial: dict) -> dict:
    """Overlays `partial` on `current`, merging the nested sections key by key."""
    merged = copy.deepcopy(current)
    for key, value in partial.items():
        if key in NESTED_SECTIONS and isinstance(value, dict):
            merged[key] = {**merged.get(key, {}), **value}
        else:
            merged[key] = value
    return merged


def validate_settings(settings: dict) -> dict:
    """
    Coerces a settings dictionary into a valid one.

    Unknown or malformed values fall back to their defaults; unknown keys are
    kept so that newer config files survive a round trip through older builds.
    """
    valid = merge_settings(DEFAULT_CONFIG, settings)

    try:
        valid["language"] = LanguageProfile.parse(valid["language"]).joined
    except (ValueError, TypeError, AttributeError):
        logger.warning(f"Invalid language {valid['language']!r}, using {DEFAULT_LANGUAGE}.")
        valid["language"] = DEFAULT_LANGUAGE

    try:
        valid["segmentation_mode"] = SegmentationMode.from_key(valid["segmentation_mode"]).key
    except ValueError:
        logger.warning(f"Invalid segmentation mode {valid['segmentation_mode']!r}, using the default.")
        valid["segmentation_mode"] = DEFAULT_SEGMENTATION_MODE.key

    if valid["ocr_backend"] not in KNOWN_BACKENDS:
        logger.warning(f"Unknown OCR backend {valid['ocr_backend']!r}, using {DEFAULT_CONFIG['ocr_backend']}.")
        valid["ocr_backend"] = DEFAULT_CONFIG["ocr_backend"]

    try:
        valid["max_history_entries"] = max(1, int(valid["max_history_entries"]))
    except (TypeError, ValueError):
        valid["max_history_entries"] = DEFAULT_CONFIG["max_history_entries"]

    if str(valid["log_level"]).upper() not in LOG_LEVELS:
        valid["log_level"] = DEFAULT_CONFIG["log_level"]
    valid["log_level"] = str(valid["log_level"]).upper()

    for key in ("use_gpu", "auto_copy", "auto_process_clipboard"):
        valid[key] = bool(valid[key])
    for section in NESTED_SECTIONS:
        if not isinstance(valid[section], dict):
            valid[section] = dict(DEFAULT_CONFIG[section])
        valid[section] = {
            name: bool(valid[section].get(name, default))
            for name, default in DEFAULT_CONFIG[section].items()
        }

    return valid


class ConfigManager:
    """
    Handles loading, accessing, and saving application configuration.

    This class provides a centralized way to manage settings, ensuring that
    they are loaded from a file on startup and saved when changed. It gracefully
    handles cases where the config file is missing or corrupted.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initializes the ConfigManager, determines the config path, and loads the
        configuration.

        Args:
            config_dir: Directory holding the settings file, the history
                database and the image artifacts. Defaults to the per-OS
                application directory.
        """
        self.config_dir = Path(config_dir) if config_dir else get_config_dir()
        self.config_path = self.config_dir / CONFIG_FILE_NAME
        self.history_db_path = self.config_dir / HISTORY_DB_FILE_NAME
        self.image_dir = self.config_dir / IMAGE_DIR_NAME
        self.config = {}
        self.load_config()

    def load_config(self):
        """
        Loads configuration from the JSON file. If the file doesn't exist or is
        invalid, it creates one with default settings.
        """
        # Start with defaults, then override with user's config
        self.config = copy.deepcopy(DEFAULT_CONFIG)

        if not self.config_path.exists():
            logger.info(f"Config file not found. Creating default config at: {self.config_path}")
            self.save_config()  # This saves the default config
            return

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                user_config = json.load(f)
            if not isinstance(user_config, dict):
                raise ValueError("top-level JSON value is not an object")
            self.config = validate_settings(user_config)
            logger.info(f"Successfully loaded configuration from {self.config_path}")
        except (json.JSONDecodeError, ValueError) as e:
            logger.error(
                f"Could not decode settings from {self.config_path} ({e}). "
                "Using default configuration. The corrupted file will be overwritten on next save."
            )
        except OSError as e:
            logger.error(f"An unexpected error occurred while loading config: {e}. Using defaults.")

    def save_config(self) -> bool:
        """
        Saves the current configuration to the JSON file.

        Returns:
            True if the file was written, False if saving failed.
        """
        try:
            # Ensure the directory exists before trying to write the file
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(self.config, f, indent=4, sort_keys=True)
            logger.info(f"Configuration saved to {self.config_path}")
            return True
        except (OSError, TypeError) as e:
            logger.error(f"Failed to save configuration to {self.config_path}: {e}")
            return False

    def get(self, key: str, default=None):
        """
        Retrieves a configuration value.

        Args:
            key (str): The configuration key to retrieve.
            default: The value to return if the key is not found.

        Returns:
            The value associated with the key, or the default value.
        """
        return self.config.get(key, default)

    def set(self, key: str, value) -> bool:
        """
        Sets a configuration value and saves the configuration to the file.

        Args:
            key (str): The configuration key to set.
            value: The new value for the key.

        Returns:
            Whether the change was persisted.
        """
        return self.update({key: value})

    def update(self, partial: dict) -> bool:
        """
        Merges and validates a partial settings update, then saves it.

        The in-memory settings are updated even when writing the file fails;
        there is no rollback.

        Returns:
            Whether the change was persisted.
        """
        self.config = validate_settings(merge_settings(self.config, partial))
        return self.save_config()

    # --- Typed accessors used by the recognition pipeline ---

    @property
    def language_profile(self) -> LanguageProfile:
        return LanguageProfile.parse(self.config["language"])

    @property
    def segmentation_mode(self) -> SegmentationMode:
        return SegmentationMode.from_key(self.config["segmentation_mode"])

    @property
    def normalization_rules(self) -> NormalizationRules:
        return NormalizationRules(**self.config["text_normalization"])

    @property
    def max_history_entries(self) -> int:
        return self.config["max_history_entries"]

    @property
    def auto_copy(self) -> bool:
        return self.config["auto_copy"]

    @property
    def upscale_enabled(self) -> bool:
        return self.config["image_preprocessing"]["upscale"]

    @property
    def binarize_enabled(self) -> bool:
        return self.config["image_preprocessing"]["binarize"]

    @property
    def deskew_enabled(self) -> bool:
        return self.config["image_preprocessing"]["deskew"]
