# src/snapocr/processing/ocr_handler.py

"""
A wrapper around the local text recognition capability.

Loading recognition models and language data is slow, so the engine keeps a
single live recognizer around and reuses it for as long as the requested
language profile stays the same. When the profile changes, the old recognizer
is torn down before the new one is built, so at most one is ever alive.

The recognizer itself is provided by a `RecognitionBackend` (see
`snapocr.processing.backends`), resolved once at startup.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Optional

import numpy as np

from snapocr.processing.languages import LanguageProfile, SegmentationMode

logger = logging.getLogger(__name__)

# --- Type Definitions ---

# Receives (fraction in [0, 1], optional status label) during recognition.
ProgressCallback = Callable[[float, Optional[str]], None]


@dataclass(frozen=True)
class RecognitionResult:
    """Recognized text and its confidence in [0, 100], or None if unknown."""
    text: str
    confidence: Optional[float] = None


class EngineInitializationError(RuntimeError):
    """Raised when a recognizer cannot be built for a language profile."""


class RecognitionError(RuntimeError):
    """Raised when the recognizer fails while reading an image."""


class RecognitionHandle(ABC):
    """A live recognizer bound to one language profile."""

    @abstractmethod
    def set_segmentation_mode(self, mode: SegmentationMode) -> None:
        """Sets the layout hint used by subsequent `recognize` calls."""

    @abstractmethod
    def recognize(self, image: np.ndarray, on_progress: Optional[ProgressCallback] = None) -> RecognitionResult:
        """Reads the text in `image`."""

    @abstractmethod
    def terminate(self) -> None:
        """Releases the models and any worker resources held by this handle."""


class RecognitionBackend(ABC):
    """Factory for recognizers. One backend is chosen at application startup."""

    name: str = "local"

    @abstractmethod
    def create(self, profile: LanguageProfile) -> RecognitionHandle:
        """Builds a recognizer for `profile`. Expensive: loads language data."""


class EngineState(Enum):
    """Lifecycle of the engine's single recognizer slot."""
    EMPTY = auto()
    INITIALIZING = auto()
    READY = auto()


class RecognitionEngine:
    """
    Owns at most one live recognizer, keyed by language profile.

    All access to the recognizer slot goes through a lock, so a caller that
    ignores the orchestrator's single-flight rule waits instead of racing on
    the bound profile and leaking a second recognizer.
    """

    def __init__(self, backend: RecognitionBackend):
        self._backend = backend
        self._handle: Optional[RecognitionHandle] = None
        self._bound_profile: Optional[LanguageProfile] = None
        self._state = EngineState.EMPTY
        self._lock = threading.Lock()

    @property
    def engine_id(self) -> str:
        """Fixed identifier recorded with every history entry."""
        return f"{self._backend.name}-local"

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def bound_profile(self) -> Optional[LanguageProfile]:
        return self._bound_profile

    def recognize(
        self,
        image: np.ndarray,
        profile: LanguageProfile,
        mode: SegmentationMode,
        on_progress: Optional[ProgressCallback] = None,
    ) -> RecognitionResult:
        """
        Recognizes the text in an image.

        Args:
            image: The image to read, as a NumPy array.
            profile: Languages to expect. A profile different from the bound
                one causes the current recognizer to be replaced.
            mode: Segmentation mode applied before recognition.
            on_progress: Optional per-call progress receiver. Signals from the
                recognizer are forwarded as-is.

        Returns:
            The recognizer's text and confidence, unmodified.

        Raises:
            EngineInitializationError: The recognizer could not be built.
            RecognitionError: The recognizer failed while reading the image.
        """
        with self._lock:
            handle = self._ensure_handle(profile)
            try:
                handle.set_segmentation_mode(mode)
                return handle.recognize(image, on_progress)
            except Exception as e:
                logger.error(f"Recognition failed for profile '{profile.joined}': {e}")
                raise RecognitionError(f"Recognition failed: {e}") from e

    def shutdown(self) -> None:
        """Terminates the live recognizer, if any."""
        with self._lock:
            self._release()

    def _ensure_handle(self, profile: LanguageProfile) -> RecognitionHandle:
        if self._handle is not None and self._bound_profile == profile:
            return self._handle

        if self._handle is not None:
            logger.info(f"Language profile changed from '{self._bound_profile}' to '{profile}'.")
        self._release()

        self._state = EngineState.INITIALIZING
        logger.info(f"Initializing {self._backend.name} recognizer for '{profile.joined}'...")
        try:
            self._handle = self._backend.create(profile)
        except Exception as e:
            self._state = EngineState.EMPTY
            logger.error(f"Fatal error during recognizer initialization: {e}")
            raise EngineInitializationError(
                f"Could not initialize the recognizer for '{profile.joined}': {e}"
            ) from e

        self._bound_profile = profile
        self._state = EngineState.READY
        logger.info("Recognizer initialized successfully.")
        return self._handle

    def _release(self) -> None:
        handle, self._handle = self._handle, None
        self._bound_profile = None
        self._state = EngineState.EMPTY
        if handle is None:
            return
        try:
            handle.terminate()
            logger.info("Recognizer terminated.")
        except Exception as e:
            logger.warning(f"Error while terminating recognizer: {e}")
