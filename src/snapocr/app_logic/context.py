# src/snapocr/app_logic/context.py

"""
Owns the long-lived objects of a running SnapOCR instance.

The context builds the settings, stores, recognition engine and orchestrator
in `init()` and releases them in `shutdown()`. The OCR backend is resolved
once here, so a missing OCR library is reported at startup.
"""

import logging
from pathlib import Path
from typing import Optional

from snapocr.app_logic.state_machine import PipelineOrchestrator
from snapocr.processing.backends import resolve_backend
from snapocr.processing.ocr_handler import RecognitionBackend, RecognitionEngine
from snapocr.storage.artifact_store import ArtifactStore
from snapocr.storage.history_store import HistoryStore
from snapocr.utils.config import ConfigManager

logger = logging.getLogger(__name__)


class ContextError(RuntimeError):
    """Raised when the context is used outside its init/shutdown lifecycle."""


class OcrContext:

    def __init__(
        self,
        config_dir: Optional[Path] = None,
        threaded: bool = True,
        backend: Optional[RecognitionBackend] = None,
    ):
        self._config_dir = config_dir
        self._threaded = threaded
        self._backend = backend

        self.settings: Optional[ConfigManager] = None
        self.history: Optional[HistoryStore] = None
        self.artifacts: Optional[ArtifactStore] = None
        self.engine: Optional[RecognitionEngine] = None
        self._orchestrator: Optional[PipelineOrchestrator] = None

    @property
    def orchestrator(self) -> PipelineOrchestrator:
        if self._orchestrator is None:
            raise ContextError("OcrContext.init() has not been called.")
        return self._orchestrator

    def init(self) -> "OcrContext":
        """
        Builds every component.

        Raises:
            BackendUnavailableError: The configured OCR backend is not installed.
        """
        if self._orchestrator is not None:
            raise ContextError("OcrContext is already initialized.")

        self.settings = ConfigManager(self._config_dir)
        backend = self._backend or resolve_backend(
            self.settings.get("ocr_backend"), gpu=self.settings.get("use_gpu", False)
        )
        self.engine = RecognitionEngine(backend)
        self.history = HistoryStore(self.settings.history_db_path, self.settings.max_history_entries)
        self.artifacts = ArtifactStore(self.settings.image_dir)
        self._orchestrator = PipelineOrchestrator(
            self.settings,
            self.engine,
            self.history,
            self.artifacts,
            threaded=self._threaded,
        )
        logger.info(f"SnapOCR context ready (backend: {backend.name}).")
        return self

    def shutdown(self):
        """Waits for an active run, then releases the recognizer and the database."""
        if self._orchestrator is not None:
            if not self._orchestrator.wait_for_idle():
                logger.warning("Shutting down while a recognition run is still active.")
            self._orchestrator = None
        if self.engine is not None:
            self.engine.shutdown()
            self.engine = None
        if self.history is not None:
            self.history.close()
            self.history = None
        logger.info("SnapOCR context shut down.")

    def __enter__(self) -> "OcrContext":
        return self.init()

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
