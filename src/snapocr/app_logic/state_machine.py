# src/snapocr/app_logic/state_machine.py

"""
Defines and manages the recognition pipeline state machine.

This module is the central orchestrator of the SnapOCR application. A run goes
through the states Idle -> Acquired -> Preprocessing -> Recognizing ->
Normalizing -> Persisting -> Idle, and falls back to Idle from any state when
recognition fails. Only one run can be active at a time: acquisition requests
that arrive while a run is active are dropped, not queued.

Recognition is slow, so the stages after acquisition run on a worker thread
and report back through Qt signals, keeping the caller's event loop
responsive.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum, auto
from functools import partial
from pathlib import Path
from typing import Callable, List, Optional

import numpy as np
from PyQt6.QtCore import QObject, QThread, pyqtSignal

from snapocr.capture.document_renderer import DocumentRenderer
from snapocr.capture.image_sources import is_document_path, load_image_file, read_clipboard_image
from snapocr.capture.source_image import DocumentContext, ImageOrigin, SourceImage
from snapocr.processing.image_processor import preprocess_image, upscale_if_needed
from snapocr.processing.ocr_handler import ProgressCallback, RecognitionEngine
from snapocr.processing.text_normalizer import normalize_text
from snapocr.storage.artifact_store import ArtifactStore
from snapocr.storage.history_store import HistoryEntry, HistoryStore
from snapocr.utils.clipboard import copy_to_clipboard
from snapocr.utils.config import ConfigManager

# Configure logging for this module
logger = logging.getLogger(__name__)

# User-facing messages
RECOGNITION_FAILED_MESSAGE = "OCR processing failed."
PERSISTENCE_WARNING = "Recognized text could not be saved to history."
SETTINGS_WARNING = "Settings could not be saved. Changes apply until the application restarts."


class PipelineState(Enum):
    """Enumeration for the pipeline's possible states."""
    IDLE = auto()
    ACQUIRED = auto()
    PREPROCESSING = auto()
    RECOGNIZING = auto()
    NORMALIZING = auto()
    PERSISTING = auto()


@dataclass(frozen=True)
class PipelineOutcome:
    """What a successful run produced."""
    text: str
    confidence: Optional[float]
    source: SourceImage
    entry: Optional[HistoryEntry] = None
    warning: Optional[str] = None


class RecognitionWorker(QObject):
    """
    A QObject worker for offloading a run to a separate thread.

    It executes the given job and emits its outcome, or an error message if
    the job raised.
    """
    finished = pyqtSignal(object)
    error = pyqtSignal(str)
    progress = pyqtSignal(float, str)

    def __init__(self, job: Callable[[ProgressCallback], PipelineOutcome]):
        super().__init__()
        self._job = job

    def run(self):
        """The main processing task to be executed in the thread."""
        try:
            outcome = self._job(self._report_progress)
        except Exception as e:
            logger.exception("An error occurred during recognition in the worker.")
            self.error.emit(str(e))
            return
        self.finished.emit(outcome)

    def _report_progress(self, fraction: float, status: Optional[str] = None):
        self.progress.emit(float(fraction), status or "")


class PipelineOrchestrator(QObject):
    """
    Drives single recognition runs end to end.

    Acquisition methods return True when a run was started and False when the
    request was dropped or there was nothing to recognize. Results, warnings
    and failures are delivered through signals.
    """
    state_changed = pyqtSignal(object)
    progress_changed = pyqtSignal(float, str)
    result_ready = pyqtSignal(object)
    warning_raised = pyqtSignal(str)
    error_occurred = pyqtSignal(str)
    run_finished = pyqtSignal(bool)

    def __init__(
        self,
        settings: ConfigManager,
        engine: RecognitionEngine,
        history: HistoryStore,
        artifacts: ArtifactStore,
        clipboard_reader: Callable[[], Optional[np.ndarray]] = read_clipboard_image,
        clipboard_writer: Callable[[str], bool] = copy_to_clipboard,
        document_renderer: Optional[DocumentRenderer] = None,
        threaded: bool = True,
        parent=None,
    ):
        super().__init__(parent)
        self._settings = settings
        self._engine = engine
        self._history = history
        self._artifacts = artifacts
        self._read_clipboard = clipboard_reader
        self._write_clipboard = clipboard_writer
        self._renderer = document_renderer or DocumentRenderer()
        self._threaded = threaded

        self._state = PipelineState.IDLE
        self._busy = False
        self._run_lock = threading.Lock()
        self._source: Optional[SourceImage] = None

        # Worker thread management
        self._worker_thread: Optional[QThread] = None
        self._worker: Optional[RecognitionWorker] = None

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def source_image(self) -> Optional[SourceImage]:
        return self._source

    @property
    def is_busy(self) -> bool:
        return self._busy

    # --- Acquisition ---

    def process_clipboard(self) -> bool:
        """Recognizes the image currently on the clipboard."""
        return self._acquire("clipboard image", self._acquire_clipboard)

    def process_file(self, path) -> bool:
        """Recognizes an image file, or the first page of a PDF document."""
        return self._acquire("file", partial(self._acquire_file, Path(path)))

    def change_page(self, page_number: int) -> bool:
        """Renders another page of the current document and recognizes it."""
        source = self._source
        if source is None or source.document is None:
            logger.warning("Page change requested but the current image is not a document page.")
            return False
        return self._acquire("document page", partial(self._acquire_page, source.document, page_number))

    def rerun(self) -> bool:
        """Runs the pipeline again on the current image, producing a new history entry."""
        if self._source is None:
            logger.warning("Rerun requested but there is no image to recognize.")
            return False
        if not self._claim():
            return False
        self._begin(self._source, preprocess=True)
        return True

    def replay_history_entry(self, entry: HistoryEntry) -> bool:
        """Recognizes a stored history image again. The image is used as stored."""
        return self._acquire("history image", partial(self._acquire_history, entry))

    def open_history_entry(self, entry: HistoryEntry) -> bool:
        """
        Makes a history entry's image current and re-emits its stored result
        without running recognition.
        """
        if not self._claim():
            return False
        try:
            source = self._acquire_history(entry)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to open history image {entry.image_path}: {e}")
            self.error_occurred.emit("Failed to open history image.")
            return False
        finally:
            self._release()

        self._source = source
        self.result_ready.emit(PipelineOutcome(
            text=entry.text, confidence=entry.confidence, source=source, entry=entry,
        ))
        return True

    def _claim(self) -> bool:
        with self._run_lock:
            if self._busy:
                logger.warning(f"Acquisition dropped: a run is already active ({self._state.name}).")
                return False
            self._busy = True
            return True

    def _release(self):
        with self._run_lock:
            self._busy = False

    def _acquire(self, description: str, acquire: Callable[[], Optional[SourceImage]]) -> bool:
        if not self._claim():
            return False

        try:
            source = acquire()
        except Exception as e:
            logger.error(f"Failed to acquire {description}: {e}")
            self._release()
            self.error_occurred.emit(f"Could not open the {description}.")
            return False

        if source is None:
            logger.info(f"No {description} available. Nothing to recognize.")
            self._release()
            return False

        self._begin(source, preprocess=source.origin is not ImageOrigin.HISTORY)
        return True

    def _acquire_clipboard(self) -> Optional[SourceImage]:
        pixels = self._read_clipboard()
        if pixels is None or pixels.size == 0:
            return None
        artifact = self._artifacts.save(pixels, prefix="clipboard")
        return SourceImage(pixels=pixels, origin=ImageOrigin.CLIPBOARD, artifact_path=artifact)

    def _acquire_file(self, path: Path) -> Optional[SourceImage]:
        if is_document_path(path):
            payload = path.read_bytes()
            total_pages = self._renderer.page_count(payload)
            document = DocumentContext(
                payload=payload, source_path=str(path), current_page=1, total_pages=total_pages,
            )
            return self._acquire_page(document, 1)

        pixels = load_image_file(path)
        if pixels is None:
            return None
        artifact = self._artifacts.import_file(path)
        return SourceImage(pixels=pixels, origin=ImageOrigin.FILE, artifact_path=artifact)

    def _acquire_page(self, document: DocumentContext, page_number: int) -> SourceImage:
        document = document.with_page(page_number)
        pixels = self._renderer.render_page(document.payload, page_number)
        artifact = self._artifacts.save(pixels, prefix="pdf-page")
        return SourceImage(
            pixels=pixels, origin=ImageOrigin.DOCUMENT, artifact_path=artifact, document=document,
        )

    def _acquire_history(self, entry: HistoryEntry) -> SourceImage:
        pixels = self._artifacts.load(entry.image_path)
        return SourceImage(pixels=pixels, origin=ImageOrigin.HISTORY, artifact_path=entry.image_path)

    # --- Run execution ---

    def _set_state(self, new_state: PipelineState):
        """Sets and logs the pipeline state."""
        if self._state != new_state:
            logger.info(f"State transition: {self._state.name} -> {new_state.name}")
            self._state = new_state
            self.state_changed.emit(new_state)

    def _begin(self, source: SourceImage, preprocess: bool):
        self._source = source
        self._set_state(PipelineState.ACQUIRED)

        worker = RecognitionWorker(partial(self._execute, source, preprocess))
        worker.progress.connect(self.progress_changed)
        worker.finished.connect(self._on_run_finished)
        worker.error.connect(self._on_run_error)

        if not self._threaded:
            worker.run()
            return

        # Offload the run to a worker thread to keep the event loop responsive
        self._worker = worker
        self._worker_thread = QThread()
        self._worker.moveToThread(self._worker_thread)
        self._worker.finished.connect(self._worker_thread.quit)
        self._worker.error.connect(self._worker_thread.quit)
        self._worker_thread.started.connect(self._worker.run)
        self._worker_thread.start()
        logger.info(f"Handed off {source.origin.value} image to recognition worker thread.")

    def _execute(self, source: SourceImage, preprocess: bool, report: ProgressCallback) -> PipelineOutcome:
        """Runs every stage after acquisition. Executes on the worker thread."""
        profile = self._settings.language_profile
        mode = self._settings.segmentation_mode
        rules = self._settings.normalization_rules

        image = source.pixels
        if preprocess:
            self._set_state(PipelineState.PREPROCESSING)
            image = self._condition(image)

        self._set_state(PipelineState.RECOGNIZING)
        result = self._engine.recognize(image, profile, mode, report)

        self._set_state(PipelineState.NORMALIZING)
        text = normalize_text(result.text, rules)

        self._set_state(PipelineState.PERSISTING)
        entry, warning = None, None
        try:
            entry = self._history.add_entry(
                image_path=source.artifact_path,
                text=text,
                engine=self._engine.engine_id,
                lang=profile.joined,
                confidence=result.confidence,
            )
        except Exception as e:
            logger.error(f"Failed to save history entry: {e}")
            warning = PERSISTENCE_WARNING

        return PipelineOutcome(
            text=text, confidence=result.confidence, source=source, entry=entry, warning=warning,
        )

    def _condition(self, image: np.ndarray) -> np.ndarray:
        if self._settings.upscale_enabled:
            image = upscale_if_needed(image)
        if self._settings.binarize_enabled:
            image = preprocess_image(image, deskew=self._settings.deskew_enabled).image
        return image

    def _on_run_finished(self, outcome: PipelineOutcome):
        self._return_to_idle()

        if outcome.warning:
            self.warning_raised.emit(outcome.warning)

        if self._settings.auto_copy and outcome.text:
            try:
                if not self._write_clipboard(outcome.text):
                    logger.warning("Auto-copy of recognized text failed.")
            except Exception as e:
                logger.warning(f"Auto-copy of recognized text failed: {e}")

        logger.info(f"Run complete: {len(outcome.text)} characters recognized.")
        self.result_ready.emit(outcome)
        self.run_finished.emit(True)

    def _on_run_error(self, error_message: str):
        logger.error(f"Received error from worker: {error_message}")
        self._return_to_idle()
        self.error_occurred.emit(RECOGNITION_FAILED_MESSAGE)
        self.run_finished.emit(False)

    def _return_to_idle(self):
        """Resets the pipeline state to IDLE. The current source image is kept."""
        if self._worker_thread is not None:
            self._worker_thread.quit()
            self._worker_thread.wait()  # Wait for it to terminate cleanly
        self._worker_thread = None
        self._worker = None

        self._set_state(PipelineState.IDLE)
        self._release()

    def wait_for_idle(self, timeout_ms: int = 30000) -> bool:
        """Blocks until the worker thread of an active run has stopped."""
        if self._worker_thread is None:
            return True
        return self._worker_thread.wait(timeout_ms)

    # --- History and settings ---

    def list_history(self) -> List[HistoryEntry]:
        return self._history.list_entries()

    def delete_history_entry(self, entry_id: int) -> bool:
        """
        Deletes a history entry and its image, unless another entry still
        refers to the same image.
        """
        try:
            entry = self._history.get_entry(entry_id)
            deleted = self._history.delete_entry(entry_id)
            if entry is not None and not self._is_referenced(entry.image_path):
                self._artifacts.delete(entry.image_path)
        except Exception as e:
            logger.error(f"Failed to delete history entry {entry_id}: {e}")
            self.error_occurred.emit("Failed to delete history.")
            return False
        return deleted

    def clear_history(self) -> int:
        """Deletes every history entry together with its image."""
        try:
            entries = self._history.list_entries()
            removed = self._history.clear()
            for path in {entry.image_path for entry in entries}:
                self._artifacts.delete(path)
        except Exception as e:
            logger.error(f"Failed to clear history: {e}")
            self.error_occurred.emit("Failed to clear history.")
            return 0
        return removed

    def _is_referenced(self, image_path: str) -> bool:
        return any(entry.image_path == image_path for entry in self._history.list_entries())

    def update_settings(self, patch: dict) -> bool:
        """
        Applies a partial settings update. The change takes effect in memory
        even if it cannot be saved; a warning is raised in that case.
        """
        persisted = self._settings.update(patch)
        if self._history.max_entries != self._settings.max_history_entries:
            self._history.set_max_entries(self._settings.max_history_entries)
        if not persisted:
            self.warning_raised.emit(SETTINGS_WARNING)
        return persisted
