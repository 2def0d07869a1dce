"""
Shared fixtures and fakes for the SnapOCR test suite.
"""

import numpy as np
import pytest
from PyQt6.QtCore import QCoreApplication

from snapocr.processing.ocr_handler import RecognitionBackend, RecognitionHandle, RecognitionResult


@pytest.fixture(scope="session", autouse=True)
def qt_app():
    """QObjects and signals need a core application instance."""
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


class FakeHandle(RecognitionHandle):
    def __init__(self, backend, profile):
        self.backend = backend
        self.profile = profile
        self.mode = None
        self.terminated = False

    def set_segmentation_mode(self, mode):
        self.mode = mode

    def recognize(self, image, on_progress=None):
        self.backend.recognize_calls += 1
        if self.backend.on_recognize is not None:
            self.backend.on_recognize()
        if self.backend.recognize_error is not None:
            raise self.backend.recognize_error
        if on_progress is not None:
            for fraction, status in self.backend.progress_events:
                on_progress(fraction, status)
        return RecognitionResult(text=self.backend.text, confidence=self.backend.confidence)

    def terminate(self):
        self.terminated = True
        self.backend.terminations += 1


class FakeBackend(RecognitionBackend):
    """Records how often recognizers are built, used and torn down."""
    name = "fake"

    def __init__(self, text="Hello   \nWorld\n", confidence=91.5):
        self.text = text
        self.confidence = confidence
        self.constructions = 0
        self.terminations = 0
        self.recognize_calls = 0
        self.create_error = None
        self.recognize_error = None
        self.on_recognize = None
        self.progress_events = [(0.0, "recognizing text"), (1.0, "recognized text")]
        self.handles = []

    def create(self, profile):
        if self.create_error is not None:
            raise self.create_error
        self.constructions += 1
        handle = FakeHandle(self, profile)
        self.handles.append(handle)
        return handle


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def sample_image():
    """A small light-gray BGR image with a dark bar standing in for text."""
    image = np.full((60, 200, 3), 220, dtype=np.uint8)
    image[25:35, 20:180] = 40
    return image
