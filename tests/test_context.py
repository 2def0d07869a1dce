"""
Tests for snapocr/app_logic/context.py and backend resolution
"""

import sys
from types import SimpleNamespace

import cv2
import numpy as np
import pytest

from snapocr.app_logic.context import ContextError, OcrContext
from snapocr.processing.backends import BackendUnavailableError, TesseractHandle, resolve_backend
from snapocr.processing.languages import LanguageProfile, SegmentationMode


class TestOcrContext:
    def test_orchestrator_requires_init(self, tmp_path, fake_backend):
        context = OcrContext(config_dir=tmp_path, backend=fake_backend)
        with pytest.raises(ContextError):
            context.orchestrator

    def test_lifecycle(self, tmp_path, fake_backend, sample_image):
        with OcrContext(config_dir=tmp_path, threaded=False, backend=fake_backend) as context:
            assert context.history.max_entries == 200
            assert context.artifacts.directory == tmp_path / "images"
            assert context.engine.engine_id == "fake-local"

            context.orchestrator.process_file(_write_png(tmp_path, sample_image))
            assert context.history.count() == 1

        assert context.history is None
        assert fake_backend.terminations == 1
        assert (tmp_path / "ocr_history.db").exists()

    def test_double_init_rejected(self, tmp_path, fake_backend):
        context = OcrContext(config_dir=tmp_path, backend=fake_backend).init()
        with pytest.raises(ContextError):
            context.init()
        context.shutdown()

    def test_history_survives_restart(self, tmp_path, fake_backend, sample_image):
        with OcrContext(config_dir=tmp_path, threaded=False, backend=fake_backend) as context:
            context.orchestrator.process_file(_write_png(tmp_path, sample_image))

        with OcrContext(config_dir=tmp_path, threaded=False, backend=fake_backend) as context:
            (entry,) = context.orchestrator.list_history()
            assert entry.text == "Hello   \nWorld"


def _write_png(tmp_path, image):
    path = tmp_path / "input.png"
    cv2.imwrite(str(path), image)
    return path


class TestResolveBackend:
    def test_unknown_backend(self):
        with pytest.raises(BackendUnavailableError):
            resolve_backend("cloud")

    def test_missing_library(self, monkeypatch):
        monkeypatch.setitem(sys.modules, "easyocr", None)

        with pytest.raises(BackendUnavailableError, match="easyocr"):
            resolve_backend("easyocr")

    def test_easyocr_reader_uses_mapped_codes(self, monkeypatch):
        created = []

        class FakeReader:
            def __init__(self, codes, gpu, verbose):
                created.append((codes, gpu))

        monkeypatch.setitem(sys.modules, "easyocr", SimpleNamespace(Reader=FakeReader))

        backend = resolve_backend("easyocr", gpu=True)
        backend.create(LanguageProfile.parse("jpn+eng"))

        assert created == [(["ja", "en"], True)]


class FakePytesseract:
    Output = SimpleNamespace(DICT="dict")

    def __init__(self):
        self.calls = []

    def image_to_string(self, image, lang, config):
        self.calls.append(("string", image.shape, lang, config))
        return "Hello  World\n"

    def image_to_data(self, image, lang, config, output_type):
        self.calls.append(("data", image.shape, lang, config))
        return {"conf": ["-1", "90", "70.0", -1]}


class TestTesseractHandle:
    def test_recognize(self, sample_image):
        pytesseract = FakePytesseract()
        handle = TesseractHandle(pytesseract, LanguageProfile.parse("eng+jpn"))
        handle.set_segmentation_mode(SegmentationMode.SINGLE_BLOCK)
        events = []

        result = handle.recognize(sample_image, lambda fraction, status: events.append(fraction))

        assert result.text == "Hello  World\n"
        assert result.confidence == 80.0
        assert events == [0.0, 0.5, 1.0]
        kind, shape, lang, config = pytesseract.calls[0]
        assert shape == sample_image.shape
        assert lang == "eng+jpn"
        assert config == "--psm 6 -c preserve_interword_spaces=1"

    def test_no_confidences(self):
        pytesseract = FakePytesseract()
        pytesseract.image_to_data = lambda *args, **kwargs: {"conf": [-1]}
        handle = TesseractHandle(pytesseract, LanguageProfile.parse("eng"))

        result = handle.recognize(np.full((10, 10), 255, dtype=np.uint8))

        assert result.confidence is None

    def test_terminated_handle_refuses_work(self, sample_image):
        handle = TesseractHandle(FakePytesseract(), LanguageProfile.parse("eng"))
        handle.terminate()
        with pytest.raises(RuntimeError):
            handle.recognize(sample_image)
