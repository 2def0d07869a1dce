# src/snapocr/processing/backends.py

"""
Recognition backends: the local OCR libraries SnapOCR can drive.

Two backends are available:

- 'easyocr' (default): deep-learning recognizer, models downloaded on first
  use. Runs on the CPU unless GPU use is enabled in the settings.
- 'tesseract': the Tesseract engine through pytesseract. Needs the tesseract
  binary and the traineddata files for every requested language.

The backend library is imported lazily so that only the configured one has
to be installed. `resolve_backend` is called once at startup; a missing
library is reported there as a configuration error rather than on every run.
"""

import importlib
import logging
from typing import Dict, List, Optional

import cv2
import numpy as np

from snapocr.processing.languages import DEFAULT_SEGMENTATION_MODE, LanguageProfile, SegmentationMode
from snapocr.processing.ocr_handler import (
    ProgressCallback,
    RecognitionBackend,
    RecognitionHandle,
    RecognitionResult,
)

logger = logging.getLogger(__name__)

# Tesseract language code -> EasyOCR language code.
EASYOCR_LANGUAGE_CODES = {
    "eng": "en",
    "jpn": "ja",
    "chi_sim": "ch_sim",
    "chi_tra": "ch_tra",
    "kor": "ko",
    "fra": "fr",
    "deu": "de",
    "spa": "es",
    "ita": "it",
    "por": "pt",
    "rus": "ru",
}

# Two boxes belong to the same text line when their vertical centres are
# closer than this fraction of the taller box's height.
LINE_MERGE_TOLERANCE = 0.5


class BackendUnavailableError(RuntimeError):
    """Raised at startup when the configured backend cannot be used."""


def _import_backend_module(module_name: str, backend_name: str):
    try:
        return importlib.import_module(module_name)
    except ImportError as e:
        raise BackendUnavailableError(
            f"The '{backend_name}' backend requires the '{module_name}' package: {e}"
        ) from e


def _report(on_progress: Optional[ProgressCallback], fraction: float, status: str) -> None:
    if on_progress is not None:
        on_progress(fraction, status)


# --- EasyOCR ---

def _group_lines(detections: list) -> List[List[tuple]]:
    """
    Groups EasyOCR detections into reading-order lines.

    Each detection is (bbox, text, confidence) where bbox is a list of four
    corner points. Lines are ordered top to bottom, words left to right.
    """
    boxes = []
    for bbox, text, confidence in detections:
        xs = [point[0] for point in bbox]
        ys = [point[1] for point in bbox]
        boxes.append((min(xs), min(ys), max(ys) - min(ys), text, confidence))
    boxes.sort(key=lambda box: (box[1], box[0]))

    lines: List[List[tuple]] = []
    for box in boxes:
        if lines:
            last = lines[-1][-1]
            centre, last_centre = box[1] + box[2] / 2, last[1] + last[2] / 2
            if abs(centre - last_centre) < LINE_MERGE_TOLERANCE * max(box[2], last[2], 1):
                lines[-1].append(box)
                continue
        lines.append([box])

    return [sorted(line, key=lambda box: box[0]) for line in lines]


class EasyOcrHandle(RecognitionHandle):
    def __init__(self, reader):
        self._reader = reader
        self._mode = DEFAULT_SEGMENTATION_MODE

    def set_segmentation_mode(self, mode: SegmentationMode) -> None:
        self._mode = mode

    def recognize(self, image: np.ndarray, on_progress: Optional[ProgressCallback] = None) -> RecognitionResult:
        if self._reader is None:
            raise RuntimeError("Recognizer has been terminated.")

        _report(on_progress, 0.0, "recognizing text")
        # `detail=1` ensures we get bounding boxes and confidence scores.
        detections = self._reader.readtext(image, detail=1, paragraph=False)
        _report(on_progress, 1.0, "recognized text")

        if not detections:
            return RecognitionResult(text="", confidence=None)

        lines = _group_lines(detections)
        if self._mode in (SegmentationMode.SINGLE_LINE, SegmentationMode.SINGLE_WORD):
            text = " ".join(box[3] for line in lines for box in line)
        else:
            text = "\n".join(" ".join(box[3] for box in line) for line in lines)

        confidence = float(np.mean([confidence for _, _, confidence in detections])) * 100
        return RecognitionResult(text=text, confidence=confidence)

    def terminate(self) -> None:
        self._reader = None


class EasyOcrBackend(RecognitionBackend):
    name = "easyocr"

    def __init__(self, gpu: bool = False):
        self._easyocr = _import_backend_module("easyocr", self.name)
        self._gpu = gpu

    def create(self, profile: LanguageProfile) -> RecognitionHandle:
        codes = [EASYOCR_LANGUAGE_CODES.get(code, code) for code in profile.codes]
        # Models are downloaded automatically on first use.
        reader = self._easyocr.Reader(codes, gpu=self._gpu, verbose=False)
        return EasyOcrHandle(reader)


# --- Tesseract ---

class TesseractHandle(RecognitionHandle):
    def __init__(self, pytesseract, profile: LanguageProfile):
        self._pytesseract = pytesseract
        self._profile = profile
        self._mode = DEFAULT_SEGMENTATION_MODE
        self._alive = True

    def set_segmentation_mode(self, mode: SegmentationMode) -> None:
        self._mode = mode

    def recognize(self, image: np.ndarray, on_progress: Optional[ProgressCallback] = None) -> RecognitionResult:
        if not self._alive:
            raise RuntimeError("Recognizer has been terminated.")

        if image.ndim == 3 and image.shape[2] == 4:
            image = cv2.cvtColor(image, cv2.COLOR_BGRA2RGB)
        elif image.ndim == 3:
            image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)

        config = f"--psm {self._mode.psm} -c preserve_interword_spaces=1"
        _report(on_progress, 0.0, "recognizing text")
        text = self._pytesseract.image_to_string(image, lang=self._profile.joined, config=config)
        _report(on_progress, 0.5, "measuring confidence")
        data = self._pytesseract.image_to_data(
            image,
            lang=self._profile.joined,
            config=config,
            output_type=self._pytesseract.Output.DICT,
        )
        _report(on_progress, 1.0, "recognized text")

        confidences = [float(value) for value in data.get("conf", []) if float(value) >= 0]
        confidence = float(np.mean(confidences)) if confidences else None
        return RecognitionResult(text=text, confidence=confidence)

    def terminate(self) -> None:
        self._alive = False


class TesseractBackend(RecognitionBackend):
    name = "tesseract"

    def __init__(self):
        self._pytesseract = _import_backend_module("pytesseract", self.name)
        try:
            version = self._pytesseract.get_tesseract_version()
        except self._pytesseract.TesseractNotFoundError as e:
            raise BackendUnavailableError(f"The tesseract binary is not installed: {e}") from e
        logger.info(f"Using tesseract {version}.")

    def create(self, profile: LanguageProfile) -> RecognitionHandle:
        installed = set(self._pytesseract.get_languages(config=""))
        missing = [code for code in profile.codes if code not in installed]
        if missing:
            raise RuntimeError(f"Missing tesseract language data: {', '.join(missing)}")
        return TesseractHandle(self._pytesseract, profile)


BACKENDS: Dict[str, type] = {
    EasyOcrBackend.name: EasyOcrBackend,
    TesseractBackend.name: TesseractBackend,
}


def resolve_backend(name: str, gpu: bool = False) -> RecognitionBackend:
    """
    Instantiates the named backend.

    Raises:
        BackendUnavailableError: The name is unknown or its library is missing.
    """
    if name not in BACKENDS:
        raise BackendUnavailableError(
            f"Unknown OCR backend '{name}'. Choose one of: {', '.join(sorted(BACKENDS))}"
        )
    if name == EasyOcrBackend.name:
        return EasyOcrBackend(gpu=gpu)
    return BACKENDS[name]()
