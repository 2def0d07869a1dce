# src/snapocr/processing/languages.py

"""
Language profiles and segmentation modes understood by the recognition engine.

Language codes follow the Tesseract naming scheme ('eng', 'jpn', 'chi_sim').
A profile combining several languages is written with '+' separators, e.g.
'jpn+eng'; that joined form is what gets stored alongside history entries.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Tuple

DEFAULT_LANGUAGE = "jpn+eng"

# Code -> human-readable label for every language we ship support for.
LANGUAGE_LABELS = {
    "eng": "English",
    "jpn": "Japanese",
    "chi_sim": "Chinese (Simplified)",
    "chi_tra": "Chinese (Traditional)",
    "kor": "Korean",
    "fra": "French",
    "deu": "German",
    "spa": "Spanish",
    "ita": "Italian",
    "por": "Portuguese",
    "rus": "Russian",
}


def _unique_codes(codes: Iterable[str]) -> Tuple[str, ...]:
    seen: List[str] = []
    for code in codes:
        code = code.strip()
        if code and code not in seen:
            seen.append(code)
    return tuple(seen)


@dataclass(frozen=True)
class LanguageProfile:
    """
    An ordered set of language codes passed to the recognizer as one request.

    Codes are unique. Order is preserved because it determines the joined
    string, and two profiles are equal only if their code sequences match.
    """
    codes: Tuple[str, ...]

    def __post_init__(self):
        codes = _unique_codes(self.codes)
        if not codes:
            raise ValueError("A language profile needs at least one language code.")
        object.__setattr__(self, "codes", codes)

    @classmethod
    def parse(cls, value: str) -> "LanguageProfile":
        """Builds a profile from its joined form, e.g. 'jpn+eng'."""
        return cls(tuple((value or "").split("+")))

    @property
    def joined(self) -> str:
        return "+".join(self.codes)

    @property
    def labels(self) -> List[str]:
        return [LANGUAGE_LABELS.get(code, code) for code in self.codes]

    def __str__(self) -> str:
        return self.joined


class SegmentationMode(Enum):
    """
    Layout hint handed to the recognizer.

    Each member's value is the matching Tesseract page segmentation mode.
    """
    AUTO = 3
    SINGLE_COLUMN = 4
    SINGLE_BLOCK = 6
    SINGLE_LINE = 7
    SINGLE_WORD = 8
    SPARSE_TEXT = 11

    @property
    def psm(self) -> int:
        return self.value

    @property
    def key(self) -> str:
        return self.name.lower()

    @classmethod
    def from_key(cls, key: str) -> "SegmentationMode":
        """Looks a mode up by its settings key, e.g. 'sparse_text'."""
        try:
            return cls[str(key).strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown segmentation mode: {key!r}") from None


DEFAULT_SEGMENTATION_MODE = SegmentationMode.SPARSE_TEXT
