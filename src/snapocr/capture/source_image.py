# src/snapocr/capture/source_image.py

"""The image a recognition run works on, and where it came from."""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

import numpy as np


class ImageOrigin(Enum):
    CLIPBOARD = "clipboard"
    FILE = "file"
    DOCUMENT = "document"
    HISTORY = "history"


@dataclass(frozen=True)
class DocumentContext:
    """
    A multi-page document a source image was rendered from.

    Keeping the raw document bytes around lets other pages be rendered
    without going back to the file.
    """
    payload: bytes
    source_path: str
    current_page: int
    total_pages: int

    def with_page(self, page_number: int) -> "DocumentContext":
        """Returns a context for another page of the same document."""
        if not 1 <= page_number <= self.total_pages:
            raise ValueError(
                f"Invalid page number: {page_number}. Document has {self.total_pages} pages."
            )
        return replace(self, current_page=page_number)


@dataclass(frozen=True)
class SourceImage:
    pixels: np.ndarray
    origin: ImageOrigin
    artifact_path: str
    document: Optional[DocumentContext] = None

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])
