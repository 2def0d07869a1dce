# src/snapocr/capture/document_renderer.py

"""Renders single pages of PDF documents into images with pypdfium2."""

import logging

import numpy as np
import pypdfium2 as pdfium

from snapocr.capture.image_sources import pil_to_bgr

logger = logging.getLogger(__name__)

# 72 dpi * 2 = 144 dpi, enough for body text without huge bitmaps.
DEFAULT_RENDER_SCALE = 2.0


class DocumentRenderer:

    def page_count(self, payload: bytes) -> int:
        pdf = pdfium.PdfDocument(payload)
        try:
            return len(pdf)
        finally:
            pdf.close()

    def render_page(self, payload: bytes, page_number: int, scale: float = DEFAULT_RENDER_SCALE) -> np.ndarray:
        """
        Renders one page (1-based) to a BGR image.

        Raises:
            ValueError: The page number is outside the document.
        """
        pdf = pdfium.PdfDocument(payload)
        try:
            total = len(pdf)
            if not 1 <= page_number <= total:
                raise ValueError(f"Invalid page number: {page_number}. PDF has {total} pages.")
            page = pdf[page_number - 1]
            try:
                bitmap = page.render(scale=scale)
                pixels = pil_to_bgr(bitmap.to_pil())
            finally:
                page.close()
        finally:
            pdf.close()

        logger.debug(f"Rendered page {page_number}/{total} at {pixels.shape[1]}x{pixels.shape[0]}")
        return pixels
