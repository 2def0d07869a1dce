"""
Tests for snapocr/capture/
"""

import io

import cv2
import numpy as np
import pypdfium2 as pdfium
import pytest
from PIL import Image

from snapocr.capture import image_sources
from snapocr.capture.document_renderer import DocumentRenderer
from snapocr.capture.source_image import DocumentContext, ImageOrigin, SourceImage


def make_pdf(pages=2, width=200, height=100):
    pdf = pdfium.PdfDocument.new()
    for _ in range(pages):
        pdf.new_page(width, height)
    buffer = io.BytesIO()
    pdf.save(buffer)
    pdf.close()
    return buffer.getvalue()


class TestClipboardImage:
    def test_image_content(self, monkeypatch):
        monkeypatch.setattr(image_sources.ImageGrab, "grabclipboard", lambda: Image.new("RGB", (4, 3), (255, 0, 0)))

        pixels = image_sources.read_clipboard_image()

        assert pixels.shape == (3, 4, 3)
        assert tuple(pixels[0, 0]) == (0, 0, 255)

    def test_rgba_content_drops_alpha(self, monkeypatch):
        monkeypatch.setattr(image_sources.ImageGrab, "grabclipboard", lambda: Image.new("RGBA", (5, 5)))
        assert image_sources.read_clipboard_image().shape == (5, 5, 3)

    def test_empty_clipboard(self, monkeypatch):
        monkeypatch.setattr(image_sources.ImageGrab, "grabclipboard", lambda: None)
        assert image_sources.read_clipboard_image() is None

    def test_unsupported_platform(self, monkeypatch):
        def unsupported():
            raise NotImplementedError("no clipboard")

        monkeypatch.setattr(image_sources.ImageGrab, "grabclipboard", unsupported)
        assert image_sources.read_clipboard_image() is None

    def test_file_list_uses_first_readable_image(self, monkeypatch, tmp_path, sample_image):
        notes = tmp_path / "notes.txt"
        notes.write_text("hello")
        broken = tmp_path / "broken.png"
        broken.write_bytes(b"nope")
        good = tmp_path / "good.png"
        cv2.imwrite(str(good), sample_image)
        monkeypatch.setattr(image_sources.ImageGrab, "grabclipboard", lambda: [str(notes), str(broken), str(good)])

        assert np.array_equal(image_sources.read_clipboard_image(), sample_image)

    def test_file_list_without_images(self, monkeypatch, tmp_path):
        monkeypatch.setattr(image_sources.ImageGrab, "grabclipboard", lambda: [str(tmp_path / "a.txt")])
        assert image_sources.read_clipboard_image() is None


class TestImageFiles:
    def test_is_document_path(self):
        assert image_sources.is_document_path("scan.PDF")
        assert not image_sources.is_document_path("scan.png")

    def test_load_missing_file(self, tmp_path):
        assert image_sources.load_image_file(tmp_path / "missing.png") is None


class TestDocumentRenderer:
    def test_page_count(self):
        assert DocumentRenderer().page_count(make_pdf(pages=3)) == 3

    def test_render_page_at_double_scale(self):
        pixels = DocumentRenderer().render_page(make_pdf(), 2)

        assert pixels.shape == (200, 400, 3)
        assert pixels.dtype == np.uint8

    @pytest.mark.parametrize("page_number", [0, 3, -1])
    def test_invalid_page(self, page_number):
        with pytest.raises(ValueError):
            DocumentRenderer().render_page(make_pdf(pages=2), page_number)


class TestSourceImage:
    def test_dimensions(self, sample_image):
        source = SourceImage(pixels=sample_image, origin=ImageOrigin.CLIPBOARD, artifact_path="/tmp/a.png")
        assert (source.width, source.height) == (200, 60)
        assert source.document is None

    def test_with_page(self):
        document = DocumentContext(payload=b"pdf", source_path="/tmp/a.pdf", current_page=1, total_pages=4)

        moved = document.with_page(4)

        assert moved.current_page == 4
        assert moved.payload is document.payload
        assert document.current_page == 1

    @pytest.mark.parametrize("page_number", [0, 5])
    def test_with_page_out_of_range(self, page_number):
        document = DocumentContext(payload=b"pdf", source_path="/tmp/a.pdf", current_page=1, total_pages=4)
        with pytest.raises(ValueError):
            document.with_page(page_number)
