# src/snapocr/capture/image_sources.py

"""
Utility module for getting images into the pipeline.

Images are returned as NumPy arrays in OpenCV's BGR channel order. "Nothing
available" (an empty clipboard, an unreadable file) is reported as None rather
than as an error.
"""

import logging
from pathlib import Path
from typing import Optional

import cv2
import numpy as np
from PIL import Image, ImageGrab

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".bmp", ".gif", ".tif", ".tiff"}
DOCUMENT_EXTENSIONS = {".pdf"}


def pil_to_bgr(image: Image.Image) -> np.ndarray:
    """Converts a Pillow image to a BGR NumPy array, dropping any alpha channel."""
    rgb = np.array(image.convert("RGB"))
    return cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)


def load_image_file(path) -> Optional[np.ndarray]:
    """Decodes an image file. Returns None if it cannot be read."""
    pixels = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if pixels is None:
        logger.warning(f"Could not read image file: {path}")
    return pixels


def read_clipboard_image() -> Optional[np.ndarray]:
    """
    Reads an image from the system clipboard.

    If the clipboard holds a list of copied files instead (as file managers
    do), the first one that decodes as an image is used.

    Returns:
        A BGR NumPy array, or None if the clipboard holds no image.
    """
    try:
        content = ImageGrab.grabclipboard()
    except (OSError, NotImplementedError) as e:
        # Happens on systems without a clipboard mechanism, or on Linux when
        # neither wl-paste nor xclip is installed.
        logger.warning(f"Could not read the clipboard: {e}")
        return None

    if content is None:
        logger.info("Clipboard does not contain an image.")
        return None

    if isinstance(content, Image.Image):
        return pil_to_bgr(content)

    for name in content:
        if Path(name).suffix.lower() in IMAGE_EXTENSIONS:
            pixels = load_image_file(name)
            if pixels is not None:
                return pixels

    logger.info("Clipboard file list contains no readable image.")
    return None


def is_document_path(path) -> bool:
    return Path(path).suffix.lower() in DOCUMENT_EXTENSIONS
