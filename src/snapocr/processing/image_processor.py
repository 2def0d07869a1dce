# src/snapocr/processing/image_processor.py

"""
Implements the image conditioning passes for SnapOCR.

This module contains functions that make marginal images more legible to the
recognition engine. There are two independent passes:

- `upscale_if_needed` enlarges small captures and sharpens character edges.
- `preprocess_image` binarizes the image, optionally straightens skewed text,
  and makes sure the result is dark text on a light background.

Neither pass is ever allowed to make a usable image unusable: any failure is
logged and the original image is handed back untouched.
"""

import logging
from dataclasses import dataclass

import cv2
import numpy as np

logger = logging.getLogger(__name__)

# --- Constants for Upscaling ---
# Target length of the shorter image side. Recognition quality drops off
# sharply for text rendered at screen resolution.
TARGET_MIN_DIMENSION = 1200
# Below this, the image is always scaled all the way up to the target.
ABSOLUTE_MIN_DIMENSION = 800
# Upper bound on the scale factor for images between the two thresholds.
MAX_UPSCALE_FACTOR = 3.0

# Classic 4-neighbour sharpening kernel.
SHARPEN_KERNEL = np.array(
    [[0, -1, 0],
     [-1, 5, -1],
     [0, -1, 0]],
    dtype=np.int32,
)

# --- Constants for Binarization ---
GAUSSIAN_BLUR_KERNEL = (3, 3)
# Neighbourhood size for adaptive thresholding. Must be an odd number.
ADAPTIVE_THRESH_BLOCK_SIZE = 25
# Constant subtracted from the weighted neighbourhood mean.
ADAPTIVE_THRESH_C = 10
# A binary result darker than this on average is treated as inverted.
INVERSION_MEAN_THRESHOLD = 127


@dataclass(frozen=True)
class PreprocessResult:
    """The outcome of `preprocess_image`: the image and its dimensions."""
    image: np.ndarray
    width: int
    height: int


def compute_upscale_factor(width: int, height: int) -> float:
    """
    Returns the factor by which an image of the given size should be enlarged.

    A factor of 1.0 means the image is already large enough.
    """
    min_side = min(width, height)
    if min_side >= TARGET_MIN_DIMENSION:
        return 1.0
    if min_side < ABSOLUTE_MIN_DIMENSION:
        return TARGET_MIN_DIMENSION / min_side
    return min(MAX_UPSCALE_FACTOR, TARGET_MIN_DIMENSION / min_side)


def sharpen_image(image: np.ndarray) -> np.ndarray:
    """
    Applies the fixed 3x3 sharpening kernel to the colour channels of an image.

    Only interior pixels are convolved; the 1-pixel border is copied through
    unchanged. Each output value is clamped to [0, 255]. For 4-channel images
    the alpha channel is passed through untouched. A 2-D grayscale image is
    treated as a single colour channel.

    Args:
        image: A uint8 NumPy array, either HxW, HxWx3 or HxWx4.

    Returns:
        A new array of the same shape and dtype.
    """
    squeeze = image.ndim == 2
    source = image[:, :, np.newaxis] if squeeze else image
    color_channels = min(source.shape[2], 3)

    output = source.copy()
    if source.shape[0] >= 3 and source.shape[1] >= 3:
        src = source[:, :, :color_channels].astype(np.int32)
        acc = (
            SHARPEN_KERNEL[1, 1] * src[1:-1, 1:-1]
            + SHARPEN_KERNEL[0, 1] * src[:-2, 1:-1]
            + SHARPEN_KERNEL[2, 1] * src[2:, 1:-1]
            + SHARPEN_KERNEL[1, 0] * src[1:-1, :-2]
            + SHARPEN_KERNEL[1, 2] * src[1:-1, 2:]
        )
        output[1:-1, 1:-1, :color_channels] = np.clip(acc, 0, 255).astype(source.dtype)

    return output[:, :, 0] if squeeze else output


def upscale_if_needed(image: np.ndarray) -> np.ndarray:
    """
    Enlarges small images so that their shorter side reaches the target size.

    Images whose shorter side is already at least TARGET_MIN_DIMENSION are
    returned as-is (the very same object). Otherwise the image is resampled
    with cubic interpolation and sharpened. Failure of this step is not fatal:
    it is logged and the original image is returned.

    Args:
        image: A uint8 NumPy array in OpenCV channel order.

    Returns:
        The upscaled and sharpened image, or the original image.
    """
    try:
        height, width = image.shape[:2]
        scale = compute_upscale_factor(width, height)
        if scale == 1.0:
            return image

        new_size = (int(round(width * scale)), int(round(height * scale)))
        logger.debug(f"Upscaling image from {width}x{height} to {new_size[0]}x{new_size[1]} (x{scale:.2f})")
        # Resizing with cubic interpolation is effective for preserving text features.
        upscaled = cv2.resize(image, new_size, interpolation=cv2.INTER_CUBIC)
        return sharpen_image(upscaled)
    except Exception as e:
        logger.warning(f"Upscaling failed, using the original image. Error: {e}")
        return image


def _to_grayscale(image: np.ndarray) -> np.ndarray:
    if image is None or image.size == 0:
        raise ValueError("Input image is empty.")
    if image.ndim == 2:
        return image
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def _normalize_skew_angle(angle: float) -> float:
    """
    Maps a `minAreaRect` angle into (-45, 45].

    Depending on the OpenCV version an axis-aligned block is reported as 0, 90
    or -90 degrees; all of them mean "no rotation needed".
    """
    while angle > 45:
        angle -= 90
    while angle <= -45:
        angle += 90
    return angle


def _deskew(binary: np.ndarray) -> np.ndarray:
    """
    Rotates a binary image so that its text block is axis-aligned.

    The image is inverted so that text becomes foreground. If it contains no
    foreground at all, rotation is skipped and the original polarity restored.
    """
    inverted = cv2.bitwise_not(binary)
    coordinates = cv2.findNonZero(inverted)
    if coordinates is None or len(coordinates) == 0:
        logger.debug("Deskew skipped: no foreground pixels found.")
        return binary

    height, width = inverted.shape[:2]
    angle = _normalize_skew_angle(cv2.minAreaRect(coordinates)[-1])
    rotation_matrix = cv2.getRotationMatrix2D((width / 2, height / 2), angle, 1)
    logger.debug(f"Deskewing by {angle:.2f} degrees.")
    # The rotated image keeps the inverted polarity; the mean check below fixes it.
    return cv2.warpAffine(inverted, rotation_matrix, (width, height), flags=cv2.INTER_LINEAR)


def preprocess_image(image: np.ndarray, deskew: bool = False) -> PreprocessResult:
    """
    Conditions an image for OCR by turning it into clean black-on-white text.

    The pipeline consists of the following steps:
    1. Convert the image to grayscale.
    2. Apply a small Gaussian blur to suppress noise.
    3. Equalize the histogram to stretch contrast.
    4. Binarize with adaptive thresholding.
    5. Optionally deskew the text block.
    6. Invert the result if it is predominantly dark.

    On any failure the original image and its dimensions are returned; this is
    logged but never raised.

    Args:
        image: A uint8 NumPy array, grayscale, BGR or BGRA.
        deskew: Whether to straighten rotated text.

    Returns:
        A PreprocessResult holding the processed (or original) image.
    """
    try:
        gray = _to_grayscale(image)
        blurred = cv2.GaussianBlur(gray, GAUSSIAN_BLUR_KERNEL, 0)
        enhanced = cv2.equalizeHist(blurred)

        # This handles varying background colours and uneven lighting.
        binary = cv2.adaptiveThreshold(
            enhanced,
            255,
            cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
            cv2.THRESH_BINARY,
            ADAPTIVE_THRESH_BLOCK_SIZE,
            ADAPTIVE_THRESH_C
        )

        output = _deskew(binary) if deskew else binary

        # Recognition expects a light background with dark text.
        if cv2.mean(output)[0] < INVERSION_MEAN_THRESHOLD:
            output = cv2.bitwise_not(output)

        height, width = output.shape[:2]
        return PreprocessResult(image=output, width=width, height=height)
    except Exception as e:
        logger.warning(f"Image preprocessing failed, falling back to the raw image. Error: {e}")
        height, width = _safe_dimensions(image)
        return PreprocessResult(image=image, width=width, height=height)


def _safe_dimensions(image) -> tuple:
    shape = getattr(image, "shape", None)
    if not shape or len(shape) < 2:
        return 0, 0
    return int(shape[0]), int(shape[1])
