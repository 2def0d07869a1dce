# src/snapocr/storage/artifact_store.py

"""
File storage for the images behind history entries.

Every image that enters the pipeline is written here first, so that a history
entry can point at a stable file and the image can be loaded again later.
"""

import logging
import shutil
import time
import uuid
from pathlib import Path
from typing import Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _artifact_name(prefix: str, suffix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:10]}{suffix}"


class ArtifactStore:
    """Saves, loads and deletes image artifacts inside one directory."""

    def __init__(self, directory: PathLike):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def save(self, pixels: np.ndarray, prefix: str = "generated") -> str:
        """Writes `pixels` as a PNG file and returns its path."""
        path = self.directory / _artifact_name(prefix, ".png")
        if not cv2.imwrite(str(path), pixels):
            raise OSError(f"Could not write image artifact to {path}")
        logger.debug(f"Saved image artifact {path}")
        return str(path)

    def import_file(self, source: PathLike, prefix: str = "import") -> str:
        """Copies an existing image file into the store and returns the copy's path."""
        source = Path(source)
        suffix = source.suffix or ".png"
        destination = self.directory / _artifact_name(prefix, suffix)
        shutil.copyfile(source, destination)
        logger.debug(f"Imported {source} as {destination}")
        return str(destination)

    def load(self, path: PathLike) -> np.ndarray:
        """
        Reads an artifact back into memory.

        Raises:
            FileNotFoundError: The file does not exist.
            ValueError: The file exists but is not a readable image.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Image artifact not found: {path}")
        pixels = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
        if pixels is None:
            raise ValueError(f"Could not decode image artifact: {path}")
        return pixels

    def delete(self, path: PathLike) -> bool:
        """Removes an artifact. A missing file is not an error; returns whether one was removed."""
        path = Path(path)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Failed to remove image artifact {path}: {e}")
            return False
        logger.debug(f"Removed image artifact {path}")
        return True
