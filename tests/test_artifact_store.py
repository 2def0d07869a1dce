"""
Tests for snapocr/storage/artifact_store.py
"""

import re
from pathlib import Path

import cv2
import numpy as np
import pytest

from snapocr.storage.artifact_store import ArtifactStore


@pytest.fixture
def artifacts(tmp_path):
    return ArtifactStore(tmp_path / "images")


class TestArtifactStore:
    def test_save_and_load(self, artifacts, sample_image):
        path = artifacts.save(sample_image, prefix="clipboard")

        assert Path(path).parent == artifacts.directory
        assert re.fullmatch(r"clipboard-\d+-[0-9a-f]{10}\.png", Path(path).name)
        assert np.array_equal(artifacts.load(path), sample_image)

    def test_names_are_unique(self, artifacts, sample_image):
        paths = {artifacts.save(sample_image) for _ in range(5)}
        assert len(paths) == 5

    def test_import_file_keeps_extension(self, artifacts, tmp_path, sample_image):
        source = tmp_path / "scan.bmp"
        cv2.imwrite(str(source), sample_image)

        path = artifacts.import_file(source)

        assert Path(path).suffix == ".bmp"
        assert Path(path).name.startswith("import-")
        assert source.exists()
        assert np.array_equal(artifacts.load(path), sample_image)

    def test_load_missing(self, artifacts):
        with pytest.raises(FileNotFoundError):
            artifacts.load(artifacts.directory / "nope.png")

    def test_load_garbage(self, artifacts):
        garbage = artifacts.directory / "garbage.png"
        garbage.write_bytes(b"not an image")

        with pytest.raises(ValueError):
            artifacts.load(garbage)

    def test_delete(self, artifacts, sample_image):
        path = artifacts.save(sample_image)

        assert artifacts.delete(path) is True
        assert not Path(path).exists()
        assert artifacts.delete(path) is False
