# src/snapocr/__init__.py

"""
SnapOCR: a desktop utility that turns images into text, fully offline.

This package contains the core recognition pipeline for SnapOCR, including
image acquisition, image conditioning, text recognition, text normalization
and the bounded history of past results.
"""

__version__ = "0.1.0"
__author__ = "SnapOCR Developer"
__email__ = "developer@example.com"
