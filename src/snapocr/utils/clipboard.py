# src/snapocr/utils/clipboard.py

"""
A simple wrapper module for the 'pyperclip' library.

This module provides a single function to copy recognized text to the system
clipboard. It handles the case where no clipboard mechanism is available on
the system.
"""

import logging
import pyperclip

# Configure a logger for this module
logger = logging.getLogger(__name__)


def copy_to_clipboard(text: str) -> bool:
    """
    Copies the given text to the system clipboard.

    Args:
        text: The string to be copied to the clipboard.

    Returns:
        True if the text was copied, False otherwise. Failures are logged,
        never raised.
    """
    if not isinstance(text, str) or not text:
        logger.warning("Attempted to copy an empty or invalid string to clipboard.")
        return False

    try:
        pyperclip.copy(text)
        logger.info(f"Copied {len(text)} characters to the system clipboard.")
        return True
    except pyperclip.PyperclipException as e:
        # This can happen on systems without a clipboard mechanism (e.g., headless servers)
        # or if the necessary copy/paste commands (xclip/xsel on Linux) are not installed.
        logger.error(f"Failed to copy text to clipboard. pyperclip error: {e}")
        return False
