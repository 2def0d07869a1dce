# src/snapocr/processing/text_normalizer.py

"""Post-recognition clean-up of the extracted text."""

import re
from dataclasses import dataclass

_LINE_BREAKS = re.compile(r"[\r\n]+")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class NormalizationRules:
    trim_whitespace: bool = True
    collapse_whitespace: bool = False
    flatten_line_breaks: bool = False


def normalize_text(text: str, rules: NormalizationRules) -> str:
    """
    Applies the enabled rules in a fixed order: flatten line breaks, collapse
    whitespace, then trim. The order does not depend on which rules are on.
    """
    output = text
    if rules.flatten_line_breaks:
        output = _LINE_BREAKS.sub(" ", output)
    if rules.collapse_whitespace:
        output = _WHITESPACE.sub(" ", output)
    if rules.trim_whitespace:
        output = output.strip()
    return output
