"""Structured response extraction.

Model completions are asked for bare JSON but routinely arrive wrapped in
markdown fences, surrounded by prose, or with trailing commas. This module
recovers the JSON object from such text.

Shape validation is not done here: the extractor returns whatever object
was found and leaves it to consumers to decide which keys they need.

Antagon Inc. | CAGE: 17E75 | UEI: KBSGT7CZ4AH3
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from prompt_optimiser.errors import ExtractionError

logger = logging.getLogger(__name__)

FENCE = "```"
LANGUAGE_TAG = re.compile(r"^[A-Za-z][\w+-]*(?=\s)")


def strip_code_fence(text: str) -> str:
    """Return the content of the first fenced block, or ``text`` unchanged.

    A language tag directly after the opening fence (``json``, ``JSON``,
    ``jsonc``...) is dropped.
    """
    start = text.find(FENCE)
    if start == -1:
        return text
    end = text.find(FENCE, start + len(FENCE))
    if end == -1:
        return text

    inner = text[start + len(FENCE):end]
    return LANGUAGE_TAG.sub("", inner, count=1)


def remove_trailing_commas(text: str) -> str:
    """Drop commas that directly precede a closing brace or bracket.

    Commas inside JSON string literals are left alone, so string values
    such as ``"[a, b, ]"`` survive unchanged.
    """
    out: list[str] = []
    in_string = False
    escaped = False
    i = 0
    length = len(text)

    while i < length:
        char = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == ",":
            j = i + 1
            while j < length and text[j].isspace():
                j += 1
            if j < length and text[j] in "}]":
                i += 1
                continue
        out.append(char)
        i += 1

    return "".join(out)


def extract_json(raw_text: str) -> dict[str, Any]:
    """Recover a JSON object from a model completion.

    Args:
        raw_text: The completion text.

    Returns:
        The parsed object.

    Raises:
        ExtractionError: ``"no JSON found"`` when no ``{...}`` span exists,
            ``"parse failed"`` when the span is not valid JSON after cleanup.
    """
    text = strip_code_fence(raw_text or "")

    opening = text.find("{")
    closing = text.rfind("}")
    if opening == -1 or closing == -1 or closing < opening:
        raise ExtractionError("no JSON found")

    candidate = remove_trailing_commas(text[opening:closing + 1])

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        # Log the decoder's category only, never the payload
        logger.warning(f"JSON parse error: {type(e).__name__}")
        raise ExtractionError("parse failed") from None

    if not isinstance(parsed, dict):
        raise ExtractionError("parse failed")
    return parsed


__all__ = ["extract_json", "strip_code_fence", "remove_trailing_commas"]
