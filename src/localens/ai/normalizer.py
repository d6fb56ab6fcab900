"""Turn raw model text into a parsed JSON body.

Models sometimes wrap their answer in a markdown code fence or surround it
with prose even when asked for JSON only. normalize_response() tolerates
both before giving up with MalformedResponseError.

Example:
    >>> normalize_response('```json\\n{"summary": "x"}\\n```')
    {'summary': 'x'}
    >>> normalize_response('Here you go: {"summary": "x"} Hope it helps.')
    {'summary': 'x'}
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from localens.errors import MalformedResponseError

logger = logging.getLogger(__name__)

_LEADING_FENCE = re.compile(r"^```(?:json)?\s*")
_TRAILING_FENCE = re.compile(r"\s*```$")

# Greedy: first "{" to last "}"
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def strip_code_fences(text: str) -> str:
    """Remove a leading ```/```json fence and a trailing ``` fence."""
    cleaned = text.strip()
    cleaned = _LEADING_FENCE.sub("", cleaned)
    cleaned = _TRAILING_FENCE.sub("", cleaned)
    return cleaned


def normalize_response(text: str | None) -> Any:
    """Parse a model response into a JSON value.

    Tries the fence-stripped text first, then the outermost brace-delimited
    span of the original text.

    Args:
        text: Raw response text.

    Returns:
        The parsed JSON value.

    Raises:
        MalformedResponseError: If the text is empty or neither strategy
            yields valid JSON.
    """
    if not text or not text.strip():
        raise MalformedResponseError("Empty response from model", raw_text=text)

    try:
        return json.loads(strip_code_fences(text))
    except json.JSONDecodeError:
        logger.debug("Direct JSON parse failed, trying brace extraction")

    match = _JSON_OBJECT.search(text)
    if match:
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise MalformedResponseError("Invalid JSON response", raw_text=text) from e

    raise MalformedResponseError("Invalid JSON response", raw_text=text)
