"""Helpers for turning completion text into JSON objects.

Models asked for JSON still wrap it in markdown fences now and then, or emit
truncated ``\\u`` escapes that the json module rejects.
"""

import json
import logging
import re
from typing import Any

from .errors import MalformedResponseError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?", re.IGNORECASE)
_BROKEN_UNICODE_ESCAPE_RE = re.compile(r"\\u[0-9a-fA-F]{0,3}(?![0-9a-fA-F])")


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences around a completion."""
    return _FENCE_RE.sub("", text).strip()


def repair_unicode_escapes(text: str) -> str:
    """Drop ``\\u`` escapes with fewer than four hex digits."""
    return _BROKEN_UNICODE_ESCAPE_RE.sub("", text)


def _outer_object(text: str) -> str:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return text
    return text[start:end + 1]


def parse_json_object(text: str | None, context: str = "completion") -> dict[str, Any]:
    """Parse a completion into a JSON object.

    Tries the cleaned text first, then again after repairing unicode escapes.

    Args:
        text: Raw completion text.
        context: Label used in error messages and logs (e.g. "Market section").

    Returns:
        The parsed object.

    Raises:
        MalformedResponseError: If the text is empty, unparseable, or not an object.
    """
    if not text or not text.strip():
        raise MalformedResponseError(f"Empty AI response for {context}")

    cleaned = _outer_object(strip_code_fences(text))

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        logger.warning(f"Failed to parse {context} JSON, retrying after escape repair")
        try:
            parsed = json.loads(repair_unicode_escapes(cleaned))
        except json.JSONDecodeError as e:
            raise MalformedResponseError(
                f"Unparseable AI response for {context}: {e.msg}"
            ) from e
        except (ValueError, RecursionError) as e:
            raise MalformedResponseError(
                f"Unparseable AI response for {context}: {type(e).__name__}"
            ) from e
    except (ValueError, RecursionError) as e:
        # Integers past the str conversion limit, or nesting past the recursion limit
        raise MalformedResponseError(
            f"Unparseable AI response for {context}: {type(e).__name__}"
        ) from e

    if not isinstance(parsed, dict):
        raise MalformedResponseError(
            f"Expected a JSON object for {context}, got {type(parsed).__name__}"
        )

    return parsed
