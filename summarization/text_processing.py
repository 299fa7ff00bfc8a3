"""
Text processing utilities shared by the fetchers, classifiers and generators.
"""

import html
import json
import logging
import re
from typing import Any, Dict, List

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+(?=[A-Z0-9\"'])")


def clean_text(text: str) -> str:
    """
    Clean HTML and normalize text.

    Args:
        text: Raw text that may contain HTML

    Returns:
        Cleaned and normalized text
    """
    if not text:
        return ""

    if "<" in text and ">" in text:
        text = BeautifulSoup(text, 'html.parser').get_text(" ")

    text = html.unescape(text)
    return re.sub(r'\s+', ' ', text).strip()


def extract_source_from_url(url: str) -> str:
    """
    Extract publication name from URL.

    Args:
        url: Article URL (can be None or empty)

    Returns:
        Publication domain or "Unknown Source"
    """
    if not url:
        return "Unknown Source"

    if '//' in url:
        source_name = url.split('//', 1)[1].split('/')[0]
    else:
        source_name = url.split('/')[0]

    if source_name.startswith('www.'):
        source_name = source_name[4:]
    return source_name or "Unknown Source"


def truncate(text: str, limit: int) -> str:
    """Cut text to at most `limit` characters on a word boundary."""
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    cut = text[:limit - 1].rsplit(' ', 1)[0].rstrip(',;:-')
    return cut + "…"


def first_sentence(text: str) -> str:
    text = (text or "").strip()
    if not text:
        return ""
    return _SENTENCE_RE.split(text, maxsplit=1)[0].strip()


def as_list(value) -> List[Any]:
    """A JSON array from a model reply, or an empty list for anything else."""
    return value if isinstance(value, list) else []


def first_sentences(text: str, count: int) -> str:
    parts = _SENTENCE_RE.split((text or "").strip())
    return " ".join(p.strip() for p in parts[:count] if p.strip())


def clean_json_response(response: str) -> str:
    """
    Strip markdown code fences and surrounding prose from a JSON reply.

    Args:
        response: Raw model output

    Returns:
        The JSON document text
    """
    text = (response or "").strip()
    text = _FENCE_RE.sub("", text).strip()
    if text and text[0] not in "{[":
        start = min((i for i in (text.find("{"), text.find("[")) if i >= 0), default=-1)
        if start >= 0:
            text = text[start:]
    if text and text[-1] not in "}]":
        end = max(text.rfind("}"), text.rfind("]"))
        if end >= 0:
            text = text[:end + 1]
    return text


def parse_json_response(response: str) -> Dict[str, Any]:
    """
    Parse a model reply that should contain one JSON object.

    Raises:
        ValueError: if the reply holds no valid JSON object
    """
    cleaned = clean_json_response(response)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.debug(f"Unparseable JSON response: {cleaned[:200]}")
        raise ValueError(f"Invalid JSON in response: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object in response")
    return data
