"""Keyword and option matching against catalog entries."""

import json
from typing import Callable, Iterable, Optional, Sequence, TypeVar

from funnelbot.logging_config import get_logger

logger = get_logger("matcher")

C = TypeVar("C")

MIN_KEYWORD_LENGTH = 3


def normalize_text(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def plan_keywords(name: Optional[str]) -> list[str]:
    """Lowercase tokens of a plan name that are long enough to match."""
    return [token for token in normalize_text(name).split() if len(token) >= MIN_KEYWORD_LENGTH]


def parse_keyword_list(raw) -> list[str]:
    """Parse a stored JSON keyword list. Raises ValueError when malformed."""
    if isinstance(raw, (list, tuple)):
        items = raw
    else:
        try:
            items = json.loads(raw or "")
        except (TypeError, json.JSONDecodeError) as exc:
            raise ValueError(f"keywords are not valid JSON: {exc}") from exc
    if not isinstance(items, list):
        raise ValueError("keywords must be a JSON array")
    return [str(item).strip().lower() for item in items if str(item).strip()]


def match_by_keywords(
    text: Optional[str],
    candidates: Iterable[C],
    keywords_for: Callable[[C], Iterable[str]],
) -> Optional[C]:
    """Return the first candidate (catalog order) with any keyword inside the text."""
    normalized = normalize_text(text)
    if not normalized:
        return None

    for candidate in candidates:
        try:
            keywords = list(keywords_for(candidate))
        except ValueError as exc:
            logger.warning(
                "Skipping catalog row with malformed keywords",
                extra={"context": {"candidate_id": getattr(candidate, "id", None), "error": str(exc)}},
            )
            continue

        for keyword in keywords:
            keyword = keyword.lower()
            if len(keyword) >= MIN_KEYWORD_LENGTH and keyword in normalized:
                return candidate
    return None


def _parse_int(text: str) -> Optional[int]:
    try:
        return int(text)
    except ValueError:
        return None


def match_by_number_or_word(
    text: Optional[str],
    words: Sequence[str] = (),
    max_number: Optional[int] = None,
) -> Optional[int]:
    """Resolve a reply to a 1-based position.

    Numbers are accepted in 1..max_number (defaults to len(words)). Otherwise the
    text is compared to words case-insensitively: exact equality first, then
    containment in either direction.
    """
    normalized = normalize_text(text)
    if not normalized:
        return None

    upper = max_number if max_number is not None else len(words)
    number = _parse_int(normalized)
    if number is not None:
        return number if 1 <= number <= upper else None

    lowered = [normalize_text(word) for word in words]
    for position, word in enumerate(lowered, start=1):
        if word and word == normalized:
            return position
    for position, word in enumerate(lowered, start=1):
        if word and (normalized in word or word in normalized):
            return position
    return None


def contains_any(text: Optional[str], vocabulary: Iterable[str]) -> bool:
    normalized = normalize_text(text)
    return any(word in normalized for word in vocabulary)
