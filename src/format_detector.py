import logging
import re
from typing import NamedTuple, Optional

from cdm import MessageFormat

logger = logging.getLogger(__name__)

# Message-level markers that only occur in EDIFACT interchanges.
_EDIFACT_MARKERS = (
    re.compile(r"^UNA.{6}", re.DOTALL),
    re.compile(r"^UN[BH]\+"),
    re.compile(r"UN[BH]\+"),
    re.compile(r"['\r\n]\s*UN[TZ]\+"),
)
# A leading segment tag followed by the default element separator.
_LEADING_SEGMENT = re.compile(r"^[A-Z][A-Z0-9]{2}\+")
# Segments commonly seen in message bodies, anchored to a segment boundary.
_BODY_SEGMENTS = re.compile(r"(^|['\r\n])\s*(BGM|DTM|NAD|LOC|RFF|LIN|QTY|IDE|MOA)\+")


class Classification(NamedTuple):
    format: MessageFormat
    reason: str


def _looks_like_xml(message: str) -> bool:
    return message.startswith("<") and message.rstrip().endswith(">")


def _looks_like_edifact(message: str) -> Optional[str]:
    upper = message.upper()
    for marker in _EDIFACT_MARKERS:
        if marker.search(upper):
            return f"EDIFACT service segment matched '{marker.pattern}'"
    if _LEADING_SEGMENT.match(upper) and len(_BODY_SEGMENTS.findall(upper)) >= 2:
        return "EDIFACT body segments without envelope"
    return None


def classify(message: str, min_text_words: int = 3) -> Classification:
    """
    Classifies a raw message into EDIFACT, XML, TEXT or UNKNOWN.

    The decision depends only on the message text and ``min_text_words``, so the
    same input always yields the same classification.
    """
    trimmed = message.strip().lstrip("\ufeff")
    if not trimmed:
        return Classification(MessageFormat.UNKNOWN, "The message is empty or contains only whitespace.")

    reason = _looks_like_edifact(trimmed)
    if reason:
        logger.debug(f"Classified as EDIFACT: {reason}")
        return Classification(MessageFormat.EDIFACT, reason)

    if _looks_like_xml(trimmed):
        return Classification(MessageFormat.XML, "Message starts with a markup tag.")

    lines = [line for line in trimmed.splitlines() if line.strip()]
    words = trimmed.split()
    if len(lines) > 1 or len(words) >= min_text_words:
        return Classification(
            MessageFormat.TEXT,
            f"Free text with {len(lines)} line(s) and {len(words)} word(s).",
        )

    logger.debug(f"No recognizable structure in message of {len(trimmed)} characters.")
    return Classification(
        MessageFormat.UNKNOWN,
        f"No EDIFACT service segments, no markup and fewer than {min_text_words} words were found.",
    )
