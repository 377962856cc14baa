import logging
import re
from typing import List, NamedTuple, Optional, Tuple

from analyzer_errors import ParseError
from cdm import Delimiters

logger = logging.getLogger(__name__)

SEGMENT_TAG_PATTERN = re.compile(r"^[A-Z][A-Z0-9]{2}$")
# Tags the tokenizer accepts; lowercase tags are left to the SEGMENT-TAG rule.
_TOKEN_TAG_PATTERN = re.compile(r"^[A-Z][A-Z0-9]{2}$", re.IGNORECASE)
UNA_LENGTH = 9  # "UNA" + six service characters


class RawSegment(NamedTuple):
    tag: str
    elements: List[str]
    text: str
    offset: int


class TokenizedMessage(NamedTuple):
    delimiters: Delimiters
    service_string_advice: Optional[str]
    segments: List[RawSegment]


def split_escaped(text: str, separator: str, release: str) -> List[str]:
    """Splits ``text`` on ``separator`` unless it is preceded by ``release``.

    Release characters are kept in the returned parts.
    """
    parts: List[str] = []
    current: List[str] = []
    i = 0
    while i < len(text):
        char = text[i]
        if char == release and i + 1 < len(text):
            current.append(char)
            current.append(text[i + 1])
            i += 2
            continue
        if char == separator:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
        i += 1
    parts.append("".join(current))
    return parts


def unescape(text: str, release: str) -> str:
    """Removes release characters, keeping the characters they escape."""
    if release not in text:
        return text
    result: List[str] = []
    i = 0
    while i < len(text):
        if text[i] == release and i + 1 < len(text):
            result.append(text[i + 1])
            i += 2
            continue
        result.append(text[i])
        i += 1
    return "".join(result)


def _contains_unescaped(text: str, char: str, release: str) -> bool:
    i = 0
    while i < len(text):
        if text[i] == release:
            i += 2
            continue
        if text[i] == char:
            return True
        i += 1
    return False


def _has_dangling_release(text: str, release: str) -> bool:
    i = 0
    while i < len(text):
        if text[i] == release:
            if i + 1 >= len(text):
                return True
            i += 2
            continue
        i += 1
    return False


def detect_delimiters(message: str) -> Tuple[Delimiters, Optional[str], str]:
    """
    Reads the service characters from a leading UNA segment.

    Returns the delimiters, the verbatim UNA segment (or None) and the rest of
    the message following it. Without UNA the ISO 9735 defaults apply.
    """
    clean = message.lstrip().lstrip("\ufeff")
    if clean[:3] != "UNA":
        return Delimiters(), None, clean

    if len(clean) < UNA_LENGTH:
        raise ParseError("Truncated UNA service string advice: six service characters expected.", position=0)

    component, element, decimal, release, reserved, segment = clean[3:UNA_LENGTH]
    separators = (component, element, release, segment)
    if len(set(separators)) != len(separators):
        raise ParseError(f"UNA declares ambiguous service characters '{clean[3:UNA_LENGTH]}'.", position=3)
    if any(char.isalnum() for char in separators):
        raise ParseError(f"UNA declares alphanumeric service characters '{clean[3:UNA_LENGTH]}'.", position=3)

    delimiters = Delimiters(
        component=component, element=element, decimal=decimal,
        release=release, reserved=reserved, segment=segment,
    )
    logger.debug(f"Delimiters detected from UNA: {delimiters}")
    return delimiters, clean[:UNA_LENGTH], clean[UNA_LENGTH:]


def _segment_terminator(body: str, delimiters: Delimiters, explicit: bool) -> str:
    """Falls back to line breaks when the default terminator never occurs."""
    if explicit or _contains_unescaped(body, delimiters.segment, delimiters.release):
        return delimiters.segment
    lines = [line for line in body.splitlines() if line.strip()]
    if len(lines) > 1:
        logger.debug("No segment terminator found; treating each line as a segment.")
        return "\n"
    return delimiters.segment


def tokenize(message: str) -> TokenizedMessage:
    """
    Splits an EDIFACT interchange into raw segments.

    Raises ParseError when the input cannot be tokenized: a truncated or
    ambiguous UNA, a dangling release character, or no well-formed segment.
    """
    delimiters, una, body = detect_delimiters(message)
    terminator = _segment_terminator(body, delimiters, explicit=una is not None)
    if terminator == "\n":
        body = body.replace("\r\n", "\n").replace("\r", "\n")
        delimiters = delimiters.model_copy(update={"segment": "\n"})

    if _has_dangling_release(body.rstrip("\r\n"), delimiters.release):
        raise ParseError("Message ends with a dangling release character.", position=len(message) - 1)

    base_offset = len(message) - len(body)
    segments: List[RawSegment] = []
    cursor = 0
    for chunk in split_escaped(body, terminator, delimiters.release):
        offset = base_offset + cursor
        cursor += len(chunk) + 1
        text = chunk.lstrip().rstrip("\r\n")
        if not text:
            continue
        parts = split_escaped(text, delimiters.element, delimiters.release)
        segments.append(RawSegment(tag=parts[0], elements=parts[1:], text=text, offset=offset))

    if not any(_TOKEN_TAG_PATTERN.match(segment.tag) for segment in segments):
        raise ParseError("No well-formed EDIFACT segment found.", position=base_offset)

    logger.debug(f"Tokenized {len(segments)} segments (terminator={terminator!r}).")
    return TokenizedMessage(delimiters=delimiters, service_string_advice=una, segments=segments)
