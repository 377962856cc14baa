import logging
from typing import List, Optional, Tuple

from cdm import Delimiters, EdiSegment, ParsedEdiMessage, SubElement
from edifact_tokenizer import RawSegment, split_escaped, tokenize, unescape

logger = logging.getLogger(__name__)

# Segment combinations used to guess the message type when UNH is missing.
# Checked in order; the first match wins.
_MESSAGE_TYPE_HEURISTICS: Tuple[Tuple[str, Tuple[str, ...], Tuple[str, ...]], ...] = (
    ("QUOTES", ("PRI", "IMD", "LIN"), ()),
    ("MSCONS", ("LIN", "QTY"), ("PRI",)),
    ("UTILMD", ("IDE",), ("MOA",)),
    ("INVOIC", ("MOA",), ()),
)


def decode_sub_elements(elements: Tuple[str, ...], delimiters: Delimiters) -> Tuple[SubElement, ...]:
    """Splits raw elements into decoded components, skipping empty ones."""
    sub_elements: List[SubElement] = []
    for element_index, raw in enumerate(elements, start=1):
        components = split_escaped(raw, delimiters.component, delimiters.release)
        for component_index, component in enumerate(components, start=1):
            value = unescape(component, delimiters.release)
            if value == "":
                continue
            sub_elements.append(
                SubElement(value=value, element_index=element_index, component_index=component_index)
            )
    return tuple(sub_elements)


class EdifactParser:
    def __init__(self, edi_string: str):
        # Tokenizing up front surfaces ParseError before any segment is built.
        tokenized = tokenize(edi_string)
        self.delimiters = tokenized.delimiters
        self.service_string_advice = tokenized.service_string_advice
        self.raw_segments: List[RawSegment] = tokenized.segments
        logger.debug(f"Parser initialized with {len(self.raw_segments)} segments.")

    def _build_segment(self, raw: RawSegment, position: int) -> EdiSegment:
        elements = tuple(raw.elements)
        return EdiSegment(
            tag=raw.tag,
            elements=elements,
            original=raw.text,
            sub_elements=decode_sub_elements(elements, self.delimiters),
            position=position,
        )

    def parse(self) -> ParsedEdiMessage:
        segments = tuple(self._build_segment(raw, i + 1) for i, raw in enumerate(self.raw_segments))
        logger.info(f"Parsed EDIFACT message with {len(segments)} segments: {' '.join(s.tag for s in segments[:12])}"
                    f"{' ...' if len(segments) > 12 else ''}")
        return ParsedEdiMessage(
            segments=segments,
            delimiters=self.delimiters,
            service_string_advice=self.service_string_advice,
        )


def parse_edifact(edi_string: str) -> ParsedEdiMessage:
    return EdifactParser(edi_string).parse()


def identify_message_type(message: ParsedEdiMessage) -> Optional[str]:
    """
    Determines the EDIFACT message type.

    Reads UNH element 2, component 1 (e.g. ``UNH+1+ORDERS:D:96A:UN``). Without a
    usable UNH the type is guessed from characteristic segment combinations;
    returns None when nothing matches.
    """
    unh = message.get_segment("UNH")
    if unh:
        message_type = unh.get_component(2, 1)
        if message_type:
            return message_type.strip().upper()

    tags = set(message.tags())
    for message_type, required, excluded in _MESSAGE_TYPE_HEURISTICS:
        if all(tag in tags for tag in required) and not any(tag in tags for tag in excluded):
            logger.debug(f"No UNH message type; guessed '{message_type}' from segments {sorted(required)}.")
            return message_type
    return None
