import logging
import xml.etree.ElementTree as ET
from typing import List

from analyzer_errors import ParseError
from cdm import EdiSegment, ParsedEdiMessage, SubElement

logger = logging.getLogger(__name__)


def _local_name(tag: str) -> str:
    """Strips the ``{namespace}`` prefix ElementTree puts on qualified tags."""
    return tag.rsplit("}", 1)[-1] if tag.startswith("{") else tag


def _start_tag(element: ET.Element) -> str:
    attributes = "".join(f' {_local_name(k)}="{v}"' for k, v in element.attrib.items())
    return f"<{_local_name(element.tag)}{attributes}>"


def _to_segment(element: ET.Element, path: str, position: int) -> EdiSegment:
    text = (element.text or "").strip()
    values: List[str] = [f"{_local_name(k)}={v}" for k, v in element.attrib.items()]
    if text:
        values.append(text)
    sub_elements = tuple(
        SubElement(value=value, element_index=i, component_index=1)
        for i, value in enumerate(values, start=1)
    )
    return EdiSegment(
        tag=_local_name(element.tag),
        elements=tuple(values),
        original=_start_tag(element) + text,
        description=path,
        sub_elements=sub_elements,
        position=position,
    )


def parse_xml(message: str) -> ParsedEdiMessage:
    """
    Decomposes an XML message into one segment per element, in document order.

    Each segment carries the element's attributes (``name=value``) followed by
    its text as elements; ``description`` holds the element path.
    Raises ParseError for malformed XML.
    """
    try:
        root = ET.fromstring(message.strip().lstrip("\ufeff"))
    except ET.ParseError as e:
        line, column = e.position
        raise ParseError(f"Malformed XML at line {line}, column {column}: {e}") from e

    segments: List[EdiSegment] = []

    def walk(element: ET.Element, parent_path: str) -> None:
        path = f"{parent_path}/{_local_name(element.tag)}"
        segments.append(_to_segment(element, path, len(segments) + 1))
        for child in element:
            walk(child, path)

    walk(root, "")
    logger.info(f"Parsed XML message with {len(segments)} elements (root '{_local_name(root.tag)}').")
    return ParsedEdiMessage(segments=tuple(segments))
