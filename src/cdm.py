# Canonical Data Model (CDM) for an analysed message.
# Every model is frozen: results are created fresh per analysis call and are
# owned by the caller once returned.
from enum import Enum
from typing import Annotated, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

# Position key of a resolved code: segment tag, element index (two digits or
# more) and an optional component index, e.g. "NAD01", "RFF01.2" or "FTX100".
CodeKey = Annotated[str, StringConstraints(pattern=r"^[A-Z0-9]{3}\d{2,}(\.\d+)?$")]
ResolvedCodes = Dict[CodeKey, str]


def code_key(tag: str, element_index: int, component_index: Optional[int] = None) -> str:
    """Builds the position key used in ``EdiSegment.resolved_codes``."""
    key = f"{tag}{element_index:02d}"
    if component_index is not None:
        key += f".{component_index}"
    return key


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class MessageFormat(str, Enum):
    EDIFACT = "EDIFACT"
    XML = "XML"
    TEXT = "TEXT"
    UNKNOWN = "UNKNOWN"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class Delimiters(_FrozenModel):
    """Service characters of an EDIFACT interchange (ISO 9735 defaults)."""
    component: str = ":"
    element: str = "+"
    decimal: str = "."
    release: str = "?"
    reserved: str = " "
    segment: str = "'"

    def separators(self) -> Tuple[str, str, str]:
        return self.component, self.element, self.segment


class SubElement(_FrozenModel):
    """A decoded component of a segment element."""
    value: str
    description: Optional[str] = None
    resolved_name: Optional[str] = Field(default=None, alias="resolvedName")
    element_index: int = Field(alias="elementIndex")
    component_index: int = Field(alias="componentIndex")


class EdiSegment(_FrozenModel):
    """Represents a single decoded segment.

    ``elements`` holds the raw element strings exactly as they appear between
    element separators (release characters kept), so joining them back behind
    the tag reproduces ``original``. Decoded values live in ``sub_elements``.
    """
    tag: str
    elements: Tuple[str, ...] = ()
    original: str
    description: Optional[str] = None
    sub_elements: Optional[Tuple[SubElement, ...]] = Field(default=None, alias="subElements")
    resolved_codes: Optional[ResolvedCodes] = Field(default=None, alias="resolvedCodes")
    position: int = 0

    def get_element(self, index: int) -> Optional[str]:
        """Retrieves a raw element by its position (1-based index)."""
        if 1 <= index <= len(self.elements):
            return self.elements[index - 1]
        return None

    def get_component(self, element_index: int, component_index: int = 1) -> Optional[str]:
        """Retrieves a decoded component value (both indexes 1-based)."""
        for sub in self.sub_elements or ():
            if sub.element_index == element_index and sub.component_index == component_index:
                return sub.value
        return None

    def get_components(self, element_index: int) -> List[str]:
        return [sub.value for sub in self.sub_elements or () if sub.element_index == element_index]


class ParsedEdiMessage(_FrozenModel):
    segments: Tuple[EdiSegment, ...] = ()
    delimiters: Optional[Delimiters] = None
    service_string_advice: Optional[str] = Field(default=None, alias="serviceStringAdvice")

    def get_segment(self, tag: str) -> Optional[EdiSegment]:
        return next((segment for segment in self.segments if segment.tag == tag), None)

    def get_segments(self, tag: str) -> List[EdiSegment]:
        return [segment for segment in self.segments if segment.tag == tag]

    def tags(self) -> List[str]:
        return [segment.tag for segment in self.segments]


class PlausibilityFinding(_FrozenModel):
    """One violation raised by a plausibility rule."""
    rule_id: str
    severity: Severity
    message: str
    segment_position: Optional[int] = None

    def as_text(self) -> str:
        return f"{self.rule_id}: {self.message}"


class Party(_FrozenModel):
    qualifier: str
    code: Optional[str] = None
    name: Optional[str] = None


class Reference(_FrozenModel):
    qualifier: str
    value: Optional[str] = None
    description: Optional[str] = None


class Timestamp(_FrozenModel):
    qualifier: str
    value: Optional[str] = None
    format: Optional[str] = None
    description: Optional[str] = None


class Measurement(_FrozenModel):
    qualifier: str
    value: Optional[str] = None
    unit: Optional[str] = None
    timestamp: Optional[str] = None
    timestamp_qualifier: Optional[str] = None


class MonetaryAmount(_FrozenModel):
    qualifier: str
    amount: Optional[str] = None
    currency: Optional[str] = None


class Price(_FrozenModel):
    qualifier: str
    price: Optional[str] = None
    unit: Optional[str] = None


class MessageInsights(_FrozenModel):
    """Business-level view extracted from the decoded segments."""
    message_type: Optional[str] = None
    interchange_reference: Optional[str] = None
    sender: Optional[str] = None
    receiver: Optional[str] = None
    market_location: Optional[str] = None
    metering_location: Optional[str] = None
    meter_number: Optional[str] = None
    message_function: Optional[str] = None
    purpose: Optional[str] = None
    business_process: Optional[str] = None
    parties: Tuple[Party, ...] = ()
    references: Tuple[Reference, ...] = ()
    timestamps: Tuple[Timestamp, ...] = ()
    measurements: Tuple[Measurement, ...] = ()
    monetary_amounts: Tuple[MonetaryAmount, ...] = ()
    prices: Tuple[Price, ...] = ()


class AnalysisResult(_FrozenModel):
    summary: str
    plausibility_checks: Tuple[str, ...] = Field(default=(), alias="plausibilityChecks")
    structured_data: ParsedEdiMessage = Field(default_factory=ParsedEdiMessage, alias="structuredData")
    format: MessageFormat
    message_type: Optional[str] = Field(default=None, alias="messageType")
    insights: Optional[MessageInsights] = None

    def to_json(self, indent: Optional[int] = 2) -> str:
        return self.model_dump_json(indent=indent, by_alias=True, exclude_none=True)
