# Business-level extraction from decoded (and resolved) EDIFACT segments.
import logging
from typing import Dict, List, Optional, Tuple

from cdm import (
    EdiSegment, Measurement, MessageInsights, MonetaryAmount, ParsedEdiMessage,
    Party, Price, Reference, Timestamp,
)

logger = logging.getLogger(__name__)

SENDER_QUALIFIERS = ("MS", "SU")
RECEIVER_QUALIFIERS = ("MR", "BY")
LOCATION_QUALIFIER = "172"
METER_NUMBER_QUALIFIER = "MG"
PROCESS_REFERENCE_QUALIFIER = "Z13"

# Business process by BGM document code, per message type: (codes, default).
_BUSINESS_PROCESSES: Dict[str, Tuple[Dict[str, str], Optional[str]]] = {
    "UTILMD": ({
        "E02": "Deregistration/termination",
        "E03": "Master data change",
        "E05": "Master data change",
        "E35": "Master data request",
    }, "UTILMD master data process"),
    "MSCONS": ({
        "7": "Master data meter values",
    }, "Meter reading series"),
    "INVOIC": ({
        "380": "Invoice",
        "381": "Credit note",
        "457": "Credit note",
        "383": "Debit note",
    }, "Invoice document"),
    "ORDERS": ({
        "220": "Order",
        "221": "Order change",
        "222": "Order cancellation",
    }, "Ordering process"),
    "QUOTES": ({
        "310": "Price offer",
        "Z29": "Price request",
    }, "Price request/offer"),
    "APERAK": ({
        "312": "Positive acknowledgement",
        "313": "Negative acknowledgement (rejection)",
    }, "Acknowledgement"),
    "CONTRL": ({
        "312": "Positive acknowledgement",
        "313": "Negative acknowledgement (rejection)",
    }, "Acknowledgement"),
}
_REMITTANCE_PROCESSES = {"380": "Payment advice - invoice", "381": "Payment advice - credit note",
                         "457": "Payment advice - credit note"}
# MSCONS E01 with more readings than this is a scheduled (periodic) reading.
_PERIODIC_READING_THRESHOLD = 4


def _resolved_name(segment: EdiSegment, element_index: int, component_index: int = 1) -> Optional[str]:
    for sub in segment.sub_elements or ():
        if sub.element_index == element_index and sub.component_index == component_index:
            return sub.resolved_name
    return None


def extract_parties(message: ParsedEdiMessage) -> List[Party]:
    parties = []
    for nad in message.get_segments("NAD"):
        qualifier = nad.get_component(1, 1)
        if not qualifier:
            continue
        code = nad.get_component(2, 1)
        name = _resolved_name(nad, 2, 1) if code else None
        parties.append(Party(qualifier=qualifier, code=code, name=name or code))
    return parties


def _first_party(parties: List[Party], qualifiers: Tuple[str, ...]) -> Optional[str]:
    for qualifier in qualifiers:
        party = next((p for p in parties if p.qualifier == qualifier), None)
        if party:
            return party.name
    return None


def classify_location(location_id: str) -> str:
    """Returns 'metering' or 'market' for a LOC+172 identifier.

    Metering location ids start with the country code and are 18 to 29
    characters long; anything else is treated as a market location.
    """
    if location_id.startswith("DE") and 18 <= len(location_id) < 30:
        return "metering"
    return "market"


def extract_locations(message: ParsedEdiMessage) -> Tuple[Optional[str], Optional[str]]:
    market, metering = None, None
    for loc in message.get_segments("LOC"):
        if loc.get_component(1, 1) != LOCATION_QUALIFIER:
            continue
        location_id = loc.get_component(2, 1)
        if not location_id:
            continue
        if classify_location(location_id) == "metering":
            metering = metering or location_id
        else:
            market = market or location_id
    return market, metering


def extract_references(message: ParsedEdiMessage) -> List[Reference]:
    references = []
    for rff in message.get_segments("RFF"):
        qualifier = rff.get_component(1, 1)
        if not qualifier:
            continue
        references.append(Reference(
            qualifier=qualifier,
            value=rff.get_component(1, 2),
            description=_resolved_name(rff, 1, 2) or _resolved_name(rff, 1, 1),
        ))
    return references


def extract_timestamps(message: ParsedEdiMessage) -> List[Timestamp]:
    timestamps = []
    for dtm in message.get_segments("DTM"):
        qualifier = dtm.get_component(1, 1)
        if not qualifier:
            continue
        timestamps.append(Timestamp(
            qualifier=qualifier,
            value=dtm.get_component(1, 2),
            format=dtm.get_component(1, 3),
            description=_resolved_name(dtm, 1, 1),
        ))
    return timestamps


def extract_measurements(message: ParsedEdiMessage) -> List[Measurement]:
    """Pairs each QTY inside a LIN group with the DTM that follows it."""
    measurements = []
    in_line_item = False
    pending: Optional[EdiSegment] = None

    def flush(timestamp_segment: Optional[EdiSegment] = None) -> None:
        nonlocal pending
        if pending is None:
            return
        measurements.append(Measurement(
            qualifier=pending.get_component(1, 1) or "",
            value=pending.get_component(1, 2),
            unit=pending.get_component(1, 3),
            timestamp=timestamp_segment.get_component(1, 2) if timestamp_segment else None,
            timestamp_qualifier=timestamp_segment.get_component(1, 1) if timestamp_segment else None,
        ))
        pending = None

    for segment in message.segments:
        if segment.tag == "LIN":
            flush()
            in_line_item = True
        elif segment.tag in ("UNS", "UNT") and in_line_item:
            flush()
            in_line_item = False
        elif in_line_item and segment.tag == "QTY":
            flush()
            pending = segment
        elif in_line_item and segment.tag == "DTM" and pending is not None:
            flush(segment)
    flush()
    return measurements


def extract_monetary_amounts(message: ParsedEdiMessage) -> List[MonetaryAmount]:
    return [
        MonetaryAmount(
            qualifier=moa.get_component(1, 1) or "",
            amount=moa.get_component(1, 2),
            currency=moa.get_component(1, 3),
        )
        for moa in message.get_segments("MOA")
    ]


def extract_prices(message: ParsedEdiMessage) -> List[Price]:
    return [
        Price(
            qualifier=pri.get_component(1, 1) or "",
            price=pri.get_component(1, 2),
            unit=pri.get_component(1, 6) or pri.get_component(1, 3),
        )
        for pri in message.get_segments("PRI")
    ]


def detect_business_process(message: ParsedEdiMessage, message_type: Optional[str]) -> Optional[str]:
    """
    Names the business process a message belongs to.

    A process reference (RFF+Z13) resolved against the process identifier list
    wins; otherwise the BGM document code decides, per message type.
    """
    for rff in message.get_segments("RFF"):
        if rff.get_component(1, 1) == PROCESS_REFERENCE_QUALIFIER:
            pid = rff.get_component(1, 2)
            meaning = _resolved_name(rff, 1, 2)
            if pid and meaning:
                return f"{meaning} (PID {pid})"

    bgm = message.get_segment("BGM")
    bgm_code = bgm.get_component(1, 1) if bgm else None

    if message_type == "REMADV":
        doc = message.get_segment("DOC")
        doc_code = doc.get_component(1, 1) if doc else None
        return _REMITTANCE_PROCESSES.get(doc_code or "", "Payment advice")

    if message_type == "MSCONS" and bgm_code == "E01":
        if len(message.get_segments("QTY")) > _PERIODIC_READING_THRESHOLD:
            return "Periodic meter reading"
        return "Interim meter reading"

    if message_type not in _BUSINESS_PROCESSES:
        return None
    codes, default = _BUSINESS_PROCESSES[message_type]
    return codes.get(bgm_code or "", default)


def extract_interchange_reference(message: ParsedEdiMessage) -> Optional[str]:
    """Interchange control reference from UNB, or from UNZ when the header is missing."""
    unb = message.get_segment("UNB")
    if unb and unb.get_component(5, 1):
        return unb.get_component(5, 1)
    unz = message.get_segment("UNZ")
    return unz.get_component(2, 1) if unz else None


def extract_insights(message: ParsedEdiMessage, message_type: Optional[str]) -> MessageInsights:
    parties = extract_parties(message)
    market_location, metering_location = extract_locations(message)
    references = extract_references(message)
    meter_number = next((r.value for r in references if r.qualifier == METER_NUMBER_QUALIFIER), None)

    purpose, message_function = None, None
    bgm = message.get_segment("BGM")
    if bgm:
        document_code = bgm.get_component(1, 1)
        if document_code:
            purpose = _resolved_name(bgm, 1, 1) or f"Document code {document_code}"
        function_code = bgm.get_component(3, 1)
        if function_code:
            message_function = _resolved_name(bgm, 3, 1) or function_code

    insights = MessageInsights(
        message_type=message_type,
        interchange_reference=extract_interchange_reference(message),
        sender=_first_party(parties, SENDER_QUALIFIERS),
        receiver=_first_party(parties, RECEIVER_QUALIFIERS),
        market_location=market_location,
        metering_location=metering_location,
        meter_number=meter_number,
        message_function=message_function,
        purpose=purpose,
        business_process=detect_business_process(message, message_type),
        parties=tuple(parties),
        references=tuple(references),
        timestamps=tuple(extract_timestamps(message)),
        measurements=tuple(extract_measurements(message)) if message_type == "MSCONS" else (),
        monetary_amounts=tuple(extract_monetary_amounts(message)) if message_type in ("INVOIC", "REMADV") else (),
        prices=tuple(extract_prices(message)) if message_type == "QUOTES" else (),
    )
    logger.debug(f"Insights: sender={insights.sender}, receiver={insights.receiver}, process={insights.business_process}")
    return insights
