import logging
import re
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from cdm import EdiSegment, ParsedEdiMessage, PlausibilityFinding, Severity
from edifact_tokenizer import SEGMENT_TAG_PATTERN
from reference_models import MessageTypeProfile, ReferenceDictionary

logger = logging.getLogger(__name__)

SYNTAX_IDENTIFIER_PATTERN = re.compile(r"^UNO[A-Y]$")

# Format qualifier (data element 2379) -> strptime pattern and exact length.
_DATE_FORMATS = {
    "101": ("%y%m%d", 6),
    "102": ("%Y%m%d", 8),
    "203": ("%Y%m%d%H%M", 12),
    "204": ("%Y%m%d%H%M%S", 14),
    "602": ("%Y", 4),
    "610": ("%Y%m", 6),
}
_RANGE_FORMATS = {"718": "102", "719": "203"}
_TIME_ZONE_PATTERN = re.compile(r"^[+-]\d{2}$")


# --- Validation Helpers ---
def _matches_format(value: str, strptime_format: str, length: int) -> bool:
    if len(value) != length or not value.isdigit():
        return False
    try:
        datetime.strptime(value, strptime_format)
        return True
    except ValueError:
        return False


def validate_date_value(value: str, format_code: str) -> Optional[bool]:
    """Checks a DTM value against its format qualifier; None when the qualifier is unknown."""
    if format_code in _DATE_FORMATS:
        return _matches_format(value, *_DATE_FORMATS[format_code])
    if format_code in _RANGE_FORMATS:
        parts = value.split("-")
        part_format = _DATE_FORMATS[_RANGE_FORMATS[format_code]]
        return len(parts) == 2 and all(_matches_format(part, *part_format) for part in parts)
    if format_code == "303":
        return _matches_format(value[:12], "%Y%m%d%H%M", 12) and bool(_TIME_ZONE_PATTERN.match(value[12:]))
    if format_code == "616":
        return len(value) == 6 and value.isdigit() and 1 <= int(value[4:]) <= 53
    return None


def _valid_interchange_date(value: str) -> bool:
    if len(value) == 6:
        return _matches_format(value, "%y%m%d", 6)
    return _matches_format(value, "%Y%m%d", 8)


def _numeric_pattern(decimal_mark: str) -> re.Pattern:
    mark = re.escape(decimal_mark)
    return re.compile(rf"^-?(\d+({mark}\d*)?|{mark}\d+)$")


class PlausibilityChecker:
    """
    Runs the fixed rule battery over a decoded EDIFACT message.

    Rules run in a fixed order and every violation produces exactly one
    finding, so the output is stable for a given message and dictionary.
    """

    def __init__(self, dictionary: ReferenceDictionary):
        self.dictionary = dictionary
        self.rules: List[Tuple[str, Callable]] = [
            ("SEGMENT-TAG", self._check_segment_tags),
            ("INTERCHANGE-HEADER", self._check_interchange_header),
            ("INTERCHANGE-SYNTAX", self._check_interchange_syntax),
            ("INTERCHANGE-CONTROL", self._check_interchange_control),
            ("MESSAGE-ENVELOPE", self._check_message_envelope),
            ("MESSAGE-CONTROL", self._check_message_control),
            ("MESSAGE-BEGIN", self._check_message_begin),
            ("ELEMENT-COUNT", self._check_element_counts),
            ("EMPTY-SEGMENT", self._check_empty_segments),
            ("MESSAGE-PROFILE", self._check_message_profile),
            ("DATE-FORMAT", self._check_date_formats),
            ("NUMERIC-VALUE", self._check_numeric_values),
        ]

    def check(self, message: ParsedEdiMessage, message_type: Optional[str] = None) -> List[PlausibilityFinding]:
        findings: List[PlausibilityFinding] = []
        for rule_id, rule in self.rules:

            def add(severity: Severity, text: str, segment: Optional[EdiSegment] = None, rule_id: str = rule_id):
                findings.append(PlausibilityFinding(
                    rule_id=rule_id,
                    severity=severity,
                    message=text,
                    segment_position=segment.position if segment else None,
                ))

            before = len(findings)
            rule(message, message_type, add)
            logger.debug(f"Rule {rule_id}: {len(findings) - before} finding(s).")

        errors = sum(1 for f in findings if f.severity == Severity.ERROR)
        logger.info(f"Plausibility checks complete: {errors} error(s), {len(findings) - errors} warning(s).")
        return findings

    def _profile(self, message_type: Optional[str]) -> Optional[MessageTypeProfile]:
        return self.dictionary.message_types.get(message_type) if message_type else None

    # --- Rules ---
    def _check_segment_tags(self, message: ParsedEdiMessage, message_type, add) -> None:
        for segment in message.segments:
            if not SEGMENT_TAG_PATTERN.match(segment.tag):
                add(Severity.ERROR,
                    f"Segment {segment.position} has a malformed tag '{segment.tag}' "
                    f"(expected three uppercase letters or digits).", segment)

    def _check_interchange_header(self, message: ParsedEdiMessage, message_type, add) -> None:
        if not message.get_segment("UNB"):
            add(Severity.WARNING, "UNB interchange header is missing.")
        elif not message.get_segment("UNZ"):
            add(Severity.ERROR, "UNZ interchange trailer is missing although UNB is present.")

    def _check_interchange_syntax(self, message: ParsedEdiMessage, message_type, add) -> None:
        unb = message.get_segment("UNB")
        if not unb:
            return
        syntax_id = unb.get_component(1, 1)
        if not syntax_id or not SYNTAX_IDENTIFIER_PATTERN.match(syntax_id):
            add(Severity.ERROR, f"UNB syntax identifier '{syntax_id or ''}' is not one of UNOA to UNOY.", unb)

        date, time = unb.get_component(4, 1), unb.get_component(4, 2)
        if not date or not _valid_interchange_date(date):
            add(Severity.ERROR, f"UNB date of preparation '{date or ''}' is not a valid YYMMDD or CCYYMMDD date.", unb)
        if not time or not _matches_format(time, "%H%M", 4):
            add(Severity.ERROR, f"UNB time of preparation '{time or ''}' is not a valid HHMM time.", unb)

    def _check_interchange_control(self, message: ParsedEdiMessage, message_type, add) -> None:
        unb, unz = message.get_segment("UNB"), message.get_segment("UNZ")
        if not unb or not unz:
            return
        unb_reference, unz_reference = unb.get_component(5, 1), unz.get_component(2, 1)
        if unb_reference != unz_reference:
            add(Severity.ERROR,
                f"UNZ control reference '{unz_reference or ''}' does not match UNB control reference "
                f"'{unb_reference or ''}'.", unz)

        groups = message.get_segments("UNG")
        expected = len(groups) if groups else len(message.get_segments("UNH"))
        declared = unz.get_component(1, 1)
        if not declared or not declared.isdigit():
            add(Severity.ERROR, f"UNZ control count '{declared or ''}' is not numeric.", unz)
        elif int(declared) != expected:
            counted = "functional groups" if groups else "messages"
            add(Severity.ERROR, f"UNZ declares {declared} {counted} but the interchange contains {expected}.", unz)

    def _check_message_envelope(self, message: ParsedEdiMessage, message_type, add) -> None:
        headers, trailers = message.get_segments("UNH"), message.get_segments("UNT")
        if not headers:
            add(Severity.ERROR, "UNH message header is missing.")
        if not trailers:
            add(Severity.ERROR, "UNT message trailer is missing.")
        if headers and trailers and len(headers) != len(trailers):
            add(Severity.ERROR, f"Unbalanced message envelope: {len(headers)} UNH but {len(trailers)} UNT segment(s).")

    def _check_message_control(self, message: ParsedEdiMessage, message_type, add) -> None:
        open_header: Optional[Tuple[int, EdiSegment]] = None
        for index, segment in enumerate(message.segments):
            if segment.tag == "UNH":
                open_header = (index, segment)
            elif segment.tag == "UNT" and open_header:
                start, unh = open_header
                open_header = None
                reference = unh.get_component(1, 1) or ""
                actual = index - start + 1
                declared = segment.get_component(1, 1)
                if not declared or not declared.isdigit():
                    add(Severity.ERROR, f"UNT segment count '{declared or ''}' of message '{reference}' is not numeric.", segment)
                elif int(declared) != actual:
                    add(Severity.ERROR,
                        f"UNT declares {declared} segment(s) but message '{reference}' contains {actual} "
                        f"(UNH to UNT inclusive).", segment)
                trailer_reference = segment.get_component(2, 1) or ""
                if trailer_reference != reference:
                    add(Severity.ERROR,
                        f"UNT message reference '{trailer_reference}' does not match UNH reference '{reference}'.", segment)

    def _check_message_begin(self, message: ParsedEdiMessage, message_type, add) -> None:
        profile = self._profile(message_type)
        if profile and not profile.bgm_required:
            return
        segments = message.segments
        for index, segment in enumerate(segments):
            if segment.tag != "UNH":
                continue
            following = segments[index + 1].tag if index + 1 < len(segments) else None
            if following != "BGM":
                add(Severity.ERROR,
                    f"BGM must directly follow UNH in message '{segment.get_component(1, 1) or ''}'; "
                    f"found {following or 'end of message'}.", segment)

    def _check_element_counts(self, message: ParsedEdiMessage, message_type, add) -> None:
        for segment in message.segments:
            definition = self.dictionary.segment(segment.tag)
            if not definition:
                continue
            count = len(segment.elements)
            if definition.max_elements is not None and count > definition.max_elements:
                add(Severity.ERROR,
                    f"{segment.tag} segment {segment.position} has {count} data elements; "
                    f"at most {definition.max_elements} allowed.", segment)
            elif count < definition.min_elements:
                add(Severity.WARNING,
                    f"{segment.tag} segment {segment.position} has {count} data elements; "
                    f"at least {definition.min_elements} expected.", segment)

    def _check_empty_segments(self, message: ParsedEdiMessage, message_type, add) -> None:
        for segment in message.segments:
            if not any(element for element in segment.elements):
                add(Severity.WARNING, f"{segment.tag} segment {segment.position} carries no data elements.", segment)

    def _check_message_profile(self, message: ParsedEdiMessage, message_type, add) -> None:
        profile = self._profile(message_type)
        if not profile:
            return
        tags = set(message.tags())
        for required in profile.required_segments:
            if required not in tags:
                add(Severity.WARNING, f"{message_type} message should contain a {required} segment.")

    def _check_date_formats(self, message: ParsedEdiMessage, message_type, add) -> None:
        for segment in message.get_segments("DTM"):
            qualifier = segment.get_component(1, 1) or ""
            value = segment.get_component(1, 2)
            format_code = segment.get_component(1, 3)
            if not value:
                add(Severity.ERROR, f"DTM+{qualifier} (segment {segment.position}) has no date value.", segment)
                continue
            if not format_code:
                continue
            valid = validate_date_value(value, format_code)
            if valid is None:
                add(Severity.WARNING,
                    f"DTM+{qualifier} (segment {segment.position}) uses unknown format qualifier '{format_code}'.", segment)
            elif not valid:
                expected = self.dictionary.code_meaning("2379", format_code) or format_code
                add(Severity.ERROR,
                    f"DTM+{qualifier} value '{value}' does not match format {format_code} ({expected}).", segment)

    def _check_numeric_values(self, message: ParsedEdiMessage, message_type, add) -> None:
        decimal_mark = message.delimiters.decimal if message.delimiters else "."
        pattern = _numeric_pattern(decimal_mark)
        for segment in message.segments:
            if segment.tag not in ("QTY", "MOA"):
                continue
            qualifier = segment.get_component(1, 1) or ""
            value = segment.get_component(1, 2)
            if not value:
                add(Severity.ERROR, f"{segment.tag}+{qualifier} (segment {segment.position}) has no value.", segment)
            elif not pattern.match(value):
                add(Severity.ERROR,
                    f"{segment.tag}+{qualifier} value '{value}' is not numeric (decimal mark '{decimal_mark}').", segment)
