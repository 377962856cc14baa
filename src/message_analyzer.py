import logging
from typing import List, Optional

from analyzer_config import AnalyzerSettings
from analyzer_errors import EmptyMessageError
from cdm import (
    AnalysisResult, MessageFormat, MessageInsights, ParsedEdiMessage,
    PlausibilityFinding, Severity,
)
from code_resolver import CodeResolver
from edifact_parser import identify_message_type, parse_edifact
from format_detector import Classification, classify
from message_insights import extract_insights
from partner_lookup import PartnerLookup
from plausibility import PlausibilityChecker
from reference_manager import ReferenceManager, snapshot_or_empty
from xml_parser import parse_xml

logger = logging.getLogger(__name__)


def require_message(message: Optional[str]) -> str:
    """Caller-level guard: rejects empty or whitespace-only input before analysis."""
    if message is None or not message.strip():
        raise EmptyMessageError("The message is empty; nothing to analyze.")
    return message


def build_summary(
    message: ParsedEdiMessage,
    message_type: Optional[str],
    insights: MessageInsights,
    findings: List[PlausibilityFinding],
) -> str:
    """Builds the deterministic synopsis of an analysed EDIFACT message."""
    unique_tags = list(dict.fromkeys(message.tags()))
    parts = [
        f"{message_type or 'Unidentified'} EDIFACT message with {len(message.segments)} segment(s)"
        f" ({', '.join(unique_tags)})."
    ]
    if insights.sender and insights.receiver:
        parts.append(f"Sent by {insights.sender} to {insights.receiver}.")
    elif insights.sender:
        parts.append(f"Sent by {insights.sender}.")
    if insights.purpose:
        parts.append(f"Purpose: {insights.purpose}.")
    if insights.business_process:
        parts.append(f"Business process: {insights.business_process}.")
    if insights.market_location:
        parts.append(f"Market location: {insights.market_location}.")
    if insights.metering_location:
        parts.append(f"Metering location: {insights.metering_location}.")
    if insights.measurements:
        parts.append(f"{len(insights.measurements)} measurement(s) reported.")

    errors = sum(1 for f in findings if f.severity == Severity.ERROR)
    warnings = len(findings) - errors
    if findings:
        parts.append(f"Plausibility checks raised {errors} error(s) and {warnings} warning(s).")
    else:
        parts.append("All plausibility checks passed.")
    return " ".join(parts)


class MessageAnalyzer:
    """
    Analyzes a raw EDI message: classification, decomposition, code resolution,
    plausibility checks and a summary.

    The reference source (anything with ``snapshot() -> ReferenceDictionary``)
    and the optional partner lookup are injected; the analyzer holds no state
    between calls, so repeated calls on the same input yield equal results.
    """

    def __init__(
        self,
        reference_source=None,
        partner_lookup: Optional[PartnerLookup] = None,
        settings: Optional[AnalyzerSettings] = None,
    ):
        self.settings = settings or AnalyzerSettings()
        self.reference_source = reference_source or ReferenceManager(self.settings.reference_path)
        self.partner_lookup = partner_lookup

    async def analyze(self, message: str) -> AnalysisResult:
        """
        Analyzes ``message`` and returns a fresh AnalysisResult.

        Raises ParseError when the input looks like EDIFACT or XML but cannot be
        tokenized. Reference data or partner lookup failures only degrade the
        resolution fields.
        """
        classification = classify(message, self.settings.min_text_words)
        logger.info(f"Message classified as {classification.format.value}: {classification.reason}")

        if classification.format == MessageFormat.UNKNOWN:
            return AnalysisResult(
                summary=f"The message format could not be determined. {classification.reason}",
                format=MessageFormat.UNKNOWN,
            )
        if classification.format == MessageFormat.TEXT:
            return self._analyze_text(classification)
        if classification.format == MessageFormat.XML:
            return self._analyze_xml(message)
        return await self._analyze_edifact(message)

    def _analyze_text(self, classification: Classification) -> AnalysisResult:
        return AnalysisResult(
            summary=f"Plain text message without EDIFACT or XML structure. {classification.reason}",
            format=MessageFormat.TEXT,
        )

    def _analyze_xml(self, message: str) -> AnalysisResult:
        parsed = parse_xml(message)
        root = parsed.segments[0].tag
        return AnalysisResult(
            summary=f"XML message with root element <{root}> and {len(parsed.segments)} element(s).",
            structured_data=parsed,
            format=MessageFormat.XML,
        )

    async def _analyze_edifact(self, message: str) -> AnalysisResult:
        parsed = parse_edifact(message)
        message_type = identify_message_type(parsed)
        dictionary = snapshot_or_empty(self.reference_source)

        resolver = CodeResolver(dictionary, self.partner_lookup, self.settings.max_concurrent_lookups)
        resolved = await resolver.resolve(parsed, message_type)

        findings = PlausibilityChecker(dictionary).check(resolved, message_type)
        insights = extract_insights(resolved, message_type)
        return AnalysisResult(
            summary=build_summary(resolved, message_type, insights, findings),
            plausibility_checks=tuple(finding.as_text() for finding in findings),
            structured_data=resolved,
            format=MessageFormat.EDIFACT,
            message_type=message_type,
            insights=insights,
        )
