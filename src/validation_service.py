from typing import Any, Dict, List, Optional
import logging

from analyzer_errors import ParseError
from cdm import Severity
from edifact_parser import identify_message_type, parse_edifact
from plausibility import PlausibilityChecker
from reference_manager import ReferenceManager, snapshot_or_empty

logger = logging.getLogger(__name__)


class ValidationFinding:
    """Container for a single validation finding."""
    def __init__(self, level: str, code: str, message: str, location: Optional[dict] = None):
        self.level = level
        self.code = code
        self.message = message
        self.location = location or {}


class ValidationReport:
    """Outcome of validating one EDIFACT message: errors and warnings kept apart."""
    def __init__(self, findings: List[ValidationFinding], message_type: Optional[str] = None, segment_count: int = 0):
        self.findings = findings
        self.message_type = message_type
        self.segment_count = segment_count

    @property
    def errors(self) -> List[str]:
        return [f.message for f in self.findings if f.level == Severity.ERROR.value]

    @property
    def warnings(self) -> List[str]:
        return [f.message for f in self.findings if f.level == Severity.WARNING.value]

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        report: Dict[str, Any] = {
            "isValid": self.is_valid,
            "errors": self.errors,
            "warnings": self.warnings,
            "segmentCount": self.segment_count,
        }
        if self.message_type:
            report["messageType"] = self.message_type
        return report


class EdifactValidationService:
    """Service for structural validation of EDIFACT messages."""

    def __init__(self, reference_source=None):
        self.reference_source = reference_source or ReferenceManager()

    def validate_edifact_message(self, message: str) -> ValidationReport:
        """
        Validates an EDIFACT message against the plausibility rule battery.

        Args:
            message: The raw EDIFACT message

        Returns:
            ValidationReport; tokenization failures become error findings
            instead of exceptions.
        """
        try:
            if not message or not message.strip():
                return ValidationReport([ValidationFinding("error", "EMPTY_MESSAGE", "No valid EDIFACT segments found.")])

            parsed = parse_edifact(message)
            message_type = identify_message_type(parsed)
            logger.info(f"Starting EDIFACT validation: type={message_type}, segments={len(parsed.segments)}")

            checker = PlausibilityChecker(snapshot_or_empty(self.reference_source))
            findings = [
                ValidationFinding(
                    level=finding.severity.value,
                    code=finding.rule_id,
                    message=finding.message,
                    location={"segment_position": finding.segment_position} if finding.segment_position else None,
                )
                for finding in checker.check(parsed, message_type)
            ]
            report = ValidationReport(findings, message_type=message_type, segment_count=len(parsed.segments))
            logger.info(f"Validation completed: valid={report.is_valid}, errors={len(report.errors)}, warnings={len(report.warnings)}")
            return report

        except ParseError as e:
            logger.warning(f"EDIFACT message could not be tokenized: {e}")
            return ValidationReport([ValidationFinding(
                level="error",
                code="PARSE_ERROR",
                message=f"Message could not be tokenized: {e}",
                location={"offset": e.position} if e.position is not None else None,
            )])
        except Exception as e:
            logger.error(f"EDIFACT validation failed: {e}", exc_info=True)
            return ValidationReport([ValidationFinding(
                level="error",
                code="VALIDATION_ERROR",
                message=f"Validation failed: {str(e)}",
            )])

    def validate_edifact_structure(self, message: str) -> bool:
        """True when the message tokenizes and carries a UNH or UNB segment."""
        try:
            parsed = parse_edifact(message)
        except ParseError as e:
            logger.debug(f"Structure check failed: {e}")
            return False
        tags = set(parsed.tags())
        return "UNH" in tags or "UNB" in tags
