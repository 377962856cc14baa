from typing import Optional


class AnalyzerError(Exception):
    """Base class for errors raised by the message analyzer."""


class ParseError(AnalyzerError):
    """The input cannot be tokenized under any known grammar.

    Fatal to the analysis call. ``position`` is the 0-based character offset
    where tokenization stopped, when known.
    """

    def __init__(self, message: str, position: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.position = position

    def __str__(self) -> str:
        if self.position is None:
            return self.message
        return f"{self.message} (at offset {self.position})"


class EmptyMessageError(AnalyzerError, ValueError):
    """Raised by the caller-level guard for empty or whitespace-only input."""


class ReferenceDataError(AnalyzerError):
    """The reference dictionary could not be loaded or is unavailable."""


class ResolutionDegraded(AnalyzerError):
    """Some resolution lookups failed; the analysis continues without them.

    Never propagated out of ``MessageAnalyzer.analyze``: it is logged so the
    degradation stays observable without changing the result shape.
    """

    def __init__(self, failed_lookups: int, reasons: Optional[list] = None):
        self.failed_lookups = failed_lookups
        self.reasons = reasons or []
        super().__init__(f"{failed_lookups} resolution lookup(s) failed: {'; '.join(self.reasons[:5])}")
