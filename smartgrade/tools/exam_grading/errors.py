"""Exceptions raised by the exam grading tool."""


class ExamGradingError(Exception):
    """Base class for grading failures."""


class InvalidRequest(ExamGradingError, ValueError):
    """A precondition failed before any model call was made."""


class SessionBusy(InvalidRequest):
    """A grading or refinement request is already in flight."""


class ProviderError(ExamGradingError):
    """The model provider failed (transport, auth, quota, outage, timeout)."""


class MalformedResult(ExamGradingError):
    """The model response does not satisfy the grading result schema."""
