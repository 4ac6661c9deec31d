"""Exam grading tool: grade scanned exam pages against an answer key using a multimodal LLM."""

from .errors import ExamGradingError, InvalidRequest, MalformedResult, ProviderError, SessionBusy
from .instruction_ledger import InstructionLedger
from .models import GradingRequest, GradingResult, Language, QuestionResult
from .orchestrator import GradingOrchestrator, GradingSession, GradingStatus

__all__ = [
    'ExamGradingError',
    'InvalidRequest',
    'MalformedResult',
    'ProviderError',
    'SessionBusy',
    'InstructionLedger',
    'GradingRequest',
    'GradingResult',
    'Language',
    'QuestionResult',
    'GradingOrchestrator',
    'GradingSession',
    'GradingStatus',
]
