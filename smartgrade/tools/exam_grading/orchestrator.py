"""Grading and instruction-refinement round-trips plus the session state machine."""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Union

from smartgrade.libs.config_loader import ConfigType, get_config
from smartgrade.libs.media_encoder import EncodedImage
from .errors import ExamGradingError, InvalidRequest, MalformedResult, ProviderError, SessionBusy
from .instruction_ledger import InstructionLedger, combine_instructions
from .model_client import ModelClient, ModelReply, PydanticAIModelClient
from .models import GradingRequest, GradingResult, Language
from .request_composer import (
    Segment,
    compose_grading_request,
    compose_refinement_request,
    validate_request,
)
from .result_schema import check_consistency, parse_grading_result

LOG = logging.getLogger(__name__)


class GradingStatus(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"
    IMPROVING = "improving"


BUSY_STATUSES = (GradingStatus.PROCESSING, GradingStatus.IMPROVING)

StatusListener = Callable[[GradingStatus, GradingStatus], None]


@dataclass
class GradingSession:
    """Uploads, instructions, ledger, last result and status of one teacher session."""
    language: Language = Language.ENGLISH
    rubric_images: List[EncodedImage] = field(default_factory=list)
    exam_images: List[EncodedImage] = field(default_factory=list)
    instructions: str = ""
    ledger: InstructionLedger = field(default_factory=InstructionLedger)
    result: Optional[GradingResult] = None
    status: GradingStatus = GradingStatus.IDLE
    error_message: Optional[str] = None

    @property
    def busy(self) -> bool:
        return self.status in BUSY_STATUSES

    def _ensure_editable(self) -> None:
        if self.busy:
            raise SessionBusy(f"Cannot modify the session while it is {self.status.value}")

    def add_rubric_images(self, images: Iterable[EncodedImage]) -> None:
        self._ensure_editable()
        self.rubric_images.extend(images)

    def add_exam_images(self, images: Iterable[EncodedImage]) -> None:
        self._ensure_editable()
        self.exam_images.extend(images)

    def remove_rubric_image(self, index: int) -> EncodedImage:
        self._ensure_editable()
        return self.rubric_images.pop(index)

    def remove_exam_image(self, index: int) -> EncodedImage:
        self._ensure_editable()
        return self.exam_images.pop(index)

    def set_instructions(self, instructions: str) -> None:
        self._ensure_editable()
        self.instructions = instructions or ""

    def set_language(self, language: Union[Language, str]) -> None:
        self._ensure_editable()
        self.language = Language(language)

    def current_instructions(self) -> str:
        """Teacher instructions followed by every learned rule."""
        return combine_instructions(self.instructions, self.ledger.render())

    def build_request(self) -> GradingRequest:
        return GradingRequest(
            rubric_images=list(self.rubric_images),
            exam_images=list(self.exam_images),
            instructions=self.instructions,
            language=self.language,
        )


class GradingOrchestrator:
    """
    Drive grading and refinement requests against a multimodal model.

    ``grade`` and ``refine_instructions`` are the stateless protocols.
    ``run_grading``, ``improve_instructions`` and ``reset`` apply them to the
    owned ``GradingSession`` and move it through its states:

        idle/error/success --run_grading--> processing --> success | error
        success --improve_instructions--> improving --> idle (rule added) | success

    Only one request is in flight at a time; ``reset`` abandons it and its
    outcome is discarded when it eventually completes.
    """

    def __init__(self, client: ModelClient,
                 configs: Optional[ConfigType] = None,
                 session: Optional[GradingSession] = None,
                 on_status_change: Optional[StatusListener] = None):
        """
        Args:
            client: Model invocation interface
            configs: Configuration dictionary (grading.* keys are optional)
            session: Existing session to drive (a fresh one is created otherwise)
            on_status_change: Called with (old, new) on every status transition
        """
        configs = configs or {}
        self.client = client
        self.configs = configs
        self.temperature = get_config("grading.temperature", configs, default=0.2)
        self.timeout_seconds = get_config("grading.timeout_seconds", configs, default=180)
        self.max_rubric_pages = get_config("grading.max_rubric_pages", configs, default=5)
        self.max_exam_pages = get_config("grading.max_exam_pages", configs, default=10)
        self.strict_totals = bool(get_config("grading.strict_totals", configs, default=False))

        if session is None:
            language = Language(get_config("grading.default_language", configs, default="en"))
            session = GradingSession(language=language)
        self.session = session
        self.on_status_change = on_status_change

        self._inflight: Optional[asyncio.Future] = None
        self._generation = 0

    @classmethod
    def from_configs(cls, configs: ConfigType, model: Optional[str] = None,
                     **kwargs: Any) -> "GradingOrchestrator":
        """Create an orchestrator backed by the configured OpenAI model."""
        return cls(PydanticAIModelClient(configs, model=model), configs, **kwargs)

    # -- stateless protocols ---------------------------------------------

    async def _call_client(self, segments: List[Segment], **kwargs: Any) -> ModelReply:
        try:
            return await self.client.invoke(segments, **kwargs)
        except (ExamGradingError, TypeError, KeyError, AttributeError, ValueError):
            raise
        except Exception as e:  # pylint: disable=broad-except
            # Transport failures, including the provider's own timeouts, keep their message.
            LOG.error("Model request failed: %s", e)
            raise ProviderError(str(e)) from e

    async def _invoke(self, segments: List[Segment], **kwargs: Any) -> ModelReply:
        try:
            return await asyncio.wait_for(self._call_client(segments, **kwargs),
                                          timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            LOG.error("Model request timed out after %s seconds", self.timeout_seconds)
            raise ProviderError(f"Model request timed out after {self.timeout_seconds} seconds") from e

    async def grade(self, request: GradingRequest, ledger_text: str = "") -> GradingResult:
        """
        Grade one exam against its rubric.

        Args:
            request: Rubric and exam pages in upload order, teacher instructions, language
            ledger_text: Rendered instruction ledger appended to the instructions

        Returns:
            The validated GradingResult

        Raises:
            InvalidRequest: If either image group is empty (no model call is made)
            ProviderError: If the model call fails or times out
            MalformedResult: If the response does not satisfy the result schema
        """
        segments = compose_grading_request(request, ledger_text,
                                           self.max_rubric_pages, self.max_exam_pages)
        LOG.info("Grading %d exam page(s) against %d rubric page(s)",
                 len(request.exam_images), len(request.rubric_images))
        reply = await self._invoke(segments, response_schema=GradingResult,
                                   temperature=self.temperature)
        result = parse_grading_result(reply.text)

        warnings = check_consistency(result)
        for warning in warnings:
            LOG.warning("Inconsistent grading result: %s", warning)
        if warnings and self.strict_totals:
            raise MalformedResult("; ".join(warnings))
        return result

    async def refine_instructions(self, ledger_text: str, feedback: str,
                                  language: Language) -> str:
        """
        Turn teacher feedback into one new grading rule.

        Returns:
            The rule text, or "" when the model produced none

        Raises:
            InvalidRequest: If the feedback is empty (no model call is made)
            ProviderError: If the model call fails or times out
        """
        segments = compose_refinement_request(ledger_text, feedback, language)
        reply = await self._invoke(segments)
        rule = (reply.text or "").strip()
        if not rule:
            LOG.info("Refinement produced no rule")
        return rule

    # -- session state machine -------------------------------------------

    def _set_status(self, status: GradingStatus) -> None:
        old = self.session.status
        self.session.status = status
        LOG.info("Grading status %s -> %s", old.value, status.value)
        if self.on_status_change:
            self.on_status_change(old, status)

    def _ensure_not_busy(self) -> None:
        if self.session.busy:
            raise SessionBusy(f"A request is already in flight ({self.session.status.value})")

    def _is_stale(self, generation: int) -> bool:
        return generation != self._generation

    async def _track(self, coro: Awaitable[Any]) -> Any:
        task = asyncio.ensure_future(coro)
        self._inflight = task
        try:
            return await task
        finally:
            if self._inflight is task:
                self._inflight = None

    async def run_grading(self) -> Optional[GradingResult]:
        """
        Grade the session's uploads with its instructions and ledger.

        Returns:
            The new result, or None if the session was reset while grading

        Raises:
            SessionBusy: If another request is in flight
            InvalidRequest: If uploads are missing (state is left unchanged)
            ProviderError, MalformedResult: After moving the session to ``error``
        """
        self._ensure_not_busy()
        request = self.session.build_request()
        validate_request(request, self.max_rubric_pages, self.max_exam_pages)
        ledger_text = self.session.ledger.render()

        generation = self._generation
        self.session.error_message = None
        self._set_status(GradingStatus.PROCESSING)
        try:
            result = await self._track(self.grade(request, ledger_text))
        except asyncio.CancelledError:
            if self._is_stale(generation):
                LOG.info("Grading abandoned by session reset")
                return None
            self.session.error_message = "Grading was cancelled"
            self._set_status(GradingStatus.ERROR)
            raise
        except ExamGradingError as e:
            if self._is_stale(generation):
                LOG.info("Ignoring grading failure from a reset session: %s", e)
                return None
            self.session.error_message = str(e)
            self._set_status(GradingStatus.ERROR)
            raise

        if self._is_stale(generation):
            LOG.info("Discarding grading result from a reset session")
            return None
        self.session.result = result
        self._set_status(GradingStatus.SUCCESS)
        return result

    async def improve_instructions(self, feedback: str) -> str:
        """
        Learn a new rule from teacher feedback on the current result.

        On a new rule the ledger grows, the result is dropped and the session
        goes back to ``idle`` for regrading. An empty rule or a failed call
        returns the session to ``success`` with its result untouched.

        Returns:
            The appended rule, or "" if none was produced

        Raises:
            SessionBusy: If another request is in flight
            InvalidRequest: If there is no successful result or feedback is empty
            ProviderError: After returning the session to ``success``
        """
        self._ensure_not_busy()
        if self.session.status is not GradingStatus.SUCCESS or self.session.result is None:
            raise InvalidRequest("Instructions can only be improved after a successful grading")
        if not (feedback or "").strip():
            raise InvalidRequest("Feedback must not be empty")

        instructions = self.session.current_instructions()
        language = self.session.language

        generation = self._generation
        self._set_status(GradingStatus.IMPROVING)
        try:
            rule = await self._track(self.refine_instructions(instructions, feedback, language))
        except asyncio.CancelledError:
            if self._is_stale(generation):
                return ""
            self._set_status(GradingStatus.SUCCESS)
            raise
        except ExamGradingError as e:
            if self._is_stale(generation):
                return ""
            LOG.error("Failed to improve instructions: %s", e)
            self._set_status(GradingStatus.SUCCESS)
            raise

        if self._is_stale(generation):
            return ""
        if not rule:
            self._set_status(GradingStatus.SUCCESS)
            return ""

        self.session.ledger.append(rule)
        self.session.result = None
        self._set_status(GradingStatus.IDLE)
        return rule

    def update_total_score(self, new_score: float) -> GradingResult:
        """Apply a teacher's manual override of the total score."""
        result = self.session.result
        if self.session.status is not GradingStatus.SUCCESS or result is None:
            raise InvalidRequest("There is no graded result to update")
        if isinstance(new_score, bool) or not isinstance(new_score, (int, float)):
            raise InvalidRequest(f"Invalid total score: {new_score!r}")
        if math.isnan(new_score) or new_score < 0:
            raise InvalidRequest(f"Invalid total score: {new_score!r}")
        if new_score > result.max_score:
            LOG.warning("Total score %s exceeds max score %s", new_score, result.max_score)

        self.session.result = result.model_copy(update={"total_score": float(new_score)})
        return self.session.result

    def reset(self) -> None:
        """Clear uploads, instructions, ledger and result; abandon any in-flight request."""
        self._generation += 1
        if self._inflight is not None and not self._inflight.done():
            LOG.info("Cancelling in-flight request")
            self._inflight.cancel()
        self._inflight = None

        self.session.rubric_images = []
        self.session.exam_images = []
        self.session.instructions = ""
        self.session.ledger.clear()
        self.session.result = None
        self.session.error_message = None
        if self.session.status is not GradingStatus.IDLE:
            self._set_status(GradingStatus.IDLE)
