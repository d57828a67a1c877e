# ================================================================
# Prompt Optimiser - Session Phase State Machine
# Antagon Inc. | CAGE: 17E75 | UEI: KBSGT7CZ4AH3
# ================================================================

"""
One user's walk through the optimiser workflow.

Phases run ``input -> critique -> result``; ``reset()`` returns to
``input`` from anywhere. Editing the input once past the ``input`` phase
schedules a debounced invalidation that discards the critique, the
answers and the result.

Remote work (critique, generate, regenerate) goes through an
``AnalyseBackend``. Every backend failure is handled the same way: the
error message is stored, ``retry_count`` goes up and the phase stays put.
Responses that land after the session was invalidated, reset or closed
are dropped.

Example:
    >>> session = Session(OrchestratorBackend(orchestrator))
    >>> session.select_entry_mode("idea")
    >>> await session.submit_critique("A weekly team newsletter")
    >>> session.answer_question("q1", "Engineering managers")
    >>> await session.submit_generate()
    >>> await session.switch_model("gemini", "Flash")
    >>> session.copy_prompt()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator, Mapping
from contextlib import contextmanager
from enum import Enum
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from prompt_optimiser.backends import AnalyseBackend, BackendError
from prompt_optimiser.config import OptimiserConfig
from prompt_optimiser.errors import ExtractionError, ValidationError
from prompt_optimiser.guidance import GUIDANCE, default_model
from prompt_optimiser.orchestrator import AnalyseRequest
from prompt_optimiser.prompts import Mode

logger = logging.getLogger(__name__)

DEFAULT_VENDOR = "claude"
DEFAULT_MODEL = "Sonnet 4.5"
ENTRY_MODES = ("idea", "prompt")
SUGGESTIONS_HEADER = "Please also implement these suggested improvements:"

T = TypeVar("T", bound=BaseModel)


class Phase(str, Enum):
    """Workflow phases."""

    INPUT = "input"
    CRITIQUE = "critique"
    RESULT = "result"


# ================================================================
# Records
# ================================================================


class Question(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    id: str
    question: str = ""
    why: str = ""
    category: str = ""


class Critique(BaseModel):
    """Parsed critique. Only question ids are checked."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    overall_assessment: str = Field(default="", alias="overallAssessment")
    questions: list[Question] = Field(default_factory=list)
    concerns: list[Any] = Field(default_factory=list)

    @field_validator("questions")
    @classmethod
    def unique_ids(cls, questions: list[Question]) -> list[Question]:
        seen: set[str] = set()
        for question in questions:
            if question.id in seen:
                raise ValueError(f"duplicate question id {question.id!r}")
            seen.add(question.id)
        return questions


class GenerationResult(BaseModel):
    """Parsed generation output."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    generated_prompt: str = Field(default="", alias="generatedPrompt")
    assumptions: list[Any] = Field(default_factory=list)
    structure: list[Any] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    summary: str = ""


# ================================================================
# Errors
# ================================================================


class SessionError(Exception):
    """Base class for session state errors."""


class InvalidTransitionError(SessionError):
    """Operation not allowed in the current phase."""


class SessionBusyError(SessionError):
    """A remote call is already in flight."""


class SessionClosedError(SessionError):
    """The session was closed."""


def build_additional_context(
    critique: Critique | None,
    answers: Mapping[str, str],
    suggestions: list[str] | None = None,
) -> str:
    """Turn answered questions (and optional suggestions) into prompt context.

    Only answers that are non-empty after trimming count, in the critique's
    question order. Answers whose id is not a current question are ignored.

    Args:
        critique: Current critique, or None.
        answers: Answer text keyed by question id.
        suggestions: Suggestions to append as an instruction block.

    Returns:
        Context text; empty when nothing was answered or suggested.
    """
    parts = []
    if critique is not None:
        for question in critique.questions:
            answer = answers.get(question.id, "")
            if answer.strip():
                parts.append(f"Q: {question.question}\nA: {answer}")

    if suggestions:
        numbered = "\n".join(f"{i}. {s}" for i, s in enumerate(suggestions, start=1))
        parts.append(f"{SUGGESTIONS_HEADER}\n{numbered}")

    return "\n\n".join(parts)


class Session:
    """Phase state machine for one user session.

    Args:
        backend: Where critique and generate calls go.
        config: Debounce, retry and input-length settings.
        loop: Event loop for the debounce timer. Defaults to the running loop.

    Attributes:
        phase: Current ``Phase``.
        entry_mode: ``"idea"``, ``"prompt"`` or None while unset.
        input_text: Raw idea or existing prompt.
        problem_context: What is not working; sent only in prompt mode.
        critique: Parsed critique once past the input phase.
        answers: Answer text keyed by question id.
        result: Parsed generation result in the result phase.
        selected_vendor: Vendor key for generation.
        selected_model: Model variant for generation.
        retry_count: Consecutive failures of the last attempted operation.
        error: Last user-facing error message, or "".
        is_loading: A critique or generate call is in flight.
        is_regenerating: A regeneration is in flight.
    """

    def __init__(
        self,
        backend: AnalyseBackend,
        config: OptimiserConfig | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self.backend = backend
        self.config = config or OptimiserConfig()
        self._loop = loop
        self._invalidate_handle: Optional[asyncio.TimerHandle] = None
        self._closed = False
        # Bumped on every invalidation; in-flight calls compare against it.
        self._epoch = 0
        self._clear(keep_input=False)

    def _clear(self, keep_input: bool) -> None:
        self.phase = Phase.INPUT
        self.entry_mode: Optional[str] = None
        if not keep_input:
            self.input_text = ""
        self.problem_context = ""
        self.critique: Optional[Critique] = None
        self.answers: dict[str, str] = {}
        self.result: Optional[GenerationResult] = None
        self.selected_vendor = DEFAULT_VENDOR
        self.selected_model = DEFAULT_MODEL
        self.retry_count = 0
        self.error = ""
        self.is_loading = False
        self.is_regenerating = False
        self._last_failed: Optional[Callable[[], Awaitable[bool]]] = None

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def busy(self) -> bool:
        return self.is_loading or self.is_regenerating

    @property
    def can_retry(self) -> bool:
        """Whether the retry affordance is offered."""
        return (
            self._last_failed is not None
            and 1 <= self.retry_count < self.config.retry_threshold
        )

    @property
    def total_questions(self) -> int:
        return len(self.critique.questions) if self.critique else 0

    @property
    def answered_count(self) -> int:
        if self.critique is None:
            return 0
        return sum(
            1 for q in self.critique.questions if self.answers.get(q.id, "").strip()
        )

    @property
    def invalidation_pending(self) -> bool:
        return self._invalidate_handle is not None

    # ------------------------------------------------------------------
    # Input phase
    # ------------------------------------------------------------------

    def select_entry_mode(self, mode: str) -> None:
        """Choose between refining an idea and improving an existing prompt."""
        self._ensure_open()
        self._require_phase(Phase.INPUT, "choose an entry mode")
        if mode not in ENTRY_MODES:
            raise ValueError(f"Unknown entry mode: {mode}")
        self.entry_mode = mode

    def clear_entry_mode(self) -> None:
        self._ensure_open()
        self._require_phase(Phase.INPUT, "clear the entry mode")
        self.entry_mode = None

    def set_problem_context(self, text: str) -> None:
        self._ensure_open()
        self._require_phase(Phase.INPUT, "set the problem context")
        self.problem_context = text

    def edit_input(self, new_text: str) -> None:
        """Replace the input text.

        Outside the input phase this (re)starts the debounce timer; when it
        fires the critique, answers and result are discarded.

        Raises:
            RuntimeError: No event loop was given and none is running.
        """
        self._ensure_open()
        self.input_text = new_text
        if self.phase is Phase.INPUT:
            return

        self.cancel_pending_invalidation()
        loop = self._loop or asyncio.get_running_loop()
        self._invalidate_handle = loop.call_later(
            self.config.debounce_seconds, self._invalidate
        )

    def cancel_pending_invalidation(self) -> None:
        if self._invalidate_handle is not None:
            self._invalidate_handle.cancel()
            self._invalidate_handle = None

    def _invalidate(self) -> None:
        self._invalidate_handle = None
        if self._closed or self.phase is Phase.INPUT:
            return
        logger.info(f"Input edited in {self.phase.value} phase, returning to input")
        self._epoch += 1
        self.phase = Phase.INPUT
        self.critique = None
        self.answers = {}
        self.result = None
        self.retry_count = 0
        self.error = ""
        self.is_loading = False
        self.is_regenerating = False
        self._last_failed = None

    async def submit_critique(
        self,
        input_text: str | None = None,
        entry_mode: str | None = None,
        problem_context: str | None = None,
    ) -> bool:
        """Ask for a critique of the input.

        Arguments, when given, replace the session fields first.

        Returns:
            True on success, False when the backend call failed.

        Raises:
            ValidationError: Trimmed input shorter than the minimum. Nothing
                is changed.
            InvalidTransitionError: Not in the input phase.
            SessionBusyError: Another call is in flight.
        """
        self._ensure_open()
        self._require_phase(Phase.INPUT, "submit a critique")
        self._ensure_idle()

        text = self.input_text if input_text is None else input_text
        if len(text.strip()) < self.config.min_input_chars:
            raise ValidationError()
        if entry_mode is not None and entry_mode not in ENTRY_MODES:
            raise ValueError(f"Unknown entry mode: {entry_mode}")

        self.input_text = text
        if entry_mode is not None:
            self.entry_mode = entry_mode
        if problem_context is not None:
            self.problem_context = problem_context
        if self.entry_mode is None:
            self.entry_mode = "idea"

        request = self._request(
            Mode.CRITIQUE, self.selected_vendor, self.selected_model, ""
        )
        with self._gate("is_loading"):
            critique = await self._attempt(request, Critique, self.submit_critique)

        if critique is None:
            return False

        self.critique = critique
        self.answers = {}
        self.phase = Phase.CRITIQUE
        logger.info(f"Critique ready: {len(critique.questions)} questions")
        return True

    # ------------------------------------------------------------------
    # Critique phase
    # ------------------------------------------------------------------

    def answer_question(self, question_id: str, text: str) -> None:
        """Record an answer to one of the critique's questions.

        Raises:
            ValueError: Not a question of the current critique.
        """
        self._ensure_open()
        self._require_phase(Phase.CRITIQUE, "answer questions")
        if question_id not in {q.id for q in self.critique.questions}:
            raise ValueError(f"Unknown question id: {question_id}")
        self.answers[question_id] = text

    async def submit_generate(self) -> bool:
        """Generate the final prompt from the input and answered questions.

        Returns:
            True on success, False when the backend call failed.
        """
        self._ensure_open()
        self._require_phase(Phase.CRITIQUE, "generate a prompt")
        self._ensure_idle()

        context = build_additional_context(self.critique, self.answers)
        request = self._request(
            Mode.GENERATE, self.selected_vendor, self.selected_model, context
        )
        with self._gate("is_loading"):
            result = await self._attempt(request, GenerationResult, self.submit_generate)

        if result is None:
            return False

        self.result = result
        self.phase = Phase.RESULT
        logger.info("Generation ready")
        return True

    # ------------------------------------------------------------------
    # Result phase
    # ------------------------------------------------------------------

    async def switch_model(self, vendor: str, model: str | None = None) -> bool:
        """Pick a vendor and model.

        In the input phase this is a local change. In the result phase the
        prompt is regenerated for the new target and replaced in place.

        Args:
            vendor: Vendor key.
            model: Model variant; defaults to the vendor's first model.

        Returns:
            True when the selection (and any regeneration) succeeded.

        Raises:
            InvalidTransitionError: In the critique phase.
            ValueError: Unknown vendor or model.
        """
        self._ensure_open()
        if vendor not in GUIDANCE:
            raise ValueError(f"Unknown vendor: {vendor}")
        model = model or default_model(vendor)
        if model not in GUIDANCE[vendor].models:
            raise ValueError(f"Unknown model for {vendor}: {model}")

        if self.phase is Phase.CRITIQUE:
            raise InvalidTransitionError("Cannot switch model while answering questions")

        if self.phase is Phase.INPUT:
            self.selected_vendor = vendor
            self.selected_model = model
            return True

        context = build_additional_context(self.critique, self.answers)
        return await self._regenerate(vendor, model, context)

    async def implement_suggestions(self) -> bool:
        """Regenerate with the result's suggestions folded into the context.

        Raises:
            InvalidTransitionError: Not in the result phase, or no suggestions.
            SessionBusyError: A regeneration is in flight.
        """
        self._ensure_open()
        self._require_phase(Phase.RESULT, "implement suggestions")
        self._ensure_idle()
        if not self.result.suggestions:
            raise InvalidTransitionError("No suggestions to implement")

        context = build_additional_context(
            self.critique, self.answers, self.result.suggestions
        )
        return await self._regenerate(self.selected_vendor, self.selected_model, context)

    def copy_prompt(self) -> str:
        """Return the generated prompt text.

        Raises:
            SessionBusyError: While regenerating.
        """
        self._ensure_open()
        self._require_phase(Phase.RESULT, "copy the prompt")
        if self.is_regenerating:
            raise SessionBusyError("Prompt is being regenerated")
        return self.result.generated_prompt

    async def _regenerate(self, vendor: str, model: str, context: str) -> bool:
        self._require_phase(Phase.RESULT, "regenerate")
        self._ensure_idle()

        epoch = self._epoch
        previous = (self.selected_vendor, self.selected_model)
        self.selected_vendor, self.selected_model = vendor, model
        request = self._request(Mode.GENERATE, vendor, model, context)

        with self._gate("is_regenerating"):
            result = await self._attempt(
                request,
                GenerationResult,
                lambda: self._regenerate(vendor, model, context),
            )

        if result is None:
            if epoch == self._epoch:
                self.selected_vendor, self.selected_model = previous
            return False

        self.result = result
        logger.info(f"Regenerated for {vendor}/{model}")
        return True

    # ------------------------------------------------------------------
    # Retry, reset, close
    # ------------------------------------------------------------------

    async def retry(self) -> bool:
        """Re-run the last failed operation.

        Raises:
            InvalidTransitionError: ``can_retry`` is False.
        """
        self._ensure_open()
        if not self.can_retry:
            raise InvalidTransitionError("Nothing to retry")
        return await self._last_failed()

    def reset(self, keep_input: bool = False) -> None:
        """Return to a fresh input phase.

        Args:
            keep_input: Keep the typed input text ("start over").
        """
        self._ensure_open()
        self.cancel_pending_invalidation()
        self._epoch += 1
        self._clear(keep_input=keep_input)
        logger.info("Session reset")

    def close(self) -> None:
        """Cancel pending work. Late responses are dropped."""
        self.cancel_pending_invalidation()
        self._epoch += 1
        self._closed = True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosedError("Session is closed")

    def _ensure_idle(self) -> None:
        if self.busy:
            raise SessionBusyError("A request is already in progress")

    def _require_phase(self, phase: Phase, action: str) -> None:
        if self.phase is not phase:
            raise InvalidTransitionError(
                f"Cannot {action} in the {self.phase.value} phase"
            )

    @contextmanager
    def _gate(self, flag: str) -> Iterator[None]:
        epoch = self._epoch
        setattr(self, flag, True)
        try:
            yield
        finally:
            if epoch == self._epoch:
                setattr(self, flag, False)

    def _request(self, mode: Mode, vendor: str, model: str, context: str) -> AnalyseRequest:
        return AnalyseRequest(
            mode=mode.value,
            vendor=vendor,
            model=model,
            input_text=self.input_text.strip(),
            additional_context=context or None,
            entry_mode=self.entry_mode,
            problem_context=(
                (self.problem_context.strip() or None) if self.entry_mode == "prompt" else None
            ),
        )

    async def _attempt(
        self,
        request: AnalyseRequest,
        record: type[T],
        retry: Callable[[], Awaitable[bool]],
    ) -> T | None:
        """Call the backend and parse the payload.

        Returns the parsed record, or None on failure or when the session
        was invalidated while the call was in flight.
        """
        epoch = self._epoch
        try:
            payload = await self.backend.analyse(request)
            parsed = record.model_validate(payload)
        except BackendError as e:
            message = e.message
        except PydanticValidationError:
            message = ExtractionError.default_message
        else:
            if epoch != self._epoch:
                logger.debug(f"Dropping stale {request.mode} response")
                return None
            self.retry_count = 0
            self.error = ""
            self._last_failed = None
            return parsed

        if epoch == self._epoch:
            self.retry_count += 1
            self.error = message
            self._last_failed = retry
            logger.warning(f"{request.mode} failed (attempt {self.retry_count})")
        return None


__all__ = [
    "Phase",
    "Question",
    "Critique",
    "GenerationResult",
    "SessionError",
    "InvalidTransitionError",
    "SessionBusyError",
    "SessionClosedError",
    "build_additional_context",
    "Session",
]
