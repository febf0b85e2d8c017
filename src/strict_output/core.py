from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .exceptions import RetryExhaustedError
from .observability import ConsoleTracerHook, Tracer
from .parser import ItemValidator, parse_response
from .prompt import build_user_content, compose_instruction
from .retry import Exhausted, RetryConfig, arun_attempts, run_attempts
from .shape import OutputShape, PromptInput, ShapeFeatures, analyze
from .transport import AsyncLiteLLMTransport, LiteLLMTransport

if TYPE_CHECKING:
    from .retry import Succeeded
    from .transport import AsyncModelTransport, ModelTransport, UserContent

DEFAULT_MODEL = "gemini/gemini-1.5-pro"
DEFAULT_TEMPERATURE = 1.0
DEFAULT_MAX_ATTEMPTS = 3

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallPlan:
    """Everything that stays fixed across the attempts of one call."""

    shape: OutputShape
    prompt: PromptInput
    features: ShapeFeatures
    instruction: str
    content: UserContent
    model_name: str
    temperature: float
    default_category: str = ""
    value_only: bool = False
    strict_choices: bool = False
    item_validator: ItemValidator | None = None

    @classmethod
    def build(
        cls,
        system_instruction: str,
        prompt: PromptInput,
        shape: OutputShape,
        *,
        model_name: str,
        temperature: float,
        default_category: str = "",
        value_only: bool = False,
        strict_choices: bool = False,
        item_validator: ItemValidator | None = None,
    ) -> CallPlan:
        features = analyze(shape, prompt)
        return cls(
            shape=shape,
            prompt=prompt,
            features=features,
            instruction=compose_instruction(system_instruction, shape, features),
            content=build_user_content(prompt),
            model_name=model_name,
            temperature=temperature,
            default_category=default_category,
            value_only=value_only,
            strict_choices=strict_choices,
            item_validator=item_validator,
        )

    @property
    def expected_count(self) -> int | None:
        return len(self.prompt) if self.features.is_batch else None

    def parse(self, raw: str | None) -> Any:
        return parse_response(
            raw,
            self.shape,
            cardinality=self.features.cardinality,
            expected_count=self.expected_count,
            default_category=self.default_category,
            value_only=self.value_only,
            strict_choices=self.strict_choices,
            item_validator=self.item_validator,
        )


class _AttemptTrace:
    """Wraps one attempt in an ``attempt`` span when a tracer is present."""

    def __init__(
        self,
        tracer: Tracer | None,
        plan: CallPlan,
        attempt: int,
        parent_id: str | None,
    ) -> None:
        self._tracer = tracer
        self._span_id: str | None = None
        if tracer:
            self._span_id = tracer.start_span(
                "attempt",
                plan.model_name,
                metadata={"attempt": attempt, "model": plan.model_name},
                parent_id=parent_id,
                activate=False,
            )
            tracer.add_event(
                self._span_id,
                "attempt.request",
                {"instruction": plan.instruction, "input": plan.prompt},
            )

    def response(self, raw: str | None, usage: dict[str, int]) -> None:
        if self._tracer and self._span_id:
            self._tracer.add_event(self._span_id, "attempt.response", {"raw": raw, **usage})
            span = self._tracer.get_span(self._span_id)
            if span:
                span.metadata["usage"] = usage

    def fail(self, exc: BaseException) -> None:
        if self._tracer and self._span_id:
            self._tracer.end_span(self._span_id, status="error", error=str(exc))

    def succeed(self) -> None:
        if self._tracer and self._span_id:
            self._tracer.end_span(self._span_id)


def _start_call_span(tracer: Tracer | None, model_name: str) -> str | None:
    if not tracer:
        return None
    return tracer.start_span(
        "structured_output",
        model_name,
        parent_id=tracer.active_span_id,
        activate=False,
    )


def _resolve_tracer(tracer: Tracer | None, verbose: bool) -> tuple[Tracer | None, Any]:
    if not verbose:
        return tracer, None
    hook = ConsoleTracerHook()
    if tracer is None:
        return Tracer(hooks=[hook]), None
    tracer.add_hook(hook)
    return tracer, hook


def _finish(
    outcome: Succeeded[Any] | Exhausted,
    tracer: Tracer | None,
    span_id: str | None,
    raise_on_exhaustion: bool,
) -> Any:
    if isinstance(outcome, Exhausted):
        if tracer and span_id:
            tracer.end_span(span_id, status="exhausted", error=str(outcome.last_error))
        if raise_on_exhaustion:
            raise RetryExhaustedError(outcome.attempts, outcome.last_error)
        return []
    if tracer and span_id:
        tracer.end_span(span_id)
    logger.debug("Structured output produced on attempt %d", outcome.attempt + 1)
    return outcome.value


def generate_structured_output(
    system_instruction: str,
    input: PromptInput,
    output_shape: OutputShape,
    default_category: str = "",
    value_only: bool = False,
    model_name: str = DEFAULT_MODEL,
    temperature: float = DEFAULT_TEMPERATURE,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    verbose: bool = False,
    *,
    strict_choices: bool = False,
    raise_on_exhaustion: bool = False,
    tracer: Tracer | None = None,
    transport: ModelTransport | None = None,
    item_validator: ItemValidator | None = None,
) -> Any:
    """Ask the model for output shaped like ``output_shape`` and validate it.

    Each attempt opens a fresh session with the composed instruction, sends
    ``input`` and validates the reply. Malformed or non-conforming replies
    trigger another attempt; transport errors propagate.

    Returns:
        One validated item for a single prompt, a list of items in input order
        for a list of prompts, or ``[]`` when every attempt failed.

    Raises:
        RetryExhaustedError: Only when ``raise_on_exhaustion`` is set.
    """
    config = RetryConfig(max_attempts=max_attempts)
    plan = CallPlan.build(
        system_instruction,
        input,
        output_shape,
        model_name=model_name,
        temperature=temperature,
        default_category=default_category,
        value_only=value_only,
        strict_choices=strict_choices,
        item_validator=item_validator,
    )
    transport = transport or LiteLLMTransport()
    tracer, console_hook = _resolve_tracer(tracer, verbose)

    def attempt_once(attempt: int) -> Any:
        trace = _AttemptTrace(tracer, plan, attempt, span_id)
        try:
            session = transport.open_session(plan.model_name, plan.instruction, plan.temperature)
            raw = session.send(plan.content)
            trace.response(raw, getattr(session, "last_usage", {}))
            result = plan.parse(raw)
        except BaseException as exc:
            trace.fail(exc)
            raise
        trace.succeed()
        return result

    span_id = _start_call_span(tracer, model_name)
    try:
        outcome = run_attempts(attempt_once, config)
    except BaseException as exc:
        if tracer and span_id:
            tracer.end_span(span_id, status="error", error=str(exc))
        raise
    finally:
        if tracer and console_hook:
            tracer.remove_hook(console_hook)
    return _finish(outcome, tracer, span_id, raise_on_exhaustion)


async def agenerate_structured_output(
    system_instruction: str,
    input: PromptInput,
    output_shape: OutputShape,
    default_category: str = "",
    value_only: bool = False,
    model_name: str = DEFAULT_MODEL,
    temperature: float = DEFAULT_TEMPERATURE,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    verbose: bool = False,
    *,
    strict_choices: bool = False,
    raise_on_exhaustion: bool = False,
    tracer: Tracer | None = None,
    transport: AsyncModelTransport | None = None,
    item_validator: ItemValidator | None = None,
) -> Any:
    """Async version of generate_structured_output using ``litellm.acompletion``."""
    config = RetryConfig(max_attempts=max_attempts)
    plan = CallPlan.build(
        system_instruction,
        input,
        output_shape,
        model_name=model_name,
        temperature=temperature,
        default_category=default_category,
        value_only=value_only,
        strict_choices=strict_choices,
        item_validator=item_validator,
    )
    transport = transport or AsyncLiteLLMTransport()
    tracer, console_hook = _resolve_tracer(tracer, verbose)

    async def attempt_once(attempt: int) -> Any:
        trace = _AttemptTrace(tracer, plan, attempt, span_id)
        try:
            session = transport.open_session(plan.model_name, plan.instruction, plan.temperature)
            raw = await session.send(plan.content)
            trace.response(raw, getattr(session, "last_usage", {}))
            result = plan.parse(raw)
        except BaseException as exc:
            trace.fail(exc)
            raise
        trace.succeed()
        return result

    span_id = _start_call_span(tracer, model_name)
    try:
        outcome = await arun_attempts(attempt_once, config)
    except BaseException as exc:
        if tracer and span_id:
            tracer.end_span(span_id, status="error", error=str(exc))
        raise
    finally:
        if tracer and console_hook:
            tracer.remove_hook(console_hook)
    return _finish(outcome, tracer, span_id, raise_on_exhaustion)
