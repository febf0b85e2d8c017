from .api import OutputTask, output_task
from .core import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    agenerate_structured_output,
    generate_structured_output,
)
from .exceptions import (
    MalformedResponseError,
    RecoverableOutputError,
    RetryExhaustedError,
    ShapeViolationError,
    StrictOutputError,
    UnmatchedChoiceError,
)
from .factory import build_output_engine
from .handlers.structured_output import StructuredOutputHandler
from .observability import (
    ConsoleTracerHook,
    CostTracker,
    Span,
    SpanEvent,
    Tracer,
    TracerHook,
)
from .parser import parse_response
from .prompt import compose_instruction
from .retry import Exhausted, RecoverableFailure, RetryConfig, Succeeded, run_attempts
from .shape import OutputCardinality, ShapeFeatures, analyze
from .structured import StructuredOutput, shape_from_model
from .transport import AsyncLiteLLMTransport, LiteLLMTransport

__all__ = [
    # Entry points
    "generate_structured_output",
    "agenerate_structured_output",
    "DEFAULT_MODEL",
    "DEFAULT_TEMPERATURE",
    "DEFAULT_MAX_ATTEMPTS",
    # Pipeline stages
    "analyze",
    "ShapeFeatures",
    "OutputCardinality",
    "compose_instruction",
    "parse_response",
    # Retry
    "RetryConfig",
    "run_attempts",
    "Succeeded",
    "RecoverableFailure",
    "Exhausted",
    # Transport
    "LiteLLMTransport",
    "AsyncLiteLLMTransport",
    # High-level API
    "OutputTask",
    "output_task",
    # Structured output
    "StructuredOutput",
    "shape_from_model",
    # Workflow engine
    "build_output_engine",
    "StructuredOutputHandler",
    # Observability
    "Span",
    "SpanEvent",
    "Tracer",
    "TracerHook",
    "ConsoleTracerHook",
    "CostTracker",
    # Exceptions
    "StrictOutputError",
    "RecoverableOutputError",
    "MalformedResponseError",
    "ShapeViolationError",
    "UnmatchedChoiceError",
    "RetryExhaustedError",
]
