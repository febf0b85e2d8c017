from __future__ import annotations

import functools
from typing import TYPE_CHECKING, Any

from .core import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    agenerate_structured_output,
    generate_structured_output,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from .observability import Tracer
    from .shape import OutputShape, PromptInput


class OutputTask:
    """A reusable structured-output request: instructions, shape and model settings."""

    def __init__(
        self,
        *,
        name: str,
        instructions: str,
        shape: OutputShape,
        model: str = DEFAULT_MODEL,
        default_category: str = "",
        value_only: bool = False,
        temperature: float = DEFAULT_TEMPERATURE,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        strict_choices: bool = False,
    ) -> None:
        self.name = name
        self.instructions = instructions
        self.shape = shape
        self.model = model
        self.default_category = default_category
        self.value_only = value_only
        self.temperature = temperature
        self.max_attempts = max_attempts
        self.strict_choices = strict_choices

    def _call_kwargs(self) -> dict[str, Any]:
        return {
            "default_category": self.default_category,
            "value_only": self.value_only,
            "model_name": self.model,
            "temperature": self.temperature,
            "max_attempts": self.max_attempts,
            "strict_choices": self.strict_choices,
        }

    def run(
        self,
        input: PromptInput,
        *,
        verbose: bool = False,
        tracer: Tracer | None = None,
    ) -> Any:
        """Run the task synchronously. Returns ``[]`` when no attempt succeeded."""
        return generate_structured_output(
            self.instructions,
            input,
            self.shape,
            verbose=verbose,
            tracer=tracer,
            **self._call_kwargs(),
        )

    async def arun(
        self,
        input: PromptInput,
        *,
        verbose: bool = False,
        tracer: Tracer | None = None,
    ) -> Any:
        return await agenerate_structured_output(
            self.instructions,
            input,
            self.shape,
            verbose=verbose,
            tracer=tracer,
            **self._call_kwargs(),
        )

    def to_spec(self, input_expr: str = "${/input}", path: str = "/result") -> list[dict[str, Any]]:
        """Export the task as a ``structured_output`` workflow step."""
        return [
            {
                "op": "structured_output",
                "name": self.name,
                "instructions": self.instructions,
                "input": input_expr,
                "output_format": self.shape,
                "default_category": self.default_category,
                "value_only": self.value_only,
                "model": self.model,
                "temperature": self.temperature,
                "max_attempts": self.max_attempts,
                "strict_choices": self.strict_choices,
                "path": path,
            }
        ]

    @classmethod
    def from_spec(cls, spec: dict[str, Any]) -> OutputTask:
        """Create a task from a step previously exported with ``to_spec``."""
        return cls(
            name=spec.get("name", "structured_output"),
            instructions=spec["instructions"],
            shape=spec["output_format"],
            model=spec.get("model", DEFAULT_MODEL),
            default_category=spec.get("default_category", ""),
            value_only=spec.get("value_only", False),
            temperature=spec.get("temperature", DEFAULT_TEMPERATURE),
            max_attempts=spec.get("max_attempts", DEFAULT_MAX_ATTEMPTS),
            strict_choices=spec.get("strict_choices", False),
        )


def output_task(
    *,
    shape: OutputShape,
    model: str = DEFAULT_MODEL,
    default_category: str = "",
    value_only: bool = False,
    temperature: float = DEFAULT_TEMPERATURE,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator that turns a function into a structured-output task.

    The decorated function's docstring becomes the system instruction and the
    first positional argument becomes the prompt input.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        task = OutputTask(
            name=fn.__name__,
            instructions=(fn.__doc__ or "").strip(),
            shape=shape,
            model=model,
            default_category=default_category,
            value_only=value_only,
            temperature=temperature,
            max_attempts=max_attempts,
        )

        @functools.wraps(fn)
        def wrapper(input: PromptInput, **kwargs: Any) -> Any:
            return task.run(input, **kwargs)

        wrapper._task = task  # type: ignore[attr-defined]
        return wrapper

    return decorator
