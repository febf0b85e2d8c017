from __future__ import annotations

import json
import types
from typing import Any, Generic, Literal, TypeVar, Union, get_args, get_origin

from pydantic import BaseModel, ValidationError

from .core import agenerate_structured_output, generate_structured_output
from .shape import PromptInput

T = TypeVar("T", bound=BaseModel)


def _strip_optional(annotation: Any) -> Any:
    if get_origin(annotation) in (Union, types.UnionType):
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def shape_from_model(model_class: type[BaseModel]) -> dict[str, Any]:
    """Derive an output shape from a Pydantic model.

    ``Literal`` fields become enumerated fields, nested models become nested
    shapes and every other field is described by its ``description`` (or its
    name when it has none).
    """
    shape: dict[str, Any] = {}
    for name, info in model_class.model_fields.items():
        key = info.alias or name
        annotation = _strip_optional(info.annotation)
        if get_origin(annotation) is Literal:
            shape[key] = list(get_args(annotation))
        elif isinstance(annotation, type) and issubclass(annotation, BaseModel):
            shape[key] = shape_from_model(annotation)
        else:
            shape[key] = info.description or name.replace("_", " ")
    return shape


class StructuredOutput(Generic[T]):
    """Generates and validates LLM output as typed Pydantic models.

    The output shape sent to the model is derived from the model class, and
    every item the model returns must pass ``model_validate`` or the attempt
    is retried.
    """

    def __init__(self, model_class: type[T]) -> None:
        self._model_class = model_class
        self._shape = shape_from_model(model_class)

    @property
    def model_class(self) -> type[T]:
        return self._model_class

    @property
    def shape(self) -> dict[str, Any]:
        return self._shape

    def _call_kwargs(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        for name in ("value_only", "item_validator"):
            if name in kwargs:
                raise TypeError(
                    f"StructuredOutput does not accept '{name}': "
                    f"results are always {self._model_class.__name__} instances"
                )
        return {
            **kwargs,
            "value_only": False,
            "item_validator": self._model_class.model_validate,
        }

    def generate(
        self, system_instruction: str, input: PromptInput, **kwargs: Any
    ) -> T | list[T]:
        """Run the attempt loop and return model instances.

        Returns a single instance for a single prompt, a list for a batch and
        ``[]`` when every attempt failed.
        """
        return generate_structured_output(
            system_instruction,
            input,
            self._shape,
            **self._call_kwargs(kwargs),
        )

    async def agenerate(
        self, system_instruction: str, input: PromptInput, **kwargs: Any
    ) -> T | list[T]:
        return await agenerate_structured_output(
            system_instruction,
            input,
            self._shape,
            **self._call_kwargs(kwargs),
        )

    def parse(self, raw: str | dict[str, Any]) -> T:
        """Parse raw LLM output (JSON string or dict) into the target model.

        Raises:
            ValidationError: If the data does not match the model schema.
            json.JSONDecodeError: If raw is a string that is not valid JSON.
        """
        data = json.loads(raw) if isinstance(raw, str) else raw
        return self._model_class.model_validate(data)

    def parse_safe(self, raw: str | dict[str, Any]) -> T | None:
        """Parse without raising -- returns None on failure."""
        try:
            return self.parse(raw)
        except (ValidationError, json.JSONDecodeError, TypeError):
            return None

    def json_schema(self) -> dict[str, Any]:
        """Return the JSON schema for the target model."""
        return self._model_class.model_json_schema()
