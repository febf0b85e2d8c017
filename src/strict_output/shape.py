from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

OutputShape = Mapping[str, Any]
PromptInput = Union[str, Sequence[str]]

PLACEHOLDER_PATTERN = re.compile(r"<.*?>")


class OutputCardinality(str, Enum):
    """How many items one successful attempt must yield."""

    SINGLE = "single"
    BATCH = "batch"


@dataclass(frozen=True)
class ShapeFeatures:
    """Features of a call that shape the instruction text and the validation."""

    has_placeholders: bool
    has_enumerated_field: bool
    is_batch: bool

    @property
    def cardinality(self) -> OutputCardinality:
        return OutputCardinality.BATCH if self.is_batch else OutputCardinality.SINGLE


def is_placeholder(text: Any) -> bool:
    """Return True when ``text`` contains a ``<...>`` placeholder marker."""
    return isinstance(text, str) and PLACEHOLDER_PATTERN.search(text) is not None


def _walk(shape: Mapping[str, Any]):
    """Yield every (key, value) pair of the shape, nested shapes included."""
    for key, value in shape.items():
        yield key, value
        if isinstance(value, Mapping):
            yield from _walk(value)


def _value_has_placeholder(value: Any) -> bool:
    if isinstance(value, (list, tuple)):
        return any(is_placeholder(choice) for choice in value)
    return is_placeholder(value)


def analyze_shape(shape: OutputShape) -> tuple[bool, bool]:
    """Return ``(has_placeholders, has_enumerated_field)`` for a shape."""
    has_placeholders = False
    has_enumerated_field = False
    for key, value in _walk(shape):
        if is_placeholder(key) or _value_has_placeholder(value):
            has_placeholders = True
        if isinstance(value, (list, tuple)):
            has_enumerated_field = True
    return has_placeholders, has_enumerated_field


def analyze_input(prompt: PromptInput) -> bool:
    """Return True when the prompt input is a batch of prompts."""
    return isinstance(prompt, (list, tuple))


def analyze(shape: OutputShape, prompt: PromptInput) -> ShapeFeatures:
    has_placeholders, has_enumerated_field = analyze_shape(shape)
    return ShapeFeatures(
        has_placeholders=has_placeholders,
        has_enumerated_field=has_enumerated_field,
        is_batch=analyze_input(prompt),
    )
