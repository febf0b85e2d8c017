from __future__ import annotations

import json
import re
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from .exceptions import MalformedResponseError, ShapeViolationError, UnmatchedChoiceError
from .shape import OutputCardinality, OutputShape, is_placeholder

ItemValidator = Callable[[dict[str, Any]], Any]

_FENCE_PATTERN = re.compile(r"^```[\w-]*\s*(.*?)\s*```$", re.DOTALL)


def load_json(raw: str | None) -> Any:
    """Decode the raw model text, tolerating one surrounding markdown code fence.

    Raises:
        MalformedResponseError: If the text is not well-formed JSON.
    """
    text = (raw or "").strip()
    fenced = _FENCE_PATTERN.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        return json.loads(text)
    except (json.JSONDecodeError, RecursionError) as e:
        raise MalformedResponseError(f"Response is not valid JSON: {e}", raw=raw) from e


def coerce_choice(
    value: Any,
    choices: Sequence[str],
    default_category: str = "",
) -> Any:
    """Coerce a model value for an enumerated field.

    A list keeps only its first element; a value outside ``choices`` becomes
    ``default_category`` when one is given; a string is cut at its first colon.
    """
    if isinstance(value, list):
        value = value[0] if value else None
    if value not in choices and default_category:
        value = default_category
    if isinstance(value, str) and ":" in value:
        value = value.split(":", 1)[0]
    return value


def validate_item(
    item: Any,
    shape: OutputShape,
    *,
    default_category: str = "",
    strict_choices: bool = False,
    raw: str | None = None,
) -> dict[str, Any]:
    """Check one parsed item against the shape and coerce its enumerated fields in place."""
    if not isinstance(item, dict):
        raise ShapeViolationError(
            f"Expected a json object, got {type(item).__name__}",
            raw=raw,
        )

    for key, spec in shape.items():
        if is_placeholder(key):
            continue
        if key not in item:
            raise ShapeViolationError(f"{key} not in json output", raw=raw, key=key)

        if isinstance(spec, (list, tuple)):
            choices = list(spec)
            value = coerce_choice(item[key], choices, default_category)
            if strict_choices and not default_category and value not in choices:
                raise UnmatchedChoiceError(key, value, choices, raw=raw)
            item[key] = value
        elif isinstance(spec, Mapping):
            validate_item(
                item[key],
                spec,
                default_category=default_category,
                strict_choices=strict_choices,
                raw=raw,
            )

    return item


def to_values(item: Any) -> Any:
    """Drop the keys of an item, collapsing a single value to the bare element."""
    if not isinstance(item, dict):
        return item
    values = list(item.values())
    if len(values) == 1:
        return values[0]
    return values


def parse_response(
    raw: str | None,
    shape: OutputShape,
    *,
    cardinality: OutputCardinality = OutputCardinality.SINGLE,
    expected_count: int | None = None,
    default_category: str = "",
    value_only: bool = False,
    strict_choices: bool = False,
    item_validator: ItemValidator | None = None,
) -> Any:
    """Parse and validate one raw model response.

    Returns a single item for ``SINGLE`` cardinality and a list of items, in
    input order, for ``BATCH``. Every failure is a ``RecoverableOutputError``.
    """
    data = load_json(raw)

    if cardinality is OutputCardinality.BATCH:
        if not isinstance(data, list):
            raise ShapeViolationError(
                f"Expected a json list for batch input, got {type(data).__name__}",
                raw=raw,
            )
        if expected_count is not None and len(data) != expected_count:
            raise ShapeViolationError(
                f"Expected {expected_count} items, got {len(data)}",
                raw=raw,
            )
        items = data
    else:
        items = [data]

    results: list[Any] = []
    for item in items:
        validated: Any = validate_item(
            item,
            shape,
            default_category=default_category,
            strict_choices=strict_choices,
            raw=raw,
        )
        if item_validator is not None:
            try:
                validated = item_validator(validated)
            except ValueError as e:
                raise ShapeViolationError(f"Item failed validation: {e}", raw=raw) from e
        if value_only:
            validated = to_values(validated)
        results.append(validated)

    if cardinality is OutputCardinality.BATCH:
        return results
    return results[0]
