from __future__ import annotations

import json
from typing import Any

from .shape import OutputShape, PromptInput, ShapeFeatures

ENUMERATED_CLAUSE = "\nIf output field is a list, classify output into the best element of the list."

PLACEHOLDER_CLAUSE = (
    "\nAny text enclosed by < and > indicates you must generate content to replace it. "
    "Example input: Go to <location>, Example output: Go to the garden"
    "\nAny output key containing < and > indicates you must generate the key name to replace it. "
    "Example input: {'<location>': 'description of location'}, "
    "Example output: {school: a place for education}"
)

BATCH_CLAUSE = "\nGenerate a list of json, one json for each input element."


def format_clause(shape: OutputShape, features: ShapeFeatures) -> str:
    """Build the output-format guidance appended to the caller's instruction.

    Clauses are cumulative and always appear in the same order: base format,
    enumerated fields, placeholders, batch.
    """
    clause = (
        f"\nYou are to output the following in json format: "
        f"{json.dumps(shape, ensure_ascii=False)}. "
        "\nDo not put quotation marks or escape character \\ in the output fields."
    )
    if features.has_enumerated_field:
        clause += ENUMERATED_CLAUSE
    if features.has_placeholders:
        clause += PLACEHOLDER_CLAUSE
    if features.is_batch:
        clause += BATCH_CLAUSE
    return clause


def compose_instruction(
    system_instruction: str,
    shape: OutputShape,
    features: ShapeFeatures,
) -> str:
    return system_instruction + format_clause(shape, features)


def build_user_content(prompt: PromptInput) -> str | list[dict[str, Any]]:
    """Return the user message content for the prompt input.

    A single prompt is sent as-is. A batch is sent as one text part per
    element, in input order.
    """
    if isinstance(prompt, str):
        return prompt
    return [{"type": "text", "text": str(item)} for item in prompt]
