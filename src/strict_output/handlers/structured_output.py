from __future__ import annotations

from typing import Any

from j_perm import ActionHandler, ExecutionContext

from strict_output.core import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    generate_structured_output,
)


class StructuredOutputHandler(ActionHandler):
    """Runs ``generate_structured_output`` as a workflow step.

    Step fields: ``instructions``, ``input``, ``output_format`` and the
    optional ``default_category``, ``value_only``, ``model``, ``temperature``,
    ``max_attempts``, ``strict_choices`` and ``path``.
    """

    def execute(self, step: Any, ctx: ExecutionContext) -> Any:
        instructions = ctx.engine.process_value(step["instructions"], ctx)
        prompt = ctx.engine.process_value(step["input"], ctx)
        model = ctx.engine.process_value(step.get("model", DEFAULT_MODEL), ctx)

        result = generate_structured_output(
            instructions,
            prompt,
            step["output_format"],
            default_category=step.get("default_category", ""),
            value_only=step.get("value_only", False),
            model_name=model,
            temperature=step.get("temperature", DEFAULT_TEMPERATURE),
            max_attempts=step.get("max_attempts", DEFAULT_MAX_ATTEMPTS),
            strict_choices=step.get("strict_choices", False),
            tracer=ctx.metadata.get("_tracer"),
            transport=ctx.metadata.get("_transport"),
        )

        path = step.get("path")
        if path:
            resolved_path = ctx.engine.process_value(path, ctx)
            ctx.engine.processor.set(resolved_path, ctx, result)
        else:
            ctx.dest = result

        return ctx.dest
