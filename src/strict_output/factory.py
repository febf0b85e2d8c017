from __future__ import annotations

from typing import TYPE_CHECKING, Any

from j_perm import (
    ActionNode,
    Engine,
    ExecutionContext,
    Middleware,
    OpMatcher,
    build_default_engine,
)

from .handlers.structured_output import StructuredOutputHandler

if TYPE_CHECKING:
    from .observability import Tracer
    from .transport import ModelTransport


class _OutputMetadataMiddleware(Middleware):
    name = "output_metadata"
    priority = 100

    def __init__(
        self,
        tracer: Tracer | None = None,
        transport: ModelTransport | None = None,
    ) -> None:
        self._tracer = tracer
        self._transport = transport

    def process(self, step: Any, ctx: ExecutionContext) -> Any:
        if self._tracer is not None:
            ctx.metadata.setdefault("_tracer", self._tracer)
        if self._transport is not None:
            ctx.metadata.setdefault("_transport", self._transport)
        return step


def build_output_engine(
    *,
    tracer: Tracer | None = None,
    transport: ModelTransport | None = None,
    **kwargs: Any,
) -> Engine:
    """Build a j_perm engine that understands the ``structured_output`` op."""
    engine = build_default_engine(**kwargs)

    engine.main_pipeline.register_middleware(
        _OutputMetadataMiddleware(tracer=tracer, transport=transport)
    )
    engine.main_pipeline.registry.register(
        ActionNode(
            name="structured_output",
            priority=10,
            matcher=OpMatcher("structured_output"),
            handler=StructuredOutputHandler(),
        )
    )

    return engine
