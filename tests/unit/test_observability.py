import json

from strict_output.observability import (
    ConsoleTracerHook,
    CostTracker,
    Span,
    SpanEvent,
    Tracer,
)


class RecordingHook:
    def __init__(self):
        self.started: list[Span] = []
        self.ended: list[Span] = []
        self.events: list[SpanEvent] = []

    def on_span_start(self, span: Span) -> None:
        self.started.append(span)

    def on_span_end(self, span: Span) -> None:
        self.ended.append(span)

    def on_event(self, span_id: str, event: SpanEvent) -> None:
        self.events.append(event)


class TestTracer:
    def test_span_lifecycle(self):
        tracer = Tracer()
        span_id = tracer.start_span("attempt", "gemini")

        assert len(tracer.spans) == 0
        assert tracer.get_span(span_id) is not None

        tracer.end_span(span_id)

        span = tracer.spans[0]
        assert span.end_time is not None
        assert span.end_time >= span.start_time
        assert span.status == "ok"
        assert tracer.get_span(span_id) is None

    def test_nested_spans(self):
        tracer = Tracer()
        parent_id = tracer.start_span("structured_output", "gemini")
        child_id = tracer.start_span("attempt", "gemini")
        tracer.end_span(child_id)
        tracer.end_span(parent_id)

        child = [s for s in tracer.spans if s.operation == "attempt"][0]
        assert child.parent_id == parent_id

    def test_inactive_spans_use_explicit_parent(self):
        tracer = Tracer()
        outer_id = tracer.start_span("task", "outer")
        first = tracer.start_span("structured_output", "a", parent_id=outer_id, activate=False)
        second = tracer.start_span("structured_output", "b", parent_id=outer_id, activate=False)
        child = tracer.start_span("attempt", "a", parent_id=first, activate=False)

        assert tracer.active_span_id == outer_id
        for span_id in (child, first, second):
            tracer.end_span(span_id)
        assert tracer.active_span_id == outer_id

        parents = {s.span_id: s.parent_id for s in tracer.spans}
        assert parents == {child: first, first: outer_id, second: outer_id}

    def test_events_and_errors(self):
        tracer = Tracer()
        span_id = tracer.start_span("attempt", "gemini")
        tracer.add_event(span_id, "attempt.response", {"raw": "{}"})
        tracer.end_span(span_id, status="error", error="bad json")

        span = tracer.spans[0]
        assert span.events[0].attributes == {"raw": "{}"}
        assert span.error == "bad json"

    def test_end_unknown_span_is_noop(self):
        tracer = Tracer()
        tracer.end_span("missing")
        assert tracer.spans == []

    def test_hooks_added_and_removed(self):
        hook = RecordingHook()
        tracer = Tracer()
        tracer.add_hook(hook)
        tracer.end_span(tracer.start_span("attempt", "m"))
        tracer.remove_hook(hook)
        tracer.end_span(tracer.start_span("attempt", "m"))

        assert len(hook.started) == 1
        assert len(hook.ended) == 1

    def test_to_dict_is_json_serializable(self):
        tracer = Tracer()
        span_id = tracer.start_span("attempt", "m", metadata={"attempt": 0})
        tracer.add_event(span_id, "attempt.request", {"input": ["a", "b"]})
        tracer.end_span(span_id)

        exported = json.loads(json.dumps(tracer.to_dict()))
        assert exported[0]["operation"] == "attempt"
        assert exported[0]["duration"] >= 0
        assert exported[0]["events"][0]["attributes"]["input"] == ["a", "b"]


class TestConsoleTracerHook:
    def test_prints_request_and_response(self, capsys):
        tracer = Tracer(hooks=[ConsoleTracerHook()])
        span_id = tracer.start_span("attempt", "m", metadata={"attempt": 1})
        tracer.add_event(span_id, "attempt.request", {"instruction": "be strict", "input": "hi"})
        tracer.add_event(span_id, "attempt.response", {"raw": '{"a": 1}'})
        tracer.end_span(span_id, status="error", error="a not in json output")

        out = capsys.readouterr().out
        assert "Attempt: 1" in out
        assert "System prompt: be strict" in out
        assert "User prompt: hi" in out
        assert 'Model response: {"a": 1}' in out
        assert "Invalid response: a not in json output" in out

    def test_ignores_call_span(self, capsys):
        tracer = Tracer(hooks=[ConsoleTracerHook()])
        tracer.end_span(tracer.start_span("structured_output", "m"))
        assert capsys.readouterr().out == ""


class TestCostTracker:
    def test_sums_attempt_usage(self):
        cost = CostTracker()
        tracer = Tracer(hooks=[cost])
        for tokens in (10, 20):
            span_id = tracer.start_span("attempt", "m", metadata={"model": "m"})
            tracer.get_span(span_id).metadata["usage"] = {
                "input_tokens": tokens,
                "output_tokens": 1,
            }
            tracer.end_span(span_id)

        assert cost.total_input_tokens == 30
        assert cost.total_output_tokens == 2
        assert [a["model"] for a in cost.attempts] == ["m", "m"]

    def test_ignores_other_spans(self):
        cost = CostTracker()
        tracer = Tracer(hooks=[cost])
        tracer.end_span(tracer.start_span("structured_output", "m"))
        assert cost.attempts == []
