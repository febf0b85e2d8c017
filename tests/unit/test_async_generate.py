import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from strict_output import Tracer, agenerate_structured_output


def _make_response(content) -> MagicMock:
    if not isinstance(content, str):
        content = json.dumps(content)
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    response.usage = None
    return response


class TestAsyncGenerate:
    @patch("litellm.acompletion", new_callable=AsyncMock)
    async def test_basic_call(self, mock_acompletion: AsyncMock, plain_shape) -> None:
        mock_acompletion.return_value = _make_response({"title": "Dune", "topic": "desert"})

        result = await agenerate_structured_output("sys", "Describe Dune", plain_shape)

        assert result == {"title": "Dune", "topic": "desert"}
        mock_acompletion.assert_awaited_once()
        call_kwargs = mock_acompletion.call_args[1]
        assert call_kwargs["model"] == "gemini/gemini-1.5-pro"

    @patch("litellm.acompletion", new_callable=AsyncMock)
    async def test_retries_then_exhausts(self, mock_acompletion: AsyncMock, plain_shape) -> None:
        mock_acompletion.return_value = _make_response({"title": "no topic"})

        result = await agenerate_structured_output("sys", "hi", plain_shape, max_attempts=3)

        assert result == []
        assert mock_acompletion.await_count == 3

    @patch("litellm.acompletion", new_callable=AsyncMock)
    async def test_batch(self, mock_acompletion: AsyncMock) -> None:
        mock_acompletion.return_value = _make_response([{"label": "spam"}, {"label": "ham"}])

        result = await agenerate_structured_output(
            "sys", ["buy now", "see you at 5"], {"label": ["spam", "ham"]}, value_only=True
        )

        assert result == ["spam", "ham"]

    @patch("litellm.acompletion", new_callable=AsyncMock)
    async def test_transport_error_propagates(self, mock_acompletion: AsyncMock, plain_shape) -> None:
        mock_acompletion.side_effect = PermissionError("invalid api key")

        with pytest.raises(PermissionError):
            await agenerate_structured_output("sys", "hi", plain_shape)
        assert mock_acompletion.await_count == 1

    @patch("litellm.acompletion", new_callable=AsyncMock)
    async def test_cancellation_not_swallowed(self, mock_acompletion: AsyncMock, plain_shape) -> None:
        mock_acompletion.side_effect = asyncio.CancelledError()
        tracer = Tracer()

        with pytest.raises(asyncio.CancelledError):
            await agenerate_structured_output("sys", "hi", plain_shape, tracer=tracer)

        assert mock_acompletion.await_count == 1
        assert all(s.status == "error" for s in tracer.spans)

    @patch("litellm.acompletion", new_callable=AsyncMock)
    async def test_concurrent_calls_are_isolated(self, mock_acompletion: AsyncMock) -> None:
        async def reply(**kwargs):
            text = kwargs["messages"][-1]["content"]
            return _make_response({"echo": text})

        mock_acompletion.side_effect = reply

        results = await asyncio.gather(
            *(agenerate_structured_output("sys", f"msg {i}", {"echo": "the message"}) for i in range(5))
        )

        assert [r["echo"] for r in results] == [f"msg {i}" for i in range(5)]
        for call in mock_acompletion.call_args_list:
            assert len(call[1]["messages"]) == 2

    @patch("litellm.acompletion", new_callable=AsyncMock)
    async def test_concurrent_calls_keep_their_own_spans(self, mock_acompletion: AsyncMock) -> None:
        replies = {"model-a": ['{"echo": 1', '{"echo": "a"}'], "model-b": ['{"echo": "b"}']}

        async def reply(**kwargs):
            await asyncio.sleep(0)
            return _make_response(replies[kwargs["model"]].pop(0))

        mock_acompletion.side_effect = reply
        tracer = Tracer()

        results = await asyncio.gather(
            agenerate_structured_output("sys", "x", {"echo": "e"}, model_name="model-a", tracer=tracer),
            agenerate_structured_output("sys", "y", {"echo": "e"}, model_name="model-b", tracer=tracer),
        )

        assert results == [{"echo": "a"}, {"echo": "b"}]
        calls = {s.name: s for s in tracer.spans if s.operation == "structured_output"}
        attempts = [s for s in tracer.spans if s.operation == "attempt"]
        assert len(attempts) == 3
        for span in attempts:
            assert span.parent_id == calls[span.name].span_id
        assert all(s.parent_id is None for s in calls.values())
        assert tracer.active_span_id is None
