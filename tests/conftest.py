import json
from typing import Any

import pytest


class ScriptedSession:
    def __init__(self, transport: "ScriptedTransport", system_instruction: str) -> None:
        self._transport = transport
        self.system_instruction = system_instruction
        self.last_usage = {"input_tokens": 10, "output_tokens": 5}

    def send(self, content: Any) -> str | None:
        self._transport.sent.append((self.system_instruction, content))
        reply = self._transport.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply


class ScriptedTransport:
    """Transport that answers from a fixed list of replies, one per attempt."""

    def __init__(self, replies: list[Any]) -> None:
        self.replies = [
            r if r is None or isinstance(r, (str, BaseException)) else json.dumps(r)
            for r in replies
        ]
        self.sent: list[tuple[str, Any]] = []
        self.opened: list[tuple[str, str, float]] = []

    def open_session(
        self, model_name: str, system_instruction: str, temperature: float
    ) -> ScriptedSession:
        self.opened.append((model_name, system_instruction, temperature))
        return ScriptedSession(self, system_instruction)


@pytest.fixture
def scripted():
    return ScriptedTransport


@pytest.fixture
def review_shape():
    return {
        "sentiment": ["positive", "negative", "neutral"],
        "summary": "one sentence summary of the review",
    }


@pytest.fixture
def plain_shape():
    return {"title": "title of the text", "topic": "main topic"}
