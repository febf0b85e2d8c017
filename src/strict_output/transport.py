from __future__ import annotations

from typing import Any, Protocol

import litellm

UserContent = str | list[dict[str, Any]]


class ChatSession(Protocol):
    """A conversation with a fixed system instruction."""

    def send(self, content: UserContent) -> str | None: ...


class AsyncChatSession(Protocol):
    async def send(self, content: UserContent) -> str | None: ...


class ModelTransport(Protocol):
    """Opens chat sessions against a model.

    A session carries no history: every ``send`` is a system instruction plus
    one user message.
    """

    def open_session(
        self, model_name: str, system_instruction: str, temperature: float
    ) -> ChatSession: ...


class AsyncModelTransport(Protocol):
    def open_session(
        self, model_name: str, system_instruction: str, temperature: float
    ) -> AsyncChatSession: ...


def _usage(response: Any) -> dict[str, int]:
    usage = getattr(response, "usage", None)
    if not usage:
        return {}
    return {
        "input_tokens": getattr(usage, "prompt_tokens", 0),
        "output_tokens": getattr(usage, "completion_tokens", 0),
    }


class _SessionBase:
    def __init__(self, model_name: str, system_instruction: str, temperature: float) -> None:
        self.model_name = model_name
        self.system_instruction = system_instruction
        self.temperature = temperature
        self.last_usage: dict[str, int] = {}

    def _request(self, content: UserContent) -> dict[str, Any]:
        return {
            "model": self.model_name,
            "messages": [
                {"role": "system", "content": self.system_instruction},
                {"role": "user", "content": content},
            ],
            "temperature": self.temperature,
        }

    def _record(self, response: Any) -> str | None:
        self.last_usage = _usage(response)
        return response.choices[0].message.content


class LiteLLMSession(_SessionBase):
    """Chat session backed by ``litellm.completion``."""

    def send(self, content: UserContent) -> str | None:
        request = self._request(content)
        response = litellm.completion(**request)
        return self._record(response)


class AsyncLiteLLMSession(_SessionBase):
    """Chat session backed by ``litellm.acompletion``."""

    async def send(self, content: UserContent) -> str | None:
        request = self._request(content)
        response = await litellm.acompletion(**request)
        return self._record(response)


class LiteLLMTransport:
    """Default transport. Credentials come from the environment via litellm."""

    def open_session(
        self, model_name: str, system_instruction: str, temperature: float
    ) -> LiteLLMSession:
        return LiteLLMSession(model_name, system_instruction, temperature)


class AsyncLiteLLMTransport:
    def open_session(
        self, model_name: str, system_instruction: str, temperature: float
    ) -> AsyncLiteLLMSession:
        return AsyncLiteLLMSession(model_name, system_instruction, temperature)
