"""
Mock LLM provider for deterministic unit testing.

Returns scripted ChatResponses in order. When the script runs out it falls
back to a default response: a valid execute_and_test action whose code and
tests pass. Never makes network calls, so it is safe for offline CI.
"""

import json
from typing import AsyncIterator

from ..base import BaseLLMProvider, ChatRequest, ChatResponse, ToolCall

_DEFAULT_ACTION = {
    "code": (
        "def add(a, b):\n"
        "    return a + b\n"
    ),
    "tests": [
        "assert add(1, 2) == 3",
        "assert add(-1, 1) == 0",
    ],
}


def action_response(name: str, arguments: dict | str, call_id: str = "call_0", text: str = "") -> ChatResponse:
    """Build a response carrying exactly one tool call."""
    raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
    return ChatResponse(
        text=text,
        tool_calls=[ToolCall(id=call_id, name=name, arguments=raw)],
        provider="mock",
        model="mock-v1",
    )


def text_response(text: str) -> ChatResponse:
    """Build a response with no action request."""
    return ChatResponse(text=text, provider="mock", model="mock-v1")


class MockProvider(BaseLLMProvider):
    """
    Deterministic provider for testing without model dependencies.

    Every received ChatRequest is recorded in .requests so tests can
    inspect the conversation the agent sent.
    """

    def __init__(self, responses: list[ChatResponse] | None = None) -> None:
        self._responses = list(responses or [])
        self._counter = 0
        self.requests: list[ChatRequest] = []

    @property
    def provider_name(self) -> str:
        return "mock"

    @property
    def model_name(self) -> str:
        return "mock-v1"

    async def chat(self, request: ChatRequest) -> ChatResponse:
        self.requests.append(request)
        self._counter += 1
        if self._responses:
            return self._responses.pop(0)
        return action_response(
            "execute_and_test",
            _DEFAULT_ACTION,
            call_id=f"call_{self._counter}",
            text="Implemented add().",
        )

    async def stream(self, request: ChatRequest) -> AsyncIterator[str]:
        response = await self.chat(request)
        for word in response.text.split(" "):
            yield word + " "
