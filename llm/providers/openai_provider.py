"""
OpenAI provider: chat completions with function tools over httpx.

Works against any OpenAI-compatible server (set OPENAI_BASE_URL).
Default model: gpt-4o-mini. Override with OPENAI_MODEL.
Reasoning models accept a reasoning_effort hint; it is sent only when the
request carries one.

Streaming uses the server-sent events variant of the same endpoint and is
only used for narration; action parsing always uses the complete response.
"""

import json
import os
from typing import Any, AsyncIterator

import httpx

from ..base import (
    BaseLLMProvider,
    ChatRequest,
    ChatResponse,
    ReasoningServiceError,
    ToolCall,
)

_DEFAULT_BASE_URL = "https://api.openai.com/v1"
_DEFAULT_MODEL = "gpt-4o-mini"
_TIMEOUT_SECONDS = float(os.environ.get("OPENAI_TIMEOUT", "600"))


class OpenAIProvider(BaseLLMProvider):

    def __init__(
        self,
        model: str | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._model = model or os.environ.get("OPENAI_MODEL", _DEFAULT_MODEL)
        self._api_key = api_key or os.environ.get("OPENAI_API_KEY", "")
        self._base_url = (
            base_url or os.environ.get("OPENAI_BASE_URL", _DEFAULT_BASE_URL)
        ).rstrip("/")
        self._transport = transport

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def model_name(self) -> str:
        return self._model

    def _payload(self, request: ChatRequest, stream: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": [{"role": "system", "content": request.system_prompt}]
            + request.messages,
            "temperature": request.temperature,
            "max_tokens": request.max_new_tokens,
            "stream": stream,
        }
        if request.tools:
            payload["tools"] = request.tools
        if request.reasoning_effort:
            payload["reasoning_effort"] = request.reasoning_effort
        return payload

    def _client(self) -> httpx.AsyncClient:
        timeout_config = httpx.Timeout(connect=10.0, read=_TIMEOUT_SECONDS, write=30.0, pool=10.0)
        return httpx.AsyncClient(
            timeout=timeout_config,
            transport=self._transport,
            headers={"Authorization": f"Bearer {self._api_key}"},
        )

    async def chat(self, request: ChatRequest) -> ChatResponse:
        async with self._client() as client:
            try:
                response = await client.post(
                    f"{self._base_url}/chat/completions",
                    json=self._payload(request, stream=False),
                )
                response.raise_for_status()
                data = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                raise ReasoningServiceError(
                    f"OpenAI chat request failed for model '{self._model}': {exc}"
                ) from exc

        try:
            message = data["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ReasoningServiceError(f"Malformed chat response: {exc}") from exc
        if not isinstance(message, dict):
            raise ReasoningServiceError("Malformed chat response: message is not an object")

        tool_calls = [
            ToolCall(
                id=call.get("id", f"call_{i}"),
                name=call.get("function", {}).get("name", ""),
                arguments=call.get("function", {}).get("arguments", "") or "",
            )
            for i, call in enumerate(message.get("tool_calls") or [])
        ]
        usage = data.get("usage") or {}

        return ChatResponse(
            text=message.get("content") or "",
            tool_calls=tool_calls,
            input_tokens=usage.get("prompt_tokens", -1),
            output_tokens=usage.get("completion_tokens", -1),
            provider=self.provider_name,
            model=self._model,
        )

    async def stream(self, request: ChatRequest) -> AsyncIterator[str]:
        async with self._client() as client:
            try:
                async with client.stream(
                    "POST",
                    f"{self._base_url}/chat/completions",
                    json=self._payload(request, stream=True),
                ) as response:
                    response.raise_for_status()
                    async for line in response.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        data = line.removeprefix("data:").strip()
                        if data == "[DONE]":
                            break
                        try:
                            chunk = json.loads(data)
                        except json.JSONDecodeError:
                            continue
                        choices = chunk.get("choices") or [{}]
                        fragment = choices[0].get("delta", {}).get("content") or ""
                        if fragment:
                            yield fragment
            except httpx.HTTPError as exc:
                raise ReasoningServiceError(f"OpenAI stream failed: {exc}") from exc
