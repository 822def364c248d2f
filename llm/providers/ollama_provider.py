"""
Ollama provider: local inference via the Ollama /api/chat endpoint.

Ollama runs as a local daemon and serves models via HTTP. Tool calling is
supported by recent models (llama3.1, qwen2.5-coder, ...).
Default model: llama3.1:8b, small enough for CPU-only development.

The provider expects Ollama to be running at http://localhost:11434.
Environment variable OLLAMA_BASE_URL overrides the default host.
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

_DEFAULT_BASE_URL = "http://localhost:11434"
_DEFAULT_MODEL = "llama3.1:8b"
# CPU inference on an 8B model can take several minutes per request.
_TIMEOUT_SECONDS = float(os.environ.get("OLLAMA_TIMEOUT", "600"))


def _to_ollama_messages(system_prompt: str, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Ollama expects tool-call arguments as objects, not JSON strings."""
    converted: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    for message in messages:
        message = dict(message)
        if message.get("tool_calls"):
            calls = []
            for call in message["tool_calls"]:
                raw = call["function"].get("arguments", "")
                try:
                    arguments = json.loads(raw) if raw else {}
                except json.JSONDecodeError:
                    arguments = {}
                calls.append({"function": {"name": call["function"]["name"], "arguments": arguments}})
            message["tool_calls"] = calls
        message.pop("tool_call_id", None)
        converted.append(message)
    return converted


class OllamaProvider(BaseLLMProvider):
    """
    Calls Ollama's /api/chat endpoint using the httpx async client.
    """

    def __init__(
        self,
        model: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._model = model or os.environ.get("OLLAMA_MODEL", _DEFAULT_MODEL)
        self._base_url = base_url or os.environ.get("OLLAMA_BASE_URL", _DEFAULT_BASE_URL)
        self._transport = transport

    @property
    def provider_name(self) -> str:
        return "ollama"

    @property
    def model_name(self) -> str:
        return self._model

    def _payload(self, request: ChatRequest, stream: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": _to_ollama_messages(request.system_prompt, request.messages),
            "stream": stream,
            "options": {
                "temperature": request.temperature,
                "num_predict": request.max_new_tokens,
            },
        }
        if request.tools:
            payload["tools"] = request.tools
        return payload

    def _client(self) -> httpx.AsyncClient:
        # Separate connect vs read timeouts: connect must be fast,
        # but read can be very long on CPU inference.
        timeout_config = httpx.Timeout(connect=10.0, read=_TIMEOUT_SECONDS, write=30.0, pool=10.0)
        return httpx.AsyncClient(timeout=timeout_config, transport=self._transport)

    async def chat(self, request: ChatRequest) -> ChatResponse:
        async with self._client() as client:
            try:
                response = await client.post(
                    f"{self._base_url}/api/chat",
                    json=self._payload(request, stream=False),
                )
                response.raise_for_status()
                data = response.json()
            except httpx.ConnectError as exc:
                raise ReasoningServiceError(
                    f"Ollama not reachable at {self._base_url}. "
                    "Ensure `ollama serve` is running."
                ) from exc
            except httpx.ReadTimeout as exc:
                raise ReasoningServiceError(
                    f"Ollama read timeout after {_TIMEOUT_SECONDS}s for model '{self._model}'. "
                    "Set OLLAMA_TIMEOUT env var to increase the limit "
                    "or switch to a smaller model via OLLAMA_MODEL."
                ) from exc
            except httpx.HTTPError as exc:
                raise ReasoningServiceError(f"Ollama chat request failed: {exc}") from exc
            except ValueError as exc:
                raise ReasoningServiceError(f"Ollama returned a non-JSON body: {exc}") from exc

        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, dict):
            raise ReasoningServiceError("Malformed chat response: missing message object")
        tool_calls = []
        for i, call in enumerate(message.get("tool_calls") or []):
            function = call.get("function", {})
            arguments = function.get("arguments", {})
            if not isinstance(arguments, str):
                arguments = json.dumps(arguments)
            tool_calls.append(
                ToolCall(id=call.get("id", f"call_{i}"), name=function.get("name", ""), arguments=arguments)
            )

        return ChatResponse(
            text=message.get("content") or "",
            tool_calls=tool_calls,
            # Ollama reports eval_count (output tokens) and prompt_eval_count
            input_tokens=data.get("prompt_eval_count", -1),
            output_tokens=data.get("eval_count", -1),
            provider=self.provider_name,
            model=self._model,
        )

    async def stream(self, request: ChatRequest) -> AsyncIterator[str]:
        async with self._client() as client:
            try:
                async with client.stream(
                    "POST",
                    f"{self._base_url}/api/chat",
                    json=self._payload(request, stream=True),
                ) as response:
                    response.raise_for_status()
                    async for line in response.aiter_lines():
                        if not line.strip():
                            continue
                        chunk = json.loads(line)
                        fragment = (chunk.get("message") or {}).get("content", "")
                        if fragment:
                            yield fragment
                        if chunk.get("done"):
                            break
            except httpx.HTTPError as exc:
                raise ReasoningServiceError(f"Ollama stream failed: {exc}") from exc
            except ValueError as exc:
                raise ReasoningServiceError(f"Ollama stream returned malformed data: {exc}") from exc

    def is_available_sync(self) -> bool:
        """
        Synchronous health-check using httpx's sync client.

        Used by _resolve_provider() at router construction time, which may
        run before any async event loop is active.
        """
        try:
            r = httpx.get(f"{self._base_url}/api/tags", timeout=5.0)
            return r.status_code == 200
        except httpx.HTTPError:
            return False
