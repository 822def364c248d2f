"""
Abstract base class for all reasoning-service providers.

Providers speak a chat protocol with function tools: they receive the full
conversation plus the available action schemas and return one assistant
message that may carry tool calls. Parsing and validating tool-call
arguments happens in the agent, not here.

All providers must implement async inference so the event loop never blocks.
Token counting is best-effort; providers that cannot count exactly return -1.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator


class ReasoningServiceError(Exception):
    """The reasoning service could not be reached or returned an error."""


@dataclass
class ToolCall:
    """One action request as emitted by the model (arguments not yet parsed)."""
    id: str
    name: str
    # Raw JSON text exactly as the model produced it
    arguments: str


@dataclass
class ChatRequest:
    """Normalized request passed to any provider."""
    system_prompt: str
    # OpenAI-style message dicts (see agent.conversation.to_messages)
    messages: list[dict[str, Any]]
    # OpenAI-style function tool definitions
    tools: list[dict[str, Any]] = field(default_factory=list)
    max_new_tokens: int = 4096
    temperature: float = 0.2
    # e.g. "low" | "medium" | "high"; None leaves the model default
    reasoning_effort: str | None = None
    # Caller-supplied metadata, not forwarded to models
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatResponse:
    """Normalized response returned from any provider."""
    text: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    input_tokens: int = -1
    output_tokens: int = -1
    provider: str = ""
    model: str = ""


class BaseLLMProvider(ABC):
    """
    Providers are stateless wrappers around model backends.
    They handle authentication and the HTTP wire format.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Identifier used in logs and ChatResponse.provider."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Active model identifier."""

    @abstractmethod
    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Return the complete assistant message for the conversation."""

    async def stream(self, request: ChatRequest) -> AsyncIterator[str]:
        """
        Yield content fragments as they arrive.

        Used for user-facing narration only. The default falls back to a
        single fragment holding the complete response text.
        """
        response = await self.chat(request)
        if response.text:
            yield response.text
