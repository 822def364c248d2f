"""
Append-only conversation log for one repair session.

A Turn is one of three closed variants: UserTurn, AssistantTurn, ToolTurn.
Conversation is immutable; append() returns a new Conversation so LangGraph
nodes can hand it back as a state update without mutating their input.

Invariant enforced by append(): a ToolTurn answers exactly one action call
issued by a preceding AssistantTurn, and each call is answered at most once.
"""

from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class ActionCall:
    """An action request as recorded in the conversation (raw arguments)."""
    call_id: str
    name: str
    arguments: str


@dataclass(frozen=True)
class UserTurn:
    content: str


@dataclass(frozen=True)
class AssistantTurn:
    content: str
    actions: tuple[ActionCall, ...] = ()


@dataclass(frozen=True)
class ToolTurn:
    call_id: str
    content: str


Turn = Union[UserTurn, AssistantTurn, ToolTurn]


@dataclass(frozen=True)
class Conversation:
    turns: tuple[Turn, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.turns)

    def __iter__(self):
        return iter(self.turns)

    @property
    def last(self) -> Turn | None:
        return self.turns[-1] if self.turns else None

    def issued_call_ids(self) -> list[str]:
        return [
            action.call_id
            for turn in self.turns
            if isinstance(turn, AssistantTurn)
            for action in turn.actions
        ]

    def resolved_call_ids(self) -> set[str]:
        return {turn.call_id for turn in self.turns if isinstance(turn, ToolTurn)}

    def unresolved_call_ids(self) -> list[str]:
        resolved = self.resolved_call_ids()
        return [cid for cid in self.issued_call_ids() if cid not in resolved]

    def append(self, *turns: Turn) -> "Conversation":
        conversation = self
        for turn in turns:
            if isinstance(turn, ToolTurn):
                if turn.call_id not in conversation.unresolved_call_ids():
                    raise ValueError(
                        f"Tool result for call '{turn.call_id}' has no pending action request"
                    )
            conversation = Conversation(turns=conversation.turns + (turn,))
        return conversation


def to_messages(conversation: Conversation) -> list[dict[str, Any]]:
    """Render the log as OpenAI-style chat messages."""
    messages: list[dict[str, Any]] = []
    for turn in conversation:
        if isinstance(turn, UserTurn):
            messages.append({"role": "user", "content": turn.content})
        elif isinstance(turn, AssistantTurn):
            message: dict[str, Any] = {"role": "assistant", "content": turn.content}
            if turn.actions:
                message["tool_calls"] = [
                    {
                        "id": action.call_id,
                        "type": "function",
                        "function": {"name": action.name, "arguments": action.arguments},
                    }
                    for action in turn.actions
                ]
            messages.append(message)
        elif isinstance(turn, ToolTurn):
            messages.append(
                {"role": "tool", "tool_call_id": turn.call_id, "content": turn.content}
            )
        else:
            raise TypeError(f"Unsupported turn type: {type(turn).__name__}")
    return messages
