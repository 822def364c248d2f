"""
LangGraph state definition for the repair agent.

State is a TypedDict; LangGraph passes it between nodes immutably.
Each node returns a partial dict that is merged into state.

Design decisions:
  - conversation is an immutable Conversation; nodes return a new one
  - attempts counts recoverable failures; the loop stops at max_attempts
  - pending_action / pending_dependency route the graph after generate
    and after a failed test run
  - installed_dependencies remembers successful installs so a package that
    is still missing afterwards is not auto-installed again
"""

from dataclasses import dataclass
from typing import Any, TypedDict, Union

from agent.conversation import Conversation
from llm.schema_validator import ActionRequest


@dataclass(frozen=True)
class RepairSuccess:
    code: str
    tests: tuple[str, ...]
    attempts: int

    def to_dict(self) -> dict[str, Any]:
        return {"status": "success", "code": self.code, "tests": list(self.tests), "attempts": self.attempts}


@dataclass(frozen=True)
class RepairFailure:
    attempts: int
    reason: str = "exhausted"

    def to_dict(self) -> dict[str, Any]:
        return {"status": "failure", "attempts": self.attempts, "reason": self.reason}


RepairOutcome = Union[RepairSuccess, RepairFailure]


class PendingDependency(TypedDict):
    # Name passed to the installer
    name: str
    # Module the sandbox reported missing (auto-recovery only)
    module: str
    # 'model' when requested via install_dependency, 'auto' when detected
    origin: str
    # Tool call to answer ('model' origin only)
    call_id: str


class RepairState(TypedDict):
    # --- Task context (set once at graph entry, never mutated) ---
    title: str
    description: str
    code_context: str
    max_attempts: int

    # --- Conversation with the reasoning service ---
    conversation: Conversation

    # --- Attempt budget ---
    attempts: int

    # --- Routing ---
    pending_action: ActionRequest | None
    pending_dependency: PendingDependency | None
    installed_dependencies: list[str]

    # --- Terminal status ---
    # 'running' | 'success' | 'failure'
    status: str
    outcome: RepairOutcome | None

    # --- Event stream (appended by each node for UI streaming) ---
    events: list[dict[str, Any]]
