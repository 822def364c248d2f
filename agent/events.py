"""
Progress event definitions for the repair agent.

Events are appended to RepairState.events and forwarded through the event
bus. The message text is consumed downstream by substring matching, so the
phrases below are a contract: change them only together with every
consumer.

Event types are string constants to keep them JSON-serializable.
"""

from dataclasses import dataclass, field, asdict
from typing import Any
import time


# --- Event type constants ---
STEP = "step"
RETRIEVAL = "retrieval"
ATTEMPT_START = "attempt_start"
NO_ACTION = "no_action"
ACTION_REJECTED = "action_rejected"
TEST_RUN_START = "test_run_start"
TEST_RUN_RESULT = "test_run_result"
DEPENDENCY_INSTALL_START = "dependency_install_start"
DEPENDENCY_INSTALL_RESULT = "dependency_install_result"
SUCCESS = "success"
FAILURE = "failure"
ERROR = "error"

# --- Contract phrases ---
GENERATED_CODE_FIX = "Generated code fix"
TESTS_PASSED = "Test cases passed!"
TESTS_FAILED = "Test cases failed"
FINAL_WORKING_FIX = "Final working fix"


@dataclass
class AgentEvent:
    """
    Base event structure emitted by every node.

    Keeping payload optional allows lightweight step events that carry
    only a message, while richer events carry structured data for the UI.
    """
    type: str
    message: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
    attempt: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# --- Constructor helpers, one per event type ---

def step_event(message: str, attempt: int = 0, **payload) -> AgentEvent:
    return AgentEvent(type=STEP, message=message, attempt=attempt, payload=payload)


def retrieval_event(identifiers: list[str]) -> AgentEvent:
    return AgentEvent(
        type=RETRIEVAL,
        message=f"Retrieved {len(identifiers)} relevant files: {', '.join(identifiers) or 'none'}",
        payload={"identifiers": identifiers},
    )


def attempt_start_event(attempt: int, max_attempts: int) -> AgentEvent:
    return AgentEvent(
        type=ATTEMPT_START,
        message=f"Attempt {attempt}/{max_attempts}: generating code fix...",
        attempt=attempt,
        payload={"max_attempts": max_attempts},
    )


def no_action_event(attempt: int, text: str = "") -> AgentEvent:
    return AgentEvent(
        type=NO_ACTION,
        message="No action returned by the model.",
        attempt=attempt,
        payload={"text": text},
    )


def action_rejected_event(reason: str, attempt: int) -> AgentEvent:
    return AgentEvent(
        type=ACTION_REJECTED,
        message=f"Invalid action request: {reason}",
        attempt=attempt,
        payload={"reason": reason},
    )


def test_run_start_event(code: str, tests: list[str], attempt: int) -> AgentEvent:
    return AgentEvent(
        type=TEST_RUN_START,
        message=f"{GENERATED_CODE_FIX}. Running test cases...",
        attempt=attempt,
        payload={"code": code, "tests": tests},
    )


def test_run_result_event(passed: bool, summary: str, attempt: int) -> AgentEvent:
    if passed:
        message = TESTS_PASSED
    elif summary:
        message = f"{TESTS_FAILED}: {summary.splitlines()[0]}"
    else:
        message = f"{TESTS_FAILED}: unknown error"
    return AgentEvent(
        type=TEST_RUN_RESULT,
        message=message,
        attempt=attempt,
        payload={"passed": passed, "summary": summary},
    )


def install_start_event(dependency: str, attempt: int, automatic: bool = False) -> AgentEvent:
    if automatic:
        message = f"Missing dependency '{dependency}' detected. Installing automatically..."
    else:
        message = f"Installing dependency '{dependency}'..."
    return AgentEvent(
        type=DEPENDENCY_INSTALL_START,
        message=message,
        attempt=attempt,
        payload={"dependency": dependency, "automatic": automatic},
    )


def install_result_event(dependency: str, success: bool, output: str, attempt: int) -> AgentEvent:
    if success:
        message = f"Dependency '{dependency}' installed successfully."
    else:
        reason = output.strip().splitlines()[-1] if output.strip() else "unknown error"
        message = f"Dependency '{dependency}' installation failed: {reason}"
    return AgentEvent(
        type=DEPENDENCY_INSTALL_RESULT,
        message=message,
        attempt=attempt,
        payload={"dependency": dependency, "success": success, "output": output},
    )


def success_event(code: str, tests: list[str], attempt: int) -> AgentEvent:
    return AgentEvent(
        type=SUCCESS,
        message=f"{FINAL_WORKING_FIX}:",
        attempt=attempt,
        payload={"code": code, "tests": tests},
    )


def failure_event(attempts: int, reason: str = "exhausted") -> AgentEvent:
    return AgentEvent(
        type=FAILURE,
        message=f"Failed to produce a working fix after {attempts} attempts.",
        attempt=attempts,
        payload={"attempts": attempts, "reason": reason},
    )


def error_event(message: str) -> AgentEvent:
    return AgentEvent(type=ERROR, message=f"Error: {message}", payload={"error": message})
