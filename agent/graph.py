"""
LangGraph state machine definition for the repair agent.

Graph topology:
  generate ──(execute_and_test)──→ run_tests ──(pass)──→ END
     ↑  │                              │
     │  └─(install_dependency)─→ install_dependency ←─(missing module)─┘
     │                              │
     └──────────────────────────────┘   (every other outcome)

  Any node ──(attempts >= max_attempts)──→ exhausted → END

Every node routes through _route(), so the attempt ceiling is checked after
each transition regardless of what is pending.

Node functions accept state + collaborators to allow dependency injection in
tests. Collaborators are bound via functools.partial before nodes are added.
"""

import functools
import logging
from typing import Any, AsyncGenerator, Literal

from langgraph.errors import GraphRecursionError
from langgraph.graph import END, StateGraph

from agent.conversation import Conversation, UserTurn
from agent.events import failure_event
from agent.nodes.generate_action import ROLE, generate_action
from agent.nodes.install_dependency import install_dependency
from agent.nodes.run_tests import run_tests
from agent.state import RepairFailure, RepairState
from llm.prompt_loader import render_template
from llm.router import LLMRouter
from sandbox.python_executor import SandboxExecutor

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5
# Successful installs do not consume attempts; this bounds such loops
_STEPS_PER_ATTEMPT = 12


def _exhausted(state: RepairState) -> dict[str, Any]:
    """Terminal node: attempt budget used up without a passing run."""
    logger.warning(
        "Max attempts (%d) reached. Terminating repair loop.",
        state["max_attempts"],
    )
    events = list(state.get("events", []))
    events.append(failure_event(state["attempts"]).to_dict())
    return {
        "status": "failure",
        "outcome": RepairFailure(attempts=state["attempts"]),
        "pending_action": None,
        "pending_dependency": None,
        "events": events,
    }


def _route(
    state: RepairState,
) -> Literal["generate", "run_tests", "install_dependency", "exhausted", "__end__"]:
    """Conditional edge shared by all working nodes."""
    if state.get("status") == "success":
        return "__end__"
    if state["attempts"] >= state["max_attempts"]:
        return "exhausted"
    if state.get("pending_dependency"):
        return "install_dependency"
    if state.get("pending_action"):
        return "run_tests"
    return "generate"


_ROUTES = {
    "generate": "generate",
    "run_tests": "run_tests",
    "install_dependency": "install_dependency",
    "exhausted": "exhausted",
    "__end__": END,
}


def build_graph(
    router: LLMRouter | None = None,
    executor: SandboxExecutor | None = None,
):
    """
    Construct and compile the repair state graph.

    Args:
        router: Optional pre-constructed LLMRouter. If None, auto-resolved.
        executor: Optional sandbox executor. If None, a default SandboxExecutor.

    Returns:
        Compiled LangGraph graph ready for invocation.
    """
    if router is None:
        router = LLMRouter()
    if executor is None:
        executor = SandboxExecutor()

    graph = StateGraph(RepairState)

    graph.add_node("generate", functools.partial(generate_action, router=router))
    graph.add_node("run_tests", functools.partial(run_tests, executor=executor))
    graph.add_node("install_dependency", functools.partial(install_dependency, executor=executor))
    graph.add_node("exhausted", _exhausted)

    graph.set_entry_point("generate")
    for node in ("generate", "run_tests", "install_dependency"):
        graph.add_conditional_edges(node, _route, _ROUTES)
    graph.add_edge("exhausted", END)

    return graph.compile()


def make_initial_state(
    title: str,
    description: str,
    code_context: str,
    max_attempts: int = MAX_ATTEMPTS,
    events: list[dict[str, Any]] | None = None,
) -> RepairState:
    """Construct a clean initial state for a new repair session."""
    prompt = render_template(
        ROLE,
        "initial",
        {"title": title, "description": description, "code_context": code_context},
    )
    return RepairState(
        title=title,
        description=description,
        code_context=code_context,
        max_attempts=max_attempts,
        conversation=Conversation().append(UserTurn(prompt)),
        attempts=0,
        pending_action=None,
        pending_dependency=None,
        installed_dependencies=[],
        status="running",
        outcome=None,
        events=list(events or []),
    )


def _step_limit_state(state: RepairState) -> RepairState:
    events = list(state.get("events", []))
    events.append(failure_event(state["attempts"], reason="step_limit").to_dict())
    return {
        **state,
        "status": "failure",
        "outcome": RepairFailure(attempts=state["attempts"], reason="step_limit"),
        "events": events,
    }


async def iterate_states(
    initial_state: RepairState,
    router: LLMRouter | None = None,
    executor: SandboxExecutor | None = None,
) -> AsyncGenerator[RepairState, None]:
    """Yield the full state after every graph step, ending in a terminal state."""
    app = build_graph(router=router, executor=executor)
    limit = initial_state["max_attempts"] * _STEPS_PER_ATTEMPT + 5
    latest = initial_state
    try:
        async for latest in app.astream(
            initial_state,
            config={"recursion_limit": limit},
            stream_mode="values",
        ):
            yield latest
    except GraphRecursionError:
        logger.warning("Step limit (%d) reached. Terminating repair loop.", limit)
        yield _step_limit_state(latest)


async def run_repair(
    title: str,
    description: str,
    code_context: str,
    max_attempts: int = MAX_ATTEMPTS,
    router: LLMRouter | None = None,
    executor: SandboxExecutor | None = None,
) -> RepairState:
    """
    High-level entry point: run the repair loop to completion and return
    the final state. The outcome is in final_state["outcome"].

    For streaming use cases, use stream_repair() instead.
    """
    final_state = make_initial_state(title, description, code_context, max_attempts)
    async for final_state in iterate_states(final_state, router=router, executor=executor):
        pass
    return final_state


async def stream_repair(
    title: str,
    description: str,
    code_context: str,
    max_attempts: int = MAX_ATTEMPTS,
    router: LLMRouter | None = None,
    executor: SandboxExecutor | None = None,
    initial_events: list[dict[str, Any]] | None = None,
) -> AsyncGenerator[dict[str, Any], None]:
    """
    Stream progress events as they are produced by each node.

    The last event is always terminal (success or failure) and carries the
    RepairOutcome under payload["outcome"].
    """
    state = make_initial_state(title, description, code_context, max_attempts, initial_events)

    # Each state holds the FULL accumulated events list,
    # so yield only the tail not seen yet.
    seen = 0
    async for state in iterate_states(state, router=router, executor=executor):
        events = state.get("events", [])
        new_events = events[seen:]
        seen = len(events)
        for event in new_events:
            if state.get("outcome") is not None and event is events[-1]:
                event = {**event, "payload": {**event["payload"], "outcome": state["outcome"].to_dict()}}
            yield event
