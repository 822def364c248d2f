"""
Generate node: asks the reasoning service for the next action.

The full conversation and both action schemas are sent on every call. The
response is recorded as an AssistantTurn, then classified:

  - no action request      → nudge the model, count an attempt
  - unknown action name    → tool result explaining the choices, count an attempt
  - invalid payload        → tool result with the validation error, count an attempt
  - install_dependency     → route to the install node
  - execute_and_test       → route to the test node

Only the first action request is executed; any extra requests in the same
response are answered immediately with an "ignored" tool result.
"""

import logging
from typing import Any

from agent.conversation import ActionCall, AssistantTurn, Conversation, ToolTurn, UserTurn, to_messages
from agent.events import action_rejected_event, attempt_start_event, no_action_event
from agent.state import RepairState
from llm.base import ToolCall
from llm.prompt_loader import get_action_schemas, render_template
from llm.router import LLMRouter
from llm.schema_validator import StructuredOutputError, UnknownActionError, validate_action

logger = logging.getLogger(__name__)

ROLE = "repair_agent"
EXECUTE_AND_TEST = "execute_and_test"
INSTALL_DEPENDENCY = "install_dependency"


def _record_calls(tool_calls: list[ToolCall], conversation: Conversation) -> tuple[ActionCall, ...]:
    """Convert tool calls to ActionCalls with ids unique within the session.

    Some backends (Ollama) number calls per response, so ids repeat.
    """
    taken = set(conversation.issued_call_ids())
    actions = []
    for call in tool_calls:
        call_id = call.id or f"call_{len(conversation)}"
        while call_id in taken:
            call_id = f"{call_id}_{len(conversation)}"
        taken.add(call_id)
        actions.append(ActionCall(call_id=call_id, name=call.name, arguments=call.arguments))
    return tuple(actions)


async def generate_action(
    state: RepairState,
    router: LLMRouter,
) -> dict[str, Any]:
    """LangGraph node: request one structured action from the reasoning service."""
    attempts = state["attempts"]
    attempt = attempts + 1
    events = list(state.get("events", []))
    conversation = state["conversation"]

    events.append(attempt_start_event(attempt, state["max_attempts"]).to_dict())
    logger.info("Attempt %d/%d: requesting action", attempt, state["max_attempts"])

    response = await router.generate(ROLE, to_messages(conversation))

    actions = _record_calls(response.tool_calls, conversation)
    conversation = conversation.append(AssistantTurn(content=response.text, actions=actions))

    if not actions:
        logger.warning("No action returned (attempt=%d)", attempt)
        events.append(no_action_event(attempt, text=response.text).to_dict())
        conversation = conversation.append(UserTurn(render_template(ROLE, "no_action", {})))
        return {
            "conversation": conversation,
            "attempts": attempts + 1,
            "pending_action": None,
            "events": events,
        }

    first, extra = actions[0], actions[1:]
    for action in extra:
        conversation = conversation.append(
            ToolTurn(call_id=action.call_id, content=render_template(ROLE, "ignored_action", {}))
        )

    try:
        request = validate_action(first.call_id, first.name, first.arguments, get_action_schemas(ROLE))
    except UnknownActionError as exc:
        content = render_template(ROLE, "unknown_action", {"name": exc.name})
        return _rejected(state, conversation, events, first.call_id, content, str(exc))
    except StructuredOutputError as exc:
        content = render_template(ROLE, "invalid_action", {"error": str(exc)})
        return _rejected(state, conversation, events, first.call_id, content, str(exc))

    logger.info("Action %s accepted (attempt=%d)", request.name, attempt)

    if request.name == INSTALL_DEPENDENCY:
        return {
            "conversation": conversation,
            "pending_action": None,
            "pending_dependency": {
                "name": request.arguments["dependency"].strip(),
                "module": "",
                "origin": "model",
                "call_id": request.call_id,
            },
            "events": events,
        }

    return {
        "conversation": conversation,
        "pending_action": request,
        "events": events,
    }


def _rejected(
    state: RepairState,
    conversation: Conversation,
    events: list[dict[str, Any]],
    call_id: str,
    content: str,
    reason: str,
) -> dict[str, Any]:
    attempt = state["attempts"] + 1
    logger.warning("Action rejected (attempt=%d): %s", attempt, reason)
    events.append(action_rejected_event(reason, attempt).to_dict())
    return {
        "conversation": conversation.append(ToolTurn(call_id=call_id, content=content)),
        "attempts": state["attempts"] + 1,
        "pending_action": None,
        "events": events,
    }
