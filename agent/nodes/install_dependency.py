"""
Install node: installs one dependency in the sandbox.

Handles both origins:
  - 'model': the reasoning service called install_dependency. The result
    answers that tool call; success also asks the model to regenerate.
  - 'auto': a test run reported a missing module. The tool call was already
    answered by the test node, so the result is a user message asking the
    model to retry.

Attempt counting: a successful install never counts, a failed one always does.
"""

import logging
from typing import Any

from agent.conversation import ToolTurn, UserTurn
from agent.events import install_result_event, install_start_event
from agent.state import RepairState
from llm.context_builder import tail_to_tokens
from llm.prompt_loader import render_template
from sandbox.python_executor import SandboxExecutor

logger = logging.getLogger(__name__)

ROLE = "repair_agent"
_MAX_OUTPUT_TOKENS = 500


async def install_dependency(
    state: RepairState,
    executor: SandboxExecutor,
) -> dict[str, Any]:
    """LangGraph node: install the pending dependency and report back."""
    attempt = state["attempts"] + 1
    events = list(state.get("events", []))
    pending = state["pending_dependency"]
    name = pending["name"]
    automatic = pending["origin"] == "auto"

    events.append(install_start_event(name, attempt, automatic=automatic).to_dict())

    result = await executor.install_dependency(name)
    output = tail_to_tokens(result.output.strip(), _MAX_OUTPUT_TOKENS)

    events.append(install_result_event(name, result.success, result.output, attempt).to_dict())
    logger.info("Install %s (origin=%s): success=%s", name, pending["origin"], result.success)

    conversation = state["conversation"]
    variables = {"dependency": name, "module": pending["module"], "output": output}

    if automatic:
        template = "auto_install_succeeded" if result.success else "auto_install_failed"
        conversation = conversation.append(UserTurn(render_template(ROLE, template, variables)))
    elif result.success:
        conversation = conversation.append(
            ToolTurn(call_id=pending["call_id"], content=render_template(ROLE, "install_succeeded", variables)),
            UserTurn(render_template(ROLE, "regenerate_after_install", variables)),
        )
    else:
        conversation = conversation.append(
            ToolTurn(call_id=pending["call_id"], content=render_template(ROLE, "install_failed", variables))
        )

    update: dict[str, Any] = {
        "conversation": conversation,
        "pending_dependency": None,
        "events": events,
    }
    if result.success:
        update["installed_dependencies"] = [*state.get("installed_dependencies", []), name]
    else:
        update["attempts"] = state["attempts"] + 1
    return update
