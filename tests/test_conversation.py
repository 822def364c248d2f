"""
Tests for the append-only conversation log.
"""

import pytest

from agent.conversation import (
    ActionCall,
    AssistantTurn,
    Conversation,
    ToolTurn,
    UserTurn,
    to_messages,
)


def _with_call(call_id="call_1"):
    return Conversation().append(
        UserTurn("fix it"),
        AssistantTurn("", actions=(ActionCall(call_id, "execute_and_test", "{}"),)),
    )


def test_append_returns_new_conversation():
    empty = Conversation()
    grown = empty.append(UserTurn("hello"))
    assert len(empty) == 0
    assert len(grown) == 1
    assert grown.last == UserTurn("hello")


def test_tool_turn_must_answer_issued_call():
    with pytest.raises(ValueError):
        Conversation().append(UserTurn("hi"), ToolTurn("call_1", "result"))


def test_tool_turn_answers_call_once():
    conversation = _with_call().append(ToolTurn("call_1", "ok"))
    assert conversation.unresolved_call_ids() == []
    with pytest.raises(ValueError):
        conversation.append(ToolTurn("call_1", "again"))


def test_unresolved_calls_tracked_in_issue_order():
    conversation = Conversation().append(
        AssistantTurn("", actions=(
            ActionCall("a", "execute_and_test", "{}"),
            ActionCall("b", "install_dependency", "{}"),
        )),
    )
    assert conversation.unresolved_call_ids() == ["a", "b"]
    conversation = conversation.append(ToolTurn("b", "ignored"))
    assert conversation.unresolved_call_ids() == ["a"]


def test_to_messages_renders_openai_shape():
    conversation = _with_call().append(ToolTurn("call_1", "Test cases passed!"))
    messages = to_messages(conversation)
    assert messages[0] == {"role": "user", "content": "fix it"}
    assert messages[1]["role"] == "assistant"
    assert messages[1]["tool_calls"] == [
        {
            "id": "call_1",
            "type": "function",
            "function": {"name": "execute_and_test", "arguments": "{}"},
        }
    ]
    assert messages[2] == {"role": "tool", "tool_call_id": "call_1", "content": "Test cases passed!"}


def test_assistant_without_actions_has_no_tool_calls_key():
    messages = to_messages(Conversation().append(AssistantTurn("just text")))
    assert messages == [{"role": "assistant", "content": "just text"}]
