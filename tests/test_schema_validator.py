"""
Tests for action request parsing and schema validation.
"""

import json

import pytest

from llm.prompt_loader import get_action_schemas
from llm.schema_validator import (
    StructuredOutputError,
    UnknownActionError,
    parse_arguments,
    validate_action,
)

_SIMPLE_SCHEMA = {
    "type": "object",
    "required": ["code"],
    "properties": {
        "code": {"type": "string"},
        "explanation": {"type": "string"},
    },
}


@pytest.fixture
def schemas():
    return get_action_schemas("repair_agent")


def test_valid_json():
    raw = '{"code": "def f(): pass", "explanation": "simple"}'
    result = parse_arguments(raw, _SIMPLE_SCHEMA)
    assert result["code"] == "def f(): pass"


def test_json_with_markdown_fence():
    raw = '```json\n{"code": "def f(): pass", "explanation": "simple"}\n```'
    result = parse_arguments(raw, _SIMPLE_SCHEMA)
    assert result["code"] == "def f(): pass"


def test_fence_inside_string_value_is_kept(schemas):
    code = 'DOC = """```json\n{}\n```"""\nx = 1'
    raw = json.dumps({"code": code, "tests": ["assert x == 1"]})
    action = validate_action("c", "execute_and_test", raw, schemas)
    assert action.arguments["code"] == code


def test_fenced_payload_containing_fence_is_unwrapped():
    inner = json.dumps({"code": "s = '```'"})
    result = parse_arguments(f"```json\n{inner}\n```", _SIMPLE_SCHEMA)
    assert result["code"] == "s = '```'"


def test_invalid_json_raises():
    with pytest.raises(StructuredOutputError):
        parse_arguments("this is not json", _SIMPLE_SCHEMA)


def test_empty_arguments_raise():
    with pytest.raises(StructuredOutputError, match="empty"):
        parse_arguments("   ", _SIMPLE_SCHEMA)


def test_non_object_raises():
    with pytest.raises(StructuredOutputError, match="JSON object"):
        parse_arguments('["code"]', _SIMPLE_SCHEMA)


def test_schema_violation_raises():
    with pytest.raises(StructuredOutputError) as info:
        parse_arguments('{"code": 123}', _SIMPLE_SCHEMA)
    assert info.value.raw_text == '{"code": 123}'


def test_no_schema_skips_validation():
    assert parse_arguments('{"anything": true}', {}) == {"anything": True}


def test_literal_newlines_in_string_value_parse():
    # Real newline characters inside the JSON string instead of \n escapes
    raw = '{"code": "def f():\n    return 1\n"}'
    result = parse_arguments(raw, _SIMPLE_SCHEMA)
    assert "return 1" in result["code"]


def test_execute_and_test_accepted(schemas):
    raw = json.dumps({"code": "x = 1", "tests": ["assert x == 1"]})
    action = validate_action("call_7", "execute_and_test", raw, schemas)
    assert action.call_id == "call_7"
    assert action.arguments["tests"] == ["assert x == 1"]


def test_execute_and_test_requires_tests(schemas):
    with pytest.raises(StructuredOutputError):
        validate_action("c", "execute_and_test", json.dumps({"code": "x = 1"}), schemas)


def test_execute_and_test_rejects_empty_test_list(schemas):
    raw = json.dumps({"code": "x = 1", "tests": []})
    with pytest.raises(StructuredOutputError):
        validate_action("c", "execute_and_test", raw, schemas)


def test_execute_and_test_rejects_extra_fields(schemas):
    raw = json.dumps({"code": "x = 1", "tests": ["assert x"], "notes": "hi"})
    with pytest.raises(StructuredOutputError):
        validate_action("c", "execute_and_test", raw, schemas)


def test_install_dependency_requires_name(schemas):
    with pytest.raises(StructuredOutputError):
        validate_action("c", "install_dependency", json.dumps({"dependency": ""}), schemas)


def test_unknown_action_name(schemas):
    with pytest.raises(UnknownActionError) as info:
        validate_action("c", "delete_repository", "{}", schemas)
    assert info.value.name == "delete_repository"
    assert isinstance(info.value, StructuredOutputError)
