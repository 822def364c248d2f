"""
Action request parsing and validation.

Models frequently return malformed tool-call arguments. This module:
  1. Strips markdown code fences some models wrap around the JSON
  2. Parses the arguments (tolerating literal newlines inside strings)
  3. Validates them against the action's JSON schema
  4. Raises StructuredOutputError so the agent can report the problem back
     to the model and try again
"""

import json
import re
from dataclasses import dataclass
from typing import Any

import jsonschema
from jsonschema import ValidationError as JsonSchemaValidationError


class StructuredOutputError(Exception):
    """Raised when an action request cannot be parsed or validated."""

    def __init__(self, message: str, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text


class UnknownActionError(StructuredOutputError):
    """The model asked for an action that is not on offer."""

    def __init__(self, name: str, raw_text: str = "") -> None:
        super().__init__(f"Unknown action '{name}'", raw_text=raw_text)
        self.name = name


@dataclass(frozen=True)
class ActionRequest:
    """A validated action request."""
    call_id: str
    name: str
    arguments: dict[str, Any]


_FENCED = re.compile(r"^```(?:json)?\s*([\s\S]*?)\s*```$", re.IGNORECASE)


def _strip_markdown_fences(text: str) -> str:
    """Unwrap text that is entirely one fenced block; fences inside values stay."""
    text = text.strip()
    match = _FENCED.match(text)
    if match:
        return match.group(1).strip()
    return text


def parse_arguments(raw_text: str, schema: dict) -> dict[str, Any]:
    """
    Parse raw tool-call arguments into a validated dict.

    Raises StructuredOutputError if:
      - text cannot be parsed as a JSON object
      - parsed object fails schema validation
    """
    cleaned = _strip_markdown_fences(raw_text or "")
    if not cleaned:
        raise StructuredOutputError("Action arguments are empty", raw_text=raw_text)

    try:
        # strict=False accepts literal control characters (raw tabs/newlines)
        # inside JSON string values, which models often emit when writing code.
        parsed = json.loads(cleaned, strict=False)
    except json.JSONDecodeError as exc:
        raise StructuredOutputError(
            f"JSON parse failed: {exc}",
            raw_text=raw_text,
        ) from exc

    if not isinstance(parsed, dict):
        raise StructuredOutputError(
            f"Action arguments must be a JSON object, got {type(parsed).__name__}",
            raw_text=raw_text,
        )

    if schema:
        try:
            jsonschema.validate(instance=parsed, schema=schema)
        except JsonSchemaValidationError as exc:
            raise StructuredOutputError(
                f"Schema validation failed: {exc.message}",
                raw_text=raw_text,
            ) from exc

    return parsed


def validate_action(
    call_id: str,
    name: str,
    raw_arguments: str,
    schemas: dict[str, dict],
) -> ActionRequest:
    """Check the action name against the offered schemas and parse its payload."""
    if name not in schemas:
        raise UnknownActionError(name, raw_text=raw_arguments)
    arguments = parse_arguments(raw_arguments, schemas[name])
    return ActionRequest(call_id=call_id, name=name, arguments=arguments)
