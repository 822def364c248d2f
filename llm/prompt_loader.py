"""
Role prompt files.

Each role the agent speaks as (the repair agent, the explainer) has one YAML
file under llm/prompts/ holding its system prompt, the named message
templates the graph nodes render, and, for tool-calling roles, the action
definitions offered to the model. Files are parsed once per process.
"""

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

# Installed as package data alongside this module
_PROMPTS_DIR = Path(__file__).parent / "prompts"


class PromptFileError(ValueError):
    """A role file exists but does not have the expected shape."""


class _SafeMap(dict):
    def __missing__(self, key: str) -> str:
        return f"<MISSING:{key}>"


@dataclass(frozen=True)
class RolePrompt:
    role: str
    system: str
    templates: dict[str, str] = field(default_factory=dict)
    tools: list[dict[str, Any]] = field(default_factory=list)

    def action_schemas(self) -> dict[str, dict]:
        """Map each offered action name to the JSON schema of its arguments."""
        return {t["function"]["name"]: t["function"].get("parameters", {}) for t in self.tools}

    def render(self, key: str, variables: dict[str, Any]) -> str:
        """
        Fill a named template.

        Absent variables render as '<MISSING:name>' so an incomplete context
        shows up in the transcript instead of raising mid-repair.
        """
        if key not in self.templates:
            raise KeyError(
                f"Template '{key}' not found for role '{self.role}'. "
                f"Available: {sorted(self.templates)}"
            )
        return self.templates[key].format_map(_SafeMap(variables)).strip()


def list_available_roles() -> list[str]:
    """Roles that have a YAML file in the prompts directory."""
    return sorted(p.stem for p in _PROMPTS_DIR.glob("*.yaml"))


@lru_cache(maxsize=None)
def load_role(role: str) -> RolePrompt:
    path = _PROMPTS_DIR / f"{role}.yaml"
    if not path.exists():
        raise FileNotFoundError(
            f"Prompt file not found: {path}. Available roles: {list_available_roles()}"
        )

    with open(path, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}

    system = data.get("system")
    templates = data.get("templates") or {}
    tools = data.get("tools") or []
    if not isinstance(system, str) or not system.strip():
        raise PromptFileError(f"{path.name}: 'system' must be a non-empty string")
    if not isinstance(templates, dict):
        raise PromptFileError(f"{path.name}: 'templates' must be a mapping")
    if not isinstance(tools, list):
        raise PromptFileError(f"{path.name}: 'tools' must be a list")

    return RolePrompt(role=role, system=system.strip(), templates=templates, tools=tools)


def get_system_prompt(role: str) -> str:
    return load_role(role).system


def get_tools(role: str) -> list[dict[str, Any]]:
    """OpenAI-style function tool definitions for the role."""
    return load_role(role).tools


def get_action_schemas(role: str) -> dict[str, dict]:
    return load_role(role).action_schemas()


def render_template(role: str, template_key: str, variables: dict[str, Any]) -> str:
    return load_role(role).render(template_key, variables)
