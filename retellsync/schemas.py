"""Shape checks for raw Retell API payloads.

Only the fields the sync engine relies on are validated; everything else
passes through untouched. Failures raise SchemaError and the caller decides
whether that is fatal (agents, LLMs, flows) or skippable (test cases).
"""

from __future__ import annotations

from typing import Any, Callable

from .errors import SchemaError
from .models import parse_response_engine


Validator = Callable[[Any], dict[str, Any]]


def _require_object(resource: str, value: Any) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise SchemaError(resource=resource, message=f"expected object, got {type(value).__name__}")
    return value


def _require_str(resource: str, raw: dict[str, Any], key: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str):
        raise SchemaError(resource=resource, message=f"{key}: expected string")
    return value


def _require_number(resource: str, raw: dict[str, Any], key: str) -> int | float:
    value = raw.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SchemaError(resource=resource, message=f"{key}: expected number")
    return value


def _optional_number(resource: str, raw: dict[str, Any], key: str) -> int | float | None:
    if raw.get(key) is None:
        return None
    return _require_number(resource, raw, key)


def _optional_bool(resource: str, raw: dict[str, Any], key: str) -> bool | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise SchemaError(resource=resource, message=f"{key}: expected bool")
    return value


def _check_engine(resource: str, raw: dict[str, Any]) -> None:
    try:
        parse_response_engine(raw.get("response_engine"))
    except ValueError as e:
        raise SchemaError(resource=resource, message=str(e)) from e


def validate_agent(value: Any) -> dict[str, Any]:
    raw = _require_object("agent", value)
    _require_str("agent", raw, "agent_id")
    _require_number("agent", raw, "version")
    _optional_bool("agent", raw, "is_published")
    _check_engine("agent", raw)
    return raw


def validate_llm(value: Any) -> dict[str, Any]:
    raw = _require_object("retell-llm", value)
    _require_str("retell-llm", raw, "llm_id")
    _optional_number("retell-llm", raw, "version")
    _optional_bool("retell-llm", raw, "is_published")
    return raw


def validate_flow(value: Any) -> dict[str, Any]:
    raw = _require_object("conversation-flow", value)
    _require_str("conversation-flow", raw, "conversation_flow_id")
    _require_number("conversation-flow", raw, "version")
    _optional_bool("conversation-flow", raw, "is_published")
    nodes = raw.get("nodes")
    if nodes is not None and (
        not isinstance(nodes, list) or not all(isinstance(n, dict) for n in nodes)
    ):
        raise SchemaError(resource="conversation-flow", message="nodes: expected list of objects")
    return raw


def validate_component(value: Any) -> dict[str, Any]:
    raw = _require_object("conversation-flow-component", value)
    _require_str("conversation-flow-component", raw, "conversation_flow_component_id")
    _optional_number("conversation-flow-component", raw, "user_modified_timestamp")
    return raw


def validate_test_case(value: Any) -> dict[str, Any]:
    """Validate a test case definition, filling the list/map defaults the API may omit."""
    raw = _require_object("test-case-definition", value)
    for key in ("test_case_definition_id", "name", "user_prompt"):
        _require_str("test-case-definition", raw, key)
    _check_engine("test-case-definition", raw)
    out = dict(raw)
    out.setdefault("dynamic_variables", {})
    out.setdefault("metrics", [])
    out.setdefault("tool_mocks", [])
    return out


def validate_phone_number(value: Any) -> dict[str, Any]:
    raw = _require_object("phone-number", value)
    _require_str("phone-number", raw, "phone_number")
    for key in ("inbound_agents", "outbound_agents"):
        entries = raw.get(key)
        if entries is None:
            continue
        if not isinstance(entries, list):
            raise SchemaError(resource="phone-number", message=f"{key}: expected list")
        for entry in entries:
            entry = _require_object("phone-number", entry)
            _require_str("phone-number", entry, "agent_id")
    return raw


def validate_list(value: Any, validator: Validator, resource: str) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        raise SchemaError(resource=resource, message=f"expected list, got {type(value).__name__}")
    return [validator(item) for item in value]
