"""Turn computed changes into remote mutation calls.

Everything here is pure: the workflows decide when and how the planned
mutations are dispatched.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping

from .changes import TEST_CASE_METADATA_FIELDS, Changes, ResourceChange
from .components import LINKED_FLOWS_FIELD
from .diff import Difference, DiffType
from .models import CanonicalAgent, CustomLlmEngine


class MutationKind(str, Enum):
    VOICE_AGENT = "voice agent"
    CHAT_AGENT = "chat agent"
    LLM = "llm"
    FLOW = "flow"
    TEST_CASE = "test case"
    COMPONENT = "component"


@dataclass(frozen=True)
class Mutation:
    """A single partial update of one remote resource."""

    kind: MutationKind
    id: str
    name: str
    payload: dict[str, Any]


def agent_update_payload(agent: CanonicalAgent) -> dict[str, Any]:
    """Mutable agent fields; response_engine only for custom-llm agents."""
    payload = dict(agent.fields)
    if isinstance(agent.response_engine, CustomLlmEngine):
        payload["response_engine"] = agent.response_engine.to_dict()
    return payload


def _mutations(kind: MutationKind, changes: Iterable[ResourceChange[Any]], payload_of: Any) -> list[Mutation]:
    return [Mutation(kind=kind, id=c.id, name=c.name, payload=payload_of(c.current)) for c in changes]


def plan_updates(changes: Changes) -> list[Mutation]:
    """One mutation per changed resource, with identity/version fields stripped."""
    return [
        *_mutations(MutationKind.VOICE_AGENT, changes.voice_agents, agent_update_payload),
        *_mutations(MutationKind.CHAT_AGENT, changes.chat_agents, agent_update_payload),
        *_mutations(MutationKind.LLM, changes.llms, lambda llm: dict(llm.fields)),
        *_mutations(MutationKind.FLOW, changes.flows, lambda flow: dict(flow.fields)),
        *_mutations(
            MutationKind.TEST_CASE,
            changes.test_cases,
            lambda tc: {k: v for k, v in tc.fields.items() if k not in TEST_CASE_METADATA_FIELDS},
        ),
        *_mutations(
            MutationKind.COMPONENT,
            changes.components,
            lambda comp: {k: v for k, v in comp.fields.items() if k != LINKED_FLOWS_FIELD},
        ),
    ]


# ---------------------------------------------------------------------------
# Phone number rebinding (publish)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PhoneNumberUpdate:
    phone_number: str
    payload: dict[str, Any]
    descriptions: list[str] = field(default_factory=list)


def latest_published_version(versions: Iterable[Mapping[str, Any]]) -> int | None:
    """Highest version flagged published, or None if no version is published."""
    published = [
        v.get("version")
        for v in versions
        if v.get("is_published") and isinstance(v.get("version"), (int, float)) and not isinstance(v.get("version"), bool)
    ]
    return int(max(published)) if published else None


def patch_agent_list(
    entries: list[dict[str, Any]] | None,
    published_versions: Mapping[str, int],
    agent_names: Mapping[str, str],
    direction: str,
) -> tuple[list[dict[str, Any]] | None, list[str]]:
    """Point entries for just-published agents at their new version.

    Returns:
        (patched copy of the list, or None if nothing changed; descriptions like "inbound: Sales v3")
    """
    if not entries:
        return None, []
    changed = False
    descriptions: list[str] = []
    patched: list[dict[str, Any]] = []
    for entry in entries:
        version = published_versions.get(entry.get("agent_id", ""))
        if version is None:
            patched.append(entry)
            continue
        changed = True
        name = agent_names.get(entry["agent_id"], entry["agent_id"])
        descriptions.append(f"{direction}: {name} v{version}")
        patched.append({**entry, "agent_version": version})
    return (patched if changed else None), descriptions


def plan_phone_number_updates(
    phone_numbers: Iterable[Mapping[str, Any]],
    published_versions: Mapping[str, int],
    agent_names: Mapping[str, str],
) -> list[PhoneNumberUpdate]:
    """Phone numbers bound to a just-published voice agent.

    Only numbers with at least one patched list are returned, and each payload
    carries only the patched lists.
    """
    updates: list[PhoneNumberUpdate] = []
    for phone in phone_numbers:
        inbound, in_desc = patch_agent_list(phone.get("inbound_agents"), published_versions, agent_names, "inbound")
        outbound, out_desc = patch_agent_list(
            phone.get("outbound_agents"), published_versions, agent_names, "outbound"
        )
        if inbound is None and outbound is None:
            continue
        payload: dict[str, Any] = {}
        if inbound is not None:
            payload["inbound_agents"] = inbound
        if outbound is not None:
            payload["outbound_agents"] = outbound
        updates.append(
            PhoneNumberUpdate(phone_number=phone["phone_number"], payload=payload, descriptions=in_desc + out_desc)
        )
    return updates


# ---------------------------------------------------------------------------
# Dry-run summary
# ---------------------------------------------------------------------------

_TRUNCATE_AT = 60


def format_value(value: Any, *, verbose: bool = False) -> str:
    if value is None:
        return "null"
    if isinstance(value, str):
        display = value if verbose else value.replace("\n", "\\n")
        if not verbose and len(display) > _TRUNCATE_AT:
            return f'"{display[:_TRUNCATE_AT]}…"'
        return display if verbose else f'"{display}"'
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        if verbose:
            return json.dumps(value, indent=2, ensure_ascii=False)
        text = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
        return f"{text[:_TRUNCATE_AT]}…" if len(text) > _TRUNCATE_AT else text
    return str(value)


def format_difference(d: Difference, *, verbose: bool = False) -> list[str]:
    path = d.path_str
    if d.type is DiffType.CREATE:
        return [f"    + {path}: {format_value(d.value, verbose=verbose)}"]
    if d.type is DiffType.REMOVE:
        return [f"    - {path}: {format_value(d.old_value, verbose=verbose)}"]
    if verbose:
        return [
            f"    ~ {path}:",
            "        OLD:",
            *(f"        {line}" for line in format_value(d.old_value, verbose=True).split("\n")),
            "        NEW:",
            *(f"        {line}" for line in format_value(d.value, verbose=True).split("\n")),
        ]
    return [
        f"    ~ {path}:",
        f"        - {format_value(d.old_value)}",
        f"        + {format_value(d.value)}",
    ]


_SECTIONS = (
    ("voice_agents", "Voice agents to update:"),
    ("chat_agents", "Chat agents to update:"),
    ("llms", "LLMs to update:"),
    ("flows", "Flows to update:"),
    ("test_cases", "Test cases to update:"),
    ("components", "Components to update:"),
)


def format_change_summary(changes: Changes, *, verbose: bool = False) -> list[str]:
    lines: list[str] = []
    for attr, title in _SECTIONS:
        section: list[ResourceChange[Any]] = getattr(changes, attr)
        if not section:
            continue
        lines.append("")
        lines.append(title)
        for change in section:
            lines.append(f"  {change.name} ({change.id})")
            for d in change.differences:
                lines.extend(format_difference(d, verbose=verbose))
    return lines
