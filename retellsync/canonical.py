"""Canonicalize raw Retell API payloads into a CanonicalState.

Raw list responses contain every version of every resource. Canonicalization:

1. keeps only the latest version of each agent
2. keeps only the LLM/flow versions those agents actually reference, with a
   matching publish flag
3. strips readonly metadata and moves identity into `_id` / `_version`
"""

from __future__ import annotations

import copy
from typing import Any, Iterable

from .flow_helpers import round_positions
from .log import get_logger
from .models import (
    CanonicalAgent,
    CanonicalComponent,
    CanonicalFlow,
    CanonicalLlm,
    CanonicalState,
    CanonicalTestCase,
    Channel,
    ConversationFlowEngine,
    RetellLlmEngine,
    parse_response_engine,
)


_log = get_logger("canonical")

AGENT_READONLY_FIELDS = frozenset(
    {
        "agent_id",
        "version",
        "last_modification_timestamp",
        "is_published",
        "version_title",
        "version_description",
        "response_engine",
    }
)
LLM_READONLY_FIELDS = frozenset({"llm_id", "version", "last_modification_timestamp", "is_published"})
FLOW_READONLY_FIELDS = frozenset({"conversation_flow_id", "version", "is_published"})
TEST_CASE_DROPPED_FIELDS = frozenset({"test_case_definition_id", "response_engine"})
COMPONENT_READONLY_FIELDS = frozenset({"conversation_flow_component_id", "user_modified_timestamp"})


def _version_of(item: dict[str, Any]) -> int:
    v = item.get("version")
    return int(v) if isinstance(v, (int, float)) and not isinstance(v, bool) else 0


def _optional_version(item: dict[str, Any]) -> int | None:
    v = item.get("version")
    return int(v) if isinstance(v, (int, float)) and not isinstance(v, bool) else None


def keep_latest_version(items: Iterable[dict[str, Any]], id_key: str) -> list[dict[str, Any]]:
    """Keep one entry per id: the one with the greatest version (missing counts as 0).

    On a tie the first entry seen wins.
    """
    latest: dict[str, dict[str, Any]] = {}
    for item in items:
        item_id = item[id_key]
        existing = latest.get(item_id)
        if existing is None or _version_of(item) > _version_of(existing):
            latest[item_id] = item
        elif _version_of(item) == _version_of(existing):
            _log.debug("duplicate version; keeping first", id=item_id, version=_version_of(item))
    return list(latest.values())


def _strip(raw: dict[str, Any], drop: frozenset[str]) -> dict[str, Any]:
    return {k: copy.deepcopy(v) for k, v in raw.items() if k not in drop}


def canonicalize_agent(raw: dict[str, Any], channel: Channel) -> CanonicalAgent:
    return CanonicalAgent(
        id=raw["agent_id"],
        version=_version_of(raw),
        channel=channel,
        response_engine=parse_response_engine(raw["response_engine"]),
        fields=_strip(raw, AGENT_READONLY_FIELDS),
    )


def canonicalize_from_api(
    *,
    voice_agents: list[dict[str, Any]],
    chat_agents: list[dict[str, Any]],
    llms: list[dict[str, Any]],
    conversation_flows: list[dict[str, Any]],
) -> CanonicalState:
    """Canonicalize validated API list payloads (see schemas.py)."""
    latest_voice = keep_latest_version(voice_agents, "agent_id")
    latest_chat = keep_latest_version(chat_agents, "agent_id")

    required_llms: set[tuple[str, int | None, bool]] = set()
    required_flows: set[tuple[str, int | None, bool]] = set()
    for raw in (*latest_voice, *latest_chat):
        engine = parse_response_engine(raw["response_engine"])
        published = bool(raw.get("is_published"))
        if isinstance(engine, RetellLlmEngine):
            required_llms.add((engine.llm_id, engine.version, published))
        elif isinstance(engine, ConversationFlowEngine):
            required_flows.add((engine.conversation_flow_id, engine.version, published))

    kept_llms = [
        llm
        for llm in llms
        if (llm["llm_id"], _optional_version(llm), bool(llm.get("is_published"))) in required_llms
    ]
    kept_flows = [
        flow
        for flow in conversation_flows
        if (flow["conversation_flow_id"], _optional_version(flow), bool(flow.get("is_published")))
        in required_flows
    ]

    return CanonicalState(
        voice_agents=[canonicalize_agent(a, Channel.VOICE) for a in latest_voice],
        chat_agents=[canonicalize_agent(a, Channel.CHAT) for a in latest_chat],
        llms=[
            CanonicalLlm(id=llm["llm_id"], version=_version_of(llm), fields=_strip(llm, LLM_READONLY_FIELDS))
            for llm in keep_latest_version(kept_llms, "llm_id")
        ],
        conversation_flows=[
            CanonicalFlow(
                id=flow["conversation_flow_id"],
                version=_version_of(flow),
                fields=round_positions(_strip(flow, FLOW_READONLY_FIELDS)),
            )
            for flow in keep_latest_version(kept_flows, "conversation_flow_id")
        ],
    )


def canonicalize_test_cases(raws: list[dict[str, Any]]) -> list[CanonicalTestCase]:
    return [
        CanonicalTestCase(id=raw["test_case_definition_id"], fields=_strip(raw, TEST_CASE_DROPPED_FIELDS))
        for raw in raws
    ]


def canonicalize_components(raws: list[dict[str, Any]]) -> list[CanonicalComponent]:
    out: list[CanonicalComponent] = []
    for raw in raws:
        ts = raw.get("user_modified_timestamp")
        out.append(
            CanonicalComponent(
                id=raw["conversation_flow_component_id"],
                timestamp=int(ts) if isinstance(ts, (int, float)) and not isinstance(ts, bool) else 0,
                fields=round_positions(_strip(raw, COMPONENT_READONLY_FIELDS)),
            )
        )
    return out
