"""Fetch remote Retell state and canonicalize it."""

from __future__ import annotations

import asyncio
from typing import Any, Iterable

from .canonical import canonicalize_components, canonicalize_from_api, canonicalize_test_cases
from .client import DEFAULT_PAGE_SIZE, ApiError, ApiNotFoundError, RetellClient, paginate
from .errors import RetellSyncError, SchemaError
from .log import get_logger
from .models import (
    CanonicalComponent,
    CanonicalState,
    CanonicalTestCase,
    ConversationFlowEngine,
    RetellLlmEngine,
    parse_response_engine,
)
from .schemas import (
    validate_agent,
    validate_component,
    validate_flow,
    validate_list,
    validate_llm,
    validate_test_case,
)


_log = get_logger("remote")


async def get_remote_state(
    client: RetellClient,
    *,
    draft: bool = False,
    agent_ids: Iterable[str] | None = None,
    version: int | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> CanonicalState:
    """Fetch and canonicalize agents with the engines they reference.

    Args:
        client: API client
        draft: Use the latest (draft) version of each agent; otherwise only published versions
        agent_ids: Restrict to these agents (None = all)
        version: Fetch this exact version of each agent in `agent_ids`

    Raises:
        SchemaError: If a list payload has an unexpected shape
        ApiError: On HTTP failures
    """
    ids = set(agent_ids) if agent_ids is not None else None
    if version is not None and ids:
        return await get_remote_state_by_version(client, sorted(ids), version)

    raw_voice, raw_chat, raw_llms, raw_flows = await asyncio.gather(
        paginate(client.list_voice_agents, "agent_id", page_size),
        paginate(client.list_chat_agents, "agent_id", page_size),
        paginate(client.list_llms, "llm_id", page_size),
        paginate(client.list_conversation_flows, "conversation_flow_id", page_size),
    )
    voice = validate_list(raw_voice, validate_agent, "agent")
    chat = validate_list(raw_chat, validate_agent, "chat-agent")
    llms = validate_list(raw_llms, validate_llm, "retell-llm")
    flows = validate_list(raw_flows, validate_flow, "conversation-flow")

    if not draft:
        voice = [a for a in voice if a.get("is_published")]
        chat = [a for a in chat if a.get("is_published")]
    if ids is not None:
        voice = [a for a in voice if a["agent_id"] in ids]
        chat = [a for a in chat if a["agent_id"] in ids]

    _log.debug(
        "fetched remote state",
        draft=draft,
        voice_agents=len(voice),
        chat_agents=len(chat),
        llms=len(llms),
        flows=len(flows),
    )
    return canonicalize_from_api(voice_agents=voice, chat_agents=chat, llms=llms, conversation_flows=flows)


async def _get_agent_at_version(client: RetellClient, agent_id: str, version: int) -> tuple[str, dict[str, Any]]:
    # voice and chat agents share an id space; try voice first
    try:
        return "voice", validate_agent(await client.get_voice_agent(agent_id, version))
    except (ApiError, SchemaError):
        pass
    try:
        return "chat", validate_agent(await client.get_chat_agent(agent_id, version))
    except (ApiError, SchemaError) as e:
        raise RetellSyncError(
            f"Agent {agent_id} not found at version {version}. Check available versions in the Retell dashboard."
        ) from e


async def get_remote_state_by_version(client: RetellClient, agent_ids: list[str], version: int) -> CanonicalState:
    """Retrieve each agent at `version`, then the exact LLM/flow versions they reference."""
    results = await asyncio.gather(*(_get_agent_at_version(client, i, version) for i in agent_ids))
    voice = [raw for kind, raw in results if kind == "voice"]
    chat = [raw for kind, raw in results if kind == "chat"]

    llm_versions: dict[str, int | None] = {}
    flow_versions: dict[str, int | None] = {}
    for raw in (*voice, *chat):
        engine = parse_response_engine(raw["response_engine"])
        if isinstance(engine, RetellLlmEngine):
            llm_versions[engine.llm_id] = engine.version
        elif isinstance(engine, ConversationFlowEngine):
            flow_versions[engine.conversation_flow_id] = engine.version

    raw_llms, raw_flows = await asyncio.gather(
        asyncio.gather(*(client.get_llm(i, v) for i, v in llm_versions.items())),
        asyncio.gather(*(client.get_conversation_flow(i, v) for i, v in flow_versions.items())),
    )
    return canonicalize_from_api(
        voice_agents=voice,
        chat_agents=chat,
        llms=[validate_llm(r) for r in raw_llms],
        conversation_flows=[validate_flow(r) for r in raw_flows],
    )


async def fetch_test_cases(
    client: RetellClient,
    engine: RetellLlmEngine | ConversationFlowEngine,
    *,
    log: Any = None,
) -> list[CanonicalTestCase]:
    """Canonical test cases for an engine.

    A 404 means "no test cases". A payload that fails validation is logged
    and treated as empty; other API errors propagate.
    """
    log = log or _log
    try:
        raw = await client.list_test_cases(engine)
    except ApiNotFoundError:
        return []
    try:
        validated = validate_list(raw if raw is not None else [], validate_test_case, "test-case-definition")
    except SchemaError as e:
        log.warning("some test case fields failed validation; skipping", engine=engine.to_dict(), error=str(e))
        return []
    return canonicalize_test_cases(validated)


async def get_remote_components(
    client: RetellClient,
    *,
    component_ids: Iterable[str] | None = None,
) -> list[CanonicalComponent]:
    raw = validate_list(await client.list_components(), validate_component, "conversation-flow-component")
    if component_ids is not None:
        wanted = set(component_ids)
        raw = [c for c in raw if c["conversation_flow_component_id"] in wanted]
    return canonicalize_components(raw)
