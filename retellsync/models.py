"""Data structures for the canonical (normalized) view of Retell resources.

A canonical resource is an API resource with readonly metadata stripped and its
identity pulled out of the mutable field map:

- `_id` is the stable external id (agent_id, llm_id, ...), never regenerated
- `_version` is the API-assigned version (components carry `_timestamp` instead)

Everything else the API returns is kept verbatim in `fields` so that unknown
or newly added API fields survive a pull/deploy cycle untouched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


FILE_HASH_LENGTH = 6


class Channel(str, Enum):
    """Which API surface an agent lives on."""

    VOICE = "voice"
    CHAT = "chat"


class EngineType(str, Enum):
    RETELL_LLM = "retell-llm"
    CUSTOM_LLM = "custom-llm"
    CONVERSATION_FLOW = "conversation-flow"


# ---------------------------------------------------------------------------
# Response engine references (the only dependency edge in the model)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RetellLlmEngine:
    llm_id: str
    version: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    type = EngineType.RETELL_LLM

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {**self.extra, "type": self.type.value, "llm_id": self.llm_id}
        if self.version is not None:
            out["version"] = self.version
        return out


@dataclass(frozen=True)
class CustomLlmEngine:
    llm_websocket_url: str
    extra: dict[str, Any] = field(default_factory=dict)

    type = EngineType.CUSTOM_LLM

    def to_dict(self) -> dict[str, Any]:
        return {**self.extra, "type": self.type.value, "llm_websocket_url": self.llm_websocket_url}


@dataclass(frozen=True)
class ConversationFlowEngine:
    conversation_flow_id: str
    version: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    type = EngineType.CONVERSATION_FLOW

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            **self.extra,
            "type": self.type.value,
            "conversation_flow_id": self.conversation_flow_id,
        }
        if self.version is not None:
            out["version"] = self.version
        return out


ResponseEngine = Union[RetellLlmEngine, CustomLlmEngine, ConversationFlowEngine]


def _optional_version(raw: dict[str, Any]) -> int | None:
    v = raw.get("version")
    if v is None:
        return None
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        raise ValueError(f"response_engine.version: expected number, got {v!r}")
    return int(v)


def parse_response_engine(raw: Any) -> ResponseEngine:
    """Parse a response_engine mapping into its tagged variant.

    Raises:
        ValueError: If the mapping is malformed or names an unknown type
    """
    if not isinstance(raw, dict):
        raise ValueError("response_engine: expected object")
    try:
        engine_type = EngineType(raw.get("type"))
    except ValueError:
        raise ValueError(f"response_engine: unknown type {raw.get('type')!r}")

    if engine_type is EngineType.RETELL_LLM:
        llm_id = raw.get("llm_id")
        if not isinstance(llm_id, str):
            raise ValueError("response_engine.llm_id: expected string")
        extra = {k: v for k, v in raw.items() if k not in ("type", "llm_id", "version")}
        return RetellLlmEngine(llm_id=llm_id, version=_optional_version(raw), extra=extra)

    if engine_type is EngineType.CONVERSATION_FLOW:
        flow_id = raw.get("conversation_flow_id")
        if not isinstance(flow_id, str):
            raise ValueError("response_engine.conversation_flow_id: expected string")
        extra = {k: v for k, v in raw.items() if k not in ("type", "conversation_flow_id", "version")}
        return ConversationFlowEngine(conversation_flow_id=flow_id, version=_optional_version(raw), extra=extra)

    url = raw.get("llm_websocket_url", "")
    if not isinstance(url, str):
        raise ValueError("response_engine.llm_websocket_url: expected string")
    extra = {k: v for k, v in raw.items() if k not in ("type", "llm_websocket_url")}
    return CustomLlmEngine(llm_websocket_url=url, extra=extra)


# ---------------------------------------------------------------------------
# Conversation flow nodes
# ---------------------------------------------------------------------------


class FlowNodeType(str, Enum):
    CONVERSATION = "conversation"
    END = "end"
    FUNCTION = "function"
    TRANSFER_CALL = "transfer_call"
    BRANCH = "branch"
    COMPONENT = "component"
    PRESS_DIGIT = "press_digit"
    SMS = "sms"
    EXTRACT_DYNAMIC_VARIABLES = "extract_dynamic_variables"
    AGENT_SWAP = "agent_swap"
    MCP = "mcp"

    @classmethod
    def of(cls, node: dict[str, Any]) -> "FlowNodeType | None":
        try:
            return cls(node.get("type"))
        except ValueError:
            return None


def outgoing_edges(node: dict[str, Any]) -> list[dict[str, Any]]:
    """Edges leaving a flow node, by node type.

    Conversation nodes have `edges` plus an optional `always_edge`;
    transfer_call nodes have a single `edge`. Terminal and unknown node types
    have none.
    """
    node_type = FlowNodeType.of(node)
    if node_type is FlowNodeType.CONVERSATION:
        edges = list(node.get("edges") or [])
        if node.get("always_edge"):
            edges.append(node["always_edge"])
        return [e for e in edges if isinstance(e, dict)]
    if node_type in (FlowNodeType.FUNCTION, FlowNodeType.BRANCH, FlowNodeType.COMPONENT):
        return [e for e in (node.get("edges") or []) if isinstance(e, dict)]
    if node_type is FlowNodeType.TRANSFER_CALL:
        edge = node.get("edge")
        return [edge] if isinstance(edge, dict) else []
    return []


# ---------------------------------------------------------------------------
# Canonical resources
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CanonicalAgent:
    """A voice or chat agent. `fields` never contains response_engine or identity keys."""

    id: str
    version: int
    channel: Channel
    response_engine: ResponseEngine
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        agent_name = self.fields.get("agent_name")
        return agent_name if agent_name is not None else self.id

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.fields,
            "_id": self.id,
            "_version": self.version,
            "response_engine": self.response_engine.to_dict(),
        }


@dataclass(frozen=True)
class CanonicalLlm:
    id: str
    version: int
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.id

    def to_dict(self) -> dict[str, Any]:
        return {**self.fields, "_id": self.id, "_version": self.version}


@dataclass(frozen=True)
class CanonicalFlow:
    id: str
    version: int
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.id

    def to_dict(self) -> dict[str, Any]:
        return {**self.fields, "_id": self.id, "_version": self.version}


@dataclass(frozen=True)
class CanonicalTestCase:
    id: str
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        name = self.fields.get("name")
        return name if isinstance(name, str) else self.id

    def to_dict(self) -> dict[str, Any]:
        return {**self.fields, "_id": self.id}


@dataclass(frozen=True)
class CanonicalComponent:
    """A shared conversation-flow component; versioned by modification timestamp."""

    id: str
    timestamp: int = 0
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        name = self.fields.get("name")
        return name if name is not None else self.id

    def to_dict(self) -> dict[str, Any]:
        return {**self.fields, "_id": self.id, "_timestamp": self.timestamp}


@dataclass(frozen=True)
class CanonicalState:
    """Normalized snapshot of agents and the engines they reference."""

    voice_agents: list[CanonicalAgent] = field(default_factory=list)
    chat_agents: list[CanonicalAgent] = field(default_factory=list)
    llms: list[CanonicalLlm] = field(default_factory=list)
    conversation_flows: list[CanonicalFlow] = field(default_factory=list)

    @property
    def agents(self) -> list[CanonicalAgent]:
        return [*self.voice_agents, *self.chat_agents]

    @property
    def is_empty(self) -> bool:
        return not (self.voice_agents or self.chat_agents or self.llms or self.conversation_flows)

    def llm(self, llm_id: str) -> CanonicalLlm | None:
        for llm in self.llms:
            if llm.id == llm_id:
                return llm
        return None

    def flow(self, flow_id: str) -> CanonicalFlow | None:
        for flow in self.conversation_flows:
            if flow.id == flow_id:
                return flow
        return None
