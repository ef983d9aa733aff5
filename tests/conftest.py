"""Shared fixtures: an in-memory Retell client and a small account to sync."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import pytest

from retellsync.client import ApiError, ApiNotFoundError, RetellClient
from retellsync.models import RetellLlmEngine
from retellsync.workflows import SyncOptions


VOICE_ID = "agent_voice_000001"
CHAT_ID = "agent_chat_000002"
LLM_ID = "llm_0000000001"
FLOW_ID = "conversation_flow_000003"
PHONE = "+14155550100"


class FakeRetellClient(RetellClient):
    """Serves list/get calls from in-memory payloads and records every mutation.

    `fail` holds `(method, id)` pairs that raise ApiError instead of succeeding.
    Test cases are keyed by engine id; a missing key answers 404.
    """

    def __init__(self) -> None:
        self.voice_agents: list[dict[str, Any]] = []
        self.chat_agents: list[dict[str, Any]] = []
        self.llms: list[dict[str, Any]] = []
        self.flows: list[dict[str, Any]] = []
        self.phone_numbers: list[dict[str, Any]] = []
        self.components: list[dict[str, Any]] = []
        self.test_cases: dict[str, list[dict[str, Any]]] = {}
        self.agent_versions: dict[str, list[dict[str, Any]]] = {}
        self.calls: list[tuple[str, str, Any]] = []
        self.fail: set[tuple[str, str]] = set()

    def _record(self, method: str, resource_id: str, data: Any = None) -> None:
        if (method, resource_id) in self.fail:
            raise ApiError("Retell API 500: boom", status=500, body="boom")
        self.calls.append((method, resource_id, copy.deepcopy(data)))

    def mutations(self, method: str) -> list[tuple[str, Any]]:
        return [(i, data) for m, i, data in self.calls if m == method]

    @staticmethod
    def _find(items: list[dict[str, Any]], key: str, resource_id: str, version: int | None) -> dict[str, Any]:
        matches = [i for i in items if i[key] == resource_id and (version is None or i.get("version") == version)]
        if not matches:
            raise ApiNotFoundError("Retell API 404: not found", status=404, body="not found")
        return copy.deepcopy(max(matches, key=lambda i: i.get("version", 0)))

    async def list_voice_agents(self, **page: Any) -> list[dict[str, Any]]:
        return copy.deepcopy(self.voice_agents)

    async def list_chat_agents(self, **page: Any) -> list[dict[str, Any]]:
        return copy.deepcopy(self.chat_agents)

    async def list_llms(self, **page: Any) -> list[dict[str, Any]]:
        return copy.deepcopy(self.llms)

    async def list_conversation_flows(self, **page: Any) -> list[dict[str, Any]]:
        return copy.deepcopy(self.flows)

    async def list_phone_numbers(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self.phone_numbers)

    async def list_components(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self.components)

    async def list_test_cases(self, engine: Any) -> list[dict[str, Any]]:
        key = engine.llm_id if isinstance(engine, RetellLlmEngine) else engine.conversation_flow_id
        if key not in self.test_cases:
            raise ApiNotFoundError("Retell API 404: not found", status=404, body="not found")
        return copy.deepcopy(self.test_cases[key])

    async def get_voice_agent(self, agent_id: str, version: int | None = None) -> dict[str, Any]:
        return self._find(self.voice_agents, "agent_id", agent_id, version)

    async def get_chat_agent(self, agent_id: str, version: int | None = None) -> dict[str, Any]:
        return self._find(self.chat_agents, "agent_id", agent_id, version)

    async def get_llm(self, llm_id: str, version: int | None = None) -> dict[str, Any]:
        return self._find(self.llms, "llm_id", llm_id, version)

    async def get_conversation_flow(self, flow_id: str, version: int | None = None) -> dict[str, Any]:
        return self._find(self.flows, "conversation_flow_id", flow_id, version)

    async def get_agent_versions(self, agent_id: str) -> list[dict[str, Any]]:
        return copy.deepcopy(self.agent_versions.get(agent_id, []))

    async def update_voice_agent(self, agent_id: str, data: dict[str, Any]) -> Any:
        self._record("update_voice_agent", agent_id, data)

    async def update_chat_agent(self, agent_id: str, data: dict[str, Any]) -> Any:
        self._record("update_chat_agent", agent_id, data)

    async def update_llm(self, llm_id: str, data: dict[str, Any]) -> Any:
        self._record("update_llm", llm_id, data)

    async def update_conversation_flow(self, flow_id: str, data: dict[str, Any]) -> Any:
        self._record("update_conversation_flow", flow_id, data)

    async def update_test_case(self, test_case_id: str, data: dict[str, Any]) -> Any:
        self._record("update_test_case", test_case_id, data)

    async def update_component(self, component_id: str, data: dict[str, Any]) -> Any:
        self._record("update_component", component_id, data)

    async def update_phone_number(self, phone_number: str, data: dict[str, Any]) -> Any:
        self._record("update_phone_number", phone_number, data)

    async def publish_voice_agent(self, agent_id: str) -> None:
        self._record("publish_voice_agent", agent_id)

    async def publish_chat_agent(self, agent_id: str) -> None:
        self._record("publish_chat_agent", agent_id)


# ---------------------------------------------------------------------------
# Account payloads
# ---------------------------------------------------------------------------


def voice_agent(version: int, *, published: bool, llm_version: int, **fields: Any) -> dict[str, Any]:
    return {
        "agent_id": VOICE_ID,
        "version": version,
        "is_published": published,
        "last_modification_timestamp": 1700000000000 + version,
        "agent_name": "Support Bot",
        "voice_id": "11labs-Adrian",
        "response_engine": {"type": "retell-llm", "llm_id": LLM_ID, "version": llm_version},
        **fields,
    }


def llm(version: int, *, published: bool, prompt: str) -> dict[str, Any]:
    return {
        "llm_id": LLM_ID,
        "version": version,
        "is_published": published,
        "last_modification_timestamp": 1700000000000 + version,
        "model": "gpt-4.1",
        "general_prompt": prompt,
        "begin_message": "Hi, how can I help?",
    }


def chat_agent() -> dict[str, Any]:
    return {
        "agent_id": CHAT_ID,
        "version": 0,
        "is_published": False,
        "agent_name": "Booking Chat",
        "response_engine": {"type": "conversation-flow", "conversation_flow_id": FLOW_ID, "version": 0},
    }


def flow() -> dict[str, Any]:
    return {
        "conversation_flow_id": FLOW_ID,
        "version": 0,
        "is_published": False,
        "global_prompt": "You book appointments.",
        "start_node_id": "node_greet01",
        "begin_tag_display_position": {"x": 100, "y": 50},
        "nodes": [
            {
                "id": "node_greet01",
                "name": "Greeting",
                "type": "conversation",
                "instruction": {"type": "prompt", "text": "Greet the user.\nAsk for a date."},
                "edges": [
                    {
                        "id": "edge_1",
                        "destination_node_id": "node_end002",
                        "transition_condition": {"type": "prompt", "prompt": "Date given"},
                    }
                ],
                "display_position": {"x": 200, "y": 120},
            },
            {
                "id": "node_end002",
                "name": "Goodbye",
                "type": "end",
                "display_position": {"x": 400, "y": 120},
            },
        ],
    }


def refund_test_case() -> dict[str, Any]:
    return {
        "test_case_definition_id": "tcd_refund01",
        "name": "Refund request",
        "type": "simulation",
        "user_prompt": "You want a refund for order 123.",
        "metrics": ["Agent asks for the order number"],
        "dynamic_variables": {"customer_name": "Ada"},
        "tool_mocks": [],
        "llm_model": "gpt-4.1",
        "response_engine": {"type": "retell-llm", "llm_id": LLM_ID, "version": 1},
        "creation_timestamp": 1700000000000,
        "user_modified_timestamp": 1700000000500,
    }


@pytest.fixture
def fake_client() -> FakeRetellClient:
    """Voice agent with a draft ahead of its published version, plus a never-published chat agent."""
    client = FakeRetellClient()
    client.voice_agents = [
        voice_agent(0, published=True, llm_version=0),
        voice_agent(1, published=False, llm_version=1),
    ]
    client.llms = [
        llm(0, published=True, prompt="You are helpful."),
        llm(1, published=False, prompt="You are helpful.\nBe brief."),
    ]
    client.chat_agents = [chat_agent()]
    client.flows = [flow()]
    client.test_cases = {LLM_ID: [refund_test_case()]}
    client.phone_numbers = [
        {
            "phone_number": PHONE,
            "inbound_agents": [{"agent_id": VOICE_ID, "agent_version": 0, "weight": 1}],
            "outbound_agents": [{"agent_id": "agent_other", "agent_version": 3, "weight": 1}],
        }
    ]
    client.agent_versions = {
        VOICE_ID: [
            {"version": 0, "is_published": True},
            {"version": 1, "is_published": True},
            {"version": 2, "is_published": False},
        ]
    }
    return client


@pytest.fixture
def options(tmp_path: Path) -> SyncOptions:
    return SyncOptions(agents_dir=tmp_path / "agents", components_dir=tmp_path / "components")
