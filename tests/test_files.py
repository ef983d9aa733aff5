"""Tests for the agent tree serializer and its disk I/O."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from retellsync.changes import compute_changes
from retellsync.errors import ConfigValidationError, LocalStateError
from retellsync.files import (
    AGENT_META_FILE,
    agent_dir_name,
    canonicalize_from_files,
    read_local_state,
    read_tree,
    serialize_state,
    write_state,
    write_tree,
)
from retellsync.models import (
    CanonicalAgent,
    CanonicalFlow,
    CanonicalLlm,
    CanonicalState,
    CanonicalTestCase,
    Channel,
    ConversationFlowEngine,
    CustomLlmEngine,
    RetellLlmEngine,
)


def _llm_state(prompt: str = "You are helpful.\nBe brief.") -> CanonicalState:
    return CanonicalState(
        voice_agents=[
            CanonicalAgent(
                id="agent_abc123",
                version=3,
                channel=Channel.VOICE,
                response_engine=RetellLlmEngine(llm_id="llm_xyz789", version=3),
                fields={"agent_name": "Support Bot", "voice_id": "11labs-Adrian", "interruption_sensitivity": 0.8},
            )
        ],
        llms=[
            CanonicalLlm(
                id="llm_xyz789",
                version=3,
                fields={"general_prompt": prompt, "model": "gpt-4.1", "general_tools": [{"type": "end_call", "name": "end"}]},
            )
        ],
    )


def _flow_state() -> CanonicalState:
    return CanonicalState(
        chat_agents=[
            CanonicalAgent(
                id="agent_chat01",
                version=0,
                channel=Channel.CHAT,
                response_engine=ConversationFlowEngine(conversation_flow_id="cf_flow01", version=0),
                fields={"agent_name": "Booking"},
            )
        ],
        conversation_flows=[
            CanonicalFlow(
                id="cf_flow01",
                version=0,
                fields={
                    "global_prompt": "Book appointments.",
                    "begin_tag_display_position": {"x": 10, "y": 20},
                    "nodes": [
                        {
                            "id": "node_aaaaaa",
                            "name": "Greeting",
                            "type": "conversation",
                            "instruction": {"type": "prompt", "text": "Say hi.\nAsk for a date."},
                            "edges": [{"id": "e1", "destination_node_id": "node_bbbbbb"}],
                            "display_position": {"x": 100, "y": 200},
                        },
                        {"id": "node_bbbbbb", "name": "Bye", "type": "end", "display_position": {"x": 300, "y": 200}},
                    ],
                },
            )
        ],
    )


# ---------------------------------------------------------------------------
# In-memory round trips
# ---------------------------------------------------------------------------


class TestRoundTrip:
    def test_llm_agent(self):
        state = _llm_state()
        files = serialize_state(state)
        assert set(files) == {
            "support_bot_abc123/.agent.json",
            "support_bot_abc123/config.yaml",
            "support_bot_abc123/llm.yaml",
            "support_bot_abc123/general_prompt.md",
        }
        assert files["support_bot_abc123/general_prompt.md"] == "You are helpful.\nBe brief.\n"
        assert "general_prompt: file://./general_prompt.md" in files["support_bot_abc123/llm.yaml"]
        assert canonicalize_from_files(files) == state

    def test_agent_metadata(self):
        files = serialize_state(_llm_state())
        meta = json.loads(files["support_bot_abc123/.agent.json"])
        assert meta == {
            "channel": "voice",
            "id": "agent_abc123",
            "response_engine": {"llm_id": "llm_xyz789", "type": "retell-llm", "version": 3},
            "version": 3,
        }

    def test_conversation_flow_agent(self):
        state = _flow_state()
        files = serialize_state(state)
        prefix = "booking_chat01/"
        assert prefix + "conversation-flow.yaml" in files
        assert prefix + "global_prompt.md" in files
        assert prefix + "nodes/greeting_aaaaaa.md" in files
        assert prefix + ".positions.json" in files
        assert "display_position" not in files[prefix + "conversation-flow.yaml"]
        assert canonicalize_from_files(files) == state

    def test_custom_llm_agent(self):
        state = CanonicalState(
            voice_agents=[
                CanonicalAgent(
                    id="agent_custom",
                    version=1,
                    channel=Channel.VOICE,
                    response_engine=CustomLlmEngine(llm_websocket_url="wss://llm.example.com/ws"),
                    fields={"agent_name": "Custom"},
                )
            ]
        )
        files = serialize_state(state)
        meta = json.loads(files["custom_custom/.agent.json"])
        assert meta["response_engine"] == {"type": "custom-llm"}
        assert "llm_websocket_url: wss://llm.example.com/ws" in files["custom_custom/config.yaml"]
        assert canonicalize_from_files(files) == state

    def test_custom_llm_engine_keeps_unknown_fields(self):
        engine = CustomLlmEngine(llm_websocket_url="wss://x", extra={"foo": 1})
        state = CanonicalState(
            voice_agents=[
                CanonicalAgent(
                    id="agent_custom",
                    version=1,
                    channel=Channel.VOICE,
                    response_engine=engine,
                    fields={"agent_name": "Custom"},
                )
            ]
        )
        files = serialize_state(state)
        assert json.loads(files["custom_custom/.agent.json"])["response_engine"] == {"type": "custom-llm", "foo": 1}

        back = canonicalize_from_files(files)
        assert back == state
        assert compute_changes(back, state).total == 0

    def test_node_prompt_leading_blank_lines(self):
        state = CanonicalState(
            chat_agents=[
                CanonicalAgent(
                    id="agent_blank1",
                    version=0,
                    channel=Channel.CHAT,
                    response_engine=ConversationFlowEngine(conversation_flow_id="cf_blank", version=0),
                    fields={"agent_name": "Blank"},
                )
            ],
            conversation_flows=[
                CanonicalFlow(
                    id="cf_blank",
                    version=0,
                    fields={
                        "nodes": [
                            {"id": "n1", "name": "Hello", "type": "conversation", "instruction": {"type": "prompt", "text": "\n\nHello"}}
                        ]
                    },
                )
            ],
        )
        back = canonicalize_from_files(serialize_state(state))
        assert back.conversation_flows[0].fields["nodes"][0]["instruction"]["text"] == "\n\nHello"
        assert compute_changes(back, state).total == 0

    def test_json_config_format(self):
        state = _llm_state()
        files = serialize_state(state, config_format="json")
        assert "support_bot_abc123/config.json" in files
        assert "support_bot_abc123/llm.json" in files
        assert canonicalize_from_files(files) == state

    def test_agent_without_name_uses_id(self):
        state = CanonicalState(
            voice_agents=[
                CanonicalAgent(
                    id="agent_noname1",
                    version=0,
                    channel=Channel.VOICE,
                    response_engine=CustomLlmEngine(llm_websocket_url=""),
                )
            ]
        )
        (agent,) = state.voice_agents
        assert agent_dir_name(agent) == "agent_noname1_oname1"

    def test_shared_llm_is_read_once(self):
        state = _llm_state()
        second = CanonicalAgent(
            id="agent_def456",
            version=3,
            channel=Channel.CHAT,
            response_engine=RetellLlmEngine(llm_id="llm_xyz789", version=3),
            fields={"agent_name": "Chat Twin"},
        )
        state = CanonicalState(voice_agents=state.voice_agents, chat_agents=[second], llms=state.llms)
        files = serialize_state(state)
        assert "chat_twin_def456/llm.yaml" in files
        assert canonicalize_from_files(files).llms == state.llms


class TestReadErrors:
    def test_edited_prompt_is_read_back(self):
        files = serialize_state(_llm_state())
        files["support_bot_abc123/general_prompt.md"] = "Hello\nWorld\n"
        (llm,) = canonicalize_from_files(files).llms
        assert llm.fields["general_prompt"] == "Hello\nWorld"

    def test_missing_placeholder_target(self):
        files = serialize_state(_llm_state())
        del files["support_bot_abc123/general_prompt.md"]
        with pytest.raises(LocalStateError) as exc:
            canonicalize_from_files(files)
        assert exc.value.path == "support_bot_abc123/general_prompt.md"

    def test_directory_without_metadata_is_ignored(self):
        files = serialize_state(_llm_state())
        files["notes/readme.md"] = "scratch"
        assert len(canonicalize_from_files(files).agents) == 1

    def test_directory_without_config_is_skipped(self):
        files = serialize_state(_llm_state())
        del files["support_bot_abc123/config.yaml"]
        assert canonicalize_from_files(files).agents == []

    def test_invalid_metadata(self):
        files = {"x_abc123/.agent.json": json.dumps({"id": 5}), "x_abc123/config.yaml": ""}
        with pytest.raises(ConfigValidationError, match="id"):
            canonicalize_from_files(files)


# ---------------------------------------------------------------------------
# Test cases inside an agent directory
# ---------------------------------------------------------------------------


def _test_case() -> CanonicalTestCase:
    return CanonicalTestCase(
        id="tcd_aa0001",
        fields={
            "name": "Refund Flow",
            "user_prompt": "Ask for a refund.",
            "metrics": ["mentions policy"],
            "type": "simulation",
            "creation_timestamp": 1,
        },
    )


def test_test_cases_are_written_under_tests_dir():
    files = serialize_state(_llm_state(), test_cases={"agent_abc123": [_test_case()]})
    assert "support_bot_abc123/tests/.tests.json" in files
    assert "support_bot_abc123/tests/refund_flow_aa0001.yaml" in files
    assert files["support_bot_abc123/tests/refund_flow_aa0001_prompt.md"] == "Ask for a refund.\n"
    # test files do not leak into the agent config
    assert canonicalize_from_files(files) == _llm_state()


# ---------------------------------------------------------------------------
# Disk I/O
# ---------------------------------------------------------------------------


class TestWriteState:
    def test_write_then_read(self, tmp_path: Path):
        state = _llm_state()
        result = write_state(state, tmp_path)
        assert len(result.created) == 4
        assert read_local_state(tmp_path) == state

    def test_unchanged_files_are_not_rewritten(self, tmp_path: Path):
        write_state(_llm_state(), tmp_path)
        result = write_state(_llm_state(), tmp_path)
        assert result.created == [] and result.updated == [] and result.removed == []

        result = write_state(_llm_state(prompt="Changed"), tmp_path)
        assert result.updated == ["support_bot_abc123/general_prompt.md"]

    def test_deleted_agents_and_stale_files_are_removed(self, tmp_path: Path):
        write_state(_flow_state(), tmp_path)
        stale = tmp_path / "booking_chat01" / "nodes" / "old_node.md"
        stale.write_text("old", encoding="utf-8")

        write_state(_flow_state(), tmp_path)
        assert not stale.exists()

        write_state(_llm_state(), tmp_path)
        assert not (tmp_path / "booking_chat01").exists()
        assert (tmp_path / "support_bot_abc123" / AGENT_META_FILE).is_file()

    def test_partial_write_leaves_other_agents_alone(self, tmp_path: Path):
        write_state(_flow_state(), tmp_path)
        write_state(_llm_state(), tmp_path, agent_ids={"agent_abc123"})
        assert (tmp_path / "booking_chat01" / AGENT_META_FILE).is_file()
        assert (tmp_path / "support_bot_abc123" / AGENT_META_FILE).is_file()

        # a partial read only sees the selected agents
        assert [a.id for a in read_local_state(tmp_path, agent_ids={"agent_chat01"}).agents] == ["agent_chat01"]

    def test_tests_dir_survives_when_test_cases_were_not_fetched(self, tmp_path: Path):
        write_state(_llm_state(), tmp_path, test_cases={"agent_abc123": [_test_case()]})
        tests_meta = tmp_path / "support_bot_abc123" / "tests" / ".tests.json"
        assert tests_meta.is_file()

        write_state(_llm_state(), tmp_path, test_cases=None)
        assert tests_meta.is_file()

        write_state(_llm_state(), tmp_path, test_cases={"agent_abc123": []})
        assert not tests_meta.exists()
        assert not (tmp_path / "support_bot_abc123" / "tests").exists()

    def test_renamed_agent_moves_directory(self, tmp_path: Path):
        write_state(_llm_state(), tmp_path)
        state = _llm_state()
        renamed = CanonicalState(
            voice_agents=[
                CanonicalAgent(
                    id=state.voice_agents[0].id,
                    version=3,
                    channel=Channel.VOICE,
                    response_engine=state.voice_agents[0].response_engine,
                    fields={**state.voice_agents[0].fields, "agent_name": "Help Desk"},
                )
            ],
            llms=state.llms,
        )
        write_state(renamed, tmp_path)
        assert sorted(p.name for p in tmp_path.iterdir()) == ["help_desk_abc123"]


def test_read_tree_skips_temp_files(tmp_path: Path):
    write_tree(tmp_path, {"a_000001/.agent.json": "{}", "a_000001/config.yaml": "x: 1\n"}, meta_name=AGENT_META_FILE)
    (tmp_path / "a_000001" / "config.yaml.tmp").write_text("partial", encoding="utf-8")
    assert set(read_tree(tmp_path, meta_name=AGENT_META_FILE)) == {"a_000001/.agent.json", "a_000001/config.yaml"}


def test_read_tree_of_missing_root(tmp_path: Path):
    assert read_tree(tmp_path / "nope", meta_name=AGENT_META_FILE) == {}
