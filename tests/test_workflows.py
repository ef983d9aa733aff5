"""Tests for the pull / deploy / publish workflows against an in-memory client."""

from __future__ import annotations

import dataclasses
import json

import pytest

from conftest import CHAT_ID, LLM_ID, PHONE, VOICE_ID, FakeRetellClient, llm, voice_agent
from retellsync.errors import PullAborted, RetellSyncError
from retellsync.files import read_local_state
from retellsync.workflows import WorkflowStatus, deploy, publish, pull

VOICE_DIR = "support_bot_000001"
CHAT_DIR = "booking_chat_000002"


def _clean(_path):
    return ""


# ---------------------------------------------------------------------------
# pull
# ---------------------------------------------------------------------------


class TestPull:
    @pytest.mark.asyncio
    async def test_writes_latest_draft(self, fake_client, options):
        result = await pull(fake_client, options, git_status=_clean)

        assert result.status is WorkflowStatus.SUCCESS
        assert (result.voice_agents, result.chat_agents, result.llms, result.flows) == (1, 1, 1, 1)
        assert result.test_cases == 1
        assert result.agents_with_tests == 1

        root = options.agents_dir
        assert (root / VOICE_DIR / "general_prompt.md").read_text(encoding="utf-8") == "You are helpful.\nBe brief.\n"
        meta = json.loads((root / VOICE_DIR / ".agent.json").read_text(encoding="utf-8"))
        assert meta["version"] == 1
        assert (root / VOICE_DIR / "tests" / "refund_request_fund01.yaml").is_file()
        assert (root / CHAT_DIR / "nodes" / "greeting_reet01.md").is_file()
        assert not (root / CHAT_DIR / "tests").exists()

    @pytest.mark.asyncio
    async def test_specific_version(self, fake_client, options):
        options = dataclasses.replace(options, agent_ids={VOICE_ID})
        await pull(fake_client, options, version=0, git_status=_clean)

        state = read_local_state(options.agents_dir)
        (agent,) = state.agents
        assert agent.version == 0
        assert state.llms[0].fields["general_prompt"] == "You are helpful."

    @pytest.mark.asyncio
    async def test_unknown_version(self, fake_client, options):
        options = dataclasses.replace(options, agent_ids={VOICE_ID})
        with pytest.raises(RetellSyncError, match="not found at version 9"):
            await pull(fake_client, options, version=9, git_status=_clean)

    @pytest.mark.asyncio
    async def test_version_requires_agent_ids(self, fake_client, options):
        with pytest.raises(RetellSyncError, match="requires specific agent IDs"):
            await pull(fake_client, options, version=1, git_status=_clean)

    @pytest.mark.asyncio
    async def test_dirty_tree_aborts_without_confirmation(self, fake_client, options):
        dirty = lambda _path: " M agents/support_bot_000001/config.yaml"
        with pytest.raises(PullAborted):
            await pull(fake_client, options, git_status=dirty)
        with pytest.raises(PullAborted):
            await pull(fake_client, options, git_status=dirty, confirm=lambda _msg: False)
        assert not options.agents_dir.exists()

        result = await pull(fake_client, options, git_status=dirty, confirm=lambda _msg: True)
        assert result.ok

    @pytest.mark.asyncio
    async def test_yes_skips_git_check(self, fake_client, options):
        def explode(_path):
            raise AssertionError("git status should not run")

        assert (await pull(fake_client, options, yes=True, git_status=explode)).ok

    @pytest.mark.asyncio
    async def test_without_tests_keeps_existing_tests_dir(self, fake_client, options):
        await pull(fake_client, options, git_status=_clean)
        fake_client.test_cases = {}
        await pull(fake_client, options, include_tests=False, git_status=_clean)
        assert (options.agents_dir / VOICE_DIR / "tests" / ".tests.json").is_file()

    @pytest.mark.asyncio
    async def test_pulls_components_when_enabled(self, fake_client, options):
        fake_client.components = [
            {"conversation_flow_component_id": "conversation_flow_component_aaa111", "name": "Intake", "nodes": []}
        ]
        options = dataclasses.replace(options, sync_components=True)
        result = await pull(fake_client, options, git_status=_clean)
        assert result.components == 1
        assert (options.components_dir / "intake_aaa111" / ".component.json").is_file()


# ---------------------------------------------------------------------------
# deploy
# ---------------------------------------------------------------------------


class TestDeploy:
    @pytest.mark.asyncio
    async def test_no_changes_after_pull(self, fake_client, options):
        await pull(fake_client, options, git_status=_clean)
        result = await deploy(fake_client, options)
        assert result.status is WorkflowStatus.NO_CHANGES
        assert fake_client.calls == []

    @pytest.mark.asyncio
    async def test_dry_run_reports_without_applying(self, fake_client, options):
        await pull(fake_client, options, git_status=_clean)
        prompt = options.agents_dir / VOICE_DIR / "general_prompt.md"
        prompt.write_text("You are helpful.\nBe very brief.\n", encoding="utf-8")

        result = await deploy(fake_client, options, dry_run=True)
        assert result.status is WorkflowStatus.DRY_RUN
        assert [c.id for c in result.changes.llms] == [LLM_ID]
        assert result.affected_agent_ids == [VOICE_ID]
        assert "LLMs to update:" in result.summary
        assert fake_client.calls == []

    @pytest.mark.asyncio
    async def test_applies_updates_and_collects_failures(self, fake_client, options):
        await pull(fake_client, options, git_status=_clean)
        voice_dir = options.agents_dir / VOICE_DIR
        (voice_dir / "general_prompt.md").write_text("New prompt\n", encoding="utf-8")
        config = voice_dir / "config.yaml"
        config.write_text(config.read_text(encoding="utf-8").replace("11labs-Adrian", "11labs-Myra"), encoding="utf-8")
        fake_client.fail = {("update_llm", LLM_ID)}

        result = await deploy(fake_client, options, quiet=True)

        assert result.status is WorkflowStatus.PARTIAL_FAILURE
        assert not result.ok
        assert [m.id for m in result.applied] == [VOICE_ID]
        assert [(f.kind, f.id) for f in result.failed] == [("llm", LLM_ID)]
        ((agent_id, payload),) = fake_client.mutations("update_voice_agent")
        assert agent_id == VOICE_ID
        assert payload["voice_id"] == "11labs-Myra"
        assert "response_engine" not in payload
        assert result.pull is None

    @pytest.mark.asyncio
    async def test_test_case_edit_is_deployed(self, fake_client, options):
        await pull(fake_client, options, git_status=_clean)
        prompt = options.agents_dir / VOICE_DIR / "tests" / "refund_request_fund01_prompt.md"
        prompt.write_text("You want a refund for order 456.\n", encoding="utf-8")

        result = await deploy(fake_client, options, quiet=True)

        assert result.ok
        ((tc_id, payload),) = fake_client.mutations("update_test_case")
        assert tc_id == "tcd_refund01"
        assert payload["user_prompt"] == "You want a refund for order 456."
        assert "type" not in payload
        assert result.affected_agent_ids == []

    @pytest.mark.asyncio
    async def test_local_only_agent_is_not_created(self, fake_client, options):
        await pull(fake_client, options, git_status=_clean)
        fake_client.chat_agents = []
        fake_client.flows = []
        flow_prompt = options.agents_dir / CHAT_DIR / "global_prompt.md"
        flow_prompt.write_text("Changed locally\n", encoding="utf-8")

        result = await deploy(fake_client, options, quiet=True)
        assert result.status is WorkflowStatus.NO_CHANGES
        assert fake_client.calls == []

    @pytest.mark.asyncio
    async def test_repulls_after_apply(self, fake_client, options):
        await pull(fake_client, options, git_status=_clean)
        (options.agents_dir / VOICE_DIR / "general_prompt.md").write_text("Edited\n", encoding="utf-8")

        result = await deploy(fake_client, options)
        assert result.ok
        assert result.pull is not None
        # the fake does not persist updates, so the re-pull restores the remote prompt
        assert (options.agents_dir / VOICE_DIR / "general_prompt.md").read_text(encoding="utf-8") == (
            "You are helpful.\nBe brief.\n"
        )


# ---------------------------------------------------------------------------
# publish
# ---------------------------------------------------------------------------


class TestPublish:
    @pytest.mark.asyncio
    async def test_dry_run_lists_changed_agents(self, fake_client, options):
        result = await publish(fake_client, options, dry_run=True)
        assert result.status is WorkflowStatus.DRY_RUN
        assert sorted(a.id for a in result.to_publish) == sorted([VOICE_ID, CHAT_ID])
        assert fake_client.calls == []

    @pytest.mark.asyncio
    async def test_publishes_and_rebinds_phone_numbers(self, fake_client, options):
        result = await publish(fake_client, options, quiet=True)

        assert result.status is WorkflowStatus.SUCCESS
        assert sorted(result.published_ids) == sorted([VOICE_ID, CHAT_ID])
        assert fake_client.mutations("publish_voice_agent") == [(VOICE_ID, None)]
        assert fake_client.mutations("publish_chat_agent") == [(CHAT_ID, None)]

        ((number, payload),) = fake_client.mutations("update_phone_number")
        assert number == PHONE
        assert payload == {"inbound_agents": [{"agent_id": VOICE_ID, "agent_version": 1, "weight": 1}]}
        (update,) = result.phone_numbers
        assert update.descriptions == ["inbound: Support Bot v1"]

    @pytest.mark.asyncio
    async def test_llm_change_alone_triggers_publish(self, options):
        client = FakeRetellClient()
        client.voice_agents = [voice_agent(0, published=True, llm_version=0), voice_agent(1, published=False, llm_version=1)]
        client.llms = [llm(0, published=True, prompt="A"), llm(1, published=False, prompt="B")]

        result = await publish(client, options, dry_run=True)
        assert [a.id for a in result.to_publish] == [VOICE_ID]

    @pytest.mark.asyncio
    async def test_nothing_to_publish(self, options):
        client = FakeRetellClient()
        client.voice_agents = [voice_agent(0, published=True, llm_version=0)]
        client.llms = [llm(0, published=True, prompt="A")]

        result = await publish(client, options)
        assert result.status is WorkflowStatus.NO_CHANGES
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_publish_failure_is_partial(self, fake_client, options):
        fake_client.fail = {("publish_chat_agent", CHAT_ID)}
        result = await publish(fake_client, options, quiet=True)

        assert result.status is WorkflowStatus.PARTIAL_FAILURE
        assert result.published_ids == [VOICE_ID]
        assert [(f.kind, f.id) for f in result.failed] == [("chat agent", CHAT_ID)]
        # voice agent still got its phone number rebound
        assert len(fake_client.mutations("update_phone_number")) == 1

    @pytest.mark.asyncio
    async def test_phone_update_failure_is_reported(self, fake_client, options):
        fake_client.fail = {("update_phone_number", PHONE)}
        result = await publish(fake_client, options, quiet=True)
        assert result.status is WorkflowStatus.PARTIAL_FAILURE
        assert [(f.kind, f.id) for f in result.failed] == [("phone number", PHONE)]
        assert result.phone_numbers == []

    @pytest.mark.asyncio
    async def test_repulls_unless_quiet(self, fake_client, options):
        result = await publish(fake_client, options)
        assert result.pull is not None
        assert (options.agents_dir / VOICE_DIR / ".agent.json").is_file()
