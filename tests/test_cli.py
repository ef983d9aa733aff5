"""CLI contract tests: exit codes, root selection and piping output."""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import CHAT_ID, VOICE_ID
from retellsync import cli
from retellsync.errors import PullAborted


@pytest.fixture
def use_fake(monkeypatch, fake_client):
    monkeypatch.setattr(cli, "create_client", lambda: fake_client)
    monkeypatch.delenv("RETELL_SYNC_ROOT", raising=False)
    monkeypatch.delenv("RETELL_AGENTS_DIR", raising=False)
    monkeypatch.delenv("RETELL_COMPONENTS_DIR", raising=False)
    return fake_client


def test_requires_subcommand(capsys):
    with pytest.raises(SystemExit) as exc:
        cli.main([])
    assert exc.value.code == 2


def test_version_with_all_is_rejected(use_fake, tmp_path: Path, capsys):
    assert cli.main(["--root", str(tmp_path), "pull", "--all", "--version", "2"]) == 1
    assert "--version cannot be used with --all" in capsys.readouterr().out


def test_version_without_ids_is_rejected(use_fake, tmp_path: Path, capsys):
    assert cli.main(["--root", str(tmp_path), "pull", "-v", "2"]) == 1
    assert "--version requires specific agent IDs" in capsys.readouterr().out


def test_negative_version_is_a_usage_error(use_fake, tmp_path: Path):
    with pytest.raises(SystemExit):
        cli.main(["--root", str(tmp_path), "pull", VOICE_ID, "-v", "-1"])


def test_pull_writes_under_root(use_fake, tmp_path: Path, capsys):
    assert cli.main(["--root", str(tmp_path), "pull", "-y"]) == 0
    out = capsys.readouterr().out
    assert "Pulling all agents from Retell..." in out
    assert "2 agents (1 voice, 1 chat), 1 LLM, 1 flow" in out
    assert (tmp_path / "agents" / "support_bot_000001" / ".agent.json").is_file()


def test_agents_dir_override(use_fake, tmp_path: Path):
    target = tmp_path / "elsewhere"
    assert cli.main(["--root", str(tmp_path), "-w", str(target), "pull", "-y", VOICE_ID]) == 0
    assert [p.name for p in target.iterdir()] == ["support_bot_000001"]


def test_aborted_pull_exits_zero(use_fake, tmp_path: Path, monkeypatch, capsys):
    async def aborted(*args, **kwargs):
        raise PullAborted("Aborted")

    monkeypatch.setattr(cli, "pull", aborted)
    assert cli.main(["--root", str(tmp_path), "pull"]) == 0
    assert capsys.readouterr().out.strip().endswith("Aborted")


def test_deploy_quiet_prints_only_affected_ids(use_fake, tmp_path: Path, capsys):
    assert cli.main(["--root", str(tmp_path), "pull", "-y"]) == 0
    prompt = tmp_path / "agents" / "support_bot_000001" / "general_prompt.md"
    prompt.write_text("Edited prompt\n", encoding="utf-8")
    capsys.readouterr()

    assert cli.main(["--root", str(tmp_path), "deploy", "-q"]) == 0
    assert capsys.readouterr().out == f"{VOICE_ID}\n"


def test_deploy_failure_exits_nonzero(use_fake, tmp_path: Path, capsys):
    assert cli.main(["--root", str(tmp_path), "pull", "-y"]) == 0
    prompt = tmp_path / "agents" / "support_bot_000001" / "general_prompt.md"
    prompt.write_text("Edited prompt\n", encoding="utf-8")
    use_fake.fail = {("update_llm", use_fake.llms[0]["llm_id"])}

    assert cli.main(["--root", str(tmp_path), "deploy", "-q"]) == 1
    assert "Failed to update llm" in capsys.readouterr().out


def test_publish_dry_run_quiet(use_fake, tmp_path: Path, capsys):
    assert cli.main(["--root", str(tmp_path), "publish", "-n", "-q"]) == 0
    assert sorted(capsys.readouterr().out.split()) == sorted([VOICE_ID, CHAT_ID])
    assert use_fake.calls == []


def test_sync_config_scopes_agents(use_fake, tmp_path: Path):
    (tmp_path / ".retell-sync.json").write_text(f'{{"agents": ["{CHAT_ID}"]}}', encoding="utf-8")
    assert cli.main(["--root", str(tmp_path), "pull", "-y"]) == 0
    assert [p.name for p in (tmp_path / "agents").iterdir()] == ["booking_chat_000002"]


def test_api_errors_exit_nonzero(use_fake, tmp_path: Path, capsys):
    use_fake.voice_agents = [{"agent_id": 1}]
    assert cli.main(["--root", str(tmp_path), "pull", "-y"]) == 1
    assert capsys.readouterr().out.splitlines()[-1].startswith("error: Unexpected agent payload")
