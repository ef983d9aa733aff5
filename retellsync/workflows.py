"""Workflow implementations: pull, deploy, publish.

- `pull`    - Retell draft state -> local agent tree (optionally a fixed version)
- `deploy`  - local agent tree -> Retell draft (updates only, never creates)
- `publish` - publish agents whose draft differs from the published version,
              then point phone numbers at the newly published versions

These functions are called by the CLI layer; they do not print. Progress,
skips and per-resource failures are logged through the injected `log`, and
everything the user needs to see comes back in the result objects.
"""

from __future__ import annotations

import asyncio
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from .changes import Changes, compute_changes, compute_component_changes, compute_test_case_changes
from .client import ApiError, ApiConnectionError, RetellClient
from .components import read_local_components, write_components
from .dependencies import find_affected_agent_ids
from .errors import PullAborted, RetellSyncError, SchemaError
from .files import AGENT_META_FILE, WriteResult, agent_dir_name, canonicalize_from_files, group_by_dir, read_tree, write_state
from .log import get_logger
from .models import CanonicalState, CanonicalTestCase, Channel, CustomLlmEngine
from .planner import (
    Mutation,
    MutationKind,
    PhoneNumberUpdate,
    format_change_summary,
    latest_published_version,
    plan_phone_number_updates,
    plan_updates,
)
from .remote import fetch_test_cases, get_remote_components, get_remote_state
from .schemas import validate_list, validate_phone_number
from .testcases import canonicalize_test_cases_from_files, tests_dir_files
from .textfmt import ConfigFormat, pluralize


_log = get_logger("workflows")


# ---------------------------------------------------------------------------
# Options and result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SyncOptions:
    """Where the local tree lives and which resources a workflow operates on.

    Attributes:
        agents_dir: Root of the agent tree
        components_dir: Root of the shared component tree
        config_format: Format for written config files
        agent_ids: Agents to operate on (None = all)
        sync_components: Whether shared components take part at all
        component_ids: Components to operate on (None = all, when synced)
    """

    agents_dir: Path
    components_dir: Path
    config_format: ConfigFormat = "yaml"
    agent_ids: set[str] | None = None
    sync_components: bool = False
    component_ids: set[str] | None = None


class WorkflowStatus(str, Enum):
    SUCCESS = "success"
    NO_CHANGES = "no_changes"
    DRY_RUN = "dry_run"
    PARTIAL_FAILURE = "partial_failure"


@dataclass
class MutationFailure:
    kind: str
    id: str
    name: str
    error: str


@dataclass
class PullResult:
    status: WorkflowStatus
    message: str
    voice_agents: int = 0
    chat_agents: int = 0
    llms: int = 0
    flows: int = 0
    test_cases: int = 0
    agents_with_tests: int = 0
    components: int = 0
    written: WriteResult = field(default_factory=WriteResult)
    components_written: WriteResult | None = None

    @property
    def ok(self) -> bool:
        return self.status in (WorkflowStatus.SUCCESS, WorkflowStatus.NO_CHANGES)


@dataclass
class DeployResult:
    status: WorkflowStatus
    message: str
    changes: Changes = field(default_factory=Changes)
    affected_agent_ids: list[str] = field(default_factory=list)
    applied: list[Mutation] = field(default_factory=list)
    failed: list[MutationFailure] = field(default_factory=list)
    summary: list[str] = field(default_factory=list)  # dry run only
    pull: PullResult | None = None

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass
class PublishedAgent:
    id: str
    name: str
    channel: Channel


@dataclass
class PublishResult:
    status: WorkflowStatus
    message: str
    to_publish: list[PublishedAgent] = field(default_factory=list)
    published: list[PublishedAgent] = field(default_factory=list)
    phone_numbers: list[PhoneNumberUpdate] = field(default_factory=list)
    failed: list[MutationFailure] = field(default_factory=list)
    pull: PullResult | None = None

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def published_ids(self) -> list[str]:
        return [a.id for a in self.published]


Confirm = Callable[[str], bool]
GitCheck = Callable[[Path], str]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def uncommitted_changes(path: Path) -> str:
    """`git status --porcelain` output for `path`; empty when clean or not a git checkout."""
    cwd = path if path.is_dir() else path.parent
    if not cwd.is_dir():
        return ""
    try:
        cp = subprocess.run(
            ["git", "status", "--porcelain", "--", str(path)],
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
        )
    except OSError:
        return ""
    return cp.stdout.strip() if cp.returncode == 0 else ""


def _failure(kind: str, resource_id: str, name: str, error: BaseException) -> MutationFailure:
    return MutationFailure(kind=kind, id=resource_id, name=name, error=str(error))


async def _settle(
    calls: list[tuple[Any, Any]],
    *,
    kind_of: Callable[[Any], str],
    id_of: Callable[[Any], str],
    name_of: Callable[[Any], str],
    log: Any,
) -> tuple[list[Any], list[MutationFailure]]:
    """Run `(item, awaitable)` pairs concurrently; every call settles, none is cancelled."""
    results = await asyncio.gather(*(aw for _, aw in calls), return_exceptions=True)
    ok: list[Any] = []
    failed: list[MutationFailure] = []
    for (item, _), result in zip(calls, results):
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            log.error("mutation failed", resource=kind_of(item), id=id_of(item), error=str(result))
            failed.append(_failure(kind_of(item), id_of(item), name_of(item), result))
        else:
            ok.append(item)
    return ok, failed


# ---------------------------------------------------------------------------
# pull
# ---------------------------------------------------------------------------


async def _fetch_all_test_cases(
    client: RetellClient,
    state: CanonicalState,
    log: Any,
) -> dict[str, list[CanonicalTestCase]]:
    """Test cases per agent id. Agents whose fetch failed are left out."""

    async def one(agent_id: str, engine: Any) -> tuple[str, list[CanonicalTestCase] | None]:
        try:
            return agent_id, await fetch_test_cases(client, engine, log=log)
        except (ApiError, ApiConnectionError) as e:
            log.warning("could not fetch test cases", id=agent_id, error=str(e))
            return agent_id, None

    results = await asyncio.gather(
        *(one(a.id, a.response_engine) for a in state.agents if not isinstance(a.response_engine, CustomLlmEngine))
    )
    return {agent_id: cases for agent_id, cases in results if cases is not None}


async def pull(
    client: RetellClient,
    options: SyncOptions,
    *,
    version: int | None = None,
    yes: bool = False,
    include_tests: bool = True,
    confirm: Confirm | None = None,
    git_status: GitCheck = uncommitted_changes,
    log: Any = None,
) -> PullResult:
    """Fetch draft (or `version`) state and write it to the local tree.

    Raises:
        PullAborted: The agents dir has uncommitted changes and the user declined
        RetellSyncError: On invalid arguments, API or schema failures
    """
    log = log or _log
    if version is not None and not options.agent_ids:
        raise RetellSyncError("--version requires specific agent IDs")

    if not yes:
        dirty = git_status(options.agents_dir)
        if dirty:
            log.warning("uncommitted changes in agents directory", files=dirty.splitlines())
            if confirm is None or not confirm("Pull will overwrite these files. Continue?"):
                raise PullAborted("Aborted")

    state = await get_remote_state(client, draft=True, agent_ids=options.agent_ids, version=version)
    test_cases = await _fetch_all_test_cases(client, state, log) if include_tests else None

    written = write_state(
        state,
        options.agents_dir,
        agent_ids=options.agent_ids,
        config_format=options.config_format,
        test_cases=test_cases,
    )

    result = PullResult(
        status=WorkflowStatus.SUCCESS,
        message=f"Files written to {options.agents_dir}. Review with git diff.",
        voice_agents=len(state.voice_agents),
        chat_agents=len(state.chat_agents),
        llms=len(state.llms),
        flows=len(state.conversation_flows),
        test_cases=sum(len(v) for v in (test_cases or {}).values()),
        agents_with_tests=sum(1 for v in (test_cases or {}).values() if v),
        written=written,
    )

    if options.sync_components:
        components = await get_remote_components(client, component_ids=options.component_ids)
        result.components = len(components)
        result.components_written = write_components(
            components,
            options.components_dir,
            component_ids=options.component_ids,
            config_format=options.config_format,
        )

    log.info(
        "pulled",
        agents=result.voice_agents + result.chat_agents,
        llms=result.llms,
        flows=result.flows,
        test_cases=result.test_cases,
        components=result.components,
    )
    return result


# ---------------------------------------------------------------------------
# deploy
# ---------------------------------------------------------------------------


def _local_test_cases(files: dict[str, str], state: CanonicalState) -> dict[str, list[CanonicalTestCase]]:
    groups = group_by_dir(files)
    out: dict[str, list[CanonicalTestCase]] = {}
    for agent in state.agents:
        if isinstance(agent.response_engine, CustomLlmEngine):
            continue
        dirname = agent_dir_name(agent)
        cases = canonicalize_test_cases_from_files(
            tests_dir_files(groups.get(dirname, {})),
            base=Path(dirname) / "tests",
        )
        if cases:
            out[agent.id] = cases
    return out


async def _test_case_changes(
    client: RetellClient,
    local_state: CanonicalState,
    local_cases: dict[str, list[CanonicalTestCase]],
    log: Any,
) -> list[Any]:
    engines = {a.id: a.response_engine for a in local_state.agents}

    async def one(agent_id: str, local: list[CanonicalTestCase]) -> list[Any]:
        try:
            remote = await fetch_test_cases(client, engines[agent_id], log=log)
        except (ApiError, ApiConnectionError, SchemaError) as e:
            log.warning("could not fetch remote test cases; skipping", id=agent_id, error=str(e))
            return []
        return compute_test_case_changes(local, remote)

    per_agent = await asyncio.gather(*(one(i, cases) for i, cases in local_cases.items()))
    return [change for changes in per_agent for change in changes]


async def _apply(client: RetellClient, m: Mutation) -> Any:
    if m.kind is MutationKind.VOICE_AGENT:
        return await client.update_voice_agent(m.id, m.payload)
    if m.kind is MutationKind.CHAT_AGENT:
        return await client.update_chat_agent(m.id, m.payload)
    if m.kind is MutationKind.LLM:
        return await client.update_llm(m.id, m.payload)
    if m.kind is MutationKind.FLOW:
        return await client.update_conversation_flow(m.id, m.payload)
    if m.kind is MutationKind.TEST_CASE:
        return await client.update_test_case(m.id, m.payload)
    return await client.update_component(m.id, m.payload)


async def deploy(
    client: RetellClient,
    options: SyncOptions,
    *,
    dry_run: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    log: Any = None,
) -> DeployResult:
    """Push local edits to the Retell draft.

    Remote resources without a local counterpart are left alone, and local
    resources without a remote counterpart are never created. Failed updates
    are collected; the rest still run.
    """
    log = log or _log

    files, remote_state = await asyncio.gather(
        asyncio.to_thread(read_tree, options.agents_dir, meta_name=AGENT_META_FILE, ids=options.agent_ids),
        get_remote_state(client, draft=True, agent_ids=options.agent_ids),
    )
    local_state = canonicalize_from_files(files)
    log.info("read state", local_agents=len(local_state.agents), remote_agents=len(remote_state.agents))

    base = compute_changes(local_state, remote_state, include_new=False)
    test_case_changes = await _test_case_changes(client, local_state, _local_test_cases(files, local_state), log)

    component_changes: list[Any] = []
    if options.sync_components:
        local_components, remote_components = await asyncio.gather(
            asyncio.to_thread(read_local_components, options.components_dir, component_ids=options.component_ids),
            get_remote_components(client, component_ids=options.component_ids),
        )
        component_changes = compute_component_changes(local_components, remote_components)

    changes = Changes.extend(base, test_cases=test_case_changes, components=component_changes)
    affected = sorted(find_affected_agent_ids(changes, local_state))

    if changes.total == 0:
        return DeployResult(status=WorkflowStatus.NO_CHANGES, message="No changes to deploy", changes=changes)

    if dry_run:
        return DeployResult(
            status=WorkflowStatus.DRY_RUN,
            message=f"Dry run: {pluralize('change', changes.total, True)} not applied",
            changes=changes,
            affected_agent_ids=affected,
            summary=format_change_summary(changes, verbose=verbose),
        )

    mutations = plan_updates(changes)
    applied, failed = await _settle(
        [(m, _apply(client, m)) for m in mutations],
        kind_of=lambda m: m.kind.value,
        id_of=lambda m: m.id,
        name_of=lambda m: m.name,
        log=log,
    )
    result = DeployResult(
        status=WorkflowStatus.PARTIAL_FAILURE if failed else WorkflowStatus.SUCCESS,
        message=f"Deployed {pluralize('change', len(applied), True)}",
        changes=changes,
        affected_agent_ids=affected,
        applied=applied,
        failed=failed,
    )

    if not quiet:
        result.pull = await pull(client, options, yes=True, log=log)
    return result


# ---------------------------------------------------------------------------
# publish
# ---------------------------------------------------------------------------


async def _rebind_phone_numbers(
    client: RetellClient,
    voice_agent_ids: list[str],
    agent_names: dict[str, str],
    log: Any,
) -> tuple[list[PhoneNumberUpdate], list[MutationFailure]]:
    raw_numbers, *version_lists = await asyncio.gather(
        client.list_phone_numbers(),
        *(client.get_agent_versions(i) for i in voice_agent_ids),
    )
    phone_numbers = validate_list(raw_numbers, validate_phone_number, "phone-number")
    published_versions: dict[str, int] = {}
    for agent_id, versions in zip(voice_agent_ids, version_lists):
        latest = latest_published_version(versions or [])
        if latest is not None:
            published_versions[agent_id] = latest

    updates = plan_phone_number_updates(phone_numbers, published_versions, agent_names)
    if not updates:
        log.info("no phone numbers to update")
        return [], []
    return await _settle(
        [(u, client.update_phone_number(u.phone_number, u.payload)) for u in updates],
        kind_of=lambda _: "phone number",
        id_of=lambda u: u.phone_number,
        name_of=lambda u: u.phone_number,
        log=log,
    )


async def publish(
    client: RetellClient,
    options: SyncOptions,
    *,
    dry_run: bool = False,
    quiet: bool = False,
    log: Any = None,
) -> PublishResult:
    """Publish every agent whose draft differs from its published version.

    An agent is published when its own config changed or the LLM/flow it uses
    changed. Never-published agents count as changed.
    """
    log = log or _log
    draft, published = await asyncio.gather(
        get_remote_state(client, draft=True, agent_ids=options.agent_ids),
        get_remote_state(client, draft=False, agent_ids=options.agent_ids),
    )
    changes = compute_changes(draft, published, include_new=True)
    ids = find_affected_agent_ids(changes, draft)
    log.info("compared draft and published", agents=changes.agent_count, llms=len(changes.llms), flows=len(changes.flows))

    to_publish = [PublishedAgent(id=a.id, name=a.name, channel=a.channel) for a in draft.agents if a.id in ids]
    if not to_publish:
        return PublishResult(status=WorkflowStatus.NO_CHANGES, message="All agents are already up to date")

    if dry_run:
        return PublishResult(
            status=WorkflowStatus.DRY_RUN,
            message=f"Would publish {pluralize('agent', len(to_publish), True)}",
            to_publish=to_publish,
        )

    done, failed = await _settle(
        [
            (
                a,
                client.publish_chat_agent(a.id) if a.channel is Channel.CHAT else client.publish_voice_agent(a.id),
            )
            for a in to_publish
        ],
        kind_of=lambda a: f"{a.channel.value} agent",
        id_of=lambda a: a.id,
        name_of=lambda a: a.name,
        log=log,
    )
    result = PublishResult(
        status=WorkflowStatus.SUCCESS,
        message=f"Published {pluralize('agent', len(done), True)}",
        to_publish=to_publish,
        published=done,
        failed=failed,
    )

    voice_ids = [a.id for a in done if a.channel is Channel.VOICE]
    if voice_ids:
        names = {a.id: a.name for a in draft.agents}
        result.phone_numbers, phone_failed = await _rebind_phone_numbers(client, voice_ids, names, log)
        result.failed.extend(phone_failed)

    if result.failed:
        result.status = WorkflowStatus.PARTIAL_FAILURE
    if not quiet:
        result.pull = await pull(client, options, yes=True, log=log)
    return result
