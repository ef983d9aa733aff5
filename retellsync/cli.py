from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path

from . import paths
from .client import create_client
from .errors import PullAborted, RetellSyncError
from .log import configure_logging
from .sync_config import read_sync_config, resolve_agent_ids, resolve_component_ids
from .textfmt import CONFIG_FORMATS, pluralize
from .workflows import (
    DeployResult,
    MutationFailure,
    PublishResult,
    PullResult,
    SyncOptions,
    WorkflowStatus,
    deploy,
    publish,
    pull,
)


def _apply_root_selection(args: argparse.Namespace) -> None:
    """Select RETELL_SYNC_ROOT for this invocation.

    Precedence:
      1) --root
      2) existing RETELL_SYNC_ROOT
      3) cwd
    """

    explicit_root: Path | None = getattr(args, "root", None)
    if explicit_root is not None:
        os.environ["RETELL_SYNC_ROOT"] = str(Path(explicit_root).expanduser().resolve())


def _non_negative_int(value: str) -> int:
    try:
        n = int(value, 10)
    except ValueError:
        n = -1
    if n < 0:
        raise argparse.ArgumentTypeError("must be a non-negative integer")
    return n


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="retell-sync",
        description="Sync Retell AI agents, LLMs and conversation flows with a local file tree",
    )
    p.add_argument("--root", type=Path, default=None, help="Workspace root (default: $RETELL_SYNC_ROOT or cwd)")
    p.add_argument("-w", "--agents-dir", type=Path, default=None, help="Directory for agent files (default: <root>/agents)")
    p.add_argument("--components-dir", type=Path, default=None, help="Directory for shared components")
    p.add_argument("--config-format", choices=CONFIG_FORMATS, default="yaml", help="Format for written config files")
    p.add_argument("--log-level", default=os.environ.get("RETELL_SYNC_LOG_LEVEL", "WARNING"))
    p.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")

    sub = p.add_subparsers(dest="cmd", required=True)

    pl = sub.add_parser("pull", help="Pull agents from Retell (latest draft by default)")
    pl.add_argument("agent_ids", nargs="*")
    pl.add_argument("-a", "--all", dest="all_agents", action="store_true", help="Pull all agents in the account")
    pl.add_argument("-y", "--yes", action="store_true", help="Skip confirmation prompts")
    pl.add_argument("-v", "--version", type=_non_negative_int, default=None, help="Pull a specific version (requires agent IDs)")
    pl.add_argument("--no-tests", dest="tests", action="store_false", help="Skip pulling test case definitions")
    pl.add_argument("--all-components", action="store_true", help="Also pull every shared component")

    dp = sub.add_parser("deploy", help="Deploy local changes to Retell draft")
    dp.add_argument("agent_ids", nargs="*")
    dp.add_argument("-a", "--all", dest="all_agents", action="store_true", help="Deploy all agents in the account")
    dp.add_argument("-n", "--dry-run", action="store_true", help="Show changes without applying")
    dp.add_argument("-v", "--verbose", action="store_true", help="Show full diff details (use with --dry-run)")
    dp.add_argument("-q", "--quiet", action="store_true", help="Output only affected agent IDs (for piping)")
    dp.add_argument("--all-components", action="store_true", help="Also deploy every shared component")

    pb = sub.add_parser("publish", help="Publish agents with unpublished draft changes")
    pb.add_argument("agent_ids", nargs="*")
    pb.add_argument("-a", "--all", dest="all_agents", action="store_true", help="Publish all agents in the account")
    pb.add_argument("-n", "--dry-run", action="store_true", help="Show what would be published without publishing")
    pb.add_argument("-q", "--quiet", action="store_true", help="Output only published agent IDs (for piping)")

    return p


def _confirm(message: str) -> bool:
    if not sys.stdin.isatty():
        return False
    try:
        answer = input(f"{message} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def _options(args: argparse.Namespace) -> SyncOptions:
    config = read_sync_config()
    agent_ids = resolve_agent_ids(args.agent_ids, all_agents=args.all_agents, config=config)
    sync_components, component_ids = resolve_component_ids(
        all_components=getattr(args, "all_components", False),
        config=config,
    )
    return SyncOptions(
        agents_dir=paths.agents_dir(args.agents_dir),
        components_dir=paths.components_dir(args.components_dir),
        config_format=args.config_format,
        agent_ids=agent_ids,
        sync_components=sync_components,
        component_ids=component_ids,
    )


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    _apply_root_selection(args)
    configure_logging(args.log_level, json_logs=args.json_logs)

    try:
        return asyncio.run(_run(args))
    except PullAborted:
        print("Aborted")
        return 0
    except RetellSyncError as e:
        print(f"error: {e}")
        return 1
    except KeyboardInterrupt:  # pragma: no cover
        print("Aborted")
        return 130


async def _run(args: argparse.Namespace) -> int:
    if args.cmd == "pull" and args.version is not None and args.all_agents:
        print("error: --version cannot be used with --all (must specify agent IDs)")
        return 1

    options = _options(args)

    if args.cmd == "pull" and args.version is not None and options.agent_ids is None:
        print("error: --version requires specific agent IDs")
        return 1

    async with create_client() as client:
        if args.cmd == "pull":
            scope = f"{len(options.agent_ids)} agent(s)" if options.agent_ids else "all agents"
            version = f" (version {args.version})" if args.version is not None else ""
            print(f"Pulling {scope}{version} from Retell...")
            result = await pull(
                client,
                options,
                version=args.version,
                yes=args.yes,
                include_tests=args.tests,
                confirm=_confirm,
            )
            _print_pull(result)
            return 0 if result.ok else 1

        if args.cmd == "deploy":
            if not args.quiet:
                scope = f"{len(options.agent_ids)} agent(s)" if options.agent_ids else "all agents"
                print(f"Deploying {scope} to Retell draft...")
            result = await deploy(client, options, dry_run=args.dry_run, verbose=args.verbose, quiet=args.quiet)
            _print_deploy(result, quiet=args.quiet)
            return 0 if result.ok else 1

        if args.cmd == "publish":
            if not args.quiet:
                scope = f"{len(options.agent_ids)} agent(s)" if options.agent_ids else "all agents"
                print(f"Checking {scope} for unpublished changes...")
            result = await publish(client, options, dry_run=args.dry_run, quiet=args.quiet)
            _print_publish(result, quiet=args.quiet)
            return 0 if result.ok else 1

    raise AssertionError(f"unhandled cmd: {args.cmd}")


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def _print_failures(failed: list[MutationFailure]) -> None:
    for f in failed:
        print(f"Failed to update {f.kind} {f.name} ({f.id}): {f.error}")


def _print_pull(result: PullResult) -> None:
    agents = result.voice_agents + result.chat_agents
    print(
        f"{pluralize('agent', agents, True)} ({result.voice_agents} voice, {result.chat_agents} chat), "
        f"{pluralize('LLM', result.llms, True)}, {pluralize('flow', result.flows, True)}"
    )
    if result.test_cases or result.agents_with_tests:
        print(
            f"{pluralize('test case', result.test_cases, True)} across "
            f"{pluralize('agent', result.agents_with_tests, True)}"
        )
    if result.components_written is not None:
        print(pluralize("component", result.components, True))
    print(result.message)


def _print_deploy(result: DeployResult, *, quiet: bool) -> None:
    if quiet:
        if result.affected_agent_ids:
            print(" ".join(result.affected_agent_ids))
        _print_failures(result.failed)
        return

    changes = result.changes
    print(
        f"Found {changes.agent_count} agent changes, {len(changes.llms)} LLM changes, "
        f"{len(changes.flows)} flow changes, {len(changes.test_cases)} test case changes, "
        f"{len(changes.components)} component changes"
    )
    if result.status is WorkflowStatus.DRY_RUN:
        print("Dry run mode - no changes will be made")
        for line in result.summary:
            print(line)
        return

    for m in result.applied:
        print(f"Updated {m.kind.value} {m.name}")
    _print_failures(result.failed)
    print(result.message)
    if result.pull is not None:
        print("Synced latest state")


def _print_publish(result: PublishResult, *, quiet: bool) -> None:
    if quiet:
        ids = [a.id for a in result.to_publish] if result.status is WorkflowStatus.DRY_RUN else result.published_ids
        if ids:
            print(" ".join(ids))
        _print_failures(result.failed)
        return

    if result.status is WorkflowStatus.DRY_RUN:
        print("Dry run mode - no changes will be made")
        print(f"Would publish {pluralize('agent', len(result.to_publish), True)}:")
        for a in result.to_publish:
            print(f"  {a.name} ({a.channel.value}, {a.id})")
        return

    for a in result.published:
        print(f"Published {a.channel.value} agent {a.name}")
    for u in result.phone_numbers:
        print(f"Updated {u.phone_number} ({', '.join(u.descriptions)})")
    _print_failures(result.failed)
    print(result.message)
    if result.phone_numbers:
        print(f"Updated {pluralize('phone number', len(result.phone_numbers), True)}")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
