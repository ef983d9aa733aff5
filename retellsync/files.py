"""Serialize a CanonicalState to an editable directory tree and read it back.

Layout (relative to the agents directory):
    <agent_slug>_<id6>/
        .agent.json                 immutable identity (id, version, channel, engine ref)
        config.yaml                 mutable agent fields
        llm.yaml                    retell-llm engine config
        general_prompt.md
        conversation-flow.yaml      conversation-flow engine config
        global_prompt.md
        nodes/<node_slug>_<id6>.md  conversation node prompts
        .positions.json             canvas layout, kept out of the diffable config
        tests/                      test case definitions (see testcases.py)

`serialize_state` and `canonicalize_from_files` are pure transforms over an
in-memory `{relative path: content}` map; `write_tree` / `read_tree` move
those maps to and from disk.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping

from .errors import ConfigParseError, ConfigValidationError, LocalStateError
from .field_docs import CHAT_AGENT_FIELD_DOCS, FLOW_FIELD_DOCS, LLM_FIELD_DOCS, VOICE_AGENT_FIELD_DOCS
from .flow_helpers import POSITIONS_FILE, extract_node_prompts, extract_positions, merge_positions
from .log import get_logger
from .models import (
    FILE_HASH_LENGTH,
    CanonicalAgent,
    CanonicalFlow,
    CanonicalLlm,
    CanonicalState,
    CanonicalTestCase,
    Channel,
    ConversationFlowEngine,
    CustomLlmEngine,
    ResponseEngine,
    RetellLlmEngine,
    parse_response_engine,
)
from .textfmt import (
    FILE_PREFIX,
    ConfigFormat,
    find_config,
    read_config,
    read_json,
    resolve_file_placeholders,
    to_snake_case,
    write_config,
    write_json,
    write_markdown,
)
from .testcases import serialize_test_cases


_log = get_logger("files")

AGENT_META_FILE = ".agent.json"
GENERAL_PROMPT_FILE = "general_prompt.md"
GLOBAL_PROMPT_FILE = "global_prompt.md"
TESTS_DIR = "tests"

# agent config keys that are managed by Retell or live in the engine reference
_LOCAL_ONLY_AGENT_KEYS = ("version_title", "version_description", "llm_websocket_url")


def dir_name(label: str, resource_id: str) -> str:
    """Directory name for a resource, e.g. `my_agent_c78db2`."""
    return f"{to_snake_case(label)}_{resource_id[-FILE_HASH_LENGTH:]}"


def agent_dir_name(agent: CanonicalAgent) -> str:
    return dir_name(agent.name, agent.id)


# ---------------------------------------------------------------------------
# Serialize
# ---------------------------------------------------------------------------


def _serialize_llm(llm: CanonicalLlm, fmt: ConfigFormat) -> dict[str, str]:
    files: dict[str, str] = {}
    config = dict(llm.fields)
    if config.get("general_prompt"):
        files[GENERAL_PROMPT_FILE] = write_markdown(config["general_prompt"])
        config["general_prompt"] = f"{FILE_PREFIX}./{GENERAL_PROMPT_FILE}"
    files[f"llm.{fmt}"] = write_config(config, fmt, comments=LLM_FIELD_DOCS)
    return files


def _serialize_flow(flow: CanonicalFlow, fmt: ConfigFormat) -> dict[str, str]:
    files: dict[str, str] = {}
    config = dict(flow.fields)
    if config.get("global_prompt"):
        files[GLOBAL_PROMPT_FILE] = write_markdown(config["global_prompt"])
        config["global_prompt"] = f"{FILE_PREFIX}./{GLOBAL_PROMPT_FILE}"

    if isinstance(config.get("nodes"), list):
        config["nodes"], node_files = extract_node_prompts(config["nodes"])
        files.update(node_files)

    config, positions = extract_positions(config)
    if positions:
        files[POSITIONS_FILE] = write_json(positions)

    files[f"conversation-flow.{fmt}"] = write_config(config, fmt, comments=FLOW_FIELD_DOCS)
    return files


def _meta_engine(engine: ResponseEngine) -> dict[str, Any]:
    # the websocket URL lives in config; any other engine fields stay here
    if isinstance(engine, CustomLlmEngine):
        return {**engine.extra, "type": engine.type.value}
    return engine.to_dict()


def serialize_agent(
    agent: CanonicalAgent,
    state: CanonicalState,
    *,
    config_format: ConfigFormat = "yaml",
    test_cases: list[CanonicalTestCase] | None = None,
) -> dict[str, str]:
    """Files for one agent directory, keyed by path relative to that directory."""
    files: dict[str, str] = {
        AGENT_META_FILE: write_json(
            {
                "id": agent.id,
                "version": agent.version,
                "channel": agent.channel.value,
                "response_engine": _meta_engine(agent.response_engine),
            }
        )
    }

    config = dict(agent.fields)
    engine = agent.response_engine
    if isinstance(engine, CustomLlmEngine):
        config["llm_websocket_url"] = engine.llm_websocket_url
    elif isinstance(engine, RetellLlmEngine):
        llm = state.llm(engine.llm_id)
        if llm is not None:
            files.update(_serialize_llm(llm, config_format))
    elif isinstance(engine, ConversationFlowEngine):
        flow = state.flow(engine.conversation_flow_id)
        if flow is not None:
            files.update(_serialize_flow(flow, config_format))

    docs = CHAT_AGENT_FIELD_DOCS if agent.channel is Channel.CHAT else VOICE_AGENT_FIELD_DOCS
    files[f"config.{config_format}"] = write_config(config, config_format, comments=docs)

    if test_cases and not isinstance(engine, CustomLlmEngine):
        for rel, content in serialize_test_cases(test_cases, engine, config_format=config_format).items():
            files[f"{TESTS_DIR}/{rel}"] = content
    return files


def serialize_state(
    state: CanonicalState,
    *,
    config_format: ConfigFormat = "yaml",
    test_cases: Mapping[str, list[CanonicalTestCase]] | None = None,
) -> dict[str, str]:
    """Convert a canonical state to `{path relative to agents dir: content}`.

    Args:
        state: Snapshot to serialize
        config_format: "yaml" (default) or "json" for config files
        test_cases: Test cases per agent id; agents missing from the mapping get no tests/ files
    """
    files: dict[str, str] = {}
    for agent in state.agents:
        prefix = agent_dir_name(agent)
        agent_files = serialize_agent(
            agent,
            state,
            config_format=config_format,
            test_cases=(test_cases or {}).get(agent.id),
        )
        for rel, content in agent_files.items():
            files[f"{prefix}/{rel}"] = content
    return files


# ---------------------------------------------------------------------------
# Deserialize
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AgentMeta:
    id: str
    version: int
    channel: Channel
    engine: dict[str, Any]


def parse_agent_meta(text: str, path: Path) -> AgentMeta:
    raw = read_json(text, path)
    if not isinstance(raw, dict):
        raise ConfigValidationError(path=path, message="expected object")
    agent_id = raw.get("id")
    if not isinstance(agent_id, str):
        raise ConfigValidationError(path=path, message="id: expected string")
    version = raw.get("version")
    if isinstance(version, bool) or not isinstance(version, (int, float)):
        raise ConfigValidationError(path=path, message="version: expected number")
    try:
        channel = Channel(raw.get("channel", Channel.VOICE.value))
    except ValueError:
        raise ConfigValidationError(path=path, message=f"channel: expected voice or chat, got {raw.get('channel')!r}")
    engine = raw.get("response_engine")
    if not isinstance(engine, dict) or not isinstance(engine.get("type"), str):
        raise ConfigValidationError(path=path, message="response_engine: expected object with type")
    return AgentMeta(id=agent_id, version=int(version), channel=channel, engine=engine)


def file_reader(files: Mapping[str, str], base: str) -> Callable[[str], str]:
    """Resolve `file://` paths relative to `base` within an in-memory file map."""

    def read(rel: str) -> str:
        rel = rel[2:] if rel.startswith("./") else rel
        key = f"{base}/{rel}" if base else rel
        if key not in files:
            raise LocalStateError(path=key, message="referenced file not found")
        return files[key]

    return read


def group_by_dir(files: Mapping[str, str]) -> dict[str, dict[str, str]]:
    """Group `{a/b/c: ...}` into `{a: {b/c: ...}}`; top-level files are ignored."""
    groups: dict[str, dict[str, str]] = {}
    for path, content in files.items():
        head, sep, rest = path.partition("/")
        if sep:
            groups.setdefault(head, {})[rest] = content
    return groups


def _read_engine_config(
    dir_files: Mapping[str, str],
    stem: str,
    dirname: str,
) -> dict[str, Any] | None:
    key = find_config(dict(dir_files), stem)
    if key is None:
        return None
    config = read_config(dir_files[key], Path(dirname) / key)
    return resolve_file_placeholders(config, file_reader(dir_files, ""))


def canonicalize_from_files(files: Mapping[str, str]) -> CanonicalState:
    """Rebuild a canonical state from `{path relative to agents dir: content}`.

    Directories without `.agent.json` or a config file are skipped. A
    `file://` reference to a missing file raises LocalStateError.
    """
    voice: list[CanonicalAgent] = []
    chat: list[CanonicalAgent] = []
    llms: dict[str, CanonicalLlm] = {}
    flows: dict[str, CanonicalFlow] = {}

    for dirname, dir_files in sorted(group_by_dir(files).items()):
        if AGENT_META_FILE not in dir_files:
            continue
        meta = parse_agent_meta(dir_files[AGENT_META_FILE], Path(dirname) / AGENT_META_FILE)

        config_key = find_config(dir_files, "config")
        if config_key is None:
            _log.warning("agent directory has no config file; skipping", dir=dirname)
            continue
        try:
            config = resolve_file_placeholders(
                read_config(dir_files[config_key], Path(dirname) / config_key),
                file_reader(dir_files, ""),
            )
        except LocalStateError as e:
            raise LocalStateError(path=f"{dirname}/{e.path}", message=e.message) from e

        if meta.engine.get("type") == CustomLlmEngine.type.value:
            url = config.get("llm_websocket_url")
            extra = {k: v for k, v in meta.engine.items() if k not in ("type", "llm_websocket_url")}
            engine: ResponseEngine = CustomLlmEngine(llm_websocket_url=url if isinstance(url, str) else "", extra=extra)
        else:
            try:
                engine = parse_response_engine(meta.engine)
            except ValueError as e:
                raise ConfigValidationError(path=Path(dirname) / AGENT_META_FILE, message=str(e)) from e

        try:
            if isinstance(engine, RetellLlmEngine):
                llm_config = _read_engine_config(dir_files, "llm", dirname)
                if llm_config is not None:
                    _add_unique(llms, CanonicalLlm(id=engine.llm_id, version=engine.version or 0, fields=llm_config))
            elif isinstance(engine, ConversationFlowEngine):
                flow_config = _read_engine_config(dir_files, "conversation-flow", dirname)
                if flow_config is not None:
                    if POSITIONS_FILE in dir_files:
                        positions = read_json(dir_files[POSITIONS_FILE], Path(dirname) / POSITIONS_FILE)
                        if isinstance(positions, dict):
                            flow_config = merge_positions(flow_config, positions)
                    _add_unique(
                        flows,
                        CanonicalFlow(id=engine.conversation_flow_id, version=engine.version or 0, fields=flow_config),
                    )
        except LocalStateError as e:
            raise LocalStateError(path=f"{dirname}/{e.path}", message=e.message) from e

        agent = CanonicalAgent(
            id=meta.id,
            version=meta.version,
            channel=meta.channel,
            response_engine=engine,
            fields={k: v for k, v in config.items() if k not in _LOCAL_ONLY_AGENT_KEYS},
        )
        (chat if meta.channel is Channel.CHAT else voice).append(agent)

    return CanonicalState(
        voice_agents=voice,
        chat_agents=chat,
        llms=list(llms.values()),
        conversation_flows=list(flows.values()),
    )


def _add_unique(found: dict[str, Any], resource: CanonicalLlm | CanonicalFlow) -> None:
    # agents sharing an engine each carry a copy; the first directory wins
    existing = found.get(resource.id)
    if existing is None:
        found[resource.id] = resource
    elif existing.fields != resource.fields:
        _log.warning("shared engine differs between agent directories; using first", id=resource.id)


# ---------------------------------------------------------------------------
# Disk I/O
# ---------------------------------------------------------------------------


@dataclass
class WriteResult:
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)


def _safe_write_text(dst: Path, text: str) -> None:
    dst.parent.mkdir(parents=True, exist_ok=True)
    tmp = dst.with_name(dst.name + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    tmp.replace(dst)


def read_meta_id(meta_path: Path) -> str | None:
    """Id recorded in a directory's metadata file, or None if missing/unreadable."""
    try:
        raw = read_json(meta_path.read_text(encoding="utf-8"), meta_path)
    except (OSError, ConfigParseError):
        return None
    if isinstance(raw, dict) and isinstance(raw.get("id"), str):
        return raw["id"]
    return None


def read_tree(root: Path, *, meta_name: str, ids: set[str] | None = None) -> dict[str, str]:
    """Read every resource directory under `root` that has `meta_name`.

    With `ids`, only directories whose metadata id is in the set are read.
    """
    files: dict[str, str] = {}
    if not root.is_dir():
        return files
    for meta_path in sorted(root.glob(f"*/{meta_name}")):
        if ids is not None and read_meta_id(meta_path) not in ids:
            continue
        resource_dir = meta_path.parent
        for p in sorted(resource_dir.rglob("*")):
            if p.is_file() and not p.name.endswith(".tmp"):
                files[p.relative_to(root).as_posix()] = p.read_text(encoding="utf-8")
    return files


def write_tree(
    root: Path,
    files: Mapping[str, str],
    *,
    meta_name: str,
    managed_ids: set[str] | None = None,
    keep: Callable[[str], bool] | None = None,
) -> WriteResult:
    """Write `files` under `root` and delete what a previous write left behind.

    Directories not written this time are removed, as are stale files inside
    written directories. With `managed_ids`, only directories whose metadata
    names one of those ids are cleaned up; everything else is left alone.
    `keep(relative path)` protects individual files from cleanup.
    """
    result = WriteResult()
    for rel, content in files.items():
        dst = root / rel
        if dst.exists():
            if dst.read_text(encoding="utf-8") == content:
                continue
            result.updated.append(rel)
        else:
            result.created.append(rel)
        _safe_write_text(dst, content)

    if not root.is_dir():
        return result

    written_dirs = {rel.split("/", 1)[0] for rel in files}
    for entry in sorted(root.iterdir()):
        if not entry.is_dir():
            continue
        if managed_ids is not None and read_meta_id(entry / meta_name) not in managed_ids:
            continue
        if entry.name not in written_dirs:
            shutil.rmtree(entry)
            result.removed.append(entry.name)
            continue
        for p in sorted(entry.rglob("*"), reverse=True):
            rel = p.relative_to(root).as_posix()
            if p.is_file() and rel not in files and not (keep and keep(rel)):
                p.unlink()
                result.removed.append(rel)
            elif p.is_dir() and not any(p.iterdir()):
                p.rmdir()
    return result


def write_state(
    state: CanonicalState,
    agents_dir: Path,
    *,
    agent_ids: set[str] | None = None,
    config_format: ConfigFormat = "yaml",
    test_cases: Mapping[str, list[CanonicalTestCase]] | None = None,
) -> WriteResult:
    """Serialize `state` into `agents_dir`, cleaning up deleted agents.

    Agents missing from `test_cases` (or all agents, when it is None) keep
    their existing tests/ directory as-is; an agent mapped to an empty list
    has it removed.
    """
    files = serialize_state(state, config_format=config_format, test_cases=test_cases)
    untouched = {agent_dir_name(a) for a in state.agents if test_cases is None or a.id not in test_cases}

    def keep(rel: str) -> bool:
        parts = rel.split("/")
        return len(parts) > 2 and parts[1] == TESTS_DIR and parts[0] in untouched

    return write_tree(agents_dir, files, meta_name=AGENT_META_FILE, managed_ids=agent_ids, keep=keep)


def read_local_state(agents_dir: Path, *, agent_ids: set[str] | None = None) -> CanonicalState:
    return canonicalize_from_files(read_tree(agents_dir, meta_name=AGENT_META_FILE, ids=agent_ids))
