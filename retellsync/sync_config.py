"""`.retell-sync.json`: the default set of agents/components a workspace syncs.

    {"agents": ["agent_..."], "components": ["conversation_flow_component_..."]}
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

from . import paths
from .errors import ConfigParseError, ConfigValidationError
from .log import get_logger
from .textfmt import read_json


_log = get_logger("sync_config")

_KNOWN_KEYS = {"agents", "components"}


@dataclass(frozen=True)
class SyncConfig:
    agents: list[str] | None = None
    components: list[str] | None = None


def _optional_str_list(path: Path, value: Any, where: str) -> list[str] | None:
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigValidationError(path=path, message=f"{where}: expected list of strings")
    return value


def parse_sync_config(path: Path) -> SyncConfig:
    data = read_json(path.read_text(encoding="utf-8"), path)
    if not isinstance(data, dict):
        raise ConfigValidationError(path=path, message="expected object")
    unknown = set(data) - _KNOWN_KEYS
    if unknown:
        _log.debug("ignoring unknown keys", path=str(path), keys=sorted(unknown))
    return SyncConfig(
        agents=_optional_str_list(path, data.get("agents"), "agents"),
        components=_optional_str_list(path, data.get("components"), "components"),
    )


def read_sync_config(path: Path | None = None) -> SyncConfig | None:
    """Load the workspace sync config; a missing or invalid file yields None."""
    p = path or paths.sync_config_path()
    if not p.is_file():
        return None
    try:
        return parse_sync_config(p)
    except (ConfigParseError, ConfigValidationError) as e:
        _log.warning("invalid sync config, ignoring", path=str(p), error=str(e))
        return None


def resolve_agent_ids(
    args: Sequence[str],
    *,
    all_agents: bool = False,
    config: SyncConfig | None = None,
) -> set[str] | None:
    """Agent ids to operate on; None means every agent.

    Precedence: explicit ids, then `--all`, then the sync config's agents.
    """
    if args:
        return set(args)
    if all_agents:
        return None
    if config is not None and config.agents:
        _log.info("using agents from sync config", count=len(config.agents))
        return set(config.agents)
    return None


def resolve_component_ids(
    *,
    all_components: bool = False,
    config: SyncConfig | None = None,
) -> tuple[bool, set[str] | None]:
    """Whether components are synced at all, and which ones (None = all)."""
    if all_components:
        return True, None
    if config is not None and config.components:
        return True, set(config.components)
    return False, None
