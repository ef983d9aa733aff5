from __future__ import annotations

import os
from pathlib import Path


SYNC_CONFIG_FILE = ".retell-sync.json"


def work_root() -> Path:
    root = os.environ.get("RETELL_SYNC_ROOT") or os.getcwd()
    return Path(root).expanduser().resolve()


def agents_dir(override: Path | None = None) -> Path:
    if override is not None:
        return Path(override).expanduser().resolve()
    env = os.environ.get("RETELL_AGENTS_DIR")
    if env:
        return Path(env).expanduser().resolve()
    return work_root() / "agents"


def components_dir(override: Path | None = None) -> Path:
    """Shared conversation-flow components live next to the agents directory."""

    if override is not None:
        return Path(override).expanduser().resolve()
    env = os.environ.get("RETELL_COMPONENTS_DIR")
    if env:
        return Path(env).expanduser().resolve()
    return work_root() / "components"


def sync_config_path() -> Path:
    return work_root() / SYNC_CONFIG_FILE
