"""Shared conversation-flow components on disk.

    <component_slug>_<id6>/
        .component.json     {id, linked_flow_ids?}
        config.yaml         component config (nodes, tools, ...)
        nodes/*.md          conversation node prompts
        .positions.json     canvas layout
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping

from .errors import ConfigValidationError, LocalStateError
from .files import WriteResult, dir_name, file_reader, group_by_dir, read_tree, write_tree
from .flow_helpers import POSITIONS_FILE, extract_node_prompts, extract_positions, merge_positions
from .log import get_logger
from .models import CanonicalComponent
from .textfmt import ConfigFormat, find_config, read_config, read_json, resolve_file_placeholders, write_config, write_json


_log = get_logger("components")

COMPONENT_META_FILE = ".component.json"
LINKED_FLOWS_FIELD = "linked_conversation_flow_ids"


def component_dir_name(component: CanonicalComponent) -> str:
    return dir_name(component.name, component.id)


def serialize_components(
    components: list[CanonicalComponent],
    *,
    config_format: ConfigFormat = "yaml",
) -> dict[str, str]:
    """Convert components to `{path relative to components dir: content}`."""
    files: dict[str, str] = {}
    for component in components:
        prefix = component_dir_name(component)
        config = dict(component.fields)
        linked = config.pop(LINKED_FLOWS_FIELD, None)

        meta: dict[str, object] = {"id": component.id}
        if linked is not None:
            meta["linked_flow_ids"] = linked
        files[f"{prefix}/{COMPONENT_META_FILE}"] = write_json(meta)

        if isinstance(config.get("nodes"), list):
            config["nodes"], node_files = extract_node_prompts(config["nodes"])
            for rel, content in node_files.items():
                files[f"{prefix}/{rel}"] = content

        config, positions = extract_positions(config)
        if positions:
            files[f"{prefix}/{POSITIONS_FILE}"] = write_json(positions)

        files[f"{prefix}/config.{config_format}"] = write_config(config, config_format)
    return files


def canonicalize_components_from_files(files: Mapping[str, str]) -> list[CanonicalComponent]:
    """Rebuild components from a file map. Local components carry timestamp 0."""
    out: list[CanonicalComponent] = []
    for dirname, dir_files in sorted(group_by_dir(files).items()):
        if COMPONENT_META_FILE not in dir_files:
            continue
        meta_path = Path(dirname) / COMPONENT_META_FILE
        meta = read_json(dir_files[COMPONENT_META_FILE], meta_path)
        if not isinstance(meta, dict) or not isinstance(meta.get("id"), str):
            raise ConfigValidationError(path=meta_path, message="id: expected string")

        config_key = find_config(dict(dir_files), "config")
        if config_key is None:
            _log.warning("component directory has no config file; skipping", dir=dirname)
            continue
        try:
            config = resolve_file_placeholders(
                read_config(dir_files[config_key], Path(dirname) / config_key),
                file_reader(dir_files, ""),
            )
        except LocalStateError as e:
            raise LocalStateError(path=f"{dirname}/{e.path}", message=e.message) from e

        if POSITIONS_FILE in dir_files:
            positions = read_json(dir_files[POSITIONS_FILE], Path(dirname) / POSITIONS_FILE)
            if isinstance(positions, dict):
                config = merge_positions(config, positions)
        if "linked_flow_ids" in meta:
            config[LINKED_FLOWS_FIELD] = meta["linked_flow_ids"]

        out.append(CanonicalComponent(id=meta["id"], timestamp=0, fields=config))
    return out


def write_components(
    components: list[CanonicalComponent],
    components_dir: Path,
    *,
    component_ids: set[str] | None = None,
    config_format: ConfigFormat = "yaml",
) -> WriteResult:
    files = serialize_components(components, config_format=config_format)
    return write_tree(components_dir, files, meta_name=COMPONENT_META_FILE, managed_ids=component_ids)


def read_local_components(
    components_dir: Path,
    *,
    component_ids: set[str] | None = None,
) -> list[CanonicalComponent]:
    return canonicalize_components_from_files(read_tree(components_dir, meta_name=COMPONENT_META_FILE, ids=component_ids))
