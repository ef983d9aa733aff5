"""Pure transforms over conversation-flow shaped configs.

Both full conversation flows and shared components carry nodes with prompts
and canvas positions. These helpers split that content out into sidecar files
and merge it back, always returning new trees instead of mutating the input.
"""

from __future__ import annotations

import copy
import math
from typing import Any

from .models import FILE_HASH_LENGTH, FlowNodeType, outgoing_edges
from .textfmt import FILE_PREFIX, to_snake_case, write_markdown


POSITIONS_FILE = ".positions.json"


# ---------------------------------------------------------------------------
# Positions
# ---------------------------------------------------------------------------


def _round_half_up(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    return int(math.floor(value + 0.5))


def round_position(pos: dict[str, Any]) -> dict[str, Any]:
    out = dict(pos)
    for axis in ("x", "y"):
        if axis in out:
            out[axis] = _round_half_up(out[axis])
    return out


def round_positions(config: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of `config` with every display position rounded to integers."""
    out = copy.deepcopy(config)
    if isinstance(out.get("begin_tag_display_position"), dict):
        out["begin_tag_display_position"] = round_position(out["begin_tag_display_position"])
    for node in out.get("nodes") or []:
        if isinstance(node, dict) and isinstance(node.get("display_position"), dict):
            node["display_position"] = round_position(node["display_position"])
    for comp in out.get("components") or []:
        if isinstance(comp, dict) and isinstance(comp.get("begin_tag_display_position"), dict):
            comp["begin_tag_display_position"] = round_position(comp["begin_tag_display_position"])
    return out


def extract_positions(config: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any] | None]:
    """Split display positions out of a flow-like config.

    Returns:
        (config without position fields, positions document or None if empty)
    """
    out = copy.deepcopy(config)
    positions: dict[str, Any] = {}

    begin = out.pop("begin_tag_display_position", None)
    if begin:
        positions["begin_tag"] = round_position(begin)

    for node in out.get("nodes") or []:
        if not isinstance(node, dict):
            continue
        pos = node.get("display_position")
        if node.get("id") and pos:
            positions.setdefault("nodes", {})[node["id"]] = round_position(pos)
            del node["display_position"]

    for comp in out.get("components") or []:
        if not isinstance(comp, dict):
            continue
        pos = comp.get("begin_tag_display_position")
        if comp.get("name") and pos:
            positions.setdefault("components", {})[comp["name"]] = round_position(pos)
            del comp["begin_tag_display_position"]

    return out, (positions or None)


def merge_positions(config: dict[str, Any], positions: dict[str, Any]) -> dict[str, Any]:
    """Inverse of extract_positions."""
    out = copy.deepcopy(config)
    if positions.get("begin_tag"):
        out["begin_tag_display_position"] = positions["begin_tag"]

    node_positions = positions.get("nodes")
    if isinstance(node_positions, dict) and isinstance(out.get("nodes"), list):
        for node in out["nodes"]:
            if isinstance(node, dict) and node.get("id") in node_positions:
                node["display_position"] = node_positions[node["id"]]

    comp_positions = positions.get("components")
    if isinstance(comp_positions, dict) and isinstance(out.get("components"), list):
        for comp in out["components"]:
            if isinstance(comp, dict) and comp.get("name") in comp_positions:
                comp["begin_tag_display_position"] = comp_positions[comp["name"]]
    return out


# ---------------------------------------------------------------------------
# Node prompts
# ---------------------------------------------------------------------------


def _has_inline_prompt(node: dict[str, Any]) -> bool:
    instruction = node.get("instruction")
    if FlowNodeType.of(node) is not FlowNodeType.CONVERSATION or not node.get("id"):
        return False
    if not isinstance(instruction, dict) or instruction.get("type") != "prompt":
        return False
    text = instruction.get("text")
    return isinstance(text, str) and bool(text) and not text.startswith(FILE_PREFIX)


def node_prompt_filename(node: dict[str, Any]) -> str:
    node_hash = str(node["id"])[-FILE_HASH_LENGTH:]
    stem = to_snake_case(node["name"]) if node.get("name") else str(node.get("type"))
    return f"nodes/{stem}_{node_hash}.md"


def extract_node_prompts(nodes: list[dict[str, Any]]) -> tuple[list[dict[str, Any]], dict[str, str]]:
    """Move conversation-node prompts into markdown files.

    Each extracted file carries `nodeId` and an ASCII `flow` map of its
    neighbours as frontmatter; the node's `instruction.text` becomes a
    `file://./nodes/<name>_<hash>.md` placeholder.

    Returns:
        (new node list, {relative path: markdown content})
    """
    names_by_id: dict[str, str] = {}
    incoming: dict[str, list[str]] = {}
    for node in nodes:
        if node.get("id") and node.get("name"):
            names_by_id[node["id"]] = node["name"]
        for edge in outgoing_edges(node):
            dest = edge.get("destination_node_id")
            if not dest:
                continue
            incoming.setdefault(dest, [])
            if node.get("name"):
                incoming[dest].append(node["name"])

    files: dict[str, str] = {}
    out: list[dict[str, Any]] = []
    for node in nodes:
        if not _has_inline_prompt(node):
            out.append(copy.deepcopy(node))
            continue

        filename = node_prompt_filename(node)
        previous = incoming.get(node["id"], [])
        following = [
            names_by_id[e["destination_node_id"]]
            for e in outgoing_edges(node)
            if e.get("destination_node_id") in names_by_id
        ]
        frontmatter: dict[str, Any] = {"nodeId": node["id"]}
        if node.get("name"):
            frontmatter["flow"] = create_flow_visualization(node["name"], previous, following)
        files[filename] = write_markdown(node["instruction"]["text"], frontmatter)

        new_node = copy.deepcopy(node)
        new_node["instruction"]["text"] = f"{FILE_PREFIX}./{filename}"
        out.append(new_node)
    return out, files


def create_flow_visualization(current: str, previous: list[str], following: list[str]) -> str:
    """Render `previous ─→ [current] ─→ next` as a small ASCII diagram."""
    total = max(3, max(len(previous), len(following)) + 2)
    inner = f"  {current}  "
    width = len(inner)
    middle = total // 2
    box = ["╭" + "─" * width + "╮"]
    for row in range(1, total - 1):
        box.append("│" + (inner if row == middle else " " * width) + "│")
    box.append("╰" + "─" * width + "╯")

    pad_prev = (total - len(previous)) // 2
    pad_next = (total - len(following)) // 2
    prev_width = max([len(p) for p in previous], default=0)

    lines = []
    for i in range(total):
        j = i - pad_prev
        prev_label = previous[j] if 0 <= j < len(previous) else ""
        k = i - pad_next
        next_label = following[k] if 0 <= k < len(following) else ""
        line = (
            prev_label.rjust(prev_width)
            + (" ─→ " if prev_label else "    ")
            + box[i]
            + (" ─→ " if next_label else "    ")
            + next_label
        )
        lines.append(line.rstrip())
    return "\n".join(lines)
