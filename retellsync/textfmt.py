"""Text formats used in the agent tree: YAML/JSON configs and markdown sidecars."""

from __future__ import annotations

import json
import re
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Literal

import yaml

from .errors import ConfigParseError, ConfigValidationError


FILE_PREFIX = "file://"

ConfigFormat = Literal["yaml", "json"]
CONFIG_FORMATS: tuple[str, ...] = ("yaml", "json")


# ---------------------------------------------------------------------------
# Names
# ---------------------------------------------------------------------------


def to_snake_case(value: str) -> str:
    """Convert a display name to a filesystem-safe snake_case slug."""
    s = re.sub(r"\s+", "_", value)
    s = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s)
    s = re.sub(r"[^a-z0-9_]", "", s, flags=re.IGNORECASE | re.ASCII)
    s = s.lower()
    s = re.sub(r"_+", "_", s)
    return s.strip("_")


def pluralize(word: str, count: int, include_count: bool = False) -> str:
    plural = word
    if count != 1:
        if word.endswith("y") and not re.search(r"[aeiou]y$", word, re.IGNORECASE):
            plural = word[:-1] + "ies"
        elif not word.endswith("s"):
            plural = word + "s"
    return f"{count} {plural}" if include_count else plural


def normalize_text(value: str) -> str:
    """Normalize line endings and drop trailing whitespace."""
    return value.replace("\r\n", "\n").rstrip()


# ---------------------------------------------------------------------------
# YAML
# ---------------------------------------------------------------------------


class _BlockStyleDumper(yaml.SafeDumper):
    """Safe dumper that writes multi-line strings as literal blocks."""


def _represent_str(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    style = "|" if "\n" in data else None
    return dumper.represent_scalar("tag:yaml.org,2002:str", data, style=style)


_BlockStyleDumper.add_representer(str, _represent_str)


def _dump_yaml(data: Any) -> str:
    return yaml.dump(
        data,
        Dumper=_BlockStyleDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=100,
    )


def write_yaml(data: dict[str, Any], comments: dict[str, str] | None = None) -> str:
    """Dump a mapping with sorted top-level keys and optional per-key doc comments."""
    chunks: list[str] = []
    for key in sorted(data):
        chunk = _dump_yaml({key: data[key]})
        doc = (comments or {}).get(key)
        if doc:
            chunk = "".join(f"# {line}\n" for line in textwrap.wrap(doc, 78)) + chunk
        chunks.append(chunk)
    return "".join(chunks)


def read_yaml(text: str, path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        raise ConfigParseError(
            path=path,
            message=str(getattr(e, "problem", None) or e),
            lineno=mark.line + 1 if mark is not None else None,
            colno=mark.column + 1 if mark is not None else None,
        ) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigValidationError(path=path, message="top-level YAML must be a mapping")
    return data


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


def write_json(data: Any) -> str:
    if isinstance(data, dict):
        data = {k: data[k] for k in sorted(data)}
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def read_json(text: str, path: Path) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigParseError(path=path, message=e.msg, lineno=e.lineno, colno=e.colno) from e


def write_config(data: dict[str, Any], fmt: ConfigFormat, comments: dict[str, str] | None = None) -> str:
    if fmt == "json":
        return write_json(data)
    return write_yaml(data, comments=comments)


def read_config(text: str, path: Path) -> dict[str, Any]:
    if path.suffix == ".json":
        data = read_json(text, path)
        if not isinstance(data, dict):
            raise ConfigValidationError(path=path, message="top-level JSON must be an object")
        return data
    return read_yaml(text, path)


def find_config(files: dict[str, str], stem: str) -> str | None:
    """Return the key of `<stem>.yaml` / `<stem>.yml` / `<stem>.json` if present."""
    for suffix in (".yaml", ".yml", ".json"):
        if stem + suffix in files:
            return stem + suffix
    return None


# ---------------------------------------------------------------------------
# Markdown with frontmatter
# ---------------------------------------------------------------------------

_FRONTMATTER_PATTERN = re.compile(r"^---[ \t]*\n(.*?)\n---[ \t]*(?:\n|$)", re.DOTALL)


@dataclass
class ParsedDocument:
    """A parsed document with frontmatter and body."""

    frontmatter: dict[str, Any]
    body: str
    raw: str


def parse_frontmatter(content: str) -> ParsedDocument:
    """Split YAML frontmatter from a markdown document.

    Frontmatter is informational only (it is regenerated on every pull), so a
    block that fails to parse is ignored rather than treated as fatal.
    """
    text = content.replace("\r\n", "\n")
    match = _FRONTMATTER_PATTERN.match(text)
    if not match:
        return ParsedDocument(frontmatter={}, body=normalize_text(text), raw=content)

    body = text[match.end():]
    # one blank separator line follows the closing fence (see write_markdown)
    if body.startswith("\n"):
        body = body[1:]
    body = normalize_text(body)
    try:
        frontmatter = yaml.safe_load(match.group(1))
    except yaml.YAMLError:
        frontmatter = None
    return ParsedDocument(
        frontmatter=frontmatter if isinstance(frontmatter, dict) else {},
        body=body,
        raw=content,
    )


def write_markdown(body: str, frontmatter: dict[str, Any] | None = None) -> str:
    body = normalize_text(body)
    if not frontmatter:
        if body.startswith("---"):
            # keep a leading thematic break from being read back as frontmatter
            return f"---\n{{}}\n---\n\n{body}\n"
        return body + "\n"
    return f"---\n{_dump_yaml(frontmatter)}---\n\n{body}\n"


def resolve_file_placeholders(value: Any, read_file: Callable[[str], str]) -> Any:
    """Return a copy of `value` with every `file://<path>` string replaced by that file's body.

    `read_file` receives the path after the `file://` prefix and must raise if
    it does not exist. Markdown frontmatter is stripped from resolved content.
    """
    if isinstance(value, str):
        if value.startswith(FILE_PREFIX):
            return parse_frontmatter(read_file(value[len(FILE_PREFIX):])).body
        return value
    if isinstance(value, list):
        return [resolve_file_placeholders(item, read_file) for item in value]
    if isinstance(value, dict):
        return {k: resolve_file_placeholders(v, read_file) for k, v in value.items()}
    return value
