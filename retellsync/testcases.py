"""Test case definitions stored under an agent's tests/ directory.

    tests/.tests.json              {response_engine, test_cases: [{id, name}]}
    tests/<name>_<id>.yaml         mutable test case fields
    tests/<name>_<id>_prompt.md    user_prompt

`<id>` is the last six characters of the test case id, so names that
snake-case alike still get their own files.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

from .errors import ConfigValidationError, LocalStateError
from .field_docs import TEST_CASE_FIELD_DOCS
from .log import get_logger
from .models import FILE_HASH_LENGTH, CanonicalTestCase, ConversationFlowEngine, RetellLlmEngine
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


_log = get_logger("testcases")

TESTS_META_FILE = ".tests.json"

# regenerated by the API on every write, or constant ("simulation")
_UNSTORED_FIELDS = ("creation_timestamp", "user_modified_timestamp", "type")


def case_file_stem(test_case_id: str, name: str) -> str:
    return f"{to_snake_case(name)}_{test_case_id[-FILE_HASH_LENGTH:]}"


def serialize_test_cases(
    test_cases: list[CanonicalTestCase],
    engine: RetellLlmEngine | ConversationFlowEngine,
    *,
    config_format: ConfigFormat = "yaml",
) -> dict[str, str]:
    """Files for a tests/ directory, keyed by path relative to it."""
    files = {
        TESTS_META_FILE: write_json(
            {
                "response_engine": engine.to_dict(),
                "test_cases": [{"id": tc.id, "name": tc.name} for tc in test_cases],
            }
        )
    }
    for tc in test_cases:
        stem = case_file_stem(tc.id, tc.name)
        config = {k: v for k, v in tc.fields.items() if k not in _UNSTORED_FIELDS}
        if isinstance(config.get("user_prompt"), str):
            prompt_file = f"{stem}_prompt.md"
            files[prompt_file] = write_markdown(config["user_prompt"])
            config["user_prompt"] = f"{FILE_PREFIX}./{prompt_file}"
        files[f"{stem}.{config_format}"] = write_config(config, config_format, comments=TEST_CASE_FIELD_DOCS)
    return files


def _parse_meta(text: str, path: Path) -> list[dict[str, Any]]:
    raw = read_json(text, path)
    entries = raw.get("test_cases") if isinstance(raw, dict) else None
    if not isinstance(entries, list) or not all(
        isinstance(e, dict) and isinstance(e.get("id"), str) and isinstance(e.get("name"), str) for e in entries
    ):
        raise ConfigValidationError(path=path, message="test_cases: expected list of {id, name}")
    return entries


def canonicalize_test_cases_from_files(
    files: Mapping[str, str],
    *,
    base: Path = Path("tests"),
) -> list[CanonicalTestCase]:
    """Read test cases from a tests/ file map (paths relative to the tests directory).

    Returns an empty list when there is no `.tests.json`. Entries whose config
    file is missing are skipped with a warning.
    """
    if TESTS_META_FILE not in files:
        return []

    def read(rel: str) -> str:
        rel = rel[2:] if rel.startswith("./") else rel
        if rel not in files:
            raise LocalStateError(path=(base / rel).as_posix(), message="referenced file not found")
        return files[rel]

    out: list[CanonicalTestCase] = []
    for entry in _parse_meta(files[TESTS_META_FILE], base / TESTS_META_FILE):
        key = find_config(dict(files), case_file_stem(entry["id"], entry["name"]))
        if key is None:
            _log.warning("could not find config file for test case", name=entry["name"], dir=base.as_posix())
            continue
        config = resolve_file_placeholders(read_config(files[key], base / key), read)
        out.append(CanonicalTestCase(id=entry["id"], fields=config))
    return out


def tests_dir_files(agent_files: Mapping[str, str]) -> dict[str, str]:
    """The tests/ subset of an agent directory's file map, re-keyed relative to tests/."""
    prefix = "tests/"
    return {k[len(prefix):]: v for k, v in agent_files.items() if k.startswith(prefix)}
