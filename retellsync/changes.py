"""Compute per-resource change sets between two canonical snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, Iterable, TypeVar

from .diff import Difference, DiffType, diff, key_arrays_by_id
from .models import (
    CanonicalAgent,
    CanonicalComponent,
    CanonicalFlow,
    CanonicalLlm,
    CanonicalState,
    CanonicalTestCase,
    CustomLlmEngine,
)
from .textfmt import normalize_text


T = TypeVar("T")

IDENTITY_FIELDS = ("_id", "_version")
TEST_CASE_METADATA_FIELDS = ("_id", "creation_timestamp", "user_modified_timestamp", "type")
COMPONENT_IDENTITY_FIELDS = ("_id", "_timestamp")


@dataclass(frozen=True)
class ResourceChange(Generic[T]):
    id: str
    name: str
    current: T
    differences: list[Difference]


@dataclass
class BaseChanges:
    voice_agents: list[ResourceChange[CanonicalAgent]] = field(default_factory=list)
    chat_agents: list[ResourceChange[CanonicalAgent]] = field(default_factory=list)
    llms: list[ResourceChange[CanonicalLlm]] = field(default_factory=list)
    flows: list[ResourceChange[CanonicalFlow]] = field(default_factory=list)

    @property
    def agent_count(self) -> int:
        return len(self.voice_agents) + len(self.chat_agents)

    @property
    def total(self) -> int:
        return self.agent_count + len(self.llms) + len(self.flows)


@dataclass
class Changes(BaseChanges):
    test_cases: list[ResourceChange[CanonicalTestCase]] = field(default_factory=list)
    components: list[ResourceChange[CanonicalComponent]] = field(default_factory=list)

    @classmethod
    def extend(
        cls,
        base: BaseChanges,
        *,
        test_cases: list[ResourceChange[CanonicalTestCase]] | None = None,
        components: list[ResourceChange[CanonicalComponent]] | None = None,
    ) -> "Changes":
        return cls(
            voice_agents=base.voice_agents,
            chat_agents=base.chat_agents,
            llms=base.llms,
            flows=base.flows,
            test_cases=test_cases or [],
            components=components or [],
        )

    @property
    def total(self) -> int:
        return super().total + len(self.test_cases) + len(self.components)


def _normalize_strings(value: Any) -> Any:
    if isinstance(value, str):
        return normalize_text(value)
    if isinstance(value, list):
        return [_normalize_strings(v) for v in value]
    if isinstance(value, dict):
        return {k: _normalize_strings(v) for k, v in value.items()}
    return value


def _comparable(resource: dict[str, Any], omit: Iterable[str]) -> dict[str, Any]:
    omitted = set(omit)
    return key_arrays_by_id(_normalize_strings({k: v for k, v in resource.items() if k not in omitted}))


def diff_resources(reference: dict[str, Any], current: dict[str, Any], omit: Iterable[str]) -> list[Difference]:
    """Diff two resource dicts by identity, ignoring `omit` keys and trailing whitespace in text."""
    omit = tuple(omit)
    return diff(_comparable(reference, omit), _comparable(current, omit))


def _agent_omit(agent: CanonicalAgent) -> tuple[str, ...]:
    # response_engine is only mutable (and therefore diffable) for custom LLMs
    if isinstance(agent.response_engine, CustomLlmEngine):
        return IDENTITY_FIELDS
    return (*IDENTITY_FIELDS, "response_engine")


def _collect(
    source: Iterable[Any],
    reference: Iterable[Any],
    omit_for: Any,
    include_new: bool,
) -> list[ResourceChange[Any]]:
    ref_by_id = {r.id: r for r in reference}
    out: list[ResourceChange[Any]] = []
    for resource in source:
        ref = ref_by_id.get(resource.id)
        if ref is None:
            if include_new:
                out.append(
                    ResourceChange(
                        id=resource.id,
                        name=resource.name,
                        current=resource,
                        differences=[Difference(DiffType.CREATE, (), value=resource.to_dict())],
                    )
                )
            continue
        differences = diff_resources(ref.to_dict(), resource.to_dict(), omit_for(resource))
        if differences:
            out.append(ResourceChange(id=resource.id, name=resource.name, current=resource, differences=differences))
    return out


def compute_changes(source: CanonicalState, reference: CanonicalState, *, include_new: bool = False) -> BaseChanges:
    """Compute differences between a source state and a reference state.

    With `include_new`, resources missing from the reference are reported as a
    single root CREATE (publish: never-published agents). Without it they are
    skipped (deploy: remote resources are never created).
    """
    return BaseChanges(
        voice_agents=_collect(source.voice_agents, reference.voice_agents, _agent_omit, include_new),
        chat_agents=_collect(source.chat_agents, reference.chat_agents, _agent_omit, include_new),
        llms=_collect(source.llms, reference.llms, lambda _: IDENTITY_FIELDS, include_new),
        flows=_collect(source.conversation_flows, reference.conversation_flows, lambda _: IDENTITY_FIELDS, include_new),
    )


def compute_test_case_changes(
    local: list[CanonicalTestCase],
    remote: list[CanonicalTestCase],
) -> list[ResourceChange[CanonicalTestCase]]:
    """Changed test cases. Local test cases without a remote counterpart are skipped."""
    return _collect(local, remote, lambda _: TEST_CASE_METADATA_FIELDS, include_new=False)


def compute_component_changes(
    local: list[CanonicalComponent],
    remote: list[CanonicalComponent],
) -> list[ResourceChange[CanonicalComponent]]:
    return _collect(local, remote, lambda _: COMPONENT_IDENTITY_FIELDS, include_new=False)
