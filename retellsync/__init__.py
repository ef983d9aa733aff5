"""Sync Retell AI agents with a local, git-friendly file tree.

This package provides:
- A canonical model of voice/chat agents and the LLMs/flows they use
- Structural diffs that ignore reordering of id-keyed collections
- A lossless serializer between the canonical model and a directory tree
- pull / deploy / publish workflows over the Retell REST API

Key principles:
- The local tree is edited by humans and reviewed in git
- Deploy only updates existing remote resources; it never creates them
- Publish cascades: an agent is republished when its LLM or flow changed
"""

from __future__ import annotations

from .models import (
    # Response engines
    RetellLlmEngine,
    CustomLlmEngine,
    ConversationFlowEngine,
    # Canonical resources
    CanonicalAgent,
    CanonicalLlm,
    CanonicalFlow,
    CanonicalTestCase,
    CanonicalComponent,
    CanonicalState,
    Channel,
)
from .canonical import canonicalize_from_api, keep_latest_version
from .diff import Difference, DiffType, diff
from .changes import BaseChanges, Changes, ResourceChange, compute_changes
from .dependencies import find_affected_agent_ids
from .files import canonicalize_from_files, serialize_state
from .client import RetellClient, ClientConfig, create_client
from .workflows import (
    SyncOptions,
    WorkflowStatus,
    PullResult,
    DeployResult,
    PublishResult,
    pull,
    deploy,
    publish,
)

__all__ = [
    # Models
    "RetellLlmEngine",
    "CustomLlmEngine",
    "ConversationFlowEngine",
    "CanonicalAgent",
    "CanonicalLlm",
    "CanonicalFlow",
    "CanonicalTestCase",
    "CanonicalComponent",
    "CanonicalState",
    "Channel",
    # Canonicalizer
    "canonicalize_from_api",
    "keep_latest_version",
    # Diff engine
    "Difference",
    "DiffType",
    "diff",
    "BaseChanges",
    "Changes",
    "ResourceChange",
    "compute_changes",
    "find_affected_agent_ids",
    # Serializer
    "canonicalize_from_files",
    "serialize_state",
    # Client
    "RetellClient",
    "ClientConfig",
    "create_client",
    # Workflows
    "SyncOptions",
    "WorkflowStatus",
    "PullResult",
    "DeployResult",
    "PublishResult",
    "pull",
    "deploy",
    "publish",
]
