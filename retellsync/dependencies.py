from __future__ import annotations

from .changes import BaseChanges
from .models import CanonicalState, ConversationFlowEngine, RetellLlmEngine


def find_affected_agent_ids(changes: BaseChanges, state: CanonicalState) -> set[str]:
    """Agents with direct changes plus agents whose LLM or conversation flow changed.

    Dependencies are one hop deep: agent -> llm/flow.
    """
    ids = {c.id for c in changes.voice_agents} | {c.id for c in changes.chat_agents}
    changed_llms = {c.id for c in changes.llms}
    changed_flows = {c.id for c in changes.flows}

    for agent in state.agents:
        engine = agent.response_engine
        if isinstance(engine, RetellLlmEngine) and engine.llm_id in changed_llms:
            ids.add(agent.id)
        elif isinstance(engine, ConversationFlowEngine) and engine.conversation_flow_id in changed_flows:
            ids.add(agent.id)
    return ids
