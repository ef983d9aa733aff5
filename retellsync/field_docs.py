"""Short field descriptions written as comments above top-level YAML keys."""

from __future__ import annotations


VOICE_AGENT_FIELD_DOCS: dict[str, str] = {
    "agent_name": "The name of the agent. Only used for your own reference.",
    "allow_user_dtmf": "If true, DTMF input will be accepted and processed. Default true.",
    "ambient_sound": (
        "Ambient environment sound to make experience more realistic. Options: coffee-shop, "
        "convention-hall, summer-outdoor, mountain-outdoor, static-noise, call-center."
    ),
    "ambient_sound_volume": "Volume of ambient sound [0,2]. Default 1.",
    "analysis_successful_prompt": (
        "Prompt to determine whether the post call analysis should mark the interaction as successful."
    ),
    "analysis_summary_prompt": "Prompt to guide how the post call analysis summary should be generated.",
    "backchannel_frequency": (
        "How often the agent backchannels [0,1]. Only applies when enable_backchannel is true. Default 0.8."
    ),
    "backchannel_words": (
        "Words the agent uses for backchannel (e.g. 'yeah', 'uh-huh'). Only applies when "
        "enable_backchannel is true."
    ),
    "begin_message_delay_ms": (
        "Delay first message by this many ms [0,5000]. Only applies when agent speaks first."
    ),
    "boosted_keywords": "Keywords to bias the transcriber model toward. Commonly used for names, brands, etc.",
    "data_storage_setting": (
        "How Retell stores sensitive data. Options: everything, everything_except_pii, "
        "basic_attributes_only. Default everything."
    ),
    "denoising_mode": (
        "Denoising mode. Options: noise-cancellation, noise-and-background-speech-cancellation. "
        "Default noise-cancellation."
    ),
    "enable_backchannel": "Whether agent interjects with phrases like 'yeah', 'uh-huh'. Default false.",
    "end_call_after_silence_ms": (
        "End call after this many ms of user silence after agent speech. Min 10000. Default 600000."
    ),
    "fallback_voice_ids": "Fallback voices when primary TTS provider has outages. Must be from different providers.",
    "interruption_sensitivity": (
        "How sensitive to user interruptions [0,1]. Lower = harder to interrupt. Default 1."
    ),
    "language": "Language/dialect for speech recognition. Default en-US. Use 'multi' for multilingual.",
    "llm_websocket_url": "Websocket URL for custom LLM. Only applies to agents with custom-llm response engine type.",
    "max_call_duration_ms": "Max call length in ms. Min 60000, max 7200000. Default 3600000 (1 hour).",
    "normalize_for_speech": "Normalize numbers, currency, dates to spoken form for consistent synthesis.",
    "opt_in_signed_url": "Enable signed URLs for public logs/recordings that expire after 24 hours.",
    "pii_config": "Configuration for PII scrubbing from transcripts and recordings.",
    "post_call_analysis_data": "Custom data to extract from the call during post-call analysis.",
    "post_call_analysis_model": "Model for post call analysis. Default gpt-4.1-mini.",
    "pronunciation_dictionary": "Words/phrases with pronunciation guides. Only supported for English & 11labs voices.",
    "reminder_max_count": "How many times to remind user when unresponsive. Default 1. Set to 0 to disable.",
    "reminder_trigger_ms": "Trigger reminder after this many ms of user silence. Default 10000 (10s).",
    "responsiveness": "How responsive the agent is [0,1]. Lower = slower responses. Default 1.",
    "ring_duration_ms": "Phone ring duration in ms [5000,90000]. Default 30000 (30s).",
    "signed_url_expiration_ms": "Signed URL expiration time in ms. Default 86400000 (24 hours).",
    "stt_mode": "Speech-to-text mode. Options: fast, accurate. Default fast.",
    "user_dtmf_options": "DTMF options for user input.",
    "vocab_specialization": "Vocabulary set for transcription. Options: general, medical. Default general.",
    "voice_id": "Unique voice ID. Find available voices in Dashboard.",
    "voice_model": "Voice model for selected voice. Only elevenlab voices have model selections.",
    "voice_speed": "Speed of voice [0.5,2]. Default 1.",
    "voice_temperature": "Voice stability [0,2]. Lower = more stable. Only applies to 11labs. Default 1.",
    "voicemail_option": "Voicemail detection settings. Actions when voicemail detected in first 3 minutes.",
    "volume": "Agent speech volume [0,2]. Default 1.",
    "webhook_timeout_ms": "Webhook timeout in ms. Default 10000.",
    "webhook_url": "Webhook URL for call events. Overrides account-level webhook.",
}

CHAT_AGENT_FIELD_DOCS: dict[str, str] = {
    "agent_name": "The name of the chat agent. Only used for your own reference.",
    "analysis_successful_prompt": (
        "Prompt to determine whether the post chat analysis should mark the interaction as successful."
    ),
    "analysis_summary_prompt": "Prompt to guide how the post chat analysis summary should be generated.",
    "auto_close_message": "Message to display when the chat is automatically closed due to inactivity.",
    "data_storage_setting": (
        "How Retell stores sensitive data. Options: everything, everything_except_pii, "
        "basic_attributes_only. Default everything."
    ),
    "end_chat_after_silence_ms": (
        "End chat after this many ms of user silence. Min 360000, max 259200000. Default 3600000."
    ),
    "language": "Language/dialect for the chat. Default en-US. Use 'multi' for multilingual.",
    "llm_websocket_url": "Websocket URL for custom LLM. Only applies to agents with custom-llm response engine type.",
    "opt_in_signed_url": "Enable signed URLs for public logs that expire after 24 hours.",
    "pii_config": "Configuration for PII scrubbing from chat transcripts.",
    "post_chat_analysis_data": "Custom data to extract from the chat during post-chat analysis.",
    "post_chat_analysis_model": "Model for post chat analysis. Default gpt-4.1-mini.",
    "signed_url_expiration_ms": "Signed URL expiration time in ms. Default 86400000 (24 hours).",
    "webhook_timeout_ms": "Webhook timeout in ms. Default 10000.",
    "webhook_url": "Webhook URL for chat events. Overrides account-level webhook.",
}

LLM_FIELD_DOCS: dict[str, str] = {
    "begin_after_user_silence_ms": (
        "If set, the AI begins the conversation after waiting this many ms for the user to speak first."
    ),
    "begin_message": (
        "First utterance said by the agent. If not set, the LLM generates one. "
        'If set to "", the agent waits for the user to speak first.'
    ),
    "default_dynamic_variables": "Default dynamic variables injected into prompts and tool descriptions.",
    "general_prompt": "General prompt appended to the system prompt in every state (file reference).",
    "general_tools": "Tools the model may call in every state.",
    "kb_config": "Knowledge base configuration for RAG retrieval.",
    "knowledge_base_ids": "A list of knowledge base ids to use for this resource.",
    "mcps": "A list of MCPs (Model Context Protocol servers) to use for this LLM.",
    "model": "The underlying text LLM. Defaults to gpt-4.1.",
    "model_high_priority": "Use the high priority pool for lower, more consistent latency. Default false.",
    "model_temperature": "Randomness of responses [0,1]. Default 0. Lower values recommended for tool calling.",
    "s2s_model": "The underlying speech-to-speech model. Can only set this or model, not both.",
    "start_speaker": "The speaker who starts the conversation: 'user' or 'agent'.",
    "starting_state": "Name of the starting state. Required if states is not empty.",
    "states": "States of the LLM, each with its own prompt and tools.",
    "tool_call_strict_mode": "Whether to use strict mode for tool calls on supported models.",
}

FLOW_FIELD_DOCS: dict[str, str] = {
    "begin_after_user_silence_ms": (
        "If set, the AI begins the conversation after waiting this many ms for the user to speak first."
    ),
    "components": "Local components embedded within the conversation flow.",
    "default_dynamic_variables": "Default dynamic variables referenced throughout the conversation flow.",
    "global_prompt": "Global prompt used in every node of the conversation flow (file reference).",
    "is_transfer_llm": "Whether this conversation flow is used for transfer LLM.",
    "kb_config": "Knowledge base configuration for RAG retrieval.",
    "knowledge_base_ids": "Knowledge base IDs for RAG (Retrieval-Augmented Generation).",
    "mcps": "A list of MCP (Model Context Protocol) server configurations for this conversation flow.",
    "model_choice": "Model choice for the flow: type (cascading, single, latency_optimized) and model.",
    "model_temperature": "Randomness of model responses [0,1]. Lower values = more deterministic.",
    "nodes": (
        "Nodes in the conversation flow. Types: conversation, end, function, transfer_call, press_digit, "
        "branch, sms, extract_dynamic_variables, agent_swap, mcp, component."
    ),
    "start_node_id": "ID of the start node in the conversation flow.",
    "start_speaker": "Who starts the conversation - 'user' or 'agent'.",
    "tool_call_strict_mode": "Whether to use strict mode for tool calls on supported models.",
    "tools": "Tools available in the conversation flow.",
}

TEST_CASE_FIELD_DOCS: dict[str, str] = {
    "name": "Name of the test case",
    "user_prompt": "Prompt describing simulated user behavior (file reference)",
    "metrics": "Array of evaluation criteria to check",
    "dynamic_variables": "Variables injected into the agent during test",
    "tool_mocks": "Mock responses for tool/function calls",
    "llm_model": "LLM model used to simulate the user",
}
