# FILE: topic_miner/llm/__init__.py
"""LLM plumbing: JSON extraction from model output and the chat client."""

from topic_miner.llm.client import (
    ChatJSON,
    LLMAudit,
    LLMError,
    MeteredChat,
    OpenAIChatClient,
    prompt_hash,
)
from topic_miner.llm.json_extract import NOT_FOUND, extract_json_from_llm_output, extract_json_value

__all__ = [
    "ChatJSON",
    "LLMAudit",
    "LLMError",
    "MeteredChat",
    "OpenAIChatClient",
    "prompt_hash",
    "NOT_FOUND",
    "extract_json_value",
    "extract_json_from_llm_output",
]
