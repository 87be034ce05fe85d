# FILE: topic_miner/llm/client.py
"""LLM collaborator contract and the OpenAI-compatible adapter.

ChatJSON is the only shape the bridge, repair step and synthesizer depend on:

    async llm(system_prompt, user_prompt, *, role) -> str

OpenAIChatClient implements it with the `openai` SDK against any
OpenAI-compatible chat completions endpoint (openai, qwen, deepseek).
MeteredChat wraps any ChatJSON and charges each call to a BudgetManager.
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Protocol

from openai import AsyncOpenAI

if TYPE_CHECKING:
    from config.settings import LLMSettings
    from topic_miner.budget import BudgetManager

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Transport-level failure or unusable response from the model."""


class ChatJSON(Protocol):
    async def __call__(self, system_prompt: str, user_prompt: str, *, role: str) -> str:
        ...


def prompt_hash(system_prompt: str, user_prompt: str) -> str:
    return hashlib.sha256(f"{system_prompt}\n\n{user_prompt}".encode("utf-8")).hexdigest()


@dataclass
class LLMAudit:
    """One model call, successful or not."""
    role: str
    model: str
    temperature: float
    prompt_hash: str
    prompt_chars: int
    completion_chars: int = 0
    duration_ms: int = 0
    error: Optional[str] = None
    ts: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "ts": self.ts,
            "role": self.role,
            "model": self.model,
            "temperature": self.temperature,
            "prompt_hash": self.prompt_hash,
            "prompt_chars": self.prompt_chars,
            "completion_chars": self.completion_chars,
            "duration_ms": self.duration_ms,
        }
        if self.error:
            out["error"] = self.error
        return out


def _extract_content(raw: Any) -> str:
    """Flatten message content (plain string or list of text parts)."""
    if isinstance(raw, str):
        return raw
    if isinstance(raw, list):
        parts = []
        for item in raw:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict) and isinstance(item.get("text"), str):
                parts.append(item["text"])
            elif isinstance(getattr(item, "text", None), str):
                parts.append(item.text)
        return "".join(parts)
    return ""


class OpenAIChatClient:
    """
    ChatJSON over the openai SDK.

    Every call appends an LLMAudit to `self.audits` and forwards it to
    `on_audit` when given.
    """

    def __init__(
        self,
        settings: "LLMSettings",
        *,
        client: Optional[AsyncOpenAI] = None,
        on_audit: Optional[Callable[[LLMAudit], None]] = None,
    ):
        if client is None:
            if not settings.api_key:
                raise LLMError(
                    f"{settings.provider.upper()}_API_KEY is required when provider={settings.provider}."
                )
            client = AsyncOpenAI(
                api_key=settings.api_key,
                base_url=settings.base_url,
                timeout=settings.timeout_seconds,
            )
        self.settings = settings
        self._client = client
        self._on_audit = on_audit
        self.audits: List[LLMAudit] = []

    async def __call__(self, system_prompt: str, user_prompt: str, *, role: str = "chat") -> str:
        started = time.monotonic()
        audit = LLMAudit(
            role=role,
            model=self.settings.model,
            temperature=self.settings.temperature,
            prompt_hash=prompt_hash(system_prompt, user_prompt),
            prompt_chars=len(system_prompt) + len(user_prompt),
        )
        try:
            resp = await self._client.chat.completions.create(
                model=self.settings.model,
                temperature=self.settings.temperature,
                messages=[
                    {"role": "system", "content": f"{system_prompt}\nOutput JSON only."},
                    {"role": "user", "content": user_prompt},
                ],
            )
            content = _extract_content(resp.choices[0].message.content if resp.choices else "")
            if not content:
                raise LLMError("LLM returned empty content.")
        except Exception as e:
            audit.error = str(e)[:200]
            audit.duration_ms = int((time.monotonic() - started) * 1000)
            self._record(audit)
            logger.warning(f"[llm] {role} call failed: {audit.error}")
            if isinstance(e, LLMError):
                raise
            raise LLMError(str(e)) from e

        audit.completion_chars = len(content)
        audit.duration_ms = int((time.monotonic() - started) * 1000)
        self._record(audit)
        logger.debug(f"[llm] {role} ok model={self.settings.model} chars={len(content)}")
        return content

    def _record(self, audit: LLMAudit) -> None:
        self.audits.append(audit)
        if self._on_audit is not None:
            self._on_audit(audit)


class MeteredChat:
    """Wrap a ChatJSON so every call is charged to `budget` under `repo`."""

    def __init__(self, llm: ChatJSON, budget: "BudgetManager", repo: str, iteration: int = 0):
        self._llm = llm
        self._budget = budget
        self.repo = repo
        self.iteration = iteration

    async def __call__(self, system_prompt: str, user_prompt: str, *, role: str = "chat") -> str:
        prompt_chars = len(system_prompt) + len(user_prompt)
        try:
            content = await self._llm(system_prompt, user_prompt, role=role)
        except Exception:
            self._budget.record_llm_call(self.repo, prompt_chars, 0, role=role, iter=self.iteration)
            raise
        completion = content if isinstance(content, str) else ""
        self._budget.record_llm_call(self.repo, prompt_chars, len(completion), role=role, iter=self.iteration)
        return content


__all__ = [
    "ChatJSON",
    "LLMAudit",
    "LLMError",
    "MeteredChat",
    "OpenAIChatClient",
    "prompt_hash",
]
