# FILE: topic_miner/prompts.py
"""Wire synthesis prompts and the LLM-backed synthesis collaborator."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from topic_miner.evidence import (
    EvidenceItem,
    FocusHint,
    RepoCard,
    build_citation_hints,
    evidence_lines_for_prompt,
)
from topic_miner.llm.client import ChatJSON

logger = logging.getLogger(__name__)

SYNTH_ROLE = "synthesizer"

SYNTH_SYSTEM_PROMPT = " ".join([
    "You are Synthesizer for WireSpec generation.",
    "Output must be valid JSON only. No markdown, no explanations.",
    "You output WireSpec, but citations MUST be canonical map shape.",
    "Do NOT output schema_version/meta.run_id/meta.generated_at.",
    "Citations coverage is mandatory: app, core_loop, screens by each screen.id, "
    "commands by each rust_commands.name, tables by each table name, "
    "acceptance_tests by each index string.",
    "Every citations value MUST be a non-empty evidence_ids array.",
    "Every evidence id MUST be copied exactly from allowedEvidenceIds list. Never invent IDs.",
    "If evidence seems weak, still choose the closest allowed evidence id; do not leave empty arrays.",
    "overall_recommendation MUST be go or hold only.",
])

EVIDENCE_STRATEGY = [
    "Prefer readme evidence for app/core_loop/screens/tables.",
    "Use issues/releases as supporting evidence for commands and acceptance_tests.",
    "If unsure, pick closest allowed evidence id; never leave citation arrays empty.",
]

# Ids here are deliberately not in the E-XX-### scheme
OUTPUT_TEMPLATE: Dict[str, Any] = {
    "app": {"name": "string", "one_sentence": "string", "inspired_by": None},
    "core_loop": "string",
    "screens": [{"id": "main", "name": "string", "purpose": "string", "primary_actions": ["string"]}],
    "rust_commands": [{"name": "save_item", "purpose": "string", "async": True, "input": {}, "output": {}}],
    "data_model": {"tables": [{"name": "string", "fields": [{"name": "string", "type": "string"}]}]},
    "mvp_plan": {"milestones": [{"week": 1, "tasks": ["string"]}]},
    "acceptance_tests": ["string"],
    "open_questions": ["string"],
    "scores": {
        "closure": 3,
        "feasibility": 3,
        "stack_fit": 3,
        "complexity_control": 3,
        "debuggability": 3,
        "demo_value": 3,
    },
    "overall_recommendation": "go",
    "citations": {
        "app": ["EV::RD::0001"],
        "core_loop": ["EV::RD::0001"],
        "screens": {"main": ["EV::RD::0001"], "settings": ["EV::IS::0001"]},
        "commands": {"save_item": ["EV::IS::0001"], "list_items": ["EV::RL::0001"]},
        "tables": {"items": ["EV::RD::0002"]},
        "acceptance_tests": {"0": ["EV::IS::0002"], "1": ["EV::RD::0003"]},
    },
}

TEMPLATE_NOTE = "Template ids above are placeholders only. In real output you MUST copy ids from allowedEvidenceIds."


@dataclass
class SynthPrompts:
    system_prompt: str
    user_prompt: str
    selected_evidence_ids: List[str]


def compact_repo_card(repo_card: RepoCard) -> Dict[str, Any]:
    return {
        "full_name": repo_card.full_name,
        "html_url": repo_card.html_url,
        "description": repo_card.description,
        "topics": list(repo_card.topics),
        "language": repo_card.language,
        "stars": repo_card.stars,
        "forks": repo_card.forks,
        "open_issues": repo_card.open_issues,
        "readme_fetched": bool(repo_card.readme),
        "releases_count": len(repo_card.releases),
        "issues_count": len(repo_card.issues),
        "root_files_count": len(repo_card.root_files),
    }


def build_wire_synth_prompts(
    repo_card: RepoCard,
    selected_evidence: Sequence[EvidenceItem],
    focus_hint: Optional[FocusHint] = None,
) -> SynthPrompts:
    allowed = [item.id for item in selected_evidence]
    payload: Dict[str, Any] = {
        "task": "Produce a WireSpec JSON from repository evidence with canonical-like citations map.",
        "allowedEvidenceIds": allowed,
        "allowedEvidenceIds_display": [f"[ID:{eid}]" for eid in allowed],
        "evidence_lines": evidence_lines_for_prompt(selected_evidence),
        "citation_hints": build_citation_hints(repo_card, selected_evidence),
        "evidence_strategy": list(EVIDENCE_STRATEGY),
        "repo_profile": compact_repo_card(repo_card),
        "output_template": OUTPUT_TEMPLATE,
        "template_note": TEMPLATE_NOTE,
    }
    if focus_hint is not None and (focus_hint.any_need or focus_hint.keywords):
        payload["focus"] = focus_hint.to_dict()
    return SynthPrompts(
        system_prompt=SYNTH_SYSTEM_PROMPT,
        user_prompt=json.dumps(payload, indent=2, ensure_ascii=False),
        selected_evidence_ids=allowed,
    )


class LLMSynthesizer:
    """Synthesis collaborator over a ChatJSON model."""

    def __init__(self, llm: ChatJSON, *, role: str = SYNTH_ROLE):
        self.llm = llm
        self.role = role

    async def __call__(
        self,
        repo_card: RepoCard,
        selected_evidence: Sequence[EvidenceItem],
        focus_hint: Optional[FocusHint],
        iteration: int,
    ) -> str:
        prompts = build_wire_synth_prompts(repo_card, selected_evidence, focus_hint)
        logger.info(
            f"[synth] {repo_card.full_name} iter={iteration} evidence={len(prompts.selected_evidence_ids)}"
        )
        return await self.llm(prompts.system_prompt, prompts.user_prompt, role=self.role)

    def bind(self, llm: ChatJSON) -> "LLMSynthesizer":
        """Same synthesizer over a different chat (e.g. a per-repo MeteredChat)."""
        return LLMSynthesizer(llm, role=self.role)


__all__ = [
    "SYNTH_ROLE",
    "SYNTH_SYSTEM_PROMPT",
    "SynthPrompts",
    "compact_repo_card",
    "build_wire_synth_prompts",
    "LLMSynthesizer",
]
