# FILE: tests/test_bridge_orchestrator.py
"""Tests for the bridge state machine (run_bridge)."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import ALLOWED_IDS, make_wire
from topic_miner.bridge import orchestrator
from topic_miner.bridge.normalize import NormalizeResult
from topic_miner.bridge.orchestrator import BridgeInput, run_bridge
from topic_miner.events import EventLedger


def _input(raw, **kwargs):
    kwargs.setdefault("allowed_evidence_ids", ALLOWED_IDS)
    return BridgeInput(repo_id="acme/notes", raw_model_text=raw, iteration=1, **kwargs)


def _stage_names(result):
    return [(s.name, s.ok) for s in result.report.stages]


def _wire_without(group):
    doc = make_wire()
    doc["citations"][group] = {}
    return json.dumps(doc)


class TestBridgeInput:
    def test_allow_list_snapshot(self):
        ids = ["E-RD-001"]
        inp = _input("{}", allowed_evidence_ids=ids)
        ids.append("E-RD-999")
        assert inp.allowed_evidence_ids == ("E-RD-001",)

    def test_negative_attempts_clamped(self):
        assert _input("{}", max_repair_attempts=-3).max_repair_attempts == 0


class TestBridgeSuccess:
    @pytest.mark.asyncio
    async def test_first_attempt(self, wire_text):
        llm = AsyncMock()
        result = await run_bridge(_input(wire_text), llm)

        assert result.ok
        assert result.canonical is not None
        assert result.report.final.attempts_used == 0
        assert result.report.final.coverage_ratio == 1.0
        assert _stage_names(result) == [
            ("parse", True),
            ("wire_validate", True),
            ("normalize", True),
            ("canonical_validate", True),
            ("evidence_gate", True),
            ("quality_gate", True),
        ]
        llm.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_already_decoded_document(self, wire_doc):
        result = await run_bridge(_input(wire_doc), AsyncMock())
        assert result.ok

    @pytest.mark.asyncio
    async def test_fenced_output(self, wire_text):
        result = await run_bridge(_input(f"Sure!\n```json\n{wire_text}\n```"), AsyncMock())
        assert result.ok

    @pytest.mark.asyncio
    async def test_report_is_frozen(self, wire_text):
        result = await run_bridge(_input(wire_text), AsyncMock())
        assert result.report.frozen
        assert isinstance(result.report.stages, tuple)
        with pytest.raises(RuntimeError):
            result.report.add_stage(result.report.stages[0])

    @pytest.mark.asyncio
    async def test_to_dict(self, wire_text):
        data = (await run_bridge(_input(wire_text), AsyncMock())).to_dict()
        assert data["ok"] is True
        assert "citations" not in data["canonical"]
        assert data["report"]["final"]["ok"] is True
        assert "normalize_report" in data["report"]


class TestBridgeRepair:
    @pytest.mark.asyncio
    async def test_repair_fills_missing_key(self):
        llm = AsyncMock(return_value='{"commands": {"save_note": ["E-IS-001"]}}')
        events = EventLedger()
        result = await run_bridge(_input(_wire_without("commands")), llm, events=events)

        assert result.ok
        assert result.report.final.attempts_used == 1
        assert result.canonical.citations.commands == {"save_note": ["E-IS-001"]}
        assert llm.await_count == 1
        assert "REPAIR_PATCH_APPLIED" in events.names()
        repair = result.report.stages_named("repair")[0]
        assert repair.ok
        assert repair.stats["patched_keys"] == ["commands"]

    @pytest.mark.asyncio
    async def test_repair_prompt_lists_missing_keys(self):
        llm = AsyncMock(return_value='{"tables": {"notes": ["E-RD-002"]}}')
        await run_bridge(_input(_wire_without("tables")), llm)
        user_prompt = llm.await_args.args[1]
        assert json.loads(user_prompt)["missingKeys"] == ["table:notes"]

    @pytest.mark.asyncio
    async def test_unknown_id_in_patch_rejected(self):
        llm = AsyncMock(return_value='{"commands": {"save_note": ["E-IS-404"]}}')
        result = await run_bridge(_input(_wire_without("commands")), llm)

        assert not result.ok
        assert result.canonical is None
        assert result.report.final.reason == "repair exhausted"
        assert llm.await_count == 2
        repairs = result.report.stages_named("repair")
        assert [r.error_code for r in repairs] == ["REPAIR_PATCH_UNKNOWN_ID"] * 2
        assert repairs[0].error_detail == "E-IS-404"

    @pytest.mark.asyncio
    async def test_invalid_patch_retried_on_same_attempt(self):
        """A rejected patch is retried without moving the attempt counter."""
        llm = AsyncMock(side_effect=[
            '{"commands": {"save_note": ["E-IS-404"]}}',
            '{"commands": {"save_note": ["E-RD-001"]}}',
        ])
        result = await run_bridge(_input(_wire_without("commands")), llm)

        assert result.ok
        assert result.report.final.attempts_used == 1
        assert llm.await_count == 2
        repairs = result.report.stages_named("repair")
        assert [r.ok for r in repairs] == [False, True]
        assert repairs[0].error_code == "REPAIR_PATCH_UNKNOWN_ID"
        assert repairs[0].stats["attempt"] == repairs[1].stats["attempt"] == 1
        assert result.canonical.citations.commands == {"save_note": ["E-RD-001"]}

    @pytest.mark.asyncio
    async def test_unhelpful_patch_exhausts_attempts(self):
        llm = AsyncMock(return_value='{"app": ["E-RD-002"]}')
        result = await run_bridge(_input(_wire_without("commands")), llm)

        assert not result.ok
        assert result.report.final.reason == "repair exhausted"
        assert result.report.final.attempts_used == 2
        assert result.report.final.empty_fields_count == 1
        assert llm.await_count == 2

    @pytest.mark.asyncio
    async def test_repair_call_failures(self):
        llm = AsyncMock(side_effect=RuntimeError("503"))
        result = await run_bridge(_input(_wire_without("commands")), llm)

        assert not result.ok
        assert [r.error_code for r in result.report.stages_named("repair")] == ["REPAIR_PATCH_FAILED"] * 2

    @pytest.mark.asyncio
    async def test_budget_check_stops_repair(self):
        llm = AsyncMock(return_value='{"commands": {"save_note": ["E-IS-404"]}}')
        budget_check = MagicMock(side_effect=[None, "maxLlmCallsPerRepo reached"])

        result = await run_bridge(_input(_wire_without("commands")), llm, budget_check=budget_check)

        assert not result.ok
        assert result.report.final.reason == "budget cutoff"
        assert result.report.final.attempts_used == 0
        assert llm.await_count == 1
        assert budget_check.call_count == 2

    @pytest.mark.asyncio
    async def test_budget_check_skipped_when_gates_pass(self, wire_text):
        budget_check = MagicMock(return_value="stop")
        result = await run_bridge(_input(wire_text), AsyncMock(), budget_check=budget_check)
        assert result.ok
        budget_check.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_repair_budget(self):
        llm = AsyncMock()
        result = await run_bridge(_input(_wire_without("commands"), max_repair_attempts=0), llm)

        assert not result.ok
        assert result.report.final.reason == "quality gate failed"
        llm.assert_not_awaited()


class TestBridgeFailures:
    @pytest.mark.asyncio
    async def test_parse_failure(self):
        result = await run_bridge(_input("I am unable to produce JSON."), AsyncMock())
        assert not result.ok
        assert _stage_names(result) == [("parse", False)]
        assert result.report.stages[0].error_code == "PARSE_FAILED"
        assert result.report.final.reason == "parse failed"

    @pytest.mark.asyncio
    async def test_wire_failure(self):
        result = await run_bridge(_input('{"app": {"name": 5}}'), AsyncMock())
        assert _stage_names(result) == [("parse", True), ("wire_validate", False)]
        assert result.report.stages[1].error_code == "WIRE_VALIDATE_FAILED"
        assert "app.name" in result.report.stages[1].error_detail

    @pytest.mark.asyncio
    async def test_evidence_gate_failure_is_not_repaired(self):
        """Every key is cited, so there is nothing to patch."""
        doc = make_wire()
        doc["citations"]["commands"] = {"save_note": ["E-IS-099"]}
        llm = AsyncMock()
        result = await run_bridge(_input(json.dumps(doc)), llm)

        assert not result.ok
        assert result.report.final.reason == "evidence gate failed"
        assert result.report.final.unknown_ids_count == 1
        assert result.report.stages_named("evidence_gate")[0].error_detail == "E-IS-099"
        llm.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_canonical_failure(self, monkeypatch, wire_text):
        def broken_normalize(wire):
            return NormalizeResult(canonical={"schema_version": 3}, fixes=["x"])

        monkeypatch.setattr(orchestrator, "normalize_wire", broken_normalize)
        result = await run_bridge(_input(wire_text), AsyncMock())

        assert not result.ok
        assert _stage_names(result)[-1] == ("canonical_validate", False)
        assert result.report.final.reason == "canonical validation failed"
        assert result.report.fixes == ("x",)

    @pytest.mark.asyncio
    async def test_internal_error_is_captured(self, monkeypatch, wire_text):
        def explode(doc, config):
            raise RuntimeError("gate crashed")

        monkeypatch.setattr(orchestrator, "check_quality", explode)
        result = await run_bridge(_input(wire_text), AsyncMock())

        assert not result.ok
        last = result.report.stages[-1]
        assert last.name == "internal"
        assert last.error_code == "BRIDGE_INTERNAL_ERROR"
        assert last.error_detail == "RuntimeError: gate crashed"
        assert result.report.final.reason == "bridge internal error"
