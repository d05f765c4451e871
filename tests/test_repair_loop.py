"""Tests for the bounded generate/validate/repair loop."""
import json

import pytest

from proofrag.errors import ProviderFatalError, ValidationError
from proofrag.verify.validator import ProofValidator, RepairLoop

from conftest import FakeGenerator

PROMPT = "Analyze the following protocol diagram"


def make_loop(generator, budget=2, strict=False):
    return RepairLoop(generator, validator=ProofValidator(strict_phase_order=strict), repair_budget=budget)


class TestRepairLoop:

    @pytest.mark.asyncio
    async def test_valid_first_response(self, valid_response):
        generator = FakeGenerator(valid_response)

        proof = await make_loop(generator).run(PROMPT)

        assert proof.attempts == 1
        assert len(proof) == 4
        assert generator.prompts == [PROMPT]

    @pytest.mark.asyncio
    async def test_forward_reference_is_repaired(self, valid_steps, valid_response):
        broken = [dict(s) for s in valid_steps]
        broken[2]["dependencies"] = ["D1"]
        generator = FakeGenerator(json.dumps(broken), valid_response)

        proof = await make_loop(generator).run(PROMPT)

        assert proof.attempts == 2
        assert proof.ids == ["A1", "G1", "H1", "D1"]
        repair_prompt = generator.prompts[1]
        assert repair_prompt.startswith(PROMPT)
        assert "could not be accepted" in repair_prompt
        assert "H1: depends on later step 'D1'" in repair_prompt
        assert json.dumps(broken) in repair_prompt

    @pytest.mark.asyncio
    async def test_parse_and_schema_failures_share_the_budget(self, valid_response):
        generator = FakeGenerator("no json here", '[{"id": "Q1"}]', valid_response)

        proof = await make_loop(generator, budget=2).run(PROMPT)

        assert proof.attempts == 3

    @pytest.mark.asyncio
    async def test_budget_exhausted_raises_validation_error(self):
        generator = FakeGenerator("nope", "still nope", "nope again", "never used")

        with pytest.raises(ValidationError) as exc_info:
            await make_loop(generator, budget=2).run(PROMPT)

        error = exc_info.value
        assert error.attempts == 3
        assert len(generator.prompts) == 3
        assert error.last_error.kind == "parse_error"
        assert error.trace[-1] == "rejected"
        assert error.trace.count("repair_requested") == 2
        assert error.to_dict()["cause"] == "parse_error"

    @pytest.mark.asyncio
    async def test_zero_budget_means_single_attempt(self):
        generator = FakeGenerator("[]")

        with pytest.raises(ValidationError) as exc_info:
            await make_loop(generator, budget=0).run(PROMPT)

        assert exc_info.value.attempts == 1
        assert exc_info.value.last_error.kind == "schema_error"
        assert len(generator.prompts) == 1

    @pytest.mark.asyncio
    async def test_strict_phase_order_triggers_repair(self, valid_steps, valid_response):
        late = valid_steps + [
            {"id": "A2", "type": "assumption", "derivation": "B |≡ #(Nb)", "reason": "late", "rules": []}
        ]
        generator = FakeGenerator(json.dumps(late, ensure_ascii=False), valid_response)

        proof = await make_loop(generator, strict=True).run(PROMPT)

        assert proof.attempts == 2

    @pytest.mark.asyncio
    async def test_advisory_phase_order_keeps_warnings(self, valid_steps):
        late = valid_steps + [
            {"id": "A2", "type": "assumption", "derivation": "B |≡ #(Nb)", "reason": "late", "rules": []}
        ]
        generator = FakeGenerator(json.dumps(late))

        proof = await make_loop(generator).run(PROMPT)

        assert proof.attempts == 1
        assert proof.warnings == ("A2: assumption step after derivation step",)

    @pytest.mark.asyncio
    async def test_provider_errors_are_not_repaired(self):
        generator = FakeGenerator(ProviderFatalError("model not found", status_code=404))

        with pytest.raises(ProviderFatalError):
            await make_loop(generator).run(PROMPT)

        assert len(generator.prompts) == 1

    def test_rejects_negative_budget(self):
        with pytest.raises(ValueError):
            RepairLoop(FakeGenerator(), repair_budget=-1)
