"""Tests for proof parsing and validation."""
import json

import pytest

from proofrag.errors import ParseError, ReferenceValidationError, SchemaValidationError
from proofrag.models import VerificationStep
from proofrag.verify.validator import (
    ProofValidator,
    check_references,
    check_schema,
    extract_records,
)


def steps_of(records):
    return [VerificationStep.model_validate(r) for r in records]


class TestExtractRecords:

    def test_bare_array(self, valid_steps):
        assert extract_records(json.dumps(valid_steps)) == valid_steps

    def test_fenced_block_with_prose(self, valid_response, valid_steps):
        assert extract_records(valid_response) == valid_steps

    def test_object_with_steps_key(self, valid_steps):
        assert extract_records(json.dumps({"steps": valid_steps})) == valid_steps

    def test_skips_stray_arrays_in_prose(self, valid_steps):
        raw = "As shown in [1], the proof is:\n" + json.dumps(valid_steps)

        assert extract_records(raw) == valid_steps

    @pytest.mark.parametrize("raw", ["", "   ", "I cannot produce a proof.", "```json\n[{\"id\": \n```"])
    def test_unparseable_responses(self, raw):
        with pytest.raises(ParseError):
            extract_records(raw)


class TestCheckSchema:

    def test_valid_records(self, valid_steps):
        assert [s.id for s in check_schema(valid_steps)] == ["A1", "G1", "H1", "D1"]

    def test_empty_proof_is_rejected(self):
        with pytest.raises(SchemaValidationError, match="no steps"):
            check_schema([])

    def test_collects_every_problem(self, valid_steps):
        valid_steps[0]["id"] = "Q1"
        valid_steps[2]["type"] = "derivation"
        records = valid_steps + ["not a step"]

        with pytest.raises(SchemaValidationError) as exc_info:
            check_schema(records)

        problems = exc_info.value.problems
        assert len(problems) == 3
        assert any("record 0" in p for p in problems)
        assert any("record 2" in p for p in problems)
        assert any("record 4: expected an object" in p for p in problems)


class TestCheckReferences:

    def test_valid_proof_has_no_warnings(self, valid_steps):
        assert check_references(steps_of(valid_steps)) == []

    def test_forward_reference(self, valid_steps):
        valid_steps[2]["dependencies"] = ["D1"]

        with pytest.raises(ReferenceValidationError) as exc_info:
            check_references(steps_of(valid_steps))

        assert exc_info.value.problems == ["H1: depends on later step 'D1'"]

    def test_unknown_reference(self, valid_steps):
        valid_steps[3]["dependencies"] = ["A1", "H7"]

        with pytest.raises(ReferenceValidationError, match="reference problem"):
            check_references(steps_of(valid_steps))

    def test_self_reference(self, valid_steps):
        valid_steps[3]["dependencies"] = ["D1"]

        with pytest.raises(ReferenceValidationError) as exc_info:
            check_references(steps_of(valid_steps))

        assert exc_info.value.problems == ["D1: depends on itself"]

    def test_duplicate_ids(self, valid_steps):
        valid_steps.append(dict(valid_steps[3], dependencies=["A1"]))

        with pytest.raises(ReferenceValidationError) as exc_info:
            check_references(steps_of(valid_steps))

        assert "duplicate id 'D1'" in exc_info.value.problems[0]

    def test_phase_regression_is_advisory_by_default(self, valid_steps):
        valid_steps.append(
            {"id": "A2", "type": "assumption", "derivation": "B |≡ #(Nb)", "reason": "late", "rules": []}
        )

        warnings = check_references(steps_of(valid_steps))

        assert warnings == ["A2: assumption step after derivation step"]

    def test_phase_regression_rejected_when_strict(self, valid_steps):
        valid_steps.append(
            {"id": "A2", "type": "assumption", "derivation": "B |≡ #(Nb)", "reason": "late", "rules": []}
        )

        with pytest.raises(ReferenceValidationError):
            check_references(steps_of(valid_steps), strict_phase_order=True)


class TestProofValidator:

    def test_validate_returns_proof(self, valid_response):
        proof = ProofValidator(strict_phase_order=False).validate(valid_response)

        assert proof.ids == ["A1", "G1", "H1", "D1"]
        assert proof.warnings == ()
