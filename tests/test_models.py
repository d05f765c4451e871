"""Tests for the data model."""
import pydantic
import pytest

from proofrag.models import (
    ChunkMetadata,
    Document,
    Proof,
    SearchResult,
    StepType,
    VerificationStep,
)


def make_step(**overrides):
    step = {
        "id": "A1",
        "type": "assumption",
        "derivation": "A |≡ #(Na)",
        "reason": "A generated Na",
        "rules": [],
    }
    step.update(overrides)
    return step


class TestChunkMetadata:

    def test_round_trip(self):
        metadata = ChunkMetadata(
            filename="ns.md",
            position=2,
            char_start=1600,
            char_end=2600,
            heading_context="# Protocol > ## Analysis",
            attributes={"author": "alice", "tags": ["svo", "nonce"]},
        )

        assert ChunkMetadata.from_dict(metadata.to_dict()) == metadata

    def test_to_dict_is_flat_and_skips_missing_fields(self):
        metadata = ChunkMetadata(filename="ns.md", position=0, attributes={"author": "alice"})

        assert metadata.to_dict() == {"filename": "ns.md", "position": 0, "author": "alice"}

    def test_declared_keys_win_over_attributes(self):
        metadata = ChunkMetadata(filename="ns.md", position=0, attributes={"filename": "other.md"})

        assert metadata.to_dict()["filename"] == "ns.md"

    def test_rejects_negative_position(self):
        with pytest.raises(pydantic.ValidationError):
            ChunkMetadata(filename="ns.md", position=-1)


class TestSearchResult:

    @pytest.mark.parametrize("similarity,expected", [(1.0, 1.0), (0.0, 0.5), (-1.0, 0.0)])
    def test_relevance_score(self, similarity, expected):
        document = Document(
            id="1",
            content="text",
            type="svo_verification",
            metadata=ChunkMetadata(filename="ns.md", position=0),
        )

        assert SearchResult(document, similarity).relevance_score == pytest.approx(expected)

    def test_source_includes_heading(self):
        metadata = ChunkMetadata(filename="ns.md", position=0, heading_context="# Protocol")
        document = Document(id="1", content="text", type="svo_verification", metadata=metadata)

        assert SearchResult(document, 0.5).source == "ns.md > # Protocol"


class TestVerificationStep:

    def test_valid_step(self):
        step = VerificationStep.model_validate(make_step())

        assert step.type is StepType.ASSUMPTION
        assert step.dependencies is None

    @pytest.mark.parametrize("step_id", ["X1", "A0", "A", "a1", "A1b", "AA1", "A1\u0661", "D\uff11"])
    def test_rejects_malformed_ids(self, step_id):
        with pytest.raises(pydantic.ValidationError):
            VerificationStep.model_validate(make_step(id=step_id))

    def test_rejects_letter_type_mismatch(self):
        with pytest.raises(pydantic.ValidationError, match="requires 'D'"):
            VerificationStep.model_validate(make_step(id="A1", type="derivation"))

    def test_rejects_unknown_type(self):
        with pytest.raises(pydantic.ValidationError):
            VerificationStep.model_validate(make_step(type="lemma"))

    def test_rejects_missing_rules(self):
        record = make_step()
        del record["rules"]

        with pytest.raises(pydantic.ValidationError):
            VerificationStep.model_validate(record)

    def test_ignores_unknown_keys(self):
        step = VerificationStep.model_validate(make_step(confidence="high"))

        assert "confidence" not in step.model_dump()

    def test_step_type_letters_and_phases(self):
        assert StepType.from_letter("P") is StepType.INTERPRETATION
        assert StepType.DERIVATION.letter == "D"
        phases = [t.phase for t in StepType]
        assert phases == sorted(phases)
        assert StepType.ASSUMPTION.phase < StepType.DERIVATION.phase


class TestProof:

    def test_to_list_drops_missing_dependencies(self):
        steps = (
            VerificationStep.model_validate(make_step()),
            VerificationStep.model_validate(
                make_step(id="D1", type="derivation", rules=["BA"], dependencies=["A1"])
            ),
        )
        proof = Proof(steps=steps)

        records = proof.to_list()
        assert "dependencies" not in records[0]
        assert records[1]["dependencies"] == ["A1"]
        assert records[1]["type"] == "derivation"
        assert proof.ids == ["A1", "D1"]
        assert len(proof) == 2
        assert proof[1].id == "D1"
