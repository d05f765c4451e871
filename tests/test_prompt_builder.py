"""Tests for prompt assembly."""
from proofrag.verify import prompts
from proofrag.verify.prompt_builder import (
    PromptBlocks,
    build_prompt,
    build_repair_prompt,
    build_verification_prompt,
)

DIAGRAM = "sequenceDiagram\n    A->>B: {Na, A}Kb\n    B->>A: {Na, Nb}Ka"


class TestPromptBuilder:

    def test_is_deterministic(self):
        exemplars = ["exemplar one", "exemplar two"]

        assert build_verification_prompt(DIAGRAM, exemplars) == build_verification_prompt(DIAGRAM, exemplars)

    def test_contains_static_blocks_and_diagram(self):
        prompt = build_verification_prompt(DIAGRAM, [])

        assert prompts.NOTATION_BLOCK in prompt
        assert prompts.AXIOM_BLOCK in prompt
        assert prompts.STEP_ORDERING_BLOCK in prompt
        assert prompts.OUTPUT_FORMAT_BLOCK in prompt
        assert DIAGRAM in prompt
        assert prompt.index(prompts.NOTATION_BLOCK) < prompt.index(DIAGRAM)

    def test_exemplar_section_omitted_when_empty(self):
        prompt = build_verification_prompt(DIAGRAM, [])

        assert "Similar verification examples" not in prompt

    def test_exemplars_appended_in_rank_order(self):
        prompt = build_verification_prompt(DIAGRAM, ["best match", "second match"])

        assert prompt.endswith("\n\nSimilar verification examples:\nbest match\nsecond match")

    def test_custom_blocks(self):
        blocks = PromptBlocks(notation="NOTATION", axioms="AXIOMS", step_ordering="ORDER", output_format="FORMAT")

        assert build_verification_prompt(DIAGRAM, [], blocks) == build_prompt(
            "NOTATION", "AXIOMS", "ORDER", "FORMAT", [], DIAGRAM
        )

    def test_every_block_comes_from_arguments(self):
        blocks = PromptBlocks(
            notation="NOTATION",
            axioms="AXIOMS",
            step_ordering="ORDER",
            output_format="FORMAT",
            role="ROLE",
            step_guidance="GUIDANCE",
        )

        prompt = build_verification_prompt("DIAGRAM", ["EXEMPLAR"], blocks)

        assert prompt == (
            "ROLE\n\nNOTATION\n\nAXIOMS\n\nORDER\n\n"
            "Analyze the following protocol diagram:\nDIAGRAM\n\n"
            "FORMAT\n\nGUIDANCE\n\nStep-by-step verification:"
            "\n\nSimilar verification examples:\nEXEMPLAR"
        )
        assert prompts.ROLE_BLOCK not in prompt

    def test_output_format_describes_step_schema(self):
        for field in ("id", "type", "derivation", "reason", "rules", "dependencies"):
            assert f'"{field}"' in prompts.OUTPUT_FORMAT_BLOCK
        assert "```json" in prompts.OUTPUT_FORMAT_BLOCK

    def test_repair_prompt(self):
        repair = build_repair_prompt("BASE PROMPT", "[garbage]", "Response was empty")

        assert repair.startswith("BASE PROMPT\n\n")
        assert "Response was empty" in repair
        assert "[garbage]" in repair
