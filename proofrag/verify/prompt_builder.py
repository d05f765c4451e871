"""Prompt assembly for proof generation.

Pure functions only: identical inputs always give identical prompts.
"""
from dataclasses import dataclass
from typing import Sequence

from proofrag.verify import prompts


@dataclass(frozen=True)
class PromptBlocks:
    """The static parts of a verification prompt."""

    notation: str = prompts.NOTATION_BLOCK
    axioms: str = prompts.AXIOM_BLOCK
    step_ordering: str = prompts.STEP_ORDERING_BLOCK
    output_format: str = prompts.OUTPUT_FORMAT_BLOCK
    role: str = prompts.ROLE_BLOCK
    step_guidance: str = prompts.STEP_GUIDANCE_BLOCK


def build_prompt(
    notation: str,
    axioms: str,
    step_ordering: str,
    output_format: str,
    exemplars: Sequence[str],
    diagram: str,
    role: str = prompts.ROLE_BLOCK,
    step_guidance: str = prompts.STEP_GUIDANCE_BLOCK,
) -> str:
    """Assemble the generation prompt.

    Exemplars are appended verbatim, one per line, after the analysis
    request; the section is left out entirely when there are none.
    """
    sections = [
        role,
        notation,
        axioms,
        step_ordering,
        f"Analyze the following protocol diagram:\n{diagram}",
        output_format,
        step_guidance,
        "Step-by-step verification:",
    ]
    prompt = "\n\n".join(sections)

    if exemplars:
        prompt += "\n\nSimilar verification examples:\n" + "\n".join(exemplars)

    return prompt


def build_verification_prompt(
    diagram: str,
    exemplars: Sequence[str],
    blocks: PromptBlocks = PromptBlocks(),
) -> str:
    return build_prompt(
        blocks.notation,
        blocks.axioms,
        blocks.step_ordering,
        blocks.output_format,
        exemplars,
        diagram,
        role=blocks.role,
        step_guidance=blocks.step_guidance,
    )


def build_repair_prompt(prompt: str, previous_output: str, error_description: str) -> str:
    """Amend a prompt with the validation failure of the previous attempt."""
    return (
        f"{prompt}\n\n"
        "Your previous response could not be accepted:\n"
        f"{error_description}\n\n"
        "Previous response:\n"
        f"{previous_output}\n\n"
        "Return the complete corrected proof as a single JSON array that "
        "satisfies the schema above. Do not add any other text."
    )
