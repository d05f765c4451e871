"""Verify pipeline: diagram in, validated proof out."""
from typing import Optional

import structlog

from proofrag import config
from proofrag.errors import InputError, StorageError
from proofrag.models import Proof
from proofrag.rag.retriever import Retriever, format_exemplars
from proofrag.verify.prompt_builder import PromptBlocks, build_verification_prompt
from proofrag.verify.validator import RepairLoop

logger = structlog.get_logger()


class VerifyPipeline:
    """Retrieve exemplars, build the prompt and run the repair loop."""

    def __init__(
        self,
        retriever: Retriever,
        repair_loop: RepairLoop,
        blocks: Optional[PromptBlocks] = None,
        max_diagram_chars: int = None,
    ):
        self.retriever = retriever
        self.repair_loop = repair_loop
        self.blocks = blocks or PromptBlocks()
        self.max_diagram_chars = max_diagram_chars or config.MAX_DIAGRAM_CHARS

    async def verify(self, diagram: Optional[str]) -> Proof:
        """Produce a validated proof for a protocol diagram.

        Raises:
            InputError: Missing, blank or oversized diagram (no generation call is made)
            ValidationError: Output still invalid after the repair budget
            ProviderFatalError: Embedding or generation failed
        """
        if not isinstance(diagram, str) or not diagram.strip():
            raise InputError("No diagram provided")

        if len(diagram) > self.max_diagram_chars:
            raise InputError(
                f"Diagram too long ({len(diagram)} characters, max {self.max_diagram_chars})"
            )

        logger.info("verify_started", diagram_length=len(diagram))

        try:
            results = await self.retriever.retrieve()
        except StorageError as e:
            # Exemplars are optional context; generate without them
            logger.error("exemplar_retrieval_failed", error=e.message)
            results = []

        prompt = build_verification_prompt(diagram, format_exemplars(results), self.blocks)

        logger.info(
            "verification_prompt_built",
            exemplar_count=len(results),
            prompt_length=len(prompt),
        )

        proof = await self.repair_loop.run(prompt)

        logger.info(
            "verify_completed",
            step_count=len(proof),
            attempts=proof.attempts,
            warnings=len(proof.warnings),
        )

        return proof
