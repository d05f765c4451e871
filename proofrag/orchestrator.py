"""Composition root for the ingest and verify pipelines.

Provider clients and the store are constructed explicitly and injected,
so tests can pass deterministic fakes. ``Orchestrator.from_config`` wires
the production defaults.
"""
import asyncio
from pathlib import Path
from typing import Any, Awaitable, Dict, Optional, Sequence, TypeVar

import structlog

from proofrag import config
from proofrag.errors import ProviderError, RequestTimeoutError
from proofrag.llm_client import OllamaClient
from proofrag.models import Proof
from proofrag.rag.chunker import TextChunker
from proofrag.rag.embedder import Embedder
from proofrag.rag.ingest import IngestPipeline, IngestResult, Upload
from proofrag.rag.retriever import Retriever
from proofrag.rag.store_faiss import FAISSVectorStore
from proofrag.verify.generation import GenerationClient
from proofrag.verify.pipeline import VerifyPipeline
from proofrag.verify.validator import ProofValidator, RepairLoop

logger = structlog.get_logger()

T = TypeVar("T")


class Orchestrator:
    """Owns the two request pipelines and their deadline policy."""

    def __init__(
        self,
        embedder: Embedder,
        generator: GenerationClient,
        vector_store: FAISSVectorStore,
        chunker: Optional[TextChunker] = None,
        retriever: Optional[Retriever] = None,
        validator: Optional[ProofValidator] = None,
        repair_budget: Optional[int] = None,
        request_timeout: Optional[float] = None,
        client: Optional[OllamaClient] = None,
    ):
        """Wire the pipelines.

        Args:
            embedder: Embedding adapter shared by ingest and retrieval
            generator: Generation adapter for the verify pipeline
            vector_store: The store both pipelines use
            chunker: Text chunker (default sizes from config)
            retriever: Exemplar retriever (built from embedder and store if omitted)
            validator: Proof validator (phase-order policy from config if omitted)
            repair_budget: Repair attempts per verify request (default from config)
            request_timeout: Default whole-request deadline in seconds; 0 disables
            client: Provider client used for readiness checks
        """
        self.vector_store = vector_store
        self.client = client
        self.request_timeout = (
            config.REQUEST_TIMEOUT if request_timeout is None else request_timeout
        )

        self.ingest_pipeline = IngestPipeline(embedder, vector_store, chunker=chunker)
        self.verify_pipeline = VerifyPipeline(
            retriever or Retriever(embedder, vector_store),
            RepairLoop(generator, validator=validator, repair_budget=repair_budget),
        )

    @classmethod
    def from_config(
        cls,
        index_dir: Optional[Path] = None,
        client: Optional[OllamaClient] = None,
    ) -> "Orchestrator":
        """Build an orchestrator backed by Ollama and a FAISS store on disk."""
        client = client or OllamaClient()
        return cls(
            embedder=Embedder(client),
            generator=GenerationClient(client),
            vector_store=FAISSVectorStore(
                index_dir=index_dir,
                dimension=config.EMBEDDING_DIMENSION,
            ),
            client=client,
        )

    def startup(self) -> None:
        """Load or create the vector index."""
        self.vector_store.init_or_load()

    async def ingest(
        self,
        uploads: Sequence[Upload],
        document_type: Any,
        attributes: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> IngestResult:
        return await self._with_deadline(
            self.ingest_pipeline.ingest(uploads, document_type, attributes),
            timeout,
            "ingest",
        )

    async def verify(self, diagram: Optional[str], timeout: Optional[float] = None) -> Proof:
        return await self._with_deadline(
            self.verify_pipeline.verify(diagram),
            timeout,
            "verify",
        )

    async def readiness(self) -> Dict[str, Any]:
        """Provider reachability, model availability and store statistics."""
        checks: Dict[str, Any] = {
            "status": "healthy",
            "provider": False,
            "models": False,
            "store": self.vector_store.get_stats(),
        }
        if self.client is None:
            checks["status"] = "unhealthy"
            checks["error"] = "No provider client configured"
            return checks

        try:
            models = await self.client.list_models()
        except ProviderError as e:
            checks["status"] = "unhealthy"
            checks["error"] = e.message
            return checks

        checks["provider"] = True
        missing = [m for m in (config.CHAT_MODEL, config.EMBEDDING_MODEL) if m not in models]
        if missing:
            checks["status"] = "unhealthy"
            checks["error"] = f"Missing model(s): {', '.join(missing)}"
        else:
            checks["models"] = True
        return checks

    async def _with_deadline(self, operation: Awaitable[T], timeout: Optional[float], name: str) -> T:
        timeout = self.request_timeout if timeout is None else timeout
        if not timeout:
            return await operation

        try:
            async with asyncio.timeout(timeout):
                return await operation
        except asyncio.TimeoutError as e:
            logger.error("request_deadline_exceeded", operation=name, timeout=timeout)
            raise RequestTimeoutError(f"{name} did not finish within {timeout}s") from e
