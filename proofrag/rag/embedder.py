"""Embedding adapter over the provider client.

Splits large batches into sub-batches, runs them with bounded
parallelism and enforces a fixed output dimension.
"""
import asyncio
from typing import List, Optional

import structlog

from proofrag import config
from proofrag.errors import InputError, ProviderFatalError
from proofrag.llm_client import OllamaClient
from proofrag.retry import RetryConfig, retry_async

logger = structlog.get_logger()


class Embedder:
    """Maps texts to fixed-dimension vectors via an external provider."""

    def __init__(
        self,
        client: OllamaClient,
        model: str = None,
        dimension: Optional[int] = None,
        batch_size: int = None,
        max_concurrency: int = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        """Initialize the embedder.

        Args:
            client: Provider client exposing ``embed(texts, model)``
            model: Embedding model name (default from config)
            dimension: Expected vector length; detected from the first response if None
            batch_size: Maximum texts per provider call (default from config)
            max_concurrency: Sub-batches in flight at once (default from config)
            retry_config: Backoff policy for transient failures
        """
        self.client = client
        self.model = model or config.EMBEDDING_MODEL
        self.dimension = dimension if dimension is not None else config.EMBEDDING_DIMENSION
        self.batch_size = config.EMBED_BATCH_SIZE if batch_size is None else batch_size
        self.max_concurrency = config.EMBED_CONCURRENCY if max_concurrency is None else max_concurrency
        self.retry_config = retry_config or RetryConfig()

        if self.batch_size < 1 or self.max_concurrency < 1:
            raise ValueError("batch_size and max_concurrency must be positive")

    async def embed(self, text: str) -> List[float]:
        """Embed a single text."""
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed texts, preserving input order.

        Raises:
            InputError: If any text is empty
            ProviderFatalError: On fatal provider errors, exhausted retries or
                a vector of the wrong dimension
        """
        if not texts:
            return []

        for i, text in enumerate(texts):
            if not text or not text.strip():
                raise InputError(f"Cannot embed empty text (index {i})")

        batches = [
            texts[i : i + self.batch_size]
            for i in range(0, len(texts), self.batch_size)
        ]
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(batch_index: int, batch: List[str]) -> List[List[float]]:
            async with semaphore:
                vectors = await retry_async(
                    lambda: self.client.embed(batch, model=self.model),
                    self.retry_config,
                    operation_name="embed",
                )
            logger.debug(
                "embeddings_batch_generated",
                batch_index=batch_index,
                batch_size=len(batch),
            )
            return vectors

        tasks = [asyncio.ensure_future(run(i, b)) for i, b in enumerate(batches)]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            # Don't leave sibling sub-batches retrying after a failure or cancel
            for task in tasks:
                task.cancel()
            raise

        embeddings = [vector for batch_vectors in results for vector in batch_vectors]
        self._check_dimensions(embeddings)

        logger.info(
            "embeddings_generated",
            count=len(embeddings),
            batches=len(batches),
            dimension=self.dimension,
        )

        return embeddings

    def _check_dimensions(self, embeddings: List[List[float]]) -> None:
        for vector in embeddings:
            if not vector:
                raise ProviderFatalError("Provider returned an empty embedding")

            if self.dimension is None:
                self.dimension = len(vector)
                logger.info("embedding_dimension_detected", model=self.model, dimension=self.dimension)

            if len(vector) != self.dimension:
                raise ProviderFatalError(
                    f"Embedding dimension mismatch: expected {self.dimension}, "
                    f"got {len(vector)} from model {self.model}"
                )
