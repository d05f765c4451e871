"""Retriever for verification exemplars.

Handles:
- Query embedding generation
- A single similarity query against the vector store
- Context formatting for prompt assembly
"""
from typing import Any, Dict, List, Optional
import structlog

from proofrag import config
from proofrag.models import SearchResult, SemanticQuery
from proofrag.rag.embedder import Embedder
from proofrag.rag.store_faiss import FAISSVectorStore

logger = structlog.get_logger()


class Retriever:
    """Semantic retriever for the verify pipeline.

    The result count is the primary control: ``min_similarity`` defaults to
    a permissive 0.0 and ``top_k`` caps the exemplars handed to the prompt.
    """

    def __init__(
        self,
        embedder: Embedder,
        vector_store: FAISSVectorStore,
        query: str = None,
        top_k: int = None,
        min_similarity: float = None,
        filters: Optional[Dict[str, Any]] = None,
    ):
        """Initialize the retriever.

        Args:
            embedder: Embedder used for the query text
            vector_store: Store to search
            query: Synthesized task-context query (default from config)
            top_k: Number of results to retrieve (default from config)
            min_similarity: Similarity threshold (default from config)
            filters: Exact-match metadata filter applied to every query
        """
        self.embedder = embedder
        self.vector_store = vector_store
        self.query = query or config.RETRIEVAL_QUERY
        self.top_k = top_k or config.RETRIEVAL_TOP_K
        self.min_similarity = (
            config.RETRIEVAL_MIN_SIMILARITY if min_similarity is None else min_similarity
        )
        self.filters = dict(filters or {})

        logger.debug(
            "retriever_initialized",
            top_k=self.top_k,
            min_similarity=self.min_similarity,
            filters=self.filters,
        )

    async def retrieve(self, query: Optional[str] = None) -> List[SearchResult]:
        """Retrieve exemplars for the task context.

        Args:
            query: Query text; the configured synthesized query when omitted

        Returns:
            Ranked SearchResult list, possibly empty
        """
        return await self.retrieve_semantic(
            SemanticQuery(query=query or self.query, filters=self.filters, top_k=self.top_k)
        )

    async def retrieve_semantic(self, semantic_query: SemanticQuery) -> List[SearchResult]:
        """Run an explicit semantic query."""
        logger.info(
            "retrieval_started",
            query_length=len(semantic_query.query),
            top_k=semantic_query.top_k,
        )

        query_embedding = await self.embedder.embed(semantic_query.query)
        results = await self.vector_store.query(
            query_embedding,
            top_k=semantic_query.top_k,
            filters=semantic_query.filters,
            min_similarity=self.min_similarity,
        )

        logger.info(
            "retrieval_completed",
            results_returned=len(results),
            top_similarity=results[0].similarity if results else None,
            sources=[r.source for r in results],
        )

        return results


def format_exemplars(results: List[SearchResult]) -> List[str]:
    """Exemplar texts for the prompt, in rank order."""
    return [result.document.content for result in results]
