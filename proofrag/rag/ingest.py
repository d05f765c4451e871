"""Ingest pipeline for verification exemplar documents.

Orchestrates:
- Upload decoding and frontmatter parsing
- Text chunking
- Embedding generation (bounded parallelism)
- Row and vector storage, stopping at the first storage failure
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
import structlog

from proofrag.errors import IngestError, InputError, StorageError
from proofrag.models import ChunkMetadata, DocumentType
from proofrag.rag.chunker import TextChunk, TextChunker
from proofrag.rag.document_parser import DocumentParser, ParsedDocument
from proofrag.rag.embedder import Embedder
from proofrag.rag.store_faiss import FAISSVectorStore

logger = structlog.get_logger()

DOCUMENT_SUFFIXES = (".md", ".markdown", ".txt")


@dataclass
class Upload:
    """A single uploaded file."""

    filename: str
    data: bytes


@dataclass
class IngestResult:
    documents_processed: int
    chunks_processed: int

    @property
    def message(self) -> str:
        return (
            f"Ingested {self.documents_processed} document(s) "
            f"into {self.chunks_processed} chunk(s)"
        )


@dataclass
class _Progress:
    documents: int = 0
    chunks: int = 0


def parse_document_type(value: Any) -> DocumentType:
    """Validate a ``type`` tag from a request."""
    try:
        return DocumentType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in DocumentType)
        raise InputError(f"Invalid document type {value!r}; expected one of: {allowed}") from None


class IngestPipeline:
    """Pipeline for ingesting uploaded documents into the vector store."""

    def __init__(
        self,
        embedder: Embedder,
        vector_store: FAISSVectorStore,
        chunker: Optional[TextChunker] = None,
        parser: Optional[DocumentParser] = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            embedder: Embedder for chunk texts
            vector_store: Destination store
            chunker: Text chunker (default sizes from config)
            parser: Document parser
        """
        self.embedder = embedder
        self.vector_store = vector_store
        self.chunker = chunker or TextChunker()
        self.parser = parser or DocumentParser()

        logger.info(
            "ingest_pipeline_initialized",
            chunk_size=self.chunker.chunk_size,
            chunk_overlap=self.chunker.chunk_overlap,
        )

    async def ingest(
        self,
        uploads: Sequence[Upload],
        document_type: Any,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> IngestResult:
        """Ingest uploaded documents.

        All uploads are decoded before anything is stored, so an input
        error never leaves a partial ingest behind.

        Args:
            uploads: Files to ingest
            document_type: One of the DocumentType values
            attributes: Extra metadata attributes stored with every chunk

        Returns:
            IngestResult with document and chunk counts

        Raises:
            InputError: No files, an invalid type or an undecodable file
            IngestError: A storage or index save failure; carries the chunks
                stored so far
            ProviderFatalError: Embedding failed
        """
        if not uploads:
            raise InputError("No files provided")

        doc_type = parse_document_type(document_type)
        documents = [self.parser.parse_bytes(u.filename, u.data) for u in uploads]

        logger.info(
            "ingest_started",
            document_count=len(documents),
            document_type=doc_type.value,
        )

        progress = _Progress()
        completed = False
        try:
            for document in documents:
                await self._ingest_document(document, doc_type, attributes or {}, progress)
            completed = True
        finally:
            # Persist whatever reached the store, including partial ingests
            if progress.chunks:
                self._save_index(progress, raise_on_failure=completed)

        logger.info(
            "ingest_completed",
            documents_processed=progress.documents,
            chunks_processed=progress.chunks,
        )

        return IngestResult(
            documents_processed=progress.documents,
            chunks_processed=progress.chunks,
        )

    def _save_index(self, progress: _Progress, raise_on_failure: bool) -> None:
        """Save the index; a failure never hides the chunk count.

        While another error is propagating the save failure is only logged.
        The rows already hold every vector, so the index is restored from
        them on the next start.
        """
        try:
            self.vector_store.save_index()
        except StorageError as e:
            logger.error(
                "index_save_failed",
                chunks_processed=progress.chunks,
                error=e.message,
            )
            if raise_on_failure:
                raise IngestError(
                    f"Stored {progress.chunks} chunk(s) but saving the index failed: {e.message}",
                    chunks_processed=progress.chunks,
                ) from e

    async def _ingest_document(
        self,
        document: ParsedDocument,
        doc_type: DocumentType,
        attributes: Dict[str, Any],
        progress: _Progress,
    ) -> None:
        chunks = self.chunker.chunk_text(document.text)
        chunks = [c for c in chunks if c.content.strip()]

        if not chunks:
            logger.warning("no_chunks_created", filename=document.filename)
            progress.documents += 1
            return

        embeddings = await self.embedder.embed_batch([c.content for c in chunks])

        for chunk, embedding in zip(chunks, embeddings):
            metadata = self._chunk_metadata(document, chunk, attributes)
            try:
                await self.vector_store.insert(
                    content=chunk.content,
                    doc_type=doc_type.value,
                    metadata=metadata,
                    embedding=embedding,
                )
            except StorageError as e:
                logger.error(
                    "ingest_stopped_on_storage_error",
                    filename=document.filename,
                    chunk_index=chunk.chunk_index,
                    chunks_processed=progress.chunks,
                    error=e.message,
                )
                raise IngestError(
                    f"Storage failed at {document.filename} chunk {chunk.chunk_index}: {e.message}",
                    chunks_processed=progress.chunks,
                ) from e
            progress.chunks += 1

        progress.documents += 1

        logger.info(
            "document_ingested",
            filename=document.filename,
            chunks_created=len(chunks),
        )

    def _chunk_metadata(
        self,
        document: ParsedDocument,
        chunk: TextChunk,
        attributes: Dict[str, Any],
    ) -> ChunkMetadata:
        heading_context = self.parser.get_heading_context(document.headings, chunk.char_start)
        return ChunkMetadata(
            filename=document.filename,
            position=chunk.chunk_index,
            char_start=chunk.char_start,
            char_end=chunk.char_end,
            heading_context=heading_context or None,
            attributes={**document.frontmatter, **attributes},
        )


def discover_documents(directory: Path) -> List[Path]:
    """Find ingestible text documents under a directory, sorted by path.

    Raises:
        FileNotFoundError: If the directory doesn't exist
    """
    if not directory.exists():
        raise FileNotFoundError(f"Directory not found: {directory}")

    paths = sorted(
        p for p in directory.rglob("*")
        if p.is_file() and p.suffix.lower() in DOCUMENT_SUFFIXES
    )

    logger.info("documents_discovered", count=len(paths), directory=str(directory))

    return paths
