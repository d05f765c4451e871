#!/usr/bin/env python
"""Ingest verification exemplars from a directory into the vector store.

Usage:
    python scripts/ingest.py                         # Add exemplars from EXEMPLARS_DIR
    python scripts/ingest.py --rebuild               # Clear the store first
    python scripts/ingest.py --type ban_verification path/to/ban
"""
import argparse
import asyncio
import sys
from pathlib import Path
from datetime import datetime

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from proofrag import config
from proofrag.errors import IngestError, ProofRAGError
from proofrag.main import configure_logging
from proofrag.models import DocumentType
from proofrag.orchestrator import Orchestrator
from proofrag.rag.ingest import Upload, discover_documents
import structlog

logger = structlog.get_logger()


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.start_time = None

    def start(self, message: str):
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def update(self, current: int, total: int, file_path: Path):
        percentage = (current / total) * 100 if total > 0 else 0
        bar_length = 40
        filled = int(bar_length * current / total) if total > 0 else 0
        bar = "█" * filled + "░" * (bar_length - filled)

        print(
            f"\r  [{bar}] {percentage:5.1f}% ({current}/{total}) {file_path.name[:30]:<30}",
            end="",
            flush=True,
        )

        if self.verbose:
            print()

    def finish(self, stats: dict, index_dir: Path):
        print("\n")
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()

        print(f"{'=' * 60}")
        print("  Ingest Complete!")
        print(f"{'=' * 60}\n")
        print(f"  Files ingested:  {stats['files_processed']}")
        print(f"  Files failed:    {stats['files_failed']}")
        print(f"  Chunks stored:   {stats['chunks_processed']}")
        print(f"  Time elapsed:    {elapsed_seconds:.1f}s")

        if stats["chunks_processed"] > 0 and elapsed_seconds > 0:
            rate = stats["chunks_processed"] / elapsed_seconds
            print(f"  Ingest rate:     {rate:.1f} chunks/sec")

        print(f"\n{'=' * 60}\n")

        if stats["files_failed"] > 0:
            print(f"Warning: {stats['files_failed']} file(s) failed to ingest.")
            print("   Check logs for details.\n")

        if stats["files_processed"] > 0:
            print(f"Index ready at: {index_dir}/vectors.index\n")


async def ingest_directory(
    orchestrator: Orchestrator,
    paths: list,
    document_type: str,
    progress: ProgressReporter,
) -> dict:
    """Ingest files one at a time so one bad file doesn't stop the rest.

    A storage failure still stops the run, since later inserts would fail too.
    """
    stats = {"files_processed": 0, "files_failed": 0, "chunks_processed": 0}

    for i, path in enumerate(paths, start=1):
        progress.update(i, len(paths), path)
        upload = Upload(filename=path.name, data=path.read_bytes())

        try:
            result = await orchestrator.ingest([upload], document_type)
        except IngestError:
            raise
        except ProofRAGError as e:
            logger.error("file_ingest_failed", path=str(path), error=e.message, kind=e.kind)
            stats["files_failed"] += 1
            continue

        stats["files_processed"] += 1
        stats["chunks_processed"] += result.chunks_processed

    return stats


async def main():
    """Main entry point for the ingest script."""
    parser = argparse.ArgumentParser(
        description="Ingest verification exemplars into the vector store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/ingest.py                          # Add exemplars
  python scripts/ingest.py --rebuild                # Rebuild from scratch
  python scripts/ingest.py --type ban_verification ./ban
        """,
    )

    parser.add_argument(
        "directory",
        type=Path,
        nargs="?",
        default=None,
        help=f"Exemplar directory (default: {config.EXEMPLARS_DIR})",
    )

    parser.add_argument(
        "--type",
        choices=[t.value for t in DocumentType],
        default=DocumentType.SVO_VERIFICATION.value,
        help="Document type stored with every chunk",
    )

    parser.add_argument(
        "--rebuild",
        action="store_true",
        help="Clear the existing index and database first",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show verbose progress output",
    )

    args = parser.parse_args()
    configure_logging()

    directory = args.directory or config.EXEMPLARS_DIR
    progress = ProgressReporter(verbose=args.verbose)

    try:
        print("\nConfiguration:")
        print(f"   Exemplar directory: {directory}")
        print(f"   Document type:      {args.type}")
        print(f"   Embedding model:    {config.EMBEDDING_MODEL}")
        print(f"   Chunk size:         {config.CHUNK_SIZE} chars")
        print(f"   Chunk overlap:      {config.CHUNK_OVERLAP} chars")

        paths = discover_documents(directory)

        orchestrator = Orchestrator.from_config()
        if args.rebuild:
            print("\nRebuild mode: Will clear existing index and database!")
            print("   Press Ctrl+C within 3 seconds to cancel...")
            await asyncio.sleep(3)
            orchestrator.vector_store.rebuild_index()
        else:
            orchestrator.startup()

        action = "Rebuilding" if args.rebuild else "Ingesting"
        progress.start(f"{action} {len(paths)} exemplar file(s)")

        stats = await ingest_directory(orchestrator, paths, args.type, progress)
        progress.finish(stats, orchestrator.vector_store.index_dir)

        if stats["files_failed"] > 0:
            sys.exit(1)

    except KeyboardInterrupt:
        print("\n\nIngest cancelled by user.\n")
        sys.exit(1)

    except FileNotFoundError as e:
        print(f"\nError: {e}\n")
        sys.exit(1)

    except IngestError as e:
        print(f"\nError: {e.message} ({e.chunks_processed} chunk(s) stored)\n")
        sys.exit(1)

    except Exception as e:
        print(f"\nError: {e}\n")
        logger.error("ingest_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
