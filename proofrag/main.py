"""Quart application exposing the ingest and verify endpoints."""
import logging
from typing import Optional

from quart import Quart, request, jsonify
import structlog
from werkzeug.exceptions import HTTPException

from proofrag import config
from proofrag.errors import (
    IngestError,
    InputError,
    ProofRAGError,
    ProviderError,
    RequestTimeoutError,
    ValidationError,
)
from proofrag.orchestrator import Orchestrator
from proofrag.rag.ingest import Upload


def configure_logging() -> None:
    """Configure structured JSON logging over stdlib logging."""
    logging.basicConfig(format="%(message)s", level=config.LOG_LEVEL.upper())
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


configure_logging()

logger = structlog.get_logger()


def _status_for(error: ProofRAGError) -> int:
    if isinstance(error, InputError):
        return 400
    if isinstance(error, ValidationError):
        return 422
    if isinstance(error, RequestTimeoutError):
        return 504
    if isinstance(error, ProviderError):
        return 502
    return 500


def _error_response(error: ProofRAGError):
    return jsonify(error.to_dict()), _status_for(error)


def create_app(orchestrator: Optional[Orchestrator] = None) -> Quart:
    """Build the Quart app around an orchestrator (production wiring by default)."""
    app = Quart(__name__)
    app.config["MAX_CONTENT_LENGTH"] = config.MAX_UPLOAD_BYTES
    orchestrator = orchestrator or Orchestrator.from_config()
    app.config["ORCHESTRATOR"] = orchestrator

    @app.before_serving
    async def startup():
        """Load or create the vector index before accepting requests."""
        orchestrator.startup()
        logger.info("app_started", store=orchestrator.vector_store.get_stats())

    @app.route("/api/v1/train", methods=["POST"])
    async def train():
        """Ingest uploaded exemplar documents.

        Expects multipart form data:
            files: one or more text/markdown files
            type: "svo_verification" or "ban_verification"

        Returns JSON:
        {
            "message": "...",
            "chunksProcessed": 12
        }
        """
        try:
            form = await request.form
            files = await request.files

            uploads = [
                Upload(filename=f.filename or f"upload-{i}", data=f.read())
                for i, f in enumerate(files.getlist("files"))
            ]

            logger.info(
                "train_request_received",
                file_count=len(uploads),
                document_type=form.get("type"),
            )

            result = await orchestrator.ingest(uploads, form.get("type"))

            return jsonify({
                "message": result.message,
                "chunksProcessed": result.chunks_processed,
            })

        except IngestError as e:
            logger.error("train_partial_failure", error=e.message, chunks_processed=e.chunks_processed)
            return _error_response(e)
        except ProofRAGError as e:
            logger.error("train_failed", error=e.message, kind=e.kind)
            return _error_response(e)
        except HTTPException:
            raise
        except Exception as e:
            logger.error("train_endpoint_error", error=str(e), error_type=type(e).__name__)
            return jsonify({"error": "An error occurred processing your request."}), 500

    @app.route("/api/v1/verify/svo", methods=["POST"])
    async def verify_svo():
        """Generate a validated SVO proof for a protocol diagram.

        Expects JSON body:
        {
            "diagram": "sequenceDiagram ..."   // "mermaidDiagram" also accepted
        }

        Returns a JSON array of verification steps.
        """
        try:
            data = await request.get_json(silent=True)
            if not isinstance(data, dict):
                raise InputError("Request body must be a JSON object")

            diagram = data.get("diagram", data.get("mermaidDiagram"))
            proof = await orchestrator.verify(diagram)

            return jsonify(proof.to_list())

        except ProofRAGError as e:
            logger.error("verify_failed", error=e.message, kind=e.kind)
            return _error_response(e)
        except HTTPException:
            raise
        except Exception as e:
            logger.error("verify_endpoint_error", error=str(e), error_type=type(e).__name__)
            return jsonify({"error": "Failed to verify protocol"}), 500

    @app.route("/health/ready")
    async def health_ready():
        """Readiness probe - provider reachable, models installed, store stats."""
        checks = await orchestrator.readiness()
        status_code = 200 if checks["status"] == "healthy" else 503
        return jsonify(checks), status_code

    @app.route("/health/live")
    async def health_live():
        """Liveness probe - check if app is running."""
        return jsonify({"status": "alive"}), 200

    @app.errorhandler(404)
    async def not_found(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(413)
    async def too_large(error):
        return jsonify({"error": f"Upload exceeds {config.MAX_UPLOAD_BYTES} bytes", "kind": "input_error"}), 413

    return app


if __name__ == "__main__":
    # For development - use hypercorn in production
    create_app().run(host="0.0.0.0", port=5000, debug=True)
