"""Error taxonomy shared by the ingest and verify pipelines.

Every externally visible failure carries a human-readable message and a
stable ``kind`` string that the HTTP layer maps to a status code.
"""
from typing import List, Optional


class ProofRAGError(Exception):
    """Base exception for all proofrag errors."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}


class InputError(ProofRAGError):
    """Missing or invalid request payload. Never retried."""

    kind = "input_error"


class ProviderError(ProofRAGError):
    """Error talking to the embedding or generation provider."""

    kind = "provider_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderTransientError(ProviderError):
    """Timeout, connection failure, rate limit or 5xx. Retried with backoff."""

    kind = "provider_transient"


class ProviderFatalError(ProviderError):
    """Authentication, quota, missing model or exhausted retries. Never retried."""

    kind = "provider_fatal"


class RequestTimeoutError(ProviderFatalError):
    """The caller-supplied deadline for a whole request expired."""

    kind = "timeout"


class OutputValidationError(ProofRAGError):
    """A single generation attempt produced an unusable proof.

    Subclasses drive the repair loop; they are not surfaced directly.
    """

    kind = "output_invalid"

    def __init__(self, message: str, problems: Optional[List[str]] = None):
        super().__init__(message)
        self.problems = problems or []

    def describe(self) -> str:
        """Render the failure for inclusion in a repair prompt."""
        if not self.problems:
            return self.message
        lines = [self.message] + [f"- {p}" for p in self.problems]
        return "\n".join(lines)


class ParseError(OutputValidationError):
    """The response holds no well-formed list of step records."""

    kind = "parse_error"


class SchemaValidationError(OutputValidationError):
    """A step record violates the step schema."""

    kind = "schema_error"


class ReferenceValidationError(OutputValidationError):
    """Step ids or dependency references are inconsistent."""

    kind = "reference_error"


class ValidationError(ProofRAGError):
    """Terminal failure once the repair budget is exhausted."""

    kind = "validation_error"

    def __init__(
        self,
        message: str,
        attempts: int,
        last_error: Optional[OutputValidationError] = None,
        trace: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error
        self.trace = trace or []

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["attempts"] = self.attempts
        if self.last_error is not None:
            data["cause"] = self.last_error.kind
            data["problems"] = self.last_error.problems
        return data


class StorageError(ProofRAGError):
    """Vector store persistence failure or dimension mismatch."""

    kind = "storage_error"


class IngestError(StorageError):
    """Ingest stopped at a storage failure; carries progress so far."""

    def __init__(self, message: str, chunks_processed: int):
        super().__init__(message)
        self.chunks_processed = chunks_processed

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["chunksProcessed"] = self.chunks_processed
        return data
