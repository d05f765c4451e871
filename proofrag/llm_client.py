"""Ollama API client wrapper with error classification.

HTTP and transport failures are translated into the provider error
taxonomy: anything worth retrying becomes ``ProviderTransientError``,
everything else ``ProviderFatalError``.
"""
from typing import Dict, List, Optional

import httpx
import structlog

from proofrag import config
from proofrag.errors import ProviderFatalError, ProviderTransientError

logger = structlog.get_logger()

TRANSIENT_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


def _classify_status(response: httpx.Response, operation: str) -> None:
    """Raise the provider error matching a non-2xx response."""
    if response.is_success:
        return

    status = response.status_code
    try:
        body = response.json()
    except ValueError:
        body = None
    detail = body.get("error", response.text) if isinstance(body, dict) else response.text

    message = f"Ollama {operation} returned HTTP {status}: {detail}"
    if status in TRANSIENT_STATUS_CODES:
        raise ProviderTransientError(message, status_code=status)
    raise ProviderFatalError(message, status_code=status)


class OllamaClient:
    """Async client for interacting with Ollama API."""

    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Ollama client.

        Args:
            base_url: Ollama API base URL (defaults to config.OLLAMA_BASE_URL)
            timeout: Request timeout in seconds (defaults to config.OLLAMA_TIMEOUT)
            api_key: Bearer token for proxied deployments (defaults to config.OLLAMA_API_KEY)
            transport: Optional httpx transport, used by tests
        """
        self.base_url = (base_url or config.OLLAMA_BASE_URL).rstrip("/")
        self.timeout = timeout or config.OLLAMA_TIMEOUT
        self.api_key = api_key if api_key is not None else config.OLLAMA_API_KEY
        self._transport = transport

    def _client(self, timeout: float = None) -> httpx.AsyncClient:
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or self.timeout,
            headers=headers,
            transport=self._transport,
        )

    async def _post(self, path: str, payload: Dict, operation: str) -> Dict:
        try:
            async with self._client() as client:
                response = await client.post(path, json=payload)
        except httpx.TimeoutException as e:
            logger.error("ollama_timeout", operation=operation, error=str(e))
            raise ProviderTransientError(f"Ollama {operation} timed out: {e}") from e
        except httpx.TransportError as e:
            logger.error("ollama_connection_error", operation=operation, error=str(e), base_url=self.base_url)
            raise ProviderTransientError(f"Ollama {operation} connection failed: {e}") from e

        try:
            _classify_status(response, operation)
        except (ProviderTransientError, ProviderFatalError) as e:
            logger.error("ollama_http_error", operation=operation, status_code=e.status_code, error=e.message)
            raise

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderFatalError(f"Ollama {operation} returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ProviderFatalError(f"Ollama {operation} returned an unexpected body")
        return data

    async def chat(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> Dict:
        """Send a non-streaming chat completion request to Ollama.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model to use (defaults to config.CHAT_MODEL)
            temperature: Sampling temperature (0.0-2.0)
            max_tokens: Upper bound on generated tokens (Ollama ``num_predict``)

        Returns:
            Response dict with 'message' containing 'content'

        Raises:
            ProviderTransientError: Timeout, connection failure, 429 or 5xx
            ProviderFatalError: Any other error response
        """
        model = model or config.CHAT_MODEL

        payload = {
            "model": model,
            "messages": messages,
            "stream": False,
        }

        options = {}
        if temperature is not None:
            options["temperature"] = temperature
        if max_tokens is not None:
            options["num_predict"] = max_tokens
        if options:
            payload["options"] = options

        logger.info(
            "ollama_chat_request",
            model=model,
            message_count=len(messages),
        )

        data = await self._post("/api/chat", payload, "chat")

        logger.info(
            "ollama_chat_response",
            model=model,
            response_length=len(data.get("message", {}).get("content", "")),
        )

        return data

    async def embed(self, texts: List[str], model: str = None) -> List[List[float]]:
        """Generate embeddings for a batch of texts.

        Args:
            texts: Texts to embed
            model: Model to use (defaults to config.EMBEDDING_MODEL)

        Returns:
            One embedding per input text, in input order

        Raises:
            ProviderTransientError: Timeout, connection failure, 429 or 5xx
            ProviderFatalError: Any other error response or a malformed body
        """
        model = model or config.EMBEDDING_MODEL

        logger.debug(
            "ollama_embedding_request",
            model=model,
            batch_size=len(texts),
        )

        data = await self._post("/api/embed", {"model": model, "input": texts}, "embed")
        embeddings = data.get("embeddings")

        if not isinstance(embeddings, list) or len(embeddings) != len(texts):
            raise ProviderFatalError(
                f"Ollama embed returned {len(embeddings) if isinstance(embeddings, list) else 'no'} "
                f"embeddings for {len(texts)} inputs"
            )

        logger.debug(
            "ollama_embedding_response",
            model=model,
            dimension=len(embeddings[0]) if embeddings else 0,
        )

        return embeddings

    async def list_models(self) -> List[str]:
        """List all available Ollama models.

        Returns:
            List of model names

        Raises:
            ProviderTransientError: If Ollama is unreachable
            ProviderFatalError: On error responses
        """
        try:
            async with self._client(timeout=5.0) as client:
                response = await client.get("/api/tags")
        except httpx.HTTPError as e:
            logger.error("ollama_list_models_error", error=str(e))
            raise ProviderTransientError(f"Ollama is unreachable: {e}") from e

        _classify_status(response, "tags")
        return [m["name"] for m in response.json().get("models", [])]
