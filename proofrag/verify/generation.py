"""Generation adapter: prompt in, raw response text out."""
from typing import Optional

import structlog

from proofrag import config
from proofrag.errors import ProviderTransientError
from proofrag.llm_client import OllamaClient
from proofrag.retry import RetryConfig, retry_async

logger = structlog.get_logger()


class GenerationClient:
    """Sends prompts to the generative model. The response is opaque text."""

    def __init__(
        self,
        client: OllamaClient,
        model: str = None,
        temperature: float = None,
        max_tokens: int = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.client = client
        self.model = model or config.CHAT_MODEL
        self.temperature = config.GENERATION_TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens or config.GENERATION_MAX_TOKENS
        self.retry_config = retry_config or RetryConfig()

    async def _generate_once(self, prompt: str) -> str:
        response = await self.client.chat(
            [{"role": "user", "content": prompt}],
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        content = response.get("message", {}).get("content", "")
        if not content:
            raise ProviderTransientError("Empty response from generation model")
        return content

    async def generate(self, prompt: str) -> str:
        """Generate a response, retrying transient failures.

        Raises:
            ProviderFatalError: On a fatal error or once retries are exhausted
        """
        text = await retry_async(
            lambda: self._generate_once(prompt),
            self.retry_config,
            operation_name="generate",
        )
        logger.info("generation_completed", model=self.model, response_length=len(text))
        return text
