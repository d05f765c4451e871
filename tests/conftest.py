"""Shared fixtures: deterministic provider fakes and a temporary store."""
import hashlib
import json
from typing import List

import numpy as np
import pytest

from proofrag.rag.embedder import Embedder
from proofrag.rag.store_faiss import FAISSVectorStore
from proofrag.retry import RetryConfig

DIMENSION = 8


def fake_vector(text: str, dimension: int = DIMENSION) -> List[float]:
    """Deterministic pseudo-random vector derived from the text."""
    seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:4], "big")
    rng = np.random.default_rng(seed)
    return rng.normal(size=dimension).tolist()


class FakeEmbeddingClient:
    """Stands in for OllamaClient.embed; records every batch it receives."""

    def __init__(self, dimension: int = DIMENSION):
        self.dimension = dimension
        self.batches: List[List[str]] = []

    async def embed(self, texts, model=None):
        self.batches.append(list(texts))
        return [fake_vector(t, self.dimension) for t in texts]


class FakeGenerator:
    """Returns scripted responses in order; exceptions in the script are raised."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.responses:
            raise AssertionError("FakeGenerator ran out of scripted responses")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


def no_wait_retry(max_attempts: int = 3) -> RetryConfig:
    return RetryConfig(max_attempts=max_attempts, initial_delay=0.0, max_delay=0.0, jitter=False)


VALID_STEPS = [
    {
        "id": "A1",
        "type": "assumption",
        "derivation": "A |≡ A ↔Kab B",
        "reason": "A and B share the long-term key Kab",
        "rules": [],
    },
    {
        "id": "G1",
        "type": "goal",
        "derivation": "B |≡ A |≡ Na",
        "reason": "B should believe A recently sent Na",
        "rules": [],
    },
    {
        "id": "H1",
        "type": "hypothesis",
        "derivation": "B ⊳ {Na}Kab",
        "reason": "B receives message 2",
        "rules": [],
    },
    {
        "id": "D1",
        "type": "derivation",
        "derivation": "B |≡ A |~ Na",
        "reason": "Only A and B hold Kab",
        "rules": ["SAA"],
        "dependencies": ["A1", "H1"],
    },
]


@pytest.fixture
def valid_steps():
    return [dict(step) for step in VALID_STEPS]


@pytest.fixture
def valid_response(valid_steps):
    """A model response with prose around a fenced JSON proof."""
    return "Here is the proof:\n```json\n" + json.dumps(valid_steps, ensure_ascii=False) + "\n```\nDone."


@pytest.fixture
def embedding_client():
    return FakeEmbeddingClient()


@pytest.fixture
def embedder(embedding_client):
    return Embedder(
        embedding_client,
        model="fake-embed",
        dimension=DIMENSION,
        batch_size=4,
        max_concurrency=2,
        retry_config=no_wait_retry(),
    )


@pytest.fixture
def store(tmp_path):
    store = FAISSVectorStore(index_dir=tmp_path, dimension=DIMENSION, embedding_model="fake-embed")
    store.init_or_load()
    return store
