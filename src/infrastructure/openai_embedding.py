# src/infrastructure/openai_embedding.py

import os
from typing import List, Optional

import numpy as np
from openai import OpenAI
from tenacity import retry, stop_after_attempt, wait_exponential

from src.domain.errors import ConfigurationError, ExternalServiceError
from src.domain.interfaces import EmbeddingPort


DEFAULT_OPENAI_MODEL = "text-embedding-3-small"


class OpenAIEmbeddingEngine(EmbeddingPort):
    """
    Hosted embeddings. The caller decides batch sizes; each encode()
    call is one API request (retried on transient failures).
    """

    def __init__(
        self,
        model_name: str = DEFAULT_OPENAI_MODEL,
        api_key: Optional[str] = None,
        client: Optional[OpenAI] = None,
    ):
        self._model_name = model_name
        api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if client is None and not api_key:
            raise ConfigurationError(
                "OPENAI_API_KEY is not set. Semantic search needs an embedding "
                "service credential; keyword search still works without it."
            )
        self._client = client or OpenAI(api_key=api_key)

    @property
    def model_name(self) -> str:
        return self._model_name

    def encode(self, texts: List[str]) -> np.ndarray:
        if not texts:
            return np.zeros((0, 0), dtype=np.float32)
        try:
            vectors = self._embed_batch(list(texts))
        except Exception as error:
            raise ExternalServiceError(f"OpenAI embedding request failed: {error}") from error
        return np.asarray(vectors, dtype=np.float32)

    def encode_single(self, text: str) -> np.ndarray:
        return self.encode([text])[0]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _embed_batch(self, texts: List[str]) -> List[List[float]]:
        response = self._client.embeddings.create(
            model=self._model_name,
            input=texts,
        )
        # Sort by index to ensure correct order
        rows = sorted(response.data, key=lambda row: row.index)
        return [row.embedding for row in rows]
