# src/infrastructure/embedding_engine.py
# model_name is a concrete property, not part of the abstract port

import os
import numpy as np
from typing import List, Optional
from sentence_transformers import SentenceTransformer

from src.domain.interfaces import EmbeddingPort


DEFAULT_MODEL_NAME = "all-MiniLM-L6-v2"


class SentenceTransformerEngine(EmbeddingPort):

    def __init__(self, model_name: str = DEFAULT_MODEL_NAME):
        print(f"[EmbeddingEngine] Loading model: {model_name} ...")
        self._model_name = model_name
        self._model = SentenceTransformer(model_name)
        print(f"[EmbeddingEngine] Model ready.")

    @property
    def model_name(self) -> str:
        """Used for chunk store fingerprinting."""
        return self._model_name

    def encode(self, texts: List[str]) -> np.ndarray:
        return self._model.encode(
            texts,
            convert_to_numpy=True,
            show_progress_bar=False,
            batch_size=32,
            normalize_embeddings=True,
        )

    def encode_single(self, text: str) -> np.ndarray:
        return self._model.encode(
            text,
            convert_to_numpy=True,
            normalize_embeddings=True,
        )


def create_embedding_engine(
    backend: Optional[str] = None,
    model_name: Optional[str] = None,
) -> EmbeddingPort:
    """
    Build the engine selected by EMBEDDING_BACKEND ("local" | "openai").
    Raises ConfigurationError when the OpenAI backend has no API key.
    """
    backend = (backend or os.environ.get("EMBEDDING_BACKEND", "local")).lower()
    model_name = model_name or os.environ.get("EMBEDDING_MODEL")

    if backend == "openai":
        from src.infrastructure.openai_embedding import OpenAIEmbeddingEngine, DEFAULT_OPENAI_MODEL
        return OpenAIEmbeddingEngine(model_name=model_name or DEFAULT_OPENAI_MODEL)
    if backend == "local":
        return SentenceTransformerEngine(model_name or DEFAULT_MODEL_NAME)
    raise ValueError(f"Unknown EMBEDDING_BACKEND '{backend}'. Use 'local' or 'openai'.")
