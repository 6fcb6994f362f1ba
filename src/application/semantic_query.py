# src/application/semantic_query.py

from typing import List, Optional, Sequence

import numpy as np

from src.domain.interfaces import ChunkStorePort, EmbeddingPort
from src.domain.models import SemanticHit


DEFAULT_TOP_K = 20
COSINE_EPSILON = 1e-12


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """dot(a, b) / (|a| * |b| + ε); zero vectors score 0 instead of NaN."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    return float(np.dot(a, b) / (np.linalg.norm(a) * np.linalg.norm(b) + COSINE_EPSILON))


class SemanticQueryEngine:
    """
    Ranks every persisted chunk against a free-text query by cosine similarity.

    Unlike the vector stores, no normalization is assumed on stored
    embeddings; scores are computed exactly as cosine with an epsilon.
    """

    def __init__(self, embedding_engine: EmbeddingPort, chunk_store: ChunkStorePort):
        self._embedding_engine = embedding_engine
        self._chunk_store = chunk_store

    def query(
        self,
        text: str,
        document_ids: Optional[Sequence[str]] = None,
        top_k: int = DEFAULT_TOP_K,
    ) -> List[SemanticHit]:
        text = (text or "").strip()
        if not text:
            raise ValueError("Query cannot be empty.")

        query_embedding = np.asarray(self._embedding_engine.encode_single(text), dtype=np.float64)

        chunks = self._chunk_store.load_chunks(document_ids or None)
        if not chunks:
            return []

        matrix = np.stack([np.asarray(c.embedding, dtype=np.float64) for c in chunks])
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query_embedding)
        scores = (matrix @ query_embedding) / (norms + COSINE_EPSILON)

        # sorted() is stable, so equal scores keep store order
        ranked = sorted(range(len(chunks)), key=lambda i: scores[i], reverse=True)[:top_k]

        return [
            SemanticHit(
                document_id=chunks[i].document_id,
                page_number=chunks[i].page_number,
                text=chunks[i].text,
                score=float(scores[i]),
            )
            for i in ranked
        ]
