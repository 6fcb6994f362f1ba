# src/infrastructure/vector_store.py

from typing import Dict, List, Optional, Sequence

from src.domain.interfaces import ChunkStorePort
from src.domain.models import Chunk


class InMemoryChunkStore(ChunkStorePort):
    """
    Process-local chunk store. Keeps chunks in insertion order; a replace
    builds the new list first and swaps it in with one assignment.
    """

    def __init__(self):
        self._chunks: List[Chunk] = []
        self._indexed: Dict[str, int] = {}

    def replace_document_chunks(self, document_id: str, chunks: List[Chunk]) -> None:
        missing = [c.chunk_id for c in chunks if c.embedding is None]
        if missing:
            raise ValueError(f"Chunks missing embeddings: {missing[:5]}")

        kept = [c for c in self._chunks if c.document_id != document_id]
        self._chunks = kept + list(chunks)
        self._indexed[document_id] = len(chunks)
        print(f"[VectorStore] Stored {len(chunks)} chunks for '{document_id}'. "
              f"Total: {len(self._chunks)}")

    def delete_document(self, document_id: str) -> None:
        self._chunks = [c for c in self._chunks if c.document_id != document_id]
        self._indexed.pop(document_id, None)

    def load_chunks(self, document_ids: Optional[Sequence[str]] = None) -> List[Chunk]:
        if not document_ids:
            return list(self._chunks)
        wanted = set(document_ids)
        return [c for c in self._chunks if c.document_id in wanted]

    def count(self, document_id: Optional[str] = None) -> int:
        if document_id is None:
            return len(self._chunks)
        return sum(1 for c in self._chunks if c.document_id == document_id)

    def get_document_stats(self) -> List[dict]:
        return [{"document_id": name, "count": count} for name, count in sorted(self._indexed.items())]
