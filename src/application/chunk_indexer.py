# src/application/chunk_indexer.py

from typing import List, Sequence

import numpy as np

from src.domain.errors import IndexingError, InvalidInputError
from src.domain.interfaces import ChunkStorePort, EmbeddingPort
from src.domain.models import Chunk, PageText


CHUNK_SIZE = 1200
EMBEDDING_BATCH_SIZE = 64


def split_page(text: str, page: int, document_id: str, chunk_size: int = CHUNK_SIZE) -> List[Chunk]:
    """
    Split one page into consecutive, non-overlapping spans of at most
    `chunk_size` characters. Whitespace-only pages yield nothing.
    Joining the chunk texts in index order gives back `text` unchanged.
    """
    if not text or not text.strip():
        return []

    return [
        Chunk(
            document_id=document_id,
            page_number=page,
            chunk_index=chunk_index,
            text=text[start : start + chunk_size],
        )
        for chunk_index, start in enumerate(range(0, len(text), chunk_size))
    ]


class ChunkIndexer:
    """
    Builds the semantic index of one document.

    Every call is a full replacement: the new chunks are embedded first and
    only then swapped in for the old ones in a single store operation, so a
    failing embedding batch leaves the previous index untouched.

    Not re-entrant per document: callers run at most one index() per
    document id at a time.
    """

    def __init__(
        self,
        embedding_engine: EmbeddingPort,
        chunk_store: ChunkStorePort,
        chunk_size: int = CHUNK_SIZE,
        batch_size: int = EMBEDDING_BATCH_SIZE,
    ):
        self._embedding_engine = embedding_engine
        self._chunk_store = chunk_store
        self._chunk_size = chunk_size
        self._batch_size = batch_size

    def index(self, document_id: str, pages: Sequence[PageText]) -> int:
        """Index `pages` for `document_id`. Returns the number of chunks stored."""
        self._validate(document_id, pages)

        chunks: List[Chunk] = []
        for page in pages:
            chunks.extend(split_page(page.text, page.page, document_id, self._chunk_size))

        if not chunks:
            print(f"[ChunkIndexer] '{document_id}' has no text to index.")
            self._chunk_store.replace_document_chunks(document_id, [])
            return 0

        embeddings = self._embed_in_batches([c.text for c in chunks])
        for chunk, embedding in zip(chunks, embeddings):
            chunk.embedding = embedding

        try:
            self._chunk_store.replace_document_chunks(document_id, chunks)
        except Exception as error:
            raise IndexingError(f"Failed to persist chunks for '{document_id}': {error}") from error

        print(f"[ChunkIndexer] ✓ Indexed '{document_id}': {len(chunks)} chunks.")
        return len(chunks)

    # ─── Private ──────────────────────────────────────────────────────────────

    def _embed_in_batches(self, texts: List[str]) -> List[np.ndarray]:
        embeddings: List[np.ndarray] = []
        total_batches = (len(texts) + self._batch_size - 1) // self._batch_size

        for batch_number, start in enumerate(range(0, len(texts), self._batch_size), start=1):
            batch = texts[start : start + self._batch_size]
            try:
                vectors = self._embedding_engine.encode(batch)
            except Exception as error:
                raise IndexingError(
                    f"Embedding batch {batch_number}/{total_batches} failed: {error}"
                ) from error

            if len(vectors) != len(batch):
                raise IndexingError(
                    f"Embedding batch {batch_number}/{total_batches} returned "
                    f"{len(vectors)} vectors for {len(batch)} inputs."
                )
            embeddings.extend(np.asarray(v, dtype=np.float32) for v in vectors)

        return embeddings

    @staticmethod
    def _validate(document_id: str, pages: Sequence[PageText]) -> None:
        if not document_id:
            raise InvalidInputError("Expected a document id.")
        if not isinstance(pages, (list, tuple)):
            raise InvalidInputError("Expected pages: [{page, text}, ...]")
        missing = [i for i, p in enumerate(pages) if getattr(p, "page", None) is None]
        if missing:
            raise InvalidInputError(f"Pages missing a page number at positions: {missing[:5]}")
