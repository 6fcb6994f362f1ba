# src/infrastructure/chroma_store.py

import time
import uuid
from pathlib import Path
from typing import List, Optional, Sequence

import chromadb
import numpy as np
from chromadb.config import Settings

from src.domain.errors import ExternalServiceError
from src.domain.interfaces import ChunkStorePort
from src.domain.models import Chunk


# ── Constants ─────────────────────────────────────────────────────────────────

MODEL_FINGERPRINT_KEY = "embedding_model_name"
COLLECTION_NAME       = "page_chunks"
MANIFEST_NAME         = "indexed_documents"
UPSERT_BATCH_SIZE     = 500


class ChromaChunkStore(ChunkStorePort):
    """
    Persistent chunk store on ChromaDB, keyed by (document, page, chunk).

    Replace-all without transactions:
        1. The new chunk set is added under a fresh `generation` tag
        2. Only when every batch landed are the older generations deleted
        3. A failed add or a failed delete of the older generations removes
           the new generation and re-raises; the previous generation stays
           the document's complete index

    A second collection, the manifest, holds one entry per indexed document
    with its chunk count, so a document that indexed to zero chunks is still
    known as indexed.

    Model fingerprinting: the embedding model name is kept in the collection
    metadata. Connecting with a different model drops both collections, since
    stored vectors from another model are not comparable.
    """

    def __init__(self, persist_directory: str, embedding_model_name: str):
        self._persist_directory    = persist_directory
        self._embedding_model_name = embedding_model_name

        path = Path(persist_directory)
        if path.exists() and not path.is_dir():
            raise RuntimeError(f"Failed to initialize ChromaDB: path '{persist_directory}' is a file.")
        path.mkdir(parents=True, exist_ok=True)

        try:
            self._client = chromadb.PersistentClient(
                path=persist_directory,
                settings=Settings(anonymized_telemetry=False),
            )
            self._collection = self._open_collection()
            self._manifest   = self._client.get_or_create_collection(name=MANIFEST_NAME)
        except Exception as error:
            raise RuntimeError(
                f"Failed to initialize ChromaDB at '{persist_directory}'.\n"
                f"The database may be locked by another process or corrupted.\n"
                f"Fix: close other running instances, or delete '{persist_directory}'.\n"
                f"Original error: {error}"
            ) from error

        stored_model = (self._collection.metadata or {}).get(MODEL_FINGERPRINT_KEY)
        if stored_model != self._embedding_model_name:
            print(
                f"[ChromaChunkStore] ⚠ Model mismatch detected!\n"
                f"  Stored : '{stored_model}'\n"
                f"  Current: '{self._embedding_model_name}'\n"
                f"  → Dropping stale chunks; documents will be re-indexed."
            )
            self._client.delete_collection(COLLECTION_NAME)
            self._client.delete_collection(MANIFEST_NAME)
            self._collection = self._open_collection()
            self._manifest   = self._client.get_or_create_collection(name=MANIFEST_NAME)

        print(
            f"[ChromaChunkStore] Connected to '{persist_directory}'. "
            f"Collection has {self._collection.count()} chunks."
        )

    # ─── ChunkStorePort ───────────────────────────────────────────────────────

    def replace_document_chunks(self, document_id: str, chunks: List[Chunk]) -> None:
        missing = [c.chunk_id for c in chunks if c.embedding is None]
        if missing:
            raise ValueError(f"Chunks missing embeddings: {missing[:5]}")

        if not chunks:
            self._collection.delete(where={"document_id": document_id})
            self._record_indexed(document_id, 0)
            return

        generation  = uuid.uuid4().hex
        indexed_at  = time.time_ns() // 1000

        ids        = [f"{c.chunk_id}:{generation}" for c in chunks]
        embeddings = [np.asarray(c.embedding, dtype=np.float32).tolist() for c in chunks]
        documents  = [c.text for c in chunks]
        metadatas  = [{
            "document_id": document_id,
            "page_number": c.page_number,
            "chunk_index": c.chunk_index,
            "generation":  generation,
            "indexed_at":  indexed_at,
            "position":    position,
        } for position, c in enumerate(chunks)]

        try:
            for start in range(0, len(chunks), UPSERT_BATCH_SIZE):
                self._collection.add(
                    ids        = ids       [start : start + UPSERT_BATCH_SIZE],
                    embeddings = embeddings[start : start + UPSERT_BATCH_SIZE],
                    documents  = documents [start : start + UPSERT_BATCH_SIZE],
                    metadatas  = metadatas [start : start + UPSERT_BATCH_SIZE],
                )
            self._collection.delete(where={
                "$and": [
                    {"document_id": document_id},
                    {"generation": {"$ne": generation}},
                ]
            })
        except Exception as error:
            self._discard_generation(generation)
            raise ExternalServiceError(
                f"Writing chunks for '{document_id}' failed; previous index kept. ({error})"
            ) from error

        self._record_indexed(document_id, len(chunks))
        print(f"[ChromaChunkStore] ✓ Replaced chunks of '{document_id}': {len(chunks)} stored.")

    def delete_document(self, document_id: str) -> None:
        self._collection.delete(where={"document_id": document_id})
        self._manifest.delete(ids=[document_id])

    def load_chunks(self, document_ids: Optional[Sequence[str]] = None) -> List[Chunk]:
        where = {"document_id": {"$in": list(document_ids)}} if document_ids else None
        results = self._collection.get(
            where   = where,
            include = ["documents", "metadatas", "embeddings"],
        )

        embeddings = results.get("embeddings")
        if embeddings is None:
            embeddings = []

        rows = sorted(
            zip(results["documents"], results["metadatas"], embeddings),
            key=lambda row: (row[1].get("indexed_at", 0), row[1].get("position", 0)),
        )
        return [
            Chunk(
                document_id = metadata["document_id"],
                page_number = int(metadata["page_number"]),
                chunk_index = int(metadata["chunk_index"]),
                text        = text,
                embedding   = np.asarray(embedding, dtype=np.float32),
            )
            for text, metadata, embedding in rows
        ]

    def count(self, document_id: Optional[str] = None) -> int:
        if document_id is None:
            return self._collection.count()
        return len(self._collection.get(where={"document_id": document_id}, include=[])["ids"])

    def get_document_stats(self) -> List[dict]:
        """Chunk counts per indexed document, including documents with none."""
        results = self._manifest.get(include=["metadatas"])
        counts = {
            document_id: int((meta or {}).get("chunk_count", 0))
            for document_id, meta in zip(results["ids"], results["metadatas"])
        }
        return [
            {"document_id": name, "count": count}
            for name, count in sorted(counts.items())
        ]

    # ─── Private ──────────────────────────────────────────────────────────────

    def _open_collection(self):
        return self._client.get_or_create_collection(
            name=COLLECTION_NAME,
            metadata={
                "hnsw:space": "cosine",
                MODEL_FINGERPRINT_KEY: self._embedding_model_name,
            },
        )

    def _record_indexed(self, document_id: str, chunk_count: int) -> None:
        # Manifest vectors are placeholders; the manifest is only read with get()
        try:
            self._manifest.upsert(
                ids        = [document_id],
                embeddings = [[0.0]],
                metadatas  = [{"chunk_count": chunk_count, "indexed_at": time.time_ns() // 1000}],
            )
        except Exception as error:
            print(f"[ChromaChunkStore] ⚠ Could not record '{document_id}' as indexed: {error}")

    def _discard_generation(self, generation: str) -> None:
        try:
            self._collection.delete(where={"generation": generation})
        except Exception as error:
            print(f"[ChromaChunkStore] ⚠ Could not roll back generation {generation}: {error}")
