# src/infrastructure/highlight_store.py

from __future__ import annotations

from pathlib import Path
from typing import List, Tuple, Union

from sqlalchemy import JSON, Column, DateTime, Integer, String, create_engine, delete, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from src.domain.errors import ExternalServiceError, InvalidInputError
from src.domain.interfaces import HighlightStorePort
from src.domain.models import Highlight

Base = declarative_base()


class HighlightRow(Base):
    __tablename__ = "highlights"

    row_id = Column(Integer, primary_key=True, autoincrement=True)
    highlight_id = Column(String, nullable=False, unique=True)
    document_id = Column(String, nullable=False, index=True)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


def build_sqlite_url(db_path: str | Path) -> str:
    return f"sqlite:///{Path(db_path)}"


def create_engine_and_session(db_url: str) -> Tuple[Engine, sessionmaker]:
    if db_url.startswith("sqlite:///"):
        Path(db_url.replace("sqlite:///", "", 1)).parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(db_url, future=True, echo=False)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    return engine, SessionLocal


class SqlHighlightStore(HighlightStorePort):
    """Highlights keyed by id, grouped by document, returned in creation order."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_url = str(db_path) if str(db_path).startswith("sqlite") else build_sqlite_url(db_path)
        self.engine, self.SessionLocal = create_engine_and_session(self.db_url)
        Base.metadata.create_all(self.engine)

    def close(self) -> None:
        self.engine.dispose()

    def get_by_document(self, document_id: str) -> List[Highlight]:
        if not document_id:
            raise InvalidInputError("Missing document id.")
        with self.SessionLocal() as session:
            stmt = select(HighlightRow).where(HighlightRow.document_id == document_id).order_by(HighlightRow.row_id)
            rows = session.execute(stmt).scalars().all()
            return [self._from_row(row) for row in rows]

    def replace_for_document(self, document_id: str, highlights: List[Highlight]) -> None:
        """Delete + insert in one transaction."""
        if not document_id:
            raise InvalidInputError("Missing document id.")
        self._validate(highlights)

        with self.SessionLocal() as session:
            try:
                session.execute(delete(HighlightRow).where(HighlightRow.document_id == document_id))
                session.add_all([self._to_row(h, document_id) for h in highlights])
                session.commit()
            except Exception as error:
                session.rollback()
                raise ExternalServiceError(f"Replacing highlights for '{document_id}' failed: {error}") from error

    def upsert(self, highlights: List[Highlight]) -> None:
        self._validate(highlights)
        missing_document = [h.highlight_id for h in highlights if not h.document_id]
        if missing_document:
            raise InvalidInputError(f"Highlights missing a document id: {missing_document[:5]}")
        if not highlights:
            return

        with self.SessionLocal() as session:
            try:
                for highlight in highlights:
                    stmt = select(HighlightRow).where(HighlightRow.highlight_id == highlight.highlight_id)
                    row = session.execute(stmt).scalar_one_or_none()
                    if row is None:
                        session.add(self._to_row(highlight, highlight.document_id))
                    else:
                        row.document_id = highlight.document_id
                        row.data = highlight.to_dict()
                session.commit()
            except Exception as error:
                session.rollback()
                raise ExternalServiceError(f"Upserting highlights failed: {error}") from error

    # ─── Private ──────────────────────────────────────────────────────────────

    @staticmethod
    def _validate(highlights: List[Highlight]) -> None:
        if not isinstance(highlights, list):
            raise InvalidInputError("Expected a list of highlights.")
        if any(not h.highlight_id for h in highlights):
            raise InvalidInputError("Every highlight needs an id.")

    @staticmethod
    def _to_row(highlight: Highlight, document_id: str) -> HighlightRow:
        data = highlight.to_dict()
        data["document_id"] = document_id
        return HighlightRow(highlight_id=highlight.highlight_id, document_id=document_id, data=data)

    @staticmethod
    def _from_row(row: HighlightRow) -> Highlight:
        return Highlight.from_dict({**(row.data or {}), "id": row.highlight_id}, document_id=row.document_id)
