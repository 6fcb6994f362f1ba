# src/domain/errors.py


class ConfigurationError(RuntimeError):
    """A required setting (e.g. the embedding service credential) is missing."""


class ExternalServiceError(RuntimeError):
    """An external collaborator (extraction, OCR, page search, embedding, storage) failed."""


class InvalidInputError(ValueError):
    """A request is missing required fields. Raised before any side effect."""


class IndexingError(RuntimeError):
    """
    Indexing a document failed. Nothing was committed; the chunk store
    still holds the previous complete index for that document.
    """
