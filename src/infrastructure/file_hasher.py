import hashlib
from pathlib import Path


SUPPORTED_EXTENSIONS = {".pdf"}


def compute_file_hash(file_path: str) -> str:
    """
    Compute SHA-256 hash of a file's contents.
    Used to detect whether a source document has changed since last indexing.
    """
    sha256 = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha256.update(chunk)
    return sha256.hexdigest()


def compute_directory_hashes(directory_path: str) -> dict[str, str]:
    """
    Compute SHA-256 hashes for the supported files directly in a directory.
    Subdirectories (uploads, OCR copies) are not scanned.
    Returns: { filename: hash_string }
    """
    data_dir = Path(directory_path)

    return {
        file_path.name: compute_file_hash(str(file_path))
        for file_path in sorted(data_dir.glob("*"))
        if file_path.suffix.lower() in SUPPORTED_EXTENSIONS
    }


def document_id_for(name: str, content_hash: str) -> str:
    """
    Stable document id from file name + content.
    Same file → same id across sessions; edited content → new id.
    """
    return hashlib.sha256(f"{name}:{content_hash}".encode("utf-8")).hexdigest()[:16]
