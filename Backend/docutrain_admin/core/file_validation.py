"""
file_validation.py
~~~~~~~~~~~~~~~~~~
Upload hardening for retrain PDFs.
Validates file content using Magic Numbers (signatures) instead of just extensions.
"""
import logging
from typing import BinaryIO

from docutrain_admin.core.config import settings
from docutrain_admin.core.errors import RetrainValidationError

logger = logging.getLogger(__name__)

# Magic Numbers (File Signatures)
SIGNATURES = {
    "pdf": b"%PDF-",
}

CHUNK_SIZE = 64 * 1024  # 64KB chunks


def check_pdf_header(filename: str, header: bytes) -> None:
    """Raise RetrainValidationError unless ``header`` starts like a PDF."""
    if not filename or not filename.lower().endswith(".pdf"):
        raise RetrainValidationError("Invalid file type. Only PDF files can be used for retraining.")
    if not header.startswith(SIGNATURES["pdf"]):
        logger.warning(f"Validation failed: {filename} claims to be PDF but lacks %PDF signature.")
        raise RetrainValidationError(
            "Invalid file content. Extension says .pdf but content does not match (PDF signature missing)."
        )


def max_upload_bytes() -> int:
    return settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024


def validate_pdf_stream(filename: str, fileobj: BinaryIO) -> int:
    """
    Check signature and size of a seekable binary stream.
    Returns the size in bytes and leaves the stream positioned at 0.
    """
    fileobj.seek(0)
    check_pdf_header(filename, fileobj.read(8))

    fileobj.seek(0)
    size = 0
    limit = max_upload_bytes()
    while True:
        chunk = fileobj.read(CHUNK_SIZE)
        if not chunk:
            break
        size += len(chunk)
        if size > limit:
            raise RetrainValidationError(f"File too large. Max size: {settings.MAX_UPLOAD_SIZE_MB}MB")
    fileobj.seek(0)
    return size
