# nexus_agent/memory/loader.py

"""
Upload loader for the knowledge base.

Architecture contract:
loader → content analyzer → memory store

Turns raw uploaded bytes into the (kind, content, mime_type) triple the
analyzer expects:
- images and PDFs are base64 encoded
- text files are decoded to UTF-8
"""

import base64
import binascii
import mimetypes
import os

from typing import NamedTuple, Optional

from nexus_agent.config import (
    DEFAULT_IMAGE_MIME_TYPE,
    DEFAULT_PDF_MIME_TYPE,
    IMAGE_FILE_EXTENSIONS,
    MAX_FILE_SIZE_MB,
    PDF_FILE_EXTENSIONS,
    TEXT_FILE_EXTENSIONS,
)


class UnsupportedFileError(ValueError):
    """Upload cannot be turned into a memory."""


class FileTooLargeError(UnsupportedFileError):
    pass


class LoadedContent(NamedTuple):
    kind: str
    content: str
    mime_type: str


# ============================================================
# SAFETY: SIZE LIMIT
# ============================================================

def validate_file_size(data: bytes, max_size_mb: float = MAX_FILE_SIZE_MB):

    if not data:
        raise UnsupportedFileError("File is empty")

    size_mb = len(data) / (1024 * 1024)

    if size_mb > max_size_mb:
        raise FileTooLargeError(f"File too large: {size_mb:.2f}MB")


# ============================================================
# TYPE DETECTION
# ============================================================

def detect_kind(filename: str, content_type: Optional[str]) -> LoadedContent:
    """Classify an upload as text, image or pdf. Content is left empty."""

    ext = os.path.splitext(filename or "")[1].lower()

    mime = (content_type or "").split(";")[0].strip().lower()

    # Browsers often send application/octet-stream for unknown files
    if not mime or mime == "application/octet-stream":
        mime = mimetypes.guess_type(filename or "")[0] or ""

    if mime.startswith("image/") or ext in IMAGE_FILE_EXTENSIONS:
        return LoadedContent("image", "", mime if mime.startswith("image/") else DEFAULT_IMAGE_MIME_TYPE)

    if mime == DEFAULT_PDF_MIME_TYPE or ext in PDF_FILE_EXTENSIONS:
        return LoadedContent("pdf", "", DEFAULT_PDF_MIME_TYPE)

    if mime.startswith("text/") or ext in TEXT_FILE_EXTENSIONS:
        return LoadedContent("text", "", mime if mime.startswith("text/") else "text/plain")

    raise UnsupportedFileError(
        f"Unsupported file type: {content_type or ext or 'unknown'}"
    )


# ============================================================
# LOADER
# ============================================================

def load_upload(filename: str, data: bytes, content_type: Optional[str] = None) -> LoadedContent:

    validate_file_size(data)

    detected = detect_kind(filename, content_type)

    if detected.kind == "text":

        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError:
            raise UnsupportedFileError("Text file is not valid UTF-8")

        if not text.strip():
            raise UnsupportedFileError("Text file is empty")

        return detected._replace(content=text)

    return detected._replace(content=base64.b64encode(data).decode("ascii"))


def decode_base64(content: str) -> bytes:
    """Decode base64, accepting data URLs ("data:image/png;base64,...")."""

    if content.startswith("data:") and "," in content:
        content = content.split(",", 1)[1]

    try:
        return base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError):
        raise UnsupportedFileError("Content is not valid base64")
