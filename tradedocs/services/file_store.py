"""
Local file access for uploaded documents.

Stores uploaded bytes under the upload directory and reads them back,
with best-effort PDF text extraction. Text extraction failures are logged
and yield an empty string: scanned PDFs often have no text layer, and the
pipeline can still work from page images.
"""

import uuid
from io import BytesIO
from pathlib import Path

import pdfplumber
from loguru import logger

from ..core.config import Settings, settings as default_settings

PDF_CONTENT_TYPES = {"application/pdf", "application/x-pdf"}


class UploadRejected(ValueError):
    """Upload does not meet the file rules (type, size)."""


class FileStore:
    def __init__(self, upload_dir: str | Path = "uploads", max_upload_bytes: int = 10 * 1024 * 1024):
        self.upload_dir = Path(upload_dir)
        self.max_upload_bytes = max_upload_bytes
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "FileStore":
        config = config or default_settings
        return cls(upload_dir=config.upload_dir, max_upload_bytes=config.max_upload_bytes)

    def validate_upload(self, original_name: str, data: bytes, content_type: str | None = None) -> str:
        """Check type and size rules; returns the sanitized file name."""
        safe_name = Path(original_name or "document.pdf").name
        is_pdf = safe_name.lower().endswith(".pdf") or (content_type in PDF_CONTENT_TYPES)
        if not is_pdf:
            raise UploadRejected(f"Only PDF files are allowed: {safe_name}")
        if not safe_name.lower().endswith(".pdf"):
            safe_name += ".pdf"
        if len(data) > self.max_upload_bytes:
            raise UploadRejected(
                f"{safe_name} is {len(data)} bytes, limit is {self.max_upload_bytes}"
            )
        return safe_name

    def save_upload(self, original_name: str, data: bytes, content_type: str | None = None) -> str:
        """Persist an uploaded PDF and return its stored filename."""
        safe_name = self.validate_upload(original_name, data, content_type)

        filename = f"{uuid.uuid4()}-{safe_name}"
        self.path_for(filename).write_bytes(data)
        logger.info("Stored upload", filename=filename, size_bytes=len(data))
        return filename

    def path_for(self, filename: str) -> Path:
        return self.upload_dir / Path(filename).name

    def url_for(self, filename: str) -> str:
        return f"/uploads/{filename}"

    def read_bytes(self, filename: str) -> bytes:
        return self.path_for(filename).read_bytes()

    def read_text(self, filename: str) -> str:
        """
        Plain text of a stored file.

        PDFs go through pdfplumber; an unparsable or text-less PDF gives "".
        Other files are decoded as UTF-8. A missing file raises OSError.
        """
        path = self.path_for(filename)
        data = path.read_bytes()
        if path.suffix.lower() != ".pdf":
            return data.decode("utf-8", errors="replace")

        try:
            with pdfplumber.open(BytesIO(data)) as pdf:
                pages = [page.extract_text() or "" for page in pdf.pages]
        except Exception as e:
            logger.warning(f"PDF text extraction failed for {path.name}: {e}")
            return ""

        text = "\n".join(pages).strip()
        if not text:
            logger.warning(f"PDF {path.name} has no extractable text layer")
        else:
            logger.debug("Extracted PDF text", file=path.name, chars=len(text))
        return text

    def delete(self, filename: str) -> None:
        try:
            self.path_for(filename).unlink()
        except FileNotFoundError:
            logger.warning(f"Tried to delete missing upload {filename}")
