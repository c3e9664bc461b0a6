import io
import os
import logging
import asyncio
from enum import Enum
from functools import partial
from typing import Awaitable, Callable, Dict, Optional

import fitz  # PyMuPDF
from docx import Document
from fastapi import UploadFile
from pydantic import BaseModel, Field, PrivateAttr

from mindmap_engine.core.config import Settings, settings
from mindmap_engine.schemas.results import ErrorKind, ExtractionResult, FileValidation

logger = logging.getLogger(__name__)


# ── Formats ──────────────────────────────────────────────────────────────────

class DocumentFormat(str, Enum):
    text = "text"
    pdf = "pdf"
    docx = "docx"


TEXT_MIME = "text/plain"
PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

ALLOWED_MIME_TYPES = {
    TEXT_MIME: DocumentFormat.text,
    PDF_MIME: DocumentFormat.pdf,
    DOCX_MIME: DocumentFormat.docx,
}
ALLOWED_EXTENSIONS = {
    ".txt": DocumentFormat.text,
    ".pdf": DocumentFormat.pdf,
    ".docx": DocumentFormat.docx,
}
# Declared types that carry no information; the extension decides instead.
GENERIC_MIME_TYPES = {"", "application/octet-stream", "binary/octet-stream"}

REASON_TOO_LARGE = "File too large: maximum size is {limit} MB."
REASON_UNSUPPORTED = "Unsupported type: please use TXT, PDF, or DOCX files only."


# ── Upload descriptor ────────────────────────────────────────────────────────

class UploadedFile(BaseModel):
    """Name, declared mime type, size and a byte accessor for one upload."""

    name: str
    mime_type: Optional[str] = None
    size_bytes: int = Field(..., ge=0)
    content: bytes = Field(default=b"", repr=False)

    _source: Optional[UploadFile] = PrivateAttr(default=None)

    @classmethod
    def from_upload(cls, upload: UploadFile) -> "UploadedFile":
        """Wrap a FastAPI upload without reading its body."""
        size = upload.size
        if size is None:
            upload.file.seek(0, os.SEEK_END)
            size = upload.file.tell()
            upload.file.seek(0)
        file = cls(
            name=upload.filename or "unknown",
            mime_type=upload.content_type,
            size_bytes=size,
        )
        file._source = upload
        return file

    @property
    def extension(self) -> str:
        return os.path.splitext(self.name.lower())[1]

    @property
    def declared_mime(self) -> str:
        return (self.mime_type or "").split(";")[0].strip().lower()

    async def read(self) -> bytes:
        if self._source is not None:
            await self._source.seek(0)
            return await self._source.read()
        return self.content


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# FILE VALIDATION
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def validate_file(file: UploadedFile, config: Settings = settings) -> FileValidation:
    """
    Size first, then type. A present mime type must itself be allowed;
    the extension only counts when the mime type is absent or generic.
    """
    if file.size_bytes > config.max_file_size_bytes:
        return FileValidation(
            accepted=False,
            reason=REASON_TOO_LARGE.format(limit=config.MAX_FILE_SIZE_MB),
            too_large=True,
        )

    mime = file.declared_mime
    if mime in ALLOWED_MIME_TYPES:
        return FileValidation(accepted=True)
    if mime in GENERIC_MIME_TYPES and file.extension in ALLOWED_EXTENSIONS:
        return FileValidation(accepted=True)

    return FileValidation(accepted=False, reason=REASON_UNSUPPORTED)


def detect_format(file: UploadedFile) -> Optional[DocumentFormat]:
    mime = file.declared_mime
    ext = file.extension

    if mime == TEXT_MIME or ext == ".txt":
        return DocumentFormat.text
    if mime == PDF_MIME or ext == ".pdf":
        return DocumentFormat.pdf
    if mime == DOCX_MIME or ext == ".docx":
        return DocumentFormat.docx
    if mime.startswith("text/"):
        return DocumentFormat.text
    return None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# EXTRACTION STRATEGIES
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

Extractor = Callable[[bytes], Awaitable[str]]


async def extract_plain_text(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ValueError(f"File is not valid UTF-8 text: {e}")


async def extract_pdf(content: bytes, max_pages: int = 200) -> str:
    """
    Extract text from PDF using PyMuPDF (fitz).
    Runs in a thread pool to avoid blocking the async event loop.
    """
    def _process_pdf(data: bytes) -> str:
        try:
            with fitz.open(stream=data, filetype="pdf") as doc:
                if doc.page_count == 0:
                    raise ValueError("PDF has no pages.")

                if doc.page_count > max_pages:
                    raise ValueError(f"PDF too large (>{max_pages} pages).")

                text_blocks = []
                for page in doc:
                    page_text = page.get_text("text")
                    if page_text.strip():
                        text_blocks.append(page_text)

                if not text_blocks:
                    raise ValueError("No text content found in PDF.")

                return "\n\n".join(text_blocks)
        except Exception as e:
            if isinstance(e, ValueError):
                raise
            raise ValueError(f"PDF extraction failed: {str(e)}")

    return await asyncio.to_thread(_process_pdf, content)


async def extract_docx(content: bytes) -> str:
    """Extract paragraph and table text from a .docx using python-docx."""
    def _process_docx(data: bytes) -> str:
        try:
            document = Document(io.BytesIO(data))
        except Exception as e:
            raise ValueError(f"DOCX extraction failed: {str(e)}")

        blocks = [p.text for p in document.paragraphs if p.text.strip()]
        for table in document.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if cells:
                    blocks.append(" | ".join(cells))

        if not blocks:
            raise ValueError("No text content found in DOCX.")
        return "\n".join(blocks)

    return await asyncio.to_thread(_process_docx, content)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# DISPATCH
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class TextExtractor:
    """
    Format → strategy registry. Plain text is always available; PDF and
    DOCX report "not supported yet" until a strategy is registered.
    """

    def __init__(self, strategies: Optional[Dict[DocumentFormat, Extractor]] = None):
        self._strategies: Dict[DocumentFormat, Extractor] = {
            DocumentFormat.text: extract_plain_text,
        }
        self._strategies.update(strategies or {})

    def register(self, fmt: DocumentFormat, strategy: Extractor) -> None:
        self._strategies[fmt] = strategy

    async def extract(self, file: UploadedFile) -> ExtractionResult:
        fmt = detect_format(file)
        if fmt is None:
            offending = file.declared_mime or file.extension or "unknown"
            logger.warning(f"[EXTRACT] Unsupported type '{offending}' for {file.name}")
            return ExtractionResult(
                success=False,
                error=f"Unsupported file type: {offending}. Please use TXT, PDF, or DOCX files.",
                kind=ErrorKind.INPUT_POLICY,
            )

        strategy = self._strategies.get(fmt)
        if strategy is None:
            logger.warning(f"[EXTRACT] No {fmt.value} extractor registered ({file.name})")
            return ExtractionResult(
                success=False,
                error=f"{fmt.value.upper()} processing is not supported yet.",
                kind=ErrorKind.EXTRACTION_UNAVAILABLE,
            )

        try:
            content = await file.read()
            text = await strategy(content)
        except ValueError as e:
            logger.warning(f"[EXTRACT] {file.name}: {e}")
            return ExtractionResult(success=False, error=str(e), kind=ErrorKind.EXTRACTION_FAILED)
        except Exception as e:
            logger.error(f"[EXTRACT] File processing failed for {file.name}: {e}", exc_info=True)
            return ExtractionResult(
                success=False,
                error=f"Failed to process file: {str(e)}",
                kind=ErrorKind.EXTRACTION_FAILED,
            )

        logger.info(f"[EXTRACT] ✓ {file.name} ({fmt.value}) — {len(text)} chars")
        return ExtractionResult(success=True, text=text)


def build_text_extractor(config: Settings = settings) -> TextExtractor:
    extractor = TextExtractor()
    if config.BINARY_EXTRACTORS_ENABLED:
        extractor.register(DocumentFormat.pdf, partial(extract_pdf, max_pages=config.MAX_PDF_PAGES))
        extractor.register(DocumentFormat.docx, extract_docx)
        logger.info("[EXTRACT] ✓ PDF and DOCX extractors registered")
    return extractor
