"""
Knowledge base document processing.

Registers documents (text formats as is, PDF and DOCX through their text
layer), chunks them, embeds every chunk and tracks the document status
(uploaded -> pending -> processed | failed).
"""

import html
import logging
import re
import uuid
from pathlib import Path
from typing import Any, Optional

from sqlalchemy.orm import Session

from talkbridge.db.repositories.document import DocumentRepository
from talkbridge.db.repositories.embedding import EmbeddingRepository
from talkbridge.exceptions import DocumentProcessingError
from talkbridge.llm.gateway import LLMGateway
from talkbridge.models.db import Document, DocumentStatus
from talkbridge.rag.chunker import chunk_text
from talkbridge.rag.embedding_service import EmbeddingBatchResult, EmbeddingService
from talkbridge.rag.loaders import DOCX_MIME_TYPE, EXTRACTORS, PDF_MIME_TYPE

logger = logging.getLogger(__name__)

MAX_DOCUMENT_BYTES = 10 * 1024 * 1024

TEXT_MIME_TYPES = {
    "text/plain",
    "text/markdown",
    "text/csv",
    "application/json",
    "text/html",
}
ALLOWED_MIME_TYPES = TEXT_MIME_TYPES | set(EXTRACTORS)

EXTENSION_MIME_TYPES = {
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".csv": "text/csv",
    ".json": "application/json",
    ".html": "text/html",
    ".htm": "text/html",
    ".pdf": PDF_MIME_TYPE,
    ".docx": DOCX_MIME_TYPE,
}

_TAG_RE = re.compile(r"<[^>]+>")
_SCRIPT_RE = re.compile(r"<(script|style)\b.*?</\1>", re.IGNORECASE | re.DOTALL)


def guess_mime_type(filename: str) -> str:
    """Map a filename extension to a supported MIME type (plain text otherwise)."""
    return EXTENSION_MIME_TYPES.get(Path(filename).suffix.lower(), "text/plain")


def extract_text(content: str, mime_type: str) -> str:
    """Extract indexable text; HTML loses its markup."""
    if mime_type == "text/html":
        content = _SCRIPT_RE.sub(" ", content)
        content = html.unescape(_TAG_RE.sub(" ", content))
    return content


class DocumentProcessor:
    """Turns uploaded documents into searchable embeddings."""

    def __init__(
        self,
        session: Session,
        gateway: LLMGateway,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        embedding_model: Optional[str] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.session = session
        self.documents = DocumentRepository(session)
        self.embeddings = EmbeddingRepository(session)
        self.embedding_service = EmbeddingService(session, gateway, model=embedding_model)
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.log = log or logger

    def add_document(
        self,
        filename: str,
        content: str | bytes,
        mime_type: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Document:
        """
        Register a document for processing.

        PDF and DOCX files are reduced to their text here; the stored
        content is always text.

        Args:
            filename: Display filename (used in search filters and citations)
            content: Raw text, UTF-8 bytes, or the bytes of a PDF/DOCX file
            mime_type: MIME type (guessed from the filename when omitted)
            metadata: Extra metadata stored on the document

        Returns:
            Document with status 'uploaded'

        Raises:
            DocumentProcessingError: Unsupported type, too large, not UTF-8,
                or a PDF/DOCX file that cannot be read
        """
        mime_type = mime_type or guess_mime_type(filename)
        if mime_type not in ALLOWED_MIME_TYPES:
            raise DocumentProcessingError(f"Unsupported document type: {mime_type}")

        raw = content.encode("utf-8") if isinstance(content, str) else content
        if len(raw) > MAX_DOCUMENT_BYTES:
            raise DocumentProcessingError(
                f"Document too large: {len(raw)} bytes (max {MAX_DOCUMENT_BYTES})"
            )

        extractor = EXTRACTORS.get(mime_type)
        if extractor:
            try:
                text = extractor(raw)
            except Exception as e:
                raise DocumentProcessingError(
                    f"Could not extract text from {filename}: {e}"
                ) from e
        else:
            try:
                text = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                raise DocumentProcessingError(f"Document is not valid UTF-8: {e}") from e

        document = self.documents.create(
            filename=Path(filename).name,
            original_filename=filename,
            mime_type=mime_type,
            file_size=len(raw),
            content=text,
            status=DocumentStatus.UPLOADED.value,
            extra_metadata=metadata or {},
        )
        self.log.info(f"Registered document {document.id} ({document.filename})")
        return document

    def process_document(self, document_id: uuid.UUID) -> EmbeddingBatchResult:
        """
        Chunk and embed a document.

        A document with at least one embedded chunk ends 'processed' and
        is searchable; chunks that failed are listed in its metadata and
        error message, and the returned result reports the partial success.
        It ends 'failed' only when no chunk could be embedded.

        Raises:
            DocumentProcessingError: If the document does not exist
        """
        document = self.documents.get(document_id)
        if not document:
            raise DocumentProcessingError(f"Document {document_id} not found")

        self.documents.set_status(document.id, DocumentStatus.PENDING)
        chunks = chunk_text(
            extract_text(document.content, document.mime_type),
            self.chunk_size,
            self.chunk_overlap,
        )
        if not chunks:
            self.documents.set_status(document.id, DocumentStatus.FAILED, "Document has no text")
            return EmbeddingBatchResult(success=False)

        result = self.embedding_service.embed_chunks(document.id, document.filename, chunks)

        metadata = dict(document.extra_metadata or {})
        metadata.update({"chunk_count": len(chunks), "embedded_chunks": result.stored})
        if result.success:
            metadata.pop("failed_chunks", None)
            self.documents.update(document, extra_metadata=metadata)
            self.documents.set_status(document.id, DocumentStatus.PROCESSED)
            self.log.info(f"Processed document {document.id}: {len(chunks)} chunk(s)")
            return result

        metadata["failed_chunks"] = result.failed_chunks
        self.documents.update(document, extra_metadata=metadata)
        error = f"Failed to embed {len(result.failed_chunks)} of {len(chunks)} chunk(s)"
        if result.stored:
            self.documents.set_status(document.id, DocumentStatus.PROCESSED, error)
            self.log.warning(
                f"Document {document.id} partially embedded; failed chunks: {result.failed_chunks}"
            )
        else:
            self.documents.set_status(document.id, DocumentStatus.FAILED, error)
            self.log.error(f"Document {document.id} could not be embedded")
        return result

    def process_pending(self, limit: Optional[int] = None) -> dict[str, int]:
        """
        Process every document still in 'uploaded' status.

        Returns:
            Dict with processed/failed counts
        """
        counts = {"processed": 0, "failed": 0}
        for document in self.documents.get_by_status(DocumentStatus.UPLOADED.value, limit):
            result = self.process_document(document.id)
            counts["processed" if result.success else "failed"] += 1
        return counts

    def reprocess_document(self, document_id: uuid.UUID) -> EmbeddingBatchResult:
        """Delete a document's chunks and embeddings, then process it again."""
        removed = self.embeddings.delete_for_document(document_id)
        self.log.info(f"Removed {removed} chunk(s) of document {document_id} for reprocessing")
        return self.process_document(document_id)

    def delete_document(self, document_id: uuid.UUID) -> bool:
        """
        Delete a document with its chunks and embeddings.

        Returns:
            True if the document existed
        """
        document = self.documents.get(document_id)
        if not document:
            return False
        self.embeddings.delete_for_document(document_id)
        self.documents.delete(document)
        self.log.info(f"Deleted document {document_id}")
        return True
