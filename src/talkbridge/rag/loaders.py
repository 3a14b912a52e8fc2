"""Text extraction for binary document formats (PDF, DOCX)."""

import io

import fitz
from docx import Document as DocxDocument

PDF_MIME_TYPE = "application/pdf"
DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def extract_pdf_text(raw: bytes) -> str:
    """Text of every page, pages separated by blank lines."""
    with fitz.open(stream=raw, filetype="pdf") as doc:
        pages = [page.get_text("text", sort=True) for page in doc]
    return "\n\n".join(pages)


def extract_docx_text(raw: bytes) -> str:
    """Text of the non-empty paragraphs of a Word document."""
    document = DocxDocument(io.BytesIO(raw))
    paragraphs = [para.text for para in document.paragraphs if para.text.strip()]
    return "\n".join(paragraphs)


EXTRACTORS = {
    PDF_MIME_TYPE: extract_pdf_text,
    DOCX_MIME_TYPE: extract_docx_text,
}
