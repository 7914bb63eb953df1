"""Text extraction for uploaded files (PDF and plain text)."""
import io
from typing import Optional
from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError
import structlog

from kbchat.errors import InvalidParameters

logger = structlog.get_logger()

PDF_CONTENT_TYPE = "application/pdf"
TEXT_CONTENT_TYPE = "text/plain"


def extract_text_from_pdf(data: bytes) -> str:
    """Extract the text of every page of a PDF.

    Raises:
        InvalidParameters: If the PDF cannot be read or holds no text
    """
    try:
        reader = PdfReader(io.BytesIO(data))
        text_parts = []

        for page in reader.pages:
            page_text = page.extract_text()
            if page_text:
                text_parts.append(page_text)

    except (PdfReadError, ValueError, KeyError, TypeError) as e:
        logger.error("pdf_parsing_failed", error=str(e), error_type=type(e).__name__)
        raise InvalidParameters(f"PDF parsing failed: {e}") from e

    text = "\n".join(text_parts).strip()
    if not text:
        raise InvalidParameters("No text content extracted from PDF")

    return text


def extract_text(filename: str, content_type: Optional[str], data: bytes) -> str:
    """Turn an uploaded file into a single UTF-8 text blob.

    Args:
        filename: Original file name
        content_type: MIME type reported by the client
        data: Raw file bytes

    Returns:
        Extracted text

    Raises:
        InvalidParameters: For unsupported, unreadable or empty files
    """
    content_type = (content_type or "").split(";")[0].strip().lower()
    name = (filename or "").lower()

    if content_type == PDF_CONTENT_TYPE or name.endswith(".pdf"):
        text = extract_text_from_pdf(data)
    elif content_type == TEXT_CONTENT_TYPE or name.endswith(".txt"):
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidParameters(f"{filename} is not valid UTF-8 text") from e
    else:
        raise InvalidParameters("Unsupported file type. Please upload PDF or TXT files.")

    if not text.strip():
        raise InvalidParameters("No text content found in file")

    logger.info(
        "text_extracted",
        filename=filename,
        content_type=content_type,
        text_length=len(text),
    )

    return text
