"""Tests for uploaded-file text extraction."""
import io

import pytest
from PyPDF2 import PdfWriter

from kbchat.errors import InvalidParameters
from kbchat.rag.extract import extract_text


def blank_pdf() -> bytes:
    writer = PdfWriter()
    writer.add_blank_page(width=72, height=72)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def test_plain_text_is_decoded_as_utf8():
    assert extract_text("notes.txt", "text/plain", "Café hours".encode("utf-8")) == "Café hours"


def test_txt_extension_is_enough_without_content_type():
    assert extract_text("notes.TXT", None, b"hello") == "hello"


def test_content_type_parameters_are_ignored():
    assert extract_text("upload", "text/plain; charset=utf-8", b"hello") == "hello"


def test_invalid_utf8_is_rejected():
    with pytest.raises(InvalidParameters, match="UTF-8"):
        extract_text("notes.txt", "text/plain", b"\xff\xfe\xfa")


def test_whitespace_only_text_is_rejected():
    with pytest.raises(InvalidParameters, match="No text content"):
        extract_text("notes.txt", "text/plain", b"  \n\t ")


def test_unsupported_type_is_rejected():
    with pytest.raises(InvalidParameters, match="Unsupported file type"):
        extract_text("sheet.xlsx", "application/vnd.ms-excel", b"PK")


def test_pdf_without_text_is_rejected():
    with pytest.raises(InvalidParameters, match="No text content extracted from PDF"):
        extract_text("scan.pdf", "application/pdf", blank_pdf())


def test_corrupt_pdf_is_rejected():
    with pytest.raises(InvalidParameters):
        extract_text("broken.pdf", "application/pdf", b"this is not a pdf")
