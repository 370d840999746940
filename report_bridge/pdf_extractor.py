# report_bridge/pdf_extractor.py
"""
Direct PDF text extraction using pypdf.

Plain reading-order text only: every page's text in page order, each page
terminated by a line break. The line breaks inside a page are kept because the
measurement cycle table is scanned line by line; the field rules normalise
whitespace themselves.
"""

import logging
import os

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from report_bridge.errors import ExtractionError

logger = logging.getLogger(__name__)


def validate_pdf_path(pdf_path: str) -> bool:
    return (
        bool(pdf_path)
        and os.path.isfile(pdf_path)
        and os.path.splitext(pdf_path)[1].lower() == ".pdf"
    )


def extract_text_from_reader(reader: PdfReader) -> str:
    """Concatenate page text in page order, one trailing newline per page."""
    pages_text = []
    for page in reader.pages:
        pages_text.append((page.extract_text() or "") + "\n")
    return "".join(pages_text)


def extract_text_from_pdf(pdf_path: str) -> str:
    """
    Read a report PDF and return its full text.
    Raises ExtractionError for a missing, non-PDF or unreadable file.
    """
    if not validate_pdf_path(pdf_path):
        raise ExtractionError(f"PDF file not found or invalid: {pdf_path}")

    try:
        reader = PdfReader(pdf_path)
        full_text = extract_text_from_reader(reader)
    except (PyPdfError, OSError, ValueError, KeyError) as e:
        raise ExtractionError(f"Error processing PDF file: {e}") from e

    logger.info("PDF: %d pages -> %s chars (%s words)",
                len(reader.pages), f"{len(full_text):,}", f"{len(full_text.split()):,}")
    return full_text
