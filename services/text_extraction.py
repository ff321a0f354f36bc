# File: services/text_extraction.py
import logging
from typing import Optional

import fitz

from utils.sanitization import clean_text

logger = logging.getLogger(__name__)

# Upper bound on text sent to the model
MAX_EXTRACTED_CHARS = 20000


def extract_pdf_text(pdf_bytes: bytes, max_chars: int = MAX_EXTRACTED_CHARS) -> Optional[str]:
    """
    Returns the cleaned text of a PDF, truncated to `max_chars`,
    or None when the document cannot be read.
    """
    if not pdf_bytes:
        return None
    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
        try:
            text = "\n".join(page.get_text("text") for page in doc)
        finally:
            doc.close()
    except Exception as e:
        logger.warning(f"PDF extraction error: {e}")
        return None

    text = clean_text(text)
    if not text:
        return None
    return text[:max_chars]
