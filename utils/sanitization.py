# utils/sanitization.py
from typing import Iterable, List, Optional, Union
import hashlib
import re

CONTROL_CHARS = r"[\x00-\x08\x0b-\x0c\x0e-\x1f\x7f-\x9f]"


def clean_text(value: Optional[str]) -> str:
    if value is None:
        return ""

    text = re.sub(CONTROL_CHARS, "", value)
    text = text.strip()

    text = re.sub(r"\s+", " ", text)

    return text


def is_nonempty_text(value: Optional[str]) -> bool:
    return bool(clean_text(value))


def split_list_field(value: Union[str, Iterable[str], None]) -> List[str]:
    """
    Normalizes author/keyword input.
    Accepts a comma-separated string or a list; trims entries and drops blanks.
    """
    if value is None:
        return []
    if isinstance(value, str):
        parts = value.split(",")
    else:
        parts = list(value)
    return [clean_text(p) for p in parts if is_nonempty_text(p)]


def hash_email(email: Optional[str]) -> str:
    """Returns SHA-256 hash of the email for secure logging."""
    if not email:
        return "-"
    return hashlib.sha256(email.lower().strip().encode("utf-8")).hexdigest()


def safe_file_name(name: str) -> str:
    # Keep the extension readable, drop path separators and odd characters
    base = name.replace("\\", "/").split("/")[-1]
    base = re.sub(r"[^A-Za-z0-9._-]+", "_", base).strip("._")
    return base or "upload"
