# report_bridge/cleaner.py
"""
Text helpers for pypdf output of envelope-density reports.
Whitespace normalisation, number derivation from unit-suffixed text and
date parsing for the timestamps printed in the sample block.
"""

import re
from datetime import datetime
from typing import Optional

from dateutil import parser as date_parser

from report_bridge.models import NOT_FOUND


_WS_RE     = re.compile(r'\s+')
_NUMBER_RE = re.compile(r'(\d+(?:\.\d+)?)')

# Tried in order; strptime accepts both "Mar 3" and "Mar 03" for %d and
# both "9:05" and "09:05" for %I, which covers the padded/unpadded variants.
DATE_FORMATS = (
    "%b %d, %Y %I:%M %p",
    "%b %d %Y %I:%M %p",
    "%B %d, %Y %I:%M %p",
    "%b %d, %y %I:%M %p",
)


def normalize_text(text: Optional[str]) -> str:
    """Collapse every whitespace run (including line breaks) to one space."""
    if not text:
        return ""
    return _WS_RE.sub(' ', text)


def is_missing(text: Optional[str]) -> bool:
    return text is None or not text.strip() or text == NOT_FOUND


def first_number(text: Optional[str]) -> Optional[float]:
    """
    First decimal number in a unit-suffixed string.
    "12.3400 g" -> 12.34, "1.5000 cm³/g" -> 1.5. Sentinel or no digits -> None.
    """
    if is_missing(text):
        return None
    m = _NUMBER_RE.search(text)
    if not m:
        return None
    try:
        return float(m.group(1))
    except ValueError:
        return None


def parse_report_datetime(text: Optional[str]) -> Optional[datetime]:
    """Explicit formats first, then a general parse; None when both fail."""
    if is_missing(text):
        return None
    value = _WS_RE.sub(' ', text.strip())

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue

    try:
        return date_parser.parse(value)
    except (ValueError, OverflowError):
        return None
