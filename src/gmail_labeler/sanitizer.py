"""Preview and header text sanitization.

Objective:
    Convert the text returned by the Gmail metadata endpoint into a compact,
    safe plain-text representation suitable for LLM prompting.

Responsibilities:
    - Decode HTML entities Gmail leaves in snippets (``&#39;``, ``&amp;``).
    - Strip stray markup and URLs.
    - Normalize and compress whitespace.
    - Provide a small utility for sender address extraction (CLI output).

High-level call tree:
    - :func:`sanitize_snippet`
        - :func:`clean_text`
    - :func:`sanitize_header`
    - :func:`extract_sender_address`

Security notes:
    Sanitization is intended to keep raw markup out of the prompt and to keep
    the per-message token count small.
"""

import re
from email.utils import parseaddr

from bs4 import BeautifulSoup

MAX_SNIPPET_LENGTH = 500
MAX_HEADER_LENGTH = 300


def clean_text(text: str) -> str:
    """Normalize and compact plain text.

    Removes:
    - HTML tags
    - URLs
    - Zero-width and control characters
    - Multiple newlines and spaces

    Args:
        text: Raw text to clean.

    Returns:
        str: Cleaned text.
    """
    if not text:
        return ""

    # Remove any remaining HTML tags
    text = re.sub(r"<[^>]*>", "", text)

    # Remove URLs
    text = re.sub(r"https?://\S+", "", text)

    # Gmail pads snippets of marketing mail with zero-width characters
    text = re.sub(r"[\u200b-\u200f\u2060\ufeff\u034f]", "", text)

    # Control characters (keep whitespace; it is collapsed below)
    text = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", text)

    # Collapse all whitespace runs into one space
    text = re.sub(r"\s+", " ", text)

    return text.strip()


def sanitize_snippet(snippet: str, max_length: int = MAX_SNIPPET_LENGTH) -> str:
    """Sanitize a Gmail preview snippet for AI processing.

    Gmail returns snippets HTML-escaped, so they are first decoded through
    BeautifulSoup, then normalized via :func:`clean_text` and truncated.

    Args:
        snippet: Raw snippet from the Gmail API.
        max_length: Maximum length of the returned text.

    Returns:
        str: Sanitized text ready for the prompt.
    """
    if not snippet:
        return ""

    decoded = BeautifulSoup(snippet, "html.parser").get_text(separator=" ")
    cleaned = clean_text(decoded)

    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length] + "..."

    return cleaned


def sanitize_header(value: str, max_length: int = MAX_HEADER_LENGTH) -> str:
    """Collapse whitespace in a header value and cap its length.

    Folded headers can contain newlines that would otherwise break the
    line-oriented prompt layout.

    Args:
        value: Raw header value.
        max_length: Maximum length of the returned text.

    Returns:
        str: Single-line header value.
    """
    if not value:
        return ""

    single_line = re.sub(r"\s+", " ", value).strip()
    return single_line[:max_length]


def extract_sender_address(from_header: str) -> str:
    """Extract the bare address from a From header.

    ``"Alice <alice@example.com>"`` -> ``"alice@example.com"``. When no
    address can be parsed the header is returned unchanged.

    Args:
        from_header: Raw From header value.

    Returns:
        str: Lowercased address, or the original header.
    """
    if not from_header:
        return ""

    _, address = parseaddr(from_header)
    if address and "@" in address:
        return address.lower()
    return from_header.strip()
