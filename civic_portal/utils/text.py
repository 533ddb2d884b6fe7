"""Text utilities for sanitization and cleaning."""
import re
from typing import Optional


def sanitize_text(text: Optional[str]) -> str:
    """Clean and normalize user-submitted text before it is stored.

    Preserves UTF-8 characters, newlines, and basic formatting while removing
    control characters that could break JSON, CSV or terminal output.

    Examples:
        >>> sanitize_text("  Streetlight   broken\\x00 near temple ")
        'Streetlight broken near temple'
        >>> sanitize_text(None)
        ''
    """
    if text is None:
        return ""

    text = str(text)

    # Remove control characters EXCEPT newlines (\n), carriage returns (\r), and tabs (\t)
    text = re.sub(r'[\x00-\x08\x0B-\x0C\x0E-\x1F\x7F-\x9F]', '', text)

    # Collapse runs of spaces/tabs (but NOT newlines)
    text = re.sub(r'[ \t]+', ' ', text)

    # At most one blank line between paragraphs
    text = re.sub(r'\n{3,}', '\n\n', text)

    lines = [line.strip() for line in text.split('\n')]
    return '\n'.join(lines).strip()


def escape_like(term: str) -> str:
    """Escape ``%`` and ``_`` so a search term is matched literally in LIKE."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def truncate(text: Optional[str], length: int = 120) -> str:
    text = sanitize_text(text)
    if len(text) <= length:
        return text
    return text[: length - 1].rstrip() + "…"
