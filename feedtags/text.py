"""
Markup stripping and truncation for prompt input.
"""

import re

# Maximum characters of entry text sent to a provider
MAX_CONTENT_CHARS = 2000

TRUNCATION_MARKER = "..."

_WHITESPACE_RE = re.compile(r"\s+")


def strip_markup(raw: str | None) -> str:
    """
    Extract readable text from entry HTML.

    Drops script and style elements, decodes entities, and collapses
    all whitespace runs to single spaces.
    """
    if not raw:
        return ""

    from bs4 import BeautifulSoup

    soup = BeautifulSoup(raw, "html.parser")
    for script in soup(["script", "style"]):
        script.decompose()

    # Separator keeps words in adjacent elements apart
    text = soup.get_text(separator=" ")
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_text(raw: str | None, max_chars: int = MAX_CONTENT_CHARS) -> str:
    """
    Prepare raw entry markup for a prompt.

    Strips markup and truncates to ``max_chars``, appending a marker
    when text was cut. Empty input yields ''.
    """
    text = strip_markup(raw)
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER
