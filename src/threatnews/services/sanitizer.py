"""Markup stripping for raw feed text."""

from __future__ import annotations

import re
import warnings

from bs4 import BeautifulSoup, MarkupResemblesLocatorWarning

__all__ = ["sanitize"]

_WHITESPACE_RE = re.compile(r"\s+")


def sanitize(text: str | None) -> str:
    """Return ``text`` with all markup removed and whitespace collapsed.

    Script and style blocks are dropped together with their contents.  Broken
    markup is handled by the parser's error recovery, so the result is always
    a best-effort plain text string.
    """

    if not text:
        return ""
    if "<" not in text and "&" not in text:
        return _WHITESPACE_RE.sub(" ", text).strip()

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", MarkupResemblesLocatorWarning)
        soup = BeautifulSoup(text, "lxml")

    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    plain = soup.get_text(" ", strip=True)
    return _WHITESPACE_RE.sub(" ", plain).strip()
