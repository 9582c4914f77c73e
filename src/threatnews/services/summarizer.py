"""Optional LLM summaries with a deterministic truncation fallback."""

from __future__ import annotations

import logging
from typing import Any

from openai import OpenAI

__all__ = ["Summarizer", "truncate", "SUMMARY_LENGTH"]

logger = logging.getLogger(__name__)

SUMMARY_LENGTH = 150
ELLIPSIS = "..."


def truncate(text: str, length: int = SUMMARY_LENGTH) -> str:
    """Return the first ``length`` characters of ``text`` plus an ellipsis.

    Text that already fits is returned unchanged.
    """

    if len(text) <= length:
        return text
    return text[:length] + ELLIPSIS


class Summarizer:
    """Summarise article descriptions through the OpenAI chat API.

    Without an API key (or an injected ``client``) every call uses
    :func:`truncate`.  Errors and empty completions fall back the same way, so
    :meth:`summarize` never raises.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        model: str = "gpt-4o-mini",
        client: Any | None = None,
        max_input_chars: int = 4000,
    ) -> None:
        self.model = model
        self.max_input_chars = max_input_chars
        self._api_key = api_key
        self._client = client

    @property
    def enabled(self) -> bool:
        return self._client is not None or bool(self._api_key)

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = OpenAI(api_key=self._api_key)
        return self._client

    def _complete(self, text: str) -> str:
        messages = [
            {
                "role": "system",
                "content": "You are an assistant that summarizes security and technology news.",
            },
            {
                "role": "user",
                "content": (
                    "Summarize the following news article in 1-2 sentences:\n\n"
                    f"{text[: self.max_input_chars]}"
                ),
            },
        ]
        response = self._get_client().chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=0.3,
        )
        content = response.choices[0].message.content if response.choices else None
        return (content or "").strip()

    def summarize(self, text: str) -> str | None:
        """Return a short summary of ``text``; ``None`` for blank input."""

        if not text or not text.strip():
            return None

        if not self.enabled:
            return truncate(text)

        try:
            summary = self._complete(text)
        except Exception as exc:  # noqa: BLE001 - any API failure falls back to truncation
            logger.warning("Summarisation failed, falling back to truncation: %s", exc)
            return truncate(text)

        if not summary:
            logger.warning("Summarisation returned no text, falling back to truncation")
            return truncate(text)
        return summary
