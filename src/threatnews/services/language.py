"""Language detection restricted to a configured set of profiles."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List

from langdetect.detector_factory import PROFILES_DIRECTORY, DetectorFactory
from langdetect.lang_detect_exception import LangDetectException

__all__ = ["LanguageFilter"]

logger = logging.getLogger(__name__)

DETECTION_SEED = 0
UNKNOWN_LANGUAGE = "unknown"


class LanguageFilter:
    """Detect the language of short texts and admit only an allowed set.

    Only the ``candidates`` language profiles are loaded, once, when the filter
    is built.  Detection is probabilistic; very short or mixed-language input
    may be misclassified or come back undetermined.
    """

    def __init__(
        self,
        candidates: Iterable[str] = ("en", "de", "fr", "es", "ru", "zh-cn"),
        allowed: Iterable[str] = ("en",),
        *,
        profiles_directory: Path | str = PROFILES_DIRECTORY,
    ) -> None:
        self.allowed = frozenset(code.lower() for code in allowed)
        languages = _ordered_unique([*candidates, *sorted(self.allowed)])
        if len(languages) < 2:
            raise ValueError("At least two candidate languages are required for detection")

        profiles: List[str] = []
        for code in languages:
            profile_path = Path(profiles_directory) / code
            try:
                profiles.append(profile_path.read_text(encoding="utf-8"))
            except FileNotFoundError as exc:
                raise ValueError(f"Unknown language profile: {code}") from exc

        self._factory = DetectorFactory()
        self._factory.load_json_profile(profiles)
        self._factory.seed = DETECTION_SEED
        self.languages = tuple(self._factory.get_lang_list())
        logger.info("Language filter loaded profiles: %s", ", ".join(self.languages))

    def detect(self, text: str) -> str | None:
        """Return the most probable language code, or ``None`` if undetermined."""

        if not text or not text.strip():
            return None

        detector = self._factory.create()
        detector.append(text)
        try:
            language = detector.detect()
        except LangDetectException:
            return None
        return None if language == UNKNOWN_LANGUAGE else language

    def is_allowed(self, text: str) -> bool:
        return self.detect(text) in self.allowed


def _ordered_unique(codes: Iterable[str]) -> List[str]:
    seen: set[str] = set()
    ordered: List[str] = []
    for code in codes:
        code = code.strip().lower()
        if code and code not in seen:
            seen.add(code)
            ordered.append(code)
    return ordered
