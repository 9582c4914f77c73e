"""Turn the ranks of recent articles into a threat level."""

from __future__ import annotations

from typing import Sequence

from threatnews.config import ThreatConfig
from threatnews.models import ThreatLevel, ThreatScore

__all__ = ["assess_threat"]


def assess_threat(
    ranks: Sequence[int],
    *,
    window_hours: float = 24,
    config: ThreatConfig | None = None,
) -> ThreatScore:
    """Average ``ranks`` and label the result.

    Fewer than ``config.min_articles`` ranks produce the insufficient-data
    result with a score of ``0.0``, whatever the individual ranks are.
    """

    config = config or ThreatConfig()
    count = len(ranks)

    if count < config.min_articles:
        return ThreatScore(
            score=0.0,
            phrase=config.insufficient_phrase,
            threat_level=ThreatLevel.INSUFFICIENT_DATA,
            article_count=count,
            window_hours=window_hours,
        )

    average = sum(ranks) / count

    if average > config.critical_above:
        level, phrase = ThreatLevel.CRITICAL, config.critical_phrase
    elif average >= config.elevated_at:
        level, phrase = ThreatLevel.ELEVATED, config.elevated_phrase
    else:
        level, phrase = ThreatLevel.LOW, config.low_phrase

    return ThreatScore(
        score=average,
        phrase=phrase,
        threat_level=level,
        article_count=count,
        window_hours=window_hours,
    )
