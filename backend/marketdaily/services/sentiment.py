"""Sentiment aggregation and classification.

Scores are floats in [-1, 1]. Aggregates use the arithmetic mean of the
non-null scores; classification uses fixed +/-0.1 thresholds.
"""

from dataclasses import dataclass
from typing import Iterable

POSITIVE_THRESHOLD = 0.1
NEGATIVE_THRESHOLD = -0.1


@dataclass(frozen=True)
class SentimentLabel:
    key: str      # optimistic | neutral | cautious
    label: str
    emoji: str
    color: str


OPTIMISTIC = SentimentLabel("optimistic", "Optimistic", "📈", "#52c41a")
CAUTIOUS = SentimentLabel("cautious", "Cautious", "📉", "#ff4d4f")
NEUTRAL = SentimentLabel("neutral", "Neutral", "➡️", "#faad14")


def average_sentiment(scores: Iterable[float | None]) -> float:
    """Mean of the non-null scores, 0.0 when there are none."""
    values = [s for s in scores if s is not None]
    if not values:
        return 0.0
    return sum(values) / len(values)


def classify_sentiment(score: float | None) -> SentimentLabel:
    score = score or 0.0
    if score > POSITIVE_THRESHOLD:
        return OPTIMISTIC
    if score < NEGATIVE_THRESHOLD:
        return CAUTIOUS
    return NEUTRAL


def sentiment_distribution(scores: Iterable[float | None]) -> dict[str, int]:
    """Count positive / negative / neutral scores. Null counts as neutral."""
    dist = {"positive": 0, "negative": 0, "neutral": 0}
    for score in scores:
        score = score or 0.0
        if score > POSITIVE_THRESHOLD:
            dist["positive"] += 1
        elif score < NEGATIVE_THRESHOLD:
            dist["negative"] += 1
        else:
            dist["neutral"] += 1
    return dist
