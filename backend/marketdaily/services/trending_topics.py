"""Keyword frequency extraction over news headlines (no LLM involved)."""

import re
from collections import Counter
from typing import Iterable

from marketdaily.schemas.report import TrendingTopic

STOPWORDS = frozenset({"the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by"})
MIN_TOKEN_LENGTH = 4
_NON_WORD = re.compile(r"[^\w]")


def tokenize_title(title: str) -> list[str]:
    tokens = []
    for raw in title.lower().split():
        token = _NON_WORD.sub("", raw)
        if len(token) < MIN_TOKEN_LENGTH or token in STOPWORDS:
            continue
        tokens.append(token)
    return tokens


def extract_trending_topics(titles: Iterable[str], limit: int = 5) -> list[TrendingTopic]:
    """Top keywords appearing more than once, by count descending.

    Ties keep first-seen order (Counter preserves insertion order and
    sorted() is stable).
    """
    counts: Counter[str] = Counter()
    for title in titles:
        counts.update(tokenize_title(title or ""))

    repeated = [(word, count) for word, count in counts.items() if count > 1]
    repeated.sort(key=lambda item: item[1], reverse=True)
    return [TrendingTopic(keyword=word, count=count) for word, count in repeated[:limit]]
