"""Tests for headline keyword extraction."""

from marketdaily.services.trending_topics import extract_trending_topics, tokenize_title


class TestTokenize:
    def test_lowercases_and_strips_punctuation(self):
        assert tokenize_title("Fed's RATES, rising!") == ["feds", "rates", "rising"]

    def test_drops_short_tokens_and_stopwords(self):
        assert tokenize_title("The Fed and the ECB act with care") == ["care"]


class TestExtractTrendingTopics:
    def test_fed_example(self):
        titles = [
            "Fed raises interest rates",
            "Fed holds interest rates",
            "Markets react to Fed decision",
        ]
        topics = extract_trending_topics(titles)
        # "fed" has only 3 characters and is dropped; ties keep first-seen order
        assert [(t.keyword, t.count) for t in topics] == [("interest", 2), ("rates", 2)]

    def test_count_above_one_required(self):
        assert extract_trending_topics(["Apple earnings beat", "Tesla deliveries fall"]) == []

    def test_sorted_by_count_and_limited_to_five(self):
        titles = ["alpha bravo charlie delta echo foxtrot"] * 2 + ["alpha bravo"] * 3
        topics = extract_trending_topics(titles)
        assert len(topics) == 5
        assert topics[0].keyword == "alpha" and topics[0].count == 5
        assert topics[1].keyword == "bravo" and topics[1].count == 5
        assert {t.count for t in topics[2:]} == {2}

    def test_deterministic(self):
        titles = ["Chip stocks rally", "Chip demand stocks surge", "Oil slides"]
        assert extract_trending_topics(titles) == extract_trending_topics(titles)

    def test_empty_titles(self):
        assert extract_trending_topics([]) == []
        assert extract_trending_topics(["", ""]) == []
