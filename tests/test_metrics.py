"""Tests for locally computed metrics."""

from chatlens.metrics import (
    average_response_time, compute_metrics, conversation_starters, pair_of, sentiment_ratio, tikitaka_score,
)
from chatlens.models import Message


def msg(ts, who, text="응"):
    return Message(timestamp=ts, participant=who, content=text)


def test_pair_of_defaults():
    assert pair_of([]) == ("사용자", "상대방")
    assert pair_of([msg("2024-01-01 10:00", "a")]) == ("a", "상대방")


def test_response_time_counts_turn_changes_within_a_day():
    messages = [
        msg("2024-01-01 10:00", "a"),
        msg("2024-01-01 10:10", "b"),
        msg("2024-01-01 10:12", "b"),
        msg("2024-01-01 10:32", "a"),
        msg("2024-01-03 10:32", "b"),  # two days later, not a reply
    ]
    assert average_response_time(messages, "a", "b") == {"a": 20, "b": 10}


def test_conversation_starters_after_an_hour_of_silence():
    messages = [
        msg("2024-01-01 10:00", "a"),
        msg("2024-01-01 10:30", "b"),
        msg("2024-01-01 12:00", "b"),
        msg("2024-01-01 12:01", "a"),
    ]
    assert conversation_starters(messages, "a", "b") == {"a": 1, "b": 1}


def test_sentiment_ratio():
    messages = [msg("t", "a", "너무 좋아"), msg("t", "b", "짜증나"), msg("t", "a", "밥 먹자"), msg("t", "b", "좋은데 짜증")]
    assert sentiment_ratio(messages) == {"positive": 0.25, "neutral": 0.5, "negative": 0.25}


def test_tikitaka_full_marks():
    score = tikitaka_score({"a": 0.5, "b": 0.5}, {"a": 0.2, "b": 0.2}, {"a": 100, "b": 100}, {"a": 0, "b": 0}, "a", "b")
    assert score == 100


def test_tikitaka_one_sided():
    score = tikitaka_score({"a": 1.0, "b": 0.0}, {"a": 0, "b": 0}, {"a": 0, "b": 0}, {"a": 60, "b": 60}, "a", "b")
    assert score == 0


def test_compute_metrics_keys():
    messages = [msg("2024-01-01 10:00", "a", "오늘 영화 볼래?"), msg("2024-01-01 10:05", "b", "좋아 😀")]
    metrics = compute_metrics(messages)
    assert metrics["participants"] == ["a", "b"]
    assert metrics["totalMessages"] == 2
    assert metrics["questionRatio"] == {"a": 1.0, "b": 0}
    assert metrics["emojiCount"] == {"a": 0, "b": 1}
    assert metrics["avgResponseTime"] == {"a": 0, "b": 5}
    assert 0 <= metrics["tikitakaScore"] <= 100
    assert {"word": "오늘", "count": 1} in metrics["topKeywords"]
