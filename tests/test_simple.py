"""Tests for the one-call simplified analysis."""

import asyncio
import json

import pytest

from chatlens.errors import ProviderError
from chatlens.metrics import compute_metrics
from chatlens.simple import analyze_simple, default_insights, parse_insights, sample_messages
from conftest import FakeProvider, make_messages


def test_short_conversation_sent_whole():
    messages = make_messages(30)
    assert sample_messages(messages, recent=20, history=20) == messages


def test_sample_keeps_recent_tail_and_spread_history():
    messages = make_messages(1000)
    sample = sample_messages(messages, recent=200, history=50)
    assert len(sample) == 250
    assert sample[-200:] == messages[-200:]
    assert sample[0] == messages[0]
    positions = [messages.index(m) for m in sample]
    assert positions == sorted(positions)
    assert sample == sample_messages(messages, recent=200, history=50)


def test_sample_without_history():
    messages = make_messages(100)
    assert sample_messages(messages, recent=10, history=0) == messages[-10:]


def test_parse_insights_limits_and_score():
    raw = json.dumps({"sentimentScore": 81, "insights": [{"title": f"t{i}", "description": "d"} for i in range(9)]
                      + [{"title": "설명 없음"}]})
    parsed = parse_insights(raw, max_insights=6)
    assert len(parsed["insights"]) == 6
    assert parsed["sentimentScore"] == 81


def test_default_insights():
    cards = default_insights(compute_metrics(make_messages(10)))
    assert len(cards) == 4
    assert "50%" in cards[1].description


def test_analyze_simple(sleeps):
    provider = FakeProvider(['```json\n{"sentimentScore": 64, "insights": [{"title": "🎵 리듬", "description": "좋음"}]}\n```'])
    messages = make_messages(20)
    result = asyncio.run(analyze_simple(provider, messages, compute_metrics(messages), "친구", "우정 점검"))
    assert result["sentimentScore"] == 64
    assert result["insights"][0].title == "🎵 리듬"
    assert "분석 목적: 우정 점검" in provider.calls[0][1]


def test_unparseable_reply_uses_metric_cards():
    messages = make_messages(20)
    result = asyncio.run(analyze_simple(FakeProvider(["죄송합니다"]), messages, compute_metrics(messages), "친구", "목적"))
    assert len(result["insights"]) == 4
    assert result["sentimentScore"] is None


def test_provider_errors_propagate():
    messages = make_messages(5)
    with pytest.raises(ProviderError):
        asyncio.run(analyze_simple(FakeProvider([ProviderError("down")]), messages, compute_metrics(messages), "친구", "목적"))
    with pytest.raises(ProviderError):
        asyncio.run(analyze_simple(None, messages, compute_metrics(messages), "친구", "목적"))
