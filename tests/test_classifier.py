"""Tests for the importance filter."""

import asyncio
import json

import pytest

from chatlens.classifier import (
    build_classification_prompt, classify_batch, classify_batches, merge_filter_results,
    resolve_classification, retry_delay,
)
from chatlens.errors import ProviderError, RateLimitError
from chatlens.models import Batch, ClassificationResponse, ClassifiedMessage, FilterResult, Importance
from chatlens.segmentation import index_messages
from conftest import FakeProvider, make_messages


def make_batch(start=0, count=10, batch_id=1):
    messages = index_messages(make_messages(start + count))[start:]
    return Batch(batch_id=batch_id, messages=messages)


def classified(index, importance, reason=""):
    return ClassifiedMessage(timestamp="2024-03-01 20:00", participant="a", content=f"c{index}",
                             index=index, importance=importance, reason=reason)


def reply(high=(), medium=()):
    return json.dumps({
        "high": [{"index": i, "reason": "전환점"} for i in high],
        "medium": [{"index": i, "reason": "계획"} for i in medium],
    })


def test_prompt_uses_global_indices():
    batch = make_batch(start=100, count=3)
    prompt = build_classification_prompt(batch, "연인", "소통 개선")
    assert "100. [" in prompt and "102. [" in prompt
    assert "관계 유형: 연인" in prompt


def test_resolve_drops_unknown_duplicate_and_keeps_high_precedence():
    batch = make_batch(count=5)
    response = ClassificationResponse.model_validate({
        "high": [{"index": 1, "reason": "갈등", "content": "모델이 바꾼 문장"}, {"index": 1}, {"index": 99}],
        "medium": [{"index": 1}, {"index": 2, "reason": "계획"}],
    })
    result = resolve_classification(batch, response)
    assert [m.index for m in result.high] == [1]
    assert [m.index for m in result.medium] == [2]
    assert result.high[0].content == batch.messages[1].content
    assert result.high[0].importance == Importance.HIGH
    assert result.stats.model_dump() == {"total": 5, "high": 1, "medium": 1, "low": 3}


def test_classify_batch_success(sleeps):
    batch = make_batch(count=10)
    provider = FakeProvider([f"```json\n{reply(high=[0, 3], medium=[5])}\n```"])
    result = asyncio.run(classify_batch(provider, batch, "연인", "목적"))
    assert [m.index for m in result.high] == [0, 3]
    assert result.stats.low == 7
    assert not result.degraded
    assert sleeps == []


def test_rate_limit_waits_longer_before_retry(sleeps):
    batch = make_batch(count=4)
    provider = FakeProvider([RateLimitError("429 Too Many Requests"), reply(high=[1])])
    result = asyncio.run(classify_batch(provider, batch, "연인", "목적"))
    assert [m.index for m in result.high] == [1]
    assert sleeps == [5.0]
    assert len(provider.calls) == 2


def test_other_failures_wait_one_second(sleeps):
    batch = make_batch(count=4)
    provider = FakeProvider([ProviderError("HTTP 500"), "not json at all", reply(medium=[2])])
    result = asyncio.run(classify_batch(provider, batch, "연인", "목적"))
    assert [m.index for m in result.medium] == [2]
    assert sleeps == [1.0, 1.0]


def test_degraded_after_three_failures(sleeps):
    batch = make_batch(count=8)
    provider = FakeProvider([ProviderError("boom")])
    result = asyncio.run(classify_batch(provider, batch, "연인", "목적"))
    assert result.degraded
    assert result.high == [] and result.medium == []
    assert result.stats.model_dump() == {"total": 8, "high": 0, "medium": 0, "low": 8}
    assert len(provider.calls) == 3
    assert sleeps == [1.0, 1.0]


def test_retry_delay_detects_rate_limit_text():
    assert retry_delay(ProviderError("RESOURCE_EXHAUSTED: quota")) == 5.0
    assert retry_delay(ProviderError("HTTP 429")) == 5.0
    assert retry_delay(ProviderError("HTTP 502")) == 1.0


def test_classify_batches_spacing_between_calls_only(sleeps):
    batches = [make_batch(start=i * 5, count=5, batch_id=i + 1) for i in range(3)]
    provider = FakeProvider([reply()])
    results = asyncio.run(classify_batches(provider, batches, "연인", "목적", spacing_seconds=1.0))
    assert len(results) == 3
    assert sleeps == [1.0, 1.0]
    assert "0. [" in provider.calls[0][1] and "10. [" in provider.calls[2][1]


def test_merge_dedups_and_sums_totals():
    first = FilterResult.from_lists(
        [classified(1, Importance.HIGH)],
        [classified(2, Importance.MEDIUM), classified(3, Importance.MEDIUM)],
        total=10,
    )
    second = FilterResult.from_lists(
        [classified(3, Importance.HIGH), classified(1, Importance.HIGH)],
        [classified(2, Importance.MEDIUM), classified(4, Importance.MEDIUM)],
        total=6,
    )
    degraded = FilterResult.from_lists([], [], total=4, degraded=True)

    merged = merge_filter_results([first, second, degraded])
    assert [m.index for m in merged.high] == [1, 3]
    assert [m.index for m in merged.medium] == [2, 4]
    assert merged.stats.model_dump() == {"total": 20, "high": 2, "medium": 2, "low": 16}
    assert merged.degraded
    assert not {m.index for m in merged.high} & {m.index for m in merged.medium}


@pytest.mark.parametrize("results", [[], [FilterResult.from_lists([], [], total=3)]])
def test_merge_trivial_inputs(results):
    merged = merge_filter_results(results)
    assert merged.stats.total == sum(r.stats.total for r in results)
    assert not merged.degraded


def test_merge_returns_conversation_order():
    result = FilterResult.from_lists(
        [classified(i, Importance.HIGH) for i in (7, 2, 5)],
        [classified(i, Importance.MEDIUM) for i in (9, 1, 5)],
        total=10,
    )
    merged = merge_filter_results([result])
    assert [m.index for m in merged.high] == [2, 5, 7]
    assert [m.index for m in merged.medium] == [1, 9]
