#!/usr/bin/env python3
"""
Importance filter.

Each session batch goes to a cheap model that marks the messages worth
deeper analysis as HIGH or MEDIUM. Everything else is LOW and is only
counted. Batches run one after another with a short pause between them.
"""

import asyncio
import traceback
from typing import Dict, List, Optional

from pydantic import ValidationError

from config import config
from chatlens.console import log, warn, error, write_debug
from chatlens.errors import ProviderError, RateLimitError, ResponseParseError
from chatlens.models import (
    Batch, ClassificationResponse, ClassifiedMessage, FilterResult, Importance, IndexedMessage,
)
from chatlens.normalizer import ResponseNormalizer
from chatlens.providers import ChatProvider

SYSTEM_PROMPT = "당신은 대화 분석 전문가입니다. 반드시 유효한 JSON만 출력하세요."


def build_classification_prompt(batch: Batch, relationship_type: str, purpose: str) -> str:
    lines = "\n".join(
        f"{m.index}. [{m.timestamp}] {m.participant}: {m.content}" for m in batch.messages
    )
    return f"""관계 유형: {relationship_type}
분석 목적: {purpose}
아래 {batch.count}개 메시지에서 중요도를 판단하세요:

HIGH: 관계 전환점, 갈등, 중요 의사결정, 감정 변화
MEDIUM: 의미있는 대화, 계획, 중요 일상
LOW: 단순 인사, 반응 (ㅋㅋ, ㅇㅇ 등 - 출력하지 말 것)

메시지 앞의 번호(index)를 그대로 사용하세요. JSON 형식으로 출력:
{{
  "high": [{{"index": 0, "reason": "관계 갈등 폭발"}}],
  "medium": [{{"index": 3, "reason": "주말 계획"}}]
}}

메시지:
{lines}"""


def is_rate_limit(exc: BaseException) -> bool:
    if isinstance(exc, RateLimitError):
        return True
    text = str(exc)
    return '429' in text or 'RESOURCE_EXHAUSTED' in text


def retry_delay(exc: BaseException) -> float:
    """Backoff before the next attempt: longer for rate limits."""
    if is_rate_limit(exc):
        return config.retry.rate_limit_wait_seconds
    return config.retry.retry_wait_seconds


def resolve_classification(batch: Batch, response: ClassificationResponse) -> FilterResult:
    """
    Map the model's index lists back onto the batch's own messages.

    Unknown indices and repeats are dropped, and an index listed as both
    HIGH and MEDIUM stays HIGH. Content always comes from the batch, never
    from the reply.
    """
    by_index: Dict[int, IndexedMessage] = {m.index: m for m in batch.messages}
    seen = set()

    def collect(items, importance: Importance) -> List[ClassifiedMessage]:
        out = []
        for item in items:
            original = by_index.get(item.index)
            if original is None or item.index in seen:
                continue
            seen.add(item.index)
            out.append(ClassifiedMessage(
                **original.model_dump(), importance=importance, reason=item.reason,
            ))
        return out

    high = collect(response.high, Importance.HIGH)
    medium = collect(response.medium, Importance.MEDIUM)
    return FilterResult.from_lists(high, medium, total=batch.count)


def degraded_result(batch: Batch) -> FilterResult:
    """Whole batch counted as LOW after the classifier gave up."""
    return FilterResult.from_lists([], [], total=batch.count, degraded=True)


async def classify_batch(
    provider: ChatProvider,
    batch: Batch,
    relationship_type: str,
    purpose: str,
    batch_number: int = 1,
    total_batches: int = 1,
    attempts: Optional[int] = None,
    debug_dir: Optional[str] = None,
) -> FilterResult:
    """
    Classify one batch with retry.

    Never raises for provider or parse failures: after the last attempt
    the batch is returned as all-LOW with `degraded=True`.
    """
    if attempts is None:
        attempts = config.retry.attempts
    if debug_dir is None:
        debug_dir = config.debug_dir

    prompt = build_classification_prompt(batch, relationship_type, purpose)
    tag = f'batch {batch_number}/{total_batches}'

    for attempt in range(attempts):
        raw = None
        try:
            raw = await provider.complete(SYSTEM_PROMPT, prompt)
            parsed = ResponseNormalizer.parse(raw, dict)
            response = ClassificationResponse.model_validate(parsed)
            result = resolve_classification(batch, response)

            write_debug(debug_dir, f'classify_batch{batch.batch_id}_attempt{attempt + 1}', {
                "prompt": prompt, "raw_response": raw, "stats": result.stats.model_dump(),
            })
            log('classifier', f'{tag}: {result.stats.high} HIGH, {result.stats.medium} MEDIUM, '
                              f'{result.stats.low} LOW')
            return result

        except (ProviderError, ResponseParseError, ValidationError) as e:
            write_debug(debug_dir, f'classify_batch{batch.batch_id}_error_attempt{attempt + 1}', {
                "error_type": type(e).__name__,
                "error_message": str(e),
                "attempt": attempt + 1,
                "max_retries": attempts,
                "raw_response": raw[:1000] if raw else "No response",
                "traceback": traceback.format_exc(),
            })
            if attempt < attempts - 1:
                delay = retry_delay(e)
                warn('classifier', f'{tag}: {type(e).__name__} (attempt {attempt + 1}/{attempts}), '
                                   f'retrying in {delay:g}s...')
                await asyncio.sleep(delay)
            else:
                error('classifier', f'{tag}: failed after {attempts} attempts ({e}); '
                                    f'counting {batch.count} messages as LOW')

    return degraded_result(batch)


async def classify_batches(
    provider: ChatProvider,
    batches: List[Batch],
    relationship_type: str,
    purpose: str,
    spacing_seconds: Optional[float] = None,
) -> List[FilterResult]:
    """Classify batches sequentially, pausing between calls. Results keep batch order."""
    if spacing_seconds is None:
        spacing_seconds = config.pipeline.classification_spacing_seconds

    results = []
    for i, batch in enumerate(batches, 1):
        results.append(await classify_batch(provider, batch, relationship_type, purpose, i, len(batches)))
        if i < len(batches):
            await asyncio.sleep(spacing_seconds)
    return results


def merge_filter_results(results: List[FilterResult]) -> FilterResult:
    """
    Combine per-batch results into one.

    HIGH is first-seen-wins by index. MEDIUM keeps an index only if no
    HIGH entry (from any batch) and no earlier MEDIUM entry claims it.
    Both lists come back in conversation order whatever order the replies
    used. total is the sum of the batch totals; LOW is what remains.
    """
    high: List[ClassifiedMessage] = []
    high_seen = set()
    for result in results:
        for msg in result.high:
            if msg.index not in high_seen:
                high_seen.add(msg.index)
                high.append(msg)

    medium: List[ClassifiedMessage] = []
    medium_seen = set()
    for result in results:
        for msg in result.medium:
            if msg.index in high_seen or msg.index in medium_seen:
                continue
            medium_seen.add(msg.index)
            medium.append(msg)

    high.sort(key=lambda m: m.index)
    medium.sort(key=lambda m: m.index)
    total = sum(r.stats.total for r in results)
    return FilterResult.from_lists(high, medium, total=total, degraded=any(r.degraded for r in results))
