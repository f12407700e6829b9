#!/usr/bin/env python3
"""
Pattern summarizer.

Builds the structural summary (timeline, turning points, index lists)
from classification metadata only. Message text never leaves the process
at this stage, and any text-bearing keys in the reply are stripped.
"""

import asyncio
import traceback
from typing import Optional

from pydantic import ValidationError

from config import config
from chatlens.classifier import retry_delay
from chatlens.console import log, warn, error, write_debug
from chatlens.errors import ProviderError, ResponseParseError, SummarizationError
from chatlens.models import ClassifiedMessage, FilterResult, Summary
from chatlens.normalizer import ResponseNormalizer, sanitize_content
from chatlens.providers import ChatProvider

SYSTEM_PROMPT = (
    "당신은 관계 패턴을 분석하는 행동 분석가입니다. 원문 없이 메타데이터만으로 분석하며, "
    "반드시 유효한 JSON만 출력하세요."
)


def metadata_line(msg: ClassifiedMessage) -> str:
    return f"[{msg.index}] {msg.timestamp} | {msg.participant} | 이유: {msg.reason}"


def build_summary_prompt(merged: FilterResult, relationship_type: str, purpose: str,
                         medium_limit: int) -> str:
    """Index, date, participant and reason per message. No content."""
    medium = merged.medium[:medium_limit]
    participants = []
    for m in merged.high + medium:
        if m.participant not in participants:
            participants.append(m.participant)
    omitted = len(merged.medium) - len(medium)
    omitted_line = f"\n... 외 {omitted}개" if omitted > 0 else ""
    high_lines = "\n".join(metadata_line(m) for m in merged.high)
    medium_lines = "\n".join(metadata_line(m) for m in medium)

    return f"""## 입력 데이터 (원문 제외)

**HIGH 메시지: {len(merged.high)}개**
{high_lines}

**MEDIUM 메시지: {len(merged.medium)}개 (샘플 {len(medium)}개)**
{medium_lines}{omitted_line}

**통계:**
- 총 메시지: {merged.stats.total}
- 관계: {relationship_type}
- 목적: {purpose}
- 참여자: {', '.join(participants) or '알 수 없음'}

## 임무
1. 시간순 타임라인을 재구성하세요.
2. 관계의 전환점을 찾고, 각 전환점은 HIGH 메시지의 index를 참조하세요.
3. HIGH 메시지 index 전체를 high_indices로 나열하세요.
4. MEDIUM 중 대표 샘플을 골라 medium_sample로 나열하세요 (대표성이 높은 순서).

메시지 원문이나 인용을 출력하지 마세요. JSON 형식으로 출력:
{{
  "timeline": [{{"date": "...", "description": "...", "significance": "..."}}],
  "turning_points": [{{"index": 0, "date": "...", "description": "...", "impact": "..."}}],
  "high_indices": [0],
  "medium_sample": [{{"index": 0, "date": "...", "category": "..."}}],
  "statistics": {{"total_analyzed": 0, "high_count": 0, "medium_count": 0,
                  "relationship_health": "...", "key_themes": ["..."]}}
}}"""


def validate_summary(data: dict, merged: FilterResult, message_count: int) -> Summary:
    """
    Sanitize and bound-check a parsed reply.

    Indices outside [0, message_count) are dropped. A reply without
    high_indices gets the merged HIGH indices instead.
    """
    summary = Summary.model_validate(sanitize_content(data))

    def in_range(i: int) -> bool:
        return 0 <= i < message_count

    high_indices = summary.high_indices
    if high_indices is None:
        high_indices = [m.index for m in merged.high]

    return summary.model_copy(update={
        "high_indices": [i for i in high_indices if in_range(i)],
        "medium_sample": [s for s in summary.medium_sample if in_range(s.index)],
        "turning_points": [t for t in summary.turning_points if in_range(t.index)],
    })


async def summarize(
    provider: Optional[ChatProvider],
    merged: FilterResult,
    relationship_type: str,
    purpose: str,
    message_count: int,
    attempts: Optional[int] = None,
    debug_dir: Optional[str] = None,
) -> Summary:
    """
    Summarize the merged filter result.

    Raises:
        SummarizationError: no provider, or every attempt failed
    """
    if provider is None:
        raise SummarizationError("Summarization provider is not configured")
    if attempts is None:
        attempts = config.retry.attempts
    if debug_dir is None:
        debug_dir = config.debug_dir

    prompt = build_summary_prompt(merged, relationship_type, purpose, config.pipeline.medium_prompt_limit)
    log('summarizer', f'Summarizing {len(merged.high)} HIGH / {len(merged.medium)} MEDIUM '
                      f'({len(prompt):,} chars)')

    last_error: Optional[Exception] = None
    for attempt in range(attempts):
        raw = None
        try:
            raw = await provider.complete(SYSTEM_PROMPT, prompt)
            parsed = ResponseNormalizer.parse(raw, dict)
            summary = validate_summary(parsed, merged, message_count)

            write_debug(debug_dir, f'summary_attempt{attempt + 1}', {
                "prompt": prompt, "raw_response": raw, "summary": summary.model_dump(),
            })
            log('summarizer', f'{len(summary.timeline)} timeline events, '
                              f'{len(summary.turning_points)} turning points, '
                              f'{len(summary.medium_sample)} MEDIUM samples')
            return summary

        except (ProviderError, ResponseParseError, ValidationError) as e:
            last_error = e
            write_debug(debug_dir, f'summary_error_attempt{attempt + 1}', {
                "error_type": type(e).__name__,
                "error_message": str(e),
                "attempt": attempt + 1,
                "raw_response": raw[:1000] if raw else "No response",
                "traceback": traceback.format_exc(),
            })
            if attempt < attempts - 1:
                delay = retry_delay(e)
                warn('summarizer', f'{type(e).__name__} (attempt {attempt + 1}/{attempts}), '
                                   f'retrying in {delay:g}s...')
                await asyncio.sleep(delay)

    error('summarizer', f'Failed after {attempts} attempts: {last_error}')
    raise SummarizationError(f"Summary failed after {attempts} attempts: {last_error}") from last_error

