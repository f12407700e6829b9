#!/usr/bin/env python3
"""
Simplified analysis path: one provider call over a fixed-size sample.

Used when no classification provider is configured, and as the fallback
when the full pipeline fails.
"""

import json
from typing import Dict, List, Optional, Sequence

from config import config
from chatlens.console import log, warn, write_debug
from chatlens.errors import ProviderError, ResponseParseError
from chatlens.models import Insight, Message
from chatlens.normalizer import ResponseNormalizer

SYSTEM_PROMPT = (
    "당신은 따뜻하지만 솔직한 관계 코치입니다. 주어진 지표와 대화 샘플을 근거로 "
    "구체적인 인사이트를 제시하고, 반드시 유효한 JSON만 출력하세요."
)


def sample_messages(messages: Sequence[Message], recent: Optional[int] = None,
                    history: Optional[int] = None) -> List[Message]:
    """
    Deterministic sample: the most recent `recent` messages plus up to
    `history` evenly spaced earlier ones, in conversation order.
    """
    if recent is None:
        recent = config.pipeline.simple_recent_sample
    if history is None:
        history = config.pipeline.simple_history_sample

    if len(messages) <= recent + history:
        return list(messages)

    split = len(messages) - recent
    if history <= 0:
        return list(messages[split:])
    step = split / history
    earlier = [messages[int(i * step)] for i in range(history)]
    return earlier + list(messages[split:])


def build_simple_prompt(sample: Sequence[Message], metrics: Dict, relationship_type: str,
                        purpose: str, max_insights: int) -> str:
    lines = "\n".join(f"[{m.timestamp}] {m.participant}: {m.content}" for m in sample)
    return f"""관계 유형: {relationship_type}
분석 목적: {purpose}

## 정확히 계산된 지표
{json.dumps(metrics, ensure_ascii=False, indent=2)}

## 대화 샘플 ({len(sample)}개)
{lines}

지표와 샘플을 근거로 최대 {max_insights}개의 인사이트를 작성하세요. JSON 형식으로 출력:
{{
  "sentimentScore": 0,
  "insights": [{{"title": "이모지 + 제목", "description": "근거가 담긴 설명"}}]
}}"""


def default_insights(metrics: Dict) -> List[Insight]:
    """Cards built from local metrics alone."""
    user, partner = metrics["participants"]
    ratio = metrics["messageRatio"]
    response = metrics["avgResponseTime"]
    sentiment = metrics["sentimentRatio"]
    return [
        Insight(title="🎵 티키타카 지수",
                description=f"두 사람의 대화 리듬 점수는 {metrics['tikitakaScore']}점입니다."),
        Insight(title="⚖️ 대화 균형",
                description=f"{user} {round(ratio[user] * 100)}% · {partner} {round(ratio[partner] * 100)}%"),
        Insight(title="⏱️ 응답 속도",
                description=f"평균 응답 시간은 {user} {response[user]}분, {partner} {response[partner]}분입니다."),
        Insight(title="🌈 감정 분포",
                description=f"긍정 {round(sentiment['positive'] * 100)}%, 중립 {round(sentiment['neutral'] * 100)}%, "
                            f"부정 {round(sentiment['negative'] * 100)}%"),
    ]


def parse_insights(raw: str, max_insights: int) -> Dict:
    data = ResponseNormalizer.parse(raw, dict)
    items = data.get('insights')
    if not isinstance(items, list):
        raise ResponseParseError("Reply has no insights list", raw=raw[:1000])
    insights = []
    for item in items:
        if isinstance(item, dict) and item.get('title') and item.get('description'):
            insights.append(Insight(title=str(item['title']), description=str(item['description'])))
    if not insights:
        raise ResponseParseError("Reply contained no usable insights", raw=raw[:1000])

    score = data.get('sentimentScore')
    return {
        "insights": insights[:max_insights],
        "sentimentScore": score if isinstance(score, (int, float)) else None,
    }


async def analyze_simple(provider, messages: Sequence[Message], metrics: Dict,
                         relationship_type: str, purpose: str,
                         debug_dir: Optional[str] = None) -> Dict:
    """
    One-call analysis.

    Returns {"insights": [...], "sentimentScore": ...}. Provider errors
    propagate; an unparseable reply yields the metric-based default cards.
    """
    if provider is None:
        raise ProviderError("Simple analysis provider is not configured", provider="simple_analysis")
    if debug_dir is None:
        debug_dir = config.debug_dir

    max_insights = config.pipeline.max_insights
    sample = sample_messages(messages)
    prompt = build_simple_prompt(sample, metrics, relationship_type, purpose, max_insights)
    log('simple', f'Analyzing {len(sample)} of {len(messages)} messages in one call')

    raw = await provider.complete(SYSTEM_PROMPT, prompt)
    write_debug(debug_dir, 'simple_analysis', {"prompt": prompt, "raw_response": raw})

    try:
        return parse_insights(raw, max_insights)
    except ResponseParseError as e:
        warn('simple', f'Unusable reply ({e}); using metric-based insights')
        return {"insights": default_insights(metrics)[:max_insights], "sentimentScore": None}
