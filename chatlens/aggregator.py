#!/usr/bin/env python3
"""
Merge per-batch deep analyses into one report and derive insight cards.
"""

from typing import Iterable, List

from chatlens.models import AnalysisMetadata, DeepAnalysisResult, Insight


def union_ordered(*lists: Iterable[str]) -> List[str]:
    """Union of string lists, duplicates removed, first-seen order kept."""
    seen = set()
    out = []
    for items in lists:
        for item in items:
            if item not in seen:
                seen.add(item)
                out.append(item)
    return out


def aggregate_results(results: List[DeepAnalysisResult]) -> DeepAnalysisResult:
    """
    Fold sequential batch results into one.

    The first result is the base and its narrative fields win. With more
    than one result the practical-advice lists become ordered unions and
    the metadata counts are summed. A single result passes through as is.
    """
    if not results:
        raise ValueError("No deep-analysis results to aggregate")
    if len(results) == 1:
        return results[0]

    base = results[0]
    advice = [r.analysis.practical_advice for r in results]
    merged_advice = base.analysis.practical_advice.model_copy(update={
        "immediate_actions": union_ordered(*(a.immediate_actions for a in advice)),
        "long_term_strategies": union_ordered(*(a.long_term_strategies for a in advice)),
        "communication_tips": union_ordered(*(a.communication_tips for a in advice)),
    })

    metadata = AnalysisMetadata(
        analyzed_messages=sum(r.metadata.analyzed_messages for r in results),
        high_priority_count=sum(r.metadata.high_priority_count for r in results),
        medium_sample_count=sum(r.metadata.medium_sample_count for r in results),
        analysis_depth=(
            'comprehensive'
            if all(r.metadata.analysis_depth == 'comprehensive' for r in results)
            else 'partial'
        ),
        processing_time=round(sum(r.metadata.processing_time for r in results), 2),
    )

    return DeepAnalysisResult(
        analysis=base.analysis.model_copy(update={"practical_advice": merged_advice}),
        metadata=metadata,
    )


def _bullets(items: List[str], limit: int = 3) -> str:
    return "\n".join(f"• {item}" for item in items[:limit])


def build_insight_cards(result: DeepAnalysisResult, participants: List[str]) -> List[Insight]:
    """Fixed six-card layout shown on the results page."""
    a = result.analysis
    names = " & ".join(participants[:2]) if participants else "두 사람"

    communication = "\n".join(filter(None, [
        a.communication_patterns.tikitaka_analysis,
        a.communication_patterns.conversation_flow,
    ]))
    emotion = "\n".join(filter(None, [
        a.emotional_dynamics.sentiment_trends,
        a.emotional_dynamics.emotional_balance,
    ]))
    psychology = "\n".join(filter(None, [
        f"애착 유형: {a.psychological_insights.attachment_style}" if a.psychological_insights.attachment_style else "",
        f"갈등 해결: {a.psychological_insights.conflict_resolution}" if a.psychological_insights.conflict_resolution else "",
    ]))
    health_parts = [a.relationship_health.current_state]
    if a.relationship_health.strengths:
        health_parts.append("강점\n" + _bullets(a.relationship_health.strengths))
    if a.relationship_health.concerns:
        health_parts.append("주의할 점\n" + _bullets(a.relationship_health.concerns))
    advice = a.practical_advice
    advice_items = union_ordered(advice.immediate_actions, advice.communication_tips)

    return [
        Insight(title=f"💞 {names}의 관계 개요", description=a.relationship_overview or "관계 개요 분석 중..."),
        Insight(title="💬 대화 패턴", description=communication or "대화 패턴 분석 중..."),
        Insight(title="🌊 감정의 흐름", description=emotion or "감정 흐름 분석 중..."),
        Insight(title="🧠 심리적 인사이트", description=psychology or "심리 분석 중..."),
        Insight(title="🩺 관계 건강도", description="\n\n".join(filter(None, health_parts)) or "관계 상태 분석 중..."),
        Insight(title="🎯 실천 조언", description=(
            _bullets(advice_items, limit=5) or a.conclusion or "맞춤 조언을 준비 중입니다."
        )),
    ]
