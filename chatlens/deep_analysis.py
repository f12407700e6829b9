#!/usr/bin/env python3
"""
Deep relationship analysis, one provider call per planned batch.

Provider failures propagate. An unusable reply is not an error: it
becomes a fallback report built from the raw text, so the aggregator
always has something to merge.
"""

import json
import time
from typing import Any, Dict, Optional

from pydantic import ValidationError

from config import config
from chatlens.console import log, warn, write_debug
from chatlens.errors import ResponseParseError
from chatlens.models import (
    AnalysisMetadata, CommunicationPatterns, DeepAnalysis, DeepAnalysisBatchInput, DeepAnalysisResult,
    EmotionalDynamics, PracticalAdvice, PsychologicalInsights, RelationshipHealth,
)
from chatlens.normalizer import ResponseNormalizer, coerce_str, coerce_str_list
from chatlens.providers import ChatProvider

REQUIRED_SECTIONS = ('relationshipOverview', 'communicationPatterns')

OVERVIEW_FALLBACK_CHARS = 500
CONCLUSION_FALLBACK_CHARS = 300


def build_user_prompt(batch_input: DeepAnalysisBatchInput) -> str:
    ctx = batch_input.relationship_context
    high_lines = "\n".join(m.prompt_line() for m in batch_input.high_messages)
    medium_block = ""
    if batch_input.medium_samples:
        medium_lines = "\n".join(m.prompt_line() for m in batch_input.medium_samples)
        medium_block = f"\n\n## 참고 메시지 (MEDIUM 샘플 {len(batch_input.medium_samples)}개)\n{medium_lines}"

    return f"""## 관계 정보
{ctx.model_dump_json(indent=2)}

## 패턴 요약
{json.dumps(batch_input.summary.model_dump(), ensure_ascii=False, indent=2)}

## 핵심 메시지 (HIGH {len(batch_input.high_messages)}개)
{high_lines or '(없음)'}{medium_block}

위 자료를 바탕으로 관계를 심층 분석하고 JSON으로만 응답하세요."""


def fallback_analysis(raw: str) -> DeepAnalysis:
    """Placeholder report; overview and conclusion keep a prefix of the raw reply."""
    raw = raw or ""
    return DeepAnalysis(
        relationship_overview=raw[:OVERVIEW_FALLBACK_CHARS],
        communication_patterns=CommunicationPatterns(
            tikitaka_analysis="대화 패턴 분석 중...",
            conversation_flow="대화 흐름 분석 중...",
            response_patterns="응답 패턴 분석 중...",
        ),
        emotional_dynamics=EmotionalDynamics(
            sentiment_trends="감정 흐름 분석 중...",
            emotional_moments=[],
            emotional_balance="감정 균형 분석 중...",
        ),
        psychological_insights=PsychologicalInsights(
            attachment_style="애착 유형 분석 중...",
            conflict_resolution="갈등 해결 방식 분석 중...",
            intimacy_patterns="친밀감 패턴 분석 중...",
            communication_barriers="소통 장벽 분석 중...",
        ),
        relationship_health=RelationshipHealth(
            current_state="관계 상태 분석 중...",
            strengths=[],
            concerns=[],
            trajectory="관계 방향 분석 중...",
        ),
        practical_advice=PracticalAdvice(),
        conclusion=raw[:CONCLUSION_FALLBACK_CHARS],
    )


def _coerce_section(data: Dict[str, Any], key: str, list_fields=()) -> Optional[Dict[str, Any]]:
    section = data.get(key)
    if not isinstance(section, dict):
        return None
    out = {}
    for field_name, value in section.items():
        if field_name in list_fields:
            out[field_name] = coerce_str_list(value)
        elif field_name == 'emotionalMoments':
            out[field_name] = [m for m in value if isinstance(m, dict)] if isinstance(value, list) else []
        else:
            out[field_name] = coerce_str(value)
    return out


def parse_analysis(raw: str) -> DeepAnalysis:
    """
    Parse a reply into a full report.

    Raises ResponseParseError when the reply is not JSON or lacks a
    required section.
    """
    data = ResponseNormalizer.normalize_field_names(ResponseNormalizer.parse(raw, dict))
    missing = [k for k in REQUIRED_SECTIONS if not data.get(k)]
    if missing:
        raise ResponseParseError(f"Missing sections: {', '.join(missing)}", raw=raw[:1000])

    cleaned = {
        'relationshipOverview': coerce_str(data.get('relationshipOverview')),
        'conclusion': coerce_str(data.get('conclusion')),
    }
    sections = {
        'communicationPatterns': (),
        'emotionalDynamics': (),
        'psychologicalInsights': (),
        'relationshipHealth': ('strengths', 'concerns'),
        'practicalAdvice': ('immediateActions', 'longTermStrategies', 'communicationTips'),
    }
    for key, list_fields in sections.items():
        section = _coerce_section(data, key, list_fields)
        if section is not None:
            cleaned[key] = section

    try:
        return DeepAnalysis.model_validate(cleaned)
    except ValidationError as e:
        raise ResponseParseError(f"Invalid analysis structure: {e}", raw=raw[:1000]) from e


def salvage_sections(raw: str, fallback: DeepAnalysis) -> DeepAnalysis:
    """Overlay whatever well-formed sections a partial reply contains onto the fallback."""
    try:
        data = ResponseNormalizer.normalize_field_names(ResponseNormalizer.parse(raw, dict))
    except ResponseParseError:
        return fallback

    updates = {}
    models = {
        'communicationPatterns': ('communication_patterns', CommunicationPatterns, ()),
        'emotionalDynamics': ('emotional_dynamics', EmotionalDynamics, ()),
        'psychologicalInsights': ('psychological_insights', PsychologicalInsights, ()),
        'relationshipHealth': ('relationship_health', RelationshipHealth, ('strengths', 'concerns')),
        'practicalAdvice': ('practical_advice', PracticalAdvice,
                            ('immediateActions', 'longTermStrategies', 'communicationTips')),
    }
    for key, (attr, model, list_fields) in models.items():
        section = _coerce_section(data, key, list_fields)
        if not section:
            continue
        try:
            updates[attr] = model.model_validate(section)
        except ValidationError:
            continue
    if isinstance(data.get('relationshipOverview'), str) and data['relationshipOverview']:
        updates['relationship_overview'] = data['relationshipOverview']
    if isinstance(data.get('conclusion'), str) and data['conclusion']:
        updates['conclusion'] = data['conclusion']
    return fallback.model_copy(update=updates)


async def analyze_deep(provider: ChatProvider, batch_input: DeepAnalysisBatchInput,
                       debug_dir: Optional[str] = None) -> DeepAnalysisResult:
    """
    Run deep analysis for one planned batch.

    Provider errors are not retried here; they propagate to the pipeline.
    """
    if debug_dir is None:
        debug_dir = config.debug_dir

    started = time.monotonic()
    prompt = build_user_prompt(batch_input)
    log('deep', f'Batch {batch_input.batch_id}: {len(batch_input.high_messages)} HIGH, '
                f'{len(batch_input.medium_samples)} MEDIUM, ~{batch_input.token_estimate.total:,} tokens')

    raw = await provider.complete(batch_input.system_prompt, prompt)

    depth = 'comprehensive'
    try:
        analysis = parse_analysis(raw)
    except ResponseParseError as e:
        warn('deep', f'Batch {batch_input.batch_id}: unusable reply ({e}); using fallback report')
        analysis = salvage_sections(raw, fallback_analysis(raw))
        depth = 'fallback'

    write_debug(debug_dir, f'deep_batch{batch_input.batch_id}', {
        "system_prompt": batch_input.system_prompt,
        "prompt": prompt,
        "raw_response": raw,
        "analysis_depth": depth,
    })

    return DeepAnalysisResult(
        analysis=analysis,
        metadata=AnalysisMetadata(
            analyzed_messages=len(batch_input.high_messages) + len(batch_input.medium_samples),
            high_priority_count=len(batch_input.high_messages),
            medium_sample_count=len(batch_input.medium_samples),
            analysis_depth=depth,
            processing_time=round(time.monotonic() - started, 2),
        ),
    )
