#!/usr/bin/env python3
"""
Token-budgeted batch planner.

Splits HIGH messages into deep-analysis batches that fit one context
window after reserving room for the fixed overhead (system prompt,
summary, relationship context). Only the first batch carries a MEDIUM
sample.
"""

import json
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from config import config
from chatlens.console import log, warn, error
from chatlens.errors import TokenBudgetError
from chatlens.models import (
    Batch, DeepAnalysisBatchInput, IndexedMessage, RelationshipContext, RelationshipPeriod,
    RelationshipStatistics, Summary, TokenEstimate,
)
from chatlens.parser import parse_timestamp


def estimate_tokens(text: str, chars_per_token: Optional[float] = None) -> int:
    """Conservative token estimate for Korean-heavy text."""
    if chars_per_token is None:
        chars_per_token = config.budget.chars_per_token
    return math.ceil(len(text) / chars_per_token)


def message_tokens(msg: IndexedMessage) -> int:
    return estimate_tokens(msg.prompt_line())


def messages_tokens(messages: Sequence[IndexedMessage]) -> int:
    return sum(message_tokens(m) for m in messages)


@dataclass
class BatchPlan:
    high_batches: List[Batch] = field(default_factory=list)
    medium_samples_for_first_batch: List[IndexedMessage] = field(default_factory=list)


def plan_batches(high_messages: Sequence[IndexedMessage],
                 medium_candidates: Sequence[IndexedMessage],
                 total_budget: int,
                 overhead_budget: int,
                 medium_budget_cap: int) -> BatchPlan:
    """
    Greedy partition of HIGH messages under the per-batch budget.

    A message that alone exceeds the budget gets its own batch flagged
    over_budget instead of being dropped. MEDIUM candidates are taken in
    order for the first batch until the first one that does not fit.
    With no HIGH messages the plan holds one empty batch, so the summary
    and MEDIUM sample are still analyzed.
    """
    available = total_budget - overhead_budget
    if available <= 0:
        raise TokenBudgetError(
            f"Overhead ({overhead_budget:,}) leaves no room in a {total_budget:,}-token budget"
        )

    batches: List[Batch] = []
    current: List[IndexedMessage] = []
    current_tokens = 0

    def close(over_budget: bool = False):
        batches.append(Batch(batch_id=len(batches) + 1, messages=list(current), over_budget=over_budget))

    for msg in high_messages:
        cost = message_tokens(msg)
        if cost > available:
            if current:
                close()
            current, current_tokens = [msg], cost
            close(over_budget=True)
            warn('planner', f'Message {msg.index} alone needs ~{cost:,} tokens '
                            f'(budget {available:,}); analyzing it in its own batch')
            current, current_tokens = [], 0
            continue
        if current and current_tokens + cost > available:
            close()
            current, current_tokens = [], 0
        current.append(msg)
        current_tokens += cost

    if current or not batches:
        close()

    first = batches[0]
    medium_budget = min(medium_budget_cap, total_budget - overhead_budget - messages_tokens(first.messages))
    medium: List[IndexedMessage] = []
    if not first.over_budget:
        used = 0
        for candidate in medium_candidates:
            cost = message_tokens(candidate)
            if used + cost > medium_budget:
                break
            medium.append(candidate)
            used += cost

    plan = BatchPlan(high_batches=batches, medium_samples_for_first_batch=medium)
    verify_plan(plan, total_budget, overhead_budget)
    return plan


def verify_plan(plan: BatchPlan, total_budget: int, overhead_budget: int) -> None:
    """Raise TokenBudgetError if any regular batch exceeds the total budget."""
    for i, batch in enumerate(plan.high_batches):
        if batch.over_budget:
            if batch.count != 1:
                raise TokenBudgetError(f"Over-budget batch {batch.batch_id} holds {batch.count} messages")
            continue
        total = overhead_budget + messages_tokens(batch.messages)
        if i == 0:
            total += messages_tokens(plan.medium_samples_for_first_batch)
        if total > total_budget:
            error('planner', f'Batch {batch.batch_id} estimated at {total:,} tokens > {total_budget:,}')
            raise TokenBudgetError(
                f"Batch {batch.batch_id} needs {total:,} tokens, budget is {total_budget:,}"
            )


def build_relationship_context(messages: Sequence[IndexedMessage], participants: List[str],
                               relationship_type: str, purpose: str,
                               high_count: int, medium_count: int,
                               secondary_relationships: Optional[List[str]] = None) -> RelationshipContext:
    """Period, volume and background for the deep-analysis prompt."""
    times = [t for t in (parse_timestamp(m.timestamp) for m in messages) if t is not None]
    period = RelationshipPeriod()
    days = 1
    if times:
        start, end = min(times), max(times)
        days = max(1, (end.date() - start.date()).days + 1)
        period = RelationshipPeriod(
            start=start.date().isoformat(),
            end=end.date().isoformat(),
            duration=f"{days}일",
        )

    background = f"{relationship_type} 관계의 대화 {len(messages):,}개를 분석합니다. 분석 목적: {purpose}"
    if secondary_relationships:
        background += f" (추가 관계: {', '.join(secondary_relationships)})"

    return RelationshipContext(
        type=relationship_type,
        purpose=purpose,
        participants=participants,
        period=period,
        statistics=RelationshipStatistics(
            total_messages=len(messages),
            filtered_high=high_count,
            filtered_medium=medium_count,
            average_per_day=round(len(messages) / days, 1),
        ),
        background=background,
    )


def build_system_prompt(context: RelationshipContext) -> str:
    return f"""당신은 15년 경력의 관계 심리 전문가이자 커뮤니케이션 코치입니다.
관계 유형: {context.type}
분석 목적: {context.purpose}

주어진 요약(타임라인, 전환점)과 핵심 메시지를 바탕으로 관계를 깊이 있게 분석하세요.
애착 유형, 갈등 해결 방식, 친밀감 패턴, 소통 장벽을 구체적인 근거와 함께 설명하고,
실천 가능한 조언을 제시하세요.

반드시 아래 JSON 구조로만 응답하세요:
{{
  "relationshipOverview": "...",
  "communicationPatterns": {{"tikitakaAnalysis": "...", "conversationFlow": "...", "responsePatterns": "..."}},
  "emotionalDynamics": {{"sentimentTrends": "...", "emotionalMoments": [{{"type": "...", "description": "...", "context": "..."}}], "emotionalBalance": "..."}},
  "psychologicalInsights": {{"attachmentStyle": "...", "conflictResolution": "...", "intimacyPatterns": "...", "communicationBarriers": "..."}},
  "relationshipHealth": {{"currentState": "...", "strengths": ["..."], "concerns": ["..."], "trajectory": "..."}},
  "practicalAdvice": {{"immediateActions": ["..."], "longTermStrategies": ["..."], "communicationTips": ["..."]}},
  "conclusion": "..."
}}"""


def summary_json(summary: Summary) -> str:
    return json.dumps(summary.model_dump(), ensure_ascii=False)


def resolve_medium_candidates(summary: Summary, messages: Sequence[IndexedMessage],
                              limit: Optional[int] = None) -> List[IndexedMessage]:
    """The summary's MEDIUM sample mapped back onto original messages, in sample order."""
    if limit is None:
        limit = config.pipeline.medium_candidate_limit
    out = []
    seen = set()
    for sample in summary.medium_sample:
        if sample.index in seen or not 0 <= sample.index < len(messages):
            continue
        seen.add(sample.index)
        out.append(messages[sample.index])
        if len(out) >= limit:
            break
    return out


def build_batch_inputs(high_messages: Sequence[IndexedMessage],
                       medium_candidates: Sequence[IndexedMessage],
                       summary: Summary,
                       context: RelationshipContext,
                       total_budget: Optional[int] = None,
                       medium_budget_cap: Optional[int] = None) -> List[DeepAnalysisBatchInput]:
    """
    Plan batches and wrap each in a ready-to-send input.

    Every input's token estimate is checked against the budget; only a
    lone over-budget message may exceed it.
    """
    if total_budget is None:
        total_budget = config.budget.total_tokens
    if medium_budget_cap is None:
        medium_budget_cap = config.budget.medium_cap_tokens

    system_prompt = build_system_prompt(context)
    base = TokenEstimate(
        system=estimate_tokens(system_prompt),
        summary=estimate_tokens(summary_json(summary)),
        context=estimate_tokens(context.model_dump_json()),
    )
    overhead = base.total

    plan = plan_batches(high_messages, medium_candidates, total_budget, overhead, medium_budget_cap)

    inputs = []
    for i, batch in enumerate(plan.high_batches):
        medium = plan.medium_samples_for_first_batch if i == 0 else []
        estimate = base.model_copy(update={
            "high": messages_tokens(batch.messages),
            "medium": messages_tokens(medium),
        })
        if estimate.total > total_budget and not batch.over_budget:
            raise TokenBudgetError(
                f"Input for batch {batch.batch_id} estimated at {estimate.total:,} tokens "
                f"(budget {total_budget:,})"
            )
        inputs.append(DeepAnalysisBatchInput(
            batch_id=batch.batch_id,
            system_prompt=system_prompt,
            summary=summary,
            high_messages=batch.messages,
            medium_samples=medium,
            relationship_context=context,
            token_estimate=estimate,
            over_budget=batch.over_budget,
        ))

    log('planner', f'{len(high_messages)} HIGH -> {len(inputs)} batches, '
                   f'{len(plan.medium_samples_for_first_batch)} MEDIUM samples, '
                   f'overhead ~{overhead:,} tokens')
    return inputs
