#!/usr/bin/env python3
"""
Analysis orchestrator.

Full path: segment -> classify -> merge -> summarize -> plan ->
deep analysis per batch -> aggregate -> insight cards.
Simplified path: one call over a message sample.

The full path runs when a classification provider is configured. If it
fails anywhere, the whole job is retried once on the simplified path
and only a failure there marks the job failed.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from config import config
from chatlens.aggregator import aggregate_results, build_insight_cards
from chatlens.classifier import classify_batches, merge_filter_results
from chatlens.console import log, error
from chatlens.deep_analysis import analyze_deep
from chatlens.errors import InputValidationError, PipelineError
from chatlens.metrics import compute_metrics
from chatlens.models import (
    AnalysisJob, AnalysisRequest, DeepAnalysisResult, FilterResult, IndexedMessage, Insight, JobStatus,
    Summary,
)
from chatlens.parser import ParsedConversation, calculate_stats, generate_chart_data, parse_chat
from chatlens.planner import build_batch_inputs, build_relationship_context, resolve_medium_candidates
from chatlens.providers import Providers
from chatlens.segmentation import index_messages, segment_by_sessions
from chatlens.simple import analyze_simple
from chatlens.store import JobStore
from chatlens.summarizer import summarize


class PipelineState(str, Enum):
    FULL_PIPELINE = "full_pipeline"
    SIMPLE_PATH = "simple_path"
    FULL_PIPELINE_FAILED = "full_pipeline_failed"
    ATTEMPT_FALLBACK = "attempt_fallback"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = (PipelineState.COMPLETED, PipelineState.FAILED)

PATH_NAMES = {
    PipelineState.FULL_PIPELINE: "full",
    PipelineState.SIMPLE_PATH: "simple",
    PipelineState.ATTEMPT_FALLBACK: "fallback",
}


def initial_state(full_pipeline_available: bool) -> PipelineState:
    return PipelineState.FULL_PIPELINE if full_pipeline_available else PipelineState.SIMPLE_PATH


def next_state(state: PipelineState, succeeded: bool) -> PipelineState:
    """Transition after running `state`."""
    if state == PipelineState.FULL_PIPELINE:
        return PipelineState.COMPLETED if succeeded else PipelineState.FULL_PIPELINE_FAILED
    if state == PipelineState.FULL_PIPELINE_FAILED:
        return PipelineState.ATTEMPT_FALLBACK
    if state in (PipelineState.SIMPLE_PATH, PipelineState.ATTEMPT_FALLBACK):
        return PipelineState.COMPLETED if succeeded else PipelineState.FAILED
    raise ValueError(f"No transition out of terminal state {state.value}")


@dataclass
class JobContext:
    """Everything one job produces on its way through the pipeline."""
    job_id: str
    relationship_type: str
    purpose: str
    messages: List[IndexedMessage]
    participants: List[str]
    metrics: Dict
    secondary_relationships: List[str] = field(default_factory=list)
    state: Optional[PipelineState] = None
    path: Optional[str] = None
    filter_results: List[FilterResult] = field(default_factory=list)
    merged: Optional[FilterResult] = None
    summary: Optional[Summary] = None
    deep_results: List[DeepAnalysisResult] = field(default_factory=list)
    report: Optional[DeepAnalysisResult] = None
    insights: List[Insight] = field(default_factory=list)
    sentiment_score: Optional[float] = None
    fallback_reason: Optional[str] = None
    error: Optional[str] = None


def local_sentiment_score(metrics: Dict) -> int:
    """0-100 score from keyword sentiment; 50 is neutral."""
    ratio = metrics["sentimentRatio"]
    return round(50 + 50 * (ratio["positive"] - ratio["negative"]))


@dataclass
class PreparedConversation:
    parsed: ParsedConversation
    metrics: Dict
    stats: Dict
    charts: Dict


def prepare_conversation(content: str) -> PreparedConversation:
    """Parse an export and compute the local metrics, stats and charts."""
    parsed = parse_chat(content)
    if not parsed.messages:
        return PreparedConversation(parsed, {}, {}, {})

    metrics = compute_metrics(parsed.messages)
    stats = calculate_stats(parsed.messages, parsed.participants)
    stats.update(sentimentScore=local_sentiment_score(metrics), tikitakaScore=metrics["tikitakaScore"])
    charts = generate_chart_data(parsed.messages)
    charts["sentimentDistribution"] = metrics["sentimentRatio"]
    return PreparedConversation(parsed, metrics, stats, charts)


class AnalysisPipeline:
    """Owns the job store and one background task per submitted job."""

    def __init__(self, providers: Providers, store: Optional[JobStore] = None):
        self.providers = providers
        self.store = store or JobStore()
        self._tasks: Dict[str, asyncio.Task] = {}

    def submit(self, request: AnalysisRequest) -> AnalysisJob:
        """
        Validate, create the job and start its task.

        Must be called with a running event loop. Returns before the file
        is parsed and before any provider call is made; messages, stats and
        charts appear on the job once its task has parsed the export.

        Raises:
            InputValidationError: empty content or purpose
        """
        if not request.file_content or not request.file_content.strip():
            raise InputValidationError("File content is required")
        if not request.user_purpose or not request.user_purpose.strip():
            raise InputValidationError("Analysis purpose is required")

        relationship_type = request.primary_relationship.strip() or config.relationship.default_type
        job = self.store.create(
            file_name=request.file_name,
            file_size=request.file_size if request.file_size is not None else len(request.file_content.encode('utf-8')),
            user_purpose=request.user_purpose,
            primary_relationship=relationship_type,
        )

        task = asyncio.create_task(self.run_job(job.id, request, relationship_type))
        self._tasks[job.id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job.id, None))
        return job

    async def wait(self, job_id: str) -> AnalysisJob:
        """Await a job's task and return its final record."""
        task = self._tasks.get(job_id)
        if task is not None:
            await task
        return self.store.require(job_id)

    async def run_job(self, job_id: str, request: AnalysisRequest, relationship_type: str) -> Optional[JobContext]:
        """Parse the export off the event loop, store the local results, then analyze."""
        try:
            prepared = await asyncio.to_thread(prepare_conversation, request.file_content)
        except Exception as e:
            return self._fail_early(job_id, f"Could not read chat export: {e}")

        parsed = prepared.parsed
        if not parsed.messages:
            return self._fail_early(job_id, "No chat messages recognized in file")

        self.store.update(job_id, messages=parsed.messages, stats=prepared.stats, charts=prepared.charts)
        log('pipeline', f'Job {job_id}: {len(parsed.messages):,} messages, '
                        f'{len(parsed.participants)} participants ({relationship_type})')

        ctx = JobContext(
            job_id=job_id,
            relationship_type=relationship_type,
            purpose=request.user_purpose.strip(),
            messages=index_messages(parsed.messages),
            participants=parsed.participants,
            metrics=prepared.metrics,
            secondary_relationships=list(request.secondary_relationships),
        )
        return await self.process(ctx)

    def _fail_early(self, job_id: str, message: str) -> None:
        error('pipeline', f'Job {job_id}: {message}')
        self.store.update(job_id, status=JobStatus.FAILED, error=message)
        return None

    async def process(self, ctx: JobContext) -> JobContext:
        """Drive the state machine for one job to a terminal state."""
        ctx.state = initial_state(self.providers.full_pipeline_available)

        while ctx.state not in TERMINAL_STATES:
            state = ctx.state
            succeeded = True

            if state == PipelineState.FULL_PIPELINE:
                ctx.path = PATH_NAMES[state]
                try:
                    await self.run_full(ctx)
                except Exception as e:
                    succeeded = False
                    ctx.fallback_reason = f"{type(e).__name__}: {e}"
                    error('pipeline', f'Job {ctx.job_id}: full pipeline failed ({ctx.fallback_reason}); '
                                      f'retrying with the simplified path')

            elif state in (PipelineState.SIMPLE_PATH, PipelineState.ATTEMPT_FALLBACK):
                ctx.path = PATH_NAMES[state]
                try:
                    await self.run_simple(ctx)
                except Exception as e:
                    succeeded = False
                    ctx.error = str(e) or type(e).__name__
                    error('pipeline', f'Job {ctx.job_id}: {ctx.path} path failed: {ctx.error}')

            ctx.state = next_state(state, succeeded)

        self._finish(ctx)
        return ctx

    def _finish(self, ctx: JobContext) -> None:
        if ctx.state == PipelineState.COMPLETED:
            stats = dict(self.store.require(ctx.job_id).stats or {})
            if ctx.sentiment_score is not None:
                stats["sentimentScore"] = ctx.sentiment_score
            if ctx.path == PATH_NAMES[PipelineState.FULL_PIPELINE] and ctx.merged is not None:
                stats["filterStats"] = ctx.merged.stats.model_dump()
            self.store.update(
                ctx.job_id,
                status=JobStatus.COMPLETED,
                stats=stats,
                insights=ctx.insights,
                deep_analysis=ctx.report,
                pipeline_path=ctx.path,
                fallback_reason=ctx.fallback_reason,
            )
            log('pipeline', f'Job {ctx.job_id}: completed via {ctx.path} path ({len(ctx.insights)} insights)',
                'green')
        else:
            self.store.update(
                ctx.job_id,
                status=JobStatus.FAILED,
                error=ctx.error,
                pipeline_path=ctx.path,
                fallback_reason=ctx.fallback_reason,
            )

    async def run_full(self, ctx: JobContext) -> None:
        providers = self.providers
        settings = config.pipeline

        if providers.summarization is None:
            raise PipelineError("Summarization provider is not configured")
        if providers.deep_analysis is None:
            raise PipelineError("Deep-analysis provider is not configured")

        batches = segment_by_sessions(ctx.messages, config.segmentation.target_size, config.segmentation.max_size)

        ctx.filter_results = await classify_batches(
            providers.classification, batches, ctx.relationship_type, ctx.purpose,
            spacing_seconds=settings.classification_spacing_seconds,
        )
        ctx.merged = merge_filter_results(ctx.filter_results)
        stats = ctx.merged.stats
        log('pipeline', f'Filtered {stats.total:,} messages: {stats.high} HIGH, {stats.medium} MEDIUM, '
                        f'{stats.low} LOW')

        ctx.summary = await summarize(
            providers.summarization, ctx.merged, ctx.relationship_type, ctx.purpose, len(ctx.messages),
        )

        # Provider rate limit between the summary and the first deep-analysis call
        await asyncio.sleep(settings.summary_cooldown_seconds)

        high_messages = [ctx.messages[i] for i in sorted(set(ctx.summary.high_indices))]
        context = build_relationship_context(
            ctx.messages, ctx.participants, ctx.relationship_type, ctx.purpose,
            high_count=len(high_messages), medium_count=len(ctx.merged.medium),
            secondary_relationships=ctx.secondary_relationships,
        )
        medium_candidates = resolve_medium_candidates(ctx.summary, ctx.messages)
        inputs = build_batch_inputs(high_messages, medium_candidates, ctx.summary, context)

        ctx.deep_results = []
        for i, batch_input in enumerate(inputs):
            if i > 0:
                await asyncio.sleep(settings.deep_analysis_spacing_seconds)
            ctx.deep_results.append(await analyze_deep(providers.deep_analysis, batch_input))

        ctx.report = aggregate_results(ctx.deep_results)
        ctx.insights = build_insight_cards(ctx.report, ctx.participants)

    async def run_simple(self, ctx: JobContext) -> None:
        result = await analyze_simple(
            self.providers.simple_analysis, ctx.messages, ctx.metrics, ctx.relationship_type, ctx.purpose,
        )
        ctx.report = None
        ctx.insights = result["insights"]
        ctx.sentiment_score = result["sentimentScore"]
