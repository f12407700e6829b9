"""
Data models shared by every pipeline stage.

Wire-facing records (jobs, deep analysis) serialize with camelCase keys;
stage-internal records keep the snake_case keys the prompts ask for.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Messages -----------------------------------------------------------------

class Message(BaseModel):
    """One parsed chat line."""
    model_config = ConfigDict(frozen=True)

    timestamp: str
    participant: str
    content: str


class IndexedMessage(Message):
    """Message plus its 0-based position in the full conversation."""
    index: int

    def prompt_line(self) -> str:
        return f"[{self.index}] {self.timestamp} {self.participant}: {self.content}"


class Batch(BaseModel):
    batch_id: int
    messages: List[IndexedMessage]
    over_budget: bool = False

    @property
    def count(self) -> int:
        return len(self.messages)

    @property
    def indices(self) -> List[int]:
        return [m.index for m in self.messages]


# --- Importance filter ----------------------------------------------------------

class Importance(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"


class ClassifiedMessage(IndexedMessage):
    importance: Importance
    reason: str = ""


class FilterStats(BaseModel):
    total: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0


class FilterResult(BaseModel):
    """HIGH/MEDIUM messages of one batch (or of the merged conversation)."""
    high: List[ClassifiedMessage] = Field(default_factory=list)
    medium: List[ClassifiedMessage] = Field(default_factory=list)
    stats: FilterStats = Field(default_factory=FilterStats)
    degraded: bool = False

    @classmethod
    def from_lists(cls, high: List[ClassifiedMessage], medium: List[ClassifiedMessage],
                   total: int, degraded: bool = False) -> "FilterResult":
        """Build a result whose counts always agree with its lists."""
        return cls(
            high=high,
            medium=medium,
            stats=FilterStats(
                total=total,
                high=len(high),
                medium=len(medium),
                low=total - len(high) - len(medium),
            ),
            degraded=degraded,
        )


class ClassificationItem(BaseModel):
    """One entry of the classifier's JSON reply; only the index is trusted."""
    model_config = ConfigDict(extra="ignore")

    index: int
    reason: str = ""


class ClassificationResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    high: List[ClassificationItem] = Field(default_factory=list)
    medium: List[ClassificationItem] = Field(default_factory=list)


# --- Pattern summary -------------------------------------------------------------

class TimelineEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    date: str = ""
    description: str = ""
    significance: str = ""


class TurningPoint(BaseModel):
    model_config = ConfigDict(extra="ignore")

    index: int
    date: str = ""
    description: str = ""
    impact: str = ""


class MediumSample(BaseModel):
    model_config = ConfigDict(extra="ignore")

    index: int
    date: str = ""
    category: str = ""


class SummaryStatistics(BaseModel):
    model_config = ConfigDict(extra="ignore")

    total_analyzed: int = 0
    high_count: int = 0
    medium_count: int = 0
    relationship_health: str = ""
    key_themes: List[str] = Field(default_factory=list)


class Summary(BaseModel):
    """Compact structural summary; holds index references, never message text."""
    model_config = ConfigDict(extra="ignore")

    timeline: List[TimelineEvent] = Field(default_factory=list)
    turning_points: List[TurningPoint] = Field(default_factory=list)
    high_indices: Optional[List[int]] = None
    medium_sample: List[MediumSample] = Field(default_factory=list)
    statistics: SummaryStatistics = Field(default_factory=SummaryStatistics)


# --- Deep analysis -----------------------------------------------------------------

class CommunicationPatterns(CamelModel):
    tikitaka_analysis: str = ""
    conversation_flow: str = ""
    response_patterns: str = ""


class EmotionalMoment(CamelModel):
    type: str = ""
    description: str = ""
    context: str = ""


class EmotionalDynamics(CamelModel):
    sentiment_trends: str = ""
    emotional_moments: List[EmotionalMoment] = Field(default_factory=list)
    emotional_balance: str = ""


class PsychologicalInsights(CamelModel):
    attachment_style: str = ""
    conflict_resolution: str = ""
    intimacy_patterns: str = ""
    communication_barriers: str = ""


class RelationshipHealth(CamelModel):
    current_state: str = ""
    strengths: List[str] = Field(default_factory=list)
    concerns: List[str] = Field(default_factory=list)
    trajectory: str = ""


class PracticalAdvice(CamelModel):
    immediate_actions: List[str] = Field(default_factory=list)
    long_term_strategies: List[str] = Field(default_factory=list)
    communication_tips: List[str] = Field(default_factory=list)


class DeepAnalysis(CamelModel):
    relationship_overview: str = ""
    communication_patterns: CommunicationPatterns = Field(default_factory=CommunicationPatterns)
    emotional_dynamics: EmotionalDynamics = Field(default_factory=EmotionalDynamics)
    psychological_insights: PsychologicalInsights = Field(default_factory=PsychologicalInsights)
    relationship_health: RelationshipHealth = Field(default_factory=RelationshipHealth)
    practical_advice: PracticalAdvice = Field(default_factory=PracticalAdvice)
    conclusion: str = ""


class AnalysisMetadata(CamelModel):
    analyzed_messages: int = 0
    high_priority_count: int = 0
    medium_sample_count: int = 0
    analysis_depth: str = "comprehensive"
    processing_time: float = 0.0


class DeepAnalysisResult(CamelModel):
    analysis: DeepAnalysis
    metadata: AnalysisMetadata = Field(default_factory=AnalysisMetadata)


# --- Planner inputs -------------------------------------------------------------------

class TokenEstimate(BaseModel):
    system: int = 0
    summary: int = 0
    high: int = 0
    medium: int = 0
    context: int = 0

    @property
    def total(self) -> int:
        return self.system + self.summary + self.high + self.medium + self.context


class RelationshipPeriod(BaseModel):
    start: str = ""
    end: str = ""
    duration: str = ""


class RelationshipStatistics(BaseModel):
    total_messages: int = 0
    filtered_high: int = 0
    filtered_medium: int = 0
    average_per_day: float = 0.0


class RelationshipContext(BaseModel):
    type: str
    purpose: str
    participants: List[str] = Field(default_factory=list)
    period: RelationshipPeriod = Field(default_factory=RelationshipPeriod)
    statistics: RelationshipStatistics = Field(default_factory=RelationshipStatistics)
    background: str = ""


class DeepAnalysisBatchInput(BaseModel):
    batch_id: int
    system_prompt: str
    summary: Summary
    high_messages: List[IndexedMessage]
    medium_samples: List[IndexedMessage] = Field(default_factory=list)
    relationship_context: RelationshipContext
    token_estimate: TokenEstimate
    over_budget: bool = False


# --- Jobs ----------------------------------------------------------------------------

class Insight(CamelModel):
    title: str
    description: str


class JobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)


class AnalysisJob(CamelModel):
    """One submitted analysis and everything produced for it so far."""
    id: str
    file_name: str
    file_size: int = 0
    uploaded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: JobStatus = JobStatus.PROCESSING
    messages: List[Message] = Field(default_factory=list)
    user_purpose: Optional[str] = None
    primary_relationship: Optional[str] = None
    stats: Optional[Dict[str, Any]] = None
    charts: Optional[Dict[str, Any]] = None
    insights: Optional[List[Insight]] = None
    deep_analysis: Optional[DeepAnalysisResult] = None
    error: Optional[str] = None
    pipeline_path: Optional[str] = None
    fallback_reason: Optional[str] = None


class AnalysisRequest(CamelModel):
    file_name: str
    file_content: str
    file_size: Optional[int] = None
    primary_relationship: str = ""
    secondary_relationships: List[str] = Field(default_factory=list)
    user_purpose: str = ""
