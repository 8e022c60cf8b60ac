"""Pydantic data models for the sales intelligence pipeline."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Cache models
# ---------------------------------------------------------------------------

class CacheType(str, Enum):
    """Type tag stored alongside every cache entry (introspection / bulk clear)."""
    SALES_INTELLIGENCE = "sales_intelligence_cache"
    COMPANY_OVERVIEW = "company_overview"
    SEARCH_RESULTS = "serp_api_organic_results"
    ASYNC_REQUEST = "async_request_tracking"
    WORKFLOW_EXECUTION = "step_function_execution"
    UNKNOWN = "unknown"


class CacheEntry(BaseModel):
    """A single stored value. Immutable once written; a new set overwrites."""
    model_config = ConfigDict(frozen=True)

    key: str
    value: Any = None
    created_at: datetime
    ttl_hours: float
    compressed: bool = False
    type: CacheType = CacheType.UNKNOWN


# ---------------------------------------------------------------------------
# Search models
# ---------------------------------------------------------------------------

class SearchResult(BaseModel):
    """A single organic search result."""
    url: str
    title: str = ""
    snippet: str = ""
    source_domain: str = ""


class SearchResponse(BaseModel):
    """Results for one query. Empty on failure, never raised."""
    results: list[SearchResult] = Field(default_factory=list)
    total_results: int = 0
    search_time: float = 0.0  # seconds
    query: str = ""
    from_cache: bool = False
    error: str | None = None


# ---------------------------------------------------------------------------
# Fetch models
# ---------------------------------------------------------------------------

class FetchResult(BaseModel):
    """Content fetched from one URL. content is None iff the fetch failed."""
    url: str
    content: str | None = None
    error: str | None = None
    fetch_time: float = 0.0  # seconds
    status_code: int | None = None

    @property
    def ok(self) -> bool:
        return self.content is not None


class RelevancyScored(BaseModel):
    """A fetch result that survived relevancy filtering."""
    fetch: FetchResult
    score: float = Field(ge=0.0, le=1.0)
    search_result: SearchResult | None = None


# ---------------------------------------------------------------------------
# Source models
# ---------------------------------------------------------------------------

SourceType = Literal[
    "news", "company", "blog", "social", "press_release",
    "report", "financial", "educational", "other",
]


class AuthoritativeSource(BaseModel):
    """A numbered source; id is the citation number used as [id]."""
    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=1)
    url: str
    title: str = ""
    domain: str = ""
    source_type: SourceType = "other"
    snippet: str = ""
    credibility_score: float = Field(default=0.5, ge=0.0, le=1.0)
    relevancy_score: float = Field(default=0.0, ge=0.0, le=1.0)
    published_date: str | None = None
    author: str | None = None


# ---------------------------------------------------------------------------
# Gap analysis models
# ---------------------------------------------------------------------------

DataQuality = Literal["excellent", "good", "fair", "poor"]
ConfidenceLevel = Literal["high", "medium", "low"]


class CriticalUrl(BaseModel):
    url: str
    reason: str = ""
    priority: int = 5

    @field_validator("priority", mode="before")
    @classmethod
    def coerce_priority(cls, v):
        try:
            return int(float(v))
        except (TypeError, ValueError):
            return 5


class GapAnalysis(BaseModel):
    """What snippets already tell us, and what is still missing."""
    summary: str = ""
    key_insights: list[str] = Field(default_factory=list)
    identified_gaps: list[str] = Field(default_factory=list)
    data_quality: DataQuality = "fair"
    confidence_level: ConfidenceLevel = "medium"
    critical_urls: list[CriticalUrl] = Field(default_factory=list)
    additional_questions_needed: list[str] = Field(default_factory=list)

    @field_validator("data_quality", mode="before")
    @classmethod
    def coerce_quality(cls, v):
        v = str(v or "").strip().lower()
        return v if v in ("excellent", "good", "fair", "poor") else "fair"

    @field_validator("confidence_level", mode="before")
    @classmethod
    def coerce_confidence(cls, v):
        v = str(v or "").strip().lower()
        return v if v in ("high", "medium", "low") else "medium"

    @classmethod
    def empty(cls) -> GapAnalysis:
        """Conservative result used when the model call itself fails."""
        return cls(data_quality="poor", confidence_level="low")


class OverviewGapAnalysis(BaseModel):
    """Overview-gap variant: insights keyed by topic plus URLs worth fetching."""
    snippet_insights: dict[str, Any] = Field(default_factory=dict)
    missing_info: list[str] = Field(default_factory=list)
    critical_urls: list[CriticalUrl] = Field(default_factory=list)
    confidence: float = 0.5

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v):
        try:
            v = float(v)
        except (TypeError, ValueError):
            return 0.5
        if v > 1.0:  # model sometimes answers on a 0-100 scale
            v = v / 100.0
        return max(0.0, min(1.0, v))


# ---------------------------------------------------------------------------
# Synthesized insight models
# ---------------------------------------------------------------------------

class CitedContent(BaseModel):
    """A statement plus the source ids ([n]) backing it."""
    text: str
    citations: list[int] = Field(default_factory=list)


class GrowthSignals(BaseModel):
    hiring: list[CitedContent] = Field(default_factory=list)
    funding: list[CitedContent] = Field(default_factory=list)
    expansion: list[CitedContent] = Field(default_factory=list)
    new_products: list[CitedContent] = Field(default_factory=list)
    partnerships: list[CitedContent] = Field(default_factory=list)


class CompanyProfile(BaseModel):
    name: str = ""
    industry: str = ""
    size: str = ""
    size_citations: list[int] = Field(default_factory=list)
    revenue: str = ""
    revenue_citations: list[int] = Field(default_factory=list)
    recent_news: list[CitedContent] = Field(default_factory=list)
    growth: GrowthSignals = Field(default_factory=GrowthSignals)
    challenges: list[CitedContent] = Field(default_factory=list)

    @field_validator("name", "industry", "size", "revenue", mode="before")
    @classmethod
    def coerce_to_str(cls, v):
        if v is None:
            return ""
        return str(v)


class TechnologyStack(BaseModel):
    current: list[str] = Field(default_factory=list)
    planned: list[str] = Field(default_factory=list)
    vendors: list[str] = Field(default_factory=list)
    modernization_areas: list[str] = Field(default_factory=list)


class KeyContact(BaseModel):
    name: str = ""
    title: str = ""
    department: str = ""
    influence: str = ""
    approach_strategy: str = ""


class Competitor(BaseModel):
    name: str
    market_share: str = ""
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)


class CompetitiveLandscape(BaseModel):
    competitors: list[Competitor] = Field(default_factory=list)
    market_position: str = ""
    differentiators: list[CitedContent] = Field(default_factory=list)
    vulnerabilities: list[CitedContent] = Field(default_factory=list)
    battle_cards: list[str] = Field(default_factory=list)


class ObjectionResponse(BaseModel):
    objection: str
    response: str = ""
    citations: list[int] = Field(default_factory=list)


class ConfidenceBreakdown(BaseModel):
    """All three values on a 0-100 scale."""
    overall: float = 0.0
    data_quality: float = 0.0
    source_reliability: float = 0.0

    @field_validator("overall", "data_quality", "source_reliability", mode="before")
    @classmethod
    def clamp_percent(cls, v):
        try:
            v = float(v)
        except (TypeError, ValueError):
            return 0.0
        # fractions below 1 are read as 0..1 scores
        if 0.0 < v < 1.0:
            v = v * 100.0
        return max(0.0, min(100.0, v))


class SynthesizedInsights(BaseModel):
    """Fully-typed synthesis result. Every field is always present."""
    company_overview: CompanyProfile = Field(default_factory=CompanyProfile)
    pain_points: list[CitedContent] = Field(default_factory=list)
    key_insights: list[CitedContent] = Field(default_factory=list)
    opportunities: list[CitedContent] = Field(default_factory=list)
    competitive_advantages: list[CitedContent] = Field(default_factory=list)
    risk_factors: list[CitedContent] = Field(default_factory=list)
    next_steps: list[CitedContent] = Field(default_factory=list)
    technology_stack: TechnologyStack = Field(default_factory=TechnologyStack)
    key_contacts: list[KeyContact] = Field(default_factory=list)
    competitive_landscape: CompetitiveLandscape = Field(default_factory=CompetitiveLandscape)
    talking_points: list[CitedContent] = Field(default_factory=list)
    potential_objections: list[ObjectionResponse] = Field(default_factory=list)
    recommended_actions: list[CitedContent] = Field(default_factory=list)
    deal_probability: int = 0
    deal_probability_citations: list[int] = Field(default_factory=list)
    confidence: ConfidenceBreakdown = Field(default_factory=ConfidenceBreakdown)

    @field_validator("deal_probability", mode="before")
    @classmethod
    def clamp_probability(cls, v):
        try:
            v = int(round(float(v)))
        except (TypeError, ValueError):
            return 0
        return max(0, min(100, v))

    @classmethod
    def conservative_default(cls, company_name: str = "") -> SynthesizedInsights:
        """Returned when synthesis fails outright."""
        return cls(
            company_overview=CompanyProfile(name=company_name),
            confidence=ConfidenceBreakdown(overall=25, data_quality=25, source_reliability=25),
        )


# ---------------------------------------------------------------------------
# Pipeline result
# ---------------------------------------------------------------------------

class IntelligenceResult(BaseModel):
    """Complete output of one pipeline run (this is what gets cached)."""
    company_name: str
    domain: str
    sales_context: str
    seller_company: str | None = None
    insights: SynthesizedInsights = Field(default_factory=SynthesizedInsights)
    sources: list[AuthoritativeSource] = Field(default_factory=list)
    confidence_score: float = Field(default=0.0, ge=0.0, le=1.0)
    generated_at: str = Field(default_factory=lambda: datetime.now().isoformat())
    cache_key: str = ""
    total_sources: int = 0
    citation_map: dict[int, str] = Field(default_factory=dict)
    queries: list[str] = Field(default_factory=list)
    gap_analysis: GapAnalysis | None = None
    overview_gap: OverviewGapAnalysis | None = None
    company_record: dict[str, Any] | None = None
    degraded_reasons: list[str] = Field(default_factory=list)
    insight_support: float = 0.0  # % of insight statements grounded in fetched content
    from_cache: bool = False


# ---------------------------------------------------------------------------
# Async request tracking
# ---------------------------------------------------------------------------

RequestStatus = Literal["pending", "processing", "completed", "failed"]
RequestType = Literal["overview", "search", "analysis", "discovery"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})


class AsyncRequest(BaseModel):
    """Persisted record for a long-running request the caller polls."""
    request_id: str
    status: RequestStatus = "pending"
    company_domain: str
    request_type: RequestType
    created_at: datetime
    updated_at: datetime
    expires_at: datetime
    result: dict[str, Any] | None = None
    error: str | None = None
    additional_data: dict[str, Any] | None = None
    processing_time: float | None = None  # seconds, set once terminal

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


# ---------------------------------------------------------------------------
# Workflow progress
# ---------------------------------------------------------------------------

WorkflowStage = Literal[
    "cache_check", "data_collection", "llm_analysis",
    "finalization", "completed", "failed",
]


class WorkflowStep(BaseModel):
    name: str
    description: str
    status: Literal["pending", "running", "completed"] = "pending"


class WorkflowProgress(BaseModel):
    """Coarse 4-stage progress for client polling."""
    execution_id: str
    status: Literal["running", "completed", "failed"]
    current_step: WorkflowStage
    step_number: int
    total_steps: int = 4
    step_description: str = ""
    progress_percent: int
    steps: list[WorkflowStep] = Field(default_factory=list)
    strategy: Literal["terminal", "history", "elapsed_time"] = "history"
    elapsed_seconds: float | None = None
