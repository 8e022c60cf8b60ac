"""Async pipeline orchestration: cache → search → fetch → score → gap analysis → synthesis."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Callable

import httpx

from sales_intel.analysis.gap_analysis import SnippetGapAnalyzer
from sales_intel.analysis.llm_client import build_model_invoker
from sales_intel.analysis.parsing import Degraded, ParseOutcome
from sales_intel.analysis.planner import plan_selective_fetch
from sales_intel.analysis.scoring import (
    calculate_comprehensive_confidence,
    calculate_confidence_score,
    filter_by_quality,
    filter_by_relevancy,
)
from sales_intel.analysis.sources import (
    analyze_sources,
    build_sources,
    build_sources_from_snippets,
    citation_map,
    prioritize_sources_by_type,
    source_stats,
)
from sales_intel.analysis.synthesis import (
    SynthesisEngine,
    calculate_insight_support,
    format_source_content,
)
from sales_intel.cache.keys import cache_key
from sales_intel.cache.store import SqliteStore
from sales_intel.config import Config
from sales_intel.enrichment.apollo import ApolloEntityLookup
from sales_intel.interfaces import ContentFetcher, EntityLookup, ModelInvoker, Store
from sales_intel.models import (
    CacheType,
    GapAnalysis,
    IntelligenceResult,
    OverviewGapAnalysis,
    SynthesizedInsights,
)
from sales_intel.scrape.extractor import HttpContentFetcher
from sales_intel.search.client import SearchClient, flatten_results
from sales_intel.search.duckduckgo_client import DuckDuckGoProvider
from sales_intel.search.serpapi_client import SerpApiProvider
from sales_intel.search.strategy import (
    build_overview_queries,
    build_queries_from_intent,
    classify_intent,
    extract_company_name,
    get_query_strategy,
    normalize_domain,
)
from sales_intel.workflow import (
    ANALYSIS_STATE,
    CACHE_CHECK_STATE,
    CACHE_RESPONSE_STATE,
    COLLECTION_STATE,
)

logger = logging.getLogger(__name__)

OVERVIEW_CONTEXT = "overview"
MIN_OVERVIEW_CONFIDENCE = 0.2


def _no_stage(state_name: str) -> None:
    return None


class IntelligencePipeline:
    """Composes the pipeline stages over injected collaborators.

    Every collaborator (search, fetch, model, store, entity lookup) comes in
    through the constructor so each can be replaced independently.
    """

    def __init__(
        self,
        config: Config,
        search_client: SearchClient,
        fetcher: ContentFetcher,
        model: ModelInvoker,
        store: Store,
        entity_lookup: EntityLookup | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.search_client = search_client
        self.fetcher = fetcher
        self.store = store
        self.entity_lookup = entity_lookup
        self._clock = clock
        self.gap_analyzer = SnippetGapAnalyzer(model, config)
        self.synthesis = SynthesisEngine(model, config)

    @classmethod
    def from_config(cls, config: Config, store: Store | None = None) -> IntelligencePipeline:
        """Wire the production collaborators from configuration."""
        store = store or SqliteStore.from_config(config)
        if config.serpapi_key:
            provider = SerpApiProvider(config.serpapi_key, timeout=config.search_timeout)
        else:
            provider = DuckDuckGoProvider()
        http_client = httpx.AsyncClient(
            follow_redirects=True,
            max_redirects=config.fetch_max_redirects,
            timeout=config.fetch_timeout,
        )
        lookup = ApolloEntityLookup(config.apollo_api_key) if config.apollo_api_key else None
        return cls(
            config,
            search_client=SearchClient(provider, config, store=store),
            fetcher=HttpContentFetcher(config, client=http_client),
            model=build_model_invoker(config),
            store=store,
            entity_lookup=lookup,
        )

    # ------------------------------------------------------------------
    # Context-specific intelligence
    # ------------------------------------------------------------------

    async def generate_intelligence(
        self,
        domain: str,
        sales_context: str,
        seller_company: str | None = None,
        intent_text: str | None = None,
        force_refresh: bool = False,
        on_stage: Callable[[str], None] = _no_stage,
    ) -> IntelligenceResult:
        """Full intelligence run for (domain, sales context, seller).

        Returns the cached result when one exists; otherwise searches, fetches
        up to max_fetch_urls pages, keeps the relevant ones as numbered
        sources and synthesizes cited insights. Never raises for external
        failures; a run that exhausts its fallbacks returns a low-confidence
        result.
        """
        domain, sales_context = validate_request(domain, sales_context)
        company_name = extract_company_name(domain)
        intent = classify_intent(intent_text) if intent_text else None
        key = intelligence_cache_key(domain, sales_context, seller_company, intent)
        started = time.perf_counter()

        on_stage(CACHE_CHECK_STATE)
        if not force_refresh:
            cached = self._load_cached(key)
            if cached is not None:
                logger.info("Cache hit for %s (%s)", domain, key)
                return cached

        # --- Collection ---
        on_stage(COLLECTION_STATE)
        if intent is not None:
            logger.info("Classified intent for %s: %s", domain, intent)
            queries = build_queries_from_intent(domain, intent, seller_company, now=self._clock)
        else:
            strategy = get_query_strategy(domain, sales_context, seller_company, now=self._clock)
            logger.info("Using %s query strategy for %s", strategy["strategy"], domain)
            queries = strategy["queries"]
        responses = await self.search_client.search_all(queries, self.config.max_results_per_query)
        search_results = flatten_results(responses)
        urls = [r.url for r in search_results][: self.config.max_fetch_urls]

        fetch_results = await self.fetcher.fetch_batch(urls)
        successful = sum(1 for f in fetch_results if f.ok)
        relevant = filter_by_relevancy(
            fetch_results, search_results, company_name, self.config.relevancy_threshold,
        )
        relevant = filter_by_quality(relevant, self.config.min_content_quality)
        sources = build_sources(relevant, now=self._clock)
        if not sources:
            logger.warning("No relevant fetched content for %s, using snippets", domain)
            sources = build_sources_from_snippets(search_results)
        logger.info(
            "%s: %d queries, %d results, %d/%d fetched, %d sources %s",
            domain, len(queries), len(search_results), successful, len(urls), len(sources),
            source_stats(sources)["by_type"],
        )
        company_record = await self._lookup_company(company_name)

        # --- Analysis ---
        on_stage(ANALYSIS_STATE)
        gap_outcome = await self.gap_analyzer.analyze(search_results, company_name, sales_context)
        contents = {item.fetch.url: item.fetch.content or "" for item in relevant}
        full_content = format_source_content([s for s, _ in analyze_sources(sources)], contents)
        synthesis_outcome = await self.synthesis.synthesize(
            gap_outcome.value,
            full_content,
            sources,
            company_name,
            analysis_type=sales_context,
            seller_company=seller_company,
        )

        result = IntelligenceResult(
            company_name=company_name,
            domain=domain,
            sales_context=sales_context,
            seller_company=seller_company,
            insights=synthesis_outcome.value,
            sources=sources,
            confidence_score=calculate_confidence_score(len(relevant), successful),
            generated_at=self._clock().isoformat(),
            cache_key=key,
            total_sources=len(sources),
            citation_map=citation_map(sources),
            queries=queries,
            gap_analysis=gap_outcome.value,
            company_record=company_record,
            degraded_reasons=_reasons(gap_outcome, synthesis_outcome),
            insight_support=calculate_insight_support(synthesis_outcome.value, full_content),
        )

        # --- Finalization ---
        on_stage(CACHE_RESPONSE_STATE)
        if _model_failed(synthesis_outcome):
            logger.warning("Not caching %s: synthesis fell back to defaults", key)
        else:
            self._save(key, result, CacheType.SALES_INTELLIGENCE, self.config.cache_ttl_hours)
        logger.info("Intelligence for %s ready in %.1fs", domain, time.perf_counter() - started)
        return result

    # ------------------------------------------------------------------
    # Snippet-first overview
    # ------------------------------------------------------------------

    async def generate_overview(
        self,
        domain: str,
        force_refresh: bool = False,
        on_stage: Callable[[str], None] = _no_stage,
    ) -> IntelligenceResult:
        """Cheap company overview: snippets → gap analysis → ≤3 fetches → synthesis."""
        domain, _ = validate_request(domain, OVERVIEW_CONTEXT)
        company_name = extract_company_name(domain)
        key = cache_key(domain, OVERVIEW_CONTEXT)

        on_stage(CACHE_CHECK_STATE)
        if not force_refresh:
            cached = self._load_cached(key)
            if cached is not None:
                logger.info("Overview cache hit for %s", domain)
                return cached

        on_stage(COLLECTION_STATE)
        queries = build_overview_queries(domain, now=self._clock)
        responses = await self.search_client.search_all(queries, self.config.max_results_per_query)
        snippets = flatten_results(responses)
        company_record = await self._lookup_company(company_name)

        on_stage(ANALYSIS_STATE)
        overview_outcome = await self.gap_analyzer.analyze_overview(snippets, company_name)
        overview_gap = overview_outcome.value
        planned = plan_selective_fetch(overview_gap, snippets, limit=self.config.max_critical_urls)

        relevant = []
        fetch_results = []
        if planned:
            fetch_results = await self.fetcher.fetch_batch(planned)
            relevant = filter_by_relevancy(
                fetch_results, snippets, company_name, self.config.overview_relevancy_threshold,
            )
            relevant = filter_by_quality(relevant, self.config.min_content_quality)
        sources = build_sources(relevant, now=self._clock)
        if not sources:
            sources = build_sources_from_snippets(snippets)

        gap = _gap_from_overview(overview_gap)
        contents = {item.fetch.url: item.fetch.content or "" for item in relevant}
        full_content = format_source_content(prioritize_sources_by_type(sources), contents)
        synthesis_outcome = await self.synthesis.synthesize(
            gap,
            full_content,
            sources,
            company_name,
            analysis_type=OVERVIEW_CONTEXT,
        )

        successful = sum(1 for f in fetch_results if f.ok)
        fetch_confidence = calculate_comprehensive_confidence(
            [s.relevancy_score for s in sources],
            [s.credibility_score for s in sources],
            successful,
            len(fetch_results),
        )
        synthesis_confidence = synthesis_outcome.value.confidence.overall / 100
        confidence = round(
            overview_gap.confidence * 0.4 + synthesis_confidence * 0.4 + fetch_confidence * 0.2, 2,
        )

        result = IntelligenceResult(
            company_name=company_name,
            domain=domain,
            sales_context=OVERVIEW_CONTEXT,
            insights=synthesis_outcome.value,
            sources=sources,
            confidence_score=max(0.0, min(1.0, confidence)),
            generated_at=self._clock().isoformat(),
            cache_key=key,
            total_sources=len(sources),
            citation_map=citation_map(sources),
            queries=queries,
            gap_analysis=gap,
            overview_gap=overview_gap,
            company_record=company_record,
            degraded_reasons=_reasons(overview_outcome, synthesis_outcome),
            insight_support=calculate_insight_support(synthesis_outcome.value, full_content),
        )

        on_stage(CACHE_RESPONSE_STATE)
        if is_overview_successful(result, synthesis_outcome):
            self._save(key, result, CacheType.COMPANY_OVERVIEW, self.config.overview_cache_ttl_hours)
        else:
            logger.warning("Overview for %s looks unsuccessful, not caching", domain)
        return result

    # ------------------------------------------------------------------
    # Workflow / worker entry points
    # ------------------------------------------------------------------

    async def run_workflow(self, payload: dict, record_state: Callable[[str], None]) -> dict:
        """Runner for StoreWorkflowEngine: payload in, JSON-able result out."""
        if payload.get("request_type") == "overview":
            result = await self.generate_overview(
                payload["domain"],
                force_refresh=bool(payload.get("force_refresh")),
                on_stage=record_state,
            )
        else:
            result = await self.generate_intelligence(
                payload["domain"],
                payload.get("sales_context", "discovery"),
                seller_company=payload.get("seller_company"),
                intent_text=payload.get("intent_text"),
                force_refresh=bool(payload.get("force_refresh")),
                on_stage=record_state,
            )
        return result.model_dump(mode="json")

    async def close(self) -> None:
        fetcher_close = getattr(self.fetcher, "aclose", None)
        if fetcher_close is not None:
            await fetcher_close()
        lookup_close = getattr(self.entity_lookup, "close", None)
        if lookup_close is not None:
            await lookup_close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load_cached(self, key: str) -> IntelligenceResult | None:
        raw = self.store.get(key)
        if raw is None:
            return None
        try:
            result = IntelligenceResult.model_validate(raw)
        except ValueError as e:
            logger.warning("Discarding invalid cached result %s: %s", key, e)
            return None
        result.from_cache = True
        return result

    def _save(self, key: str, result: IntelligenceResult, type: CacheType, ttl_hours: float) -> None:
        self.store.set(key, result.model_dump(mode="json"), type=type, ttl_hours=ttl_hours)

    async def _lookup_company(self, company_name: str) -> dict | None:
        if self.entity_lookup is None:
            return None
        try:
            return await self.entity_lookup.lookup(company_name)
        except Exception as e:
            logger.warning("Entity lookup failed for %s: %s", company_name, e)
            return None


def is_overview_successful(
    result: IntelligenceResult,
    synthesis_outcome: ParseOutcome[SynthesizedInsights] | None = None,
) -> bool:
    """Only worthwhile overviews are cached."""
    if result.confidence_score < MIN_OVERVIEW_CONFIDENCE:
        return False
    if synthesis_outcome is not None and _model_failed(synthesis_outcome):
        return False
    insights = result.insights
    has_content = bool(
        insights.key_insights
        or insights.pain_points
        or insights.opportunities
        or insights.company_overview.industry
        or insights.company_overview.recent_news
    )
    return bool(result.sources) and has_content


def validate_request(domain: str, sales_context: str) -> tuple[str, str]:
    """Normalize and check caller input; raises ValueError on bad domain or context."""
    if not domain or not domain.strip():
        raise ValueError("domain is required")
    if not sales_context or not sales_context.strip():
        raise ValueError("sales_context is required")
    normalized = normalize_domain(domain)
    if "." not in normalized:
        raise ValueError(f"invalid domain: {domain!r}")
    return normalized, sales_context.strip().lower()


def intelligence_cache_key(
    domain: str,
    sales_context: str,
    seller_company: str | None = None,
    intent: dict | None = None,
) -> str:
    """Cache key for a deep run; intent-driven runs also key on the intent type."""
    extra = seller_company or ""
    if intent is not None:
        extra = f"{extra} intent {intent['type']}".strip()
    return cache_key(domain, sales_context, extra or None)


def _gap_from_overview(overview: OverviewGapAnalysis) -> GapAnalysis:
    """Express the overview-gap result in the general GapAnalysis shape for synthesis."""
    insights = overview.snippet_insights
    summary = insights.get("summary") if isinstance(insights.get("summary"), str) else ""
    key_insights = [
        f"{k}: {v}" for k, v in insights.items()
        if k != "summary" and v not in (None, "", [], {})
    ]
    if overview.confidence >= 0.7:
        level = "high"
    elif overview.confidence >= 0.4:
        level = "medium"
    else:
        level = "low"
    return GapAnalysis(
        summary=summary,
        key_insights=key_insights,
        identified_gaps=overview.missing_info,
        confidence_level=level,
        critical_urls=overview.critical_urls,
    )


def _model_failed(outcome: ParseOutcome) -> bool:
    return isinstance(outcome, Degraded) and outcome.reason.startswith("model call failed")


def _reasons(*outcomes: ParseOutcome) -> list[str]:
    return [o.reason for o in outcomes if isinstance(o, Degraded)]
