"""Snippet gap analysis: the cheap first language-model pass over search snippets."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from sales_intel.analysis.parsing import (
    Degraded,
    Ok,
    ParseOutcome,
    find_section,
    find_word,
    parse_model_json,
    split_items,
)
from sales_intel.analysis.prompts import (
    OVERVIEW_GAP_SYSTEM,
    OVERVIEW_GAP_USER,
    OVERVIEW_SNIPPET_TEMPLATE,
    SNIPPET_ANALYSIS_SYSTEM,
    SNIPPET_ANALYSIS_USER,
    SNIPPET_TEMPLATE,
)
from sales_intel.config import Config
from sales_intel.interfaces import ModelInvoker
from sales_intel.models import CriticalUrl, GapAnalysis, OverviewGapAnalysis, SearchResult

logger = logging.getLogger(__name__)

MAX_SNIPPETS = 15
FALLBACK_LIST_LIMIT = 5
OVERVIEW_FALLBACK_MISSING = ["detailed_financial_data", "recent_developments", "leadership_info"]

_SECTION_LABELS = [
    r"summary",
    r"key insights?",
    r"(?:identified )?gaps?",
    r"data quality",
    r"confidence(?: level)?",
    r"(?:additional )?questions?(?: needed)?",
]


class SnippetGapAnalyzer:
    """Runs one model call over snippets and parses the result without ever raising."""

    def __init__(self, model: ModelInvoker, config: Config):
        self.model = model
        self.config = config

    async def analyze(
        self,
        snippets: list[SearchResult],
        company_name: str,
        analysis_type: str = "discovery",
    ) -> ParseOutcome[GapAnalysis]:
        """General variant: summary, insights, gaps, quality and confidence."""
        if not snippets:
            return Degraded(GapAnalysis.empty(), "no snippets to analyze")

        snippet_block = "\n".join(
            SNIPPET_TEMPLATE.format(
                index=i,
                title=s.title,
                domain=s.source_domain,
                url=s.url,
                snippet=s.snippet,
            )
            for i, s in enumerate(snippets[:MAX_SNIPPETS], start=1)
        )
        prompt = SNIPPET_ANALYSIS_USER.format(
            snippet_count=min(len(snippets), MAX_SNIPPETS),
            company_name=company_name,
            analysis_type=analysis_type,
            snippets=snippet_block,
        )

        try:
            response = await self.model.invoke(
                SNIPPET_ANALYSIS_SYSTEM,
                prompt,
                max_tokens=self.config.llm_max_tokens,
                temperature=self.config.llm_temperature,
            )
        except Exception as e:
            logger.error("Snippet analysis failed for %s: %s", company_name, e)
            return Degraded(GapAnalysis.empty(), f"model call failed: {e}")

        return parse_gap_analysis(response)

    async def analyze_overview(
        self,
        snippets: list[SearchResult],
        company_name: str,
    ) -> ParseOutcome[OverviewGapAnalysis]:
        """Overview-gap variant: known insights, missing info and critical URLs."""
        snippet_block = "\n".join(
            OVERVIEW_SNIPPET_TEMPLATE.format(
                index=i,
                title=s.title,
                domain=s.source_domain,
                url=s.url,
                snippet=s.snippet,
            )
            for i, s in enumerate(snippets[:MAX_SNIPPETS], start=1)
        )
        prompt = OVERVIEW_GAP_USER.format(company_name=company_name, snippets=snippet_block)

        try:
            response = await self.model.invoke(
                OVERVIEW_GAP_SYSTEM,
                prompt,
                max_tokens=self.config.llm_max_tokens,
                temperature=self.config.llm_temperature,
            )
        except Exception as e:
            logger.error("Overview gap analysis failed for %s: %s", company_name, e)
            fallback = OverviewGapAnalysis(
                critical_urls=[
                    CriticalUrl(url=s.url, reason="Top search result", priority=i + 1)
                    for i, s in enumerate(snippets[:3])
                ],
                missing_info=list(OVERVIEW_FALLBACK_MISSING),
                confidence=0.3,
            )
            return Degraded(fallback, f"model call failed: {e}")

        return parse_overview_gap(response)


def parse_gap_analysis(response: str) -> ParseOutcome[GapAnalysis]:
    """Strict JSON first, then regex sections over the raw text."""
    data = parse_model_json(response)
    if data is not None:
        try:
            return Ok(GapAnalysis(
                summary=str(data.get("summary") or ""),
                key_insights=_as_str_list(data.get("keyInsights")),
                identified_gaps=_as_str_list(data.get("identifiedGaps")),
                data_quality=data.get("dataQuality") or "fair",
                confidence_level=data.get("confidenceLevel") or "medium",
                critical_urls=_as_critical_urls(data.get("criticalUrls")),
                additional_questions_needed=_as_str_list(data.get("additionalQuestionsNeeded")),
            ))
        except ValidationError as e:
            logger.warning("Gap analysis JSON did not match schema: %s", e)

    return Degraded(_gap_from_text(response or ""), "unstructured response, used text fallback")


def _gap_from_text(text: str) -> GapAnalysis:
    def section(label: str) -> str:
        return find_section(text, label, [other for other in _SECTION_LABELS if other != label])

    summary = section(r"summary")
    return GapAnalysis(
        summary=summary.split("\n")[0].strip() if summary else text.strip()[:300],
        key_insights=split_items(section(r"key insights?"), FALLBACK_LIST_LIMIT),
        identified_gaps=split_items(section(r"(?:identified )?gaps?"), FALLBACK_LIST_LIMIT),
        data_quality=find_word(text, r"data quality") or "fair",
        confidence_level=find_word(text, r"confidence(?: level)?") or "medium",
        additional_questions_needed=split_items(
            section(r"(?:additional )?questions?(?: needed)?"), FALLBACK_LIST_LIMIT,
        ),
    )


def parse_overview_gap(response: str) -> ParseOutcome[OverviewGapAnalysis]:
    data = parse_model_json(response)
    if data is None:
        return Degraded(
            OverviewGapAnalysis(
                snippet_insights={"summary": "Analysis completed from snippets"},
                missing_info=["detailed_information"],
                critical_urls=[],
                confidence=0.3,
            ),
            "unstructured response, used default overview gap",
        )
    insights = data.get("snippetInsights")
    return Ok(OverviewGapAnalysis(
        snippet_insights=insights if isinstance(insights, dict) else {},
        missing_info=_as_str_list(data.get("missingInfo")),
        critical_urls=_as_critical_urls(data.get("criticalUrls")),
        confidence=data.get("confidence", 0.5),
    ))


def _as_str_list(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return []


def _as_critical_urls(value) -> list[CriticalUrl]:
    if not isinstance(value, list):
        return []
    urls = []
    for item in value:
        if isinstance(item, str) and item.startswith("http"):
            urls.append(CriticalUrl(url=item))
        elif isinstance(item, dict) and item.get("url"):
            urls.append(CriticalUrl(
                url=str(item["url"]),
                reason=str(item.get("reason") or ""),
                priority=item.get("priority", 5),
            ))
    return urls
