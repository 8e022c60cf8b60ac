"""Cited synthesis: the second language-model pass over snippets plus fetched content."""

from __future__ import annotations

import logging
import re

from pydantic import ValidationError

from sales_intel.analysis.parsing import (
    Degraded,
    Ok,
    ParseOutcome,
    extract_citations,
    find_section,
    parse_model_json,
    split_items,
)
from sales_intel.analysis.prompts import (
    CONTEXT_GUIDANCE,
    DEFAULT_GUIDANCE,
    SYNTHESIS_SYSTEM,
    SYNTHESIS_USER,
)
from sales_intel.config import Config
from sales_intel.interfaces import ModelInvoker
from sales_intel.models import (
    AuthoritativeSource,
    CitedContent,
    CompanyProfile,
    CompetitiveLandscape,
    Competitor,
    ConfidenceBreakdown,
    GapAnalysis,
    GrowthSignals,
    KeyContact,
    ObjectionResponse,
    SynthesizedInsights,
    TechnologyStack,
)

logger = logging.getLogger(__name__)

PARSED_DEFAULT_CONFIDENCE = ConfidenceBreakdown(overall=75, data_quality=75, source_reliability=75)
TEXT_FALLBACK_CONFIDENCE = ConfidenceBreakdown(overall=70, data_quality=70, source_reliability=80)
FALLBACK_ITEM_LIMIT = 7
_FALLBACK_SEPARATORS = r"\n|\||•|\*|\s-\s"

# Section label regex -> SynthesizedInsights list field (text fallback)
TEXT_SECTIONS: dict[str, str] = {
    r"pain points?": "pain_points",
    r"key insights?": "key_insights",
    r"opportunit(?:y|ies)": "opportunities",
    r"competitive advantages?": "competitive_advantages",
    r"risk(?: factors)?": "risk_factors",
    r"next steps?": "next_steps",
    r"talking points?": "talking_points",
    r"(?:potential )?objections?": "potential_objections",
    r"recommend(?:ed actions?|ations?)": "recommended_actions",
}

MAX_CONTENT_PER_SOURCE = 3000


class SynthesisEngine:
    """Builds the cited insights object; never returns a partially-typed result."""

    def __init__(self, model: ModelInvoker, config: Config):
        self.model = model
        self.config = config

    async def synthesize(
        self,
        gap: GapAnalysis,
        full_content: str,
        sources: list[AuthoritativeSource],
        company_name: str,
        analysis_type: str = "discovery",
        seller_company: str | None = None,
    ) -> ParseOutcome[SynthesizedInsights]:
        system_prompt = SYNTHESIS_SYSTEM.format(
            analysis_type=analysis_type,
            company_name=company_name,
            seller_clause=f" for a seller from {seller_company}" if seller_company else "",
            guidance=CONTEXT_GUIDANCE.get(analysis_type, DEFAULT_GUIDANCE),
        )
        user_prompt = SYNTHESIS_USER.format(
            source_list=format_source_list(sources) or "(no sources)",
            gap_summary=gap.summary or "(none)",
            gap_insights="; ".join(gap.key_insights) or "(none)",
            gap_gaps="; ".join(gap.identified_gaps) or "(none)",
            content=full_content or "(no full content fetched, rely on the source snippets)",
            company_name=company_name,
        )

        try:
            response = await self.model.invoke(
                system_prompt,
                user_prompt,
                max_tokens=self.config.llm_max_tokens,
                temperature=self.config.llm_temperature,
            )
        except Exception as e:
            logger.error("Synthesis failed for %s: %s", company_name, e)
            return Degraded(
                SynthesizedInsights.conservative_default(company_name),
                f"model call failed: {e}",
            )

        return parse_synthesis(response, company_name, valid_ids={s.id for s in sources})


def format_source_list(sources: list[AuthoritativeSource]) -> str:
    """Numbered source list: "[i] title - domain (url)"."""
    lines = []
    for s in sources:
        line = f"[{s.id}] {s.title} - {s.domain} ({s.url})"
        if s.snippet:
            line += f"\n    {s.snippet[:300]}"
        lines.append(line)
    return "\n".join(lines)


def format_source_content(
    sources: list[AuthoritativeSource],
    contents: dict[str, str],
    max_chars: int = MAX_CONTENT_PER_SOURCE,
) -> str:
    """Concatenate fetched page text as "Source [i]: text" blocks, by source id."""
    blocks = []
    for s in sources:
        text = contents.get(s.url)
        if text:
            blocks.append(f"Source [{s.id}]: {text[:max_chars]}")
    return "\n\n".join(blocks)


def parse_synthesis(
    response: str,
    company_name: str = "",
    valid_ids: set[int] | None = None,
) -> ParseOutcome[SynthesizedInsights]:
    """Strict JSON first, then section regexes. Always yields a full object."""
    data = parse_model_json(response)
    if data is not None:
        try:
            return Ok(_insights_from_json(data, company_name, valid_ids))
        except (ValidationError, TypeError, AttributeError) as e:
            logger.warning("Synthesis JSON did not match schema: %s", e)

    insights = _insights_from_text(response or "", company_name, valid_ids)
    return Degraded(insights, "unstructured response, used text fallback")


def _insights_from_json(data: dict, company_name: str, valid_ids: set[int] | None) -> SynthesizedInsights:
    def cited(key: str, source: dict | None = None) -> list[CitedContent]:
        return _cited_list((source if source is not None else data).get(key), valid_ids)

    overview = _as_dict(data.get("companyOverview"))
    growth = _as_dict(overview.get("growth"))
    tech = _as_dict(data.get("technologyStack"))
    landscape = _as_dict(data.get("competitiveLandscape"))

    confidence_data = data.get("confidence")
    if isinstance(confidence_data, dict) and confidence_data:
        confidence = ConfidenceBreakdown(
            overall=confidence_data.get("overall", 75),
            data_quality=confidence_data.get("dataQuality", 75),
            source_reliability=confidence_data.get("sourceReliability", 75),
        )
    else:
        confidence = PARSED_DEFAULT_CONFIDENCE.model_copy()

    return SynthesizedInsights(
        company_overview=CompanyProfile(
            name=overview.get("name") or company_name,
            industry=overview.get("industry"),
            size=overview.get("size"),
            size_citations=_citation_ids(overview.get("sizeCitations"), valid_ids),
            revenue=overview.get("revenue"),
            revenue_citations=_citation_ids(overview.get("revenueCitations"), valid_ids),
            recent_news=cited("recentNews", overview),
            growth=GrowthSignals(
                hiring=cited("hiring", growth),
                funding=cited("funding", growth),
                expansion=cited("expansion", growth),
                new_products=cited("newProducts", growth),
                partnerships=cited("partnerships", growth),
            ),
            challenges=cited("challenges", overview),
        ),
        pain_points=cited("painPoints"),
        key_insights=cited("keyInsights"),
        opportunities=cited("opportunities"),
        competitive_advantages=cited("competitiveAdvantages"),
        risk_factors=cited("riskFactors"),
        next_steps=cited("nextSteps"),
        technology_stack=TechnologyStack(
            current=_str_list(tech.get("current")),
            planned=_str_list(tech.get("planned")),
            vendors=_str_list(tech.get("vendors")),
            modernization_areas=_str_list(tech.get("modernizationAreas")),
        ),
        key_contacts=[
            KeyContact(
                name=str(c.get("name") or ""),
                title=str(c.get("title") or ""),
                department=str(c.get("department") or ""),
                influence=str(c.get("influence") or ""),
                approach_strategy=str(c.get("approachStrategy") or ""),
            )
            for c in _dict_list(data.get("keyContacts"))
            if c.get("name") or c.get("title")
        ],
        competitive_landscape=CompetitiveLandscape(
            competitors=[
                Competitor(
                    name=str(c["name"]),
                    market_share=str(c.get("marketShare") or ""),
                    strengths=_str_list(c.get("strengths")),
                    weaknesses=_str_list(c.get("weaknesses")),
                )
                for c in _dict_list(landscape.get("competitors"))
                if c.get("name")
            ],
            market_position=str(landscape.get("marketPosition") or ""),
            differentiators=cited("differentiators", landscape),
            vulnerabilities=cited("vulnerabilities", landscape),
            battle_cards=_str_list(landscape.get("battleCards")),
        ),
        talking_points=cited("talkingPoints"),
        potential_objections=_objections(data.get("potentialObjections"), valid_ids),
        recommended_actions=cited("recommendedActions"),
        deal_probability=data.get("dealProbability", 0),
        deal_probability_citations=_citation_ids(data.get("dealProbabilityCitations"), valid_ids),
        confidence=confidence,
    )


def _insights_from_text(text: str, company_name: str, valid_ids: set[int] | None) -> SynthesizedInsights:
    labels = list(TEXT_SECTIONS)
    fields: dict[str, list] = {}
    for label, field in TEXT_SECTIONS.items():
        block = find_section(text, label, [other for other in labels if other != label])
        items = split_items(block, FALLBACK_ITEM_LIMIT, _FALLBACK_SEPARATORS)
        if field == "potential_objections":
            fields[field] = [ObjectionResponse(objection=item) for item in items]
        else:
            fields[field] = [_cite(item, valid_ids) for item in items]

    deal = re.search(r"deal probability\W*:?\s*(\d{1,3})", text, re.I)
    return SynthesizedInsights(
        company_overview=CompanyProfile(name=company_name),
        deal_probability=int(deal.group(1)) if deal else 0,
        confidence=TEXT_FALLBACK_CONFIDENCE.model_copy(),
        **fields,
    )


def calculate_insight_support(insights: SynthesizedInsights, content: str) -> float:
    """Percentage of insight statements whose terms are grounded in the content.

    A statement counts as supported when more than 30% of its words longer
    than 3 characters appear in the content.
    """
    statements = [
        c.text
        for group in (
            insights.pain_points, insights.key_insights, insights.opportunities,
            insights.competitive_advantages, insights.risk_factors, insights.talking_points,
        )
        for c in group
    ]
    if not statements or not content:
        return 0.0

    content_lower = content.lower()
    supported = 0
    for statement in statements:
        terms = [t for t in re.findall(r"[a-z0-9]+", statement.lower()) if len(t) > 3]
        if not terms:
            continue
        hits = sum(1 for t in terms if t in content_lower)
        if hits / len(terms) > 0.3:
            supported += 1
    return round(supported / len(statements) * 100, 1)


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------

def _as_dict(value) -> dict:
    return value if isinstance(value, dict) else {}


def _dict_list(value) -> list[dict]:
    return [v for v in value if isinstance(v, dict)] if isinstance(value, list) else []


def _str_list(value) -> list[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


def _citation_ids(value, valid_ids: set[int] | None) -> list[int]:
    if not isinstance(value, list):
        return []
    ids = []
    for v in value:
        try:
            n = int(v)
        except (TypeError, ValueError):
            continue
        if (valid_ids is None or n in valid_ids) and n not in ids:
            ids.append(n)
    return ids


def _cite(text: str, valid_ids: set[int] | None) -> CitedContent:
    ids = extract_citations(text)
    if valid_ids is not None:
        ids = [n for n in ids if n in valid_ids]
    return CitedContent(text=text.strip(), citations=ids)


def _cited_list(value, valid_ids: set[int] | None) -> list[CitedContent]:
    """Accept ["text [1]", ...] or [{"text", "citations"}, ...]."""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    items = []
    for v in value:
        if isinstance(v, str) and v.strip():
            items.append(_cite(v, valid_ids))
        elif isinstance(v, dict) and v.get("text"):
            item = _cite(str(v["text"]), valid_ids)
            extra = _citation_ids(v.get("citations"), valid_ids)
            item.citations = item.citations + [n for n in extra if n not in item.citations]
            items.append(item)
    return items


def _objections(value, valid_ids: set[int] | None) -> list[ObjectionResponse]:
    objections = []
    for item in value if isinstance(value, list) else []:
        if isinstance(item, str) and item.strip():
            objections.append(ObjectionResponse(objection=item.strip(), citations=_cite(item, valid_ids).citations))
        elif isinstance(item, dict) and item.get("objection"):
            response = str(item.get("response") or "")
            ids = _citation_ids(item.get("citations"), valid_ids)
            ids += [n for n in extract_citations(response) if n not in ids and (valid_ids is None or n in valid_ids)]
            objections.append(ObjectionResponse(
                objection=str(item["objection"]),
                response=response,
                citations=ids,
            ))
    return objections
