"""Prompt templates for snippet gap analysis and cited synthesis."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# PROMPT 1: Snippet gap analysis
# Cheap first pass over search snippets only.
# ---------------------------------------------------------------------------

SNIPPET_ANALYSIS_SYSTEM = """You are a sales research analyst. You review short search-result snippets about a company and report what they reveal and what is still unknown.

Rules:
1. Use ONLY information present in the snippets
2. Be explicit about gaps: missing information is as important as known facts
3. Respond with ONLY valid JSON (no markdown, no explanations)"""

SNIPPET_ANALYSIS_USER = """Analyze these {snippet_count} search snippets about {company_name} for a {analysis_type} analysis.

{snippets}

Return JSON with exactly these keys:
{{
  "summary": "2-3 sentence summary of what the snippets say",
  "keyInsights": ["insight", "..."],
  "identifiedGaps": ["missing information", "..."],
  "dataQuality": "excellent | good | fair | poor",
  "confidenceLevel": "high | medium | low",
  "additionalQuestionsNeeded": ["question to research next", "..."]
}}"""

SNIPPET_TEMPLATE = """--- Snippet {index} ---
Title: {title}
Source: {domain}
URL: {url}
Content: {snippet}
"""

# ---------------------------------------------------------------------------
# PROMPT 2: Overview gap analysis
# Decides which 2-3 URLs are worth a full fetch.
# ---------------------------------------------------------------------------

OVERVIEW_GAP_SYSTEM = """You are a research planner building a company overview on a tight budget. From search snippets you extract what is already known, list the information still missing, and pick the few URLs whose full content would best fill those gaps.

Respond with ONLY valid JSON (no markdown, no explanations)."""

OVERVIEW_GAP_USER = """Company: {company_name}

Search results:
{snippets}

Return JSON:
{{
  "snippetInsights": {{
    "summary": "what the snippets already establish",
    "industry": null,
    "size": null,
    "recentDevelopments": []
  }},
  "missingInfo": ["financial_data", "leadership_info", "..."],
  "criticalUrls": [
    {{"url": "https://...", "reason": "why this page fills a gap", "priority": 10}}
  ],
  "confidence": 0.0
}}

Recommend only 2-3 critical URLs, chosen from the search results above. priority is 1-10 (10 = most important). confidence is 0-1."""

OVERVIEW_SNIPPET_TEMPLATE = """[{index}] {title}
Source: {domain}
URL: {url}
Snippet: {snippet}
"""

# ---------------------------------------------------------------------------
# PROMPT 3: Cited synthesis
# ---------------------------------------------------------------------------

CONTEXT_GUIDANCE: dict[str, str] = {
    "discovery": "Focus on pain points, growth signals, and technology gaps that open a first conversation.",
    "qualification": "Focus on budget signals, decision makers, timeline, and fit with the seller's offering.",
    "competitive": "Focus on the competitive landscape, incumbent vendors, and vendor evaluation criteria.",
    "renewal": "Focus on satisfaction signals, contract renewal timing, and expansion or churn risk.",
    "demo": "Focus on technical requirements, integration points, and concrete use cases to demonstrate.",
    "negotiation": "Focus on budget, decision timelines, procurement process, and likely objections.",
    "closing": "Focus on implementation readiness, stakeholder alignment, and remaining blockers.",
}
DEFAULT_GUIDANCE = "Provide a balanced overview of the company's situation and sales opportunities."

SYNTHESIS_SYSTEM = """You are an expert sales intelligence analyst preparing a {analysis_type} briefing on {company_name}{seller_clause}.

CITATION RULES (MANDATORY):
1. Every factual statement MUST carry an inline numeric citation like [1] or [2][4]
2. Citation numbers refer ONLY to the numbered source list you are given
3. Never invent sources or cite a number that is not in the list
4. If a statement cannot be supported by a source, leave it out

{guidance}

Respond with ONLY valid JSON (no markdown, no explanations)."""

SYNTHESIS_USER = """SOURCES:
{source_list}

SNIPPET ANALYSIS:
Summary: {gap_summary}
Key insights: {gap_insights}
Known gaps: {gap_gaps}

FULL CONTENT:
{content}

Return JSON with this structure (arrays may be empty, never omit a key):
{{
  "companyOverview": {{
    "name": "{company_name}",
    "industry": "",
    "size": "", "sizeCitations": [],
    "revenue": "", "revenueCitations": [],
    "recentNews": ["statement [n]"],
    "growth": {{"hiring": [], "funding": [], "expansion": [], "newProducts": [], "partnerships": []}},
    "challenges": ["statement [n]"]
  }},
  "painPoints": ["statement [n]"],
  "keyInsights": ["statement [n]"],
  "opportunities": ["statement [n]"],
  "competitiveAdvantages": ["statement [n]"],
  "riskFactors": ["statement [n]"],
  "nextSteps": ["statement [n]"],
  "technologyStack": {{"current": [], "planned": [], "vendors": [], "modernizationAreas": []}},
  "keyContacts": [{{"name": "", "title": "", "department": "", "influence": "high | medium | low", "approachStrategy": ""}}],
  "competitiveLandscape": {{
    "competitors": [{{"name": "", "marketShare": "", "strengths": [], "weaknesses": []}}],
    "marketPosition": "",
    "differentiators": ["statement [n]"],
    "vulnerabilities": ["statement [n]"],
    "battleCards": []
  }},
  "talkingPoints": ["statement [n]"],
  "potentialObjections": [{{"objection": "", "response": "", "citations": []}}],
  "recommendedActions": ["statement [n]"],
  "dealProbability": 0,
  "dealProbabilityCitations": [],
  "confidence": {{"overall": 0, "dataQuality": 0, "sourceReliability": 0}}
}}

dealProbability and every confidence value are 0-100."""
