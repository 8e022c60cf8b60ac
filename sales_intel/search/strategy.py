"""Query strategy: turn (target domain, sales context, seller) into search queries."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Callable

SALES_CONTEXTS = ("discovery", "competitive", "renewal", "demo", "negotiation", "closing")

# Target-company challenge phrasing per sales context (relationship-aware set)
CHALLENGE_QUERIES: dict[str, str] = {
    "discovery": "{target} digital transformation challenges",
    "competitive": "{target} technology stack problems",
    "renewal": "{target} vendor management issues",
    "demo": "{target} technical requirements needs",
    "negotiation": "{target} procurement challenges",
    "closing": "{target} implementation challenges",
}
CHALLENGE_FALLBACK = "{target} business challenges {year}"

# Seller + target relationship phrasing per sales context
RELATIONSHIP_QUERIES: dict[str, str] = {
    "discovery": "{seller} {target} partnership integration",
    "competitive": "{seller} vs {target} case study success",
    "renewal": "{seller} {target} contract renewal",
    "demo": "{seller} {target} technical integration",
    "negotiation": "{seller} {target} vendor selection",
    "closing": "{seller} {target} implementation",
}
RELATIONSHIP_FALLBACK = "{seller} {target} partnership"

# One context query for the generic (no seller) set
CONTEXT_QUERIES: dict[str, str] = {
    "discovery": "{target} growth initiatives {year}",
    "competitive": "{target} competitors analysis",
    "renewal": "{target} vendor contracts",
    "demo": "{target} technical requirements",
    "negotiation": "{target} procurement process",
    "closing": "{target} implementation timeline",
}

# Keyword patterns used to classify a free-text request into an intent type.
# First match wins, so order matters.
INTENT_PATTERNS: list[tuple[re.Pattern, str, float]] = [
    (re.compile(r"challenge|problem|issue|pain|difficult|struggle|obstacle", re.I), "challenges", 0.9),
    (re.compile(r"partnership|integration|work together|collaborate|partner", re.I), "relationship", 0.9),
    (re.compile(r"technology|tech stack|software|tools|platform|system", re.I), "technology", 0.8),
    (re.compile(r"competitor|competition|versus|\bvs\b|compare|competitive", re.I), "competitive", 0.8),
    (re.compile(r"financial|revenue|funding|valuation|money|profit|earnings", re.I), "financial", 0.8),
    (re.compile(r"news|recent|latest|update|development|announcement", re.I), "news", 0.7),
    (re.compile(r"leadership|\bceo\b|executive|team|management|founder", re.I), "leadership", 0.7),
    (re.compile(r"how can|help|solution|benefit|assist|support", re.I), "solution", 0.8),
    (re.compile(r"overview|about|summary|profile|information", re.I), "overview", 0.6),
]

INTENT_QUERIES: dict[str, list[str]] = {
    "challenges": [
        "{target} business challenges {year}",
        "{target} operational problems",
    ],
    "relationship": [
        "{seller} {target} partnership",
        "{target} integration partners",
    ],
    "leadership": [
        "{target} leadership team executives",
        "{target} CEO",
    ],
    "solution": [
        "{target} business challenges {year}",
        "{target} technology needs",
    ],
    "overview": [
        "{target} company overview",
        "{target} business model",
    ],
}


def extract_company_name(domain: str) -> str:
    """Derive a display name from a domain.

    e.g. "https://www.shopify.com/about" -> "Shopify"
         "bank-of-america.com" -> "Bank Of America"
    """
    cleaned = domain.strip().lower()
    cleaned = re.sub(r"^[a-z]+://", "", cleaned)
    cleaned = re.sub(r"^www\.", "", cleaned)
    cleaned = cleaned.split("/")[0]
    label = cleaned.split(".")[0]
    label = re.sub(r"[-_]+", " ", label).strip()
    return label.title()


def normalize_domain(domain: str) -> str:
    """Strip protocol, www and path: "https://www.Shopify.com/x" -> "shopify.com"."""
    cleaned = domain.strip().lower()
    cleaned = re.sub(r"^[a-z]+://", "", cleaned)
    cleaned = re.sub(r"^www\.", "", cleaned)
    return cleaned.split("/")[0]


def build_queries(
    domain: str,
    sales_context: str,
    seller_company: str | None = None,
    now: Callable[[], datetime] = datetime.now,
) -> list[str]:
    """Build 2-3 search queries for a target company.

    With a seller company: overview, context-specific challenges, and a
    seller+target relationship query (always 3). Without: overview, recent
    news, and a context query (2 if the context is unknown).
    """
    target = extract_company_name(domain)
    year = now().year
    context = (sales_context or "").strip().lower()

    if seller_company and seller_company.strip():
        seller = seller_company.strip()
        challenge = CHALLENGE_QUERIES.get(context, CHALLENGE_FALLBACK)
        relationship = RELATIONSHIP_QUERIES.get(context, RELATIONSHIP_FALLBACK)
        return [
            f"{target} company overview",
            challenge.format(target=target, year=year),
            relationship.format(seller=seller, target=target),
        ]

    queries = [
        f"{target} company overview",
        f"{target} news {year}",
    ]
    if context in CONTEXT_QUERIES:
        queries.append(CONTEXT_QUERIES[context].format(target=target, year=year))
    return queries


def build_overview_queries(domain: str, now: Callable[[], datetime] = datetime.now) -> list[str]:
    """Queries for the snippet-first company overview."""
    target = extract_company_name(domain)
    return [
        f"{target} company overview",
        f"{target} business model revenue financials",
        f"{target} news {now().year}",
    ]


def build_recent_queries(domain: str, now: Callable[[], datetime] = datetime.now) -> list[str]:
    target = extract_company_name(domain)
    year = now().year
    return [f"{target} news {year}", f"{target} announcements {year}", f"{target} latest developments"]


def build_competitive_queries(domain: str, seller_company: str | None = None) -> list[str]:
    target = extract_company_name(domain)
    queries = [f"{target} competitors", f"{target} market position"]
    if seller_company:
        queries.append(f"{seller_company} vs {target}")
    return queries


def build_financial_queries(domain: str, now: Callable[[], datetime] = datetime.now) -> list[str]:
    target = extract_company_name(domain)
    return [f"{target} revenue {now().year}", f"{target} funding valuation", f"{target} earnings results"]


def build_technology_queries(domain: str) -> list[str]:
    target = extract_company_name(domain)
    return [f"{target} technology stack", f"{target} software vendors", f"{target} digital transformation"]


def classify_intent(text: str) -> dict:
    """Classify a free-text request into one of the INTENT_PATTERNS types.

    Returns {"type": str, "confidence": float}; defaults to overview.
    """
    for pattern, intent_type, confidence in INTENT_PATTERNS:
        if pattern.search(text or ""):
            return {"type": intent_type, "confidence": confidence}
    return {"type": "overview", "confidence": 0.5}


def _focused_queries(
    domain: str,
    intent_type: str,
    seller_company: str | None,
    now: Callable[[], datetime],
) -> list[str] | None:
    """Queries from the dedicated builder for intent_type, if it has one."""
    if intent_type == "financial":
        return build_financial_queries(domain, now=now)
    if intent_type == "technology":
        return build_technology_queries(domain)
    if intent_type == "news":
        return build_recent_queries(domain, now=now)
    if intent_type == "competitive":
        queries = build_competitive_queries(domain, seller_company)
        # seller comparison first when there is one
        return queries[-1:] + queries[:-1] if seller_company else queries
    return None


def build_queries_from_intent(
    domain: str,
    intent: dict | str,
    seller_company: str | None = None,
    now: Callable[[], datetime] = datetime.now,
) -> list[str]:
    """Pick queries by classified intent type."""
    intent_type = intent["type"] if isinstance(intent, dict) else intent
    target = extract_company_name(domain)

    queries = _focused_queries(domain, intent_type, seller_company, now)
    if queries is not None:
        queries = queries[:2]
    else:
        templates = INTENT_QUERIES.get(intent_type, INTENT_QUERIES["overview"])
        year = now().year
        queries = []
        for template in templates:
            if "{seller}" in template and not seller_company:
                template = "{target} partners"
            queries.append(template.format(target=target, seller=seller_company or "", year=year))
    # Anchor every intent set with an overview query
    overview = f"{target} company overview"
    if overview not in queries:
        queries.append(overview)
    return queries[:3]


def get_query_strategy(
    domain: str,
    sales_context: str,
    seller_company: str | None = None,
    now: Callable[[], datetime] = datetime.now,
) -> dict:
    """Queries plus a description of the chosen strategy (for logging / API output)."""
    queries = build_queries(domain, sales_context, seller_company, now=now)
    strategy = "relationship_aware" if seller_company and seller_company.strip() else "generic"
    return {
        "queries": queries,
        "strategy": strategy,
        "target_company": extract_company_name(domain),
        "seller_company": seller_company,
        "context": sales_context,
    }
