"""Source classification, credibility tiers, and numbered source building."""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Callable
from urllib.parse import urlparse

from sales_intel.models import AuthoritativeSource, RelevancyScored, SearchResult, SourceType

# ---------------------------------------------------------------------------
# Source type patterns (checked in order, first match wins)
# ---------------------------------------------------------------------------

SOURCE_TYPE_PATTERNS: list[tuple[SourceType, list[str]]] = [
    ("financial", [
        "finance.yahoo", "marketwatch", "bloomberg", "reuters.com/markets", "sec.gov",
        "edgar", "nasdaq", "crunchbase", "/stock", "investor", "earnings",
    ]),
    ("educational", [
        "wikipedia", "simplilearn", "coursera", "udemy", "/tutorial", "/guide", "/learn", "explained",
    ]),
    ("news", [
        "techcrunch", "venturebeat", "businessinsider", "forbes", "reuters", "cnn.com", "bbc.",
        "wsj.com", "nytimes", "cnbc", "/news", "news.",
    ]),
    ("press_release", [
        "press-release", "press_release", "pressrelease", "newsroom", "prnewswire",
        "businesswire", "globenewswire", "/press",
    ]),
    ("company", ["/about", "/company", "/careers", "/our-", "/team", "/leadership"]),
    ("social", ["linkedin.com", "twitter.com", "//x.com", "facebook.com", "instagram.com", "youtube.com"]),
    ("blog", ["medium.com", "blog", "/post/", "/article/", "substack"]),
    ("report", ["gartner", "forrester", "mckinsey", "research", "report", "analysis", "whitepaper"]),
]

# ---------------------------------------------------------------------------
# Credibility tiers
# ---------------------------------------------------------------------------

TIER1_DOMAINS = {
    "sec.gov", "edgar.gov", "irs.gov", "treasury.gov",
    "bloomberg.com", "reuters.com", "wsj.com", "ft.com", "economist.com",
    "marketwatch.com", "barrons.com", "morningstar.com",
    "nytimes.com", "washingtonpost.com", "bbc.com", "bbc.co.uk", "cnn.com",
    "npr.org", "apnews.com", "usatoday.com", "abcnews.go.com",
    "mckinsey.com", "bcg.com", "bain.com", "deloitte.com", "pwc.com",
    "kpmg.com", "ey.com", "accenture.com",
    "crunchbase.com", "pitchbook.com", "cbinsights.com",
}
TIER2_DOMAINS = {
    "techcrunch.com", "venturebeat.com", "wired.com", "arstechnica.com", "engadget.com",
    "theverge.com", "zdnet.com", "cnet.com", "forbes.com", "businessinsider.com",
    "cnbc.com", "fortune.com", "inc.com", "fastcompany.com", "hbr.org",
    "salesforce.com", "hubspot.com", "gartner.com", "forrester.com", "idc.com", "statista.com",
}
TIER3_MARKERS = [
    "linkedin.com", "glassdoor.com", "indeed.com", "angel.co", "wellfound.com",
    "wikipedia.org", "github.com", "stackoverflow.com",
]
INVESTOR_MARKERS = ["investor", "ir."]
COMPANY_TLDS = (".com", ".co", ".org", ".net", ".io")

TIER1_SCORE = 0.95
GOVERNMENT_SCORE = 0.90
TIER2_SCORE = 0.85
ACADEMIC_SCORE = 0.80
TIER3_SCORE = 0.75
INVESTOR_RELATIONS_SCORE = 0.70
COMPANY_SCORE = 0.60
UNKNOWN_SCORE = 0.50

# Priority boost by source type when ranking sources for synthesis
TYPE_PRIORITY_BOOST: dict[str, float] = {
    "financial": 0.2,
    "news": 0.15,
    "report": 0.15,
    "company": 0.1,
    "educational": 0.1,
}
TYPE_ORDER = ["financial", "news", "report", "press_release", "company", "educational", "blog", "social", "other"]


def domain_of(url: str) -> str:
    try:
        host = urlparse(url if "://" in url else f"https://{url}").netloc.lower()
    except ValueError:
        return ""
    host = host.split("@")[-1].split(":")[0]
    return host[4:] if host.startswith("www.") else host


def determine_source_type(url: str) -> SourceType:
    """Classify a URL by ordered substring patterns over domain and path."""
    lowered = url.lower()
    domain = domain_of(url)
    # Government filings rank with financial sources
    if domain.endswith((".gov", ".mil")):
        return "financial"
    for source_type, patterns in SOURCE_TYPE_PATTERNS:
        if any(p in lowered for p in patterns):
            return source_type
    if domain.endswith(COMPANY_TLDS):
        return "company"
    return "other"


def _matches_domain(domain: str, candidates: set[str]) -> bool:
    """Exact match or subdomain of a listed domain."""
    return any(domain == d or domain.endswith("." + d) for d in candidates)


def calculate_credibility_score(domain: str) -> float:
    """Domain-tier trust estimate in [0, 1], independent of page content."""
    domain = domain_of(domain) if "/" in domain or ":" in domain else domain.lower().strip()
    if domain.startswith("www."):
        domain = domain[4:]
    if not domain:
        return UNKNOWN_SCORE

    if _matches_domain(domain, TIER1_DOMAINS):
        return TIER1_SCORE
    if domain.endswith((".gov", ".mil")) or ".gov." in domain:
        return GOVERNMENT_SCORE
    if _matches_domain(domain, TIER2_DOMAINS):
        return TIER2_SCORE
    if domain.endswith(".edu") or ".edu." in domain or ".ac." in domain:
        return ACADEMIC_SCORE
    if any(marker in domain for marker in TIER3_MARKERS):
        return TIER3_SCORE
    if any(marker in domain for marker in INVESTOR_MARKERS):
        return INVESTOR_RELATIONS_SCORE
    if domain.endswith(COMPANY_TLDS):
        return COMPANY_SCORE
    return UNKNOWN_SCORE


def calculate_comprehensive_credibility(
    domain: str,
    author: str | None = None,
    published_date: str | None = None,
    content: str | None = None,
    now: Callable[[], datetime] = datetime.now,
) -> float:
    """Base credibility plus small boosts for author, recency and long-form content."""
    score = calculate_credibility_score(domain)
    if author:
        score += 0.05
    if published_date:
        published = _parse_date(published_date)
        if published is not None:
            age = now() - published
            if age <= timedelta(days=90):
                score += 0.10
            elif age <= timedelta(days=365):
                score += 0.05
    if content and len(content) > 1000:
        score += 0.02
    return round(min(score, 1.0), 2)


# ---------------------------------------------------------------------------
# Author / publication date extraction
# ---------------------------------------------------------------------------

_AUTHOR_PATTERNS = [
    re.compile(r'"author"\s*:\s*\{[^}]*"name"\s*:\s*"([^"]{3,60})"', re.I),
    re.compile(r'"author"\s*:\s*"([^"]{3,60})"', re.I),
    re.compile(r"\bwritten by\s+([A-Z][a-z]+(?:\s+[A-Z][a-z.]+){1,2})"),
    re.compile(r"\bauthor:\s*([A-Z][a-z]+(?:\s+[A-Z][a-z.]+){1,2})", re.I),
    re.compile(r"\bby\s+([A-Z][a-z]+\s+[A-Z][a-z]+(?:\s+[A-Z][a-z]+)?)"),
]

_MONTHS = (
    "January|February|March|April|May|June|July|August|September|October|November|December"
    "|Jan|Feb|Mar|Apr|Jun|Jul|Aug|Sep|Sept|Oct|Nov|Dec"
)
_DATE_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r'"(?:datePublished|publishedAt|published_time|pubdate)"\s*:\s*"(\d{4}-\d{2}-\d{2})', re.I), "iso"),
    (re.compile(r"published:?\s*(\d{4}-\d{2}-\d{2})", re.I), "iso"),
    (re.compile(rf"\b((?:{_MONTHS})\.?\s+\d{{1,2}},\s+\d{{4}})\b"), "month"),
    (re.compile(r"\b(\d{1,2}/\d{1,2}/\d{4})\b"), "us"),
    (re.compile(r"\b(\d{4}-\d{2}-\d{2})\b"), "iso"),
]


def extract_author(content: str, url: str = "") -> str | None:
    """Best-effort author name from page text or a LinkedIn profile URL."""
    linkedin = re.search(r"linkedin\.com/in/([a-z0-9-]+)", url or "", re.I)
    if linkedin:
        slug = re.sub(r"-[0-9a-f]{6,}$", "", linkedin.group(1))
        return slug.replace("-", " ").title()
    if not content:
        return None
    for pattern in _AUTHOR_PATTERNS:
        match = pattern.search(content)
        if match:
            return match.group(1).strip()
    return None


def extract_publication_date(content: str, now: Callable[[], datetime] = datetime.now) -> str | None:
    """Return the first plausible publication date as YYYY-MM-DD.

    Only years from 2020 to next year are accepted.
    """
    if not content:
        return None
    max_year = now().year + 1
    for pattern, kind in _DATE_PATTERNS:
        for match in pattern.finditer(content):
            parsed = _parse_date(match.group(1), kind)
            if parsed is not None and 2020 <= parsed.year <= max_year:
                return parsed.strftime("%Y-%m-%d")
    return None


def _parse_date(text: str, kind: str = "iso") -> datetime | None:
    text = text.strip()
    formats = {
        "iso": ["%Y-%m-%d"],
        "us": ["%m/%d/%Y"],
        "month": ["%B %d, %Y", "%b %d, %Y", "%b. %d, %Y"],
    }[kind]
    if kind == "month":
        text = re.sub(r"\bSept\b", "Sep", text)
    for fmt in formats:
        try:
            return datetime.strptime(text[:10] if kind == "iso" else text, fmt)
        except ValueError:
            continue
    return None


# ---------------------------------------------------------------------------
# Source building
# ---------------------------------------------------------------------------

def build_sources(
    items: list[RelevancyScored],
    now: Callable[[], datetime] = datetime.now,
) -> list[AuthoritativeSource]:
    """Number relevancy-filtered fetches as citation sources [1..n]."""
    sources = []
    for index, item in enumerate(items, start=1):
        fetch = item.fetch
        domain = domain_of(fetch.url)
        author = extract_author(fetch.content or "", fetch.url)
        published = extract_publication_date(fetch.content or "", now=now)
        search_result = item.search_result
        snippet = search_result.snippet if search_result else (fetch.content or "")[:200]
        sources.append(AuthoritativeSource(
            id=index,
            url=fetch.url,
            title=(search_result.title if search_result else "") or domain,
            domain=domain,
            source_type=determine_source_type(fetch.url),
            snippet=snippet,
            credibility_score=calculate_comprehensive_credibility(
                domain, author, published, fetch.content, now=now,
            ),
            relevancy_score=item.score,
            published_date=published,
            author=author,
        ))
    return sources


def build_sources_from_snippets(
    search_results: list[SearchResult],
    limit: int = 10,
) -> list[AuthoritativeSource]:
    """Sources straight from search snippets, with a descending relevancy ramp."""
    sources = []
    for index, result in enumerate(search_results[:limit]):
        domain = result.source_domain or domain_of(result.url)
        sources.append(AuthoritativeSource(
            id=index + 1,
            url=result.url,
            title=result.title or domain,
            domain=domain,
            source_type=determine_source_type(result.url),
            snippet=result.snippet,
            credibility_score=calculate_credibility_score(domain),
            relevancy_score=round(max(0.9 - 0.05 * index, 0.3), 2),
        ))
    return sources


def analyze_sources(sources: list[AuthoritativeSource]) -> list[tuple[AuthoritativeSource, float]]:
    """Rank sources by relevancy plus a source-type priority boost (capped at 1)."""
    ranked = [
        (s, min(1.0, s.relevancy_score + TYPE_PRIORITY_BOOST.get(s.source_type, 0.0)))
        for s in sources
    ]
    ranked.sort(key=lambda pair: pair[1], reverse=True)
    return ranked


def prioritize_sources_by_type(sources: list[AuthoritativeSource]) -> list[AuthoritativeSource]:
    """Stable ordering by TYPE_ORDER, then credibility."""
    return sorted(
        sources,
        key=lambda s: (TYPE_ORDER.index(s.source_type), -s.credibility_score),
    )


def citation_map(sources: list[AuthoritativeSource]) -> dict[int, str]:
    return {s.id: s.url for s in sources}


def source_stats(sources: list[AuthoritativeSource]) -> dict:
    """Counts by type plus average credibility, for logging and API output."""
    by_type: dict[str, int] = {}
    for s in sources:
        by_type[s.source_type] = by_type.get(s.source_type, 0) + 1
    avg = sum(s.credibility_score for s in sources) / len(sources) if sources else 0.0
    return {"total": len(sources), "by_type": by_type, "avg_credibility": round(avg, 2)}
