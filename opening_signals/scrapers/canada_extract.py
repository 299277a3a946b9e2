"""Heuristic extraction of Canadian internship postings from search results.

A search result is a page (url, title, markdown). Three strategies are
tried in order:

  1. Single posting: the URL looks like an ATS/careers page or the title
     mentions an internship. One job, company taken from the hostname.
  2. List page: markdown list items ``- a - b - c`` or table rows
     ``| a | b | c |`` where the second column is an internship title.
  3. Fallback: the page title itself, under the same checks as (1).

Aggregator job boards are skipped entirely; only direct company pages
are kept.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional
from urllib.parse import urlparse

from opening_signals.models import ParsedListing

logger = logging.getLogger(__name__)

AGGREGATOR_DOMAINS = (
    "indeed.com", "indeed.ca", "glassdoor.com", "glassdoor.ca", "glassdoor.ie",
    "linkedin.com", "ziprecruiter.com", "monster.ca", "monster.com",
    "workopolis.com", "eluta.ca", "talent.com", "jooble.org",
    "simplyhired.com", "careerbuilder.com", "prosple.com",
    "levels.fyi", "preplounge.com", "businessbecause.com", "managementconsulted.com",
    "weekday.works", "theinternship.online", "newsletter.interninsider.me",
    "albertajobcentre.com",
)

CANADIAN_CITIES = (
    "Toronto", "Vancouver", "Montreal", "Ottawa", "Calgary", "Edmonton",
    "Winnipeg", "Quebec City", "Waterloo", "Kitchener", "Halifax", "Victoria",
    "Saskatoon", "Regina", "Mississauga", "Brampton", "Hamilton", "London",
    "Markham", "Richmond Hill",
)

PROVINCES = (
    "Ontario", "Quebec", "British Columbia", "Alberta", "Manitoba",
    "Saskatchewan", "Nova Scotia", "New Brunswick", "Newfoundland",
    "Prince Edward Island",
)

# Hostname stem -> display name
COMPANY_NAME_MAP = {
    "rbc": "RBC", "bmo": "BMO", "td": "TD Bank", "cibc": "CIBC",
    "scotiabank": "Scotiabank", "sunlife": "Sun Life", "manulife": "Manulife",
    "shopify": "Shopify", "amazon": "Amazon", "google": "Google",
    "microsoft": "Microsoft", "meta": "Meta", "apple": "Apple",
    "deloitte": "Deloitte", "pwc": "PwC", "ey": "EY", "kpmg": "KPMG",
    "mckinsey": "McKinsey", "bcg": "BCG", "bain": "Bain",
    "telus": "TELUS", "rogers": "Rogers", "bell": "Bell Canada",
    "cgi": "CGI", "sap": "SAP", "ibm": "IBM", "intel": "Intel",
    "nvidia": "NVIDIA", "amd": "AMD", "qualcomm": "Qualcomm",
    "boeing": "Boeing", "bombardier": "Bombardier", "cae": "CAE",
    "cn": "CN Rail", "cp": "CP Rail", "hydro-quebec": "Hydro-Québec",
    "blackberry": "BlackBerry", "opentext": "OpenText", "kinaxis": "Kinaxis",
    "canada": "Government of Canada",
    "intactfc": "Intact Financial", "cnrl": "Canadian Natural Resources",
    "gdmissionsystems": "General Dynamics", "asc-csa.gc": "Canadian Space Agency",
    "pepsicojobs": "PepsiCo", "worley": "Worley",
    "internships.shopify": "Shopify", "jobs.rbc": "RBC", "jobs.bmo": "BMO",
}

MIN_TITLE_LENGTH = 5
MAX_TITLE_LENGTH = 120

_JOB_URL_RES = (
    re.compile(
        r"careers\.|jobs\.|lever\.co|greenhouse\.io|workday\.com|smartrecruiters|icims"
        r"|myworkdayjobs",
        re.IGNORECASE,
    ),
    re.compile(r"/job/|/jobs/|/career|/position", re.IGNORECASE),
)
_JOB_TITLE_RE = re.compile(r"intern|co-?op|student|new\s*grad", re.IGNORECASE)
_INTERNSHIP_RE = re.compile(
    r"intern|co-?op|student\s*(position|role|job)|new\s*grad|summer\s*(20|position|role|job)",
    re.IGNORECASE,
)
_CANADA_RE = re.compile(
    r"canada|canadian|toronto|vancouver|montreal|ottawa|calgary|edmonton|winnipeg|quebec"
    r"|ontario|british\s*columbia|alberta|waterloo|kitchener|halifax|victoria\s*bc"
    r"|saskatoon|regina|\.ca\b",
    re.IGNORECASE,
)
_DIRTY_NAME_RE = re.compile(
    r"https?://|<[^>]+>|\[|\]|\(http|\.jpg|\.png|\.htm|#\s|&hellip", re.IGNORECASE
)
_LIST_PATTERNS = (
    re.compile(r"[-*]\s*\[?(.+?)\]?\s*[-–|]\s*\[?(.+?)\]?\s*[-–|]\s*(.+?)(?:\n|$)", re.MULTILINE),
    re.compile(r"\|\s*(.+?)\s*\|\s*(.+?)\s*\|\s*(.+?)\s*\|", re.MULTILINE),
)
_MARKUP_RE = re.compile(r"\[|\]|\(.*?\)")
_URL_IN_TEXT_RE = re.compile(r"\(?(https?://[^\s)]+)\)?")
_HOST_PREFIX_RE = re.compile(r"^(www|careers|jobs|apply)\.", re.IGNORECASE)
_HOST_SUFFIX_RE = re.compile(
    r"\.(com|ca|io|co|org|net|jobs|careers|lever|greenhouse|workday|smartrecruiters"
    r"|myworkdayjobs|icims).*$",
    re.IGNORECASE,
)
_TITLE_TAIL_RE = re.compile(r"\s*[-–|]\s*.*(career|job|apply|company|hiring).*$", re.IGNORECASE)
_TITLE_AT_RE = re.compile(r"\s*at\s+\S+$", re.IGNORECASE)


def is_aggregator_site(url: str) -> bool:
    hostname = (urlparse(url).hostname or "").lower()
    return any(domain in hostname for domain in AGGREGATOR_DOMAINS)


def is_single_job_page(url: str, title: str) -> bool:
    return any(p.search(url) for p in _JOB_URL_RES) or bool(_JOB_TITLE_RE.search(title))


def is_internship_related(text: str) -> bool:
    return bool(_INTERNSHIP_RE.search(text))


def is_canada_related(text: str) -> bool:
    return bool(_CANADA_RE.search(text))


def is_clean_name(name: str) -> bool:
    """True when ``name`` looks like a real name, not markup debris."""
    if not name or len(name) < 2 or len(name) > 80:
        return False
    if _DIRTY_NAME_RE.search(name):
        return False
    if not re.search(r"[a-zA-Z]", name):
        return False
    letters = len(re.findall(r"[a-zA-Z\s]", name))
    return letters / len(name) >= 0.5


def clean_role_title(title: str) -> str:
    s = _TITLE_TAIL_RE.sub("", title)
    s = _TITLE_AT_RE.sub("", s)
    return re.sub(r"\s{2,}", " ", s).strip()


def extract_company_from_url(url: str) -> Optional[str]:
    hostname = urlparse(url).hostname or ""
    stem = _HOST_SUFFIX_RE.sub("", _HOST_PREFIX_RE.sub("", hostname))
    if not stem or len(stem) <= 1 or len(stem) >= 40:
        return None
    mapped = COMPANY_NAME_MAP.get(stem.lower())
    if mapped:
        return mapped
    return stem[0].upper() + stem[1:]


def extract_canadian_location(text: str) -> Optional[str]:
    """Best-effort "City, Province, Canada" from free text."""
    city = next((c for c in CANADIAN_CITIES if _mentions(c, text)), None)
    province = next((p for p in PROVINCES if _mentions(p, text)), None)

    if city and province:
        return f"{city}, {province}, Canada"
    if city:
        return f"{city}, Canada"
    if province:
        return f"{province}, Canada"
    if re.search(r"\bcanada\b", text, re.IGNORECASE):
        return "Canada"
    return None


def extract_jobs(result: dict[str, Any]) -> list[ParsedListing]:
    """Extract postings from one search result."""
    markdown = result.get("markdown") or ""
    source_url = result.get("url") or ""
    title = result.get("title") or ""

    if not markdown and not title:
        return []
    if is_aggregator_site(source_url):
        logger.debug("Skipping aggregator %s", source_url)
        return []

    if is_single_job_page(source_url, title):
        job = _page_job(title, markdown, source_url)
        return [job] if job else []

    jobs = _list_page_jobs(markdown, source_url)
    if jobs:
        return jobs

    if title and is_internship_related(title):
        job = _page_job(title, markdown, source_url)
        return [job] if job else []
    return []


def _page_job(title: str, markdown: str, source_url: str) -> Optional[ParsedListing]:
    company = extract_company_from_url(source_url)
    if not company or not is_clean_name(company):
        return None

    role = clean_role_title(title)
    if not (MIN_TITLE_LENGTH <= len(role) <= MAX_TITLE_LENGTH):
        return None
    if not is_internship_related(role):
        return None
    if not is_canada_related(f"{markdown} {title} {source_url}"):
        return None

    return ParsedListing(
        company_name=company,
        role_title=role,
        location=extract_canadian_location(f"{markdown} {title}"),
        apply_url=source_url,
    )


def _list_page_jobs(markdown: str, source_url: str) -> list[ParsedListing]:
    jobs: list[ParsedListing] = []

    for pattern in _LIST_PATTERNS:
        for match in pattern.finditer(markdown):
            company = _MARKUP_RE.sub("", match.group(1) or "").strip()
            role = _MARKUP_RE.sub("", match.group(2) or "").strip()
            location = _MARKUP_RE.sub("", match.group(3) or "").strip()
            if not company or not role:
                continue
            if not is_internship_related(role) or not 1 < len(company) < 60:
                continue
            if not is_clean_name(company):
                continue
            if not is_canada_related(f"{location} {company} {role}"):
                continue

            url_match = _URL_IN_TEXT_RE.search(match.group(0))
            jobs.append(
                ParsedListing(
                    company_name=company,
                    role_title=clean_role_title(role),
                    location=extract_canadian_location(location),
                    apply_url=url_match.group(1) if url_match else source_url,
                    row_index=len(jobs),
                )
            )

    return jobs


def _mentions(name: str, text: str) -> bool:
    return re.search(rf"\b{re.escape(name)}\b", text, re.IGNORECASE) is not None
