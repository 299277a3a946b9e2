"""Text normalization for scraped listing fields.

Role titles in the listings table carry emojis (🛂, 🇺🇸, 🔒), the
season/year of the hiring term and assorted separator noise. Everything
here is a pure function that never raises; the worst case is an empty
string (or None for URLs).
"""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urljoin

CONTINUATION_GLYPHS = ("↳", "└", "→")
LOCK_GLYPH = "🔒"

_EMOJI_RE = re.compile(
    "["
    "\U0001F000-\U0001FAFF"  # pictographs, emoticons, transport, flags
    "\U00002600-\U000027BF"  # misc symbols and dingbats
    "\U00002B00-\U00002BFF"
    "\U00002300-\U000023FF"
    "\u00a9\u00ae\u203c\u2049\u2122\u2139"
    "\u200d\ufe0e\ufe0f"  # joiners and variation selectors
    "]+"
)

_SEASONS = r"(?:Spring|Summer|Fall|Autumn|Winter)"
_SEASON_YEAR_RE = re.compile(rf"\b{_SEASONS}\s*20\d{{2}}\b", re.IGNORECASE)
_YEAR_SEASON_RE = re.compile(rf"\b20\d{{2}}\s*{_SEASONS}\b", re.IGNORECASE)
_ROLE_YEAR_RE = re.compile(r"\b(Internship|Intern|Co-?op|New Grad)\s*20\d{2}\b", re.IGNORECASE)
_EMPTY_PARENS_RE = re.compile(r"\(\s*\)")
_EMPTY_BRACKETS_RE = re.compile(r"\[\s*\]")
_SEPARATORS_RE = re.compile(r"\s*[-–—|,:;]+\s*")
_TRAILING_AMP_RE = re.compile(r"\s*&\s*$")
_TRAILING_PUNCT_RE = re.compile(r"[\s,.:;]+$")
_WHITESPACE_RE = re.compile(r"\s{2,}")

_SCHEMELESS_HOST_RE = re.compile(
    r"^(?:www\.)?[a-z0-9-]+(?:\.[a-z0-9-]+)+(?::\d+)?(?:[/?#]|$)", re.IGNORECASE
)
_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*:", re.IGNORECASE)

_MAX_PASSES = 10


def strip_emoji(text: str) -> str:
    return _EMOJI_RE.sub("", text)


def normalize_role_title(raw: Optional[str], term: Optional[str] = None) -> str:
    """Clean a scraped role title.

    Drops emojis, season/year tokens in either order, the run's own term
    string, empty brackets left behind, separator runs and trailing
    punctuation. The cleanup pass is repeated until the text stops
    changing, so the result is stable under re-normalization.
    """
    if not raw:
        return ""
    s = str(raw)
    for _ in range(_MAX_PASSES):
        cleaned = _normalize_once(s, term)
        if cleaned == s:
            break
        s = cleaned
    return s


def _normalize_once(s: str, term: Optional[str]) -> str:
    s = strip_emoji(s)
    s = _SEASON_YEAR_RE.sub("", s)
    s = _YEAR_SEASON_RE.sub("", s)
    if term:
        s = re.sub(rf"\b{re.escape(term)}\b", "", s, flags=re.IGNORECASE)
    # "Intern 2026" keeps the role word and loses the year
    s = _ROLE_YEAR_RE.sub(r"\1", s)
    s = _EMPTY_PARENS_RE.sub("", s)
    s = _EMPTY_BRACKETS_RE.sub("", s)
    s = _SEPARATORS_RE.sub(" ", s)
    s = _TRAILING_AMP_RE.sub("", s)
    s = _TRAILING_PUNCT_RE.sub("", s)
    s = _WHITESPACE_RE.sub(" ", s).strip()
    return _TRAILING_AMP_RE.sub("", s)


def clean_company_name(raw: Optional[str]) -> str:
    """Remove continuation glyphs and collapse whitespace."""
    if not raw:
        return ""
    s = str(raw)
    for glyph in CONTINUATION_GLYPHS:
        s = s.replace(glyph, "")
    return _WHITESPACE_RE.sub(" ", s).strip()


def is_continuation(raw: Optional[str]) -> bool:
    """True when a company cell means "same company as the row above"."""
    cleaned = clean_company_name(raw)
    return not cleaned or cleaned.lower() == "unknown"


def resolve_company(
    raw: Optional[str], previous: Optional[str]
) -> tuple[Optional[str], Optional[str]]:
    """Fold step for company continuation.

    Returns ``(company, carry)``: the company to use for this row (None
    when a continuation row has nothing to continue from) and the value
    to carry into the next row.
    """
    if is_continuation(raw):
        return previous, previous
    company = clean_company_name(raw)
    return company, company


def normalize_apply_url(raw: Optional[str], base_url: Optional[str] = None) -> Optional[str]:
    """Return an absolute http(s) apply URL, or None when there isn't one.

    Locked cells (🔒), non-web schemes and plain text yield None.
    Scheme-less hosts get ``https://``; a site-relative path is resolved
    against ``base_url`` when one is given.
    """
    if not raw:
        return None
    s = str(raw).strip()
    if not s or LOCK_GLYPH in s or any(ch.isspace() for ch in s):
        return None

    lowered = s.lower()
    if lowered.startswith(("http://", "https://")):
        return s
    if s.startswith("//"):
        return "https:" + s
    if _SCHEMELESS_HOST_RE.match(s):
        return "https://" + s
    if _SCHEME_RE.match(s):
        return None
    if s.startswith("/") and base_url:
        return urljoin(base_url, s)
    return None


def is_valid_apply_url(url: Optional[str]) -> bool:
    if not url:
        return False
    s = url.strip()
    return s.lower().startswith(("http://", "https://")) and LOCK_GLYPH not in s


def apply_url_key(url: str) -> str:
    """Comparison key for apply URLs: trimmed and case-folded."""
    return url.strip().casefold()
