"""HTML table extraction and row parsing for the listings README.

The README renders its listings as HTML tables:

  - Active roles are plain ``<table>`` blocks.
  - Closed roles sit in ``<details><summary>… Inactive roles …</summary>``
    sections and are kept for history.
  - Each body row is Company | Role | Location | Application | Age. The
    company cell holds ``↳`` when the row belongs to the company above.
  - The Application cell links to the posting, or shows 🔒 once closed.

Parsing is row-isolated: every ``<tr>`` becomes a ParsedListing, a
RowSkip (the row is valid but unusable) or a RowError (the row is
malformed). A bad row never stops the rest of the table.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from bs4 import BeautifulSoup, Tag

from opening_signals.ages import derive_age, looks_like_age_token, parse_age_cell
from opening_signals.models import ParsedListing, utcnow
from opening_signals.normalize import normalize_apply_url, normalize_role_title, resolve_company

logger = logging.getLogger(__name__)

INACTIVE_SECTION_LABEL = "inactive roles"


class ColumnRole(Enum):
    COMPANY = "company"
    ROLE = "role"
    LOCATION = "location"
    APPLY = "apply"
    AGE = "age"
    UNKNOWN = "unknown"


# Checked in order; a header cell takes the first role whose keywords match.
HEADER_KEYWORDS: list[tuple[ColumnRole, tuple[str, ...]]] = [
    (ColumnRole.COMPANY, ("company", "name")),
    (ColumnRole.ROLE, ("role", "position", "title")),
    (ColumnRole.LOCATION, ("location",)),
    (ColumnRole.APPLY, ("apply", "application", "link", "url")),
    (ColumnRole.AGE, ("age", "posted", "date")),
]

DEFAULT_POSITIONS: dict[ColumnRole, int] = {
    ColumnRole.COMPANY: 0,
    ColumnRole.ROLE: 1,
    ColumnRole.LOCATION: 2,
    ColumnRole.APPLY: 3,
}

REQUIRED_ROLES = (ColumnRole.COMPANY, ColumnRole.ROLE)


@dataclass
class ColumnMap:
    """Which cell index holds which field.

    ``detected`` lists the roles that came from the header row; the rest
    use DEFAULT_POSITIONS where that cell is free. A role can end up with
    no column (location under a Role | Company | Apply header). The age
    column has no default: without a header match, each row is scanned
    for an age-shaped cell instead.
    """

    positions: dict[ColumnRole, int]
    detected: frozenset[ColumnRole] = frozenset()

    def index(self, role: ColumnRole) -> Optional[int]:
        return self.positions.get(role)

    @property
    def required_width(self) -> int:
        return max(self.positions[r] for r in DEFAULT_POSITIONS if r in self.positions) + 1

    def missing(self, roles: tuple[ColumnRole, ...]) -> list[ColumnRole]:
        return [role for role in roles if role not in self.positions]


def classify_header(text: str) -> ColumnRole:
    lowered = text.lower()
    for role, keywords in HEADER_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return role
    return ColumnRole.UNKNOWN


def detect_columns(header_texts: list[str]) -> ColumnMap:
    """Map header cell texts to column roles, falling back to positions.

    With no recognised headers every default position applies. Otherwise a
    default only fills a role whose position no detected header claimed.
    """
    positions: dict[ColumnRole, int] = {}
    for idx, text in enumerate(header_texts):
        role = classify_header(text)
        if role is not ColumnRole.UNKNOWN and role not in positions:
            positions[role] = idx

    detected = frozenset(positions)
    taken = set(positions.values())
    for role, default in DEFAULT_POSITIONS.items():
        if role not in positions and default not in taken:
            positions[role] = default
            taken.add(default)
    return ColumnMap(positions=positions, detected=detected)


# ── Row outcomes ───────────────────────────────────────────────────────────


@dataclass
class RowSkip:
    row_index: int
    reason: str


@dataclass
class RowError:
    row_index: int
    message: str


RowOutcome = Union[ParsedListing, RowSkip, RowError]


@dataclass
class TableParseResult:
    rows: list[ParsedListing] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    skipped_count: int = 0

    def add(self, outcome: RowOutcome) -> None:
        if isinstance(outcome, ParsedListing):
            self.rows.append(outcome)
        elif isinstance(outcome, RowError):
            self.errors.append(outcome.message)
            self.skipped_count += 1
        else:
            logger.debug("Skipped row %d: %s", outcome.row_index, outcome.reason)
            self.skipped_count += 1

    def extend(self, other: "TableParseResult") -> None:
        self.rows.extend(other.rows)
        self.errors.extend(other.errors)
        self.skipped_count += other.skipped_count


# ── Table extraction ───────────────────────────────────────────────────────


@dataclass
class ExtractedTables:
    active_tables: list[str] = field(default_factory=list)
    inactive_tables: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.active_tables) + len(self.inactive_tables)


def extract_tables(html: str) -> ExtractedTables:
    """Split the document's tables into active and inactive, in document order."""
    soup = BeautifulSoup(html or "", "html.parser")
    extracted = ExtractedTables()

    for table in soup.find_all("table"):
        if table.find_parent("table") is not None:
            continue
        if _in_inactive_section(table):
            extracted.inactive_tables.append(str(table))
        else:
            extracted.active_tables.append(str(table))

    return extracted


def _in_inactive_section(table: Tag) -> bool:
    for details in table.find_parents("details"):
        summary = details.find("summary", recursive=False)
        if summary and INACTIVE_SECTION_LABEL in summary.get_text(" ", strip=True).lower():
            return True
    return False


# ── Row parsing ────────────────────────────────────────────────────────────


def parse_table(
    table_html: Union[str, Tag],
    allow_missing_apply_url: bool = False,
    term: Optional[str] = None,
    *,
    table_index: int = 0,
    now: Optional[datetime] = None,
    base_url: Optional[str] = None,
) -> TableParseResult:
    """Parse one listings table into ParsedListing rows.

    Never raises. Structural problems (no body, no rows) come back as a
    single error string; row problems are counted per row.

    Args:
        table_html: The ``<table>`` markup (or an already-parsed tag)
        allow_missing_apply_url: Accept rows without a usable apply link
            (inactive tables, where closed roles show 🔒)
        term: Hiring term stripped from role titles, e.g. "Summer 2026"
        table_index: Position of the table, used in error messages
        now: Reference time for age derivation
        base_url: Resolves site-relative apply links
    """
    now = now or utcnow()
    result = TableParseResult()

    table = _as_table(table_html)
    if table is None:
        result.errors.append(f"Table {table_index}: No table element found")
        return result

    tbody = table.find("tbody")
    if tbody is None:
        result.errors.append(f"Table {table_index}: No tbody found")
        return result

    body_rows = tbody.find_all("tr")
    header_cells, body_rows = _split_header(table, body_rows)
    if not body_rows:
        result.errors.append(f"Table {table_index}: No table rows found")
        return result

    columns = detect_columns([_cell_text(cell) for cell in header_cells])
    logger.debug("Table %d columns: %s", table_index, columns.positions)
    missing = columns.missing(REQUIRED_ROLES)
    if missing:
        names = ", ".join(role.value for role in missing)
        result.errors.append(f"Table {table_index}: No {names} column")
        return result

    # Left fold over rows; the accumulator is the last real company name.
    carry: Optional[str] = None
    for row_index, tr in enumerate(body_rows):
        try:
            outcome, carry = _parse_row(
                tr, row_index, columns, carry, allow_missing_apply_url, term, now, base_url
            )
        except Exception as exc:
            outcome = RowError(row_index, f"Table {table_index}, Row {row_index}: {exc}")
        result.add(outcome)

    return result


def _parse_row(
    tr: Tag,
    row_index: int,
    columns: ColumnMap,
    carry: Optional[str],
    allow_missing_apply_url: bool,
    term: Optional[str],
    now: datetime,
    base_url: Optional[str],
) -> tuple[RowOutcome, Optional[str]]:
    cells = tr.find_all(["td", "th"], recursive=False)
    if len(cells) < columns.required_width:
        raise ValueError(
            f"expected at least {columns.required_width} cells, found {len(cells)}"
        )

    company, carry = resolve_company(
        _company_text(cells[columns.positions[ColumnRole.COMPANY]]), carry
    )
    if not company:
        return RowSkip(row_index, "continuation row with no preceding company"), carry

    role_title = normalize_role_title(
        _cell_text(cells[columns.positions[ColumnRole.ROLE]]), term
    )
    if not role_title:
        return RowSkip(row_index, "empty role title"), carry

    apply_idx = columns.index(ColumnRole.APPLY)
    apply_url = _apply_url(cells[apply_idx], base_url) if apply_idx is not None else None
    if apply_url is None and not allow_missing_apply_url:
        return RowSkip(row_index, "missing apply url"), carry

    location_idx = columns.index(ColumnRole.LOCATION)
    location = None
    if location_idx is not None:
        location = _location_text(cells[location_idx]) or None
    age_days, posted_at = _row_age(cells, columns, now)

    listing = ParsedListing(
        company_name=company,
        role_title=role_title,
        location=location,
        apply_url=apply_url,
        age_days=age_days,
        posted_at=posted_at,
        row_index=row_index,
    )
    return listing, carry


def _row_age(cells: list[Tag], columns: ColumnMap, now: datetime) -> tuple[int, datetime]:
    """Age from the header-detected column, else from the first age-shaped cell."""
    if ColumnRole.AGE in columns.detected:
        idx: Optional[int] = columns.positions[ColumnRole.AGE]
    else:
        idx = next(
            (i for i, cell in enumerate(cells) if looks_like_age_token(_cell_text(cell))),
            None,
        )

    if idx is None or idx >= len(cells):
        return derive_age(now)

    reading = parse_age_cell(_cell_text(cells[idx]), now)
    return reading if reading is not None else derive_age(now)


def _as_table(table_html: Union[str, Tag]) -> Optional[Tag]:
    if isinstance(table_html, Tag):
        return table_html if table_html.name == "table" else table_html.find("table")
    return BeautifulSoup(table_html or "", "html.parser").find("table")


def _split_header(table: Tag, body_rows: list[Tag]) -> tuple[list[Tag], list[Tag]]:
    """Return (header cells, data rows).

    Uses ``<thead>`` when present; otherwise a first body row made only
    of ``<th>`` cells is taken as the header.
    """
    thead = table.find("thead")
    if thead is not None:
        header_row = thead.find("tr")
        cells = header_row.find_all(["th", "td"]) if header_row else []
        return cells, body_rows

    if body_rows:
        first = body_rows[0]
        if first.find("th") is not None and first.find("td") is None:
            return first.find_all("th"), body_rows[1:]

    return [], body_rows


def _cell_text(cell: Tag) -> str:
    return " ".join(cell.get_text(" ", strip=True).split())


def _company_text(cell: Tag) -> str:
    """Company name, preferring emphasized or linked text inside the cell."""
    for tag_name in ("strong", "a", "b"):
        tag = cell.find(tag_name)
        if tag is not None:
            text = " ".join(tag.get_text(" ", strip=True).split())
            if text:
                return text
    return _cell_text(cell)


def _location_text(cell: Tag) -> str:
    """Location text; multi-location cells list each place separated by "; "."""
    details = cell.find("details")
    if details is None:
        return _cell_text(cell)

    summary = details.find("summary")
    if summary is not None:
        summary.extract()
    for br in details.find_all("br"):
        br.replace_with("\n")
    places = [line.strip() for line in details.get_text("\n").split("\n") if line.strip()]
    return "; ".join(places)


def _apply_url(cell: Tag, base_url: Optional[str]) -> Optional[str]:
    anchor = cell.find("a", href=True)
    if anchor is not None:
        return normalize_apply_url(anchor["href"], base_url)
    return normalize_apply_url(_cell_text(cell), base_url)
