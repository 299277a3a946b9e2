"""Tests for README table extraction and row parsing."""

from datetime import timedelta

from conftest import NOW, apply_link, make_table
from opening_signals.tables import (
    ColumnRole,
    detect_columns,
    extract_tables,
    parse_table,
)

TERM = "Summer 2026"


def _row(company, role, n, location="Remote", age="2d"):
    return (company, role, location, apply_link(f"https://x.example/apply{n}"), age)


def test_continuation_rows_inherit_company():
    table = make_table(
        [
            _row("Acme", "Role A", 1),
            _row("↳", "Role B", 2),
            _row("", "Role C", 3),
        ]
    )
    result = parse_table(table, term=TERM, now=NOW)

    assert [r.company_name for r in result.rows] == ["Acme", "Acme", "Acme"]
    assert [r.role_title for r in result.rows] == ["Role A", "Role B", "Role C"]
    assert result.errors == []


def test_continuation_without_company_is_skipped():
    table = make_table([_row("↳", "Orphan Role", 1), _row("Acme", "Role A", 2)])
    result = parse_table(table, term=TERM, now=NOW)

    assert len(result.rows) == 1
    assert result.skipped_count == 1
    assert result.errors == []


def test_one_broken_row_does_not_stop_the_table():
    rows = [_row(f"Company {i}", "Intern", i) for i in range(9)]
    rows.insert(4, ("only one cell",))
    result = parse_table(make_table(rows), term=TERM, now=NOW, table_index=2)

    assert len(result.rows) == 9
    assert result.skipped_count == 1
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Table 2, Row 4:")


def test_missing_tbody_is_a_diagnostic():
    result = parse_table("<table><tr><td>x</td></tr></table>", table_index=1)
    assert result.rows == []
    assert result.errors == ["Table 1: No tbody found"]


def test_missing_table_and_empty_body():
    assert parse_table("<p>nothing</p>").errors == ["Table 0: No table element found"]
    assert parse_table("<table><tbody></tbody></table>").errors == [
        "Table 0: No table rows found"
    ]


def test_th_row_is_used_as_header():
    """Without <thead>, a leading row of <th> cells names the columns."""
    table = (
        "<table><tbody>"
        "<tr><th>Role</th><th>Company</th><th>Location</th><th>Link</th></tr>"
        f"<tr><td>Data Intern</td><td>Acme</td><td>NYC</td><td>{apply_link('https://x/a')}</td></tr>"
        "</tbody></table>"
    )
    result = parse_table(table, now=NOW)

    assert len(result.rows) == 1
    assert result.rows[0].company_name == "Acme"
    assert result.rows[0].role_title == "Data Intern"


def test_detect_columns_falls_back_to_positions():
    columns = detect_columns(["Employer", "What", "Where", "Go"])
    assert columns.detected == frozenset()
    assert columns.index(ColumnRole.COMPANY) == 0
    assert columns.index(ColumnRole.APPLY) == 3
    assert columns.index(ColumnRole.AGE) is None

    columns = detect_columns(["Company", "Position", "Location", "Apply", "Date Posted"])
    assert columns.index(ColumnRole.AGE) == 4
    assert ColumnRole.AGE in columns.detected


def test_partial_header_keeps_defaults_off_claimed_cells():
    """A default position never lands on a column a header already claimed."""
    columns = detect_columns(["Role", "Company", "Apply"])
    assert columns.index(ColumnRole.ROLE) == 0
    assert columns.index(ColumnRole.COMPANY) == 1
    assert columns.index(ColumnRole.APPLY) == 2
    assert columns.index(ColumnRole.LOCATION) is None

    table = make_table(
        [("Data Intern", "Acme", apply_link("https://x.example/apply1"))],
        header=("Role", "Company", "Apply"),
    )
    result = parse_table(table, term=TERM, now=NOW)

    assert result.errors == []
    row = result.rows[0]
    assert (row.company_name, row.role_title) == ("Acme", "Data Intern")
    assert row.location is None
    assert row.apply_url == "https://x.example/apply1"


def test_table_without_company_column_is_a_diagnostic():
    table = make_table(
        [("Remote", "Data Intern", "x", apply_link("https://x.example/apply1"))],
        header=("Location", "Position", "Notes", "Link"),
    )
    result = parse_table(table, table_index=2, now=NOW)

    assert result.rows == []
    assert result.errors == ["Table 2: No company column"]


def test_header_age_column_wins_over_token_scan():
    """A role title that looks like an age token must not be read as the age."""
    table = make_table([("Acme", "3d", "Remote", apply_link("https://x/a"), "10")])
    result = parse_table(table, now=NOW)

    assert result.rows[0].age_days == 10
    assert result.rows[0].posted_at == NOW - timedelta(days=10)


def test_age_found_by_scan_without_header():
    table = make_table(
        [("Acme", "Intern", "Remote", apply_link("https://x/a"), "1w")], header=None
    )
    result = parse_table(table, now=NOW)

    assert result.rows[0].age_days == 7


def test_no_age_column_means_posted_now():
    table = make_table(
        [("Acme", "Intern", "Remote", apply_link("https://x/a"))],
        header=("Company", "Role", "Location", "Application"),
    )
    row = parse_table(table, now=NOW).rows[0]

    assert row.age_days == 0
    assert row.posted_at == NOW


def test_unparseable_age_is_a_row_error():
    table = make_table([_row("Acme", "Intern", 1, age="whenever")])
    result = parse_table(table, now=NOW)

    assert result.rows == []
    assert "unparseable age" in result.errors[0]


def test_locked_rows_need_allow_missing_apply_url():
    table = make_table([("Acme", "Intern", "Remote", "🔒", "3mo")])

    active = parse_table(table, now=NOW)
    assert active.rows == []
    assert active.skipped_count == 1
    assert active.errors == []

    inactive = parse_table(table, allow_missing_apply_url=True, now=NOW)
    assert len(inactive.rows) == 1
    assert inactive.rows[0].apply_url is None
    assert inactive.rows[0].age_days == 90


def test_relative_apply_urls_resolve_against_base():
    table = make_table([("Acme", "Intern", "Remote", apply_link("/jobs/7"), "1d")])
    result = parse_table(table, now=NOW, base_url="https://github.com/org/repo")

    assert result.rows[0].apply_url == "https://github.com/jobs/7"


def test_cell_markup_is_read():
    location = "<details><summary>3 locations</summary>Toronto, ON<br>Waterloo, ON<br>Remote</details>"
    table = make_table(
        [
            (
                '<strong><a href="https://acme.example">Acme Corp</a></strong>',
                "ML Intern 🛂 - Summer 2026",
                location,
                apply_link("https://x/a"),
                "0d",
            )
        ]
    )
    row = parse_table(table, term=TERM, now=NOW).rows[0]

    assert row.company_name == "Acme Corp"
    assert row.role_title == "ML Intern"
    assert row.location == "Toronto, ON; Waterloo, ON; Remote"


def test_extract_tables_splits_active_and_inactive():
    html = (
        "<h2>Listings</h2>"
        + make_table([_row("A", "Intern", 1)])
        + "<details><summary><strong>🗃️ Inactive roles</strong></summary>"
        + make_table([_row("B", "Intern", 2)])
        + "</details>"
        + "<details><summary>More open roles</summary>"
        + make_table([_row("C", "Intern", 3)])
        + "</details>"
    )
    tables = extract_tables(html)

    assert tables.total == 3
    assert len(tables.active_tables) == 2
    assert len(tables.inactive_tables) == 1
    assert "apply2" in tables.inactive_tables[0]
    assert "apply1" in tables.active_tables[0]
    assert "apply3" in tables.active_tables[1]


def test_extract_tables_ignores_nested_tables():
    inner = make_table([_row("Inner", "Intern", 9)])
    outer = f"<table><tbody><tr><td>{inner}</td></tr></tbody></table>"
    assert extract_tables(outer).total == 1
    assert extract_tables("").total == 0
