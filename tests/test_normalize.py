"""Tests for role, company and URL normalization."""

import pytest

from opening_signals.normalize import (
    apply_url_key,
    clean_company_name,
    is_continuation,
    is_valid_apply_url,
    normalize_apply_url,
    normalize_role_title,
    resolve_company,
    strip_emoji,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Software Engineering Intern - Summer 2026 🛂", "Software Engineering Intern"),
        ("SWE Intern — Summer 2026", "SWE Intern"),
        ("2026 Summer Data Intern", "Data Intern"),
        ("Software Intern (Summer 2026)", "Software Intern"),
        ("Intern 2026", "Intern"),
        ("Quant Research Internship 2026 🇺🇸", "Quant Research Internship"),
        ("Hardware Intern | Fall 2026 &", "Hardware Intern"),
        ("  Backend   Intern  ", "Backend Intern"),
    ],
)
def test_normalize_role_title(raw, expected):
    assert normalize_role_title(raw) == expected


def test_normalize_removes_run_term():
    """The run's own term string is stripped even when it isn't a season."""
    assert normalize_role_title("Analyst Q3 Cohort", term="Q3 Cohort") == "Analyst"


def test_normalize_is_a_fixed_point():
    samples = [
        "Software Engineering Intern - Summer 2026 🛂",
        "[ ] Intern 2026 () - Winter 2027",
        "Data Intern — 2026 Fall, Remote:",
        "🔒 ML Intern & &",
    ]
    for raw in samples:
        once = normalize_role_title(raw, term="Summer 2026")
        assert normalize_role_title(once, term="Summer 2026") == once


def test_normalize_empty_inputs():
    assert normalize_role_title(None) == ""
    assert normalize_role_title("") == ""
    assert normalize_role_title("🛂 🇺🇸") == ""


def test_strip_emoji_keeps_plain_text():
    assert strip_emoji("Intern 🔒") == "Intern "
    assert strip_emoji("café ↳") == "café ↳"


def test_company_continuation():
    assert is_continuation("↳")
    assert is_continuation("")
    assert is_continuation(None)
    assert is_continuation("Unknown")
    assert not is_continuation("Google")
    assert clean_company_name(" ↳  Google  LLC ") == "Google LLC"


def test_resolve_company_carries_last_real_company():
    assert resolve_company("Google", None) == ("Google", "Google")
    assert resolve_company("↳", "Google") == ("Google", "Google")
    assert resolve_company("└", None) == (None, None)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("https://example.com/jobs/1", "https://example.com/jobs/1"),
        ("  http://example.com/a  ", "http://example.com/a"),
        ("www.example.com/jobs/1", "https://www.example.com/jobs/1"),
        ("boards.example.io?gh_jid=7", "https://boards.example.io?gh_jid=7"),
        ("//cdn.example.com/x", "https://cdn.example.com/x"),
        ("🔒", None),
        ("mailto:jobs@example.com", None),
        ("javascript:void(0)", None),
        ("Apply here", None),
        ("", None),
        (None, None),
    ],
)
def test_normalize_apply_url(raw, expected):
    assert normalize_apply_url(raw) == expected


def test_relative_apply_url_needs_base():
    base = "https://github.com/org/repo/blob/main/README.md"
    assert normalize_apply_url("/org/repo/jobs/1", base) == "https://github.com/org/repo/jobs/1"
    assert normalize_apply_url("/org/repo/jobs/1") is None


def test_is_valid_apply_url():
    assert is_valid_apply_url("https://x.com/a")
    assert not is_valid_apply_url("ftp://x.com/a")
    assert not is_valid_apply_url("https://x.com/🔒")
    assert not is_valid_apply_url(None)


def test_apply_url_key_folds_case_and_space():
    assert apply_url_key(" HTTPS://X.com/Apply ") == apply_url_key("https://x.com/apply")
