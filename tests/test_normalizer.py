# tests/test_normalizer.py
"""
Unit tests for normalization and affirmative-action classification.

Tests cover:
- Deadline parsing: ISO-8601, RFC-2822, numeric and textual dates
- Timezone-aware inputs converted to naive UTC
- Total parser: every input yields a datetime, unknown text gets the default
- Classification priority youth > women > pwds for every keyword ordering
- Candidate normalization defaults and truncation
- Sector guessing and tender status
"""
from datetime import datetime, timedelta
from itertools import permutations

import pytest

from tender_ingest.services.normalizer import (
    parse_deadline,
    classify_affirmative_action,
    normalize_candidate,
    guess_category,
    tender_status,
    DEFAULT_REQUIREMENTS,
    DEFAULT_CONTACT,
)
from tender_ingest.services.sources import ScrapeSource

NOW = datetime(2025, 5, 1, 12, 0, 0)
DEFAULT = NOW + timedelta(days=14)


class TestParseDeadline:
    """Tests for parse_deadline."""

    @pytest.mark.unit
    @pytest.mark.parametrize("text, expected", [
        ("2025-05-20", datetime(2025, 5, 20)),
        ("2025-05-20T10:30:00", datetime(2025, 5, 20, 10, 30)),
        ("2025-05-20T10:30:00Z", datetime(2025, 5, 20, 10, 30)),
        ("2025-05-20T13:30:00+03:00", datetime(2025, 5, 20, 10, 30)),
        ("Tue, 20 May 2025 13:30:00 +0300", datetime(2025, 5, 20, 10, 30)),
    ])
    def test_machine_readable_formats(self, text, expected):
        """ISO-8601 and RFC-2822, aware values normalized to naive UTC."""
        result = parse_deadline(text, now=NOW)

        assert result == expected
        assert result.tzinfo is None

    @pytest.mark.unit
    @pytest.mark.parametrize("text", [
        "20/05/2025",
        "20-05-2025",
        "20.05.2025",
        "Closing on 20/05/2025 at 10:00 AM",
        "Closing: 2025-05-20",
    ])
    def test_numeric_dates_day_first(self, text):
        """Numeric dates are read day first, anywhere in the text."""
        assert parse_deadline(text, now=NOW) == datetime(2025, 5, 20)

    @pytest.mark.unit
    @pytest.mark.parametrize("text", [
        "20 May 2025",
        "20th May, 2025",
        "Deadline 20 may 2025 before noon",
    ])
    def test_textual_dates(self, text):
        """'D Mon YYYY' patterns use the month table."""
        assert parse_deadline(text, now=NOW) == datetime(2025, 5, 20)

    @pytest.mark.unit
    @pytest.mark.parametrize("text", [None, "", "   ", "TBA", "See document", "31/02/2025", "99 Foo 2025"])
    def test_unparseable_gets_default(self, text):
        """Unknown or impossible dates fall back to now + 14 days."""
        assert parse_deadline(text, now=NOW) == DEFAULT

    @pytest.mark.unit
    def test_never_raises(self):
        """The parser is total over odd inputs."""
        weird = ["0/0/0000", "2025-13-45", "Mon, 99 Foo 2025", "١٢/٠٥/٢٠٢٥", "\x00", "32 Jan 2025", 12345]
        for value in weird:
            assert isinstance(parse_deadline(value, now=NOW), datetime)

    @pytest.mark.unit
    @pytest.mark.parametrize("text", [
        "0001-01-01T00:00:00+05:00",
        "9999-12-31T23:59:59-05:00",
        "Fri, 31 Dec 9999 23:59:59 -0500",
    ])
    def test_out_of_range_offsets_never_raise(self, text):
        """Aware dates that overflow once moved to UTC fall through to the next step."""
        parsed = parse_deadline(text, now=NOW)

        assert isinstance(parsed, datetime)
        assert parsed.tzinfo is None


class TestClassifyAffirmativeAction:
    """Tests for classify_affirmative_action."""

    REPRESENTATIVES = {"youth": "youth", "women": "women", "pwds": "disabled"}

    @pytest.mark.unit
    @pytest.mark.parametrize("order", list(permutations(["youth", "women", "pwds"])))
    def test_priority_independent_of_keyword_order(self, order):
        """youth > women > pwds whatever the order the keywords appear in."""
        title = " ".join(self.REPRESENTATIVES[group] for group in order)

        assert classify_affirmative_action(title, None, None)["type"] == "youth"

    @pytest.mark.unit
    @pytest.mark.parametrize("order", list(permutations(["women", "pwds"])))
    def test_women_beats_pwds(self, order):
        """Without youth keywords, women wins over pwds."""
        title = " ".join(self.REPRESENTATIVES[group] for group in order)

        assert classify_affirmative_action(title, None, None)["type"] == "women"

    @pytest.mark.unit
    @pytest.mark.parametrize("keyword, expected", [
        ("youth", "youth"),
        ("AGPO", "youth"),
        ("young", "youth"),
        ("Women", "women"),
        ("woman", "women"),
        ("PWD", "pwds"),
        ("persons with disabilities", "pwds"),
        ("disability", "pwds"),
        ("disabled", "pwds"),
    ])
    def test_each_keyword(self, keyword, expected):
        """Every keyword is recognized, case-insensitively."""
        result = classify_affirmative_action(f"Supply of goods reserved for {keyword}", None, None)

        assert result["type"] == expected
        assert result["percentage"] == 30
        assert result["details"]

    @pytest.mark.unit
    def test_keywords_searched_in_all_fields(self):
        """Description and organization are part of the search text."""
        assert classify_affirmative_action("Cleaning", "For women groups", None)["type"] == "women"
        assert classify_affirmative_action("Cleaning", None, "Youth Fund")["type"] == "youth"

    @pytest.mark.unit
    def test_no_keyword(self):
        """No match yields the neutral classification."""
        assert classify_affirmative_action("Road works", "Tarmacking", "KeNHA") == {
            "type": "none",
            "percentage": 0,
            "details": "",
        }


class TestNormalizeCandidate:
    """Tests for normalize_candidate."""

    @pytest.mark.unit
    def test_defaults_filled(self):
        """Missing fields receive safe defaults."""
        record = normalize_candidate({"title": "  Supply of Stationery  "}, now=NOW)

        assert record["title"] == "Supply of Stationery"
        assert record["requirements"] == DEFAULT_REQUIREMENTS
        assert record["contact_info"] == DEFAULT_CONTACT
        assert record["location"] == "Kenya"
        assert record["category"] == "Supplies & Equipment"
        assert record["points_required"] == 0
        assert record["deadline"] == DEFAULT
        assert record["tender_url"] is None
        assert record["affirmative_action"]["type"] == "none"

    @pytest.mark.unit
    def test_source_defaults_used(self):
        """Source category and location apply when the candidate has none."""
        source = ScrapeSource(name="agpo", base_url="https://agpo.go.ke", category="AGPO", location="Nairobi")

        record = normalize_candidate({"title": "Catering Services"}, source, now=NOW)

        assert record["category"] == "AGPO"
        assert record["location"] == "Nairobi"

    @pytest.mark.unit
    def test_organization_becomes_contact(self):
        """The issuing organization is kept as contact information."""
        record = normalize_candidate({"title": "Audit", "organization": "Treasury"}, now=NOW)

        assert record["contact_info"] == "Treasury"

    @pytest.mark.unit
    def test_long_title_truncated(self):
        """Titles are cut to the column length."""
        record = normalize_candidate({"title": "x" * 800}, now=NOW)

        assert len(record["title"]) == 500

    @pytest.mark.unit
    @pytest.mark.parametrize("title", [None, "", "   "])
    def test_title_required(self, title):
        """Candidates without a title are dropped."""
        assert normalize_candidate({"title": title}, now=NOW) is None


class TestGuessCategoryAndStatus:
    """Tests for guess_category and tender_status."""

    @pytest.mark.unit
    @pytest.mark.parametrize("text, expected", [
        ("Construction of classrooms", "Construction & Works"),
        ("Supply of ICT equipment", "ICT & Telecommunications"),
        ("Hospital linen", "Health"),
        ("District office cleaning", "General Services"),
        ("Miscellaneous", "Government"),
        (None, "Government"),
    ])
    def test_guess_category(self, text, expected):
        """Keywords map to Kenyan procurement sectors."""
        assert guess_category(text) == expected

    @pytest.mark.unit
    def test_tender_status(self):
        """open / closing_soon / closed relative to now."""
        assert tender_status(NOW - timedelta(hours=1), NOW) == "closed"
        assert tender_status(NOW + timedelta(days=2), NOW) == "closing_soon"
        assert tender_status(NOW + timedelta(days=10), NOW) == "open"
