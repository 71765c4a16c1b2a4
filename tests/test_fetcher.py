# tests/test_fetcher.py
"""
Unit tests for the HTTP fetcher.

Tests cover:
- Successful fetch on first attempt
- Bounded retries with strictly increasing backoff waits
- FetchExhausted carrying the last error and the attempt count
- HTTP error statuses treated as failed attempts
- TLS verification toggle
- JSON probing by content type
- Run deadline stopping further attempts
"""
from unittest.mock import MagicMock

import pytest
import requests

from tender_ingest.services.fetcher import Fetcher, FetchExhausted, RunDeadline


def make_fetcher(side_effect, **kwargs):
    session = MagicMock()
    session.headers = {}
    session.get.side_effect = side_effect
    sleeps = []
    fetcher = Fetcher(
        session=session,
        session_factory=lambda: session,
        max_attempts=kwargs.pop("max_attempts", 3),
        base_delay=kwargs.pop("base_delay", 2.0),
        sleep=sleeps.append,
        **kwargs,
    )
    return fetcher, session, sleeps


class TestFetch:
    """Tests for Fetcher.fetch."""

    @pytest.mark.unit
    def test_returns_body_on_first_attempt(self, fake_response_cls):
        """A healthy page is returned without any wait."""
        fetcher, session, sleeps = make_fetcher([fake_response_cls("<html>ok</html>")])

        assert fetcher.fetch("https://example.go.ke") == "<html>ok</html>"
        assert session.get.call_count == 1
        assert sleeps == []

    @pytest.mark.unit
    def test_browser_headers_installed_on_session(self, fake_response_cls):
        """The session carries a browser User-Agent."""
        fetcher, session, _ = make_fetcher([fake_response_cls("ok")])

        assert "Mozilla" in session.headers["User-Agent"]

    @pytest.mark.unit
    def test_recovers_after_transient_errors(self, fake_response_cls):
        """Two connection errors then success returns the body."""
        fetcher, session, sleeps = make_fetcher([
            requests.ConnectionError("reset"),
            requests.Timeout("slow"),
            fake_response_cls("third time lucky"),
        ])

        assert fetcher.fetch("https://example.go.ke") == "third time lucky"
        assert session.get.call_count == 3
        assert sleeps == [2.0, 4.0]

    @pytest.mark.unit
    def test_exhausted_after_max_attempts(self):
        """Exactly max_attempts tries, then FetchExhausted with the last error."""
        last = requests.ConnectionError("still down")
        fetcher, session, sleeps = make_fetcher([
            requests.ConnectionError("down"),
            requests.ConnectionError("down again"),
            last,
        ])

        with pytest.raises(FetchExhausted) as exc_info:
            fetcher.fetch("https://example.go.ke")

        assert session.get.call_count == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error is last
        assert exc_info.value.url == "https://example.go.ke"

    @pytest.mark.unit
    def test_waits_strictly_increase(self):
        """Backoff waits grow between attempts."""
        fetcher, _, sleeps = make_fetcher(requests.ConnectionError("down"), max_attempts=4, base_delay=1.0)

        with pytest.raises(FetchExhausted):
            fetcher.fetch("https://example.go.ke")

        assert len(sleeps) == 3
        assert all(later > earlier for earlier, later in zip(sleeps, sleeps[1:]))

    @pytest.mark.unit
    def test_http_error_status_is_retried(self, fake_response_cls):
        """A 503 counts as a failed attempt."""
        fetcher, session, _ = make_fetcher([
            fake_response_cls(status_code=503),
            fake_response_cls(status_code=503),
            fake_response_cls(status_code=503),
        ])

        with pytest.raises(FetchExhausted) as exc_info:
            fetcher.fetch("https://example.go.ke")

        assert session.get.call_count == 3
        assert isinstance(exc_info.value.last_error, requests.HTTPError)

    @pytest.mark.unit
    def test_verify_tls_toggle_is_per_request(self, fake_response_cls):
        """verify_tls=False disables certificate checks for that call only."""
        fetcher, session, _ = make_fetcher([fake_response_cls("a"), fake_response_cls("b")])

        fetcher.fetch("https://insecure.go.ke", verify_tls=False)
        fetcher.fetch("https://secure.go.ke")

        first, second = session.get.call_args_list
        assert first.kwargs["verify"] is False
        assert second.kwargs["verify"] is True


class TestFetchJson:
    """Tests for Fetcher.fetch_json."""

    @pytest.mark.unit
    def test_decodes_json_content(self, fake_response_cls):
        """JSON content type is decoded."""
        response = fake_response_cls(
            json_data={"data": [1, 2]},
            headers={"content-type": "application/json"},
        )
        fetcher, _, _ = make_fetcher([response])

        assert fetcher.fetch_json("https://example.go.ke/api/tenders") == {"data": [1, 2]}

    @pytest.mark.unit
    def test_non_json_content_returns_none(self, fake_response_cls):
        """An HTML page behind an /api/ path is not a payload."""
        fetcher, _, _ = make_fetcher([fake_response_cls("<html></html>")])

        assert fetcher.fetch_json("https://example.go.ke/api/tenders") is None

    @pytest.mark.unit
    def test_invalid_json_returns_none(self, fake_response_cls):
        """Declared JSON that does not decode yields None."""
        response = fake_response_cls(headers={"content-type": "application/json"})
        fetcher, _, _ = make_fetcher([response])

        assert fetcher.fetch_json("https://example.go.ke/api/tenders") is None


class TestRunDeadline:
    """Tests for the per-run deadline."""

    @pytest.mark.unit
    def test_expired_deadline_stops_before_request(self, fake_response_cls):
        """No request is sent once the run deadline has passed."""
        fetcher, session, sleeps = make_fetcher([fake_response_cls("never")])
        fetcher = fetcher.with_deadline(RunDeadline(0))

        with pytest.raises(FetchExhausted):
            fetcher.fetch("https://example.go.ke")

        assert session.get.call_count == 0
        assert sleeps == []

    @pytest.mark.unit
    def test_timeout_capped_by_remaining_time(self, fake_response_cls):
        """Request timeout never exceeds the time left in the run."""
        fetcher, session, _ = make_fetcher([fake_response_cls("ok")], timeout=30)
        fetcher = fetcher.with_deadline(RunDeadline(5))

        fetcher.fetch("https://example.go.ke")

        assert session.get.call_args.kwargs["timeout"] <= 5

    @pytest.mark.unit
    def test_remaining_uses_clock(self):
        """remaining() counts down with the injected clock."""
        now = [100.0]
        deadline = RunDeadline(10, clock=lambda: now[0])

        assert deadline.remaining() == 10
        now[0] = 108.0
        assert deadline.remaining() == 2
        now[0] = 200.0
        assert deadline.remaining() == 0
        assert deadline.expired

    @pytest.mark.unit
    def test_each_run_gets_its_own_session(self):
        """Copies bound to a deadline never share the parent's session."""
        fetcher = Fetcher()

        first = fetcher.with_deadline(RunDeadline(5))
        second = fetcher.with_deadline(None)

        assert first.session is not fetcher.session
        assert first.session is not second.session
        assert first.session.headers["User-Agent"].startswith("Mozilla/5.0")
