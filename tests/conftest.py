# tests/conftest.py
"""
Shared fixtures: in-memory SQLite database, fake HTTP sessions and
fake fetchers/channels so no test touches the network.
"""
import os
import tempfile

# Must be set before anything imports tender_ingest (settings are cached)
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="tender_ingest_logs_")
for _key in (
    "SLACK_WEBHOOK_URL",
    "TWITTER_API_KEY",
    "TWITTER_API_SECRET",
    "TWITTER_ACCESS_TOKEN",
    "TWITTER_ACCESS_TOKEN_SECRET",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHANNEL_ID",
    "SCRAPE_ENABLED_SOURCES",
):
    os.environ[_key] = ""

from datetime import datetime, timedelta

import pytest
import requests

from tender_ingest.database import Base, engine, SessionLocal, get_db_context
import tender_ingest.models  # noqa: F401  (registers tables)
from tender_ingest.models.tender import Tender
from tender_ingest.services.fetcher import FetchExhausted


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, text="", status_code=200, json_data=None, headers=None):
        self.text = text
        self.status_code = status_code
        self._json = json_data
        self.headers = headers or {"content-type": "text/html; charset=utf-8"}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json


class FakeFetcher:
    """Serves canned pages by URL; an Exception value is raised instead."""

    def __init__(self, pages=None, json_pages=None):
        self.pages = pages or {}
        self.json_pages = json_pages or {}
        self.calls = []

    def with_deadline(self, deadline):
        return self

    def fetch(self, url, verify_tls=True, headers=None):
        self.calls.append(url)
        page = self.pages.get(url)
        if page is None:
            raise FetchExhausted(url, 3, requests.ConnectionError("unreachable"))
        if isinstance(page, Exception):
            raise page
        return page

    def fetch_json(self, url, verify_tls=True):
        self.calls.append(url)
        return self.json_pages.get(url)


class FakeChannel:
    """Records sent messages; fails every send when fail=True."""

    def __init__(self, name, enabled=True, fail=False):
        self.name = name
        self.enabled = enabled
        self.fail = fail
        self.sent = []
        self.attempts = 0

    def format(self, tender):
        return f"{tender.title} ({tender.id})"

    def send(self, message):
        self.attempts += 1
        if self.fail:
            raise requests.ConnectionError(f"{self.name} down")
        self.sent.append(message)


@pytest.fixture
def db_engine():
    """Fresh schema for every test."""
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(db_engine):
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def session_factory(db_engine):
    return get_db_context


@pytest.fixture
def fake_fetcher_cls():
    return FakeFetcher


@pytest.fixture
def fake_channel_cls():
    return FakeChannel


@pytest.fixture
def fake_response_cls():
    return FakeResponse


@pytest.fixture
def make_tender(db):
    """Insert and commit a tender with sensible defaults."""

    def _make(**overrides):
        values = {
            "title": "Supply of Office Furniture",
            "description": "Supply and delivery of office furniture",
            "deadline": datetime.utcnow() + timedelta(days=10),
            "contact_info": "Ministry of Health",
            "category": "Supplies & Equipment",
            "location": "Nairobi",
            "affirmative_action": {"type": "none", "percentage": 0, "details": ""},
            "source": "mygov",
        }
        values.update(overrides)
        tender = Tender(**values)
        db.add(tender)
        db.commit()
        db.refresh(tender)
        return tender

    return _make
