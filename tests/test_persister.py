# tests/test_persister.py
"""
Unit tests for deduplication and batched persistence.

Tests cover:
- Idempotent re-ingestion of the same records
- Dedup on title and on tender URL, against the store and within the input
- Records without URL deduplicated by title only
- last_seen_at refreshed for records already stored
- A failing batch rolled back without blocking the following ones
- Store errors on the existence query surfaced as StoreUnavailable
"""
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from tender_ingest.models.tender import Tender
from tender_ingest.services.normalizer import normalize_candidate
from tender_ingest.services.persister import TenderPersister, StoreUnavailable

NOW = datetime(2025, 5, 1)


def record(title, url=None, **extra):
    candidate = {"title": title, "tender_url": url, "deadline_str": "30/05/2025"}
    candidate.update(extra)
    return normalize_candidate(candidate, now=NOW)


class TestDeduplication:
    """Tests for the existence check."""

    @pytest.mark.unit
    def test_reingestion_is_idempotent(self, db):
        """The second run over the same input inserts nothing."""
        records = [record(f"Tender {i}", f"https://t.go.ke/{i}") for i in range(5)]
        persister = TenderPersister(db)

        first = persister.persist(records, "mygov")
        second = persister.persist(records, "mygov")

        assert first.inserted_count == 5
        assert second.inserted_count == 0
        assert second.skipped_count == 5
        assert db.query(Tender).count() == 5

    @pytest.mark.unit
    def test_known_url_with_new_title_skipped(self, db, make_tender):
        """A stored tender_url marks the record as existing."""
        make_tender(title="Old title", tender_url="https://t.go.ke/1")

        result = TenderPersister(db).persist([record("Renamed title", "https://t.go.ke/1")])

        assert result.inserted_count == 0
        assert result.skipped_count == 1

    @pytest.mark.unit
    def test_known_title_with_new_url_skipped(self, db, make_tender):
        """A stored title marks the record as existing."""
        make_tender(title="Supply of Maize", tender_url=None)

        result = TenderPersister(db).persist([record("Supply of Maize", "https://t.go.ke/maize")])

        assert result.inserted_count == 0

    @pytest.mark.unit
    def test_duplicates_within_input(self, db):
        """Same title or same URL twice in one call is inserted once."""
        records = [
            record("Fuel Supply", "https://t.go.ke/a"),
            record("Fuel Supply", "https://t.go.ke/b"),
            record("Other", "https://t.go.ke/a"),
            record("Fresh"),
        ]

        result = TenderPersister(db).persist(records, "tenders_go_ke")

        assert result.inserted_count == 2
        assert result.skipped_count == 2
        assert {t.title for t in db.query(Tender).all()} == {"Fuel Supply", "Fresh"}

    @pytest.mark.unit
    def test_null_urls_never_collide(self, db):
        """Records without links are compared on title only."""
        result = TenderPersister(db).persist([record("First"), record("Second")])

        assert result.inserted_count == 2

    @pytest.mark.unit
    def test_last_seen_at_refreshed(self, db, make_tender):
        """Seeing a stored tender again refreshes last_seen_at."""
        old = datetime.utcnow() - timedelta(days=30)
        tender = make_tender(title="Audit Services", last_seen_at=old)

        TenderPersister(db).persist([record("Audit Services")])

        db.expire_all()
        assert db.get(Tender, tender.id).last_seen_at > old

    @pytest.mark.unit
    def test_source_and_ids_recorded(self, db):
        """Inserted rows carry the source name and their ids are returned."""
        result = TenderPersister(db).persist([record("Solar Panels")], "agpo")

        stored = db.get(Tender, result.inserted_ids[0])
        assert stored.source == "agpo"
        assert stored.affirmative_action == {"type": "none", "percentage": 0, "details": ""}

    @pytest.mark.unit
    def test_empty_input(self, db):
        """Nothing to persist means no queries and zero counters."""
        result = TenderPersister(db).persist([])

        assert (result.inserted_count, result.skipped_count, result.failed_batches) == (0, 0, 0)


class TestBatches:
    """Tests for partial-failure resilience."""

    @pytest.mark.unit
    def test_failed_batch_does_not_block_others(self, db, monkeypatch):
        """50 records, batch of 10, batch 2 fails: 40 stored, 1 failed batch."""
        records = [record(f"Tender {i:02d}", f"https://t.go.ke/{i}") for i in range(50)]
        persister = TenderPersister(db, batch_size=10)
        original = persister._insert_batch
        calls = []

        def flaky(batch, source_name):
            calls.append(len(batch))
            if len(calls) == 2:
                raise SQLAlchemyError("constraint violated")
            return original(batch, source_name)

        monkeypatch.setattr(persister, "_insert_batch", flaky)

        result = persister.persist(records, "mygov")

        assert calls == [10, 10, 10, 10, 10]
        assert result.inserted_count == 40
        assert result.failed_batches == 1
        assert len(result.inserted_ids) == 40
        titles = {t.title for t in db.query(Tender).all()}
        assert len(titles) == 40
        assert not any(f"Tender {i:02d}" in titles for i in range(10, 20))

    @pytest.mark.unit
    def test_failed_batch_recovered_next_run(self, db, monkeypatch):
        """Records of a failed batch are new again on the next run."""
        records = [record(f"Tender {i}") for i in range(3)]
        persister = TenderPersister(db, batch_size=10)
        original = persister._insert_batch

        def broken(batch, source_name):
            raise SQLAlchemyError("deadlock")

        monkeypatch.setattr(persister, "_insert_batch", broken)
        assert persister.persist(records).failed_batches == 1

        monkeypatch.setattr(persister, "_insert_batch", original)
        assert persister.persist(records).inserted_count == 3


class TestStoreUnavailable:
    """Tests for existence-query failures."""

    @pytest.mark.unit
    def test_existence_query_failure(self):
        """A dead connection aborts the whole call."""
        db = MagicMock()
        db.query.side_effect = OperationalError("SELECT", {}, Exception("connection refused"))

        with pytest.raises(StoreUnavailable):
            TenderPersister(db, batch_size=10).persist([record("Anything")])

        db.rollback.assert_called_once()
        db.add_all.assert_not_called()
