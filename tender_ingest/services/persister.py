# tender_ingest/services/persister.py
"""
Déduplication et stockage des tenders normalisés.
Une seule requête d'existence pour tout le lot, puis insertions par batch :
un batch en échec est annulé sans bloquer les suivants.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tender_ingest.config import get_settings
from tender_ingest.models.tender import Tender

logger = logging.getLogger(__name__)
settings = get_settings()


class StoreUnavailable(Exception):
    """La base ne répond pas (connexion, requête d'existence...)."""


@dataclass
class PersistResult:
    inserted_count: int = 0
    skipped_count: int = 0
    failed_batches: int = 0
    inserted_ids: list[int] = field(default_factory=list)


class TenderPersister:
    """Insère les nouveaux tenders, ignore ceux déjà connus"""

    def __init__(self, db: Session, batch_size: int | None = None):
        self.db = db
        self.batch_size = batch_size or settings.PERSIST_BATCH_SIZE

    def _existing_keys(self, records: list[dict]) -> tuple[set[str], set[str], list[int]]:
        """Titres et URLs déjà en base, en une requête."""
        titles = {r["title"] for r in records}
        urls = {r["tender_url"] for r in records if r.get("tender_url")}

        conditions = [Tender.title.in_(titles)]
        if urls:
            conditions.append(Tender.tender_url.in_(urls))

        try:
            rows = (
                self.db.query(Tender.id, Tender.title, Tender.tender_url)
                .filter(or_(*conditions))
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreUnavailable(f"Requête d'existence impossible: {e}") from e

        known_titles = {row.title for row in rows}
        known_urls = {row.tender_url for row in rows if row.tender_url}
        return known_titles, known_urls, [row.id for row in rows]

    def _touch(self, ids: list[int], seen_at: datetime) -> None:
        """Met à jour last_seen_at des tenders revus."""
        if not ids:
            return
        try:
            self.db.query(Tender).filter(Tender.id.in_(ids)).update(
                {Tender.last_seen_at: seen_at}, synchronize_session=False
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"⚠️ Mise à jour last_seen_at ignorée: {e}")

    def _insert_batch(self, batch: list[dict], source_name: str | None) -> list[Tender]:
        tenders = [Tender(source=source_name, **record) for record in batch]
        self.db.add_all(tenders)
        self.db.flush()
        return tenders

    def persist(self, records: list[dict], source_name: str | None = None) -> PersistResult:
        """
        Stocke les enregistrements absents de la base (titre ou URL).
        Retourne les compteurs insérés / ignorés / batches en échec.
        """
        result = PersistResult()
        if not records:
            return result

        known_titles, known_urls, existing_ids = self._existing_keys(records)
        self._touch(existing_ids, datetime.utcnow())

        fresh = []
        seen_titles: set[str] = set()
        seen_urls: set[str] = set()
        for record in records:
            url = record.get("tender_url")
            if (
                record["title"] in known_titles
                or record["title"] in seen_titles
                or (url and (url in known_urls or url in seen_urls))
            ):
                result.skipped_count += 1
                continue
            seen_titles.add(record["title"])
            if url:
                seen_urls.add(url)
            fresh.append(record)

        for start in range(0, len(fresh), self.batch_size):
            batch = fresh[start:start + self.batch_size]
            batch_number = start // self.batch_size + 1
            try:
                tenders = self._insert_batch(batch, source_name)
                ids = [t.id for t in tenders]
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                result.failed_batches += 1
                logger.warning(f"⚠️ Batch {batch_number} ({len(batch)} tenders) en échec: {e}")
                continue

            result.inserted_count += len(ids)
            result.inserted_ids.extend(ids)
            logger.info(f"💾 Batch {batch_number}: {len(ids)} tenders insérés")

        logger.info(
            f"✅ Persistance {source_name or ''}: {result.inserted_count} nouveaux, "
            f"{result.skipped_count} ignorés, {result.failed_batches} batch(es) en échec"
        )
        return result
