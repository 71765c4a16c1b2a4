# tender_ingest/services/run_logger.py
"""
Journal d'exécution du pipeline (table scraping_logs).
Chaque run est ouvert en in_progress puis fermé exactement une fois
en success ou error. Les sous-sources pointent vers leur parent.
"""

import logging
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tender_ingest.models.scrape_log import (
    ScrapeRunLog,
    RUN_IN_PROGRESS,
    RUN_SUCCESS,
    RUN_ERROR,
)
from tender_ingest.services.persister import StoreUnavailable

logger = logging.getLogger(__name__)

# Détails d'un run court-circuité (ne compte pas comme un scraping réussi)
SKIPPED_DETAILS = "Skipped: already scraped recently"


class RunHandle:
    """Compteurs du run en cours, enregistrés à la fermeture"""

    def __init__(self, log_id: int):
        self.log_id = log_id
        self.found = 0
        self.inserted = 0
        self.details = None

    def record(self, found: int = 0, inserted: int = 0, details: str | None = None) -> None:
        self.found = found
        self.inserted = inserted
        self.details = details


class RunLogger:
    """Ouvre, ferme et relit les logs de run"""

    def __init__(self, db: Session):
        self.db = db

    def start(self, source: str, parent_log_id: int | None = None) -> ScrapeRunLog:
        """Crée le log in_progress (committé avant tout fetch)."""
        log = ScrapeRunLog(
            source=source,
            status=RUN_IN_PROGRESS,
            parent_log_id=parent_log_id,
        )
        try:
            self.db.add(log)
            self.db.commit()
            self.db.refresh(log)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreUnavailable(f"Impossible d'ouvrir le log de run: {e}") from e

        logger.info(f"📝 Run #{log.id} démarré ({source}, parent={parent_log_id})")
        return log

    def _close(self, log_id: int, values: dict) -> bool:
        """Mise à jour conditionnelle : seul un log in_progress peut être fermé."""
        values[ScrapeRunLog.completed_at] = datetime.utcnow()
        try:
            updated = (
                self.db.query(ScrapeRunLog)
                .filter(ScrapeRunLog.id == log_id, ScrapeRunLog.status == RUN_IN_PROGRESS)
                .update(values, synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreUnavailable(f"Impossible de fermer le run #{log_id}: {e}") from e

        if updated != 1:
            logger.warning(f"⚠️ Run #{log_id} déjà fermé, mise à jour ignorée")
            return False
        return True

    def succeed(self, log_id: int, found: int = 0, inserted: int = 0, details: str | None = None) -> bool:
        closed = self._close(log_id, {
            ScrapeRunLog.status: RUN_SUCCESS,
            ScrapeRunLog.records_found: found,
            ScrapeRunLog.records_inserted: inserted,
            ScrapeRunLog.details: details,
        })
        if closed:
            logger.info(f"✅ Run #{log_id} terminé: {found} trouvés, {inserted} insérés")
        return closed

    def fail(self, log_id: int, message: str) -> bool:
        closed = self._close(log_id, {
            ScrapeRunLog.status: RUN_ERROR,
            ScrapeRunLog.error_message: message,
        })
        if closed:
            logger.error(f"❌ Run #{log_id} en erreur: {message}")
        return closed

    @contextmanager
    def track(self, source: str, parent_log_id: int | None = None):
        """
        Usage:
            with run_logger.track("mygov") as run:
                ...
                run.record(found, inserted, details)
        Fermé en success à la sortie normale, en error si une exception remonte.
        """
        log = self.start(source, parent_log_id)
        handle = RunHandle(log.id)
        try:
            yield handle
        except Exception as e:
            try:
                self.fail(log.id, str(e) or e.__class__.__name__)
            except StoreUnavailable:
                logger.error(f"💀 Run #{log.id} non fermé (base indisponible)", exc_info=True)
            raise
        else:
            self.succeed(log.id, handle.found, handle.inserted, handle.details)

    # ──────────────────────────────────────────────
    #  LECTURE
    # ──────────────────────────────────────────────

    @staticmethod
    def _node(log: ScrapeRunLog) -> dict:
        return {
            "id": log.id,
            "source": log.source,
            "status": log.status,
            "records_found": log.records_found,
            "records_inserted": log.records_inserted,
            "details": log.details,
            "error_message": log.error_message,
            "parent_log_id": log.parent_log_id,
            "created_at": log.created_at,
            "completed_at": log.completed_at,
            "children": [],
        }

    def run_tree(self, root_id: int) -> dict | None:
        """Reconstruit l'arbre parent/enfants niveau par niveau."""
        root = self.db.query(ScrapeRunLog).filter(ScrapeRunLog.id == root_id).first()
        if root is None:
            return None

        nodes = {root.id: self._node(root)}
        frontier = [root.id]
        while frontier:
            children = (
                self.db.query(ScrapeRunLog)
                .filter(ScrapeRunLog.parent_log_id.in_(frontier))
                .order_by(ScrapeRunLog.id)
                .all()
            )
            frontier = []
            for child in children:
                if child.id in nodes:
                    continue
                node = self._node(child)
                nodes[child.parent_log_id]["children"].append(node)
                nodes[child.id] = node
                frontier.append(child.id)

        return nodes[root.id]

    def latest(self, limit: int = 10, roots_only: bool = False) -> list[ScrapeRunLog]:
        query = self.db.query(ScrapeRunLog)
        if roots_only:
            query = query.filter(ScrapeRunLog.parent_log_id.is_(None))
        return query.order_by(ScrapeRunLog.created_at.desc(), ScrapeRunLog.id.desc()).limit(limit).all()

    def last_success_at(self, source: str) -> datetime | None:
        return (
            self.db.query(func.max(ScrapeRunLog.completed_at))
            .filter(
                ScrapeRunLog.source == source,
                ScrapeRunLog.status == RUN_SUCCESS,
                or_(ScrapeRunLog.details.is_(None), ScrapeRunLog.details != SKIPPED_DETAILS),
            )
            .scalar()
        )
