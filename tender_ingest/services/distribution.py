# tender_ingest/services/distribution.py
"""
Diffusion des nouveaux tenders sur les canaux configurés.
Le registre social_media_posts garantit qu'un tender déjà diffusé
avec succès n'est jamais renvoyé.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import and_, exists
from sqlalchemy.orm import Session

from tender_ingest.config import get_settings
from tender_ingest.models.distribution import DistributionRecord
from tender_ingest.models.tender import Tender
from tender_ingest.services.channels import default_channels

logger = logging.getLogger(__name__)
settings = get_settings()

SENT = "sent"
ALREADY_SENT = "already_sent"
FAILED = "failed"


def _delivered_clause():
    return exists().where(and_(
        DistributionRecord.tender_id == Tender.id,
        DistributionRecord.success.is_(True),
    ))


class DistributionService:
    """Envoi + registre d'idempotence"""

    def __init__(self, db: Session, channels: list | None = None):
        self.db = db
        self.channels = default_channels() if channels is None else channels

    @property
    def enabled_channels(self) -> list:
        return [c for c in self.channels if c.enabled]

    def already_distributed(self, tender_id: int) -> bool:
        """Vrai si au moins un envoi réussi existe (tous canaux confondus)."""
        record = (
            self.db.query(DistributionRecord.id)
            .filter(DistributionRecord.tender_id == tender_id, DistributionRecord.success.is_(True))
            .first()
        )
        return record is not None

    def _record(self, tender: Tender, channel, success: bool, error: str | None = None) -> DistributionRecord:
        record = DistributionRecord(
            tender_id=tender.id,
            channel=channel.name,
            success=success,
            error_message=error[:500] if error else None,
        )
        self.db.add(record)
        self.db.commit()
        return record

    def _send(self, tender: Tender, channel) -> str:
        try:
            message = channel.format(tender)
            channel.send(message)
        except Exception as e:
            self._record(tender, channel, False, str(e))
            logger.error(f"❌ Échec diffusion tender #{tender.id} sur {channel.name}: {e}")
            return FAILED

        self._record(tender, channel, True)
        logger.info(f"📣 Tender #{tender.id} diffusé sur {channel.name}")
        return SENT

    def distribute(self, tender: Tender, channel) -> str:
        """Envoie sur un canal sauf si le tender a déjà été diffusé."""
        if self.already_distributed(tender.id):
            logger.info(f"⏭️ Tender #{tender.id} déjà diffusé, {channel.name} ignoré")
            return ALREADY_SENT
        return self._send(tender, channel)

    def distribute_tender(self, tender: Tender) -> dict[str, str]:
        """Une vérification du registre, puis chaque canal actif indépendamment."""
        channels = self.enabled_channels
        if self.already_distributed(tender.id):
            return {c.name: ALREADY_SENT for c in channels}
        return {c.name: self._send(tender, c) for c in channels}

    def pending_tenders(self, lookback_hours: int | None = None, limit: int | None = None) -> list[Tender]:
        """Tenders récents sans aucun envoi réussi."""
        lookback_hours = lookback_hours or settings.DISTRIBUTION_LOOKBACK_HOURS
        limit = limit or settings.DISTRIBUTION_BATCH_LIMIT
        since = datetime.utcnow() - timedelta(hours=lookback_hours)
        return (
            self.db.query(Tender)
            .filter(Tender.created_at >= since, ~_delivered_clause())
            .order_by(Tender.created_at, Tender.id)
            .limit(limit)
            .all()
        )

    def sweep(self, lookback_hours: int | None = None, limit: int | None = None) -> dict:
        """Diffuse les tenders récents pas encore diffusés. Pas de retry immédiat des échecs."""
        summary = {"processed": 0, SENT: 0, FAILED: 0, ALREADY_SENT: 0, "tenders": []}
        if not self.enabled_channels:
            logger.warning("⚠️ Aucun canal de diffusion configuré")
            summary["message"] = "No distribution channel configured"
            return summary

        tenders = self.pending_tenders(lookback_hours, limit)
        logger.info(f"📤 Diffusion: {len(tenders)} tender(s) en attente")

        for tender in tenders:
            outcomes = self.distribute_tender(tender)
            summary["processed"] += 1
            for outcome in outcomes.values():
                summary[outcome] += 1
            summary["tenders"].append({"tender_id": tender.id, "channels": outcomes})

        logger.info(
            f"✅ Diffusion terminée: {summary[SENT]} envoi(s), {summary[FAILED]} échec(s)"
        )
        return summary


def run_distribution_sweep() -> dict:
    """Point d'entrée du scheduler."""
    from tender_ingest.database import get_db_context

    with get_db_context() as db:
        return DistributionService(db).sweep()
