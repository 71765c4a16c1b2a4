# tender_ingest/services/job_queue.py
"""
File des jobs de scraping (table scraping_jobs).
Le passage pending -> in_progress est un UPDATE conditionnel unique :
deux workers ne peuvent pas réclamer le même job.
"""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from tender_ingest.models.scrape_job import (
    ScrapeJob,
    JOB_PENDING,
    JOB_IN_PROGRESS,
    JOB_COMPLETED,
    JOB_ERROR,
)

logger = logging.getLogger(__name__)


class JobQueue:
    def __init__(self, db: Session):
        self.db = db

    def enqueue_all(self, sources) -> list[ScrapeJob]:
        """Un job pending par source (sauf si un job pending existe déjà)."""
        pending = {
            name for (name,) in self.db.query(ScrapeJob.source)
            .filter(ScrapeJob.status == JOB_PENDING)
            .all()
        }

        jobs = []
        for priority, source in enumerate(sources):
            if source.name in pending:
                logger.info(f"⏭️ Job déjà en attente pour {source.name}")
                continue
            job = ScrapeJob(source=source.name, status=JOB_PENDING, priority=priority)
            self.db.add(job)
            jobs.append(job)

        self.db.commit()
        for job in jobs:
            self.db.refresh(job)
        logger.info(f"📥 {len(jobs)} job(s) ajouté(s) à la file")
        return jobs

    def claim(self, job_id: int) -> bool:
        """Réclame un job : succès seulement s'il était exactement pending."""
        updated = (
            self.db.query(ScrapeJob)
            .filter(ScrapeJob.id == job_id, ScrapeJob.status == JOB_PENDING)
            .update(
                {ScrapeJob.status: JOB_IN_PROGRESS, ScrapeJob.started_at: datetime.utcnow()},
                synchronize_session=False,
            )
        )
        self.db.commit()
        return updated == 1

    def claim_next(self) -> ScrapeJob | None:
        """Premier job pending (priorité puis ancienneté) réclamé avec succès."""
        candidates = (
            self.db.query(ScrapeJob.id)
            .filter(ScrapeJob.status == JOB_PENDING)
            .order_by(ScrapeJob.priority, ScrapeJob.created_at, ScrapeJob.id)
            .limit(10)
            .all()
        )
        for (job_id,) in candidates:
            if self.claim(job_id):
                job = self.db.query(ScrapeJob).filter(ScrapeJob.id == job_id).first()
                logger.info(f"🔒 Job #{job_id} réclamé ({job.source})")
                return job
        return None

    def finish(self, job_id: int, status: str = JOB_COMPLETED, error: str | None = None) -> bool:
        if status not in (JOB_COMPLETED, JOB_ERROR):
            raise ValueError(f"Statut final invalide: {status}")
        updated = (
            self.db.query(ScrapeJob)
            .filter(ScrapeJob.id == job_id, ScrapeJob.status == JOB_IN_PROGRESS)
            .update(
                {
                    ScrapeJob.status: status,
                    ScrapeJob.error_message: error,
                    ScrapeJob.completed_at: datetime.utcnow(),
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        return updated == 1

    def pending_count(self) -> int:
        return self.db.query(ScrapeJob).filter(ScrapeJob.status == JOB_PENDING).count()
