# tender_ingest/models/scrape_job.py
"""
Modèle ScrapeJob - File d'attente des travaux de scraping
"""

from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, DateTime, Text
)
from tender_ingest.database import Base

JOB_PENDING = "pending"
JOB_IN_PROGRESS = "in_progress"
JOB_COMPLETED = "completed"
JOB_ERROR = "error"


class ScrapeJob(Base):
    __tablename__ = "scraping_jobs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    source = Column(String(255), nullable=False, index=True)
    status = Column(
        String(50),
        nullable=False,
        default=JOB_PENDING,
        index=True,
        comment="pending | in_progress | completed | error",
    )
    priority = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<ScrapeJob(id={self.id}, source='{self.source}', status='{self.status}')>"
