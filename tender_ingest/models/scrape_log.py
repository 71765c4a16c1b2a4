# tender_ingest/models/scrape_log.py
"""
Modèle ScrapeRunLog - Journal d'audit de chaque exécution (et sous-source)
"""

from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, DateTime, Text, ForeignKey
)
from tender_ingest.database import Base

RUN_IN_PROGRESS = "in_progress"
RUN_SUCCESS = "success"
RUN_ERROR = "error"


class ScrapeRunLog(Base):
    __tablename__ = "scraping_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    source = Column(String(255), nullable=False, index=True)
    status = Column(
        String(50),
        nullable=False,
        default=RUN_IN_PROGRESS,
        index=True,
        comment="in_progress | success | error",
    )
    records_found = Column(Integer, nullable=False, default=0)
    records_inserted = Column(Integer, nullable=False, default=0)
    details = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    parent_log_id = Column(
        Integer,
        ForeignKey("scraping_logs.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<ScrapeRunLog(id={self.id}, source='{self.source}', status='{self.status}')>"
