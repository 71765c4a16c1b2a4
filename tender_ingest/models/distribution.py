# tender_ingest/models/distribution.py
"""
Modèle DistributionRecord - Registre des publications (garde d'idempotence)
"""

from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, DateTime, Text, Boolean, ForeignKey
)
from sqlalchemy.orm import relationship
from tender_ingest.database import Base


class DistributionRecord(Base):
    __tablename__ = "social_media_posts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tender_id = Column(
        Integer,
        ForeignKey("tenders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    channel = Column(String(50), nullable=False, comment="webhook | twitter | telegram")
    success = Column(Boolean, nullable=False, default=False)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relations
    tender = relationship("Tender", back_populates="distributions")

    def __repr__(self):
        return f"<DistributionRecord(tender_id={self.tender_id}, channel='{self.channel}', success={self.success})>"
