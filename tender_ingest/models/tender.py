# tender_ingest/models/tender.py
"""
Modèle Tender - Appels d'offres collectés par le pipeline
"""

from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, DateTime, Text, JSON
)
from sqlalchemy.orm import relationship
from tender_ingest.database import Base


class Tender(Base):
    __tablename__ = "tenders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    title = Column(String(500), nullable=False, index=True, comment="Clé naturelle de déduplication")
    description = Column(Text, nullable=True)
    requirements = Column(Text, nullable=True)
    deadline = Column(DateTime, nullable=False, index=True)
    contact_info = Column(String(500), nullable=True, comment="Organisation / contact")
    category = Column(String(255), nullable=True, index=True)
    subcategory = Column(String(255), nullable=True)
    location = Column(String(255), nullable=True)
    tender_url = Column(String(1000), nullable=True, index=True, comment="Lien spécifique, clé naturelle si présent")
    reference = Column(String(255), nullable=True)
    fees = Column(String(255), nullable=True)
    prerequisites = Column(Text, nullable=True)
    points_required = Column(Integer, nullable=False, default=0)
    affirmative_action = Column(
        JSON,
        nullable=False,
        default=lambda: {"type": "none", "percentage": 0, "details": ""},
        comment="{type: youth|women|pwds|none, percentage, details}",
    )
    source = Column(String(255), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    last_seen_at = Column(DateTime, default=datetime.utcnow, nullable=True)

    # Relations
    distributions = relationship("DistributionRecord", back_populates="tender", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Tender(id={self.id}, title='{self.title[:50]}...')>"

    @property
    def affirmative_action_type(self) -> str:
        return (self.affirmative_action or {}).get("type", "none")
