# tender_ingest/schemas/tender.py
"""
Schemas pour les appels d'offres
"""

from datetime import datetime
from pydantic import BaseModel


class AffirmativeAction(BaseModel):
    """Catégorie AGPO ciblée"""
    type: str = "none"
    percentage: int = 0
    details: str = ""


class TenderResponse(BaseModel):
    """Réponse pour un appel d'offres"""
    id: int
    title: str
    description: str | None = None
    requirements: str | None = None
    deadline: datetime
    contact_info: str | None = None
    category: str | None = None
    subcategory: str | None = None
    location: str | None = None
    tender_url: str | None = None
    reference: str | None = None
    fees: str | None = None
    prerequisites: str | None = None
    points_required: int = 0
    affirmative_action: AffirmativeAction
    source: str | None = None
    created_at: datetime
    last_seen_at: datetime | None = None

    class Config:
        from_attributes = True


class TenderListResponse(BaseModel):
    """Liste paginée d'appels d'offres"""
    total: int
    page: int
    per_page: int
    tenders: list[TenderResponse]
