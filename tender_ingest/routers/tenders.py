# tender_ingest/routers/tenders.py
"""
Endpoints pour les appels d'offres (lecture seule - alimentés par le pipeline)
"""

import logging
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from tender_ingest.database import get_db
from tender_ingest.models.tender import Tender
from tender_ingest.schemas.tender import TenderResponse, TenderListResponse

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/tenders",
    tags=["Appels d'offres"],
)


@router.get(
    "",
    response_model=TenderListResponse,
    summary="Lister les appels d'offres",
    description="Retourne la liste paginée des appels d'offres avec filtres optionnels.",
)
def list_tenders(
    page: int = Query(1, ge=1, description="Numéro de page"),
    per_page: int = Query(20, ge=1, le=100, description="Résultats par page"),
    category: str | None = Query(None, description="Filtrer par catégorie"),
    location: str | None = Query(None, description="Filtrer par zone"),
    affirmative_action: str | None = Query(None, description="youth | women | pwds | none"),
    open_only: bool = Query(False, description="Seulement les tenders non expirés"),
    db: Session = Depends(get_db),
):
    """GET /tenders - Liste paginée"""

    query = db.query(Tender)

    if category:
        query = query.filter(Tender.category.ilike(f"%{category}%"))
    if location:
        query = query.filter(Tender.location.ilike(f"%{location}%"))
    if open_only:
        query = query.filter(Tender.deadline >= datetime.utcnow())
    if affirmative_action:
        # JSON_EXTRACT sous SQLite, ->> sous PostgreSQL
        query = query.filter(Tender.affirmative_action["type"].as_string() == affirmative_action)

    total = query.count()
    offset = (page - 1) * per_page
    tenders = (
        query.order_by(Tender.created_at.desc(), Tender.id.desc())
        .offset(offset)
        .limit(per_page)
        .all()
    )

    return TenderListResponse(
        total=total,
        page=page,
        per_page=per_page,
        tenders=tenders,
    )


@router.get(
    "/{tender_id}",
    response_model=TenderResponse,
    summary="Détail d'un appel d'offres",
)
def get_tender(
    tender_id: int,
    db: Session = Depends(get_db),
):
    """GET /tenders/{id}"""
    tender = db.query(Tender).filter(Tender.id == tender_id).first()
    if not tender:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Tender #{tender_id} non trouvé",
        )
    return tender
