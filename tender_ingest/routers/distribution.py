# tender_ingest/routers/distribution.py
"""
Endpoints de diffusion des tenders (webhook, Twitter, Telegram)
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from tender_ingest.database import get_db
from tender_ingest.models.tender import Tender
from tender_ingest.schemas.distribution import SweepRequest, SweepResponse, TenderDistribution
from tender_ingest.services.channels import default_channels
from tender_ingest.services.distribution import DistributionService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/distribution",
    tags=["Diffusion"],
)


def get_channels() -> list:
    return default_channels()


@router.post(
    "/sweep",
    response_model=SweepResponse,
    summary="Diffuser les tenders récents pas encore diffusés",
)
def sweep(
    payload: SweepRequest | None = None,
    db: Session = Depends(get_db),
    channels: list = Depends(get_channels),
):
    """POST /distribution/sweep"""
    payload = payload or SweepRequest()
    return DistributionService(db, channels).sweep(payload.lookback_hours, payload.limit)


@router.post(
    "/tenders/{tender_id}",
    response_model=TenderDistribution,
    summary="Diffuser un tender précis",
)
def distribute_one(
    tender_id: int,
    db: Session = Depends(get_db),
    channels: list = Depends(get_channels),
):
    """POST /distribution/tenders/{id}"""
    tender = db.query(Tender).filter(Tender.id == tender_id).first()
    if not tender:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Tender #{tender_id} non trouvé",
        )
    outcomes = DistributionService(db, channels).distribute_tender(tender)
    return TenderDistribution(tender_id=tender_id, channels=outcomes)
