# tender_ingest/schemas/distribution.py
"""
Schemas pour la diffusion sur les canaux sociaux
"""

from pydantic import BaseModel, Field


class SweepRequest(BaseModel):
    lookback_hours: int | None = Field(None, ge=1, le=24 * 30)
    limit: int | None = Field(None, ge=1, le=500)


class TenderDistribution(BaseModel):
    tender_id: int
    channels: dict[str, str]


class SweepResponse(BaseModel):
    """Bilan d'une passe de diffusion"""
    processed: int = 0
    sent: int = 0
    failed: int = 0
    already_sent: int = 0
    message: str | None = None
    tenders: list[TenderDistribution] = []
