# tender_ingest/schemas/scrape.py
"""
Schemas du déclenchement et du suivi du scraping
"""

from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class TriggerRequest(BaseModel):
    """Corps de POST /scrape"""
    model_config = ConfigDict(populate_by_name=True)

    force: bool = False
    log_id: int | None = Field(None, alias="logId", description="Log parent à lier au run")


class TriggerResponse(BaseModel):
    """Résultat d'un run du pipeline"""
    success: bool
    tenders_scraped: int = 0
    tenders_inserted: int | None = None
    message: str | None = None
    error: str | None = None


class JobRunResponse(BaseModel):
    """Résultat de l'exécution d'un job de la file"""
    job_id: int
    source: str
    success: bool
    tenders_scraped: int = 0
    tenders_inserted: int = 0
    error: str | None = None


class EnqueueResponse(BaseModel):
    enqueued: int
    pending: int


class ScrapeLogResponse(BaseModel):
    """Réponse log de run"""
    id: int
    source: str
    status: str
    records_found: int = 0
    records_inserted: int = 0
    details: str | None = None
    error_message: str | None = None
    parent_log_id: int | None = None
    created_at: datetime
    completed_at: datetime | None = None

    class Config:
        from_attributes = True


class ScrapeLogTree(ScrapeLogResponse):
    """Log et sous-logs (sous-sources)"""
    children: list["ScrapeLogTree"] = []


ScrapeLogTree.model_rebuild()


class LatestTender(BaseModel):
    id: int
    title: str
    deadline: datetime
    status: str
    source: str | None = None
    created_at: datetime


class ScrapeStatusResponse(BaseModel):
    """État du pipeline pour le tableau de bord"""
    total_tenders: int
    last_success_at: datetime | None = None
    recent_logs: list[ScrapeLogResponse]
    latest_tenders: list[LatestTender]
