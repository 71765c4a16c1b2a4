# tender_ingest/routers/scraping.py
"""
Endpoints du pipeline de scraping : déclenchement manuel, file de jobs, suivi
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from tender_ingest.database import get_db
from tender_ingest.models.tender import Tender
from tender_ingest.schemas.scrape import (
    TriggerRequest,
    TriggerResponse,
    JobRunResponse,
    EnqueueResponse,
    ScrapeLogResponse,
    ScrapeLogTree,
    ScrapeStatusResponse,
    LatestTender,
)
from tender_ingest.services.job_queue import JobQueue
from tender_ingest.services.normalizer import tender_status
from tender_ingest.services.orchestrator import PipelineOrchestrator, PIPELINE_SOURCE
from tender_ingest.services.run_logger import RunLogger
from tender_ingest.services.sources import get_sources

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/scrape",
    tags=["Scraping"],
)


def get_orchestrator() -> PipelineOrchestrator:
    return PipelineOrchestrator()


@router.post(
    "",
    response_model=TriggerResponse,
    response_model_exclude_none=True,
    summary="Déclencher un run du pipeline",
    description="Même chemin que le run planifié. `force` ignore la fenêtre 'déjà scrapé récemment'.",
)
def trigger_scrape(
    payload: TriggerRequest | None = None,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    """POST /scrape"""
    payload = payload or TriggerRequest()
    logger.info(f"🖐️ Déclenchement manuel (force={payload.force}, parent={payload.log_id})")
    result = orchestrator.run(force=payload.force, parent_log_id=payload.log_id)
    if not result["success"]:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=TriggerResponse(**result).model_dump(exclude_none=True),
        )
    return result


@router.post(
    "/jobs",
    response_model=EnqueueResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Ajouter un job par source active",
)
def enqueue_jobs(db: Session = Depends(get_db)):
    """POST /scrape/jobs"""
    queue = JobQueue(db)
    jobs = queue.enqueue_all(get_sources())
    return EnqueueResponse(enqueued=len(jobs), pending=queue.pending_count())


@router.post(
    "/jobs/next",
    response_model=JobRunResponse,
    summary="Réclamer et exécuter le prochain job",
    responses={204: {"description": "File vide"}},
)
def run_next_job(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """POST /scrape/jobs/next"""
    result = orchestrator.process_next_job()
    if result is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return result


@router.get(
    "/status",
    response_model=ScrapeStatusResponse,
    summary="État du pipeline",
)
def scrape_status(
    limit: int = Query(10, ge=1, le=100, description="Nombre de logs récents"),
    db: Session = Depends(get_db),
):
    """GET /scrape/status - derniers runs, volume et derniers tenders"""
    run_logger = RunLogger(db)
    latest = db.query(Tender).order_by(Tender.created_at.desc(), Tender.id.desc()).limit(5).all()

    return ScrapeStatusResponse(
        total_tenders=db.query(Tender).count(),
        last_success_at=run_logger.last_success_at(PIPELINE_SOURCE),
        recent_logs=run_logger.latest(limit),
        latest_tenders=[
            LatestTender(
                id=t.id,
                title=t.title,
                deadline=t.deadline,
                status=tender_status(t.deadline),
                source=t.source,
                created_at=t.created_at,
            )
            for t in latest
        ],
    )


@router.get(
    "/logs",
    response_model=list[ScrapeLogResponse],
    summary="Derniers logs de run",
)
def list_logs(
    limit: int = Query(20, ge=1, le=200),
    roots_only: bool = Query(False, description="Seulement les runs racine"),
    db: Session = Depends(get_db),
):
    """GET /scrape/logs"""
    return RunLogger(db).latest(limit, roots_only=roots_only)


@router.get(
    "/logs/{log_id}/tree",
    response_model=ScrapeLogTree,
    summary="Arbre d'un run et de ses sous-sources",
)
def log_tree(log_id: int, db: Session = Depends(get_db)):
    """GET /scrape/logs/{id}/tree"""
    tree = RunLogger(db).run_tree(log_id)
    if tree is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Log #{log_id} non trouvé",
        )
    return tree
