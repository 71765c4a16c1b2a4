# tender_ingest/main.py
"""
Tender Ingest - Point d'entrée FastAPI.
Collecte, normalisation et diffusion des appels d'offres publics kenyans.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from tender_ingest.config import get_settings
from tender_ingest.database import init_db
from tender_ingest.routers import tenders, scraping, distribution
from tender_ingest.scheduler.jobs import init_scheduler, shutdown_scheduler
from tender_ingest.services.fetcher import disable_insecure_warnings

settings = get_settings()

# Configuration du logging
Path(settings.LOG_DIR).mkdir(parents=True, exist_ok=True)
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler(Path(settings.LOG_DIR) / "tender_ingest.log", mode="a", encoding="utf-8"),
    ],
)

logger = logging.getLogger(__name__)


# === Lifespan : startup + shutdown ===
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Gestion du cycle de vie de l'application"""
    # --- STARTUP ---
    logger.info("🚀 Démarrage de Tender Ingest")
    logger.info(f"   Version: {settings.APP_VERSION}")
    logger.info(f"   Debug: {settings.DEBUG}")

    init_db()
    logger.info("✅ Base de données initialisée")

    # Sources à certificat invalide (TLS désactivé) : déclencheurs manuels et planifiés
    disable_insecure_warnings()

    if settings.SCHEDULER_ENABLED:
        init_scheduler()
        logger.info("✅ Scheduler initialisé")
    else:
        logger.info("⏸️ Scheduler désactivé (SCHEDULER_ENABLED=false)")

    logger.info("🟢 Application prête")

    yield  # L'application tourne ici

    # --- SHUTDOWN ---
    logger.info("🔴 Arrêt de l'application...")
    shutdown_scheduler()
    logger.info("👋 Application arrêtée proprement")


# === Création de l'application FastAPI ===
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
## 📋 Tender Ingest

Pipeline de collecte des appels d'offres publics (Kenya).

### Fonctionnalités :
- **Scraping** des portails (MyGov, tenders.go.ke, AGPO...) avec repli adaptatif
- **Normalisation** des dates limites et classification AGPO (youth / women / pwds)
- **Déduplication** par titre et lien
- **Journal de runs** hiérarchique (run -> sources -> sous-sources)
- **Diffusion** webhook, Twitter/X et Telegram, une seule fois par tender
- **Scheduler** automatisé (scraping toutes les 6h, diffusion toutes les 30min)

### Endpoints principaux :
- `POST /api/v1/scrape` — Déclencher un run
- `GET /api/v1/scrape/status` — État du pipeline
- `GET /api/v1/tenders` — Lister les appels d'offres
- `POST /api/v1/distribution/sweep` — Diffuser les nouveaux tenders
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# === Middleware CORS ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# === Gestion globale des erreurs ===
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handler global pour les erreurs non gérées"""
    logger.error(f"❌ Erreur non gérée: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "detail": "Erreur interne du serveur",
            "error": str(exc) if settings.DEBUG else "Contactez l'administrateur",
        },
    )


# === Enregistrement des routers ===
app.include_router(scraping.router, prefix="/api/v1")
app.include_router(tenders.router, prefix="/api/v1")
app.include_router(distribution.router, prefix="/api/v1")


# === Endpoints utilitaires ===
@app.get("/", tags=["Root"])
def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "status": "running",
    }


@app.get("/health", tags=["Health"])
def health_check():
    """Health check pour Docker et monitoring"""
    from tender_ingest.database import engine

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {str(e)}"

    return {
        "status": "healthy",
        "database": db_status,
        "version": settings.APP_VERSION,
    }


@app.get("/scheduler/status", tags=["Scheduler"])
def scheduler_status():
    """Vérifie le statut du scheduler"""
    from tender_ingest.scheduler.jobs import scheduler

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": str(job.next_run_time) if job.next_run_time else None,
        })

    return {
        "running": scheduler.running,
        "jobs": jobs,
    }
