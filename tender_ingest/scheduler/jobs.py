# tender_ingest/scheduler/jobs.py
"""
Scheduler APScheduler - jobs périodiques.
- toutes les SCRAPE_INTERVAL_HOURS : run complet du pipeline (force)
- toutes les DISTRIBUTION_INTERVAL_MINUTES : passe de diffusion
"""

import logging
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED

from tender_ingest.config import get_settings
from tender_ingest.services.distribution import run_distribution_sweep
from tender_ingest.services.orchestrator import run_scheduled

logger = logging.getLogger(__name__)
settings = get_settings()

# Instance globale du scheduler
scheduler = BackgroundScheduler(
    timezone=settings.SCHEDULER_TIMEZONE,
    job_defaults={
        "coalesce": True,            # Fusionner les exécutions manquées
        "max_instances": 1,          # Une seule instance par job
        "misfire_grace_time": 3600,  # 1h de grâce
    },
)


def job_scrape_cycle():
    """Run planifié du pipeline : même chemin que POST /scrape."""
    logger.info("=" * 60)
    logger.info(f"🕐 CYCLE DE SCRAPING DÉMARRÉ | {datetime.utcnow().isoformat()}")
    logger.info("=" * 60)

    result = run_scheduled()
    if result["success"]:
        logger.info(f"✅ {result.get('message')}")
    else:
        logger.error(f"❌ ERREUR CYCLE DE SCRAPING: {result.get('error')}")

    logger.info(f"🏁 CYCLE DE SCRAPING TERMINÉ | {datetime.utcnow().isoformat()}")
    return result


def job_distribution_sweep():
    """Diffusion des tenders récents non encore diffusés."""
    try:
        summary = run_distribution_sweep()
        logger.info(f"📣 Diffusion: {summary['sent']} envoi(s), {summary['failed']} échec(s)")
    except Exception as e:
        logger.error(f"❌ ERREUR DIFFUSION: {e}", exc_info=True)
        raise


def scheduler_event_listener(event):
    """Listener pour les événements du scheduler"""
    if event.exception:
        logger.error(f"❌ Job {event.job_id} a échoué: {event.exception}")
    else:
        logger.info(f"✅ Job {event.job_id} exécuté avec succès")


def init_scheduler():
    """
    Initialise et démarre le scheduler avec les deux jobs périodiques.
    """
    scheduler.add_listener(scheduler_event_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    scheduler.add_job(
        func=job_scrape_cycle,
        trigger=IntervalTrigger(hours=settings.SCRAPE_INTERVAL_HOURS),
        id="scrape_cycle",
        name=f"Scraping toutes les {settings.SCRAPE_INTERVAL_HOURS}h",
        replace_existing=True,
    )

    scheduler.add_job(
        func=job_distribution_sweep,
        trigger=IntervalTrigger(minutes=settings.DISTRIBUTION_INTERVAL_MINUTES),
        id="distribution_sweep",
        name=f"Diffusion toutes les {settings.DISTRIBUTION_INTERVAL_MINUTES}min",
        replace_existing=True,
    )

    scheduler.start()

    logger.info("⏰ Scheduler démarré:")
    for job in scheduler.get_jobs():
        logger.info(f"   📌 {job.name} | Prochain run: {job.next_run_time}")

    return scheduler


def shutdown_scheduler():
    """Arrête proprement le scheduler"""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("⏰ Scheduler arrêté")
