# tender_ingest/services/orchestrator.py
"""
Orchestration du pipeline : fetch -> extraction -> normalisation -> persistance,
source par source, avec un log de run par source (et par sous-source).

Déclencheurs (scheduler, endpoint manuel, file de jobs) : même chemin d'exécution.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from tender_ingest.config import get_settings
from tender_ingest.database import get_db_context
from tender_ingest.models.scrape_job import JOB_COMPLETED, JOB_ERROR
from tender_ingest.services.extractor import Extractor
from tender_ingest.services.fetcher import Fetcher, RunDeadline
from tender_ingest.services.job_queue import JobQueue
from tender_ingest.services.normalizer import normalize_candidate
from tender_ingest.services.persister import TenderPersister, StoreUnavailable
from tender_ingest.services.run_logger import RunLogger, SKIPPED_DETAILS
from tender_ingest.services.sources import ScrapeSource, get_sources, find_source

logger = logging.getLogger(__name__)
settings = get_settings()

PIPELINE_SOURCE = "pipeline"
NO_TENDERS_DETAILS = "No tenders found"

# Les agrégateurs listent les mêmes tenders : la déduplication
# (requête d'existence puis insertion) doit être sérialisée entre workers
_persist_lock = threading.Lock()


@dataclass
class SourceResult:
    source: str
    log_id: int | None = None
    found: int = 0
    inserted: int = 0
    success: bool = True
    error: str | None = None
    children: list["SourceResult"] = field(default_factory=list)

    @property
    def total_found(self) -> int:
        return self.found + sum(c.total_found for c in self.children)

    @property
    def total_inserted(self) -> int:
        return self.inserted + sum(c.total_inserted for c in self.children)

    def failures(self) -> list["SourceResult"]:
        failed = [] if self.success else [self]
        for child in self.children:
            failed.extend(child.failures())
        return failed


class SourceRunner:
    """Exécute une source (et ses sous-sources) dans ses propres logs de run"""

    def __init__(self, session_factory=get_db_context, fetcher: Fetcher | None = None, extractor: Extractor | None = None):
        self.session_factory = session_factory
        self.fetcher = fetcher or Fetcher()
        self.extractor = extractor

    def run(self, source: ScrapeSource, parent_log_id: int | None = None, deadline: RunDeadline | None = None) -> SourceResult:
        fetcher = self.fetcher.with_deadline(deadline)
        extractor = self.extractor or Extractor(probe=fetcher.fetch_json)
        result = SourceResult(source=source.name)

        with self.session_factory() as db:
            try:
                with RunLogger(db).track(source.name, parent_log_id) as run:
                    result.log_id = run.log_id
                    content = fetcher.fetch(
                        source.base_url,
                        verify_tls=source.verify_tls,
                        headers=source.headers or None,
                    )
                    candidates = extractor.extract(content, source)

                    now = datetime.utcnow()
                    records = [
                        record for record in
                        (normalize_candidate(c, source, now=now) for c in candidates)
                        if record
                    ]
                    if not records:
                        logger.info(f"📭 {source.name}: aucun tender trouvé")
                        run.record(0, 0, NO_TENDERS_DETAILS)
                    else:
                        with _persist_lock:
                            persisted = TenderPersister(db).persist(records, source.name)
                        result.found = len(records)
                        result.inserted = persisted.inserted_count
                        details = (
                            f"Found {len(records)} tenders, inserted {persisted.inserted_count}, "
                            f"skipped {persisted.skipped_count} existing"
                        )
                        if persisted.failed_batches:
                            details += f", {persisted.failed_batches} failed batch(es)"
                        run.record(len(records), persisted.inserted_count, details)
            except StoreUnavailable:
                raise
            except Exception as e:
                # Le log de la source est déjà fermé en error par track()
                result.success = False
                result.error = str(e) or e.__class__.__name__
                logger.error(f"❌ Source {source.name} en échec: {result.error}")

        for child in source.children:
            result.children.append(self.run(child, result.log_id, deadline))
        return result


class PipelineOrchestrator:
    """Run complet : log racine, sources en parallèle (pool borné), agrégation"""

    def __init__(
        self,
        session_factory=get_db_context,
        runner: SourceRunner | None = None,
        max_workers: int | None = None,
        run_timeout: float | None = None,
        min_interval_minutes: int | None = None,
    ):
        self.session_factory = session_factory
        self.runner = runner or SourceRunner(session_factory=session_factory)
        self.max_workers = max_workers or settings.SCRAPE_MAX_WORKERS
        self.run_timeout = run_timeout or settings.SCRAPE_RUN_TIMEOUT_SECONDS
        self.min_interval = timedelta(
            minutes=settings.SCRAPE_MIN_INTERVAL_MINUTES if min_interval_minutes is None else min_interval_minutes
        )

    def _recently_scraped(self, run_logger: RunLogger) -> datetime | None:
        last = run_logger.last_success_at(PIPELINE_SOURCE)
        if last and datetime.utcnow() - last < self.min_interval:
            return last
        return None

    def _run_sources(self, sources: list[ScrapeSource], parent_log_id: int) -> list[SourceResult]:
        """Sources en parallèle ; le délai global annule celles pas encore démarrées."""
        deadline = RunDeadline(self.run_timeout)
        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="scrape")
        futures = [executor.submit(self.runner.run, source, parent_log_id, deadline) for source in sources]
        try:
            _, not_done = wait(futures, timeout=deadline.remaining())
            if not_done:
                logger.warning(f"⏱️ Délai global atteint, {len(not_done)} source(s) interrompue(s)")
                for future in not_done:
                    future.cancel()
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

        results = []
        for source, future in zip(sources, futures):
            if future.cancelled():
                results.append(SourceResult(source=source.name, success=False, error="Run timeout reached"))
                continue
            results.append(future.result())
        return results

    def run(self, force: bool = False, parent_log_id: int | None = None, sources: list[ScrapeSource] | None = None) -> dict:
        """
        Point d'entrée commun à tous les déclencheurs.
        Retourne {success, tenders_scraped, tenders_inserted, message} ou {success: False, error}.
        """
        sources = get_sources() if sources is None else sources
        log_id = None
        try:
            with self.session_factory() as db:
                run_logger = RunLogger(db)
                log_id = run_logger.start(PIPELINE_SOURCE, parent_log_id).id

                if not force:
                    last = self._recently_scraped(run_logger)
                    if last:
                        run_logger.succeed(log_id, 0, 0, SKIPPED_DETAILS)
                        logger.info(f"⏭️ Scraping ignoré, dernier run réussi à {last:%Y-%m-%d %H:%M}")
                        return {
                            "success": True,
                            "tenders_scraped": 0,
                            "tenders_inserted": 0,
                            "message": f"Already scraped recently (last run at {last.isoformat()}), use force to override",
                        }

            logger.info(f"🚀 Pipeline #{log_id}: {len(sources)} source(s), {self.max_workers} worker(s)")
            results = self._run_sources(sources, log_id)

            found = sum(r.total_found for r in results)
            inserted = sum(r.total_inserted for r in results)
            failures = [f for r in results for f in r.failures()]
            message = f"Scraped {found} tenders, inserted {inserted} new"
            if failures:
                message += f" ({len(failures)} source(s) failed: {', '.join(f.source for f in failures)})"

            with self.session_factory() as db:
                RunLogger(db).succeed(log_id, found, inserted, message)

            return {
                "success": True,
                "tenders_scraped": found,
                "tenders_inserted": inserted,
                "message": message,
            }

        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.error(f"💥 Pipeline en erreur: {error}", exc_info=True)
            if log_id is not None:
                try:
                    with self.session_factory() as db:
                        RunLogger(db).fail(log_id, error)
                except StoreUnavailable:
                    logger.error(f"💀 Run #{log_id} non fermé (base indisponible)")
            return {"success": False, "tenders_scraped": 0, "error": error}

    def process_next_job(self) -> dict | None:
        """Réclame un job pending et exécute sa source. None si la file est vide."""
        with self.session_factory() as db:
            job = JobQueue(db).claim_next()
            if job is None:
                return None
            job_id, source_name = job.id, job.source

        source = find_source(source_name)
        try:
            if source is None:
                raise ValueError(f"Source inconnue: {source_name}")
            result = self.runner.run(source, None, RunDeadline(self.run_timeout))
        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.error(f"❌ Job #{job_id} ({source_name}) en erreur: {error}", exc_info=True)
            with self.session_factory() as db:
                JobQueue(db).finish(job_id, JOB_ERROR, error)
            return {"job_id": job_id, "source": source_name, "success": False, "error": error}

        status = JOB_COMPLETED if result.success else JOB_ERROR
        with self.session_factory() as db:
            JobQueue(db).finish(job_id, status, result.error)

        return {
            "job_id": job_id,
            "source": source_name,
            "success": result.success,
            "tenders_scraped": result.total_found,
            "tenders_inserted": result.total_inserted,
            "error": result.error,
        }


def run_scheduled(force: bool = True) -> dict:
    """Déclencheur planifié : même chemin que le déclencheur manuel."""
    return PipelineOrchestrator().run(force=force)
