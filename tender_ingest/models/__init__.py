"""
Modèles SQLAlchemy - Import centralisé
"""
from tender_ingest.models.tender import Tender
from tender_ingest.models.scrape_job import ScrapeJob
from tender_ingest.models.scrape_log import ScrapeRunLog
from tender_ingest.models.distribution import DistributionRecord

__all__ = ["Tender", "ScrapeJob", "ScrapeRunLog", "DistributionRecord"]
