# tender_ingest/schemas/__init__.py
"""
Schemas Pydantic - Validation et sérialisation
"""
from tender_ingest.schemas.tender import TenderResponse, TenderListResponse
from tender_ingest.schemas.scrape import (
    TriggerRequest, TriggerResponse, ScrapeLogResponse, ScrapeLogTree, ScrapeStatusResponse
)
from tender_ingest.schemas.distribution import SweepRequest, SweepResponse
