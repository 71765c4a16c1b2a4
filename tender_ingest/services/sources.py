# tender_ingest/services/sources.py
"""
Registre des sources d'appels d'offres (configuration statique, pas de table).
"""

from dataclasses import dataclass, field

from tender_ingest.config import get_settings
from tender_ingest.services.extractor import (
    TableColumnsStrategy,
    CardSelectorsStrategy,
    SPECIFIC,
    ADAPTIVE,
)

settings = get_settings()


@dataclass(frozen=True)
class ScrapeSource:
    """Une source externe et la manière de l'extraire"""

    name: str
    base_url: str
    strategy: str = SPECIFIC
    rules: tuple = ()
    verify_tls: bool = True
    headers: dict = field(default_factory=dict)
    children: tuple = ()
    category: str | None = None
    location: str | None = None

    def walk(self):
        """La source puis ses sous-sources, en profondeur."""
        yield self
        for child in self.children:
            yield from child.walk()


AGPO = ScrapeSource(
    name="agpo",
    base_url="https://agpo.go.ke/opportunities",
    rules=(
        CardSelectorsStrategy(".tender-item", {
            "title": "h3",
            "description": ".description",
            "deadline_str": ".deadline",
            "organization": ".organization",
        }),
    ),
    category="AGPO",
)

TREASURY = ScrapeSource(
    name="treasury",
    base_url="https://www.treasury.go.ke/procurement-opportunities/",
    strategy=ADAPTIVE,
)

MYGOV = ScrapeSource(
    name="mygov",
    base_url="https://www.mygov.go.ke/all-tenders",
    rules=(
        TableColumnsStrategy(
            "#datatable tbody tr",
            {"title": 1, "organization": 2, "posted_str": 3, "deadline_str": 4},
            description="Ministry/Department: {organization}. Posted on: {posted_str}",
        ),
        TableColumnsStrategy(
            ".table.table-striped tbody tr",
            {"title": 0, "organization": 1, "deadline_str": 2},
            description="Ministry/Department: {organization}",
        ),
    ),
    children=(AGPO, TREASURY),
)

TENDERS_GO_KE = ScrapeSource(
    name="tenders_go_ke",
    base_url="https://tenders.go.ke/website/tenders/Index",
    rules=(
        TableColumnsStrategy(
            ".table-responsive table tbody tr",
            {"reference": 0, "title": 1, "organization": 2, "deadline_str": 3},
        ),
    ),
    # Certificat du portail national régulièrement invalide
    verify_tls=False,
)

TENDERS_ONLINE = ScrapeSource(
    name="tendersonline",
    base_url="https://www.tendersonline.co.ke/Tenders",
    rules=(
        CardSelectorsStrategy(".tender-item", {
            "title": ".tender-title",
            "deadline_str": ".deadline-date",
            "description": ".description",
            "organization": ".organization",
        }),
    ),
)

GLOBAL_TENDERS = ScrapeSource(
    name="globaltenders",
    base_url="https://www.globaltenders.com/tenders-kenya.php",
    rules=(
        CardSelectorsStrategy(".tender-listing", {
            "title": ".tender-title",
            "deadline_str": ".closing-date",
            "description": ".tender-desc",
            "organization": ".department",
        }),
    ),
)

# Ordre = priorité des jobs
SOURCES = (MYGOV, TENDERS_GO_KE, TENDERS_ONLINE, GLOBAL_TENDERS)


def get_sources(enabled: set[str] | None = None) -> list[ScrapeSource]:
    """Sources racines actives (ensemble vide ou None = toutes)."""
    if enabled is None:
        enabled = settings.enabled_sources
    if not enabled:
        return list(SOURCES)
    return [s for s in SOURCES if s.name in enabled]


def find_source(name: str) -> ScrapeSource | None:
    """Recherche par nom, sous-sources comprises."""
    for root in SOURCES:
        for source in root.walk():
            if source.name == name:
                return source
    return None
