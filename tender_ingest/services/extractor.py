# tender_ingest/services/extractor.py
"""
Service d'extraction - transforme le contenu brut d'une source en candidats.

Liste ordonnée de stratégies, chacune exposant `name` et
`try_extract(content, source) -> list[dict] | None` :
  1. stratégies spécifiques déclarées par la source (colonnes, cartes, JSON)
  2. stratégies adaptatives : découverte d'API puis tableau générique
"""

import re
import json
import logging
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from tender_ingest.services.fetcher import FetchExhausted

logger = logging.getLogger(__name__)

# Type de source : règles déclarées, ou directement le repli adaptatif
SPECIFIC = "specific"
ADAPTIVE = "adaptive"

CANDIDATE_FIELDS = (
    "title",
    "description",
    "organization",
    "deadline_str",
    "posted_str",
    "tender_url",
    "reference",
    "category",
    "location",
    "requirements",
    "fees",
    "prerequisites",
)

# Valeurs de cellules qui trahissent une ligne d'en-tête
HEADER_TOKENS = {
    "title", "tender", "tender title", "tender name", "description",
    "subject", "tender no", "tender number", "name",
}


def empty_candidate() -> dict:
    return {field: None for field in CANDIDATE_FIELDS}


def clean_text(value) -> str:
    """Texte sur une ligne, espaces compactés."""
    if value is None:
        return ""
    return " ".join(str(value).split())


def absolute_url(href: str | None, base_url: str) -> str | None:
    if not href:
        return None
    href = href.strip()
    if not href or href.startswith(("javascript:", "#", "mailto:")):
        return None
    return urljoin(base_url, href)


def _link_in(element, base_url: str) -> str | None:
    if element is None:
        return None
    link = element if element.name == "a" else element.find("a", href=True)
    if link is None or not link.get("href"):
        return None
    return absolute_url(link["href"], base_url)


# ──────────────────────────────────────────────
#  STRATÉGIES SPÉCIFIQUES
# ──────────────────────────────────────────────

class TableColumnsStrategy:
    """Lignes d'un tableau HTML, colonnes à positions connues."""

    def __init__(
        self,
        row_selector: str,
        columns: dict[str, int],
        link_column: int | None = None,
        description: str | None = None,
    ):
        self.name = f"table:{row_selector}"
        self.row_selector = row_selector
        self.columns = columns
        self.link_column = link_column if link_column is not None else columns.get("title")
        # Gabarit optionnel, ex: "Ministry/Department: {organization}. Posted on: {posted_str}"
        self.description = description

    def try_extract(self, content: str, source) -> list[dict] | None:
        soup = BeautifulSoup(content, "html.parser")
        rows = soup.select(self.row_selector)
        if not rows:
            return None

        candidates = []
        needed = max(self.columns.values()) + 1
        for row in rows:
            cells = row.find_all("td")
            if len(cells) < needed:
                continue

            candidate = empty_candidate()
            for field, index in self.columns.items():
                candidate[field] = clean_text(cells[index].get_text(" ", strip=True)) or None

            title = candidate["title"]
            if not title or title.lower() in HEADER_TOKENS:
                continue

            if self.link_column is not None and self.link_column < len(cells):
                candidate["tender_url"] = _link_in(cells[self.link_column], source.base_url)

            if self.description and not candidate["description"]:
                candidate["description"] = self.description.format(
                    **{k: (v or "N/A") for k, v in candidate.items()}
                )
            candidates.append(candidate)

        return candidates or None


class CardSelectorsStrategy:
    """Cartes de listing, un sélecteur CSS par champ."""

    def __init__(self, item_selector: str, fields: dict[str, str]):
        self.name = f"cards:{item_selector}"
        self.item_selector = item_selector
        self.fields = fields

    def try_extract(self, content: str, source) -> list[dict] | None:
        soup = BeautifulSoup(content, "html.parser")
        items = soup.select(self.item_selector)
        if not items:
            return None

        candidates = []
        for item in items:
            candidate = empty_candidate()
            for field, selector in self.fields.items():
                if field == "tender_url":
                    continue
                element = item.select_one(selector)
                if element is not None:
                    candidate[field] = clean_text(element.get_text(" ", strip=True)) or None

            if not candidate["title"]:
                continue

            url_selector = self.fields.get("tender_url")
            if url_selector:
                candidate["tender_url"] = _link_in(item.select_one(url_selector), source.base_url)
            else:
                title_element = item.select_one(self.fields["title"]) if "title" in self.fields else None
                candidate["tender_url"] = _link_in(title_element, source.base_url) or _link_in(item, source.base_url)
            candidates.append(candidate)

        return candidates or None


def _lookup(obj: dict, keys) -> object | None:
    """Première clé présente (insensible à la casse) parmi les synonymes."""
    lowered = {str(k).lower(): v for k, v in obj.items()}
    for key in keys:
        value = lowered.get(key.lower())
        if value not in (None, ""):
            return value
    return None


# Synonymes des champs dans les payloads JSON
JSON_SYNONYMS = {
    "title": ("title", "name", "tender_title", "tender_name"),
    "reference": ("reference", "ref", "tender_id", "number", "id"),
    "description": ("description", "details"),
    "deadline_str": ("deadline", "closing_date", "closingDate", "close_date", "end_date"),
    "posted_str": ("published", "publish_date", "published_at", "date"),
    "location": ("location", "region", "county"),
    "category": ("category", "sector", "type"),
    "organization": ("procuring_entity", "entity", "organization", "procurer"),
    "tender_url": ("url", "link", "tender_url"),
}


def map_record(obj: dict, base_url: str, synonyms: dict | None = None) -> dict | None:
    """Projette un objet JSON arbitraire sur un candidat."""
    synonyms = synonyms or JSON_SYNONYMS
    candidate = empty_candidate()
    for field, keys in synonyms.items():
        if isinstance(keys, str):
            keys = (keys,)
        value = _lookup(obj, keys)
        if value is not None and not isinstance(value, (dict, list)):
            candidate[field] = clean_text(value)

    if not candidate["title"]:
        return None
    if candidate["tender_url"]:
        candidate["tender_url"] = absolute_url(candidate["tender_url"], base_url)
    return candidate


class JsonPayloadStrategy:
    """Endpoint JSON déclaré : chemin pointé vers la liste puis mapping des champs."""

    def __init__(self, items_path: str = "", fields: dict | None = None):
        self.name = f"json:{items_path or '<root>'}"
        self.items_path = items_path
        self.fields = fields

    def try_extract(self, content: str, source) -> list[dict] | None:
        try:
            data = json.loads(content)
        except (TypeError, ValueError):
            return None

        for part in filter(None, self.items_path.split(".")):
            if not isinstance(data, dict):
                return None
            data = data.get(part)

        if not isinstance(data, list):
            return None

        candidates = [
            map_record(item, source.base_url, self.fields)
            for item in data
            if isinstance(item, dict)
        ]
        return [c for c in candidates if c] or None


# ──────────────────────────────────────────────
#  STRATÉGIES ADAPTATIVES
# ──────────────────────────────────────────────

API_PATTERNS = (
    re.compile(r"""['"](/api/[^'"]+)['"]"""),
    re.compile(r"""['"](https?://[^'"]+/api/[^'"]+)['"]"""),
    re.compile(r"""fetch\(\s*['"]([^'"]+)['"]"""),
    re.compile(r"""url:\s*['"]([^'"]+)['"]"""),
    re.compile(r"""axios\.get\(\s*['"]([^'"]+)['"]"""),
)

TITLE_KEYS = {"title", "name", "tender_title", "description"}
DATE_KEYS = {"deadline", "closing_date", "closingdate", "date", "published"}


def discover_api_endpoints(html: str, base_url: str) -> list[str]:
    """URLs d'API candidates trouvées dans les scripts inline."""
    soup = BeautifulSoup(html, "html.parser")
    scripts = "\n".join(s.string or "" for s in soup.find_all("script") if not s.get("src"))

    endpoints = []
    for pattern in API_PATTERNS:
        for match in pattern.findall(scripts):
            lowered = match.lower()
            if "tender" not in lowered and "bid" not in lowered:
                continue
            url = urljoin(base_url, match)
            if url not in endpoints:
                endpoints.append(url)
    return endpoints


def _looks_like_tender(obj) -> bool:
    if not isinstance(obj, dict):
        return False
    keys = {str(k).lower() for k in obj}
    return bool(keys & TITLE_KEYS) and bool(keys & DATE_KEYS)


def find_tender_arrays(data, depth: int = 0) -> list[list]:
    """Recherche récursive des tableaux dont les objets ressemblent à des tenders."""
    if depth > 6:
        return []
    found = []
    if isinstance(data, list):
        if data and _looks_like_tender(data[0]):
            found.append(data)
        else:
            for item in data:
                found.extend(find_tender_arrays(item, depth + 1))
    elif isinstance(data, dict):
        for value in data.values():
            found.extend(find_tender_arrays(value, depth + 1))
    return found


class ApiDiscoveryStrategy:
    """Sonde les API internes référencées par le JavaScript de la page."""

    name = "adaptive:api"

    def __init__(self, probe):
        # probe(url, verify_tls) -> objet JSON décodé ou None
        self.probe = probe

    def try_extract(self, content: str, source) -> list[dict] | None:
        endpoints = discover_api_endpoints(content, source.base_url)
        if not endpoints:
            return None

        logger.info(f"🔍 {source.name}: {len(endpoints)} endpoint(s) API découvert(s)")
        for endpoint in endpoints:
            try:
                data = self.probe(endpoint, source.verify_tls)
            except FetchExhausted as e:
                logger.debug(f"Endpoint ignoré {endpoint}: {e}")
                continue
            if data is None:
                continue

            for array in find_tender_arrays(data):
                candidates = [map_record(obj, source.base_url) for obj in array if isinstance(obj, dict)]
                candidates = [c for c in candidates if c]
                if candidates:
                    logger.info(f"✅ {source.name}: {len(candidates)} tenders via API {endpoint}")
                    return candidates
        return None


# Ordre significatif : le premier motif reconnu attribue la colonne
HEADER_SYNONYMS = (
    ("reference", re.compile(r"\b(reference|ref|no|number|id)\b")),
    ("deadline_str", re.compile(r"\b(clos\w*|deadline|end date|due date)\b")),
    ("posted_str", re.compile(r"\b(publish\w*|posted|start|publication|issued)\b")),
    ("organization", re.compile(r"\b(authority|entity|organi[sz]ation|ministry|department|procuring)\b")),
    ("location", re.compile(r"\b(location|region|county)\b")),
    ("category", re.compile(r"\b(category|sector|type)\b")),
    ("title", re.compile(r"\b(title|name|subject|tender|description)\b")),
)

PROCUREMENT_HEADER = re.compile(r"tender|bid|procurement|contract", re.IGNORECASE)


def map_headers(headers: list[str]) -> dict[int, str]:
    """Associe chaque colonne à un champ candidat (une colonne par champ)."""
    mapping = {}
    assigned = set()
    for index, header in enumerate(headers):
        header = header.lower()
        for field, pattern in HEADER_SYNONYMS:
            if field not in assigned and pattern.search(header):
                mapping[index] = field
                assigned.add(field)
                break
    return mapping


class GenericTableStrategy:
    """Tout tableau dont l'en-tête évoque un marché public."""

    name = "adaptive:table"

    def try_extract(self, content: str, source) -> list[dict] | None:
        soup = BeautifulSoup(content, "html.parser")
        candidates = []

        for table in soup.find_all("table"):
            rows = table.find_all("tr")
            if len(rows) < 2:
                continue

            headers = [clean_text(c.get_text(" ", strip=True)) for c in rows[0].find_all(["th", "td"])]
            if not any(PROCUREMENT_HEADER.search(h) for h in headers):
                continue

            mapping = map_headers(headers)
            if "title" not in mapping.values():
                continue

            for row in rows[1:]:
                cells = row.find_all("td")
                if len(cells) < 3:
                    continue
                candidate = empty_candidate()
                for index, field in mapping.items():
                    if index < len(cells):
                        candidate[field] = clean_text(cells[index].get_text(" ", strip=True)) or None
                if not candidate["title"]:
                    continue
                title_index = next(i for i, f in mapping.items() if f == "title")
                if title_index < len(cells):
                    candidate["tender_url"] = _link_in(cells[title_index], source.base_url)
                candidates.append(candidate)

        return candidates or None


class Extractor:
    """Applique les stratégies d'une source puis le repli adaptatif."""

    def __init__(self, probe=None):
        self.adaptive = []
        if probe is not None:
            self.adaptive.append(ApiDiscoveryStrategy(probe))
        self.adaptive.append(GenericTableStrategy())

    def extract(self, content: str, source) -> list[dict]:
        """
        Première stratégie non vide gagnante.
        Une source spécifique dont toutes les règles échouent passe
        quand même par les stratégies adaptatives ; une source adaptative
        y va directement.
        """
        candidates = None
        rules = () if source.strategy == ADAPTIVE else source.rules
        for strategy in rules:
            candidates = strategy.try_extract(content, source)
            if candidates:
                logger.info(f"🧩 {source.name}: {len(candidates)} candidats via {strategy.name}")
                break

        if not candidates:
            for strategy in self.adaptive:
                candidates = strategy.try_extract(content, source)
                if candidates:
                    logger.info(f"🧩 {source.name}: {len(candidates)} candidats via {strategy.name} (adaptatif)")
                    break

        return self._dedupe(candidates or [])

    @staticmethod
    def _dedupe(candidates: list[dict]) -> list[dict]:
        seen = set()
        unique = []
        for candidate in candidates:
            title = (candidate.get("title") or "").strip()
            if not title:
                continue
            key = title.lower()
            if key in seen:
                continue
            seen.add(key)
            unique.append(candidate)
        return unique
