# tender_ingest/services/normalizer.py
"""
Normalisation des candidats : dates limites, catégorie, champs par défaut
et classification "affirmative action" (AGPO).
"""

import re
import logging
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime

from tender_ingest.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

DEFAULT_REQUIREMENTS = "Please check the tender document for detailed requirements."
DEFAULT_CONTACT = "Check tender document for contact information"

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

NUMERIC_DATE = re.compile(r"\b(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})\b")
EMBEDDED_ISO_DATE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
TEXTUAL_DATE = re.compile(r"\b(\d{1,2})(?:st|nd|rd|th)?\s+([A-Za-z]{3,9})\.?,?\s+(\d{4})\b")

# Ordre = priorité : le premier groupe trouvé l'emporte
AFFIRMATIVE_ACTION_KEYWORDS = (
    ("youth", ("youth", "agpo", "young")),
    ("women", ("women", "woman")),
    ("pwds", ("pwd", "persons with disabilities", "disability", "disabled")),
)
AFFIRMATIVE_ACTION_DETAILS = {
    "youth": "Reserved for youth-owned businesses under AGPO",
    "women": "Reserved for women-owned businesses under AGPO",
    "pwds": "Reserved for businesses owned by persons with disabilities under AGPO",
}
AFFIRMATIVE_ACTION_PERCENTAGE = 30

# Longueurs max des colonnes
LIMITS = {
    "title": 500,
    "contact_info": 500,
    "category": 255,
    "subcategory": 255,
    "location": 255,
    "tender_url": 1000,
    "reference": 255,
    "fees": 255,
}


def _to_naive_utc(value: datetime) -> datetime | None:
    """None si la conversion en UTC sort des bornes de datetime."""
    if value.tzinfo is None:
        return value
    try:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    except (OverflowError, ValueError):
        return None


def _native_parse(text: str) -> datetime | None:
    """Formats machine : ISO-8601 puis RFC-2822."""
    candidate = text.strip()
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(candidate)
    except ValueError:
        pass
    try:
        return parsedate_to_datetime(text.strip())
    except (TypeError, ValueError, IndexError):
        return None


def _numeric_parse(text: str) -> datetime | None:
    """DD/MM/YYYY (séparateurs / - .) n'importe où dans le texte."""
    for year, month, day in EMBEDDED_ISO_DATE.findall(text):
        try:
            return datetime(int(year), int(month), int(day))
        except ValueError:
            continue
    for day, month, year in NUMERIC_DATE.findall(text):
        try:
            return datetime(int(year), int(month), int(day))
        except ValueError:
            continue
    return None


def _textual_parse(text: str) -> datetime | None:
    """"20 May 2025", "3rd June, 2025"..."""
    for day, month_name, year in TEXTUAL_DATE.findall(text):
        month = MONTHS.get(month_name[:3].lower())
        if month is None:
            continue
        try:
            return datetime(int(year), month, int(day))
        except ValueError:
            continue
    return None


def parse_deadline(text: str | None, now: datetime | None = None) -> datetime:
    """
    Convertit un texte de date limite en datetime (naïf, UTC).
    Fonction totale : retombe sur now + DEFAULT_DEADLINE_DAYS, ne lève jamais.
    """
    now = now or datetime.utcnow()
    if text and str(text).strip():
        text = str(text)
        for parser in (_native_parse, _numeric_parse, _textual_parse):
            parsed = parser(text)
            if parsed is not None:
                parsed = _to_naive_utc(parsed)
            if parsed is not None:
                return parsed
        logger.debug(f"Date non reconnue, défaut appliqué: {text!r}")
    return now + timedelta(days=settings.DEFAULT_DEADLINE_DAYS)


def classify_affirmative_action(title: str | None, description: str | None, organization: str | None) -> dict:
    """Détecte la catégorie AGPO ciblée : youth > women > pwds."""
    haystack = " ".join(part for part in (title, description, organization) if part).lower()
    for action_type, keywords in AFFIRMATIVE_ACTION_KEYWORDS:
        if any(keyword in haystack for keyword in keywords):
            return {
                "type": action_type,
                "percentage": AFFIRMATIVE_ACTION_PERCENTAGE,
                "details": AFFIRMATIVE_ACTION_DETAILS[action_type],
            }
    return {"type": "none", "percentage": 0, "details": ""}


def guess_category(text: str | None) -> str:
    """Devine le secteur à partir d'un texte."""
    text_lower = (text or "").lower()
    sector_map = {
        # Construction & Works
        "construct": "Construction & Works",
        "road": "Construction & Works",
        "building": "Construction & Works",
        "civil works": "Construction & Works",
        "renovation": "Construction & Works",
        "bridge": "Construction & Works",
        # ICT
        " ict": "ICT & Telecommunications",
        "software": "ICT & Telecommunications",
        "computer": "ICT & Telecommunications",
        "network": "ICT & Telecommunications",
        "telecom": "ICT & Telecommunications",
        "digital": "ICT & Telecommunications",
        # Health
        "medical": "Health",
        "hospital": "Health",
        "pharmac": "Health",
        "health": "Health",
        "drug": "Health",
        # Agriculture
        "agricult": "Agriculture",
        "seed": "Agriculture",
        "fertili": "Agriculture",
        "livestock": "Agriculture",
        "fish": "Agriculture",
        # Energy & Water
        "energy": "Energy & Water",
        "electric": "Energy & Water",
        "solar": "Energy & Water",
        "water": "Energy & Water",
        "sewer": "Energy & Water",
        # Education
        "school": "Education",
        "universit": "Education",
        "training": "Education",
        "education": "Education",
        # Transport
        "vehicle": "Transport & Logistics",
        "transport": "Transport & Logistics",
        "logistic": "Transport & Logistics",
        "fuel": "Transport & Logistics",
        # Consultancy
        "consultan": "Consultancy",
        "audit": "Consultancy",
        "study": "Consultancy",
        "feasibility": "Consultancy",
        # Security
        "security": "Security Services",
        "guard": "Security Services",
        # Supplies
        "supply": "Supplies & Equipment",
        "equipment": "Supplies & Equipment",
        "furniture": "Supplies & Equipment",
        "stationery": "Supplies & Equipment",
        # Services
        "cleaning": "General Services",
        "catering": "General Services",
        "maintenance": "General Services",
    }
    for keyword, sector in sector_map.items():
        if keyword in text_lower:
            return sector
    return settings.DEFAULT_CATEGORY


def tender_status(deadline: datetime, now: datetime | None = None) -> str:
    """open | closing_soon (moins de 3 jours) | closed"""
    now = now or datetime.utcnow()
    if deadline < now:
        return "closed"
    if deadline - now <= timedelta(days=3):
        return "closing_soon"
    return "open"


def _truncate(value: str | None, field: str) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    limit = LIMITS.get(field)
    return value[:limit] if limit else value


def normalize_candidate(candidate: dict, source=None, now: datetime | None = None) -> dict | None:
    """
    Candidat brut -> champs du modèle Tender.
    Retourne None si le candidat n'a pas de titre.
    """
    title = _truncate(candidate.get("title"), "title")
    if not title:
        return None

    organization = candidate.get("organization")
    description = candidate.get("description")
    category = candidate.get("category") or (source.category if source else None)
    location = candidate.get("location") or (source.location if source else None)

    return {
        "title": title,
        "description": description or title,
        "requirements": candidate.get("requirements") or DEFAULT_REQUIREMENTS,
        "deadline": parse_deadline(candidate.get("deadline_str"), now=now),
        "contact_info": _truncate(organization, "contact_info") or DEFAULT_CONTACT,
        "category": _truncate(category, "category") or guess_category(f"{title} {description or ''}"),
        "subcategory": None,
        "location": _truncate(location, "location") or settings.DEFAULT_LOCATION,
        "tender_url": _truncate(candidate.get("tender_url"), "tender_url"),
        "reference": _truncate(candidate.get("reference"), "reference"),
        "fees": _truncate(candidate.get("fees"), "fees"),
        "prerequisites": candidate.get("prerequisites"),
        "points_required": 0,
        "affirmative_action": classify_affirmative_action(title, description, organization),
    }
