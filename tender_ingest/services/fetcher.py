# tender_ingest/services/fetcher.py
"""
Service de récupération HTTP - pages HTML et endpoints JSON des sources.
Retry avec backoff exponentiel, headers de navigateur, délai global par run.
"""

import time
import logging

import requests
import urllib3
from tenacity import (
    Retrying,
    RetryError,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    retry_if_not_exception_type,
)

from tender_ingest.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

# Headers pour simuler un navigateur
HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Upgrade-Insecure-Requests": "1",
}

JSON_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
}


class FetchExhausted(Exception):
    """Budget de tentatives épuisé pour une URL."""

    def __init__(self, url: str, attempts: int, last_error: BaseException | None):
        self.url = url
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Échec de {url} après {attempts} tentative(s): {last_error}")


class RunDeadlineExceeded(requests.RequestException):
    """Le délai global du run est dépassé : plus aucune tentative."""


class RunDeadline:
    """Délai global d'un run, partagé entre les workers."""

    def __init__(self, seconds: float, clock=time.monotonic):
        self._clock = clock
        self.expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0


class Fetcher:
    """Récupère le contenu brut d'une URL avec retry automatique"""

    def __init__(
        self,
        session: requests.Session | None = None,
        session_factory=requests.Session,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        max_delay: float | None = None,
        timeout: float | None = None,
        sleep=time.sleep,
        deadline: RunDeadline | None = None,
    ):
        self.session_factory = session_factory
        self.session = session or session_factory()
        self.session.headers.update(HEADERS)
        self.max_attempts = max_attempts or settings.MAX_RETRY_ATTEMPTS
        self.base_delay = settings.RETRY_DELAY_SECONDS if base_delay is None else base_delay
        self.max_delay = max_delay or settings.RETRY_MAX_DELAY_SECONDS
        self.timeout = timeout or settings.FETCH_TIMEOUT_SECONDS
        self.sleep = sleep
        self.deadline = deadline

    def with_deadline(self, deadline: RunDeadline | None) -> "Fetcher":
        """
        Copie du fetcher liée au délai d'un run.
        Nouvelle session : requests.Session n'est pas partagée entre threads.
        """
        return Fetcher(
            session_factory=self.session_factory,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            timeout=self.timeout,
            sleep=self.sleep,
            deadline=deadline,
        )

    def _retrying(self, url: str) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, max=self.max_delay),
            retry=retry_if_exception_type(requests.RequestException)
            & retry_if_not_exception_type(RunDeadlineExceeded),
            sleep=self.sleep,
            before_sleep=lambda retry_state: logger.warning(
                f"🔁 Retry {retry_state.attempt_number}/{self.max_attempts} - {url}: "
                f"{retry_state.outcome.exception()}"
            ),
        )

    def _request_timeout(self) -> float:
        if self.deadline is None:
            return self.timeout
        remaining = self.deadline.remaining()
        if remaining <= 0:
            raise RunDeadlineExceeded("Délai global du run dépassé")
        return min(self.timeout, remaining)

    def _get(self, url: str, verify_tls: bool, headers: dict | None) -> requests.Response:
        timeout = self._request_timeout()
        if not verify_tls:
            logger.warning(f"⚠️ Vérification TLS désactivée pour {url}")
        response = self.session.get(url, timeout=timeout, verify=verify_tls, headers=headers)
        response.raise_for_status()
        return response

    def _call(self, url: str, verify_tls: bool, headers: dict | None) -> requests.Response:
        attempts = 0
        try:
            for attempt in self._retrying(url):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    return self._get(url, verify_tls, headers)
        except RetryError as e:
            raise FetchExhausted(url, attempts, e.last_attempt.exception()) from e
        except RunDeadlineExceeded as e:
            raise FetchExhausted(url, attempts, e) from e

    def fetch(self, url: str, verify_tls: bool = True, headers: dict | None = None) -> str:
        """
        Récupère le contenu texte d'une page.
        MAX_RETRY_ATTEMPTS tentatives avec backoff exponentiel, puis FetchExhausted.
        """
        logger.info(f"📡 Fetching: {url}")
        response = self._call(url, verify_tls, headers)
        return response.text

    def fetch_json(self, url: str, verify_tls: bool = True) -> object | None:
        """
        Interroge un endpoint supposé JSON.
        Retourne None si la réponse n'est pas déclarée comme JSON.
        """
        logger.info(f"🔎 Probing: {url}")
        response = self._call(url, verify_tls, JSON_HEADERS)
        content_type = response.headers.get("content-type", "")
        if "json" not in content_type.lower():
            return None
        try:
            return response.json()
        except ValueError:
            logger.debug(f"Réponse JSON invalide: {url}")
            return None


def disable_insecure_warnings() -> None:
    """Les sources à certificat invalide inondent les logs sans ceci."""
    urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
