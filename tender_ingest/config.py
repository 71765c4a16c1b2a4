# tender_ingest/config.py
"""
Configuration centralisée - variables d'environnement
"""

import os
import logging
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration du pipeline chargée depuis l'environnement ou .env"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # --- Application ---
    APP_NAME: str = "Tender Ingest"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    # --- Base de données ---
    DATABASE_URL: str = ""

    # Defaults pour dev local
    POSTGRES_USER: str = "tender_user"
    POSTGRES_PASSWORD: str = "tender_secret_password_2024"
    POSTGRES_DB: str = "tender_ingest"
    POSTGRES_HOST: str = "db"
    POSTGRES_PORT: int = 5432

    # --- Fetch / Retry ---
    MAX_RETRY_ATTEMPTS: int = 3
    RETRY_DELAY_SECONDS: float = 2.0      # base du backoff : 2s, 4s, 8s...
    RETRY_MAX_DELAY_SECONDS: float = 30.0
    FETCH_TIMEOUT_SECONDS: int = 30

    # --- Scraping ---
    SCRAPE_INTERVAL_HOURS: int = 6
    SCRAPE_MIN_INTERVAL_MINUTES: int = 60
    SCRAPE_MAX_WORKERS: int = 3
    SCRAPE_RUN_TIMEOUT_SECONDS: int = 900
    SCRAPE_ENABLED_SOURCES: str = ""      # vide = toutes les sources
    PERSIST_BATCH_SIZE: int = 10
    DEFAULT_DEADLINE_DAYS: int = 14
    DEFAULT_LOCATION: str = "Kenya"
    DEFAULT_CATEGORY: str = "Government"

    # --- Scheduler ---
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "Africa/Nairobi"

    # --- Distribution ---
    SLACK_WEBHOOK_URL: str = ""
    TWITTER_API_KEY: str = ""
    TWITTER_API_SECRET: str = ""
    TWITTER_ACCESS_TOKEN: str = ""
    TWITTER_ACCESS_TOKEN_SECRET: str = ""
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_CHANNEL_ID: str = ""
    PUBLIC_CHANNEL_URL: str = "https://t.me/supplychain_coded"
    DISTRIBUTION_LOOKBACK_HOURS: int = 24
    DISTRIBUTION_BATCH_LIMIT: int = 50
    DISTRIBUTION_INTERVAL_MINUTES: int = 30
    DISTRIBUTION_TIMEOUT_SECONDS: int = 15

    @property
    def enabled_sources(self) -> set[str]:
        """Noms des sources activées (ensemble vide = toutes)"""
        return {s.strip().lower() for s in self.SCRAPE_ENABLED_SOURCES.split(",") if s.strip()}

    @property
    def database_url(self) -> str:
        """Priorité absolue à l'URL complète (DATABASE_URL)"""
        _logger = logging.getLogger(__name__)

        url = None
        source = ""

        # 1. Vérifier os.environ directement
        env_url = os.environ.get("DATABASE_URL")
        if env_url:
            url = env_url
            source = "os.environ DATABASE_URL"
        # 2. Vérifier l'attribut Pydantic (chargé via .env ou env vars)
        elif self.DATABASE_URL:
            url = self.DATABASE_URL
            source = "Pydantic DATABASE_URL"
        else:
            # 3. Fallback sur les composants individuels
            url = (
                f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
                f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            )
            source = f"composants individuels (host={self.POSTGRES_HOST})"

        # Correction hébergeurs : postgres:// -> postgresql://
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql://", 1)
            _logger.info("🔧 Correction URL: postgres:// -> postgresql://")

        # Log anonymisé pour debug
        try:
            from urllib.parse import urlparse
            parsed = urlparse(url)
            _logger.info(f"📊 DB source: {source} | hôte: {parsed.hostname} | db: {parsed.path}")
        except ValueError:
            pass

        return url


@lru_cache()
def get_settings() -> Settings:
    """Singleton des settings - cache en mémoire"""
    return Settings()
