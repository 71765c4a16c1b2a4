# tender_ingest/services/channels.py
"""
Canaux de diffusion des nouveaux tenders : webhook (Slack), Twitter/X, Telegram.
Chaque canal expose name, enabled, format(tender) et send(message).
send() lève une exception en cas d'échec.
"""

import re
import logging

import requests
from requests_oauthlib import OAuth1

from tender_ingest.config import get_settings
from tender_ingest.models.tender import Tender

logger = logging.getLogger(__name__)
settings = get_settings()

TWEET_MAX_LENGTH = 280
TWITTER_TWEETS_URL = "https://api.twitter.com/2/tweets"
TELEGRAM_API_URL = "https://api.telegram.org"

ELIGIBILITY_LABELS = {
    "youth": "Youth-owned businesses (AGPO)",
    "women": "Women-owned businesses (AGPO)",
    "pwds": "Businesses owned by persons with disabilities (AGPO)",
}


class ChannelError(Exception):
    """Réponse négative d'un canal (HTTP OK mais refus applicatif)."""


def _deadline_label(tender: Tender) -> str:
    return tender.deadline.strftime("%d %B %Y") if tender.deadline else "Not specified"


def _hashtag(value: str | None, suffix: str = "") -> str:
    if not value:
        return ""
    word = re.sub(r"[^0-9A-Za-z]", "", value.title())
    return f"#{word}{suffix}" if word else ""


def _eligibility(tender: Tender) -> str:
    action_type = tender.affirmative_action_type
    if action_type in ELIGIBILITY_LABELS:
        return ELIGIBILITY_LABELS[action_type]
    return "Open to all eligible bidders"


class WebhookChannel:
    """Webhook entrant au format Slack : {text, blocks}"""

    name = "webhook"

    def __init__(self, url: str | None = None, session: requests.Session | None = None, timeout: int | None = None):
        self.url = settings.SLACK_WEBHOOK_URL if url is None else url
        self.session = session or requests.Session()
        self.timeout = timeout or settings.DISTRIBUTION_TIMEOUT_SECONDS

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def format(self, tender: Tender) -> dict:
        lines = [
            f"*{tender.title}*",
            f"🏛️ {tender.contact_info or 'Unknown Organization'}",
            f"📅 Deadline: {_deadline_label(tender)}",
            f"📍 {tender.location or 'Not specified'}",
        ]
        if tender.tender_url:
            lines.append(f"🔗 <{tender.tender_url}|View tender>")
        return {
            "text": f"📢 New tender: {tender.title}",
            "blocks": [
                {"type": "section", "text": {"type": "mrkdwn", "text": "\n".join(lines)}},
            ],
        }

    def send(self, message: dict) -> None:
        response = self.session.post(self.url, json=message, timeout=self.timeout)
        response.raise_for_status()


class TwitterChannel:
    """Tweet via l'API v2, authentification OAuth 1.0a utilisateur"""

    name = "twitter"

    def __init__(
        self,
        api_key: str | None = None,
        api_secret: str | None = None,
        access_token: str | None = None,
        access_token_secret: str | None = None,
        session: requests.Session | None = None,
        timeout: int | None = None,
    ):
        self.api_key = settings.TWITTER_API_KEY if api_key is None else api_key
        self.api_secret = settings.TWITTER_API_SECRET if api_secret is None else api_secret
        self.access_token = settings.TWITTER_ACCESS_TOKEN if access_token is None else access_token
        self.access_token_secret = (
            settings.TWITTER_ACCESS_TOKEN_SECRET if access_token_secret is None else access_token_secret
        )
        self.session = session or requests.Session()
        self.timeout = timeout or settings.DISTRIBUTION_TIMEOUT_SECONDS

    @property
    def enabled(self) -> bool:
        return all([self.api_key, self.api_secret, self.access_token, self.access_token_secret])

    def _compose(self, title: str, tender: Tender) -> str:
        hashtags = " ".join(filter(None, [
            "#TenderAlert #KenyaTenders",
            _hashtag(tender.category, "Tenders"),
            _hashtag(tender.location),
        ]))
        return (
            f"📢 {title}\n"
            f"🏛️ {tender.contact_info or 'Unknown Organization'}\n"
            f"📅 Deadline: {_deadline_label(tender)}\n"
            f"📍 {tender.location or 'Not specified'}\n"
            f"🔗 Check it out in the Telegram channel: {settings.PUBLIC_CHANNEL_URL}\n"
            f"{hashtags}"
        )

    def format(self, tender: Tender) -> str:
        """Texte du tweet, titre raccourci pour tenir en 280 caractères."""
        title = tender.title
        text = self._compose(title, tender)
        overflow = len(text) - TWEET_MAX_LENGTH
        if overflow > 0:
            keep = max(20, len(title) - overflow - 1)
            text = self._compose(title[:keep].rstrip() + "…", tender)
        return text[:TWEET_MAX_LENGTH]

    def _auth(self) -> OAuth1:
        """Signature OAuth 1.0a (HMAC-SHA1), corps JSON non signé."""
        return OAuth1(self.api_key, self.api_secret, self.access_token, self.access_token_secret)

    def send(self, message: str) -> None:
        response = self.session.post(
            TWITTER_TWEETS_URL,
            json={"text": message},
            auth=self._auth(),
            timeout=self.timeout,
        )
        response.raise_for_status()


def escape_markdown(text: str | None) -> str:
    """Échappe les caractères spéciaux du Markdown Telegram (legacy)."""
    return re.sub(r"([_*\[`])", r"\\\1", text or "")


class TelegramChannel:
    """Bot Telegram : sendMessage vers le canal public"""

    name = "telegram"

    def __init__(
        self,
        bot_token: str | None = None,
        chat_id: str | None = None,
        session: requests.Session | None = None,
        timeout: int | None = None,
    ):
        self.bot_token = settings.TELEGRAM_BOT_TOKEN if bot_token is None else bot_token
        self.chat_id = settings.TELEGRAM_CHANNEL_ID if chat_id is None else chat_id
        self.session = session or requests.Session()
        self.timeout = timeout or settings.DISTRIBUTION_TIMEOUT_SECONDS

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    def format(self, tender: Tender) -> str:
        lines = [
            "🚨 *NEW TENDER ALERT* 🚨",
            f"*Title:* {escape_markdown(tender.title)}",
            f"*Ref No:* {escape_markdown(tender.reference or 'Not specified')}",
            f"*Issuer:* {escape_markdown(tender.contact_info or 'Unknown Organization')}",
            f"*Deadline:* {_deadline_label(tender)}",
            f"*Sector:* {escape_markdown(tender.category or 'Not specified')}",
            f"*Eligibility:* {escape_markdown(_eligibility(tender))}",
        ]
        if tender.tender_url:
            lines.append(f"🔗 {escape_markdown(tender.tender_url)}")
        lines.append(f"Check it Out: {escape_markdown(settings.PUBLIC_CHANNEL_URL)}")
        return "\n".join(lines)

    def send(self, message: str) -> None:
        response = self.session.post(
            f"{TELEGRAM_API_URL}/bot{self.bot_token}/sendMessage",
            json={
                "chat_id": self.chat_id,
                "text": message,
                "parse_mode": "Markdown",
                "disable_web_page_preview": False,
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        payload = response.json()
        if not payload.get("ok"):
            raise ChannelError(f"Telegram a refusé le message: {payload.get('description')}")


def default_channels() -> list:
    """Canaux configurés par l'environnement (les désactivés sont filtrés à l'envoi)."""
    return [WebhookChannel(), TwitterChannel(), TelegramChannel()]
