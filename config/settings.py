# config/settings.py
from __future__ import annotations
from dataclasses import dataclass
import os
from dotenv import load_dotenv

from domain.models import ImapCredentials, RestCredentials

load_dotenv()

@dataclass(frozen=True)
class Settings:
    MAIL_PROVIDER: str = os.getenv("MAIL_PROVIDER", "imap").lower()  # imap | rest

    # IMAP
    IMAP_HOST: str = os.getenv("IMAP_HOST", "imap.worksmobile.com")
    IMAP_PORT: int = int(os.getenv("IMAP_PORT", 993))
    IMAP_USERNAME: str = os.getenv("IMAP_USERNAME", "")
    IMAP_PASSWORD: str = os.getenv("IMAP_PASSWORD", "")

    # REST (token bearer emitido fuera de este servicio)
    REST_BASE: str = os.getenv("REST_BASE", "https://www.worksapis.com/v1.0")
    REST_TOKEN: str = os.getenv("REST_TOKEN", "")
    REST_USER_ID: str = os.getenv("REST_USER_ID", "me")

    # IA (clasificación opcional)
    GROQ_API_KEY: str = os.getenv("GROQ_API_KEY", "")
    AI_CATEGORIZATION: bool = os.getenv("AI_CATEGORIZATION", "false").lower() == "true"

    # Clasificación por reglas: vacío -> dominio de IMAP_USERNAME
    COMPANY_DOMAIN: str = os.getenv("COMPANY_DOMAIN", "")

    # Polling
    POLL_INTERVAL: int = int(os.getenv("POLL_INTERVAL", 60))
    HTTP_TIMEOUT: int = int(os.getenv("HTTP_TIMEOUT", 30))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # ───────── helpers ─────────
    def imap_credentials(self) -> ImapCredentials:
        return ImapCredentials(
            host=self.IMAP_HOST,
            port=self.IMAP_PORT,
            email=self.IMAP_USERNAME,
            password=self.IMAP_PASSWORD,
        )

    def rest_credentials(self) -> RestCredentials:
        return RestCredentials(token=self.REST_TOKEN, user_id=self.REST_USER_ID, base=self.REST_BASE)

    def company_domain(self) -> str:
        raw = (self.COMPANY_DOMAIN or "").strip().lower()
        if raw:
            return raw
        _, _, domain = (self.IMAP_USERNAME or "").partition("@")
        return domain.strip().lower()

    def ai_enabled(self) -> bool:
        return self.AI_CATEGORIZATION and bool(self.GROQ_API_KEY)
