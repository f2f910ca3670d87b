# application/services/mail_source.py
# Dos orígenes de correo intercambiables (IMAP / REST) con la misma salida: list[MailRecord]
from __future__ import annotations
import asyncio
import logging
from typing import Any, Callable, Optional, Protocol
from imapclient import IMAPClient

from config.settings import Settings
from domain.errors import MailError, TaskExecutionError
from domain.models import ImapCredentials, MailRecord, RestCredentials
from infrastructure.email.imap_client import check_connection, fetch_mail_records
from infrastructure.email.rest_client import RestMailClient

logger = logging.getLogger(__name__)


class MailSource(Protocol):
    name: str

    async def fetch(self, since: Optional[str] = None) -> list[MailRecord]:
        ...


async def run_blocking(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """
    Ejecuta `func` entera en un hilo de trabajo y espera su resultado.
    Los MailError pasan tal cual; cualquier otro fallo del hilo es TaskExecutionError.
    """
    try:
        return await asyncio.to_thread(func, *args, **kwargs)
    except MailError:
        raise
    except Exception as e:
        raise TaskExecutionError(f"Task error: {e}") from e


class ImapSource:
    name = "imap"

    def __init__(self, credentials: ImapCredentials, *, client_factory: Callable[..., Any] = IMAPClient) -> None:
        self.credentials = credentials
        self.client_factory = client_factory

    async def fetch(self, since: Optional[str] = None) -> list[MailRecord]:
        # login -> search -> fetch -> logout es una sola unidad en el hilo
        return await run_blocking(fetch_mail_records, self.credentials, since, client_factory=self.client_factory)

    async def test_connection(self) -> str:
        return await run_blocking(check_connection, self.credentials, client_factory=self.client_factory)


class RestSource:
    name = "rest"

    def __init__(self, credentials: RestCredentials, *, client: RestMailClient | None = None, timeout: float = 30) -> None:
        self.credentials = credentials
        self.client = client or RestMailClient.from_credentials(credentials, timeout=timeout)

    async def fetch(self, since: Optional[str] = None) -> list[MailRecord]:
        return await self.client.fetch_mail(since)


def build_mail_source(settings: Settings) -> ImapSource | RestSource:
    if settings.MAIL_PROVIDER == "rest":
        return RestSource(settings.rest_credentials(), timeout=settings.HTTP_TIMEOUT)
    if settings.MAIL_PROVIDER != "imap":
        logger.warning("MAIL_PROVIDER desconocido (%r); se usa IMAP", settings.MAIL_PROVIDER)
    return ImapSource(settings.imap_credentials())
