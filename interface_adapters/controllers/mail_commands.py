# interface_adapters/controllers/mail_commands.py
# API para quien integra el notificador (UI, scripts): test_connection, fetch_mail y summarize.
# main.py solo ejecuta el loop de polling; estas operaciones se llaman desde fuera.
# Los errores (MailError) se devuelven tal cual
from __future__ import annotations
import logging
from typing import Any, Optional

from application.services.mail_source import ImapSource, MailSource
from domain.models import ImapCredentials
from infrastructure.ai.completion_client import CompletionClient

logger = logging.getLogger(__name__)


async def test_connection(host: str, port: int, email: str, password: str) -> str:
    source = ImapSource(ImapCredentials(host=host, port=port, email=email, password=password))
    result = await source.test_connection()
    logger.info("Conexión IMAP OK: %s@%s:%s", email, host, port)
    return result


async def fetch_mail(source: MailSource, since: Optional[str] = None) -> list[dict[str, Any]]:
    records = await source.fetch(since)
    return [r.to_dict() for r in records]


async def summarize(api_key: str, system_prompt: str, user_prompt: str) -> str:
    return await CompletionClient(api_key).complete(system_prompt, user_prompt)
