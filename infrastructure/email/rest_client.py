# infrastructure/email/rest_client.py
from __future__ import annotations
import asyncio
import logging
from typing import Any, Dict, List, Optional
import requests

from domain.errors import ApiStatusError, NetworkError, ParseError, UnauthorizedError
from domain.models import MailRecord, RestCredentials

logger = logging.getLogger(__name__)


class RestMailClient:
    def __init__(
        self,
        *,
        token: str,
        user_id: str,
        base: str = "https://www.worksapis.com/v1.0",
        timeout: float = 30,
        session: requests.Session | None = None,
    ) -> None:
        self.token = token
        self.user_id = user_id
        self.base = base.rstrip("/")
        self.timeout = timeout
        # sin sesión inyectada cada llamada usa requests.get, que abre y cierra su propia conexión
        self.session = session

    @classmethod
    def from_credentials(cls, credentials: RestCredentials, **kwargs: Any) -> "RestMailClient":
        return cls(token=credentials.token, user_id=credentials.user_id, base=credentials.base, **kwargs)

    # ───────── HTTP helpers ─────────
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    def _get(self, url: str, params: Dict[str, Any] | None = None) -> Dict[str, Any]:
        try:
            http = self.session or requests
            r = http.get(url, headers=self._headers(), params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise NetworkError(f"Network error: {e}") from e

        # 401 no se reintenta aquí: el llamador decide si renueva el token
        if r.status_code == 401:
            raise UnauthorizedError(r.text or "")
        if not 200 <= r.status_code < 300:
            raise ApiStatusError(r.status_code, r.text or "", service="Mail API")
        try:
            return r.json()
        except ValueError as e:
            raise ParseError(f"Parse error: {e}") from e

    # ───────── inbox ─────────
    def inbox_url(self) -> str:
        return f"{self.base}/users/{self.user_id}/mail/inbox"

    def list_inbox(self, since: Optional[str] = None) -> List[Dict[str, Any]]:
        # 'since' se pasa tal cual: la API acepta el mismo ISO-8601 que recibe el llamador
        params = {"since": since} if since else None
        data = self._get(self.inbox_url(), params=params)
        if not isinstance(data, dict):
            raise ParseError("Parse error: expected a JSON object")
        return data.get("mails") or []

    def fetch_records(self, since: Optional[str] = None) -> List[MailRecord]:
        items = self.list_inbox(since)
        records = [rec for rec in (to_mail_record(it) for it in items) if rec is not None]
        skipped = len(items) - len(records)
        if skipped:
            logger.info("REST: %d correos sin mailId descartados", skipped)
        return records

    async def fetch_mail(self, since: Optional[str] = None) -> List[MailRecord]:
        # requests es bloqueante: la llamada va a un hilo para no frenar el event loop
        return await asyncio.to_thread(self.fetch_records, since)


def to_mail_record(item: Any) -> MailRecord | None:
    """Mapeo permisivo; sin mailId el correo se descarta (no es error)."""
    if not isinstance(item, dict):
        return None
    mail_id = item.get("mailId")
    if mail_id is None or mail_id == "":
        return None
    sender = item.get("from") or {}
    if not isinstance(sender, dict):
        sender = {}
    return MailRecord(
        mail_id=str(mail_id),
        sender_name=str(sender.get("name") or ""),
        sender_email=str(sender.get("address") or ""),
        subject=str(item.get("subject") or ""),
        received_at=str(item.get("receivedTime") or ""),
        message_id=None,
    )
