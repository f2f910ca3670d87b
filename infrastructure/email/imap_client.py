# infrastructure/email/imap_client.py
from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Callable, Optional
from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientError

from domain.errors import (
    AuthenticationError,
    FetchError,
    MailboxSelectError,
    NetworkError,
    SearchError,
)
from domain.models import ImapCredentials, MailRecord, sort_newest_first
from infrastructure.email.search_query import build_search_query
from utils.mime import decode_header_value

logger = logging.getLogger(__name__)

INBOX = "INBOX"
MAX_FETCH = 50
FETCH_ITEMS = ["UID", "ENVELOPE", "INTERNALDATE"]


def _lossy(value: Optional[bytes]) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def sender_from_envelope(envelope: Any) -> tuple[str, str]:
    """(nombre, email) del primer remitente del envelope; vacíos si no hay."""
    addrs = getattr(envelope, "from_", None) or ()
    if not addrs:
        return "", ""
    addr = addrs[0]
    name = decode_header_value(addr.name) if addr.name is not None else ""
    mailbox = _lossy(addr.mailbox)
    host = _lossy(addr.host)
    email = f"{mailbox}@{host}" if mailbox and host else mailbox
    return name, email


def select_recent_uids(uids: list[int], limit: int = MAX_FETCH) -> list[int]:
    """Los `limit` UIDs más altos, de mayor a menor."""
    return sorted(uids, reverse=True)[:limit]


class MailboxSession:
    """
    Sesión IMAP de un solo uso: conectar -> autenticar -> INBOX -> buscar -> fetch -> logout.
    Uso:
        with MailboxSession(host, port, user, password) as session:
            records = session.fetch_since(since)
    El logout se intenta siempre al salir y sus errores no se propagan.
    """

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        *,
        ssl: bool = True,
        timeout: float | None = 30,
        client_factory: Callable[..., Any] = IMAPClient,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.ssl = ssl
        self.timeout = timeout
        self.client_factory = client_factory
        self.client: Any | None = None

    def __enter__(self) -> "MailboxSession":
        self.connect()
        self.authenticate()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.logout()

    # ───────── conexión / auth ─────────
    def connect(self) -> None:
        try:
            self.client = self.client_factory(self.host, port=self.port, ssl=self.ssl, timeout=self.timeout)
        except (OSError, IMAPClientError) as e:
            raise NetworkError(f"Connection failed: {e}") from e
        # INTERNALDATE con zona horaria (sin convertir a hora local naive)
        self.client.normalise_times = False

    def authenticate(self) -> None:
        assert self.client
        try:
            self.client.plain_login(self.user, self.password)
            return
        except Exception as plain_exc:
            logger.info("AUTHENTICATE PLAIN rechazado (%s); probando LOGIN", plain_exc)
            try:
                self.client.login(self.user, self.password)
                return
            except Exception as login_exc:
                self.logout()
                raise AuthenticationError(f"AUTH_FAILED: {plain_exc}") from login_exc

    def logout(self) -> None:
        if self.client is None:
            return
        try:
            self.client.logout()
        except Exception:
            logger.warning("Error cerrando IMAP (%s:%s)", self.host, self.port, exc_info=True)
        finally:
            self.client = None

    # ───────── buzón ─────────
    def select_inbox(self, folder: str = INBOX) -> None:
        assert self.client
        try:
            self.client.select_folder(folder, readonly=True)
        except (OSError, IMAPClientError) as e:
            raise MailboxSelectError(f"Select {folder} failed: {e}") from e

    def search(self, since: Optional[str]) -> list[int]:
        assert self.client
        query = build_search_query(since)
        try:
            uids = self.client.search(query)
        except (OSError, IMAPClientError) as e:
            raise SearchError(f"Search failed: {e}") from e
        logger.debug("UID SEARCH %s -> %d resultados", query, len(uids))
        return list(uids)

    def fetch(self, uids: list[int]) -> list[MailRecord]:
        assert self.client
        selected = select_recent_uids(uids)
        if not selected:
            return []
        uid_set = ",".join(str(u) for u in selected)
        try:
            response = self.client.fetch(uid_set, FETCH_ITEMS)
        except (OSError, IMAPClientError) as e:
            raise FetchError(f"Fetch failed: {e}") from e

        records: list[MailRecord] = []
        for msgid, data in response.items():
            envelope = data.get(b"ENVELOPE")
            if envelope is None:
                logger.debug("UID %s sin ENVELOPE; se omite", msgid)
                continue
            records.append(self._to_record(data.get(b"UID", msgid), envelope, data.get(b"INTERNALDATE")))
        return sort_newest_first(records)

    @staticmethod
    def _to_record(uid: int, envelope: Any, internal_date: Optional[datetime]) -> MailRecord:
        sender_name, sender_email = sender_from_envelope(envelope)
        subject = decode_header_value(envelope.subject) if envelope.subject is not None else ""
        return MailRecord(
            mail_id=str(uid),
            sender_name=sender_name,
            sender_email=sender_email,
            subject=subject,
            received_at=internal_date.isoformat() if internal_date else "",
            message_id=_lossy(envelope.message_id),
        )

    def fetch_since(self, since: Optional[str]) -> list[MailRecord]:
        self.select_inbox()
        uids = self.search(since)
        if not uids:
            return []
        return self.fetch(uids)


# ───────── operaciones (bloqueantes; se ejecutan en un hilo de trabajo) ─────────
def fetch_mail_records(
    credentials: ImapCredentials,
    since: Optional[str] = None,
    *,
    client_factory: Callable[..., Any] = IMAPClient,
) -> list[MailRecord]:
    with MailboxSession(
        credentials.host,
        credentials.port,
        credentials.email,
        credentials.password,
        client_factory=client_factory,
    ) as session:
        records = session.fetch_since(since)
    logger.info("IMAP %s: %d correos", credentials.host, len(records))
    return records


def check_connection(credentials: ImapCredentials, *, client_factory: Callable[..., Any] = IMAPClient) -> str:
    with MailboxSession(
        credentials.host,
        credentials.port,
        credentials.email,
        credentials.password,
        client_factory=client_factory,
    ):
        pass
    return "OK"
