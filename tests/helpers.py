from __future__ import annotations

import base64
import json
from datetime import datetime
from typing import Any

from imapclient.exceptions import IMAPClientError, LoginError
from imapclient.response_types import Address, Envelope


def b64_word(text: str, charset: str = "UTF-8") -> str:
    return f"=?{charset}?B?{base64.b64encode(text.encode(charset)).decode('ascii')}?="


def make_envelope(
    *,
    subject: bytes | None = b"Hello",
    name: bytes | None = b"Sender",
    mailbox: bytes | None = b"sender",
    host: bytes | None = b"example.test",
    message_id: bytes | None = b"<msg@example.test>",
    with_from: bool = True,
) -> Envelope:
    from_ = (Address(name, None, mailbox, host),) if with_from else None
    return Envelope(
        date=None,
        subject=subject,
        from_=from_,
        sender=from_,
        reply_to=from_,
        to=None,
        cc=None,
        bcc=None,
        in_reply_to=None,
        message_id=message_id,
    )


class FakeMailbox:
    """Estado del servidor simulado; `factory` ocupa el lugar de IMAPClient."""

    def __init__(
        self,
        messages: dict[int, tuple[Envelope | None, datetime | None]] | None = None,
        *,
        uids: list[int] | None = None,
        plain_ok: bool = True,
        login_ok: bool = True,
        connect_error: Exception | None = None,
        select_error: Exception | None = None,
        search_error: Exception | None = None,
        fetch_error: Exception | None = None,
        logout_error: Exception | None = None,
    ) -> None:
        self.messages = messages or {}
        self.uids = list(self.messages) if uids is None else uids
        self.plain_ok = plain_ok
        self.login_ok = login_ok
        self.connect_error = connect_error
        self.select_error = select_error
        self.search_error = search_error
        self.fetch_error = fetch_error
        self.logout_error = logout_error
        self.clients: list[FakeIMAPClient] = []

    def factory(self, host: str, port: int | None = None, ssl: bool = True, timeout: float | None = None):
        if self.connect_error is not None:
            raise self.connect_error
        client = FakeIMAPClient(self, host, port, ssl)
        self.clients.append(client)
        return client

    @property
    def client(self) -> "FakeIMAPClient":
        return self.clients[-1]


class FakeIMAPClient:
    def __init__(self, mailbox: FakeMailbox, host: str, port: int | None, ssl: bool) -> None:
        self.mailbox = mailbox
        self.host = host
        self.port = port
        self.ssl = ssl
        self.normalise_times = True
        self.calls: list[str] = []
        self.searched: list[Any] = []
        self.fetched: list[tuple[Any, list[str]]] = []

    def plain_login(self, identity: str, password: str) -> bytes:
        self.calls.append("plain_login")
        if not self.mailbox.plain_ok:
            raise IMAPClientError("AUTHENTICATE failed: mechanism not supported")
        return b"OK"

    def login(self, username: str, password: str) -> bytes:
        self.calls.append("login")
        if not self.mailbox.login_ok:
            raise LoginError("LOGIN failed: invalid credentials")
        return b"OK"

    def select_folder(self, folder: str, readonly: bool = False) -> dict:
        self.calls.append(f"select:{folder}")
        if self.mailbox.select_error is not None:
            raise self.mailbox.select_error
        return {b"EXISTS": len(self.mailbox.messages)}

    def search(self, criteria: Any) -> list[int]:
        self.calls.append("search")
        self.searched.append(criteria)
        if self.mailbox.search_error is not None:
            raise self.mailbox.search_error
        return list(self.mailbox.uids)

    def fetch(self, messages: Any, data: list[str]) -> dict[int, dict[bytes, Any]]:
        self.calls.append("fetch")
        self.fetched.append((messages, data))
        if self.mailbox.fetch_error is not None:
            raise self.mailbox.fetch_error
        wanted = [int(u) for u in str(messages).split(",")]
        out: dict[int, dict[bytes, Any]] = {}
        for uid in wanted:
            if uid not in self.mailbox.messages:
                continue
            envelope, internal_date = self.mailbox.messages[uid]
            item: dict[bytes, Any] = {b"SEQ": uid, b"UID": uid, b"INTERNALDATE": internal_date}
            if envelope is not None:
                item[b"ENVELOPE"] = envelope
            out[uid] = item
        return out

    def logout(self) -> bytes:
        self.calls.append("logout")
        if self.mailbox.logout_error is not None:
            raise self.mailbox.logout_error
        return b"BYE"


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str | None = None) -> None:
        self.status_code = status_code
        self._payload = payload
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text

    def json(self) -> Any:
        return json.loads(self.text)


class FakeSession:
    """Sustituye a requests.Session: devuelve las respuestas en orden y guarda las llamadas."""

    def __init__(self, *responses: FakeResponse | Exception) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def _next(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._next("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._next("POST", url, **kwargs)


class FakeSleeper:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
