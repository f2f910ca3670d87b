# domain/errors.py
from __future__ import annotations


class MailError(Exception):
    """Base de todos los errores que se devuelven tal cual a la interfaz."""


class NetworkError(MailError):
    pass


class AuthenticationError(MailError):
    """Credenciales rechazadas. La UI debe pedir re-autenticación, no reintentar."""


class UnauthorizedError(AuthenticationError):
    """HTTP 401 de la API REST: el token debe renovarse."""

    def __init__(self, body: str = "") -> None:
        super().__init__(f"Unauthorized (401): {body}" if body else "Unauthorized (401)")
        self.status_code = 401
        self.body = body


class ProtocolError(MailError):
    pass


class MailboxSelectError(ProtocolError):
    pass


class SearchError(ProtocolError):
    pass


class FetchError(ProtocolError):
    pass


class ParseError(MailError):
    pass


class ApiStatusError(MailError):
    def __init__(self, status_code: int, body: str = "", *, service: str = "API") -> None:
        super().__init__(f"{service} error ({status_code}): {body}")
        self.status_code = status_code
        self.body = body


class RateLimited(ApiStatusError):
    """429 tras agotar los reintentos."""


class EmptyResult(MailError):
    pass


class TaskExecutionError(MailError):
    """Fallo inesperado del hilo de trabajo que ejecuta la sesión IMAP."""
