# domain/models.py
from __future__ import annotations
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Literal, Optional

# Asunto fijo cuando el servidor no devuelve ninguno
NO_SUBJECT = "(sin asunto)"

MailCategory = Literal["urgent", "approval", "external", "internal", "system", "uncategorized"]
MAIL_CATEGORIES: tuple[str, ...] = ("urgent", "approval", "external", "internal", "system", "uncategorized")

MatchType = Literal["subject_contains", "sender_domain", "sender_contains"]

EXTERNAL_MARKER = "__EXTERNAL__"
INTERNAL_MARKER = "__INTERNAL__"


@dataclass
class MailRecord:
    mail_id: str
    sender_name: str
    sender_email: str
    subject: str
    received_at: str
    message_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.subject:
            self.subject = NO_SUBJECT

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ImapCredentials:
    host: str
    port: int
    email: str
    password: str


@dataclass(frozen=True)
class RestCredentials:
    token: str
    user_id: str
    base: str = "https://www.worksapis.com/v1.0"


@dataclass(frozen=True)
class CategoryRule:
    name: str
    priority: int
    match_type: MatchType
    match_value: str
    notify: bool = True

    def values(self) -> list[str]:
        return [v.strip().lower() for v in self.match_value.split(",") if v.strip()]


@dataclass(frozen=True)
class ClassificationResult:
    category: str
    confidence: float = 0.0
    reason: str = ""


@dataclass(frozen=True)
class Project:
    id: int
    name: str
    keywords: tuple[str, ...] = ()


DEFAULT_CATEGORY_RULES: tuple[CategoryRule, ...] = (
    CategoryRule("urgent", 1, "subject_contains", "[긴급],[장애],[URGENT]"),
    CategoryRule("approval", 2, "subject_contains", "[결재],[승인],[Approval]"),
    CategoryRule("external", 3, "sender_domain", EXTERNAL_MARKER),
    CategoryRule("internal", 4, "sender_domain", INTERNAL_MARKER),
    CategoryRule("system", 5, "sender_contains", "noreply,system,notification,no-reply"),
)


# ───────── orden ─────────
def _received_key(record: MailRecord) -> datetime:
    raw = (record.received_at or "").strip()
    if not raw:
        return datetime.min.replace(tzinfo=timezone.utc)
    try:
        dt = datetime.fromisoformat(raw.replace("Z", "+00:00").replace("z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def sort_newest_first(records: list[MailRecord]) -> list[MailRecord]:
    """
    Ordena por received_at descendente. Se comparan instantes, no cadenas:
    dos fechas con offsets distintos no se ordenan bien como texto.
    Los registros sin fecha válida quedan al final.
    """
    return sorted(records, key=_received_key, reverse=True)
