# application/use_cases/classify_mail_usecase.py
from __future__ import annotations
import json
import logging
import re
from typing import Any, Iterable, Sequence

from domain.errors import ParseError
from domain.models import (
    DEFAULT_CATEGORY_RULES,
    EXTERNAL_MARKER,
    INTERNAL_MARKER,
    MAIL_CATEGORIES,
    CategoryRule,
    ClassificationResult,
    MailRecord,
    Project,
)
from infrastructure.ai.completion_client import CompletionClient

logger = logging.getLogger(__name__)

UNCATEGORIZED = "uncategorized"

SYSTEM_PROMPT = """You are an email classification expert. Classify the email into a category using its subject and sender.

Categories:
- urgent: urgent mail (outages, urgent requests, needs immediate action)
- approval: approval / sign-off related mail
- external: mail sent from outside the company
- internal: internal work mail
- system: automatic system mail (alerts, notifications)
- uncategorized: cannot be classified

Always answer with this JSON:
{
  "category": "<category>",
  "confidence": 0.0-1.0,
  "reason": "one-line reason"
}"""

BATCH_SYSTEM_PROMPT = SYSTEM_PROMPT + """

When several emails are given, classify each one and answer with an array:
{ "results": [ { "category": "...", "confidence": 0.0-1.0, "reason": "..." }, ... ] }"""


def extract_domain(email: str) -> str:
    _, at, domain = (email or "").rpartition("@")
    return domain.strip().lower() if at else ""


# ───────── reglas ─────────
def _rule_matches(record: MailRecord, rule: CategoryRule, company_domain: str) -> bool:
    values = rule.values()
    company = (company_domain or "").lower()

    if rule.match_type == "subject_contains":
        s = (record.subject or "").lower()
        return any(v in s for v in values)

    if rule.match_type == "sender_domain":
        sender_domain = extract_domain(record.sender_email)
        if rule.match_value == EXTERNAL_MARKER:
            return bool(company) and sender_domain != company
        if rule.match_value == INTERNAL_MARKER:
            return bool(company) and sender_domain == company
        return sender_domain in values

    if rule.match_type == "sender_contains":
        e = (record.sender_email or "").lower()
        return any(v in e for v in values)

    return False


def classify_by_rules(
    record: MailRecord,
    rules: Iterable[CategoryRule] = DEFAULT_CATEGORY_RULES,
    company_domain: str = "",
) -> str:
    """La regla de menor prioridad numérica gana; sin coincidencias -> uncategorized."""
    for rule in sorted(rules, key=lambda r: r.priority):
        if _rule_matches(record, rule, company_domain):
            return rule.name
    return UNCATEGORIZED


# ───────── proyectos ─────────
_REPLY_PREFIX = re.compile(r"^(re:|fwd:|fw:)\s*", re.IGNORECASE)


def match_mail_to_project(subject: str, projects: Sequence[Project]) -> int | None:
    """
    Coincidencia por palabras clave, sin IA. Nombre del proyecto en el asunto: +3;
    cada palabra clave: +1. Gana la mayor puntuación; en empate, el primero.
    """
    if not projects:
        return None
    s = _REPLY_PREFIX.sub("", (subject or "").lower(), count=1)

    best, best_score = None, 0
    for project in projects:
        score = 0
        name = (project.name or "").lower()
        if name and name in s:
            score += 3
        score += sum(1 for kw in project.keywords if kw and kw.lower() in s)
        if score > best_score:
            best, best_score = project.id, score
    return best


def match_mails_to_projects(records: Iterable[MailRecord], projects: Sequence[Project]) -> list[tuple[str, int]]:
    """Pares (mail_id, project_id); los correos sin proyecto no aparecen."""
    matches = []
    for record in records:
        project_id = match_mail_to_project(record.subject, projects)
        if project_id is not None:
            matches.append((record.mail_id, project_id))
    return matches


# ───────── IA ─────────
def _to_result(raw: Any) -> ClassificationResult:
    if not isinstance(raw, dict):
        return ClassificationResult(category=UNCATEGORIZED)
    category = raw.get("category")
    if category not in MAIL_CATEGORIES:
        category = UNCATEGORIZED
    try:
        confidence = float(raw.get("confidence") or 0)
    except (TypeError, ValueError):
        confidence = 0.0
    return ClassificationResult(category=category, confidence=confidence, reason=str(raw.get("reason") or ""))


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError as e:
        raise ParseError(f"Parse error: invalid JSON from model: {e}") from e


class AIClassifier:
    def __init__(self, client: CompletionClient) -> None:
        self.client = client

    async def classify(self, subject: str, sender_email: str) -> ClassificationResult:
        user_prompt = f"Subject: {subject}\nSender: {sender_email}"
        text = await self.client.complete(SYSTEM_PROMPT, user_prompt)
        return _to_result(_loads(text))

    async def classify_batch(self, mails: Sequence[MailRecord]) -> list[ClassificationResult]:
        if not mails:
            return []
        user_prompt = "\n".join(
            f"[{i}] Subject: {m.subject} | Sender: {m.sender_email}" for i, m in enumerate(mails, start=1)
        )
        parsed = _loads(await self.client.complete(BATCH_SYSTEM_PROMPT, user_prompt))
        results = parsed.get("results") if isinstance(parsed, dict) else None
        if results is None:
            results = [parsed]
        if not isinstance(results, list):
            raise ParseError("Parse error: 'results' is not a list")
        return [_to_result(r) for r in results]
