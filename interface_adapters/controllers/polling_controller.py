# interface_adapters/controllers/polling_controller.py
from __future__ import annotations
import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from config.settings import Settings
from application.services.mail_source import MailSource, build_mail_source
from application.use_cases.classify_mail_usecase import AIClassifier, classify_by_rules, match_mails_to_projects
from domain.errors import AuthenticationError, MailError
from domain.models import DEFAULT_CATEGORY_RULES, CategoryRule, MailRecord, Project, sort_newest_first
from infrastructure.ai.completion_client import CompletionClient

logger = logging.getLogger(__name__)

ERRORS_BEFORE_BACKOFF = 3
MAX_BACKOFF_SECONDS = 600
# SINCE tiene precisión de día: se recuerdan los ids ya entregados para no repetirlos
MAX_SEEN_IDS = 5000


@dataclass
class ClassifiedMail:
    record: MailRecord
    category: str
    project_id: Optional[int] = None


class PollingController:
    def __init__(
        self,
        settings: Settings,
        *,
        source: MailSource | None = None,
        classifier: AIClassifier | None = None,
        rules: tuple[CategoryRule, ...] = DEFAULT_CATEGORY_RULES,
        projects: Sequence[Project] = (),
        on_mails: Optional[Callable[[list[ClassifiedMail]], None]] = None,
    ) -> None:
        self.settings = settings
        self.source = source or build_mail_source(settings)
        if classifier is None and settings.ai_enabled():
            classifier = AIClassifier(CompletionClient(settings.GROQ_API_KEY, timeout=settings.HTTP_TIMEOUT))
        self.classifier = classifier
        self.rules = rules
        self.company_domain = settings.company_domain()
        self.projects = projects
        self.on_mails = on_mails

        self.since: Optional[str] = None
        self.error_count = 0
        self.stopped = False
        self._seen: OrderedDict[str, None] = OrderedDict()

    # ───────── clasificación ─────────
    async def _classify(self, records: list[MailRecord]) -> list[ClassifiedMail]:
        by_rules = [classify_by_rules(r, self.rules, self.company_domain) for r in records]
        if self.classifier is None or not records:
            return [ClassifiedMail(r, c) for r, c in zip(records, by_rules)]

        try:
            results = await self.classifier.classify_batch(records)
        except MailError:
            logger.exception("Clasificación IA fallida; se usan las reglas")
            return [ClassifiedMail(r, c) for r, c in zip(records, by_rules)]

        out: list[ClassifiedMail] = []
        for i, (record, rule_cat) in enumerate(zip(records, by_rules)):
            # si la IA devuelve menos resultados, el resto va por reglas
            category = results[i].category if i < len(results) else rule_cat
            out.append(ClassifiedMail(record, category))
        return out

    # ───────── ejecución ─────────
    def next_delay(self) -> float:
        interval = float(self.settings.POLL_INTERVAL)
        if self.error_count < ERRORS_BEFORE_BACKOFF:
            return interval
        return min(interval * 2 ** (self.error_count - 2), MAX_BACKOFF_SECONDS)

    async def run_once(self) -> list[ClassifiedMail]:
        logger.info("Poll (%s) desde: %s", self.source.name, self.since or "últimos 7 días")
        try:
            records = await self.source.fetch(self.since)
        except AuthenticationError:
            logger.error("Autenticación rechazada; se detiene el polling")
            self.stopped = True
            raise
        except MailError:
            self.error_count += 1
            raise

        self.error_count = 0
        if not records:
            logger.info("Sin correos nuevos (%s).", self.source.name)
            return []

        logger.info("Recibidos %d correos (%s)", len(records), self.source.name)
        newest = sort_newest_first(records)[0].received_at
        if newest:
            self.since = newest

        fresh = [r for r in records if r.mail_id not in self._seen]
        if not fresh:
            logger.info("Sin correos nuevos (%d ya entregados).", len(records))
            return []

        classified = await self._classify(fresh)
        if self.projects:
            assigned = dict(match_mails_to_projects(fresh, self.projects))
            for c in classified:
                c.project_id = assigned.get(c.record.mail_id)
            logger.info("Asignados a proyecto: %d/%d", len(assigned), len(fresh))

        if self.on_mails:
            self.on_mails(classified)
        self._remember(fresh)
        return classified

    def _remember(self, records: list[MailRecord]) -> None:
        for r in records:
            self._seen[r.mail_id] = None
            self._seen.move_to_end(r.mail_id)
        while len(self._seen) > MAX_SEEN_IDS:
            self._seen.popitem(last=False)

    async def run_forever(self) -> None:
        while not self.stopped:
            try:
                await self.run_once()
            except AuthenticationError:
                break
            except MailError:
                logger.exception("Error en ciclo de polling (%d seguidos)", self.error_count)
            except Exception:
                logger.exception("Error inesperado en ciclo de polling")
            await asyncio.sleep(self.next_delay())
