# main.py
# Punto de entrada: loop de polling (IMAP o REST) -> normaliza -> clasifica
from __future__ import annotations
import asyncio
import logging
from config.settings import Settings
from interface_adapters.controllers.polling_controller import ClassifiedMail, PollingController

logger = logging.getLogger(__name__)


def log_new_mails(mails: list[ClassifiedMail]) -> None:
    for m in mails:
        r = m.record
        logger.info("[%s] %s <%s> - %s (%s)", m.category, r.sender_name, r.sender_email, r.subject, r.received_at)


def main() -> None:
    settings = Settings()
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    controller = PollingController(settings=settings, on_mails=log_new_mails)

    logger.info("=== Mail Notifier ===")
    logger.info("provider=%s interval=%ss ai=%s", settings.MAIL_PROVIDER, settings.POLL_INTERVAL, settings.ai_enabled())
    try:
        asyncio.run(controller.run_forever())
    except KeyboardInterrupt:
        logger.info("Detenido por el usuario")


if __name__ == "__main__":
    main()
