"""
HomeBase Assistant — Entry Point.

Single entry point: `python main.py` wires the stores, the LLM classifier,
the dispatcher and the notification scheduler together and starts the
Telegram bot.
"""

import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from src.adapters.telegram_notifier import TelegramNotifier
from src.bot.telegram_bot import build_app, schedule_notifications
from src.config import settings
from src.core.aggregator import ResultAggregator
from src.core.audit import AuditService
from src.core.classifier import IntentClassifier
from src.core.dispatcher import ActionDispatcher
from src.core.llm import LLMClient
from src.core.scheduler import NotificationScheduler
from src.core.scope import ScopeResolver
from src.data.db import AuditDB, GroupDB, UserDB
from src.data.models import RecordKind
from src.data.stores import EventDB, ShoppingDB, TaskDB

logger = logging.getLogger(__name__)


def main() -> None:
    """Build every service on the configured database and start polling."""
    db_path = settings.DATABASE_PATH
    user_db = UserDB(db_path)
    group_db = GroupDB(db_path)
    tasks = TaskDB(db_path)
    shopping = ShoppingDB(db_path)
    events = EventDB(db_path)
    audit = AuditService(AuditDB(db_path))

    llm = LLMClient.from_settings(settings)
    classifier = IntentClassifier(llm, audit=audit)
    aggregator = ResultAggregator(
        {RecordKind.TASK: tasks, RecordKind.SHOPPING: shopping, RecordKind.EVENT: events},
        lang=settings.LANGUAGE,
    )
    dispatcher = ActionDispatcher(
        tasks,
        shopping,
        events,
        user_db,
        group_db,
        ScopeResolver(user_db, group_db),
        aggregator,
        classifier=classifier,
        lang=settings.LANGUAGE,
    )

    app = build_app(dispatcher, user_db, group_db, audit)
    scheduler = NotificationScheduler(
        TelegramNotifier(app.bot),
        user_db,
        group_db,
        tasks,
        events,
        audit,
        aggregator,
        lang=settings.LANGUAGE,
        lookahead_minutes=settings.REMINDER_LOOKAHEAD_MINUTES,
        tolerance_minutes=settings.REMINDER_TOLERANCE_MINUTES,
        digest_hour=settings.DAILY_DIGEST_HOUR,
    )
    schedule_notifications(app, scheduler, settings.REMINDER_TICK_SECONDS)

    logger.info("Starting HomeBase Assistant bot (LLM: %s/%s)...", llm.provider, llm.model)
    app.run_polling()


if __name__ == "__main__":
    main()
