"""
HomeBase Assistant — Telegram Bot.

Telegram is the only user interface. Every inbound message registers the
sender (and the group, in group chats), is written to the message audit,
and is then either a direct command (/start, /help, /setname, /timezone)
or free text handed to the ActionDispatcher.

Security: when ALLOWED_USER_IDS is set, everyone else is silently ignored.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine

from telegram import ReplyKeyboardMarkup, ReplyKeyboardRemove, Update
from telegram.constants import ChatType
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from src.adapters.telegram_notifier import split_message
from src.config import settings
from src.core.dispatcher import MessageContext
from src.core.messages import TIMEZONE_CHOICES, t, timezone_label
from src.core.timezones import utc_now

if TYPE_CHECKING:
    from src.core.audit import AuditService
    from src.core.dispatcher import ActionDispatcher, DispatchResult
    from src.core.scheduler import NotificationScheduler
    from src.data.db import GroupDB, UserDB

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator that silently ignores messages from users outside the allow-list.

    An empty ALLOWED_USER_IDS lets everyone through. Strangers get no
    response at all.
    """

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if user is None:
            return
        allowed = settings.ALLOWED_USER_IDS
        if allowed and user.id not in allowed:
            logger.warning("Unauthorized access attempt from user_id=%s", user.id)
            return  # Silent ignore
        return await func(update, context)

    return wrapper


# ---------------------------------------------------------------------------
# Context: register sender, group and audit row
# ---------------------------------------------------------------------------


def _register(update: Update, context: ContextTypes.DEFAULT_TYPE) -> MessageContext:
    """Upsert the sender (and group) and audit the message."""
    user_db: UserDB = context.bot_data["user_db"]
    group_db: GroupDB = context.bot_data["group_db"]
    audit: AuditService = context.bot_data["audit"]

    tg_user = update.effective_user
    chat = update.effective_chat
    message = update.effective_message

    user, is_new = user_db.ensure_user(
        tg_user.id,
        username=tg_user.username,
        display_name=tg_user.full_name or None,
        default_timezone=settings.DEFAULT_TIMEZONE,
    )
    if is_new:
        logger.info("New user %d (%s)", user.id, user.resolved_name)

    group = None
    if chat.type != ChatType.PRIVATE:
        group = group_db.ensure_group(chat.id, chat.title, settings.DEFAULT_TIMEZONE)
        group_db.add_member(group.id, user.id)

    audit_id = audit.log_message(
        message.message_id,
        user.id,
        group.id if group else None,
        chat.id,
        message.text or "",
        "text" if message.text else "other",
    )
    return MessageContext(user=user, group=group, chat_id=chat.id, message_audit_id=audit_id)


async def _reply(update: Update, text: str, **kwargs: Any) -> None:
    for chunk in split_message(text):
        await update.effective_message.reply_text(chunk, **kwargs)


async def _reply_result(update: Update, result: DispatchResult, **kwargs: Any) -> None:
    await _reply(update, result.message, **kwargs)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — welcome message."""
    msg_context = _register(update, context)
    await _reply(update, t("welcome", settings.LANGUAGE, name=msg_context.user.resolved_name))


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    _register(update, context)
    await _reply(update, t("help", settings.LANGUAGE))


@authorized_only
async def cmd_setname(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /setname <name>."""
    dispatcher: ActionDispatcher = context.bot_data["dispatcher"]
    try:
        msg_context = _register(update, context)
        result = dispatcher.set_name(msg_context, " ".join(context.args or []))
    except Exception as exc:
        logger.error("Error handling /setname: %s", exc)
        await _reply(update, t("generic_error", settings.LANGUAGE))
        return
    await _reply_result(update, result)


@authorized_only
async def cmd_timezone(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /timezone — show the current timezone and a choice keyboard."""
    msg_context = _register(update, context)
    keyboard = ReplyKeyboardMarkup(
        [[label] for label in TIMEZONE_CHOICES],
        resize_keyboard=True,
        one_time_keyboard=True,
    )
    await update.effective_message.reply_text(
        t("timezone_current", settings.LANGUAGE, timezone=timezone_label(msg_context.timezone)),
        reply_markup=keyboard,
    )


@authorized_only
async def handle_timezone_choice(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle a press on the /timezone keyboard."""
    dispatcher: ActionDispatcher = context.bot_data["dispatcher"]
    tz_name = TIMEZONE_CHOICES[update.effective_message.text]
    try:
        msg_context = _register(update, context)
        result = dispatcher.set_timezone(msg_context, tz_name)
    except Exception as exc:
        logger.error("Error handling timezone selection: %s", exc)
        await _reply(update, t("generic_error", settings.LANGUAGE))
        return
    await _reply_result(update, result, reply_markup=ReplyKeyboardRemove())


# ---------------------------------------------------------------------------
# Message handlers
# ---------------------------------------------------------------------------


@authorized_only
async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle plain text messages — classify and dispatch."""
    dispatcher: ActionDispatcher = context.bot_data["dispatcher"]
    try:
        msg_context = _register(update, context)
        result = await dispatcher.process_text(update.effective_message.text, msg_context)
    except Exception as exc:
        logger.exception("Error processing message: %s", exc)
        await _reply(update, t("generic_error", settings.LANGUAGE))
        return
    await _reply_result(update, result)


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(
    dispatcher: ActionDispatcher,
    user_db: UserDB,
    group_db: GroupDB,
    audit: AuditService,
    token: str | None = None,
) -> Application:
    """Build the Telegram Application and register all handlers."""
    app = ApplicationBuilder().token(token or settings.TELEGRAM_BOT_TOKEN).build()

    # Services for handler access
    app.bot_data["dispatcher"] = dispatcher
    app.bot_data["user_db"] = user_db
    app.bot_data["group_db"] = group_db
    app.bot_data["audit"] = audit

    # Commands
    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("setname", cmd_setname))
    app.add_handler(CommandHandler("timezone", cmd_timezone))

    # /timezone keyboard answers, before the catch-all text handler
    app.add_handler(MessageHandler(filters.Text(list(TIMEZONE_CHOICES)), handle_timezone_choice))

    # Text messages (non-command)
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text))

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def _seconds_until_next_hour(now: datetime) -> float:
    next_hour = (now + timedelta(hours=1)).replace(minute=0, second=0, microsecond=0)
    return (next_hour - now).total_seconds()


def schedule_notifications(
    app: Application,
    scheduler: NotificationScheduler,
    tick_seconds: int = 60,
) -> None:
    """Register the reminder tick and the hourly digest tick on the job queue."""

    async def _reminder_job_callback(context: ContextTypes.DEFAULT_TYPE) -> None:
        await scheduler.tick()

    async def _digest_job_callback(context: ContextTypes.DEFAULT_TYPE) -> None:
        await scheduler.daily_tick()

    app.job_queue.run_repeating(
        _reminder_job_callback,
        interval=tick_seconds,
        first=tick_seconds,
        name="reminders",
    )
    app.job_queue.run_repeating(
        _digest_job_callback,
        interval=3600,
        first=_seconds_until_next_hour(utc_now()),
        name="daily_digest",
    )
    app.bot_data["scheduler"] = scheduler

    logger.info(
        "Notifications scheduled: reminders every %ds, digests hourly (local %02d:00)",
        tick_seconds, scheduler.digest_hour,
    )
