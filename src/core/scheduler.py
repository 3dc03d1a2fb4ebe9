"""
HomeBase Assistant — Notification Scheduler.

Reminders: every tick (default 60 s) pushes tasks whose deadline and events
whose start fall inside [now + lookahead - tolerance, now + lookahead +
tolerance] (default 15 ± 1 min). A per-process sent-key set keeps two
adjacent ticks from sending the same reminder twice.

Digests: an hourly tick sends, at DAILY_DIGEST_HOUR local time, today's
events and open tasks, and on Sundays also the week's events.

Recipients are each user's most recent private chat (from the message
audit) for personal and assigned records, and every known group chat for
group records. Per-recipient delivery failures are logged and skipped.

This module is provider-agnostic: it depends on the NotificationPort
protocol, not on a specific messaging implementation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from src.core.aggregator import merge_unique
from src.core.messages import t
from src.core.timezones import (
    STORAGE_FORMAT,
    get_zone,
    local_range_to_utc,
    parse_date_range,
    parse_utc,
    to_user_tz,
    utc_now,
)
from src.data.models import ListFilters, RecordKind
from src.data.stores import sort_records

if TYPE_CHECKING:
    from src.core.aggregator import ResultAggregator
    from src.core.audit import AuditService
    from src.data.db import GroupDB, UserDB
    from src.data.models import Event, Task
    from src.data.stores import EventDB, TaskDB
    from src.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

_SUNDAY = 6  # date.weekday()


@dataclass
class _Recipient:
    chat_id: int
    timezone: str
    user_id: int | None = None   # private chat
    group_id: int | None = None  # group chat

    @property
    def label(self) -> str:
        if self.group_id is not None:
            return f"group {self.group_id}"
        return f"user {self.user_id}"


class NotificationScheduler:
    """Owns reminder and digest delivery. Call `tick()` / `daily_tick()`."""

    def __init__(
        self,
        notifier: NotificationPort,
        user_db: UserDB,
        group_db: GroupDB,
        tasks: TaskDB,
        events: EventDB,
        audit: AuditService,
        aggregator: ResultAggregator,
        lang: str = "he",
        lookahead_minutes: int = 15,
        tolerance_minutes: int = 1,
        digest_hour: int = 8,
    ) -> None:
        self._notifier = notifier
        self._user_db = user_db
        self._group_db = group_db
        self._tasks = tasks
        self._events = events
        self._audit = audit
        self._aggregator = aggregator
        self._lang = lang
        self.lookahead = timedelta(minutes=lookahead_minutes)
        self.tolerance = timedelta(minutes=tolerance_minutes)
        self.digest_hour = digest_hour
        # sent key -> time after which the key can be forgotten
        self._sent: dict[tuple, datetime] = {}

    # ------------------------------------------------------------------
    # Recipients
    # ------------------------------------------------------------------

    def _recipients(self) -> list[_Recipient]:
        recipients = []
        for user_id, chat_id in self._audit.private_chat_recipients():
            user = self._user_db.get_user(user_id)
            if user is None:
                continue
            recipients.append(_Recipient(chat_id, user.timezone or "UTC", user_id=user_id))
        for group in self._group_db.list_groups():
            recipients.append(_Recipient(group.id, group.timezone or "UTC", group_id=group.id))
        return recipients

    def _fetch(self, kind: RecordKind, recipient: _Recipient, filters: ListFilters) -> list:
        store = self._tasks if kind is RecordKind.TASK else self._events
        if recipient.group_id is not None:
            return store.list_by_group(recipient.group_id, filters)
        merged = merge_unique([
            store.list_by_owner(recipient.user_id, filters),
            store.list_by_assignee(recipient.user_id, filters),
        ])
        return sort_records(kind, merged)

    async def _send(self, recipient: _Recipient, text: str) -> bool:
        try:
            await self._notifier.send_message(recipient.chat_id, text)
        except Exception as exc:
            logger.error("Failed to notify %s (chat %d): %s", recipient.label, recipient.chat_id, exc)
            return False
        return True

    def _forget_expired(self, now: datetime) -> None:
        expired = [key for key, until in self._sent.items() if until < now]
        for key in expired:
            del self._sent[key]

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    def reminder_window(self, now: datetime) -> tuple[str, str]:
        """UTC bounds of the due-soon window, inclusive."""
        target = now + self.lookahead
        return (
            (target - self.tolerance).strftime(STORAGE_FORMAT),
            (target + self.tolerance).strftime(STORAGE_FORMAT),
        )

    async def tick(self, now: datetime | None = None) -> int:
        """Send due-soon task and event reminders. Returns messages sent."""
        now = now or utc_now()
        self._forget_expired(now)
        start, end = self.reminder_window(now)
        filters = ListFilters(start=start, end=end)
        minutes = int(self.lookahead.total_seconds() // 60)

        sent = 0
        for recipient in self._recipients():
            for kind, header_key in (
                (RecordKind.TASK, "reminder_tasks"),
                (RecordKind.EVENT, "reminder_events"),
            ):
                try:
                    records = self._fetch(kind, recipient, filters)
                except Exception as exc:
                    logger.error("Reminder lookup failed for %s: %s", recipient.label, exc)
                    continue
                due = [r for r in records if self._reminder_key(kind, recipient, r) not in self._sent]
                if not due:
                    continue

                if kind is RecordKind.TASK:
                    lines = self._aggregator.format_tasks(due, recipient.timezone)
                else:
                    lines = self._aggregator.format_events(due, recipient.timezone)
                text = "\n".join([t(header_key, self._lang, minutes=minutes), "", *lines])

                if await self._send(recipient, text):
                    sent += 1
                    for record in due:
                        due_at = parse_utc(record.deadline if kind is RecordKind.TASK else record.start_time)
                        self._sent[self._reminder_key(kind, recipient, record)] = due_at + self.tolerance
                    logger.info(
                        "Sent %d %s reminder(s) to %s", len(due), kind.value, recipient.label,
                    )
        return sent

    @staticmethod
    def _reminder_key(kind: RecordKind, recipient: _Recipient, record: Task | Event) -> tuple:
        due = record.deadline if kind is RecordKind.TASK else record.start_time
        return ("reminder", recipient.chat_id, kind.value, record.id, due)

    # ------------------------------------------------------------------
    # Daily / weekly digests
    # ------------------------------------------------------------------

    async def daily_tick(self, now: datetime | None = None) -> int:
        """Send the morning digest to recipients whose local hour is the digest hour."""
        now = now or utc_now()
        self._forget_expired(now)
        sent = 0
        for recipient in self._recipients():
            local = now.astimezone(get_zone(recipient.timezone))
            if local.hour != self.digest_hour:
                continue
            day_key = ("digest", recipient.chat_id, local.date().isoformat())
            if day_key in self._sent:
                continue
            try:
                daily = self.build_daily_digest(recipient, now)
                weekly = self.build_weekly_digest(recipient, now) if local.weekday() == _SUNDAY else None
            except Exception as exc:
                logger.error("Digest lookup failed for %s: %s", recipient.label, exc)
                continue

            delivered = False
            # Groups only get a daily digest when there is something in it
            if daily is not None and await self._send(recipient, daily):
                delivered = True
                sent += 1
            if weekly is not None and await self._send(recipient, weekly):
                delivered = True
                sent += 1
            if delivered:
                self._sent[day_key] = now + timedelta(days=1)
                logger.info("Digest sent to %s", recipient.label)
        return sent

    def build_daily_digest(self, recipient: _Recipient, now: datetime) -> str | None:
        tz = recipient.timezone
        today, _ = parse_date_range("today", tz, now)
        start, end = local_range_to_utc(today, today, tz)

        events = self._fetch(RecordKind.EVENT, recipient, ListFilters(start=start, end=end))
        open_tasks = self._fetch(RecordKind.TASK, recipient, ListFilters())
        tasks = [
            task for task in open_tasks
            if task.deadline is None or to_user_tz(task.deadline, tz, "%Y-%m-%d") == today
        ]

        if not events and not tasks:
            if recipient.group_id is not None:
                return None
            return t("daily_empty", self._lang)

        lines = [t("daily_header", self._lang), ""]
        if events:
            lines.append(t("daily_events", self._lang))
            lines += self._aggregator.format_events(events, tz, with_description=False)
            lines.append("")
        if tasks:
            lines.append(t("daily_tasks", self._lang))
            lines += self._aggregator.format_tasks(tasks, tz)
        return "\n".join(lines).rstrip()

    def build_weekly_digest(self, recipient: _Recipient, now: datetime) -> str | None:
        tz = recipient.timezone
        first, last = parse_date_range("this week", tz, now)
        start, end = local_range_to_utc(first, last, tz)
        events = self._fetch(RecordKind.EVENT, recipient, ListFilters(start=start, end=end))
        if not events:
            return None
        lines = [t("weekly_header", self._lang), ""]
        lines += self._aggregator.format_events(events, tz, with_description=False)
        return "\n".join(lines)
