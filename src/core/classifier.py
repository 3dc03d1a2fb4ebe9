"""
HomeBase Assistant — Intent Classifier.

Converts a free-text message (Hebrew/English) plus conversational context
into a raw ParsedAction using the configured LLM provider. The model's
output is treated as untrusted: anything that is not a single JSON object
with an action and an operation raises ClassifierError.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import ValidationError as PydanticValidationError

from src.core.errors import ClassifierError
from src.core.intents import ParsedAction, parse_action
from src.core.timezones import get_zone, utc_now

if TYPE_CHECKING:
    from src.core.audit import AuditService
    from src.core.llm import LLMClient

logger = logging.getLogger(__name__)


@dataclass
class ClassifierContext:
    """Everything the model needs to know besides the message itself."""

    user_id: int
    user_name: str
    timezone: str = "UTC"
    group_id: int | None = None
    available_names: list[str] = field(default_factory=list)
    now: datetime | None = None
    message_audit_id: int | None = None

    @property
    def is_group(self) -> bool:
        return self.group_id is not None


# ---------------------------------------------------------------------------
# System prompt for LLM
# ---------------------------------------------------------------------------

_SYSTEM_PROMPT = """\
You are the action extraction engine of a chat assistant that manages tasks,
shopping lists and calendar events for individuals and groups.

Context:
- Chat type: {chat_type}
- Current user: {user_name}
- Current date (user's timezone): {current_date}
- Current date and time (user's timezone): {current_datetime}
- User's timezone: {timezone}
{available_users}
Return ONLY one JSON object in exactly this shape:
{{"action": "task|shopping|event|query|user",
  "operation": "create|update|delete|list|mark_complete|mark_purchased|set_name|set_timezone",
  "scope": "me|all_of_us|me_and_x" or null,
  "scope_users": ["name", ...],
  "parameters": {{...}}}}

**Parameters per action**
- task: "task", "priority" (low|medium|high), "deadline" ("YYYY-MM-DD HH:MM:SS")
- shopping: "item", "category" (explicit, else infer one, e.g. "מוצרי חלב", "ירקות",
  "מאפייה", "בשר", "משקאות", "כללי"), "amount" (free text such as "2 liters", or null)
- event: "title", "description", "start_time", "end_time" ("YYYY-MM-DD HH:MM:SS")
- update / delete / mark_complete: "id" (integer, e.g. "task 3", "#3", "משימה 3" -> 3)
  plus, for update, only the fields that change
- list: optional "date" ("today", "tomorrow" or "YYYY-MM-DD"), "category" (shopping)
- query/list: "query_type" (all|tasks|shopping|events), "date" or "start_date"/"end_date".
  For ranges you may pass the keywords "this week", "next week", "this month",
  "next month" as both start_date and end_date.
- user/set_name: "name". user/set_timezone: "timezone" (IANA name).

**Purchases**
- "I bought milk" / "קניתי חלב" -> shopping/mark_purchased {{"item": "milk"}}
- "I bought bread and milk" -> {{"item": "bread, milk"}}
- "I bought everything" / "קניתי הכל" -> {{"item": null}}

**Scope** (for create only)
- "me": personal. "all_of_us": the whole group (group chats only).
- "me_and_x": the sender plus the people named in "scope_users".
- Omit the scope when the user does not say who it is for.

**General Rules**
- Support both Hebrew and English input.
- Dates and times are in the user's timezone; resolve relative dates from the
  current date above. "DD.MM" is day.month.
- If the message is not an actionable request, return exactly: {{}}
- No markdown, no explanation, no extra text.
"""


# ---------------------------------------------------------------------------
# Response Cleaning Functions
# ---------------------------------------------------------------------------

def _clean_llm_response(raw_text: str) -> str:
    """Remove markdown code block delimiters from LLM's raw response."""
    cleaned_text = raw_text.strip()
    if cleaned_text.startswith("```json"):
        cleaned_text = cleaned_text.removeprefix("```json")
    elif cleaned_text.startswith("```"):
        cleaned_text = cleaned_text.removeprefix("```")
    if cleaned_text.endswith("```"):
        cleaned_text = cleaned_text.removesuffix("```")
    return cleaned_text.strip()


def build_prompt(context: ClassifierContext) -> str:
    zone = get_zone(context.timezone)
    local_now = (context.now or utc_now()).astimezone(zone)
    available = ""
    if context.is_group and context.available_names:
        available = f"- Available users in group: {', '.join(context.available_names)}\n"
    return _SYSTEM_PROMPT.format(
        chat_type="group chat" if context.is_group else "private chat",
        user_name=context.user_name,
        current_date=local_now.strftime("%Y-%m-%d"),
        current_datetime=local_now.strftime("%Y-%m-%d %H:%M:%S"),
        timezone=context.timezone,
        available_users=available,
    )


def parse_response(raw_text: str) -> ParsedAction:
    """Parse the model's text into a ParsedAction. Raises ClassifierError."""
    cleaned = _clean_llm_response(raw_text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse LLM response as JSON: %s — raw: '%s'", exc, raw_text)
        raise ClassifierError("unparseable classifier output") from exc

    if isinstance(data, list) and len(data) == 1:
        data = data[0]
    if not isinstance(data, dict) or not data:
        logger.info("LLM returned no actionable object: %s", cleaned[:200])
        raise ClassifierError("no action in classifier output")

    try:
        return parse_action(data)
    except PydanticValidationError as exc:
        logger.warning("LLM returned an invalid action: %s", exc)
        raise ClassifierError("invalid classifier output") from exc


class IntentClassifier:
    """Classifies messages with an injected LLM client, auditing every call."""

    def __init__(
        self,
        llm: LLMClient,
        audit: AuditService | None = None,
        max_tokens: int = 512,
    ) -> None:
        self._llm = llm
        self._audit = audit
        self._max_tokens = max_tokens

    async def classify(self, text: str, context: ClassifierContext) -> ParsedAction:
        """Return the structured action for ``text``. Raises ClassifierError."""
        system = build_prompt(context)
        started = time.monotonic()
        raw = ""
        error: str | None = None
        parsed: ParsedAction | None = None
        try:
            raw = await self._llm.complete(system, text, max_tokens=self._max_tokens)
            logger.debug("LLM raw response: %s", raw)
            parsed = parse_response(raw or "")
            return parsed
        except ClassifierError as exc:
            error = str(exc)
            raise
        except Exception as exc:
            error = str(exc)
            logger.error("LLM call failed: %s", exc)
            raise ClassifierError("classifier call failed") from exc
        finally:
            self._record(context, system, text, raw, parsed, started, error)

    def _record(
        self,
        context: ClassifierContext,
        system: str,
        text: str,
        raw: str,
        parsed: ParsedAction | None,
        started: float,
        error: str | None,
    ) -> None:
        if self._audit is None:
            return
        self._audit.log_llm_interaction(
            context.user_id,
            context.group_id,
            f"{system}\n\nUser's message: {text}",
            raw or "",
            message_audit_id=context.message_audit_id,
            parsed_action=parsed.model_dump() if parsed is not None else None,
            model=getattr(self._llm, "model", None),
            response_time_ms=int((time.monotonic() - started) * 1000),
            error=error,
        )
