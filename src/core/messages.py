"""
HomeBase Assistant — User-facing strings (Hebrew / English).

Every reply the assistant sends is looked up here with `t()`; the language
comes from the LANGUAGE setting.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "he"

PRIORITY_EMOJI = {"high": "🔴", "medium": "🟡", "low": "🟢"}

# Keyboard labels for /timezone -> IANA name
TIMEZONE_CHOICES = {
    "🇮🇱 IL (Asia/Jerusalem)": "Asia/Jerusalem",
    "🌍 UTC": "UTC",
}

_MESSAGES: dict[str, dict[str, str]] = {
    "he": {
        # --- create / update / delete ---
        "task_created": '✅ משימה נוצרה{scope}: "{task}"',
        "task_updated": '✅ משימה עודכנה: "{task}"',
        "task_completed": '✅ משימה הושלמה: "{task}"',
        "task_deleted": "✅ משימה נמחקה",
        "shopping_created": '🛒 פריט נוסף{scope}{category}{amount}: "{item}"',
        "shopping_updated": '✅ פריט עודכן: "{item}"',
        "shopping_deleted": "✅ פריט נמחק",
        "shopping_purchased_one": '✅ פריט סומן כנרכש: "{item}"',
        "shopping_purchased_many": "✅ סומנו {count} פריטים כנרכשו",
        "shopping_nothing_to_mark": "✅ אין פריטים לסמן כנרכשו",
        "shopping_no_match": "❌ לא נמצאו פריטים תואמים לסמן כנרכשו",
        "event_created": '📅 אירוע נוצר{scope}{time}: "{title}"',
        "event_updated": '✅ אירוע עודכן: "{title}"',
        "event_deleted": "✅ אירוע נמחק",
        "event_time_at": " ב-{start}",
        "event_time_span": " מ-{start} עד {end}",
        "scope_assignees": " עבורך ועבור {count} נוספים",
        "scope_group": " עבור הקבוצה",
        # --- listings ---
        "tasks_header": "📝 משימות{date}:",
        "tasks_empty": "📝 לא נמצאו משימות{date}.",
        "shopping_header": "🛒 רשימת קניות:",
        "shopping_empty": "🛒 רשימת הקניות ריקה.",
        "events_header": "📅 לוח שנה{date}:",
        "events_empty": "📅 לא נמצאו אירועים{date}.",
        "nothing_found": "לא נמצאו פריטים.",
        "no_category": "ללא קטגוריה",
        "deadline": " (תאריך יעד: {deadline})",
        "date_suffix": " ל{label}",
        "date_today": "היום",
        "date_tomorrow": "מחר",
        "date_this week": "השבוע",
        "date_next week": "השבוע הבא",
        "date_this month": "החודש",
        "date_next month": "החודש הבא",
        # --- errors ---
        "error": "❌ {message}",
        "task_not_found": "❌ משימה לא נמצאה",
        "shopping_not_found": "❌ פריט לא נמצא",
        "event_not_found": "❌ אירוע לא נמצא",
        "could_not_understand": "לא הבנתי. תוכל לנסח מחדש?",
        "generic_error": "מצטער, נתקלתי בשגיאה בעיבוד הבקשה שלך. אנא נסה שוב.",
        # --- user settings ---
        "name_set": 'השם שלך הוגדר ל"{name}"',
        "setname_usage": "אנא ספק שם. שימוש: /setname השם שלך",
        "timezone_current": "⏰ אזור זמן נוכחי: {timezone}\n\nבחר אזור זמן חדש:",
        "timezone_set_user": "✅ אזור הזמן שלך עודכן ל: {timezone}",
        "timezone_set_group": "✅ אזור הזמן של הקבוצה עודכן ל: {timezone}",
        "timezone_invalid": "❌ אזור זמן לא מוכר: {timezone}",
        # --- commands ---
        "welcome": (
            "👋 שלום {name}!\n\n"
            "אני עוזר לנהל משימות, רשימת קניות ואירועים, לבד או בקבוצה.\n"
            "פשוט כתוב לי, למשל:\n"
            '• "להוסיף משימה לשלם חשבון חשמל עד מחר"\n'
            '• "לקנות חלב ולחם"\n'
            '• "פגישה עם דנה ביום חמישי ב-10"\n\n'
            "/help לרשימת הפקודות."
        ),
        "help": (
            "📖 פקודות:\n"
            "/setname <שם> — הגדרת השם שלך\n"
            "/timezone — בחירת אזור זמן\n"
            "/help — הודעה זו\n\n"
            "בקבוצה אפשר לכתוב \"לכולנו\" כדי לשתף עם כל הקבוצה, "
            "או \"לי ול<שם>\" כדי לשתף עם אנשים מסוימים."
        ),
        # --- notifications ---
        "daily_header": "📅 התראות יומיות:",
        "daily_events": "📅 אירועים היום:",
        "daily_tasks": "📝 משימות היום:",
        "daily_empty": "📅 אין אירועים או משימות היום. יום נעים!",
        "weekly_header": "📅 אירועים השבוע:",
        "reminder_tasks": "⏰ תזכורת - משימות עם תאריך יעד בעוד {minutes} דקות:",
        "reminder_events": "⏰ תזכורת - אירועים בעוד {minutes} דקות:",
    },
    "en": {
        "task_created": '✅ Task created{scope}: "{task}"',
        "task_updated": '✅ Task updated: "{task}"',
        "task_completed": '✅ Task completed: "{task}"',
        "task_deleted": "✅ Task deleted",
        "shopping_created": '🛒 Item added{scope}{category}{amount}: "{item}"',
        "shopping_updated": '✅ Item updated: "{item}"',
        "shopping_deleted": "✅ Item deleted",
        "shopping_purchased_one": '✅ Item marked as purchased: "{item}"',
        "shopping_purchased_many": "✅ Marked {count} items as purchased",
        "shopping_nothing_to_mark": "✅ No items to mark as purchased",
        "shopping_no_match": "❌ No matching items to mark as purchased",
        "event_created": '📅 Event created{scope}{time}: "{title}"',
        "event_updated": '✅ Event updated: "{title}"',
        "event_deleted": "✅ Event deleted",
        "event_time_at": " at {start}",
        "event_time_span": " from {start} to {end}",
        "scope_assignees": " for you and {count} others",
        "scope_group": " for the group",
        "tasks_header": "📝 Tasks{date}:",
        "tasks_empty": "📝 No tasks found{date}.",
        "shopping_header": "🛒 Shopping list:",
        "shopping_empty": "🛒 The shopping list is empty.",
        "events_header": "📅 Calendar{date}:",
        "events_empty": "📅 No events found{date}.",
        "nothing_found": "Nothing found.",
        "no_category": "Uncategorized",
        "deadline": " (due: {deadline})",
        "date_suffix": " for {label}",
        "date_today": "today",
        "date_tomorrow": "tomorrow",
        "date_this week": "this week",
        "date_next week": "next week",
        "date_this month": "this month",
        "date_next month": "next month",
        "error": "❌ {message}",
        "task_not_found": "❌ Task not found",
        "shopping_not_found": "❌ Item not found",
        "event_not_found": "❌ Event not found",
        "could_not_understand": "I didn't understand. Could you rephrase?",
        "generic_error": "Sorry, I ran into an error processing your request. Please try again.",
        "name_set": 'Your name is set to "{name}"',
        "setname_usage": "Please provide a name. Usage: /setname Your Name",
        "timezone_current": "⏰ Current timezone: {timezone}\n\nChoose a new timezone:",
        "timezone_set_user": "✅ Your timezone is now: {timezone}",
        "timezone_set_group": "✅ The group's timezone is now: {timezone}",
        "timezone_invalid": "❌ Unknown timezone: {timezone}",
        "welcome": (
            "👋 Hi {name}!\n\n"
            "I manage tasks, shopping lists and events, for you or your group.\n"
            "Just write to me, for example:\n"
            '• "Add a task to pay the electricity bill by tomorrow"\n'
            '• "Buy milk and bread"\n'
            '• "Meeting with Dana on Thursday at 10"\n\n'
            "/help for the list of commands."
        ),
        "help": (
            "📖 Commands:\n"
            "/setname <name> — set your name\n"
            "/timezone — choose a timezone\n"
            "/help — this message\n\n"
            'In a group, say "for all of us" to share with the whole group, '
            'or "for me and <name>" to share with specific people.'
        ),
        "daily_header": "📅 Daily notifications:",
        "daily_events": "📅 Today's events:",
        "daily_tasks": "📝 Today's tasks:",
        "daily_empty": "📅 No events or tasks today. Have a nice day!",
        "weekly_header": "📅 This week's events:",
        "reminder_tasks": "⏰ Reminder - tasks due in {minutes} minutes:",
        "reminder_events": "⏰ Reminder - events starting in {minutes} minutes:",
    },
}


def t(key: str, lang: str = DEFAULT_LANGUAGE, **kwargs: object) -> str:
    """Look up ``key`` in ``lang`` (falling back to Hebrew) and format it."""
    table = _MESSAGES.get(lang, _MESSAGES[DEFAULT_LANGUAGE])
    template = table.get(key)
    if template is None:
        logger.warning("Missing message %r for language %r", key, lang)
        template = _MESSAGES[DEFAULT_LANGUAGE][key]
    return template.format(**kwargs) if kwargs else template


def timezone_label(tz_name: str) -> str:
    """Short display form used by the /timezone flow."""
    return "IL (Asia/Jerusalem)" if tz_name == "Asia/Jerusalem" else tz_name
