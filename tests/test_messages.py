"""Tests for src.core.messages — localized strings."""

from src.core.messages import _MESSAGES, TIMEZONE_CHOICES, t, timezone_label


def test_hebrew_is_default():
    assert t("task_deleted") == "✅ משימה נמחקה"


def test_formats_arguments():
    assert t("name_set", "en", name="Abba") == 'Your name is set to "Abba"'


def test_unknown_language_falls_back_to_hebrew():
    assert t("task_deleted", "fr") == t("task_deleted", "he")


def test_both_languages_have_the_same_keys():
    assert set(_MESSAGES["he"]) == set(_MESSAGES["en"])


def test_timezone_choices_and_labels():
    assert set(TIMEZONE_CHOICES.values()) == {"Asia/Jerusalem", "UTC"}
    assert timezone_label("Asia/Jerusalem") == "IL (Asia/Jerusalem)"
    assert timezone_label("UTC") == "UTC"
