from datetime import datetime, timezone

import pytest

from geodrop import query


def test_documents_from_today():
    result = query.interpret("show me documents from today")
    assert result.intent == "search_files"
    assert result.file_type_filters == ["document"]
    assert result.time_filter == "today"
    assert result.keywords == ["documents", "from", "today"]
    assert result.size_filter is None


@pytest.mark.parametrize(
    "text,intent",
    [
        ("find the budget", "search_files"),
        ("documents from yesterday", "filter_by_type"),
        ("recent uploads", "filter_by_time"),
        ("stuff shared by Jane Doe", "filter_by_user"),
        ("large files", "filter_by_size"),
        ("holiday", "general_search"),
    ],
)
def test_intent_precedence_follows_declaration_order(text, intent):
    assert query.classify_intent(text) == intent


def test_keywords_drop_stopwords_short_tokens_and_punctuation():
    assert query.extract_keywords("Where is the Q3 budget-report, for HR?") == ["budgetreport"]


@pytest.mark.parametrize(
    "text,period",
    [
        ("files from this day", "today"),
        ("Yesterday's notes", "yesterday"),
        ("uploads this week", "week"),
        ("last month and today", "today"),
        ("past month", "month"),
        ("ages ago", None),
    ],
)
def test_time_filter_first_match_wins(text, period):
    assert query.extract_time_filter(text) == period


def test_file_types_are_not_mutually_exclusive():
    assert query.extract_file_types("photos, videos and a csv") == ["spreadsheet", "image", "video"]


@pytest.mark.parametrize(
    "text,operator,value,unit",
    [
        ("files over 10 MB", "gt", 10, "mb"),
        ("larger than 2gb", "gt", 2, "gb"),
        ("something under 500 kb", "lt", 500, "kb"),
        ("less than 3 mb", "lt", 3, "mb"),
    ],
)
def test_size_filter(text, operator, value, unit):
    size = query.extract_size_filter(text)
    assert (size.operator, size.value, size.unit) == (operator, value, unit)


def test_size_filter_bytes():
    assert query.extract_size_filter("over 2 kb").byte_value == 2048


def test_size_filter_absent():
    assert query.extract_size_filter("big files") is None


def test_user_mentions_need_two_capitalized_words():
    assert query.extract_user_mentions("slides Uploaded By Jane Doe") == ["Jane Doe"]
    assert query.extract_user_mentions("notes from Ada Lovelace and by Alan Turing") == [
        "Ada Lovelace",
        "Alan Turing",
    ]
    assert query.extract_user_mentions("documents from today") == []


def test_entities():
    assert query.extract_entities("PDF from Finance") == ["ORGANIZATION:Finance", "FILE_FORMAT:PDF"]


def test_time_filter_start():
    now = datetime(2026, 10, 19, 15, 30, tzinfo=timezone.utc)
    assert query.time_filter_start("today", now) == datetime(2026, 10, 19, tzinfo=timezone.utc)
    assert query.time_filter_start("yesterday", now) == datetime(2026, 10, 18, tzinfo=timezone.utc)
    assert query.time_filter_start("week", now) == datetime(2026, 10, 12, 15, 30, tzinfo=timezone.utc)
    assert query.time_filter_start(None, now) is None


def test_media_type_prefixes():
    prefixes = query.media_type_prefixes(["image", "audio"])
    assert prefixes == ["image/", "audio/"]
