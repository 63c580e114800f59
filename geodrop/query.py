import re
from datetime import datetime, timedelta

from geodrop.models import InterpretedQuery, SizeFilter

# Declaration order is precedence order.
INTENT_PHRASES: dict[str, tuple[str, ...]] = {
    "search_files": ("show me", "find", "search", "get", "list"),
    "filter_by_type": ("documents", "images", "presentations", "spreadsheets"),
    "filter_by_time": ("today", "yesterday", "this week", "last week", "recent"),
    "filter_by_user": ("from", "by", "uploaded by", "shared by"),
    "filter_by_size": ("large", "small", "big", "mb", "gb", "over", "under"),
}
DEFAULT_INTENT = "general_search"

STOPWORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "show", "me", "find", "search", "get", "list",
        "what", "where", "when", "how", "who",
    }
)

TIME_PATTERNS: dict[str, re.Pattern] = {
    "today": re.compile(r"\b(today|this day)\b", re.IGNORECASE),
    "yesterday": re.compile(r"\b(yesterday)\b", re.IGNORECASE),
    "week": re.compile(r"\b(this week|last week|past week)\b", re.IGNORECASE),
    "month": re.compile(r"\b(this month|last month|past month)\b", re.IGNORECASE),
}

FILE_TYPE_PATTERNS: dict[str, re.Pattern] = {
    "document": re.compile(r"\b(documents?|docs?|pdf|word|text)\b", re.IGNORECASE),
    "presentation": re.compile(r"\b(presentations?|slides?|powerpoint|ppt)\b", re.IGNORECASE),
    "spreadsheet": re.compile(r"\b(spreadsheets?|excel|csv|data)\b", re.IGNORECASE),
    "image": re.compile(r"\b(images?|photos?|pictures?|jpg|png|gif)\b", re.IGNORECASE),
    "video": re.compile(r"\b(videos?|movies?|mp4|avi)\b", re.IGNORECASE),
    "audio": re.compile(r"\b(audio|music|sound|mp3|wav)\b", re.IGNORECASE),
}

# Media type prefixes a file-type category selects in the record store.
FILE_TYPE_MEDIA_PREFIXES: dict[str, tuple[str, ...]] = {
    "document": (
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml",
        "text/plain",
        "text/markdown",
    ),
    "presentation": (
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml",
    ),
    "spreadsheet": (
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml",
        "text/csv",
    ),
    "image": ("image/",),
    "video": ("video/",),
    "audio": ("audio/",),
}

ENTITY_PATTERNS: dict[str, re.Pattern] = {
    "PERSON": re.compile(r"\b[A-Z][a-z]+ [A-Z][a-z]+\b"),
    "ORGANIZATION": re.compile(r"\b(HR|IT|Finance|Marketing|Sales)\b", re.IGNORECASE),
    "FILE_FORMAT": re.compile(r"\b(PDF|DOC|DOCX|XLS|XLSX|PPT|PPTX|JPG|PNG|GIF)\b", re.IGNORECASE),
}

SIZE_PATTERN = re.compile(
    r"\b(over|under|above|below|larger than|smaller than|more than|less than)\s+(\d+)\s*(kb|mb|gb)\b",
    re.IGNORECASE,
)
GREATER_THAN_PHRASES = frozenset({"over", "above", "larger than", "more than"})

USER_MENTION_PATTERN = re.compile(
    r"\b(?:uploaded by|shared by|from|by) ([A-Z][a-z]+ [A-Z][a-z]+)\b"
)


def classify_intent(text: str) -> str:
    lowered = text.lower()
    for intent, phrases in INTENT_PHRASES.items():
        if any(phrase in lowered for phrase in phrases):
            return intent
    return DEFAULT_INTENT


def extract_keywords(text: str) -> list[str]:
    keywords = []
    for token in text.lower().split():
        word = re.sub(r"\W", "", token)
        if len(word) > 2 and word not in STOPWORDS:
            keywords.append(word)
    return keywords


def extract_entities(text: str) -> list[str]:
    entities = []
    for kind, pattern in ENTITY_PATTERNS.items():
        entities.extend(f"{kind}:{match.group(0)}" for match in pattern.finditer(text))
    return entities


def extract_time_filter(text: str) -> str | None:
    for period, pattern in TIME_PATTERNS.items():
        if pattern.search(text):
            return period
    return None


def extract_file_types(text: str) -> list[str]:
    return [kind for kind, pattern in FILE_TYPE_PATTERNS.items() if pattern.search(text)]


def extract_size_filter(text: str) -> SizeFilter | None:
    match = SIZE_PATTERN.search(text)
    if not match:
        return None
    phrase = " ".join(match.group(1).lower().split())
    return SizeFilter(
        operator="gt" if phrase in GREATER_THAN_PHRASES else "lt",
        value=int(match.group(2)),
        unit=match.group(3).lower(),
    )


def extract_user_mentions(text: str) -> list[str]:
    # Names must keep their capitalization, so only the lead-in is case-insensitive.
    mentions = []
    for match in USER_MENTION_PATTERN.finditer(_lower_lead_ins(text)):
        mentions.append(match.group(1))
    return mentions


def _lower_lead_ins(text: str) -> str:
    return re.sub(
        r"\b(uploaded by|shared by|from|by)\b",
        lambda m: m.group(0).lower(),
        text,
        flags=re.IGNORECASE,
    )


def interpret(text: str) -> InterpretedQuery:
    return InterpretedQuery(
        intent=classify_intent(text),
        keywords=extract_keywords(text),
        entities=extract_entities(text),
        time_filter=extract_time_filter(text),
        file_type_filters=extract_file_types(text),
        user_mentions=extract_user_mentions(text),
        size_filter=extract_size_filter(text),
    )


def time_filter_start(time_filter: str | None, now: datetime) -> datetime | None:
    """Earliest ``created_at`` a time filter admits, or None for no bound."""
    if time_filter is None:
        return None
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if time_filter == "today":
        return midnight
    if time_filter == "yesterday":
        return midnight - timedelta(days=1)
    if time_filter == "week":
        return now - timedelta(days=7)
    if time_filter == "month":
        return now - timedelta(days=30)
    return None


def media_type_prefixes(file_types: list[str]) -> list[str]:
    prefixes: list[str] = []
    for kind in file_types:
        prefixes.extend(FILE_TYPE_MEDIA_PREFIXES.get(kind, ()))
    return prefixes
