import re
from collections import Counter
from pathlib import PurePosixPath

from geodrop.query import FILE_TYPE_MEDIA_PREFIXES, FILE_TYPE_PATTERNS, extract_keywords

SUMMARY_MAX_LENGTH = 200
TEXT_SAMPLE_BYTES = 64 * 1024
TEXT_MEDIA_TYPES = ("text/", "application/json", "application/xml")


def summarize_text(text: str, max_length: int = SUMMARY_MAX_LENGTH) -> str:
    """Extractive summary: keep the highest-scoring sentences that fit.

    A sentence scores the summed corpus frequency of its words longer than
    three characters.
    """
    text = " ".join(text.split())
    if len(text) <= max_length:
        return text

    sentences = [s.strip() for s in re.split(r"[.!?]+", text) if s.strip()]
    if len(sentences) <= 1:
        return text[:max_length] + "..."

    def normalize(word: str) -> str:
        return re.sub(r"\W", "", word.lower())

    frequencies = Counter(w for w in map(normalize, text.split()) if len(w) > 3)
    scored = sorted(
        sentences,
        key=lambda sentence: sum(frequencies[normalize(w)] for w in sentence.split()),
        reverse=True,
    )

    summary = ""
    for sentence in scored:
        if len(summary) + len(sentence) > max_length:
            break
        summary += sentence + ". "
    return summary.strip() or text[:max_length] + "..."


def derive_tags(display_name: str, media_type: str) -> list[str]:
    tags: list[str] = []
    family = media_type.split("/", 1)[0].lower()
    if family and family != "application":
        tags.append(family)
    for kind, prefixes in FILE_TYPE_MEDIA_PREFIXES.items():
        if media_type.lower().startswith(prefixes) and kind not in tags:
            tags.append(kind)
    stem = PurePosixPath(display_name).stem.replace("_", " ").replace("-", " ")
    for kind, pattern in FILE_TYPE_PATTERNS.items():
        if pattern.search(stem) and kind not in tags:
            tags.append(kind)
    extension = PurePosixPath(display_name).suffix.lstrip(".").lower()
    if extension and extension not in tags:
        tags.append(extension)
    return tags


def derive_content_metadata(display_name: str, media_type: str, data: bytes) -> dict:
    # summary stays None for non-text payloads.
    stem = PurePosixPath(display_name).stem.replace("_", " ").replace("-", " ")
    keywords = extract_keywords(stem)
    summary = None

    if media_type.lower().startswith(TEXT_MEDIA_TYPES):
        text = data[:TEXT_SAMPLE_BYTES].decode("utf-8", errors="ignore")
        if text.strip():
            summary = summarize_text(text)
            for word in extract_keywords(summary):
                if word not in keywords:
                    keywords.append(word)

    return {
        "tags": derive_tags(display_name, media_type),
        "keywords": keywords,
        "summary": summary,
    }
