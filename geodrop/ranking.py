from datetime import datetime, timedelta

from geodrop.models import InterpretedQuery, RankedShare, ShareRecord

NAME_WEIGHT = 3
TAG_WEIGHT = 2
SUMMARY_WEIGHT = 1
LAST_DAY_BONUS = 2
LAST_WEEK_BONUS = 1


def score(candidate: ShareRecord, query: InterpretedQuery, now: datetime) -> int:
    """Additive relevance of ``candidate`` for ``query``.

    Keyword hits are substring matches, weighted by where they land. At most
    one recency bonus applies.
    """
    name = candidate.display_name.lower()
    tags = " ".join(candidate.tags).lower()
    summary = (candidate.summary or "").lower()

    total = 0
    for keyword in query.keywords:
        keyword = keyword.lower()
        if keyword in name:
            total += NAME_WEIGHT
        if keyword in tags:
            total += TAG_WEIGHT
        if keyword in summary:
            total += SUMMARY_WEIGHT

    age = now - candidate.created_at
    if age < timedelta(days=1):
        total += LAST_DAY_BONUS
    elif age < timedelta(days=7):
        total += LAST_WEEK_BONUS
    return total


def rank(
    candidates: list[tuple[ShareRecord, float | None]],
    query: InterpretedQuery,
    now: datetime,
    limit: int | None = None,
) -> list[RankedShare]:
    # Unknown distances sort after known ones at the same score.
    ranked = [
        RankedShare(share=share, distance_meters=distance, score=score(share, query, now))
        for share, distance in candidates
    ]
    ranked.sort(
        key=lambda item: (
            -item.score,
            item.distance_meters is None,
            item.distance_meters or 0.0,
        )
    )
    return ranked if limit is None else ranked[:limit]
