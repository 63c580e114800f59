from datetime import datetime, timedelta

from loguru import logger

from geodrop.errors import AlreadyConsumedError, ExpiredError, NotFoundError
from geodrop.models import ShareRecord, ShareState
from geodrop.repository import ShareRepository


def compute_expiry(created_at: datetime, ttl_seconds: int) -> datetime:
    return created_at + timedelta(seconds=ttl_seconds)


def state_of(record: ShareRecord, now: datetime) -> ShareState:
    if record.consumed:
        return ShareState.CONSUMED
    if now >= record.expires_at:
        return ShareState.EXPIRED
    return ShareState.ACTIVE


def is_retrievable(record: ShareRecord, now: datetime) -> bool:
    return not record.consumed and now < record.expires_at


class FileLifecycle:
    def __init__(self, repository: ShareRepository):
        self.repository = repository

    def consume(self, record: ShareRecord, now: datetime, *, requester_id: str | None = None) -> ShareRecord:
        """Flip ``record`` to consumed; at most one concurrent caller succeeds.

        The flip is a compare-and-set in the record store, so the copy of
        ``record`` held by the caller is only used to explain a failure.
        """
        if state_of(record, now) is ShareState.EXPIRED:
            raise ExpiredError(f"share {record.id} expired at {record.expires_at.isoformat()}")

        if self.repository.mark_consumed(record.id, now=now, requester_id=requester_id):
            logger.info(f"Share {record.id} consumed by {requester_id or 'anonymous'}")
            return record.model_copy(update={"consumed": True})

        current = self.repository.get_share(record.id)
        if current is None:
            raise NotFoundError(f"share {record.id} does not exist")
        if current.consumed:
            raise AlreadyConsumedError(f"share {record.id} was already consumed")
        raise ExpiredError(f"share {record.id} expired at {current.expires_at.isoformat()}")
