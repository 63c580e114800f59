import re
from datetime import datetime
from pathlib import PurePosixPath
from typing import BinaryIO, Callable
from uuid import uuid4

from loguru import logger

from geodrop import geo, lifecycle, query, ranking
from geodrop.codes import CodeGenerator
from geodrop.config import Settings
from geodrop.errors import (
    AlreadyConsumedError,
    CodeCollisionError,
    CodeSpaceExhaustedError,
    ExpiredError,
    NotFoundError,
    OutOfRangeError,
    StorageError,
    ValidationError,
)
from geodrop.models import (
    Coordinate,
    InterpretedQuery,
    RankedShare,
    ShareDescriptor,
    ShareMetadata,
    ShareRecord,
    ShareState,
)
from geodrop.repository import ShareRepository, utc_now
from geodrop.storage import LocalBlobStore
from geodrop.tagging import derive_content_metadata

NOT_FOUND_MESSAGE = "share not found"
OWNER_SEGMENT_PATTERN = re.compile(r"[A-Za-z0-9._@-]+")


class ProximityCatalog:
    def __init__(
        self,
        repository: ShareRepository,
        blob_store: LocalBlobStore,
        *,
        code_generator: CodeGenerator | None = None,
        ttl_seconds: int = 86400,
        radius_limit_meters: float = 100_000.0,
        code_max_attempts: int = 10,
        search_limit: int = 20,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.blob_store = blob_store
        self.code_generator = code_generator or CodeGenerator()
        self.lifecycle = lifecycle.FileLifecycle(repository)
        self.ttl_seconds = ttl_seconds
        self.radius_limit_meters = radius_limit_meters
        self.code_max_attempts = code_max_attempts
        self.search_limit = search_limit
        self.clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "ProximityCatalog":
        options = dict(
            code_generator=CodeGenerator(settings.code_length),
            ttl_seconds=settings.share_ttl_seconds,
            radius_limit_meters=settings.radius_limit_meters,
            code_max_attempts=settings.code_max_attempts,
            search_limit=settings.search_limit,
        )
        options.update(overrides)
        return cls(
            ShareRepository(settings.database_path),
            LocalBlobStore(settings.storage_dir),
            **options,
        )

    def upload(
        self,
        source: BinaryIO,
        metadata: ShareMetadata,
        origin_location: Coordinate | None = None,
        *,
        max_size_bytes: int | None = None,
    ) -> ShareRecord:
        """Write the blob then register it; ValueError if it is too large."""
        _check_metadata(metadata)
        suffix = PurePosixPath(metadata.display_name).suffix
        blob_ref, size = self.blob_store.put(
            source,
            owner_id=metadata.owner_id,
            suffix=suffix,
            max_size_bytes=max_size_bytes,
        )
        try:
            return self.register_share(
                blob_ref,
                metadata.model_copy(update={"byte_size": size}),
                origin_location,
            )
        except ValidationError:
            self._compensate(blob_ref)
            raise

    def register_share(
        self,
        blob_ref: str,
        metadata: ShareMetadata,
        origin_location: Coordinate | None = None,
    ) -> ShareRecord:
        if not blob_ref:
            raise ValidationError("blob_ref is required")
        _check_metadata(metadata)

        for attempt in range(1, self.code_max_attempts + 1):
            now = self.clock()
            record = ShareRecord(
                id=str(uuid4()),
                owner_id=metadata.owner_id,
                blob_ref=blob_ref,
                display_name=metadata.display_name,
                byte_size=metadata.byte_size,
                media_type=metadata.media_type,
                retrieval_code=self.code_generator.generate(),
                origin_location=origin_location,
                created_at=now,
                expires_at=lifecycle.compute_expiry(now, self.ttl_seconds),
            )
            try:
                self.repository.insert_share(record, now=now)
            except CodeCollisionError:
                logger.warning(
                    f"Retrieval code collision on attempt {attempt}/{self.code_max_attempts}, regenerating"
                )
                continue
            except StorageError:
                self._compensate(blob_ref)
                raise
            logger.info(f"Registered share {record.id} with code {record.retrieval_code}")
            return record

        self._compensate(blob_ref)
        raise CodeSpaceExhaustedError(
            f"no free retrieval code after {self.code_max_attempts} attempts"
        )

    def _compensate(self, blob_ref: str) -> None:
        try:
            self.blob_store.delete(blob_ref)
        except StorageError:
            logger.exception(f"Compensating delete failed for blob {blob_ref}; left for the orphan sweep")
            return
        logger.warning(f"Compensating delete removed blob {blob_ref}")

    def annotate(
        self,
        share_id: str,
        *,
        tags: list[str] | None = None,
        summary: str | None = None,
        keywords: list[str] | None = None,
    ) -> bool:
        return self.repository.update_content_metadata(
            share_id, tags=tags, summary=summary, keywords=keywords
        )

    def tag_share(self, share_id: str) -> bool:
        record = self.repository.get_share(share_id)
        if record is None:
            return False
        data = self.blob_store.get(record.blob_ref)
        derived = derive_content_metadata(record.display_name, record.media_type, data)
        updated = self.annotate(share_id, **derived)
        logger.debug(f"Tagged share {share_id} with {derived['tags']}")
        return updated

    def distance_to(self, record: ShareRecord, requester_location: Coordinate | None) -> float | None:
        if requester_location is None or record.origin_location is None:
            return None
        return geo.distance(requester_location, record.origin_location)

    def find_by_code(self, code: str, requester_location: Coordinate | None = None) -> ShareRecord:
        normalized = self.code_generator.normalize(code)
        record = self.repository.find_by_code(normalized)
        if record is None or not lifecycle.is_retrievable(record, self.clock()):
            raise NotFoundError(NOT_FOUND_MESSAGE)

        distance = self.distance_to(record, requester_location)
        if distance is not None and distance > self.radius_limit_meters:
            logger.info(f"Share {record.id} requested from {distance:.0f} m away, outside radius")
            raise OutOfRangeError(distance, self.radius_limit_meters)
        return record

    def search(self, free_text: str, requester_location: Coordinate | None = None) -> list[RankedShare]:
        return self.search_interpreted(query.interpret(free_text), requester_location)

    def search_interpreted(
        self, interpreted: InterpretedQuery, requester_location: Coordinate | None = None
    ) -> list[RankedShare]:
        now = self.clock()

        min_size = max_size = None
        if interpreted.size_filter is not None:
            if interpreted.size_filter.operator == "gt":
                min_size = interpreted.size_filter.byte_value
            else:
                max_size = interpreted.size_filter.byte_value

        # User mentions are informational; no identity service backs them.
        candidates = self.repository.list_active(
            now=now,
            created_since=query.time_filter_start(interpreted.time_filter, now),
            media_type_prefixes=query.media_type_prefixes(interpreted.file_type_filters),
            min_size=min_size,
            max_size=max_size,
        )
        in_range = self._within_radius(candidates, requester_location, now)
        results = ranking.rank(in_range, interpreted, now, limit=self.search_limit)
        logger.debug(
            f"Search intent={interpreted.intent} matched {len(candidates)} candidates, returning {len(results)}"
        )
        return results

    def interpret(self, free_text: str) -> InterpretedQuery:
        return query.interpret(free_text)

    def nearby(self, requester_location: Coordinate) -> list[RankedShare]:
        now = self.clock()
        located = [
            (record, distance)
            for record, distance in self._within_radius(
                self.repository.list_active(now=now), requester_location, now
            )
            if distance is not None
        ]
        located.sort(key=lambda pair: pair[1])
        return [RankedShare(share=record, distance_meters=distance) for record, distance in located]

    def list_owner_shares(self, owner_id: str) -> list[tuple[ShareRecord, ShareState]]:
        now = self.clock()
        return [(record, lifecycle.state_of(record, now)) for record in self.repository.list_for_owner(owner_id)]

    def _within_radius(
        self,
        candidates: list[ShareRecord],
        requester_location: Coordinate | None,
        now: datetime,
    ) -> list[tuple[ShareRecord, float | None]]:
        kept = []
        for record in candidates:
            if not lifecycle.is_retrievable(record, now):
                continue
            distance = self.distance_to(record, requester_location)
            if distance is not None and distance > self.radius_limit_meters:
                continue
            kept.append((record, distance))
        return kept

    def consume(self, share_id: str, *, requester_id: str | None = None) -> ShareDescriptor:
        """Spend ``share_id`` and hand back what is needed to fetch its bytes.

        Raises AlreadyConsumedError or ExpiredError when the share cannot be
        spent; exactly one concurrent caller gets the descriptor.
        """
        record = self.repository.get_share(share_id)
        if record is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        spent = self.lifecycle.consume(record, self.clock(), requester_id=requester_id)
        return ShareDescriptor(
            share_id=spent.id,
            blob_ref=spent.blob_ref,
            display_name=spent.display_name,
            media_type=spent.media_type,
        )

    def retrieve(
        self,
        code: str,
        requester_location: Coordinate | None = None,
        *,
        requester_id: str | None = None,
    ) -> tuple[ShareDescriptor, bytes]:
        """Find by code, consume, then read the blob.

        Consumption failures collapse into NotFoundError. A blob read that
        fails after consumption is a StorageError and the share stays spent.
        """
        record = self.find_by_code(code, requester_location)
        try:
            descriptor = self.consume(record.id, requester_id=requester_id)
        except (AlreadyConsumedError, ExpiredError) as exc:
            raise NotFoundError(NOT_FOUND_MESSAGE) from exc

        try:
            data = self.blob_store.get(descriptor.blob_ref)
        except NotFoundError as exc:
            logger.error(f"Blob {descriptor.blob_ref} for consumed share {descriptor.share_id} is missing")
            raise StorageError("share content is unavailable") from exc
        return descriptor, data


def _check_metadata(metadata: ShareMetadata) -> None:
    if not metadata.display_name.strip():
        raise ValidationError("display_name is required")
    # owner_id doubles as a blob directory name.
    owner_id = metadata.owner_id
    if owner_id is not None and (
        owner_id.startswith(".") or not OWNER_SEGMENT_PATTERN.fullmatch(owner_id)
    ):
        raise ValidationError("owner_id may only contain letters, digits, '.', '_', '@' and '-'")
