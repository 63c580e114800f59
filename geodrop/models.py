from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ShareState(str, Enum):
    ACTIVE = "active"
    CONSUMED = "consumed"
    EXPIRED = "expired"


class Coordinate(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class ShareMetadata(BaseModel):
    display_name: str = Field(min_length=1, max_length=255)
    byte_size: int = Field(ge=0)
    media_type: str = "application/octet-stream"
    owner_id: str | None = Field(default=None, max_length=128)


class ShareRecord(BaseModel):
    id: str
    owner_id: str | None
    blob_ref: str
    display_name: str
    byte_size: int
    media_type: str
    retrieval_code: str
    origin_location: Coordinate | None
    created_at: datetime
    expires_at: datetime
    consumed: bool = False
    tags: list[str] = Field(default_factory=list)
    summary: str | None = None
    keywords: list[str] = Field(default_factory=list)


class SizeFilter(BaseModel):
    operator: Literal["gt", "lt"]
    value: int
    unit: Literal["kb", "mb", "gb"]

    @property
    def byte_value(self) -> int:
        return self.value * {"kb": 1024, "mb": 1024**2, "gb": 1024**3}[self.unit]


class InterpretedQuery(BaseModel):
    intent: str = "general_search"
    keywords: list[str] = Field(default_factory=list)
    entities: list[str] = Field(default_factory=list)
    time_filter: str | None = None
    file_type_filters: list[str] = Field(default_factory=list)
    user_mentions: list[str] = Field(default_factory=list)
    size_filter: SizeFilter | None = None


class RankedShare(BaseModel):
    share: ShareRecord
    distance_meters: float | None = None
    score: float = 0


class ShareDescriptor(BaseModel):
    """What a caller needs to fetch the bytes of a consumed share."""

    share_id: str
    blob_ref: str
    display_name: str
    media_type: str


class ShareOut(BaseModel):
    id: str
    owner_id: str | None
    display_name: str
    byte_size: int
    media_type: str
    retrieval_code: str | None
    origin_location: Coordinate | None
    created_at: datetime
    expires_at: datetime
    consumed: bool
    state: ShareState | None = None
    tags: list[str]
    summary: str | None
    distance_meters: float | None = None
    score: float | None = None

    @classmethod
    def from_record(
        cls,
        record: ShareRecord,
        *,
        distance_meters: float | None = None,
        score: float | None = None,
        state: ShareState | None = None,
    ) -> "ShareOut":
        fields = record.model_dump(exclude={"blob_ref", "keywords"})
        # A retired code may already belong to someone else's live share.
        if state is not None and state is not ShareState.ACTIVE:
            fields["retrieval_code"] = None
        return cls(**fields, distance_meters=distance_meters, score=score, state=state)


class ShareListResponse(BaseModel):
    shares: list[ShareOut]


class SearchResponse(BaseModel):
    query: InterpretedQuery
    results: list[ShareOut]
