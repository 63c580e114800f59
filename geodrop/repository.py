import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterable

from geodrop.errors import CodeCollisionError, StorageError
from geodrop.models import Coordinate, ShareRecord


def to_db_time(value: datetime) -> str:
    # Fixed-width UTC text so string comparison in SQL orders by time.
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ShareRepository:
    def __init__(self, db_path: str, timeout: float = 30.0):
        self.db_path = db_path
        self.timeout = timeout

    @contextmanager
    def _connect(self):
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level="IMMEDIATE")
        except sqlite3.Error as exc:
            raise StorageError(f"cannot open record store at {self.db_path}") from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.IntegrityError as exc:
            conn.rollback()
            if "live_code" in str(exc):
                raise CodeCollisionError("retrieval code is held by a live share") from exc
            raise StorageError(f"record store constraint failed: {exc}") from exc
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageError(f"record store failure: {exc}") from exc
        finally:
            conn.close()

    def init(self) -> None:
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS shares (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT,
                    blob_ref TEXT NOT NULL UNIQUE,
                    display_name TEXT NOT NULL,
                    byte_size INTEGER NOT NULL,
                    media_type TEXT NOT NULL,
                    retrieval_code TEXT NOT NULL,
                    live_code TEXT UNIQUE,
                    latitude REAL,
                    longitude REAL,
                    created_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    consumed INTEGER NOT NULL DEFAULT 0,
                    consumed_at TEXT,
                    tags TEXT NOT NULL DEFAULT '[]',
                    summary TEXT,
                    keywords TEXT NOT NULL DEFAULT '[]'
                );
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_shares_code ON shares (retrieval_code)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_shares_owner ON shares (owner_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_shares_active ON shares (consumed, expires_at)")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS downloads (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    share_id TEXT NOT NULL,
                    requester_id TEXT,
                    downloaded_at TEXT NOT NULL
                );
                """
            )

    def insert_share(self, record: ShareRecord, *, now: datetime) -> None:
        """Insert ``record`` and reserve its retrieval code.

        Retired shares (consumed or expired) still holding the code give it
        up inside the same transaction. A live holder makes the insert fail
        with CodeCollisionError.
        """
        location = record.origin_location
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE shares SET live_code = NULL
                WHERE live_code = ? AND (consumed = 1 OR expires_at <= ?)
                """,
                (record.retrieval_code, to_db_time(now)),
            )
            conn.execute(
                """
                INSERT INTO shares(
                    id, owner_id, blob_ref, display_name, byte_size, media_type,
                    retrieval_code, live_code, latitude, longitude,
                    created_at, expires_at, consumed, tags, summary, keywords
                )
                VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.owner_id,
                    record.blob_ref,
                    record.display_name,
                    record.byte_size,
                    record.media_type,
                    record.retrieval_code,
                    record.retrieval_code,
                    location.latitude if location else None,
                    location.longitude if location else None,
                    to_db_time(record.created_at),
                    to_db_time(record.expires_at),
                    int(record.consumed),
                    json.dumps(record.tags),
                    record.summary,
                    json.dumps(record.keywords),
                ),
            )

    def get_share(self, share_id: str) -> ShareRecord | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM shares WHERE id = ?", (share_id,)).fetchone()
        return _row_to_record(row) if row else None

    def find_by_code(self, code: str) -> ShareRecord | None:
        """Return the share currently or most recently holding ``code``."""
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM shares
                WHERE retrieval_code = ?
                ORDER BY live_code IS NULL, created_at DESC
                LIMIT 1
                """,
                (code,),
            ).fetchone()
        return _row_to_record(row) if row else None

    def mark_consumed(self, share_id: str, *, now: datetime, requester_id: str | None = None) -> bool:
        """Compare-and-set ``consumed`` from 0 to 1; True only for the winning caller."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE shares SET consumed = 1, consumed_at = ?
                WHERE id = ? AND consumed = 0 AND expires_at > ?
                """,
                (to_db_time(now), share_id, to_db_time(now)),
            )
            if cursor.rowcount != 1:
                return False
            conn.execute(
                "INSERT INTO downloads(share_id, requester_id, downloaded_at) VALUES(?, ?, ?)",
                (share_id, requester_id, to_db_time(now)),
            )
        return True

    def update_content_metadata(
        self,
        share_id: str,
        *,
        tags: list[str] | None = None,
        summary: str | None = None,
        keywords: list[str] | None = None,
    ) -> bool:
        assignments: list[str] = []
        params: list = []
        if tags is not None:
            assignments.append("tags = ?")
            params.append(json.dumps(tags))
        if summary is not None:
            assignments.append("summary = ?")
            params.append(summary)
        if keywords is not None:
            assignments.append("keywords = ?")
            params.append(json.dumps(keywords))
        if not assignments:
            return False

        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE shares SET {', '.join(assignments)} WHERE id = ?",
                (*params, share_id),
            )
            return cursor.rowcount == 1

    def list_active(
        self,
        *,
        now: datetime,
        created_since: datetime | None = None,
        media_type_prefixes: Iterable[str] = (),
        min_size: int | None = None,
        max_size: int | None = None,
    ) -> list[ShareRecord]:
        clauses = ["consumed = 0", "expires_at > ?"]
        params: list = [to_db_time(now)]
        if created_since is not None:
            clauses.append("created_at >= ?")
            params.append(to_db_time(created_since))
        prefixes = list(media_type_prefixes)
        if prefixes:
            clauses.append("(" + " OR ".join("media_type LIKE ?" for _ in prefixes) + ")")
            params.extend(f"{prefix}%" for prefix in prefixes)
        if min_size is not None:
            clauses.append("byte_size > ?")
            params.append(min_size)
        if max_size is not None:
            clauses.append("byte_size < ?")
            params.append(max_size)

        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM shares WHERE {' AND '.join(clauses)} ORDER BY created_at DESC",
                params,
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def list_for_owner(self, owner_id: str) -> list[ShareRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM shares WHERE owner_id = ? ORDER BY created_at DESC",
                (owner_id,),
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def count_downloads(self, share_id: str) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM downloads WHERE share_id = ?", (share_id,)
            ).fetchone()
        return row[0]


def _row_to_record(row: sqlite3.Row) -> ShareRecord:
    location = None
    if row["latitude"] is not None and row["longitude"] is not None:
        location = Coordinate(latitude=row["latitude"], longitude=row["longitude"])
    return ShareRecord(
        id=row["id"],
        owner_id=row["owner_id"],
        blob_ref=row["blob_ref"],
        display_name=row["display_name"],
        byte_size=row["byte_size"],
        media_type=row["media_type"],
        retrieval_code=row["retrieval_code"],
        origin_location=location,
        created_at=datetime.fromisoformat(row["created_at"]),
        expires_at=datetime.fromisoformat(row["expires_at"]),
        consumed=bool(row["consumed"]),
        tags=json.loads(row["tags"]),
        summary=row["summary"],
        keywords=json.loads(row["keywords"]),
    )
