from pathlib import Path
from typing import BinaryIO
from uuid import uuid4

from geodrop.errors import NotFoundError, StorageError

ANONYMOUS_DIR = "anonymous"
CHUNK_SIZE = 1024 * 1024


class LocalBlobStore:
    """Filesystem blob store. Blob refs are paths relative to ``root_dir``."""

    def __init__(self, root_dir: str):
        self.root = Path(root_dir)

    def init(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, blob_ref: str) -> Path:
        target = (self.root / blob_ref).resolve()
        if not target.is_relative_to(self.root.resolve()):
            raise StorageError(f"blob ref escapes storage root: {blob_ref}")
        return target

    def put(
        self,
        source: BinaryIO,
        *,
        owner_id: str | None = None,
        suffix: str = "",
        max_size_bytes: int | None = None,
    ) -> tuple[str, int]:
        """Stream ``source`` into a new blob and return ``(blob_ref, size)``.

        Raises ValueError if the stream exceeds ``max_size_bytes``; the
        partial blob is removed first.
        """
        owner_dir = owner_id or ANONYMOUS_DIR
        blob_ref = f"{owner_dir}/{uuid4()}{suffix}"
        target = self._resolve(blob_ref)

        total = 0
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("wb") as f:
                while True:
                    chunk = source.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    total += len(chunk)
                    if max_size_bytes is not None and total > max_size_bytes:
                        f.close()
                        target.unlink(missing_ok=True)
                        raise ValueError("File exceeds max upload size")
                    f.write(chunk)
        except OSError as exc:
            target.unlink(missing_ok=True)
            raise StorageError(f"failed to write blob {blob_ref}") from exc
        return blob_ref, total

    def get(self, blob_ref: str) -> bytes:
        target = self._resolve(blob_ref)
        try:
            return target.read_bytes()
        except FileNotFoundError as exc:
            raise NotFoundError(f"blob {blob_ref} is missing") from exc
        except OSError as exc:
            raise StorageError(f"failed to read blob {blob_ref}") from exc

    def delete(self, blob_ref: str) -> None:
        target = self._resolve(blob_ref)
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"failed to delete blob {blob_ref}") from exc

    def exists(self, blob_ref: str) -> bool:
        return self._resolve(blob_ref).exists()
