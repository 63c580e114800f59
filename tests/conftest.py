from datetime import datetime, timedelta, timezone

import pytest

from geodrop.catalog import ProximityCatalog
from geodrop.codes import CodeGenerator
from geodrop.repository import ShareRepository
from geodrop.storage import LocalBlobStore


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class ScriptedCodes(CodeGenerator):
    """Hands out a fixed sequence of codes so collisions can be forced."""

    def __init__(self, codes: list[str]):
        super().__init__()
        self.codes = list(codes)

    def generate(self) -> str:
        return self.codes.pop(0)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def repository(tmp_path):
    repo = ShareRepository(str(tmp_path / "shares.db"))
    repo.init()
    return repo


@pytest.fixture
def blob_store(tmp_path):
    store = LocalBlobStore(str(tmp_path / "blobs"))
    store.init()
    return store


@pytest.fixture
def catalog(repository, blob_store, clock):
    return ProximityCatalog(repository, blob_store, clock=clock)
