from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from codedrop.artifacts.local_store import LocalBlobStore
from codedrop.codes.generator import CodeGenerator
from codedrop.config import Settings
from codedrop.main import create_app
from codedrop.metadata.memory_store import InMemoryMetadataStore
from codedrop.sharing.service import ArtifactService

TTL = timedelta(hours=24)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FixedCodes:
    """Code source that replays a fixed sequence, repeating the last code."""

    def __init__(self, *codes: str):
        self.codes = list(codes)
        self.calls = 0

    def generate(self) -> str:
        code = self.codes[min(self.calls, len(self.codes) - 1)]
        self.calls += 1
        return code


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(str(tmp_path / "uploads"))


@pytest.fixture
def metadata_store(clock):
    return InMemoryMetadataStore(ttl=TTL, clock=clock)


@pytest.fixture
def service(blob_store, metadata_store, clock):
    return ArtifactService(
        blob_store=blob_store,
        metadata_store=metadata_store,
        code_generator=CodeGenerator(),
        clock=clock,
    )


@pytest.fixture
def client(service):
    config = Settings(METADATA_STORE_TYPE="memory", SWEEP_ENABLED=False)
    with TestClient(create_app(config=config, service=service)) as c:
        yield c
