import asyncio
import os
import threading
from unittest.mock import AsyncMock

import pytest

from codedrop.common.exceptions import DownloadError, MetadataStoreError, StorageWriteError, UploadError
from codedrop.sharing.service import ArtifactService

from conftest import FixedCodes


def read_all(result):
    return b"".join(result.artifact.iter_chunks())


def make_service(blob_store, metadata_store, clock, codes, **kwargs):
    return ArtifactService(
        blob_store=blob_store,
        metadata_store=metadata_store,
        code_generator=codes,
        clock=clock,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_upload_then_download_round_trip(service):
    payload = bytes(range(256)) * 1000
    uploaded = await service.upload(payload, "photo.png")
    assert uploaded.ok
    assert len(uploaded.code) == 8

    downloaded = await service.download(uploaded.code)
    assert downloaded.ok
    assert read_all(downloaded) == payload
    assert downloaded.artifact.media_type == "image/png"
    assert downloaded.artifact.filename == f"{uploaded.code}.png"


@pytest.mark.asyncio
async def test_download_never_issued_code(service):
    result = await service.download("zzzzzzzz")
    assert result.error is DownloadError.INVALID_OR_EXPIRED_CODE


@pytest.mark.asyncio
async def test_download_after_ttl_is_not_found_even_with_blob(service, blob_store, clock):
    uploaded = await service.upload(b"helloworld", "a.jpg")
    clock.advance(hours=25)

    result = await service.download(uploaded.code)

    assert result.error is DownloadError.INVALID_OR_EXPIRED_CODE
    assert len(list(blob_store.iter_blobs())) == 1


@pytest.mark.asyncio
async def test_missing_blob_self_heals(service, blob_store, metadata_store):
    uploaded = await service.upload(b"helloworld", "a.jpg")
    record = await metadata_store.find_active(uploaded.code)
    os.remove(blob_store.base_dir / record.storage_name)

    first = await service.download(uploaded.code)
    assert first.error is DownloadError.ARTIFACT_MISSING
    assert await metadata_store.find_active(uploaded.code) is None

    second = await service.download(uploaded.code)
    assert second.error is DownloadError.INVALID_OR_EXPIRED_CODE


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [None, b""])
async def test_empty_upload_rejected_without_side_effects(service, blob_store, metadata_store, payload):
    result = await service.upload(payload, "empty.png")
    assert result.error is UploadError.NO_FILE_PROVIDED
    assert list(blob_store.iter_blobs()) == []
    assert metadata_store.size == 0


@pytest.mark.asyncio
async def test_blob_write_failure_creates_no_record(service, blob_store, metadata_store, monkeypatch):
    def fail(data, extension=None):
        raise StorageWriteError("disk full")

    monkeypatch.setattr(blob_store, "put", fail)

    result = await service.upload(b"data", "a.png")

    assert result.error is UploadError.STORAGE_WRITE_FAILED
    assert metadata_store.size == 0


@pytest.mark.asyncio
async def test_collision_retries_with_fresh_code(blob_store, metadata_store, clock):
    codes = FixedCodes("aaaaaaaa", "aaaaaaaa", "bbbbbbbb")
    service = make_service(blob_store, metadata_store, clock, codes)

    first = await service.upload(b"one", "1.png")
    second = await service.upload(b"two", "2.png")

    assert first.code == "aaaaaaaa"
    assert second.code == "bbbbbbbb"
    assert codes.calls == 3


@pytest.mark.asyncio
async def test_collision_exhaustion_fails_and_removes_blob(blob_store, metadata_store, clock):
    service = make_service(blob_store, metadata_store, clock, FixedCodes("aaaaaaaa"), max_code_attempts=3)

    first = await service.upload(b"one", "1.png")
    second = await service.upload(b"two", "2.png")

    assert first.ok
    assert second.error is UploadError.DUPLICATE_CODE
    assert len(list(blob_store.iter_blobs())) == 1
    downloaded = await service.download("aaaaaaaa")
    assert read_all(downloaded) == b"one"


@pytest.mark.asyncio
async def test_concurrent_uploads_with_colliding_codes(blob_store, metadata_store, clock):
    service = make_service(blob_store, metadata_store, clock, FixedCodes("samecode"), max_code_attempts=1)

    results = await asyncio.gather(*[service.upload(f"p{i}".encode(), "x.png") for i in range(5)])

    assert [r.code for r in results if r.ok] == ["samecode"]
    assert all(r.error is UploadError.DUPLICATE_CODE for r in results if not r.ok)
    assert len(list(blob_store.iter_blobs())) == 1


@pytest.mark.asyncio
async def test_metadata_failure_removes_blob(blob_store, metadata_store, clock):
    metadata_store.insert = AsyncMock(side_effect=MetadataStoreError("down"))
    service = make_service(blob_store, metadata_store, clock, FixedCodes("aaaaaaaa"))

    result = await service.upload(b"data", "a.png")

    assert result.error is UploadError.METADATA_FAILED
    assert list(blob_store.iter_blobs()) == []


@pytest.mark.asyncio
async def test_lookup_failure_reports_storage_error(service, metadata_store):
    metadata_store.find_active = AsyncMock(side_effect=MetadataStoreError("down"))
    result = await service.download("abcd1234")
    assert result.error is DownloadError.STORAGE_FAILED


@pytest.mark.asyncio
async def test_unknown_extension_served_as_octet_stream(service):
    uploaded = await service.upload(b"raw", "blob")
    downloaded = await service.download(uploaded.code)
    assert downloaded.artifact.media_type == "application/octet-stream"
    assert downloaded.artifact.filename == uploaded.code
    downloaded.artifact.close()


@pytest.mark.asyncio
async def test_purge_expired_removes_records_and_blobs(service, blob_store, metadata_store, clock):
    old = await service.upload(b"old", "old.png")
    clock.advance(hours=20)
    fresh = await service.upload(b"fresh", "fresh.png")
    clock.advance(hours=5)

    assert await service.purge_expired() == 1

    assert metadata_store.size == 1
    assert len(list(blob_store.iter_blobs())) == 1
    assert (await service.download(old.code)).error is DownloadError.INVALID_OR_EXPIRED_CODE
    assert read_all(await service.download(fresh.code)) == b"fresh"


@pytest.mark.asyncio
async def test_collect_orphan_blobs_respects_grace(service, blob_store, clock):
    kept = await service.upload(b"kept", "kept.png")
    orphan_old = blob_store.put(b"old orphan", ".png")
    orphan_new = blob_store.put(b"new orphan", ".png")
    stale = (clock() - service.orphan_grace).timestamp() - 60
    os.utime(blob_store.base_dir / orphan_old, (stale, stale))

    assert await service.collect_orphan_blobs() == 1

    assert not blob_store.exists(orphan_old)
    assert blob_store.exists(orphan_new)
    assert read_all(await service.download(kept.code)) == b"kept"


@pytest.mark.asyncio
async def test_self_heal_spares_reissued_code(blob_store, metadata_store, clock, monkeypatch):
    service = make_service(blob_store, metadata_store, clock, FixedCodes("aaaaaaaa"))
    await service.upload(b"old", "old.png")
    stale = await metadata_store.find_active("aaaaaaaa")
    os.remove(blob_store.base_dir / stale.storage_name)
    clock.advance(hours=25)
    assert (await service.upload(b"new", "new.png")).code == "aaaaaaaa"

    # Lookup raced with the reissue and still returned the old record.
    monkeypatch.setattr(metadata_store, "find_active", AsyncMock(return_value=stale))
    result = await service.download("aaaaaaaa")
    monkeypatch.undo()

    assert result.error is DownloadError.ARTIFACT_MISSING
    current = await metadata_store.find_active("aaaaaaaa")
    assert current is not None
    assert current.storage_name != stale.storage_name
    assert read_all(await service.download("aaaaaaaa")) == b"new"


@pytest.mark.asyncio
async def test_blob_io_runs_off_event_loop(service, blob_store, clock, monkeypatch):
    loop_thread = threading.get_ident()
    seen = {}

    def tracked(name, fn):
        def wrapper(*args, **kwargs):
            seen[name] = threading.get_ident()
            return fn(*args, **kwargs)
        return wrapper

    for name in ("exists", "open_read", "delete", "iter_blobs"):
        monkeypatch.setattr(blob_store, name, tracked(name, getattr(blob_store, name)))

    uploaded = await service.upload(b"data", "a.png")
    downloaded = await service.download(uploaded.code)
    downloaded.artifact.close()
    clock.advance(hours=25)
    await service.purge_expired()
    await service.collect_orphan_blobs()

    assert set(seen) == {"exists", "open_read", "delete", "iter_blobs"}
    assert loop_thread not in seen.values()
