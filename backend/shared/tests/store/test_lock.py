import asyncio
import os
import time

import pytest

from shared.store import AdvisoryFileLock, LockAcquisitionError


@pytest.fixture
def lock_path(tmp_path):
    return tmp_path / "database.json.lock"


async def test_acquire_creates_and_release_removes(lock_path):
    lock = AdvisoryFileLock(lock_path)

    await lock.acquire()
    assert lock_path.exists()
    assert (lock_path.stat().st_mode & 0o777) == 0o600

    lock.release()
    assert not lock_path.exists()


async def test_hold_releases_on_error(lock_path):
    lock = AdvisoryFileLock(lock_path)

    with pytest.raises(RuntimeError):
        async with lock.hold():
            raise RuntimeError("boom")

    assert not lock_path.exists()


async def test_contended_lock_gives_up_after_max_retries(lock_path):
    lock_path.write_text("other holder")
    lock = AdvisoryFileLock(lock_path, max_retries=3, retry_delay_seconds=0.001, stale_after_seconds=60)

    with pytest.raises(LockAcquisitionError):
        await lock.acquire()

    assert lock_path.read_text() == "other holder"


async def test_stale_lock_is_removed(lock_path):
    lock_path.write_text("crashed holder")
    old = time.time() - 120
    os.utime(lock_path, (old, old))
    lock = AdvisoryFileLock(lock_path, max_retries=2, stale_after_seconds=10)

    await lock.acquire()

    assert "crashed holder" not in lock_path.read_text()
    lock.release()


async def test_stale_lock_is_reclaimed_with_single_attempt(lock_path):
    lock_path.write_text("crashed holder")
    old = time.time() - 120
    os.utime(lock_path, (old, old))
    lock = AdvisoryFileLock(lock_path, max_retries=1, stale_after_seconds=10)

    await lock.acquire()

    assert lock_path.exists()
    assert "crashed holder" not in lock_path.read_text()
    lock.release()


async def test_waiter_acquires_after_release(lock_path):
    holder = AdvisoryFileLock(lock_path)
    waiter = AdvisoryFileLock(lock_path, max_retries=50, retry_delay_seconds=0.001)
    await holder.acquire()

    async def release_soon():
        await asyncio.sleep(0.01)
        holder.release()

    await asyncio.gather(waiter.acquire(), release_soon())

    assert lock_path.exists()
    waiter.release()


def test_rejects_zero_retries(lock_path):
    with pytest.raises(ValueError, match="max_retries"):
        AdvisoryFileLock(lock_path, max_retries=0)
