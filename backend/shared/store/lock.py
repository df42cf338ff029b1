"""Advisory lock file guarding read-modify-write cycles on the record store."""

import asyncio
import contextlib
import os
import time
from pathlib import Path

import structlog

from shared.store.errors import LockAcquisitionError

logger = structlog.get_logger()

DEFAULT_STALE_AFTER_SECONDS = 10.0
DEFAULT_MAX_RETRIES = 20
DEFAULT_RETRY_DELAY_SECONDS = 0.05

_LOCK_FILE_PERMISSIONS = 0o600


class AdvisoryFileLock:
    """Exclusive lock represented by the existence of a lock file.

    The file is created with O_EXCL so only one holder can exist across
    processes sharing the directory. A lock file whose mtime is older than
    ``stale_after_seconds`` is treated as abandoned by a crashed holder and
    removed and re-created within the same attempt. Waiting uses linear backoff
    (``retry_delay_seconds * attempt``) and gives up after ``max_retries``
    attempts with LockAcquisitionError.
    """

    def __init__(
        self,
        lock_path: str | Path,
        *,
        stale_after_seconds: float = DEFAULT_STALE_AFTER_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self._lock_path = Path(lock_path)
        self._stale_after = stale_after_seconds
        self._max_retries = max_retries
        self._retry_delay = retry_delay_seconds

    @property
    def path(self) -> Path:
        return self._lock_path

    async def acquire(self) -> None:
        for attempt in range(1, self._max_retries + 1):
            if self._try_create():
                return
            if self._is_stale():
                self._force_release()
                # Reclaiming a stale lock does not spend the attempt.
                if self._try_create():
                    return
            if attempt < self._max_retries:
                await asyncio.sleep(self._retry_delay * attempt)

        logger.error("store lock acquisition failed", path=str(self._lock_path), attempts=self._max_retries)
        raise LockAcquisitionError(f"Could not acquire {self._lock_path} after {self._max_retries} attempts")

    def release(self) -> None:
        with contextlib.suppress(FileNotFoundError):
            self._lock_path.unlink()

    @contextlib.asynccontextmanager
    async def hold(self):  # noqa: ANN201
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    def _try_create(self) -> bool:
        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self._lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, _LOCK_FILE_PERMISSIONS)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w") as f:
            f.write(f"{os.getpid()} {time.time()}\n")
        return True

    def _is_stale(self) -> bool:
        try:
            mtime = self._lock_path.stat().st_mtime
        except FileNotFoundError:
            # Released between our create attempt and the stat; retry right away.
            return True
        return time.time() - mtime > self._stale_after

    def _force_release(self) -> None:
        if self._lock_path.exists():
            logger.warning("removing stale store lock", path=str(self._lock_path), stale_after=self._stale_after)
        self.release()
