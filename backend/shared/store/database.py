"""JSON document record store with an advisory lock and an audit log."""

from __future__ import annotations

import asyncio
import contextlib
import json
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from shared.logging import sanitize_value
from shared.store.errors import StoreCorruptedError, StoreUnavailableError
from shared.store.lock import AdvisoryFileLock
from shared.store.models import AuditEvent, IdentityVerification, PaymentRecord, utc_now
from shared.store.snapshot import DatabaseSnapshot

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable
    from datetime import datetime

logger = structlog.get_logger()

_FILE_PERMISSIONS = 0o600  # owner read/write only


class JsonRecordStore:
    """Single JSON document holding every persisted collection.

    Reads load the whole document without locking and may observe state
    that a concurrent transaction is about to replace. Writes go through
    transaction(), which serializes callers in this process with an
    asyncio.Lock and across processes with an AdvisoryFileLock, then
    persists the document atomically (temp file + rename) only when the
    block exits cleanly. A document that exists but cannot be parsed is
    never overwritten.
    """

    def __init__(
        self,
        file_path: str | Path,
        *,
        audit_log_path: str | Path | None = None,
        lock: AdvisoryFileLock | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._file_path = Path(file_path)
        self._audit_log_path = Path(audit_log_path) if audit_log_path else None
        self._file_lock = lock or AdvisoryFileLock(self._file_path.with_name(self._file_path.name + ".lock"))
        self._local_lock = asyncio.Lock()
        self._clock = clock

    @property
    def file_path(self) -> Path:
        return self._file_path

    def now(self) -> datetime:
        return self._clock()

    def read(self) -> DatabaseSnapshot:
        return self._load()

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[DatabaseSnapshot]:
        """Yield a mutable snapshot; all changes commit in one atomic write."""
        async with self._local_lock, self._file_lock.hold():
            snapshot = self._load()
            yield snapshot
            self._save(snapshot)

    # -- identity verifications --

    async def find_verification_by_session(self, session_token: str) -> IdentityVerification | None:
        return await self._find_verification(session_token=session_token)

    async def find_verification_by_nullifier(self, nullifier_hash: str) -> IdentityVerification | None:
        return await self._find_verification(nullifier_hash=nullifier_hash)

    async def find_verification_by_user(self, user_id: str) -> IdentityVerification | None:
        return await self._find_verification(user_id=user_id)

    async def insert_verification(self, record: IdentityVerification) -> None:
        """Persist a new verification. Raises DuplicateRecordError on nullifier/session reuse."""
        async with self.transaction() as db:
            now = self.now()
            db.purge_expired_verifications(now)
            db.add_verification(record, now)

    async def purge_expired_verifications(self) -> int:
        async with self.transaction() as db:
            removed = db.purge_expired_verifications(self.now())
        if removed:
            logger.info("purged expired verifications", count=removed)
        return removed

    async def _find_verification(self, **criteria: str) -> IdentityVerification | None:
        now = self.now()
        snapshot = self.read()
        if snapshot.has_expired_verifications(now):
            await self.purge_expired_verifications()
        return snapshot.find_verification(now, **criteria)

    # -- payments --

    def find_payment_by_reference(self, reference: str) -> PaymentRecord | None:
        return self.read().find_payment(reference)

    # -- audit log --

    def record_audit_event(self, event: AuditEvent) -> None:
        """Append one sanitized line to the audit log.

        Audit write failures are logged and never propagate to the request.
        """
        if self._audit_log_path is None:
            return
        payload = sanitize_value(event.model_dump(mode="json"))
        try:
            self._audit_log_path.parent.mkdir(parents=True, exist_ok=True)
            with self._audit_log_path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(payload, ensure_ascii=False) + "\n")
        except OSError:
            logger.exception("failed to write audit event", action=event.action)

    def _load(self) -> DatabaseSnapshot:
        """Load the document. A missing file is an empty store."""
        if not self._file_path.exists():
            return DatabaseSnapshot()

        try:
            raw = self._file_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StoreCorruptedError(f"Failed to read record store {self._file_path}") from exc

        if not raw.strip():
            return DatabaseSnapshot()

        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise StoreCorruptedError(f"Failed to parse record store {self._file_path}") from exc

        if not isinstance(data, dict):
            raise StoreCorruptedError(f"Expected JSON object at root in {self._file_path}")

        try:
            return DatabaseSnapshot.model_validate(data)
        except ValidationError as exc:
            raise StoreCorruptedError(f"Invalid record data in {self._file_path}") from exc

    def _save(self, snapshot: DatabaseSnapshot) -> None:
        """Atomically replace the document with the snapshot contents."""
        content = snapshot.model_dump_json(indent=2).encode("utf-8")
        tmp_path: str | None = None
        try:
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self._file_path.parent,
                prefix=".records_",
                suffix=".tmp",
            )
            with os.fdopen(fd, "wb") as f:
                f.write(content)
                f.flush()
                os.fchmod(f.fileno(), _FILE_PERMISSIONS)
            Path(tmp_path).replace(self._file_path)
        except OSError as exc:
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    Path(tmp_path).unlink()
            logger.exception("record store write failed", path=str(self._file_path))
            raise StoreUnavailableError(f"Failed to write record store {self._file_path}") from exc
