"""Resolve a session cookie to an active identity verification."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from shared.store.models import AuditEvent

if TYPE_CHECKING:
    from shared.store.database import JsonRecordStore
    from shared.store.models import IdentityVerification

logger = structlog.get_logger()

SESSION_COOKIE = "session_token"


class SessionError(Exception):
    """Base class for session failures."""


class SessionRequiredError(SessionError):
    """No session token was presented."""


class SessionInvalidError(SessionError):
    """The session token is unknown or its verification has expired."""


class SessionGuard:
    """Gate for operations that require a verified, non-expired session.

    Every rejection is written to the audit log with the reason
    (``missing_session_token`` or ``session_not_found``).
    """

    def __init__(self, store: JsonRecordStore) -> None:
        self._store = store

    async def require_active_session(
        self,
        session_token: str | None,
        *,
        action: str,
        entity: str | None = None,
        entity_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> IdentityVerification:
        details = details or {}

        if not session_token:
            self._store.record_audit_event(
                AuditEvent(
                    action=action,
                    status="error",
                    entity=entity,
                    entity_id=entity_id,
                    details={**details, "reason": "missing_session_token"},
                ),
            )
            raise SessionRequiredError("Session token is required")

        identity = await self._store.find_verification_by_session(session_token)
        if identity is None:
            self._store.record_audit_event(
                AuditEvent(
                    action=action,
                    status="error",
                    entity=entity,
                    entity_id=entity_id,
                    session_id=session_token,
                    details={**details, "reason": "session_not_found"},
                ),
            )
            logger.info("session rejected", action=action, session_token=session_token)
            raise SessionInvalidError("Session is invalid or expired")

        return identity
