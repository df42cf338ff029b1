from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from shared.identity import IdentityService, ProofRequest, SessionGuard
from shared.store import JsonRecordStore
from shared.tests.store.helpers import FrozenClock


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 1, 10, 12, 0, tzinfo=UTC))


@pytest.fixture
def store(tmp_path, clock):
    return JsonRecordStore(tmp_path / "database.json", audit_log_path=tmp_path / "audit.log", clock=clock)


@pytest.fixture
def verifier():
    mock = AsyncMock()
    mock.verify.return_value = True
    return mock


@pytest.fixture
def identity_service(store, verifier):
    return IdentityService(store, verifier)


@pytest.fixture
def guard(store):
    return SessionGuard(store)


@pytest.fixture
def proof():
    return ProofRequest(proof="0xproof", nullifier_hash="nullifier-1", merkle_root="0xroot")
