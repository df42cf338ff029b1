import os
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

# Ensure required env vars are set for test runs without .env.tests
os.environ.setdefault("DEV_PORTAL_APP_ID", "app_test_arena")
os.environ.setdefault("DEV_PORTAL_API_KEY", "test-api-key")

from arena.payments.processor import ProcessorTransaction  # noqa: E402
from arena.payments.service import PaymentService  # noqa: E402
from arena.players.service import PlayerService  # noqa: E402
from arena.tests.helpers import TOURNAMENTS_YAML, FrozenClock  # noqa: E402
from arena.tournaments.service import TournamentService  # noqa: E402
from shared.identity import SessionGuard  # noqa: E402
from shared.store import AdvisoryFileLock, JsonRecordStore  # noqa: E402
from shared.tokens import TokenRegistry  # noqa: E402


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 1, 10, 12, 0, tzinfo=UTC))


@pytest.fixture
def tournaments_config(tmp_path):
    path = tmp_path / "tournaments.yaml"
    path.write_text(TOURNAMENTS_YAML)
    return path


@pytest.fixture
def store(tmp_path, clock):
    data_dir = tmp_path / "data"
    lock = AdvisoryFileLock(data_dir / "database.json.lock", max_retries=50, retry_delay_seconds=0.001)
    return JsonRecordStore(data_dir / "database.json", audit_log_path=data_dir / "audit.log", lock=lock, clock=clock)


@pytest.fixture
def tokens():
    return TokenRegistry()


@pytest.fixture
def guard(store):
    return SessionGuard(store)


@pytest.fixture
def tournament_service(store, tokens, guard, tournaments_config):
    return TournamentService(store, tokens, guard, config_path=tournaments_config)


@pytest.fixture
def processor():
    mock = AsyncMock()
    mock.get_transaction.return_value = ProcessorTransaction(transaction_status="mined", reference="r1")
    return mock


@pytest.fixture
def notifier():
    return AsyncMock()


@pytest.fixture
def payment_service(store, tokens, guard, processor, tournament_service, notifier):
    return PaymentService(store, tokens, guard, processor, tournament_service, notifier=notifier)


@pytest.fixture
def player_service(store, guard, tournament_service, tokens):
    return PlayerService(store, guard, tournament_service, tokens)
