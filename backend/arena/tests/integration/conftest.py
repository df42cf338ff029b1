from unittest.mock import AsyncMock

import pytest
from starlette.testclient import TestClient

from arena.payments.processor import PaymentProcessorSettings, ProcessorTransaction
from arena.server.app import create_app
from arena.server.settings import ArenaServerSettings
from arena.tests.helpers import JOB_TOKEN


@pytest.fixture
def verifier():
    mock = AsyncMock()
    mock.verify.return_value = True
    return mock


@pytest.fixture
def processor():
    mock = AsyncMock()
    mock.get_transaction.return_value = ProcessorTransaction(transaction_status="mined", reference="r1")
    return mock


@pytest.fixture
def settings(tmp_path, tournaments_config):
    return ArenaServerSettings(
        database_path=tmp_path / "data" / "database.json",
        audit_log_path=tmp_path / "data" / "audit.log",
        tournaments_config_path=tournaments_config,
        cookie_secure=False,
        job_token=JOB_TOKEN,
        lock_retry_delay_seconds=0.001,
    )


@pytest.fixture
def app(settings, verifier, processor, notifier, clock):
    return create_app(
        settings=settings,
        processor_settings=PaymentProcessorSettings(app_id="app_test_arena", api_key="test-api-key"),
        verifier=verifier,
        processor=processor,
        notifier=notifier,
        clock=clock,
    )


@pytest.fixture
def client(app):
    return TestClient(app)
