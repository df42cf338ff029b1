from datetime import UTC, datetime

import pytest

from shared.store import AdvisoryFileLock, JsonRecordStore
from shared.tests.store.helpers import FrozenClock


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 1, 10, 12, 0, tzinfo=UTC))


@pytest.fixture
def store(tmp_path, clock):
    data_dir = tmp_path / "data"
    lock = AdvisoryFileLock(data_dir / "database.json.lock", max_retries=5, retry_delay_seconds=0.01)
    return JsonRecordStore(data_dir / "database.json", audit_log_path=data_dir / "audit.log", lock=lock, clock=clock)
