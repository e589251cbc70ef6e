import pytest

from mwledger.storage import InMemoryStorageBackend
from mwledger.temporal.snapshots import SnapshotConfig

from .fixtures import arrivals, make_ledger, make_log


@pytest.fixture
def memory_storage():
    return InMemoryStorageBackend()


@pytest.fixture
def log():
    """Event log with 50 ticks one minute apart starting at 08:00Z."""
    return make_log(arrivals(50))


@pytest.fixture
def ledger():
    """Ledger that snapshots every second event of a series."""
    return make_ledger(arrivals(50), snapshots=SnapshotConfig(interval=2))


@pytest.fixture
def storage_dir(tmp_path):
    return str(tmp_path / "events")
