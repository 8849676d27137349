from pathlib import Path

import pytest
import structlog

from tests.helpers import FakeOpener, encode, write_rocksdb


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


@pytest.fixture
def fake_opener() -> FakeOpener:
    opener = FakeOpener()
    yield opener
    opener.release.set()


@pytest.fixture
def cluster_dir(tmp_path: Path) -> Path:
    """Base directory laid out as <base>/<replica>/stateMachine."""
    base = tmp_path / "rocksDB-raft"
    base.mkdir()
    return base


@pytest.fixture
def make_replica(cluster_dir: Path):
    """Factory writing a real RocksDB state machine for one replica."""

    def _make(replica_id: str, data: dict[str, str]) -> Path:
        return write_rocksdb(cluster_dir / replica_id / "stateMachine", encode(data))

    return _make
