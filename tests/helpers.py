"""Test doubles and store builders shared across the suite."""

import threading
from pathlib import Path

from rocksdict import Options, Rdict

from statecheck.storage.snapshot import STORE_MARKER_FILE


def write_rocksdb(path: Path, data: dict[bytes, bytes]) -> Path:
    """Create a real RocksDB store at path holding data."""
    path.mkdir(parents=True, exist_ok=True)
    options = Options(raw_mode=True)
    options.create_if_missing(True)
    db = Rdict(str(path), options=options)
    for key, value in data.items():
        db[key] = value
    db.close()
    return path


def encode(data: dict[str, str]) -> dict[bytes, bytes]:
    return {k.encode(): v.encode() for k, v in data.items()}


def make_store_dir(path: Path) -> Path:
    """Directory that passes the store-directory check."""
    path.mkdir(parents=True, exist_ok=True)
    (path / STORE_MARKER_FILE).write_text("MANIFEST-000001\n")
    return path


class FakeCursor:
    """RocksDB-style cursor over sorted items; can simulate an I/O error."""

    def __init__(self, items: list[tuple[bytes, bytes]], fail_after: int | None = None):
        self._items = items
        self._fail_after = fail_after
        self._pos = -1
        self._failed = False

    def seek_to_first(self) -> None:
        self._pos = 0

    def valid(self) -> bool:
        if self._fail_after is not None and self._pos >= self._fail_after:
            self._failed = True
            return False
        return 0 <= self._pos < len(self._items)

    def key(self) -> bytes:
        return self._items[self._pos][0]

    def value(self) -> bytes:
        return self._items[self._pos][1]

    def next(self) -> None:
        self._pos += 1

    def status(self) -> None:
        if self._failed:
            raise OSError("simulated read error")


class FakeStore:
    """In-memory read-only store recording how often it was closed."""

    def __init__(self, data: dict[bytes, bytes] | None = None, fail_after: int | None = None):
        self.data = dict(data or {})
        self.fail_after = fail_after
        self.close_count = 0

    def iter(self) -> FakeCursor:
        return FakeCursor(sorted(self.data.items()), fail_after=self.fail_after)

    def close(self) -> None:
        self.close_count += 1


class FakeOpener:
    """
    store_opener stand-in mapping store paths to fake stores.

    Paths listed in blocked wait on release before opening; paths listed in
    errors raise instead of opening.
    """

    def __init__(self):
        self.stores: dict[Path, FakeStore] = {}
        self.errors: dict[Path, Exception] = {}
        self.blocked: set[Path] = set()
        self.release = threading.Event()
        self.calls: list[Path] = []

    def __call__(self, path: Path) -> FakeStore:
        self.calls.append(path)
        if path in self.blocked:
            self.release.wait(timeout=10)
        if path in self.errors:
            raise self.errors[path]
        return self.stores[path]

    def add(self, path: Path, data: dict[bytes, bytes], fail_after: int | None = None) -> FakeStore:
        """Register a fake store and create its directory."""
        make_store_dir(path)
        store = FakeStore(data, fail_after=fail_after)
        self.stores[path] = store
        return store
