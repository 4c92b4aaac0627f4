"""Shared pytest fixtures for garden-sync tests."""

from datetime import datetime, timedelta, timezone
from itertools import count

import pytest

from garden_sync.config import Config
from garden_sync.core.repository import MemoryRepository
from garden_sync.keys import KeyMaster
from garden_sync.sync.cursor import CursorStore
from garden_sync.sync.mapping import MappingStore
from garden_sync.sync.models import Crux, Dimension, Marker, Path

GARDEN_A = "https://a.garden.test"
GARDEN_B = "https://b.garden.test"
GARDEN_C = "https://c.garden.test"

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    """Timestamp *minutes* after T0."""
    return T0 + timedelta(minutes=minutes)


def make_crux(crux_id: str, updated: int = 0, **fields) -> Crux:
    """Build a crux updated *updated* minutes after T0."""
    fields.setdefault("title", f"crux {crux_id}")
    return Crux(id=crux_id, created=T0, updated=at(updated), **fields)


def make_dimension(
    dim_id: str, source_id: str, target_id: str, type: str = "gate"
) -> Dimension:
    return Dimension(
        id=dim_id, source_id=source_id, target_id=target_id, type=type
    )


def make_path(
    path_id: str,
    updated: int = 0,
    markers: list[tuple[str, str]] | None = None,
    **fields,
) -> Path:
    """Build a path; *markers* are ``(marker_id, crux_id)`` pairs in order."""
    fields.setdefault("title", f"path {path_id}")
    marker_rows = [
        Marker(id=marker_id, path_id=path_id, crux_id=crux_id, order=i)
        for i, (marker_id, crux_id) in enumerate(markers or [])
    ]
    return Path(
        id=path_id,
        created=T0,
        updated=at(updated),
        markers=marker_rows,
        **fields,
    )


class SequentialKeyMaster(KeyMaster):
    """KeyMaster whose ids are predictable: new-1, new-2, ..."""

    def __init__(self, prefix: str = "new"):
        self._prefix = prefix
        self._counter = count(1)

    def generate_id(self) -> str:
        return f"{self._prefix}-{next(self._counter)}"


class FixedClock:
    """Callable clock that returns a settable time."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: int) -> None:
        self.now = self.now + timedelta(minutes=minutes)


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live garden",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live garden"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


@pytest.fixture
def mock_config(tmp_path):
    """A valid Config whose state lives under tmp_path."""
    return Config(
        garden_url=GARDEN_A,
        token="test-token",
        insecure=False,
        state_dir=str(tmp_path / "state"),
    )


@pytest.fixture
def clock():
    """Clock fixed one day after T0."""
    return FixedClock(T0 + timedelta(days=1))


@pytest.fixture
def key_master():
    return SequentialKeyMaster()


@pytest.fixture
def mapping_store(tmp_path, clock):
    return MappingStore(tmp_path / "state", SequentialKeyMaster("rec"), clock)


@pytest.fixture
def cursor_store(tmp_path, clock):
    return CursorStore(tmp_path / "state", clock)


@pytest.fixture
def garden_a():
    return MemoryRepository()


@pytest.fixture
def garden_b():
    return MemoryRepository()
