"""
Pytest configuration and shared fixtures

Fun fact: The name "conftest" comes from pytest's configuration testing
framework. Files named conftest.py are automatically discovered and their
fixtures are available to all tests in the same directory and subdirectories!
"""

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator

import pytest

from tender_lifecycle.desk import TenderDesk
from tender_lifecycle.kernel.commands import CommandContext
from tender_lifecycle.kernel.event_store import SQLiteEventStore
from tender_lifecycle.kernel.ids import generate_id
from tender_lifecycle.kernel.policy import TenderPolicy
from tender_lifecycle.kernel.time import TestTimeProvider


@pytest.fixture
def temp_db() -> Iterator[Path]:
    """Provide a temporary database file that's cleaned up after test"""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    yield db_path

    # Cleanup (WAL side files included)
    for path in (db_path, Path(f"{db_path}-wal"), Path(f"{db_path}-shm")):
        if path.exists():
            path.unlink()


@pytest.fixture
def event_store(temp_db: Path) -> SQLiteEventStore:
    """Provide a fresh event store for each test"""
    return SQLiteEventStore(temp_db)


@pytest.fixture
def test_time() -> TestTimeProvider:
    """
    Provide a controllable time provider for deterministic tests

    Default time: 2024-06-03 10:00:00 UTC, a Monday early in financial
    year 2024-25, so memo dates, bill dates and maturity dates stay in
    one financial year unless a test moves the clock.
    """
    return TestTimeProvider(datetime(2024, 6, 3, 10, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def policy() -> TenderPolicy:
    """Default office policy: office code GP, six-month security deposit"""
    return TenderPolicy()


@pytest.fixture
def desk(temp_db: Path, test_time: TestTimeProvider, policy: TenderPolicy) -> TenderDesk:
    """Provide a tender desk on a fresh database with a frozen clock"""
    return TenderDesk(temp_db, policy=policy, time_provider=test_time, actor_id="clerk-1")


@pytest.fixture
def make_ctx(test_time: TestTimeProvider) -> Callable[[], CommandContext]:
    """
    Factory for command contexts stamped with the test clock

    Each call is a new action (fresh command_id), as the desk does.
    """

    def factory() -> CommandContext:
        return CommandContext(
            command_id=generate_id(), actor_id="clerk-1", issued_at=test_time.now()
        )

    return factory


@pytest.fixture
def ctx(make_ctx: Callable[[], CommandContext]) -> CommandContext:
    """A single command context for component tests"""
    return make_ctx()
