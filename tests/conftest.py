"""Pytest configuration and fixtures."""

import os
import tempfile
from unittest.mock import AsyncMock

import pytest
from tinydb import TinyDB
from tinydb.storages import MemoryStorage

# Set test environment variables before importing settings
_TMP_DIR = tempfile.mkdtemp(prefix="ledger-tests-")
os.environ.setdefault("DB_PATH", os.path.join(_TMP_DIR, "ledger.json"))
os.environ.setdefault("REPORT_PATH", os.path.join(_TMP_DIR, "ledger_report.txt"))
os.environ.setdefault("ALLOWED_USERS", '["111", "222"]')
os.environ.setdefault("ADMIN_ID", "999")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "")

from ledger_bot.config import LedgerConfig  # noqa: E402
from ledger_bot.core.approval import ClearApproval  # noqa: E402
from ledger_bot.core.conversation import Conversation  # noqa: E402
from ledger_bot.core.report import ReportEngine  # noqa: E402
from ledger_bot.db.repository import EntryRepository, SessionRepository  # noqa: E402

USER_A = "111"
USER_B = "222"
ADMIN = "999"


@pytest.fixture
def config(tmp_path):
    """Two-person ledger: Sheyx and Polvon, users 111 and 222, admin 999."""
    return LedgerConfig(
        participants=["Sheyx", "Polvon"],
        allowed_users=[USER_A, USER_B],
        admin_id=ADMIN,
        report_path=tmp_path / "report.txt",
    )


@pytest.fixture
def db():
    database = TinyDB(storage=MemoryStorage)
    yield database
    database.close()


@pytest.fixture
def entries(db):
    return EntryRepository(db)


@pytest.fixture
def sessions(db):
    return SessionRepository(db)


@pytest.fixture
def notifier():
    """Mock messaging collaborator; every delivery succeeds."""
    mock = AsyncMock()
    mock.send.return_value = True
    mock.send_document.return_value = True
    mock.broadcast.return_value = 1
    return mock


@pytest.fixture
def conversation(config, entries, sessions, notifier):
    return Conversation(config, entries, sessions, notifier)


@pytest.fixture
def reports(config, entries):
    return ReportEngine(config, entries)


@pytest.fixture
def approval(config, entries, reports, notifier):
    return ClearApproval(config, entries, reports, notifier)
