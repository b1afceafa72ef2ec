"""Pytest configuration for budget-engine-service tests.

Puts the service root (for `src.*` imports), `services/` (for `shared.*`), and
this directory (for `ledger_fakes`) on sys.path and exposes the in-memory ledger.
"""

import sys
from pathlib import Path

import pytest

TESTS_ROOT = Path(__file__).resolve().parent
SERVICE_ROOT = TESTS_ROOT.parent
SERVICES_ROOT = SERVICE_ROOT.parent

for path in (SERVICES_ROOT, SERVICE_ROOT, TESTS_ROOT):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from ledger_fakes import InMemoryLedger  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()
