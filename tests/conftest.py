"""
Pytest fixtures for the ESG ingestion test suite.

Provides:
- An in-memory SQLite engine (tables created once per session)
- Per-test sessions rolled back at teardown
- Deterministic clock and actor id
- Structured log capture
- Sample report documents, one per report type

Environment Variables:
- ESG_TEST_DATABASE_URL: PostgreSQL URL for tests marked ``postgres``.
  Those tests are skipped when it is not set.
"""

import json
import logging
import os
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from esg_kernel.db.engine import create_tables, init_engine_from_url, reset_engine
from esg_kernel.domain.clock import DeterministicClock
from esg_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture esg_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, import_service):
            import_service.import_document(...)
            logs = captured_logs()
            assert any(r["message"] == "record_committed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("esg_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single in-memory SQLite engine for the whole test session."""
    eng = init_engine_from_url("sqlite://")
    create_tables()
    yield eng
    reset_engine()


@pytest.fixture(scope="function")
def session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    The session joins an outer transaction; ``session.commit()`` inside a
    test only releases a savepoint. The outer transaction is rolled back at
    teardown, undoing all data changes made during the test.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


@pytest.fixture(scope="session")
def postgres_url() -> str:
    url = os.environ.get("ESG_TEST_DATABASE_URL")
    if not url:
        pytest.skip("ESG_TEST_DATABASE_URL not set")
    return url


# =============================================================================
# Actors and clocks
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def entity_id() -> UUID:
    """A fresh reporting entity per test."""
    return uuid4()


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


# =============================================================================
# Sample documents
# =============================================================================


@pytest.fixture
def overall_esg_csv() -> bytes:
    return (
        "ABC Sugar ESG Scorecard,,,,\n"
        "ENVIRONMENTAL (E) METRICS,,,,\n"
        "Metric,2022,2023,2024,2025\n"
        'Coal Consumption (tons),"12,500",11800,N/A,10200\n'
        "Renewable Energy %,45%,48%,52%,\n"
        ",,,,\n"
        "SOCIAL (S) METRICS,,,,\n"
        "Metric,2022,2023,2024,2025\n"
        "Female Employees,320,335,350,362\n"
        "GOVERNANCE (G) METRICS,,,,\n"
        "Metric,Status/Value,,,\n"
        "Board Independence,Yes,,,\n"
        "Ethics Policy,,,,\n"
        "KEY ESG HIGHLIGHTS,,,,\n"
        "• Reduced coal use by 18%,,,,\n"
        "Not a bullet line,,,,\n"
    ).encode("utf-8")


@pytest.fixture
def governance_board_csv() -> bytes:
    return (
        "Board of Directors Composition,,\n"
        "Name,Position,Key Skills\n"
        "Jane Doe,Chairperson,Finance\n"
        "John Roe,Independent Director,Legal\n"
        "Director Fees (2025),,\n"
        "Fee Type,Amount,\n"
        'Board Retainer,"R 250,000",\n'
        "Key Governance Policies:,,\n"
        "• Code of Ethics,,\n"
        "• External Auditors: Deloitte,,\n"
    ).encode("utf-8")


@pytest.fixture
def waste_management_csv() -> bytes:
    return (
        "Year,Recyclable Waste (tons),Boiler Ash (tons),General Waste (tons)\n"
        'FY23,1200,"3,400",560\n'
        "FY24,1100,3300,N/A\n"
        "Effluent Management,,,\n"
        "Year,Effluent Discharged (thousand ML),Water Treatment (million ML),\n"
        "FY24,12.5,3.2,\n"
        "Waste Management Measures:,,,\n"
        "• Composting boiler ash,,,\n"
    ).encode("utf-8")
