"""
Pytest configuration and shared fixtures.
"""

import pytest
from unittest.mock import AsyncMock, Mock

# Configure pytest-asyncio
pytest_plugins = ('pytest_asyncio',)


@pytest.fixture
def mock_database():
    """Mock database whose session() is an async context manager."""
    db = Mock()
    session = AsyncMock()

    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=None)

    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.add = Mock()
    session.delete = AsyncMock()

    db.session = Mock(return_value=session)

    return db, session


@pytest.fixture
def sample_servicem8_job():
    """A ServiceM8 job record as returned by /job.json."""
    return {
        "uuid": "job-uuid-1",
        "generated_job_id": "1042",
        "status": "Quote",
        "job_address": "12 Fence Rd, Perth WA",
        "billing_address": "PO Box 1, Perth WA",
        "job_description": "Colorbond replacement, 30m",
        "total_invoice_amount": "4850.50",
        "quote_sent": "1",
        "quote_sent_stamp": "2026-03-10 08:00:00",
        "quote_date": "2026-03-01 09:00:00",
        "company_uuid": "company-1",
        "work_done_description": "Client wants white PVC",
    }


@pytest.fixture
def sample_staff():
    """Install and non-install staff as simple objects."""
    def member(staff_id, role, hours=8, active=True):
        m = Mock()
        m.id = staff_id
        m.role = role
        m.daily_capacity_hours = hours
        m.active = active
        return m

    return [
        member("all", "install", hours=100),
        member("mike", "install"),
        member("tom", "install"),
        member("josh", "install", active=False),
        member("wayne", "sales"),
    ]
