"""
Shared fixtures.
"""

from datetime import datetime, timezone

import pytest

from core.clock import MockClock
from domains import create_services
from risk_engine.types import VoterRecord


FIXED_TIME = datetime(2024, 5, 20, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock() -> MockClock:
    return MockClock(FIXED_TIME)


@pytest.fixture
def make_record():
    """Factory for active voter records."""
    def _make(voter_record_id: str, epic_id: str, address: str = "1 Station Road", **kwargs) -> VoterRecord:
        return VoterRecord(
            voter_record_id=voter_record_id,
            name=kwargs.pop("name", f"Voter {voter_record_id}"),
            address=address,
            epic_id=epic_id,
            age=kwargs.pop("age", 35),
            **kwargs,
        )
    return _make


@pytest.fixture
def services(clock):
    return create_services(clock=clock)
