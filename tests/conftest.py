import pytest
from unittest.mock import MagicMock
from datetime import datetime, timezone

from ptscheduler.models.mod_auth import AuthUser, UserRole
from ptscheduler.stores.sto_pt import PtStore

@pytest.fixture
def now():
    # Monday 2030-01-07 09:00 in Asia/Seoul
    return datetime(2030, 1, 7, 0, 0, tzinfo=timezone.utc)

@pytest.fixture
def member():
    return AuthUser(id="member1", name="Member One", role=UserRole.MEMBER)

@pytest.fixture
def trainer():
    return AuthUser(id="trainer1", name="Trainer One", role=UserRole.TRAINER)

@pytest.fixture
def mock_store():
    """PtStore double with an empty trainer calendar"""
    store = MagicMock(spec=PtStore)
    store.find_sessions_for_trainer_in_range.return_value = []
    store.find_sessions_for_member_in_range.return_value = []
    store.find_trainer_off_days.return_value = []
    store.get_slot_ledgers.return_value = {}
    store.find_stale_claims.return_value = set()
    store.get_request_in_partition.return_value = None
    return store
