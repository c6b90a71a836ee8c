"""Shared fixtures for nockwatch tests."""

import pytest

from nockwatch import BalanceRecord, State, StateStore
from tests.fakes import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    return StateStore(tmp_path / "balances.json")


@pytest.fixture
def two_address_state():
    state = State()
    state.put(BalanceRecord(address="addr-a", amount=65536, last_updated=1_600_000_000))
    state.put(BalanceRecord(address="addr-b", amount=131072, last_updated=1_650_000_000))
    return state
