"""Tests for the JSON state file."""

import json
import os
from unittest.mock import patch

import pytest

from nockwatch import BalanceRecord, PersistenceError, State, StateStore


class TestLoad:

    def test_missing_file_is_empty_state(self, store):
        state = store.load()
        assert len(state) == 0

    def test_reads_balances_file(self, store):
        store.path.write_text(json.dumps({
            "balances": [
                {"address": "addr-a", "currentBalance": 34492645376, "lastUpdated": 1700000000},
            ]
        }))

        state = store.load()

        assert state.get("addr-a") == BalanceRecord("addr-a", 34492645376, 1700000000)

    def test_invalid_json_raises(self, store):
        store.path.write_text("{not json")
        with pytest.raises(PersistenceError):
            store.load()

    @pytest.mark.parametrize("payload", [
        [],
        {"balances": {}},
        {"balances": ["addr-a"]},
        {"balances": [{"address": "addr-a", "currentBalance": 1}]},
        {"balances": [{"address": "addr-a", "currentBalance": "1", "lastUpdated": 0}]},
        {"balances": [{"address": "addr-a", "currentBalance": True, "lastUpdated": 0}]},
        {"balances": [{"address": 7, "currentBalance": 1, "lastUpdated": 0}]},
    ])
    def test_malformed_content_raises(self, store, payload):
        store.path.write_text(json.dumps(payload))
        with pytest.raises(PersistenceError):
            store.load()

    def test_duplicate_address_raises(self, store):
        entry = {"address": "addr-a", "currentBalance": 1, "lastUpdated": 0}
        store.path.write_text(json.dumps({"balances": [entry, entry]}))
        with pytest.raises(PersistenceError, match="duplicate"):
            store.load()


class TestSave:

    def test_round_trip(self, store, two_address_state):
        store.save(two_address_state)
        assert store.load() == two_address_state

    def test_round_trip_empty(self, store):
        store.save(State())
        assert store.load() == State()

    def test_preserves_first_seen_order(self, store, two_address_state):
        store.save(two_address_state)
        loaded = store.load()
        assert [r.address for r in loaded.snapshot()] == ["addr-a", "addr-b"]

    def test_writes_camel_case_field_names(self, store, two_address_state):
        store.save(two_address_state)
        data = json.loads(store.path.read_text())
        assert data["balances"][0] == {
            "address": "addr-a",
            "currentBalance": 65536,
            "lastUpdated": 1600000000,
        }

    def test_creates_parent_directory(self, tmp_path, two_address_state):
        store = StateStore(tmp_path / "data" / "balances.json")
        store.save(two_address_state)
        assert store.path.exists()

    def test_failed_replace_keeps_previous_file(self, store, two_address_state):
        store.save(two_address_state)
        before = store.path.read_text()

        changed = State()
        changed.put(BalanceRecord("addr-c", 1, 1))
        with patch("nockwatch.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(PersistenceError):
                store.save(changed)

        assert store.path.read_text() == before
        assert os.listdir(store.path.parent) == ["balances.json"]
