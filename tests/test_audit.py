"""Tests for the Audit Store."""

from datetime import datetime

import pytest

from intent_kernel.audit.store import AuditStore


class TestAuditStore:
    def setup_method(self):
        self.store = AuditStore(db_path=":memory:")

    def teardown_method(self):
        self.store.close()

    def test_append_and_retrieve(self):
        record = self.store.append("open", True, target="notepad.exe")

        assert record.signature != ""
        assert record.prior_record_hash is None  # First record
        assert record.id.startswith("log_")

        logs = self.store.recent(10)
        assert len(logs) == 1
        assert logs[0] == record

    def test_records_are_immutable(self):
        record = self.store.append("open", False)
        with pytest.raises(Exception):
            record.approved = True

    def test_explicit_timestamp(self):
        ts = datetime(2026, 1, 2, 3, 4, 5)
        record = self.store.append("open", True, timestamp=ts)
        assert self.store.recent(1)[0].timestamp == ts == record.timestamp

    def test_hash_chaining(self):
        """Each record's prior_record_hash should match the previous record's signature."""
        records = [self.store.append(f"action_{i}", i % 2 == 0) for i in range(5)]

        for i in range(1, len(records)):
            assert records[i].prior_record_hash == records[i - 1].signature

    def test_chain_integrity(self):
        for i in range(110):
            self.store.append(f"action_{i}", True)

        assert self.store.count() == 110
        assert self.store.verify_chain_integrity() is True

    def test_tampering_is_detected(self):
        for i in range(3):
            self.store.append(f"action_{i}", False)

        self.store._conn.execute(
            "UPDATE action_log SET record_json = replace(record_json, "
            "'\"approved\":false', '\"approved\":true') WHERE action = 'action_1'"
        )
        self.store._conn.commit()

        assert self.store.verify_chain_integrity() is False

    def test_empty_store_is_intact(self):
        assert self.store.count() == 0
        assert self.store.verify_chain_integrity() is True

    def test_recent_is_bounded_and_oldest_first(self):
        for i in range(20):
            self.store.append(f"action_{i}", True)

        results = self.store.recent(limit=5)
        assert [r.action for r in results] == [f"action_{i}" for i in range(15, 20)]

    def test_recent_with_non_positive_limit(self):
        self.store.append("open", True)
        assert self.store.recent(0) == []
        assert self.store.recent(-3) == []

    def test_query_by_approval(self):
        for i in range(6):
            self.store.append(f"action_{i}", approved=(i % 3 != 0))

        denied = self.store.query_by_approval(False)
        assert [r.action for r in denied] == ["action_0", "action_3"]
        assert len(self.store.query_by_approval(True)) == 4

    def test_persists_to_file(self, tmp_path):
        db_path = str(tmp_path / "audit.db")
        store = AuditStore(db_path=db_path)
        first = store.append("open", True)
        store.close()

        reopened = AuditStore(db_path=db_path)
        second = reopened.append("search", False)

        assert reopened.count() == 2
        assert second.prior_record_hash == first.signature
        assert reopened.verify_chain_integrity() is True
        reopened.close()
