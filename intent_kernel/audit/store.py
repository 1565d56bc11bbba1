"""
Audit Store — append-only, hash-chained record of every authorization outcome.

Behavioral Contract:
- Append-only. No record is ever modified or deleted.
- Each record is hashed and chained to the previous record (tamper-evident).
- Safe for concurrent appends from independent workflows.
- Bounded reads: "most recent N" queries return records oldest first.
"""

import hashlib
import json
import sqlite3
import threading
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from intent_kernel.models.policy import ActionLog


def _compute_signature(record: ActionLog) -> str:
    record_dict = record.model_dump(mode="json")
    # Zero out signature before hashing (it's what we're computing)
    record_dict["signature"] = ""
    record_bytes = json.dumps(record_dict, sort_keys=True, default=str).encode()
    return hashlib.sha256(record_bytes).hexdigest()


class AuditStore:
    """
    Append-only audit log.
    SQLite, in memory by default; pass a file path to persist across restarts.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the audit table if it doesn't exist."""
        with self._lock:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS action_log (
                    id TEXT PRIMARY KEY,
                    timestamp TEXT NOT NULL,
                    action TEXT NOT NULL,
                    approved INTEGER NOT NULL,
                    target TEXT,
                    signature TEXT NOT NULL,
                    prior_record_hash TEXT,
                    record_json TEXT NOT NULL
                )
            """)
            self._conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_action_log_approved ON action_log(approved)
            """)
            self._conn.commit()

    def append(
        self,
        action: str,
        approved: bool,
        target: Optional[str] = None,
        reason: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> ActionLog:
        """
        Append an audit record. Computes its hash and chains it to the
        previous record.
        """
        with self._lock:
            record = ActionLog(
                id=f"log_{uuid4().hex[:12]}",
                timestamp=timestamp or datetime.utcnow(),
                action=action,
                approved=approved,
                target=target,
                reason=reason,
                prior_record_hash=self._get_latest_hash(),
            )
            record = record.model_copy(update={"signature": _compute_signature(record)})

            self._conn.execute(
                """
                INSERT INTO action_log (
                    id, timestamp, action, approved, target,
                    signature, prior_record_hash, record_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.timestamp.isoformat(),
                    record.action,
                    int(record.approved),
                    record.target,
                    record.signature,
                    record.prior_record_hash,
                    record.model_dump_json(),
                ),
            )
            self._conn.commit()
            return record

    def _get_latest_hash(self) -> Optional[str]:
        """Get the signature of the most recent record."""
        row = self._conn.execute(
            "SELECT signature FROM action_log ORDER BY rowid DESC LIMIT 1"
        ).fetchone()
        return row["signature"] if row else None

    def _deserialize(self, row: sqlite3.Row) -> ActionLog:
        return ActionLog.model_validate_json(row["record_json"])

    def recent(self, limit: int = 100) -> List[ActionLog]:
        """The most recent `limit` records, oldest first."""
        if limit <= 0:
            return []
        with self._lock:
            rows = self._conn.execute(
                "SELECT record_json FROM action_log ORDER BY rowid DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [self._deserialize(r) for r in reversed(rows)]

    def query_by_approval(self, approved: bool) -> List[ActionLog]:
        """All approved (or all denied) records, oldest first."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT record_json FROM action_log WHERE approved = ? ORDER BY rowid",
                (int(approved),),
            ).fetchall()
        return [self._deserialize(r) for r in rows]

    def verify_chain_integrity(self) -> bool:
        """Verify no records have been tampered with."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT record_json, signature FROM action_log ORDER BY rowid"
            ).fetchall()

        prior_sig: Optional[str] = None
        for row in rows:
            record = self._deserialize(row)
            if record.signature != row["signature"]:
                return False
            if record.signature != _compute_signature(record):
                return False
            if record.prior_record_hash != prior_sig:
                return False
            prior_sig = record.signature

        return True

    def count(self) -> int:
        """Total number of audit records."""
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) as cnt FROM action_log").fetchone()
        return row["cnt"]

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()
