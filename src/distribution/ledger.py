"""
Winner Ledger: append-only per-cycle audit records with SQLite persistence.
"""

import sqlite3
import json
import threading
import time
from enum import Enum
from pathlib import Path
from typing import Optional, List

from distribution.errors import PersistenceFailure
from distribution.models import WinnerRecord, RecordStatus, SecondaryAllocation


class InsertResult(Enum):
    """Answer of a conditional insert"""
    INSERTED = "INSERTED"
    ALREADY_EXISTS = "ALREADY_EXISTS"


class WinnerLedger:
    """
    Winner ledger with SQLite persistence.

    One record per cycle id, enforced by the primary key. Records are
    immutable: UPDATE and DELETE are rejected by triggers. A separate
    reservation table lets an invocation claim a cycle atomically before it
    touches any external service.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.lock = threading.Lock()
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema"""
        with self.conn:
            # Audit trail (append-only)
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS winners (
                    cycle_id INTEGER PRIMARY KEY,
                    status TEXT NOT NULL,
                    wallet TEXT,
                    amount INTEGER NOT NULL DEFAULT 0 CHECK(amount >= 0),
                    claimed_amount INTEGER NOT NULL DEFAULT 0,
                    signature TEXT,
                    randomness_json TEXT,
                    jackpot_address TEXT,
                    jackpot_amount INTEGER,
                    jackpot_signature TEXT,
                    created_at INTEGER NOT NULL
                )
            """
            )

            self.conn.execute(
                """
                CREATE TRIGGER IF NOT EXISTS winners_no_update
                BEFORE UPDATE ON winners
                BEGIN
                    SELECT RAISE(ABORT, 'winner records are immutable');
                END
            """
            )
            self.conn.execute(
                """
                CREATE TRIGGER IF NOT EXISTS winners_no_delete
                BEFORE DELETE ON winners
                BEGIN
                    SELECT RAISE(ABORT, 'winner records are immutable');
                END
            """
            )

            # In-flight cycles
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS cycle_reservations (
                    cycle_id INTEGER PRIMARY KEY,
                    reserved_at INTEGER NOT NULL
                )
            """
            )

            self.conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_winners_created ON winners(created_at)"
            )

    def insert_if_absent(self, record: WinnerRecord) -> InsertResult:
        """
        Insert a record unless one already exists for its cycle.

        Args:
            record: Record to persist; created_at is filled in if unset

        Returns:
            INSERTED, or ALREADY_EXISTS if the cycle already has a record

        Raises:
            PersistenceFailure: On any other database error
        """
        if not record.created_at:
            record.created_at = time.time_ns() // 1_000_000

        secondary = record.secondary_allocation
        with self.lock:
            try:
                with self.conn:
                    self.conn.execute(
                        """
                        INSERT INTO winners (
                            cycle_id, status, wallet, amount, claimed_amount, signature,
                            randomness_json, jackpot_address, jackpot_amount, jackpot_signature,
                            created_at
                        )
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                        (
                            record.cycle_id,
                            record.status.value,
                            record.winner_address,
                            record.amount_distributed,
                            record.claimed_amount,
                            record.transfer_reference,
                            json.dumps(record.randomness_provenance)
                            if record.randomness_provenance is not None
                            else None,
                            secondary.address if secondary else None,
                            secondary.amount if secondary else None,
                            secondary.transfer_reference if secondary else None,
                            record.created_at,
                        ),
                    )
            except sqlite3.IntegrityError as e:
                if "UNIQUE" in str(e) or "PRIMARY KEY" in str(e):
                    return InsertResult.ALREADY_EXISTS
                raise PersistenceFailure(f"Failed to save winner for cycle {record.cycle_id}: {e}") from e
            except sqlite3.Error as e:
                raise PersistenceFailure(f"Failed to save winner for cycle {record.cycle_id}: {e}") from e

        return InsertResult.INSERTED

    def get(self, cycle_id: int) -> Optional[WinnerRecord]:
        """
        Get the record for a cycle.

        Returns:
            WinnerRecord or None if the cycle has no record
        """
        try:
            cursor = self.conn.execute(
                f"SELECT {self._COLUMNS} FROM winners WHERE cycle_id = ?", (cycle_id,)
            )
            row = cursor.fetchone()
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Failed to read cycle {cycle_id}: {e}") from e
        return self._row_to_record(row) if row else None

    def list_recent(self, limit: int = 20) -> List[WinnerRecord]:
        """
        Get the most recent records.

        Args:
            limit: Maximum number of records to return

        Returns:
            List of WinnerRecord objects, newest cycle first
        """
        try:
            cursor = self.conn.execute(
                f"SELECT {self._COLUMNS} FROM winners ORDER BY cycle_id DESC LIMIT ?",
                (limit,),
            )
            return [self._row_to_record(row) for row in cursor]
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Failed to list winners: {e}") from e

    def reserve_cycle(self, cycle_id: int) -> bool:
        """
        Atomically reserve a cycle for processing.

        Returns:
            True if this caller now owns the cycle, False if it was already reserved
        """
        with self.lock:
            try:
                with self.conn:
                    self.conn.execute(
                        "INSERT INTO cycle_reservations (cycle_id, reserved_at) VALUES (?, ?)",
                        (cycle_id, time.time_ns() // 1_000_000),
                    )
            except sqlite3.IntegrityError:
                return False
            except sqlite3.Error as e:
                raise PersistenceFailure(f"Failed to reserve cycle {cycle_id}: {e}") from e
        return True

    def release_cycle(self, cycle_id: int) -> None:
        """Release a reservation so a later invocation can retry the cycle"""
        with self.lock:
            try:
                with self.conn:
                    self.conn.execute(
                        "DELETE FROM cycle_reservations WHERE cycle_id = ?", (cycle_id,)
                    )
            except sqlite3.Error as e:
                raise PersistenceFailure(f"Failed to release cycle {cycle_id}: {e}") from e

    def is_reserved(self, cycle_id: int) -> bool:
        cursor = self.conn.execute(
            "SELECT cycle_id FROM cycle_reservations WHERE cycle_id = ?", (cycle_id,)
        )
        return cursor.fetchone() is not None

    def close(self) -> None:
        self.conn.close()

    _COLUMNS = (
        "cycle_id, status, wallet, amount, claimed_amount, signature, randomness_json, "
        "jackpot_address, jackpot_amount, jackpot_signature, created_at"
    )

    @staticmethod
    def _row_to_record(row) -> WinnerRecord:
        secondary = None
        if row[7] is not None:
            secondary = SecondaryAllocation(address=row[7], amount=row[8], transfer_reference=row[9])
        return WinnerRecord(
            cycle_id=row[0],
            status=RecordStatus(row[1]),
            winner_address=row[2],
            amount_distributed=row[3],
            claimed_amount=row[4],
            transfer_reference=row[5],
            randomness_provenance=json.loads(row[6]) if row[6] else None,
            secondary_allocation=secondary,
            created_at=row[10],
        )
