"""
Double-buffered dataset handoff.

Two interchangeable Datastore files (slot A and slot B) hold complete copies
of the dataset. A separate control file holds one row naming the active
slot. Readers always open the active slot; the crawler always rebuilds the
inactive one and flips the control row only after a full, successful pass.

    data_dir/
        switch.db   -> switch_table(switch_col)  1 = A, 2 = B
        slot_a.db
        slot_b.db
"""

from __future__ import annotations

import enum
import logging
import sqlite3
from pathlib import Path
from typing import Union

from timeschedule.errors import SlotConflictError, StoreUnavailable
from timeschedule.storage import Datastore


logger = logging.getLogger(__name__)

SWITCH_TABLE = "switch_table"
SWITCH_COL = "switch_col"


class Slot(enum.IntEnum):
    A = 1
    B = 2

    def other(self) -> "Slot":
        return Slot.B if self is Slot.A else Slot.A


class StoreSwitch:
    """
    Owns the control row and resolves slots to Datastore instances.

    There is exactly one writer (the scheduling loop). Any number of readers
    may call get_active_slot() / active_store() at the same time.
    """

    def __init__(self, data_dir: Union[str, Path], busy_timeout: float = 30.0) -> None:
        self.data_dir = Path(data_dir)
        self.control_path = self.data_dir / "switch.db"
        self.busy_timeout = busy_timeout

    def slot_path(self, slot: Slot) -> Path:
        return self.data_dir / f"slot_{slot.name.lower()}.db"

    def store(self, slot: Slot) -> Datastore:
        return Datastore(self.slot_path(slot), busy_timeout=self.busy_timeout)

    # -----------------------------------------------------------------------
    # Setup / teardown
    # -----------------------------------------------------------------------

    def setup(self, initial: Slot = Slot.A) -> None:
        """
        Create the control row (if missing) and empty schemas in both slots.
        """
        self.data_dir.mkdir(parents=True, exist_ok=True)
        con = sqlite3.connect(str(self.control_path), timeout=self.busy_timeout)
        try:
            with con:
                con.execute(f"CREATE TABLE IF NOT EXISTS {SWITCH_TABLE} ({SWITCH_COL} INTEGER)")
                row = con.execute(f"SELECT COUNT(*) FROM {SWITCH_TABLE}").fetchone()
                if row[0] == 0:
                    con.execute(f"INSERT INTO {SWITCH_TABLE} VALUES (?)", (int(initial),))
        finally:
            con.close()

        for slot in Slot:
            self.store(slot).reset_schema()
        logger.info("store switch ready in %s (active slot %s)", self.data_dir, self.get_active_slot().name)

    def teardown(self) -> None:
        """
        Remove the control file and both slot files (and their WAL side files).
        """
        paths = [self.control_path] + [self.slot_path(s) for s in Slot]
        for path in paths:
            for suffix in ("", "-wal", "-shm", "-journal"):
                target = path.with_name(path.name + suffix)
                if target.exists():
                    target.unlink()
                    logger.debug("removed %s", target)

    # -----------------------------------------------------------------------
    # Control row
    # -----------------------------------------------------------------------

    def get_active_slot(self) -> Slot:
        if not self.control_path.exists():
            raise StoreUnavailable(f"control store {self.control_path} does not exist (run setup)")
        try:
            uri = self.control_path.resolve().as_uri() + "?mode=ro"
            con = sqlite3.connect(uri, uri=True, timeout=self.busy_timeout)
            try:
                row = con.execute(f"SELECT {SWITCH_COL} FROM {SWITCH_TABLE} LIMIT 1").fetchone()
            finally:
                con.close()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"cannot read control store {self.control_path}: {exc}") from exc

        if row is None:
            raise StoreUnavailable(f"control store {self.control_path} has no row")
        try:
            return Slot(row[0])
        except ValueError:
            raise StoreUnavailable(f"control store holds invalid slot value {row[0]!r}") from None

    def inactive_slot(self) -> Slot:
        return self.get_active_slot().other()

    def flip_slot(self, expected: Slot) -> Slot:
        """
        Move the control row from expected to its complement.

        The update is conditioned on the row still holding expected; if it
        does not, SlotConflictError is raised.
        """
        new = expected.other()
        if not self.control_path.exists():
            raise StoreUnavailable(f"control store {self.control_path} does not exist (run setup)")
        try:
            con = sqlite3.connect(str(self.control_path), timeout=self.busy_timeout)
            try:
                with con:
                    cur = con.execute(
                        f"UPDATE {SWITCH_TABLE} SET {SWITCH_COL} = ? WHERE {SWITCH_COL} = ?",
                        (int(new), int(expected)),
                    )
                    updated = cur.rowcount
            finally:
                con.close()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"cannot update control store {self.control_path}: {exc}") from exc

        if updated != 1:
            raise SlotConflictError(f"active slot is no longer {expected.name}; refusing to flip")
        logger.info("active slot flipped %s -> %s", expected.name, new.name)
        return new

    def active_store(self) -> Datastore:
        return self.store(self.get_active_slot())
