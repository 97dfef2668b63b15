"""
Persistent storage for one copy of the schedule dataset.

A Datastore wraps one SQLite file holding three tables:

    departments, classes, sections

Design rationale:
- every entity has an explicit TableSpec (column name -> record attribute),
  so the SQL never depends on runtime introspection of the dataclasses
- each operation opens its own short-lived connection, which lets many
  crawler threads insert into the same file concurrently
- meeting times stay embedded in the sections table as a JSON column
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Type, Union

from timeschedule.errors import InsertError, SelectError
from timeschedule.model import Class, Department, Section


logger = logging.getLogger(__name__)

Record = Union[Department, Class, Section]


@dataclass(frozen=True)
class TableSpec:
    """
    Static mapping between one record type and its table.

    columns holds (column name, SQL type, record attribute) in table order.
    The first column is the primary key. Columns named in derived are
    computed from other fields and are not passed back when loading.
    """

    table: str
    model: Type[Any]
    columns: Tuple[Tuple[str, str, str], ...]
    references: Tuple[Tuple[str, str], ...] = ()
    derived: Tuple[str, ...] = ()

    @property
    def column_names(self) -> List[str]:
        return [c[0] for c in self.columns]

    def create_sql(self) -> str:
        parts = []
        for i, (name, sql_type, _) in enumerate(self.columns):
            col = f"{name} {sql_type}"
            if i == 0:
                col += " PRIMARY KEY"
            for ref_col, target in self.references:
                if ref_col == name:
                    col += f" REFERENCES {target}"
            parts.append(col)
        return f"CREATE TABLE {self.table} ({', '.join(parts)})"

    def insert_sql(self) -> str:
        placeholders = ", ".join("?" for _ in self.columns)
        return f"INSERT INTO {self.table} ({', '.join(self.column_names)}) VALUES ({placeholders})"

    def to_row(self, record: Any) -> Tuple[Any, ...]:
        return tuple(getattr(record, attr) for _, _, attr in self.columns)

    def from_row(self, row: sqlite3.Row) -> Any:
        return self.model(**{attr: row[name] for name, _, attr in self.columns if name not in self.derived})


DEPARTMENTS = TableSpec(
    table="departments",
    model=Department,
    columns=(
        ("abbreviation", "TEXT", "abbreviation"),
        ("name", "TEXT", "name"),
        ("link", "TEXT", "link"),
    ),
)

CLASSES = TableSpec(
    table="classes",
    model=Class,
    columns=(
        ("abbreviation_code", "TEXT", "key"),
        ("dept_key", "TEXT", "dept_key"),
        ("abbreviation", "TEXT", "abbreviation"),
        ("code", "TEXT", "code"),
        ("title", "TEXT", "title"),
    ),
    references=(("dept_key", "departments(abbreviation)"),),
    derived=("abbreviation_code",),
)

SECTIONS = TableSpec(
    table="sections",
    model=Section,
    columns=(
        ("sln", "TEXT", "sln"),
        ("class_key", "TEXT", "class_key"),
        ("restriction", "TEXT", "restriction"),
        ("section", "TEXT", "section"),
        ("credit", "TEXT", "credit"),
        ("meeting_times", "TEXT", "meeting_times_json"),
        ("instructor", "TEXT", "instructor"),
        ("status", "TEXT", "status"),
        ("taken_spots", "INTEGER", "taken_spots"),
        ("total_spots", "INTEGER", "total_spots"),
        ("grades", "TEXT", "grades"),
        ("fee", "TEXT", "fee"),
        ("other", "TEXT", "other"),
        ("info", "TEXT", "info"),
    ),
    references=(("class_key", "classes(abbreviation_code)"),),
)

TABLES: Dict[Type[Any], TableSpec] = {
    Department: DEPARTMENTS,
    Class: CLASSES,
    Section: SECTIONS,
}


def _spec_for(kind: Type[Any]) -> TableSpec:
    try:
        return TABLES[kind]
    except KeyError:
        raise ValueError(f"no table for record type {kind!r}") from None


class Datastore:
    """
    One copy of the dataset (one slot).
    """

    def __init__(self, path: Union[str, Path], busy_timeout: float = 30.0) -> None:
        self.path = Path(path)
        self.busy_timeout = busy_timeout

    def __repr__(self) -> str:
        return f"Datastore({str(self.path)!r})"

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """
        Open a connection for one unit of work; commit on success, roll back on error.
        """
        con = sqlite3.connect(str(self.path), timeout=self.busy_timeout)
        con.row_factory = sqlite3.Row
        try:
            with con:
                yield con
        finally:
            con.close()

    def reset_schema(self) -> None:
        """
        Drop all tables and create them empty. Stale data is discarded wholesale.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as con:
            con.execute("PRAGMA journal_mode=WAL")
            for spec in reversed(list(TABLES.values())):
                con.execute(f"DROP TABLE IF EXISTS {spec.table}")
            for spec in TABLES.values():
                con.execute(spec.create_sql())
        logger.debug("schema reset in %s", self.path)

    def insert(self, record: Record) -> None:
        spec = _spec_for(type(record))
        try:
            with self.connect() as con:
                con.execute(spec.insert_sql(), spec.to_row(record))
        except sqlite3.Error as exc:
            raise InsertError(f"insert into {spec.table} failed for key {record.key!r}: {exc}") from exc

    def select(
        self,
        kind: Type[Any],
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Any]:
        """
        Return records of one kind, filtered by column equality.

        where maps column names to values; order_by is a column name,
        optionally prefixed with '-' for descending order.
        """
        spec = _spec_for(kind)
        names = spec.column_names
        clauses: List[str] = []
        params: List[Any] = []

        for column, value in (where or {}).items():
            if column not in names:
                raise SelectError(f"unknown column {column!r} for {spec.table}")
            clauses.append(f"{column} = ?")
            params.append(value)

        query = f"SELECT * FROM {spec.table}"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        if order_by:
            column = order_by.lstrip("-")
            if column not in names:
                raise SelectError(f"unknown column {column!r} for {spec.table}")
            query += f" ORDER BY {column} {'DESC' if order_by.startswith('-') else 'ASC'}"
        if limit is not None:
            query += " LIMIT ?"
            params.append(int(limit))

        try:
            with self.connect() as con:
                rows = con.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            raise SelectError(f"select from {spec.table} failed: {exc}") from exc

        return [spec.from_row(r) for r in rows]

    def count(self, kind: Type[Any]) -> int:
        spec = _spec_for(kind)
        try:
            with self.connect() as con:
                return int(con.execute(f"SELECT COUNT(*) FROM {spec.table}").fetchone()[0])
        except sqlite3.Error as exc:
            raise SelectError(f"count of {spec.table} failed: {exc}") from exc
