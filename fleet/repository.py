"""
fleet/repository.py -- SQLAlchemy-backed repository and unit of work.

Uses SQLAlchemy Core (not ORM) so the dataclasses in fleet/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL or
MySQL is a connection string change, not a rewrite.

Pattern: Repository + Data Mapper + Unit of Work.
  Repository       -- one instance per entity table, generic CRUD and paging.
  _row_to_*        -- mappers that translate raw rows into domain dataclasses.
  UnitOfWork       -- owns one connection, composes the vehicle and
                      administrator repositories, buffers writes until
                      save_changes() and exposes explicit transactions.

Write semantics:
  add/update/delete only queue the statement. save_changes() sends every
  queued statement in order and returns the affected row count. Without
  begin_transaction() it commits on its own; inside an explicit transaction
  the writes become durable only after commit_transaction(). Reads always
  execute immediately and do not see queued writes.

Errors: every SQLAlchemyError is logged with full detail and re-raised as is.
Callers treat any repository call as fallible; the API turns whatever
escapes into an opaque 500.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    db = Database("sqlite:///fleet.db")
    with db.unit_of_work() as uow:
        vehicle = uow.vehicles.add(Vehicle(name="Civic", brand="Honda", year=2020))
        uow.save_changes()          # vehicle.id is now set
        hondas = uow.vehicles.find(uow.vehicles.c.brand == "Honda")
    db.close()
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Generic, Optional, TypeVar

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Connection, Engine, RootTransaction
from sqlalchemy.exc import SQLAlchemyError

from core.config import get_settings
from core.errors import InvalidOperationError
from fleet.models import Administrator, Vehicle

logger = logging.getLogger("fleetadmin.repository")

E = TypeVar("E")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_vehicles = Table(
    "vehicles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(150), nullable=False),
    Column("brand", String(100), nullable=False),
    Column("year", Integer, nullable=False),
)

_administrators = Table(
    "administrators",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),  # bcrypt, never plaintext
    Column("role", String(10), nullable=False, server_default="Editor"),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


@contextmanager
def _logged(message: str, *args: Any) -> Iterator[None]:
    """Log a persistence failure with its traceback, then let it propagate."""
    try:
        yield
    except SQLAlchemyError:
        logger.exception(message, *args)
        raise


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


class Database:
    """Engine owner and unit-of-work factory.

    Usage:
        db = Database()                                 # DATABASE_URL from settings
        db = Database("postgresql://user:pw@host/db")
        with db.unit_of_work() as uow: ...
        db.close()
    """

    def __init__(self, db_url: Optional[str] = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    def unit_of_work(self) -> "UnitOfWork":
        return UnitOfWork(self.engine)

    def can_connect(self) -> bool:
        """Return True if a trivial query succeeds. Never raises."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception("Database connectivity check failed")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class Repository(ABC, Generic[E]):
    """Generic CRUD, lookup and paging over one entity table.

    Subclasses bind the table, the entity name used in log messages and the
    two mapper functions. Repositories are created by UnitOfWork and share its
    connection; they are never instantiated on their own.
    """

    table: Table
    entity_name: str = "entity"

    def __init__(self, uow: "UnitOfWork") -> None:
        self._uow = uow

    # -- mapping -------------------------------------------------------

    @abstractmethod
    def _to_entity(self, row) -> E: ...

    @abstractmethod
    def _to_values(self, entity: E) -> dict[str, Any]: ...

    @property
    def c(self):
        """Column collection, for building find() criteria."""
        return self.table.c

    # -- reads ---------------------------------------------------------

    def get_by_id(self, entity_id: int) -> Optional[E]:
        with _logged("Error fetching %s by id %s", self.entity_name, entity_id):
            row = self._uow.connection.execute(self.table.select().where(self.table.c.id == entity_id)).fetchone()
        return self._to_entity(row) if row is not None else None

    def get_all(self) -> list[E]:
        with _logged("Error fetching all %s records", self.entity_name):
            rows = self._uow.connection.execute(self.table.select().order_by(self.table.c.id)).fetchall()
        return [self._to_entity(r) for r in rows]

    def find(self, *criteria) -> list[E]:
        """Return every entity matching all criteria (SQLAlchemy column expressions)."""
        with _logged("Error searching %s records", self.entity_name):
            rows = self._uow.connection.execute(
                self.table.select().where(*criteria).order_by(self.table.c.id)
            ).fetchall()
        return [self._to_entity(r) for r in rows]

    def exists(self, entity_id: int) -> bool:
        with _logged("Error checking whether %s %s exists", self.entity_name, entity_id):
            row = self._uow.connection.execute(
                select(self.table.c.id).where(self.table.c.id == entity_id)
            ).fetchone()
        return row is not None

    def count(self) -> int:
        with _logged("Error counting %s records", self.entity_name):
            result = self._uow.connection.execute(select(func.count()).select_from(self.table)).scalar()
        return result or 0

    def get_paged(self, page: int, page_size: int) -> list[E]:
        """Return one page of entities ordered by id. Pages start at 1."""
        page = max(page, 1)
        with _logged("Error fetching page %s of %s records", page, self.entity_name):
            rows = self._uow.connection.execute(
                self.table.select()
                .order_by(self.table.c.id)
                .offset((page - 1) * page_size)
                .limit(page_size)
            ).fetchall()
        return [self._to_entity(r) for r in rows]

    # -- buffered writes -----------------------------------------------

    def add(self, entity: E) -> E:
        """Queue an insert. entity.id is assigned when save_changes() runs."""
        values = self._to_values(entity)
        table = self.table

        def _insert(conn: Connection) -> int:
            with _logged("Error adding %s", self.entity_name):
                result = conn.execute(table.insert().values(**values))
            entity.id = result.inserted_primary_key[0]
            return 1

        self._uow._enqueue(_insert)
        return entity

    def update(self, entity: E) -> E:
        entity_id = getattr(entity, "id", None)
        if entity_id is None:
            raise InvalidOperationError(f"Cannot update a {self.entity_name} that has no id.")
        values = self._to_values(entity)
        table = self.table

        def _update(conn: Connection) -> int:
            with _logged("Error updating %s %s", self.entity_name, entity_id):
                result = conn.execute(table.update().where(table.c.id == entity_id).values(**values))
            return result.rowcount

        self._uow._enqueue(_update)
        return entity

    def delete(self, entity_id: int) -> bool:
        """Queue a delete. Returns False without queuing when the id does not exist."""
        if self.get_by_id(entity_id) is None:
            return False
        table = self.table

        def _delete(conn: Connection) -> int:
            with _logged("Error deleting %s %s", self.entity_name, entity_id):
                result = conn.execute(table.delete().where(table.c.id == entity_id))
            return result.rowcount

        self._uow._enqueue(_delete)
        return True


class VehicleRepository(Repository[Vehicle]):
    table = _vehicles
    entity_name = "vehicle"

    def _to_entity(self, row) -> Vehicle:
        return _row_to_vehicle(row)

    def _to_values(self, entity: Vehicle) -> dict[str, Any]:
        return {"name": entity.name, "brand": entity.brand, "year": entity.year}


class AdministratorRepository(Repository[Administrator]):
    table = _administrators
    entity_name = "administrator"

    def _to_entity(self, row) -> Administrator:
        return _row_to_administrator(row)

    def _to_values(self, entity: Administrator) -> dict[str, Any]:
        return {"email": entity.email, "password_hash": entity.password_hash, "role": entity.role}

    def get_by_email(self, email: str) -> Optional[Administrator]:
        """Look up an administrator by email, ignoring case. Returns None if not found."""
        with _logged("Error fetching administrator by email"):
            row = self._uow.connection.execute(
                self.table.select().where(func.lower(self.table.c.email) == email.strip().lower())
            ).fetchone()
        return _row_to_administrator(row) if row is not None else None


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------


class UnitOfWork:
    """One connection, two repositories, one transaction boundary.

    The connection is opened lazily on first use and returned to the pool by
    close() (or on leaving the with-block). Unsaved writes are discarded on
    close, and an explicit transaction still open at that point is rolled back.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._connection: Optional[Connection] = None
        self._transaction: Optional[RootTransaction] = None
        self._pending: list[Callable[[Connection], int]] = []
        self.vehicles = VehicleRepository(self)
        self.administrators = AdministratorRepository(self)

    def __enter__(self) -> "UnitOfWork":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def connection(self) -> Connection:
        if self._connection is None:
            self._connection = self._engine.connect()
        return self._connection

    @property
    def has_pending_changes(self) -> bool:
        return bool(self._pending)

    @property
    def in_transaction(self) -> bool:
        return self._transaction is not None

    def _enqueue(self, write: Callable[[Connection], int]) -> None:
        self._pending.append(write)

    def save_changes(self) -> int:
        """Flush queued writes in order and return the number of affected rows."""
        if not self._pending:
            return 0
        conn = self.connection
        pending, self._pending = self._pending, []
        try:
            affected = sum(write(conn) for write in pending)
            if self._transaction is None:
                conn.commit()
        except SQLAlchemyError:
            if self._transaction is None:
                conn.rollback()
            raise
        return affected

    def begin_transaction(self) -> None:
        if self._transaction is not None:
            raise InvalidOperationError("A transaction is already active.")
        conn = self.connection
        if conn.in_transaction():
            # Only reads ran since the last save_changes(); nothing to keep.
            conn.rollback()
        with _logged("Error beginning transaction"):
            self._transaction = conn.begin()

    def commit_transaction(self) -> None:
        if self._transaction is None:
            raise InvalidOperationError("No active transaction to commit.")
        transaction, self._transaction = self._transaction, None
        with _logged("Error committing transaction"):
            transaction.commit()

    def rollback_transaction(self) -> None:
        if self._transaction is None:
            raise InvalidOperationError("No active transaction to roll back.")
        transaction, self._transaction = self._transaction, None
        with _logged("Error rolling back transaction"):
            transaction.rollback()

    def close(self) -> None:
        self._pending.clear()
        if self._connection is None:
            return
        try:
            if self._transaction is not None:
                self._transaction.rollback()
        finally:
            self._transaction = None
            self._connection.close()
            self._connection = None


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_vehicle(row) -> Vehicle:
    return Vehicle(id=row.id, name=row.name, brand=row.brand, year=row.year)


def _row_to_administrator(row) -> Administrator:
    return Administrator(id=row.id, email=row.email, password_hash=row.password_hash, role=row.role)
