"""Unit tests for fleet/repository.py -- repositories and the unit of work.

Covers:
- add() assigns the id only when save_changes() flushes
- unsaved writes are discarded when the unit of work closes
- get_all()/get_paged()/find()/exists()/count()
- update() and delete() semantics, including missing ids
- explicit transactions: commit, rollback, and misuse errors
- case-insensitive administrator lookup by email
"""

import pytest

from conftest import make_test_database
from core.errors import InvalidOperationError
from fleet.models import Administrator, Vehicle
from fleet.repository import Repository

# ---------------------------------------------------------------------------
# Shared fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db():
    d = make_test_database()
    yield d
    d.close()


def _seed_vehicles(db, count: int) -> None:
    with db.unit_of_work() as uow:
        for i in range(count):
            uow.vehicles.add(Vehicle(name=f"Carro {i}", brand="Fiat" if i % 2 else "Ford", year=2000 + i))
        uow.save_changes()


# ---------------------------------------------------------------------------
# Buffered writes
# ---------------------------------------------------------------------------


def test_add_assigns_id_on_save(db):
    with db.unit_of_work() as uow:
        vehicle = uow.vehicles.add(Vehicle(name="Gol", brand="VW", year=2020))
        assert vehicle.id is None
        assert uow.has_pending_changes
        assert uow.save_changes() == 1
        assert vehicle.id is not None
        assert not uow.has_pending_changes

    with db.unit_of_work() as uow:
        assert uow.vehicles.get_by_id(vehicle.id) == vehicle


def test_unsaved_writes_are_discarded(db):
    with db.unit_of_work() as uow:
        uow.vehicles.add(Vehicle(name="Gol", brand="VW", year=2020))

    with db.unit_of_work() as uow:
        assert uow.vehicles.count() == 0


def test_save_without_changes_is_noop(db):
    with db.unit_of_work() as uow:
        assert uow.save_changes() == 0


def test_update_and_delete(db):
    _seed_vehicles(db, 1)
    with db.unit_of_work() as uow:
        vehicle = uow.vehicles.get_by_id(1)
        vehicle.name = "Polo"
        uow.vehicles.update(vehicle)
        uow.save_changes()

    with db.unit_of_work() as uow:
        assert uow.vehicles.get_by_id(1).name == "Polo"
        assert uow.vehicles.delete(1) is True
        uow.save_changes()

    with db.unit_of_work() as uow:
        assert not uow.vehicles.exists(1)
        assert uow.vehicles.delete(1) is False


def test_update_without_id_raises(db):
    with db.unit_of_work() as uow:
        with pytest.raises(InvalidOperationError):
            uow.vehicles.update(Vehicle(name="Gol", brand="VW", year=2020))


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def test_get_paged_orders_by_id(db):
    _seed_vehicles(db, 25)
    with db.unit_of_work() as uow:
        assert [v.id for v in uow.vehicles.get_paged(1, 10)] == list(range(1, 11))
        assert [v.id for v in uow.vehicles.get_paged(3, 10)] == list(range(21, 26))
        assert uow.vehicles.get_paged(4, 10) == []
        assert len(uow.vehicles.get_all()) == uow.vehicles.count() == 25


def test_find_by_criteria(db):
    _seed_vehicles(db, 6)
    with db.unit_of_work() as uow:
        c = uow.vehicles.c
        fords = uow.vehicles.find(c.brand == "Ford")
        assert [v.name for v in fords] == ["Carro 0", "Carro 2", "Carro 4"]
        assert uow.vehicles.find(c.brand == "Ford", c.year > 2002) == [fords[2]]


def test_get_by_email_ignores_case(db):
    with db.unit_of_work() as uow:
        uow.administrators.add(Administrator(email="Adm@Teste.com", password_hash="x", role="Adm"))
        uow.save_changes()
    with db.unit_of_work() as uow:
        found = uow.administrators.get_by_email("adm@teste.COM")
        assert found is not None
        assert found.role == "Adm"
        assert uow.administrators.get_by_email("other@teste.com") is None


# ---------------------------------------------------------------------------
# Explicit transactions
# ---------------------------------------------------------------------------


def test_commit_transaction_persists(db):
    with db.unit_of_work() as uow:
        uow.begin_transaction()
        assert uow.in_transaction
        uow.vehicles.add(Vehicle(name="Gol", brand="VW", year=2020))
        uow.vehicles.add(Vehicle(name="Uno", brand="Fiat", year=2010))
        uow.save_changes()
        uow.commit_transaction()
        assert not uow.in_transaction

    with db.unit_of_work() as uow:
        assert uow.vehicles.count() == 2


def test_rollback_transaction_discards_saved_writes(db):
    with db.unit_of_work() as uow:
        uow.begin_transaction()
        uow.vehicles.add(Vehicle(name="Gol", brand="VW", year=2020))
        uow.save_changes()
        uow.rollback_transaction()

    with db.unit_of_work() as uow:
        assert uow.vehicles.count() == 0


def test_open_transaction_is_rolled_back_on_close(db):
    with db.unit_of_work() as uow:
        uow.begin_transaction()
        uow.vehicles.add(Vehicle(name="Gol", brand="VW", year=2020))
        uow.save_changes()

    with db.unit_of_work() as uow:
        assert uow.vehicles.count() == 0


def test_transaction_misuse_raises(db):
    with db.unit_of_work() as uow:
        with pytest.raises(InvalidOperationError):
            uow.commit_transaction()
        with pytest.raises(InvalidOperationError):
            uow.rollback_transaction()
        uow.begin_transaction()
        with pytest.raises(InvalidOperationError):
            uow.begin_transaction()


def test_can_connect(db):
    assert db.can_connect() is True


def test_repository_without_mappers_cannot_be_created(db):
    class Unmapped(Repository[Vehicle]):
        entity_name = "unmapped"

    with db.unit_of_work() as uow:
        with pytest.raises(TypeError):
            Unmapped(uow)
