import itertools
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from stockflow.app.core.config import Settings
from stockflow.app.db.session import Database
from stockflow.app.db.models.models_v1 import Employee, Item, LegacyStockLevel, Location
from stockflow.app.db.models.core_types import LocationKind
from stockflow.app.main import create_app
from stockflow.app.schemas.production import BatchLineCreate, ProductionBatchCreate
from stockflow.services.inventory import InventoryService
from stockflow.services.procurement import OrderWorkflow
from stockflow.services.transactions import run_in_snapshot, run_in_transaction

ACTOR = "tester"


@pytest.fixture(scope="function")
def database(tmp_path) -> Database:
    """
    Base SQLite fichier, neuve pour chaque test.

    Fichier (et non :memory:) : les tests de concurrence ouvrent
    plusieurs connexions sur la même base.
    """
    settings = Settings(
        database_url=f"sqlite:///{tmp_path / 'stockflow.db'}",
        storage_retry_attempts=3,
        storage_retry_backoff_ms=10,
        lock_timeout_ms=10_000,
    )
    db = Database(settings)
    db.create_all()
    try:
        yield db
    finally:
        db.dispose()


@pytest.fixture(scope="function")
def db_session(database):
    """
    Lecture pour les ASSERT : exécute work(session) dans un snapshot court.

    Jamais de session longue ouverte pendant le test (SQLite sérialise
    les transactions, une session oubliée bloquerait les services).
    """

    def _read(work):
        return run_in_snapshot(database, work)

    return _read


class MasterData:
    """Fabrique de données de référence : chaque appel commit et renvoie l'id."""

    def __init__(self, database: Database):
        self.database = database
        self._seq = itertools.count(1)

    def _add(self, obj) -> int:
        def work(db: Session) -> int:
            db.add(obj)
            db.flush()
            return int(obj.id)

        return run_in_transaction(self.database, work)

    def location(self, kind: LocationKind = LocationKind.hub, *, code: str | None = None, active: bool = True) -> int:
        n = next(self._seq)
        code = code or f"{kind.value}-{n}"
        return self._add(Location(code=code, name=f"Location {code}", kind=kind, active=active))

    def item(self, *, code: str | None = None, active: bool = True) -> int:
        n = next(self._seq)
        code = code or f"SKU-{n:03d}"
        return self._add(Item(code=code, name=f"Item {code}", uom="unit", active=active))

    def employee(self, *, active: bool = True) -> int:
        n = next(self._seq)
        return self._add(Employee(code=f"EMP-{n:03d}", full_name=f"Employee {n}", active=active))

    def legacy_stock(self, location_id: int, item_id: int, quantity: int) -> int:
        return self._add(LegacyStockLevel(location_id=location_id, item_id=item_id, quantity=quantity))


@pytest.fixture(scope="function")
def master(database) -> MasterData:
    return MasterData(database)


@pytest.fixture(scope="function")
def inventory(database) -> InventoryService:
    return InventoryService(database)


@pytest.fixture(scope="function")
def workflow(database) -> OrderWorkflow:
    return OrderWorkflow(database)


@pytest.fixture(scope="function")
def network(master):
    """
    Réseau minimal : FAB (production) -> HUB -> STORE, deux items, un livreur.
    """
    return {
        "fab": master.location(LocationKind.production, code="FAB-01"),
        "hub": master.location(LocationKind.hub, code="HUB-01"),
        "store": master.location(LocationKind.store, code="STORE-01"),
        "item_a": master.item(code="SKU-A"),
        "item_b": master.item(code="SKU-B"),
        "employee": master.employee(),
    }


@pytest.fixture(scope="function")
def produce(inventory):
    """produce(location_id, {item_id: qty}, label=None) -> BatchRead"""

    def _produce(location_id: int, quantities: dict, label: str | None = None, production_date: date | None = None):
        return inventory.create_production_batch(
            ProductionBatchCreate(
                location_id=location_id,
                label=label,
                production_date=production_date,
                lines=[BatchLineCreate(item_id=i, quantity=q) for i, q in quantities.items()],
            ),
            ACTOR,
        )

    return _produce


@pytest.fixture(scope="function")
def client(database):
    app = create_app(database)
    with TestClient(app) as c:
        yield c
