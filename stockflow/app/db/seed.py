from __future__ import annotations

from sqlalchemy import select

from stockflow.app.core.config import Settings
from stockflow.app.db.session import Database
from stockflow.app.db.models.models_v1 import Employee, Item, Location
from stockflow.app.db.models.core_types import LocationKind

SEED_LOCATIONS = [
    ("FAB-01", "Atelier central", LocationKind.production),
    ("HUB-01", "Entrepôt principal", LocationKind.hub),
    ("STORE-01", "Boutique centre-ville", LocationKind.store),
]

SEED_ITEMS = [
    ("SKU-001", "Pain de mie", "unit"),
    ("SKU-002", "Croissant", "unit"),
]

SEED_EMPLOYEES = [
    ("EMP-001", "Livreur 1"),
]


def run_seed(database: Database) -> None:
    db = database.session()
    try:
        # 1) Locations (une PRODUCTION au minimum : propriétaire du batch LEGACY)
        for code, name, kind in SEED_LOCATIONS:
            if not db.scalar(select(Location).where(Location.code == code)):
                db.add(Location(code=code, name=name, kind=kind, active=True))

        # 2) Items
        for code, name, uom in SEED_ITEMS:
            if not db.scalar(select(Item).where(Item.code == code)):
                db.add(Item(code=code, name=name, uom=uom, active=True))

        # 3) Employés (livreurs des TO)
        for code, full_name in SEED_EMPLOYEES:
            if not db.scalar(select(Employee).where(Employee.code == code)):
                db.add(Employee(code=code, full_name=full_name, active=True))

        db.commit()
        print(f"SEED OK: locations={len(SEED_LOCATIONS)} items={len(SEED_ITEMS)} employees={len(SEED_EMPLOYEES)}")
    finally:
        db.close()


if __name__ == "__main__":
    database = Database(Settings.from_env())
    try:
        run_seed(database)
    finally:
        database.dispose()
