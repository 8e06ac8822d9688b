"""
Contrôles d'existence sur les données de référence (locations, items, employés).

Le CRUD de ces tables est hors périmètre : le noyau ne fait que vérifier
(fail fast, message clair) avant d'écrire quoi que ce soit.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from stockflow.app.db.models.models_v1 import Employee, Item, Location
from stockflow.app.db.models.core_types import LocationKind
from stockflow.services.errors import NotFoundError, ValidationError


def require_location(
    db: Session,
    location_id: int,
    *,
    kind: LocationKind | None = None,
    must_be_active: bool = True,
) -> Location:
    loc = db.get(Location, location_id)
    if not loc:
        raise NotFoundError(f"Location {location_id} not found", location_id=location_id)
    if must_be_active and not loc.active:
        raise ValidationError(f"Location {loc.code} is inactive", location_id=location_id)
    if kind is not None and loc.kind != kind:
        raise ValidationError(
            f"Location {loc.code} is not a {kind.value} location",
            location_id=location_id,
            kind=loc.kind.value,
        )
    return loc


def require_item(db: Session, item_id: int, *, must_be_active: bool = True) -> Item:
    item = db.get(Item, item_id)
    if not item:
        raise NotFoundError(f"Item {item_id} not found", item_id=item_id)
    if must_be_active and not item.active:
        raise ValidationError(f"Item {item.code} is inactive", item_id=item_id)
    return item


def require_employee(db: Session, employee_id: int) -> Employee:
    emp = db.get(Employee, employee_id)
    if not emp:
        raise NotFoundError(f"Employee {employee_id} not found", employee_id=employee_id)
    if not emp.active:
        raise ValidationError(f"Employee {emp.code} is inactive", employee_id=employee_id)
    return emp
