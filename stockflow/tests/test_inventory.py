from datetime import date

import pytest

from stockflow.app.db.models.core_types import ReasonKind
from stockflow.app.schemas.orders import POCreate, POLineCreate, ROCreate, ROLineCreate, TOCreate, TOLineCreate
from stockflow.app.schemas.stock import StockAdjust, StockHistoryFilter
from stockflow.services import reports
from stockflow.services.errors import NotFoundError

ACTOR = "tester"


def test_adjust_stock_sets_absolute_quantity(inventory, network, produce):
    batch = produce(network["fab"], {network["item_a"]: 10})

    qty = inventory.adjust_stock(
        StockAdjust(
            location_id=network["fab"],
            item_id=network["item_a"],
            batch_id=batch.id,
            new_quantity=7,
            note="casse inventaire",
        ),
        ACTOR,
    )

    assert qty == 7
    page = inventory.get_stock_history(StockHistoryFilter(reasons=[ReasonKind.manual_adjustment]))
    [row] = page.items
    assert (row.delta, row.previous_quantity, row.resulting_quantity) == (-3, 10, 7)
    assert row.note == "casse inventaire"
    assert row.actor_id == ACTOR


def test_adjust_stock_unchanged_is_noop(inventory, network, produce):
    batch = produce(network["fab"], {network["item_a"]: 10})

    qty = inventory.adjust_stock(
        StockAdjust(location_id=network["fab"], item_id=network["item_a"], batch_id=batch.id, new_quantity=10, note="ras"),
        ACTOR,
    )

    assert qty == 10
    assert inventory.get_stock_history(StockHistoryFilter(reasons=[ReasonKind.manual_adjustment])).total == 0


def test_adjust_stock_unknown_batch(inventory, network):
    with pytest.raises(NotFoundError):
        inventory.adjust_stock(
            StockAdjust(location_id=network["fab"], item_id=network["item_a"], batch_id=555, new_quantity=1, note="abc"),
            ACTOR,
        )


def test_get_stock_groups_by_item_with_batches(inventory, network, produce):
    fab, a, b = network["fab"], network["item_a"], network["item_b"]
    produce(fab, {a: 4, b: 1}, label="B001")
    produce(fab, {a: 6}, label="B002")

    stock = inventory.get_stock(fab)

    by_item = {s.item_id: s for s in stock}
    assert by_item[a].total_quantity == 10
    assert [bb.batch_label for bb in by_item[a].batches] == ["B001", "B002"]
    assert by_item[b].total_quantity == 1
    assert [s.item_id for s in inventory.get_stock(fab, item_id=b)] == [b]


def test_available_batches_unknown_location(inventory, network):
    with pytest.raises(NotFoundError):
        inventory.get_available_batches(99999, network["item_a"])


def test_reports(database, workflow, network, produce):
    fab, hub, a = network["fab"], network["hub"], network["item_a"]
    batch = produce(fab, {a: 10}, production_date=date(2026, 1, 15))
    po = workflow.create_purchase_order(
        POCreate(source_location_id=fab, destination_location_id=hub, lines=[POLineCreate(item_id=a, requested_quantity=5)]),
        ACTOR,
    )
    to = workflow.create_transfer_order(
        TOCreate(purchase_order_id=po.id, employee_id=network["employee"], lines=[TOLineCreate(item_id=a, quantity=5)]),
        ACTOR,
    )

    [pending] = reports.transfer_history(database)
    assert (pending.to_number, pending.shipped_quantity, pending.received_quantity) == (to.to_number, 5, None)

    workflow.create_receive_order(
        ROCreate(transfer_order_id=to.id, lines=[ROLineCreate(item_id=a, batch_id=batch.id, received_quantity=4)]),
        ACTOR,
    )

    [done] = reports.transfer_history(database, hub)
    assert (done.po_number, done.received_quantity) == (po.po_number, 4)
    assert done.source_location_code == "FAB-01"

    levels = reports.stock_levels(database)
    assert {(r.location_code, r.quantity) for r in levels} == {("FAB-01", 5), ("HUB-01", 4)}

    [prod] = reports.production_summary(database, fab)
    assert (prod.batch_label, prod.quantity, prod.production_date) == ("B001", 10, date(2026, 1, 15))
