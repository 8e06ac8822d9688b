import pytest

from stockflow.services.allocation import BatchAllocator
from stockflow.services.errors import InsufficientStock, NotFoundError, ValidationError
from stockflow.services.ledger import StockLedger
from stockflow.app.db.models.core_types import ReasonKind
from stockflow.services.transactions import run_in_snapshot, run_in_transaction


def _allocate(database, *args, **kwargs):
    return run_in_snapshot(database, lambda db: BatchAllocator(StockLedger(db)).allocate(*args, **kwargs))


def _qty(database, loc, item, batch):
    return run_in_snapshot(database, lambda db: StockLedger(db).get_quantity(loc, item, batch))


def test_single_batch_allocation(database, network, produce):
    """
    GIVEN Stock(FAB, A, B001) = 10
    WHEN  allocate(FAB, A, 7)
    THEN  [(B001, 7)]
    """
    batch = produce(network["fab"], {network["item_a"]: 10}, label="B001")

    allocations = _allocate(database, network["fab"], network["item_a"], 7)

    assert [(a.batch_id, a.batch_label, a.quantity) for a in allocations] == [(batch.id, "B001", 7)]


def test_insufficient_total_fails_and_stock_unchanged(database, network, produce):
    batch = produce(network["fab"], {network["item_a"]: 10}, label="B001")

    with pytest.raises(InsufficientStock) as exc:
        _allocate(database, network["fab"], network["item_a"], 15)

    assert exc.value.details["available"] == 10
    assert exc.value.details["requested"] == 15
    assert _qty(database, network["fab"], network["item_a"], batch.id) == 10


def test_greedy_oldest_label_first_across_batches(database, network, produce):
    fab, item = network["fab"], network["item_a"]
    b2 = produce(fab, {item: 5}, label="B002")
    b1 = produce(fab, {item: 3}, label="B001")
    produce(fab, {item: 9}, label="B003")

    allocations = _allocate(database, fab, item, 6)

    assert [(a.batch_id, a.quantity) for a in allocations] == [(b1.id, 3), (b2.id, 3)]
    assert sum(a.quantity for a in allocations) == 6


def test_applying_allocation_reduces_availability_by_exactly_requested(database, network, produce):
    fab, item = network["fab"], network["item_a"]
    produce(fab, {item: 4}, label="B001")
    produce(fab, {item: 4}, label="B002")
    untouched = produce(fab, {item: 4}, label="B003")

    def work(db):
        ledger = StockLedger(db)
        allocations = BatchAllocator(ledger).allocate(fab, item, 6)
        for a in allocations:
            ledger.apply_delta(fab, item, a.batch_id, -a.quantity, ReasonKind.transfer_out, "tester")
        return allocations

    allocations = run_in_transaction(database, work)
    remaining = run_in_snapshot(database, lambda db: StockLedger(db).available_batches(fab, item))

    assert sum(b.quantity for b in remaining) == 12 - 6
    assert untouched.id not in {a.batch_id for a in allocations}
    assert _qty(database, fab, item, untouched.id) == 4


def test_explicit_batch(database, network, produce):
    fab, item = network["fab"], network["item_a"]
    produce(fab, {item: 10}, label="B001")
    b2 = produce(fab, {item: 2}, label="B002")

    allocations = _allocate(database, fab, item, 2, batch_id=b2.id)
    assert [(a.batch_id, a.quantity) for a in allocations] == [(b2.id, 2)]

    # B001 a assez, mais le batch imposé non
    with pytest.raises(InsufficientStock):
        _allocate(database, fab, item, 3, batch_id=b2.id)


def test_explicit_unknown_batch(database, network):
    with pytest.raises(NotFoundError):
        _allocate(database, network["fab"], network["item_a"], 1, batch_id=999_999)


@pytest.mark.parametrize("qty", [0, -4])
def test_non_positive_request_is_invalid(database, network, qty):
    with pytest.raises(ValidationError):
        _allocate(database, network["fab"], network["item_a"], qty)
