import threading

from sqlalchemy import select

from stockflow.app.db.models.models_v1 import StockHistory
from stockflow.app.db.models.core_types import ReasonKind
from stockflow.app.schemas.orders import POCreate, POLineCreate, TOCreate, TOLineCreate
from stockflow.services.errors import DomainError, InsufficientStock
from stockflow.services.ledger import StockLedger
from stockflow.services.procurement import OrderWorkflow
from stockflow.services.transactions import run_in_transaction

ACTOR = "tester"


def _run_concurrently(*calls):
    """Lance les appels en parallèle (barrière commune), renvoie résultat ou exception par appel."""
    barrier = threading.Barrier(len(calls))
    outcomes = [None] * len(calls)

    def runner(idx, fn):
        barrier.wait()
        try:
            outcomes[idx] = fn()
        except DomainError as exc:
            outcomes[idx] = exc

    threads = [threading.Thread(target=runner, args=(i, fn)) for i, fn in enumerate(calls)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return outcomes


def test_two_concurrent_transfers_never_oversell(database, network, produce, db_session):
    """
    GIVEN batch de 10 à FAB
    WHEN  deux TO de 6 en parallèle
    THEN  un seul réussit (10 -> 4), l'autre InsufficientStock ; jamais < 0
    """
    fab, item = network["fab"], network["item_a"]
    batch = produce(fab, {item: 10})

    workflow = OrderWorkflow(database)
    po = workflow.create_purchase_order(
        POCreate(
            source_location_id=fab,
            destination_location_id=network["hub"],
            lines=[POLineCreate(item_id=item, requested_quantity=12)],
        ),
        ACTOR,
    )

    def ship():
        return workflow.create_transfer_order(
            TOCreate(
                purchase_order_id=po.id,
                employee_id=network["employee"],
                lines=[TOLineCreate(item_id=item, quantity=6)],
            ),
            ACTOR,
        )

    outcomes = _run_concurrently(ship, ship)

    successes = [o for o in outcomes if not isinstance(o, Exception)]
    failures = [o for o in outcomes if isinstance(o, Exception)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], InsufficientStock)

    assert db_session(lambda db: StockLedger(db).get_quantity(fab, item, batch.id)) == 4
    deltas = db_session(
        lambda db: db.execute(
            select(StockHistory.delta).where(StockHistory.reason == ReasonKind.transfer_out)
        ).scalars().all()
    )
    assert deltas == [-6]


def test_concurrent_legacy_batch_creation_converges(inventory, network):
    outcomes = _run_concurrently(
        lambda: inventory.ensure_legacy_batch(network["fab"]),
        lambda: inventory.ensure_legacy_batch(network["fab"]),
        lambda: inventory.ensure_legacy_batch(network["fab"]),
    )

    assert not any(isinstance(o, Exception) for o in outcomes)
    assert len({o.id for o in outcomes}) == 1


def test_concurrent_deltas_on_one_key_are_all_applied(database, network, produce, db_session):
    fab, item = network["fab"], network["item_a"]
    batch = produce(fab, {item: 1})

    def add_one():
        return run_in_transaction(
            database,
            lambda db: StockLedger(db).apply_delta(fab, item, batch.id, 1, ReasonKind.manual_adjustment, ACTOR),
        )

    outcomes = _run_concurrently(*[add_one] * 8)

    assert not any(isinstance(o, Exception) for o in outcomes)
    assert sorted(outcomes) == list(range(2, 10))
    assert db_session(lambda db: StockLedger(db).get_quantity(fab, item, batch.id)) == 9
    assert db_session(lambda db: StockLedger(db).replay(fab, item, batch.id)) == 9
