import pytest
from sqlalchemy.exc import OperationalError

from stockflow.app.db.models.core_types import ReasonKind
from stockflow.services.errors import ConflictError, InsufficientStock, NotFoundError, StorageUnavailable
from stockflow.services.ledger import StockLedger
from stockflow.services.transactions import run_in_transaction


def _locked():
    return OperationalError("UPDATE stock SET quantity=?", {}, Exception("database is locked"))


def test_operational_error_is_retried_then_storage_unavailable(database):
    calls = []

    def work(db):
        calls.append(db)
        raise _locked()

    with pytest.raises(StorageUnavailable) as exc:
        run_in_transaction(database, work)

    assert len(calls) == database.settings.storage_retry_attempts == 3
    assert exc.value.details["attempts"] == 3
    assert isinstance(exc.value.__cause__, OperationalError)


def test_transient_operational_error_then_success(database):
    calls = []

    def work(db):
        calls.append(db)
        if len(calls) == 1:
            raise _locked()
        return "ok"

    assert run_in_transaction(database, work) == "ok"
    assert len(calls) == 2


def test_domain_error_is_never_retried(database, network, produce):
    batch = produce(network["fab"], {network["item_a"]: 1})
    calls = []

    def work(db):
        calls.append(db)
        return StockLedger(db).apply_delta(network["hub"], network["item_a"], batch.id, -1, ReasonKind.manual_adjustment, "tester")

    with pytest.raises(InsufficientStock):
        run_in_transaction(database, work)

    assert len(calls) == 1


def test_unknown_reference_is_not_found(database, network):
    with pytest.raises(NotFoundError):
        run_in_transaction(
            database,
            lambda db: StockLedger(db).apply_delta(
                network["hub"], network["item_a"], 424242, 5, ReasonKind.manual_adjustment, "tester"
            ),
        )


def test_unique_violation_stays_a_conflict(database, master):
    code = "DUP-01"
    master.location(code=code)

    with pytest.raises(ConflictError):
        master.location(code=code)
