from __future__ import annotations

from stockflow.app.db.models.models_v1 import Batch
from stockflow.app.schemas.stock import Allocation
from stockflow.services.errors import InsufficientStock, NotFoundError, ValidationError
from stockflow.services.ledger import StockLedger


class BatchAllocator:
    """
    Choisit les batches à consommer pour (location, item, quantité).

    Lecture seule : ne modifie jamais le ledger. Les lignes candidates sont
    verrouillées (FOR UPDATE) pour que le décrément qui suit ne puisse pas
    échouer dans la même transaction.
    """

    def __init__(self, ledger: StockLedger):
        self.ledger = ledger

    def allocate(
        self,
        location_id: int,
        item_id: int,
        requested_quantity: int,
        batch_id: int | None = None,
    ) -> list[Allocation]:
        if requested_quantity <= 0:
            raise ValidationError(
                "requested_quantity must be positive",
                requested=requested_quantity,
            )

        if batch_id is not None:
            return [self._allocate_explicit(location_id, item_id, requested_quantity, batch_id)]

        balances = self.ledger.available_batches(location_id, item_id, lock=True)

        # FIFO : label de batch croissant
        allocations: list[Allocation] = []
        remaining = requested_quantity
        for bal in balances:
            if remaining == 0:
                break
            take = min(bal.quantity, remaining)
            allocations.append(Allocation(batch_id=bal.batch_id, batch_label=bal.batch_label, quantity=take))
            remaining -= take

        if remaining > 0:
            available = sum(b.quantity for b in balances)
            raise InsufficientStock(
                f"Insufficient stock for item {item_id} (available={available}, requested={requested_quantity})",
                location_id=location_id,
                item_id=item_id,
                available=available,
                requested=requested_quantity,
            )
        return allocations

    def _allocate_explicit(
        self,
        location_id: int,
        item_id: int,
        requested_quantity: int,
        batch_id: int,
    ) -> Allocation:
        batch = self.ledger.db.get(Batch, batch_id)
        if batch is None:
            raise NotFoundError(f"Batch {batch_id} not found", batch_id=batch_id)

        available = self.ledger.get_quantity(location_id, item_id, batch_id, lock=True)
        if available < requested_quantity:
            raise InsufficientStock(
                f"Insufficient stock for item {item_id} in batch {batch.label} "
                f"(available={available}, requested={requested_quantity})",
                location_id=location_id,
                item_id=item_id,
                batch_id=batch_id,
                available=available,
                requested=requested_quantity,
            )
        return Allocation(batch_id=batch.id, batch_label=batch.label, quantity=requested_quantity)
