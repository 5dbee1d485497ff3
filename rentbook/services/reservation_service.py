import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from rentbook.core.exceptions import ConflictError
from rentbook.core.unit_of_work import run_atomic
from rentbook.models.database import StockItem
from rentbook.services.stock_catalog import StockCatalog, validate_line_requests

logger = logging.getLogger(__name__)


@dataclass
class ReservedLine:
    """A requested line after it has been matched against the catalog"""
    item_id: Optional[int]
    item_name: str
    quantity: int
    unit_price: float
    shortage: int

    @property
    def deduction(self) -> int:
        return self.quantity - self.shortage


class ReservationEngine:
    """
    Deducts requested quantities from the catalog, recording what could not
    be covered as shortage instead of rejecting the request.

    Deductions use optimistic concurrency control: each stock row is read
    with its version and written back with UPDATE ... WHERE version =
    :expected. A row changed by someone else makes the whole reservation
    roll back and start over from a fresh read.
    """

    def __init__(self, db: Session):
        self.db = db
        self.catalog = StockCatalog(db)

    async def reserve(self, business_id: int, requests: Iterable) -> List[ReservedLine]:
        """Reserve stock for the requested lines and commit the deductions"""
        requests = list(requests)
        validate_line_requests(requests)
        return await run_atomic(
            self.db,
            lambda db: self.apply(business_id, requests),
            label=f"reservation for business {business_id}",
        )

    def apply(self, business_id: int, requests: Iterable) -> List[ReservedLine]:
        """
        Single reservation attempt. Writes the deductions but leaves the
        commit to the caller, so a booking record can join the same
        transaction.
        """
        snapshots = {}
        lines = []

        # Step 1: Read stock with current versions and work out shortages
        for request in requests:
            item = self.catalog.resolve(business_id, request)

            if item is None:
                # Not stocked at all: the whole quantity is borrowed elsewhere
                name = (request.item_name or "").strip() or f"#{request.item_id}"
                lines.append(ReservedLine(
                    item_id=None,
                    item_name=name,
                    quantity=request.quantity,
                    unit_price=request.unit_price or 0.0,
                    shortage=request.quantity,
                ))
                logger.info(f"{name} is not in the catalog, recording {request.quantity} as shortage")
                continue

            snapshot = snapshots.get(item.id)
            if snapshot is None:
                snapshot = {
                    'item_id': item.id,
                    'name': item.name,
                    'original_version': item.version,
                    'original_available': item.available_quantity,
                    'deducted': 0,
                }
                snapshots[item.id] = snapshot

            on_hand = snapshot['original_available'] - snapshot['deducted']
            shortage = max(0, request.quantity - on_hand)
            snapshot['deducted'] += request.quantity - shortage

            lines.append(ReservedLine(
                item_id=item.id,
                item_name=item.name,
                quantity=request.quantity,
                unit_price=item.price,
                shortage=shortage,
            ))
            if shortage:
                logger.info(
                    f"Overbooking {item.name}: requested {request.quantity}, "
                    f"on hand {on_hand}, shortage {shortage}"
                )

        # Step 2: Write deductions, only if nobody changed the rows we read
        for snapshot in snapshots.values():
            self._write_deduction(snapshot)

        return lines

    def _write_deduction(self, snapshot: dict) -> None:
        new_available = snapshot['original_available'] - snapshot['deducted']
        new_version = snapshot['original_version'] + 1

        update_count = self.db.execute(
            update(StockItem)
            .where(
                StockItem.id == snapshot['item_id'],
                StockItem.version == snapshot['original_version']
            )
            .values(
                available_quantity=new_available,
                version=new_version,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        ).rowcount

        if update_count == 0:
            # Version changed - another transaction updated this row
            raise ConflictError(
                f"Stock item {snapshot['name']} was modified by another transaction"
            )

        logger.info(
            f"Reserved {snapshot['deducted']} x {snapshot['name']}: "
            f"available = {new_available} (version {new_version})"
        )
