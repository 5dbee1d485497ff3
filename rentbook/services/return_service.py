import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session

from rentbook.core.exceptions import ConflictError, NotFoundError, ValidationError
from rentbook.core.unit_of_work import run_atomic
from rentbook.models.database import Booking, BookingStatus
from rentbook.services.stock_catalog import StockCatalog

logger = logging.getLogger(__name__)


class ReturnEngine:
    """
    Closes bookings and puts their owned stock back on the shelf.

    Only quantity - shortage is restored per line; the shortage part was
    never taken from the catalog. The status flip is a guarded UPDATE in
    the same transaction as the restoration, so a booking can be closed
    (and restored) at most once.
    """

    def __init__(self, db: Session):
        self.db = db
        self.catalog = StockCatalog(db)

    async def return_booking(self, business_id: int, booking_id: int) -> Booking:
        """Mark an active or overdue booking as returned. Repeated calls are no-ops."""
        return await run_atomic(
            self.db,
            lambda db: self._close(
                business_id, booking_id, BookingStatus.RETURNED, BookingStatus.OPEN
            ),
            label=f"return of booking {booking_id}",
        )

    async def cancel_booking(self, business_id: int, booking_id: int, reason: str = "") -> Booking:
        """Cancel an active booking. Cancelling a cancelled booking is a no-op."""
        return await run_atomic(
            self.db,
            lambda db: self._close(
                business_id, booking_id, BookingStatus.CANCELLED, (BookingStatus.ACTIVE,),
                reason=reason or "",
            ),
            label=f"cancellation of booking {booking_id}",
        )

    def _close(
        self,
        business_id: int,
        booking_id: int,
        new_status: str,
        from_statuses: Tuple[str, ...],
        reason: Optional[str] = None,
    ) -> Booking:
        booking = self.db.query(Booking).filter(
            Booking.business_id == business_id,
            Booking.id == booking_id
        ).first()
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")

        if booking.status == new_status:
            logger.info(f"Booking {booking_id} is already {new_status}, nothing to restore")
            return booking
        if booking.status not in from_statuses:
            if new_status == BookingStatus.CANCELLED:
                raise ValidationError(
                    f"Booking {booking_id} is {booking.status} and can no longer be cancelled"
                )
            logger.info(f"Booking {booking_id} is already {booking.status}, nothing to restore")
            return booking

        now = datetime.utcnow()
        values = {
            "status": new_status,
            "closed_at": now,
            "updated_at": now,
            "version": Booking.version + 1,
        }
        if reason is not None:
            values["cancellation_reason"] = reason

        update_count = self.db.execute(
            update(Booking)
            .where(Booking.id == booking.id, Booking.status == booking.status)
            .values(**values)
            .execution_options(synchronize_session=False)
        ).rowcount
        if update_count == 0:
            # Status moved under us; re-read and decide again
            raise ConflictError(f"Booking {booking_id} was modified by another transaction")

        for line in booking.line_items:
            if line.inventory_item_id is None or line.restorable <= 0:
                continue
            restored = self.catalog.apply_delta(business_id, line.inventory_item_id, line.restorable)
            if restored:
                logger.info(f"Restored {line.restorable} x {line.item_name} from booking {booking_id}")
            else:
                logger.info(f"{line.item_name} was deleted from the catalog, skipping restore")

        logger.info(f"Booking {booking_id} is now {new_status}")
        return booking
