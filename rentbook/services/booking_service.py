import logging
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy import or_, update
from sqlalchemy.orm import Session, selectinload

from rentbook.core.exceptions import NotFoundError, ValidationError
from rentbook.core.locks import inventory_lock_key, inventory_locks
from rentbook.core.unit_of_work import commit_or_raise, run_atomic
from rentbook.models.database import Booking, BookingLineItem, BookingStatus, Business, StockItem
from rentbook.models.schemas import BookingCreate
from rentbook.services.reservation_service import ReservationEngine
from rentbook.services.return_service import ReturnEngine
from rentbook.services.stock_catalog import validate_line_requests

logger = logging.getLogger(__name__)


class BookingService:
    """
    Booking lifecycle for one business: create (reserving stock), read,
    return, cancel and the overdue sweep.
    """

    def __init__(self, db: Session, redis_client=None):
        self.db = db
        self.redis_client = redis_client
        self.reservations = ReservationEngine(db)
        self.returns = ReturnEngine(db)

    async def create_booking(
        self,
        business_id: int,
        booking_data: BookingCreate,
        created_by: Optional[str] = None,
    ) -> Booking:
        """
        Reserve stock for the booking's items and store the booking.

        The deductions and the booking row commit in one transaction. Items
        that are short are recorded on the line item, never rejected.
        """
        self._validate(booking_data)
        if not self.db.query(Business).filter(Business.id == business_id).first():
            raise NotFoundError(f"Business {business_id} not found")

        lock_keys = [
            inventory_lock_key(business_id, str(item.id))
            for item in self._stocked_items(business_id, booking_data.items)
        ]
        # Rows loaded above are re-read once the locks are held
        self.db.expire_all()

        logger.info(f"Creating booking '{booking_data.event_name}' for business {business_id}")
        with inventory_locks(self.redis_client, lock_keys):
            booking = await run_atomic(
                self.db,
                lambda db: self._create_attempt(business_id, booking_data, created_by),
                label=f"booking for {booking_data.client_name}",
            )

        logger.info(
            f"Booking {booking.id} created with {len(booking.line_items)} items"
            f"{' (overbooked)' if booking.has_shortage else ''}"
        )
        return booking

    def _create_attempt(
        self,
        business_id: int,
        booking_data: BookingCreate,
        created_by: Optional[str],
    ) -> Booking:
        lines = self.reservations.apply(business_id, booking_data.items)

        total_amount = booking_data.total_amount
        if total_amount is None:
            total_amount = round(sum(line.quantity * line.unit_price for line in lines), 2)

        booking = Booking(
            business_id=business_id,
            event_name=booking_data.event_name.strip(),
            client_name=booking_data.client_name.strip(),
            client_phone=booking_data.client_phone or "",
            client_email=booking_data.client_email or "",
            event_date=booking_data.event_date,
            return_date=booking_data.return_date or booking_data.event_date,
            location=booking_data.location or "",
            notes=booking_data.notes or "",
            total_amount=total_amount,
            amount_paid=booking_data.amount_paid or 0.0,
            status=BookingStatus.ACTIVE,
            created_by=created_by or booking_data.created_by,
            line_items=[
                BookingLineItem(
                    inventory_item_id=line.item_id,
                    item_name=line.item_name,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    shortage=line.shortage,
                )
                for line in lines
            ],
        )
        self.db.add(booking)
        self.db.flush()
        return booking

    def _stocked_items(self, business_id: int, requests) -> List[StockItem]:
        """Catalog rows the request touches, however each line names them"""
        items = {}
        for request in requests:
            item = self.reservations.catalog.resolve(business_id, request)
            if item is not None:
                items[item.id] = item
        return list(items.values())

    def _validate(self, booking_data: BookingCreate) -> None:

        if not (booking_data.event_name or "").strip():
            raise ValidationError("Event name is required")
        if not (booking_data.client_name or "").strip():
            raise ValidationError("Client name is required")
        if booking_data.event_date is None:
            raise ValidationError("Event date is required")
        if booking_data.return_date and booking_data.return_date < booking_data.event_date:
            raise ValidationError("Return date cannot be before the event date")
        if booking_data.amount_paid is not None and booking_data.amount_paid < 0:
            raise ValidationError("Amount paid cannot be negative")
        if booking_data.total_amount is not None and booking_data.total_amount < 0:
            raise ValidationError("Total amount cannot be negative")
        validate_line_requests(booking_data.items)

    async def return_booking(self, business_id: int, booking_id: int) -> Booking:
        return await self.returns.return_booking(business_id, booking_id)

    async def cancel_booking(self, business_id: int, booking_id: int, reason: str = "") -> Booking:
        return await self.returns.cancel_booking(business_id, booking_id, reason)

    def get_booking(self, business_id: int, booking_id: int) -> Booking:
        booking = self._query(business_id).filter(Booking.id == booking_id).first()
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    def delete_booking(self, business_id: int, booking_id: int) -> None:
        """Hard delete. Stock is not restored; use return or cancel for that."""
        booking = self.get_booking(business_id, booking_id)
        self.db.delete(booking)
        commit_or_raise(self.db, label=f"deletion of booking {booking_id}")
        logger.info(f"Deleted booking {booking_id} without restoring inventory")

    def sweep_overdue(self, business_id: Optional[int] = None, today: Optional[date] = None) -> int:
        """
        Relabel active bookings whose return date has passed as overdue.

        Touches only the status column, so it is safe to run alongside
        reservations and returns. Returns the number of bookings relabelled.
        """
        today = today or date.today()
        statement = (
            update(Booking)
            .where(Booking.status == BookingStatus.ACTIVE, Booking.return_date < today)
            .values(status=BookingStatus.OVERDUE, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if business_id is not None:
            statement = statement.where(Booking.business_id == business_id)

        update_count = self.db.execute(statement).rowcount
        commit_or_raise(self.db, label="overdue sweep")
        if update_count:
            logger.info(f"Marked {update_count} bookings as overdue")
        return update_count

    def list_bookings(
        self,
        business_id: int,
        status: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        today: Optional[date] = None,
    ) -> List[Booking]:
        if status is not None and status not in BookingStatus.ALL:
            raise ValidationError(f"Unknown booking status '{status}'")
        self.sweep_overdue(business_id, today=today)

        query = self._query(business_id)
        if status:
            query = query.filter(Booking.status == status)
        if start_date:
            query = query.filter(Booking.event_date >= start_date)
        if end_date:
            query = query.filter(Booking.event_date <= end_date)
        return query.order_by(Booking.event_date.desc(), Booking.id.desc()).all()

    def search_bookings(self, business_id: int, term: str) -> List[Booking]:
        """Case-insensitive match on client or event name"""
        pattern = f"%{(term or '').strip()}%"
        return self._query(business_id).filter(
            or_(Booking.client_name.ilike(pattern), Booking.event_name.ilike(pattern))
        ).order_by(Booking.event_date.desc()).all()

    def recent_bookings(self, business_id: int, limit: int = 10) -> List[Booking]:
        return self._query(business_id).order_by(
            Booking.created_at.desc(), Booking.id.desc()
        ).limit(limit).all()

    def upcoming_bookings(self, business_id: int, days: int = 7, today: Optional[date] = None) -> List[Booking]:
        today = today or date.today()
        return self._query(business_id).filter(
            Booking.status == BookingStatus.ACTIVE,
            Booking.event_date >= today,
            Booking.event_date <= today + timedelta(days=days)
        ).order_by(Booking.event_date.asc()).all()

    def todays_bookings(self, business_id: int, today: Optional[date] = None) -> List[Booking]:
        return self.upcoming_bookings(business_id, days=0, today=today)

    def overbooked_bookings(self, business_id: int) -> List[Booking]:
        """Open bookings with at least one line that had to be borrowed"""
        return self._query(business_id).filter(
            Booking.status.in_(BookingStatus.OPEN),
            Booking.line_items.any(BookingLineItem.shortage > 0)
        ).order_by(Booking.event_date.asc()).all()

    def booking_stats(self, business_id: int, today: Optional[date] = None) -> dict:
        bookings = self.list_bookings(business_id, today=today)
        return {
            "total": len(bookings),
            "active": sum(1 for b in bookings if b.status == BookingStatus.ACTIVE),
            "returned": sum(1 for b in bookings if b.status == BookingStatus.RETURNED),
            "overdue": sum(1 for b in bookings if b.status == BookingStatus.OVERDUE),
            "cancelled": sum(1 for b in bookings if b.status == BookingStatus.CANCELLED),
            "total_revenue": round(sum(b.amount_paid or 0.0 for b in bookings), 2),
            "pending_payments": sum(
                1 for b in bookings
                if b.status != BookingStatus.CANCELLED and b.payment_status != "paid"
            ),
        }

    def _query(self, business_id: int):
        return self.db.query(Booking).options(
            selectinload(Booking.line_items)
        ).filter(Booking.business_id == business_id)
