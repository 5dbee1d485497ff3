import logging
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from rentbook.core.exceptions import NotFoundError, ValidationError
from rentbook.core.unit_of_work import commit_or_raise
from rentbook.models.database import Booking, BorrowedItem, Business, ExternalRental, RentalStatus
from rentbook.models.schemas import BorrowedItemCreate, ExternalRentalCreate
from rentbook.services.stock_catalog import StockCatalog

logger = logging.getLogger(__name__)


class RentalService:
    """
    Rental-to-rental ledger: stock lent out to other rental businesses and
    stock borrowed from them, usually to cover a booking's shortage.

    These records track the arrangement only. Catalog quantities are not
    touched; borrowed stock was never part of the catalog, and a booking's
    shortage already accounts for it.
    """

    def __init__(self, db: Session):
        self.db = db
        self.catalog = StockCatalog(db)

    def add_external_rental(self, business_id: int, rental_data: ExternalRentalCreate) -> ExternalRental:
        self._require_business(business_id)

        item = None
        if rental_data.item_id is not None:
            item = self.catalog.get(business_id, rental_data.item_id)
        elif rental_data.item_name:
            item = self.catalog.find_by_name(business_id, rental_data.item_name)
        item_name = item.name if item else (rental_data.item_name or "").strip()

        self._validate(item_name, rental_data.quantity, rental_data.rented_to, "Rented to")
        self._validate_dates(rental_data.rental_date, rental_data.return_date)

        rental = ExternalRental(
            business_id=business_id,
            inventory_item_id=item.id if item else None,
            item_name=item_name,
            quantity=rental_data.quantity,
            rented_to=rental_data.rented_to.strip(),
            contact_person=rental_data.contact_person or "",
            contact_phone=rental_data.contact_phone or "",
            rental_date=rental_data.rental_date,
            return_date=rental_data.return_date,
            status=RentalStatus.ACTIVE,
            notes=rental_data.notes or "",
        )
        self.db.add(rental)
        commit_or_raise(self.db, label="external rental")
        self.db.refresh(rental)

        logger.info(f"Lent {rental.quantity} x {rental.item_name} to {rental.rented_to} until {rental.return_date}")
        return rental

    def add_borrowed_item(self, business_id: int, borrow_data: BorrowedItemCreate) -> BorrowedItem:
        self._require_business(business_id)
        self._validate(borrow_data.item_name, borrow_data.quantity, borrow_data.borrowed_from, "Borrowed from")
        self._validate_dates(borrow_data.borrow_date, borrow_data.return_date)

        event_name = borrow_data.event_name or ""
        if borrow_data.booking_id is not None:
            booking = self.db.query(Booking).filter(
                Booking.business_id == business_id,
                Booking.id == borrow_data.booking_id
            ).first()
            if not booking:
                raise NotFoundError(f"Booking {borrow_data.booking_id} not found")
            event_name = event_name or booking.event_name

        borrowed = BorrowedItem(
            business_id=business_id,
            booking_id=borrow_data.booking_id,
            item_name=borrow_data.item_name.strip(),
            quantity=borrow_data.quantity,
            borrowed_from=borrow_data.borrowed_from.strip(),
            contact_person=borrow_data.contact_person or "",
            contact_phone=borrow_data.contact_phone or "",
            borrow_date=borrow_data.borrow_date,
            return_date=borrow_data.return_date,
            event_name=event_name,
            status=RentalStatus.ACTIVE,
            notes=borrow_data.notes or "",
        )
        self.db.add(borrowed)
        commit_or_raise(self.db, label="borrowed item")
        self.db.refresh(borrowed)

        logger.info(
            f"Borrowed {borrowed.quantity} x {borrowed.item_name} from {borrowed.borrowed_from} "
            f"until {borrowed.return_date}"
        )
        return borrowed

    def list_external_rentals(
        self,
        business_id: int,
        status: Optional[str] = None,
        today: Optional[date] = None,
    ) -> List[ExternalRental]:
        """Soonest return first; overdue records are relabelled before reading"""
        return self._list(ExternalRental, business_id, status, today)

    def list_borrowed_items(
        self,
        business_id: int,
        status: Optional[str] = None,
        booking_id: Optional[int] = None,
        today: Optional[date] = None,
    ) -> List[BorrowedItem]:
        query = self._list_query(BorrowedItem, business_id, status, today)
        if booking_id is not None:
            query = query.filter(BorrowedItem.booking_id == booking_id)
        return query.order_by(BorrowedItem.return_date.asc(), BorrowedItem.id.asc()).all()

    def get_external_rental(self, business_id: int, rental_id: int) -> ExternalRental:
        return self._get(ExternalRental, business_id, rental_id, "External rental")

    def get_borrowed_item(self, business_id: int, borrow_id: int) -> BorrowedItem:
        return self._get(BorrowedItem, business_id, borrow_id, "Borrowed item")

    def update_external_rental(self, business_id: int, rental_id: int, **changes) -> ExternalRental:
        rental = self.get_external_rental(business_id, rental_id)
        return self._update(rental, rental.rental_date, "rented_to", changes)

    def update_borrowed_item(self, business_id: int, borrow_id: int, **changes) -> BorrowedItem:
        borrowed = self.get_borrowed_item(business_id, borrow_id)
        return self._update(borrowed, borrowed.borrow_date, "borrowed_from", changes)

    def mark_external_rental_returned(self, business_id: int, rental_id: int) -> ExternalRental:
        return self._mark_returned(self.get_external_rental(business_id, rental_id))

    def mark_borrowed_item_returned(self, business_id: int, borrow_id: int) -> BorrowedItem:
        return self._mark_returned(self.get_borrowed_item(business_id, borrow_id))

    def delete_external_rental(self, business_id: int, rental_id: int) -> None:
        self._delete(self.get_external_rental(business_id, rental_id))

    def delete_borrowed_item(self, business_id: int, borrow_id: int) -> None:
        self._delete(self.get_borrowed_item(business_id, borrow_id))

    def sweep_overdue(self, business_id: int, today: Optional[date] = None) -> dict:
        """Relabel active rentals and borrows whose return date has passed"""
        today = today or date.today()
        counts = {}
        for key, model in (("external_rentals", ExternalRental), ("borrowed_items", BorrowedItem)):
            counts[key] = self.db.execute(
                update(model)
                .where(
                    model.business_id == business_id,
                    model.status == RentalStatus.ACTIVE,
                    model.return_date < today
                )
                .values(status=RentalStatus.OVERDUE, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            ).rowcount
        commit_or_raise(self.db, label="rental overdue sweep")

        if counts["external_rentals"] or counts["borrowed_items"]:
            logger.info(
                f"Marked {counts['external_rentals']} external rentals and "
                f"{counts['borrowed_items']} borrowed items as overdue"
            )
        return counts

    def summary(self, business_id: int, today: Optional[date] = None) -> dict:
        rentals = self.list_external_rentals(business_id, today=today)
        borrowed = self.list_borrowed_items(business_id, today=today)
        return {
            "external_rentals": self._counts(rentals),
            "borrowed_items": self._counts(borrowed),
        }

    @staticmethod
    def _counts(records) -> dict:
        return {
            "total": len(records),
            "active": sum(1 for r in records if r.status == RentalStatus.ACTIVE),
            "overdue": sum(1 for r in records if r.status == RentalStatus.OVERDUE),
            "returned": sum(1 for r in records if r.status == RentalStatus.RETURNED),
        }

    def _list(self, model, business_id: int, status: Optional[str], today: Optional[date]):
        query = self._list_query(model, business_id, status, today)
        return query.order_by(model.return_date.asc(), model.id.asc()).all()

    def _list_query(self, model, business_id: int, status: Optional[str], today: Optional[date]):
        if status is not None and status not in RentalStatus.ALL:
            raise ValidationError(f"Unknown rental status '{status}'")
        self.sweep_overdue(business_id, today=today)

        query = self.db.query(model).filter(model.business_id == business_id)
        if status:
            query = query.filter(model.status == status)
        return query

    def _get(self, model, business_id: int, record_id: int, label: str):
        record = self.db.query(model).filter(
            model.business_id == business_id,
            model.id == record_id
        ).first()
        if not record:
            raise NotFoundError(f"{label} {record_id} not found")
        return record

    def _update(self, record, start_date: date, counterparty_field: str, changes: dict):
        if "quantity" in changes and (changes["quantity"] is None or changes["quantity"] < 1):
            raise ValidationError("Quantity must be at least 1")
        if counterparty_field in changes and not (changes[counterparty_field] or "").strip():
            raise ValidationError("Counterparty name is required")
        if changes.get("return_date") is not None:
            self._validate_dates(start_date, changes["return_date"])

        for field, value in changes.items():
            if value is None:
                continue
            setattr(record, field, value.strip() if isinstance(value, str) else value)
        commit_or_raise(self.db, label=f"{record.__tablename__} update")
        self.db.refresh(record)
        return record

    def _mark_returned(self, record):
        """Idempotent: a record that is already returned is left alone"""
        now = datetime.utcnow()
        model = type(record)
        update_count = self.db.execute(
            update(model)
            .where(model.id == record.id, model.status.in_(RentalStatus.OPEN))
            .values(status=RentalStatus.RETURNED, returned_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        ).rowcount
        commit_or_raise(self.db, label=f"{model.__tablename__} return")
        self.db.refresh(record)

        if update_count:
            logger.info(f"{record.quantity} x {record.item_name} ({model.__tablename__} {record.id}) returned")
        return record

    def _delete(self, record) -> None:
        self.db.delete(record)
        commit_or_raise(self.db, label=f"{record.__tablename__} deletion")
        logger.info(f"Deleted {record.__tablename__} record {record.id}")

    def _require_business(self, business_id: int) -> None:
        if not self.db.query(Business).filter(Business.id == business_id).first():
            raise NotFoundError(f"Business {business_id} not found")

    @staticmethod
    def _validate(item_name: Optional[str], quantity: Optional[int], counterparty: Optional[str], label: str):
        if not (item_name or "").strip():
            raise ValidationError("Item name is required")
        if quantity is None or quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        if not (counterparty or "").strip():
            raise ValidationError(f"{label} is required")

    @staticmethod
    def _validate_dates(start_date: date, return_date: date):
        if return_date < start_date:
            raise ValidationError("Return date cannot be before the start date")
