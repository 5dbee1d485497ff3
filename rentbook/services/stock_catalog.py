import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import case, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rentbook.core.config import settings
from rentbook.core.exceptions import ConflictError, NotFoundError, ValidationError
from rentbook.core.unit_of_work import commit_or_raise
from rentbook.models.database import Business, StockItem

logger = logging.getLogger(__name__)


def name_key(name: str) -> str:
    """Lookup key for case-insensitive item names"""
    return (name or "").strip().lower()


def validate_line_requests(requests) -> None:
    if not requests:
        raise ValidationError("At least one item is required")
    for request in requests:
        if request.item_id is None and not (request.item_name or "").strip():
            raise ValidationError("Each item needs an item_id or an item_name")
        if request.quantity is None or request.quantity < 1:
            raise ValidationError(
                f"Quantity for {request.item_name or request.item_id} must be at least 1"
            )
        if request.unit_price is not None and request.unit_price < 0:
            raise ValidationError("Unit price cannot be negative")


class StockCatalog:
    """
    Per-business catalog of rentable items.

    Every read and write is scoped by business_id; an item that belongs to
    another business is reported as missing.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, business_id: int, item_id: int) -> Optional[StockItem]:
        return self.db.query(StockItem).filter(
            StockItem.business_id == business_id,
            StockItem.id == item_id
        ).first()

    def find_by_name(self, business_id: int, name: str) -> Optional[StockItem]:
        """Case-insensitive exact match on the item name"""
        key = name_key(name)
        if not key:
            return None
        return self.db.query(StockItem).filter(
            StockItem.business_id == business_id,
            StockItem.name_key == key
        ).first()

    def resolve(self, business_id: int, request) -> Optional[StockItem]:
        """Match a requested line by item_id, falling back to its name"""
        item = None
        if request.item_id is not None:
            item = self.find_by_id(business_id, request.item_id)
        if item is None and request.item_name:
            item = self.find_by_name(business_id, request.item_name)
        return item

    def get(self, business_id: int, item_id: int) -> StockItem:
        item = self.find_by_id(business_id, item_id)
        if not item:
            raise NotFoundError(f"Stock item {item_id} not found")
        return item

    def list(self, business_id: int, search: Optional[str] = None) -> List[StockItem]:
        query = self.db.query(StockItem).filter(StockItem.business_id == business_id)
        if search and search.strip():
            query = query.filter(StockItem.name_key.contains(name_key(search)))
        return query.order_by(StockItem.name_key).all()

    def add(
        self,
        business_id: int,
        name: str,
        total_quantity: int,
        price: float = 0.0,
        low_stock_threshold: Optional[int] = None,
    ) -> StockItem:
        """Add an item with all of its stock available"""
        if not name or not name.strip():
            raise ValidationError("Item name is required")
        if total_quantity is None or total_quantity < 0:
            raise ValidationError("Total quantity cannot be negative")
        if price is None or price < 0:
            raise ValidationError("Price cannot be negative")
        if low_stock_threshold is None:
            low_stock_threshold = settings.DEFAULT_LOW_STOCK_THRESHOLD
        if low_stock_threshold < 0:
            raise ValidationError("Low stock threshold cannot be negative")

        if not self.db.query(Business).filter(Business.id == business_id).first():
            raise NotFoundError(f"Business {business_id} not found")
        if self.find_by_name(business_id, name):
            raise ValidationError(f"An item named '{name.strip()}' already exists")

        item = StockItem(
            business_id=business_id,
            name=name.strip(),
            name_key=name_key(name),
            total_quantity=total_quantity,
            available_quantity=total_quantity,
            price=price,
            low_stock_threshold=low_stock_threshold,
        )
        self.db.add(item)
        try:
            commit_or_raise(self.db, label="stock item creation")
        except IntegrityError as e:
            raise ValidationError(f"An item named '{name.strip()}' already exists") from e
        self.db.refresh(item)

        logger.info(f"Added stock item {item.name} ({item.total_quantity}) to business {business_id}")
        return item

    def apply_delta(self, business_id: int, item_id: int, delta: int) -> bool:
        """
        Add delta to the available quantity, saturating at 0 and at the total.

        Issued as one UPDATE so it is atomic on its own; does not commit.
        Returns False when the item no longer exists.
        """
        new_available = StockItem.available_quantity + delta
        result = self.db.execute(
            update(StockItem)
            .where(StockItem.id == item_id, StockItem.business_id == business_id)
            .values(
                available_quantity=case(
                    (new_available < 0, 0),
                    (new_available > StockItem.total_quantity, StockItem.total_quantity),
                    else_=new_available,
                ),
                version=StockItem.version + 1,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    def adjust(self, business_id: int, item_id: int, delta: int) -> StockItem:
        item = self.get(business_id, item_id)
        self.apply_delta(business_id, item_id, delta)
        commit_or_raise(self.db, label="stock adjustment")
        self.db.refresh(item)

        logger.info(
            f"Adjusted {item.name} by {delta}: available = {item.available_quantity}/{item.total_quantity}"
        )
        return item

    def edit(
        self,
        business_id: int,
        item_id: int,
        total_quantity: Optional[int] = None,
        available_quantity: Optional[int] = None,
        price: Optional[float] = None,
        name: Optional[str] = None,
        low_stock_threshold: Optional[int] = None,
    ) -> StockItem:
        """
        Administrative overwrite of an item's counts, price or name.

        The available quantity is clamped into [0, total]. The write only
        applies to the version read here; if a reservation or return touched
        the item in between, ConflictError is raised and nothing changes.
        The version is bumped so reservations that read the old counts retry.
        """
        item = self.get(business_id, item_id)

        if total_quantity is None:
            total_quantity = item.total_quantity
        if available_quantity is None:
            available_quantity = item.available_quantity
        if price is None:
            price = item.price
        if total_quantity < 0:
            raise ValidationError("Total quantity cannot be negative")
        if price < 0:
            raise ValidationError("Price cannot be negative")
        if low_stock_threshold is not None and low_stock_threshold < 0:
            raise ValidationError("Low stock threshold cannot be negative")

        values = {
            "total_quantity": total_quantity,
            "available_quantity": min(max(available_quantity, 0), total_quantity),
            "price": price,
            "version": StockItem.version + 1,
            "updated_at": datetime.utcnow(),
        }
        if name is not None:
            if not name.strip():
                raise ValidationError("Item name is required")
            existing = self.find_by_name(business_id, name)
            if existing and existing.id != item.id:
                raise ValidationError(f"An item named '{name.strip()}' already exists")
            values["name"] = name.strip()
            values["name_key"] = name_key(name)
        if low_stock_threshold is not None:
            values["low_stock_threshold"] = low_stock_threshold

        try:
            update_count = self.db.execute(
                update(StockItem)
                .where(StockItem.id == item.id, StockItem.version == item.version)
                .values(**values)
                .execution_options(synchronize_session=False)
            ).rowcount
        except IntegrityError as e:
            self.db.rollback()
            raise ValidationError(f"Could not save stock item {item_id}: {e.orig}") from e
        if update_count == 0:
            # A reservation or return moved the counts after we read them
            self.db.rollback()
            raise ConflictError(
                f"Stock item {item_id} was modified by another transaction, reload and try again"
            )

        commit_or_raise(self.db, label="stock item edit")
        self.db.refresh(item)

        logger.info(
            f"Edited {item.name}: available = {item.available_quantity}/{item.total_quantity}, "
            f"price = {item.price}"
        )
        return item

    def delete(self, business_id: int, item_id: int) -> None:
        """Remove an item; bookings keep their own snapshot of it"""
        item = self.get(business_id, item_id)
        self.db.delete(item)
        commit_or_raise(self.db, label="stock item deletion")
        logger.info(f"Deleted stock item {item_id} from business {business_id}")

    def check_availability(self, business_id: int, requests: Iterable) -> List[dict]:
        """Shortage each requested line would get if it were booked now. No writes."""
        requests = list(requests)
        validate_line_requests(requests)

        lines = []
        remaining = {}
        for request in requests:
            item = self.resolve(business_id, request)

            if item is None:
                lines.append({
                    "item_id": request.item_id,
                    "item_name": (request.item_name or "").strip() or f"#{request.item_id}",
                    "found": False,
                    "requested": request.quantity,
                    "available": 0,
                    "shortage": request.quantity,
                })
                continue

            available = remaining.get(item.id, item.available_quantity)
            shortage = max(0, request.quantity - available)
            remaining[item.id] = available - (request.quantity - shortage)
            lines.append({
                "item_id": item.id,
                "item_name": item.name,
                "found": True,
                "requested": request.quantity,
                "available": available,
                "shortage": shortage,
            })
        return lines

    def low_stock(self, business_id: int) -> List[StockItem]:
        return self.db.query(StockItem).filter(
            StockItem.business_id == business_id,
            StockItem.available_quantity <= StockItem.low_stock_threshold
        ).order_by(StockItem.name_key).all()

    def summary(self, business_id: int) -> dict:
        items = self.list(business_id)
        return {
            "item_count": len(items),
            "total_quantity": sum(item.total_quantity for item in items),
            "total_available": sum(item.available_quantity for item in items),
            "total_out": sum(item.quantity_out for item in items),
            "low_stock_count": sum(1 for item in items if item.is_low_stock),
        }
