from sqlalchemy import (
    CheckConstraint, Column, Date, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime

Base = declarative_base()


class BookingStatus:
    ACTIVE = "active"
    RETURNED = "returned"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"

    ALL = (ACTIVE, RETURNED, OVERDUE, CANCELLED)
    OPEN = (ACTIVE, OVERDUE)


class RentalStatus:
    ACTIVE = "active"
    RETURNED = "returned"
    OVERDUE = "overdue"

    ALL = (ACTIVE, RETURNED, OVERDUE)
    OPEN = (ACTIVE, OVERDUE)


class ReminderStatus:
    PENDING = "pending"
    COMPLETED = "completed"
    DISMISSED = "dismissed"

    ALL = (PENDING, COMPLETED, DISMISSED)


REMINDER_TYPES = ("custom", "call_supplier", "booking", "rental_return")
REMINDER_PRIORITIES = ("low", "medium", "high")


ROLE_PERMISSIONS = {
    "owner": {"inventory": True, "bookings": True, "settings": True, "reports": True},
    "admin": {"inventory": True, "bookings": True, "settings": True, "reports": True},
    "staff": {"inventory": True, "bookings": True, "settings": False, "reports": False},
    "viewer": {"inventory": False, "bookings": False, "settings": False, "reports": False, "view_only": True},
}


class Business(Base):
    """Tenant: owns its own stock items and bookings"""
    __tablename__ = "businesses"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    owner_email = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    members = relationship("BusinessMember", back_populates="business", cascade="all, delete-orphan")
    stock_items = relationship("StockItem", back_populates="business", cascade="all, delete-orphan")
    bookings = relationship("Booking", back_populates="business", cascade="all, delete-orphan")
    external_rentals = relationship("ExternalRental", back_populates="business", cascade="all, delete-orphan")
    borrowed_items = relationship("BorrowedItem", back_populates="business", cascade="all, delete-orphan")
    reminders = relationship("Reminder", back_populates="business", cascade="all, delete-orphan")


class BusinessMember(Base):
    """Links a login email to exactly one business"""
    __tablename__ = "business_members"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String)
    role = Column(String, nullable=False, default="staff")  # owner, admin, staff, viewer
    status = Column(String, nullable=False, default="pending")  # pending, accepted
    invited_by = Column(String)
    created_at = Column(DateTime, default=datetime.utcnow)

    business = relationship("Business", back_populates="members")

    @property
    def permissions(self):
        return dict(ROLE_PERMISSIONS.get(self.role, {}))


class StockItem(Base):
    """One rentable item line in a business's catalog"""
    __tablename__ = "stock_items"
    __table_args__ = (
        UniqueConstraint("business_id", "name_key", name="uq_stock_items_business_name"),
        CheckConstraint("total_quantity >= 0", name="ck_stock_items_total_non_negative"),
        CheckConstraint(
            "available_quantity >= 0 AND available_quantity <= total_quantity",
            name="ck_stock_items_available_in_range",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    name_key = Column(String, nullable=False, index=True)  # lower-cased name for lookups
    total_quantity = Column(Integer, nullable=False, default=0)
    available_quantity = Column(Integer, nullable=False, default=0)
    price = Column(Float, nullable=False, default=0.0)
    low_stock_threshold = Column(Integer, nullable=False, default=10)
    version = Column(Integer, nullable=False, default=1)  # For optimistic locking
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    business = relationship("Business", back_populates="stock_items")

    @property
    def quantity_out(self) -> int:
        return self.total_quantity - self.available_quantity

    @property
    def is_low_stock(self) -> bool:
        return self.available_quantity <= self.low_stock_threshold


class Booking(Base):
    """A rental transaction; only its status changes after creation"""
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    event_name = Column(String, nullable=False)
    client_name = Column(String, nullable=False)
    client_phone = Column(String, default="")
    client_email = Column(String, default="")
    event_date = Column(Date, nullable=False, index=True)
    return_date = Column(Date, nullable=False, index=True)
    location = Column(String, default="")
    notes = Column(String, default="")
    total_amount = Column(Float, nullable=False, default=0.0)
    amount_paid = Column(Float, nullable=False, default=0.0)
    status = Column(String, nullable=False, default=BookingStatus.ACTIVE, index=True)
    cancellation_reason = Column(String)
    created_by = Column(String)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    closed_at = Column(DateTime)

    business = relationship("Business", back_populates="bookings")
    line_items = relationship(
        "BookingLineItem",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingLineItem.id",
    )

    @property
    def balance_due(self) -> float:
        return round(max(0.0, (self.total_amount or 0.0) - (self.amount_paid or 0.0)), 2)

    @property
    def payment_status(self) -> str:
        if (self.amount_paid or 0.0) >= (self.total_amount or 0.0):
            return "paid"
        if (self.amount_paid or 0.0) > 0:
            return "partial"
        return "pending"

    @property
    def has_shortage(self) -> bool:
        return any(line.shortage > 0 for line in self.line_items)


class BookingLineItem(Base):
    """
    Snapshot of one requested item at booking time.

    inventory_item_id is not a foreign key: the stock item may be deleted
    later while the booking keeps its copy of name and price.
    """
    __tablename__ = "booking_line_items"
    __table_args__ = (
        CheckConstraint("shortage >= 0 AND shortage <= quantity", name="ck_line_items_shortage_in_range"),
    )

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    inventory_item_id = Column(Integer, nullable=True, index=True)
    item_name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Float, nullable=False, default=0.0)
    shortage = Column(Integer, nullable=False, default=0)

    booking = relationship("Booking", back_populates="line_items")

    @property
    def restorable(self) -> int:
        return self.quantity - self.shortage

    @property
    def line_total(self) -> float:
        return round(self.quantity * self.unit_price, 2)


class ExternalRental(Base):
    """Items lent out to another rental business"""
    __tablename__ = "external_rentals"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    inventory_item_id = Column(Integer, nullable=True)
    item_name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    rented_to = Column(String, nullable=False)
    contact_person = Column(String, default="")
    contact_phone = Column(String, default="")
    rental_date = Column(Date, nullable=False)
    return_date = Column(Date, nullable=False, index=True)
    status = Column(String, nullable=False, default=RentalStatus.ACTIVE, index=True)
    notes = Column(String, default="")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    returned_at = Column(DateTime)

    business = relationship("Business", back_populates="external_rentals")


class BorrowedItem(Base):
    """Items borrowed from another rental business, usually to cover a shortage"""
    __tablename__ = "borrowed_items"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True, index=True)
    item_name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    borrowed_from = Column(String, nullable=False)
    contact_person = Column(String, default="")
    contact_phone = Column(String, default="")
    borrow_date = Column(Date, nullable=False)
    return_date = Column(Date, nullable=False, index=True)
    event_name = Column(String, default="")
    status = Column(String, nullable=False, default=RentalStatus.ACTIVE, index=True)
    notes = Column(String, default="")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    returned_at = Column(DateTime)

    business = relationship("Business", back_populates="borrowed_items")


class Reminder(Base):
    __tablename__ = "reminders"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    type = Column(String, nullable=False, default="custom")  # custom, call_supplier, booking, rental_return
    title = Column(String, nullable=False)
    message = Column(String, default="")
    due_date = Column(Date, nullable=False, index=True)
    priority = Column(String, nullable=False, default="medium")  # low, medium, high
    status = Column(String, nullable=False, default=ReminderStatus.PENDING, index=True)
    related_id = Column(Integer, nullable=True, index=True)  # booking or rental id
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at = Column(DateTime)
    dismissed_at = Column(DateTime)

    business = relationship("Business", back_populates="reminders")
