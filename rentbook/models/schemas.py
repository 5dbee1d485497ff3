from pydantic import BaseModel
from typing import Dict, List, Optional
from datetime import date, datetime


class BusinessCreate(BaseModel):
    name: str
    owner_email: str


class Business(BaseModel):
    id: int
    name: str
    owner_email: str
    created_at: datetime

    class Config:
        from_attributes = True


class BusinessLookup(BaseModel):
    email: str
    business_id: int
    role: str


class MemberInvite(BaseModel):
    email: str
    role: str = "staff"
    name: Optional[str] = None
    invited_by: Optional[str] = None


class Member(BaseModel):
    id: int
    business_id: int
    email: str
    name: Optional[str] = None
    role: str
    status: str
    permissions: Dict[str, bool]
    invited_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class StockItemCreate(BaseModel):
    name: str
    total_quantity: int
    price: float = 0.0
    low_stock_threshold: Optional[int] = None


class StockItemUpdate(BaseModel):
    name: Optional[str] = None
    total_quantity: Optional[int] = None
    available_quantity: Optional[int] = None
    price: Optional[float] = None
    low_stock_threshold: Optional[int] = None


class StockAdjust(BaseModel):
    delta: int


class StockItem(BaseModel):
    id: int
    business_id: int
    name: str
    total_quantity: int
    available_quantity: int
    quantity_out: int
    price: float
    low_stock_threshold: int
    is_low_stock: bool
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class InventorySummary(BaseModel):
    item_count: int
    total_quantity: int
    total_available: int
    total_out: int
    low_stock_count: int


class BookingItemCreate(BaseModel):
    item_id: Optional[int] = None
    item_name: Optional[str] = None
    quantity: int
    unit_price: Optional[float] = None  # only used for items not in the catalog


class AvailabilityRequest(BaseModel):
    items: List[BookingItemCreate]


class AvailabilityLine(BaseModel):
    item_id: Optional[int] = None
    item_name: str
    found: bool
    requested: int
    available: int
    shortage: int


class AvailabilityResult(BaseModel):
    available: bool
    lines: List[AvailabilityLine]


class BookingCreate(BaseModel):
    event_name: str
    client_name: str
    client_phone: str = ""
    client_email: str = ""
    event_date: date
    return_date: Optional[date] = None
    location: str = ""
    notes: str = ""
    items: List[BookingItemCreate]
    total_amount: Optional[float] = None
    amount_paid: float = 0.0
    created_by: Optional[str] = None


class BookingCancel(BaseModel):
    reason: str = ""


class BookingLineItem(BaseModel):
    id: int
    inventory_item_id: Optional[int] = None
    item_name: str
    quantity: int
    unit_price: float
    shortage: int
    restorable: int
    line_total: float

    class Config:
        from_attributes = True


class Booking(BaseModel):
    id: int
    business_id: int
    event_name: str
    client_name: str
    client_phone: str
    client_email: str
    event_date: date
    return_date: date
    location: str
    notes: str
    total_amount: float
    amount_paid: float
    balance_due: float
    payment_status: str
    status: str
    cancellation_reason: Optional[str] = None
    created_by: Optional[str] = None
    has_shortage: bool
    created_at: datetime
    updated_at: datetime
    closed_at: Optional[datetime] = None
    line_items: List[BookingLineItem] = []

    class Config:
        from_attributes = True


class BookingStats(BaseModel):
    total: int
    active: int
    returned: int
    overdue: int
    cancelled: int
    total_revenue: float
    pending_payments: int


class SweepResult(BaseModel):
    updated: int


class Alert(BaseModel):
    type: str
    severity: str  # info, warning, error
    title: str
    message: str
    item_id: Optional[int] = None
    booking_id: Optional[int] = None
    rental_id: Optional[int] = None
    borrow_id: Optional[int] = None


class AlertCounts(BaseModel):
    total: int
    critical: int
    warnings: int
    info: int
    items: List[Alert]


class ExternalRentalCreate(BaseModel):
    item_id: Optional[int] = None
    item_name: Optional[str] = None
    quantity: int
    rented_to: str
    contact_person: str = ""
    contact_phone: str = ""
    rental_date: date
    return_date: date
    notes: str = ""


class ExternalRentalUpdate(BaseModel):
    quantity: Optional[int] = None
    rented_to: Optional[str] = None
    contact_person: Optional[str] = None
    contact_phone: Optional[str] = None
    return_date: Optional[date] = None
    notes: Optional[str] = None


class ExternalRental(BaseModel):
    id: int
    business_id: int
    inventory_item_id: Optional[int] = None
    item_name: str
    quantity: int
    rented_to: str
    contact_person: str
    contact_phone: str
    rental_date: date
    return_date: date
    status: str
    notes: str
    created_at: datetime
    returned_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BorrowedItemCreate(BaseModel):
    item_name: str
    quantity: int
    borrowed_from: str
    contact_person: str = ""
    contact_phone: str = ""
    borrow_date: date
    return_date: date
    event_name: str = ""
    booking_id: Optional[int] = None
    notes: str = ""


class BorrowedItemUpdate(BaseModel):
    quantity: Optional[int] = None
    borrowed_from: Optional[str] = None
    contact_person: Optional[str] = None
    contact_phone: Optional[str] = None
    return_date: Optional[date] = None
    notes: Optional[str] = None


class BorrowedItem(BaseModel):
    id: int
    business_id: int
    booking_id: Optional[int] = None
    item_name: str
    quantity: int
    borrowed_from: str
    contact_person: str
    contact_phone: str
    borrow_date: date
    return_date: date
    event_name: str
    status: str
    notes: str
    created_at: datetime
    returned_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RentalCounts(BaseModel):
    total: int
    active: int
    overdue: int
    returned: int


class RentalSummary(BaseModel):
    external_rentals: RentalCounts
    borrowed_items: RentalCounts


class ReminderCreate(BaseModel):
    type: str = "custom"
    title: str
    message: str = ""
    due_date: date
    priority: str = "medium"
    related_id: Optional[int] = None


class Reminder(BaseModel):
    id: int
    business_id: int
    type: str
    title: str
    message: str
    due_date: date
    priority: str
    status: str
    related_id: Optional[int] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    dismissed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReminderCounts(BaseModel):
    total: int
    today: int
    upcoming: int
    items: List[Reminder]


class ReminderGenerateResult(BaseModel):
    created: int


class RentalSweepResult(BaseModel):
    external_rentals: int
    borrowed_items: int


class Dashboard(BaseModel):
    alerts: AlertCounts
    reminders: ReminderCounts
    rentals: RentalSummary
    inventory: InventorySummary
    bookings: BookingStats
