from datetime import date, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from rentbook.core.config import settings
from rentbook.models.database import BookingStatus, RentalStatus
from rentbook.services.booking_service import BookingService
from rentbook.services.reminder_service import ReminderService
from rentbook.services.rental_service import RentalService
from rentbook.services.stock_catalog import StockCatalog


class AlertService:
    """Builds the dashboard alert feed from current stock, bookings and rentals"""

    def __init__(self, db: Session):
        self.db = db
        self.catalog = StockCatalog(db)
        self.bookings = BookingService(db)
        self.rentals = RentalService(db)
        self.reminders = ReminderService(db)

    def generate(self, business_id: int, today: Optional[date] = None) -> List[dict]:
        today = today or date.today()
        alerts = []

        for item in self.catalog.low_stock(business_id):
            alerts.append({
                "type": "low_stock",
                "severity": "warning",
                "title": "Low Stock Alert",
                "message": (
                    f"{item.name} is running low. Available: {item.available_quantity}, "
                    f"Threshold: {item.low_stock_threshold}"
                ),
                "item_id": item.id,
            })

        # Sweeps overdue bookings as a side effect
        bookings = self.bookings.list_bookings(business_id, today=today)
        soon = today + timedelta(days=settings.UPCOMING_ALERT_DAYS)

        for booking in sorted(bookings, key=lambda b: (b.event_date, b.id)):
            if booking.status == BookingStatus.ACTIVE and today <= booking.event_date <= soon:
                alerts.append({
                    "type": "upcoming_booking",
                    "severity": "info",
                    "title": "Upcoming Event",
                    "message": f"{booking.event_name} for {booking.client_name} on {booking.event_date}",
                    "booking_id": booking.id,
                })

            if booking.status == BookingStatus.OVERDUE:
                alerts.append({
                    "type": "overdue_booking",
                    "severity": "error",
                    "title": "Overdue Return",
                    "message": (
                        f"{booking.client_name} was due to return items for "
                        f"{booking.event_name} on {booking.return_date}"
                    ),
                    "booking_id": booking.id,
                })

            if booking.status in BookingStatus.OPEN and booking.has_shortage:
                borrowed = ", ".join(
                    f"{line.shortage} x {line.item_name}"
                    for line in booking.line_items if line.shortage > 0
                )
                alerts.append({
                    "type": "overbooked",
                    "severity": "warning",
                    "title": "Overbooked Items",
                    "message": f"{booking.client_name} ({booking.event_date}) needs borrowed stock: {borrowed}",
                    "booking_id": booking.id,
                })

            if booking.status in BookingStatus.OPEN and booking.balance_due > 0:
                alerts.append({
                    "type": "pending_payment",
                    "severity": "warning",
                    "title": "Pending Payment",
                    "message": (
                        f"{booking.client_name} has {booking.balance_due:,.2f} pending "
                        f"for {booking.event_name}"
                    ),
                    "booking_id": booking.id,
                })

        for rental in self.rentals.list_external_rentals(business_id, status=RentalStatus.OVERDUE, today=today):
            alerts.append({
                "type": "overdue_rental",
                "severity": "error",
                "title": "Overdue Rental",
                "message": (
                    f"{rental.quantity} {rental.item_name} lent to "
                    f"{rental.rented_to} was due on {rental.return_date}"
                ),
                "rental_id": rental.id,
            })

        for borrowed in self.rentals.list_borrowed_items(business_id, status=RentalStatus.OVERDUE, today=today):
            alerts.append({
                "type": "overdue_borrow",
                "severity": "error",
                "title": "Overdue Return",
                "message": (
                    f"{borrowed.quantity} {borrowed.item_name} borrowed from "
                    f"{borrowed.borrowed_from} was due on {borrowed.return_date}"
                ),
                "borrow_id": borrowed.id,
            })

        return alerts

    def dashboard(self, business_id: int, today: Optional[date] = None) -> dict:
        alerts = self.generate(business_id, today=today)
        return {
            "alerts": {
                "total": len(alerts),
                "critical": sum(1 for a in alerts if a["severity"] == "error"),
                "warnings": sum(1 for a in alerts if a["severity"] == "warning"),
                "info": sum(1 for a in alerts if a["severity"] == "info"),
                "items": alerts,
            },
            "reminders": self.reminders.summary(business_id, today=today),
            "rentals": self.rentals.summary(business_id, today=today),
            "inventory": self.catalog.summary(business_id),
            "bookings": self.bookings.booking_stats(business_id, today=today),
        }
