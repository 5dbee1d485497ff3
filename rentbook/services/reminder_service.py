import logging
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from rentbook.core.exceptions import NotFoundError, ValidationError
from rentbook.core.unit_of_work import commit_or_raise
from rentbook.models.database import (
    Business,
    Reminder,
    ReminderStatus,
    REMINDER_PRIORITIES,
    REMINDER_TYPES,
)
from rentbook.models.schemas import ReminderCreate
from rentbook.services.booking_service import BookingService

logger = logging.getLogger(__name__)


class ReminderService:
    def __init__(self, db: Session):
        self.db = db
        self.bookings = BookingService(db)

    def create_reminder(self, business_id: int, reminder_data: ReminderCreate) -> Reminder:
        if not (reminder_data.title or "").strip():
            raise ValidationError("Reminder title is required")
        if reminder_data.type not in REMINDER_TYPES:
            raise ValidationError(f"Unknown reminder type '{reminder_data.type}'")
        if reminder_data.priority not in REMINDER_PRIORITIES:
            raise ValidationError(f"Unknown reminder priority '{reminder_data.priority}'")
        if not self.db.query(Business).filter(Business.id == business_id).first():
            raise NotFoundError(f"Business {business_id} not found")

        reminder = self._new_reminder(
            business_id,
            type=reminder_data.type,
            title=reminder_data.title.strip(),
            message=reminder_data.message or "",
            due_date=reminder_data.due_date,
            priority=reminder_data.priority,
            related_id=reminder_data.related_id,
        )
        commit_or_raise(self.db, label="reminder creation")
        self.db.refresh(reminder)

        logger.info(f"Created {reminder.type} reminder '{reminder.title}' due {reminder.due_date}")
        return reminder

    def list_reminders(self, business_id: int, status: Optional[str] = ReminderStatus.PENDING) -> List[Reminder]:
        """Reminders due soonest first. A status of None lists every reminder."""
        if status is not None and status not in ReminderStatus.ALL:
            raise ValidationError(f"Unknown reminder status '{status}'")

        query = self.db.query(Reminder).filter(Reminder.business_id == business_id)
        if status is not None:
            query = query.filter(Reminder.status == status)
        return query.order_by(Reminder.due_date.asc(), Reminder.id.asc()).all()

    def get_reminder(self, business_id: int, reminder_id: int) -> Reminder:
        reminder = self.db.query(Reminder).filter(
            Reminder.business_id == business_id,
            Reminder.id == reminder_id
        ).first()
        if not reminder:
            raise NotFoundError(f"Reminder {reminder_id} not found")
        return reminder

    def complete_reminder(self, business_id: int, reminder_id: int) -> Reminder:
        reminder = self.get_reminder(business_id, reminder_id)
        reminder.status = ReminderStatus.COMPLETED
        reminder.completed_at = datetime.utcnow()
        commit_or_raise(self.db, label="reminder completion")
        self.db.refresh(reminder)
        return reminder

    def dismiss_reminder(self, business_id: int, reminder_id: int) -> Reminder:
        reminder = self.get_reminder(business_id, reminder_id)
        reminder.status = ReminderStatus.DISMISSED
        reminder.dismissed_at = datetime.utcnow()
        commit_or_raise(self.db, label="reminder dismissal")
        self.db.refresh(reminder)
        return reminder

    def delete_reminder(self, business_id: int, reminder_id: int) -> None:
        reminder = self.get_reminder(business_id, reminder_id)
        self.db.delete(reminder)
        commit_or_raise(self.db, label="reminder deletion")
        logger.info(f"Deleted reminder {reminder_id} from business {business_id}")

    def auto_generate_booking_reminders(self, business_id: int, today: Optional[date] = None) -> int:
        """
        Add a preparation reminder for each active booking in the next week.

        A booking that already has a booking reminder, in any status, is
        skipped, so running this repeatedly never duplicates reminders.
        Returns the number of reminders created.
        """
        existing = {
            related_id for (related_id,) in self.db.query(Reminder.related_id).filter(
                Reminder.business_id == business_id,
                Reminder.type == "booking",
                Reminder.related_id.isnot(None)
            )
        }

        created = 0
        for booking in self.bookings.upcoming_bookings(business_id, days=7, today=today):
            if booking.id in existing:
                continue
            self._new_reminder(
                business_id,
                type="booking",
                title="Upcoming Event Reminder",
                message=f"Prepare items for {booking.event_name} - {booking.client_name}",
                due_date=booking.event_date - timedelta(days=1),
                priority="high",
                related_id=booking.id,
            )
            existing.add(booking.id)
            created += 1

        if created:
            commit_or_raise(self.db, label="booking reminders")
            logger.info(f"Generated {created} booking reminders for business {business_id}")
        return created

    def summary(self, business_id: int, today: Optional[date] = None) -> dict:
        today = today or date.today()
        pending = self.list_reminders(business_id)
        return {
            "total": len(pending),
            "today": sum(1 for r in pending if r.due_date == today),
            "upcoming": sum(1 for r in pending if r.due_date > today),
            "items": pending,
        }

    def _new_reminder(self, business_id: int, **fields) -> Reminder:
        reminder = Reminder(business_id=business_id, status=ReminderStatus.PENDING, **fields)
        self.db.add(reminder)
        return reminder
