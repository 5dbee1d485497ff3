import pytest
from datetime import date, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from rentbook.core.exceptions import NotFoundError, ValidationError
from rentbook.models.database import Base, ReminderStatus
from rentbook.models.schemas import BookingCreate, BookingItemCreate, ReminderCreate
from rentbook.services.booking_service import BookingService
from rentbook.services.business_service import BusinessService
from rentbook.services.reminder_service import ReminderService
from rentbook.services.stock_catalog import StockCatalog

TEST_DATABASE_URL = "sqlite:///./test_reminders.db"

TODAY = date.today()

@pytest.fixture
def test_engine():
    engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()

@pytest.fixture
def test_db(test_engine):
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

@pytest.fixture
def business(test_db):
    business = BusinessService(test_db).create_business("Party Rentals", "owner@example.com")
    StockCatalog(test_db).add(business.id, "Chairs", 50, price=100.0)
    return business

@pytest.fixture
def reminders(test_db):
    return ReminderService(test_db)


async def book(db, business_id, client_name, days_ahead):
    return await BookingService(db).create_booking(business_id, BookingCreate(
        event_name=f"{client_name}'s Party",
        client_name=client_name,
        event_date=TODAY + timedelta(days=days_ahead),
        items=[BookingItemCreate(item_name="Chairs", quantity=2)],
    ))


class TestReminders:

    def test_create_with_defaults(self, business, reminders):
        reminder = reminders.create_reminder(business.id, ReminderCreate(title=" Call Lagos Hire ", due_date=TODAY))

        assert reminder.title == "Call Lagos Hire"
        assert reminder.type == "custom"
        assert reminder.priority == "medium"
        assert reminder.status == ReminderStatus.PENDING
        assert reminder.related_id is None

    def test_invalid_reminders_rejected(self, business, reminders):
        with pytest.raises(ValidationError, match="title"):
            reminders.create_reminder(business.id, ReminderCreate(title="", due_date=TODAY))
        with pytest.raises(ValidationError, match="type"):
            reminders.create_reminder(business.id, ReminderCreate(title="x", type="birthday", due_date=TODAY))
        with pytest.raises(ValidationError, match="priority"):
            reminders.create_reminder(business.id, ReminderCreate(title="x", priority="urgent", due_date=TODAY))
        with pytest.raises(NotFoundError):
            reminders.create_reminder(9999, ReminderCreate(title="x", due_date=TODAY))

    def test_list_defaults_to_pending_in_due_order(self, business, reminders):
        later = reminders.create_reminder(business.id, ReminderCreate(title="Later", due_date=TODAY + timedelta(days=4)))
        sooner = reminders.create_reminder(business.id, ReminderCreate(title="Sooner", due_date=TODAY))
        done = reminders.create_reminder(business.id, ReminderCreate(title="Done", due_date=TODAY))
        reminders.complete_reminder(business.id, done.id)

        assert [r.id for r in reminders.list_reminders(business.id)] == [sooner.id, later.id]
        assert [r.id for r in reminders.list_reminders(business.id, status=None)] == [sooner.id, done.id, later.id]
        assert [r.id for r in reminders.list_reminders(business.id, status="completed")] == [done.id]
        with pytest.raises(ValidationError):
            reminders.list_reminders(business.id, status="snoozed")

    def test_complete_dismiss_and_delete(self, business, reminders):
        first = reminders.create_reminder(business.id, ReminderCreate(title="First", due_date=TODAY))
        second = reminders.create_reminder(business.id, ReminderCreate(title="Second", due_date=TODAY))

        completed = reminders.complete_reminder(business.id, first.id)
        assert completed.status == ReminderStatus.COMPLETED
        assert completed.completed_at is not None

        dismissed = reminders.dismiss_reminder(business.id, second.id)
        assert dismissed.status == ReminderStatus.DISMISSED
        assert dismissed.dismissed_at is not None

        reminders.delete_reminder(business.id, first.id)
        with pytest.raises(NotFoundError):
            reminders.get_reminder(business.id, first.id)
        with pytest.raises(NotFoundError):
            reminders.complete_reminder(business.id, first.id)

    def test_summary_counts_pending_only(self, business, reminders):
        reminders.create_reminder(business.id, ReminderCreate(title="Overdue", due_date=TODAY - timedelta(days=1)))
        reminders.create_reminder(business.id, ReminderCreate(title="Today", due_date=TODAY))
        reminders.create_reminder(business.id, ReminderCreate(title="Soon", due_date=TODAY + timedelta(days=1)))
        dismissed = reminders.create_reminder(business.id, ReminderCreate(title="Ignored", due_date=TODAY))
        reminders.dismiss_reminder(business.id, dismissed.id)

        summary = reminders.summary(business.id, today=TODAY)
        assert summary["total"] == 3
        assert summary["today"] == 1
        assert summary["upcoming"] == 1
        assert [r.title for r in summary["items"]] == ["Overdue", "Today", "Soon"]


class TestBookingReminders:

    @pytest.mark.asyncio
    async def test_auto_generate_for_next_week(self, test_db, business, reminders):
        soon = await book(test_db, business.id, "Ada", 3)
        await book(test_db, business.id, "Bola", 20)

        assert reminders.auto_generate_booking_reminders(business.id) == 1

        [reminder] = reminders.list_reminders(business.id)
        assert reminder.type == "booking"
        assert reminder.related_id == soon.id
        assert reminder.title == "Upcoming Event Reminder"
        assert reminder.message == "Prepare items for Ada's Party - Ada"
        assert reminder.due_date == soon.event_date - timedelta(days=1)
        assert reminder.priority == "high"

    @pytest.mark.asyncio
    async def test_auto_generate_does_not_duplicate(self, test_db, business, reminders):
        await book(test_db, business.id, "Ada", 3)
        await book(test_db, business.id, "Bola", 5)

        assert reminders.auto_generate_booking_reminders(business.id) == 2
        assert reminders.auto_generate_booking_reminders(business.id) == 0
        assert len(reminders.list_reminders(business.id, status=None)) == 2

    @pytest.mark.asyncio
    async def test_handled_reminder_is_not_regenerated(self, test_db, business, reminders):
        booking = await book(test_db, business.id, "Ada", 3)
        reminders.auto_generate_booking_reminders(business.id)
        [reminder] = reminders.list_reminders(business.id)
        reminders.dismiss_reminder(business.id, reminder.id)

        assert reminders.auto_generate_booking_reminders(business.id) == 0

        # A new booking in the window still gets one
        other = await book(test_db, business.id, "Bola", 4)
        assert reminders.auto_generate_booking_reminders(business.id) == 1
        assert [r.related_id for r in reminders.list_reminders(business.id)] == [other.id]
        assert booking.id != other.id

    @pytest.mark.asyncio
    async def test_cancelled_bookings_get_no_reminder(self, test_db, business, reminders):
        booking = await book(test_db, business.id, "Ada", 3)
        await BookingService(test_db).cancel_booking(business.id, booking.id, "Rained out")

        assert reminders.auto_generate_booking_reminders(business.id) == 0
