from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from rentbook.api.errors import http_error
from rentbook.core.database import get_db
from rentbook.core.exceptions import LedgerError
from rentbook.models.schemas import Reminder, ReminderCreate, ReminderGenerateResult
from rentbook.services.reminder_service import ReminderService

router = APIRouter()

@router.post("/", response_model=Reminder)
async def create_reminder(business_id: int, reminder_data: ReminderCreate, db: Session = Depends(get_db)):
    try:
        return ReminderService(db).create_reminder(business_id, reminder_data)
    except LedgerError as e:
        raise http_error(e)

@router.get("/", response_model=List[Reminder])
async def get_reminders(business_id: int, status: str = "pending", db: Session = Depends(get_db)):
    """Reminders due soonest first; status=all lists every reminder"""
    try:
        return ReminderService(db).list_reminders(business_id, status=None if status == "all" else status)
    except LedgerError as e:
        raise http_error(e)

@router.post("/auto-generate", response_model=ReminderGenerateResult)
async def auto_generate_reminders(business_id: int, db: Session = Depends(get_db)):
    """Add preparation reminders for next week's bookings that have none yet"""
    try:
        return {"created": ReminderService(db).auto_generate_booking_reminders(business_id)}
    except LedgerError as e:
        raise http_error(e)

@router.post("/{reminder_id}/complete", response_model=Reminder)
async def complete_reminder(business_id: int, reminder_id: int, db: Session = Depends(get_db)):
    try:
        return ReminderService(db).complete_reminder(business_id, reminder_id)
    except LedgerError as e:
        raise http_error(e)

@router.post("/{reminder_id}/dismiss", response_model=Reminder)
async def dismiss_reminder(business_id: int, reminder_id: int, db: Session = Depends(get_db)):
    try:
        return ReminderService(db).dismiss_reminder(business_id, reminder_id)
    except LedgerError as e:
        raise http_error(e)

@router.delete("/{reminder_id}", status_code=204)
async def delete_reminder(business_id: int, reminder_id: int, db: Session = Depends(get_db)):
    try:
        ReminderService(db).delete_reminder(business_id, reminder_id)
    except LedgerError as e:
        raise http_error(e)
