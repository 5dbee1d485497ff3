from datetime import date
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional
from rentbook.api.errors import http_error
from rentbook.core.database import get_db, get_redis
from rentbook.core.exceptions import LedgerError
from rentbook.models.schemas import Booking, BookingCancel, BookingCreate, BookingStats, SweepResult
from rentbook.services.booking_service import BookingService

router = APIRouter()

@router.post("/", response_model=Booking)
async def create_booking(
    business_id: int,
    booking_data: BookingCreate,
    db: Session = Depends(get_db),
    redis_client=Depends(get_redis)
):
    """Create a booking, reserving stock and recording any shortage"""
    try:
        service = BookingService(db, redis_client=redis_client)
        return await service.create_booking(business_id, booking_data)
    except LedgerError as e:
        raise http_error(e)

@router.get("/", response_model=List[Booking])
async def get_bookings(
    business_id: int,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Get bookings, newest event first"""
    service = BookingService(db)
    try:
        if search:
            return service.search_bookings(business_id, search)
        return service.list_bookings(business_id, status=status, start_date=start_date, end_date=end_date)
    except LedgerError as e:
        raise http_error(e)

@router.get("/stats", response_model=BookingStats)
async def get_booking_stats(business_id: int, db: Session = Depends(get_db)):
    try:
        return BookingService(db).booking_stats(business_id)
    except LedgerError as e:
        raise http_error(e)

@router.get("/overbooked", response_model=List[Booking])
async def get_overbooked_bookings(business_id: int, db: Session = Depends(get_db)):
    """Open bookings that rely on borrowed stock"""
    return BookingService(db).overbooked_bookings(business_id)

@router.get("/upcoming", response_model=List[Booking])
async def get_upcoming_bookings(business_id: int, days: int = 7, db: Session = Depends(get_db)):
    return BookingService(db).upcoming_bookings(business_id, days=days)

@router.post("/sweep-overdue", response_model=SweepResult)
async def sweep_overdue_bookings(business_id: int, db: Session = Depends(get_db)):
    """Mark active bookings past their return date as overdue"""
    try:
        return {"updated": BookingService(db).sweep_overdue(business_id)}
    except LedgerError as e:
        raise http_error(e)

@router.get("/{booking_id}", response_model=Booking)
async def get_booking(business_id: int, booking_id: int, db: Session = Depends(get_db)):
    """Get a specific booking"""
    try:
        return BookingService(db).get_booking(business_id, booking_id)
    except LedgerError as e:
        raise http_error(e)

@router.post("/{booking_id}/return", response_model=Booking)
async def return_booking(business_id: int, booking_id: int, db: Session = Depends(get_db)):
    """Close the booking and restore its owned stock"""
    try:
        return await BookingService(db).return_booking(business_id, booking_id)
    except LedgerError as e:
        raise http_error(e)

@router.post("/{booking_id}/cancel", response_model=Booking)
async def cancel_booking(
    business_id: int,
    booking_id: int,
    cancellation: Optional[BookingCancel] = None,
    db: Session = Depends(get_db)
):
    """Cancel an active booking and restore its owned stock"""
    reason = cancellation.reason if cancellation else ""
    try:
        return await BookingService(db).cancel_booking(business_id, booking_id, reason)
    except LedgerError as e:
        raise http_error(e)

@router.delete("/{booking_id}", status_code=204)
async def delete_booking(business_id: int, booking_id: int, db: Session = Depends(get_db)):
    """Delete a booking record without touching inventory"""
    try:
        BookingService(db).delete_booking(business_id, booking_id)
    except LedgerError as e:
        raise http_error(e)
