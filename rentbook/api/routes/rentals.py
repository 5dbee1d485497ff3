from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional
from rentbook.api.errors import http_error
from rentbook.core.database import get_db
from rentbook.core.exceptions import LedgerError
from rentbook.models.schemas import (
    BorrowedItem,
    BorrowedItemCreate,
    BorrowedItemUpdate,
    ExternalRental,
    ExternalRentalCreate,
    ExternalRentalUpdate,
    RentalSummary,
    RentalSweepResult,
)
from rentbook.services.rental_service import RentalService

router = APIRouter()

@router.post("/external", response_model=ExternalRental)
async def create_external_rental(
    business_id: int,
    rental_data: ExternalRentalCreate,
    db: Session = Depends(get_db)
):
    """Record stock lent out to another rental business"""
    try:
        return RentalService(db).add_external_rental(business_id, rental_data)
    except LedgerError as e:
        raise http_error(e)

@router.get("/external", response_model=List[ExternalRental])
async def get_external_rentals(business_id: int, status: Optional[str] = None, db: Session = Depends(get_db)):
    try:
        return RentalService(db).list_external_rentals(business_id, status=status)
    except LedgerError as e:
        raise http_error(e)

@router.get("/external/{rental_id}", response_model=ExternalRental)
async def get_external_rental(business_id: int, rental_id: int, db: Session = Depends(get_db)):
    try:
        return RentalService(db).get_external_rental(business_id, rental_id)
    except LedgerError as e:
        raise http_error(e)

@router.put("/external/{rental_id}", response_model=ExternalRental)
async def update_external_rental(
    business_id: int,
    rental_id: int,
    rental_data: ExternalRentalUpdate,
    db: Session = Depends(get_db)
):
    try:
        return RentalService(db).update_external_rental(
            business_id, rental_id, **rental_data.dict(exclude_unset=True)
        )
    except LedgerError as e:
        raise http_error(e)

@router.post("/external/{rental_id}/return", response_model=ExternalRental)
async def return_external_rental(business_id: int, rental_id: int, db: Session = Depends(get_db)):
    """Mark lent stock as back; returning twice is a no-op"""
    try:
        return RentalService(db).mark_external_rental_returned(business_id, rental_id)
    except LedgerError as e:
        raise http_error(e)

@router.delete("/external/{rental_id}", status_code=204)
async def delete_external_rental(business_id: int, rental_id: int, db: Session = Depends(get_db)):
    try:
        RentalService(db).delete_external_rental(business_id, rental_id)
    except LedgerError as e:
        raise http_error(e)

@router.post("/borrowed", response_model=BorrowedItem)
async def create_borrowed_item(
    business_id: int,
    borrow_data: BorrowedItemCreate,
    db: Session = Depends(get_db)
):
    """Record stock borrowed from another rental business, optionally for a booking"""
    try:
        return RentalService(db).add_borrowed_item(business_id, borrow_data)
    except LedgerError as e:
        raise http_error(e)

@router.get("/borrowed", response_model=List[BorrowedItem])
async def get_borrowed_items(
    business_id: int,
    status: Optional[str] = None,
    booking_id: Optional[int] = None,
    db: Session = Depends(get_db)
):
    try:
        return RentalService(db).list_borrowed_items(business_id, status=status, booking_id=booking_id)
    except LedgerError as e:
        raise http_error(e)

@router.get("/borrowed/{borrow_id}", response_model=BorrowedItem)
async def get_borrowed_item(business_id: int, borrow_id: int, db: Session = Depends(get_db)):
    try:
        return RentalService(db).get_borrowed_item(business_id, borrow_id)
    except LedgerError as e:
        raise http_error(e)

@router.put("/borrowed/{borrow_id}", response_model=BorrowedItem)
async def update_borrowed_item(
    business_id: int,
    borrow_id: int,
    borrow_data: BorrowedItemUpdate,
    db: Session = Depends(get_db)
):
    try:
        return RentalService(db).update_borrowed_item(
            business_id, borrow_id, **borrow_data.dict(exclude_unset=True)
        )
    except LedgerError as e:
        raise http_error(e)

@router.post("/borrowed/{borrow_id}/return", response_model=BorrowedItem)
async def return_borrowed_item(business_id: int, borrow_id: int, db: Session = Depends(get_db)):
    """Mark borrowed stock as handed back to its owner"""
    try:
        return RentalService(db).mark_borrowed_item_returned(business_id, borrow_id)
    except LedgerError as e:
        raise http_error(e)

@router.delete("/borrowed/{borrow_id}", status_code=204)
async def delete_borrowed_item(business_id: int, borrow_id: int, db: Session = Depends(get_db)):
    try:
        RentalService(db).delete_borrowed_item(business_id, borrow_id)
    except LedgerError as e:
        raise http_error(e)

@router.get("/summary", response_model=RentalSummary)
async def get_rental_summary(business_id: int, db: Session = Depends(get_db)):
    try:
        return RentalService(db).summary(business_id)
    except LedgerError as e:
        raise http_error(e)

@router.post("/sweep-overdue", response_model=RentalSweepResult)
async def sweep_overdue_rentals(business_id: int, db: Session = Depends(get_db)):
    """Mark active rentals and borrows past their return date as overdue"""
    try:
        return RentalService(db).sweep_overdue(business_id)
    except LedgerError as e:
        raise http_error(e)
