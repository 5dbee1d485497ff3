from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from rentbook.api.errors import http_error
from rentbook.core.database import get_db
from rentbook.core.exceptions import LedgerError
from rentbook.models.schemas import Alert, Dashboard
from rentbook.services.alert_service import AlertService

router = APIRouter()

@router.get("/", response_model=List[Alert])
async def get_alerts(business_id: int, db: Session = Depends(get_db)):
    """Low stock, upcoming, overdue, overbooked and unpaid alerts"""
    try:
        return AlertService(db).generate(business_id)
    except LedgerError as e:
        raise http_error(e)

@router.get("/dashboard", response_model=Dashboard)
async def get_dashboard(business_id: int, db: Session = Depends(get_db)):
    try:
        return AlertService(db).dashboard(business_id)
    except LedgerError as e:
        raise http_error(e)
