from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional
from rentbook.api.errors import http_error
from rentbook.core.database import get_db
from rentbook.core.exceptions import LedgerError
from rentbook.models.schemas import (
    AvailabilityRequest, AvailabilityResult, InventorySummary, StockAdjust, StockItem,
    StockItemCreate, StockItemUpdate
)
from rentbook.services.stock_catalog import StockCatalog

router = APIRouter()

@router.post("/", response_model=StockItem)
async def create_stock_item(business_id: int, item_data: StockItemCreate, db: Session = Depends(get_db)):
    """Add an item to the business's catalog"""
    try:
        return StockCatalog(db).add(
            business_id,
            item_data.name,
            item_data.total_quantity,
            price=item_data.price,
            low_stock_threshold=item_data.low_stock_threshold,
        )
    except LedgerError as e:
        raise http_error(e)

@router.get("/", response_model=List[StockItem])
async def get_stock_items(business_id: int, search: Optional[str] = None, db: Session = Depends(get_db)):
    """Get all catalog items, optionally filtered by name"""
    return StockCatalog(db).list(business_id, search=search)

@router.get("/low-stock", response_model=List[StockItem])
async def get_low_stock_items(business_id: int, db: Session = Depends(get_db)):
    """Items at or below their low stock threshold"""
    return StockCatalog(db).low_stock(business_id)

@router.get("/summary", response_model=InventorySummary)
async def get_inventory_summary(business_id: int, db: Session = Depends(get_db)):
    return StockCatalog(db).summary(business_id)

@router.post("/availability", response_model=AvailabilityResult)
async def check_availability(business_id: int, request: AvailabilityRequest, db: Session = Depends(get_db)):
    """Preview the shortages a booking for these items would record"""
    try:
        lines = StockCatalog(db).check_availability(business_id, request.items)
    except LedgerError as e:
        raise http_error(e)
    return {"available": all(line["shortage"] == 0 for line in lines), "lines": lines}

@router.get("/{item_id}", response_model=StockItem)
async def get_stock_item(business_id: int, item_id: int, db: Session = Depends(get_db)):
    """Get a specific catalog item"""
    try:
        return StockCatalog(db).get(business_id, item_id)
    except LedgerError as e:
        raise http_error(e)

@router.put("/{item_id}", response_model=StockItem)
async def update_stock_item(
    business_id: int,
    item_id: int,
    item_data: StockItemUpdate,
    db: Session = Depends(get_db)
):
    """Overwrite an item's counts, price or name"""
    try:
        return StockCatalog(db).edit(business_id, item_id, **item_data.dict(exclude_unset=True))
    except LedgerError as e:
        raise http_error(e)

@router.post("/{item_id}/adjust", response_model=StockItem)
async def adjust_stock_item(
    business_id: int,
    item_id: int,
    adjustment: StockAdjust,
    db: Session = Depends(get_db)
):
    """Add to (or take from) the available quantity, saturating at 0 and the total"""
    try:
        return StockCatalog(db).adjust(business_id, item_id, adjustment.delta)
    except LedgerError as e:
        raise http_error(e)

@router.delete("/{item_id}", status_code=204)
async def delete_stock_item(business_id: int, item_id: int, db: Session = Depends(get_db)):
    try:
        StockCatalog(db).delete(business_id, item_id)
    except LedgerError as e:
        raise http_error(e)
