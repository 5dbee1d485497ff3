from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from rentbook.api.errors import http_error
from rentbook.core.database import get_db
from rentbook.core.exceptions import LedgerError
from rentbook.models.schemas import Business, BusinessCreate, BusinessLookup, Member, MemberInvite
from rentbook.services.business_service import BusinessService

router = APIRouter()

@router.post("/", response_model=Business)
async def create_business(business_data: BusinessCreate, db: Session = Depends(get_db)):
    """Create a business owned by the given email"""
    try:
        return BusinessService(db).create_business(business_data.name, business_data.owner_email)
    except LedgerError as e:
        raise http_error(e)

@router.get("/lookup", response_model=BusinessLookup)
async def lookup_business(email: str, db: Session = Depends(get_db)):
    """Resolve a member's email to their business"""
    try:
        member = BusinessService(db).resolve_member(email)
        return {"email": member.email, "business_id": member.business_id, "role": member.role}
    except LedgerError as e:
        raise http_error(e)

@router.get("/{business_id}", response_model=Business)
async def get_business(business_id: int, db: Session = Depends(get_db)):
    try:
        return BusinessService(db).get_business(business_id)
    except LedgerError as e:
        raise http_error(e)

@router.post("/{business_id}/members", response_model=Member)
async def invite_member(business_id: int, invite: MemberInvite, db: Session = Depends(get_db)):
    """Invite a partner into the business"""
    try:
        return BusinessService(db).invite_member(
            business_id, invite.email, role=invite.role, name=invite.name, invited_by=invite.invited_by
        )
    except LedgerError as e:
        raise http_error(e)

@router.get("/{business_id}/members", response_model=List[Member])
async def get_members(business_id: int, db: Session = Depends(get_db)):
    try:
        return BusinessService(db).list_members(business_id)
    except LedgerError as e:
        raise http_error(e)
