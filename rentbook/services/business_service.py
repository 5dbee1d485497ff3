import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rentbook.core.exceptions import NotFoundError, ValidationError
from rentbook.core.unit_of_work import commit_or_raise
from rentbook.models.database import ROLE_PERMISSIONS, Business, BusinessMember

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class BusinessService:
    """Businesses and the email memberships that scope callers to one of them"""

    def __init__(self, db: Session):
        self.db = db

    def create_business(self, name: str, owner_email: str) -> Business:
        """Create a business and make owner_email its owner"""
        email = normalize_email(owner_email)
        if not (name or "").strip():
            raise ValidationError("Business name is required")
        if not email:
            raise ValidationError("Owner email is required")
        if self._find_member(email):
            raise ValidationError(f"{email} is already linked to a business")

        business = Business(name=name.strip(), owner_email=email)
        business.members.append(
            BusinessMember(email=email, role="owner", status="accepted", invited_by=email)
        )
        self.db.add(business)
        try:
            commit_or_raise(self.db, label="business creation")
        except IntegrityError as e:
            raise ValidationError(f"{email} is already linked to a business") from e
        self.db.refresh(business)

        logger.info(f"Created business {business.id} ({business.name}) for {email}")
        return business

    def get_business(self, business_id: int) -> Business:
        business = self.db.query(Business).filter(Business.id == business_id).first()
        if not business:
            raise NotFoundError(f"Business {business_id} not found")
        return business

    def invite_member(
        self,
        business_id: int,
        email: str,
        role: str = "staff",
        name: Optional[str] = None,
        invited_by: Optional[str] = None,
    ) -> BusinessMember:
        """
        Add a partner to the business.

        An email can belong to only one business. Invitations stay pending
        until the invitee is known.
        """
        self.get_business(business_id)
        email = normalize_email(email)
        if not email:
            raise ValidationError("Member email is required")
        if role not in ROLE_PERMISSIONS or role == "owner":
            raise ValidationError(f"Unknown role '{role}'")

        existing = self._find_member(email)
        if existing:
            if existing.business_id != business_id:
                raise ValidationError("This email is already linked to another business")
            raise ValidationError("This partner is already added to your business")

        member = BusinessMember(
            business_id=business_id,
            email=email,
            name=name or "Pending User",
            role=role,
            status="pending",
            invited_by=normalize_email(invited_by) or None,
        )
        self.db.add(member)
        try:
            commit_or_raise(self.db, label="member invitation")
        except IntegrityError as e:
            raise ValidationError("This email is already linked to a business") from e
        self.db.refresh(member)

        logger.info(f"Invited {email} to business {business_id} as {role}")
        return member

    def list_members(self, business_id: int) -> List[BusinessMember]:
        self.get_business(business_id)
        return self.db.query(BusinessMember).filter(
            BusinessMember.business_id == business_id
        ).order_by(BusinessMember.id).all()

    def resolve_member(self, email: str) -> BusinessMember:
        """Membership for a caller's email; the caller's business is member.business_id"""
        member = self._find_member(normalize_email(email))
        if not member:
            raise NotFoundError(f"No business found for {normalize_email(email)}")
        return member

    def resolve_business_id(self, email: str) -> int:
        return self.resolve_member(email).business_id

    def _find_member(self, email: str) -> Optional[BusinessMember]:
        if not email:
            return None
        return self.db.query(BusinessMember).filter(BusinessMember.email == email).first()
