"""Contact repository - HubSpot reads and writes for student contacts"""

from typing import Any, Optional

from pydantic import BaseModel

from ...services.hubspot_service import HubSpotService
from ...shared.validators import parse_int
from ..credits.ledger import CREDIT_PROPERTIES, CreditBalances

CONTACT_PROPERTIES = ["student_id", "firstname", "lastname", "email", *CREDIT_PROPERTIES, "hs_object_id"]


class Contact(BaseModel):
    """Authenticated student and their credit balances"""

    id: str
    student_id: Optional[str] = None
    email: Optional[str] = None
    firstname: str = ""
    lastname: str = ""
    credits: CreditBalances

    @property
    def display_name(self) -> str:
        return f"{self.firstname} {self.lastname}".strip()

    @classmethod
    def from_hubspot(cls, obj: dict[str, Any]) -> "Contact":
        props = obj.get("properties") or {}
        return cls(
            id=str(obj["id"]),
            student_id=props.get("student_id"),
            email=props.get("email"),
            firstname=props.get("firstname") or "",
            lastname=props.get("lastname") or "",
            credits=CreditBalances(**{name: max(0, parse_int(props.get(name))) for name in CREDIT_PROPERTIES}),
        )


class ContactRepository:
    """Repository for contact records in HubSpot"""

    def __init__(self, hubspot: HubSpotService):
        self.hubspot = hubspot
        self.object_type = hubspot.types.contacts

    async def find_by_student(self, student_id: str, email: str) -> Optional[Contact]:
        """Find the contact matching both student id and email"""
        result = await self.hubspot.search_objects(
            self.object_type,
            filters=[
                {"propertyName": "student_id", "operator": "EQ", "value": student_id},
                {"propertyName": "email", "operator": "EQ", "value": email},
            ],
            properties=CONTACT_PROPERTIES,
            limit=1,
        )
        results = result["results"]
        return Contact.from_hubspot(results[0]) if results else None

    async def get_contact(self, contact_id: str) -> Optional[Contact]:
        obj = await self.hubspot.get_object(self.object_type, contact_id, properties=CONTACT_PROPERTIES)
        return Contact.from_hubspot(obj) if obj else None

    async def set_credit_balance(self, contact_id: str, credit_field: str, value: int) -> None:
        await self.hubspot.update_object(self.object_type, contact_id, {credit_field: value})
