"""
HubSpot object type and association type identifiers

The portal-specific ids are injected into the gateway and the domain services
instead of being read from module globals, so tests can pass their own table.
"""

from pydantic import BaseModel, ConfigDict


class HubSpotObjectTypes(BaseModel):
    """Logical entity kind -> HubSpot object type id"""

    model_config = ConfigDict(frozen=True)

    contacts: str = "0-1"
    deals: str = "0-3"
    enrollments: str = "2-41701559"
    bookings: str = "2-50158943"
    mock_exams: str = "2-50158913"
    notes: str = "notes"

    # USER_DEFINED association type ids (same id works in both directions)
    booking_contact_association: int = 1289
    booking_mock_exam_association: int = 1291
    default_association: int = 1

    # HUBSPOT_DEFINED note association type ids
    note_contact_association: int = 202
    note_deal_association: int = 214

    def association_type_id(self, from_type: str, to_type: str) -> int:
        """Resolve the association type id for a pair of object types"""
        pair = {from_type, to_type}
        if pair == {self.bookings, self.contacts}:
            return self.booking_contact_association
        if pair == {self.bookings, self.mock_exams}:
            return self.booking_mock_exam_association
        return self.default_association


DEFAULT_OBJECT_TYPES = HubSpotObjectTypes()
