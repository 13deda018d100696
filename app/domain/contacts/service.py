"""Identity resolver - authenticates a student against HubSpot contacts"""

import logging

from ...errors import BookingError
from .repository import Contact, ContactRepository

logger = logging.getLogger(__name__)


class IdentityResolver:
    def __init__(self, contacts: ContactRepository):
        self.contacts = contacts

    async def authenticate(self, student_id: str, email: str) -> Contact:
        """Resolve the contact for a student id + email pair or fail with AUTH_FAILED"""
        contact = await self.contacts.find_by_student(student_id, email)
        if not contact:
            logger.warning(f"⚠️ Authentication failed for student {student_id}")
            raise BookingError.auth_failed()

        logger.info(f"✅ Contact authenticated: {contact.id} - {contact.display_name}")
        return contact
