"""Mock exam session types and type-conditional booking attributes"""

from enum import Enum


class MockType(str, Enum):
    SITUATIONAL_JUDGMENT = "Situational Judgment"
    CLINICAL_SKILLS = "Clinical Skills"
    MINI_MOCK = "Mini-mock"


class AttendingLocation(str, Enum):
    MISSISSAUGA = "mississauga"
    CALGARY = "calgary"
    VANCOUVER = "vancouver"
    MONTREAL = "montreal"
    RICHMOND_HILL = "richmond_hill"


def requires_dominant_hand(mock_type: MockType) -> bool:
    """Clinical Skills records handedness; every other type records a location"""
    return mock_type == MockType.CLINICAL_SKILLS
