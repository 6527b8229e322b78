"""Enums for stored response records."""

from enum import Enum


class CollectionTarget(str, Enum):
    """Storage collection a submission or imported row is routed into."""

    LEAD = "lead"
    VOLUNTEER = "volunteer"
    GENERIC = "generic"


class LeadStatus(str, Enum):
    """Follow-up status of a lead record."""

    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    CONVERTED = "converted"
    REJECTED = "rejected"
