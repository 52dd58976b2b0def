from __future__ import annotations

import enum


class ClassTemplateStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class OccurrenceStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RegistrationStatus(str, enum.Enum):
    BOOKED = "booked"
    WAITLIST = "waitlist"
    ATTENDED = "attended"
    NO_SHOW = "no_show"
    CANCELLED = "cancelled"


class PricingSource(str, enum.Enum):
    MANUAL = "manual"
    IMPORT = "import"
    PROMOTION = "promotion"


class PriceSourceKind(str, enum.Enum):
    """Which rule satisfied a price query."""

    CLIENT_OCCURRENCE_SPECIFIC = "client_occurrence_specific"
    CLIENT_TEMPLATE_SPECIFIC = "client_template_specific"
    TEMPLATE_DEFAULT = "template_default"
    SERVICE_TYPE_DEFAULT = "service_type_default"
    CLIENT_PRICE_CODE = "client_price_code"


class SettlementStatus(str, enum.Enum):
    DRAFT = "draft"
    FINALIZED = "finalized"
    PAID = "paid"


class PassStatus(str, enum.Enum):
    ACTIVE = "active"
    DEPLETED = "depleted"
    EXPIRED = "expired"


class FeeCharge(str, enum.Enum):
    NONE = "none"
    ENTRY_ONLY = "entry_only"  # client still pays entry, trainer gets nothing
    FULL = "full"
