from studioflow.models.activity_log import ActivityLog
from studioflow.models.client import Client
from studioflow.models.credit_pass import Pass
from studioflow.models.pricing import ClassPricingDefault, ClientClassPricing
from studioflow.models.schedule import ClassOccurrence, ClassRegistration, ClassTemplate
from studioflow.models.service_type import ClientPriceCode, ServiceType
from studioflow.models.settlement import Settlement, SettlementItem
from studioflow.models.trainer import Trainer

__all__ = [
    "ActivityLog",
    "ClassOccurrence",
    "ClassPricingDefault",
    "ClassRegistration",
    "ClassTemplate",
    "Client",
    "ClientClassPricing",
    "ClientPriceCode",
    "Pass",
    "ServiceType",
    "Settlement",
    "SettlementItem",
    "Trainer",
]
