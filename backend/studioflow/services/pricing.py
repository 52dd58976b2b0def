from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Iterable

from sqlalchemy.orm import Session

from studioflow.core.config import settings
from studioflow.models.enums import PriceSourceKind
from studioflow.models.pricing import ClassPricingDefault, ClientClassPricing
from studioflow.models.schedule import ClassOccurrence
from studioflow.schemas.pricing import ResolvedPrice
from studioflow.services.validity import as_utc, is_valid_at

logger = logging.getLogger(__name__)


class MissingPricing(Exception):
    """No pricing rule matched. Callers decide whether to skip (batch) or surface it (interactive)."""

    def __init__(self, message: str = "Pricing is not configured for this class and client", details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


def _created_key(rule) -> dt.datetime:  # noqa: ANN001
    created = rule.created_at
    if created is None:
        return dt.datetime.min
    if created.tzinfo is not None:
        created = created.astimezone(dt.timezone.utc).replace(tzinfo=None)
    return created


def rule_precedence(rule) -> tuple:  # noqa: ANN001
    """Tie-break inside one tier: latest valid_from, then latest created, then highest id."""
    return as_utc(rule.valid_from), _created_key(rule), rule.id or 0


def pick_valid_rule(rules: Iterable, at: dt.datetime, *, tier: str, context: dict):  # noqa: ANN201
    valid = [r for r in rules if is_valid_at(r, at)]
    if not valid:
        return None
    chosen = max(valid, key=rule_precedence)
    if len(valid) > 1:
        logger.warning(
            "pricing_anomaly: tier=%s candidates=%s chosen=%d context=%s",
            tier,
            sorted(r.id for r in valid),
            chosen.id,
            context,
        )
    return chosen


def _to_resolved(rule, source: PriceSourceKind) -> ResolvedPrice:  # noqa: ANN001
    return ResolvedPrice(
        entry_fee_brutto=rule.entry_fee_brutto,
        trainer_fee_brutto=rule.trainer_fee_brutto,
        currency=rule.currency,
        source=source,
        source_id=rule.id,
    )


class PriceResolver:
    """
    Resolves the price of a class occurrence for a client.

    Priority, first valid match wins:
    1. client + occurrence override
    2. client + template override
    3. active template default
    The technical guest has no identity to match, so it goes straight to tier 3.
    """

    def __init__(self, db: Session, *, technical_guest_client_id: int | None = None):
        self.db = db
        self.technical_guest_client_id = technical_guest_client_id

    def is_technical_guest(self, client_id: int | None) -> bool:
        return client_id is not None and client_id == self.technical_guest_client_id

    def resolve(self, client_id: int | None, occurrence: ClassOccurrence, at_time: dt.datetime | None = None) -> ResolvedPrice:
        at = as_utc(at_time) if at_time is not None else dt.datetime.now(dt.timezone.utc)
        if client_id is None or self.is_technical_guest(client_id):
            return self.resolve_template_default(occurrence, at)

        context = {"client_id": client_id, "class_occurrence_id": occurrence.id, "class_template_id": occurrence.template_id}

        occurrence_rules = (
            self.db.query(ClientClassPricing)
            .filter(
                ClientClassPricing.client_id == client_id,
                ClientClassPricing.class_occurrence_id == occurrence.id,
                ClientClassPricing.is_active.is_(True),
            )
            .all()
        )
        rule = pick_valid_rule(occurrence_rules, at, tier="client_occurrence", context=context)
        if rule is not None:
            return _to_resolved(rule, PriceSourceKind.CLIENT_OCCURRENCE_SPECIFIC)

        if occurrence.template_id is not None:
            template_rules = (
                self.db.query(ClientClassPricing)
                .filter(
                    ClientClassPricing.client_id == client_id,
                    ClientClassPricing.class_template_id == occurrence.template_id,
                    ClientClassPricing.is_active.is_(True),
                )
                .all()
            )
            rule = pick_valid_rule(template_rules, at, tier="client_template", context=context)
            if rule is not None:
                return _to_resolved(rule, PriceSourceKind.CLIENT_TEMPLATE_SPECIFIC)

            rule = self._template_default(occurrence.template_id, at, context)
            if rule is not None:
                return _to_resolved(rule, PriceSourceKind.TEMPLATE_DEFAULT)

        raise MissingPricing(details={**context, "checked_at": at.isoformat()})

    def resolve_for_occurrence_id(
        self, client_id: int | None, occurrence_id: int, at_time: dt.datetime | None = None
    ) -> ResolvedPrice:
        occurrence = self.db.get(ClassOccurrence, occurrence_id)
        if occurrence is None:
            raise MissingPricing("Class occurrence not found", details={"client_id": client_id, "class_occurrence_id": occurrence_id})
        return self.resolve(client_id, occurrence, at_time)

    def resolve_template_default(self, occurrence: ClassOccurrence, at_time: dt.datetime | None = None) -> ResolvedPrice:
        at = as_utc(at_time) if at_time is not None else dt.datetime.now(dt.timezone.utc)
        context = {"client_id": None, "class_occurrence_id": occurrence.id, "class_template_id": occurrence.template_id}
        if occurrence.template_id is not None:
            rule = self._template_default(occurrence.template_id, at, context)
            if rule is not None:
                return _to_resolved(rule, PriceSourceKind.TEMPLATE_DEFAULT)
        raise MissingPricing(details={**context, "checked_at": at.isoformat()})

    def resolve_service(self, client_id: int | None, service_type_id: int, at_time: dt.datetime | None = None) -> ResolvedPrice:
        """Individual-service pricing (price codes, then service type defaults)."""
        from studioflow.services import price_codes

        if client_id is None or self.is_technical_guest(client_id):
            return price_codes.resolve_for_technical_guest(self.db, service_type_id=service_type_id)
        return price_codes.resolve_by_client_and_service_type(
            self.db, client_id=client_id, service_type_id=service_type_id, at=at_time
        )

    def _template_default(self, template_id: int, at: dt.datetime, context: dict) -> ClassPricingDefault | None:
        defaults = (
            self.db.query(ClassPricingDefault)
            .filter(ClassPricingDefault.class_template_id == template_id, ClassPricingDefault.is_active.is_(True))
            .all()
        )
        return pick_valid_rule(defaults, at, tier="template_default", context=context)


def get_price_resolver(db: Session) -> PriceResolver:
    return PriceResolver(db, technical_guest_client_id=settings.technical_guest_client_id)
