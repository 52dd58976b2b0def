"""Administration of class pricing rules: create, retire, list."""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Iterable

from sqlalchemy.orm import Session

from studioflow.models.pricing import ClassPricingDefault, ClientClassPricing
from studioflow.models.schedule import ClassOccurrence, ClassTemplate
from studioflow.schemas.pricing import ClientPricingCreate, PricingDefaultCreate
from studioflow.services.activity_log import log_activity
from studioflow.services.validity import as_utc, is_valid_at

logger = logging.getLogger(__name__)


class PricingRuleNotFound(Exception):
    pass


def windows_overlap(
    a_from: dt.datetime, a_until: dt.datetime | None, b_from: dt.datetime, b_until: dt.datetime | None
) -> bool:
    """Half-open windows [from, until) overlap; None is an open end."""
    a_from, b_from = as_utc(a_from), as_utc(b_from)
    if a_until is not None and as_utc(a_until) <= b_from:
        return False
    if b_until is not None and as_utc(b_until) <= a_from:
        return False
    return True


def _overlapping(rules: Iterable, *, valid_from: dt.datetime, valid_until: dt.datetime | None) -> list[int]:
    return sorted(r.id for r in rules if windows_overlap(r.valid_from, r.valid_until, valid_from, valid_until))


def create_pricing_default(db: Session, *, payload: PricingDefaultCreate, created_by: int | None = None) -> ClassPricingDefault:
    if db.get(ClassTemplate, payload.class_template_id) is None:
        raise ValueError(f"Class template not found: ID {payload.class_template_id}")

    if payload.is_active:
        existing = (
            db.query(ClassPricingDefault)
            .filter(
                ClassPricingDefault.class_template_id == payload.class_template_id,
                ClassPricingDefault.is_active.is_(True),
            )
            .all()
        )
        overlaps = _overlapping(existing, valid_from=payload.valid_from, valid_until=payload.valid_until)
        if overlaps:
            logger.warning(
                "pricing_overlap: kind=template_default class_template_id=%d overlaps=%s",
                payload.class_template_id,
                overlaps,
            )

    rule = ClassPricingDefault(
        name=payload.name,
        class_template_id=payload.class_template_id,
        entry_fee_brutto=payload.entry_fee_brutto,
        trainer_fee_brutto=payload.trainer_fee_brutto,
        currency=payload.currency,
        valid_from=payload.valid_from,
        valid_until=payload.valid_until,
        is_active=payload.is_active,
        created_by=created_by,
    )
    db.add(rule)
    db.flush()
    log_activity(
        db,
        action="pricing_default_created",
        entity_type="class_pricing_default",
        entity_id=rule.id,
        actor_id=created_by,
        details=payload.model_dump(mode="json"),
    )
    db.commit()
    db.refresh(rule)
    return rule


def create_client_pricing(db: Session, *, payload: ClientPricingCreate, created_by: int | None = None) -> ClientClassPricing:
    q = db.query(ClientClassPricing).filter(
        ClientClassPricing.client_id == payload.client_id,
        ClientClassPricing.is_active.is_(True),
    )
    if payload.class_occurrence_id is not None:
        if db.get(ClassOccurrence, payload.class_occurrence_id) is None:
            raise ValueError(f"Class occurrence not found: ID {payload.class_occurrence_id}")
        q = q.filter(ClientClassPricing.class_occurrence_id == payload.class_occurrence_id)
    else:
        if db.get(ClassTemplate, payload.class_template_id) is None:
            raise ValueError(f"Class template not found: ID {payload.class_template_id}")
        q = q.filter(ClientClassPricing.class_template_id == payload.class_template_id)

    overlaps = _overlapping(q.all(), valid_from=payload.valid_from, valid_until=payload.valid_until)
    if overlaps:
        logger.warning(
            "pricing_overlap: kind=client_pricing client_id=%d class_template_id=%s class_occurrence_id=%s overlaps=%s",
            payload.client_id,
            payload.class_template_id,
            payload.class_occurrence_id,
            overlaps,
        )

    rule = ClientClassPricing(
        client_id=payload.client_id,
        class_template_id=payload.class_template_id,
        class_occurrence_id=payload.class_occurrence_id,
        entry_fee_brutto=payload.entry_fee_brutto,
        trainer_fee_brutto=payload.trainer_fee_brutto,
        currency=payload.currency,
        valid_from=payload.valid_from,
        valid_until=payload.valid_until,
        is_active=True,
        source=payload.source,
        created_by=created_by,
    )
    db.add(rule)
    db.flush()
    log_activity(
        db,
        action="client_pricing_created",
        entity_type="client_class_pricing",
        entity_id=rule.id,
        actor_id=created_by,
        details=payload.model_dump(mode="json"),
    )
    db.commit()
    db.refresh(rule)
    return rule


def _deactivate(db: Session, model, *, rule_id: int, action: str, entity_type: str, actor_id: int | None):  # noqa: ANN001, ANN202
    try:
        rule = db.query(model).filter(model.id == rule_id).with_for_update().populate_existing().first()
        if rule is None:
            raise PricingRuleNotFound(f"{entity_type} not found: ID {rule_id}")
        was_active = rule.is_active
        rule.is_active = False
        if was_active:
            log_activity(
                db,
                action=action,
                entity_type=entity_type,
                entity_id=rule.id,
                actor_id=actor_id,
                details={"is_active_before": True, "is_active_after": False},
            )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(rule)
    return rule


def deactivate_pricing_default(db: Session, *, rule_id: int, actor_id: int | None = None) -> ClassPricingDefault:
    return _deactivate(
        db,
        ClassPricingDefault,
        rule_id=rule_id,
        action="pricing_default_deactivated",
        entity_type="class_pricing_default",
        actor_id=actor_id,
    )


def deactivate_client_pricing(db: Session, *, rule_id: int, actor_id: int | None = None) -> ClientClassPricing:
    return _deactivate(
        db,
        ClientClassPricing,
        rule_id=rule_id,
        action="client_pricing_deactivated",
        entity_type="client_class_pricing",
        actor_id=actor_id,
    )


def list_pricing_defaults(
    db: Session, *, class_template_id: int | None = None, active_only: bool = False
) -> list[ClassPricingDefault]:
    q = db.query(ClassPricingDefault)
    if class_template_id is not None:
        q = q.filter(ClassPricingDefault.class_template_id == class_template_id)
    if active_only:
        q = q.filter(ClassPricingDefault.is_active.is_(True))
    return q.order_by(ClassPricingDefault.valid_from.desc(), ClassPricingDefault.id.desc()).all()


def list_client_pricing(
    db: Session,
    *,
    client_id: int,
    class_template_id: int | None = None,
    class_occurrence_id: int | None = None,
    valid_at: dt.datetime | None = None,
) -> list[ClientClassPricing]:
    q = db.query(ClientClassPricing).filter(ClientClassPricing.client_id == client_id)
    if class_template_id is not None:
        q = q.filter(ClientClassPricing.class_template_id == class_template_id)
    if class_occurrence_id is not None:
        q = q.filter(ClientClassPricing.class_occurrence_id == class_occurrence_id)
    rules = q.order_by(ClientClassPricing.valid_from.desc(), ClientClassPricing.id.desc()).all()
    if valid_at is not None:
        rules = [r for r in rules if is_valid_at(r, valid_at)]
    return rules
