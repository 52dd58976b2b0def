from __future__ import annotations

import datetime as dt
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from studioflow.core.config import settings
from studioflow.models.enums import SettlementStatus
from studioflow.models.schedule import ClassOccurrence, ClassRegistration
from studioflow.models.settlement import Settlement, SettlementItem
from studioflow.models.trainer import Trainer
from studioflow.schemas.settlement import SettlementLine, SettlementPreview, SkippedRegistration
from studioflow.services.activity_log import log_activity
from studioflow.services.fee_policy import FeePolicy, fee_policy_from_settings
from studioflow.services.pricing import MissingPricing, PriceResolver, get_price_resolver
from studioflow.services.validity import business_today, month_period, period_bounds

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[SettlementStatus, SettlementStatus] = {
    SettlementStatus.DRAFT: SettlementStatus.FINALIZED,
    SettlementStatus.FINALIZED: SettlementStatus.PAID,
}


class SettlementExists(Exception):
    def __init__(self, settlement_id: int, *, trainer_id: int, period_start: dt.date, period_end: dt.date):
        super().__init__(
            f"Settlement already exists for trainer {trainer_id} {period_start.isoformat()}..{period_end.isoformat()}"
        )
        self.settlement_id = settlement_id


class SettlementNotFound(Exception):
    pass


class InvalidSettlementTransition(Exception):
    def __init__(self, current: SettlementStatus, requested: SettlementStatus):
        super().__init__(f"Cannot move settlement from {current.value} to {requested.value}")
        self.current = current
        self.requested = requested


def _occurrences_in_period(db: Session, *, trainer_id: int, start: dt.datetime, end: dt.datetime) -> list[ClassOccurrence]:
    return (
        db.query(ClassOccurrence)
        .options(
            selectinload(ClassOccurrence.registrations).selectinload(ClassRegistration.client),
            selectinload(ClassOccurrence.template),
        )
        .filter(
            ClassOccurrence.trainer_id == trainer_id,
            ClassOccurrence.starts_at >= start,
            ClassOccurrence.starts_at <= end,
        )
        .order_by(ClassOccurrence.starts_at.asc(), ClassOccurrence.id.asc())
        .all()
    )


def compute_settlement(
    db: Session,
    *,
    trainer_id: int,
    period_start: dt.date,
    period_end: dt.date,
    resolver: PriceResolver | None = None,
    fee_policy: FeePolicy | None = None,
) -> SettlementPreview:
    """
    Price every billable registration of the trainer's classes in the period.

    Period dates are inclusive business days. Registrations that cannot be priced are
    reported in `skipped` and do not stop the run. Nothing is written.
    """
    resolver = resolver or get_price_resolver(db)
    fee_policy = fee_policy or fee_policy_from_settings(settings)
    start, end = period_bounds(period_start, period_end)

    preview = SettlementPreview(
        trainer_id=trainer_id,
        period_start=period_start,
        period_end=period_end,
        currency=settings.default_currency,
    )

    for occurrence in _occurrences_in_period(db, trainer_id=trainer_id, start=start, end=end):
        class_name = occurrence.template.title if occurrence.template is not None else "Unknown"
        for registration in occurrence.registrations:
            if not fee_policy.includes(registration.status):
                continue
            try:
                price = resolver.resolve(registration.client_id, occurrence, occurrence.starts_at)
            except MissingPricing as e:
                logger.warning(
                    "settlement_missing_pricing: trainer_id=%d occurrence_id=%d client_id=%d registration_id=%d",
                    trainer_id,
                    occurrence.id,
                    registration.client_id,
                    registration.id,
                )
                preview.skipped.append(
                    SkippedRegistration(
                        occurrence_id=occurrence.id,
                        client_id=registration.client_id,
                        registration_id=registration.id,
                        reason=e.message,
                        details=e.details,
                    )
                )
                continue

            if price.currency != preview.currency:
                logger.warning(
                    "settlement_currency_mismatch: trainer_id=%d registration_id=%d item_currency=%s settlement_currency=%s",
                    trainer_id,
                    registration.id,
                    price.currency,
                    preview.currency,
                )
            fees = fee_policy.apply(registration.status, price)
            preview.items.append(
                SettlementLine(
                    class_occurrence_id=occurrence.id,
                    client_id=registration.client_id,
                    registration_id=registration.id,
                    entry_fee_brutto=fees.entry_fee_brutto,
                    trainer_fee_brutto=fees.trainer_fee_brutto,
                    currency=price.currency,
                    status=registration.status,
                    price_source=price.source,
                    price_source_id=price.source_id,
                    client_name=registration.client.full_name if registration.client is not None else "Unknown",
                    class_name=class_name,
                    class_date=occurrence.starts_at,
                )
            )
            preview.total_trainer_fee += fees.trainer_fee_brutto
            preview.total_entry_fee += fees.entry_fee_brutto

    logger.info(
        "settlement_preview: trainer_id=%d period=%s..%s items=%d skipped=%d",
        trainer_id,
        period_start.isoformat(),
        period_end.isoformat(),
        len(preview.items),
        len(preview.skipped),
    )
    return preview


def _existing(db: Session, *, trainer_id: int, period_start: dt.date, period_end: dt.date) -> Settlement | None:
    return (
        db.query(Settlement)
        .filter(
            Settlement.trainer_id == trainer_id,
            Settlement.period_start == period_start,
            Settlement.period_end == period_end,
        )
        .first()
    )


def generate_settlement(
    db: Session,
    *,
    trainer_id: int,
    period_start: dt.date,
    period_end: dt.date,
    notes: str | None = None,
    created_by: int | None = None,
    resolver: PriceResolver | None = None,
    fee_policy: FeePolicy | None = None,
) -> Settlement:
    """Compute and persist a draft settlement. One settlement per trainer and period."""
    existing = _existing(db, trainer_id=trainer_id, period_start=period_start, period_end=period_end)
    if existing is not None:
        raise SettlementExists(existing.id, trainer_id=trainer_id, period_start=period_start, period_end=period_end)

    preview = compute_settlement(
        db,
        trainer_id=trainer_id,
        period_start=period_start,
        period_end=period_end,
        resolver=resolver,
        fee_policy=fee_policy,
    )
    return _persist_settlement(db, preview=preview, notes=notes, created_by=created_by)


def _persist_settlement(
    db: Session, *, preview: SettlementPreview, notes: str | None = None, created_by: int | None = None
) -> Settlement:
    trainer_id, period_start, period_end = preview.trainer_id, preview.period_start, preview.period_end
    settlement = Settlement(
        trainer_id=trainer_id,
        period_start=period_start,
        period_end=period_end,
        total_trainer_fee=preview.total_trainer_fee,
        total_entry_fee=preview.total_entry_fee,
        currency=preview.currency,
        status=SettlementStatus.DRAFT,
        skipped=[s.model_dump(mode="json") for s in preview.skipped],
        notes=notes,
        created_by=created_by,
    )
    settlement.items = [SettlementItem(**line.model_dump()) for line in preview.items]

    try:
        db.add(settlement)
        db.flush()
        log_activity(
            db,
            action="settlement_generated",
            entity_type="settlement",
            entity_id=settlement.id,
            actor_id=created_by,
            details={
                "trainer_id": trainer_id,
                "period_start": period_start.isoformat(),
                "period_end": period_end.isoformat(),
                "items": len(preview.items),
                "skipped": len(preview.skipped),
                "total_trainer_fee": preview.total_trainer_fee,
                "total_entry_fee": preview.total_entry_fee,
            },
        )
        db.commit()
    except IntegrityError:
        # Lost a race against a concurrent generate for the same period.
        db.rollback()
        existing = _existing(db, trainer_id=trainer_id, period_start=period_start, period_end=period_end)
        if existing is None:
            raise
        raise SettlementExists(existing.id, trainer_id=trainer_id, period_start=period_start, period_end=period_end) from None
    except Exception:
        db.rollback()
        raise

    db.refresh(settlement)
    logger.info(
        "settlement_generated: settlement_id=%d trainer_id=%d items=%d total_trainer_fee=%d total_entry_fee=%d",
        settlement.id,
        trainer_id,
        len(settlement.items),
        settlement.total_trainer_fee,
        settlement.total_entry_fee,
    )
    return settlement


def transition_settlement(
    db: Session,
    *,
    settlement_id: int,
    status: SettlementStatus,
    notes: str | None = None,
    actor_id: int | None = None,
) -> Settlement:
    """Move a settlement one step forward (draft -> finalized -> paid). Anything else is refused."""
    try:
        settlement = (
            db.query(Settlement)
            .filter(Settlement.id == settlement_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if settlement is None:
            raise SettlementNotFound(f"Settlement not found: ID {settlement_id}")

        current = settlement.status
        if ALLOWED_TRANSITIONS.get(current) != status:
            raise InvalidSettlementTransition(current, status)

        settlement.status = status
        if notes is not None:
            settlement.notes = notes
        log_activity(
            db,
            action="settlement_status_changed",
            entity_type="settlement",
            entity_id=settlement.id,
            actor_id=actor_id,
            details={"from": current.value, "to": status.value},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(settlement)
    return settlement


def get_settlement(db: Session, *, settlement_id: int) -> Settlement:
    settlement = db.get(Settlement, settlement_id)
    if settlement is None:
        raise SettlementNotFound(f"Settlement not found: ID {settlement_id}")
    return settlement


def list_settlements(
    db: Session,
    *,
    trainer_id: int | None = None,
    status: SettlementStatus | None = None,
    date_from: dt.date | None = None,
    date_to: dt.date | None = None,
) -> list[Settlement]:
    q = db.query(Settlement)
    if trainer_id is not None:
        q = q.filter(Settlement.trainer_id == trainer_id)
    if status is not None:
        q = q.filter(Settlement.status == status)
    if date_from is not None:
        q = q.filter(Settlement.period_start >= date_from)
    if date_to is not None:
        q = q.filter(Settlement.period_end <= date_to)
    return q.order_by(Settlement.period_start.desc(), Settlement.id.desc()).all()


def run_monthly_settlements(db: Session, *, month: dt.date | None = None, dry_run: bool = False) -> dict[str, int]:
    """
    Month-end batch: settle the calendar month for every active trainer.

    Defaults to the previous month. Trainers that already have a settlement for the
    month are left alone, trainers with nothing to bill get none. Safe to re-run.
    """
    if month is None:
        month = business_today().replace(day=1) - dt.timedelta(days=1)
    period_start, period_end = month_period(month)

    counts = {"trainers_scanned": 0, "generated": 0, "already_settled": 0, "empty": 0, "skipped_registrations": 0}
    trainers = db.query(Trainer).filter(Trainer.is_active.is_(True)).order_by(Trainer.id.asc()).all()
    for trainer in trainers:
        counts["trainers_scanned"] += 1
        if _existing(db, trainer_id=trainer.id, period_start=period_start, period_end=period_end) is not None:
            counts["already_settled"] += 1
            continue

        preview = compute_settlement(db, trainer_id=trainer.id, period_start=period_start, period_end=period_end)
        counts["skipped_registrations"] += len(preview.skipped)
        if not preview.items:
            counts["empty"] += 1
            continue
        if not dry_run:
            try:
                _persist_settlement(db, preview=preview)
            except SettlementExists:
                # Generated concurrently since the check above.
                counts["already_settled"] += 1
                continue
        counts["generated"] += 1

    logger.info(
        "monthly_settlements: period=%s..%s dry_run=%s trainers_scanned=%d generated=%d already_settled=%d empty=%d",
        period_start.isoformat(),
        period_end.isoformat(),
        dry_run,
        counts["trainers_scanned"],
        counts["generated"],
        counts["already_settled"],
        counts["empty"],
    )
    return counts
