from __future__ import annotations

import datetime as dt
import logging

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session

from studioflow.models.credit_pass import Pass
from studioflow.models.enums import PassStatus
from studioflow.schemas.credit import PassCreate
from studioflow.services.activity_log import log_activity
from studioflow.services.validity import business_today

logger = logging.getLogger(__name__)


class PolicyViolation(Exception):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


def _available(db: Session, *, client_id: int, on: dt.date) -> Query:
    return db.query(Pass).filter(
        Pass.client_id == client_id,
        Pass.status == PassStatus.ACTIVE,
        Pass.credits_left > 0,
        Pass.valid_from <= on,
        or_(Pass.valid_until.is_(None), Pass.valid_until >= on),
    )


def get_available_pass(db: Session, *, client_id: int, on: dt.date | None = None) -> Pass | None:
    """The pass to spend next: the one expiring soonest, open-ended passes last, oldest first on ties."""
    on = on or business_today()
    return (
        _available(db, client_id=client_id, on=on)
        .order_by(Pass.valid_until.asc().nulls_last(), Pass.created_at.asc(), Pass.id.asc())
        .first()
    )


def has_available_credits(db: Session, *, client_id: int, on: dt.date | None = None) -> bool:
    return get_available_pass(db, client_id=client_id, on=on) is not None


def get_total_available_credits(db: Session, *, client_id: int, on: dt.date | None = None) -> int:
    on = on or business_today()
    total = (
        _available(db, client_id=client_id, on=on)
        .with_entities(func.coalesce(func.sum(Pass.credits_left), 0))
        .scalar()
    )
    return int(total)


def _lock_pass(query: Query) -> Pass | None:
    # populate_existing: a pass already in the identity map must be re-read under the lock.
    return query.with_for_update().populate_existing().first()


def deduct_credit(
    db: Session,
    *,
    client_id: int,
    reason: str = "",
    actor_id: int | None = None,
    on: dt.date | None = None,
) -> Pass:
    """Spend one credit. Raises PolicyViolation when the client has nothing to spend."""
    try:
        candidate = get_available_pass(db, client_id=client_id, on=on)
        if candidate is None:
            raise PolicyViolation(
                "No active pass with available credits found",
                details={"client_id": client_id, "reason": reason},
            )

        pass_ = _lock_pass(db.query(Pass).filter(Pass.id == candidate.id))
        if pass_ is None or pass_.status != PassStatus.ACTIVE or pass_.credits_left <= 0:
            raise PolicyViolation(
                "Pass has no remaining credits",
                details={"client_id": client_id, "pass_id": candidate.id, "reason": reason},
            )

        before = pass_.credits_left
        pass_.credits_left = before - 1
        if pass_.credits_left == 0:
            pass_.status = PassStatus.DEPLETED

        log_activity(
            db,
            action="credit_deducted",
            entity_type="pass",
            entity_id=pass_.id,
            actor_id=actor_id,
            details={
                "client_id": client_id,
                "reason": reason,
                "credits_left_before": before,
                "credits_left_after": pass_.credits_left,
                "status_after": pass_.status.value,
            },
        )
        db.commit()
    except PolicyViolation as e:
        db.rollback()
        logger.warning("credit_deduct_refused: client_id=%d message=%s", client_id, e.message)
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(pass_)
    return pass_


def refund_credit(
    db: Session,
    *,
    client_id: int,
    credits: int = 1,
    reason: str = "",
    pass_id: int | None = None,
    actor_id: int | None = None,
) -> Pass:
    """
    Give credits back, to `pass_id` if given, else to the client's most recently used pass.

    Credits never exceed the pass total. A depleted pass becomes active again.
    """
    if credits < 1:
        raise ValueError("credits must be >= 1")

    try:
        q = db.query(Pass).filter(Pass.client_id == client_id)
        if pass_id is not None:
            pass_ = _lock_pass(q.filter(Pass.id == pass_id))
        else:
            pass_ = _lock_pass(
                q.filter(Pass.credits_left < Pass.total_credits).order_by(Pass.updated_at.desc(), Pass.id.desc())
            )
        if pass_ is None:
            raise PolicyViolation(
                "No pass found to refund",
                details={"client_id": client_id, "pass_id": pass_id, "reason": reason},
            )

        before = pass_.credits_left
        status_before = pass_.status
        pass_.credits_left = min(pass_.total_credits, before + credits)
        if pass_.status == PassStatus.DEPLETED and pass_.credits_left > 0:
            pass_.status = PassStatus.ACTIVE

        log_activity(
            db,
            action="credit_refunded",
            entity_type="pass",
            entity_id=pass_.id,
            actor_id=actor_id,
            details={
                "client_id": client_id,
                "reason": reason,
                "credits_requested": credits,
                "credits_left_before": before,
                "credits_left_after": pass_.credits_left,
                "status_before": status_before.value,
                "status_after": pass_.status.value,
            },
        )
        db.commit()
    except PolicyViolation as e:
        db.rollback()
        logger.warning("credit_refund_refused: client_id=%d message=%s", client_id, e.message)
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(pass_)
    return pass_


def create_pass(db: Session, *, payload: PassCreate, actor_id: int | None = None) -> Pass:
    pass_ = Pass(
        client_id=payload.client_id,
        pass_type=payload.pass_type,
        total_credits=payload.total_credits,
        credits_left=payload.credits_left,
        valid_from=payload.valid_from,
        valid_until=payload.valid_until,
        status=PassStatus.ACTIVE if payload.credits_left > 0 else PassStatus.DEPLETED,
        source=payload.source,
        external_reference=payload.external_reference,
    )
    db.add(pass_)
    db.flush()
    log_activity(
        db,
        action="pass_created",
        entity_type="pass",
        entity_id=pass_.id,
        actor_id=actor_id,
        details=payload.model_dump(mode="json"),
    )
    db.commit()
    db.refresh(pass_)
    return pass_
