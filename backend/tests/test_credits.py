"""Tests for the pass credit ledger."""

import datetime as dt

import pytest
from sqlalchemy.orm import Session

from studioflow.models.activity_log import ActivityLog
from studioflow.models.client import Client
from studioflow.models.credit_pass import Pass
from studioflow.models.enums import PassStatus
from studioflow.schemas.credit import PassCreate
from studioflow.services import credits
from studioflow.services.credits import (
    PolicyViolation,
    create_pass,
    deduct_credit,
    get_available_pass,
    get_total_available_credits,
    has_available_credits,
    refund_credit,
)

TODAY = dt.date(2026, 3, 10)


def _client(db: Session) -> Client:
    c = Client(full_name="Béla Kiss", email="bela@example.com")
    db.add(c)
    db.commit()
    return c


def _pass(db: Session, client: Client, *, total: int = 10, left: int | None = None, valid_from=dt.date(2026, 1, 1), valid_until=None, status=PassStatus.ACTIVE) -> Pass:
    p = Pass(
        client_id=client.id,
        total_credits=total,
        credits_left=total if left is None else left,
        valid_from=valid_from,
        valid_until=valid_until,
        status=status,
    )
    db.add(p)
    db.commit()
    return p


@pytest.fixture(autouse=True)
def _fixed_today(monkeypatch):
    monkeypatch.setattr(credits, "business_today", lambda *a, **kw: TODAY)


def test_soonest_expiring_pass_is_used_first(db: Session):
    c = _client(db)
    _pass(db, c, valid_until=None)
    late = _pass(db, c, valid_until=dt.date(2026, 6, 30))
    soon = _pass(db, c, valid_until=dt.date(2026, 3, 31))

    assert get_available_pass(db, client_id=c.id).id == soon.id
    assert late.id != soon.id


def test_open_ended_passes_ordered_by_age(db: Session):
    c = _client(db)
    first = _pass(db, c)
    _pass(db, c)

    assert get_available_pass(db, client_id=c.id).id == first.id


def test_unavailable_passes_are_ignored(db: Session):
    c = _client(db)
    _pass(db, c, left=0, status=PassStatus.DEPLETED)
    _pass(db, c, valid_until=dt.date(2026, 3, 9))  # expired yesterday
    _pass(db, c, valid_from=dt.date(2026, 3, 11))  # starts tomorrow
    _pass(db, c, status=PassStatus.EXPIRED)

    assert get_available_pass(db, client_id=c.id) is None
    assert not has_available_credits(db, client_id=c.id)
    assert get_total_available_credits(db, client_id=c.id) == 0


def test_validity_days_are_inclusive(db: Session):
    c = _client(db)
    p = _pass(db, c, valid_from=TODAY, valid_until=TODAY)

    assert get_available_pass(db, client_id=c.id).id == p.id


def test_total_available_credits(db: Session):
    c = _client(db)
    _pass(db, c, total=10, left=4)
    _pass(db, c, total=5, left=5)
    _pass(db, c, total=5, left=5, valid_until=dt.date(2026, 1, 31))

    assert get_total_available_credits(db, client_id=c.id) == 9


def test_deduct_decrements_and_audits(db: Session):
    c = _client(db)
    p = _pass(db, c, total=10, left=3)

    after = deduct_credit(db, client_id=c.id, reason="class booking", actor_id=5)

    assert after.id == p.id
    assert after.credits_left == 2
    assert after.status == PassStatus.ACTIVE
    log = db.query(ActivityLog).filter(ActivityLog.action == "credit_deducted").one()
    assert log.entity_id == p.id
    assert log.details["credits_left_before"] == 3
    assert log.details["credits_left_after"] == 2


def test_last_credit_depletes_pass(db: Session):
    c = _client(db)
    _pass(db, c, total=1)

    after = deduct_credit(db, client_id=c.id, reason="class booking")

    assert after.credits_left == 0
    assert after.status == PassStatus.DEPLETED
    with pytest.raises(PolicyViolation):
        deduct_credit(db, client_id=c.id, reason="class booking")


def test_deduct_without_pass_fails_cleanly(db: Session):
    c = _client(db)

    with pytest.raises(PolicyViolation) as exc:
        deduct_credit(db, client_id=c.id, reason="class booking")

    assert exc.value.details["client_id"] == c.id
    assert db.query(ActivityLog).count() == 0


def test_deduct_rechecks_pass_under_lock(session_factory, monkeypatch):
    """Two sessions race for the last credit; the loser sees fresh state and is refused."""
    setup = session_factory()
    c = _client(setup)
    p = _pass(setup, c, total=1)
    client_id, pass_id = c.id, p.id
    setup.close()

    slow = session_factory()
    fast = session_factory()
    try:
        stale = slow.get(Pass, pass_id)
        assert stale.credits_left == 1

        deduct_credit(fast, client_id=client_id, reason="first")

        monkeypatch.setattr(credits, "get_available_pass", lambda db, **kw: stale)
        with pytest.raises(PolicyViolation):
            deduct_credit(slow, client_id=client_id, reason="second")
    finally:
        slow.close()
        fast.close()

    check = session_factory()
    try:
        p = check.get(Pass, pass_id)
        assert p.credits_left == 0
        assert p.status == PassStatus.DEPLETED
        assert check.query(ActivityLog).filter(ActivityLog.action == "credit_deducted").count() == 1
    finally:
        check.close()


def test_refund_reactivates_depleted_pass(db: Session):
    c = _client(db)
    p = _pass(db, c, total=5, left=0, status=PassStatus.DEPLETED)

    after = refund_credit(db, client_id=c.id, reason="class cancelled")

    assert after.id == p.id
    assert after.credits_left == 1
    assert after.status == PassStatus.ACTIVE
    assert db.query(ActivityLog).filter(ActivityLog.action == "credit_refunded").count() == 1


def test_refund_is_capped_at_total(db: Session):
    c = _client(db)
    p = _pass(db, c, total=5, left=4)

    after = refund_credit(db, client_id=c.id, credits=3, pass_id=p.id)

    assert after.credits_left == 5


def test_refund_targets_most_recently_used_pass(db: Session):
    c = _client(db)
    older = _pass(db, c, total=5, left=2)
    newer = _pass(db, c, total=5, left=3)
    _pass(db, c, total=5, left=5)  # full, never a refund target
    older.updated_at = dt.datetime(2026, 3, 9, 10, 0, tzinfo=dt.timezone.utc)
    newer.updated_at = dt.datetime(2026, 3, 1, 10, 0, tzinfo=dt.timezone.utc)
    db.commit()

    after = refund_credit(db, client_id=c.id)

    assert after.id == older.id
    assert after.credits_left == 3


def test_refund_to_other_clients_pass_is_refused(db: Session):
    c = _client(db)
    other = Client(full_name="Other")
    db.add(other)
    db.commit()
    p = _pass(db, other, total=5, left=1)

    with pytest.raises(PolicyViolation):
        refund_credit(db, client_id=c.id, pass_id=p.id)
    db.refresh(p)
    assert p.credits_left == 1


def test_refund_without_candidate_pass(db: Session):
    c = _client(db)
    _pass(db, c, total=5, left=5)

    with pytest.raises(PolicyViolation):
        refund_credit(db, client_id=c.id)


def test_refund_requires_positive_credits(db: Session):
    c = _client(db)
    _pass(db, c, total=5, left=1)

    with pytest.raises(ValueError):
        refund_credit(db, client_id=c.id, credits=0)


def test_create_pass_defaults_credits_left_to_total(db: Session):
    c = _client(db)

    p = create_pass(db, payload=PassCreate(client_id=c.id, total_credits=8, valid_from=dt.date(2026, 3, 1)))

    assert p.credits_left == 8
    assert p.status == PassStatus.ACTIVE
    assert has_available_credits(db, client_id=c.id)


def test_pass_payload_rejects_excess_credits():
    with pytest.raises(ValueError):
        PassCreate(client_id=1, total_credits=2, credits_left=3, valid_from=dt.date(2026, 3, 1))
