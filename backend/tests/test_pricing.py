"""Tests for the layered class price resolver."""

import datetime as dt
import logging

import pytest
from sqlalchemy.orm import Session

from studioflow.models.client import Client
from studioflow.models.enums import PriceSourceKind
from studioflow.models.pricing import ClassPricingDefault, ClientClassPricing
from studioflow.models.schedule import ClassOccurrence, ClassTemplate
from studioflow.models.service_type import ServiceType
from studioflow.models.trainer import Trainer
from studioflow.services.pricing import MissingPricing, PriceResolver

UTC = dt.timezone.utc
T0 = dt.datetime(2026, 1, 1, tzinfo=UTC)
STARTS = dt.datetime(2026, 3, 10, 17, 0, tzinfo=UTC)


def _setup(db: Session) -> tuple[Client, ClassOccurrence]:
    trainer = Trainer(name="Anna")
    client = Client(full_name="Béla Kiss", email="bela@example.com")
    db.add_all([trainer, client])
    db.flush()
    template = ClassTemplate(title="Pilates", trainer_id=trainer.id)
    db.add(template)
    db.flush()
    occ = ClassOccurrence(
        template_id=template.id,
        trainer_id=trainer.id,
        starts_at=STARTS,
        ends_at=STARTS + dt.timedelta(hours=1),
    )
    db.add(occ)
    db.commit()
    return client, occ


def _default(db: Session, occ: ClassOccurrence, *, entry: int, trainer_fee: int, valid_from=T0, valid_until=None, is_active=True):
    rule = ClassPricingDefault(
        class_template_id=occ.template_id,
        entry_fee_brutto=entry,
        trainer_fee_brutto=trainer_fee,
        currency="HUF",
        valid_from=valid_from,
        valid_until=valid_until,
        is_active=is_active,
    )
    db.add(rule)
    db.commit()
    return rule


def _override(db: Session, client: Client, *, entry: int, trainer_fee: int, occurrence_id=None, template_id=None, valid_from=T0, valid_until=None):
    rule = ClientClassPricing(
        client_id=client.id,
        class_occurrence_id=occurrence_id,
        class_template_id=template_id,
        entry_fee_brutto=entry,
        trainer_fee_brutto=trainer_fee,
        currency="HUF",
        valid_from=valid_from,
        valid_until=valid_until,
    )
    db.add(rule)
    db.commit()
    return rule


def test_template_default_is_used_without_overrides(db: Session):
    client, occ = _setup(db)
    rule = _default(db, occ, entry=2000, trainer_fee=8000)

    price = PriceResolver(db).resolve(client.id, occ, STARTS)

    assert (price.entry_fee_brutto, price.trainer_fee_brutto) == (2000, 8000)
    assert price.currency == "HUF"
    assert price.source == PriceSourceKind.TEMPLATE_DEFAULT
    assert price.source_id == rule.id


def test_client_template_override_beats_default(db: Session):
    client, occ = _setup(db)
    _default(db, occ, entry=2000, trainer_fee=8000)
    rule = _override(db, client, entry=1500, trainer_fee=7000, template_id=occ.template_id)

    price = PriceResolver(db).resolve(client.id, occ, STARTS)

    assert price.source == PriceSourceKind.CLIENT_TEMPLATE_SPECIFIC
    assert price.source_id == rule.id
    assert price.entry_fee_brutto == 1500


def test_occurrence_override_beats_everything(db: Session):
    client, occ = _setup(db)
    _default(db, occ, entry=2000, trainer_fee=8000)
    _override(db, client, entry=1500, trainer_fee=7000, template_id=occ.template_id)
    rule = _override(db, client, entry=0, trainer_fee=5000, occurrence_id=occ.id)

    price = PriceResolver(db).resolve(client.id, occ, STARTS)

    assert price.source == PriceSourceKind.CLIENT_OCCURRENCE_SPECIFIC
    assert price.source_id == rule.id
    assert (price.entry_fee_brutto, price.trainer_fee_brutto) == (0, 5000)


def test_expired_override_falls_through_to_next_tier(db: Session):
    client, occ = _setup(db)
    _default(db, occ, entry=2000, trainer_fee=8000)
    # Ends exactly at class start: the end bound is exclusive.
    _override(db, client, entry=1, trainer_fee=1, occurrence_id=occ.id, valid_until=STARTS)
    _override(db, client, entry=2, trainer_fee=2, template_id=occ.template_id, valid_from=STARTS + dt.timedelta(seconds=1))

    price = PriceResolver(db).resolve(client.id, occ, STARTS)

    assert price.source == PriceSourceKind.TEMPLATE_DEFAULT


def test_rule_starting_at_query_time_applies(db: Session):
    client, occ = _setup(db)
    _default(db, occ, entry=2000, trainer_fee=8000)
    _override(db, client, entry=900, trainer_fee=900, occurrence_id=occ.id, valid_from=STARTS)

    assert PriceResolver(db).resolve(client.id, occ, STARTS).source == PriceSourceKind.CLIENT_OCCURRENCE_SPECIFIC


def test_inactive_default_is_ignored(db: Session):
    client, occ = _setup(db)
    _default(db, occ, entry=2000, trainer_fee=8000, is_active=False)

    with pytest.raises(MissingPricing):
        PriceResolver(db).resolve(client.id, occ, STARTS)


def test_missing_pricing_carries_context(db: Session):
    client, occ = _setup(db)

    with pytest.raises(MissingPricing) as exc:
        PriceResolver(db).resolve(client.id, occ, STARTS)

    details = exc.value.details
    assert details["client_id"] == client.id
    assert details["class_occurrence_id"] == occ.id
    assert details["class_template_id"] == occ.template_id
    assert details["checked_at"] == STARTS.isoformat()


def test_other_clients_override_does_not_apply(db: Session):
    client, occ = _setup(db)
    other = Client(full_name="Other", email="other@example.com")
    db.add(other)
    db.commit()
    _default(db, occ, entry=2000, trainer_fee=8000)
    _override(db, other, entry=1, trainer_fee=1, occurrence_id=occ.id)

    assert PriceResolver(db).resolve(client.id, occ, STARTS).source == PriceSourceKind.TEMPLATE_DEFAULT


def test_technical_guest_skips_client_overrides(db: Session):
    guest, occ = _setup(db)
    _default(db, occ, entry=2000, trainer_fee=8000)
    _override(db, guest, entry=1, trainer_fee=1, occurrence_id=occ.id)

    price = PriceResolver(db, technical_guest_client_id=guest.id).resolve(guest.id, occ, STARTS)

    assert price.source == PriceSourceKind.TEMPLATE_DEFAULT
    assert price.entry_fee_brutto == 2000


def test_later_valid_from_wins_within_tier_and_logs_anomaly(db: Session, caplog):
    client, occ = _setup(db)
    _default(db, occ, entry=1000, trainer_fee=1000, valid_from=T0)
    newer = _default(db, occ, entry=3000, trainer_fee=3000, valid_from=T0 + dt.timedelta(days=30))

    with caplog.at_level(logging.WARNING, logger="studioflow.services.pricing"):
        price = PriceResolver(db).resolve(client.id, occ, STARTS)

    assert price.source_id == newer.id
    assert "pricing_anomaly" in caplog.text


def test_equal_valid_from_tie_breaks_on_highest_id(db: Session):
    client, occ = _setup(db)
    _default(db, occ, entry=1000, trainer_fee=1000)
    second = _default(db, occ, entry=3000, trainer_fee=3000)

    assert PriceResolver(db).resolve(client.id, occ, STARTS).source_id == second.id


def test_resolution_is_deterministic(db: Session):
    client, occ = _setup(db)
    _default(db, occ, entry=2000, trainer_fee=8000)
    _override(db, client, entry=1500, trainer_fee=7000, template_id=occ.template_id)
    resolver = PriceResolver(db)

    assert resolver.resolve(client.id, occ, STARTS) == resolver.resolve(client.id, occ, STARTS)


def test_naive_query_time_rejected(db: Session):
    client, occ = _setup(db)
    _default(db, occ, entry=2000, trainer_fee=8000)

    with pytest.raises(ValueError):
        PriceResolver(db).resolve(client.id, occ, dt.datetime(2026, 3, 10, 17, 0))


def test_resolve_for_unknown_occurrence(db: Session):
    with pytest.raises(MissingPricing):
        PriceResolver(db).resolve_for_occurrence_id(1, 999, STARTS)


def test_resolve_service_uses_price_code_path(db: Session):
    client, _ = _setup(db)
    st = ServiceType(code="PT", name="Personal training", default_entry_fee_brutto=500, default_trainer_fee_brutto=9000)
    db.add(st)
    db.commit()

    price = PriceResolver(db).resolve_service(client.id, st.id, STARTS)

    assert price.source == PriceSourceKind.SERVICE_TYPE_DEFAULT
    assert price.trainer_fee_brutto == 9000
