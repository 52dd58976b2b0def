import datetime as dt
import logging

import pytest
from pydantic import ValidationError
from sqlalchemy.orm import Session

from studioflow.models.activity_log import ActivityLog
from studioflow.models.client import Client
from studioflow.models.enums import PriceSourceKind
from studioflow.models.schedule import ClassOccurrence, ClassTemplate
from studioflow.models.trainer import Trainer
from studioflow.schemas.pricing import ClientPricingCreate, PricingDefaultCreate
from studioflow.services.pricing import PriceResolver
from studioflow.services.pricing_rules import (
    PricingRuleNotFound,
    create_client_pricing,
    create_pricing_default,
    deactivate_client_pricing,
    deactivate_pricing_default,
    list_client_pricing,
    list_pricing_defaults,
    windows_overlap,
)

UTC = dt.timezone.utc
JAN = dt.datetime(2026, 1, 1, tzinfo=UTC)
FEB = dt.datetime(2026, 2, 1, tzinfo=UTC)
MAR = dt.datetime(2026, 3, 1, tzinfo=UTC)


def _setup(db: Session) -> tuple[Client, ClassTemplate, ClassOccurrence]:
    trainer = Trainer(name="Anna")
    client = Client(full_name="Béla Kiss")
    db.add_all([trainer, client])
    db.flush()
    tpl = ClassTemplate(title="Pilates", trainer_id=trainer.id)
    db.add(tpl)
    db.flush()
    occ = ClassOccurrence(template_id=tpl.id, trainer_id=trainer.id, starts_at=FEB, ends_at=FEB + dt.timedelta(hours=1))
    db.add(occ)
    db.commit()
    return client, tpl, occ


def test_windows_overlap_half_open():
    assert not windows_overlap(JAN, FEB, FEB, MAR)
    assert windows_overlap(JAN, None, FEB, MAR)
    assert windows_overlap(JAN, MAR, FEB, None)
    assert not windows_overlap(FEB, None, JAN, FEB)


def test_create_default_and_resolve(db: Session):
    client, tpl, occ = _setup(db)

    rule = create_pricing_default(
        db,
        payload=PricingDefaultCreate(class_template_id=tpl.id, entry_fee_brutto=2000, trainer_fee_brutto=8000, valid_from=JAN),
        created_by=1,
    )

    assert rule.currency == "HUF"
    assert rule.valid_from == JAN
    price = PriceResolver(db).resolve(client.id, occ, FEB)
    assert price.source == PriceSourceKind.TEMPLATE_DEFAULT
    assert db.query(ActivityLog).filter(ActivityLog.action == "pricing_default_created").count() == 1


def test_overlapping_default_is_allowed_but_warned(db: Session, caplog):
    _, tpl, _ = _setup(db)
    create_pricing_default(
        db, payload=PricingDefaultCreate(class_template_id=tpl.id, entry_fee_brutto=1, trainer_fee_brutto=1, valid_from=JAN)
    )

    with caplog.at_level(logging.WARNING, logger="studioflow.services.pricing_rules"):
        create_pricing_default(
            db, payload=PricingDefaultCreate(class_template_id=tpl.id, entry_fee_brutto=2, trainer_fee_brutto=2, valid_from=FEB)
        )

    assert "pricing_overlap" in caplog.text
    assert len(list_pricing_defaults(db, class_template_id=tpl.id)) == 2


def test_adjacent_windows_do_not_warn(db: Session, caplog):
    _, tpl, _ = _setup(db)
    create_pricing_default(
        db,
        payload=PricingDefaultCreate(
            class_template_id=tpl.id, entry_fee_brutto=1, trainer_fee_brutto=1, valid_from=JAN, valid_until=FEB
        ),
    )

    with caplog.at_level(logging.WARNING, logger="studioflow.services.pricing_rules"):
        create_pricing_default(
            db, payload=PricingDefaultCreate(class_template_id=tpl.id, entry_fee_brutto=2, trainer_fee_brutto=2, valid_from=FEB)
        )

    assert "pricing_overlap" not in caplog.text


def test_default_for_unknown_template(db: Session):
    with pytest.raises(ValueError):
        create_pricing_default(
            db, payload=PricingDefaultCreate(class_template_id=42, entry_fee_brutto=1, trainer_fee_brutto=1, valid_from=JAN)
        )


def test_client_pricing_for_occurrence(db: Session):
    client, _, occ = _setup(db)

    rule = create_client_pricing(
        db,
        payload=ClientPricingCreate(
            client_id=client.id, class_occurrence_id=occ.id, entry_fee_brutto=0, trainer_fee_brutto=5000, valid_from=JAN
        ),
    )

    assert PriceResolver(db).resolve(client.id, occ, FEB).source_id == rule.id
    assert [r.id for r in list_client_pricing(db, client_id=client.id, valid_at=FEB)] == [rule.id]
    assert list_client_pricing(db, client_id=client.id, valid_at=JAN - dt.timedelta(days=1)) == []


def test_client_pricing_for_unknown_occurrence(db: Session):
    client, _, _ = _setup(db)
    with pytest.raises(ValueError):
        create_client_pricing(
            db,
            payload=ClientPricingCreate(
                client_id=client.id, class_occurrence_id=999, entry_fee_brutto=0, trainer_fee_brutto=0, valid_from=JAN
            ),
        )


def test_client_pricing_needs_exactly_one_target():
    with pytest.raises(ValidationError):
        ClientPricingCreate(client_id=1, entry_fee_brutto=0, trainer_fee_brutto=0, valid_from=JAN)
    with pytest.raises(ValidationError):
        ClientPricingCreate(
            client_id=1, class_template_id=1, class_occurrence_id=1, entry_fee_brutto=0, trainer_fee_brutto=0, valid_from=JAN
        )


def test_payload_validation():
    with pytest.raises(ValidationError):
        PricingDefaultCreate(class_template_id=1, entry_fee_brutto=-1, trainer_fee_brutto=0, valid_from=JAN)
    with pytest.raises(ValidationError):
        PricingDefaultCreate(class_template_id=1, entry_fee_brutto=0, trainer_fee_brutto=0, valid_from=FEB, valid_until=JAN)
    with pytest.raises(ValidationError):
        PricingDefaultCreate(class_template_id=1, entry_fee_brutto=0, trainer_fee_brutto=0, valid_from=dt.datetime(2026, 1, 1))
    with pytest.raises(ValidationError):
        PricingDefaultCreate(class_template_id=1, entry_fee_brutto=0, trainer_fee_brutto=0, valid_from=JAN, currency="XYZ")


def test_deactivated_rule_stops_applying(db: Session):
    client, tpl, occ = _setup(db)
    default = create_pricing_default(
        db, payload=PricingDefaultCreate(class_template_id=tpl.id, entry_fee_brutto=2000, trainer_fee_brutto=8000, valid_from=JAN)
    )
    override = create_client_pricing(
        db,
        payload=ClientPricingCreate(
            client_id=client.id, class_template_id=tpl.id, entry_fee_brutto=1, trainer_fee_brutto=1, valid_from=JAN
        ),
    )

    deactivate_client_pricing(db, rule_id=override.id, actor_id=2)
    assert PriceResolver(db).resolve(client.id, occ, FEB).source_id == default.id

    rule = deactivate_pricing_default(db, rule_id=default.id)
    assert rule.is_active is False
    assert list_pricing_defaults(db, class_template_id=tpl.id, active_only=True) == []
    actions = {a.action for a in db.query(ActivityLog).all()}
    assert {"client_pricing_deactivated", "pricing_default_deactivated"} <= actions


def test_deactivate_unknown_rule(db: Session):
    with pytest.raises(PricingRuleNotFound):
        deactivate_pricing_default(db, rule_id=77)
