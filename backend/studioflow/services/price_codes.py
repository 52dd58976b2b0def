from __future__ import annotations

import datetime as dt
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from studioflow.core.config import settings
from studioflow.models.client import Client
from studioflow.models.enums import PriceSourceKind
from studioflow.models.service_type import ClientPriceCode, ServiceType
from studioflow.schemas.pricing import ResolvedPrice, ServiceTypeCreate
from studioflow.services.activity_log import log_activity
from studioflow.services.pricing import MissingPricing, pick_valid_rule
from studioflow.services.validity import as_utc

logger = logging.getLogger(__name__)


def _service_type_default(service_type: ServiceType) -> ResolvedPrice:
    return ResolvedPrice(
        entry_fee_brutto=service_type.default_entry_fee_brutto,
        trainer_fee_brutto=service_type.default_trainer_fee_brutto,
        currency=settings.default_currency,
        source=PriceSourceKind.SERVICE_TYPE_DEFAULT,
        source_id=service_type.id,
    )


def _client_price_code(db: Session, *, client_id: int, service_type_id: int, at: dt.datetime) -> ClientPriceCode | None:
    codes = (
        db.query(ClientPriceCode)
        .filter(
            ClientPriceCode.client_id == client_id,
            ClientPriceCode.service_type_id == service_type_id,
            ClientPriceCode.is_active.is_(True),
        )
        .all()
    )
    return pick_valid_rule(
        codes, at, tier="client_price_code", context={"client_id": client_id, "service_type_id": service_type_id}
    )


def _price_from_code(code: ClientPriceCode) -> ResolvedPrice:
    return ResolvedPrice(
        entry_fee_brutto=code.entry_fee_brutto,
        trainer_fee_brutto=code.trainer_fee_brutto,
        currency=code.currency,
        source=PriceSourceKind.CLIENT_PRICE_CODE,
        source_id=code.id,
        price_code=code.price_code,
    )


def resolve_by_client_and_service_type(
    db: Session, *, client_id: int, service_type_id: int, at: dt.datetime | None = None
) -> ResolvedPrice:
    """Client price code if one is valid, otherwise the service type's house prices."""
    at = as_utc(at) if at is not None else dt.datetime.now(dt.timezone.utc)
    service_type = db.get(ServiceType, service_type_id)
    if service_type is None:
        raise MissingPricing(f"Service type not found: ID {service_type_id}", details={"service_type_id": service_type_id})

    code = _client_price_code(db, client_id=client_id, service_type_id=service_type.id, at=at)
    if code is not None:
        return _price_from_code(code)
    return _service_type_default(service_type)


def resolve_by_email_and_service_type(
    db: Session, *, client_email: str, service_type_code: str, at: dt.datetime | None = None
) -> ResolvedPrice:
    """
    Staff-side lookup by email.

    An email without a client account has no identity to match, so it gets the
    service type defaults directly.
    """
    at = as_utc(at) if at is not None else dt.datetime.now(dt.timezone.utc)
    code = service_type_code.strip().upper()
    service_type = (
        db.query(ServiceType).filter(ServiceType.code == code, ServiceType.is_active.is_(True)).first()
    )
    if service_type is None:
        raise MissingPricing(f"Service type not found: {code}", details={"service_type_code": code})

    client = db.query(Client).filter(func.lower(Client.email) == client_email.strip().lower()).first()
    if client is None:
        return _service_type_default(service_type)

    price_code = _client_price_code(db, client_id=client.id, service_type_id=service_type.id, at=at)
    if price_code is not None:
        return _price_from_code(price_code)
    return _service_type_default(service_type)


def resolve_for_technical_guest(db: Session, *, service_type_id: int) -> ResolvedPrice:
    service_type = db.get(ServiceType, service_type_id)
    if service_type is None:
        raise MissingPricing(f"Service type not found: ID {service_type_id}", details={"service_type_id": service_type_id})
    return _service_type_default(service_type)


def _new_code(client: Client, service_type: ServiceType, *, created_by: int | None) -> ClientPriceCode:
    return ClientPriceCode(
        client_id=client.id,
        client_email=client.email,
        service_type_id=service_type.id,
        entry_fee_brutto=service_type.default_entry_fee_brutto,
        trainer_fee_brutto=service_type.default_trainer_fee_brutto,
        currency=settings.default_currency,
        valid_from=dt.datetime.now(dt.timezone.utc),
        is_active=True,
        created_by=created_by,
    )


def _has_code(db: Session, *, client_id: int, service_type_id: int) -> bool:
    return (
        db.query(ClientPriceCode.id)
        .filter(ClientPriceCode.client_id == client_id, ClientPriceCode.service_type_id == service_type_id)
        .first()
        is not None
    )


def generate_default_price_codes(db: Session, *, client: Client, created_by: int | None = None) -> int:
    """
    Seed one price code per active service type for a newly registered client.
    Clients without an email are skipped. Idempotent.
    """
    if not client.email:
        return 0
    created = 0
    for service_type in db.query(ServiceType).filter(ServiceType.is_active.is_(True)).order_by(ServiceType.id).all():
        if _has_code(db, client_id=client.id, service_type_id=service_type.id):
            continue
        db.add(_new_code(client, service_type, created_by=created_by))
        created += 1
    if created:
        log_activity(
            db,
            action="price_codes_generated",
            entity_type="client",
            entity_id=client.id,
            actor_id=created_by,
            details={"count": created},
        )
        db.commit()
    return created


def generate_price_codes_for_new_service_type(db: Session, *, service_type: ServiceType, created_by: int | None = None) -> int:
    """Give every client with an email a price code for `service_type`. Returns the number created."""
    created = 0
    for client in db.query(Client).filter(Client.email.isnot(None)).order_by(Client.id).all():
        if _has_code(db, client_id=client.id, service_type_id=service_type.id):
            continue
        db.add(_new_code(client, service_type, created_by=created_by))
        created += 1
    if created:
        log_activity(
            db,
            action="price_codes_generated",
            entity_type="service_type",
            entity_id=service_type.id,
            actor_id=created_by,
            details={"count": created},
        )
    db.commit()
    logger.info("price_codes_generated: service_type=%s created=%d", service_type.code, created)
    return created


def create_service_type(db: Session, *, payload: ServiceTypeCreate, created_by: int | None = None) -> ServiceType:
    service_type = ServiceType(
        code=payload.code,
        name=payload.name,
        description=payload.description,
        default_entry_fee_brutto=payload.default_entry_fee_brutto,
        default_trainer_fee_brutto=payload.default_trainer_fee_brutto,
        is_active=payload.is_active,
    )
    db.add(service_type)
    db.flush()
    log_activity(
        db,
        action="service_type_created",
        entity_type="service_type",
        entity_id=service_type.id,
        actor_id=created_by,
        details=payload.model_dump(),
    )
    db.commit()
    db.refresh(service_type)

    if service_type.is_active:
        generate_price_codes_for_new_service_type(db, service_type=service_type, created_by=created_by)
    return service_type


def update_client_email(db: Session, *, client_id: int, new_email: str, actor_id: int | None = None) -> int:
    """Change a client's email and the denormalised copy on their price codes, together."""
    client = db.get(Client, client_id)
    if client is None:
        raise ValueError(f"Client not found: ID {client_id}")
    new_email = new_email.strip()
    old_email = client.email
    try:
        client.email = new_email
        updated = (
            db.query(ClientPriceCode)
            .filter(ClientPriceCode.client_id == client_id)
            .update({ClientPriceCode.client_email: new_email}, synchronize_session="fetch")
        )
        log_activity(
            db,
            action="client_email_updated",
            entity_type="client",
            entity_id=client_id,
            actor_id=actor_id,
            details={"email_before": old_email, "email_after": new_email, "price_codes": updated},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    return updated
