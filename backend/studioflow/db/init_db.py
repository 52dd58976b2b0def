from __future__ import annotations

from sqlalchemy.orm import Session

from studioflow.core.config import settings
from studioflow.models.client import Client
from studioflow.models.service_type import ServiceType

TECHNICAL_GUEST_NAME = "Technical guest"

DEFAULT_SERVICE_TYPES = [
    {"code": "PT", "name": "Personal training", "default_entry_fee_brutto": 2000, "default_trainer_fee_brutto": 8000},
    {"code": "MASSZAZS", "name": "Massage", "default_entry_fee_brutto": 1500, "default_trainer_fee_brutto": 9000},
]


def ensure_technical_guest(db: Session) -> Client:
    """
    The walk-in placeholder client.

    Uses the configured id when set, otherwise finds or creates a client by name.
    Point TECHNICAL_GUEST_CLIENT_ID at the returned id.
    """
    if settings.technical_guest_client_id is not None:
        guest = db.get(Client, settings.technical_guest_client_id)
        if guest is not None:
            return guest
    guest = db.query(Client).filter(Client.full_name == TECHNICAL_GUEST_NAME, Client.email.is_(None)).first()
    if guest:
        return guest
    guest = Client(full_name=TECHNICAL_GUEST_NAME, email=None)
    db.add(guest)
    db.commit()
    db.refresh(guest)
    return guest


def upsert_service_type(db: Session, *, code: str, name: str, default_entry_fee_brutto: int, default_trainer_fee_brutto: int) -> None:
    """
    Seed helper:
    - If the service type exists, leave its prices alone (they may have been edited).
    - If it does not exist, create it.
    """
    if db.query(ServiceType).filter(ServiceType.code == code).first():
        return
    db.add(
        ServiceType(
            code=code,
            name=name,
            default_entry_fee_brutto=default_entry_fee_brutto,
            default_trainer_fee_brutto=default_trainer_fee_brutto,
            is_active=True,
        )
    )
    db.commit()


def ensure_seeded(db: Session) -> Client:
    guest = ensure_technical_guest(db)
    for st in DEFAULT_SERVICE_TYPES:
        upsert_service_type(db, **st)
    return guest


if __name__ == "__main__":
    from studioflow.core.logging_config import setup_logging
    from studioflow.db.session import SessionLocal

    setup_logging()
    db = SessionLocal()
    try:
        guest = ensure_seeded(db)
        print(f"Seeded. technical_guest_client_id={guest.id}")
    finally:
        db.close()
