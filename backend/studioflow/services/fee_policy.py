from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from studioflow.models.enums import FeeCharge, RegistrationStatus
from studioflow.schemas.pricing import ResolvedPrice


@dataclass(frozen=True)
class ChargedFees:
    entry_fee_brutto: int
    trainer_fee_brutto: int

    @property
    def is_zero(self) -> bool:
        return self.entry_fee_brutto == 0 and self.trainer_fee_brutto == 0


ZERO = ChargedFees(entry_fee_brutto=0, trainer_fee_brutto=0)


class FeePolicy(Protocol):
    def includes(self, status: RegistrationStatus) -> bool: ...

    def apply(self, status: RegistrationStatus, price: ResolvedPrice) -> ChargedFees: ...


def _charge(charge: FeeCharge, price: ResolvedPrice) -> ChargedFees:
    if charge == FeeCharge.FULL:
        return ChargedFees(entry_fee_brutto=price.entry_fee_brutto, trainer_fee_brutto=price.trainer_fee_brutto)
    if charge == FeeCharge.ENTRY_ONLY:
        return ChargedFees(entry_fee_brutto=price.entry_fee_brutto, trainer_fee_brutto=0)
    return ZERO


class LenientFeePolicy:
    """Only attended sessions are billed; no-shows and cancellations cost nothing."""

    def includes(self, status: RegistrationStatus) -> bool:
        return status == RegistrationStatus.ATTENDED

    def apply(self, status: RegistrationStatus, price: ResolvedPrice) -> ChargedFees:
        if status == RegistrationStatus.ATTENDED:
            return _charge(FeeCharge.FULL, price)
        return ZERO


class ConfiguredFeePolicy:
    """
    Studio-configurable charging for no-shows and late cancellations.

    Attended is always charged in full. Booked / waitlisted registrations never are.
    """

    def __init__(self, *, no_show: FeeCharge = FeeCharge.NONE, cancelled: FeeCharge = FeeCharge.NONE):
        self.charges: dict[RegistrationStatus, FeeCharge] = {
            RegistrationStatus.ATTENDED: FeeCharge.FULL,
            RegistrationStatus.NO_SHOW: FeeCharge(no_show),
            RegistrationStatus.CANCELLED: FeeCharge(cancelled),
        }

    def includes(self, status: RegistrationStatus) -> bool:
        return self.charges.get(status, FeeCharge.NONE) != FeeCharge.NONE

    def apply(self, status: RegistrationStatus, price: ResolvedPrice) -> ChargedFees:
        return _charge(self.charges.get(status, FeeCharge.NONE), price)


def fee_policy_from_settings(settings) -> FeePolicy:  # noqa: ANN001
    no_show = FeeCharge(settings.no_show_charge)
    cancelled = FeeCharge(settings.cancelled_charge)
    if no_show == FeeCharge.NONE and cancelled == FeeCharge.NONE:
        return LenientFeePolicy()
    return ConfiguredFeePolicy(no_show=no_show, cancelled=cancelled)
