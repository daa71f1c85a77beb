"""
Gift card validator and balance lookup.

A card that resolves but is not active, or has nothing left on it, is
rejected. The balance reported here is what the card held at read time; the
debit at commit time re-checks the live balance.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from settlement._types import Error, Money, Ok, Result, ZERO
from settlement.domain import GiftCard, GiftCardStatus
from settlement.store import Store


class GiftCardRejectionReason(Enum):
    NOT_FOUND = "not_found"
    NOT_ACTIVE = "not_active"
    ZERO_BALANCE = "zero_balance"


@dataclass(frozen=True, slots=True)
class GiftCardRejection:
    reason: GiftCardRejectionReason
    message: str


@dataclass(frozen=True, slots=True)
class GiftCardApplication:
    gift_card_id: int
    code: str
    balance: Money


@dataclass(frozen=True, slots=True)
class GiftCardBalance:
    code: str
    balance: Money
    status: GiftCardStatus


_NOT_FOUND = GiftCardRejection(GiftCardRejectionReason.NOT_FOUND, "Gift card not found")


def evaluate_gift_card(card: GiftCard | None) -> Result[GiftCardApplication, GiftCardRejection]:
    if card is None:
        return Error(_NOT_FOUND)
    if card.status is not GiftCardStatus.ACTIVE:
        return Error(
            GiftCardRejection(GiftCardRejectionReason.NOT_ACTIVE, "Gift card is not active")
        )
    if card.balance <= ZERO:
        return Error(
            GiftCardRejection(GiftCardRejectionReason.ZERO_BALANCE, "Gift card has no balance")
        )
    return Ok(GiftCardApplication(gift_card_id=card.id, code=card.code, balance=card.balance))


async def validate_gift_card(
    store: Store, code: str | None
) -> Result[GiftCardApplication | None, GiftCardRejection]:
    """`Ok(None)` when no code was supplied. Store failures propagate."""
    if code is None or not code.strip():
        return Ok(None)

    card = await store.get_gift_card(code)
    return evaluate_gift_card(card)


async def lookup_gift_card(
    store: Store, code: str
) -> Result[GiftCardBalance, GiftCardRejection]:
    """Balance and status of any existing card, active or not."""
    card = await store.get_gift_card(code)
    if card is None:
        return Error(_NOT_FOUND)
    return Ok(GiftCardBalance(code=card.code, balance=card.balance, status=card.status))


__all__ = (
    "GiftCardRejectionReason",
    "GiftCardRejection",
    "GiftCardApplication",
    "GiftCardBalance",
    "evaluate_gift_card",
    "validate_gift_card",
    "lookup_gift_card",
)
