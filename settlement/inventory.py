"""
Inventory adjustment — restocks, shrinkage and corrections by staff.

The change is relative and conditional, the same discipline checkout uses:

    UPDATE products SET quantity = quantity + :delta
     WHERE id = :id AND quantity + :delta >= 0

so an adjustment racing a checkout can never lose either update or drive
stock negative. The ledger row is written in the same transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from settlement._types import Error, Ok, Result
from settlement.domain import InventoryAdjustment
from settlement.errors import CheckoutError, CheckoutErrors, Stage, StoreError
from settlement.store import Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AdjustedStock:
    product_id: str
    quantity: int
    adjustment: InventoryAdjustment


async def adjust_inventory(
    store: Store,
    product_id: str,
    delta: int,
    *,
    reason: str = "",
    size: str | None = None,
    adjusted_by: str | None = None,
) -> Result[AdjustedStock, CheckoutError]:
    """
    Apply a signed stock change.

    Errors: PRODUCT_NOT_FOUND, INSUFFICIENT_STOCK (delta would take stock
    below zero), SERVER_ERROR.
    """
    if delta == 0:
        raise ValueError("Adjustment must be non-zero")

    adjustment = InventoryAdjustment(
        product_id=product_id,
        adjustment=delta,
        reason=reason,
        created_at=datetime.now(),
        size=size,
        adjusted_by=adjusted_by,
    )

    try:
        product = await store.get_product(product_id)
        if product is None:
            return Error(CheckoutErrors.product_not_found(product_id))

        async with store.transaction() as tx:
            quantity = await tx.adjust_stock(product_id, delta)
            if quantity is None:
                raise CheckoutErrors.insufficient_stock(
                    product_id, product.name, stage=Stage.COMMITTING
                )
            await tx.record_adjustment(adjustment)
    except CheckoutError as e:
        return Error(e)
    except StoreError:
        logger.exception("Inventory adjustment failed for %s", product_id)
        return Error(CheckoutErrors.server_error(Stage.COMMITTING))

    logger.info("Adjusted %s by %+d to %d (%s)", product_id, delta, quantity, reason or "no reason")
    return Ok(AdjustedStock(product_id=product_id, quantity=quantity, adjustment=adjustment))


__all__ = ("AdjustedStock", "adjust_inventory")
