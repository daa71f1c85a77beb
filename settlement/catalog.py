"""
Catalog reader — resolves cart lines against current product state.

Lines for the same product are summed before the stock check, so a cart
holding two sizes of one shoe cannot pass validation with more pairs than
the product has. Each distinct product is read once; reads run concurrently
via combinators.traverse_par.

Prices always come from the store. A cart line carries no price at all.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import combinators as C

from settlement._types import Error, LazyCoroResult, Money, Ok, Result
from settlement.domain import CartLine, Product
from settlement.errors import CheckoutError, CheckoutErrors, Stage
from settlement.pricing import PricedLine
from settlement.store import Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ResolvedLine:
    line: CartLine
    name: str
    unit_price: Money

    @property
    def product_id(self) -> str:
        return self.line.product_id

    @property
    def quantity(self) -> int:
        return self.line.quantity

    def priced(self) -> PricedLine:
        return PricedLine(quantity=self.line.quantity, unit_price=self.unit_price)


def demand(lines: Sequence[CartLine]) -> dict[str, int]:
    """Requested units per product, in first-seen order."""
    totals: dict[str, int] = {}
    for line in lines:
        totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
    return totals


def _read_failed(e: Exception) -> CheckoutError:
    logger.error("Catalog read failed", exc_info=e)
    return CheckoutErrors.server_error(Stage.VALIDATING)


def _check(product_id: str, requested: int, product: Product | None) -> Result[Product, CheckoutError]:
    if product is None or not product.is_active:
        return Error(CheckoutErrors.product_not_found(product_id))
    if requested > product.quantity:
        return Error(CheckoutErrors.insufficient_stock(product.id, product.name))
    return Ok(product)


def _fetch(
    store: Store, product_id: str, requested: int
) -> LazyCoroResult[Product, CheckoutError]:
    async def impl() -> Result[Product, CheckoutError]:
        read = C.catching_async(lambda: store.get_product(product_id), on_error=_read_failed)
        match await read:
            case Ok(product):
                return _check(product_id, requested, product)
            case Error(e):
                return Error(e)

    return LazyCoroResult(impl)


async def read_cart(
    store: Store, lines: Sequence[CartLine]
) -> Result[tuple[ResolvedLine, ...], CheckoutError]:
    """
    Resolve every line, or fail with the first problem found.

    Errors: PRODUCT_NOT_FOUND (missing or inactive), INSUFFICIENT_STOCK
    (summed quantity above what the product holds), SERVER_ERROR (store read
    failed).
    """
    wanted = demand(lines)

    result = await C.traverse_par(
        list(wanted.items()),
        lambda entry: _fetch(store, entry[0], entry[1]),
    )()

    match result:
        case Error(e):
            return Error(e)
        case Ok(products):
            by_id = {product.id: product for product in products}
            return Ok(tuple(
                ResolvedLine(
                    line=line,
                    name=by_id[line.product_id].name,
                    unit_price=by_id[line.product_id].price,
                )
                for line in lines
            ))


__all__ = ("ResolvedLine", "demand", "read_cart")
