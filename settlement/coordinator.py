"""
Settlement coordinator — cart in, persisted order out.

    VALIDATING → PRICING → RESERVING → COMMITTING → DONE
         │           │          │            │
         └───────────┴──────────┴────────────┴──→ FAILED

Validating and Pricing only read. Reserving and Committing run inside one
store transaction, in this order:

    a. increment discount usage     (only while below max_uses)
    b. debit gift card              (only while the live balance covers it)
    c. insert order                 (unique order number / idempotency key)
    d. decrement stock per product  (only while live stock covers it)

Any conditional write that matches no row raises, and the transaction rolls
back all of a-d. A lost stock race or an order collision restarts the whole
attempt from Validating; a lost discount or gift-card race is reported as a
conflict at once, so the customer never silently pays a different price.

Usage:
    coordinator = Coordinator(store, SettlementConfig())

    match await coordinator.settle(request):
        case Ok(settlement):
            settlement.order.order_number
        case Error(error):
            error.kind, error.message
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

import combinators as C

from settlement._types import Error, LazyCoroResult, Money, Ok, Result, ZERO
from settlement.catalog import ResolvedLine, demand, read_cart
from settlement.config import SettlementConfig
from settlement.domain import (
    CartLine,
    Customer,
    Order,
    OrderLineItem,
    OrderStatus,
    ShippingAddress,
)
from settlement.errors import (
    CheckoutError,
    CheckoutErrors,
    CommitStep,
    ErrorKind,
    OrderConflict,
    Stage,
    StoreError,
)
from settlement.order_number import generate_order_number
from settlement.pricing import Pricing, calculate, subtotal_of
from settlement.promotions import (
    DiscountApplication,
    GiftCardApplication,
    validate_discount,
    validate_gift_card,
)
from settlement.store import Store, UnitOfWork

logger = logging.getLogger(__name__)

# Conflicts worth a fresh attempt: re-validation either succeeds or turns
# them into a definite INSUFFICIENT_STOCK.
_RETRIED_STEPS = frozenset({CommitStep.STOCK_DECREMENT, CommitStep.ORDER_INSERT})

_INITIAL_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})


# ═══════════════════════════════════════════════════════════════════════════════
# Request / Result
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class CheckoutRequest:
    lines: tuple[CartLine, ...]
    customer: Customer | None = None
    shipping_address: ShippingAddress | None = None
    discount_code: str | None = None
    gift_card_code: str | None = None
    payment_method: str | None = None
    idempotency_key: str | None = None


@dataclass(frozen=True, slots=True)
class Quote:
    """Priced cart, before anything is claimed."""

    lines: tuple[ResolvedLine, ...]
    pricing: Pricing
    discount: DiscountApplication | None = None
    gift_card: GiftCardApplication | None = None
    notices: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Settlement:
    """
    order: The persisted order.
    replayed: True when the idempotency key matched an existing order and
        nothing was written.
    notices: Promotion codes that were supplied but not applied, with why.
    """

    order: Order
    replayed: bool = False
    notices: tuple[str, ...] = ()


@dataclass(slots=True)
class _Progress:
    stage: Stage = Stage.VALIDATING
    notices: list[str] = field(default_factory=list)

    def advance(self, stage: Stage) -> None:
        logger.debug("Checkout %s -> %s", self.stage.value, stage.value)
        self.stage = stage


# ═══════════════════════════════════════════════════════════════════════════════
# Coordinator
# ═══════════════════════════════════════════════════════════════════════════════

class Coordinator:
    def __init__(self, store: Store, config: SettlementConfig | None = None) -> None:
        self._store = store
        self._config = config or SettlementConfig()

    @property
    def config(self) -> SettlementConfig:
        return self._config

    async def quote(self, request: CheckoutRequest) -> Result[Quote, CheckoutError]:
        """Validate and price without writing anything."""
        progress = _Progress()
        try:
            _check_lines(request.lines)
            return Ok(await self._price(request, progress))
        except CheckoutError as e:
            return Error(e)
        except StoreError:
            logger.exception("Quote failed at %s", progress.stage.value)
            return Error(CheckoutErrors.server_error(progress.stage))

    async def settle(
        self,
        request: CheckoutRequest,
        *,
        initial_status: OrderStatus = OrderStatus.PENDING,
    ) -> Result[Settlement, CheckoutError]:
        """
        Run the checkout to completion or failure.

        `initial_status` is PENDING for storefront checkouts and CONFIRMED for
        orders entered by staff.
        """
        if initial_status not in _INITIAL_STATUSES:
            raise ValueError(f"Orders cannot start as {initial_status.value}")

        attempt = LazyCoroResult(lambda: self._run_attempt(request, initial_status))
        return await C.retry(attempt, policy=self._retry_policy())

    def _retry_policy(self) -> C.RetryPolicy[CheckoutError]:
        # Linear backoff: attempt N + 1 waits N * conflict_backoff seconds.
        step = self._config.conflict_backoff
        return C.RetryPolicy(
            times=self._config.max_attempts,
            backoff=lambda attempt, _: step * (attempt + 1),
            retry_on=_lost_race,
        )

    async def _run_attempt(
        self,
        request: CheckoutRequest,
        initial_status: OrderStatus,
    ) -> Result[Settlement, CheckoutError]:
        progress = _Progress()
        try:
            return Ok(await self._attempt(request, initial_status, progress))
        except CheckoutError as e:
            error = e
            if _lost_race(e):
                logger.warning("Checkout lost a race at %s", e.step)
            else:
                logger.info("Checkout failed at %s: %s", e.stage.value, e.kind.value)
        except StoreError:
            logger.exception("Checkout failed at %s", progress.stage.value)
            error = CheckoutErrors.server_error(progress.stage)

        progress.advance(Stage.FAILED)
        return Error(error)

    # ── stages ───────────────────────────────────────────────────────────────

    async def _attempt(
        self,
        request: CheckoutRequest,
        initial_status: OrderStatus,
        progress: _Progress,
    ) -> Settlement:
        customer, address = _check_request(request)

        if request.idempotency_key is not None:
            existing = await self._store.find_order_by_key(request.idempotency_key)
            if existing is not None:
                logger.info(
                    "Replaying order %s for idempotency key %s",
                    existing.order_number, request.idempotency_key,
                )
                return Settlement(order=existing, replayed=True)

        quote = await self._price(request, progress)
        order = self._build_order(request, customer, address, quote, initial_status)

        progress.advance(Stage.RESERVING)
        async with self._store.transaction() as tx:
            await self._commit(tx, request, quote, order, progress)

        progress.advance(Stage.DONE)
        logger.info(
            "Order %s settled: %d units, total %s",
            order.order_number, order.units, order.total,
        )
        return Settlement(order=order, notices=quote.notices)

    async def _price(self, request: CheckoutRequest, progress: _Progress) -> Quote:
        progress.advance(Stage.VALIDATING)
        match await read_cart(self._store, request.lines):
            case Error(e):
                raise e
            case Ok(lines):
                pass

        progress.advance(Stage.PRICING)
        subtotal = subtotal_of(line.priced() for line in lines)
        discount, gift_card = await self._promotions(request, subtotal, progress)

        pricing = calculate(
            [line.priced() for line in lines],
            discount_amount=discount.amount if discount else ZERO,
            gift_card_balance=gift_card.balance if gift_card else ZERO,
            shipping=self._config.shipping_flat_rate,
        )
        return Quote(
            lines=lines,
            pricing=pricing,
            discount=discount,
            gift_card=gift_card,
            notices=tuple(progress.notices),
        )

    async def _promotions(
        self,
        request: CheckoutRequest,
        subtotal: Money,
        progress: _Progress,
    ) -> tuple[DiscountApplication | None, GiftCardApplication | None]:
        result = await C.parallel(
            C.catching_async(
                lambda: validate_discount(self._store, request.discount_code, subtotal),
                on_error=_promotion_read_failed,
            ),
            C.catching_async(
                lambda: validate_gift_card(self._store, request.gift_card_code),
                on_error=_promotion_read_failed,
            ),
        )

        match result:
            case Error(e):
                raise e
            case Ok([discount_result, gift_card_result]):
                pass

        discount: DiscountApplication | None = None
        match discount_result:
            case Ok(application):
                discount = application
            case Error(rejection):
                if self._config.reject_invalid_codes:
                    raise CheckoutErrors.invalid_discount(rejection.message)
                logger.warning(
                    "Discount code %r not applied: %s",
                    request.discount_code, rejection.reason.value,
                )
                progress.notices.append(rejection.message)

        gift_card: GiftCardApplication | None = None
        match gift_card_result:
            case Ok(application):
                gift_card = application
            case Error(rejection):
                if self._config.reject_invalid_codes:
                    raise CheckoutErrors.invalid_gift_card(rejection.message)
                logger.warning("Gift card not applied: %s", rejection.reason.value)
                progress.notices.append(rejection.message)

        return discount, gift_card

    def _build_order(
        self,
        request: CheckoutRequest,
        customer: Customer,
        address: ShippingAddress,
        quote: Quote,
        status: OrderStatus,
    ) -> Order:
        pricing = quote.pricing
        return Order(
            order_number=generate_order_number(self._config.order_prefix),
            customer=customer,
            shipping_address=address,
            items=tuple(
                OrderLineItem(
                    product_id=line.product_id,
                    name=line.name,
                    size=line.line.size,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                )
                for line in quote.lines
            ),
            subtotal=pricing.subtotal,
            discount=pricing.discount,
            gift_card_amount=pricing.gift_card_amount,
            shipping=pricing.shipping,
            total=pricing.total,
            status=status,
            payment_method=request.payment_method or self._config.default_payment_method,
            created_at=datetime.now(),
            discount_code=quote.discount.code if quote.discount else None,
            gift_card_code=(
                quote.gift_card.code
                if quote.gift_card and pricing.gift_card_amount > ZERO
                else None
            ),
            idempotency_key=request.idempotency_key,
        )

    async def _commit(
        self,
        tx: UnitOfWork,
        request: CheckoutRequest,
        quote: Quote,
        order: Order,
        progress: _Progress,
    ) -> None:
        if quote.discount is not None:
            if not await tx.increment_discount_usage(quote.discount.discount_id):
                raise CheckoutErrors.conflict(
                    CommitStep.DISCOUNT_USAGE,
                    "Discount code was used up while you were checking out.",
                )

        if quote.gift_card is not None and order.gift_card_amount > ZERO:
            debited = await tx.debit_gift_card(
                quote.gift_card.gift_card_id, order.gift_card_amount, order.order_number
            )
            if not debited:
                raise CheckoutErrors.conflict(
                    CommitStep.GIFT_CARD_DEBIT,
                    "Gift card balance changed while you were checking out.",
                )

        progress.advance(Stage.COMMITTING)
        try:
            await tx.insert_order(order)
        except OrderConflict as e:
            raise CheckoutErrors.conflict(
                CommitStep.ORDER_INSERT,
                "Order could not be recorded.",
                stage=Stage.COMMITTING,
            ) from e

        names = {line.product_id: line.name for line in quote.lines}
        for product_id, quantity in demand(request.lines).items():
            if not await tx.decrement_stock(product_id, quantity):
                raise CheckoutErrors.conflict(
                    CommitStep.STOCK_DECREMENT,
                    f"{names[product_id]} sold out while you were checking out.",
                    stage=Stage.COMMITTING,
                    product_id=product_id,
                    product_name=names[product_id],
                )


# ═══════════════════════════════════════════════════════════════════════════════
# Input checks
# ═══════════════════════════════════════════════════════════════════════════════

def _check_lines(lines: Sequence[CartLine]) -> None:
    if not lines:
        raise CheckoutErrors.empty_cart()
    for line in lines:
        if line.quantity < 1:
            raise CheckoutErrors.invalid_quantity(line.product_id)


def _check_request(request: CheckoutRequest) -> tuple[Customer, ShippingAddress]:
    _check_lines(request.lines)
    if request.customer is None or not request.customer.email.strip():
        raise CheckoutErrors.missing_customer()
    if request.shipping_address is None or not request.shipping_address.line1.strip():
        raise CheckoutErrors.missing_address()
    return request.customer, request.shipping_address


def _lost_race(error: CheckoutError) -> bool:
    return error.kind is ErrorKind.CONFLICT and error.step in _RETRIED_STEPS


def _promotion_read_failed(e: Exception) -> CheckoutError:
    logger.error("Promotion lookup failed", exc_info=e)
    return CheckoutErrors.server_error(Stage.PRICING)


__all__ = ("CheckoutRequest", "Quote", "Settlement", "Coordinator")
