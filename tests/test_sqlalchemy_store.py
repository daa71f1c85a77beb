"""Tests for the SQLAlchemy store against a file-backed SQLite database."""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from conftest import DISCOUNTS, StaleReads, checkout, err, line, ok, seed
from settlement import (
    CommitStep,
    Coordinator,
    Error,
    ErrorKind,
    GiftCardStatus,
    InventoryAdjustment,
    Ok,
    OrderConflict,
    OrderStatus,
    SettlementConfig,
    SQLAlchemyStore,
    create_database,
)
from settlement.promotions import DiscountRejectionReason, validate_discount

D = Decimal

CONFIG = SettlementConfig().with_max_attempts(3, backoff=0)


@asynccontextmanager
async def sql_store(tmp_path):
    session_factory, engine = await create_database(
        f"sqlite+aiosqlite:///{tmp_path / 'shop.db'}"
    )
    try:
        yield await seed(SQLAlchemyStore(session_factory))
    finally:
        await engine.dispose()


def scenario(tmp_path, body):
    """Run `body(store)` against a freshly seeded database."""

    async def main():
        async with sql_store(tmp_path) as store:
            return await body(store)

    return asyncio.run(main())


class TestReads:
    def test_product_round_trip(self, tmp_path):
        async def body(store):
            return await store.get_product("P2"), await store.get_product("NOPE")

        product, missing = scenario(tmp_path, body)
        assert product.name == "Jordan 1 Retro High"
        assert product.price == D("120.00")
        assert product.quantity == 3
        assert missing is None

    def test_codes_are_case_insensitive(self, tmp_path):
        async def body(store):
            return await store.get_discount(" big100 "), await store.get_gift_card("gc-off")

        discount, card = scenario(tmp_path, body)
        assert discount.code == "BIG100"
        assert discount.value == D("20")
        assert discount.min_purchase == D("100.00")
        assert card.status is GiftCardStatus.DISABLED
        assert card.balance == D("50.00")


class TestConditionalUpdates:
    def test_decrement_stock_only_while_covered(self, tmp_path):
        async def body(store):
            async with store.transaction() as tx:
                first = await tx.decrement_stock("P2", 2)
                second = await tx.decrement_stock("P2", 2)
            return first, second, await store.get_product("P2")

        first, second, product = scenario(tmp_path, body)
        assert (first, second) == (True, False)
        assert product.quantity == 1

    def test_discount_usage_stops_at_max_uses(self, tmp_path):
        async def body(store):
            once = await store.get_discount("ONCE")
            async with store.transaction() as tx:
                first = await tx.increment_discount_usage(once.id)
                second = await tx.increment_discount_usage(once.id)
            return first, second, await store.get_discount("ONCE")

        first, second, discount = scenario(tmp_path, body)
        assert (first, second) == (True, False)
        assert discount.times_used == 1

    def test_gift_card_debit_needs_live_balance(self, tmp_path):
        async def body(store):
            card = await store.get_gift_card("GC30")
            async with store.transaction() as tx:
                first = await tx.debit_gift_card(card.id, D("20.00"), "MXZ-1")
                second = await tx.debit_gift_card(card.id, D("20.00"), "MXZ-2")
            return (
                first,
                second,
                await store.get_gift_card("GC30"),
                await store.list_gift_card_transactions("gc30"),
            )

        first, second, card, ledger = scenario(tmp_path, body)
        assert (first, second) == (True, False)
        assert card.balance == D("10.00")
        assert [(t.amount, t.order_number) for t in ledger] == [(D("-20.00"), "MXZ-1")]

    def test_inactive_gift_card_is_never_debited(self, tmp_path):
        async def body(store):
            card = await store.get_gift_card("GC-OFF")
            async with store.transaction() as tx:
                return await tx.debit_gift_card(card.id, D("1.00"), "MXZ-1")

        assert scenario(tmp_path, body) is False

    def test_exception_rolls_back_everything(self, tmp_path):
        async def body(store):
            with pytest.raises(RuntimeError):
                async with store.transaction() as tx:
                    assert await tx.decrement_stock("P1", 4)
                    assert await tx.increment_discount_usage(1)
                    raise RuntimeError("boom")
            return await store.get_product("P1"), await store.get_discount("SAVE10")

        product, discount = scenario(tmp_path, body)
        assert product.quantity == 10
        assert discount.times_used == 0


class TestOrders:
    def test_settle_persists_order_and_side_effects(self, tmp_path):
        async def body(store):
            result = await Coordinator(store, CONFIG).settle(
                checkout(
                    line("P1", 2, "10"),
                    discount_code="SAVE10",
                    gift_card_code="GC30",
                    idempotency_key="cart-1",
                )
            )
            order = ok(result).order
            return (
                order,
                await store.get_order(order.order_number),
                await store.find_order_by_key("cart-1"),
                await store.get_product("P1"),
                await store.get_discount("SAVE10"),
                await store.get_gift_card("GC30"),
            )

        order, stored, by_key, product, discount, card = scenario(tmp_path, body)

        assert stored == order
        assert by_key == order
        assert stored.total == D("60.00")
        assert stored.items[0].unit_price == D("50.00")
        assert stored.items[0].size == "10"
        assert stored.shipping_address.city == "Brooklyn"
        assert product.quantity == 8
        assert discount.times_used == 1
        assert card.balance == D("0.00")

    def test_duplicate_order_number_conflicts(self, tmp_path):
        async def body(store):
            order = ok(await Coordinator(store, CONFIG).settle(checkout(line("P1", 1)))).order
            with pytest.raises(OrderConflict):
                async with store.transaction() as tx:
                    await tx.insert_order(replace(order, idempotency_key=None))
            return await store.list_orders()

        assert len(scenario(tmp_path, body)) == 1

    def test_stock_conflict_rolls_back_discount_and_gift_card(self, tmp_path):
        async def body(store):
            coordinator = Coordinator(store, CONFIG)
            ok(await coordinator.settle(checkout(line("LAST", 1))))

            sold_out = await store.get_product("LAST")
            stale = StaleReads(store, products=[replace(sold_out, quantity=1)])
            result = await Coordinator(stale, CONFIG).settle(
                checkout(line("LAST", 1), discount_code="FIVE", gift_card_code="GC30")
            )
            return (
                err(result),
                await store.get_discount("FIVE"),
                await store.get_gift_card("GC30"),
                await store.list_gift_card_transactions("GC30"),
                await store.list_orders(),
            )

        error, discount, card, ledger, orders = scenario(tmp_path, body)
        assert error.kind is ErrorKind.CONFLICT
        assert error.step is CommitStep.STOCK_DECREMENT
        assert discount.times_used == 0
        assert card.balance == D("30.00")
        assert ledger == []
        assert len(orders) == 1

    def test_replay_by_idempotency_key(self, tmp_path):
        async def body(store):
            coordinator = Coordinator(store, CONFIG)
            request = checkout(line("P2", 1), idempotency_key="retry-me")
            first = ok(await coordinator.settle(request))
            second = ok(await coordinator.settle(request))
            return first, second, await store.get_product("P2")

        first, second, product = scenario(tmp_path, body)
        assert second.replayed
        assert second.order == first.order
        assert product.quantity == 2

    def test_status_compare_and_set(self, tmp_path):
        async def body(store):
            order = ok(await Coordinator(store, CONFIG).settle(checkout(line("P1", 1)))).order
            async with store.transaction() as tx:
                moved = await tx.update_order_status(
                    order.order_number, OrderStatus.PENDING, OrderStatus.CONFIRMED
                )
                stale = await tx.update_order_status(
                    order.order_number, OrderStatus.PENDING, OrderStatus.CANCELLED
                )
            return moved, stale, await store.get_order(order.order_number)

        moved, stale, order = scenario(tmp_path, body)
        assert (moved, stale) == (True, False)
        assert order.status is OrderStatus.CONFIRMED


class TestInventoryLedger:
    def test_adjust_stock_and_record(self, tmp_path):
        async def body(store):
            async with store.transaction() as tx:
                restocked = await tx.adjust_stock("P2", 5)
                too_many = await tx.adjust_stock("P2", -50)
                await tx.record_adjustment(
                    InventoryAdjustment(
                        product_id="P2",
                        adjustment=5,
                        reason="restock",
                        created_at=datetime(2024, 3, 1, 12, 0),
                        size="10",
                        adjusted_by="staff-1",
                    )
                )
            return (
                restocked,
                too_many,
                await store.get_product("P2"),
                await store.list_inventory_adjustments("P2"),
            )

        restocked, too_many, product, ledger = scenario(tmp_path, body)
        assert restocked == 8
        assert too_many is None
        assert product.quantity == 8
        assert [(a.adjustment, a.reason, a.adjusted_by) for a in ledger] == [
            (5, "restock", "staff-1")
        ]


class TestDiscountStorage:
    def test_expiry_keeps_its_instant(self, tmp_path):
        honolulu = timezone(timedelta(hours=-10))
        soon = (datetime.now(timezone.utc) + timedelta(minutes=30)).astimezone(honolulu)
        kiribati = timezone(timedelta(hours=14))
        lapsed = (datetime.now(timezone.utc) - timedelta(minutes=30)).astimezone(kiribati)

        async def body(store):
            await store.add_discount(replace(DISCOUNTS[0], id=20, code="SOON", expires_at=soon))
            await store.add_discount(replace(DISCOUNTS[0], id=21, code="LAPSED", expires_at=lapsed))
            return (
                await store.get_discount("SOON"),
                await validate_discount(store, "SOON", D("100.00")),
                await validate_discount(store, "LAPSED", D("100.00")),
            )

        stored, live, expired = scenario(tmp_path, body)
        assert stored.expires_at == soon
        assert stored.expires_at.utcoffset() == timedelta(0)
        assert ok(live).code == "SOON"
        assert err(expired).reason is DiscountRejectionReason.EXPIRED

    def test_value_rounds_to_hundredths(self, tmp_path):
        async def body(store):
            await store.add_discount(
                replace(DISCOUNTS[0], id=20, code="ODD", value=D("12.345"))
            )
            return await store.get_discount("ODD")

        assert scenario(tmp_path, body).value == D("12.35")


class TestCreateDatabase:
    @pytest.mark.parametrize(
        "url",
        [
            "sqlite+aiosqlite:///:memory:",
            "sqlite+aiosqlite://",
            "sqlite+aiosqlite:///file:shop?mode=memory&cache=shared&uri=true",
        ],
    )
    def test_in_memory_sqlite_refused(self, url):
        with pytest.raises(ValueError):
            asyncio.run(create_database(url))

    def test_url_defaults_to_config(self, tmp_path, monkeypatch):
        path = tmp_path / "from-env.db"
        monkeypatch.setenv("SETTLEMENT_DATABASE_URL", f"sqlite+aiosqlite:///{path}")

        async def main():
            _, engine = await create_database()
            await engine.dispose()

        asyncio.run(main())
        assert path.exists()


# ═══════════════════════════════════════════════════════════════════════════════
# Concurrent checkouts on separate connections
# ═══════════════════════════════════════════════════════════════════════════════


def race(tmp_path, *requests, config=CONFIG, inspect):
    """Settle `requests` concurrently, then `inspect(store)` the database."""

    async def body(store):
        coordinator = Coordinator(store, config)
        results = await asyncio.gather(*(coordinator.settle(r) for r in requests))
        return results, await inspect(store)

    return scenario(tmp_path, body)


def split(results):
    settled, failed = [], []
    for result in results:
        match result:
            case Ok(settlement):
                settled.append(settlement.order)
            case Error(e):
                failed.append(e)
    return settled, failed


class TestConcurrentCheckouts:
    def test_last_pair_sells_once(self, tmp_path):
        async def inspect(store):
            return await store.get_product("LAST"), await store.list_orders()

        results, (product, orders) = race(
            tmp_path, *(checkout(line("LAST", 1)) for _ in range(4)), inspect=inspect
        )

        settled, failed = split(results)
        assert len(settled) == 1
        assert len(failed) == 3
        assert {e.kind for e in failed} <= {ErrorKind.INSUFFICIENT_STOCK, ErrorKind.CONFLICT}
        assert product.quantity == 0
        assert [o.order_number for o in orders] == [settled[0].order_number]

    def test_last_discount_use_claimed_once(self, tmp_path):
        async def inspect(store):
            return await store.get_discount("ONCE"), await store.list_orders()

        results, (discount, orders) = race(
            tmp_path,
            *(checkout(line("P1", 1), discount_code="ONCE") for _ in range(4)),
            inspect=inspect,
        )

        settled, failed = split(results)
        assert discount.times_used == 1
        assert [o.discount_code for o in orders].count("ONCE") == 1
        assert all(
            e.kind is ErrorKind.CONFLICT and e.step is CommitStep.DISCOUNT_USAGE for e in failed
        )
        assert len(orders) == len(settled)

    def test_gift_card_balance_never_negative(self, tmp_path):
        async def inspect(store):
            return (
                await store.get_gift_card("GC30"),
                await store.list_gift_card_transactions("GC30"),
                await store.list_orders(),
            )

        results, (card, ledger, orders) = race(
            tmp_path,
            *(checkout(line("P1", 1), gift_card_code="GC30") for _ in range(4)),
            inspect=inspect,
        )

        settled, failed = split(results)
        paid = [o for o in orders if o.gift_card_amount > 0]
        assert card.balance == D("0.00")
        assert [t.amount for t in ledger] == [D("-30.00")]
        assert [o.order_number for o in paid] == [ledger[0].order_number]
        assert all(
            e.kind is ErrorKind.CONFLICT and e.step is CommitStep.GIFT_CARD_DEBIT for e in failed
        )
        assert len(orders) == len(settled)

    def test_lost_race_leaves_no_partial_writes(self, tmp_path):
        async def inspect(store):
            return (
                await store.get_product("LAST"),
                await store.get_discount("FIVE"),
                await store.get_gift_card("GC500"),
                await store.list_gift_card_transactions("GC500"),
                await store.list_orders(),
            )

        request = checkout(line("LAST", 1), discount_code="FIVE", gift_card_code="GC500")
        results, (product, discount, card, ledger, orders) = race(
            tmp_path, request, request, request, inspect=inspect
        )

        settled, _ = split(results)
        [order] = settled
        assert product.quantity == 0
        assert discount.times_used == 1
        assert card.balance == D("500.00") - order.gift_card_amount
        assert [t.order_number for t in ledger] == [order.order_number]
        assert [o.order_number for o in orders] == [order.order_number]
