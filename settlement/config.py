"""
Settlement configuration.

Immutable: each `with_*` method returns a new config.

Example:
    config = (
        SettlementConfig.from_env()
        .with_shipping(Decimal("9.99"))
        .with_max_attempts(5)
    )
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from decimal import Decimal

from settlement._types import Money, ZERO, money

ENV_PREFIX = "SETTLEMENT_"


@dataclass(frozen=True, slots=True)
class SettlementConfig:
    """
    order_prefix: Leading token of generated order numbers ("MXZ-...").
    shipping_flat_rate: Flat shipping charged on every order (free by default).
    max_attempts: Settlement attempts when a stock race or order-number
        collision is detected at commit time.
    conflict_backoff: Seconds slept before attempt N, multiplied by N - 1.
    reject_invalid_codes: Fail the checkout on a supplied but unusable
        discount or gift card code instead of settling without it.
    default_payment_method: Recorded when the request names none.
    database_url: SQLAlchemy async URL `create_database()` opens when given
        none. In-memory SQLite is refused there.
    """

    order_prefix: str = "MXZ"
    shipping_flat_rate: Money = ZERO
    max_attempts: int = 3
    conflict_backoff: float = 0.05
    reject_invalid_codes: bool = False
    default_payment_method: str = "pending"
    database_url: str = "sqlite+aiosqlite:///./settlement.db"

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.shipping_flat_rate < 0:
            raise ValueError("shipping_flat_rate must not be negative")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> SettlementConfig:
        """Read SETTLEMENT_* variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        defaults = cls()

        def get(name: str) -> str | None:
            return env.get(ENV_PREFIX + name)

        shipping = get("SHIPPING_FLAT_RATE")
        attempts = get("MAX_ATTEMPTS")
        backoff = get("CONFLICT_BACKOFF")
        reject = get("REJECT_INVALID_CODES")

        return cls(
            order_prefix=get("ORDER_PREFIX") or defaults.order_prefix,
            shipping_flat_rate=money(shipping) if shipping else defaults.shipping_flat_rate,
            max_attempts=int(attempts) if attempts else defaults.max_attempts,
            conflict_backoff=float(backoff) if backoff else defaults.conflict_backoff,
            reject_invalid_codes=(
                reject.strip().lower() in ("1", "true", "yes", "on")
                if reject
                else defaults.reject_invalid_codes
            ),
            default_payment_method=(
                get("DEFAULT_PAYMENT_METHOD") or defaults.default_payment_method
            ),
            database_url=get("DATABASE_URL") or defaults.database_url,
        )

    def with_shipping(self, flat_rate: Money | int | str) -> SettlementConfig:
        return replace(self, shipping_flat_rate=money(Decimal(flat_rate)))

    def with_max_attempts(self, attempts: int, backoff: float | None = None) -> SettlementConfig:
        """
        Bound commit retries.

        Example:
            .with_max_attempts(5)
            .with_max_attempts(1)          # never retry
            .with_max_attempts(3, backoff=0)
        """
        if backoff is None:
            return replace(self, max_attempts=attempts)
        return replace(self, max_attempts=attempts, conflict_backoff=backoff)

    def with_strict_codes(self, strict: bool = True) -> SettlementConfig:
        return replace(self, reject_invalid_codes=strict)

    def with_order_prefix(self, prefix: str) -> SettlementConfig:
        return replace(self, order_prefix=prefix)

    def with_database(self, url: str) -> SettlementConfig:
        return replace(self, database_url=url)


def configure_logging(level: int | str = logging.INFO) -> None:
    """Basic stderr logging for applications embedding the engine."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


__all__ = ("SettlementConfig", "configure_logging", "ENV_PREFIX")
