"""
FundingConfig schema.

Frozen dataclasses that the loader parses the YAML configuration into.
Nothing outside funding_config constructs these from files; callers receive
a FundingConfig from ``get_active_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class FeePolicy:
    """Platform-wide fee defaults, in percent."""

    platform_fee_percent: Decimal = Decimal("5")
    default_host_fee_percent: Decimal = Decimal("0")


@dataclass(frozen=True)
class ChargePolicy:
    """Order amount rules, in minor units."""

    minimum_charge_amount: int = 50


@dataclass(frozen=True)
class SubscriptionPolicy:
    """Recurring charge run behaviour."""

    retry_delay_days: int = 2
    max_retries: int = 3


@dataclass(frozen=True)
class StripeSettings:
    api_key: str | None = None
    api_version: str | None = None
    max_network_retries: int = 2


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///funding.db"
    echo: bool = False
    pool_size: int = 20


@dataclass(frozen=True)
class FundingConfig:
    """The runtime configuration artifact."""

    fees: FeePolicy = field(default_factory=FeePolicy)
    charges: ChargePolicy = field(default_factory=ChargePolicy)
    subscriptions: SubscriptionPolicy = field(default_factory=SubscriptionPolicy)
    stripe: StripeSettings = field(default_factory=StripeSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    checksum: str = ""
    source: str = ""
