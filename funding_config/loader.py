"""
Configuration Loader (``funding_config.loader``).

Responsibility
--------------
Loads the YAML configuration file and parses it into the typed
``funding_config.schema`` dataclasses.  The single public entry point for
runtime config is ``funding_config.get_active_config()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Percentages are parsed as ``Decimal`` from their string form, never via
  float arithmetic.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Out-of-range values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from funding_config.schema import (
    ChargePolicy,
    DatabaseSettings,
    FeePolicy,
    FundingConfig,
    StripeSettings,
    SubscriptionPolicy,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_percent(value: Any, name: str) -> Decimal:
    percent = Decimal(str(value))
    if not Decimal(0) <= percent <= Decimal(100):
        raise ValueError(f"{name} must be between 0 and 100, got {value!r}")
    return percent


def parse_non_negative_int(value: Any, name: str) -> int:
    number = int(value)
    if number < 0:
        raise ValueError(f"{name} must be non-negative, got {value!r}")
    return number


def parse_fees(data: dict[str, Any]) -> FeePolicy:
    defaults = FeePolicy()
    return FeePolicy(
        platform_fee_percent=parse_percent(
            data.get("platform_fee_percent", defaults.platform_fee_percent),
            "fees.platform_fee_percent",
        ),
        default_host_fee_percent=parse_percent(
            data.get("default_host_fee_percent", defaults.default_host_fee_percent),
            "fees.default_host_fee_percent",
        ),
    )


def parse_charges(data: dict[str, Any]) -> ChargePolicy:
    return ChargePolicy(
        minimum_charge_amount=parse_non_negative_int(
            data.get("minimum_charge_amount", ChargePolicy.minimum_charge_amount),
            "charges.minimum_charge_amount",
        ),
    )


def parse_subscriptions(data: dict[str, Any]) -> SubscriptionPolicy:
    return SubscriptionPolicy(
        retry_delay_days=parse_non_negative_int(
            data.get("retry_delay_days", SubscriptionPolicy.retry_delay_days),
            "subscriptions.retry_delay_days",
        ),
        max_retries=parse_non_negative_int(
            data.get("max_retries", SubscriptionPolicy.max_retries),
            "subscriptions.max_retries",
        ),
    )


def parse_stripe(data: dict[str, Any]) -> StripeSettings:
    return StripeSettings(
        api_key=data.get("api_key"),
        api_version=data.get("api_version"),
        max_network_retries=parse_non_negative_int(
            data.get("max_network_retries", StripeSettings.max_network_retries),
            "stripe.max_network_retries",
        ),
    )


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    return DatabaseSettings(
        url=data.get("url", DatabaseSettings.url),
        echo=bool(data.get("echo", False)),
        pool_size=parse_non_negative_int(
            data.get("pool_size", DatabaseSettings.pool_size),
            "database.pool_size",
        ),
    )


def parse_config(data: dict[str, Any], source: str = "") -> FundingConfig:
    """Parse a whole configuration document."""
    return FundingConfig(
        fees=parse_fees(data.get("fees") or {}),
        charges=parse_charges(data.get("charges") or {}),
        subscriptions=parse_subscriptions(data.get("subscriptions") or {}),
        stripe=parse_stripe(data.get("stripe") or {}),
        database=parse_database(data.get("database") or {}),
        checksum=compute_checksum(data),
        source=source,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 checksum of the canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
