"""
funding_config -- single public entrypoint for runtime configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration -- sits above ``funding_kernel`` and beside
    ``funding_gateways`` / ``funding_services``.  The kernel MUST NEVER
    import from ``funding_config``; services receive the values they need.

Resolution order:
    1. ``path`` argument, else ``FUNDING_CONFIG_PATH``, else the packaged
       ``defaults.yaml``.
    2. ``DATABASE_URL`` overrides ``database.url``.
    3. ``STRIPE_SECRET_KEY`` overrides ``stripe.api_key``.

Audit relevance:
    Every call emits a ``FUNDING_CONFIG_TRACE`` log entry carrying the
    source file and checksum.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from funding_config.loader import load_yaml_file, parse_config
from funding_config.schema import (
    ChargePolicy,
    DatabaseSettings,
    FeePolicy,
    FundingConfig,
    StripeSettings,
    SubscriptionPolicy,
)

_logger = logging.getLogger("funding_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> FundingConfig:
    """
    The ONLY public configuration entrypoint.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ValueError: If a value is out of range.
    """
    source = Path(path or os.environ.get("FUNDING_CONFIG_PATH") or DEFAULT_CONFIG_PATH)
    config = parse_config(load_yaml_file(source), source=str(source))

    database_url = os.environ.get("DATABASE_URL")
    if database_url:
        config = replace(config, database=replace(config.database, url=database_url))

    stripe_key = os.environ.get("STRIPE_SECRET_KEY")
    if stripe_key:
        config = replace(config, stripe=replace(config.stripe, api_key=stripe_key))

    _logger.info(
        "FUNDING_CONFIG_TRACE",
        extra={
            "trace_type": "FUNDING_CONFIG_TRACE",
            "source": config.source,
            "checksum": config.checksum,
            "database_override": bool(database_url),
            "stripe_key_configured": config.stripe.api_key is not None,
        },
    )
    return config


__all__ = [
    "get_active_config",
    "FundingConfig",
    "FeePolicy",
    "ChargePolicy",
    "SubscriptionPolicy",
    "StripeSettings",
    "DatabaseSettings",
]
