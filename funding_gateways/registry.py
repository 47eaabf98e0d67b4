"""
GatewayRegistry -- payment gateways keyed by payment method kind.

Built once at startup with build_default_registry() and shared by the order
executor and the refund service.

Contract:
    - register() adds a gateway; raises ValueError on a duplicate kind.
    - get() retrieves by kind; raises GatewayNotConfigured if missing.
    - kinds() returns all registered kinds.
"""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from funding_config import FundingConfig
from funding_kernel.domain.clock import Clock
from funding_kernel.exceptions import GatewayNotConfigured
from funding_kernel.logging_config import get_logger

from funding_gateways.bank_transfer import BankTransferGateway
from funding_gateways.base import PaymentGateway
from funding_gateways.card import CardGateway
from funding_gateways.cryptocurrency import CryptocurrencyGateway
from funding_gateways.manual import ManualGateway
from funding_gateways.prepaid import PrepaidGateway

logger = get_logger("gateways.registry")


class GatewayRegistry:
    """Mapping of payment method kind to gateway instance."""

    def __init__(self) -> None:
        self._gateways: dict[str, PaymentGateway] = {}

    def register(self, gateway: PaymentGateway) -> None:
        kind = str(gateway.kind)
        if kind in self._gateways:
            raise ValueError(f"Gateway for kind '{kind}' is already registered")
        self._gateways[kind] = gateway

    def get(self, kind: str) -> PaymentGateway:
        key = getattr(kind, "value", kind)
        try:
            return self._gateways[key]
        except KeyError:
            raise GatewayNotConfigured(str(key)) from None

    def kinds(self) -> tuple[str, ...]:
        return tuple(sorted(self._gateways))

    def __contains__(self, kind: str) -> bool:
        return getattr(kind, "value", kind) in self._gateways

    def __len__(self) -> int:
        return len(self._gateways)


def build_default_registry(
    session_factory: sessionmaker[Session],
    config: FundingConfig,
    clock: Clock | None = None,
) -> GatewayRegistry:
    """Registry with one gateway per payment method kind."""
    registry = GatewayRegistry()
    for gateway_class in (
        CardGateway,
        BankTransferGateway,
        PrepaidGateway,
        CryptocurrencyGateway,
        ManualGateway,
    ):
        registry.register(gateway_class(session_factory, config, clock))
    logger.info("gateway_registry_built", extra={"kinds": list(registry.kinds())})
    return registry
