"""
Payment gateways: one per payment method kind, looked up in a registry.
"""

from funding_gateways.bank_transfer import BankTransferGateway
from funding_gateways.base import ChargeContext, PaymentGateway
from funding_gateways.card import CardGateway
from funding_gateways.cryptocurrency import CryptocurrencyGateway
from funding_gateways.deferred import DeferredSettlementGateway
from funding_gateways.manual import ManualGateway
from funding_gateways.prepaid import PrepaidGateway
from funding_gateways.registry import GatewayRegistry, build_default_registry

__all__ = [
    "BankTransferGateway",
    "CardGateway",
    "ChargeContext",
    "CryptocurrencyGateway",
    "DeferredSettlementGateway",
    "GatewayRegistry",
    "ManualGateway",
    "PaymentGateway",
    "PrepaidGateway",
    "build_default_registry",
]
