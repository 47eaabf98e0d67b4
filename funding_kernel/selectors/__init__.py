"""Read-only selectors over the funding ledger."""

from funding_kernel.selectors.ledger_selector import LedgerSelector
from funding_kernel.selectors.order_selector import OrderSelector

__all__ = ["LedgerSelector", "OrderSelector"]
