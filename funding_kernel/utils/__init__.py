"""Utility functions for the funding kernel."""

from funding_kernel.utils.idempotency import generate_idempotency_key

__all__ = ["generate_idempotency_key"]
