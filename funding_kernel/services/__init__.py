"""Kernel services: ledger writes and sequence allocation."""
