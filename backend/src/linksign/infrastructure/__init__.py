"""Adapters for storage, ledger and payment facilitator."""
