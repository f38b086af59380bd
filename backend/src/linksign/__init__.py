"""LinkSign - payment-gated on-chain agreement registry."""

__version__ = "0.1.0"
