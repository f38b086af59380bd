"""x402 payment handshake."""
