"""x402 facilitator client."""
