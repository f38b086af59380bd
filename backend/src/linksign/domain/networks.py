"""Supported EVM networks, CAIP-2 references and explorer links."""

from typing import Literal

SupportedNetwork = Literal["base-sepolia", "base", "sepolia", "mainnet"]

NETWORK_CHAIN_REFS: dict[str, str] = {
    "base-sepolia": "eip155:84532",
    "base": "eip155:8453",
    "sepolia": "eip155:11155111",
    "mainnet": "eip155:1",
}

# Circle USDC deployments, keyed by CAIP-2 reference
USDC_ADDRESSES: dict[str, str] = {
    "eip155:84532": "0x036CbD53842c5426634e7929541eC2318f3dCF7e",
    "eip155:8453": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
    "eip155:11155111": "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238",
    "eip155:1": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
}

EXPLORER_URLS: dict[str, str] = {
    "eip155:84532": "https://sepolia.basescan.org",
    "eip155:8453": "https://basescan.org",
    "eip155:11155111": "https://sepolia.etherscan.io",
    "eip155:1": "https://etherscan.io",
}


def network_to_chain_ref(network: str) -> str:
    """Map a network name to its CAIP-2 reference; unknown names pass through."""
    return NETWORK_CHAIN_REFS.get(network, network)


def chain_id_from_ref(chain_ref: str) -> int:
    """Extract the numeric EVM chain id from an ``eip155:<id>`` reference."""
    namespace, _, reference = chain_ref.partition(":")
    if namespace != "eip155" or not reference.isdigit():
        raise ValueError(f"Not an EVM chain reference: {chain_ref}")
    return int(reference)


def default_usdc_address(chain_ref: str) -> str:
    try:
        return USDC_ADDRESSES[chain_ref]
    except KeyError:
        raise ValueError(f"No default USDC address for {chain_ref}; set USDC_ADDRESS") from None


def build_tx_url(chain_ref: str | None, tx_hash: str | None) -> str | None:
    """Block explorer URL for a transaction, if the chain is known."""
    base = EXPLORER_URLS.get(chain_ref or "")
    if base is None or not tx_hash:
        return None
    return f"{base}/tx/{tx_hash}"


def build_address_url(chain_ref: str | None, address: str | None) -> str | None:
    """Block explorer URL for an address, if the chain is known."""
    base = EXPLORER_URLS.get(chain_ref or "")
    if base is None or not address:
        return None
    return f"{base}/address/{address}"
