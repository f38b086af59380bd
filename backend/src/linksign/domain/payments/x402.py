"""x402 wire helpers: headers, price parsing and payment requirements."""

import base64
import binascii
import json
import re
from dataclasses import dataclass
from typing import Any

from linksign.domain.payments.models import PaymentRoute

X402_VERSION = 2

PAYMENT_SIGNATURE_HEADER = "PAYMENT-SIGNATURE"
LEGACY_PAYMENT_HEADER = "X-PAYMENT"
PAYMENT_REQUIRED_HEADER = "PAYMENT-REQUIRED"
PAYMENT_RESPONSE_HEADER = "PAYMENT-RESPONSE"

USDC_DECIMALS = 6
MAX_TIMEOUT_SECONDS = 300

_PRICE_RE = re.compile(r"^\$(\d+(?:\.\d+)?)$")


def encode_header_json(obj: Any) -> str:
    """Base64-encode a JSON document for transport in an HTTP header."""
    return base64.b64encode(json.dumps(obj, separators=(",", ":")).encode("utf-8")).decode("ascii")


def decode_header_json(value: str) -> Any:
    """Inverse of :func:`encode_header_json`.

    Raises:
        ValueError: If the header is not base64 or not JSON.
    """
    try:
        raw = base64.b64decode(value.strip(), validate=True)
        return json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError(f"Undecodable payment header: {exc}") from exc


def parse_price(price: str, decimals: int = USDC_DECIMALS) -> str:
    """Convert a ``$0.01`` style price to atomic token units.

    Integer arithmetic only. Digits beyond ``decimals`` are truncated.
    """
    match = _PRICE_RE.match(price)
    if not match:
        raise ValueError(f"Invalid price format: {price}. Expected format: $0.01")

    whole, _, fraction = match.group(1).partition(".")
    padded = fraction.ljust(decimals, "0")[:decimals]
    return str(int(whole + padded))


@dataclass(frozen=True)
class PaymentConfig:
    """What the server charges and where the money goes."""

    network: str  # CAIP-2
    pay_to: str
    asset: str
    create_price: str
    sign_price: str

    def price_for(self, route: PaymentRoute) -> str:
        return self.create_price if route is PaymentRoute.CREATE else self.sign_price


def build_requirements(config: PaymentConfig, route: PaymentRoute) -> dict[str, Any]:
    """The ``exact`` scheme requirements for a route.

    The same dict is sent in the challenge, to /verify and to /settle.
    """
    return {
        "scheme": "exact",
        "network": config.network,
        "amount": parse_price(config.price_for(route)),
        "asset": config.asset,
        "payTo": config.pay_to,
        "maxTimeoutSeconds": MAX_TIMEOUT_SECONDS,
        "extra": {
            "name": "USDC",
            "version": "2",
        },
    }


def build_payment_required(config: PaymentConfig, route: PaymentRoute) -> dict[str, Any]:
    return {
        "x402Version": X402_VERSION,
        "error": "Payment required",
        "accepts": [build_requirements(config, route)],
    }
