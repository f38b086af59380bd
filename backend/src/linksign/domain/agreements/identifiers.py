"""Deterministic identifiers for documents and agreements.

All digests are keccak-256 so they match the AgreementOracle contract keys:

    docHash     = keccak256(file bytes)
    agreementId = keccak256(abi.encode(bytes32 docHash, address creator, bytes32 paymentRef))

``abi.encode`` pads every field to a 32-byte word, so no two distinct input
tuples share a preimage.
"""

import base64
import binascii
import re

from eth_abi import encode
from eth_utils import is_checksum_address, keccak, to_checksum_address

from linksign.shared.exceptions import ValidationError

BYTES32_LENGTH = 32
ADDRESS_LENGTH = 20

_HEX_BODY = re.compile(r"^[0-9a-fA-F]*$")
_AGREEMENT_ID_TYPES = ["bytes32", "address", "bytes32"]


def _to_hex(data: bytes) -> str:
    return "0x" + data.hex()


def validate_fixed_width_hex(value: object, expected_byte_length: int, label: str) -> str:
    """Check that ``value`` is a 0x-prefixed hex string of exactly N bytes.

    Returns the lowercase form.

    Raises:
        ValidationError: Naming ``label`` when the value is malformed.
    """
    expected_chars = expected_byte_length * 2
    if (
        not isinstance(value, str)
        or not value.startswith("0x")
        or len(value) != expected_chars + 2
        or not _HEX_BODY.match(value[2:])
    ):
        raise ValidationError(
            f"Invalid {label} (expected {expected_byte_length}-byte hex value)",
            details={"field": label, "expected_bytes": expected_byte_length},
        )
    return value.lower()


def validate_bytes32(value: object, label: str) -> str:
    return validate_fixed_width_hex(value, BYTES32_LENGTH, label)


def validate_evm_address(value: object, label: str) -> str:
    """Validate an EVM address and return its EIP-55 checksum form.

    Mixed-case input must carry a valid checksum; all-lower or all-upper
    input is accepted as-is.
    """
    lowered = validate_fixed_width_hex(value, ADDRESS_LENGTH, label)
    raw = str(value)
    body = raw[2:]
    is_mixed_case = body != body.lower() and body != body.upper()
    if is_mixed_case and not is_checksum_address(raw):
        raise ValidationError(
            f"Invalid {label} (bad EIP-55 checksum)",
            details={"field": label},
        )
    return to_checksum_address(lowered)


def fingerprint(data: bytes) -> str:
    """Content digest of a document.

    Raises:
        ValidationError: If ``data`` is empty.
    """
    if not data:
        raise ValidationError("Empty file", details={"field": "file"})
    return _to_hex(keccak(data))


def encode_agreement_preimage(fingerprint_hex: str, creator: str, payment_ref: str) -> bytes:
    """ABI-encode the three identifier fields as fixed 32-byte words."""
    doc_hash = validate_bytes32(fingerprint_hex, "docHash")
    creator_address = validate_evm_address(creator, "creatorAddress")
    reference = validate_bytes32(payment_ref, "paymentRef")
    return encode(
        _AGREEMENT_ID_TYPES,
        [
            bytes.fromhex(doc_hash[2:]),
            bytes.fromhex(creator_address[2:]),
            bytes.fromhex(reference[2:]),
        ],
    )


def compute_agreement_id(fingerprint_hex: str, creator: str, payment_ref: str) -> str:
    """Composite agreement key used as the ledger's primary key."""
    return _to_hex(keccak(encode_agreement_preimage(fingerprint_hex, creator, payment_ref)))


def digest_text(value: str) -> str:
    """keccak-256 of a UTF-8 string (used for header-derived payment references)."""
    return _to_hex(keccak(value.encode("utf-8")))


def decode_base64_document(data: str) -> bytes:
    """Decode a base64 document body.

    Whitespace is ignored and the URL-safe alphabet is accepted.
    """
    normalized = re.sub(r"\s", "", data).replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    try:
        return base64.b64decode(normalized, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("fileBase64 is not valid base64", details={"field": "fileBase64"}) from exc
