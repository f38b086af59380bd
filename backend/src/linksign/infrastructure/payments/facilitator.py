"""HTTP client for an x402 facilitator.

The facilitator exposes three endpoints:

- ``GET  /supported`` - payment kinds (version, scheme, network) it can handle
- ``POST /verify``    - checks a signed authorization against requirements
- ``POST /settle``    - executes the transfer and returns its transaction

Responses are normalized into small tagged result types. Anything that does
not match a known shape raises ``FacilitatorProtocolError`` instead of being
coerced into a default.
"""

from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from linksign.domain.payments.x402 import X402_VERSION
from linksign.shared.exceptions import FacilitatorProtocolError, FacilitatorUnavailableError
from linksign.shared.logging import get_logger

logger = get_logger(__name__)


# ----- Normalized results -----


@dataclass(frozen=True)
class SupportedKind:
    x402_version: int
    scheme: str
    network: str


@dataclass(frozen=True)
class VerifyAccepted:
    payer: str | None


@dataclass(frozen=True)
class VerifyRejected:
    reason: str
    payer: str | None = None


VerifyResult = VerifyAccepted | VerifyRejected


@dataclass(frozen=True)
class SettleSucceeded:
    transaction: str
    network: str
    payer: str | None
    raw: dict[str, Any]


@dataclass(frozen=True)
class SettleFailed:
    reason: str
    raw: dict[str, Any]


SettleResult = SettleSucceeded | SettleFailed


# ----- Wire shapes -----


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class _VerifyResponse(_WireModel):
    is_valid: bool = Field(alias="isValid", strict=True)
    invalid_reason: str | None = Field(default=None, alias="invalidReason")
    payer: str | None = None


class _SettleResponse(_WireModel):
    success: bool = Field(strict=True)
    error_reason: str | None = Field(default=None, alias="errorReason")
    transaction: str | None = None
    network: str | None = None
    payer: str | None = None


class _SupportedKind(_WireModel):
    x402_version: int = Field(alias="x402Version")
    scheme: str
    network: str


class _SupportedResponse(_WireModel):
    kinds: list[_SupportedKind]


def _wire_errors(exc: PydanticValidationError) -> list[Any]:
    return list(exc.errors(include_url=False, include_context=False, include_input=False))


def normalize_verify_response(data: Any) -> VerifyResult:
    try:
        parsed = _VerifyResponse.model_validate(data)
    except PydanticValidationError as exc:
        raise FacilitatorProtocolError(
            "Unrecognized verify response from facilitator",
            details={"errors": _wire_errors(exc)},
        ) from exc

    if parsed.is_valid:
        return VerifyAccepted(payer=parsed.payer)
    return VerifyRejected(
        reason=parsed.invalid_reason or "Payment verification failed",
        payer=parsed.payer,
    )


def normalize_settle_response(data: Any) -> SettleResult:
    try:
        parsed = _SettleResponse.model_validate(data)
    except PydanticValidationError as exc:
        raise FacilitatorProtocolError(
            "Unrecognized settle response from facilitator",
            details={"errors": _wire_errors(exc)},
        ) from exc

    if not parsed.success:
        return SettleFailed(reason=parsed.error_reason or "settlement failed", raw=dict(data))

    if not parsed.transaction or not parsed.network:
        raise FacilitatorProtocolError(
            "Facilitator reported success without a transaction reference",
            details={"fields": sorted(data)},
        )
    return SettleSucceeded(
        transaction=parsed.transaction,
        network=parsed.network,
        payer=parsed.payer,
        raw=dict(data),
    )


def normalize_supported_response(data: Any) -> list[SupportedKind]:
    try:
        parsed = _SupportedResponse.model_validate(data)
    except PydanticValidationError as exc:
        raise FacilitatorProtocolError(
            "Unrecognized /supported response from facilitator",
            details={"errors": _wire_errors(exc)},
        ) from exc
    return [
        SupportedKind(x402_version=k.x402_version, scheme=k.scheme, network=k.network)
        for k in parsed.kinds
    ]


# ----- Client -----


class FacilitatorClient:
    """Async client for an x402 facilitator service."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {
                "Accept": "application/json",
                "User-Agent": "LinkSign/0.1",
            }
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"

            self._client = httpx.AsyncClient(timeout=self.timeout, headers=headers)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, body: dict[str, Any] | None = None) -> Any:
        client = await self._get_client()
        url = f"{self.base_url}{path}"
        try:
            response = await client.request(method, url, json=body)
        except httpx.RequestError as e:
            logger.error("facilitator_request_failed", path=path, error=str(e))
            raise FacilitatorUnavailableError(
                "Payment facilitator is unreachable",
                details={"path": path},
            ) from e

        if response.status_code >= 500 or response.status_code in (401, 403):
            logger.error(
                "facilitator_http_error",
                path=path,
                status=response.status_code,
            )
            raise FacilitatorUnavailableError(
                f"Payment facilitator returned HTTP {response.status_code}",
                details={"path": path, "status": response.status_code},
            )

        try:
            return response.json()
        except ValueError as e:
            raise FacilitatorProtocolError(
                "Payment facilitator returned a non-JSON body",
                details={"path": path, "status": response.status_code},
            ) from e

    async def supported(self) -> list[SupportedKind]:
        return normalize_supported_response(await self._request("GET", "/supported"))

    async def verify(self, payload: dict[str, Any], requirements: dict[str, Any]) -> VerifyResult:
        data = await self._request(
            "POST",
            "/verify",
            {
                "x402Version": X402_VERSION,
                "paymentPayload": payload,
                "paymentRequirements": requirements,
            },
        )
        return normalize_verify_response(data)

    async def settle(self, payload: dict[str, Any], requirements: dict[str, Any]) -> SettleResult:
        data = await self._request(
            "POST",
            "/settle",
            {
                "x402Version": X402_VERSION,
                "paymentPayload": payload,
                "paymentRequirements": requirements,
            },
        )
        return normalize_settle_response(data)
