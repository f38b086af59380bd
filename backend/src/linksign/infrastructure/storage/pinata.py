"""Pinata (IPFS) document storage.

Two upload APIs are supported:

- ``v3``     - ``POST uploads.pinata.cloud/v3/files``, CID in ``data.cid``
- ``legacy`` - ``POST api.pinata.cloud/pinning/pinFileToIPFS``, CID in ``IpfsHash``

IPFS is content addressed, so re-uploading the same bytes after a transport
failure yields the same CID and is safe to retry.
"""

from typing import Any, Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from linksign.shared.exceptions import StorageError
from linksign.shared.logging import get_logger

logger = get_logger(__name__)

PINATA_V3_UPLOAD_URL = "https://uploads.pinata.cloud/v3/files"
PINATA_LEGACY_UPLOAD_URL = "https://api.pinata.cloud/pinning/pinFileToIPFS"

DEFAULT_CONTENT_TYPE = "application/pdf"

PinataApiVersion = Literal["v3", "legacy"]


# ----- Wire shapes -----


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="allow")


class _V3File(_WireModel):
    cid: str = Field(min_length=1, strict=True)


class _V3UploadResponse(_WireModel):
    data: _V3File


class _LegacyUploadResponse(_WireModel):
    ipfs_hash: str = Field(alias="IpfsHash", min_length=1, strict=True)


def extract_cid(data: Any, api_version: PinataApiVersion) -> str:
    """Read the CID from the upload response of ``api_version``.

    v3 answers ``{"data": {"cid": ...}}``, legacy answers ``{"IpfsHash": ...}``.

    Raises:
        StorageError: If the body does not have that version's shape.
    """
    try:
        if api_version == "v3":
            return _V3UploadResponse.model_validate(data).data.cid
        return _LegacyUploadResponse.model_validate(data).ipfs_hash
    except PydanticValidationError as exc:
        raise StorageError(
            "Pinata did not return CID",
            details={
                "provider": "pinata",
                "api_version": api_version,
                "errors": exc.errors(include_url=False, include_context=False, include_input=False),
            },
        ) from exc


class PinataStorage:
    """Uploads documents to IPFS through Pinata's pinning API."""

    def __init__(
        self,
        jwt: str,
        gateway: str = "gateway.pinata.cloud",
        api_version: PinataApiVersion = "v3",
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.jwt = jwt
        self.gateway = gateway.removeprefix("https://").rstrip("/")
        self.api_version = api_version
        self.timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.jwt}"},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, max=4),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _post(self, content: bytes, filename: str) -> httpx.Response:
        client = await self._get_client()
        files = {"file": (filename, content, DEFAULT_CONTENT_TYPE)}
        if self.api_version == "v3":
            return await client.post(
                PINATA_V3_UPLOAD_URL,
                files=files,
                data={"network": "public", "name": filename},
            )
        return await client.post(PINATA_LEGACY_UPLOAD_URL, files=files)

    async def upload(self, content: bytes, filename: str, fingerprint: str) -> str:
        """Pin a document and return its CID.

        Raises:
            StorageError: If the upload fails or no CID comes back.
        """
        try:
            response = await self._post(content, filename)
        except httpx.TransportError as e:
            logger.error("pinata_upload_failed", filename=filename, error=str(e))
            raise StorageError(
                "IPFS upload failed",
                details={"provider": "pinata", "error": str(e)},
            ) from e

        if response.status_code >= 400:
            logger.error("pinata_upload_rejected", filename=filename, status=response.status_code)
            raise StorageError(
                f"IPFS upload failed with HTTP {response.status_code}",
                details={"provider": "pinata", "status": response.status_code},
            )

        try:
            data = response.json()
        except ValueError as e:
            raise StorageError("Pinata returned a non-JSON body") from e

        cid = extract_cid(data, self.api_version)
        logger.info(
            "file_uploaded",
            provider="pinata",
            cid=cid,
            size=len(content),
            fingerprint=fingerprint,
        )
        return cid

    async def public_url(self, locator: str) -> str | None:
        return f"https://{self.gateway}/ipfs/{locator}"
