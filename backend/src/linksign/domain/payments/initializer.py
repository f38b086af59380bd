"""Single-flight, time-bounded facilitator initialization.

The first request that needs the facilitator starts capability negotiation;
requests arriving while it runs await the same task. A failure or timeout
clears the task so the next request starts over.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from linksign.infrastructure.payments.facilitator import SupportedKind
from linksign.shared.exceptions import FacilitatorInitError, LinkSignError
from linksign.shared.logging import get_logger

logger = get_logger(__name__)

DEFAULT_INIT_TIMEOUT_SECONDS = 15.0


class FacilitatorInitializer:
    """Memoized negotiation of the ``exact`` scheme on one network."""

    def __init__(
        self,
        fetch_supported: Callable[[], Awaitable[list[SupportedKind]]],
        *,
        network: str,
        scheme: str = "exact",
        x402_version: int = 2,
        timeout_seconds: float = DEFAULT_INIT_TIMEOUT_SECONDS,
    ) -> None:
        self._fetch_supported = fetch_supported
        self.network = network
        self.scheme = scheme
        self.x402_version = x402_version
        self.timeout_seconds = timeout_seconds
        self._task: asyncio.Task[SupportedKind] | None = None
        self._kind: SupportedKind | None = None

    @property
    def is_ready(self) -> bool:
        return self._kind is not None

    @property
    def kind(self) -> SupportedKind | None:
        return self._kind

    async def ensure_initialized(self) -> SupportedKind:
        """Return the negotiated kind, initializing at most once.

        Raises:
            FacilitatorInitError: On timeout, transport failure or when the
                facilitator does not offer the configured scheme/network.
        """
        if self._kind is not None:
            return self._kind

        if self._task is None:
            self._task = asyncio.create_task(self._initialize())
        task = self._task

        try:
            # shield: a cancelled waiter must not cancel the shared attempt
            kind = await asyncio.shield(task)
        except Exception:
            if self._task is task:
                self._task = None
            raise

        self._kind = kind
        return kind

    async def _initialize(self) -> SupportedKind:
        logger.info("facilitator_initializing", network=self.network, scheme=self.scheme)
        try:
            kinds = await asyncio.wait_for(self._fetch_supported(), timeout=self.timeout_seconds)
        except TimeoutError as e:
            logger.error("facilitator_init_timeout", timeout_seconds=self.timeout_seconds)
            raise FacilitatorInitError(
                f"Payment facilitator init timeout ({self.timeout_seconds:g}s)",
                details={"timeout_seconds": self.timeout_seconds},
            ) from e
        except LinkSignError as e:
            logger.error("facilitator_init_failed", error=e.message)
            raise FacilitatorInitError(
                f"Payment facilitator init failed: {e.message}",
                details=e.details,
            ) from e

        for kind in kinds:
            if (
                kind.x402_version == self.x402_version
                and kind.scheme == self.scheme
                and kind.network == self.network
            ):
                logger.info("facilitator_ready", scheme=kind.scheme, network=kind.network)
                return kind

        logger.error("facilitator_kind_unsupported", network=self.network, scheme=self.scheme)
        raise FacilitatorInitError(
            f'Facilitator does not support "{self.scheme}" on "{self.network}"',
            details={"scheme": self.scheme, "network": self.network},
        )
