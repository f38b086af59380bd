"""AgreementOracle adapter over an EVM JSON-RPC endpoint.

Reads return a :class:`LedgerLookup` that keeps "the ledger said no" apart
from "the ledger could not be asked". The boolean helpers collapse the two
according to a :class:`ReadFailurePolicy`.

A write moves through four steps:

1. Simulated  - ``eth_call`` from the server wallet; a revert stops here
2. Signed     - pending nonce, chain id from the chain reference
3. Broadcast  - "already known" means the same transaction is in the mempool
4. Confirmed  - bounded receipt wait; status 0 is a revert
"""

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from eth_account import Account
from tenacity import (
    AsyncRetrying,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted

from linksign.domain.agreements.identifiers import validate_bytes32, validate_evm_address
from linksign.domain.networks import chain_id_from_ref
from linksign.infrastructure.ledger.abi import AGREEMENT_ORACLE_ABI
from linksign.observability.metrics import LEDGER_CONFIRMATION_LATENCY, LEDGER_WRITES
from linksign.shared.exceptions import (
    LedgerRevertError,
    LedgerTimeoutError,
    LedgerUnavailableError,
)
from linksign.shared.logging import get_logger

logger = get_logger(__name__)

# Public RPC endpoints reject eth_getLogs spanning 100k blocks or more
MAX_BLOCK_RANGE = 99_999

_ALREADY_KNOWN_MARKERS = ("already known", "known transaction")


class ReadFailurePolicy(StrEnum):
    """What a boolean read returns when the ledger cannot be reached."""

    ASSUME_FALSE = "assume_false"
    PROPAGATE = "propagate"


@dataclass(frozen=True)
class LedgerLookup:
    """Result of a view call: a value, or the error that prevented one."""

    value: bool | None = None
    error: Exception | None = None

    @classmethod
    def found(cls, value: bool) -> "LedgerLookup":
        return cls(value=value)

    @classmethod
    def unknown(cls, error: Exception) -> "LedgerLookup":
        return cls(error=error)

    @property
    def is_known(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class LedgerWriteResult:
    tx_hash: str
    accepted: bool
    confirmed: bool
    block_number: int | None = None


@dataclass(frozen=True)
class CreatedEvent:
    agreement_id: str
    doc_hash: str
    cid: str
    creator: str
    payment_ref: str
    chain_ref: str
    tx_hash: str | None
    block_number: int | None


@dataclass(frozen=True)
class SignedEvent:
    agreement_id: str
    signer: str
    payment_ref: str
    chain_ref: str
    tx_hash: str | None
    block_number: int | None


@dataclass(frozen=True)
class AgreementHistory:
    created: CreatedEvent
    signatures: list[SignedEvent] = field(default_factory=list)


def _hex(value: Any) -> str:
    if isinstance(value, str):
        return value.lower() if value.startswith("0x") else f"0x{value.lower()}"
    return "0x" + bytes(value).hex()


def _to_bytes32(value: str) -> bytes:
    return bytes.fromhex(value[2:])


def _revert_reason(exc: ContractLogicError) -> str:
    message = getattr(exc, "message", None) or str(exc)
    return message.removeprefix("execution reverted: ").strip() or "execution reverted"


def _is_already_known(exc: Exception) -> bool:
    text = str(exc).lower()
    return any(marker in text for marker in _ALREADY_KNOWN_MARKERS)


class AgreementOracle:
    """Reads and writes the AgreementOracle contract with the server wallet."""

    def __init__(
        self,
        *,
        rpc_url: str,
        contract_address: str,
        private_key: str,
        chain_ref: str,
        start_block: int = 0,
        confirmation_timeout_seconds: float = 120.0,
        poll_interval_seconds: float = 1.0,
        read_attempts: int = 3,
        read_backoff_seconds: float = 0.25,
        read_failure_policy: ReadFailurePolicy = ReadFailurePolicy.ASSUME_FALSE,
        w3: AsyncWeb3 | None = None,
    ) -> None:
        self.contract_address = validate_evm_address(contract_address, "contractAddress")
        self.chain_ref = chain_ref
        self.chain_id = chain_id_from_ref(chain_ref)
        self.start_block = start_block
        self.confirmation_timeout_seconds = confirmation_timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.read_attempts = max(1, read_attempts)
        self.read_backoff_seconds = read_backoff_seconds
        self.read_failure_policy = ReadFailurePolicy(read_failure_policy)

        self._account = Account.from_key(private_key)
        self._w3 = w3 or AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self._contract = self._w3.eth.contract(
            address=self.contract_address,
            abi=AGREEMENT_ORACLE_ABI,
        )

    @property
    def sender(self) -> str:
        """Address of the server wallet."""
        return self._account.address

    async def close(self) -> None:
        disconnect = getattr(self._w3.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()

    async def block_number(self) -> int:
        try:
            return int(await self._w3.eth.block_number)
        except Exception as e:
            raise LedgerUnavailableError(
                "Ledger RPC is unreachable",
                details={"error": str(e)},
            ) from e

    # ----- Reads -----

    async def _read(self, call: Any, operation: str) -> LedgerLookup:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.read_attempts),
                wait=wait_exponential(multiplier=self.read_backoff_seconds, max=2),
                retry=retry_if_not_exception_type(ContractLogicError),
                reraise=True,
            ):
                with attempt:
                    value = await call.call()
        except Exception as e:
            logger.warning("ledger_read_failed", operation=operation, error=str(e))
            return LedgerLookup.unknown(e)
        return LedgerLookup.found(bool(value))

    async def lookup_exists(self, agreement_id: str) -> LedgerLookup:
        agreement_id = validate_bytes32(agreement_id, "agreementId")
        call = self._contract.functions.agreementExists(_to_bytes32(agreement_id))
        return await self._read(call, "agreementExists")

    async def lookup_has_signed(self, agreement_id: str, signer: str) -> LedgerLookup:
        agreement_id = validate_bytes32(agreement_id, "agreementId")
        signer = validate_evm_address(signer, "signerAddress")
        call = self._contract.functions.hasSigned(_to_bytes32(agreement_id), signer)
        return await self._read(call, "hasSigned")

    def _resolve(
        self,
        lookup: LedgerLookup,
        policy: ReadFailurePolicy | None,
        operation: str,
    ) -> bool:
        if lookup.is_known:
            return bool(lookup.value)

        effective = ReadFailurePolicy(policy or self.read_failure_policy)
        if effective is ReadFailurePolicy.PROPAGATE:
            raise LedgerUnavailableError(
                f"Ledger read failed: {operation}",
                details={"operation": operation, "error": str(lookup.error)},
            ) from lookup.error

        logger.warning("ledger_read_assumed_false", operation=operation)
        return False

    async def exists(
        self,
        agreement_id: str,
        policy: ReadFailurePolicy | None = None,
    ) -> bool:
        lookup = await self.lookup_exists(agreement_id)
        return self._resolve(lookup, policy, "agreementExists")

    async def has_signed(
        self,
        agreement_id: str,
        signer: str,
        policy: ReadFailurePolicy | None = None,
    ) -> bool:
        lookup = await self.lookup_has_signed(agreement_id, signer)
        return self._resolve(lookup, policy, "hasSigned")

    # ----- Writes -----

    async def register(
        self,
        *,
        agreement_id: str,
        doc_hash: str,
        cid: str,
        creator: str,
        payment_ref: str,
        chain_ref: str,
        wait_for_confirmation: bool = True,
    ) -> LedgerWriteResult:
        fn = self._contract.functions.registerAgreement(
            _to_bytes32(validate_bytes32(agreement_id, "agreementId")),
            _to_bytes32(validate_bytes32(doc_hash, "docHash")),
            cid,
            validate_evm_address(creator, "creatorAddress"),
            _to_bytes32(validate_bytes32(payment_ref, "paymentRef")),
            chain_ref,
        )
        return await self._submit("register", fn, wait_for_confirmation)

    async def record_signature(
        self,
        *,
        agreement_id: str,
        signer: str,
        payment_ref: str,
        chain_ref: str,
        wait_for_confirmation: bool = True,
    ) -> LedgerWriteResult:
        fn = self._contract.functions.recordSignature(
            _to_bytes32(validate_bytes32(agreement_id, "agreementId")),
            validate_evm_address(signer, "signerAddress"),
            _to_bytes32(validate_bytes32(payment_ref, "paymentRef")),
            chain_ref,
        )
        return await self._submit("sign", fn, wait_for_confirmation)

    async def _submit(self, action: str, fn: Any, wait_for_confirmation: bool) -> LedgerWriteResult:
        sender = self.sender

        try:
            await fn.call({"from": sender})
            nonce = await self._w3.eth.get_transaction_count(sender, "pending")
            tx = await fn.build_transaction(
                {"from": sender, "nonce": nonce, "chainId": self.chain_id}
            )
        except ContractLogicError as e:
            reason = _revert_reason(e)
            LEDGER_WRITES.labels(action=action, outcome="reverted").inc()
            logger.warning("ledger_simulation_reverted", action=action, reason=reason)
            raise LedgerRevertError(reason, details={"stage": "simulation"}) from e
        except Exception as e:
            LEDGER_WRITES.labels(action=action, outcome="unavailable").inc()
            logger.error("ledger_prepare_failed", action=action, error=str(e))
            raise LedgerUnavailableError(
                "Ledger RPC failed while preparing the transaction",
                details={"action": action, "error": str(e)},
            ) from e

        signed = self._account.sign_transaction(tx)
        tx_hash = "0x" + bytes(signed.hash).hex()

        accepted = True
        try:
            await self._w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as e:
            if not _is_already_known(e):
                LEDGER_WRITES.labels(action=action, outcome="unavailable").inc()
                logger.error("ledger_broadcast_failed", action=action, tx_hash=tx_hash, error=str(e))
                raise LedgerUnavailableError(
                    "Ledger RPC rejected the transaction broadcast",
                    details={"action": action, "tx_hash": tx_hash, "error": str(e)},
                ) from e
            accepted = False
            logger.info("ledger_tx_already_known", action=action, tx_hash=tx_hash)

        logger.info("ledger_tx_broadcast", action=action, tx_hash=tx_hash, nonce=nonce)

        if not wait_for_confirmation:
            LEDGER_WRITES.labels(action=action, outcome="submitted").inc()
            return LedgerWriteResult(tx_hash=tx_hash, accepted=accepted, confirmed=False)

        start = time.perf_counter()
        try:
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                signed.hash,
                timeout=self.confirmation_timeout_seconds,
                poll_latency=self.poll_interval_seconds,
            )
        except TimeExhausted as e:
            LEDGER_WRITES.labels(action=action, outcome="timeout").inc()
            logger.error(
                "ledger_confirmation_timeout",
                action=action,
                tx_hash=tx_hash,
                timeout_seconds=self.confirmation_timeout_seconds,
            )
            raise LedgerTimeoutError(tx_hash, self.confirmation_timeout_seconds) from e
        finally:
            LEDGER_CONFIRMATION_LATENCY.labels(action=action).observe(time.perf_counter() - start)

        block_number = receipt.get("blockNumber")
        if receipt.get("status") != 1:
            LEDGER_WRITES.labels(action=action, outcome="reverted").inc()
            logger.error("ledger_tx_reverted", action=action, tx_hash=tx_hash, block=block_number)
            raise LedgerRevertError(
                "transaction reverted on-chain",
                details={"stage": "confirmation", "tx_hash": tx_hash},
            )

        LEDGER_WRITES.labels(action=action, outcome="confirmed").inc()
        logger.info("ledger_tx_confirmed", action=action, tx_hash=tx_hash, block=block_number)
        return LedgerWriteResult(
            tx_hash=tx_hash,
            accepted=accepted,
            confirmed=True,
            block_number=block_number,
        )

    # ----- History -----

    def log_window_start(self, head: int) -> int:
        """First block to scan: the contract start block, at most MAX_BLOCK_RANGE back."""
        if head > self.start_block + MAX_BLOCK_RANGE:
            return head - MAX_BLOCK_RANGE
        return self.start_block

    async def get_history(self, agreement_id: str) -> AgreementHistory | None:
        """Creation and signature events for one agreement, or None if absent."""
        agreement_id = validate_bytes32(agreement_id, "agreementId")
        key = _to_bytes32(agreement_id)
        head = await self.block_number()
        from_block = self.log_window_start(head)

        try:
            created_logs = await self._contract.events.AgreementCreated.get_logs(
                argument_filters={"agreementId": key},
                from_block=from_block,
                to_block=head,
            )
        except Exception as e:
            logger.error("ledger_get_logs_failed", event="AgreementCreated", error=str(e))
            raise LedgerUnavailableError(
                "Failed to read agreement events",
                details={"event": "AgreementCreated"},
            ) from e

        if not created_logs:
            return None

        created_log = created_logs[0]
        args = created_log["args"]
        creation_block = created_log.get("blockNumber")
        created = CreatedEvent(
            agreement_id=_hex(args["agreementId"]),
            doc_hash=_hex(args["docHash"]),
            cid=args["cid"],
            creator=args["creator"],
            payment_ref=_hex(args["paymentRef"]),
            chain_ref=args["chainRef"],
            tx_hash=_hex(created_log["transactionHash"]) if created_log.get("transactionHash") else None,
            block_number=creation_block,
        )

        try:
            signed_logs = await self._contract.events.AgreementSigned.get_logs(
                argument_filters={"agreementId": key},
                from_block=creation_block if creation_block is not None else from_block,
                to_block=head,
            )
        except Exception as e:
            logger.error("ledger_get_logs_failed", event="AgreementSigned", error=str(e))
            raise LedgerUnavailableError(
                "Failed to read agreement events",
                details={"event": "AgreementSigned"},
            ) from e

        signatures = [
            SignedEvent(
                agreement_id=_hex(log["args"]["agreementId"]),
                signer=log["args"]["signer"],
                payment_ref=_hex(log["args"]["paymentRef"]),
                chain_ref=log["args"]["chainRef"],
                tx_hash=_hex(log["transactionHash"]) if log.get("transactionHash") else None,
                block_number=log.get("blockNumber"),
            )
            for log in signed_logs
        ]
        return AgreementHistory(created=created, signatures=signatures)
