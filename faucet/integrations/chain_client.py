"""
Chain access for the faucet.

Everything the admission logic needs from the network goes through
ChainGateway. Failures leave this module only as ChainGatewayError
subclasses carrying a short message, so callers branch on `kind` instead of
poking at web3 / transport exception shapes.
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

import httpx
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted

from faucet.domain.outcomes import ErrorKind

logger = logging.getLogger(__name__)

BlockIdentifier = Union[int, str]

FAUCET_ABI: List[Dict[str, Any]] = [
    {
        "name": "claim",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "name": "nextClaimTime",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

_MAX_DETAIL = 200


def short_message(exc: BaseException) -> str:
    text = str(exc).strip().splitlines()[0] if str(exc).strip() else ""
    if not text:
        return type(exc).__name__
    return text[:_MAX_DETAIL]


class ChainGatewayError(Exception):
    kind: ErrorKind = ErrorKind.GATEWAY_ERROR

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class GatewayError(ChainGatewayError):
    """History / cooldown read failed."""
    kind = ErrorKind.GATEWAY_ERROR


class SubmissionError(ChainGatewayError):
    """The node refused the claim transaction; nothing was broadcast."""
    kind = ErrorKind.SUBMISSION_ERROR


class ConfirmationError(ChainGatewayError):
    """The transaction reverted or its receipt did not arrive in time."""
    kind = ErrorKind.CONFIRMATION_ERROR


@dataclass(frozen=True)
class HistoryEntry:
    tx_hash: str
    block_number: int
    timestamp: int


@dataclass(frozen=True)
class BlockInfo:
    number: int
    timestamp: int


@dataclass(frozen=True)
class PendingClaim:
    tx_hash: str


@dataclass(frozen=True)
class ConfirmedClaim:
    tx_hash: str
    block_number: Optional[int] = None


class ChainGateway(ABC):
    @abstractmethod
    async def get_history(self, address: str) -> List[HistoryEntry]:
        """Transactions touching `address`, oldest first; empty if none or unknown."""

    @abstractmethod
    async def get_transaction_count(self, address: str, block_identifier: BlockIdentifier = "latest") -> int:
        ...

    @abstractmethod
    async def get_block(self, block_identifier: BlockIdentifier) -> BlockInfo:
        ...

    @abstractmethod
    async def read_cooldown(self, address: str) -> int:
        """Contract's next-eligible unix time for `address` (0 = never claimed)."""

    @abstractmethod
    async def submit_claim(self, address: str) -> PendingClaim:
        ...

    @abstractmethod
    async def await_confirmation(self, pending: PendingClaim) -> ConfirmedClaim:
        ...

    async def close(self) -> None:
        return None


class Web3ChainGateway(ChainGateway):
    def __init__(
        self,
        w3: AsyncWeb3,
        contract_address: Optional[str],
        private_key: Optional[str],
        claim_amount_wei: int,
        chain_id: Optional[int] = None,
        receipt_timeout: float = 120.0,
        explorer_url: Optional[str] = None,
        explorer_api_key: Optional[str] = None,
        history_page_size: int = 100,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.w3 = w3
        self.claim_amount_wei = claim_amount_wei
        self.chain_id = chain_id
        self.receipt_timeout = receipt_timeout
        self.explorer_url = explorer_url
        self.explorer_api_key = explorer_api_key
        self.history_page_size = history_page_size

        self.contract = None
        if contract_address:
            self.contract = w3.eth.contract(
                address=AsyncWeb3.to_checksum_address(contract_address),
                abi=FAUCET_ABI,
            )
        self._account = w3.eth.account.from_key(private_key) if private_key else None
        # one custodial wallet: build/sign/send must not interleave or nonces collide
        self._nonce_lock = asyncio.Lock()
        self._http: Optional[httpx.AsyncClient] = http_client

    @classmethod
    def from_settings(cls, settings) -> "Web3ChainGateway":
        w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(settings.RPC_URL))
        if not settings.PRIVATE_KEY or not settings.CONTRACT_ADDRESS:
            logger.warning("PRIVATE_KEY / CONTRACT_ADDRESS not set; claims will fail at submission")
        return cls(
            w3=w3,
            contract_address=settings.CONTRACT_ADDRESS,
            private_key=settings.PRIVATE_KEY,
            claim_amount_wei=int(AsyncWeb3.to_wei(Decimal(settings.CLAIM_AMOUNT_ETHER), "ether")),
            chain_id=settings.CHAIN_ID,
            receipt_timeout=settings.CONFIRMATION_TIMEOUT_SEC,
            explorer_url=settings.EXPLORER_API_URL,
            explorer_api_key=settings.EXPLORER_API_KEY,
        )

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=10.0)
        return self._http

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    # ---- reads ----

    async def get_history(self, address: str) -> List[HistoryEntry]:
        # plain JSON-RPC has no per-address index; only an explorer can answer
        if not self.explorer_url:
            return []

        params = {
            "module": "account",
            "action": "txlist",
            "address": address,
            "startblock": 0,
            "endblock": 99999999,
            "page": 1,
            "offset": self.history_page_size,
            "sort": "asc",
        }
        if self.explorer_api_key:
            params["apikey"] = self.explorer_api_key

        try:
            resp = await self._get_http().get(self.explorer_url, params=params)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise GatewayError(f"history lookup failed: {short_message(e)}") from e

        result = data.get("result")
        if str(data.get("status")) != "1":
            # explorers answer an empty history with status 0 and an empty list
            if isinstance(result, list) and not result:
                return []
            raise GatewayError(f"history lookup failed: {data.get('message') or result}")

        try:
            return [
                HistoryEntry(
                    tx_hash=str(row["hash"]),
                    block_number=int(row["blockNumber"]),
                    timestamp=int(row["timeStamp"]),
                )
                for row in result
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise GatewayError(f"history lookup returned malformed rows: {short_message(e)}") from e

    async def get_transaction_count(self, address: str, block_identifier: BlockIdentifier = "latest") -> int:
        try:
            return int(await self.w3.eth.get_transaction_count(address, block_identifier))
        except Exception as e:
            raise GatewayError(f"transaction count lookup failed: {short_message(e)}") from e

    async def get_block(self, block_identifier: BlockIdentifier) -> BlockInfo:
        try:
            block = await self.w3.eth.get_block(block_identifier)
        except Exception as e:
            raise GatewayError(f"block lookup failed: {short_message(e)}") from e
        return BlockInfo(number=int(block["number"]), timestamp=int(block["timestamp"]))

    async def read_cooldown(self, address: str) -> int:
        if self.contract is None:
            raise GatewayError("faucet contract not configured")
        try:
            return int(await self.contract.functions.nextClaimTime(address).call())
        except Exception as e:
            raise GatewayError(f"cooldown lookup failed: {short_message(e)}") from e

    # ---- writes ----

    async def submit_claim(self, address: str) -> PendingClaim:
        if self.contract is None or self._account is None:
            raise SubmissionError("faucet wallet not configured")

        async with self._nonce_lock:
            try:
                nonce = await self.w3.eth.get_transaction_count(self._account.address, "pending")
                tx_params: Dict[str, Any] = {"from": self._account.address, "nonce": nonce}
                if self.chain_id is not None:
                    tx_params["chainId"] = self.chain_id

                tx = await self.contract.functions.claim(address, self.claim_amount_wei).build_transaction(tx_params)
                signed = self._account.sign_transaction(tx)
                raw = getattr(signed, "raw_transaction", None) or getattr(signed, "rawTransaction", None)
                if raw is None:
                    raise SubmissionError("signed transaction missing raw payload")
                tx_hash = await self.w3.eth.send_raw_transaction(raw)
            except ChainGatewayError:
                raise
            except ContractLogicError as e:
                raise SubmissionError(f"contract rejected claim: {short_message(e)}") from e
            except Exception as e:
                raise SubmissionError(short_message(e)) from e

        hex_hash = self.w3.to_hex(tx_hash)
        logger.info("claim submitted for %s: %s (nonce=%s)", address, hex_hash, nonce)
        return PendingClaim(tx_hash=hex_hash)

    async def await_confirmation(self, pending: PendingClaim) -> ConfirmedClaim:
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                pending.tx_hash, timeout=self.receipt_timeout
            )
        except TimeExhausted as e:
            raise ConfirmationError(f"transaction {pending.tx_hash} not confirmed in time") from e
        except Exception as e:
            raise ConfirmationError(short_message(e)) from e

        if int(receipt.get("status", 0)) != 1:
            raise ConfirmationError(f"transaction {pending.tx_hash} reverted")
        return ConfirmedClaim(tx_hash=pending.tx_hash, block_number=receipt.get("blockNumber"))
