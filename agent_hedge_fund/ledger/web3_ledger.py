"""
Ledger client for the model registry on an EVM chain (Base Sepolia by default).

Reads go through the registry contract (ownerOf / totalManagedAssets), yield
deposits are signed locally with the agent key and sent raw, and payment
proofs are transaction hashes of plain ETH transfers to the fee collector.
"""

import logging
from typing import Callable, Optional, TypeVar

import requests
from eth_account import Account
from web3 import Web3
from web3.exceptions import (
    ContractLogicError,
    ProviderConnectionError,
    TimeExhausted,
    TooManyRequests,
    TransactionNotFound,
    Web3Exception,
    Web3RPCError,
)

from agent_hedge_fund.config import AppConfig
from agent_hedge_fund.errors import (
    ConfigurationError,
    ConfirmationTimeoutError,
    LedgerUnavailableError,
    TransactionFailureError,
)
from agent_hedge_fund.ledger.base import ConfirmationStatus, LedgerClient, TransactionHandle

logger = logging.getLogger(__name__)

T = TypeVar("T")

REGISTRY_ABI = [
    {
        "name": "ownerOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "outputs": [{"name": "", "type": "address"}],
    },
    {
        "name": "totalManagedAssets",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "modelId", "type": "uint256"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "depositYield",
        "type": "function",
        "stateMutability": "payable",
        "inputs": [{"name": "modelId", "type": "uint256"}],
        "outputs": [],
    },
]

# Transport-level failures. Anything else coming back from the node is an answer.
UNAVAILABLE_ERRORS = (requests.exceptions.RequestException, TimeoutError, ConnectionError)

# Node-side errors on a registry read the node could not serve.
READ_ERRORS = (Web3RPCError, ProviderConnectionError, TooManyRequests)


class Web3Ledger(LedgerClient):
    """
    LedgerClient backed by a JSON-RPC node.

    Only the pieces a caller needs have to be configured: the payment gate
    needs an RPC URL and a fee collector, the yield agent needs an RPC URL,
    a registry address and a private key.
    """

    def __init__(self, rpc_url: str, *, registry_address: Optional[str] = None,
                 private_key: Optional[str] = None, fee_collector: Optional[str] = None,
                 chain_id: Optional[int] = None, request_timeout: float = 15,
                 min_proof_confirmations: int = 1, w3: Optional[Web3] = None):
        self.w3 = w3 or Web3(Web3.HTTPProvider(
            rpc_url, request_kwargs={"timeout": request_timeout},
        ))
        self.chain_id = chain_id
        self.fee_collector = fee_collector
        self.min_proof_confirmations = max(min_proof_confirmations, 1)
        self.account = Account.from_key(private_key) if private_key else None
        self.registry = None
        if registry_address:
            self.registry = self.w3.eth.contract(
                address=Web3.to_checksum_address(registry_address), abi=REGISTRY_ABI,
            )

    @classmethod
    def from_config(cls, config: AppConfig) -> "Web3Ledger":
        return cls(
            config.ledger.rpc_url,
            registry_address=config.ledger.registry_address or None,
            private_key=config.wallet.private_key or None,
            fee_collector=config.gateway.fee_collector or None,
            chain_id=config.ledger.chain_id,
            request_timeout=config.ledger.request_timeout,
            min_proof_confirmations=config.gateway.min_proof_confirmations,
        )

    @staticmethod
    def _call(step: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except UNAVAILABLE_ERRORS as e:
            raise LedgerUnavailableError(step, str(e)) from e

    @classmethod
    def _read(cls, step: str, fn: Callable[[], T]) -> T:
        try:
            return cls._call(step, fn)
        except READ_ERRORS as e:
            raise LedgerUnavailableError(step, str(e)) from e

    def _require_registry(self):
        if self.registry is None:
            raise ConfigurationError("No registry address configured")
        return self.registry

    # --- Registry reads ---

    def get_owner(self, model_id: int) -> Optional[str]:
        registry = self._require_registry()
        try:
            return self._read("get_owner", lambda: registry.functions.ownerOf(model_id).call())
        except ContractLogicError:
            # ownerOf reverts for a token that has not been minted yet
            return None

    def get_total_assets(self, model_id: int) -> int:
        registry = self._require_registry()
        return int(self._read(
            "get_total_assets", lambda: registry.functions.totalManagedAssets(model_id).call(),
        ))

    # --- Yield deposits ---

    def submit_deposit(self, model_id: int, amount_wei: int) -> TransactionHandle:
        registry = self._require_registry()
        if self.account is None:
            raise ConfigurationError("No private key configured")
        sender = self.account.address

        def send():
            params = {
                "from": sender,
                "value": amount_wei,
                "nonce": self.w3.eth.get_transaction_count(sender, "pending"),
                "chainId": self.chain_id or self.w3.eth.chain_id,
            }
            tx = registry.functions.depositYield(model_id).build_transaction(params)
            signed = self.account.sign_transaction(tx)
            return self.w3.eth.send_raw_transaction(signed.raw_transaction)

        try:
            tx_hash = self._call("submit_deposit", send)
        except (ContractLogicError, Web3Exception, ValueError) as e:
            raise TransactionFailureError(f"Deposit rejected: {e}") from e

        handle = TransactionHandle(tx_hash=Web3.to_hex(tx_hash), model_id=model_id,
                                   amount_wei=amount_wei)
        logger.info("Submitted yield deposit %s for model #%s", handle.tx_hash, model_id)
        return handle

    def await_confirmation(self, handle: TransactionHandle,
                           timeout: float) -> ConfirmationStatus:
        try:
            receipt = self._call("await_confirmation", lambda: self.w3.eth.wait_for_transaction_receipt(
                handle.tx_hash, timeout=timeout,
            ))
        except TimeExhausted as e:
            raise ConfirmationTimeoutError(
                f"{handle.tx_hash} not mined after {timeout:.0f}s"
            ) from e
        if receipt["status"] == 1:
            return ConfirmationStatus.CONFIRMED
        return ConfirmationStatus.FAILED

    # --- Payment proofs ---

    def verify_proof(self, payer: str, amount_wei: int, proof: str,
                     route_key: str) -> bool:
        if not self.fee_collector:
            raise ConfigurationError("No fee collector address configured")

        try:
            tx = self._call("verify_proof", lambda: self.w3.eth.get_transaction(proof))
            receipt = self._call("verify_proof", lambda: self.w3.eth.get_transaction_receipt(proof))
        except TransactionNotFound:
            logger.info("Proof %s for %s: transaction not found or not mined", proof, route_key)
            return False
        except (Web3Exception, ValueError) as e:
            logger.info("Proof %s for %s rejected by node: %s", proof, route_key, e)
            return False

        if receipt["status"] != 1:
            logger.info("Proof %s: transaction reverted", proof)
            return False
        if str(tx["from"]).lower() != payer.lower():
            logger.info("Proof %s: sender %s is not payer %s", proof, tx["from"], payer)
            return False
        if str(tx.get("to") or "").lower() != self.fee_collector.lower():
            logger.info("Proof %s: paid to %s, not the fee collector", proof, tx.get("to"))
            return False
        if int(tx["value"]) < amount_wei:
            logger.info("Proof %s: value %s below claimed %s", proof, tx["value"], amount_wei)
            return False

        if self.min_proof_confirmations > 1:
            head = self._call("verify_proof", lambda: self.w3.eth.block_number)
            confirmations = head - receipt["blockNumber"] + 1
            if confirmations < self.min_proof_confirmations:
                logger.info("Proof %s: %d/%d confirmations", proof, confirmations,
                            self.min_proof_confirmations)
                return False

        return True
