"""
The narrow interface both halves of the system use to talk to the ledger.

Every call may fail. Implementations raise LedgerUnavailableError for
transport trouble (unreachable node, RPC timeout) and report rejections as
plain answers: None / False / ConfirmationStatus.FAILED.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ConfirmationStatus(Enum):
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class TransactionHandle:
    tx_hash: str
    model_id: int
    amount_wei: int


class LedgerClient(ABC):

    @abstractmethod
    def get_owner(self, model_id: int) -> Optional[str]:
        """Current owner of the model NFT, or None if it does not exist."""

    @abstractmethod
    def get_total_assets(self, model_id: int) -> int:
        """Total managed assets of the model vault, in wei."""

    @abstractmethod
    def submit_deposit(self, model_id: int, amount_wei: int) -> TransactionHandle:
        """Send a yield deposit of amount_wei into the model vault."""

    @abstractmethod
    def await_confirmation(self, handle: TransactionHandle,
                           timeout: float) -> ConfirmationStatus:
        """Block until the transaction is mined.

        Raises ConfirmationTimeoutError if it is not mined within timeout seconds.
        """

    @abstractmethod
    def verify_proof(self, payer: str, amount_wei: int, proof: str,
                     route_key: str) -> bool:
        """True if proof is a confirmed payment of at least amount_wei from payer
        to the fee collector."""
