"""
Error taxonomy.

Gate errors never leave the gate: they are turned into an AuthorizationResult
with the error's reason. Agent errors end the current run only.
"""

from typing import Optional


class HedgeFundError(Exception):
    """Base class for every error raised by this package."""

    reason = "internal error"

    def __init__(self, message: Optional[str] = None, *, reason: Optional[str] = None):
        if reason is not None:
            self.reason = reason
        super().__init__(message or self.reason)


class ConfigurationError(HedgeFundError):
    """Required credentials or addresses are missing."""

    reason = "configuration incomplete"


# --- Payment gate ---

class UnknownRouteError(HedgeFundError):
    reason = "unknown route"


class MalformedProofError(HedgeFundError):
    reason = "missing payment fields"


class InsufficientPaymentError(HedgeFundError):
    reason = "insufficient payment"


class ProofVerificationError(HedgeFundError):
    """The ledger does not back the proof."""

    reason = "invalid payment proof"


class ProofReplayError(ProofVerificationError):
    reason = "payment proof already used"


# --- Ledger ---

class LedgerUnavailableError(HedgeFundError):
    """The ledger could not be reached or did not answer in time.

    Never raised for a rejection: a reverted call or an unknown transaction is a
    valid answer and is reported as such by the ledger client.
    """

    reason = "ledger unavailable"

    def __init__(self, step: str, message: Optional[str] = None):
        self.step = step
        super().__init__(f"{step}: {message or self.reason}")


# --- Yield agent ---

class OwnershipMismatchError(HedgeFundError):
    reason = "not owner"


class NoAssetsError(HedgeFundError):
    reason = "no assets"


class TransactionFailureError(HedgeFundError):
    """Deposit submission failed, or the transaction did not confirm."""

    reason = "transaction failed"


class ConfirmationTimeoutError(TransactionFailureError):
    reason = "confirmation timeout"
