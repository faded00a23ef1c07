"""
The x402 payment gate.

Decides whether a single protected request may proceed. Every failure path
ends in a denial: unknown routes, malformed proofs, underpayment, replays and
an unreachable ledger all return authorized=False.
"""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from agent_hedge_fund.errors import (
    ConfigurationError,
    HedgeFundError,
    InsufficientPaymentError,
    LedgerUnavailableError,
    MalformedProofError,
    ProofReplayError,
    ProofVerificationError,
    UnknownRouteError,
)
from agent_hedge_fund.ledger.base import LedgerClient
from agent_hedge_fund.payments.fees import FeeSchedule, RouteDescriptor
from agent_hedge_fund.payments.proof import PaymentProof, coerce_wei, extract_proof
from agent_hedge_fund.payments.replay import ReplayGuard

logger = logging.getLogger(__name__)

VERIFICATION_UNAVAILABLE = "verification unavailable"


@dataclass(frozen=True)
class AuthorizationResult:
    authorized: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "AuthorizationResult":
        return cls(True)

    @classmethod
    def deny(cls, reason: str) -> "AuthorizationResult":
        return cls(False, reason)


class PaymentGate:
    """
    Route fee lookup + proof validation + replay protection.

    authorize() and verify() share the same checks; only authorize() consumes
    the proof.
    """

    def __init__(self, fees: FeeSchedule, ledger: LedgerClient,
                 replay_guard: Optional[ReplayGuard] = None):
        self.fees = fees
        self.ledger = ledger
        self.replay_guard = replay_guard or ReplayGuard()

    def route(self, route_key: str) -> RouteDescriptor:
        descriptor = self.fees.lookup(route_key)
        if descriptor is None:
            raise UnknownRouteError(f"No fee configured for {route_key!r}")
        return descriptor

    def _check(self, proof: PaymentProof, descriptor: RouteDescriptor):
        if proof.amount < descriptor.amount_wei:
            raise InsufficientPaymentError(
                f"Paid {proof.amount} wei, {descriptor.key} requires {descriptor.amount_wei}"
            )

        if self.replay_guard.is_consumed(descriptor.key, proof.token):
            raise ProofReplayError(f"Proof {proof.token} already used for {descriptor.key}")

        try:
            valid = self.ledger.verify_proof(proof.payer, proof.amount, proof.token, descriptor.key)
        except ConfigurationError as e:
            raise LedgerUnavailableError("verify_proof", str(e)) from e
        if not valid:
            raise ProofVerificationError(f"Ledger does not back proof {proof.token}")

    def _deny(self, route_key: str, error: HedgeFundError) -> AuthorizationResult:
        reason = VERIFICATION_UNAVAILABLE if isinstance(error, LedgerUnavailableError) else error.reason
        if isinstance(error, LedgerUnavailableError):
            logger.warning("[Gate] %s denied: %s (%s)", route_key, reason, error)
        else:
            logger.info("[Gate] %s denied: %s (%s)", route_key, reason, error)
        return AuthorizationResult.deny(reason)

    def authorize(self, request: Optional[Mapping], route_key: str,
                  headers: Optional[Mapping] = None) -> AuthorizationResult:
        """Decide whether the request may run the action behind route_key.

        request is the decoded JSON body; headers are consulted for
        x-payment-* values the body does not carry.
        """
        try:
            descriptor = self.route(route_key)
            proof = extract_proof(request, descriptor.key, headers)
            self._check(proof, descriptor)
            if not self.replay_guard.claim(descriptor.key, proof.token):
                raise ProofReplayError(f"Proof {proof.token} redeemed concurrently")
        except HedgeFundError as e:
            return self._deny(route_key, e)
        except Exception:
            logger.exception("[Gate] %s: unexpected error during verification", route_key)
            return AuthorizationResult.deny(VERIFICATION_UNAVAILABLE)

        logger.info("[Gate] %s authorized for %s (%d wei)", route_key, proof.payer, proof.amount)
        return AuthorizationResult.allow()

    def verify(self, address: str, amount, proof: str, route_key: str) -> bool:
        """Pre-check a payment without consuming it."""
        try:
            descriptor = self.route(route_key)
            try:
                wei = coerce_wei(amount)
            except ValueError as e:
                raise MalformedProofError(str(e)) from e
            payment = extract_proof(
                {"paymentAddress": address, "paymentAmount": wei, "paymentProof": proof},
                descriptor.key,
            )
            self._check(payment, descriptor)
        except HedgeFundError as e:
            self._deny(route_key, e)
            return False
        return True
