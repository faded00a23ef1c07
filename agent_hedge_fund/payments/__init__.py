from agent_hedge_fund.payments.fees import FeeSchedule, RouteDescriptor, default_fee_schedule
from agent_hedge_fund.payments.gate import AuthorizationResult, PaymentGate
from agent_hedge_fund.payments.proof import PaymentProof, extract_proof
from agent_hedge_fund.payments.replay import ReplayGuard

__all__ = [
    "AuthorizationResult",
    "FeeSchedule",
    "PaymentGate",
    "PaymentProof",
    "ReplayGuard",
    "RouteDescriptor",
    "default_fee_schedule",
    "extract_proof",
]
