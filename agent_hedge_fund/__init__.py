"""
Agent Hedge Fund - pay-per-call access and an autonomous yield agent.

Two halves that share a ledger:
- the x402 payment gate that guards model details, deposits and competition
  entries behind on-chain micropayments
- the yield agent that tends a managed model vault on a fixed schedule
"""

__version__ = "0.1.0"
