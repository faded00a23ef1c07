from agent_hedge_fund.ledger.base import ConfirmationStatus, LedgerClient, TransactionHandle

__all__ = ["ConfirmationStatus", "LedgerClient", "TransactionHandle"]
