"""Shared fixtures: an in-memory ledger and a configured app."""
import threading

import pytest

from agent_hedge_fund.config import AgentConfig, AppConfig, GatewayConfig, LedgerConfig, WalletConfig
from agent_hedge_fund.errors import ConfirmationTimeoutError
from agent_hedge_fund.ledger.base import ConfirmationStatus, LedgerClient, TransactionHandle
from agent_hedge_fund.payments import PaymentGate, ReplayGuard, default_fee_schedule

AGENT_ADDRESS = "0x" + "a" * 40
OTHER_ADDRESS = "0x" + "b" * 40
FEE_COLLECTOR = "0x" + "c" * 40
REGISTRY = "0x" + "d" * 40
TEST_KEY = "0x" + "ab" * 32


class FakeLedger(LedgerClient):
    """Ledger double. Deposits add to the model's assets when confirmed."""

    def __init__(self, owner=AGENT_ADDRESS, assets=10 ** 18):
        self.owner = owner
        self.assets = assets
        self.valid_proofs = set()
        self.confirmation = ConfirmationStatus.CONFIRMED
        self.errors = {}  # method name -> exception to raise
        self.calls = []
        self.block_owner_lookup = None  # threading.Event to hold get_owner
        self._pending = {}

    def _enter(self, name, *args):
        self.calls.append((name, args))
        if name in self.errors:
            raise self.errors[name]

    def count(self, name):
        return sum(1 for call, _ in self.calls if call == name)

    def get_owner(self, model_id):
        if self.block_owner_lookup is not None:
            self.block_owner_lookup.wait(5)
        self._enter("get_owner", model_id)
        return self.owner

    def get_total_assets(self, model_id):
        self._enter("get_total_assets", model_id)
        return self.assets

    def submit_deposit(self, model_id, amount_wei):
        self._enter("submit_deposit", model_id, amount_wei)
        handle = TransactionHandle(f"0x{len(self.calls):064x}", model_id, amount_wei)
        self._pending[handle.tx_hash] = amount_wei
        return handle

    def await_confirmation(self, handle, timeout):
        self._enter("await_confirmation", handle, timeout)
        if self.confirmation is None:
            raise ConfirmationTimeoutError(f"{handle.tx_hash} not mined")
        if self.confirmation is ConfirmationStatus.CONFIRMED:
            self.assets += self._pending.pop(handle.tx_hash)
        return self.confirmation

    def verify_proof(self, payer, amount_wei, proof, route_key):
        self._enter("verify_proof", payer, amount_wei, proof, route_key)
        return (payer.lower(), proof) in self.valid_proofs


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def app_config():
    return AppConfig(
        wallet=WalletConfig(private_key=TEST_KEY, wallet_address=AGENT_ADDRESS),
        ledger=LedgerConfig(rpc_url="http://localhost:8545", chain_id=84532,
                            registry_address=REGISTRY, request_timeout=5),
        agent=AgentConfig(model_id=1, interval_seconds=60, confirmation_timeout=120,
                          strategy="fixed", yield_amount_wei=10 ** 14, yield_basis_points=100),
        gateway=GatewayConfig(fee_collector=FEE_COLLECTOR, min_proof_confirmations=1,
                              replay_ttl_seconds=3600, replay_max_entries=1000,
                              host="127.0.0.1", port=8000),
        log_level="INFO",
    )


@pytest.fixture
def gate(ledger):
    return PaymentGate(default_fee_schedule(), ledger, ReplayGuard(ttl_seconds=3600))


@pytest.fixture
def client(app_config, gate):
    pytest.importorskip("httpx")
    from fastapi.testclient import TestClient
    from agent_hedge_fund.server import create_app

    with TestClient(create_app(app_config, gate)) as test_client:
        yield test_client


@pytest.fixture
def release_event():
    event = threading.Event()
    yield event
    event.set()
