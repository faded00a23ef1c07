"""Tests for the web3-backed ledger client, against a mocked node."""
from unittest.mock import MagicMock

import pytest
import requests
from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound, Web3RPCError

from agent_hedge_fund.errors import (
    ConfigurationError,
    ConfirmationTimeoutError,
    LedgerUnavailableError,
    TransactionFailureError,
)
from agent_hedge_fund.ledger.base import ConfirmationStatus, TransactionHandle
from agent_hedge_fund.ledger.web3_ledger import Web3Ledger

from tests.conftest import AGENT_ADDRESS, FEE_COLLECTOR, OTHER_ADDRESS, REGISTRY, TEST_KEY

PROOF = "0x" + "12" * 32


@pytest.fixture
def w3():
    return MagicMock()


@pytest.fixture
def registry(w3):
    contract = MagicMock()
    w3.eth.contract.return_value = contract
    return contract


@pytest.fixture
def web3_ledger(w3, registry):
    return Web3Ledger("http://localhost:8545", registry_address=REGISTRY, private_key=TEST_KEY,
                      fee_collector=FEE_COLLECTOR, chain_id=84532, w3=w3)


def paid(w3, sender=AGENT_ADDRESS, to=FEE_COLLECTOR, value=10 ** 15, status=1, block=100):
    w3.eth.get_transaction.return_value = {"from": sender, "to": to, "value": value}
    w3.eth.get_transaction_receipt.return_value = {"status": status, "blockNumber": block}


class TestRegistryReads:

    def test_owner(self, web3_ledger, registry):
        registry.functions.ownerOf.return_value.call.return_value = AGENT_ADDRESS
        assert web3_ledger.get_owner(1) == AGENT_ADDRESS
        registry.functions.ownerOf.assert_called_with(1)

    def test_unminted_owner_is_none(self, web3_ledger, registry):
        registry.functions.ownerOf.return_value.call.side_effect = ContractLogicError("execution reverted")
        assert web3_ledger.get_owner(99) is None

    def test_owner_transport_error(self, web3_ledger, registry):
        registry.functions.ownerOf.return_value.call.side_effect = requests.exceptions.ReadTimeout("slow")
        with pytest.raises(LedgerUnavailableError) as exc:
            web3_ledger.get_owner(1)
        assert exc.value.step == "get_owner"

    def test_total_assets(self, web3_ledger, registry):
        registry.functions.totalManagedAssets.return_value.call.return_value = 42
        assert web3_ledger.get_total_assets(1) == 42

    def test_assets_connection_refused(self, web3_ledger, registry):
        registry.functions.totalManagedAssets.return_value.call.side_effect = \
            requests.exceptions.ConnectionError("refused")
        with pytest.raises(LedgerUnavailableError):
            web3_ledger.get_total_assets(1)

    def test_owner_rpc_error_is_unavailable(self, web3_ledger, registry):
        registry.functions.ownerOf.return_value.call.side_effect = Web3RPCError("header not found")
        with pytest.raises(LedgerUnavailableError) as exc:
            web3_ledger.get_owner(1)
        assert exc.value.step == "get_owner"

    def test_assets_rate_limited_is_unavailable(self, web3_ledger, registry):
        registry.functions.totalManagedAssets.return_value.call.side_effect = \
            Web3RPCError("rate limited")
        with pytest.raises(LedgerUnavailableError) as exc:
            web3_ledger.get_total_assets(1)
        assert exc.value.step == "get_total_assets"

    def test_no_registry(self, w3):
        ledger = Web3Ledger("http://localhost:8545", w3=w3)
        with pytest.raises(ConfigurationError):
            ledger.get_owner(1)


class TestDeposits:

    def test_submit(self, web3_ledger, w3, registry):
        web3_ledger.account = MagicMock(address=AGENT_ADDRESS)
        web3_ledger.account.sign_transaction.return_value.raw_transaction = b"\x02raw"
        w3.eth.get_transaction_count.return_value = 7
        w3.eth.send_raw_transaction.return_value = bytes.fromhex("ab" * 32)

        handle = web3_ledger.submit_deposit(1, 10 ** 14)

        assert handle == TransactionHandle("0x" + "ab" * 32, 1, 10 ** 14)
        registry.functions.depositYield.assert_called_with(1)
        params = registry.functions.depositYield.return_value.build_transaction.call_args[0][0]
        assert params == {"from": AGENT_ADDRESS, "value": 10 ** 14, "nonce": 7, "chainId": 84532}
        w3.eth.send_raw_transaction.assert_called_once_with(b"\x02raw")

    def test_submit_rejected(self, web3_ledger, registry):
        registry.functions.depositYield.return_value.build_transaction.side_effect = \
            ContractLogicError("execution reverted: not owner")
        with pytest.raises(TransactionFailureError):
            web3_ledger.submit_deposit(1, 10 ** 14)

    def test_submit_node_down(self, web3_ledger, w3):
        w3.eth.get_transaction_count.side_effect = requests.exceptions.ConnectionError("down")
        with pytest.raises(LedgerUnavailableError):
            web3_ledger.submit_deposit(1, 10 ** 14)

    def test_submit_needs_key(self, w3, registry):
        ledger = Web3Ledger("http://localhost:8545", registry_address=REGISTRY, w3=w3)
        with pytest.raises(ConfigurationError):
            ledger.submit_deposit(1, 1)

    def test_confirmed(self, web3_ledger, w3):
        w3.eth.wait_for_transaction_receipt.return_value = {"status": 1}
        handle = TransactionHandle(PROOF, 1, 1)
        assert web3_ledger.await_confirmation(handle, 120) is ConfirmationStatus.CONFIRMED
        w3.eth.wait_for_transaction_receipt.assert_called_once_with(PROOF, timeout=120)

    def test_reverted(self, web3_ledger, w3):
        w3.eth.wait_for_transaction_receipt.return_value = {"status": 0}
        assert web3_ledger.await_confirmation(TransactionHandle(PROOF, 1, 1), 120) \
            is ConfirmationStatus.FAILED

    def test_confirmation_timeout(self, web3_ledger, w3):
        w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("not mined")
        with pytest.raises(ConfirmationTimeoutError) as exc:
            web3_ledger.await_confirmation(TransactionHandle(PROOF, 1, 1), 5)
        assert exc.value.reason == "confirmation timeout"


class TestVerifyProof:

    def test_valid(self, web3_ledger, w3):
        paid(w3)
        assert web3_ledger.verify_proof(AGENT_ADDRESS.upper().replace("0X", "0x"), 10 ** 15, PROOF, "r")

    def test_overpaid_on_chain(self, web3_ledger, w3):
        paid(w3, value=10 ** 18)
        assert web3_ledger.verify_proof(AGENT_ADDRESS, 10 ** 15, PROOF, "r")

    def test_underpaid_on_chain(self, web3_ledger, w3):
        paid(w3, value=10 ** 15 - 1)
        assert not web3_ledger.verify_proof(AGENT_ADDRESS, 10 ** 15, PROOF, "r")

    def test_wrong_sender(self, web3_ledger, w3):
        paid(w3, sender=OTHER_ADDRESS)
        assert not web3_ledger.verify_proof(AGENT_ADDRESS, 10 ** 15, PROOF, "r")

    def test_wrong_recipient(self, web3_ledger, w3):
        paid(w3, to=OTHER_ADDRESS)
        assert not web3_ledger.verify_proof(AGENT_ADDRESS, 10 ** 15, PROOF, "r")

    def test_contract_creation_has_no_recipient(self, web3_ledger, w3):
        paid(w3, to=None)
        assert not web3_ledger.verify_proof(AGENT_ADDRESS, 10 ** 15, PROOF, "r")

    def test_failed_transaction(self, web3_ledger, w3):
        paid(w3, status=0)
        assert not web3_ledger.verify_proof(AGENT_ADDRESS, 10 ** 15, PROOF, "r")

    def test_unknown_transaction(self, web3_ledger, w3):
        w3.eth.get_transaction.side_effect = TransactionNotFound("nope")
        assert not web3_ledger.verify_proof(AGENT_ADDRESS, 10 ** 15, PROOF, "r")

    def test_malformed_hash(self, web3_ledger, w3):
        w3.eth.get_transaction.side_effect = ValueError("invalid hash")
        assert not web3_ledger.verify_proof(AGENT_ADDRESS, 10 ** 15, "tok1", "r")

    def test_node_unreachable(self, web3_ledger, w3):
        w3.eth.get_transaction.side_effect = requests.exceptions.ConnectTimeout("timeout")
        with pytest.raises(LedgerUnavailableError):
            web3_ledger.verify_proof(AGENT_ADDRESS, 10 ** 15, PROOF, "r")

    def test_needs_collector(self, w3):
        ledger = Web3Ledger("http://localhost:8545", w3=w3)
        with pytest.raises(ConfigurationError):
            ledger.verify_proof(AGENT_ADDRESS, 1, PROOF, "r")

    def test_min_confirmations(self, w3):
        ledger = Web3Ledger("http://localhost:8545", fee_collector=FEE_COLLECTOR,
                            min_proof_confirmations=3, w3=w3)
        paid(w3, block=100)
        w3.eth.block_number = 101
        assert not ledger.verify_proof(AGENT_ADDRESS, 10 ** 15, PROOF, "r")
        w3.eth.block_number = 102
        assert ledger.verify_proof(AGENT_ADDRESS, 10 ** 15, PROOF, "r")
