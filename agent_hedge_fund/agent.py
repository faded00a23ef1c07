"""
The Yield Agent - tends a managed model vault on a fixed schedule.

Each run:
1. Check configuration (wallet key, registry address)
2. Confirm the agent wallet still owns the model
3. Read total managed assets
4. Ask the strategy for a yield amount and deposit it
5. Wait (bounded) for confirmation and re-read the assets

Runs are independent. Whatever goes wrong ends the run, never the process;
the next tick is the retry.
"""

import logging
import signal
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import schedule
from rich.console import Console
from rich.panel import Panel

from agent_hedge_fund.config import AppConfig
from agent_hedge_fund.errors import (
    ConfigurationError,
    HedgeFundError,
    NoAssetsError,
    OwnershipMismatchError,
    TransactionFailureError,
)
from agent_hedge_fund.ledger.base import ConfirmationStatus, LedgerClient
from agent_hedge_fund.strategies import ModelSnapshot, YieldStrategy, strategy_from_config

console = Console()
logger = logging.getLogger(__name__)

SHUTDOWN_GRACE_SECONDS = 30


class RunState(Enum):
    START = "start"
    CONFIG_CHECK = "config_check"
    OWNERSHIP_CHECK = "ownership_check"
    ASSET_CHECK = "asset_check"
    EXECUTE = "execute"
    CONFIRM = "confirm"
    DONE = "done"
    SKIP = "skip"
    FAILED = "failed"


TERMINAL_STATES = (RunState.DONE, RunState.SKIP, RunState.FAILED)


@dataclass
class RunResult:
    model_id: int
    state: RunState = RunState.START
    reason: Optional[str] = None
    failed_step: Optional[RunState] = None
    assets_before: Optional[int] = None
    assets_after: Optional[int] = None
    yield_wei: Optional[int] = None
    tx_hash: Optional[str] = None
    started_at: float = field(default_factory=time.time)

    @property
    def duration(self) -> float:
        return time.time() - self.started_at


class YieldAgent:
    """
    Fiduciary agent for one managed model.

    Never deposits without a fresh ownership check, never acts on zero
    assets, and never lets two runs overlap.
    """

    def __init__(self, config: AppConfig, ledger: Optional[LedgerClient],
                 strategy: Optional[YieldStrategy] = None):
        self.config = config
        self.ledger = ledger
        self.strategy = strategy or strategy_from_config(config.agent)
        self.model_id = config.agent.model_id
        self.interval = config.agent.interval_seconds
        self.poll_seconds = 1.0

        self._run_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._worker: Optional[threading.Thread] = None
        self._scheduler: Optional[schedule.Scheduler] = None

    # --- One run ---

    def run_once(self) -> RunResult:
        """Walk the state machine once and return the terminal result."""
        result = RunResult(model_id=self.model_id)
        try:
            result.state = RunState.CONFIG_CHECK
            agent_address = self._check_config()

            result.state = RunState.OWNERSHIP_CHECK
            owner = self.ledger.get_owner(self.model_id)
            if owner is None:
                raise OwnershipMismatchError(f"Model #{self.model_id} has no owner yet")
            if owner.lower() != agent_address.lower():
                raise OwnershipMismatchError(
                    f"Agent wallet {agent_address} is not the owner of model #{self.model_id} ({owner})"
                )

            result.state = RunState.ASSET_CHECK
            assets = self.ledger.get_total_assets(self.model_id)
            result.assets_before = assets
            if assets <= 0:
                raise NoAssetsError(f"Model #{self.model_id} has no assets. Waiting for investors.")

            result.state = RunState.EXECUTE
            action = self.strategy.propose(ModelSnapshot(self.model_id, owner, assets))
            if action is None:
                return self._finish(result, RunState.SKIP, "strategy declined")
            if action.amount_wei <= 0:
                raise TransactionFailureError(
                    f"Strategy {self.strategy.name} proposed {action.amount_wei} wei",
                    reason="invalid yield amount",
                )
            result.yield_wei = action.amount_wei
            logger.info("Model #%s: depositing %d wei yield (%s)",
                        self.model_id, action.amount_wei, action.rationale)
            handle = self.ledger.submit_deposit(self.model_id, action.amount_wei)
            result.tx_hash = handle.tx_hash

            result.state = RunState.CONFIRM
            status = self.ledger.await_confirmation(handle, self.config.agent.confirmation_timeout)
            if status is not ConfirmationStatus.CONFIRMED:
                raise TransactionFailureError(f"{handle.tx_hash} reverted", reason="transaction reverted")

        except (OwnershipMismatchError, NoAssetsError) as e:
            logger.info("Model #%s: skipping run: %s", self.model_id, e)
            return self._finish(result, RunState.SKIP, e.reason)
        except HedgeFundError as e:
            return self._fail(result, e.reason, e)
        except Exception as e:
            logger.exception("Model #%s: unexpected error in %s", self.model_id, result.state.value)
            return self._fail(result, "unexpected error", e)

        self._record_post_state(result)
        return self._finish(result, RunState.DONE)

    def _check_config(self) -> str:
        missing = self.config.missing_for_agent()
        if missing:
            raise ConfigurationError(f"Missing {', '.join(missing)}")
        if self.ledger is None:
            raise ConfigurationError("No ledger client")
        address = self.config.agent_address
        if not address:
            raise ConfigurationError("Cannot determine agent wallet address")
        return address

    def _record_post_state(self, result: RunResult):
        try:
            result.assets_after = self.ledger.get_total_assets(self.model_id)
        except Exception as e:
            logger.warning("Model #%s: deposit confirmed but assets re-read failed: %s",
                           self.model_id, e)
            return
        expected = (result.assets_before or 0) + (result.yield_wei or 0)
        if result.assets_after < expected:
            logger.warning("Model #%s: assets %d below expected %d after deposit",
                           self.model_id, result.assets_after, expected)

    def _fail(self, result: RunResult, reason: str, error: Exception) -> RunResult:
        result.failed_step = result.state
        if isinstance(error, ConfigurationError):
            logger.error("Model #%s: run aborted, configuration incomplete: %s", self.model_id, error)
        else:
            logger.error("Model #%s: run failed at %s: %s", self.model_id,
                         result.failed_step.value, error)
        return self._finish(result, RunState.FAILED, reason)

    def _finish(self, result: RunResult, state: RunState,
                reason: Optional[str] = None) -> RunResult:
        result.state = state
        result.reason = reason
        if state is RunState.DONE:
            logger.info("Model #%s: yield of %d wei confirmed in %s. Assets %s -> %s (%.1fs)",
                        self.model_id, result.yield_wei, result.tx_hash,
                        result.assets_before, result.assets_after, result.duration)
        else:
            logger.info("Model #%s: run ended %s (%s)", self.model_id, state.value, reason)
        return result

    # --- Scheduling ---

    @property
    def running(self) -> bool:
        return self._scheduler is not None and not self._stop_event.is_set()

    @property
    def run_in_flight(self) -> bool:
        return self._run_lock.locked()

    def start(self, install_signals: bool = True):
        """Run every `interval` seconds until stop() or a shutdown signal."""
        console.print(Panel(
            f"Model: [cyan]#{self.model_id}[/cyan]\n"
            f"Wallet: [cyan]{self.config.agent_address or 'Not set'}[/cyan]\n"
            f"Registry: {self.config.ledger.registry_address or 'Not set'}\n"
            f"Strategy: [yellow]{self.strategy.name}[/yellow]\n"
            f"Interval: {self.interval}s | Confirmation timeout: "
            f"{self.config.agent.confirmation_timeout:.0f}s",
            title="[bold]Yield Agent[/bold]",
        ))

        if install_signals:
            signal.signal(signal.SIGINT, self._shutdown_handler)
            signal.signal(signal.SIGTERM, self._shutdown_handler)

        self._scheduler = schedule.Scheduler()
        self._scheduler.every(self.interval).seconds.do(self._dispatch)

        self._dispatch()
        while not self._stop_event.is_set():
            self._scheduler.run_pending()
            self._stop_event.wait(self.poll_seconds)

        self._shutdown()

    def stop(self):
        self._stop_event.set()

    def _dispatch(self) -> bool:
        """Start a run on a worker thread unless one is already in flight."""
        if self._stop_event.is_set():
            return False
        if not self._run_lock.acquire(blocking=False):
            logger.warning("Model #%s: previous run still in flight, skipping this tick",
                           self.model_id)
            return False
        self._worker = threading.Thread(
            target=self._guarded_run, name=f"yield-agent-{self.model_id}", daemon=True,
        )
        self._worker.start()
        return True

    def _guarded_run(self):
        try:
            self.run_once()
        finally:
            self._run_lock.release()

    def _shutdown_handler(self, signum, frame):
        console.print("\n[yellow]Shutdown signal received...[/yellow]")
        self.stop()

    def _shutdown(self):
        if self._scheduler is not None:
            self._scheduler.clear()
        worker = self._worker
        if worker is not None and worker.is_alive():
            grace = self.config.agent.confirmation_timeout + SHUTDOWN_GRACE_SECONDS
            console.print(f"[yellow]Waiting up to {grace:.0f}s for the in-flight run...[/yellow]")
            worker.join(timeout=grace)
            if worker.is_alive():
                logger.error("Model #%s: in-flight run did not finish before shutdown", self.model_id)
        self._scheduler = None
        console.print("[green]Yield agent stopped.[/green]")
