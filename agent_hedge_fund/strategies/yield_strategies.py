"""
Yield strategies.

A strategy looks at a snapshot of the managed model and proposes how much
yield to deposit this run, or declines. The agent's control loop does the
ownership/asset checks and the ledger work; strategies only size the deposit.
"""

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from agent_hedge_fund.config import AgentConfig


@dataclass(frozen=True)
class ModelSnapshot:
    model_id: int
    owner: str
    total_assets_wei: int


@dataclass(frozen=True)
class YieldAction:
    amount_wei: int
    rationale: str = ""


class YieldStrategy(ABC):
    name = "base"

    @abstractmethod
    def propose(self, snapshot: ModelSnapshot) -> Optional[YieldAction]:
        """Return the deposit to make for this snapshot, or None to skip."""


class FixedYieldStrategy(YieldStrategy):
    """Same small deposit every run. 0.0001 ETH unless told otherwise."""

    name = "fixed"

    def __init__(self, amount_wei: int = 100_000_000_000_000):
        if amount_wei <= 0:
            raise ValueError("amount_wei must be positive")
        self.amount_wei = amount_wei

    def propose(self, snapshot: ModelSnapshot) -> Optional[YieldAction]:
        return YieldAction(self.amount_wei, "fixed yield")


class ProportionalYieldStrategy(YieldStrategy):
    """
    A slice of the vault's assets, in basis points, clamped to [min_wei, max_wei].

    100 bps = 1% of total managed assets per run.
    """

    name = "proportional"

    def __init__(self, basis_points: int = 100, min_wei: int = 1,
                 max_wei: Optional[int] = None):
        if not 0 < basis_points <= 10_000:
            raise ValueError("basis_points must be in (0, 10000]")
        if max_wei is not None and max_wei < min_wei:
            raise ValueError("max_wei must be >= min_wei")
        self.basis_points = basis_points
        self.min_wei = min_wei
        self.max_wei = max_wei

    def propose(self, snapshot: ModelSnapshot) -> Optional[YieldAction]:
        amount = snapshot.total_assets_wei * self.basis_points // 10_000
        amount = max(amount, self.min_wei)
        if self.max_wei is not None:
            amount = min(amount, self.max_wei)
        if amount <= 0:
            return None
        return YieldAction(amount, f"{self.basis_points} bps of {snapshot.total_assets_wei} wei")


class RandomYieldStrategy(YieldStrategy):
    """Simulated arbitrage: a uniformly drawn amount between low_wei and high_wei."""

    name = "random"

    def __init__(self, low_wei: int = 100_000_000_000_000,
                 high_wei: int = 1_000_000_000_000_000,
                 rng: Optional[random.Random] = None):
        if not 0 < low_wei <= high_wei:
            raise ValueError("need 0 < low_wei <= high_wei")
        self.low_wei = low_wei
        self.high_wei = high_wei
        self.rng = rng or random.Random()

    def propose(self, snapshot: ModelSnapshot) -> Optional[YieldAction]:
        return YieldAction(self.rng.randint(self.low_wei, self.high_wei), "simulated arbitrage")


STRATEGIES = {
    FixedYieldStrategy.name: FixedYieldStrategy,
    ProportionalYieldStrategy.name: ProportionalYieldStrategy,
    RandomYieldStrategy.name: RandomYieldStrategy,
}


def strategy_from_config(config: AgentConfig) -> YieldStrategy:
    name = config.strategy.lower()
    if name == FixedYieldStrategy.name:
        return FixedYieldStrategy(config.yield_amount_wei)
    if name == ProportionalYieldStrategy.name:
        return ProportionalYieldStrategy(config.yield_basis_points)
    if name == RandomYieldStrategy.name:
        return RandomYieldStrategy()
    raise ValueError(f"Unknown yield strategy {config.strategy!r} "
                     f"(choose from {', '.join(sorted(STRATEGIES))})")
