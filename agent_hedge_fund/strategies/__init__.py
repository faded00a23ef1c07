from agent_hedge_fund.strategies.yield_strategies import (
    FixedYieldStrategy,
    ModelSnapshot,
    ProportionalYieldStrategy,
    RandomYieldStrategy,
    YieldAction,
    YieldStrategy,
    strategy_from_config,
)

__all__ = [
    "FixedYieldStrategy",
    "ModelSnapshot",
    "ProportionalYieldStrategy",
    "RandomYieldStrategy",
    "YieldAction",
    "YieldStrategy",
    "strategy_from_config",
]
