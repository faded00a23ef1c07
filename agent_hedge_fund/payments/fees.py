"""
Fee schedule for the protected routes.

Fees are held in wei. The ETH display string is derived from the wei value
with Decimal arithmetic and is never used in a comparison.
"""

from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Optional

WEI_PER_ETH = 10 ** 18


@dataclass(frozen=True)
class RouteDescriptor:
    key: str  # "METHOD /path/{param}"
    tier: str
    amount_wei: int
    description: str

    def __post_init__(self):
        if isinstance(self.amount_wei, bool) or not isinstance(self.amount_wei, int):
            raise TypeError(f"Fee for {self.key} must be an integer wei amount")
        if self.amount_wei < 0:
            raise ValueError(f"Fee for {self.key} cannot be negative")

    @property
    def display_amount(self) -> str:
        """ETH amount as a plain decimal string, e.g. '0.0001'."""
        eth = Decimal(self.amount_wei) / Decimal(WEI_PER_ETH)
        return format(eth.normalize(), "f")

    def to_payload(self) -> dict:
        return {
            "route": self.key,
            "amount": self.display_amount,
            "amountWei": str(self.amount_wei),
            "description": self.description,
        }


class FeeSchedule(Mapping[str, RouteDescriptor]):
    """Immutable route key -> RouteDescriptor table.

    Built once at startup and handed to the gate. Keys match the incoming
    "METHOD /path/{param}" exactly.
    """

    def __init__(self, routes: Iterable[RouteDescriptor]):
        table = {}
        tiers = set()
        for route in routes:
            if route.key in table:
                raise ValueError(f"Duplicate route key: {route.key}")
            if route.tier in tiers:
                raise ValueError(f"Duplicate fee tier: {route.tier}")
            table[route.key] = route
            tiers.add(route.tier)
        self._routes = MappingProxyType(table)

    def __getitem__(self, key: str) -> RouteDescriptor:
        return self._routes[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._routes)

    def __len__(self) -> int:
        return len(self._routes)

    def lookup(self, key: str) -> Optional[RouteDescriptor]:
        return self._routes.get(key)

    def by_tier(self, tier: str) -> Optional[RouteDescriptor]:
        for route in self._routes.values():
            if route.tier == tier:
                return route
        return None

    def amounts_payload(self) -> dict:
        """Tier name -> public fee info, in table order."""
        return {route.tier: route.to_payload() for route in self._routes.values()}


VIEW_DETAILS_ROUTE = "GET /models/{id}/details"
INVEST_ROUTE = "POST /models/{id}/invest"
COMPETITION_ENTRY_ROUTE = "POST /competitions/{id}/enter"

DEFAULT_ROUTES = (
    RouteDescriptor(
        key=VIEW_DETAILS_ROUTE,
        tier="viewDetails",
        amount_wei=100_000_000_000_000,  # 0.0001 ETH
        description="View model details and analytics",
    ),
    RouteDescriptor(
        key=INVEST_ROUTE,
        tier="deposit",
        amount_wei=200_000_000_000_000,  # 0.0002 ETH
        description="Deposit funds into AI model",
    ),
    RouteDescriptor(
        key=COMPETITION_ENTRY_ROUTE,
        tier="competitionEntry",
        amount_wei=500_000_000_000_000,  # 0.0005 ETH
        description="Enter model into competition",
    ),
)


def default_fee_schedule() -> FeeSchedule:
    return FeeSchedule(DEFAULT_ROUTES)
