from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class GameStats:
    total_money_earned: float = 0.0
    tick_count: int = 0
    sell_count: int = 0
    manual_clicks: int = 0
    structures_built: int = 0
    # Set by a sell-all on a completely filled grid, cleared after the next tick.
    sell_all_full_grid: bool = False


@dataclass
class ResourceStore:
    money: float = 0.0
    stats: GameStats = field(default_factory=GameStats)

    def earn(self, amount: float) -> None:
        if amount <= 0.0:
            return
        self.money += amount
        self.stats.total_money_earned += amount

    def refund(self, amount: float) -> None:
        """Return money to the player without counting it as earnings."""
        if amount <= 0.0:
            return
        self.money += amount

    def can_afford(self, amount: float) -> bool:
        return self.money >= amount

    def spend(self, amount: float) -> bool:
        if amount < 0.0 or not self.can_afford(amount):
            return False
        self.money -= amount
        return True
