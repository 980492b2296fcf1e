"""HeatGame: the public face of the reactor core.

Composes the grid, the physics engine and the upgrade manager, owns money and
game-level counters, and forwards every component's events onto one stream.
The outer loop drives it by calling :meth:`HeatGame.tick` every
:meth:`HeatGame.get_tick_interval_ms` milliseconds.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional

from heatgame.balance import Balance, get_default_balance
from heatgame.events import EventEmitter, EventType, GameEvent
from heatgame.grid import GridManager
from heatgame.physics import CellPerformance, PhysicsEngine, TickHeatBalance, TickResult
from heatgame.store import ResourceStore
from heatgame.types import Cell, SecretType, StructureType, Tier, UpgradeType
from heatgame.upgrades import UnlockProgress, UpgradeManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CombinedStats:
    """Read-only merge of game and physics stats, rebuilt on every call."""

    total_money_earned: float
    tick_count: int
    sell_count: int
    manual_clicks: int
    structures_built: int
    sell_all_full_grid: bool
    total_power_generated: float
    power_money_earned: float
    fuel_rods_depleted: int
    fuel_rods_depleted_cool: int
    fuel_rods_depleted_ice: int
    ticks_at_high_heat: int
    meltdown_count: int
    filled_cells: int
    min_grid_temp: float


class HeatGame:
    def __init__(self, initial_money: Optional[float] = None, balance: Optional[Balance] = None) -> None:
        self.balance = balance or get_default_balance()
        core = self.balance.core
        self.grid = GridManager(core.initial_grid_size)
        self.upgrades = UpgradeManager(self.balance)
        self.physics = PhysicsEngine(self.grid, self.upgrades, self.balance)
        self.store = ResourceStore(money=core.starting_money if initial_money is None else initial_money)
        self.events: EventEmitter[GameEvent] = EventEmitter()
        self.physics.events.add_listener(self.events.emit)
        self.upgrades.events.add_listener(self.events.emit)

    # ── Read API ─────────────────────────────────────────────────

    def get_cell(self, x: int, y: int) -> Optional[Cell]:
        return self.grid.get_cell(x, y)

    def get_grid_size(self) -> int:
        return self.grid.get_size()

    def get_grid_snapshot(self) -> List[List[Cell]]:
        return self.grid.get_snapshot()

    def get_filled_cell_count(self) -> int:
        return self.grid.get_filled_cell_count()

    def get_money(self) -> float:
        return self.store.money

    def get_tick_count(self) -> int:
        return self.store.stats.tick_count

    def get_stats(self) -> CombinedStats:
        game = self.store.stats
        physics = self.physics.get_stats()
        return CombinedStats(
            total_money_earned=game.total_money_earned,
            tick_count=game.tick_count,
            sell_count=game.sell_count,
            manual_clicks=game.manual_clicks,
            structures_built=game.structures_built,
            sell_all_full_grid=game.sell_all_full_grid,
            total_power_generated=physics.total_power_generated,
            power_money_earned=physics.total_money_earned,
            fuel_rods_depleted=physics.fuel_rods_depleted,
            fuel_rods_depleted_cool=physics.fuel_rods_depleted_cool,
            fuel_rods_depleted_ice=physics.fuel_rods_depleted_ice,
            ticks_at_high_heat=physics.ticks_at_high_heat,
            meltdown_count=physics.meltdown_count,
            filled_cells=self.grid.get_filled_cell_count(),
            min_grid_temp=self.physics.get_min_grid_temp(),
        )

    def get_cell_performance(self, x: int, y: int) -> Optional[CellPerformance]:
        return self.physics.get_cell_performance(x, y)

    def get_last_tick_heat_balance(self) -> TickHeatBalance:
        return self.physics.get_last_heat_balance()

    def get_effective_melt_temp(self, structure: StructureType) -> float:
        return self.physics.get_effective_melt_temp(structure)

    def get_effective_power_sale_rate(self, x: int, y: int) -> float:
        cell = self.grid.get_cell_ref(x, y)
        if cell is None:
            return 0.0
        return self.physics.get_effective_power_sale_rate(cell)

    def get_refund_rate(self) -> float:
        return self.upgrades.get_refund_rate()

    def get_tick_interval_ms(self) -> float:
        """Interval the outer loop should wait between ticks."""
        interval = self.balance.core.tick_interval_ms
        interval *= self.balance.core.tick_speed_interval_multiplier ** self.upgrades.get_upgrade_level(UpgradeType.TICK_SPEED)
        for secret, definition in self.balance.secrets.items():
            if self.upgrades.is_secret_purchased(secret):
                interval *= definition.tick_interval_multiplier
        return interval

    # ── Manual generation ────────────────────────────────────────

    def get_money_per_click(self) -> float:
        manual = self.balance.manual_generation
        level = self.upgrades.get_upgrade_level(UpgradeType.MANUAL_CLICK_POWER)
        return manual.base_money_per_click + level * manual.money_per_upgrade_level

    def manual_generate(self) -> float:
        amount = self.get_money_per_click()
        self.store.earn(amount)
        self.store.stats.manual_clicks += 1
        self.events.emit(GameEvent(EventType.MANUAL_CLICK, amount=amount))
        return amount

    # ── Building and selling ─────────────────────────────────────

    def get_structure_cost(self, structure: StructureType, tier: Tier = Tier.T1) -> float:
        return self.balance.structure_cost(structure, tier)

    def is_structure_available(self, structure: StructureType) -> bool:
        """Buildable type whose unlocking secret, if any, has been purchased."""
        stats = self.balance.structure(structure)
        if not stats.buildable:
            return False
        return stats.required_secret is None or self.upgrades.is_secret_purchased(stats.required_secret)

    def can_build(self, x: int, y: int, structure: StructureType, tier: Tier = Tier.T1) -> bool:
        cell = self.grid.get_cell_ref(x, y)
        if cell is None or not cell.is_empty:
            return False
        if not self.is_structure_available(structure):
            return False
        return self.store.can_afford(self.get_structure_cost(structure, tier))

    def build(
        self,
        x: int,
        y: int,
        structure: StructureType,
        tier: Tier = Tier.T1,
        is_exotic: bool = False,
    ) -> bool:
        if not self.can_build(x, y, structure, tier):
            return False

        if is_exotic and not (
            structure is StructureType.FUEL_ROD
            and self.upgrades.is_secret_purchased(SecretType.EXOTIC_FUEL)
            and self.upgrades.is_secret_enabled(SecretType.EXOTIC_FUEL)
        ):
            is_exotic = False

        self.store.spend(self.get_structure_cost(structure, tier))

        cell = self.grid.get_cell_ref(x, y)
        cell.structure = structure
        cell.tier = tier
        cell.heat = 0.0
        cell.power = 0.0
        cell.is_exotic = is_exotic
        cell.max_temp_reached = 0.0
        if structure is StructureType.FUEL_ROD:
            level = self.upgrades.get_upgrade_level(UpgradeType.FUEL_LIFETIME)
            cell.lifetime = self.balance.fuel_lifetime(tier, level)
        else:
            cell.lifetime = 0

        self.store.stats.structures_built += 1
        self.events.emit(GameEvent(EventType.STRUCTURE_BUILT, x=x, y=y, structure=structure, tier=tier))
        self.check_secret_unlocks()
        return True

    def _is_sellable(self, cell: Cell) -> bool:
        return not cell.is_empty and not cell.is_residue

    def _refund_for(self, cell: Cell, rate: float) -> float:
        return math.floor(self.get_structure_cost(cell.structure, cell.tier) * rate)

    def _clear_keeping_heat(self, x: int, y: int, heat: float) -> None:
        self.grid.reset_cell(x, y)
        self.grid.get_cell_ref(x, y).heat = heat

    def sell(self, x: int, y: int) -> bool:
        """Sell the structure at (x, y). The empty tile keeps the heat."""
        cell = self.grid.get_cell_ref(x, y)
        if cell is None or not self._is_sellable(cell):
            return False

        structure, tier = cell.structure, cell.tier
        refund = self._refund_for(cell, self.get_refund_rate())
        self.store.refund(refund)
        self._clear_keeping_heat(x, y, cell.heat)

        self.store.stats.sell_count += 1
        self.events.emit(GameEvent(EventType.STRUCTURE_SOLD, x=x, y=y, structure=structure, tier=tier, amount=refund))
        self.check_secret_unlocks()
        return True

    def _sell_all_cools(self) -> bool:
        return any(
            definition.cools_on_sell_all and self.upgrades.is_secret_purchased(secret)
            for secret, definition in self.balance.secrets.items()
        )

    def sell_all(self) -> float:
        """Sell every sellable structure at once. Returns the total refund.

        Residues stay in place. With the flooding secret purchased every tile,
        sold or not, is cooled down to the sell-all cooling cap.
        """
        size = self.grid.get_size()
        was_full = self.grid.get_filled_cell_count() == size * size
        rate = self.get_refund_rate()
        cool = self._sell_all_cools()
        cap = self.balance.core.sell_all_cool_temperature

        total_refund = 0.0
        sold = 0
        for x, y, cell in list(self.grid.iter_cells()):
            heat = min(cell.heat, cap) if cool else cell.heat
            if self._is_sellable(cell):
                total_refund += self._refund_for(cell, rate)
                self._clear_keeping_heat(x, y, heat)
                sold += 1
            else:
                cell.heat = heat

        self.store.refund(total_refund)
        self.store.stats.sell_count += sold
        if was_full and sold > 0:
            self.store.stats.sell_all_full_grid = True
        logger.debug("Sold %d structures for %s", sold, total_refund)
        self.events.emit(GameEvent(EventType.SELL_ALL, amount=total_refund))
        self.check_secret_unlocks()
        return total_refund

    # ── Upgrades and secrets ─────────────────────────────────────

    def get_upgrade_level(self, upgrade: UpgradeType) -> int:
        return self.upgrades.get_upgrade_level(upgrade)

    def get_upgrade_cost(self, upgrade: UpgradeType) -> float:
        return self.upgrades.get_upgrade_cost(upgrade)

    def can_purchase_upgrade(self, upgrade: UpgradeType) -> bool:
        return self.upgrades.can_purchase_upgrade(upgrade, self.store.money)

    def purchase_upgrade(self, upgrade: UpgradeType) -> bool:
        cost = self.upgrades.purchase_upgrade(upgrade, self.store.money)
        if cost <= 0:
            return False
        self.store.spend(cost)
        return True

    def is_secret_unlocked(self, secret: SecretType) -> bool:
        return self.upgrades.is_secret_unlocked(secret)

    def is_secret_purchased(self, secret: SecretType) -> bool:
        return self.upgrades.is_secret_purchased(secret)

    def is_secret_enabled(self, secret: SecretType) -> bool:
        return self.upgrades.is_secret_enabled(secret)

    def get_secret_cost(self, secret: SecretType) -> float:
        return self.upgrades.get_secret_cost(secret)

    def can_purchase_secret(self, secret: SecretType) -> bool:
        return self.upgrades.can_purchase_secret(secret, self.store.money)

    def get_secret_unlock_progress(self, secret: SecretType) -> UnlockProgress:
        return self.upgrades.get_secret_unlock_progress(secret, self.get_stats())

    def purchase_secret(self, secret: SecretType) -> bool:
        cost = self.upgrades.purchase_secret(secret, self.store.money)
        if cost <= 0:
            return False
        self.store.spend(cost)

        new_size = self.upgrades.get_expansion_size(secret)
        if new_size is not None and self.grid.expand_grid(new_size, self.balance.core.max_grid_size):
            self.events.emit(GameEvent(EventType.GRID_EXPANDED, new_grid_size=new_size))
        return True

    def toggle_secret(self, secret: SecretType, enabled: bool) -> None:
        self.upgrades.toggle_secret(secret, enabled)

    def check_secret_unlocks(self) -> List[SecretType]:
        return self.upgrades.check_secret_unlocks(self.get_stats())

    # ── Tick ─────────────────────────────────────────────────────

    def tick(self) -> TickResult:
        result = self.physics.tick()
        self.store.earn(result.money_earned)
        self.store.stats.tick_count += 1
        self.check_secret_unlocks()
        self.store.stats.sell_all_full_grid = False
        return result

    # ── Persistence ──────────────────────────────────────────────

    def serialize(self) -> str:
        from heatgame.save import serialize_game
        return serialize_game(self)

    @staticmethod
    def deserialize(text: str, balance: Optional[Balance] = None) -> HeatGame:
        from heatgame.save import deserialize_game
        return deserialize_game(text, balance)
