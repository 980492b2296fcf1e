"""Heat and power physics for the reactor grid.

One tick runs nine phases in a fixed order:

    1. heat generation      (active fuel rods, adjacency bonus, exotic scaling)
    2. fuel depletion       (lifetime countdown, clean-depletion tracking)
    3. heat transfer        (neighbor diffusion via a delta buffer, edge loss)
    4. heat dissipation     (ventilators and void cells)
    5. power generation     (turbines above their working temperature)
    6. power sale           (turbines feed substations, substations sell)
    7. overheating          (melting into residues, optional grid meltdown)
    8. residue decay        (slag, plasma and water return to empty tiles)
    9. high-heat tracking   (ticks a fuel rod spent close to melting)

The engine borrows cells from the :class:`GridManager` only for the duration
of a call and reads upgrade state through the :class:`UpgradeOracle`
protocol; it never writes upgrade state.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from heatgame.balance import Balance, get_default_balance
from heatgame.events import EventEmitter, EventType, GameEvent
from heatgame.grid import GridManager
from heatgame.types import Cell, MeltdownPolicy, StructureType, Tier, UpgradeType
from heatgame.upgrades import UpgradeOracle

logger = logging.getLogger(__name__)


@dataclass
class PhysicsStats:
    total_power_generated: float = 0.0
    total_money_earned: float = 0.0
    fuel_rods_depleted: int = 0
    fuel_rods_depleted_cool: int = 0
    fuel_rods_depleted_ice: int = 0
    ticks_at_high_heat: int = 0
    meltdown_count: int = 0


@dataclass
class TickHeatBalance:
    heat_generated: float = 0.0
    heat_ventilated: float = 0.0
    heat_converted_to_power: float = 0.0
    heat_lost_to_environment: float = 0.0
    heat_lost_to_meltdown: float = 0.0
    heat_delta_in_grid: float = 0.0
    power_sold: float = 0.0


@dataclass
class CellPerformance:
    heat_generated: float = 0.0
    heat_exchange: float = 0.0
    power_generated: float = 0.0
    power_sold: float = 0.0
    initial_lifetime: int = 0


@dataclass(frozen=True)
class TickResult:
    money_earned: float
    meltdown: bool
    heat_balance: TickHeatBalance


class PhysicsEngine:
    def __init__(
        self,
        grid_manager: GridManager,
        oracle: UpgradeOracle,
        balance: Optional[Balance] = None,
    ) -> None:
        self.grid = grid_manager
        self.oracle = oracle
        self.balance = balance or get_default_balance()
        self.events: EventEmitter[GameEvent] = EventEmitter()
        self.stats = PhysicsStats()
        self._performance: Dict[Tuple[int, int], CellPerformance] = {}
        self._has_ticked = False
        self._meltdown_heat_loss = 0.0
        self._last_heat_balance = TickHeatBalance()

    # ── Stats ────────────────────────────────────────────────────

    def get_stats(self) -> PhysicsStats:
        return replace(self.stats)

    def set_stats(self, stats: PhysicsStats) -> None:
        self.stats = replace(stats)

    def get_last_heat_balance(self) -> TickHeatBalance:
        return replace(self._last_heat_balance)

    def get_cell_performance(self, x: int, y: int) -> Optional[CellPerformance]:
        """Per-cell flows recorded during the last tick."""
        cell = self.grid.get_cell_ref(x, y)
        if cell is None or not self._has_ticked:
            return None
        perf = replace(self._performance.get((x, y), CellPerformance()))
        if cell.structure is StructureType.FUEL_ROD:
            level = self.oracle.get_upgrade_level(UpgradeType.FUEL_LIFETIME)
            perf.initial_lifetime = self.balance.fuel_lifetime(cell.tier, level)
        return perf

    def get_total_heat(self) -> float:
        return sum(cell.heat for _, _, cell in self.grid.iter_cells())

    def get_min_grid_temp(self) -> float:
        return min(cell.heat for _, _, cell in self.grid.iter_cells())

    def _perf(self, x: int, y: int) -> CellPerformance:
        return self._performance.setdefault((x, y), CellPerformance())

    # ── Effective stats ──────────────────────────────────────────

    def _improvement(self, upgrade: UpgradeType) -> float:
        return self.balance.upgrades[upgrade].improvement

    def get_effective_melt_temp(self, structure: StructureType) -> float:
        stats = self.balance.structure(structure)
        melt_temp = stats.melt_temp
        if stats.melt_temp_upgrade is not None:
            level = self.oracle.get_upgrade_level(stats.melt_temp_upgrade)
            melt_temp += level * self._improvement(stats.melt_temp_upgrade)
        if structure is StructureType.FUEL_ROD:
            for secret, definition in self.balance.secrets.items():
                if definition.fuel_melt_temp_bonus and self.oracle.is_secret_purchased(secret):
                    melt_temp += definition.fuel_melt_temp_bonus
        return melt_temp

    def get_effective_conductivity(self, cell: Cell) -> float:
        base = self.balance.structure(cell.structure).conductivity
        if cell.structure is StructureType.TURBINE:
            level = self.oracle.get_upgrade_level(UpgradeType.TURBINE_CONDUCTIVITY)
            return base + level * self._improvement(UpgradeType.TURBINE_CONDUCTIVITY)
        if cell.structure is StructureType.INSULATOR:
            level = self.oracle.get_upgrade_level(UpgradeType.INSULATOR_CONDUCTIVITY)
            return base * self._improvement(UpgradeType.INSULATOR_CONDUCTIVITY) ** level
        return base

    def get_effective_ventilator_dissipation_for_tier(self, tier: Tier) -> float:
        base = self.balance.structure(StructureType.VENTILATOR).heat_dissipation
        level = self.oracle.get_upgrade_level(UpgradeType.VENTILATOR_DISSIPATION)
        return base * self.balance.tier_multiplier(tier) + level * self._improvement(UpgradeType.VENTILATOR_DISSIPATION)

    def get_effective_heat_dissipation(self, cell: Cell) -> float:
        stats = self.balance.structure(cell.structure)
        if stats.heat_dissipation <= 0:
            return 0.0
        if cell.structure is StructureType.VENTILATOR:
            return self.get_effective_ventilator_dissipation_for_tier(cell.tier)
        if not stats.tiered_dissipation:
            return stats.heat_dissipation
        return stats.heat_dissipation * self.balance.tier_multiplier(cell.tier)

    def get_effective_power_sale_rate_for_tier(self, tier: Tier) -> float:
        base = self.balance.structure(StructureType.SUBSTATION).power_sale_rate
        level = self.oracle.get_upgrade_level(UpgradeType.SUBSTATION_SALE_RATE)
        return base * self.balance.tier_multiplier(tier) + level * self._improvement(UpgradeType.SUBSTATION_SALE_RATE)

    def get_effective_power_sale_rate(self, cell: Cell) -> float:
        if cell.structure is not StructureType.SUBSTATION:
            return 0.0
        return self.get_effective_power_sale_rate_for_tier(cell.tier)

    def get_effective_fuel_heat_generation_for_tier(self, tier: Tier) -> float:
        level = self.oracle.get_upgrade_level(UpgradeType.FUEL_HEAT_OUTPUT)
        return self.balance.fuel_heat_generation(tier, level)

    def get_effective_turbine_power_for_tier(self, tier: Tier) -> float:
        """Most power a turbine of this tier can produce in one tick."""
        per_heat = self.balance.structure(StructureType.TURBINE).power_generation
        return self.balance.turbine_max_heat_consumption(tier) * per_heat

    def get_exotic_multiplier(self, heat: float) -> float:
        exotic = self.balance.exotic_fuel
        return min(exotic.max_multiplier, exotic.base_multiplier + heat / 1000.0 * exotic.heat_scaling_factor)

    # ── Tick phases ──────────────────────────────────────────────

    def process_heat_generation(self) -> float:
        """Active fuel rods add heat to themselves. Returns total heat generated.

        Each active neighboring rod adds ``bonus_per_adjacent`` to the
        multiplier; exotic rods scale further with the heat they held before
        this phase.
        """
        level = self.oracle.get_upgrade_level(UpgradeType.FUEL_HEAT_OUTPUT)
        bonus = self.balance.fuel_adjacency_bonus
        generated = 0.0
        for x, y, cell in self.grid.iter_cells():
            if not cell.is_active_fuel:
                continue
            adjacent = self.grid.count_adjacent_fuel_rods(x, y)
            heat = self.balance.fuel_heat_generation(cell.tier, level) * (1.0 + adjacent * bonus)
            if cell.is_exotic:
                heat *= self.get_exotic_multiplier(cell.heat)
            cell.heat += heat
            if cell.heat > cell.max_temp_reached:
                cell.max_temp_reached = cell.heat
            self._perf(x, y).heat_generated += heat
            generated += heat
        return generated

    def process_fuel_depletion(self) -> None:
        """Active fuel rods burn one tick of lifetime."""
        core = self.balance.core
        for x, y, cell in self.grid.iter_cells():
            if not cell.is_active_fuel:
                continue
            cell.lifetime -= 1
            if cell.lifetime > 0:
                continue
            self.stats.fuel_rods_depleted += 1
            if cell.max_temp_reached <= core.clean_depletion_cool_temperature:
                self.stats.fuel_rods_depleted_cool += 1
            if cell.max_temp_reached <= core.clean_depletion_ice_temperature:
                self.stats.fuel_rods_depleted_ice += 1
            logger.debug("Fuel rod depleted at (%d, %d)", x, y)
            self.events.emit(GameEvent(EventType.FUEL_DEPLETED, x=x, y=y, tier=cell.tier))

    def process_heat_transfer(self) -> float:
        """Diffuse heat between neighbors. Returns heat lost to the environment.

        All flows are computed from the pre-phase temperatures into a delta
        buffer and applied afterwards, so the result does not depend on scan
        order. Only the hotter side of a pair pushes heat, so each pair is
        counted once. Edge cells lose heat through each missing neighbor.
        """
        core = self.balance.core
        size = self.grid.size
        cells = self.grid.cells
        conductivity = [self.get_effective_conductivity(cell) for cell in cells]
        deltas = [0.0] * len(cells)
        lost = 0.0

        for x, y, cell in self.grid.iter_cells():
            i = y * size + x
            coords = self.grid.neighbor_coords(x, y)
            for nx, ny in coords:
                j = ny * size + nx
                other = cells[j]
                if cell.heat <= other.heat:
                    continue
                flow = (cell.heat - other.heat) * core.base_heat_transfer_rate * min(conductivity[i], conductivity[j])
                deltas[i] -= flow
                deltas[j] += flow
            missing = 4 - len(coords)
            if missing and cell.heat > core.ambient_temperature:
                loss = (cell.heat - core.ambient_temperature) * core.environment_heat_transfer_rate * missing
                deltas[i] -= loss
                lost += loss

        for x, y, cell in self.grid.iter_cells():
            delta = deltas[y * size + x]
            if delta == 0.0:
                continue
            new_heat = cell.heat + delta
            if new_heat < 0.0:
                # Clamped heat never left the grid.
                lost += new_heat
                delta -= new_heat
                new_heat = 0.0
            cell.heat = new_heat
            self._perf(x, y).heat_exchange += delta
        return lost

    def process_heat_dissipation(self) -> float:
        """Ventilators and void cells vent heat. Returns heat actually removed."""
        removed = 0.0
        for _, _, cell in self.grid.iter_cells():
            dissipation = self.get_effective_heat_dissipation(cell)
            if dissipation <= 0.0:
                continue
            vented = min(cell.heat, dissipation)
            cell.heat -= vented
            removed += vented
        return removed

    def process_power_generation(self) -> float:
        """Turbines above working temperature turn heat into stored power.

        Returns the heat consumed.
        """
        threshold = self.balance.core.turbine_min_temperature
        per_heat = self.balance.structure(StructureType.TURBINE).power_generation
        consumed_total = 0.0
        for x, y, cell in self.grid.iter_cells():
            if cell.structure is not StructureType.TURBINE or cell.heat <= threshold:
                continue
            consumed = min(cell.heat - threshold, self.balance.turbine_max_heat_consumption(cell.tier))
            power = consumed * per_heat
            cell.heat -= consumed
            cell.power += power
            self.stats.total_power_generated += power
            self._perf(x, y).power_generated += power
            consumed_total += consumed
        return consumed_total

    def process_power_sale(self) -> float:
        """Move turbine power into substations and sell it. Returns money earned.

        A turbine hands all its power to the first adjacent substation
        (up, down, left, right). A substation sells at most its effective sale
        rate per tick. Runs as a single scan, so power delivered to a
        substation that was already scanned is sold next tick.
        """
        money_per_power = self.balance.economy.money_per_power
        earnings = 0.0
        for x, y, cell in self.grid.iter_cells():
            if cell.structure is StructureType.TURBINE:
                if cell.power <= 0.0:
                    continue
                for neighbor in self.grid.get_neighbors(x, y):
                    if neighbor.structure is StructureType.SUBSTATION:
                        neighbor.power += cell.power
                        cell.power = 0.0
                        break
            elif cell.structure is StructureType.SUBSTATION:
                sold = min(cell.power, self.get_effective_power_sale_rate(cell))
                if sold <= 0.0:
                    continue
                cell.power -= sold
                money = sold * money_per_power
                earnings += money
                self.stats.total_money_earned += money
                self._perf(x, y).power_sold += sold
                self.events.emit(GameEvent(EventType.POWER_SOLD, x=x, y=y, amount=money))
        return earnings

    def _melt(self, cell: Cell) -> None:
        residue = self.balance.structure(cell.structure).melts_into
        cell.structure = residue
        cell.tier = Tier.T1
        cell.power = 0.0
        cell.lifetime = self.balance.structure(residue).lifetime
        cell.is_exotic = False
        cell.max_temp_reached = 0.0

    def process_overheating(self) -> bool:
        """Melt every structure hotter than its effective melt temperature.

        Melted structures become residues and keep their heat. Under the
        catastrophic policy an overheated fuel rod instead clears the whole
        grid; the return value reports whether that happened.
        """
        catastrophic = self.balance.core.meltdown_policy is MeltdownPolicy.CATASTROPHIC
        overheated: List[Tuple[int, int, Cell]] = [
            (x, y, cell)
            for x, y, cell in self.grid.iter_cells()
            if not cell.is_empty and cell.heat > self.get_effective_melt_temp(cell.structure)
        ]

        fuel_overheated = False
        for x, y, cell in overheated:
            structure, tier = cell.structure, cell.tier
            if structure is StructureType.FUEL_ROD:
                fuel_overheated = True
                if catastrophic:
                    continue
                self.stats.meltdown_count += 1
            self._melt(cell)
            logger.debug("%s at (%d, %d) melted into %s", structure.value, x, y, cell.structure.value)
            self.events.emit(GameEvent(EventType.STRUCTURE_MELTED, x=x, y=y, structure=structure, tier=tier))

        if not (catastrophic and fuel_overheated):
            return False

        self._meltdown_heat_loss += self.get_total_heat()
        self.grid.clear_all()
        self.stats.meltdown_count += 1
        logger.info("Meltdown: reactor grid cleared")
        self.events.emit(GameEvent(EventType.MELTDOWN))
        return True

    def process_residue_decay(self) -> None:
        """Residues count down and turn back into empty tiles, keeping their heat."""
        for x, y, cell in self.grid.iter_cells():
            if not cell.is_residue:
                continue
            cell.lifetime = max(0, cell.lifetime - 1)
            if cell.lifetime > 0:
                continue
            heat = cell.heat
            self.grid.reset_cell(x, y)
            self.grid.cells[y * self.grid.size + x].heat = heat

    def track_high_heat_survival(self) -> None:
        fraction = self.balance.core.high_heat_fraction
        melt_temp = self.get_effective_melt_temp(StructureType.FUEL_ROD)
        for _, _, cell in self.grid.iter_cells():
            if cell.is_active_fuel and cell.heat >= melt_temp * fraction:
                self.stats.ticks_at_high_heat += 1
                return

    def tick(self) -> TickResult:
        """Run all phases once and report the earnings and heat flows."""
        self._performance = {}
        self._meltdown_heat_loss = 0.0
        heat_before = self.get_total_heat()

        generated = self.process_heat_generation()
        self.process_fuel_depletion()
        lost_to_environment = self.process_heat_transfer()
        ventilated = self.process_heat_dissipation()
        converted = self.process_power_generation()
        money_earned = self.process_power_sale()
        meltdown = self.process_overheating()
        self.process_residue_decay()
        self.track_high_heat_survival()

        self._has_ticked = True
        self._last_heat_balance = TickHeatBalance(
            heat_generated=generated,
            heat_ventilated=ventilated,
            heat_converted_to_power=converted,
            heat_lost_to_environment=lost_to_environment,
            heat_lost_to_meltdown=self._meltdown_heat_loss,
            heat_delta_in_grid=self.get_total_heat() - heat_before,
            power_sold=sum(p.power_sold for p in self._performance.values()),
        )
        return TickResult(
            money_earned=money_earned,
            meltdown=meltdown,
            heat_balance=replace(self._last_heat_balance),
        )
