from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum, IntEnum


class StructureType(str, Enum):
    EMPTY = "empty"
    FUEL_ROD = "fuel_rod"
    VENTILATOR = "ventilator"
    HEAT_EXCHANGER = "heat_exchanger"
    INSULATOR = "insulator"
    TURBINE = "turbine"
    SUBSTATION = "substation"
    VOID_CELL = "void_cell"
    ICE_CUBE = "ice_cube"
    # Residues: only produced by melting, decay back to EMPTY.
    MOLTEN_SLAG = "molten_slag"
    PLASMA = "plasma"
    WATER = "water"


RESIDUES = frozenset({StructureType.MOLTEN_SLAG, StructureType.PLASMA, StructureType.WATER})


class Tier(IntEnum):
    T1 = 1
    T2 = 2
    T3 = 3
    T4 = 4


class UpgradeType(str, Enum):
    FUEL_LIFETIME = "fuel_lifetime"
    FUEL_HEAT_OUTPUT = "fuel_heat_output"
    TURBINE_CONDUCTIVITY = "turbine_conductivity"
    INSULATOR_CONDUCTIVITY = "insulator_conductivity"
    SUBSTATION_SALE_RATE = "substation_sale_rate"
    VENTILATOR_DISSIPATION = "ventilator_dissipation"
    TICK_SPEED = "tick_speed"
    MANUAL_CLICK_POWER = "manual_click_power"
    MELT_TEMP_FUEL_ROD = "melt_temp_fuel_rod"
    MELT_TEMP_VENTILATOR = "melt_temp_ventilator"
    MELT_TEMP_HEAT_EXCHANGER = "melt_temp_heat_exchanger"
    MELT_TEMP_INSULATOR = "melt_temp_insulator"
    MELT_TEMP_TURBINE = "melt_temp_turbine"
    MELT_TEMP_SUBSTATION = "melt_temp_substation"


class SecretType(str, Enum):
    EXOTIC_FUEL = "exotic_fuel"
    REACTOR_EXPANSION_1 = "reactor_expansion_1"
    REACTOR_EXPANSION_2 = "reactor_expansion_2"
    REACTOR_EXPANSION_3 = "reactor_expansion_3"
    REACTOR_EXPANSION_4 = "reactor_expansion_4"
    VOID_CELL_UNLOCK = "void_cell_unlock"
    OVERCLOCK = "overclock"
    SALVAGE = "salvage"
    SALVAGE_MASTER = "salvage_master"
    NACH_MIR_DIE_SINTFLUT = "nach_mir_die_sintflut"
    FUEL_MELT_TEMP_BONUS = "fuel_melt_temp_bonus"
    COOL_RUNNING = "cool_running"
    ICE_CUBE_UNLOCK = "ice_cube_unlock"


class UnlockConditionKind(str, Enum):
    MELTDOWN = "meltdown"
    FILL_GRID = "fill_grid"
    SURVIVE_HEAT = "survive_heat"
    TOTAL_EARNED = "total_earned"
    SELL_COUNT = "sell_count"
    FUEL_DEPLETED_COOL = "fuel_depleted_cool"
    FUEL_DEPLETED_ICE = "fuel_depleted_ice"
    ALL_TILES_ABOVE_TEMP = "all_tiles_above_temp"
    SELL_ALL_FULL_GRID = "sell_all_full_grid"


class MeltdownPolicy(str, Enum):
    MELT = "melt"
    CATASTROPHIC = "catastrophic"


@dataclass
class Cell:
    x: int
    y: int
    structure: StructureType = StructureType.EMPTY
    tier: Tier = Tier.T1
    heat: float = 0.0
    power: float = 0.0
    lifetime: int = 0
    is_exotic: bool = False
    max_temp_reached: float = 0.0

    @property
    def is_empty(self) -> bool:
        return self.structure is StructureType.EMPTY

    @property
    def is_residue(self) -> bool:
        return self.structure in RESIDUES

    @property
    def is_active_fuel(self) -> bool:
        return self.structure is StructureType.FUEL_ROD and self.lifetime > 0

    def copy(self) -> Cell:
        return replace(self)
