"""Balance configuration: every tunable number of the reactor lives here.

Values are read from ``balance_data.json`` next to this module. A different
file can be passed to :func:`load_balance` to tune a game without touching
code; components take an optional ``balance`` argument and fall back to
:func:`get_default_balance`.

Tier scaling: tiered stats and costs grow by ``10 ** (tier - 1)``.
"""
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from heatgame.types import (
    MeltdownPolicy,
    SecretType,
    StructureType,
    Tier,
    UnlockConditionKind,
    UpgradeType,
)

logger = logging.getLogger(__name__)

_DEFAULT_PATH = Path(__file__).resolve().parent / "balance_data.json"


@dataclass(frozen=True)
class CoreSettings:
    starting_money: float = 0.0
    tick_interval_ms: float = 1000.0
    initial_grid_size: int = 16
    max_grid_size: int = 20
    base_heat_transfer_rate: float = 0.1
    environment_heat_transfer_rate: float = 0.05
    ambient_temperature: float = 20.0
    turbine_min_temperature: float = 100.0
    high_heat_fraction: float = 0.9
    clean_depletion_cool_temperature: float = 200.0
    clean_depletion_ice_temperature: float = 100.0
    sell_all_cool_temperature: float = 100.0
    tick_speed_interval_multiplier: float = 0.8
    meltdown_policy: MeltdownPolicy = MeltdownPolicy.MELT


@dataclass(frozen=True)
class ManualGeneration:
    base_money_per_click: float = 1.0
    money_per_upgrade_level: float = 1.0


@dataclass(frozen=True)
class ExoticFuel:
    base_multiplier: float = 1.0
    heat_scaling_factor: float = 0.5
    max_multiplier: float = 5.0


@dataclass(frozen=True)
class Economy:
    money_per_power: float = 1.0
    base_refund_rate: float = 0.5


@dataclass(frozen=True)
class StructureStats:
    name: str
    cost: float
    melt_temp: float
    conductivity: float
    heat_generation: float = 0.0
    heat_dissipation: float = 0.0
    tiered_dissipation: bool = True
    power_generation: float = 0.0
    max_heat_consumption: float = 0.0
    power_sale_rate: float = 0.0
    # Fuel rods: base lifetime at T1. Residues: ticks until decay.
    lifetime: int = 0
    buildable: bool = True
    melts_into: StructureType = StructureType.MOLTEN_SLAG
    melt_temp_upgrade: Optional[UpgradeType] = None
    required_secret: Optional[SecretType] = None


@dataclass(frozen=True)
class UpgradeDefinition:
    type: UpgradeType
    name: str
    description: str
    base_cost: float
    cost_multiplier: float
    max_level: int  # 0 = unlimited
    improvement: float
    multiplicative: bool = False


@dataclass(frozen=True)
class UnlockCondition:
    kind: UnlockConditionKind
    threshold: float


@dataclass(frozen=True)
class SecretDefinition:
    type: SecretType
    name: str
    description: str
    hint: str
    cost: float
    unlock: UnlockCondition
    toggleable: bool = False
    expands_grid_to: Optional[int] = None
    refund_rate: Optional[float] = None
    fuel_melt_temp_bonus: float = 0.0
    tick_interval_multiplier: float = 1.0
    cools_on_sell_all: bool = False


@dataclass(frozen=True)
class Balance:
    core: CoreSettings = field(default_factory=CoreSettings)
    manual_generation: ManualGeneration = field(default_factory=ManualGeneration)
    fuel_adjacency_bonus: float = 1.0
    exotic_fuel: ExoticFuel = field(default_factory=ExoticFuel)
    economy: Economy = field(default_factory=Economy)
    structures: Dict[StructureType, StructureStats] = field(default_factory=dict)
    upgrades: Dict[UpgradeType, UpgradeDefinition] = field(default_factory=dict)
    secrets: Dict[SecretType, SecretDefinition] = field(default_factory=dict)

    @staticmethod
    def tier_multiplier(tier: Tier) -> float:
        return 10.0 ** (int(tier) - 1)

    def structure(self, structure: StructureType) -> StructureStats:
        return self.structures[structure]

    def structure_cost(self, structure: StructureType, tier: Tier = Tier.T1) -> float:
        return round(self.structures[structure].cost * self.tier_multiplier(tier))

    def fuel_lifetime(self, tier: Tier, level: int = 0) -> int:
        base = self.structures[StructureType.FUEL_ROD].lifetime
        per_level = self.upgrades[UpgradeType.FUEL_LIFETIME].improvement
        return int(round(base * self.tier_multiplier(tier) + level * per_level))

    def fuel_heat_generation(self, tier: Tier, level: int = 0) -> float:
        base = self.structures[StructureType.FUEL_ROD].heat_generation
        per_level = self.upgrades[UpgradeType.FUEL_HEAT_OUTPUT].improvement
        return base * self.tier_multiplier(tier) + level * per_level

    def turbine_max_heat_consumption(self, tier: Tier) -> float:
        return self.structures[StructureType.TURBINE].max_heat_consumption * self.tier_multiplier(tier)

    def upgrade_cost(self, upgrade: UpgradeType, level: int) -> float:
        definition = self.upgrades[upgrade]
        return round(definition.base_cost * definition.cost_multiplier ** level)


def _structure_from_dict(entry: dict) -> StructureStats:
    melt_temp_upgrade = entry.get("melt_temp_upgrade")
    required_secret = entry.get("required_secret")
    return StructureStats(
        name=entry["name"],
        cost=float(entry.get("cost", 0)),
        melt_temp=float(entry.get("melt_temp", math.inf)),
        conductivity=float(entry["conductivity"]),
        heat_generation=float(entry.get("heat_generation", 0.0)),
        heat_dissipation=float(entry.get("heat_dissipation", 0.0)),
        tiered_dissipation=bool(entry.get("tiered_dissipation", True)),
        power_generation=float(entry.get("power_generation", 0.0)),
        max_heat_consumption=float(entry.get("max_heat_consumption", 0.0)),
        power_sale_rate=float(entry.get("power_sale_rate", 0.0)),
        lifetime=int(entry.get("lifetime", 0)),
        buildable=bool(entry.get("buildable", True)),
        melts_into=StructureType(entry.get("melts_into", StructureType.MOLTEN_SLAG.value)),
        melt_temp_upgrade=UpgradeType(melt_temp_upgrade) if melt_temp_upgrade else None,
        required_secret=SecretType(required_secret) if required_secret else None,
    )


def _secret_from_dict(secret: SecretType, entry: dict) -> SecretDefinition:
    unlock = entry["unlock"]
    kind = unlock["kind"]
    if kind == "demolish_count":
        kind = UnlockConditionKind.SELL_COUNT.value
    expands = entry.get("expands_grid_to")
    refund = entry.get("refund_rate")
    return SecretDefinition(
        type=secret,
        name=entry["name"],
        description=entry.get("description", ""),
        hint=entry.get("hint", ""),
        cost=float(entry["cost"]),
        unlock=UnlockCondition(UnlockConditionKind(kind), float(unlock["threshold"])),
        toggleable=bool(entry.get("toggleable", False)),
        expands_grid_to=int(expands) if expands is not None else None,
        refund_rate=float(refund) if refund is not None else None,
        fuel_melt_temp_bonus=float(entry.get("fuel_melt_temp_bonus", 0.0)),
        tick_interval_multiplier=float(entry.get("tick_interval_multiplier", 1.0)),
        cools_on_sell_all=bool(entry.get("cools_on_sell_all", False)),
    )


def balance_from_dict(raw: dict) -> Balance:
    """Build a :class:`Balance` from the decoded JSON document."""
    core_raw = dict(raw.get("core", {}))
    if "meltdown_policy" in core_raw:
        core_raw["meltdown_policy"] = MeltdownPolicy(core_raw["meltdown_policy"])
    manual = raw.get("manual_generation", {})
    adjacency = raw.get("fuel_adjacency", {})

    structures = {
        StructureType(name): _structure_from_dict(entry)
        for name, entry in raw.get("structures", {}).items()
    }
    missing = [s.value for s in StructureType if s not in structures]
    if missing:
        raise ValueError(f"balance data is missing structures: {', '.join(missing)}")

    upgrades = {}
    for name, entry in raw.get("upgrades", {}).items():
        upgrade = UpgradeType(name)
        upgrades[upgrade] = UpgradeDefinition(
            type=upgrade,
            name=entry["name"],
            description=entry.get("description", ""),
            base_cost=float(entry["base_cost"]),
            cost_multiplier=float(entry["cost_multiplier"]),
            max_level=int(entry.get("max_level", 0)),
            improvement=float(entry["improvement"]),
            multiplicative=bool(entry.get("multiplicative", False)),
        )

    secrets = {
        SecretType(name): _secret_from_dict(SecretType(name), entry)
        for name, entry in raw.get("secrets", {}).items()
    }

    return Balance(
        core=CoreSettings(**core_raw),
        manual_generation=ManualGeneration(**manual),
        fuel_adjacency_bonus=float(adjacency.get("bonus_per_adjacent", 1.0)),
        exotic_fuel=ExoticFuel(**raw.get("exotic_fuel", {})),
        economy=Economy(**raw.get("economy", {})),
        structures=structures,
        upgrades=upgrades,
        secrets=secrets,
    )


def load_balance(path: Optional[Path] = None) -> Balance:
    if path is None:
        path = _DEFAULT_PATH
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    balance = balance_from_dict(raw)
    logger.debug(
        "Loaded balance from %s: %d structures, %d upgrades, %d secrets",
        path, len(balance.structures), len(balance.upgrades), len(balance.secrets),
    )
    return balance


_default_balance: Optional[Balance] = None


def get_default_balance() -> Balance:
    global _default_balance
    if _default_balance is None:
        _default_balance = load_balance()
    return _default_balance
