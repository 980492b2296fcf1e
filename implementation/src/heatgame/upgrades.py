"""Upgrade system: purchasable upgrade levels and tri-state secrets.

Regular upgrades have a level; the cost of the next level is
``round(base_cost * cost_multiplier ** level)``. A max level of 0 means the
upgrade never caps.

Secrets move through three states: unlocked (a gameplay milestone was
reached), purchased (bought once), enabled (toggleable secrets only; purchase
auto-enables them). Unlock milestones are evaluated against one read-only
stats view supplied by the caller.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Protocol

from heatgame.balance import Balance, SecretDefinition, get_default_balance
from heatgame.events import EventEmitter, EventType, GameEvent
from heatgame.types import SecretType, UnlockConditionKind, UpgradeType

logger = logging.getLogger(__name__)


class UpgradeOracle(Protocol):
    """Read-only view of upgrade state consumed by the physics engine."""

    def get_upgrade_level(self, upgrade: UpgradeType) -> int: ...

    def is_secret_purchased(self, secret: SecretType) -> bool: ...


class UnlockStats(Protocol):
    meltdown_count: int
    filled_cells: int
    total_money_earned: float
    sell_count: int
    ticks_at_high_heat: int
    fuel_rods_depleted_cool: int
    fuel_rods_depleted_ice: int
    min_grid_temp: float
    sell_all_full_grid: bool


# Which stats-view attribute each unlock condition reads.
_CONDITION_STAT: Dict[UnlockConditionKind, str] = {
    UnlockConditionKind.MELTDOWN: "meltdown_count",
    UnlockConditionKind.FILL_GRID: "filled_cells",
    UnlockConditionKind.SURVIVE_HEAT: "ticks_at_high_heat",
    UnlockConditionKind.TOTAL_EARNED: "total_money_earned",
    UnlockConditionKind.SELL_COUNT: "sell_count",
    UnlockConditionKind.FUEL_DEPLETED_COOL: "fuel_rods_depleted_cool",
    UnlockConditionKind.FUEL_DEPLETED_ICE: "fuel_rods_depleted_ice",
    UnlockConditionKind.ALL_TILES_ABOVE_TEMP: "min_grid_temp",
    UnlockConditionKind.SELL_ALL_FULL_GRID: "sell_all_full_grid",
}


@dataclass(frozen=True)
class UnlockProgress:
    current: float
    required: float
    unlocked: bool


class UpgradeManager:
    def __init__(self, balance: Optional[Balance] = None) -> None:
        self.balance = balance or get_default_balance()
        self.events: EventEmitter[GameEvent] = EventEmitter()
        self.levels: Dict[UpgradeType, int] = {u: 0 for u in UpgradeType}
        self.unlocked: Dict[SecretType, bool] = {s: False for s in SecretType}
        self.purchased: Dict[SecretType, bool] = {s: False for s in SecretType}
        self.enabled: Dict[SecretType, bool] = {s: False for s in SecretType}

    # ── Regular upgrades ─────────────────────────────────────────

    def get_upgrade_level(self, upgrade: UpgradeType) -> int:
        return self.levels.get(upgrade, 0)

    def get_upgrade_cost(self, upgrade: UpgradeType) -> float:
        return self.balance.upgrade_cost(upgrade, self.get_upgrade_level(upgrade))

    def is_max_level(self, upgrade: UpgradeType) -> bool:
        max_level = self.balance.upgrades[upgrade].max_level
        return max_level > 0 and self.get_upgrade_level(upgrade) >= max_level

    def can_purchase_upgrade(self, upgrade: UpgradeType, money: float) -> bool:
        if self.is_max_level(upgrade):
            return False
        return money >= self.get_upgrade_cost(upgrade)

    def purchase_upgrade(self, upgrade: UpgradeType, money: float) -> float:
        """Raise the upgrade one level. Returns the amount to deduct, 0 on failure."""
        if not self.can_purchase_upgrade(upgrade, money):
            return 0.0
        cost = self.get_upgrade_cost(upgrade)
        self.levels[upgrade] = self.get_upgrade_level(upgrade) + 1
        logger.debug("Purchased %s level %d for %s", upgrade.value, self.levels[upgrade], cost)
        self.events.emit(GameEvent(EventType.UPGRADE_PURCHASED, upgrade_type=upgrade, amount=cost))
        return cost

    # ── Secrets ──────────────────────────────────────────────────

    def get_secret(self, secret: SecretType) -> SecretDefinition:
        return self.balance.secrets[secret]

    def is_secret_unlocked(self, secret: SecretType) -> bool:
        return self.unlocked.get(secret, False)

    def is_secret_purchased(self, secret: SecretType) -> bool:
        return self.purchased.get(secret, False)

    def is_secret_enabled(self, secret: SecretType) -> bool:
        return self.enabled.get(secret, False)

    def get_secret_cost(self, secret: SecretType) -> float:
        return self.get_secret(secret).cost

    def can_purchase_secret(self, secret: SecretType, money: float) -> bool:
        if not self.is_secret_unlocked(secret) or self.is_secret_purchased(secret):
            return False
        return money >= self.get_secret_cost(secret)

    def purchase_secret(self, secret: SecretType, money: float) -> float:
        """Buy an unlocked secret. Returns the amount to deduct, 0 on failure."""
        if not self.can_purchase_secret(secret, money):
            return 0.0
        cost = self.get_secret_cost(secret)
        self.purchased[secret] = True
        if self.get_secret(secret).toggleable:
            self.enabled[secret] = True
        logger.debug("Purchased secret %s for %s", secret.value, cost)
        self.events.emit(GameEvent(EventType.SECRET_PURCHASED, secret_type=secret, amount=cost))
        return cost

    def toggle_secret(self, secret: SecretType, enabled: bool) -> None:
        if not self.is_secret_purchased(secret) or not self.get_secret(secret).toggleable:
            return
        self.enabled[secret] = enabled

    def get_expansion_size(self, secret: SecretType) -> Optional[int]:
        return self.get_secret(secret).expands_grid_to

    def get_refund_rate(self) -> float:
        rate = self.balance.economy.base_refund_rate
        for secret, definition in self.balance.secrets.items():
            if definition.refund_rate is not None and self.is_secret_purchased(secret):
                rate = max(rate, definition.refund_rate)
        return rate

    def get_secret_unlock_progress(self, secret: SecretType, stats: UnlockStats) -> UnlockProgress:
        condition = self.get_secret(secret).unlock
        current = float(getattr(stats, _CONDITION_STAT[condition.kind]))
        return UnlockProgress(
            current=current,
            required=condition.threshold,
            unlocked=current >= condition.threshold,
        )

    def check_secret_unlocks(self, stats: UnlockStats) -> List[SecretType]:
        """Unlock every secret whose milestone ``stats`` satisfies.

        Already-unlocked secrets are skipped, so calling this repeatedly with
        the same stats unlocks nothing new.
        """
        newly_unlocked: List[SecretType] = []
        for secret in self.balance.secrets:
            if self.is_secret_unlocked(secret):
                continue
            if self.get_secret_unlock_progress(secret, stats).unlocked:
                self.unlocked[secret] = True
                newly_unlocked.append(secret)
                logger.info("Secret unlocked: %s", secret.value)
                self.events.emit(GameEvent(EventType.SECRET_UNLOCKED, secret_type=secret))
        return newly_unlocked

    # ── State for serialization ──────────────────────────────────

    def get_upgrade_state(self) -> Dict[str, int]:
        return {u.value: level for u, level in self.levels.items()}

    def get_secret_state(self) -> Dict[str, Dict[str, bool]]:
        return {
            "unlocked": {s.value: v for s, v in self.unlocked.items()},
            "purchased": {s.value: v for s, v in self.purchased.items()},
            "enabled": {s.value: v for s, v in self.enabled.items()},
        }

    def restore_upgrade_state(self, levels: Mapping[str, object]) -> None:
        self.levels = {u: int(levels.get(u.value, 0) or 0) for u in UpgradeType}

    def restore_secret_state(self, state: Mapping[str, Mapping[str, object]]) -> None:
        unlocked = state.get("unlocked") or {}
        purchased = state.get("purchased") or {}
        enabled = state.get("enabled") or {}
        self.unlocked = {s: bool(unlocked.get(s.value, False)) for s in SecretType}
        self.purchased = {s: bool(purchased.get(s.value, False)) for s in SecretType}
        self.enabled = {s: bool(enabled.get(s.value, False)) for s in SecretType}
