from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, List, Optional, TypeVar

from heatgame.types import SecretType, StructureType, Tier, UpgradeType

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    STRUCTURE_BUILT = "structure_built"
    STRUCTURE_SOLD = "structure_sold"
    STRUCTURE_MELTED = "structure_melted"
    MELTDOWN = "meltdown"
    POWER_SOLD = "power_sold"
    FUEL_DEPLETED = "fuel_depleted"
    MANUAL_CLICK = "manual_click"
    UPGRADE_PURCHASED = "upgrade_purchased"
    SECRET_UNLOCKED = "secret_unlocked"
    SECRET_PURCHASED = "secret_purchased"
    GRID_EXPANDED = "grid_expanded"
    SELL_ALL = "sell_all"


@dataclass(frozen=True)
class GameEvent:
    type: EventType
    x: Optional[int] = None
    y: Optional[int] = None
    structure: Optional[StructureType] = None
    tier: Optional[Tier] = None
    amount: Optional[float] = None
    upgrade_type: Optional[UpgradeType] = None
    secret_type: Optional[SecretType] = None
    new_grid_size: Optional[int] = None


E = TypeVar("E")


class EventEmitter(Generic[E]):
    """Synchronous listener list shared by every component.

    Listeners run in registration order on the caller's stack; an exception
    raised by a listener propagates to whoever triggered the event.
    """

    def __init__(self) -> None:
        self._listeners: List[Callable[[E], None]] = []

    def add_listener(self, listener: Callable[[E], None]) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[E], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def listener_count(self) -> int:
        return len(self._listeners)

    def emit(self, event: E) -> None:
        logger.debug("emit %s", event)
        for listener in list(self._listeners):
            listener(event)
