"""Serialization and save-code export/import for game state.

Serialize: JSON string with grid, grid size, money, game stats, physics stats,
upgrade levels and the secret tri-state.
Deserialize: tolerant of older saves (camelCase keys, ``demolishCount``,
physics stats stored inside ``stats``, unknown structures, missing fields).
Save codes: base64-JSON for plain export, AES-256-CBC for encrypted export.
Import accepts raw JSON, base64-JSON and encrypted codes.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import TYPE_CHECKING, Any, List, Mapping, Optional

from Crypto.Cipher import AES
from Crypto.Hash import SHA256
from Crypto.Protocol.KDF import PBKDF2
from Crypto.Random import get_random_bytes
from Crypto.Util.Padding import pad, unpad

from heatgame.physics import PhysicsStats
from heatgame.store import GameStats
from heatgame.types import Cell, StructureType, Tier

if TYPE_CHECKING:
    from heatgame.balance import Balance
    from heatgame.game import HeatGame

logger = logging.getLogger(__name__)

SAVE_VERSION = 2

# ── Save-code encryption parameters ──
_PASS_PHRASE = b"heatgame-reactor-core"
_SALT_VALUE = b"reactor#salt-v2!"
_KEY_SIZE = 32  # bytes, AES-256
_PASSWORD_ITERATIONS = 1000

# Older saves used camelCase keys; each field lists the names to try in order.
_GAME_STAT_KEYS = {
    "total_money_earned": ("total_money_earned", "totalMoneyEarned"),
    "tick_count": ("tick_count", "tickCount"),
    "sell_count": ("sell_count", "sellCount", "demolishCount"),
    "manual_clicks": ("manual_clicks", "manualClicks"),
    "structures_built": ("structures_built", "structuresBuilt"),
    "sell_all_full_grid": ("sell_all_full_grid", "sellAllFullGrid"),
}

_PHYSICS_STAT_KEYS = {
    "total_power_generated": ("total_power_generated", "totalPowerGenerated"),
    "total_money_earned": ("total_money_earned", "totalMoneyEarned"),
    "fuel_rods_depleted": ("fuel_rods_depleted", "fuelRodsDepleted"),
    "fuel_rods_depleted_cool": ("fuel_rods_depleted_cool", "fuelRodsDepletedCool"),
    "fuel_rods_depleted_ice": ("fuel_rods_depleted_ice", "fuelRodsDepletedIce"),
    "ticks_at_high_heat": ("ticks_at_high_heat", "ticksAtHighHeat"),
    "meltdown_count": ("meltdown_count", "meltdownCount"),
}


def _lookup(data: Mapping[str, Any], keys, default: Any = None) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return default


def _cell_to_dict(cell: Cell) -> dict:
    return {
        "x": cell.x,
        "y": cell.y,
        "structure": cell.structure.value,
        "tier": int(cell.tier),
        "heat": cell.heat,
        "power": cell.power,
        "lifetime": cell.lifetime,
        "is_exotic": cell.is_exotic,
        "max_temp_reached": cell.max_temp_reached,
    }


def _cell_from_dict(x: int, y: int, raw: Any) -> Cell:
    if not isinstance(raw, Mapping):
        return Cell(x=x, y=y)

    name = raw.get("structure", StructureType.EMPTY.value)
    try:
        structure = StructureType(name)
    except ValueError:
        logger.warning("Unknown structure %r at (%d, %d), loading as empty", name, x, y)
        structure = StructureType.EMPTY

    try:
        tier = Tier(int(raw.get("tier", 1)))
    except (TypeError, ValueError):
        logger.warning("Invalid tier %r at (%d, %d), using T1", raw.get("tier"), x, y)
        tier = Tier.T1

    return Cell(
        x=x,
        y=y,
        structure=structure,
        tier=tier,
        heat=max(0.0, float(raw.get("heat", 0.0) or 0.0)),
        power=max(0.0, float(raw.get("power", 0.0) or 0.0)),
        lifetime=max(0, int(raw.get("lifetime", 0) or 0)),
        is_exotic=bool(_lookup(raw, ("is_exotic", "isExotic"), False)),
        max_temp_reached=float(_lookup(raw, ("max_temp_reached", "maxTempReached"), 0.0)),
    )


def build_save_dict(game: HeatGame) -> dict:
    """Build a JSON-serializable dict from game state."""
    stats = game.store.stats
    physics = game.physics.get_stats()
    return {
        "version": SAVE_VERSION,
        "grid": [[_cell_to_dict(cell) for cell in row] for row in game.grid.get_snapshot()],
        "grid_size": game.grid.get_size(),
        "money": game.store.money,
        "stats": {name: getattr(stats, name) for name in _GAME_STAT_KEYS},
        "physics_stats": {name: getattr(physics, name) for name in _PHYSICS_STAT_KEYS},
        "upgrades": {"levels": game.upgrades.get_upgrade_state()},
        "secrets": game.upgrades.get_secret_state(),
    }


def _restore_grid(game: HeatGame, data: Mapping[str, Any]) -> None:
    rows = data.get("grid") or []
    size = int(_lookup(data, ("grid_size", "gridSize"), len(rows) or game.balance.core.initial_grid_size))
    size = max(1, min(size, game.balance.core.max_grid_size))
    cells: List[List[Cell]] = []
    for y, row in enumerate(rows[:size]):
        if not isinstance(row, list):
            row = []
        cells.append([_cell_from_dict(x, y, raw) for x, raw in enumerate(row[:size])])
    game.grid.restore_from_state(cells, size)


def _restore_stats(game: HeatGame, data: Mapping[str, Any]) -> None:
    raw_stats = data.get("stats") or {}
    game.store.stats = GameStats(
        total_money_earned=float(_lookup(raw_stats, _GAME_STAT_KEYS["total_money_earned"], 0.0)),
        tick_count=int(_lookup(raw_stats, _GAME_STAT_KEYS["tick_count"], 0)),
        sell_count=int(_lookup(raw_stats, _GAME_STAT_KEYS["sell_count"], 0)),
        manual_clicks=int(_lookup(raw_stats, _GAME_STAT_KEYS["manual_clicks"], 0)),
        structures_built=int(_lookup(raw_stats, _GAME_STAT_KEYS["structures_built"], 0)),
        sell_all_full_grid=bool(_lookup(raw_stats, _GAME_STAT_KEYS["sell_all_full_grid"], False)),
    )

    # Older saves kept physics counters inside "stats".
    raw_physics = _lookup(data, ("physics_stats", "physicsStats"), raw_stats)
    game.physics.set_stats(PhysicsStats(
        total_power_generated=float(_lookup(raw_physics, _PHYSICS_STAT_KEYS["total_power_generated"], 0.0)),
        total_money_earned=float(_lookup(raw_physics, _PHYSICS_STAT_KEYS["total_money_earned"], 0.0)),
        fuel_rods_depleted=int(_lookup(raw_physics, _PHYSICS_STAT_KEYS["fuel_rods_depleted"], 0)),
        fuel_rods_depleted_cool=int(_lookup(raw_physics, _PHYSICS_STAT_KEYS["fuel_rods_depleted_cool"], 0)),
        fuel_rods_depleted_ice=int(_lookup(raw_physics, _PHYSICS_STAT_KEYS["fuel_rods_depleted_ice"], 0)),
        ticks_at_high_heat=int(_lookup(raw_physics, _PHYSICS_STAT_KEYS["ticks_at_high_heat"], 0)),
        meltdown_count=int(_lookup(raw_physics, _PHYSICS_STAT_KEYS["meltdown_count"], 0)),
    ))


def restore_game(data: Mapping[str, Any], balance: Optional[Balance] = None) -> HeatGame:
    """Rebuild a game from a save dict, defaulting anything missing."""
    from heatgame.game import HeatGame

    game = HeatGame(initial_money=0.0, balance=balance)
    _restore_grid(game, data)
    game.store.money = float(data.get("money", 0.0) or 0.0)
    _restore_stats(game, data)

    upgrades = data.get("upgrades") or {}
    levels = upgrades.get("levels", upgrades) if isinstance(upgrades, Mapping) else {}
    game.upgrades.restore_upgrade_state(levels if isinstance(levels, Mapping) else {})
    secrets = data.get("secrets") or {}
    game.upgrades.restore_secret_state(secrets if isinstance(secrets, Mapping) else {})
    return game


def serialize_game(game: HeatGame) -> str:
    return json.dumps(build_save_dict(game))


def deserialize_game(text: str, balance: Optional[Balance] = None) -> HeatGame:
    """Parse a serialized game.

    Raises ``ValueError`` when ``text`` is not a JSON object; every other
    defect in the data falls back to defaults.
    """
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"save data must be a JSON object, got {type(data).__name__}")
    try:
        return restore_game(data, balance)
    except (AttributeError, KeyError, TypeError) as e:
        raise ValueError(f"malformed save data: {e}") from e


# ── Save codes ───────────────────────────────────────────────────────


def _derive_key() -> bytes:
    return PBKDF2(
        _PASS_PHRASE, _SALT_VALUE, dkLen=_KEY_SIZE,
        count=_PASSWORD_ITERATIONS, hmac_hash_module=SHA256,
    )


def _encrypt(plaintext: str) -> bytes:
    iv = get_random_bytes(AES.block_size)
    cipher = AES.new(_derive_key(), AES.MODE_CBC, iv)
    return iv + cipher.encrypt(pad(plaintext.encode("utf-8"), AES.block_size))


def _decrypt(data: bytes) -> Optional[str]:
    if len(data) < 2 * AES.block_size or len(data) % AES.block_size:
        return None
    iv, body = data[:AES.block_size], data[AES.block_size:]
    cipher = AES.new(_derive_key(), AES.MODE_CBC, iv)
    try:
        return unpad(cipher.decrypt(body), AES.block_size).decode("utf-8")
    except (ValueError, UnicodeDecodeError) as e:
        logger.warning("Save code decryption failed: %s", e)
        return None


def export_save_code(game: HeatGame, encrypted: bool = False) -> str:
    text = json.dumps(build_save_dict(game), separators=(",", ":"))
    raw = _encrypt(text) if encrypted else text.encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def _looks_like_save(data: Any) -> bool:
    return isinstance(data, dict) and any(key in data for key in ("version", "grid", "money"))


def _try_import_data(encoded: str) -> Optional[dict]:
    """Try to parse import data in multiple formats.

    1. Raw JSON dict (serialize() output)
    2. base64 -> JSON dict (plain save code)
    3. base64 -> AES-256-CBC ciphertext -> JSON dict (encrypted save code)
    """
    encoded = encoded.strip()
    try:
        data = json.loads(encoded)
        if _looks_like_save(data):
            return data
    except ValueError:
        pass

    try:
        raw = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        return None

    try:
        data = json.loads(raw.decode("utf-8"))
        if _looks_like_save(data):
            return data
    except (UnicodeDecodeError, ValueError):
        pass

    plaintext = _decrypt(raw)
    if plaintext is None:
        return None
    try:
        data = json.loads(plaintext)
    except ValueError:
        return None
    return data if _looks_like_save(data) else None


def import_save_code(encoded: str, balance: Optional[Balance] = None) -> Optional[HeatGame]:
    data = _try_import_data(encoded)
    if data is None:
        logger.warning("Could not parse save code (not a valid save)")
        return None
    try:
        game = restore_game(data, balance)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        logger.warning("Error restoring save data: %s", e)
        return None
    logger.info("Imported save: grid %dx%d, money %s", game.get_grid_size(), game.get_grid_size(), game.get_money())
    return game
