import json
import math
import tempfile
import unittest
from pathlib import Path

from heatgame.balance import get_default_balance, load_balance
from heatgame.events import EventEmitter, EventType, GameEvent
from heatgame.types import MeltdownPolicy, SecretType, StructureType, Tier, UnlockConditionKind, UpgradeType


class TestBalance(unittest.TestCase):
    def setUp(self):
        self.balance = get_default_balance()

    def test_core_settings(self):
        core = self.balance.core
        self.assertEqual(core.initial_grid_size, 16)
        self.assertEqual(core.max_grid_size, 20)
        self.assertEqual(core.ambient_temperature, 20)
        self.assertIs(core.meltdown_policy, MeltdownPolicy.MELT)

    def test_every_type_is_defined(self):
        self.assertEqual(set(self.balance.structures), set(StructureType))
        self.assertEqual(set(self.balance.upgrades), set(UpgradeType))
        self.assertEqual(set(self.balance.secrets), set(SecretType))

    def test_structure_costs_scale_by_tier(self):
        self.assertEqual(self.balance.structure_cost(StructureType.FUEL_ROD, Tier.T1), 10)
        self.assertEqual(self.balance.structure_cost(StructureType.FUEL_ROD, Tier.T4), 10000)
        self.assertEqual(self.balance.structure_cost(StructureType.INSULATOR, Tier.T3), 800)

    def test_fuel_formulas(self):
        self.assertEqual(self.balance.fuel_lifetime(Tier.T1), 20)
        self.assertEqual(self.balance.fuel_lifetime(Tier.T2, 3), 230)
        self.assertEqual(self.balance.fuel_heat_generation(Tier.T1), 100)
        self.assertEqual(self.balance.fuel_heat_generation(Tier.T2, 2), 1010)
        self.assertEqual(self.balance.turbine_max_heat_consumption(Tier.T3), 1000)

    def test_residues_and_melt_targets(self):
        self.assertIs(self.balance.structure(StructureType.FUEL_ROD).melts_into, StructureType.PLASMA)
        self.assertIs(self.balance.structure(StructureType.ICE_CUBE).melts_into, StructureType.WATER)
        self.assertIs(self.balance.structure(StructureType.TURBINE).melts_into, StructureType.MOLTEN_SLAG)
        for residue in (StructureType.MOLTEN_SLAG, StructureType.PLASMA, StructureType.WATER):
            stats = self.balance.structure(residue)
            self.assertFalse(stats.buildable)
            self.assertTrue(math.isinf(stats.melt_temp))
            self.assertGreater(stats.lifetime, 0)

    def test_melt_temp_upgrade_table(self):
        self.assertIs(self.balance.structure(StructureType.SUBSTATION).melt_temp_upgrade, UpgradeType.MELT_TEMP_SUBSTATION)
        self.assertIsNone(self.balance.structure(StructureType.VOID_CELL).melt_temp_upgrade)

    def test_custom_balance_file(self):
        raw = json.loads((Path(__file__).resolve().parents[1] / "src" / "heatgame" / "balance_data.json").read_text())
        raw["core"]["meltdown_policy"] = "catastrophic"
        raw["core"]["initial_grid_size"] = 8
        raw["secrets"]["salvage"]["unlock"] = {"kind": "demolish_count", "threshold": 3}
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "balance.json"
            path.write_text(json.dumps(raw))
            balance = load_balance(path)
        self.assertIs(balance.core.meltdown_policy, MeltdownPolicy.CATASTROPHIC)
        self.assertEqual(balance.core.initial_grid_size, 8)
        self.assertIs(balance.secrets[SecretType.SALVAGE].unlock.kind, UnlockConditionKind.SELL_COUNT)

    def test_missing_structure_is_rejected(self):
        raw = json.loads((Path(__file__).resolve().parents[1] / "src" / "heatgame" / "balance_data.json").read_text())
        del raw["structures"]["plasma"]
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "balance.json"
            path.write_text(json.dumps(raw))
            with self.assertRaises(ValueError):
                load_balance(path)


class TestEventEmitter(unittest.TestCase):
    def test_listeners_run_in_order(self):
        emitter = EventEmitter()
        seen = []
        emitter.add_listener(lambda e: seen.append(("a", e.type)))
        emitter.add_listener(lambda e: seen.append(("b", e.type)))
        emitter.emit(GameEvent(EventType.MELTDOWN))
        self.assertEqual(seen, [("a", EventType.MELTDOWN), ("b", EventType.MELTDOWN)])

    def test_remove_listener(self):
        emitter = EventEmitter()
        seen = []
        emitter.add_listener(seen.append)
        emitter.remove_listener(seen.append)
        emitter.remove_listener(print)
        self.assertEqual(emitter.listener_count(), 0)
        emitter.emit(GameEvent(EventType.SELL_ALL, amount=3))
        self.assertEqual(seen, [])


if __name__ == "__main__":
    unittest.main()
