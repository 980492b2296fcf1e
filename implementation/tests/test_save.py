import base64
import json
import unittest

from heatgame.game import HeatGame
from heatgame.save import export_save_code, import_save_code
from heatgame.types import SecretType, StructureType, Tier, UpgradeType


def build_sample_game():
    game = HeatGame(initial_money=5000)
    game.build(2, 2, StructureType.FUEL_ROD)
    game.build(8, 8, StructureType.HEAT_EXCHANGER, Tier.T2)
    game.build(3, 2, StructureType.TURBINE)
    game.build(3, 3, StructureType.SUBSTATION)
    game.purchase_upgrade(UpgradeType.FUEL_LIFETIME)
    game.upgrades.unlocked[SecretType.SALVAGE] = True
    for _ in range(5):
        game.tick()
    game.manual_generate()
    return game


def cell_fields(game):
    return [
        (c.structure, c.tier, c.heat, c.power, c.lifetime)
        for row in game.get_grid_snapshot()
        for c in row
    ]


class TestSerialization(unittest.TestCase):
    def test_round_trip(self):
        game = build_sample_game()
        restored = HeatGame.deserialize(game.serialize())

        self.assertEqual(restored.get_money(), game.get_money())
        self.assertEqual(restored.get_tick_count(), 5)
        self.assertEqual(restored.get_grid_size(), game.get_grid_size())
        self.assertEqual(cell_fields(restored), cell_fields(game))
        self.assertEqual(restored.get_stats(), game.get_stats())
        self.assertEqual(restored.get_upgrade_level(UpgradeType.FUEL_LIFETIME), 1)
        self.assertTrue(restored.is_secret_unlocked(SecretType.SALVAGE))
        self.assertFalse(restored.is_secret_purchased(SecretType.SALVAGE))

    def test_round_trip_expanded_grid(self):
        game = HeatGame(initial_money=20000)
        game.upgrades.unlocked[SecretType.REACTOR_EXPANSION_1] = True
        game.purchase_secret(SecretType.REACTOR_EXPANSION_1)
        game.build(16, 16, StructureType.INSULATOR)
        restored = HeatGame.deserialize(game.serialize())
        self.assertEqual(restored.get_grid_size(), 17)
        self.assertIs(restored.get_cell(16, 16).structure, StructureType.INSULATOR)

    def test_serialized_layout(self):
        data = json.loads(build_sample_game().serialize())
        for key in ("version", "grid", "grid_size", "money", "stats", "physics_stats", "upgrades", "secrets"):
            self.assertIn(key, data)
        self.assertEqual(data["grid"][2][2]["structure"], "fuel_rod")
        self.assertEqual(data["grid"][8][8]["structure"], "heat_exchanger")
        self.assertEqual(data["grid"][8][8]["tier"], 2)
        self.assertEqual(data["upgrades"]["levels"]["fuel_lifetime"], 1)

    def test_legacy_camel_case_save(self):
        legacy = {
            "grid": [[
                {"x": 0, "y": 0, "structure": "fuel_rod", "tier": 1, "heat": 55.5,
                 "power": 0, "lifetime": 7, "isExotic": True, "maxTempReached": 80},
                {"x": 1, "y": 0, "structure": "reactor_core", "tier": 1, "heat": 12},
            ]],
            "gridSize": 16,
            "money": 321,
            "stats": {
                "totalMoneyEarned": 900,
                "tickCount": 42,
                "demolishCount": 7,
                "totalPowerGenerated": 12.5,
                "fuelRodsDepleted": 3,
                "ticksAtHighHeat": 4,
            },
            "upgrades": {"levels": {"tick_speed": 2}},
            "secrets": {"unlocked": {"overclock": True}},
        }
        game = HeatGame.deserialize(json.dumps(legacy))

        self.assertEqual(game.get_money(), 321)
        self.assertEqual(game.get_tick_count(), 42)
        stats = game.get_stats()
        self.assertEqual(stats.sell_count, 7)
        self.assertEqual(stats.total_power_generated, 12.5)
        self.assertEqual(stats.fuel_rods_depleted, 3)
        self.assertEqual(stats.ticks_at_high_heat, 4)
        self.assertEqual(stats.manual_clicks, 0)

        rod = game.get_cell(0, 0)
        self.assertIs(rod.structure, StructureType.FUEL_ROD)
        self.assertTrue(rod.is_exotic)
        self.assertEqual(rod.max_temp_reached, 80)
        unknown = game.get_cell(1, 0)
        self.assertIs(unknown.structure, StructureType.EMPTY)
        self.assertEqual(unknown.heat, 12)
        self.assertIs(game.get_cell(15, 15).structure, StructureType.EMPTY)

        self.assertEqual(game.get_upgrade_level(UpgradeType.TICK_SPEED), 2)
        self.assertTrue(game.is_secret_unlocked(SecretType.OVERCLOCK))
        self.assertFalse(game.is_secret_purchased(SecretType.OVERCLOCK))

    def test_minimal_save_defaults_everything(self):
        game = HeatGame.deserialize("{}")
        self.assertEqual(game.get_grid_size(), 16)
        self.assertEqual(game.get_money(), 0)
        self.assertEqual(game.get_filled_cell_count(), 0)

    def test_invalid_tier_falls_back_to_t1(self):
        save = {"grid": [[{"structure": "ventilator", "tier": 9}]], "grid_size": 16}
        game = HeatGame.deserialize(json.dumps(save))
        self.assertEqual(game.get_cell(0, 0).tier, Tier.T1)

    def test_not_json_raises_value_error(self):
        with self.assertRaises(ValueError):
            HeatGame.deserialize("definitely not json")
        with self.assertRaises(ValueError):
            HeatGame.deserialize("[1, 2, 3]")


class TestSaveCodes(unittest.TestCase):
    def setUp(self):
        self.game = build_sample_game()

    def test_plain_code_is_base64_json(self):
        code = export_save_code(self.game)
        data = json.loads(base64.b64decode(code))
        self.assertEqual(data["money"], self.game.get_money())

    def test_plain_code_import(self):
        restored = import_save_code(export_save_code(self.game))
        self.assertIsNotNone(restored)
        self.assertEqual(cell_fields(restored), cell_fields(self.game))

    def test_encrypted_code_import(self):
        code = export_save_code(self.game, encrypted=True)
        self.assertNotIn(b"money", base64.b64decode(code))
        restored = import_save_code(code)
        self.assertIsNotNone(restored)
        self.assertEqual(restored.get_money(), self.game.get_money())
        self.assertEqual(restored.get_tick_count(), self.game.get_tick_count())

    def test_raw_json_import(self):
        restored = import_save_code(self.game.serialize())
        self.assertEqual(restored.get_money(), self.game.get_money())

    def test_garbage_returns_none(self):
        self.assertIsNone(import_save_code("not a save code!"))
        self.assertIsNone(import_save_code(base64.b64encode(b"hello world").decode()))
        self.assertIsNone(import_save_code(base64.b64encode(bytes(64)).decode()))


if __name__ == "__main__":
    unittest.main()
