import unittest

from services.config.env import SimulationConfig
from services.simulation.presets import VARIABLES_BY_ID, apply_delta, apply_scenario
from services.simulation.runner import PerturbationSpec, run_sensitivity
from tests.fixtures import make_case, sku_payload


class TestNamedVariables(unittest.TestCase):
    def test_volume_is_whole_and_floored(self):
        bc = make_case()
        volume = VARIABLES_BY_ID["volume"]
        self.assertEqual(apply_delta(bc, volume, 0.15).skus[0].sales.base_annual_volume_pieces, 11500.0)
        self.assertEqual(apply_delta(bc, volume, 0.00003).skus[0].sales.base_annual_volume_pieces, 10000.0)
        self.assertEqual(apply_delta(bc, volume, -2.0).skus[0].sales.base_annual_volume_pieces, 0.0)

    def test_oee_capped_at_one(self):
        moved = apply_delta(make_case(), VARIABLES_BY_ID["oee"], 0.5)
        self.assertEqual(moved.skus[0].ops.oee, 1.0)

    def test_resin_price_moves_resin_and_masterbatch(self):
        moved = apply_delta(make_case(), VARIABLES_BY_ID["resinPrice"], 0.1)
        self.assertAlmostEqual(moved.skus[0].costing.resin_rs_per_kg, 88.0)
        self.assertAlmostEqual(moved.skus[0].costing.mb_rs_per_kg, 132.0)

    def test_applies_to_every_sku(self):
        bc = make_case(skus=[sku_payload("a"), sku_payload("b")])
        moved = apply_delta(bc, VARIABLES_BY_ID["machineCost"], 0.1)
        self.assertEqual([s.ops.cost_of_new_machine for s in moved.skus], [2200000.0, 2200000.0])

    def test_named_variable_in_sensitivity_batch(self):
        resp = run_sensitivity(make_case(), [PerturbationSpec("conversionCost", (0.1,))],
                               metrics=["EBITDA_Y1"], sim=SimulationConfig(max_workers=1))
        self.assertIsNone(resp.results[0].error)
        # blended conversion cost is 25,800 in year 1
        self.assertAlmostEqual(resp.results[0].metrics["EBITDA_Y1"], resp.baseline["EBITDA_Y1"] - 2580.0, places=4)


class TestScenarioAdjuster(unittest.TestCase):
    def test_percentage_levers(self):
        bc = make_case()
        out = apply_scenario(bc, volume_pct=10, conversion_recovery_pct=20, conversion_cost_pct=-10)
        sku = out.skus[0]
        self.assertEqual(sku.sales.base_annual_volume_pieces, 11000.0)
        self.assertAlmostEqual(sku.sales.conversion_recovery_rs_per_piece, 0.6)
        self.assertAlmostEqual(sku.plant_master.conversion_per_kg, 23.22)

    def test_zero_leaves_case_alone(self):
        bc = make_case()
        self.assertIs(apply_scenario(bc), bc)

    def test_working_capital_days(self):
        unset = apply_scenario(make_case(), wc_days_pct=50)
        self.assertEqual(unset.skus[0].ops.working_capital_days, 90.0)
        explicit = make_case(skus=[sku_payload(ops={"workingCapitalDays": 30})])
        self.assertEqual(apply_scenario(explicit, wc_days_pct=50).skus[0].ops.working_capital_days, 45.0)
        zero = make_case(skus=[sku_payload(ops={"workingCapitalDays": 0})])
        self.assertEqual(apply_scenario(zero, wc_days_pct=-10).skus[0].ops.working_capital_days, 54.0)


if __name__ == '__main__':
    unittest.main()
