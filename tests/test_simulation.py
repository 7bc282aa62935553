import threading
import unittest
from collections import Counter

from services.config.env import CalcConfig, SimulationConfig
from services.forecasting.errors import InputError, PathError
from services.simulation.metrics import (
    DEFAULT_METRICS,
    OutcomeMetric,
    extract_metrics,
    parse_metrics,
)
from services.simulation.paths import ParameterKey, perturb, resolve_path, try_resolve_path
from services.simulation.runner import (
    BUDGET_EXCEEDED,
    PerturbationSpec,
    ScenarioDefinition,
    run_baseline,
    run_scenarios,
    run_sensitivity,
)
from services.forecasting.engine import calculate
from tests.fixtures import make_case, sku_payload

SEQUENTIAL = SimulationConfig(max_workers=1, max_runs=500)
DELTAS = (-0.2, -0.1, 0.0, 0.1, 0.2)


def _two_skus():
    return make_case(skus=[sku_payload("a"), sku_payload("b", sales={"baseAnnualVolumePieces": 30000})])


class TestPaths(unittest.TestCase):
    def test_resolves_camel_and_snake_spellings(self):
        camel = resolve_path("skus.0.costing.resinRsPerKg")
        snake = resolve_path("skus.0.costing.resin_rs_per_kg")
        self.assertEqual(camel, snake)
        self.assertIs(camel.key, ParameterKey.COSTING_RESIN_RS_PER_KG)
        self.assertEqual(camel.sku_index, 0)
        self.assertEqual(camel.path, "skus.0.costing.resin_rs_per_kg")

    def test_wildcard_and_finance(self):
        lens = resolve_path("skus.*.ops.oee")
        self.assertIsNone(lens.sku_index)
        self.assertEqual(lens.get(_two_skus()), [0.85, 0.85])
        fin = resolve_path("finance.debtPct")
        self.assertIs(fin.key, ParameterKey.FINANCE_DEBT_PCT)
        self.assertEqual(fin.get(make_case()), [0.7])

    def test_unknown_paths_fail_up_front(self):
        for bad in ("skus.0.costing.bogus", "skus.x.ops.oee", "skus.0.npd.machineName", "finance", "plant.oee", ""):
            with self.subTest(path=bad):
                with self.assertRaises(PathError):
                    resolve_path(bad)
                self.assertIsNone(try_resolve_path(bad))

    def test_index_out_of_range(self):
        lens = resolve_path("skus.5.ops.oee")
        with self.assertRaises(PathError):
            lens.get(make_case())
        with self.assertRaises(InputError):
            lens.set(make_case(), 0.5)

    def test_update_copies_on_write(self):
        bc = _two_skus()
        new = resolve_path("skus.0.costing.resinRsPerKg").set(bc, 100.0)
        self.assertEqual(new.skus[0].costing.resin_rs_per_kg, 100.0)
        self.assertEqual(bc.skus[0].costing.resin_rs_per_kg, 80.0)
        self.assertIs(new.skus[1], bc.skus[1])
        self.assertIs(new.skus[0].ops, bc.skus[0].ops)
        self.assertIs(new.finance, bc.finance)

    def test_int_fields_round_and_missing_group_is_created(self):
        bc = make_case()
        self.assertEqual(resolve_path("skus.0.npd.cavities").set(bc, 4.6).skus[0].npd.cavities, 5)
        alt = resolve_path("skus.0.altConversion.machineRatePerDayRs").set(bc, 1632)
        self.assertEqual(alt.skus[0].alt_conversion.machine_rate_per_day_rs, 1632.0)
        self.assertIsNone(bc.skus[0].alt_conversion)

    def test_perturb(self):
        self.assertAlmostEqual(perturb(10.0, 0.1), 11.0)
        self.assertAlmostEqual(perturb(10.0, 0.1, percent=False), 10.1)
        self.assertIsNone(perturb(None, 0.1))


class TestMetrics(unittest.TestCase):
    def test_every_key_present(self):
        values = extract_metrics(calculate(make_case()))
        self.assertEqual(set(values), {m.value for m in OutcomeMetric})
        for m in DEFAULT_METRICS:
            self.assertIn(m.value, values)
        self.assertIsNone(values["REVENUE_Y1"])

    def test_values(self):
        calc = calculate(make_case())
        values = extract_metrics(calc, list(OutcomeMetric))
        self.assertAlmostEqual(values["REVENUE_Y1"], 115568.0, places=4)
        self.assertAlmostEqual(values["PNL_Y1"], calc.pnl[0].pat)
        self.assertAlmostEqual(values["PNL_Y5"], calc.pnl[4].pat)
        self.assertAlmostEqual(values["PNL_TOTAL"], sum(y.pat for y in calc.pnl))
        self.assertAlmostEqual(values["NPV"], calc.returns.npv)

    def test_year_five_outside_horizon(self):
        calc = calculate(make_case(), CalcConfig(years=3))
        self.assertEqual(extract_metrics(calc, ["PNL_Y5"])["PNL_Y5"], 0.0)

    def test_parse_metrics(self):
        self.assertEqual(parse_metrics(["npv", OutcomeMetric.IRR]), [OutcomeMetric.NPV, OutcomeMetric.IRR])
        with self.assertRaises(ValueError):
            parse_metrics(["bogus"])


class TestSensitivity(unittest.TestCase):
    def test_one_result_per_spec_and_delta(self):
        specs = [
            PerturbationSpec("volume", DELTAS),
            PerturbationSpec("skus.*.costing.resinRsPerKg", DELTAS),
            PerturbationSpec("finance.debtPct", (-0.1, 0.0, 0.1)),
        ]
        resp = run_sensitivity(make_case(), specs, sim=SEQUENTIAL)
        self.assertEqual(len(resp.results), 13)
        counts = Counter(r.variable_id for r in resp.results)
        self.assertEqual(counts, {"volume": 5, "skus.*.costing.resinRsPerKg": 5, "finance.debtPct": 3})
        self.assertEqual([r.delta for r in resp.results[:5]], list(DELTAS))
        self.assertEqual(resp.errors, [])
        self.assertFalse(resp.cancelled)

    def test_zero_delta_reproduces_baseline(self):
        bc = make_case()
        resp = run_sensitivity(bc, [PerturbationSpec("skus.0.costing.resinRsPerKg", (0.0,))], sim=SEQUENTIAL)
        self.assertEqual(resp.results[0].metrics, run_baseline(bc))
        self.assertEqual(resp.baseline, run_baseline(bc))

    def test_resin_increase_passes_through_to_price(self):
        resp = run_sensitivity(make_case(), [PerturbationSpec("skus.0.costing.resinRsPerKg", (0.1,))],
                               metrics=["REVENUE_Y1", "PNL_Y1", "NPV"], sim=SEQUENTIAL)
        item = resp.results[0].metrics
        # resin is priced through: revenue and material cost move together
        self.assertGreater(item["REVENUE_Y1"], resp.baseline["REVENUE_Y1"])
        self.assertAlmostEqual(item["PNL_Y1"], resp.baseline["PNL_Y1"], delta=1e-6)
        # the extra revenue ties up more working capital
        self.assertLess(item["NPV"], resp.baseline["NPV"])

    def test_unresolved_path_reports_baseline_and_tag(self):
        bc = make_case()
        resp = run_sensitivity(bc, [PerturbationSpec("skus.0.costing.bogus", (0.1, 0.2))], sim=SEQUENTIAL)
        self.assertEqual(len(resp.results), 2)
        for item in resp.results:
            self.assertEqual(item.metrics, resp.baseline)
            self.assertEqual(item.error, "unresolved_path:skus.0.costing.bogus")
        self.assertEqual(len(resp.errors), 2)
        self.assertEqual(resp.errors[0].ref, "skus.0.costing.bogus")

    def test_failing_unit_does_not_abort_batch(self):
        specs = [PerturbationSpec("skus.0.ops.oee", (1.0, 0.05))]
        resp = run_sensitivity(make_case(), specs, sim=SEQUENTIAL)
        self.assertEqual(len(resp.results), 2)
        self.assertEqual(resp.results[0].error, "invalid_value:skus.0.ops.oee")
        self.assertIsNone(resp.results[0].metrics["NPV"])
        self.assertIsNone(resp.results[1].error)
        self.assertIsNotNone(resp.results[1].metrics["NPV"])

    def test_budget(self):
        resp = run_sensitivity(make_case(), [PerturbationSpec("volume", (0.1, 0.2, 0.3))],
                               sim=SimulationConfig(max_workers=1, max_runs=2))
        self.assertEqual([r.error for r in resp.results], [None, None, BUDGET_EXCEEDED])
        self.assertEqual(resp.errors[0].error, BUDGET_EXCEEDED)

    def test_cancellation(self):
        cancel = threading.Event()
        cancel.set()
        resp = run_sensitivity(make_case(), [PerturbationSpec("volume", DELTAS)], sim=SEQUENTIAL, cancel=cancel)
        self.assertTrue(resp.cancelled)
        self.assertEqual(resp.results, [])

    def test_parallel_matches_sequential(self):
        specs = [PerturbationSpec("volume", DELTAS), PerturbationSpec("finance.costOfDebtPct", DELTAS)]
        seq = run_sensitivity(make_case(), specs, sim=SEQUENTIAL)
        par = run_sensitivity(make_case(), specs, sim=SimulationConfig(max_workers=2, max_runs=500))
        self.assertEqual([(r.variable_id, r.delta, r.metrics) for r in par.results],
                         [(r.variable_id, r.delta, r.metrics) for r in seq.results])

    def test_baseline_override(self):
        fake = {"NPV": 1.0}
        resp = run_sensitivity(make_case(), [PerturbationSpec("volume", (0.1,))], baseline_override=fake, sim=SEQUENTIAL)
        self.assertEqual(resp.baseline, fake)

    def test_spec_parsing(self):
        spec = PerturbationSpec.from_dict({"variableId": "volume", "deltas": [0.1, -0.1]})
        self.assertEqual(spec, PerturbationSpec("volume", (0.1, -0.1), True))
        self.assertFalse(PerturbationSpec.from_dict({"variable_id": "x", "deltas": [1], "percent": False}).percent)
        for bad in ({"deltas": [0.1]}, {"variableId": "volume", "deltas": "0.1"}, {"variableId": "v", "deltas": ["a"]}, []):
            with self.subTest(bad=bad):
                with self.assertRaises(InputError):
                    PerturbationSpec.from_dict(bad)

    def test_response_to_dict(self):
        d = run_sensitivity(make_case(), [PerturbationSpec("volume", (0.1,))], sim=SEQUENTIAL).to_dict()
        self.assertEqual(set(d), {"baseline", "results", "errors", "cancelled"})
        self.assertEqual(d["results"][0]["variableId"], "volume")


class TestScenarios(unittest.TestCase):
    def test_absolute_overrides(self):
        scenarios = [
            ScenarioDefinition("s1", "Double volume", {"skus.0.sales.baseAnnualVolumePieces": 20000}),
            ScenarioDefinition("s2", "No change", {}),
        ]
        resp = run_scenarios(make_case(), scenarios, metrics=["REVENUE_Y1"], sim=SEQUENTIAL)
        self.assertEqual([r.scenario_id for r in resp.results], ["s1", "s2"])
        self.assertAlmostEqual(resp.results[0].metrics["REVENUE_Y1"], 2 * resp.baseline["REVENUE_Y1"])
        self.assertEqual(resp.results[1].metrics, resp.baseline)

    def test_unresolved_override_is_skipped_and_tagged(self):
        scenario = ScenarioDefinition("s", "Partial", {"finance.bogus": 1, "skus.*.sales.baseAnnualVolumePieces": 20000})
        resp = run_scenarios(make_case(), [scenario], metrics=["REVENUE_Y1"], sim=SEQUENTIAL)
        item = resp.results[0]
        self.assertEqual(item.error, "unresolved_path:finance.bogus")
        self.assertAlmostEqual(item.metrics["REVENUE_Y1"], 2 * resp.baseline["REVENUE_Y1"])
        self.assertEqual(resp.errors[0].ref, "s")

    def test_non_numeric_override_is_an_error_row(self):
        resp = run_scenarios(make_case(), [ScenarioDefinition("s", "Bad", {"finance.debtPct": "high"})], sim=SEQUENTIAL)
        self.assertEqual(resp.results[0].error, "invalid_value:finance.debtPct")
        self.assertIsNone(resp.results[0].metrics["NPV"])

    def test_scenario_parsing(self):
        s = ScenarioDefinition.from_dict({"id": "x", "name": "X", "overrides": {"finance.debtPct": 0.5}})
        self.assertEqual(s.overrides, {"finance.debtPct": 0.5})
        with self.assertRaises(InputError):
            ScenarioDefinition.from_dict({"id": "x", "overrides": [1, 2]})


if __name__ == '__main__':
    unittest.main()
