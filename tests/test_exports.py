import unittest
from services.exports.writers import (
    AGGREGATE,
    SCHEMAS,
    write_cashflow,
    write_csv,
    write_pnl,
    write_prices,
    write_returns,
    write_volumes,
)
from services.exports.reports import (
    assumptions_md,
    case_assumptions,
    case_warnings,
    validation_checks,
    validation_report_md,
)
from services.forecasting.engine import calculate
from tests.fixtures import make_case, sku_payload
import csv
import io


def _read(text):
    reader = csv.DictReader(io.StringIO(text))
    return reader.fieldnames, list(reader)


class TestExports(unittest.TestCase):
    def setUp(self):
        self.bc = make_case(skus=[sku_payload("a"), sku_payload("b", sales={"productWeightGrams": 250})])
        self.calc = calculate(self.bc)

    def test_write_csv_ignores_extra_keys(self):
        txt = write_csv([{"a": 1, "b": 2, "c": 3}], ["a", "b"])
        self.assertEqual(txt.splitlines(), ["a,b", "1,2"])

    def test_volumes_csv(self):
        header, recs = _read(write_volumes(self.calc))
        self.assertEqual(header, SCHEMAS["volumes"])
        # aggregate rows first, then each SKU
        self.assertEqual(len(recs), 30)
        self.assertEqual(recs[0]["sku_id"], AGGREGATE)
        self.assertEqual(recs[10]["sku_id"], "a")
        self.assertEqual(recs[20]["sku_id"], "b")
        self.assertAlmostEqual(float(recs[0]["weight_kg"]), 1000.0 + 2500.0)

    def test_prices_csv(self):
        header, recs = _read(write_prices(self.calc))
        self.assertEqual(header, SCHEMAS["prices"])
        a1 = recs[10]
        self.assertAlmostEqual(float(a1["total_per_kg"]), 115.568)
        self.assertAlmostEqual(float(a1["price_per_piece"]), 11.5568)

    def test_pnl_csv(self):
        header, recs = _read(write_pnl(self.calc))
        self.assertEqual(header, SCHEMAS["pnl"])
        self.assertEqual(len(recs), 30)
        self.assertAlmostEqual(float(recs[0]["revenue_net"]), self.calc.pnl[0].revenue_net)

    def test_cashflow_csv(self):
        header, recs = _read(write_cashflow(self.calc))
        self.assertEqual(header, SCHEMAS["cashflow"])
        self.assertEqual([r["year"] for r in recs], [str(y) for y in range(11)])
        self.assertEqual(recs[0]["roce"], "")
        self.assertNotEqual(recs[1]["net_block"], "")

    def test_display_years_cap_projection_rows(self):
        _, volumes = _read(write_volumes(self.calc, years=5))
        self.assertEqual(len(volumes), 15)
        self.assertEqual([r["sku_id"] for r in volumes[::5]], [AGGREGATE, "a", "b"])
        self.assertEqual(max(int(r["year"]) for r in volumes), 5)
        _, prices = _read(write_prices(self.calc, years=5))
        self.assertEqual(len(prices), 15)
        _, pnl = _read(write_pnl(self.calc, years=5))
        self.assertEqual(len(pnl), 15)
        self.assertEqual(pnl[5]["sku_id"], "a")
        _, cash = _read(write_cashflow(self.calc, years=5))
        self.assertEqual([r["year"] for r in cash], [str(y) for y in range(6)])
        # a cap beyond the horizon changes nothing
        self.assertEqual(write_pnl(self.calc, years=50), write_pnl(self.calc))

    def test_returns_csv(self):
        header, recs = _read(write_returns(self.calc))
        self.assertEqual(header, SCHEMAS["returns"])
        self.assertEqual(len(recs), 1)
        self.assertAlmostEqual(float(recs[0]["wacc"]), 0.117)

    def test_reports_md(self):
        a = assumptions_md(case_assumptions(self.bc, self.calc), warnings=case_warnings(self.bc, self.calc))
        self.assertIn("# Assumptions", a)
        self.assertIn("- wacc: 0.1170", a)
        self.assertIn("## Warnings", a)
        self.assertIn("sku a: working-capital days unset, default applied", a)
        v = validation_report_md({"tax_non_negative": True, "values_finite": False}, details={"years": 10})
        self.assertIn("# Validation Report", v)
        self.assertIn("- values_finite: FAIL", v)

    def test_override_noted_in_assumptions(self):
        bc = make_case(waccPct=0.1)
        self.assertEqual(case_assumptions(bc, calculate(bc))["wacc"], "0.1000 (override)")

    def test_validation_checks_pass(self):
        checks = validation_checks(self.bc, self.calc)
        self.assertEqual(set(checks), {
            "price_per_piece_reconciles",
            "tax_non_negative",
            "npv_matches_discounted_cashflow",
            "values_finite",
        })
        self.assertTrue(all(checks.values()))


if __name__ == '__main__':
    unittest.main()
