"""Shared business-case payloads for the test modules.

`sku_payload()` is a single 100 g SKU at 10,000 pieces/year: resin 80 Rs/kg
(5% discount, 5 Rs/kg freight-in, 2% wastage), MB 120 Rs/kg at 2%,
conversion recovery 0.5 Rs/piece. `finance_payload()` is 70% debt at 12%,
equity at 18%, 25% tax, no WACC override (=> WACC 0.117).
"""
import copy

from services.forecasting.assumptions import BusinessCase


def sku_payload(sku_id="sku-1", **groups):
    base = {
        "id": sku_id,
        "name": f"Test SKU {sku_id}",
        "sales": {
            "productWeightGrams": 100,
            "baseAnnualVolumePieces": 10000,
            "conversionRecoveryRsPerPiece": 0.5,
        },
        "npd": {
            "cavities": 4,
            "cycleTimeSeconds": 30,
            "machineName": "test-machine",
            "plant": "test-plant",
            "polymer": "PP",
            "masterbatch": "white",
        },
        "ops": {
            "operatingHoursPerDay": 24,
            "workingDaysPerYear": 365,
            "oee": 0.85,
            "costOfNewMachine": 2000000,
            "costOfNewMould": 500000,
            "costOfNewInfra": 300000,
        },
        "costing": {
            "resinRsPerKg": 80,
            "resinDiscountPct": 0.05,
            "freightInwardsRsPerKg": 5,
            "wastagePct": 0.02,
            "mbRsPerKg": 120,
            "useMbPriceOverride": True,
            "mbRatioPct": 0.02,
            "valueAddRsPerPiece": 2,
            "packagingRsPerKg": 3,
            "freightOutRsPerKg": 2.5,
            "rmInflationPct": [0, 0, 0, 0, 0, 0, 0, 0, 0, 0],
            "conversionInflationPct": [0, 0, 0, 0, 0, 0, 0, 0, 0, 0],
        },
        "plantMaster": {
            "plant": "test-plant",
            "powerRatePerUnit": 8,
            "manpowerRatePerShift": 2000,
            "rAndMPerKg": 1,
            "otherMfgPerKg": 1.5,
            "plantSgaPerKg": 4,
            "corpSgaPerKg": 3.5,
            "sellingGeneralAndAdministrativeExpensesPerKg": 7.5,
            "conversionPerKg": 25.8,
        },
    }
    for group, fields in groups.items():
        base.setdefault(group, {}).update(fields)
    return base


def finance_payload(**fields):
    base = {
        "includeCorpSGA": False,
        "debtPct": 0.7,
        "costOfDebtPct": 0.12,
        "costOfEquityPct": 0.18,
        "corporateTaxRatePct": 0.25,
        "annualVolumeGrowthPct": 0.0,
    }
    base.update(fields)
    return base


def case_payload(skus=None, **finance):
    return {
        "id": "case-1",
        "name": "Test Case",
        "createdAt": "2024-01-01T00:00:00Z",
        "updatedAt": "2024-01-01T00:00:00Z",
        "skus": copy.deepcopy(skus) if skus is not None else [sku_payload()],
        "finance": finance_payload(**finance),
    }


def make_case(skus=None, **finance) -> BusinessCase:
    return BusinessCase.from_dict(case_payload(skus, **finance))
