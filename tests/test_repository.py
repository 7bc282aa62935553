import unittest
from typing import Dict, List, Optional

from services.forecasting.assumptions import BusinessCase, PlantMaster
from services.forecasting.engine import calculate
from services.forecasting.repository import BusinessCaseRepository, BusinessCaseSummary
from tests.fixtures import case_payload


class InMemoryRepository:
    def __init__(self):
        self._cases: Dict[str, BusinessCase] = {}
        self._plants = [PlantMaster(plant="test-plant", conversion_per_kg=25.8)]

    def load_business_case(self, case_id: str) -> BusinessCase:
        return self._cases[case_id]

    def save_business_case(self, bc: BusinessCase) -> str:
        self._cases[bc.id] = bc
        return bc.id

    def list_business_cases(self) -> List[BusinessCaseSummary]:
        return [BusinessCaseSummary(bc.id, bc.name, bc.updated_at) for bc in self._cases.values()]

    def get_plant_master(self, plant_id: Optional[str] = None):
        if plant_id is None:
            return list(self._plants)
        return next(p for p in self._plants if p.plant == plant_id)


class TestRepository(unittest.TestCase):
    def test_round_trip_through_a_repository(self):
        repo: BusinessCaseRepository = InMemoryRepository()
        case_id = repo.save_business_case(BusinessCase.from_dict(case_payload()))
        self.assertEqual(repo.list_business_cases(), [BusinessCaseSummary("case-1", "Test Case", "2024-01-01T00:00:00Z")])
        bc = repo.load_business_case(case_id)
        self.assertEqual(repo.get_plant_master("test-plant").conversion_per_kg, bc.skus[0].plant_master.conversion_per_kg)
        # computing never writes back into the stored case
        before = bc.to_dict()
        calculate(bc)
        self.assertEqual(repo.load_business_case(case_id).to_dict(), before)


if __name__ == "__main__":
    unittest.main()
