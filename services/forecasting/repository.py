from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Protocol, Union

from services.forecasting.assumptions import BusinessCase, PlantMaster


@dataclass(frozen=True)
class BusinessCaseSummary:
    id: str
    name: str
    updated_at: str


class BusinessCaseRepository(Protocol):
    """Storage collaborator for business cases and plant master data.

    Callers (UI, routes) own persistence; the calculation core only consumes
    the BusinessCase values a repository hands out.
    """

    def load_business_case(self, case_id: str) -> BusinessCase: ...

    def save_business_case(self, bc: BusinessCase) -> str: ...

    def list_business_cases(self) -> List[BusinessCaseSummary]: ...

    def get_plant_master(self, plant_id: Optional[str] = None) -> Union[PlantMaster, List[PlantMaster]]: ...
