"""
Well Module

Typed view of WELLS.DBF. Column names vary between installations, so each
attribute is looked up through a list of candidate columns.
"""

from dataclasses import dataclass, asdict
from datetime import date
from typing import Any, Dict, List, Optional

from .companies import CompanyService, WELL_STATUS_COLUMNS, well_status_name
from .dbfmap import to_date, to_number, to_str, value_of


WELLS_TABLE = "WELLS.DBF"

WELL_COLUMNS = {
    "well_id": ["CWELLID", "CWELLNO", "WELLID"],
    "well_name": ["CWELLNAME", "WELLNAME", "WELL_NAME", "NAME"],
    "api_number": ["CAPINO", "CAPINUM", "CAPI"],
    "lease_id": ["CLEASEID", "CLEASE"],
    "field_name": ["CFIELD", "CFIELDNAME"],
    "county": ["CCOUNTY"],
    "state": ["CSTATE"],
    "well_type": ["CWELLTYPE", "WELLTYPE", "WELL_TYPE", "CGROUP"],
    "operator": ["COPERATOR", "COPERNAME"],
    "formation": ["CFORMATION"],
    "working_interest": ["NWORKINT", "NWI"],
    "net_revenue_interest": ["NREVINT", "NNRI"],
    "spud_date": ["DSPUDDATE", "DSPUD"],
    "completion_date": ["DCOMPDATE", "DCOMPLETE"],
}


@dataclass
class Well:
    row_index: int
    well_id: str
    well_name: str
    api_number: str = ""
    lease_id: str = ""
    field_name: str = ""
    county: str = ""
    state: str = ""
    status: str = "Unknown"
    well_type: str = ""
    operator: str = ""
    formation: str = ""
    working_interest: float = 0.0
    net_revenue_interest: float = 0.0
    spud_date: Optional[date] = None
    completion_date: Optional[date] = None

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        for key in ("spud_date", "completion_date"):
            if result[key] is not None:
                result[key] = result[key].isoformat()
        return result


def record_to_well(row_index: int, record: Dict[str, Any]) -> Well:
    text = {key: to_str(value_of(record, WELL_COLUMNS[key]))
            for key in ("well_id", "well_name", "api_number", "lease_id", "field_name",
                        "county", "state", "well_type", "operator", "formation")}
    status_value = value_of(record, WELL_STATUS_COLUMNS)
    return Well(
        row_index=row_index,
        status=well_status_name(status_value),
        working_interest=to_number(value_of(record, WELL_COLUMNS["working_interest"])),
        net_revenue_interest=to_number(value_of(record, WELL_COLUMNS["net_revenue_interest"])),
        spud_date=to_date(value_of(record, WELL_COLUMNS["spud_date"])),
        completion_date=to_date(value_of(record, WELL_COLUMNS["completion_date"])),
        **text,
    )


class WellService:
    def __init__(self, companies: CompanyService):
        self.companies = companies

    def get_wells(self, company: str, status: Optional[str] = None) -> List[Well]:
        """Active WELLS.DBF rows, optionally filtered by status name (Active, Plugged, ...)"""
        data = self.companies.load_table(company, WELLS_TABLE)
        wells = [record_to_well(i, r) for i, r in enumerate(data.records)]
        if status:
            wells = [w for w in wells if w.status.lower() == status.lower()]
        return wells
