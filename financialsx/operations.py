"""
Operations Module

Traces a batch number through the check, general ledger and accounts payable
tables so a disbursement can be followed from payment back to purchase.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .companies import CompanyService
from .dbfmap import to_str
from .exceptions import FinancialsXError, CompanyError
from .logging_config import get_logger


logger = get_logger("financialsx.operations")

BATCH_FIELD = "CBATCH"
BILL_TOKEN_FIELD = "CBILLTOKEN"

BATCH_TABLES = [
    ("checks", "CHECKS.DBF"),
    ("glmaster", "GLMASTER.DBF"),
    ("appmthdr", "APPMTHDR.DBF"),
    ("appmtdet", "APPMTDET.DBF"),
]
PURCHASE_TABLES = [
    ("appurchh", "APPURCHH.DBF"),
    ("appurchd", "APPURCHD.DBF"),
]


@dataclass
class TableSearchResult:
    table_name: str
    records: List[Dict[str, Any]] = field(default_factory=list)
    columns: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def count(self) -> int:
        return len(self.records)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table_name": self.table_name,
            "records": self.records,
            "count": self.count,
            "columns": self.columns,
            "error": self.error,
        }


class OperationsService:
    def __init__(self, companies: CompanyService):
        self.companies = companies

    def search_table(self, company: str, table: str, value: str,
                     search_field: str = BATCH_FIELD) -> TableSearchResult:
        """Rows whose ``search_field`` equals ``value`` (trimmed, case-insensitive)"""
        result = TableSearchResult(table_name=table.upper())
        try:
            data = self.companies.load_table(company, table)
        except FinancialsXError as e:
            result.error = f"Failed to read {table.upper()}: {e}"
            logger.warning(result.error)
            return result

        result.columns = data.columns
        column = data.column([search_field])
        if column is None:
            return result
        wanted = value.strip().lower()
        result.records = [
            {"_row_index": index, **record}
            for index, record in enumerate(data.records)
            if to_str(record.get(column)).lower() == wanted
        ]
        return result

    def follow_batch_number(self, company: str, batch_number: str) -> Dict[str, Any]:
        batch_number = (batch_number or "").strip()
        if not batch_number:
            raise CompanyError("Batch number cannot be empty")
        self.companies.resolve_company_path(company)

        results = {key: self.search_table(company, table, batch_number)
                   for key, table in BATCH_TABLES}

        bill_token = ""
        details = results["appmtdet"].records
        if details:
            bill_token = to_str(details[0].get(BILL_TOKEN_FIELD))
            if bill_token == "0":
                bill_token = ""
        for key, table in PURCHASE_TABLES:
            if bill_token:
                results[key] = self.search_table(company, table, bill_token)
            else:
                results[key] = TableSearchResult(table_name=table)

        total = sum(r.count for r in results.values())
        logger.info(f"Batch {batch_number} in {company}: {total} records across {len(results)} tables")
        response: Dict[str, Any] = {key: r.to_dict() for key, r in results.items()}
        response.update({
            "batch_number": batch_number,
            "company_name": company,
            "bill_token": bill_token,
            "total_records": total,
        })
        return response
