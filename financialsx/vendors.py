"""
Vendor Module

Vendor master records from VENDOR.DBF and in-place edits of a single vendor.
"""

from typing import Any, Dict, Optional

from .audit import AuditEventType
from .companies import CompanyService
from .dbfmap import to_str, value_of
from .exceptions import CompanyError
from .logging_config import get_logger


logger = get_logger("financialsx.vendors")

VENDOR_TABLE = "VENDOR.DBF"

VENDOR_ID_FIELDS = ["CVENDORID", "CVENDNO", "CIDVEND"]
VENDOR_NAME_FIELDS = ["CVENDNAME", "CCOMPANY", "CNAME"]


class VendorService:
    """Read and update vendors"""

    def __init__(self, companies: CompanyService):
        self.companies = companies

    def get_vendors(self, company: str) -> Dict[str, Any]:
        """
        All active vendors.

        Each vendor is the raw record keyed by column name plus ``_row_index``
        (its position among active rows) and normalised ``vendor_id`` and
        ``vendor_name`` keys.
        """
        data = self.companies.load_table(company, VENDOR_TABLE)
        vendors = []
        for index, record in enumerate(data.records):
            vendor = dict(record)
            vendor["_row_index"] = index
            vendor["vendor_id"] = to_str(value_of(record, VENDOR_ID_FIELDS))
            vendor["vendor_name"] = to_str(value_of(record, VENDOR_NAME_FIELDS))
            vendors.append(vendor)
        logger.info(f"Loaded {len(vendors)} vendors for {company}")
        return {"vendors": vendors, "columns": data.columns, "total": len(vendors)}

    def update_vendor(self, company: str, vendor_index: int, vendor_data: Dict[str, Any],
                      user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Write the supplied fields of the vendor at ``vendor_index``.

        Keys that are not columns of VENDOR.DBF (including the derived keys
        returned by get_vendors) are skipped and reported.
        """
        dbf = self.companies.open_table(company, VENDOR_TABLE)
        changes = {}
        ignored = []
        for key, value in vendor_data.items():
            if dbf.has_field(key):
                changes[key.upper()] = value
            else:
                ignored.append(key)
        if not changes:
            raise CompanyError("No vendor fields to update")

        written = self.companies.update_fields(company, VENDOR_TABLE, vendor_index, changes,
                                               user_id=user_id)
        if self.companies.audit:
            self.companies.audit.log_event(
                AuditEventType.VENDOR_UPDATED, "vendor", str(vendor_index),
                {"fields": sorted(written)}, user_id=user_id, company=company,
            )
        return {
            "success": True,
            "vendor_index": vendor_index,
            "updated_fields": sorted(written),
            "ignored_fields": sorted(ignored),
        }
