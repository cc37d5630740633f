"""
Test suite for vendor and well services
"""

from datetime import date

import pytest

from financialsx.audit import AuditEventType
from financialsx.exceptions import CompanyError, TableNotFoundError
from financialsx.vendors import VendorService
from financialsx.wells import WellService, record_to_well


COMPANY = "ACME"


@pytest.fixture
def vendors(companies):
    return VendorService(companies)


@pytest.fixture
def wells(companies):
    return WellService(companies)


class TestVendors:
    """Test VENDOR.DBF listing and updates"""

    def test_get_vendors(self, vendors):
        result = vendors.get_vendors(COMPANY)
        assert result["total"] == 2
        assert result["columns"][:2] == ["CVENDORID", "CVENDNAME"]
        first, second = result["vendors"]
        assert first["vendor_id"] == "V001"
        assert first["vendor_name"] == "Acme Supply"
        assert first["_row_index"] == 0
        assert second["CVENDORID"] == "V003"
        assert second["_row_index"] == 1

    def test_update_vendor(self, vendors, audit_trail):
        """Unknown keys are skipped and reported"""
        result = vendors.update_vendor(COMPANY, 1, {"cphone": "555-1234", "NBALANCE": "300",
                                                    "vendor_name": "ignored"}, user_id="u1")
        assert result["updated_fields"] == ["CPHONE", "NBALANCE"]
        assert result["ignored_fields"] == ["vendor_name"]

        updated = vendors.get_vendors(COMPANY)["vendors"][1]
        assert updated["CPHONE"] == "555-1234"
        assert updated["NBALANCE"] == 300.0

        events = audit_trail.get_events_by_type(AuditEventType.VENDOR_UPDATED)
        assert events[0].entity_id == "1"
        assert events[0].company == COMPANY

    def test_update_vendor_without_known_fields(self, vendors):
        with pytest.raises(CompanyError):
            vendors.update_vendor(COMPANY, 0, {"nothing": 1})

    def test_update_vendor_out_of_range(self, vendors):
        with pytest.raises(CompanyError):
            vendors.update_vendor(COMPANY, 5, {"CPHONE": "1"})

    def test_missing_vendor_table(self, vendors, data_dir):
        (data_dir / COMPANY / "VENDOR.DBF").unlink()
        with pytest.raises(TableNotFoundError):
            vendors.get_vendors(COMPANY)


class TestWells:
    """Test the typed view of WELLS.DBF"""

    def test_get_wells(self, wells):
        result = wells.get_wells(COMPANY)
        assert [w.well_id for w in result] == ["W001", "W002", "W003", "W004"]
        smith = result[0]
        assert smith.well_name == "Smith #1"
        assert smith.api_number == "42-329-00001"
        assert smith.status == "Active"
        assert smith.working_interest == 1.0
        assert smith.net_revenue_interest == 0.875
        assert smith.spud_date == date(2010, 5, 1)
        assert result[3].status == "Unknown"

    def test_filter_by_status(self, wells):
        assert [w.well_id for w in wells.get_wells(COMPANY, status="plugged")] == ["W003"]
        assert wells.get_wells(COMPANY, status="Shut-in") == []

    def test_to_dict_serializes_dates(self, wells):
        data = wells.get_wells(COMPANY)[0].to_dict()
        assert data["spud_date"] == "2010-05-01"
        assert data["completion_date"] is None

    def test_alternate_column_names(self):
        """Installations that use WELLNAME/STATUS still map"""
        well = record_to_well(3, {"WELLID": "X1", "WELLNAME": "Alt", "STATUS": "S",
                                  "NWI": "0.5"})
        assert well.row_index == 3
        assert well.well_id == "X1"
        assert well.well_name == "Alt"
        assert well.status == "Shut-in"
        assert well.working_interest == 0.5
