"""
Test suite for company discovery and table access

Tests compmast.dbf discovery, company folder resolution, table browsing with
search/sort/paging, single-cell updates, company info and the dashboard.
"""

import csv
import io

import pytest

from financialsx.audit import AuditEventType
from financialsx.companies import CompanyService, normalize_company_path, well_status_name
from financialsx.dbf import DBFTable
from financialsx.exceptions import CompanyError, TableNotFoundError


COMPANY = "ACME"


class TestCompanyDiscovery:
    """Test compmast.dbf lookup and company listing"""

    def test_company_list(self, companies, data_dir):
        result = companies.get_company_list()
        assert [c["name"] for c in result] == ["Acme Oil", "Ghost Co"]
        acme, ghost = result
        assert acme["data_path"] == "ACME"
        assert acme["original"] == "C:\\FOXPRO\\DATA\\ACME"
        assert acme["exists"] is True
        assert ghost["data_path"] == "GHOST"
        assert ghost["exists"] is False

    def test_compmast_found_one_level_down(self, data_dir, tmp_path):
        service = CompanyService(data_path=str(tmp_path))
        assert service.find_compmast() == data_dir / "compmast.dbf"

    def test_missing_compmast(self, tmp_path):
        service = CompanyService(data_path=str(tmp_path / "empty"))
        with pytest.raises(CompanyError):
            service.get_company_list()

    def test_set_data_path(self, companies, data_dir, tmp_path, audit_trail):
        other = CompanyService(audit_trail, data_path=str(tmp_path))
        assert other.set_data_path(str(data_dir)) == str(data_dir)
        assert other.data_path == data_dir
        assert audit_trail.get_events_by_type(AuditEventType.DATA_PATH_CHANGED)

    def test_set_data_path_requires_compmast(self, companies, data_dir):
        with pytest.raises(CompanyError):
            companies.set_data_path(str(data_dir / COMPANY))
        with pytest.raises(CompanyError):
            companies.set_data_path(str(data_dir / "nowhere"))

    def test_normalize_company_path(self):
        assert normalize_company_path("C:\\DATA\\ACME\\") == "ACME"
        assert normalize_company_path("/srv/data/acme") == "acme"
        assert normalize_company_path("ACME") == "ACME"
        assert normalize_company_path("  ") == ""


class TestTableAccess:
    """Test company folder and table resolution"""

    def test_resolve_company_path(self, companies, data_dir):
        assert companies.resolve_company_path("acme") == data_dir / COMPANY
        assert companies.resolve_company_path("C:\\OLD\\ACME") == data_dir / COMPANY
        assert companies.resolve_company_path(str(data_dir / COMPANY)) == data_dir / COMPANY

    def test_unknown_company(self, companies):
        with pytest.raises(CompanyError):
            companies.resolve_company_path("GHOST")
        with pytest.raises(CompanyError):
            companies.resolve_company_path("")

    @pytest.mark.parametrize("name", ["..", ".", "C:\\DATA\\..", "ACME/.."])
    def test_dot_names_do_not_leave_data_path(self, companies, name):
        with pytest.raises(CompanyError, match="Invalid company name"):
            companies.resolve_company_path(name)

    def test_table_lookup_is_case_insensitive(self, companies):
        assert companies.load_table(COMPANY, "checks").name == "CHECKS.DBF"
        assert companies.has_table(COMPANY, "ownerstatements/dist2024")
        assert not companies.has_table(COMPANY, "NOPE.DBF")

    def test_missing_table(self, companies):
        with pytest.raises(TableNotFoundError):
            companies.load_table(COMPANY, "NOPE.DBF")
        assert companies.try_load_table(COMPANY, "NOPE.DBF") is None

    def test_dbf_files(self, companies):
        files = companies.get_dbf_files(COMPANY)
        assert "CHECKS.DBF" in files
        assert "readme.txt" not in files
        assert files == sorted(files, key=str.lower)

    def test_table_info(self, companies):
        info = companies.get_table_info(COMPANY, "CHECKS.DBF")
        assert info["record_count"] == 9
        assert info["deleted_records"] == 1


class TestTableData:
    """Test browsing with search, sort and paging"""

    def test_all_active_rows(self, companies):
        data = companies.get_table_data(COMPANY, "CHECKS.DBF")
        stats = data["stats"]
        assert stats["total_records"] == 9
        assert stats["active_records"] == 8
        assert stats["deleted_records"] == 1
        assert stats["loaded_records"] == 8
        assert stats["has_more_records"] is False
        assert data["row_indices"] == list(range(8))
        assert data["columns"][0] == "CCHECKNO"

    def test_search(self, companies):
        data = companies.get_table_data(COMPANY, "CHECKS.DBF", search="acme")
        assert data["stats"]["total_matching"] == 2
        assert data["row_indices"] == [0, 2]
        assert companies.get_table_data(COMPANY, "CHECKS.DBF", search="deleted payee")["rows"] == []

    def test_sort_numeric_and_date(self, companies):
        data = companies.get_table_data(COMPANY, "CHECKS.DBF", sort_column="namount",
                                        sort_direction="desc")
        amounts = [row[3] for row in data["rows"]]
        assert amounts == sorted(amounts, reverse=True)
        assert data["row_indices"][0] == 1

        data = companies.get_table_data(COMPANY, "CHECKS.DBF", sort_column="DCHECKDATE")
        assert data["row_indices"][0] == 0
        assert data["row_indices"][-1] == 7

    @pytest.mark.parametrize("column", ["DCHECKDATE", "NAMOUNT", "CPAYEE"])
    def test_blank_values_sort_first_ascending_last_descending(self, companies, data_dir, column):
        DBFTable(data_dir / COMPANY / "CHECKS.DBF").append_record({"CCHECKNO": "1008"})

        ascending = companies.get_table_data(COMPANY, "CHECKS.DBF", sort_column=column)
        assert ascending["row_indices"][0] == 8
        descending = companies.get_table_data(COMPANY, "CHECKS.DBF", sort_column=column,
                                              sort_direction="desc")
        assert descending["row_indices"][-1] == 8

    def test_paging(self, companies):
        data = companies.get_table_data(COMPANY, "CHECKS.DBF", offset=2, limit=3)
        assert data["row_indices"] == [2, 3, 4]
        assert data["stats"]["has_more_records"] is True
        last = companies.get_table_data(COMPANY, "CHECKS.DBF", offset=6, limit=3)
        assert last["row_indices"] == [6, 7]
        assert last["stats"]["has_more_records"] is False

    def test_invalid_arguments(self, companies):
        with pytest.raises(CompanyError):
            companies.get_table_data(COMPANY, "CHECKS.DBF", sort_column="NOPE")
        with pytest.raises(CompanyError):
            companies.get_table_data(COMPANY, "CHECKS.DBF", sort_direction="sideways")
        with pytest.raises(CompanyError):
            companies.get_table_data(COMPANY, "CHECKS.DBF", offset=-1)


class TestUpdates:
    """Test single-cell updates addressed by active row position"""

    def test_update_record_skips_deleted_rows(self, companies, audit_trail):
        """Active row 1 of VENDOR.DBF is physical row 2 because row 1 is deleted"""
        result = companies.update_record(COMPANY, "VENDOR.DBF", 1, 3, "555-9999", user_id="u1")
        assert result["column"] == "CPHONE"
        assert result["value"] == "555-9999"

        vendors = companies.load_table(COMPANY, "VENDOR.DBF").records
        assert vendors[1]["CVENDORID"] == "V003"
        assert vendors[1]["CPHONE"] == "555-9999"

        events = audit_trail.get_events_by_type(AuditEventType.DBF_RECORD_UPDATED)
        assert events[-1].entity_id == "VENDOR.DBF#2"
        assert events[-1].metadata["old"]["CPHONE"] == "555-0300"
        assert events[-1].user_id == "u1"

    def test_update_record_bounds(self, companies):
        with pytest.raises(CompanyError):
            companies.update_record(COMPANY, "VENDOR.DBF", 2, 0, "x")
        with pytest.raises(CompanyError):
            companies.update_record(COMPANY, "VENDOR.DBF", 0, 99, "x")

    def test_export_csv(self, companies, audit_trail):
        content = companies.export_table_csv(COMPANY, "VENDOR.DBF")
        rows = list(csv.reader(io.StringIO(content)))
        assert rows[0][0] == "CVENDORID"
        assert [r[0] for r in rows[1:]] == ["V001", "V003"]
        assert audit_trail.get_events_by_type(AuditEventType.DBF_EXPORTED)


class TestCompanyInfo:
    """Test VERSION.DBF company information"""

    def test_get_company_info(self, companies):
        info = companies.get_company_info(COMPANY)
        assert info["name"] == "Acme Oil & Gas"
        assert info["city"] == "Midland"
        assert info["zip_code"] == "79701"
        assert info["source"] == "VERSION.DBF"

    def test_company_info_defaults_without_version(self, companies, data_dir):
        (data_dir / COMPANY / "VERSION.DBF").unlink()
        info = companies.get_company_info(COMPANY)
        assert info["name"] == COMPANY
        assert info["source"] == "default"

    def test_update_company_info(self, companies, audit_trail):
        result = companies.update_company_info(COMPANY, {"city": "Odessa", "cphone": "1",
                                                         "website": "x"})
        assert result["updated_fields"] == ["CCITY", "CPHONE"]
        assert result["ignored_fields"] == ["website"]
        assert companies.get_company_info(COMPANY)["city"] == "Odessa"
        assert audit_trail.get_events_by_type(AuditEventType.COMPANY_INFO_UPDATED)

    def test_update_company_info_unknown_fields(self, companies):
        with pytest.raises(CompanyError):
            companies.update_company_info(COMPANY, {"website": "x"})


class TestDashboard:
    """Test the dashboard summary"""

    def test_well_status_counts(self, companies):
        counts = companies.get_well_status_counts(COMPANY)
        assert counts == [
            {"type": "Active", "count": 2},
            {"type": "Plugged", "count": 1},
            {"type": "Unknown", "count": 1},
        ]

    def test_dashboard_data(self, companies):
        data = companies.get_dashboard_data(COMPANY)
        assert data["status"] == "ready"
        assert data["total_wells"] == 4
        assert data["record_counts"]["CHECKS.DBF"] == 8
        assert data["record_counts"]["VENDOR.DBF"] == 2

    def test_well_status_names(self):
        assert well_status_name("a") == "Active"
        assert well_status_name("S") == "Shut-in"
        assert well_status_name("Inactive") == "Inactive"
        assert well_status_name(None) == "Unknown"
