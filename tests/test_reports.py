"""
Tests for PDF reports and owner statement files
"""

import pytest
from datetime import date
from pathlib import Path

from financialsx.audit import AuditEventType
from financialsx.dbf import DBFTable
from financialsx.exceptions import ReportError
from financialsx.reports import NO_OWNER_FILES, ReportService, sanitize_filename, truncate


COMPANY = "ACME"
STATEMENTS = "DIST2024.dbf"


@pytest.fixture
def reports(companies, audit_trail, report_dir):
    return ReportService(companies, audit_trail=audit_trail)


@pytest.fixture
def empty_company(data_dir):
    folder = data_dir / "EMPTY"
    folder.mkdir()
    DBFTable.create(folder / "COA.DBF", [("CACCTNO", "C", 10)], [["1000"]])
    return "EMPTY"


class TestHelpers:

    def test_truncate(self):
        assert truncate("short") == "short"
        assert truncate("x" * 60) == "x" * 60
        assert truncate("x" * 61) == "x" * 57 + "..."
        assert truncate("abcdefghij", 8) == "abcde..."

    def test_sanitize_filename(self):
        assert sanitize_filename('A/B:C*"D"') == "A_B_C_D_"
        assert sanitize_filename(" Acme Oil & Gas. ") == "Acme Oil & Gas"
        assert sanitize_filename("...") == "company"


class TestChartOfAccountsPdf:
    """COA report rendering"""

    def test_writes_pdf(self, reports, report_dir):
        path = Path(reports.generate_chart_of_accounts_pdf(COMPANY))
        assert path.parent == report_dir
        assert path.name == f"{date.today().isoformat()} - Acme Oil & Gas - Chart of Accounts.pdf"
        assert path.read_bytes().startswith(b"%PDF")

    def test_generation_is_audited(self, reports, audit_trail):
        reports.generate_chart_of_accounts_pdf(COMPANY, sort_by="type", include_inactive=True,
                                               user_id="u1")
        event = audit_trail.get_events_by_type(AuditEventType.REPORT_GENERATED)[0]
        assert event.entity_id == "chart_of_accounts"
        assert event.metadata["accounts"] == 6
        assert event.user_id == "u1"
        assert event.company == COMPANY

    def test_company_without_version_table_uses_folder_name(self, reports, empty_company):
        path = Path(reports.generate_chart_of_accounts_pdf(empty_company))
        assert "EMPTY" in path.name


class TestOwnerStatementFiles:

    def test_check_files(self, reports):
        result = reports.check_owner_statement_files(COMPANY)
        assert result == {"has_files": True, "files": [STATEMENTS], "error": ""}

    def test_no_statement_folder(self, reports, empty_company):
        result = reports.check_owner_statement_files(empty_company)
        assert not result["has_files"]
        assert result["error"] == NO_OWNER_FILES
        with pytest.raises(ReportError, match=NO_OWNER_FILES):
            reports.get_owner_statements_list(empty_company)

    def test_unknown_company(self, reports):
        result = reports.check_owner_statement_files("NOPE")
        assert not result["has_files"]
        assert "not found" in result["error"]

    def test_statements_list(self, reports):
        statements = reports.get_owner_statements_list(COMPANY)
        assert [s["name"] for s in statements] == ["DIST2024"]
        assert statements[0]["file_size"] > 0


class TestOwners:
    """Owner lookups inside a statement file"""

    def test_owners_sorted_by_name(self, reports):
        owners = reports.get_owners_list(COMPANY, STATEMENTS)
        assert owners == [
            {"key": "O002", "name": "Bob Mineral", "records": 1},
            {"key": "O001", "name": "Jane Royalty", "records": 2},
        ]

    def test_statement_data_for_owner(self, reports):
        data = reports.get_owner_statement_data(COMPANY, STATEMENTS, " O001 ")
        assert data["owner_name"] == "Jane Royalty"
        assert data["count"] == 2
        assert [r["CWELLNO"] for r in data["records"]] == ["W001", "W002"]

    def test_unknown_owner(self, reports):
        data = reports.get_owner_statement_data(COMPANY, STATEMENTS, "O999")
        assert data["count"] == 0
        assert data["owner_name"] == ""

    def test_structure(self, reports):
        structure = reports.examine_owner_statement_structure(COMPANY, STATEMENTS)
        assert structure["record_count"] == 3
        columns = {c["name"]: c for c in structure["columns"]}
        assert columns["NNET"]["type"] == "number"
        assert columns["COWNERNAME"]["type"] == "string"
        assert columns["COWNERKEY"]["sample_values"] == ["O001", "O001", "O002"]

    @pytest.mark.parametrize("name", ["../COA.DBF", "sub/DIST2024.dbf", "..", "",
                                      "..\\VENDOR.DBF", "ownerstatements\\DIST2024.dbf",
                                      "DIST2024.txt", "DIST2024"])
    def test_file_name_must_be_plain(self, reports, name):
        with pytest.raises(ReportError, match="Invalid statement file name"):
            reports.get_owners_list(COMPANY, name)

    def test_backslash_cannot_leave_statements_folder(self, reports):
        for read in (reports.examine_owner_statement_structure, reports.get_owners_list,
                     reports.generate_owner_statement_pdf):
            with pytest.raises(ReportError):
                read(COMPANY, "..\\VENDOR.DBF")

    def test_symlink_out_of_statements_folder_rejected(self, reports, data_dir):
        link = data_dir / "ACME" / "ownerstatements" / "LINKED.DBF"
        link.symlink_to(data_dir / "ACME" / "VENDOR.DBF")
        with pytest.raises(ReportError, match="Invalid statement file name"):
            reports.examine_owner_statement_structure(COMPANY, "LINKED.DBF")

    def test_owner_statement_pdf(self, reports):
        path = Path(reports.generate_owner_statement_pdf(COMPANY, STATEMENTS))
        assert path.name.endswith("Owner Statement DIST2024.pdf")
        assert path.read_bytes().startswith(b"%PDF")
