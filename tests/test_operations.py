"""
Tests for batch tracing across checks, GL and payables tables
"""

import pytest

from financialsx.exceptions import CompanyError
from financialsx.operations import OperationsService


COMPANY = "ACME"


@pytest.fixture
def operations(companies):
    return OperationsService(companies)


class TestSearchTable:

    def test_matches_are_trimmed_and_case_insensitive(self, operations):
        result = operations.search_table(COMPANY, "CHECKS.DBF", " b002 ")
        assert result.count == 1
        assert result.records[0]["CCHECKNO"] == "1002"
        assert result.records[0]["_row_index"] == 1

    def test_other_field(self, operations):
        result = operations.search_table(COMPANY, "VENDOR.DBF", "V003", search_field="CVENDORID")
        assert [r["CVENDNAME"] for r in result.records] == ["Pumper Inc"]

    def test_missing_table_reports_error(self, operations):
        result = operations.search_table(COMPANY, "NOSUCH.DBF", "B001")
        assert result.count == 0
        assert result.error.startswith("Failed to read NOSUCH.DBF")

    def test_table_without_search_field(self, operations):
        result = operations.search_table(COMPANY, "COA.DBF", "B001")
        assert result.records == []
        assert result.error is None
        assert "CACCTNO" in result.columns


class TestFollowBatch:
    """Tracing a payment batch back to the purchase"""

    def test_payables_batch_follows_bill_token(self, operations):
        result = operations.follow_batch_number(COMPANY, "B002")
        assert result["bill_token"] == "BT100"
        assert result["checks"]["count"] == 1
        assert result["glmaster"]["count"] == 2
        assert result["appmthdr"]["count"] == 1
        assert result["appmtdet"]["count"] == 1
        assert result["appurchh"]["records"][0]["CINVNO"] == "INV-77"
        assert result["appurchd"]["count"] == 1
        assert result["total_records"] == 7

    def test_batch_without_payables(self, operations):
        result = operations.follow_batch_number(COMPANY, "b001")
        assert result["batch_number"] == "b001"
        assert result["bill_token"] == ""
        assert result["appurchh"]["count"] == 0
        assert result["total_records"] == 3

    def test_empty_batch(self, operations):
        with pytest.raises(CompanyError, match="cannot be empty"):
            operations.follow_batch_number(COMPANY, "   ")

    def test_unknown_company(self, operations):
        with pytest.raises(CompanyError):
            operations.follow_batch_number("NOPE", "B001")
