"""
Shared fixtures: a data folder of small legacy DBF tables built in tmp_path.

Layout::

    data/compmast.dbf
    data/ACME/{COA,CHECKS,GLMASTER,CHECKREC,VENDOR,WELLS,VERSION,APPMTHDR,
               APPMTDET,APPURCHH,APPURCHD}.DBF
    data/ACME/ownerstatements/DIST2024.dbf
"""

import os
from datetime import date
from pathlib import Path

import pytest

# Keep the API module from creating a SQLite file in the working directory
os.environ.setdefault("FINANCIALSX_DATABASE_PATH", ":memory:")

from financialsx.audit import AuditTrail
from financialsx.companies import CompanyService
from financialsx.config import get_config
from financialsx.dbf import DBFTable
from financialsx.storage import InMemoryStorage


COMPANY = "ACME"


COA_FIELDS = [
    ("CACCTNO", "C", 10), ("CACCTDESC", "C", 70), ("NACCTTYPE", "N", 1),
    ("CPARENT", "C", 10), ("LBANKACCT", "L"), ("LACCTUNIT", "L"), ("LACCTDEPT", "L"),
    ("LINACTIVE", "L"),
]
COA_ROWS = [
    ["1000", "Operating Cash", 1, "", True, False, False, False],
    ["1010", "Payroll Cash", 1, "1000", True, False, False, False],
    ["2000", "Accounts Payable", 2, "", False, False, False, False],
    ["4000", "Oil Revenue", 4, "", False, True, False, False],
    ["5000", "Lease Operating Expense", 5, "", False, False, True, False],
    ["5900", "Retired Expense Account", 5, "", False, False, False, True],
]

CHECK_FIELDS = [
    ("CCHECKNO", "C", 10), ("DCHECKDATE", "D"), ("CPAYEE", "C", 40), ("NAMOUNT", "N", 12, 2),
    ("CACCTNO", "C", 10), ("LCLEARED", "L"), ("LVOID", "L"), ("CENTRYTYPE", "C", 1),
    ("CIDCHEC", "C", 10), ("CBATCH", "C", 10),
]
CHECK_ROWS = [
    ["1001", date(2024, 1, 15), "Acme Supply", 500.00, "1000", True, False, "C", "CID1", "B001"],
    ["1002", date(2024, 1, 20), "Big Rig Co", 1250.50, "1000", False, False, "C", "CID2", "B002"],
    ["1003", date(2024, 2, 1), "Acme Supply", 300.00, "1000", False, False, "C", "CID3", "B003"],
    ["1004", date(2024, 2, 10), "Void Vendor", 0.00, "1000", False, True, "C", "CID4", ""],
    ["1005", date(2024, 2, 15), "Pumper Inc", 75.25, "1000", False, False, "C", "CID2", ""],
    ["1006", date(2024, 3, 1), "Bad Void", 40.00, "1010", True, True, "C", "CID6", ""],
    ["1007", date(2024, 3, 5), "Zero Co", 0.00, "1010", False, False, "C", "", ""],
    ["1007", date(2024, 3, 10), "Zero Co", 20.00, "1010", False, False, "C", "CID8", "B008"],
    ["9999", date(2024, 3, 12), "Deleted Payee", 99.00, "1000", False, False, "C", "CID9", "B999"],
]

GL_FIELDS = [
    ("CACCTNO", "C", 10), ("NDEBITS", "N", 12, 2), ("NCREDITS", "N", 12, 2), ("CSOURCE", "C", 2),
    ("CBATCH", "C", 10), ("CDESCRIPT", "C", 40), ("DTRANSDATE", "D"), ("CYEAR", "C", 4),
    ("CPERIOD", "C", 2),
]
GL_ROWS = [
    ["1000", 0, 500.00, "CD", "B001", "Check 1001 Acme Supply", date(2024, 1, 15), "2024", "01"],
    ["5000", 500.00, 0, "CD", "B001", "Acme Supply expense", date(2024, 1, 15), "2024", "01"],
    ["1000", 0, 1200.00, "CD", "B002", "Check 1002 Big Rig", date(2024, 1, 20), "2024", "01"],
    ["2000", 1200.00, 0, "AP", "B002", "AP payment Big Rig", date(2024, 1, 20), "2024", "01"],
    ["1000", 0, 75.25, "CD", "B005", "Check 1005 Pumper", date(2024, 2, 15), "2024", "02"],
    ["5000", 75.25, 0, "CD", "B005", "Pumper expense", date(2024, 2, 15), "2024", "02"],
    ["1000", 10000.00, 0, "GJ", "J001", "Opening balance", date(2023, 12, 31), "2023", "12"],
    ["4000", 0, 10000.00, "GJ", "J001", "Opening revenue", date(2023, 12, 31), "2023", "12"],
    ["1010", 2500000.00, 0, "GJ", "J002", "Large deposit", date(2024, 3, 1), "", ""],
    ["1010", 2500000.00, 0, "GJ", "J002", "Large deposit", date(2024, 3, 1), "", ""],
    ["5000", 0, 0, "GJ", "", "Zero line", date(2024, 3, 2), "2024", "03"],
]

CHECKREC_FIELDS = [
    ("CACCTNO", "C", 10), ("DRECDATE", "D"), ("NSTMTBAL", "N", 12, 2), ("NRECBAL", "N", 12, 2),
]
CHECKREC_ROWS = [
    ["1000", date(2024, 1, 31), 9000.00, 9000.00],
    ["1000", date(2024, 2, 29), 9500.00, 9400.00],
]

VENDOR_FIELDS = [
    ("CVENDORID", "C", 10), ("CVENDNAME", "C", 40), ("CADDRESS", "C", 40), ("CPHONE", "C", 15),
    ("NBALANCE", "N", 12, 2),
]
VENDOR_ROWS = [
    ["V001", "Acme Supply", "1 Main St", "555-0100", 100.00],
    ["V002", "Old Vendor", "2 Gone Ave", "555-0199", 0],
    ["V003", "Pumper Inc", "3 Field Rd", "555-0300", 250.75],
]

WELL_FIELDS = [
    ("CWELLID", "C", 10), ("CWELLNAME", "C", 30), ("CAPINO", "C", 14), ("CCOUNTY", "C", 20),
    ("CSTATE", "C", 2), ("CWELLSTAT", "C", 1), ("NWORKINT", "N", 8, 4), ("NREVINT", "N", 8, 4),
    ("DSPUDDATE", "D"),
]
WELL_ROWS = [
    ["W001", "Smith #1", "42-329-00001", "Midland", "TX", "A", 1.0, 0.875, date(2010, 5, 1)],
    ["W002", "Jones #2", "42-329-00002", "Midland", "TX", "A", 0.5, 0.4375, None],
    ["W003", "Old Well", "42-329-00003", "Ector", "TX", "P", 0.25, 0.2, None],
    ["W004", "Mystery", "", "Ector", "TX", "X", 0, 0, None],
]

VERSION_FIELDS = [
    ("CPRODUCER", "C", 40), ("CADDRESS1", "C", 40), ("CADDRESS2", "C", 40), ("CCITY", "C", 20),
    ("CSTATE", "C", 2), ("CZIPCODE", "C", 10), ("CPHONE", "C", 15),
]
VERSION_ROWS = [
    ["Acme Oil & Gas", "100 Derrick Rd", "", "Midland", "TX", "79701", "432-555-0100"],
]

OWNER_FIELDS = [
    ("COWNERKEY", "C", 10), ("COWNERNAME", "C", 40), ("CWELLNO", "C", 10),
    ("NGROSS", "N", 12, 2), ("NNET", "N", 12, 2),
]
OWNER_ROWS = [
    ["O001", "Jane Royalty", "W001", 100.00, 87.50],
    ["O001", "Jane Royalty", "W002", 50.00, 43.75],
    ["O002", "Bob Mineral", "W001", 200.00, 175.00],
]


def build_company(company_dir: Path) -> None:
    company_dir.mkdir(parents=True)
    DBFTable.create(company_dir / "COA.DBF", COA_FIELDS, COA_ROWS)
    checks = DBFTable.create(company_dir / "CHECKS.DBF", CHECK_FIELDS, CHECK_ROWS)
    checks.set_deleted(len(CHECK_ROWS) - 1)
    DBFTable.create(company_dir / "GLMASTER.DBF", GL_FIELDS, GL_ROWS)
    DBFTable.create(company_dir / "CHECKREC.DBF", CHECKREC_FIELDS, CHECKREC_ROWS)
    vendors = DBFTable.create(company_dir / "VENDOR.DBF", VENDOR_FIELDS, VENDOR_ROWS)
    vendors.set_deleted(1)
    DBFTable.create(company_dir / "WELLS.DBF", WELL_FIELDS, WELL_ROWS)
    DBFTable.create(company_dir / "VERSION.DBF", VERSION_FIELDS, VERSION_ROWS)

    DBFTable.create(company_dir / "APPMTHDR.DBF",
                    [("CBATCH", "C", 10), ("CVENDORID", "C", 10), ("NAMOUNT", "N", 12, 2)],
                    [["B002", "V002", 1250.50]])
    DBFTable.create(company_dir / "APPMTDET.DBF",
                    [("CBATCH", "C", 10), ("CBILLTOKEN", "C", 10), ("NAMOUNT", "N", 12, 2)],
                    [["B002", "BT100", 1250.50]])
    DBFTable.create(company_dir / "APPURCHH.DBF",
                    [("CBATCH", "C", 10), ("CINVNO", "C", 10)],
                    [["BT100", "INV-77"]])
    DBFTable.create(company_dir / "APPURCHD.DBF",
                    [("CBATCH", "C", 10), ("CACCTNO", "C", 10), ("NAMOUNT", "N", 12, 2)],
                    [["BT100", "5000", 1250.50]])

    statements = company_dir / "ownerstatements"
    statements.mkdir()
    DBFTable.create(statements / "DIST2024.dbf", OWNER_FIELDS, OWNER_ROWS)
    (statements / "readme.txt").write_text("not a table")


@pytest.fixture
def data_dir(tmp_path):
    """Data folder with compmast.dbf, the ACME company and a missing company"""
    root = tmp_path / "data"
    root.mkdir()
    DBFTable.create(root / "compmast.dbf", [("CCOMPNAME", "C", 30), ("CDATAPATH", "C", 60)], [
        ["Acme Oil", "C:\\FOXPRO\\DATA\\ACME"],
        ["Ghost Co", "C:\\FOXPRO\\DATA\\GHOST\\"],
        ["", "C:\\FOXPRO\\DATA\\BLANK"],
    ])
    build_company(root / COMPANY)
    return root


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def audit_trail(storage):
    return AuditTrail(storage)


@pytest.fixture
def companies(data_dir, audit_trail):
    return CompanyService(audit_trail, data_path=str(data_dir))


@pytest.fixture
def report_dir(tmp_path, monkeypatch):
    directory = tmp_path / "reports"
    monkeypatch.setattr(get_config(), "report_output_dir", str(directory))
    return directory
