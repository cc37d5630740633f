"""
Legacy table layouts.

Column names of the accounting tables, with the alternates seen across
installations, and small views that turn raw CHECKS and GLMASTER records into
uniformly named values.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional

from .companies import TableData
from .currency import Currency, from_dbf
from .dbfmap import to_bool, to_date, to_str


CHECKS_TABLE = "CHECKS.DBF"
GLMASTER_TABLE = "GLMASTER.DBF"
COA_TABLE = "COA.DBF"
CHECKREC_TABLE = "CHECKREC.DBF"

CHECK_COLUMNS: Dict[str, List[str]] = {
    "check_number": ["CCHECKNO", "CCHECKNUM", "CHECKNO"],
    "date": ["DCHECKDATE", "DDATE", "CHECKDATE"],
    "payee": ["CPAYEE", "CPAYEENAME", "PAYEE"],
    "amount": ["NAMOUNT", "NAMT", "AMOUNT"],
    "account": ["CACCTNO", "ACCOUNT", "ACCTNO"],
    "cleared": ["LCLEARED", "CLEARED"],
    "void": ["LVOID", "VOID"],
    "entry_type": ["CENTRYTYPE", "ENTRYTYPE"],
    "cidchec": ["CIDCHEC"],
    "batch": ["CBATCH", "BATCH"],
}

GL_COLUMNS: Dict[str, List[str]] = {
    "account": ["CACCTNO", "ACCOUNT", "ACCTNO"],
    "debit": ["NDEBITS", "NDEBIT", "DEBIT"],
    "credit": ["NCREDITS", "NCREDIT", "CREDIT"],
    "amount": ["NAMOUNT", "AMOUNT"],
    "source": ["CSOURCE", "SOURCE"],
    "batch": ["CBATCH", "BATCH"],
    "description": ["CDESCRIPT", "CDESC", "DESCRIPTION"],
    "date": ["DTRANSDATE", "DDATE", "DPOSTDATE"],
    "year": ["CYEAR", "YEAR"],
    "period": ["CPERIOD", "PERIOD"],
}

COA_COLUMNS: Dict[str, List[str]] = {
    "number": ["CACCTNO", "ACCOUNT", "ACCTNO"],
    "description": ["CACCTDESC", "CDESC", "DESCRIPTION"],
    "type": ["NACCTTYPE", "ACCTTYPE", "TYPE"],
    "parent": ["CPARENT", "PARENT"],
    "bank": ["LBANKACCT"],
    "unit": ["LACCTUNIT"],
    "dept": ["LACCTDEPT"],
    "inactive": ["LINACTIVE", "INACTIVE"],
}

CHECKREC_COLUMNS: Dict[str, List[str]] = {
    "account": ["CACCTNO", "ACCOUNT"],
    "date": ["DRECDATE", "RECDATE"],
    "statement_balance": ["NSTMTBAL"],
    "reconciled_balance": ["NRECBAL"],
}


def resolve_columns(table: TableData, candidates_by_name: Dict[str, List[str]]) -> Dict[str, Optional[str]]:
    """Map logical names to the actual column of this table (None when absent)"""
    return {name: table.column(candidates) for name, candidates in candidates_by_name.items()}


def _get(record: Dict[str, Any], column: Optional[str]) -> Any:
    return record.get(column) if column else None


@dataclass
class CheckView:
    row_index: int
    check_number: str
    date: Optional[date]
    payee: str
    amount: Currency
    account: str
    cleared: bool
    void: bool
    entry_type: str
    cidchec: str
    batch: str

    @property
    def outstanding(self) -> bool:
        return not self.cleared and not self.void

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row_index": self.row_index,
            "check_number": self.check_number,
            "date": self.date.isoformat() if self.date else None,
            "payee": self.payee,
            "amount": self.amount.to_number(),
            "account": self.account,
            "cleared": self.cleared,
            "void": self.void,
            "entry_type": self.entry_type,
            "cidchec": self.cidchec,
            "batch": self.batch,
        }


def check_views(table: TableData) -> List[CheckView]:
    cols = resolve_columns(table, CHECK_COLUMNS)
    views = []
    for index, record in enumerate(table.records):
        views.append(CheckView(
            row_index=index,
            check_number=to_str(_get(record, cols["check_number"])),
            date=to_date(_get(record, cols["date"])),
            payee=to_str(_get(record, cols["payee"])),
            amount=from_dbf(_get(record, cols["amount"])),
            account=to_str(_get(record, cols["account"])),
            cleared=to_bool(_get(record, cols["cleared"])),
            void=to_bool(_get(record, cols["void"])),
            entry_type=to_str(_get(record, cols["entry_type"])),
            cidchec=to_str(_get(record, cols["cidchec"])),
            batch=to_str(_get(record, cols["batch"])),
        ))
    return views


@dataclass
class GLView:
    row_index: int
    account: str
    debit: Currency
    credit: Currency
    source: str
    batch: str
    description: str
    date: Optional[date]
    year: str
    period: str

    @property
    def amount(self) -> Currency:
        """Signed amount, debit positive"""
        return self.debit - self.credit

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row_index": self.row_index,
            "account": self.account,
            "debit": self.debit.to_number(),
            "credit": self.credit.to_number(),
            "amount": self.amount.to_number(),
            "source": self.source,
            "batch": self.batch,
            "description": self.description,
            "date": self.date.isoformat() if self.date else None,
            "year": self.year,
            "period": self.period,
        }


def gl_views(table: TableData) -> List[GLView]:
    """
    GLMASTER rows. Tables without separate debit and credit columns carry a
    signed NAMOUNT, split here into debit (positive) or credit (negative).
    """
    cols = resolve_columns(table, GL_COLUMNS)
    split = cols["debit"] is not None or cols["credit"] is not None
    views = []
    for index, record in enumerate(table.records):
        if split:
            debit = from_dbf(_get(record, cols["debit"]))
            credit = from_dbf(_get(record, cols["credit"]))
        else:
            amount = from_dbf(_get(record, cols["amount"]))
            debit = amount if amount.is_positive() else Currency.zero()
            credit = amount.abs() if amount.is_negative() else Currency.zero()
        views.append(GLView(
            row_index=index,
            account=to_str(_get(record, cols["account"])),
            debit=debit,
            credit=credit,
            source=to_str(_get(record, cols["source"])).upper(),
            batch=to_str(_get(record, cols["batch"])),
            description=to_str(_get(record, cols["description"])),
            date=to_date(_get(record, cols["date"])),
            year=to_str(_get(record, cols["year"])),
            period=to_str(_get(record, cols["period"])),
        ))
    return views
