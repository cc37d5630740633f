"""
Financial Audits Module

Consistency checks over CHECKS.DBF, GLMASTER.DBF, COA.DBF and CHECKREC.DBF.
Every audit returns an AuditResult holding a list of Discrepancy rows; read
failures are reported inside the result rather than raised.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Union

from .companies import CompanyService
from .config import get_config
from .currency import Currency, from_dbf, sum_currency
from .dbfmap import to_bool, to_date, to_str
from .exceptions import FinancialsXError
from .logging_config import get_logger
from .schema import (CHECKREC_COLUMNS, CHECKREC_TABLE, CHECKS_TABLE, COA_COLUMNS, COA_TABLE,
                     GLMASTER_TABLE, CheckView, GLView, check_views, gl_views, resolve_columns)


logger = get_logger("financialsx.audits")

DEFAULT_START_DATE = date(1980, 1, 1)
DEFAULT_END_DATE = date(2030, 12, 31)

# GL sources that record check disbursements
CHECK_SOURCES = {"CD", "AP"}

ERROR = "error"
WARNING = "warning"


@dataclass
class Discrepancy:
    """A single problem found by an audit"""
    type: str
    severity: str
    description: str
    details: Dict[str, Any] = field(default_factory=dict)
    row_data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "severity": self.severity,
            "description": self.description,
            "details": self.details,
            "row_data": self.row_data,
        }


@dataclass
class AuditResult:
    success: bool = True
    message: str = ""
    error: str = ""
    total_checks: int = 0
    issues: List[Discrepancy] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failure(cls, error: str) -> 'AuditResult':
        return cls(success=False, error=error, message=error)

    def add(self, issue_type: str, severity: str, description: str,
            details: Optional[Dict[str, Any]] = None,
            row_data: Optional[Dict[str, Any]] = None) -> Discrepancy:
        issue = Discrepancy(issue_type, severity, description, details or {}, row_data)
        self.issues.append(issue)
        return issue

    def issues_of(self, issue_type: str) -> List[Discrepancy]:
        return [i for i in self.issues if i.type == issue_type]

    @property
    def error_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == WARNING)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "error": self.error,
            "total_checks": self.total_checks,
            "issues": [i.to_dict() for i in self.issues],
            "summary": self.summary,
            "metadata": self.metadata,
        }


def _parse_bound(value: Union[str, date, None], default: date) -> date:
    if value in (None, ""):
        return default
    parsed = to_date(value)
    if parsed is None:
        logger.warning(f"Unparsable audit date {value!r}, using {default.isoformat()}")
        return default
    return parsed


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def _check_summary(check: CheckView) -> Dict[str, Any]:
    return {
        "check_number": check.check_number,
        "check_date": _iso(check.date),
        "payee": check.payee,
        "amount": check.amount.to_number(),
        "account": check.account,
        "batch": check.batch,
        "void": check.void,
        "cleared": check.cleared,
    }


def _gl_summary(entry: GLView) -> Dict[str, Any]:
    return {
        "row_index": entry.row_index,
        "trans_date": _iso(entry.date),
        "description": entry.description,
        "amount": entry.amount.to_number(),
        "account": entry.account,
        "batch": entry.batch,
        "source": entry.source,
    }


def _net_by_account(entries: List[GLView]) -> Dict[str, Currency]:
    balances: Dict[str, Currency] = {}
    for entry in entries:
        balances[entry.account] = balances.get(entry.account, Currency.zero()) + entry.amount
    return balances


class AuditService:
    """Runs the financial data audits for one company at a time"""

    def __init__(self, companies: CompanyService):
        self.companies = companies

    def _run(self, name: str, company: str, audit: Callable[..., AuditResult], *args) -> AuditResult:
        try:
            result = audit(company, *args)
        except FinancialsXError as e:
            logger.error(f"{name} audit failed for {company}: {e}")
            return AuditResult.failure(str(e))
        result.metadata.setdefault("audit", name)
        result.metadata.setdefault("company", company)
        result.metadata.setdefault("audit_date", date.today().isoformat())
        logger.info(f"{name} audit for {company}: {len(result.issues)} issues")
        return result

    def _checks(self, company: str):
        table = self.companies.load_table(company, CHECKS_TABLE)
        return table, check_views(table)

    def _gl(self, company: str) -> List[GLView]:
        return gl_views(self.companies.load_table(company, GLMASTER_TABLE))

    # Check batches

    def audit_check_batches(self, company: str) -> AuditResult:
        return self._run("check_batches", company, self._check_batches)

    def _check_batches(self, company: str) -> AuditResult:
        table, checks = self._checks(company)
        if not checks:
            return AuditResult.failure("No check records found")
        entries = [e for e in self._gl(company) if e.source in CHECK_SOURCES]

        by_batch: Dict[str, List[GLView]] = {}
        for entry in entries:
            if entry.batch:
                by_batch.setdefault(entry.batch, []).append(entry)

        result = AuditResult(total_checks=len(checks))
        with_batch = without_batch = matched = 0
        for check in checks:
            if check.void:
                continue
            amount = check.amount.abs()
            row = table.records[check.row_index]
            if check.batch:
                with_batch += 1
                batch_entries = by_batch.get(check.batch)
                if batch_entries is None:
                    result.add("missing_gl_entry", ERROR,
                               f"No GL entry found for batch {check.batch} (check {check.check_number})",
                               {"check_number": check.check_number, "batch": check.batch,
                                "amount": check.amount.to_number()}, row)
                elif any(e.amount.abs() == amount for e in batch_entries):
                    matched += 1
                else:
                    result.add("mismatched_amount", ERROR,
                               f"GL entry found for batch {check.batch} but amount doesn't match "
                               f"check {check.check_number} ({check.amount.format()})",
                               {"check_number": check.check_number, "batch": check.batch,
                                "check_amount": check.amount.to_number(),
                                "gl_amounts": [e.amount.to_number() for e in batch_entries]}, row)
            else:
                without_batch += 1
                found = check.check_number and any(
                    check.check_number in e.description and e.amount.abs() == amount
                    for e in entries
                )
                if found:
                    matched += 1
                else:
                    result.add("no_batch_no_match", WARNING,
                               f"Check {check.check_number} has no batch number and no GL match by check number",
                               {"check_number": check.check_number,
                                "amount": check.amount.to_number()}, row)

        result.summary = {
            "total_checks": len(checks),
            "checks_with_batch": with_batch,
            "checks_without_batch": without_batch,
            "matched_entries": matched,
            "missing_entries": len(result.issues_of("missing_gl_entry")) + len(result.issues_of("no_batch_no_match")),
            "mismatched_amounts": len(result.issues_of("mismatched_amount")),
        }
        result.metadata["check_columns"] = table.columns
        result.message = (f"Checked {with_batch + without_batch} non-void checks: "
                          f"{matched} matched, {len(result.issues)} issues")
        return result

    # CIDCHEC

    def audit_duplicate_cidchec(self, company: str) -> AuditResult:
        return self._run("duplicate_cidchec", company, self._duplicate_cidchec)

    def _duplicate_cidchec(self, company: str) -> AuditResult:
        table, checks = self._checks(company)
        if not checks:
            return AuditResult(message="No check records found")
        if not table.has_column("CIDCHEC"):
            return AuditResult.failure("CIDCHEC field not found in CHECKS.DBF")

        groups: Dict[str, List[CheckView]] = OrderedDict()
        without_cid: List[CheckView] = []
        for check in checks:
            if check.cidchec:
                groups.setdefault(check.cidchec, []).append(check)
            else:
                without_cid.append(check)

        duplicates = [
            {"cidchec": cid, "count": len(group), "checks": [_check_summary(c) for c in group]}
            for cid, group in groups.items() if len(group) > 1
        ]
        duplicates.sort(key=lambda d: d["count"], reverse=True)

        total = sum(1 for c in checks if not c.void)
        result = AuditResult(total_checks=total)
        for dup in duplicates:
            result.add("duplicate_cidchec", ERROR,
                       f"CIDCHEC {dup['cidchec']} appears {dup['count']} times", dup)
        for check in without_cid:
            if not check.void:
                result.add("missing_cidchec", WARNING,
                           f"Check {check.check_number} has no CIDCHEC value",
                           _check_summary(check), table.records[check.row_index])

        affected = sum(d["count"] for d in duplicates)
        result.summary = {
            "total_checks": total,
            "unique_cidchecs": len(groups),
            "duplicate_cidchecs": len(duplicates),
            "checks_without_cidchec": len(without_cid),
            "checks_affected_by_duplicates": affected,
        }
        result.metadata["duplicate_groups"] = duplicates
        if duplicates:
            result.message = f"Found {len(duplicates)} duplicate CIDCHEC values affecting {affected} checks"
        elif without_cid:
            result.message = f"No duplicates found, but {len(without_cid)} checks have no CIDCHEC"
        else:
            result.message = "No issues found - all checks have unique CIDCHEC values"
        return result

    # Void checks

    def audit_void_checks(self, company: str) -> AuditResult:
        return self._run("void_checks", company, self._void_checks)

    def _void_checks(self, company: str) -> AuditResult:
        table, checks = self._checks(company)
        result = AuditResult()
        void_total = properly_voided = 0
        for check in checks:
            row = table.records[check.row_index]
            details = _check_summary(check)
            if check.void:
                void_total += 1
                if not check.amount.is_zero():
                    result.add("void_with_amount", ERROR,
                               f"Void check {check.check_number} has amount {check.amount.format()}",
                               details, row)
                if check.cleared:
                    result.add("void_but_cleared", ERROR,
                               f"Check {check.check_number} is both void and cleared", details, row)
                if check.amount.is_zero() and not check.cleared:
                    properly_voided += 1
            elif check.amount.is_zero() and check.check_number:
                result.add("zero_amount_not_void", WARNING,
                           f"Check {check.check_number} has zero amount but not marked void",
                           details, row)

        result.total_checks = void_total
        result.summary = {
            "total_void_checks": void_total,
            "properly_voided": properly_voided,
            "void_with_nonzero_amount": len(result.issues_of("void_with_amount")),
            "nonvoid_with_zero_amount": len(result.issues_of("zero_amount_not_void")),
            "void_but_cleared": len(result.issues_of("void_but_cleared")),
            "total_issues": len(result.issues),
        }
        if result.issues:
            result.message = f"Found {len(result.issues)} issues with void checks"
        else:
            result.message = f"All {void_total} void checks are properly configured"
        return result

    # Payee / CID

    def audit_payee_cid_verification(self, company: str) -> AuditResult:
        return self._run("payee_cid_verification", company, self._payee_cid_verification)

    def _payee_cid_verification(self, company: str) -> AuditResult:
        table, checks = self._checks(company)
        cid_column = next(
            (c for c in table.columns if "CID" in c and "PAYEE" in c),
            "CIDCHEC" if table.has_column("CIDCHEC") else None,
        )

        payees: Dict[str, Dict[str, Any]] = OrderedDict()
        missing = []
        total = with_cid = 0
        for check in checks:
            if check.void:
                continue
            total += 1
            if not check.payee:
                continue
            cid = to_str(table.records[check.row_index].get(cid_column)) if cid_column else ""
            if not cid:
                missing.append(_check_summary(check))
                continue
            with_cid += 1
            entry = payees.setdefault(check.payee.lower(), {"payee": check.payee, "cids": OrderedDict()})
            entry["cids"][cid] = entry["cids"].get(cid, 0) + 1

        result = AuditResult(total_checks=total)
        multiple = []
        for entry in payees.values():
            if len(entry["cids"]) < 2:
                continue
            cid_details = sorted(
                ({"cid": cid, "count": count} for cid, count in entry["cids"].items()),
                key=lambda item: item["count"], reverse=True,
            )
            multiple.append({
                "payee": entry["payee"],
                "cid_count": len(entry["cids"]),
                "cids": list(entry["cids"]),
                "cid_details": cid_details,
                "total_checks": sum(entry["cids"].values()),
            })
        multiple.sort(key=lambda item: item["cid_count"], reverse=True)
        for item in multiple:
            result.add("payee_multiple_cids", WARNING,
                       f"Payee {item['payee']} is associated with {item['cid_count']} different CIDs",
                       item)

        result.summary = {
            "total_checks": total,
            "checks_with_cid": with_cid,
            "checks_without_cid": len(missing),
            "unique_payees": len(payees),
            "payees_with_multiple_cids": len(multiple),
            "cid_field": cid_column or "",
        }
        result.metadata["missing_cid_checks"] = missing
        result.message = (f"{len(multiple)} payees with multiple CIDs across {len(payees)} payees"
                          if multiple else f"All {len(payees)} payees use a single CID")
        return result

    # Check to GL matching

    def audit_check_gl_matching(self, company: str, account_number: str = "",
                                start_date: Union[str, date, None] = None,
                                end_date: Union[str, date, None] = None) -> AuditResult:
        return self._run("check_gl_matching", company, self._check_gl_matching,
                         account_number, start_date, end_date)

    def _check_gl_matching(self, company: str, account_number: str,
                           start_date: Union[str, date, None],
                           end_date: Union[str, date, None]) -> AuditResult:
        start = _parse_bound(start_date, DEFAULT_START_DATE)
        end = _parse_bound(end_date, DEFAULT_END_DATE)
        account_number = (account_number or "").strip()

        def in_scope(account: str, when: Optional[date]) -> bool:
            if account_number and account != account_number:
                return False
            return when is not None and start <= when <= end

        _, checks = self._checks(company)
        checks = [c for c in checks if not c.void and in_scope(c.account, c.date)]
        entries = [e for e in self._gl(company)
                   if e.source in CHECK_SOURCES and in_scope(e.account, e.date)]

        matched_checks = set()
        matched_entries = set()
        for entry in entries:
            amount = entry.amount.abs()
            match = next(
                (c for c in checks
                 if c.row_index not in matched_checks and c.check_number
                 and c.check_number in entry.description and c.amount.abs() == amount),
                None,
            )
            if match is None and entry.batch:
                match = next(
                    (c for c in checks
                     if c.row_index not in matched_checks and c.batch == entry.batch
                     and c.amount.abs() == amount),
                    None,
                )
            if match is not None:
                matched_checks.add(match.row_index)
                matched_entries.add(entry.row_index)

        result = AuditResult(total_checks=len(checks))
        for check in checks:
            if check.row_index not in matched_checks:
                result.add("unmatched_check", WARNING,
                           f"Check {check.check_number} ({check.amount.format()}) has no matching GL entry",
                           _check_summary(check))
        for entry in entries:
            if entry.row_index not in matched_entries:
                result.add("unmatched_gl_entry", WARNING,
                           f"GL entry '{entry.description}' ({entry.amount.format()}) has no matching check",
                           _gl_summary(entry))

        period = f"{start.isoformat()} to {end.isoformat()}"
        result.summary = {
            "period": period,
            "account_number": account_number,
            "total_checks": len(checks),
            "matched_checks": len(matched_checks),
            "unmatched_checks": len(checks) - len(matched_checks),
            "total_gl_entries": len(entries),
            "matched_gl_entries": len(matched_entries),
            "unmatched_gl_entries": len(entries) - len(matched_entries),
        }
        result.message = (f"{len(matched_checks)} of {len(checks)} checks matched to GL "
                          f"for {period}")
        return result

    # Bank reconciliation

    def audit_bank_reconciliation(self, company: str) -> AuditResult:
        return self._run("bank_reconciliation", company, self._bank_reconciliation)

    def _bank_reconciliation(self, company: str) -> AuditResult:
        coa = self.companies.load_table(company, COA_TABLE)
        coa_cols = resolve_columns(coa, COA_COLUMNS)
        bank_accounts = [
            r for r in coa.records if coa_cols["bank"] and to_bool(r.get(coa_cols["bank"]))
        ]
        _, checks = self._checks(company)
        balances = _net_by_account(self._gl(company))

        latest: Dict[str, Dict[str, Any]] = {}
        recs = self.companies.try_load_table(company, CHECKREC_TABLE)
        if recs:
            rec_cols = resolve_columns(recs, CHECKREC_COLUMNS)
            for record in recs.records:
                account = to_str(record.get(rec_cols["account"])) if rec_cols["account"] else ""
                when = to_date(record.get(rec_cols["date"])) if rec_cols["date"] else None
                current = latest.get(account)
                if current is None or (when and (current["date"] is None or when > current["date"])):
                    latest[account] = {
                        "date": when,
                        "statement": from_dbf(record.get(rec_cols["statement_balance"] or "")),
                        "reconciled": from_dbf(record.get(rec_cols["reconciled_balance"] or "")),
                    }

        stale_days = get_config().stale_check_days
        tolerance = Currency(get_config().balance_tolerance)
        today = date.today()
        result = AuditResult(total_checks=len(checks))
        accounts = []
        reconciled = 0
        for record in bank_accounts:
            number = to_str(record.get(coa_cols["number"]))
            name = to_str(record.get(coa_cols["description"])) if coa_cols["description"] else ""
            outstanding = [c for c in checks if c.outstanding and c.account == number]
            outstanding_total = sum_currency(c.amount for c in outstanding)
            gl_balance = balances.get(number, Currency.zero())
            bank_balance = gl_balance + outstanding_total
            info = {
                "account_number": number,
                "account_name": name,
                "gl_balance": gl_balance.to_number(),
                "outstanding_checks": len(outstanding),
                "outstanding_amount": outstanding_total.to_number(),
                "bank_balance": bank_balance.to_number(),
                "last_rec_date": None,
            }
            accounts.append(info)

            rec = latest.get(number)
            if rec is None:
                result.add("never_reconciled", WARNING,
                           f"Bank account {number} ({name}) has never been reconciled", dict(info))
                continue

            reconciled += 1
            info["last_rec_date"] = _iso(rec["date"])
            if rec["date"] is not None:
                days = (today - rec["date"]).days
                if days > stale_days:
                    result.add("stale_reconciliation", WARNING,
                               f"Bank account {number} last reconciled {days} days ago",
                               dict(info, days_since=days))
            difference = (rec["statement"] - rec["reconciled"]).abs()
            if difference > tolerance:
                result.add("out_of_balance", ERROR,
                           f"Bank account {number} reconciliation is out of balance by {difference.format()}",
                           dict(info, statement_balance=rec["statement"].to_number(),
                                reconciled_balance=rec["reconciled"].to_number(),
                                difference=difference.to_number()))

        result.summary = {
            "total_accounts": len(bank_accounts),
            "reconciled_accounts": reconciled,
            "unreconciled_accounts": len(result.issues_of("never_reconciled")),
            "out_of_balance_accounts": len(result.issues_of("out_of_balance")),
            "stale_reconciliations": len(result.issues_of("stale_reconciliation")),
        }
        result.metadata["accounts"] = accounts
        result.metadata["has_checkrec"] = recs is not None
        result.message = (f"Audited {len(bank_accounts)} bank accounts: {reconciled} reconciled, "
                          f"{len(result.issues)} issues")
        return result

    def audit_single_bank_account(self, company: str, account_number: str) -> AuditResult:
        return self._run("single_bank_account", company, self._single_bank_account, account_number)

    def _single_bank_account(self, company: str, account_number: str) -> AuditResult:
        account_number = (account_number or "").strip()
        if not account_number:
            return AuditResult.failure("Account number is required")
        _, checks = self._checks(company)
        checks = [c for c in checks if c.account == account_number]
        entries = [e for e in self._gl(company) if e.account == account_number]

        void = [c for c in checks if c.void]
        cleared = [c for c in checks if c.cleared and not c.void]
        outstanding = [c for c in checks if c.outstanding]
        outstanding_total = sum_currency(c.amount for c in outstanding)
        cleared_total = sum_currency(c.amount for c in cleared)
        gl_balance = sum_currency(e.amount for e in entries)
        bank_balance = gl_balance + outstanding_total

        result = AuditResult(total_checks=len(checks))
        stale_days = get_config().stale_check_days
        today = date.today()
        stale = 0
        for check in outstanding:
            if check.date is None:
                continue
            days = (today - check.date).days
            if days > stale_days:
                stale += 1
                result.add("stale_check", WARNING,
                           f"Check {check.check_number} outstanding for {days} days",
                           dict(_check_summary(check), days_since=days))

        numbers: Dict[str, int] = OrderedDict()
        for check in checks:
            if not check.void and check.check_number:
                numbers[check.check_number] = numbers.get(check.check_number, 0) + 1
        for number, count in numbers.items():
            if count > 1:
                result.add("duplicate_check_number", ERROR,
                           f"Check number {number} appears {count} times",
                           {"check_number": number, "count": count})

        result.summary = {
            "account_number": account_number,
            "total_checks": len(checks),
            "outstanding_checks": len(outstanding),
            "cleared_checks": len(cleared),
            "void_checks": len(void),
            "stale_checks": stale,
            "total_check_amount": (outstanding_total + cleared_total).to_number(),
            "outstanding_amount": outstanding_total.to_number(),
            "cleared_amount": cleared_total.to_number(),
            "gl_balance": gl_balance.to_number(),
            "bank_balance": bank_balance.to_number(),
            "gl_transactions": len(entries),
        }
        result.message = (f"Account {account_number}: {len(checks)} total checks, "
                          f"{len(outstanding)} outstanding ({outstanding_total.format()}), "
                          f"GL Balance: {gl_balance.format()}, Bank Balance: {bank_balance.format()}")
        return result
