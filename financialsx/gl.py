"""
General Ledger Module

Chart of accounts from COA.DBF and integrity checks over GLMASTER.DBF:
balances by fiscal year, debit/credit validation and blank period fields.
"""

from typing import Any, Dict, List

from .companies import CompanyService
from .config import get_config
from .currency import Currency, sum_currency
from .dbfmap import to_bool, to_number, to_str
from .exceptions import CompanyError
from .logging_config import get_logger
from .schema import COA_COLUMNS, COA_TABLE, GL_COLUMNS, GLMASTER_TABLE, gl_views, resolve_columns


logger = get_logger("financialsx.gl")

ACCOUNT_TYPE_NAMES = {
    1: "Asset",
    2: "Liability",
    3: "Equity",
    4: "Revenue",
    5: "Expense",
}

MAX_DUPLICATES_REPORTED = 10
MAX_IMBALANCED_REPORTED = 20
SAMPLE_BLANK_ROWS = 5


def account_type_name(account_type: int) -> str:
    return ACCOUNT_TYPE_NAMES.get(account_type, "Unknown")


class GLService:
    def __init__(self, companies: CompanyService):
        self.companies = companies

    # Chart of accounts

    def get_chart_of_accounts(self, company: str, sort_by: str = "number",
                              include_inactive: bool = False) -> List[Dict[str, Any]]:
        """
        COA.DBF rows as account dictionaries.

        Args:
            company: Company name or folder
            sort_by: "number" (account number) or "type" (type, then number)
            include_inactive: Keep rows flagged LINACTIVE
        """
        if sort_by not in ("number", "type"):
            raise CompanyError(f"Invalid sort option: {sort_by}")
        data = self.companies.load_table(company, COA_TABLE)
        cols = resolve_columns(data, COA_COLUMNS)
        if not cols["number"]:
            raise CompanyError("COA.DBF has no account number column")

        accounts = []
        for record in data.records:
            inactive = to_bool(record.get(cols["inactive"])) if cols["inactive"] else False
            if inactive and not include_inactive:
                continue
            account_type = int(to_number(record.get(cols["type"]))) if cols["type"] else 0
            accounts.append({
                "account_number": to_str(record.get(cols["number"])),
                "account_description": to_str(record.get(cols["description"])) if cols["description"] else "",
                "account_type": account_type,
                "account_type_name": account_type_name(account_type),
                "parent_account": to_str(record.get(cols["parent"])) if cols["parent"] else "",
                "is_bank_account": to_bool(record.get(cols["bank"])) if cols["bank"] else False,
                "is_unit": to_bool(record.get(cols["unit"])) if cols["unit"] else False,
                "is_department": to_bool(record.get(cols["dept"])) if cols["dept"] else False,
                "is_active": not inactive,
            })

        if sort_by == "type":
            accounts.sort(key=lambda a: (a["account_type"], a["account_number"]))
        else:
            accounts.sort(key=lambda a: a["account_number"])
        return accounts

    # GLMASTER analysis

    def _gl_entries(self, company: str):
        data = self.companies.load_table(company, GLMASTER_TABLE)
        cols = resolve_columns(data, GL_COLUMNS)
        return data, cols, gl_views(data)

    def analyze_gl_balances_by_year(self, company: str, account_number: str = "") -> Dict[str, Any]:
        """Debits, credits and net per fiscal year, for one account or the whole ledger"""
        data, cols, entries = self._gl_entries(company)
        account_number = (account_number or "").strip()
        if account_number:
            entries = [e for e in entries if e.account == account_number]

        yearly: Dict[str, Dict[str, Any]] = {}
        blank = {"debits": Currency.zero(), "credits": Currency.zero(), "count": 0, "periods": set()}
        for entry in entries:
            bucket = blank if not entry.year else yearly.setdefault(
                entry.year,
                {"debits": Currency.zero(), "credits": Currency.zero(), "count": 0, "periods": set()},
            )
            bucket["debits"] = bucket["debits"] + entry.debit
            bucket["credits"] = bucket["credits"] + entry.credit
            bucket["count"] += 1
            if entry.period:
                bucket["periods"].add(entry.period)

        def summarize(year: str, totals: Dict[str, Any]) -> Dict[str, Any]:
            return {
                "year": year,
                "debits": totals["debits"].to_number(),
                "credits": totals["credits"].to_number(),
                "balance": (totals["debits"] - totals["credits"]).to_number(),
                "record_count": totals["count"],
                "periods": len(totals["periods"]),
            }

        total_debits = sum_currency(e.debit for e in entries)
        total_credits = sum_currency(e.credit for e in entries)
        return {
            "account_number": account_number,
            "yearly_balances": [summarize(y, yearly[y]) for y in sorted(yearly)],
            "blank_year_totals": summarize("", blank) if blank["count"] else None,
            "total_debits": total_debits.to_number(),
            "total_credits": total_credits.to_number(),
            "overall_balance": (total_debits - total_credits).to_number(),
            "total_records": len(entries),
            "years_found": len(yearly),
            "has_year_column": cols["year"] is not None,
        }

    def validate_gl_balances(self, company: str, account_number: str = "") -> Dict[str, Any]:
        """
        Ledger-wide integrity checks.

        Overall and per-year totals always cover the whole ledger; the
        imbalanced account list is limited to ``account_number`` when given.
        """
        cfg = get_config()
        tolerance = Currency(cfg.balance_tolerance)
        threshold = Currency(cfg.suspicious_amount_threshold)
        _, _, entries = self._gl_entries(company)
        account_number = (account_number or "").strip()

        total_debits = Currency.zero()
        total_credits = Currency.zero()
        by_year: Dict[str, List[Currency]] = {}
        by_account: Dict[str, List[Currency]] = {}
        seen: Dict[str, List[int]] = {}
        duplicates = []
        suspicious = []
        zero_count = 0

        for entry in entries:
            total_debits = total_debits + entry.debit
            total_credits = total_credits + entry.credit

            year_totals = by_year.setdefault(entry.year, [Currency.zero(), Currency.zero()])
            year_totals[0] = year_totals[0] + entry.debit
            year_totals[1] = year_totals[1] + entry.credit

            if not account_number or entry.account == account_number:
                account_totals = by_account.setdefault(entry.account, [Currency.zero(), Currency.zero()])
                account_totals[0] = account_totals[0] + entry.debit
                account_totals[1] = account_totals[1] + entry.credit

            if entry.debit.is_zero() and entry.credit.is_zero():
                zero_count += 1

            if entry.debit > threshold or entry.credit > threshold:
                suspicious.append({
                    "row_index": entry.row_index,
                    "account": entry.account,
                    "debit": entry.debit.to_number(),
                    "credit": entry.credit.to_number(),
                    "year": entry.year,
                    "period": entry.period,
                })

            key = "|".join([entry.account, entry.debit.to_string(), entry.credit.to_string(),
                            entry.year, entry.period])
            rows = seen.setdefault(key, [])
            rows.append(entry.row_index)
            if len(rows) > 1 and len(duplicates) < MAX_DUPLICATES_REPORTED:
                duplicates.append({
                    "row_indices": list(rows),
                    "account": entry.account,
                    "debit": entry.debit.to_number(),
                    "credit": entry.credit.to_number(),
                    "year": entry.year,
                    "period": entry.period,
                    "occurrence": len(rows),
                })

        overall_difference = (total_debits - total_credits).abs()

        year_checks = []
        for year in sorted(by_year, reverse=True):
            debits, credits = by_year[year]
            difference = (debits - credits).abs()
            year_checks.append({
                "year": year,
                "debits": debits.to_number(),
                "credits": credits.to_number(),
                "difference": difference.to_number(),
                "balanced": difference <= tolerance,
            })

        imbalanced = []
        for account, (debits, credits) in by_account.items():
            difference = (debits - credits).abs()
            if account and difference > tolerance:
                imbalanced.append({
                    "account": account,
                    "debits": debits.to_number(),
                    "credits": credits.to_number(),
                    "difference": difference,
                })
        imbalanced.sort(key=lambda item: item["difference"].amount, reverse=True)
        imbalanced = imbalanced[:MAX_IMBALANCED_REPORTED]
        for item in imbalanced:
            item["difference"] = item["difference"].to_number()

        return {
            "account_number": account_number,
            "total_debits": total_debits.to_number(),
            "total_credits": total_credits.to_number(),
            "overall_difference": overall_difference.to_number(),
            "is_balanced": overall_difference <= tolerance,
            "year_balance_checks": year_checks,
            "duplicate_transactions": duplicates,
            "duplicate_count": len(duplicates),
            "zero_amount_transactions": zero_count,
            "suspicious_amounts": suspicious,
            "suspicious_count": len(suspicious),
            "imbalanced_accounts": imbalanced,
            "imbalanced_count": len(imbalanced),
            "total_rows_checked": len(entries),
        }

    def check_gl_period_fields(self, company: str) -> Dict[str, Any]:
        """Count GLMASTER rows whose CYEAR or CPERIOD is blank"""
        data, cols, entries = self._gl_entries(company)
        if not cols["year"] and not cols["period"]:
            raise CompanyError("GLMASTER.DBF has no CYEAR or CPERIOD column")

        blank_year = blank_period = blank_both = 0
        samples: List[Dict[str, Any]] = []
        years = set()
        periods = set()
        for entry, record in zip(entries, data.records):
            if entry.year:
                years.add(entry.year)
            if entry.period:
                periods.add(entry.period)
            year_blank = not entry.year
            period_blank = not entry.period
            blank_year += year_blank
            blank_period += period_blank
            if year_blank and period_blank:
                blank_both += 1
            if (year_blank or period_blank) and len(samples) < SAMPLE_BLANK_ROWS:
                samples.append({"row_index": entry.row_index, **record})

        return {
            "total_rows": len(entries),
            "blank_year_count": blank_year,
            "blank_period_count": blank_period,
            "blank_both_count": blank_both,
            "sample_blank_rows": samples,
            "unique_years": sorted(years),
            "unique_periods": sorted(periods),
        }
