"""
Banking Module

Bank accounts (chart-of-accounts rows flagged LBANKACCT), their GL balances and
the outstanding checks written against them.
"""

from datetime import datetime
from typing import Any, Dict, List

from .companies import CompanyService
from .currency import Currency, sum_currency
from .dbfmap import to_bool, to_number, to_str
from .logging_config import get_logger
from .schema import (CHECKS_TABLE, COA_COLUMNS, COA_TABLE, GLMASTER_TABLE,
                     check_views, gl_views, resolve_columns)


logger = get_logger("financialsx.banking")


class BankingService:
    def __init__(self, companies: CompanyService):
        self.companies = companies

    def _gl_balances(self, company: str) -> Dict[str, Currency]:
        """Debit-minus-credit balance of every account in GLMASTER"""
        data = self.companies.try_load_table(company, GLMASTER_TABLE)
        balances: Dict[str, Currency] = {}
        if not data:
            return balances
        for entry in gl_views(data):
            balances[entry.account] = balances.get(entry.account, Currency.zero()) + entry.amount
        return balances

    def get_account_balance(self, company: str, account_number: str) -> Currency:
        return self._gl_balances(company).get(account_number.strip(), Currency.zero())

    def get_bank_accounts(self, company: str) -> List[Dict[str, Any]]:
        coa = self.companies.load_table(company, COA_TABLE)
        cols = resolve_columns(coa, COA_COLUMNS)
        if not cols["bank"]:
            logger.warning(f"COA.DBF for {company} has no LBANKACCT column")
            return []

        balances = self._gl_balances(company)
        accounts = []
        for record in coa.records:
            if not to_bool(record.get(cols["bank"])):
                continue
            number = to_str(record.get(cols["number"]))
            accounts.append({
                "account_number": number,
                "account_name": to_str(record.get(cols["description"])),
                "account_type": int(to_number(record.get(cols["type"]))),
                "balance": balances.get(number, Currency.zero()).to_number(),
                "is_bank_account": True,
                "is_active": not to_bool(record.get(cols["inactive"])) if cols["inactive"] else True,
            })
        return accounts

    def get_outstanding_checks(self, company: str, account_number: str = "") -> Dict[str, Any]:
        """
        Checks that are neither cleared nor void.

        Args:
            company: Company name or folder
            account_number: Restrict to one bank account; empty for all
        """
        data = self.companies.load_table(company, CHECKS_TABLE)
        account_number = (account_number or "").strip()
        checks = [
            c for c in check_views(data)
            if c.outstanding and (not account_number or c.account == account_number)
        ]
        return {
            "status": "success",
            "checks": [c.to_dict() for c in checks],
            "total": len(checks),
            "total_amount": sum_currency(c.amount for c in checks).to_number(),
            "columns": data.columns,
        }

    def refresh_all_balances(self, company: str) -> Dict[str, Any]:
        """GL balance, outstanding checks and derived bank balance for every bank account"""
        accounts = self.get_bank_accounts(company)
        balances = self._gl_balances(company)
        checks_table = self.companies.try_load_table(company, CHECKS_TABLE)
        checks = check_views(checks_table) if checks_table else []

        results = []
        for account in accounts:
            outstanding = [c for c in checks if c.outstanding and c.account == account["account_number"]]
            outstanding_total = sum_currency(c.amount for c in outstanding)
            gl_balance = balances.get(account["account_number"], Currency.zero())
            results.append({
                "account_number": account["account_number"],
                "account_name": account["account_name"],
                "gl_balance": gl_balance.to_number(),
                "outstanding_checks_count": len(outstanding),
                "outstanding_checks_total": outstanding_total.to_number(),
                "bank_balance": (gl_balance + outstanding_total).to_number(),
            })
        return {
            "accounts": results,
            "total_balance": sum_currency(
                balances.get(a["account_number"], Currency.zero()) for a in accounts
            ).to_number(),
            "refreshed_at": datetime.now().isoformat(timespec="seconds"),
        }
