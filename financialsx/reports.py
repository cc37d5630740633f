"""
Reports Module

PDF reports rendered with reportlab: the chart of accounts and the owner
distribution statements kept in each company's ownerstatements folder.
"""

import re
import tempfile
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import landscape, letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .audit import AuditEventType, AuditTrail
from .companies import CompanyService
from .config import get_config
from .currency import from_dbf, sum_currency
from .dbf import DBFTable
from .dbfmap import to_str
from .exceptions import FinancialsXError, ReportError
from .gl import GLService
from .logging_config import get_logger, log_action


logger = get_logger("financialsx.reports")

OWNER_STATEMENTS_DIR = "ownerstatements"
NO_OWNER_FILES = "No Owner Distribution Files Found"
MAX_DESCRIPTION = 60
SAMPLE_ROWS = 10
SAMPLE_VALUES = 3
STATEMENT_COLUMNS = 8

SORT_LABELS = {"number": "Account Number", "type": "Account Type"}

HEADER_STYLE = [
    ('BACKGROUND', (0, 0), (-1, 0), colors.grey),
    ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
    ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
    ('FONTSIZE', (0, 0), (-1, 0), 9),
    ('BOTTOMPADDING', (0, 0), (-1, 0), 6),
    ('FONTNAME', (0, 1), (-1, -1), 'Helvetica'),
    ('FONTSIZE', (0, 1), (-1, -1), 8),
    ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
    ('VALIGN', (0, 0), (-1, -1), 'TOP'),
    ('GRID', (0, 0), (-1, -1), 0.5, colors.black),
]


def truncate(text: str, limit: int = MAX_DESCRIPTION) -> str:
    """Cut text longer than ``limit`` to ``limit - 3`` characters plus "..." """
    if len(text) <= limit:
        return text
    return text[:limit - 3] + "..."


def sanitize_filename(name: str) -> str:
    cleaned = re.sub(r'[\\/:*?"<>|]+', '_', name).strip(" .")
    return cleaned or "company"


def _column_kind(field_type: str) -> str:
    if field_type in ("N", "F", "I", "Y", "B"):
        return "number"
    if field_type in ("D", "T"):
        return "date"
    if field_type == "L":
        return "boolean"
    return "string"


class ReportService:
    """Builds PDF reports into the configured output directory"""

    def __init__(self, companies: CompanyService, gl: Optional[GLService] = None,
                 audit_trail: Optional[AuditTrail] = None):
        self.companies = companies
        self.gl = gl or GLService(companies)
        self.audit = audit_trail

    @property
    def output_dir(self) -> Path:
        configured = get_config().report_output_dir
        directory = Path(configured) if configured else Path(tempfile.gettempdir())
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    def _output_path(self, company: str, title: str) -> Path:
        name = self.companies.get_company_info(company)["name"] or company
        filename = f"{date.today().isoformat()} - {sanitize_filename(name)} - {title}.pdf"
        return self.output_dir / filename

    def _company_header(self, company: str, title: str, styles) -> List[Any]:
        info = self.companies.get_company_info(company)
        title_style = ParagraphStyle(
            'ReportTitle',
            parent=styles['Heading1'],
            fontSize=16,
            spaceAfter=6,
            alignment=1,
        )
        centered = ParagraphStyle('Centered', parent=styles['Normal'], alignment=1)
        elements = [Paragraph(title, title_style), Paragraph(f"<b>{escape(info['name'])}</b>", centered)]
        street = ", ".join(p for p in (info["address1"], info["address2"]) if p)
        region = " ".join(p for p in (info["state"], info["zip_code"]) if p)
        locality = ", ".join(p for p in (info["city"], region) if p)
        for line in (street, locality):
            if line:
                elements.append(Paragraph(escape(line), centered))
        elements.append(Paragraph(
            f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}", centered))
        elements.append(Spacer(1, 12))
        return elements

    def _record_report(self, report: str, company: str, path: Path,
                       user_id: Optional[str], **metadata) -> None:
        if self.audit:
            self.audit.log_event(AuditEventType.REPORT_GENERATED, "report", report,
                                 dict(metadata, path=str(path)), user_id=user_id, company=company)
        log_action(logger, "info", f"Generated {report} report {path.name}",
                   user_id=user_id, action="generate_report", resource=report, company=company)

    # Chart of accounts

    def generate_chart_of_accounts_pdf(self, company: str, sort_by: str = "number",
                                       include_inactive: bool = False,
                                       user_id: Optional[str] = None) -> str:
        """
        Render COA.DBF as a landscape letter PDF.

        Returns:
            Path of the written file
        """
        accounts = self.gl.get_chart_of_accounts(company, sort_by, include_inactive)
        path = self._output_path(company, "Chart of Accounts")
        styles = getSampleStyleSheet()
        elements = self._company_header(company, "Chart of Accounts", styles)

        rows = [["Account #", "Type", "Description", "Parent", "Status"]]
        for account in accounts:
            rows.append([
                account["account_number"],
                account["account_type_name"],
                truncate(account["account_description"]),
                account["parent_account"],
                "Active" if account["is_active"] else "Inactive",
            ])
        table = Table(rows, colWidths=[1.3 * inch, 1.1 * inch, 4.8 * inch, 1.3 * inch, 0.9 * inch],
                      repeatRows=1)
        table.setStyle(TableStyle(HEADER_STYLE))
        elements.append(table)
        elements.append(Spacer(1, 12))

        active = sum(1 for a in accounts if a["is_active"])
        elements.append(Paragraph(
            f"<b>Total Accounts: {len(accounts)} (Active: {active}, Inactive: {len(accounts) - active})</b>",
            styles['Normal']))

        footer = (f"Sorted by: {SORT_LABELS.get(sort_by, sort_by)} | "
                  f"Filter: {'All Accounts' if include_inactive else 'Active Only'}")

        def draw_footer(canvas, doc):
            canvas.saveState()
            canvas.setFont('Helvetica', 8)
            canvas.drawString(doc.leftMargin, 0.5 * inch, footer)
            canvas.drawRightString(doc.pagesize[0] - doc.rightMargin, 0.5 * inch, f"Page {doc.page}")
            canvas.restoreState()

        self._build(path, elements, draw_footer)
        self._record_report("chart_of_accounts", company, path, user_id,
                            sort_by=sort_by, include_inactive=include_inactive,
                            accounts=len(accounts))
        return str(path)

    def _build(self, path: Path, elements: List[Any], on_page=None) -> None:
        doc = SimpleDocTemplate(str(path), pagesize=landscape(letter),
                                leftMargin=0.5 * inch, rightMargin=0.5 * inch,
                                topMargin=0.5 * inch, bottomMargin=0.75 * inch)
        try:
            if on_page:
                doc.build(elements, onFirstPage=on_page, onLaterPages=on_page)
            else:
                doc.build(elements)
        except OSError as e:
            raise ReportError(f"Failed to write {path.name}: {e}")

    # Owner statements

    def _statement_dir(self, company: str) -> Optional[Path]:
        directory = self.companies.resolve_company_path(company)
        for entry in directory.iterdir():
            if entry.name.lower() == OWNER_STATEMENTS_DIR:
                return entry
        return None

    def _statement_table(self, company: str, file_name: str) -> DBFTable:
        """Open a DBF from the ownerstatements folder; plain .dbf names only"""
        if not file_name or "/" in file_name or "\\" in file_name or ".." in file_name \
                or not file_name.lower().endswith(".dbf"):
            raise ReportError(f"Invalid statement file name: {file_name}")
        directory = self._statement_dir(company)
        if directory is None:
            raise ReportError(NO_OWNER_FILES)
        path = self.companies.table_path(company, f"{OWNER_STATEMENTS_DIR}/{file_name}")
        if path.resolve().parent != directory.resolve():
            raise ReportError(f"Invalid statement file name: {file_name}")
        return DBFTable(path)

    def check_owner_statement_files(self, company: str) -> Dict[str, Any]:
        result = {"has_files": False, "files": [], "error": ""}
        try:
            directory = self._statement_dir(company)
        except FinancialsXError as e:
            result["error"] = str(e)
            return result
        if directory is None:
            result["error"] = NO_OWNER_FILES
            return result
        if not directory.is_dir():
            result["error"] = f"{directory.name} is not a directory"
            return result

        files = sorted((p.name for p in directory.iterdir()
                        if p.is_file() and p.suffix.lower() == ".dbf"), key=str.lower)
        if files:
            result["has_files"] = True
            result["files"] = files
        else:
            result["error"] = NO_OWNER_FILES
        return result

    def get_owner_statements_list(self, company: str) -> List[Dict[str, Any]]:
        check = self.check_owner_statement_files(company)
        if not check["has_files"]:
            raise ReportError(check["error"] or NO_OWNER_FILES)
        directory = self._statement_dir(company)
        statements = []
        for name in check["files"]:
            stat = (directory / name).stat()
            statements.append({
                "file_name": name,
                "name": Path(name).stem,
                "file_size": stat.st_size,
                "modified": datetime.fromtimestamp(stat.st_mtime).isoformat(timespec="seconds"),
            })
        return statements

    @staticmethod
    def _owner_fields(table: DBFTable):
        owner_field = key_field = None
        for name in table.field_names:
            if "OWNER" in name and "KEY" not in name:
                owner_field = name
            if "KEY" in name or "ID" in name:
                key_field = name
        return owner_field, key_field

    @staticmethod
    def _owner_key(record: Dict[str, Any], owner_field: str, key_field: Optional[str]) -> str:
        name = to_str(record.get(owner_field))
        key = to_str(record.get(key_field)) if key_field else ""
        return key or name

    def get_owners_list(self, company: str, file_name: str) -> List[Dict[str, Any]]:
        """Unique owners of a statement file, keyed by owner key or name"""
        table = self._statement_table(company, file_name)
        owner_field, key_field = self._owner_fields(table)
        if owner_field is None:
            raise ReportError("Could not find owner name field in DBF")

        owners: Dict[str, Dict[str, Any]] = {}
        for record in table.to_dicts():
            name = to_str(record.get(owner_field))
            if not name:
                continue
            key = self._owner_key(record, owner_field, key_field)
            if key in owners:
                owners[key]["records"] += 1
            else:
                owners[key] = {"key": key, "name": name, "records": 1}
        return sorted(owners.values(), key=lambda o: (o["name"].lower(), o["key"]))

    def get_owner_statement_data(self, company: str, file_name: str, owner_key: str) -> Dict[str, Any]:
        table = self._statement_table(company, file_name)
        owner_field, key_field = self._owner_fields(table)
        if owner_field is None:
            raise ReportError("Could not find owner name field in DBF")
        owner_key = (owner_key or "").strip()
        records = [
            r for r in table.to_dicts()
            if to_str(r.get(owner_field)) and self._owner_key(r, owner_field, key_field) == owner_key
        ]
        return {
            "owner": owner_key,
            "owner_name": to_str(records[0].get(owner_field)) if records else "",
            "records": records,
            "count": len(records),
            "columns": table.field_names,
        }

    def examine_owner_statement_structure(self, company: str, file_name: str) -> Dict[str, Any]:
        table = self._statement_table(company, file_name)
        rows = table.to_dicts()
        samples = rows[:SAMPLE_ROWS]
        columns = []
        for descriptor in table.columns:
            values = [r[descriptor.name] for r in samples[:SAMPLE_VALUES]
                      if r.get(descriptor.name) not in (None, "")]
            columns.append({
                "name": descriptor.name,
                "type": _column_kind(descriptor.type),
                "field_type": descriptor.type,
                "length": descriptor.length,
                "decimals": descriptor.decimals,
                "sample_values": values,
            })
        return {
            "file_name": file_name,
            "record_count": len(rows),
            "column_count": len(columns),
            "columns": columns,
            "sample_records": samples,
        }

    def generate_owner_statement_pdf(self, company: str, file_name: str,
                                     user_id: Optional[str] = None) -> str:
        """One section per owner with its statement lines and net total"""
        table = self._statement_table(company, file_name)
        owner_field, key_field = self._owner_fields(table)
        rows = table.to_dicts()
        columns = table.field_names[:STATEMENT_COLUMNS]
        net_field = next((c for c in table.field_names if "NET" in c), None)

        groups: Dict[str, List[Dict[str, Any]]] = {}
        for record in rows:
            key = self._owner_key(record, owner_field, key_field) if owner_field else ""
            groups.setdefault(key, []).append(record)

        path = self._output_path(company, f"Owner Statement {Path(file_name).stem}")
        styles = getSampleStyleSheet()
        elements = self._company_header(company, "Owner Distribution Statement", styles)
        elements.append(Paragraph(f"Source: {escape(file_name)} ({len(rows)} records)", styles['Normal']))
        elements.append(Spacer(1, 8))

        for key, records in groups.items():
            name = to_str(records[0].get(owner_field)) if owner_field else ""
            heading = f"{name} ({key})" if name and key != name else (name or key or "Unassigned")
            elements.append(Paragraph(escape(heading), styles['Heading3']))
            data = [columns] + [[truncate(to_str(r.get(c)), 30) for c in columns] for r in records]
            section = Table(data, repeatRows=1)
            section.setStyle(TableStyle(HEADER_STYLE))
            elements.append(section)
            if net_field:
                net = sum_currency(from_dbf(r.get(net_field)) for r in records)
                elements.append(Paragraph(f"<b>Net Distribution: {net.format()}</b>", styles['Normal']))
            elements.append(Spacer(1, 12))

        if not groups:
            elements.append(Paragraph("No statement records found", styles['Normal']))

        self._build(path, elements)
        self._record_report("owner_statement", company, path, user_id,
                            file=file_name, owners=len(groups))
        return str(path)
