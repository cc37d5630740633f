"""
Company Data Module

Locates companies through compmast.dbf, resolves each company's data folder
and gives every other service one way to read and write its DBF tables:
browsing with search, sort and paging, single-cell updates, CSV export,
company information from VERSION.DBF and the dashboard summary.
"""

import io
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path, PureWindowsPath
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .audit import AuditEventType, AuditTrail
from .config import get_config
from .dbf import DBFTable
from .dbfmap import find_column, rows_to_objects, to_date, to_str
from .exceptions import CompanyError, DBFError, TableNotFoundError
from .logging_config import get_logger, log_action


logger = get_logger("financialsx.companies")

COMPMAST = "compmast.dbf"
NUMERIC_TYPES = {"N", "F", "I", "Y", "B"}
DATE_TYPES = {"D", "T"}

COMPANY_INFO_FIELDS = {
    "name": "CPRODUCER",
    "address1": "CADDRESS1",
    "address2": "CADDRESS2",
    "city": "CCITY",
    "state": "CSTATE",
    "zip_code": "CZIPCODE",
    "phone": "CPHONE",
    "fax": "CFAX",
    "email": "CEMAIL",
    "federal_id": "CFEDID",
}

WELL_STATUS_COLUMNS = ["CWELLSTAT", "CSTATUS", "STATUS", "LSTATUS", "ACTIVE"]
WELL_STATUS_NAMES = {"A": "Active", "P": "Plugged", "S": "Shut-in", "I": "Inactive"}

DASHBOARD_TABLES = ["WELLS.DBF", "VENDOR.DBF", "CHECKS.DBF", "GLMASTER.DBF", "COA.DBF"]


def normalize_company_path(value: str) -> str:
    """Last path component of a Windows or POSIX path, as stored in CDATAPATH"""
    text = (value or "").strip().rstrip("\\/")
    if not text:
        return ""
    return PureWindowsPath(text).name or text


def well_status_name(value: Any) -> str:
    code = to_str(value).upper()[:1]
    return WELL_STATUS_NAMES.get(code, "Unknown")


@dataclass
class TableData:
    """Active rows of a table as upper-case keyed dicts, in file order"""
    name: str
    columns: List[str]
    records: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.records)

    def has_column(self, name: str) -> bool:
        return name.upper() in self.columns

    def column(self, candidates: Sequence[str]) -> Optional[str]:
        return find_column(self.columns, candidates)


def _find_case_insensitive(directory: Path, name: str) -> Optional[Path]:
    candidate = directory / name
    if candidate.exists():
        return candidate
    if not directory.is_dir():
        return None
    wanted = name.lower()
    for entry in directory.iterdir():
        if entry.name.lower() == wanted:
            return entry
    return None


def _sort_key_factory(kind: str):
    if kind == "date":
        def key(value):
            parsed = to_date(value)
            return (0,) if parsed is None else (1, parsed)
    elif kind == "number":
        def key(value):
            if value is None or value == "":
                return (0,)
            if isinstance(value, (int, float)):
                return (1, value)
            try:
                return (1, float(str(value).replace("$", "").replace(",", "").strip()))
            except ValueError:
                return (0,)
    else:
        def key(value):
            return (0,) if value is None else (1, to_str(value).lower())
    return key


def _column_kind(table: DBFTable, column: str, values: List[Any]) -> str:
    descriptor = table.find_field(column)
    if descriptor is not None:
        if descriptor.type in DATE_TYPES:
            return "date"
        if descriptor.type in NUMERIC_TYPES:
            return "number"
    texts = [to_str(v) for v in values if v is not None and to_str(v)]
    if not texts:
        return "string"
    if all(_is_number(t) for t in texts):
        return "number"
    if all(to_date(t) is not None for t in texts):
        return "date"
    return "string"


def _is_number(text: str) -> bool:
    try:
        float(text.replace("$", "").replace(",", ""))
        return True
    except ValueError:
        return False


class CompanyService:
    """Company discovery and DBF table access"""

    def __init__(self, audit_trail: Optional[AuditTrail] = None, data_path: Optional[str] = None):
        self.audit = audit_trail
        self._data_path = data_path

    # Data path and company discovery

    @property
    def data_path(self) -> Path:
        return Path(self._data_path or get_config().data_path)

    def find_compmast(self) -> Path:
        """Locate compmast.dbf: configured path, data path, then one level below it"""
        configured = get_config().compmast_path
        if configured and not self._data_path:
            path = Path(configured)
            if path.is_file():
                return path
            raise CompanyError(f"Configured compmast.dbf not found: {configured}")

        found = _find_case_insensitive(self.data_path, COMPMAST)
        if found and found.is_file():
            return found
        if self.data_path.is_dir():
            for child in sorted(self.data_path.iterdir()):
                if child.is_dir():
                    found = _find_case_insensitive(child, COMPMAST)
                    if found and found.is_file():
                        return found
        raise CompanyError(f"compmast.dbf not found under {self.data_path}")

    def get_company_list(self) -> List[Dict[str, Any]]:
        """Companies listed in compmast.dbf with their resolved data folders"""
        compmast = self.find_compmast()
        table = DBFTable(compmast)
        if not table.has_field("CCOMPNAME"):
            raise CompanyError("compmast.dbf has no CCOMPNAME field")

        companies = []
        for record in table.to_dicts():
            name = to_str(record.get("CCOMPNAME"))
            if not name:
                continue
            original = to_str(record.get("CDATAPATH"))
            normalized = normalize_company_path(original) or name
            path = compmast.parent / normalized
            companies.append({
                "name": name,
                "data_path": normalized,
                "original": original,
                "path": str(path),
                "exists": path.is_dir(),
            })
        logger.info(f"Loaded {len(companies)} companies from {compmast}")
        return companies

    def set_data_path(self, path: str, user_id: Optional[str] = None) -> str:
        directory = Path(path).expanduser()
        if not directory.is_dir():
            raise CompanyError(f"Data path is not a directory: {path}")
        if not _find_case_insensitive(directory, COMPMAST):
            raise CompanyError("compmast.dbf not found in selected folder")
        self._data_path = str(directory)
        if self.audit:
            self.audit.log_event(AuditEventType.DATA_PATH_CHANGED, "settings", "data_path",
                                 {"data_path": str(directory)}, user_id=user_id)
        log_action(logger, "info", f"Data path set to {directory}",
                   user_id=user_id, action="set_data_path")
        return str(directory)

    def resolve_company_path(self, company: str) -> Path:
        if not company or not company.strip():
            raise CompanyError("Company name is required")
        direct = Path(company)
        if direct.is_absolute():
            if direct.is_dir():
                return direct
            raise CompanyError(f"Company folder not found: {company}")

        name = normalize_company_path(company)
        if name in ("", ".", ".."):
            raise CompanyError(f"Invalid company name: {company}")
        found = _find_case_insensitive(self.data_path, name)
        if found and found.is_dir():
            return found
        raise CompanyError(f"Company folder not found: {name}")

    # Tables

    def table_path(self, company: str, table: str) -> Path:
        directory = self.resolve_company_path(company)
        parts = [p for p in table.replace("\\", "/").split("/") if p]
        if not parts:
            raise TableNotFoundError("Table name is required")
        if not parts[-1].lower().endswith(".dbf"):
            parts[-1] += ".dbf"
        current = directory
        for part in parts:
            found = _find_case_insensitive(current, part)
            if found is None:
                raise TableNotFoundError(f"{'/'.join(parts)} not found for company {company}")
            current = found
        return current

    def open_table(self, company: str, table: str) -> DBFTable:
        return DBFTable(self.table_path(company, table))

    def has_table(self, company: str, table: str) -> bool:
        try:
            self.table_path(company, table)
            return True
        except CompanyError:
            return False

    def load_table(self, company: str, table: str) -> TableData:
        dbf = self.open_table(company, table)
        return TableData(name=dbf.path.name.upper(), columns=dbf.field_names,
                         records=rows_to_objects(dbf.field_names, dbf.read_rows()))

    def try_load_table(self, company: str, table: str) -> Optional[TableData]:
        """Load a table, logging and returning None when it is missing or unreadable"""
        try:
            return self.load_table(company, table)
        except TableNotFoundError:
            logger.warning(f"Table {table} not found for company {company}")
            return None
        except DBFError as e:
            logger.error(f"Error reading table {table} for company {company}: {e}")
            return None

    def get_dbf_files(self, company: str) -> List[str]:
        directory = self.resolve_company_path(company)
        return sorted(
            (p.name for p in directory.iterdir() if p.is_file() and p.suffix.lower() == ".dbf"),
            key=str.lower,
        )

    def get_table_info(self, company: str, table: str) -> Dict[str, Any]:
        return self.open_table(company, table).info()

    def get_record_count(self, company: str, table: str) -> int:
        try:
            return self.open_table(company, table).counts()["active"]
        except (CompanyError, DBFError):
            return 0

    def get_table_data(self, company: str, table: str, search: str = "", offset: int = 0,
                       limit: int = 0, sort_column: str = "",
                       sort_direction: str = "asc") -> Dict[str, Any]:
        """
        Browse a table.

        Deleted rows are skipped. The search term matches any field as a
        case-insensitive substring. Sorting is type-aware; a limit of 0
        returns every matching row from the offset on.

        Returns:
            Dictionary with columns, rows, row_indices (active row positions
            accepted by update_record) and stats
        """
        if offset < 0 or limit < 0:
            raise CompanyError("offset and limit must not be negative")
        dbf = self.open_table(company, table)
        columns = dbf.field_names

        total = deleted = 0
        matching: List[Tuple[int, List[Any]]] = []
        needle = (search or "").strip().lower()
        position = 0
        for record in dbf.records(include_deleted=True):
            total += 1
            if record.deleted:
                deleted += 1
                continue
            if not needle or any(needle in to_str(v).lower() for v in record.values):
                matching.append((position, record.values))
            position += 1

        direction = (sort_direction or "asc").lower()
        if direction not in ("asc", "desc"):
            raise CompanyError(f"Invalid sort direction: {sort_direction}")
        if sort_column:
            column = find_column(columns, [sort_column])
            if column is None:
                raise CompanyError(f"Unknown sort column: {sort_column}")
            index = columns.index(column)
            kind = _column_kind(dbf, column, [row[index] for _, row in matching])
            key = _sort_key_factory(kind)
            matching.sort(key=lambda item: key(item[1][index]), reverse=direction == "desc")

        page = matching[offset:offset + limit] if limit else matching[offset:]
        return {
            "columns": columns,
            "rows": [row for _, row in page],
            "row_indices": [i for i, _ in page],
            "stats": {
                "total_records": total,
                "active_records": total - deleted,
                "deleted_records": deleted,
                "loaded_records": len(page),
                "total_matching": len(matching),
                "has_more_records": offset + len(page) < len(matching),
                "search_term": search or "",
                "offset": offset,
                "limit": limit,
                "sort_column": sort_column or "",
                "sort_direction": direction,
            },
        }

    def _physical_index(self, dbf: DBFTable, row_index: int) -> int:
        active = dbf.active_index_map()
        if row_index < 0 or row_index >= len(active):
            raise CompanyError(f"Row index {row_index} out of range (0..{len(active) - 1})")
        return active[row_index]

    def update_fields(self, company: str, table: str, row_index: int, changes: Dict[str, Any],
                      user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Write several fields of one active row.

        Returns:
            Dictionary of the written field values as read back from the file
        """
        if not changes:
            raise CompanyError("No fields to update")
        dbf = self.open_table(company, table)
        physical = self._physical_index(dbf, row_index)
        before = dbf.get_record(physical).as_dict(dbf.field_names)
        written = dbf.update_record(physical, changes)

        if self.audit:
            self.audit.log_event(
                AuditEventType.DBF_RECORD_UPDATED, "dbf_record",
                f"{dbf.path.name.upper()}#{physical}",
                {"table": dbf.path.name.upper(), "row_index": row_index,
                 "old": {k: before.get(k) for k in written}, "new": written},
                user_id=user_id, company=company,
            )
        log_action(logger, "info", f"Updated {dbf.path.name} row {row_index}",
                   user_id=user_id, action="update_record", resource=dbf.path.name.upper(),
                   company=company, extra={"fields": sorted(written)})
        return written

    def update_record(self, company: str, table: str, row_index: int, col_index: int,
                      value: Any, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Write a single cell addressed by active row position and column position"""
        dbf = self.open_table(company, table)
        columns = dbf.field_names
        if col_index < 0 or col_index >= len(columns):
            raise CompanyError(f"Column index {col_index} out of range (0..{len(columns) - 1})")
        column = columns[col_index]
        written = self.update_fields(company, table, row_index, {column: value}, user_id=user_id)
        return {
            "success": True,
            "table": dbf.path.name.upper(),
            "row_index": row_index,
            "column": column,
            "value": written[column],
        }

    def export_table_csv(self, company: str, table: str, user_id: Optional[str] = None) -> str:
        dbf = self.open_table(company, table)
        buffer = io.StringIO()
        rows = dbf.export_csv(buffer)
        if self.audit:
            self.audit.log_event(AuditEventType.DBF_EXPORTED, "dbf_table", dbf.path.name.upper(),
                                 {"rows": rows}, user_id=user_id, company=company)
        return buffer.getvalue()

    # Company information

    def get_company_info(self, company: str) -> Dict[str, Any]:
        """Company name and address from VERSION.DBF"""
        info = {key: "" for key in COMPANY_INFO_FIELDS}
        info["company"] = company
        data = self.try_load_table(company, "VERSION.DBF")
        if not data or not data.records:
            info["name"] = normalize_company_path(company)
            info["source"] = "default"
            return info
        record = data.records[0]
        for key, column in COMPANY_INFO_FIELDS.items():
            info[key] = to_str(record.get(column))
        if not info["name"]:
            info["name"] = normalize_company_path(company)
        info["source"] = "VERSION.DBF"
        return info

    def update_company_info(self, company: str, data: Dict[str, Any],
                            user_id: Optional[str] = None) -> Dict[str, Any]:
        dbf = self.open_table(company, "VERSION.DBF")
        changes = {}
        ignored = []
        for key, value in data.items():
            column = COMPANY_INFO_FIELDS.get(key, key.upper())
            if dbf.has_field(column):
                changes[column] = value
            else:
                ignored.append(key)
        if not changes:
            raise CompanyError("None of the supplied fields exist in VERSION.DBF")
        if dbf.counts()["active"] == 0:
            dbf.append_record({})

        written = self.update_fields(company, "VERSION.DBF", 0, changes, user_id=user_id)
        if self.audit:
            self.audit.log_event(AuditEventType.COMPANY_INFO_UPDATED, "company", company,
                                 {"fields": sorted(written)}, user_id=user_id, company=company)
        return {
            "success": True,
            "message": "Company information updated successfully",
            "updated_fields": sorted(written),
            "ignored_fields": ignored,
        }

    # Dashboard

    def get_well_status_counts(self, company: str) -> List[Dict[str, Any]]:
        data = self.try_load_table(company, "WELLS.DBF")
        if not data:
            return []
        status_column = data.column(WELL_STATUS_COLUMNS)
        counts: Dict[str, int] = {}
        for record in data.records:
            status = well_status_name(record.get(status_column)) if status_column else "Unknown"
            counts[status] = counts.get(status, 0) + 1
        return sorted(
            ({"type": status, "count": count} for status, count in counts.items()),
            key=lambda item: (-item["count"], item["type"]),
        )

    def get_dashboard_data(self, company: str) -> Dict[str, Any]:
        self.resolve_company_path(company)
        well_types = self.get_well_status_counts(company)
        return {
            "status": "ready",
            "message": "Dashboard loaded successfully",
            "company": company,
            "well_types": well_types,
            "total_wells": sum(item["count"] for item in well_types),
            "record_counts": {t: self.get_record_count(company, t) for t in DASHBOARD_TABLES},
            "generated_at": datetime.now().isoformat(timespec="seconds"),
        }

