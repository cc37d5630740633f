"""
Row mapping helpers for DBF data.

Legacy tables differ between installations (CCHECKNO vs CCHECKNUM, NAMOUNT vs
NAMT), so services look fields up by candidate names and coerce loosely typed
values with these helpers.
"""

from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence


_TRUE_STRINGS = {"true", "t", ".t.", "y", "yes", "1"}
_DATE_FORMATS = ("%Y-%m-%d", "%Y%m%d", "%m/%d/%Y", "%m/%d/%y", "%Y/%m/%d")


def row_to_object(columns: Sequence[str], row: Sequence[Any]) -> Dict[str, Any]:
    """Pair column names (upper-cased) with row values, stopping at the shorter sequence"""
    return {str(name).upper(): value for name, value in zip(columns, row)}


def first_of(obj: Dict[str, Any], keys: Sequence[str]) -> str:
    """First key present in obj, else the first candidate"""
    for key in keys:
        if key in obj:
            return key
    return keys[0]


def value_of(obj: Dict[str, Any], keys: Sequence[str], default: Any = None) -> Any:
    """Value of the first candidate key present in obj"""
    key = first_of(obj, keys)
    return obj.get(key, default)


def find_column(columns: Iterable[str], candidates: Sequence[str]) -> Optional[str]:
    """First candidate (case-insensitive) found among columns"""
    upper = {str(c).upper(): c for c in columns}
    for candidate in candidates:
        if candidate.upper() in upper:
            return upper[candidate.upper()]
    return None


def to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value).strip()


def to_number(value: Any) -> float:
    """Loose numeric conversion; blank or unparsable values are 0"""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace("$", "").replace(",", "")
    if not text:
        return 0.0
    try:
        return float(text)
    except ValueError:
        return 0.0


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in _TRUE_STRINGS


def to_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    if "T" in text:
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def rows_to_objects(columns: Sequence[str], rows: Iterable[Sequence[Any]]) -> List[Dict[str, Any]]:
    return [row_to_object(columns, row) for row in rows]
