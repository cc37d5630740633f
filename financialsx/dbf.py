"""
DBF Table Module

Reader and in-place writer for dBASE III / FoxPro / Visual FoxPro tables, the
storage format of the legacy accounting data. Values are decoded into Python
types on read and encoded back to fixed-width field bytes on write; a write
touches only the bytes of the fields being changed.
"""

import csv
import struct
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, TextIO, Union

from .exceptions import DBFError
from .logging_config import get_logger


logger = get_logger("financialsx.dbf")

HEADER_SIZE = 32
DESCRIPTOR_SIZE = 32
HEADER_TERMINATOR = 0x0D
EOF_MARKER = 0x1A
ACTIVE_FLAG = b' '
DELETED_FLAG = b'*'

# Julian day number of 0001-01-01 minus one, for date.fromordinal
_JULIAN_OFFSET = 1721425

# Language driver byte -> Python codec
CODE_PAGES = {
    0x01: "cp437",
    0x02: "cp850",
    0x03: "cp1252",
    0x64: "cp852",
    0x65: "cp866",
    0x7D: "cp1255",
    0x7E: "cp1256",
    0xC8: "cp1250",
    0xC9: "cp1251",
    0xCA: "cp1254",
    0xCB: "cp1253",
}
DEFAULT_ENCODING = "cp1252"

MEMO_TYPES = {"M", "G", "P", "W"}
FIXED_LENGTHS = {"D": 8, "L": 1, "I": 4, "Y": 8, "T": 8, "B": 8}
SUPPORTED_TYPES = {"C", "N", "F", "D", "L", "I", "Y", "T", "B", "V", "Q", "0"} | MEMO_TYPES

_TRUE_CHARS = {"T", "t", "Y", "y"}
_FALSE_CHARS = {"F", "f", "N", "n"}
_TRUE_STRINGS = {"T", "TRUE", "Y", "YES", "1", ".T."}
_FALSE_STRINGS = {"F", "FALSE", "N", "NO", "0", ".F."}


@dataclass
class DBFField:
    """Field descriptor"""
    name: str
    type: str
    length: int = 0
    decimals: int = 0
    offset: int = 0  # Byte offset inside the record, after the deletion flag

    def __post_init__(self):
        self.name = self.name.upper()
        self.type = self.type.upper()
        if self.type not in SUPPORTED_TYPES:
            raise DBFError(f"Unsupported field type '{self.type}' for field {self.name}")
        if not self.length:
            self.length = FIXED_LENGTHS.get(self.type, 10 if self.type in MEMO_TYPES else 0)
        if self.length <= 0 or self.length > 255:
            raise DBFError(f"Invalid length {self.length} for field {self.name}")

    @property
    def hidden(self) -> bool:
        """System fields such as _NullFlags are not exposed as columns"""
        return self.type == "0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "length": self.length,
            "decimals": self.decimals,
        }


@dataclass
class DBFRecord:
    """One physical record; index is the position in the file"""
    index: int
    deleted: bool
    values: List[Any] = field(default_factory=list)

    def as_dict(self, field_names: Sequence[str]) -> Dict[str, Any]:
        return dict(zip(field_names, self.values))


def _julian_to_datetime(day: int, millis: int) -> Optional[datetime]:
    if day <= 0:
        return None
    try:
        base = date.fromordinal(day - _JULIAN_OFFSET)
    except ValueError:
        return None
    return datetime(base.year, base.month, base.day) + timedelta(milliseconds=millis)


def _datetime_to_julian(value: datetime):
    day = value.toordinal() + _JULIAN_OFFSET
    midnight = datetime(value.year, value.month, value.day)
    millis = int((value - midnight).total_seconds() * 1000)
    return day, millis


def _coerce_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    for fmt in ("%Y-%m-%d", "%Y%m%d", "%m/%d/%Y", "%Y-%m-%dT%H:%M:%S"):
        try:
            return datetime.strptime(text[:19] if "T" in fmt else text, fmt).date()
        except ValueError:
            continue
    raise DBFError(f"Cannot interpret '{value}' as a date")


def _coerce_number(value) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(repr(value)) if isinstance(value, float) else Decimal(value)
    text = str(value).strip().replace("$", "").replace(",", "")
    if not text:
        return None
    try:
        return Decimal(text)
    except InvalidOperation:
        raise DBFError(f"Cannot interpret '{value}' as a number")


def _coerce_bool(value) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().upper()
    if not text or text == "?":
        return None
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise DBFError(f"Cannot interpret '{value}' as a logical value")


class DBFTable:
    """
    A DBF table on disk.

    The header is read once when the table is opened. Record iteration and
    writes reopen the file for each call, so a table object can be held while
    other processes (the legacy application) keep working on the same file.
    """

    def __init__(self, path: Union[str, Path], encoding: Optional[str] = None):
        self.path = Path(path)
        if not self.path.is_file():
            raise FileNotFoundError(f"DBF file not found: {self.path}")
        self._lock = threading.RLock()
        self._encoding_override = encoding
        self._read_header()

    # Header

    def _read_header(self) -> None:
        with open(self.path, "rb") as f:
            header = f.read(HEADER_SIZE)
            if len(header) < HEADER_SIZE:
                raise DBFError(f"{self.path.name}: file too short for a DBF header")

            self.version = header[0]
            yy, mm, dd = header[1], header[2], header[3]
            try:
                self.last_update = date(1900 + yy, mm, dd) if mm and dd else None
            except ValueError:
                self.last_update = None
            self._header_count, self.header_length, self.record_length = struct.unpack(
                "<IHH", header[4:12]
            )
            self.code_page = header[29]
            self.encoding = (self._encoding_override
                             or CODE_PAGES.get(self.code_page, DEFAULT_ENCODING))

            self.fields: List[DBFField] = []
            offset = 1
            while f.tell() + DESCRIPTOR_SIZE <= self.header_length:
                raw = f.read(DESCRIPTOR_SIZE)
                if not raw or raw[0] == HEADER_TERMINATOR:
                    break
                if len(raw) < DESCRIPTOR_SIZE:
                    raise DBFError(f"{self.path.name}: truncated field descriptor")
                name = raw[:11].split(b"\x00", 1)[0].decode("ascii", errors="replace").strip()
                ftype = chr(raw[11])
                length, decimals = raw[16], raw[17]
                try:
                    descriptor = DBFField(name, ftype, length, decimals, offset)
                except DBFError:
                    # Keep the record layout intact for unknown types
                    logger.warning(f"{self.path.name}: field {name} has unsupported type '{ftype}'")
                    descriptor = DBFField(name, "C", length, 0, offset)
                self.fields.append(descriptor)
                offset += length

            if not self.fields:
                raise DBFError(f"{self.path.name}: no field descriptors")
            if offset > self.record_length:
                raise DBFError(
                    f"{self.path.name}: fields span {offset} bytes, record length is {self.record_length}"
                )

            f.seek(0, 2)
            data_size = max(f.tell() - self.header_length, 0)
        self.record_count = min(self._header_count, data_size // self.record_length)

    @property
    def columns(self) -> List[DBFField]:
        """Visible fields in table order"""
        return [f for f in self.fields if not f.hidden]

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.columns]

    def find_field(self, name: str) -> Optional[DBFField]:
        """Case-insensitive field lookup"""
        wanted = name.strip().upper()
        for descriptor in self.columns:
            if descriptor.name == wanted:
                return descriptor
        return None

    def has_field(self, name: str) -> bool:
        return self.find_field(name) is not None

    # Decoding

    def _decode(self, descriptor: DBFField, raw: bytes) -> Any:
        ftype = descriptor.type
        if ftype in ("C", "V", "Q"):
            return raw.decode(self.encoding, errors="replace").rstrip(" \x00")
        if ftype in ("N", "F"):
            text = raw.decode("ascii", errors="replace").strip(" \x00")
            if not text or set(text) == {"*"}:
                return None
            try:
                if descriptor.decimals == 0 and "." not in text:
                    return int(text)
                return float(text)
            except ValueError:
                return None
        if ftype == "D":
            text = raw.decode("ascii", errors="replace").strip(" \x00")
            if not text or text == "00000000":
                return None
            try:
                return datetime.strptime(text, "%Y%m%d").date()
            except ValueError:
                return None
        if ftype == "L":
            char = raw[:1].decode("ascii", errors="replace")
            if char in _TRUE_CHARS:
                return True
            if char in _FALSE_CHARS:
                return False
            return None
        if ftype == "I":
            return struct.unpack("<i", raw[:4])[0]
        if ftype == "Y":
            return float(Decimal(struct.unpack("<q", raw[:8])[0]) / 10000)
        if ftype == "T":
            day, millis = struct.unpack("<ii", raw[:8])
            return _julian_to_datetime(day, millis)
        if ftype == "B" and descriptor.length == 8:
            return struct.unpack("<d", raw)[0]
        if ftype in MEMO_TYPES or ftype == "B":
            if descriptor.length == 4:
                block = struct.unpack("<I", raw)[0]
            else:
                text = raw.decode("ascii", errors="replace").strip(" \x00")
                block = int(text) if text.isdigit() else 0
            return block or None
        return raw

    # Encoding

    def _encode(self, descriptor: DBFField, value: Any) -> bytes:
        ftype = descriptor.type
        length = descriptor.length

        if ftype in ("C", "V", "Q"):
            text = "" if value is None else str(value)
            data = text.encode(self.encoding, errors="replace")
            if len(data) > length:
                raise DBFError(
                    f"Value for {descriptor.name} is {len(data)} bytes, field holds {length}"
                )
            return data.ljust(length, b" ")

        if ftype in ("N", "F"):
            number = _coerce_number(value)
            if number is None:
                return b" " * length
            quantum = Decimal(1).scaleb(-descriptor.decimals)
            number = number.quantize(quantum, rounding=ROUND_HALF_UP)
            text = f"{number:.{descriptor.decimals}f}"
            if len(text) > length:
                raise DBFError(f"Value {text} does not fit {descriptor.name} ({length} chars)")
            return text.rjust(length).encode("ascii")

        if ftype == "D":
            parsed = _coerce_date(value)
            return parsed.strftime("%Y%m%d").encode("ascii") if parsed else b" " * 8

        if ftype == "L":
            flag = _coerce_bool(value)
            if flag is None:
                return b"?"
            return b"T" if flag else b"F"

        if ftype == "I":
            number = _coerce_number(value)
            return struct.pack("<i", int(number or 0))

        if ftype == "Y":
            number = _coerce_number(value) or Decimal(0)
            return struct.pack("<q", int((number * 10000).quantize(Decimal(1), rounding=ROUND_HALF_UP)))

        if ftype == "T":
            if value in (None, ""):
                return struct.pack("<ii", 0, 0)
            if isinstance(value, str):
                try:
                    value = datetime.fromisoformat(value.strip())
                except ValueError:
                    raise DBFError(f"Cannot interpret '{value}' as a timestamp")
            elif isinstance(value, date) and not isinstance(value, datetime):
                value = datetime(value.year, value.month, value.day)
            return struct.pack("<ii", *_datetime_to_julian(value))

        if ftype == "B" and length == 8:
            number = _coerce_number(value)
            return struct.pack("<d", float(number or 0))

        raise DBFError(f"Field {descriptor.name} of type '{ftype}' cannot be written")

    # Reading

    def records(self, include_deleted: bool = True) -> Iterator[DBFRecord]:
        """Iterate physical records in file order"""
        visible = [(i, f) for i, f in enumerate(self.fields) if not f.hidden]
        with open(self.path, "rb") as f:
            f.seek(self.header_length)
            for index in range(self.record_count):
                raw = f.read(self.record_length)
                if len(raw) < self.record_length or raw[:1] == bytes([EOF_MARKER]):
                    break
                deleted = raw[:1] == DELETED_FLAG
                if deleted and not include_deleted:
                    continue
                values = [
                    self._decode(descriptor, raw[descriptor.offset:descriptor.offset + descriptor.length])
                    for _, descriptor in visible
                ]
                yield DBFRecord(index=index, deleted=deleted, values=values)

    def read_rows(self, include_deleted: bool = False) -> List[List[Any]]:
        return [record.values for record in self.records(include_deleted=include_deleted)]

    def to_dicts(self, include_deleted: bool = False) -> List[Dict[str, Any]]:
        names = self.field_names
        return [record.as_dict(names) for record in self.records(include_deleted=include_deleted)]

    def counts(self) -> Dict[str, int]:
        """Total, active and deleted record counts"""
        total = deleted = 0
        for record in self.records(include_deleted=True):
            total += 1
            if record.deleted:
                deleted += 1
        return {"total": total, "active": total - deleted, "deleted": deleted}

    def active_index_map(self) -> List[int]:
        """Physical record index for each active record position"""
        return [record.index for record in self.records(include_deleted=False)]

    def get_record(self, index: int) -> DBFRecord:
        """Read a single record by physical index"""
        self._check_index(index)
        visible = [f for f in self.fields if not f.hidden]
        with open(self.path, "rb") as f:
            f.seek(self.header_length + index * self.record_length)
            raw = f.read(self.record_length)
        return DBFRecord(
            index=index,
            deleted=raw[:1] == DELETED_FLAG,
            values=[self._decode(d, raw[d.offset:d.offset + d.length]) for d in visible],
        )

    def info(self) -> Dict[str, Any]:
        counts = self.counts()
        return {
            "file_name": self.path.name,
            "version": self.version,
            "last_update": self.last_update.isoformat() if self.last_update else None,
            "record_count": counts["total"],
            "active_records": counts["active"],
            "deleted_records": counts["deleted"],
            "record_length": self.record_length,
            "encoding": self.encoding,
            "fields": [f.to_dict() for f in self.columns],
        }

    def export_csv(self, stream: TextIO, include_deleted: bool = False) -> int:
        """Write active records as CSV; returns the number of rows written"""
        writer = csv.writer(stream)
        writer.writerow(self.field_names)
        written = 0
        for record in self.records(include_deleted=include_deleted):
            writer.writerow(["" if v is None else v for v in record.values])
            written += 1
        return written

    # Writing

    def _check_index(self, index: int) -> None:
        if index < 0 or index >= self.record_count:
            raise DBFError(f"Record {index} out of range (0..{self.record_count - 1})")

    def _touch_header(self, f, record_count: Optional[int] = None) -> None:
        today = date.today()
        f.seek(1)
        f.write(bytes([today.year - 1900, today.month, today.day]))
        if record_count is not None:
            f.write(struct.pack("<I", record_count))
        self.last_update = today

    def update_record(self, index: int, changes: Dict[str, Any]) -> Dict[str, Any]:
        """
        Write field values into the record at physical position ``index``.

        Every field name is validated and every value encoded before any byte
        is written. Returns the encoded values as they will read back.
        """
        self._check_index(index)
        encoded = []
        for name, value in changes.items():
            descriptor = self.find_field(name)
            if descriptor is None:
                raise DBFError(f"Field {name} does not exist in {self.path.name}")
            encoded.append((descriptor, self._encode(descriptor, value)))

        base = self.header_length + index * self.record_length
        with self._lock:
            with open(self.path, "r+b") as f:
                for descriptor, data in encoded:
                    f.seek(base + descriptor.offset)
                    f.write(data)
                self._touch_header(f)

        return {d.name: self._decode(d, data) for d, data in encoded}

    def set_deleted(self, index: int, deleted: bool = True) -> None:
        self._check_index(index)
        with self._lock:
            with open(self.path, "r+b") as f:
                f.seek(self.header_length + index * self.record_length)
                f.write(DELETED_FLAG if deleted else ACTIVE_FLAG)
                self._touch_header(f)

    def append_record(self, values: Union[Dict[str, Any], Sequence[Any]]) -> int:
        """Append a record; returns its physical index"""
        raw = self._encode_record(values)
        with self._lock:
            with open(self.path, "r+b") as f:
                index = self.record_count
                f.seek(self.header_length + index * self.record_length)
                f.write(raw)
                f.write(bytes([EOF_MARKER]))
                f.truncate()
                self._touch_header(f, record_count=index + 1)
            self.record_count = index + 1
            self._header_count = index + 1
        return index

    def _encode_record(self, values: Union[Dict[str, Any], Sequence[Any]]) -> bytes:
        columns = self.columns
        if isinstance(values, dict):
            upper = {k.upper(): v for k, v in values.items()}
            unknown = set(upper) - {c.name for c in columns}
            if unknown:
                raise DBFError(f"Unknown fields for {self.path.name}: {', '.join(sorted(unknown))}")
            ordered = [upper.get(c.name) for c in columns]
        else:
            if len(values) > len(columns):
                raise DBFError(f"{len(values)} values for {len(columns)} fields")
            ordered = list(values) + [None] * (len(columns) - len(values))

        record = bytearray(b" " * self.record_length)
        for descriptor, value in zip(columns, ordered):
            if descriptor.type in MEMO_TYPES and value is None:
                continue
            data = self._encode(descriptor, value)
            record[descriptor.offset:descriptor.offset + descriptor.length] = data
        for descriptor in self.fields:
            if descriptor.hidden:
                record[descriptor.offset:descriptor.offset + descriptor.length] = b"\x00" * descriptor.length
        return bytes(record)

    # Creation

    @classmethod
    def create(cls, path: Union[str, Path], fields: Sequence[Union[DBFField, tuple]],
               records: Sequence[Union[Dict[str, Any], Sequence[Any]]] = (),
               encoding: str = DEFAULT_ENCODING) -> 'DBFTable':
        """
        Create a dBASE III table with the given fields and records.

        Fields are DBFField instances or (name, type, length, decimals) tuples.
        """
        descriptors: List[DBFField] = []
        offset = 1
        for item in fields:
            descriptor = item if isinstance(item, DBFField) else DBFField(*item)
            if len(descriptor.name) > 10:
                raise DBFError(f"Field name {descriptor.name} is longer than 10 characters")
            descriptor.offset = offset
            offset += descriptor.length
            descriptors.append(descriptor)
        if not descriptors:
            raise DBFError("A table needs at least one field")

        header_length = HEADER_SIZE + DESCRIPTOR_SIZE * len(descriptors) + 1
        record_length = offset
        code_page = next((k for k, v in CODE_PAGES.items() if v == encoding), 0x03)
        today = date.today()

        path = Path(path)
        with open(path, "wb") as f:
            header = bytearray(HEADER_SIZE)
            header[0] = 0x03
            header[1:4] = bytes([today.year - 1900, today.month, today.day])
            header[4:12] = struct.pack("<IHH", 0, header_length, record_length)
            header[29] = code_page
            f.write(header)
            for descriptor in descriptors:
                raw = bytearray(DESCRIPTOR_SIZE)
                raw[:len(descriptor.name)] = descriptor.name.encode("ascii")
                raw[11] = ord(descriptor.type)
                raw[12:16] = struct.pack("<I", descriptor.offset)
                raw[16] = descriptor.length
                raw[17] = descriptor.decimals
                f.write(raw)
            f.write(bytes([HEADER_TERMINATOR]))
            f.write(bytes([EOF_MARKER]))

        table = cls(path, encoding=encoding)
        for values in records:
            table.append_record(values)
        return table
