"""
Voucher Import Pipeline

Ingests an external file of voucher records and creates them one by one.

Two source formats are understood:
- DELIMITED: header row plus one row per voucher, e.g.

      code,packageKey,valueKES,durationSeconds,type,active,maxUses,usedCount,expiresAt
      VOUCHER_7KQ2ZD,daily,50,86400,single,true,1,0,2025-12-31T23:59:59Z

  A field wrapped in quotes may contain the delimiter. Escaped quotes
  inside a quoted field are not supported.
- RECORDS: a JSON object or a JSON array of objects using the same names.

Every raw field goes through the FIELD_SCHEMA parser table. A row whose
typed fields cannot be parsed is recorded as an error and not submitted.
Rows without a packageKey are dropped silently (counted as skipped).
An unparseable source aborts the whole import with ImportParseError
before anything is submitted.
"""

import json
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from config import settings
from entitlements.errors import ImportParseError
from entitlements.models import EntityKind, VoucherType, format_timestamp, parse_timestamp
from entitlements.store import EntityStore
from entitlements.submission import SequentialSubmitter
from entitlements.vouchers import validate_voucher
from utils.logger import logger


class ImportFormat(str, Enum):
    """Source file formats"""
    DELIMITED = "delimited"
    RECORDS = "records"

    @classmethod
    def _missing_(cls, value):
        aliases = {"csv": cls.DELIMITED, "json": cls.RECORDS}
        if isinstance(value, str):
            return aliases.get(value.lower())
        return None


# ============================================================================
# Delimited-text parsing
# ============================================================================

def split_delimited_line(line: str, delimiter: str = ",", quote_char: str = '"') -> List[str]:
    """
    Split one line into fields.

    A quote character toggles an "inside quotes" state; a delimiter inside
    quotes is part of the field. Quote characters are not kept. Unquoted
    fields are whitespace-trimmed, quoted content is kept verbatim.
    """
    fields: List[str] = []
    current: List[str] = []
    in_quotes = False
    quoted = False

    def finish():
        text = "".join(current)
        fields.append(text if quoted else text.strip())

    for char in line:
        if char == quote_char:
            in_quotes = not in_quotes
            quoted = True
        elif char == delimiter and not in_quotes:
            finish()
            current = []
            quoted = False
        else:
            current.append(char)
    finish()
    return fields


def parse_delimited(raw_text: str, delimiter: str = ",", quote_char: str = '"') -> List[Tuple[int, Dict[str, str]]]:
    """
    Parse delimited text into (line number, {column: raw value}) rows.

    Raises:
        ImportParseError: fewer than two non-blank lines, or no header names
    """
    lines = [(number, line) for number, line in enumerate(raw_text.splitlines(), start=1) if line.strip()]
    if len(lines) < 2:
        raise ImportParseError("Delimited import needs a header row and at least one data row")

    header_line_no, header_line = lines[0]
    headers = [h.lstrip("\ufeff").strip() for h in split_delimited_line(header_line, delimiter, quote_char)]
    if not any(headers):
        raise ImportParseError("Header row has no column names", line=header_line_no)

    rows = []
    for number, line in lines[1:]:
        values = split_delimited_line(line, delimiter, quote_char)
        row = {name: value for name, value in zip(headers, values) if name}
        rows.append((number, row))
    return rows


def parse_records(raw_text: str) -> List[Tuple[int, Dict[str, Any]]]:
    """
    Parse a JSON object or array of objects into (position, record) rows.

    Raises:
        ImportParseError: malformed JSON, or anything other than objects
    """
    try:
        data = json.loads(raw_text)
    except json.JSONDecodeError as e:
        raise ImportParseError(f"Malformed record data: {e.msg}", line=e.lineno) from e

    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise ImportParseError("Record data must be an object or a list of objects")

    rows = []
    for position, record in enumerate(data, start=1):
        if not isinstance(record, dict):
            raise ImportParseError(f"Record {position} is not an object")
        rows.append((position, record))
    return rows


# ============================================================================
# Per-field parser table
# ============================================================================

class _Absent:
    """Marker for a field that should be left out of the payload"""

    def __repr__(self):
        return "ABSENT"


ABSENT = _Absent()


class FieldParseError(ValueError):
    """A raw value could not be converted to its field's type"""
    pass


def _is_blank(raw: Any) -> bool:
    return raw is None or (isinstance(raw, str) and not raw.strip())


def parse_text(raw: Any) -> Any:
    if _is_blank(raw):
        return ABSENT
    if isinstance(raw, bool) or not isinstance(raw, (str, int, float)):
        raise FieldParseError(f"expected text, got {type(raw).__name__}")
    return str(raw).strip()


def parse_notes(raw: Any) -> Any:
    if raw is None:
        return ABSENT
    if not isinstance(raw, str):
        raise FieldParseError(f"expected text, got {type(raw).__name__}")
    return raw


def parse_number(raw: Any) -> Any:
    """Numbers that are absent, unparseable or non-finite are left out"""
    if _is_blank(raw) or isinstance(raw, bool):
        return ABSENT
    try:
        number = float(raw)
    except (TypeError, ValueError):
        return ABSENT
    return number if math.isfinite(number) else ABSENT


def parse_integer(raw: Any) -> Any:
    if _is_blank(raw):
        return ABSENT
    if isinstance(raw, bool):
        raise FieldParseError("expected a whole number, got a boolean")
    try:
        number = float(raw)
    except (TypeError, ValueError):
        raise FieldParseError(f"expected a whole number, got {raw!r}")
    if not number.is_integer():
        raise FieldParseError(f"expected a whole number, got {raw!r}")
    return int(number)


_TRUE_WORDS = {"true", "1", "yes", "y"}
_FALSE_WORDS = {"false", "0", "no", "n"}


def parse_boolean(raw: Any) -> Any:
    if _is_blank(raw):
        return ABSENT
    if isinstance(raw, bool):
        return raw
    word = str(raw).strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise FieldParseError(f"expected true/false, got {raw!r}")


def parse_voucher_type(raw: Any) -> Any:
    if _is_blank(raw):
        return ABSENT
    try:
        return VoucherType(str(raw).strip().lower()).value
    except ValueError:
        raise FieldParseError(f"unknown voucher type {raw!r}")


def parse_expiry(raw: Any) -> Any:
    if _is_blank(raw):
        return ABSENT
    try:
        return format_timestamp(parse_timestamp(raw))
    except (TypeError, ValueError):
        raise FieldParseError(f"expected an ISO 8601 timestamp, got {raw!r}")


@dataclass(frozen=True)
class FieldSpec:
    """How one payload field is read from a raw row"""
    target: str
    sources: Tuple[str, ...]
    parse: Callable[[Any], Any]
    default: Any = ABSENT


FIELD_SCHEMA: Tuple[FieldSpec, ...] = (
    FieldSpec("code", ("code",), parse_text),
    FieldSpec("packageKey", ("packageKey",), parse_text),
    FieldSpec("value", ("valueKES", "value"), parse_number),
    FieldSpec("durationSeconds", ("durationSeconds",), parse_integer),
    FieldSpec("type", ("type",), parse_voucher_type),
    FieldSpec("active", ("active",), parse_boolean, default=True),
    FieldSpec("maxUses", ("maxUses", "uses"), parse_integer, default=1),
    FieldSpec("usedCount", ("usedCount",), parse_integer),
    FieldSpec("expiresAt", ("expiresAt",), parse_expiry),
    FieldSpec("notes", ("notes",), parse_notes),
)


def _raw_value(row: Dict[str, Any], sources: Tuple[str, ...]) -> Any:
    for name in sources:
        if not _is_blank(row.get(name)):
            return row[name]
    return None


def normalize_row(row: Dict[str, Any]) -> Dict[str, Any]:
    """
    Map a raw row to a typed voucher creation payload.

    Raises:
        FieldParseError: a typed field holds an unparseable value
    """
    payload: Dict[str, Any] = {}
    for spec in FIELD_SCHEMA:
        try:
            value = spec.parse(_raw_value(row, spec.sources))
        except FieldParseError as e:
            raise FieldParseError(f"{spec.target}: {e}") from e
        if value is ABSENT:
            value = spec.default
        if value is not ABSENT:
            payload[spec.target] = value
    return payload


# ============================================================================
# Pipeline
# ============================================================================

@dataclass
class ImportRowError:
    """A row that could not be imported"""
    line: int
    error: str
    code: Optional[str] = None

    def to_dict(self) -> dict:
        return {"line": self.line, "code": self.code, "error": self.error}


@dataclass
class ImportResult:
    """Summary of an import run"""
    imported_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    errors: List[ImportRowError] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "importedCount": self.imported_count,
            "errorCount": self.error_count,
            "skippedCount": self.skipped_count,
            "errors": [e.to_dict() for e in self.errors],
        }


class ImportPipeline:
    """
    Parses, normalizes and sequentially submits voucher rows.

    Args:
        store: Persistence collaborator
        keep_codes: When False, codes in the file are ignored and the
            backend generates fresh ones (re-importing an export into
            the same system)
    """

    def __init__(
        self,
        store: EntityStore,
        delimiter: Optional[str] = None,
        quote_char: Optional[str] = None,
        keep_codes: bool = True,
    ):
        self._store = store
        self._delimiter = delimiter or settings.IMPORT_DELIMITER
        self._quote_char = quote_char or settings.IMPORT_QUOTE_CHAR
        self._keep_codes = keep_codes

    def parse(self, raw_text: str, fmt: ImportFormat) -> List[Tuple[int, Dict[str, Any]]]:
        """Parse the source into raw rows; raises ImportParseError"""
        fmt = ImportFormat(fmt)
        if fmt == ImportFormat.DELIMITED:
            return parse_delimited(raw_text, self._delimiter, self._quote_char)
        return parse_records(raw_text)

    async def import_file(self, raw_text: str, fmt: ImportFormat) -> ImportResult:
        """
        Import vouchers from ``raw_text``.

        Returns:
            ImportResult with imported, failed and skipped counts

        Raises:
            ImportParseError: the source could not be parsed; nothing was submitted
        """
        try:
            rows = self.parse(raw_text, fmt)
        except ImportParseError as e:
            logger.error(f"Voucher import aborted: {e}")
            raise

        result = ImportResult()
        submitter = SequentialSubmitter(self._store, EntityKind.VOUCHER)

        for line, row in rows:
            if _is_blank(row.get("packageKey")):
                result.skipped_count += 1
                continue

            try:
                payload = normalize_row(row)
            except FieldParseError as e:
                result.error_count += 1
                result.errors.append(ImportRowError(line=line, error=str(e), code=_code_of(row)))
                continue

            if not self._keep_codes:
                payload.pop("code", None)

            problems = validate_voucher(payload, require_code=False)
            if problems:
                result.error_count += 1
                message = "; ".join(f"{name}: {text}" for name, text in problems.items())
                result.errors.append(ImportRowError(line=line, error=message, code=payload.get("code")))
                continue

            submitter.enqueue(payload, index=line)

        for outcome in await submitter.run():
            if outcome.ok:
                result.imported_count += 1
            else:
                result.error_count += 1
                result.errors.append(
                    ImportRowError(line=outcome.index, error=outcome.error, code=outcome.payload.get("code"))
                )

        result.errors.sort(key=lambda e: e.line)
        logger.info(
            f"Voucher import finished: {result.imported_count} imported, "
            f"{result.error_count} failed, {result.skipped_count} skipped"
        )
        return result


def _code_of(row: Dict[str, Any]) -> Optional[str]:
    code = row.get("code")
    return code.strip() if isinstance(code, str) and code.strip() else None
