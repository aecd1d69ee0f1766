"""
Voucher Export

Writes vouchers in the same column set and quoting convention the import
pipeline reads, so an export can be fed straight back into an import.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, List, Optional

from config import settings
from entitlements.import_pipeline import ImportFormat
from entitlements.models import coerce_timestamp, format_timestamp, get_field
from utils.logger import logger

EXPORT_COLUMNS = (
    "code",
    "packageKey",
    "valueKES",
    "durationSeconds",
    "type",
    "active",
    "maxUses",
    "usedCount",
    "expiresAt",
)


def _column_value(voucher: Any, column: str) -> Any:
    if column == "valueKES":
        return get_field(voucher, "value", get_field(voucher, "valueKES"))
    if column == "maxUses":
        return get_field(voucher, "maxUses", get_field(voucher, "uses", 1))
    if column == "usedCount":
        return get_field(voucher, "usedCount", 0)
    if column == "active":
        return get_field(voucher, "active", True)
    if column == "expiresAt":
        return format_timestamp(coerce_timestamp(get_field(voucher, "expiresAt")))
    value = get_field(voucher, column)
    # str-based enums export their value
    return getattr(value, "value", value)


def format_delimited_field(value: Any, delimiter: str = ",", quote_char: str = '"') -> str:
    """
    Render one field. Fields containing the delimiter are quoted.

    Raises:
        ValueError: the value contains the quote character, which the
            format cannot represent
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, float) and value.is_integer():
        text = str(int(value))
    else:
        text = str(value)

    if quote_char in text:
        raise ValueError(f"Cannot export a value containing {quote_char!r}: {text!r}")
    if delimiter in text or text != text.strip():
        return f"{quote_char}{text}{quote_char}"
    return text


def export_rows(vouchers: Iterable[Any]) -> List[dict]:
    """Vouchers as ordered {column: value} dicts"""
    return [{column: _column_value(v, column) for column in EXPORT_COLUMNS} for v in vouchers]


def export_vouchers(
    vouchers: Iterable[Any],
    fmt: ImportFormat = ImportFormat.DELIMITED,
    delimiter: Optional[str] = None,
    quote_char: Optional[str] = None,
) -> str:
    """
    Serialize vouchers (model instances or records) for download.

    DELIMITED produces a header row plus one line per voucher;
    RECORDS produces a JSON array.
    """
    delimiter = delimiter or settings.IMPORT_DELIMITER
    quote_char = quote_char or settings.IMPORT_QUOTE_CHAR
    rows = export_rows(vouchers)

    if ImportFormat(fmt) == ImportFormat.RECORDS:
        return json.dumps(rows, indent=2)

    lines = [delimiter.join(EXPORT_COLUMNS)]
    for row in rows:
        lines.append(delimiter.join(
            format_delimited_field(row[column], delimiter, quote_char) for column in EXPORT_COLUMNS
        ))
    return "\n".join(lines) + "\n"


def write_export(
    vouchers: Iterable[Any],
    fmt: ImportFormat = ImportFormat.DELIMITED,
    output_dir: Optional[Path] = None,
) -> Path:
    """Write an export file named ``vouchers_<timestamp>.<ext>`` and return its path"""
    fmt = ImportFormat(fmt)
    output_dir = Path(output_dir) if output_dir else settings.get_export_dir()
    output_dir.mkdir(parents=True, exist_ok=True)

    extension = "csv" if fmt == ImportFormat.DELIMITED else "json"
    path = output_dir / f"vouchers_{datetime.now().strftime('%Y%m%d_%H%M%S')}.{extension}"
    path.write_text(export_vouchers(vouchers, fmt), encoding="utf-8")
    logger.info(f"Exported vouchers to {path}")
    return path
