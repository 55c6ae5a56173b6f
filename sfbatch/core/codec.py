"""
Record Codec

Converts records (mappings or dataclass instances) into the wire shapes
each API family expects:
- CSV text for bulk ingest, CSV parsing for bulk query results
- JSON documents for single, collection and composite requests
"""

import csv
import io
import dataclasses
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from ..errors import FieldNotFoundError
from .operations import ID_FIELD, Operation

FieldAccessor = Callable[[Any, str], str]


def format_value(value: Any) -> str:
    """Render a scalar the way Salesforce expects it in CSV and URLs"""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def is_record(value: Any) -> bool:
    """True for a mapping or a dataclass instance"""
    if isinstance(value, Mapping):
        return True
    return dataclasses.is_dataclass(value) and not isinstance(value, type)


def get_field(record: Any, field_name: str) -> str:
    """
    Default field accessor.

    Args:
        record: Mapping or dataclass instance
        field_name: Field to read

    Returns:
        The field value as a string

    Raises:
        FieldNotFoundError: if the record has no such field
    """
    if isinstance(record, Mapping):
        if field_name not in record:
            raise FieldNotFoundError(field_name)
        return format_value(record[field_name])

    if is_record(record):
        names = {f.name for f in dataclasses.fields(record)}
        if field_name in names:
            return format_value(getattr(record, field_name))

    raise FieldNotFoundError(field_name)


def to_map(record: Any) -> Dict[str, Any]:
    """Convert a single record to a plain dict (shallow)"""
    if isinstance(record, Mapping):
        return dict(record)
    if is_record(record):
        return {f.name: getattr(record, f.name) for f in dataclasses.fields(record)}
    raise TypeError(f"not a record: {type(record).__name__}")


def to_maps(records: Iterable[Any]) -> List[Dict[str, Any]]:
    return [to_map(record) for record in records]


# ==================== Tabular encoding ====================

def _header(maps: Sequence[Mapping[str, Any]]) -> List[str]:
    """Field names in first-seen order across all records"""
    seen: Dict[str, None] = {}
    for record in maps:
        for key in record:
            seen.setdefault(key, None)
    return list(seen)


def maps_to_rows(maps: Sequence[Mapping[str, Any]]) -> List[List[str]]:
    """
    Convert records to a table: one header row then one row per record.

    Keys missing from a record become empty cells; columns never reorder.
    """
    if not maps:
        return []

    header = _header(maps)
    rows = [header]
    for record in maps:
        rows.append([format_value(record.get(key)) for key in header])
    return rows


def maps_to_csv(maps: Sequence[Mapping[str, Any]]) -> str:
    """Convert records to CSV text (LF line endings)"""
    return rows_to_csv(maps_to_rows(maps))


def rows_to_csv(rows: Sequence[Sequence[str]]) -> str:
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerows(rows)
    return output.getvalue()


def csv_to_rows(csv_text: str) -> List[List[str]]:
    """Parse CSV text into a table, dropping quotes and blank lines"""
    if not csv_text.strip():
        return []

    reader = csv.reader(io.StringIO(csv_text))
    return [row for row in reader if row]


# ==================== Document encoding ====================

def to_document(
    record: Any,
    operation: Operation,
    id_field: str = ID_FIELD,
    external_id_field: Optional[str] = None
) -> Dict[str, Any]:
    """
    Build the JSON body for a single-record request.

    The identifier travels in the URL for update, upsert and delete, so it
    is left out of the body; insert never sends an identifier.
    """
    data = to_map(record)

    if operation.is_delete:
        return {id_field: data.get(id_field)}

    if operation in (Operation.INSERT, Operation.UPDATE):
        data.pop(id_field, None)
    elif operation == Operation.UPSERT:
        data.pop(id_field, None)
        if external_id_field:
            data.pop(external_id_field, None)

    return data


def to_collection_record(record: Any, object_name: str, operation: Operation) -> Dict[str, Any]:
    """Build one element of an sObject Collections request"""
    data = to_map(record)
    if operation == Operation.INSERT:
        data.pop(ID_FIELD, None)
    data["attributes"] = {"type": object_name}
    return data
