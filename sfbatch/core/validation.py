"""
Validation Gate

Local pre-flight checks run before any request is built. Input is
classified once into a closed set of shapes; everything downstream only
ever sees a validated single record or a homogeneous collection.
"""

from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from ..errors import ValidationError
from .codec import FieldAccessor, get_field, is_record


class Shape(Enum):
    SINGLE = "single"
    COLLECTION = "collection"
    INVALID = "invalid"


def _kind(record: Any):
    # All mappings count as one kind; dataclasses must share a class
    return Mapping if isinstance(record, Mapping) else type(record)


def classify(value: Any) -> Shape:
    """Classify input as a single record, a homogeneous collection, or invalid"""
    if is_record(value):
        return Shape.SINGLE

    if isinstance(value, (list, tuple)):
        if not all(is_record(item) for item in value):
            return Shape.INVALID
        if len({_kind(item) for item in value}) > 1:
            return Shape.INVALID
        return Shape.COLLECTION

    return Shape.INVALID


def validate_auth(credential: Any) -> None:
    if credential is None or not getattr(credential, "access_token", None):
        raise ValidationError("not authenticated: call Salesforce.init() or authenticate() first")


def validate_batch_size(batch_size: int, max_batch_size: int) -> None:
    if batch_size < 1 or batch_size > max_batch_size:
        raise ValidationError(
            f"batch size = {batch_size} but must be 1-{max_batch_size}"
        )


def validate_single(credential: Any, record: Any) -> None:
    """A single record with authentication present"""
    validate_auth(credential)
    if classify(record) != Shape.SINGLE:
        raise ValidationError(
            f"expected a single record (mapping or dataclass), got {type(record).__name__}"
        )


def validate_collection(
    credential: Any,
    records: Any,
    batch_size: Optional[int] = None,
    max_batch_size: Optional[int] = None
) -> None:
    """A homogeneous collection of records with a batch size in range"""
    validate_auth(credential)

    if not isinstance(records, (list, tuple)):
        raise ValidationError(
            f"expected a list of records, got {type(records).__name__}"
        )
    if classify(records) != Shape.COLLECTION:
        raise ValidationError("records must all be mappings or all instances of one dataclass")

    if batch_size is not None and max_batch_size is not None:
        validate_batch_size(batch_size, max_batch_size)


def validate_required_field(
    records: Sequence[Any],
    field_name: str,
    accessor: FieldAccessor = get_field
) -> None:
    """Every record must carry a non-empty value for field_name"""
    if not field_name:
        raise ValidationError("a field name is required for this operation")

    for index, record in enumerate(records):
        try:
            value = accessor(record, field_name)
        except (LookupError, AttributeError) as e:
            raise ValidationError(f"record {index} has no {field_name} field") from e
        if not value:
            raise ValidationError(f"record {index} has an empty {field_name} value")
