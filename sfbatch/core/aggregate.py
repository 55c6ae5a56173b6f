"""
Failure Aggregation

Turns per-record outcomes from collection and composite responses into a
single error that names every failed record, and folds per-batch errors of
a multi-batch call into one BatchFailureError.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..errors import BatchFailureError, RecordFailuresError


@dataclass
class ErrorDetail:
    """One error reported for a record"""
    message: str
    status_code: str = ""
    fields: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ErrorDetail':
        return cls(
            message=data.get("message", ""),
            status_code=data.get("statusCode") or data.get("errorCode") or "",
            fields=list(data.get("fields") or [])
        )


@dataclass
class RecordOutcome:
    """Result for one submitted record"""
    id: Optional[str]
    success: bool
    errors: List[ErrorDetail] = field(default_factory=list)
    index: Optional[int] = None

    @property
    def identifier(self) -> str:
        """Record id, or its position in the request when Salesforce gave none"""
        if self.id:
            return self.id
        return f"record[{self.index}]" if self.index is not None else "unknown"

    def describe(self) -> str:
        if not self.errors:
            return f"{self.identifier}: failed"
        parts = []
        for error in self.errors:
            text = f"{error.status_code}: {error.message} {self.identifier}"
            if error.fields:
                text += f" (fields: {', '.join(error.fields)})"
            parts.append(text)
        return "; ".join(parts)


def parse_record_outcomes(payload: Sequence[Dict[str, Any]], offset: int = 0) -> List[RecordOutcome]:
    """
    Parse an sObject Collections response.

    Args:
        payload: List of {id, success, errors} in request order
        offset: Position of the first record of this batch in the full input

    Returns:
        One outcome per record, order-correlated with the request
    """
    return [
        RecordOutcome(
            id=item.get("id"),
            success=bool(item.get("success")),
            errors=[ErrorDetail.from_dict(e) for e in item.get("errors") or []],
            index=offset + position
        )
        for position, item in enumerate(payload)
    ]


def parse_composite_outcomes(
    payload: Dict[str, Any],
    references: Dict[str, Optional[str]],
    offset: int = 0
) -> List[RecordOutcome]:
    """
    Parse a composite response.

    Args:
        payload: {"compositeResponse": [{body, httpStatusCode, referenceId}]}
        references: referenceId -> record id (None for inserts), in request order
        offset: Position of the first record of this batch in the full input
    """
    order = {ref: position for position, ref in enumerate(references)}
    outcomes = []

    for sub in payload.get("compositeResponse", []):
        ref = sub.get("referenceId")
        status = int(sub.get("httpStatusCode", 0))
        body = sub.get("body")
        position = order.get(ref)
        index = offset + position if position is not None else None
        record_id = references.get(ref)

        if 200 <= status < 300:
            if isinstance(body, dict) and body.get("id"):
                record_id = body["id"]
            outcomes.append(RecordOutcome(id=record_id, success=True, index=index))
            continue

        errors = body if isinstance(body, list) else [body or {"message": f"HTTP {status}"}]
        outcomes.append(RecordOutcome(
            id=record_id,
            success=False,
            errors=[ErrorDetail.from_dict(e) for e in errors if isinstance(e, dict)],
            index=index
        ))

    return outcomes


def failed_outcomes(outcomes: Sequence[RecordOutcome]) -> List[RecordOutcome]:
    return [outcome for outcome in outcomes if not outcome.success]


def raise_for_outcomes(outcomes: Sequence[RecordOutcome], total: Optional[int] = None) -> None:
    """Raise RecordFailuresError if any outcome failed"""
    failures = failed_outcomes(outcomes)
    if failures:
        raise RecordFailuresError(failures, total if total is not None else len(outcomes))


def raise_for_batches(errors: Sequence[Exception], job_ids: Optional[List[str]] = None) -> None:
    """Raise BatchFailureError if any batch reported an error"""
    if errors:
        raise BatchFailureError(list(errors), job_ids)
