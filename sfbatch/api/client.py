"""
Salesforce REST API Client

Synchronous operations:
- Single-record CRUD
- SOQL queries with pagination
- sObject Collections (up to 200 records per call)
- Composite requests (one sub-request per record, optionally all-or-none)
"""

import json
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.parse import quote
from dataclasses import dataclass
import requests
import structlog

from ..core.aggregate import (
    RecordOutcome,
    failed_outcomes,
    parse_composite_outcomes,
    parse_record_outcomes,
    raise_for_batches,
    raise_for_outcomes,
)
from ..core.codec import FieldAccessor, get_field, to_collection_record, to_document
from ..core.operations import COMPOSITE_SUBREQUEST_LIMIT, ID_FIELD, Operation
from ..core.partition import partition
from ..errors import RecordFailuresError, RemoteError, SalesforceError
from .transport import API_PATH, JSON_TYPE, Transport, raise_for_status

logger = structlog.get_logger()


@dataclass
class QueryResult:
    """SOQL query result"""
    total_size: int
    done: bool
    records: List[Dict[str, Any]]
    next_records_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'QueryResult':
        return cls(
            total_size=data['totalSize'],
            done=data['done'],
            records=data['records'],
            next_records_url=data.get('nextRecordsUrl')
        )


class SalesforceClient:
    """
    Salesforce REST API client.

    Handles single-record CRUD, queries, collection and composite requests.
    Records may be mappings or dataclass instances; identifiers are read
    through the field accessor.
    """

    def __init__(
        self,
        credential,
        transport: Optional[Transport] = None,
        field_accessor: FieldAccessor = get_field
    ):
        self.credential = credential
        self.transport = transport or Transport()
        self.field_accessor = field_accessor

    def _send(self, method: str, path: str, payload: Any = None, **kwargs) -> requests.Response:
        body = json.dumps(payload) if payload is not None else None
        return self.transport.send(method, f"{API_PATH}{path}", JSON_TYPE, self.credential, body, **kwargs)

    def _field(self, record: Any, field_name: str) -> str:
        return quote(self.field_accessor(record, field_name), safe="")

    def request(self, method: str, uri: str, body: Optional[Any] = None) -> requests.Response:
        """
        Send a raw authenticated request under the versioned API path.

        Args:
            method: HTTP method
            uri: Path below /services/data/vXX.X (e.g. '/limits')
            body: str/bytes sent as is, anything else JSON-encoded

        Returns:
            The unprocessed response
        """
        if body is not None and not isinstance(body, (str, bytes)):
            body = json.dumps(body)
        return self.transport.send(method, f"{API_PATH}{uri}", JSON_TYPE, self.credential, body)

    # ==================== CRUD Operations ====================

    def create(self, sobject: str, record: Any) -> str:
        """
        Create a new record.

        Args:
            sobject: Salesforce object name (e.g., 'Account')
            record: Field values for the new record; any Id is dropped

        Returns:
            ID of the created record
        """
        response = self._send("POST", f"/sobjects/{sobject}", to_document(record, Operation.INSERT))
        raise_for_status(response, "create", (201,), sobject=sobject)

        result = response.json() if response.content else {}
        if not result.get('success', True):
            raise RemoteError(
                "; ".join(e.get('message', '') for e in result.get('errors', [])),
                status_code=response.status_code,
                error_data=result
            )

        logger.info("record_created", sobject=sobject, id=result.get('id'))
        return result.get('id')

    def get(self, sobject: str, record_id: str, fields: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Get a record by ID.

        Args:
            sobject: Salesforce object name
            record_id: Record ID
            fields: Optional list of fields to retrieve

        Returns:
            Record data without the attributes block
        """
        params = {'fields': ','.join(fields)} if fields else None
        response = self._send("GET", f"/sobjects/{sobject}/{quote(record_id, safe='')}", params=params)
        raise_for_status(response, "get", (200,), sobject=sobject, record_id=record_id)

        data = response.json()
        data.pop('attributes', None)
        return data

    def update(self, sobject: str, record: Any) -> bool:
        """
        Update an existing record identified by its Id field.

        Returns:
            True if successful
        """
        record_id = self._field(record, ID_FIELD)
        response = self._send(
            "PATCH", f"/sobjects/{sobject}/{record_id}", to_document(record, Operation.UPDATE)
        )
        raise_for_status(response, "update", (200, 204), sobject=sobject, record_id=record_id)

        logger.info("record_updated", sobject=sobject, id=record_id)
        return True

    def upsert(self, sobject: str, external_id_field: str, record: Any) -> Optional[str]:
        """
        Upsert a record using an external ID.

        Args:
            sobject: Salesforce object name
            external_id_field: External ID field name
            record: Field values including the external ID

        Returns:
            Record ID when Salesforce returns one (created), else None
        """
        external_id = self._field(record, external_id_field)
        response = self._send(
            "PATCH",
            f"/sobjects/{sobject}/{external_id_field}/{external_id}",
            to_document(record, Operation.UPSERT, external_id_field=external_id_field)
        )
        raise_for_status(response, "upsert", (200, 201, 204), sobject=sobject, record_id=external_id)

        if response.status_code == 204 or not response.content:
            # Update - no body returned
            return None
        return response.json().get('id')

    def delete(self, sobject: str, record: Any) -> bool:
        """
        Delete a record identified by its Id field.

        Returns:
            True if successful
        """
        record_id = self._field(record, ID_FIELD)
        response = self._send("DELETE", f"/sobjects/{sobject}/{record_id}")
        raise_for_status(response, "delete", (204,), sobject=sobject, record_id=record_id)

        logger.info("record_deleted", sobject=sobject, id=record_id)
        return True

    # ==================== Query Operations ====================

    def query(self, soql: str) -> QueryResult:
        """
        Execute a SOQL query (first page only).

        Args:
            soql: SOQL query string

        Returns:
            QueryResult with records
        """
        response = self._send("GET", "/query", params={'q': soql})
        raise_for_status(response, "query", (200,), soql=soql)
        return QueryResult.from_dict(response.json())

    def query_all(self, soql: str) -> List[Dict[str, Any]]:
        """
        Execute a SOQL query and return all records (handles pagination).

        Returns:
            List of all matching records, attributes removed
        """
        all_records = []
        result = self.query(soql)
        all_records.extend(result.records)

        while not result.done and result.next_records_url:
            result = self._query_more(result.next_records_url)
            all_records.extend(result.records)

        for record in all_records:
            record.pop('attributes', None)

        logger.info("query_completed", total_records=len(all_records))
        return all_records

    def _query_more(self, next_url: str) -> QueryResult:
        """Get next page of query results"""
        response = self.transport.send("GET", next_url, JSON_TYPE, self.credential)
        raise_for_status(response, "query_more", (200,))
        return QueryResult.from_dict(response.json())

    # ==================== Collection Operations ====================

    def collection(
        self,
        sobject: str,
        operation: Operation,
        batch: Sequence[Any],
        external_id_field: Optional[str] = None,
        offset: int = 0
    ) -> List[RecordOutcome]:
        """
        Send one sObject Collections request (at most 200 records).

        Args:
            sobject: Salesforce object name
            operation: insert, update, upsert or delete
            batch: Records for this call
            external_id_field: External ID field (upsert only)
            offset: Position of the batch in the caller's full input

        Returns:
            One outcome per record, in request order
        """
        if operation.is_delete:
            ids = ",".join(self.field_accessor(record, ID_FIELD) for record in batch)
            response = self._send(
                "DELETE", "/composite/sobjects", params={'ids': ids, 'allOrNone': 'false'}
            )
        else:
            payload = {
                'allOrNone': False,
                'records': [to_collection_record(record, sobject, operation) for record in batch]
            }
            if operation == Operation.INSERT:
                response = self._send("POST", "/composite/sobjects", payload)
            elif operation == Operation.UPSERT:
                response = self._send("PATCH", f"/composite/sobjects/{sobject}/{external_id_field}", payload)
            else:
                response = self._send("PATCH", "/composite/sobjects", payload)

        raise_for_status(response, f"{operation.value}_collection", (200,), sobject=sobject)
        return parse_record_outcomes(response.json(), offset)

    # ==================== Composite Operations ====================

    def _subrequest(
        self,
        sobject: str,
        operation: Operation,
        record: Any,
        reference_id: str,
        external_id_field: Optional[str]
    ) -> Dict[str, Any]:
        url = f"{API_PATH}/sobjects/{sobject}"

        if operation == Operation.INSERT:
            return {
                'method': 'POST', 'url': url, 'referenceId': reference_id,
                'body': to_document(record, operation)
            }
        if operation == Operation.UPSERT:
            return {
                'method': 'PATCH',
                'url': f"{url}/{external_id_field}/{self._field(record, external_id_field)}",
                'referenceId': reference_id,
                'body': to_document(record, operation, external_id_field=external_id_field)
            }
        if operation.is_delete:
            return {
                'method': 'DELETE', 'url': f"{url}/{self._field(record, ID_FIELD)}",
                'referenceId': reference_id
            }
        return {
            'method': 'PATCH', 'url': f"{url}/{self._field(record, ID_FIELD)}",
            'referenceId': reference_id, 'body': to_document(record, operation)
        }

    def composite(
        self,
        sobject: str,
        operation: Operation,
        batch: Sequence[Any],
        all_or_none: bool = False,
        external_id_field: Optional[str] = None,
        offset: int = 0
    ) -> List[RecordOutcome]:
        """
        Send one composite request with a sub-request per record.

        Salesforce rejects composite calls with more than 25 sub-requests;
        larger batches are sent as is and logged as a warning.

        Args:
            sobject: Salesforce object name
            operation: insert, update, upsert or delete
            batch: Records for this call
            all_or_none: If True, roll back all if any fails
            external_id_field: External ID field (upsert only)
            offset: Position of the batch in the caller's full input

        Returns:
            One outcome per record
        """
        if len(batch) > COMPOSITE_SUBREQUEST_LIMIT:
            logger.warning(
                "composite_batch_over_limit",
                sobject=sobject,
                size=len(batch),
                limit=COMPOSITE_SUBREQUEST_LIMIT
            )

        references: Dict[str, Optional[str]] = {}
        subrequests = []

        for position, record in enumerate(batch):
            reference_id = f"ref_{sobject}_{offset + position}"
            if operation == Operation.INSERT:
                references[reference_id] = None
            elif operation == Operation.UPSERT:
                references[reference_id] = self.field_accessor(record, external_id_field)
            else:
                references[reference_id] = self.field_accessor(record, ID_FIELD)
            subrequests.append(self._subrequest(sobject, operation, record, reference_id, external_id_field))

        payload = {
            'allOrNone': all_or_none,
            'compositeRequest': subrequests
        }

        response = self._send("POST", "/composite", payload)
        raise_for_status(response, f"{operation.value}_composite", (200,), sobject=sobject)
        return parse_composite_outcomes(response.json(), references, offset)

    # ==================== Batching ====================

    def execute_batches(
        self,
        send: Callable[..., List[RecordOutcome]],
        sobject: str,
        operation: Operation,
        records: Sequence[Any],
        batch_size: int,
        **kwargs
    ) -> List[RecordOutcome]:
        """
        Partition records and send each batch with `send`.

        Every batch is sent even if an earlier one failed.

        Raises:
            RecordFailuresError: if only per-record failures occurred
            BatchFailureError: if any whole batch failed
        """
        outcomes: List[RecordOutcome] = []
        errors: List[Exception] = []
        offset = 0

        for batch in partition(records, batch_size):
            try:
                outcomes.extend(send(sobject, operation, batch, offset=offset, **kwargs))
            except SalesforceError as e:
                logger.error("batch_failed", sobject=sobject, operation=operation.value, offset=offset, error=str(e))
                errors.append(e)
            offset += len(batch)

        failures = failed_outcomes(outcomes)
        logger.info(
            "batches_complete",
            sobject=sobject,
            operation=operation.value,
            records=len(records),
            failed=len(failures),
            batch_errors=len(errors)
        )

        if errors:
            if failures:
                errors.append(RecordFailuresError(failures, len(records)))
            raise_for_batches(errors)
        raise_for_outcomes(outcomes, len(records))
        return outcomes

