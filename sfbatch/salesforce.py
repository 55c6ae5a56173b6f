"""
Salesforce Client Handle

One object holding one Credential and exposing every operation:
single-record CRUD, queries, sObject Collections, composite requests and
Bulk API 2.0 jobs. Every call passes the validation gate before anything
is sent.
"""

import csv
from dataclasses import fields as dataclass_fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Type
import requests
import structlog

from .api.bulk import BulkClient, BulkJobResults, JobType
from .api.client import SalesforceClient
from .api.transport import Transport
from .auth.oauth import Credential, Creds, authenticate
from .config import load_config
from .core.aggregate import RecordOutcome, raise_for_batches
from .core.codec import FieldAccessor, get_field, rows_to_csv
from .core.operations import (
    ID_FIELD,
    MAX_BULK_BATCH_SIZE,
    MAX_COLLECTION_BATCH_SIZE,
    MAX_COMPOSITE_BATCH_SIZE,
    Operation,
)
from .core.validation import (
    validate_auth,
    validate_collection,
    validate_required_field,
    validate_single,
)
from .errors import ValidationError

logger = structlog.get_logger()


class Salesforce:
    """
    Salesforce client handle.

    Usage:
        sf = Salesforce.init(Creds(domain=..., username=..., ...))
        sf.insert_collection("Account", [{"Name": "Acme"}], batch_size=200)
        job_ids = sf.insert_bulk("Account", records, batch_size=10000, wait_for_results=True)

    The credential is never refreshed implicitly; call authenticate()
    to replace it.
    """

    def __init__(
        self,
        credential: Optional[Credential] = None,
        transport: Optional[Transport] = None,
        poll_interval: float = 1.0,
        max_workers: Optional[int] = None,
        field_accessor: FieldAccessor = get_field
    ):
        self._credential = credential
        self.transport = transport or Transport()
        self.poll_interval = poll_interval
        self.max_workers = max_workers
        self.field_accessor = field_accessor

    @classmethod
    def init(cls, creds: Creds, **kwargs) -> 'Salesforce':
        """Authenticate and return a ready handle"""
        return cls(authenticate(creds), **kwargs)

    @classmethod
    def from_config(cls, config_path: str, **kwargs) -> 'Salesforce':
        """Authenticate with settings from a YAML config file"""
        config = load_config(config_path)
        kwargs.setdefault("poll_interval", config.poll_interval)
        kwargs.setdefault("max_workers", config.max_workers)
        kwargs.setdefault("transport", Transport(timeout=config.timeout))
        return cls.init(config.creds, **kwargs)

    def authenticate(self, creds: Creds) -> Credential:
        """Replace the current credential with a freshly issued one"""
        self._credential = authenticate(creds)
        return self._credential

    @property
    def credential(self) -> Optional[Credential]:
        return self._credential

    @property
    def client(self) -> SalesforceClient:
        return SalesforceClient(self._credential, self.transport, self.field_accessor)

    @property
    def bulk(self) -> BulkClient:
        return BulkClient(
            self._credential,
            self.transport,
            poll_interval=self.poll_interval,
            max_workers=self.max_workers,
            field_accessor=self.field_accessor
        )

    def _check(
        self,
        records: Any,
        batch_size: int,
        max_batch_size: int,
        required_field: Optional[str] = None
    ) -> None:
        validate_collection(self._credential, records, batch_size, max_batch_size)
        if required_field is not None:
            validate_required_field(records, required_field, self.field_accessor)

    def _check_one(self, record: Any, required_field: Optional[str] = None) -> None:
        validate_single(self._credential, record)
        if required_field is not None:
            validate_required_field([record], required_field, self.field_accessor)

    # ==================== Direct API Access ====================

    def do_request(self, method: str, uri: str, body: Optional[Any] = None) -> requests.Response:
        """Make an authenticated request below /services/data/vXX.X"""
        validate_auth(self._credential)
        return self.client.request(method, uri, body)

    def query(self, soql: str, record_type: Optional[Type] = None) -> List[Any]:
        """
        Execute a SOQL query, following every page.

        Args:
            soql: SOQL query string
            record_type: Optional dataclass to build from each record;
                fields the dataclass does not declare are ignored

        Returns:
            Records as dicts, or record_type instances
        """
        validate_auth(self._credential)
        records = self.client.query_all(soql)

        if record_type is None:
            return records

        names = {f.name for f in dataclass_fields(record_type)}
        return [record_type(**{k: v for k, v in record.items() if k in names}) for record in records]

    # ==================== Single Records ====================

    def insert_one(self, sobject: str, record: Any) -> str:
        """Insert one record; returns the new Id"""
        self._check_one(record)
        return self.client.create(sobject, record)

    def update_one(self, sobject: str, record: Any) -> None:
        """Update one record identified by its Id"""
        self._check_one(record, ID_FIELD)
        self.client.update(sobject, record)

    def upsert_one(self, sobject: str, external_id_field: str, record: Any) -> Optional[str]:
        """Upsert one record by external id; returns the Id when one was created"""
        self._check_one(record, external_id_field)
        return self.client.upsert(sobject, external_id_field, record)

    def delete_one(self, sobject: str, record: Any) -> None:
        """Delete one record identified by its Id"""
        self._check_one(record, ID_FIELD)
        self.client.delete(sobject, record)

    # ==================== Collections ====================

    def insert_collection(self, sobject: str, records: Sequence[Any], batch_size: int) -> List[RecordOutcome]:
        """Insert records through sObject Collections, batch_size (1-200) per call"""
        self._check(records, batch_size, MAX_COLLECTION_BATCH_SIZE)
        client = self.client
        return client.execute_batches(client.collection, sobject, Operation.INSERT, records, batch_size)

    def update_collection(self, sobject: str, records: Sequence[Any], batch_size: int) -> List[RecordOutcome]:
        self._check(records, batch_size, MAX_COLLECTION_BATCH_SIZE, ID_FIELD)
        client = self.client
        return client.execute_batches(client.collection, sobject, Operation.UPDATE, records, batch_size)

    def upsert_collection(
        self,
        sobject: str,
        external_id_field: str,
        records: Sequence[Any],
        batch_size: int
    ) -> List[RecordOutcome]:
        self._check(records, batch_size, MAX_COLLECTION_BATCH_SIZE, external_id_field)
        client = self.client
        return client.execute_batches(
            client.collection, sobject, Operation.UPSERT, records, batch_size,
            external_id_field=external_id_field
        )

    def delete_collection(self, sobject: str, records: Sequence[Any], batch_size: int) -> List[RecordOutcome]:
        self._check(records, batch_size, MAX_COLLECTION_BATCH_SIZE, ID_FIELD)
        client = self.client
        return client.execute_batches(client.collection, sobject, Operation.DELETE, records, batch_size)

    # ==================== Composite ====================

    def insert_composite(
        self,
        sobject: str,
        records: Sequence[Any],
        batch_size: int,
        all_or_none: bool
    ) -> List[RecordOutcome]:
        """
        Insert records through composite requests.

        Args:
            sobject: Salesforce object name
            records: Records to insert
            batch_size: Sub-requests per composite call (1-200). The live
                endpoint accepts at most 25 per call, so keep it at 25 or
                below against a real org
            all_or_none: Roll back a whole call when any sub-request fails
        """
        self._check(records, batch_size, MAX_COMPOSITE_BATCH_SIZE)
        client = self.client
        return client.execute_batches(
            client.composite, sobject, Operation.INSERT, records, batch_size, all_or_none=all_or_none
        )

    def update_composite(
        self,
        sobject: str,
        records: Sequence[Any],
        batch_size: int,
        all_or_none: bool
    ) -> List[RecordOutcome]:
        self._check(records, batch_size, MAX_COMPOSITE_BATCH_SIZE, ID_FIELD)
        client = self.client
        return client.execute_batches(
            client.composite, sobject, Operation.UPDATE, records, batch_size, all_or_none=all_or_none
        )

    def upsert_composite(
        self,
        sobject: str,
        external_id_field: str,
        records: Sequence[Any],
        batch_size: int,
        all_or_none: bool
    ) -> List[RecordOutcome]:
        self._check(records, batch_size, MAX_COMPOSITE_BATCH_SIZE, external_id_field)
        client = self.client
        return client.execute_batches(
            client.composite, sobject, Operation.UPSERT, records, batch_size,
            all_or_none=all_or_none, external_id_field=external_id_field
        )

    def delete_composite(
        self,
        sobject: str,
        records: Sequence[Any],
        batch_size: int,
        all_or_none: bool
    ) -> List[RecordOutcome]:
        self._check(records, batch_size, MAX_COMPOSITE_BATCH_SIZE, ID_FIELD)
        client = self.client
        return client.execute_batches(
            client.composite, sobject, Operation.DELETE, records, batch_size, all_or_none=all_or_none
        )

    # ==================== Bulk ====================

    def insert_bulk(
        self,
        sobject: str,
        records: Sequence[Any],
        batch_size: int,
        wait_for_results: bool = False
    ) -> List[str]:
        """
        Insert records with Bulk API 2.0, one job per batch.

        Args:
            sobject: Salesforce object name
            records: Records to insert
            batch_size: Records per job (1-10000)
            wait_for_results: Poll every job to completion before returning

        Returns:
            Job ids
        """
        self._check(records, batch_size, MAX_BULK_BATCH_SIZE)
        return self.bulk.execute(sobject, Operation.INSERT, records, batch_size, wait_for_results=wait_for_results)

    def update_bulk(
        self,
        sobject: str,
        records: Sequence[Any],
        batch_size: int,
        wait_for_results: bool = False
    ) -> List[str]:
        self._check(records, batch_size, MAX_BULK_BATCH_SIZE, ID_FIELD)
        return self.bulk.execute(sobject, Operation.UPDATE, records, batch_size, wait_for_results=wait_for_results)

    def upsert_bulk(
        self,
        sobject: str,
        external_id_field: str,
        records: Sequence[Any],
        batch_size: int,
        wait_for_results: bool = False
    ) -> List[str]:
        self._check(records, batch_size, MAX_BULK_BATCH_SIZE, external_id_field)
        return self.bulk.execute(
            sobject, Operation.UPSERT, records, batch_size,
            external_id_field=external_id_field, wait_for_results=wait_for_results
        )

    def delete_bulk(
        self,
        sobject: str,
        records: Sequence[Any],
        batch_size: int,
        wait_for_results: bool = False
    ) -> List[str]:
        self._check(records, batch_size, MAX_BULK_BATCH_SIZE, ID_FIELD)
        return self.bulk.execute(sobject, Operation.DELETE, records, batch_size, wait_for_results=wait_for_results)

    # ==================== Bulk from CSV files ====================

    def _read_csv(self, file_path: str) -> List[Dict[str, str]]:
        path = Path(file_path).expanduser()
        if not path.is_file():
            raise ValidationError(f"file not found: {path}")

        with open(path, newline="") as f:
            return list(csv.DictReader(f))

    def insert_bulk_file(self, sobject: str, file_path: str, batch_size: int, wait_for_results: bool = False) -> List[str]:
        """Insert the rows of a CSV file (header = field names) with Bulk API 2.0"""
        validate_auth(self._credential)
        return self.insert_bulk(sobject, self._read_csv(file_path), batch_size, wait_for_results)

    def update_bulk_file(self, sobject: str, file_path: str, batch_size: int, wait_for_results: bool = False) -> List[str]:
        validate_auth(self._credential)
        return self.update_bulk(sobject, self._read_csv(file_path), batch_size, wait_for_results)

    def upsert_bulk_file(
        self,
        sobject: str,
        external_id_field: str,
        file_path: str,
        batch_size: int,
        wait_for_results: bool = False
    ) -> List[str]:
        validate_auth(self._credential)
        return self.upsert_bulk(sobject, external_id_field, self._read_csv(file_path), batch_size, wait_for_results)

    def delete_bulk_file(self, sobject: str, file_path: str, batch_size: int, wait_for_results: bool = False) -> List[str]:
        validate_auth(self._credential)
        return self.delete_bulk(sobject, self._read_csv(file_path), batch_size, wait_for_results)

    # ==================== Bulk Query ====================

    def query_bulk(self, soql: str) -> List[List[str]]:
        """Run a bulk query job and return header + rows"""
        validate_auth(self._credential)
        return self.bulk.query(soql)

    def query_bulk_export(self, soql: str, file_path: str) -> int:
        """
        Run a bulk query job and write the full result to a CSV file.

        Returns:
            Number of data rows written
        """
        rows = self.query_bulk(soql)

        path = Path(file_path).expanduser()
        with open(path, "w", newline="") as f:
            f.write(rows_to_csv(rows))

        count = max(len(rows) - 1, 0)
        logger.info("bulk_query_exported", path=str(path), rows=count)
        return count

    # ==================== Bulk Jobs ====================

    def get_job_results(self, job_id: str, query: bool = False) -> BulkJobResults:
        """Current status of a bulk job"""
        validate_auth(self._credential)
        return self.bulk.get_job_results(job_id, JobType.QUERY if query else JobType.INGEST)

    def get_failed_records(self, job_id: str) -> str:
        """Failed-records report of an ingest job (CSV text)"""
        validate_auth(self._credential)
        return self.bulk.get_failed_records(job_id)

    def abort_job(self, job_id: str, query: bool = False) -> None:
        validate_auth(self._credential)
        self.bulk.abort_job(job_id, JobType.QUERY if query else JobType.INGEST)

    def wait_for_jobs(self, job_ids: Sequence[str], interval: Optional[float] = None) -> List[BulkJobResults]:
        """
        Poll ingest jobs submitted earlier until all of them settle.

        Raises:
            BatchFailureError: if any job failed
        """
        validate_auth(self._credential)
        futures = self.bulk.wait_for_jobs(job_ids, JobType.INGEST, interval)

        errors = [f.exception() for f in futures.values() if f.exception() is not None]
        raise_for_batches(errors, list(job_ids))
        return [f.result() for f in futures.values()]
