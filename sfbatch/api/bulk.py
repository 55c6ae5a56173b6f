"""
Salesforce Bulk API 2.0 Client

For high-volume operations: up to 10,000 records per job.
- Splits records into batches, one ingest job per batch
- Creates, uploads and closes each job
- Polls every job independently until it reaches a terminal state
- Follows result locators to collect complete query results
"""

import json
import time
from concurrent.futures import ALL_COMPLETED, Executor, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence
import structlog

from ..core.aggregate import raise_for_batches
from ..core.codec import FieldAccessor, csv_to_rows, get_field, maps_to_csv, to_maps
from ..core.operations import ID_FIELD, Operation
from ..core.partition import partition
from ..errors import JobFailedError, RemoteError, SalesforceError
from .transport import API_PATH, CSV_TYPE, JSON_TYPE, Transport, raise_for_status

logger = structlog.get_logger()


class JobType(Enum):
    INGEST = "ingest"
    QUERY = "query"


class JobState(Enum):
    OPEN = "Open"
    UPLOAD_COMPLETE = "UploadComplete"
    IN_PROGRESS = "InProgress"
    ABORTED = "Aborted"
    JOB_COMPLETE = "JobComplete"
    FAILED = "Failed"


@dataclass
class BulkJob:
    """A job as last reported by Salesforce"""
    id: str
    state: JobState
    operation: str = ""
    object: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BulkJob':
        return cls(
            id=data["id"],
            state=JobState(data["state"]),
            operation=data.get("operation", ""),
            object=data.get("object", "")
        )


@dataclass
class BulkJobResults:
    """Job status"""
    id: str
    state: JobState
    number_records_failed: int = 0
    number_records_processed: int = 0
    error_message: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BulkJobResults':
        return cls(
            id=data["id"],
            state=JobState(data["state"]),
            number_records_failed=int(data.get("numberRecordsFailed") or 0),
            number_records_processed=int(data.get("numberRecordsProcessed") or 0),
            error_message=data.get("errorMessage") or ""
        )


@dataclass
class QueryPage:
    """One page of query job results"""
    number_of_records: int
    locator: str
    data: List[List[str]] = field(default_factory=list)


TERMINAL_STATES = (JobState.JOB_COMPLETE, JobState.FAILED, JobState.ABORTED)


class BulkClient:
    """
    Salesforce Bulk API 2.0 client.

    Each batch becomes its own job. Waiting on several jobs runs one poll
    loop per job on a thread pool and returns once every loop has settled.
    """

    def __init__(
        self,
        credential,
        transport: Optional[Transport] = None,
        poll_interval: float = 1.0,
        max_workers: Optional[int] = None,
        field_accessor: FieldAccessor = get_field
    ):
        self.credential = credential
        self.transport = transport or Transport()
        self.poll_interval = poll_interval
        self.max_workers = max_workers
        self.field_accessor = field_accessor

    def _path(self, job_type: JobType, *parts: str) -> str:
        return "/".join([f"{API_PATH}/jobs/{job_type.value}", *parts])

    def _send(self, method: str, path: str, content_type: str = JSON_TYPE, body=None, **kwargs):
        return self.transport.send(method, path, content_type, self.credential, body, **kwargs)

    # ==================== Job Submission ====================

    def create_job(
        self,
        object_name: str,
        operation: Operation,
        external_id_field: Optional[str] = None
    ) -> BulkJob:
        """
        Create an ingest job.

        Raises:
            RemoteError: if creation fails or the new job is not Open
        """
        payload = {
            "object": object_name,
            "operation": operation.value,
            "contentType": "CSV",
            "lineEnding": "LF"
        }

        if external_id_field:
            payload["externalIdFieldName"] = external_id_field

        response = self._send("POST", self._path(JobType.INGEST), body=json.dumps(payload))
        raise_for_status(response, "create_job", (200, 201), sobject=object_name)

        job = BulkJob.from_dict(response.json())
        if job.state != JobState.OPEN:
            raise RemoteError(
                f"error creating bulk data job: id={job.id}, state={job.state.value}",
                job_id=job.id
            )

        logger.info("bulk_job_created", job_id=job.id, sobject=object_name, operation=operation.value)
        return job

    def create_query_job(self, soql: str) -> BulkJob:
        """Create a query job; Salesforce starts processing it right away"""
        payload = {"operation": Operation.QUERY.value, "query": soql}

        response = self._send("POST", self._path(JobType.QUERY), body=json.dumps(payload))
        raise_for_status(response, "create_query_job", (200, 201), soql=soql)

        job = BulkJob.from_dict(response.json())
        logger.info("bulk_query_job_created", job_id=job.id)
        return job

    def upload_job_data(self, job: BulkJob, csv_data: str) -> None:
        """Upload CSV data to an open job"""
        response = self._send(
            "PUT", self._path(JobType.INGEST, job.id, "batches"), CSV_TYPE, csv_data,
            accept=JSON_TYPE
        )
        raise_for_status(response, "upload_job_data", (201,), job_id=job.id)

    def close_job(self, job: BulkJob) -> None:
        """Mark upload complete so Salesforce starts processing"""
        self._set_state(job.id, JobType.INGEST, JobState.UPLOAD_COMPLETE)

    def abort_job(self, job_id: str, job_type: JobType = JobType.INGEST) -> None:
        """Abort a job"""
        self._set_state(job_id, job_type, JobState.ABORTED)
        logger.info("bulk_job_aborted", job_id=job_id)

    def _set_state(self, job_id: str, job_type: JobType, state: JobState) -> None:
        payload = {"state": state.value}
        response = self._send("PATCH", self._path(job_type, job_id), body=json.dumps(payload))
        raise_for_status(response, "set_job_state", (200,), job_id=job_id, state=state.value)

    def submit(
        self,
        object_name: str,
        operation: Operation,
        records: Sequence[Dict[str, Any]],
        external_id_field: Optional[str] = None
    ) -> BulkJob:
        """
        Create a job, upload one batch and close it.

        A failure after creation is raised with the job id attached; the job
        is left as is for the caller to inspect or abort.
        """
        # 1. Create job
        job = self.create_job(object_name, operation, external_id_field)

        try:
            # 2. Upload data
            self.upload_job_data(job, maps_to_csv(records))
            logger.info("bulk_data_uploaded", job_id=job.id, record_count=len(records))

            # 3. Close job to start processing
            self.close_job(job)
        except SalesforceError as e:
            if getattr(e, "job_id", None) is None:
                e.job_id = job.id
            logger.error("bulk_job_submission_failed", job_id=job.id, error=str(e))
            raise

        job.state = JobState.UPLOAD_COMPLETE
        return job

    # ==================== Job Polling ====================

    def get_job_results(self, job_id: str, job_type: JobType = JobType.INGEST) -> BulkJobResults:
        """Fetch the current status of a job"""
        response = self._send("GET", self._path(job_type, job_id))
        raise_for_status(response, "get_job_results", (200,), job_id=job_id)
        return BulkJobResults.from_dict(response.json())

    def get_failed_records(self, job_id: str) -> str:
        """Fetch the failed-records report of an ingest job as CSV text"""
        response = self._send(
            "GET", self._path(JobType.INGEST, job_id, "failedResults/"), accept=CSV_TYPE
        )
        raise_for_status(response, "get_failed_records", (200,), job_id=job_id)
        return response.text

    def is_job_done(self, results: BulkJobResults, job_type: JobType = JobType.INGEST) -> bool:
        """
        Classify a job status.

        Returns:
            True on JobComplete with no failed records, False while the job
            is still running

        Raises:
            JobFailedError: on Failed, Aborted, or any failed records
        """
        if results.state not in TERMINAL_STATES:
            return False

        if results.state == JobState.ABORTED:
            raise self._job_failure(results, "bulk job aborted", job_type)

        if results.state == JobState.FAILED:
            raise self._job_failure(results, results.error_message or "bulk job failed", job_type)

        if results.error_message or results.number_records_failed > 0:
            message = results.error_message or f"{results.number_records_failed} records failed"
            raise self._job_failure(results, message, job_type)

        return True

    def _job_failure(self, results: BulkJobResults, message: str, job_type: JobType) -> JobFailedError:
        """Build the failure, attaching the failed-records report when there is one"""
        report = None
        failed = results.number_records_failed

        if failed > 0 and job_type == JobType.INGEST:
            try:
                report = self.get_failed_records(results.id)
                message = report
            except SalesforceError as e:
                logger.warning("failed_records_unavailable", job_id=results.id, error=str(e))
                message = f"unable to retrieve details about {failed} failed records from bulk operation"

        logger.warning(
            "bulk_job_failed",
            job_id=results.id,
            state=results.state.value,
            records_failed=failed
        )
        return JobFailedError(
            message,
            job_id=results.id,
            state=results.state.value,
            number_records_failed=failed,
            error_message=results.error_message,
            failed_records=report
        )

    def wait_for_job(
        self,
        job_id: str,
        job_type: JobType = JobType.INGEST,
        interval: Optional[float] = None
    ) -> BulkJobResults:
        """
        Poll a job until it reaches a terminal state.

        There is no timeout: this blocks until Salesforce reports
        JobComplete, Failed or Aborted.

        Raises:
            JobFailedError: if the job failed or reported failed records
        """
        interval = self.poll_interval if interval is None else interval

        while True:
            time.sleep(interval)
            results = self.get_job_results(job_id, job_type)
            logger.debug("bulk_job_polled", job_id=job_id, state=results.state.value)
            if self.is_job_done(results, job_type):
                logger.info(
                    "bulk_job_complete",
                    job_id=job_id,
                    processed=results.number_records_processed
                )
                return results

    def wait_for_job_async(
        self,
        executor: Executor,
        job_id: str,
        job_type: JobType = JobType.INGEST,
        interval: Optional[float] = None
    ) -> Future:
        """Start a poll loop for one job; the future settles with its outcome"""
        return executor.submit(self.wait_for_job, job_id, job_type, interval)

    def wait_for_jobs(
        self,
        job_ids: Sequence[str],
        job_type: JobType = JobType.INGEST,
        interval: Optional[float] = None
    ) -> Dict[str, Future]:
        """
        Poll several jobs concurrently and wait for all of them.

        Returns:
            Settled futures keyed by job id, in submission order
        """
        if not job_ids:
            return {}

        workers = self.max_workers or len(job_ids)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                job_id: self.wait_for_job_async(executor, job_id, job_type, interval)
                for job_id in job_ids
            }
            wait(futures.values(), return_when=ALL_COMPLETED)

        return futures

    # ==================== Query Results ====================

    def get_query_page(self, job_id: str, locator: str = "") -> QueryPage:
        """Fetch one page of query results"""
        params = {"locator": locator} if locator else None
        response = self._send(
            "GET", self._path(JobType.QUERY, job_id, "results"), params=params, accept=CSV_TYPE
        )
        raise_for_status(response, "get_query_page", (200,), job_id=job_id, locator=locator)

        next_locator = response.headers.get("Sforce-Locator", "") or ""
        if next_locator == "null":
            next_locator = ""

        data = csv_to_rows(response.text)
        count = response.headers.get("Sforce-NumberOfRecords")
        number_of_records = int(count) if count else max(len(data) - 1, 0)

        return QueryPage(number_of_records=number_of_records, locator=next_locator, data=data)

    def collect_query_results(self, job_id: str) -> List[List[str]]:
        """
        Follow locators until the last page and join all rows.

        The result carries exactly one header row. Any page failure raises
        and nothing fetched so far is returned.
        """
        page = self.get_query_page(job_id)
        rows = list(page.data)
        pages = 1

        while page.locator:
            page = self.get_query_page(job_id, page.locator)
            rows.extend(page.data[1:])
            pages += 1

        logger.info("bulk_query_collected", job_id=job_id, pages=pages, rows=max(len(rows) - 1, 0))
        return rows

    # ==================== Orchestration ====================

    def _batch_maps(self, records: Sequence[Any], operation: Operation) -> List[Dict[str, Any]]:
        if operation.is_delete:
            return [{ID_FIELD: self.field_accessor(record, ID_FIELD)} for record in records]
        return to_maps(records)

    def execute(
        self,
        object_name: str,
        operation: Operation,
        records: Sequence[Any],
        batch_size: int,
        external_id_field: Optional[str] = None,
        wait_for_results: bool = False,
        interval: Optional[float] = None
    ) -> List[str]:
        """
        Run an ingest operation over any number of records.

        Args:
            object_name: Salesforce object name
            operation: insert, update, upsert, delete or hardDelete
            records: Validated records
            batch_size: Records per job
            external_id_field: External ID field (upsert only)
            wait_for_results: Poll every job to completion before returning
            interval: Poll interval in seconds

        Returns:
            Ids of the jobs that were submitted

        Raises:
            BatchFailureError: if any batch failed to submit or any job failed;
                its job_ids lists every submitted job. A job that was created
                but failed at upload or close appears only as the job_id of
                its error
        """
        job_ids: List[str] = []
        errors: List[Exception] = []

        for number, batch in enumerate(partition(records, batch_size)):
            try:
                job = self.submit(object_name, operation, self._batch_maps(batch, operation), external_id_field)
            except SalesforceError as e:
                logger.error("bulk_batch_failed", batch=number, sobject=object_name, error=str(e))
                errors.append(e)
                continue
            job_ids.append(job.id)

        if wait_for_results:
            for job_id, future in self.wait_for_jobs(job_ids, JobType.INGEST, interval).items():
                error = future.exception()
                if error is not None:
                    errors.append(error)

        logger.info(
            "bulk_operation_submitted",
            sobject=object_name,
            operation=operation.value,
            jobs=len(job_ids),
            errors=len(errors)
        )
        raise_for_batches(errors, job_ids)
        return job_ids

    def query(self, soql: str, interval: Optional[float] = None) -> List[List[str]]:
        """Run a query job and return its full result table"""
        job = self.create_query_job(soql)
        self.wait_for_job(job.id, JobType.QUERY, interval)
        return self.collect_query_results(job.id)
