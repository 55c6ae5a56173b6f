"""
Salesforce Error Taxonomy

Every public operation either returns a value or raises one of these:
- ValidationError: local precondition failed, nothing was sent
- TransportError: the request was never answered
- RemoteError: the API answered with a failure
- JobFailedError: a bulk job ended in a failure state
"""

from typing import Any, List, Optional


class SalesforceError(Exception):
    """Base class for all sfbatch errors"""
    pass


class ValidationError(SalesforceError):
    """Raised before any network call when a precondition fails"""
    pass


class FieldNotFoundError(ValidationError, LookupError):
    """Raised when a record does not carry the requested field"""

    def __init__(self, field_name: str):
        super().__init__(f"field not found: {field_name}")
        self.field_name = field_name


class AuthenticationError(SalesforceError):
    """Raised when authentication fails"""
    pass


class TransportError(SalesforceError):
    """Raised when a request could not be delivered or answered"""
    pass


class RemoteError(SalesforceError):
    """Salesforce answered with a non-2xx status or a failure flag"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        fields: Optional[List[str]] = None,
        record_id: Optional[str] = None,
        job_id: Optional[str] = None,
        error_data: Any = None
    ):
        text = f"{status_code}: {message}" if status_code is not None else message
        super().__init__(text)
        self.message = message
        self.status_code = status_code
        self.fields = fields or []
        self.record_id = record_id
        self.job_id = job_id
        self.error_data = error_data


class RecordFailuresError(RemoteError):
    """
    One or more records of a collection/composite call failed.

    Successful records are not listed; use succeeded_count to learn
    how many went through.
    """

    def __init__(self, failures: list, total: int):
        lines = [failure.describe() for failure in failures]
        super().__init__(
            f"{len(failures)} of {total} records failed: " + "; ".join(lines)
        )
        self.failures = failures
        self.total = total

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    @property
    def succeeded_count(self) -> int:
        return self.total - len(self.failures)

    @property
    def failed_ids(self) -> List[str]:
        return [failure.identifier for failure in self.failures]


class JobFailedError(SalesforceError):
    """A bulk job reached Failed/Aborted or reported failed records"""

    def __init__(
        self,
        message: str,
        job_id: str,
        state: Optional[str] = None,
        number_records_failed: int = 0,
        error_message: str = "",
        failed_records: Optional[str] = None
    ):
        super().__init__(message)
        self.job_id = job_id
        self.state = state
        self.number_records_failed = number_records_failed
        self.error_message = error_message
        self.failed_records = failed_records


class BatchFailureError(SalesforceError):
    """
    At least one batch of a multi-batch operation failed.

    job_ids lists every job that was submitted (created, uploaded and
    closed), so callers can tell which batches went through and which ones
    to retry. A job created but not submitted is only named by the job_id
    of its error in errors.
    """

    def __init__(self, errors: List[Exception], job_ids: Optional[List[str]] = None):
        summary = "; ".join(str(e) for e in errors)
        super().__init__(f"{len(errors)} batch error(s): {summary}")
        self.errors = errors
        self.job_ids = job_ids or []
