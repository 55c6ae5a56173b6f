"""
sfbatch

Salesforce data API client: single-record CRUD, sObject Collections,
composite requests and Bulk API 2.0 jobs, with batching, job polling and
failure aggregation.
"""

__version__ = "1.0.0"

from .salesforce import Salesforce
from .auth import Credential, Creds, authenticate
from .api import SalesforceClient, BulkClient
from .core import Operation, RecordOutcome
from .errors import (
    SalesforceError,
    ValidationError,
    FieldNotFoundError,
    AuthenticationError,
    TransportError,
    RemoteError,
    RecordFailuresError,
    JobFailedError,
    BatchFailureError,
)

__all__ = [
    'Salesforce',
    'Credential',
    'Creds',
    'authenticate',
    'SalesforceClient',
    'BulkClient',
    'Operation',
    'RecordOutcome',
    'SalesforceError',
    'ValidationError',
    'FieldNotFoundError',
    'AuthenticationError',
    'TransportError',
    'RemoteError',
    'RecordFailuresError',
    'JobFailedError',
    'BatchFailureError',
]
