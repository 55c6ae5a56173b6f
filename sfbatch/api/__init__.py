"""Salesforce API clients"""
from .client import SalesforceClient
from .bulk import BulkClient, BulkJob, BulkJobResults, JobState, JobType
from .transport import Transport

__all__ = ['SalesforceClient', 'BulkClient', 'BulkJob', 'BulkJobResults', 'JobState', 'JobType', 'Transport']
