"""Batching, encoding, validation and failure aggregation"""
from .operations import Operation
from .partition import partition
from .validation import Shape, classify
from .aggregate import RecordOutcome, ErrorDetail

__all__ = ['Operation', 'partition', 'Shape', 'classify', 'RecordOutcome', 'ErrorDetail']
