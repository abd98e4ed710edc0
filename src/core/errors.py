"""
Error taxonomy for the ingestion pipeline.

Failures are isolated to the smallest unit possible:
item -> source -> content type -> run.
"""


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(PipelineError):
    """Malformed source definition, rejected at the registry boundary."""


class FetchError(PipelineError):
    """Network or upstream failure while fetching a single source."""


class ItemProcessingError(PipelineError):
    """A single upstream item could not be normalized."""


class PersistenceError(PipelineError):
    """A write to the store failed."""
