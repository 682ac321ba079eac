"""Exception taxonomy for the tabular and raster workflows.

Every error raised by this package derives from :class:`WorkflowError` and
also from the closest builtin, so callers can catch either. Only
:class:`EmptyResultError` is meant to be recovered from; the rest abort.
"""


class WorkflowError(Exception):
    """Base class for workflow failures."""


class DatasetConnectionError(WorkflowError, ConnectionError):
    """Remote dataset is unreachable or its locator scheme is unsupported."""


class SchemaError(WorkflowError, KeyError):
    """A requested column or field is absent from the source schema."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable.
        return str(self.args[0]) if self.args else ""


class UnsupportedOperationError(WorkflowError, ValueError):
    """A predicate verb or aggregation cannot be expressed against the source."""


class EmptyResultError(WorkflowError, LookupError):
    """A search matched zero items.

    Recoverable: callers should continue with empty data instead of aborting.
    """


class RequestError(WorkflowError, OSError):
    """Transport failure while talking to a catalog or signing service."""


class TransferError(WorkflowError, OSError):
    """Transport failure while fetching remote pixel blocks."""
