"""
Exceptions raised by the spreadsheet import pipeline.

Row-level problems are not exceptions: the transformer returns RowError values
which are recorded on the batch. Everything below aborts a unit of work.
"""


class UploadError(Exception):
    """Base class for import pipeline failures."""


class ParseError(UploadError):
    """The source file could not be read or holds no data rows."""


class RowValidationError(UploadError):
    """No row of the file passed validation."""

    def __init__(self, message, row_errors=None):
        super().__init__(message)
        self.row_errors = row_errors or []


class PersistenceError(UploadError):
    """A row could not be written; the enclosing batch transaction is aborted."""


class UploadIntegrityError(UploadError):
    """Persisted counts disagree with the counts recorded on the session."""

    def __init__(self, message, report=None):
        super().__init__(message)
        self.report = report


class InfrastructureError(UploadError):
    """A transient store or queue failure; safe to retry the task."""


class StateError(UploadError):
    """An operation was attempted from a state that does not allow it."""


class BatchNotFoundError(UploadError):
    pass


class SessionNotFoundError(UploadError):
    pass


class ProjectNotFoundError(UploadError):
    pass


class SessionAccessError(UploadError):
    """The requester neither created the upload session nor is staff."""
