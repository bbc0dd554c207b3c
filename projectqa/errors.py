"""
errors.py
Exception hierarchy for the retrieval core.

Query attempt errors (parse, forbidden, not allowed, not found, execution) are
terminal for a single attempt only. Oracle errors are absorbed by the call
site's fallback value. Only RetrievalUnavailableError and
QuestionCancelledError are meant to reach the caller of the whole core.
"""


class ProjectQAError(Exception):
    """Base class for all errors raised by the retrieval core."""


class QueryParseError(ProjectQAError):
    """The query does not fit the supported SELECT grammar."""


class ForbiddenOperationError(ProjectQAError):
    """Non-SELECT statement or a mutating keyword."""


class TableNotAllowedError(ProjectQAError):
    """Referenced table is not whitelisted for the query."""


class TableNotFoundError(ProjectQAError):
    pass


class ExecutionFailedError(ProjectQAError):
    """Unexpected runtime error while evaluating a query or a retrieval step."""


class OracleUnavailableError(ProjectQAError):
    """Planning/SQL generation/review/synthesis call failed or timed out."""


class MalformedOracleResponseError(ProjectQAError):
    """The oracle answered, but not with a usable structured object."""


class SourceUnavailableError(ProjectQAError):
    """A retrieval backend (tabular repository, embedding service, vector index) could not be reached."""


class RetrievalUnavailableError(ProjectQAError):
    """Neither retrieval path could be reached for a question."""


class QuestionCancelledError(ProjectQAError):
    """The caller abandoned the question mid-loop."""
