# /aurelia/errors.py

from typing import Optional


class GraphError(Exception):
    """Base class for errors surfaced by the knowledge graph service."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidArgument(GraphError, ValueError):
    """Malformed or out-of-vocabulary input."""
    status_code = 400


class Unauthenticated(GraphError):
    status_code = 401


class NotFound(GraphError):
    """A referenced entity or relationship does not exist."""
    status_code = 404


class Conflict(GraphError):
    """A manual create or rename collides with an existing row."""
    status_code = 409


class UpstreamUnavailable(GraphError):
    """
    The LLM gateway could not be reached, answered with an error, or timed out.
    Rate limits and exhausted credits keep their upstream status.
    """

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = upstream_status

    @property
    def status_code(self) -> int:
        if self.upstream_status in (402, 429):
            return self.upstream_status
        return 500
