"""Engine error taxonomy.

Query-time errors (ValidationError, NoRouteError, SearchTimeoutError) are
expected outcomes and are surfaced to callers. GraphError and ConfigError
are fatal when raised during startup.
"""

from typing import Optional


class EngineError(Exception):
    """Base class for all safety engine errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(EngineError, ValueError):
    """An incident record was malformed and has been rejected."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        index: Optional[int] = None,
    ):
        super().__init__(message)
        self.field = field
        self.index = index

    def to_dict(self) -> dict:
        result = {"message": self.message}
        if self.field is not None:
            result["field"] = self.field
        if self.index is not None:
            result["index"] = self.index
        return result


class GraphError(EngineError):
    """Road graph data is inconsistent and cannot be loaded."""
    pass


class NoRouteError(EngineError):
    """No path exists between the snapped origin and destination."""
    pass


class ConfigError(EngineError):
    """Engine configuration is invalid."""
    pass


class SearchTimeoutError(EngineError, TimeoutError):
    """Route search exceeded its deadline or was cancelled. Safe to retry."""

    def __init__(self, message: str, expansions: int = 0):
        super().__init__(message)
        self.expansions = expansions
