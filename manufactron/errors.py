"""
Error Taxonomy

Structured error records for source, rebuild and query failures.
Adapter and rebuild failures are recorded and logged rather than raised;
query failures travel back to callers as explicit result states.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ErrorKind(str, Enum):
    """Kinds of failure the aggregator can record."""
    SOURCE_UNREACHABLE = "SourceUnreachable"
    PARTIAL_SOURCE_DATA = "PartialSourceData"
    ELEMENT_NOT_FOUND = "ElementNotFound"
    REBUILD_FAILED = "RebuildFailed"
    INVALID_QUERY = "InvalidQuery"


class QueryStatus(str, Enum):
    """Outcome of a query against the current snapshot."""
    OK = "ok"
    NOT_FOUND = "not_found"
    INVALID = "invalid"
    UNAVAILABLE = "unavailable"


class SourceError(BaseModel):
    """A single recorded failure."""
    kind: ErrorKind
    source: Optional[str] = None
    message: str
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())

    def __str__(self) -> str:
        origin = f"[{self.source}] " if self.source else ""
        return f"{self.kind.value}: {origin}{self.message}"


class ConfigurationError(RuntimeError):
    """Raised at startup when environment configuration is invalid."""


def source_unreachable(source: str, message: str) -> SourceError:
    return SourceError(kind=ErrorKind.SOURCE_UNREACHABLE, source=source, message=message)


def partial_source_data(source: str, message: str) -> SourceError:
    return SourceError(kind=ErrorKind.PARTIAL_SOURCE_DATA, source=source, message=message)


def element_not_found(element_id: str) -> SourceError:
    return SourceError(
        kind=ErrorKind.ELEMENT_NOT_FOUND,
        message=f"Element '{element_id}' not found in current graph snapshot"
    )


def invalid_query(message: str) -> SourceError:
    return SourceError(kind=ErrorKind.INVALID_QUERY, message=message)
