from __future__ import annotations
from typing import Optional


class ExplorerError(Exception):
    """Base class for every error raised inside apiexplorer."""


class QueryValidationError(ExplorerError):
    """Request shape is invalid. Raised before any network call."""


class NetworkError(ExplorerError):
    """The fetch collaborator could not reach the remote host."""


class HttpError(ExplorerError):
    """
    Non-2xx response from the remote API.

    `detail` is the best-effort message extracted from the response body
    (the JSON `message` field when present, otherwise the raw text).
    """

    def __init__(self, status: int, reason: str, detail: Optional[str] = None) -> None:
        self.status = status
        self.reason = reason
        self.detail = detail
        super().__init__(f"{status} {reason}")


class NameSuggestionError(ExplorerError):
    """Name-suggestion collaborator failed or replied with a malformed payload."""


class ExportError(ExplorerError):
    """Unsupported export format or serialization failure."""


class ExportNotImplementedError(ExportError):
    """The requested export format is known but has no implementation."""


class ConnectionNotFoundError(ExplorerError, KeyError):
    def __init__(self, connection_id: str) -> None:
        self.connection_id = connection_id
        super().__init__(f"Connection not found: {connection_id}")

    def __str__(self) -> str:
        return f"Connection not found: {self.connection_id}"


class ReportUnavailableError(ExplorerError):
    """The connection does not support the requested report."""


class ReportFetchError(ExplorerError):
    """Fetching the report source data failed."""
