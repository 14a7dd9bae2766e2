"""Error taxonomy shared by the gateways, the store and the lifecycle services.

Each error carries an ``error_type`` label. It is the short phrase shown to
platform users in the release status ("Scan failed - <error_type>"), so it
stays stable even when the message text changes.
"""

from __future__ import annotations

import json
from typing import Any


class ScanGateError(Exception):
    """Base class for every failure the service knows how to handle."""

    error_type = "Scan Service Error"


class DomainNotRegistered(ScanGateError):
    """The target host is not covered by any domain on the provider account."""

    error_type = "Scan Provider Service Error"

    def __init__(self, host: str, url: str | None = None) -> None:
        self.host = host
        self.url = url or host
        super().__init__(
            f"URL ({self.url}) base domain could not be found in the list of "
            "domains associated with the scan provider API key"
        )


class ProviderError(ScanGateError):
    """Transport or HTTP failure while talking to the scan provider."""

    error_type = "Scan Provider API Error"

    def __init__(
        self,
        operation: str,
        message: str,
        *,
        status_code: int | None = None,
        body: Any = None,
    ) -> None:
        self.operation = operation
        self.status_code = status_code
        self.body = body
        super().__init__(message)

    def describe(self) -> str:
        """Message with the upstream body appended when the provider sent one."""
        if self.body in (None, "", {}):
            return str(self)
        body = self.body if isinstance(self.body, str) else json.dumps(self.body)
        return f"{self}: {body}"

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


class ReportFetchError(ProviderError):
    """The provider would not hand over the full report of a finished scan."""


class ArchiveError(ScanGateError):
    """Reading from or writing to the report archive failed."""

    error_type = "Report Archive Error"


class PlatformReportError(ScanGateError):
    """The deployment platform could not be reached or rejected a call."""

    error_type = "Platform API Error"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class PersistenceError(ScanGateError):
    """A database statement failed."""

    error_type = "Database Error"
