"""Domain errors raised by the ingestion, retrieval and AI provider layers.

Each error carries an ``error_code`` and the HTTP status the API answers with,
so the handlers in ``app.main`` stay generic.
"""
from typing import Optional


class FleetDeskError(Exception):
    status_code = 500
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str, error_code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code


class ProviderConfigError(FleetDeskError):
    """Missing or unusable AI settings for the tenant."""

    status_code = 400
    error_code = "PROVIDER_NOT_CONFIGURED"


class ProviderError(FleetDeskError):
    """The upstream AI provider answered with an error or could not be reached."""

    status_code = 502
    error_code = "PROVIDER_ERROR"

    def __init__(self, message: str, upstream_status: Optional[int] = None) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status


class ProviderResponseParseError(FleetDeskError):
    """A completion requested as JSON could not be parsed."""

    status_code = 502
    error_code = "PROVIDER_INVALID_JSON"

    def __init__(self, message: str, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text


class EmptyCompletionError(FleetDeskError):
    status_code = 502
    error_code = "PROVIDER_EMPTY_RESPONSE"


class ManualReadError(FleetDeskError):
    status_code = 422
    error_code = "PDF_UNREADABLE"


class ManualBusyError(FleetDeskError):
    status_code = 409
    error_code = "MANUAL_PROCESSING"

    def __init__(self, manual_id: int) -> None:
        super().__init__(f"Manual {manual_id} is already being processed")
        self.manual_id = manual_id


class StorageError(FleetDeskError):
    status_code = 500
    error_code = "STORAGE_ERROR"

    def __init__(self, detail: str) -> None:
        super().__init__(f"Storage operation failed: {detail}")
