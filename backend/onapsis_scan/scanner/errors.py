from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import ScanResponse


class ErrorCategory(str, Enum):
    """Where a failure originated, used when reporting the step outcome."""
    configuration = "configuration"
    infrastructure = "infrastructure"
    service = "service"


class ScanStepError(Exception):
    default_code = "STEP_FAILED"
    category = ErrorCategory.infrastructure

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code or self.default_code


class ConfigurationError(ScanStepError):
    default_code = "INVALID_CONFIG"
    category = ErrorCategory.configuration


class ArchiveError(ScanStepError):
    """Raised when the workspace archive cannot be built."""
    default_code = "ARCHIVE_FAILED"

    def __init__(self, message: str, path: Optional[Path | str] = None) -> None:
        if path is not None:
            message = f"{message}: {path}"
        super().__init__(message)
        self.path = path


class WorkspaceResolutionError(ScanStepError):
    default_code = "WORKSPACE_UNRESOLVED"


class ArchiveConstructionError(ScanStepError):
    default_code = "ARCHIVE_FAILED"


class ArchiveUnreadableError(ScanStepError):
    default_code = "ARCHIVE_UNREADABLE"

    def __init__(self, message: str, path: Path | str) -> None:
        super().__init__(message)
        self.path = path


class CommandError(ScanStepError):
    default_code = "COMMAND_FAILED"

    def __init__(self, message: str, returncode: int) -> None:
        super().__init__(message)
        self.returncode = returncode


class ScanTransportError(ScanStepError):
    """Raised when the HTTP exchange with the scan service fails."""
    default_code = "TRANSPORT_FAILED"


class ScanRequestError(ScanTransportError):
    """Raised when the scan service answers with a non-2xx status."""
    default_code = "REQUEST_FAILED"
    category = ErrorCategory.service

    def __init__(self, message: str, status_code: int, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class ScanResponseParseError(ScanStepError):
    default_code = "INVALID_RESPONSE"
    category = ErrorCategory.service


class ScanRejectedError(ScanStepError):
    """Raised when the service returns a well-formed response with success=false.

    The parsed response stays available on ``response`` so callers can inspect
    the result code and the full message list.
    """
    default_code = "SCAN_REJECTED"
    category = ErrorCategory.service

    def __init__(self, response: "ScanResponse") -> None:
        result = response.result
        messages = ", ".join(message.describe() for message in result.messages)
        super().__init__(
            f"Request failed with result_code: {result.result_code}, messages: [{messages}]"
        )
        self.response = response

    @property
    def result_code(self) -> Optional[int]:
        return self.response.result.result_code
