from typing import Any, Optional


class CampAdminError(Exception):
    """Base class for errors surfaced to admins and signers."""

    def __init__(self, message: str, detail: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def __str__(self) -> str:
        return self.message


class ConsentValidationError(CampAdminError):
    """A completeness rule failed before any remote call was attempted."""


class ParticipantLookupError(CampAdminError, LookupError):
    """A participant or guardian record is missing from the directory."""


class RemoteCallError(CampAdminError):
    """The remote backend answered with a non-success status or was unreachable."""

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Optional[str] = None):
        super().__init__(message, detail=detail)
        self.status_code = status_code


class RasterizationError(CampAdminError):
    """The signature surface could not produce image bytes."""


class CameraUnavailableError(CampAdminError):
    """No camera could be opened for scanning."""
