# File: app/api/deps.py
from fastapi import HTTPException, status
from app.core.email_service import EmailService, email_service
from app.core.exceptions import (
    CameraUnavailableError,
    CampAdminError,
    ConsentValidationError,
    ParticipantLookupError,
    RasterizationError,
    RemoteCallError,
)
from app.services.confirmation_store import ConfirmationStore
from app.services.document_generation import DocumentGenerationService
from app.services.people_directory import PeopleDirectory
from app.services.signing_sessions import SigningSessionRegistry

# Process-wide collaborators; tests swap them through app.dependency_overrides
people_directory = PeopleDirectory()
document_service = DocumentGenerationService()
confirmation_store = ConfirmationStore()
signing_registry = SigningSessionRegistry(people_directory, document_service, confirmation_store)


def get_people_directory() -> PeopleDirectory:
    return people_directory


def get_document_service() -> DocumentGenerationService:
    return document_service


def get_confirmation_store() -> ConfirmationStore:
    return confirmation_store


def get_signing_registry() -> SigningSessionRegistry:
    return signing_registry


def get_email_service() -> EmailService:
    return email_service


def http_error(error: CampAdminError) -> HTTPException:
    """Translate a workflow error into the matching HTTP response."""
    if isinstance(error, ParticipantLookupError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error.message)
    if isinstance(error, ConsentValidationError):
        if isinstance(error.detail, dict):
            return HTTPException(
                status_code=422,
                detail={"message": error.message, "errors": error.detail},
            )
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.message)
    if isinstance(error, RasterizationError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=error.message)
    if isinstance(error, RemoteCallError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error.message)
    if isinstance(error, CameraUnavailableError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=error.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=error.message)
