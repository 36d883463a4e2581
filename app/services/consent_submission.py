"""
Consent Submission

Validates a signing session, sends the rasterized signature to the matching
document function, flags the participant as signed and drives the session
through idle -> validating -> submitting -> success | error.
"""

import asyncio
import logging
from typing import Callable, Optional

from app.core.config import settings
from app.core.exceptions import CampAdminError, ConsentValidationError, ParticipantLookupError
from app.schemas.participant import Participant, PersonUpdate
from app.schemas.signature import (
    DelegateGuardian,
    ParentGuardian,
    SessionKind,
    SigningSession,
    SigningStatus,
)
from app.services.confirmation_store import ConfirmationStore, confirmation_url
from app.services.document_generation import DocumentGenerationService
from app.services.people_directory import PeopleDirectory, resolve_by_national_id
from app.services.signature_surface import SignatureSurface

logger = logging.getLogger(__name__)

MISSING_SIGNATURE = "Por favor firme el documento antes de continuar."
TERMS_NOT_ACCEPTED = "Debes aceptar los términos y condiciones para continuar."
GUARDIAN_MODE_REQUIRED = "Por favor selecciona una de las opciones de autorización para menores."
PARENT_FIELDS_REQUIRED = "Por favor ingresa tu nombre y C.C. como padre/madre/tutor(a)."
PARENT_VALIDATION_PENDING = "Por favor espera mientras validamos tu información."
DELEGATE_ID_REQUIRED = "Por favor ingresa la C.C. del responsable seleccionado."
MANAGER_NOT_LOADED = "Por favor espera mientras se carga la información del responsable."
PARENT_NOT_FOUND = "No se encontró el padre/madre/tutor en la base de datos"
DELEGATE_NOT_FOUND = "No se encontró el responsable seleccionado en la base de datos"
UNEXPECTED_ERROR = "Ocurrió un error al enviar la firma."

SessionListener = Callable[[SigningSession], None]


def validate_submission(session: SigningSession) -> None:
    """Raise ConsentValidationError for the first completeness rule that fails."""
    if not session.signature.has_drawn:
        raise ConsentValidationError(MISSING_SIGNATURE)
    if not session.accept_terms:
        raise ConsentValidationError(TERMS_NOT_ACCEPTED)

    if session.kind == SessionKind.DELEGATE:
        guardian = session.guardian
        if (
            session.manager_loading
            or session.manager is None
            or not isinstance(guardian, DelegateGuardian)
            or not guardian.national_id
            or not guardian.resolution.display_name
        ):
            raise ConsentValidationError(MANAGER_NOT_LOADED)
        return

    if not session.is_minor:
        return

    guardian = session.guardian
    if guardian is None:
        raise ConsentValidationError(GUARDIAN_MODE_REQUIRED)

    if isinstance(guardian, ParentGuardian):
        if not guardian.name.strip() or not guardian.national_id.strip():
            raise ConsentValidationError(PARENT_FIELDS_REQUIRED)
        if guardian.resolution.message:
            raise ConsentValidationError(guardian.resolution.message)
        if guardian.resolution.in_progress:
            raise ConsentValidationError(PARENT_VALIDATION_PENDING)
    elif isinstance(guardian, DelegateGuardian):
        if not guardian.national_id.strip():
            raise ConsentValidationError(DELEGATE_ID_REQUIRED)
    else:
        raise TypeError(f"Unknown guardian selection {guardian!r}")


class ConsentSubmitter:
    def __init__(
        self,
        directory: PeopleDirectory,
        documents: DocumentGenerationService,
        confirmations: ConfirmationStore,
        redirect_delay: Optional[float] = None,
        mark_signed_on_delegate: Optional[bool] = None,
        on_change: Optional[SessionListener] = None,
    ):
        self.directory = directory
        self.documents = documents
        self.confirmations = confirmations
        self.redirect_delay = (
            redirect_delay if redirect_delay is not None else settings.SIGNING_REDIRECT_DELAY_MS / 1000
        )
        self.mark_signed_on_delegate = (
            mark_signed_on_delegate
            if mark_signed_on_delegate is not None
            else settings.MARK_SIGNED_ON_DELEGATE_CONSENT
        )
        self.on_change = on_change
        self._redirect_handle: Optional[asyncio.TimerHandle] = None

    def _notify(self, session: SigningSession) -> None:
        if self.on_change is not None:
            self.on_change(session)

    async def submit(self, session: SigningSession, surface: SignatureSurface) -> SigningSession:
        if session.status not in (SigningStatus.IDLE, SigningStatus.ERROR):
            # Already submitting or done: double clicks are ignored
            return session

        session.status = SigningStatus.VALIDATING
        try:
            validate_submission(session)
        except ConsentValidationError as e:
            session.status = SigningStatus.IDLE
            session.error = e.message
            self._notify(session)
            return session

        session.status = SigningStatus.SUBMITTING
        session.error = None
        session.confirmation_url = None
        self._notify(session)

        try:
            document = await self._generate_document(session, surface)
        except CampAdminError as e:
            logger.error(f"Consent submission for {session.participant.id} failed: {e}")
            session.status = SigningStatus.ERROR
            session.error = e.message
            self._notify(session)
            return session
        except Exception:
            logger.exception(f"Unexpected error submitting consent for {session.participant.id}")
            session.status = SigningStatus.ERROR
            session.error = UNEXPECTED_ERROR
            self._notify(session)
            return session

        self._succeed(session, document)
        return session

    async def _generate_document(self, session: SigningSession, surface: SignatureSurface) -> Optional[bytes]:
        participant = session.participant

        if session.kind == SessionKind.DELEGATE:
            return await self._submit_delegate_countersignature(session, surface)

        if not session.is_minor:
            signature = surface.rasterize()
            document = await self.documents.create_adult_consent(participant.id, signature)
            await self._mark_signed(session)
            return document

        guardian = session.guardian
        if isinstance(guardian, ParentGuardian):
            signature = surface.rasterize()
            parent = await self._require(guardian.national_id, PARENT_NOT_FOUND)
            document = await self.documents.create_minor_consent(participant.id, parent.id, signature)
            await self._mark_signed(session)
            return document

        if isinstance(guardian, DelegateGuardian):
            signature = surface.rasterize()
            delegate = await self._require(guardian.national_id, DELEGATE_NOT_FOUND)
            document = await self.documents.create_delegate_consent(
                participant.id,
                delegate.id,
                delegate.full_name,
                delegate.national_id or guardian.national_id.strip(),
                signature,
            )
            if self.mark_signed_on_delegate:
                await self._mark_signed(session)
            else:
                logger.warning(
                    f"Delegate consent for minor {participant.id} generated; has_signed left unchanged"
                )
            return document

        raise TypeError(f"Unknown guardian selection {guardian!r}")

    async def _submit_delegate_countersignature(
        self, session: SigningSession, surface: SignatureSurface
    ) -> Optional[bytes]:
        minor = session.participant
        signature = surface.rasterize()
        # Only the manager assigned to the minor may counter-sign
        manager = session.manager
        document = await self.documents.create_delegate_consent(
            minor.id,
            manager.id,
            minor.tutor_name or "",
            minor.tutor_national_id or "",
            signature,
        )
        await self._mark_signed(session)
        return document

    async def _require(self, national_id: str, missing_message: str) -> Participant:
        person = await resolve_by_national_id(self.directory, national_id)
        if person is None:
            raise ParticipantLookupError(missing_message)
        return person

    async def _mark_signed(self, session: SigningSession) -> None:
        participant = session.participant
        try:
            await self.directory.update_person(PersonUpdate.from_participant(participant, p_has_signed=True))
        except CampAdminError as e:
            # Logged only, the document already exists
            logger.error(f"Failed to update has_signed for {participant.id}: {e}")
            return
        participant.has_signed = True

    def _succeed(self, session: SigningSession, document: Optional[bytes]) -> None:
        if document:
            token = self.confirmations.save(document, session.participant.national_id)
            session.confirmation_url = confirmation_url(token)
        session.status = SigningStatus.SUCCESS
        session.redirect_url = session.confirmation_url or "/success"
        session.redirect_after_ms = int(self.redirect_delay * 1000)
        self._notify(session)

        loop = asyncio.get_running_loop()
        self._redirect_handle = loop.call_later(self.redirect_delay, self._terminate, session)

    def _terminate(self, session: SigningSession) -> None:
        self._redirect_handle = None
        session.status = SigningStatus.TERMINATED
        self._notify(session)

    def cancel_redirect(self) -> None:
        if self._redirect_handle is not None:
            self._redirect_handle.cancel()
            self._redirect_handle = None


def retry(session: SigningSession) -> SigningSession:
    """Return a failed session to idle, keeping strokes and form values."""
    if session.status == SigningStatus.ERROR:
        session.status = SigningStatus.IDLE
        session.error = None
    return session
