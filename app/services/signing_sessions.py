"""
Signing Sessions

A workspace bundles one signing session with the objects that act on it: the
signature surface, one debounced resolver per guardian mode and the submitter.
The registry keeps the live workspaces of this worker process.
"""

import logging
import time
import uuid
from typing import Callable, Dict, List, Optional

from app.core.config import settings
from app.core.exceptions import CampAdminError, ConsentValidationError, ParticipantLookupError
from app.schemas.participant import Participant
from app.schemas.signature import (
    DelegateGuardian,
    GuardianMode,
    GuardianResolution,
    ParentGuardian,
    PointerEvent,
    ResolutionStatus,
    SessionKind,
    SigningSession,
    SigningStatus,
)
from app.services.confirmation_store import ConfirmationStore
from app.services.consent_submission import (
    DELEGATE_NOT_FOUND,
    GUARDIAN_MODE_REQUIRED,
    ConsentSubmitter,
    retry,
)
from app.services.document_generation import DocumentGenerationService
from app.services.guardian_resolution import PARENT_NOT_REGISTERED, DebouncedResolver
from app.services.people_directory import PeopleDirectory
from app.services.signature_surface import SignatureSurface

logger = logging.getLogger(__name__)

MANAGER_LOAD_FAILED = "No se pudo cargar la información del responsable."

SessionListener = Callable[[SigningSession], None]

# No edits while a submission is running or after it succeeded
_FROZEN = (SigningStatus.SUBMITTING, SigningStatus.SUCCESS, SigningStatus.TERMINATED)


class SigningWorkspace:
    def __init__(
        self,
        session: SigningSession,
        directory: PeopleDirectory,
        documents: DocumentGenerationService,
        confirmations: ConfirmationStore,
        debounce: Optional[float] = None,
        redirect_delay: Optional[float] = None,
        mark_signed_on_delegate: Optional[bool] = None,
        on_terminated: Optional[Callable[[str], None]] = None,
    ):
        self.session = session
        self.directory = directory
        self.surface = SignatureSurface(session.signature)
        self.last_activity = time.monotonic()
        self._on_terminated = on_terminated
        self._listeners: List[SessionListener] = []
        self.submitter = ConsentSubmitter(
            directory,
            documents,
            confirmations,
            redirect_delay=redirect_delay,
            mark_signed_on_delegate=mark_signed_on_delegate,
            on_change=self._notify,
        )
        self.resolvers: Dict[str, DebouncedResolver] = {
            "parent": DebouncedResolver(
                directory,
                self._on_resolution("parent"),
                quiet_period=debounce,
                not_found_message=PARENT_NOT_REGISTERED,
            ),
            "delegate": DebouncedResolver(
                directory,
                self._on_resolution("delegate"),
                quiet_period=debounce,
                not_found_message=DELEGATE_NOT_FOUND,
            ),
        }

    @property
    def id(self) -> str:
        return self.session.id

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def has_subscribers(self) -> bool:
        return bool(self._listeners)

    def touch(self) -> None:
        self.last_activity = time.monotonic()

    def _notify(self, session: Optional[SigningSession] = None) -> None:
        self.touch()
        for listener in list(self._listeners):
            try:
                listener(self.session)
            except Exception:
                logger.exception(f"Session listener failed for {self.id}")

        if self.session.status == SigningStatus.TERMINATED and self._on_terminated is not None:
            on_terminated, self._on_terminated = self._on_terminated, None
            on_terminated(self.id)

    def _editable(self) -> bool:
        return self.session.status not in _FROZEN

    # ---------------------------
    # Signature surface
    # ---------------------------

    def resize(self, width: float) -> None:
        self.surface.resize(width)
        self._notify()

    def add_stroke(self, points) -> None:
        if not self._editable():
            return
        self.surface.draw_stroke(points)
        self._notify()

    def pointer(self, event: PointerEvent) -> bool:
        if not self._editable():
            return False
        prevented = self.surface.handle_pointer(event)
        if event.kind in ("down", "up", "leave"):
            self._notify()
        return prevented

    def clear(self) -> None:
        if not self._editable():
            return
        self.surface.clear()
        self._notify()

    def signature_png(self) -> bytes:
        return self.surface.rasterize()

    # ---------------------------
    # Form
    # ---------------------------

    def set_terms(self, accepted: bool) -> None:
        if not self._editable():
            return
        self.session.accept_terms = accepted
        self._notify()

    def select_guardian_mode(self, mode: Optional[GuardianMode]) -> None:
        """Activate one guardian mode, parking the other mode's input as a draft."""
        session = self.session
        if session.kind != SessionKind.PARTICIPANT or not session.is_minor or not self._editable():
            return

        current = session.guardian
        if current is not None and current.mode == mode:
            return

        if current is not None:
            self.resolvers[current.mode].cancel()
            session.guardian_drafts[current.mode] = current

        if mode is None:
            session.guardian = None
            self._notify()
            return

        restored = session.guardian_drafts.pop(mode, None)
        if restored is None:
            restored = ParentGuardian() if mode == "parent" else DelegateGuardian()
        session.guardian = restored
        self._notify()

        # A lookup abandoned by the earlier switch is started again
        if restored.national_id.strip() and restored.resolution.status in (
            ResolutionStatus.PENDING,
            ResolutionStatus.SEARCHING,
        ):
            self.resolvers[mode].update(restored.national_id)

    def set_guardian_fields(self, name: Optional[str] = None, national_id: Optional[str] = None) -> None:
        session = self.session
        if session.kind == SessionKind.DELEGATE or not self._editable():
            # The counter-signing delegate comes from the minor's record
            return
        guardian = session.guardian
        if guardian is None:
            raise ConsentValidationError(GUARDIAN_MODE_REQUIRED)

        if name is not None and isinstance(guardian, ParentGuardian):
            guardian.name = name
        if national_id is not None and national_id != guardian.national_id:
            guardian.national_id = national_id
            self.resolvers[guardian.mode].update(national_id)
        self._notify()

    def _on_resolution(self, mode: str) -> Callable[[GuardianResolution], None]:
        def apply(resolution: GuardianResolution) -> None:
            guardian = self.session.guardian
            if guardian is None or guardian.mode != mode:
                return
            guardian.resolution = resolution
            self._notify()

        return apply

    async def wait_for_resolution(self) -> None:
        for resolver in self.resolvers.values():
            await resolver.wait_idle()

    # ---------------------------
    # Delegate counter-signature
    # ---------------------------

    async def load_manager(self) -> None:
        session = self.session
        manager_id = session.participant.manager_id
        session.manager_loading = True
        self._notify()
        try:
            if not manager_id:
                raise ParticipantLookupError(MANAGER_LOAD_FAILED)
            manager = await self.directory.get_person(manager_id)
        except CampAdminError as e:
            logger.error(f"Could not load manager {manager_id} for minor {session.participant.id}: {e}")
            session.error = MANAGER_LOAD_FAILED
            session.manager = None
        else:
            session.manager = manager
            session.guardian = DelegateGuardian(
                national_id=manager.national_id or "",
                resolution=GuardianResolution(
                    status=ResolutionStatus.RESOLVED,
                    national_id=manager.national_id or "",
                    person_id=manager.id,
                    display_name=manager.full_name,
                ),
            )
        finally:
            session.manager_loading = False
        self._notify()

    # ---------------------------
    # Submission
    # ---------------------------

    async def submit(self) -> SigningSession:
        return await self.submitter.submit(self.session, self.surface)

    def retry(self) -> SigningSession:
        retry(self.session)
        self._notify()
        return self.session

    def close(self) -> None:
        for resolver in self.resolvers.values():
            resolver.cancel()
        self.submitter.cancel_redirect()
        self.surface.unmount()
        self._listeners.clear()


class SigningSessionRegistry:
    def __init__(
        self,
        directory: PeopleDirectory,
        documents: DocumentGenerationService,
        confirmations: ConfirmationStore,
        debounce: Optional[float] = None,
        redirect_delay: Optional[float] = None,
        mark_signed_on_delegate: Optional[bool] = None,
        idle_timeout: Optional[float] = None,
    ):
        self.directory = directory
        self.documents = documents
        self.confirmations = confirmations
        self.debounce = debounce
        self.redirect_delay = redirect_delay
        self.mark_signed_on_delegate = mark_signed_on_delegate
        self.idle_timeout = (
            idle_timeout if idle_timeout is not None else settings.SIGNING_SESSION_IDLE_MINUTES * 60
        )
        self._workspaces: Dict[str, SigningWorkspace] = {}

    def __len__(self) -> int:
        return len(self._workspaces)

    def _open(self, participant: Participant, kind: SessionKind, width: Optional[float]) -> SigningWorkspace:
        self.purge_idle()
        session = SigningSession(id=uuid.uuid4().hex, kind=kind, participant=participant)
        if kind == SessionKind.PARTICIPANT and participant.is_minor:
            session.guardian = ParentGuardian()
        workspace = SigningWorkspace(
            session,
            self.directory,
            self.documents,
            self.confirmations,
            debounce=self.debounce,
            redirect_delay=self.redirect_delay,
            mark_signed_on_delegate=self.mark_signed_on_delegate,
            on_terminated=self.remove,
        )
        if width:
            workspace.surface.mount(width)
        self._workspaces[session.id] = workspace
        logger.info(f"Opened {kind.value} signing session {session.id} for participant {participant.id}")
        return workspace

    async def create(self, participant_id: str, width: Optional[float] = None) -> SigningWorkspace:
        participant = await self.directory.get_person(participant_id)
        return self._open(participant, SessionKind.PARTICIPANT, width)

    async def create_delegate(self, minor_id: str, width: Optional[float] = None) -> SigningWorkspace:
        minor = await self.directory.get_person(minor_id)
        workspace = self._open(minor, SessionKind.DELEGATE, width)
        await workspace.load_manager()
        return workspace

    def get(self, session_id: str) -> SigningWorkspace:
        workspace = self._workspaces.get(session_id)
        if workspace is None:
            raise ParticipantLookupError(f"Signing session {session_id} not found")
        workspace.touch()
        return workspace

    def purge_idle(self, now: Optional[float] = None) -> int:
        """Evict sessions nobody is watching that have been idle past the timeout."""
        now = now if now is not None else time.monotonic()
        stale = [
            session_id
            for session_id, workspace in self._workspaces.items()
            if not workspace.has_subscribers
            and workspace.session.status != SigningStatus.SUBMITTING
            and now - workspace.last_activity > self.idle_timeout
        ]
        for session_id in stale:
            logger.info(f"Evicting idle signing session {session_id}")
            self.remove(session_id)
        return len(stale)

    def remove(self, session_id: str) -> None:
        workspace = self._workspaces.pop(session_id, None)
        if workspace is not None:
            workspace.close()
            logger.info(f"Closed signing session {session_id}")

    def close_all(self) -> None:
        for session_id in list(self._workspaces):
            self.remove(session_id)
