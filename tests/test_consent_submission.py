import asyncio
import re

import pytest

from app.core.exceptions import ConsentValidationError, RemoteCallError
from app.schemas.signature import (
    DelegateGuardian,
    ParentGuardian,
    ResolutionStatus,
    SigningSession,
    SigningStatus,
)
from app.services.consent_submission import (
    DELEGATE_ID_REQUIRED,
    DELEGATE_NOT_FOUND,
    GUARDIAN_MODE_REQUIRED,
    MISSING_SIGNATURE,
    PARENT_FIELDS_REQUIRED,
    PARENT_VALIDATION_PENDING,
    TERMS_NOT_ACCEPTED,
    validate_submission,
)
from app.services.guardian_resolution import PARENT_NOT_REGISTERED
from app.services.signing_sessions import SigningSessionRegistry

REDIRECT = 0.05
STROKE = [(10, 20), (120, 20), (160, 70)]


@pytest.fixture
def registry(directory, documents, confirmation_store):
    return SigningSessionRegistry(
        directory, documents, confirmation_store, debounce=0.01, redirect_delay=REDIRECT
    )


async def _ready(registry, participant_id):
    workspace = await registry.create(participant_id, width=600)
    workspace.add_stroke(STROKE)
    workspace.set_terms(True)
    return workspace


def test_validation_order(minor):
    session = SigningSession(id="s", participant=minor)
    with pytest.raises(ConsentValidationError, match=re.escape(MISSING_SIGNATURE)):
        validate_submission(session)

    session.signature.has_drawn = True
    with pytest.raises(ConsentValidationError, match=re.escape(TERMS_NOT_ACCEPTED)):
        validate_submission(session)

    session.accept_terms = True
    with pytest.raises(ConsentValidationError, match=re.escape(GUARDIAN_MODE_REQUIRED)):
        validate_submission(session)

    session.guardian = ParentGuardian(name="Ana")
    with pytest.raises(ConsentValidationError, match=re.escape(PARENT_FIELDS_REQUIRED)):
        validate_submission(session)

    session.guardian = DelegateGuardian()
    with pytest.raises(ConsentValidationError, match=re.escape(DELEGATE_ID_REQUIRED)):
        validate_submission(session)


def test_adult_signature_end_to_end(registry, directory, documents, confirmation_store):
    async def scenario():
        workspace = await _ready(registry, "p-adult")
        session = await workspace.submit()

        assert session.status == SigningStatus.SUCCESS
        assert session.redirect_after_ms == int(REDIRECT * 1000)
        await asyncio.sleep(REDIRECT + 0.05)
        return session

    session = asyncio.run(scenario())

    assert session.status == SigningStatus.TERMINATED
    assert len(documents.calls) == 1
    name, payload = documents.calls[0]
    assert name == "adult"
    assert payload["person_id"] == "p-adult"
    assert payload["png"].startswith(b"\x89PNG")

    assert len(directory.updates) == 1
    assert directory.updates[0].p_has_signed is True
    assert directory.people["p-adult"].has_signed is True

    token = session.confirmation_url.rsplit("/", 1)[-1]
    stored = confirmation_store.load(token)
    assert stored.participant_national_id == "1010"
    assert stored.filename == "consentimiento_1010.pdf"
    assert session.redirect_url == session.confirmation_url


def test_parent_not_registered_blocks_submission(registry, documents):
    async def scenario():
        workspace = await _ready(registry, "p-minor")
        workspace.set_guardian_fields(name="Ana María Ruiz", national_id="123")
        await workspace.wait_for_resolution()

        guardian = workspace.session.guardian
        assert guardian.resolution.status == ResolutionStatus.NOT_FOUND
        return await workspace.submit()

    session = asyncio.run(scenario())

    assert session.status == SigningStatus.IDLE
    assert session.error == PARENT_NOT_REGISTERED
    assert documents.calls == []


def test_parent_submission_waits_for_lookup(registry, documents):
    async def scenario():
        workspace = await _ready(registry, "p-minor")
        workspace.set_guardian_fields(name="Ana María Ruiz", national_id="3030")
        blocked = (await workspace.submit()).model_copy()

        await workspace.wait_for_resolution()
        done = await workspace.submit()
        return blocked, done

    blocked, done = asyncio.run(scenario())

    assert blocked.status == SigningStatus.IDLE
    assert blocked.error == PARENT_VALIDATION_PENDING
    assert done.status == SigningStatus.SUCCESS
    assert documents.calls[0][0] == "minor"
    assert documents.calls[0][1]["minor_id"] == "p-minor"
    assert documents.calls[0][1]["manager_id"] == "p-parent"


def test_delegate_path_sends_guardian_snapshot_and_skips_signed_flag(registry, directory, documents):
    async def scenario():
        workspace = await _ready(registry, "p-minor")
        workspace.select_guardian_mode("delegate")
        workspace.set_guardian_fields(national_id="5555")
        await workspace.wait_for_resolution()
        assert workspace.session.guardian.resolution.display_name == "Jane Doe"
        return await workspace.submit()

    session = asyncio.run(scenario())

    assert session.status == SigningStatus.SUCCESS
    assert len(documents.calls) == 1
    name, payload = documents.calls[0]
    assert name == "delegate"
    assert payload["minor_id"] == "p-minor"
    assert payload["manager_id"] == "p-delegate"
    assert payload["tutor_name"] == "Jane Doe"
    assert payload["tutor_national_id"] == "5555"
    assert directory.updates == []


def test_delegate_path_can_mark_signed(directory, documents, confirmation_store):
    registry = SigningSessionRegistry(
        directory,
        documents,
        confirmation_store,
        debounce=0.01,
        redirect_delay=REDIRECT,
        mark_signed_on_delegate=True,
    )

    async def scenario():
        workspace = await _ready(registry, "p-minor")
        workspace.select_guardian_mode("delegate")
        workspace.set_guardian_fields(national_id="5555")
        return await workspace.submit()

    session = asyncio.run(scenario())

    assert session.status == SigningStatus.SUCCESS
    assert [u.p_has_signed for u in directory.updates] == [True]


def test_unresolved_delegate_fails_at_submission(registry, documents):
    async def scenario():
        workspace = await _ready(registry, "p-minor")
        workspace.select_guardian_mode("delegate")
        workspace.set_guardian_fields(national_id="55")
        await workspace.wait_for_resolution()
        return await workspace.submit()

    session = asyncio.run(scenario())

    assert session.status == SigningStatus.ERROR
    assert session.error == DELEGATE_NOT_FOUND
    assert documents.calls == []


def test_switching_mode_drops_other_mode_input(registry, directory, documents):
    async def scenario():
        workspace = await _ready(registry, "p-minor")
        workspace.set_guardian_fields(name="Ana María Ruiz", national_id="3030")
        workspace.select_guardian_mode("delegate")
        await asyncio.sleep(0.05)
        await workspace.wait_for_resolution()
        session = await workspace.submit()
        return workspace, session

    workspace, session = asyncio.run(scenario())

    assert directory.lookups == []
    assert session.status == SigningStatus.IDLE
    assert session.error == DELEGATE_ID_REQUIRED
    assert isinstance(session.guardian, DelegateGuardian)
    assert session.guardian_drafts["parent"].national_id == "3030"
    assert documents.calls == []


def test_switching_back_resumes_abandoned_lookup(registry, directory):
    async def scenario():
        workspace = await _ready(registry, "p-minor")
        workspace.set_guardian_fields(name="Ana María Ruiz", national_id="3030")
        workspace.select_guardian_mode("delegate")
        workspace.select_guardian_mode("parent")
        await workspace.wait_for_resolution()
        return workspace.session

    session = asyncio.run(scenario())

    assert isinstance(session.guardian, ParentGuardian)
    assert session.guardian.name == "Ana María Ruiz"
    assert session.guardian.resolution.status == ResolutionStatus.RESOLVED
    assert directory.lookups == [{"p_national_id": "3030"}]


def test_remote_failure_keeps_form_and_allows_retry(registry, documents):
    documents.fail = RemoteCallError("Quota exceeded", status_code=500, detail="Quota exceeded")

    async def scenario():
        workspace = await _ready(registry, "p-adult")
        failed = (await workspace.submit()).model_copy(deep=True)

        workspace.retry()
        assert workspace.session.status == SigningStatus.IDLE
        documents.fail = None
        done = await workspace.submit()
        return failed, done

    failed, done = asyncio.run(scenario())

    assert failed.status == SigningStatus.ERROR
    assert failed.error == "Quota exceeded"
    assert failed.signature.has_drawn is True
    assert failed.accept_terms is True
    assert done.status == SigningStatus.SUCCESS
    assert len(documents.calls) == 2


def test_double_submit_is_a_no_op(registry, documents):
    documents.gate = None

    async def scenario():
        documents.gate = asyncio.Event()
        workspace = await _ready(registry, "p-adult")
        first = asyncio.ensure_future(workspace.submit())
        await asyncio.sleep(0)
        assert workspace.session.status == SigningStatus.SUBMITTING
        await workspace.submit()
        documents.gate.set()
        return await first

    session = asyncio.run(scenario())

    assert session.status == SigningStatus.SUCCESS
    assert len(documents.calls) == 1


def test_signed_flag_failure_is_not_surfaced(registry, directory, documents):
    directory.fail_updates = RemoteCallError("update_person failed", status_code=500)

    async def scenario():
        workspace = await _ready(registry, "p-adult")
        return await workspace.submit()

    session = asyncio.run(scenario())

    assert session.status == SigningStatus.SUCCESS
    assert session.error is None
    assert len(documents.calls) == 1


def test_missing_document_still_succeeds(registry, documents):
    documents.content = None

    async def scenario():
        workspace = await _ready(registry, "p-adult")
        return await workspace.submit()

    session = asyncio.run(scenario())

    assert session.status == SigningStatus.SUCCESS
    assert session.confirmation_url is None
    assert session.redirect_url == "/success"


def test_unmounted_surface_reports_rasterization_error(registry, documents):
    async def scenario():
        workspace = await registry.create("p-adult")
        workspace.session.signature.has_drawn = True
        workspace.set_terms(True)
        return await workspace.submit()

    session = asyncio.run(scenario())

    assert session.status == SigningStatus.ERROR
    assert session.error == "No se encontró el lienzo de firma"
    assert documents.calls == []


def test_delegate_counter_signature_uses_stored_tutor(directory, documents, confirmation_store, delegate):
    directory.people["p-minor"].manager_id = delegate.id
    directory.people["p-minor"].tutor_name = "Ana María Ruiz López"
    directory.people["p-minor"].tutor_national_id = "3030"
    registry = SigningSessionRegistry(directory, documents, confirmation_store, redirect_delay=REDIRECT)

    async def scenario():
        workspace = await registry.create_delegate("p-minor", width=600)
        assert workspace.session.manager.id == "p-delegate"
        assert workspace.session.manager_loading is False
        workspace.add_stroke(STROKE)
        workspace.set_terms(True)
        return await workspace.submit()

    session = asyncio.run(scenario())

    assert session.status == SigningStatus.SUCCESS
    name, payload = documents.calls[0]
    assert name == "delegate"
    assert payload["manager_id"] == "p-delegate"
    assert payload["tutor_name"] == "Ana María Ruiz López"
    assert payload["tutor_national_id"] == "3030"
    assert [u.p_has_signed for u in directory.updates] == [True]


def test_delegate_counter_signature_needs_manager(directory, documents, confirmation_store):
    registry = SigningSessionRegistry(directory, documents, confirmation_store, redirect_delay=REDIRECT)

    async def scenario():
        workspace = await registry.create_delegate("p-minor", width=600)
        workspace.add_stroke(STROKE)
        workspace.set_terms(True)
        return await workspace.submit()

    session = asyncio.run(scenario())

    assert session.manager is None
    assert session.status == SigningStatus.IDLE
    assert session.error == "Por favor espera mientras se carga la información del responsable."
    assert documents.calls == []


def test_delegate_counter_signature_ignores_edited_national_id(directory, documents, confirmation_store, delegate):
    directory.people["p-minor"].manager_id = delegate.id
    registry = SigningSessionRegistry(directory, documents, confirmation_store, redirect_delay=REDIRECT)

    async def scenario():
        workspace = await registry.create_delegate("p-minor", width=600)
        workspace.set_guardian_fields(national_id="3030")
        assert workspace.session.guardian.national_id == "5555"
        workspace.add_stroke(STROKE)
        workspace.set_terms(True)
        return await workspace.submit()

    session = asyncio.run(scenario())

    assert session.status == SigningStatus.SUCCESS
    assert [(name, payload["manager_id"]) for name, payload in documents.calls] == [("delegate", "p-delegate")]
    assert directory.lookups == []


def test_terminated_session_leaves_registry(registry):
    async def scenario():
        workspace = await _ready(registry, "p-adult")
        await workspace.submit()
        assert len(registry) == 1
        await asyncio.sleep(REDIRECT + 0.05)
        return workspace

    workspace = asyncio.run(scenario())

    assert workspace.session.status == SigningStatus.TERMINATED
    assert len(registry) == 0
    assert workspace.surface.is_mounted is False


def test_idle_sessions_are_evicted(directory, documents, confirmation_store):
    registry = SigningSessionRegistry(directory, documents, confirmation_store, idle_timeout=60)

    async def scenario():
        idle = await registry.create("p-adult", width=600)
        watched = await registry.create("p-adult", width=600)
        watched.subscribe(lambda session: None)
        return idle, watched

    idle, watched = asyncio.run(scenario())

    assert registry.purge_idle(now=idle.last_activity + 30) == 0
    assert registry.purge_idle(now=idle.last_activity + 120) == 1
    assert len(registry) == 1
    assert registry.get(watched.id) is watched
    assert idle.surface.is_mounted is False
