from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from fastapi.responses import Response
from pydantic import ValidationError
import asyncio
import logging
from app.api.deps import get_signing_registry, http_error
from app.core.exceptions import CampAdminError
from app.core.websocket_manager import manager
from app.schemas.signature import (
    DelegateSessionCreate,
    GuardianFields,
    GuardianModeSelection,
    PointerEvent,
    PointerResult,
    SigningSession,
    SigningSessionCreate,
    StrokeBatch,
    SurfaceResize,
    TermsAcceptance,
)
from app.services.signing_sessions import SigningSessionRegistry, SigningWorkspace

logger = logging.getLogger(__name__)

router = APIRouter()


def _workspace(registry: SigningSessionRegistry, session_id: str) -> SigningWorkspace:
    try:
        return registry.get(session_id)
    except CampAdminError as e:
        raise http_error(e)


@router.post("/", response_model=SigningSession, status_code=status.HTTP_201_CREATED)
async def open_signing_session(
    body: SigningSessionCreate,
    registry: SigningSessionRegistry = Depends(get_signing_registry),
):
    """Start the consent signature for a participant (or their parent / delegate)"""
    try:
        workspace = await registry.create(body.participant_id, width=body.width)
    except CampAdminError as e:
        raise http_error(e)
    return workspace.session


@router.post("/delegate", response_model=SigningSession, status_code=status.HTTP_201_CREATED)
async def open_delegate_session(
    body: DelegateSessionCreate,
    registry: SigningSessionRegistry = Depends(get_signing_registry),
):
    """Counter-signature by the delegate already assigned to a minor"""
    try:
        workspace = await registry.create_delegate(body.minor_id, width=body.width)
    except CampAdminError as e:
        raise http_error(e)
    return workspace.session


@router.get("/{session_id}", response_model=SigningSession)
async def get_signing_session(
    session_id: str,
    registry: SigningSessionRegistry = Depends(get_signing_registry),
):
    return _workspace(registry, session_id).session


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_signing_session(
    session_id: str,
    registry: SigningSessionRegistry = Depends(get_signing_registry),
):
    _workspace(registry, session_id)
    registry.remove(session_id)
    await manager.broadcast_to_session({"type": "closed"}, session_id)
    manager.close_session(session_id)


@router.post("/{session_id}/resize", response_model=SigningSession)
async def resize_surface(
    session_id: str,
    body: SurfaceResize,
    registry: SigningSessionRegistry = Depends(get_signing_registry),
):
    workspace = _workspace(registry, session_id)
    workspace.resize(body.width)
    return workspace.session


@router.post("/{session_id}/strokes", response_model=SigningSession)
async def add_stroke(
    session_id: str,
    body: StrokeBatch,
    registry: SigningSessionRegistry = Depends(get_signing_registry),
):
    workspace = _workspace(registry, session_id)
    workspace.add_stroke(body.points)
    return workspace.session


@router.post("/{session_id}/pointer", response_model=PointerResult)
async def pointer_event(
    session_id: str,
    body: PointerEvent,
    registry: SigningSessionRegistry = Depends(get_signing_registry),
):
    workspace = _workspace(registry, session_id)
    prevented = workspace.pointer(body)
    return PointerResult(default_prevented=prevented, session=workspace.session)


@router.post("/{session_id}/clear", response_model=SigningSession)
async def clear_signature(
    session_id: str,
    registry: SigningSessionRegistry = Depends(get_signing_registry),
):
    workspace = _workspace(registry, session_id)
    workspace.clear()
    return workspace.session


@router.get("/{session_id}/signature.png")
async def signature_preview(
    session_id: str,
    registry: SigningSessionRegistry = Depends(get_signing_registry),
):
    workspace = _workspace(registry, session_id)
    try:
        png = workspace.signature_png()
    except CampAdminError as e:
        raise http_error(e)
    return Response(content=png, media_type="image/png")


@router.put("/{session_id}/terms", response_model=SigningSession)
async def accept_terms(
    session_id: str,
    body: TermsAcceptance,
    registry: SigningSessionRegistry = Depends(get_signing_registry),
):
    workspace = _workspace(registry, session_id)
    workspace.set_terms(body.accepted)
    return workspace.session


@router.put("/{session_id}/guardian", response_model=SigningSession)
async def select_guardian_mode(
    session_id: str,
    body: GuardianModeSelection,
    registry: SigningSessionRegistry = Depends(get_signing_registry),
):
    workspace = _workspace(registry, session_id)
    workspace.select_guardian_mode(body.mode)
    return workspace.session


@router.put("/{session_id}/guardian/fields", response_model=SigningSession)
async def update_guardian_fields(
    session_id: str,
    body: GuardianFields,
    registry: SigningSessionRegistry = Depends(get_signing_registry),
):
    workspace = _workspace(registry, session_id)
    try:
        workspace.set_guardian_fields(name=body.name, national_id=body.national_id)
    except CampAdminError as e:
        raise http_error(e)
    return workspace.session


@router.post("/{session_id}/submit", response_model=SigningSession)
async def submit_consent(
    session_id: str,
    registry: SigningSessionRegistry = Depends(get_signing_registry),
):
    """Validate and send the signature; failures are reported on the session itself"""
    workspace = _workspace(registry, session_id)
    return await workspace.submit()


@router.post("/{session_id}/retry", response_model=SigningSession)
async def retry_consent(
    session_id: str,
    registry: SigningSessionRegistry = Depends(get_signing_registry),
):
    workspace = _workspace(registry, session_id)
    return workspace.retry()


@router.websocket("/{session_id}/ws")
async def signing_session_websocket(
    websocket: WebSocket,
    session_id: str,
    registry: SigningSessionRegistry = Depends(get_signing_registry),
):
    try:
        workspace = registry.get(session_id)
    except CampAdminError:
        await websocket.close(code=4404)
        return

    await manager.connect(websocket, session_id)
    updates: asyncio.Queue = asyncio.Queue()
    unsubscribe = workspace.subscribe(
        lambda session: updates.put_nowait(session.model_dump(mode="json"))
    )

    async def push_updates():
        while True:
            state = await updates.get()
            await websocket.send_json({"type": "session", "session": state})

    pusher = asyncio.create_task(push_updates())
    try:
        await websocket.send_json({"type": "session", "session": workspace.session.model_dump(mode="json")})
        while True:
            message = await websocket.receive_json()
            kind = message.get("type")
            try:
                if kind == "pointer":
                    workspace.pointer(PointerEvent(**message.get("event", {})))
                elif kind == "stroke":
                    workspace.add_stroke(StrokeBatch(**message).points)
                elif kind == "guardian_fields":
                    workspace.set_guardian_fields(
                        name=message.get("name"), national_id=message.get("national_id")
                    )
                elif kind == "guardian_mode":
                    workspace.select_guardian_mode(GuardianModeSelection(**message).mode)
                elif kind == "terms":
                    workspace.set_terms(bool(message.get("accepted")))
                elif kind == "submit":
                    await workspace.submit()
                else:
                    await websocket.send_json({"type": "error", "message": f"Unknown message type: {kind}"})
            except (CampAdminError, ValidationError) as e:
                await websocket.send_json({"type": "error", "message": str(e)})
    except WebSocketDisconnect:
        logger.debug(f"WebSocket disconnected from signing session {session_id}")
    finally:
        unsubscribe()
        pusher.cancel()
        manager.disconnect(websocket, session_id)
