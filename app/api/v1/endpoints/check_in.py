from fastapi import APIRouter, Depends, File, UploadFile, WebSocket, WebSocketDisconnect
import logging
from app.api.deps import get_people_directory, http_error
from app.core.exceptions import CampAdminError
from app.schemas.check_in import DecodeResponse, ScannerState, ScanRequest, ScanResponse
from app.services.people_directory import PeopleDirectory
from app.services.qr_check_in import QRCheckInScanner, WebSocketCamera, apply_check_in, decode_qr_codes

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/scan", response_model=ScanResponse)
async def check_in_by_code(
    body: ScanRequest,
    directory: PeopleDirectory = Depends(get_people_directory),
):
    """Check in a participant from a code decoded on the device"""
    try:
        outcome = await apply_check_in(directory, body.code.strip())
    except CampAdminError as e:
        logger.error(f"Check-in for {body.code!r} failed: {e}")
        raise http_error(e)
    return ScanResponse(
        participant_id=outcome.participant.id,
        full_name=outcome.full_name,
        already_checked_in=outcome.already_checked_in,
        checked_in=outcome.participant.checked_in,
    )


@router.post("/decode", response_model=DecodeResponse)
async def decode_image(image: UploadFile = File(...)):
    """Read the QR codes in an uploaded picture"""
    content = await image.read()
    return DecodeResponse(codes=decode_qr_codes(content))


@router.websocket("/ws")
async def scanner_websocket(
    websocket: WebSocket,
    directory: PeopleDirectory = Depends(get_people_directory),
):
    await websocket.accept()

    async def push_state(state: ScannerState):
        await websocket.send_json({"type": "state", "state": state.model_dump(mode="json")})

    async def navigate(url: str):
        await websocket.send_json({"type": "navigate", "url": url})

    scanner = QRCheckInScanner(
        directory,
        WebSocketCamera(websocket),
        on_change=push_state,
        navigate=navigate,
    )

    try:
        if not await scanner.start():
            await websocket.close()
            return
        while True:
            message = await websocket.receive_json()
            if not await scanner.handle_message(message):
                break
        await scanner.close()
        await websocket.close()
    except WebSocketDisconnect:
        logger.debug("Scanner WebSocket disconnected")
