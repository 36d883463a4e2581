"""
QR Check-In

Decodes participant QR codes from camera frames and applies the check-in
exactly once per scanner session. A participant who is already checked in is
never updated again: the scanner stops and shows who it is instead.
"""

import asyncio
import base64
import logging
from io import BytesIO
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fastapi import WebSocket
from PIL import Image, UnidentifiedImageError

from app.core.config import settings
from app.core.exceptions import CameraUnavailableError, CampAdminError
from app.schemas.check_in import CheckInOutcome, ScannerState, ScannerStatus
from app.schemas.participant import PersonUpdate
from app.services.people_directory import PeopleDirectory

logger = logging.getLogger(__name__)

REAR_CAMERA = "environment"
FRONT_CAMERA = "user"

CAMERA_FAILED = "Failed to start camera"
SCAN_FAILED = "Failed to process QR"


def decode_qr_codes(frame: bytes) -> List[str]:
    """Return the text of every QR code found in an encoded image."""
    # zbar is a system library, loaded on first use
    from pyzbar import pyzbar

    try:
        image = Image.open(BytesIO(frame))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        logger.debug(f"Skipping undecodable frame: {e}")
        return []

    codes = []
    for symbol in pyzbar.decode(image.convert("L")):
        try:
            text = symbol.data.decode("utf-8").strip()
        except UnicodeDecodeError:
            continue
        if text:
            codes.append(text)
    return codes


async def apply_check_in(directory: PeopleDirectory, participant_id: str) -> CheckInOutcome:
    """Check a participant in unless they already are."""
    participant = await directory.get_person(participant_id)
    if participant.checked_in:
        logger.info(f"Participant {participant_id} is already checked in")
        return CheckInOutcome(participant=participant, already_checked_in=True)

    await directory.update_person(PersonUpdate.check_in_only(participant.id))
    participant.checked_in = True
    logger.info(f"Checked in participant {participant_id}")
    return CheckInOutcome(participant=participant)


class Camera:
    """A video source the scanner can open and release."""

    async def open(self, facing_mode: str) -> None:
        raise NotImplementedError

    async def stop(self) -> None:
        raise NotImplementedError


class WebSocketCamera(Camera):
    """Camera living in the browser; frames arrive over the same socket."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.facing_mode: Optional[str] = None
        self.active = False

    async def open(self, facing_mode: str) -> None:
        await self.websocket.send_json({"type": "camera.open", "facing_mode": facing_mode})
        reply = await self.websocket.receive_json()
        if reply.get("type") != "camera.opened":
            raise CameraUnavailableError(
                reply.get("message") or CAMERA_FAILED, detail=f"facing_mode={facing_mode}"
            )
        self.facing_mode = facing_mode
        self.active = True

    async def stop(self) -> None:
        if not self.active:
            return
        self.active = False
        await self.websocket.send_json({"type": "camera.stop"})


StateListener = Callable[[ScannerState], Awaitable[None]]
Navigator = Callable[[str], Awaitable[None]]


class QRCheckInScanner:
    def __init__(
        self,
        directory: PeopleDirectory,
        camera: Camera,
        on_change: Optional[StateListener] = None,
        navigate: Optional[Navigator] = None,
        redirect_delay: Optional[float] = None,
        redirect_url: Optional[str] = None,
    ):
        self.directory = directory
        self.camera = camera
        self.on_change = on_change
        self.navigate = navigate
        self.redirect_delay = (
            redirect_delay if redirect_delay is not None else settings.CHECK_IN_REDIRECT_DELAY_MS / 1000
        )
        self.redirect_url = redirect_url or settings.CHECK_IN_REDIRECT_URL
        self.state = ScannerState()
        self._handled = False

    async def _emit(self) -> None:
        if self.on_change is not None:
            await self.on_change(self.state)

    async def start(self) -> bool:
        """Open the rear camera, falling back to the front one."""
        self.state.status = ScannerStatus.STARTING
        self.state.error = None
        self.state.message = "Requesting camera permission..."
        await self._emit()

        try:
            await self.camera.open(REAR_CAMERA)
            self.state.facing_mode = REAR_CAMERA
        except CameraUnavailableError as rear_error:
            logger.warning(f"Rear camera unavailable ({rear_error}), trying front camera")
            try:
                await self.camera.open(FRONT_CAMERA)
                self.state.facing_mode = FRONT_CAMERA
            except CameraUnavailableError as front_error:
                logger.error(f"No camera available: {front_error}")
                self.state.status = ScannerStatus.CAMERA_ERROR
                self.state.message = None
                self.state.error = front_error.message or rear_error.message or CAMERA_FAILED
                await self._emit()
                return False

        self.state.status = ScannerStatus.SCANNING
        self.state.message = "Point the camera at the QR code"
        await self._emit()
        return True

    @property
    def accepting(self) -> bool:
        return self.state.status == ScannerStatus.SCANNING and not self._handled

    async def process_frame(self, frame: bytes) -> Optional[CheckInOutcome]:
        if not self.accepting:
            return None
        codes = decode_qr_codes(frame)
        if not codes:
            return None
        return await self.handle_decoded(codes[0])

    async def handle_decoded(self, text: str) -> Optional[CheckInOutcome]:
        if not self.accepting:
            logger.debug(f"Ignoring decode {text!r}; scanner already handled a code")
            return None
        self._handled = True

        participant_id = text.strip()
        self.state.status = ScannerStatus.VERIFYING
        self.state.participant_id = participant_id
        self.state.error = None
        self.state.message = "Verifying participant..."
        await self._emit()

        try:
            outcome = await apply_check_in(self.directory, participant_id)
        except CampAdminError as e:
            logger.error(f"Check-in for {participant_id!r} failed: {e}")
            self._handled = False
            self.state.status = ScannerStatus.SCANNING
            self.state.message = None
            self.state.error = e.message or SCAN_FAILED
            await self._emit()
            return None

        await self.camera.stop()

        if outcome.already_checked_in:
            self.state.status = ScannerStatus.ALREADY_CHECKED_IN
            self.state.dialog_name = outcome.full_name
            self.state.message = None
            await self._emit()
            return outcome

        self.state.status = ScannerStatus.CHECKED_IN
        self.state.message = "Check-in updated!"
        self.state.redirect_url = self.redirect_url
        await self._emit()

        await asyncio.sleep(self.redirect_delay)
        await self._go(self.redirect_url)
        return outcome

    async def dismiss_dialog(self) -> None:
        if self.state.status != ScannerStatus.ALREADY_CHECKED_IN:
            return
        self.state.dialog_name = None
        self.state.redirect_url = self.redirect_url
        await self._emit()
        await self._go(self.redirect_url)

    async def _go(self, url: str) -> None:
        if self.navigate is not None:
            await self.navigate(url)

    async def close(self) -> None:
        await self.camera.stop()

    async def handle_message(self, message: Dict[str, Any]) -> bool:
        """Dispatch one client message; returns False once the session is over."""
        kind = message.get("type")
        if kind == "frame":
            data = message.get("data") or ""
            try:
                frame = base64.b64decode(data.split(",")[-1], validate=True)
            except ValueError:
                logger.debug("Dropping frame with invalid base64 payload")
                return True
            await self.process_frame(frame)
        elif kind == "decoded":
            await self.handle_decoded(str(message.get("text") or ""))
        elif kind == "dismiss":
            await self.dismiss_dialog()
        elif kind == "close":
            return False
        else:
            logger.debug(f"Unknown scanner message type {kind!r}")
        return self.state.redirect_url is None
