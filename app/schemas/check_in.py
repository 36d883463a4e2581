from enum import Enum
from pydantic import BaseModel, Field
from typing import List, Optional
from app.schemas.participant import Participant


class ScannerStatus(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    SCANNING = "scanning"
    VERIFYING = "verifying"
    ALREADY_CHECKED_IN = "already_checked_in"  # blocking dialog until dismissed
    CHECKED_IN = "checked_in"
    CAMERA_ERROR = "camera_error"


class ScannerState(BaseModel):
    status: ScannerStatus = ScannerStatus.IDLE
    facing_mode: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    dialog_name: Optional[str] = None
    participant_id: Optional[str] = None
    redirect_url: Optional[str] = None


class CheckInOutcome(BaseModel):
    participant: Participant
    already_checked_in: bool = False

    @property
    def full_name(self) -> str:
        return self.participant.full_name


class ScanRequest(BaseModel):
    code: str = Field(..., min_length=1)


class ScanResponse(BaseModel):
    participant_id: str
    full_name: str
    already_checked_in: bool
    checked_in: bool


class DecodeResponse(BaseModel):
    codes: List[str] = Field(default_factory=list)
