from enum import Enum
from pydantic import BaseModel, Field
from typing import Annotated, Dict, List, Literal, Optional, Tuple, Union
from app.schemas.participant import Participant

Point = Tuple[float, float]


class SignatureCapture(BaseModel):
    has_drawn: bool = False
    strokes: List[List[Point]] = Field(default_factory=list)


class ResolutionStatus(str, Enum):
    EMPTY = "empty"
    PENDING = "pending"  # waiting for the input to settle
    SEARCHING = "searching"
    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    ERROR = "error"


class GuardianResolution(BaseModel):
    status: ResolutionStatus = ResolutionStatus.EMPTY
    national_id: str = ""
    person_id: Optional[str] = None
    display_name: str = ""
    message: Optional[str] = None

    @property
    def in_progress(self) -> bool:
        return self.status in (ResolutionStatus.PENDING, ResolutionStatus.SEARCHING)


class ParentGuardian(BaseModel):
    """Legal parent typing their own name and C.C. inline."""

    mode: Literal["parent"] = "parent"
    name: str = ""
    national_id: str = ""
    resolution: GuardianResolution = Field(default_factory=GuardianResolution)


class DelegateGuardian(BaseModel):
    """Third party found in the directory by C.C."""

    mode: Literal["delegate"] = "delegate"
    national_id: str = ""
    resolution: GuardianResolution = Field(default_factory=GuardianResolution)


GuardianSelection = Annotated[Union[ParentGuardian, DelegateGuardian], Field(discriminator="mode")]
GuardianMode = Literal["parent", "delegate"]


class SessionKind(str, Enum):
    PARTICIPANT = "participant"  # the participant (or their parent) signs
    DELEGATE = "delegate"  # the minor's designated delegate counter-signs


class SigningStatus(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    ERROR = "error"
    SUCCESS = "success"
    TERMINATED = "terminated"


class SigningSession(BaseModel):
    """Everything a signing view holds, as one serializable value."""

    id: str
    kind: SessionKind = SessionKind.PARTICIPANT
    participant: Participant
    signature: SignatureCapture = Field(default_factory=SignatureCapture)
    accept_terms: bool = False
    guardian: Optional[GuardianSelection] = None
    guardian_drafts: Dict[str, GuardianSelection] = Field(default_factory=dict)
    manager: Optional[Participant] = None
    manager_loading: bool = False
    status: SigningStatus = SigningStatus.IDLE
    error: Optional[str] = None
    confirmation_url: Optional[str] = None
    redirect_url: Optional[str] = None
    redirect_after_ms: Optional[int] = None

    @property
    def is_minor(self) -> bool:
        return self.participant.is_minor


# ---------------------------
# Request bodies
# ---------------------------

class SigningSessionCreate(BaseModel):
    participant_id: str
    width: Optional[float] = Field(None, gt=0)


class DelegateSessionCreate(BaseModel):
    minor_id: str
    width: Optional[float] = Field(None, gt=0)


class StrokeBatch(BaseModel):
    points: List[Point] = Field(..., min_length=1)


class PointerEvent(BaseModel):
    kind: Literal["down", "move", "up", "leave"]
    x: float = 0.0
    y: float = 0.0
    default_prevented: bool = False


class PointerResult(BaseModel):
    default_prevented: bool
    session: SigningSession


class SurfaceResize(BaseModel):
    width: float = Field(..., gt=0)


class TermsAcceptance(BaseModel):
    accepted: bool


class GuardianModeSelection(BaseModel):
    mode: Optional[GuardianMode] = None


class GuardianFields(BaseModel):
    name: Optional[str] = None
    national_id: Optional[str] = None


class ConfirmationView(BaseModel):
    pdf_url: str
    participant_id: Optional[str] = None
    download_filename: str
