# File: app/schemas/__init__.py
from .participant import (
    Participant, ParticipantRow, ParticipantForm, ParticipantFilters, ParticipantList,
    PersonUpdate, CheckInToggle, CheckOutToggle, ParticipantEmailRequest
)
from .signature import (
    SignatureCapture, GuardianResolution, ResolutionStatus, ParentGuardian, DelegateGuardian,
    SessionKind, SigningStatus, SigningSession, ConfirmationView
)
from .check_in import ScannerState, ScannerStatus, CheckInOutcome, ScanRequest, ScanResponse, DecodeResponse
