import re
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime

ADULT_AGE = 18

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^\+?\d{7,15}$")


class Participant(BaseModel):
    """Camp attendee record as returned by the people directory."""

    model_config = ConfigDict(extra="ignore")

    id: str
    age: Optional[int] = None
    email: Optional[str] = None
    names: str = ""
    last_name_1: Optional[str] = None
    last_name_2: Optional[str] = None
    gender: Optional[str] = None
    camp_total: Optional[float] = None
    phone_number: Optional[str] = None
    national_id: Optional[str] = None
    emergency_contact: Optional[str] = None
    emergency_contact_phone_number: Optional[str] = None
    checked_in: bool = False
    checked_out: bool = False
    has_signed: bool = False
    manager_id: Optional[str] = None
    tutor_name: Optional[str] = None
    tutor_national_id: Optional[str] = None
    document_url: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator("id", "manager_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        return str(value) if value is not None else value

    @field_validator("checked_in", "checked_out", "has_signed", mode="before")
    @classmethod
    def _null_is_false(cls, value: Any) -> Any:
        return False if value is None else value

    @property
    def full_name(self) -> str:
        parts = [self.names, self.last_name_1 or "", self.last_name_2 or ""]
        return " ".join(part for part in parts if part).strip()

    @property
    def is_minor(self) -> bool:
        return self.age is not None and self.age < ADULT_AGE


class ParticipantRow(Participant):
    """Dashboard listing row: the record plus its guardian's display name."""

    manager_name: Optional[str] = None


class PersonUpdate(BaseModel):
    """Argument set of the remote ``update_person`` procedure.

    ``None`` is sent as JSON null, which the scanner relies on to mean
    "leave unchanged". That convention is inferred from how the procedure is
    called and has not been confirmed against its definition.
    """

    p_id: str
    p_age: Optional[int] = None
    p_checked_in: Optional[bool] = None
    p_checked_out: Optional[bool] = None
    p_email: Optional[str] = None
    p_emergency_contact: Optional[str] = None
    p_emergency_contact_phone_number: Optional[str] = None
    p_has_signed: Optional[bool] = None
    p_last_name_1: Optional[str] = None
    p_last_name_2: Optional[str] = None
    p_names: Optional[str] = None
    p_national_id: Optional[str] = None
    p_phone_number: Optional[str] = None

    @classmethod
    def from_participant(cls, participant: Participant, **overrides: Any) -> "PersonUpdate":
        payload = {
            "p_id": participant.id,
            "p_age": participant.age,
            "p_checked_in": participant.checked_in,
            "p_checked_out": participant.checked_out,
            "p_email": participant.email,
            "p_emergency_contact": participant.emergency_contact,
            "p_emergency_contact_phone_number": participant.emergency_contact_phone_number,
            "p_has_signed": participant.has_signed,
            "p_last_name_1": participant.last_name_1,
            "p_last_name_2": participant.last_name_2,
            "p_names": participant.names,
            "p_national_id": participant.national_id,
            "p_phone_number": participant.phone_number,
        }
        payload.update(overrides)
        return cls(**payload)

    @classmethod
    def check_in_only(cls, participant_id: str) -> "PersonUpdate":
        return cls(p_id=participant_id, p_checked_in=True)


class ParticipantForm(BaseModel):
    """Admin create/edit form."""

    names: str = ""
    last_name_1: str = ""
    last_name_2: str = ""
    age: Optional[int] = None
    email: str = ""
    phone_number: str = ""
    gender: str = ""
    national_id: str = ""
    emergency_contact: str = ""
    emergency_contact_phone_number: str = ""

    def validation_errors(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}

        if not self.names.strip():
            errors["names"] = "Names are required"
        if not self.last_name_1.strip():
            errors["last_name_1"] = "First last name is required"
        if not self.last_name_2.strip():
            errors["last_name_2"] = "Second last name is required"

        if self.age is None:
            errors["age"] = "Age is required"
        elif self.age <= 0:
            errors["age"] = "Age must be a positive number"

        if not self.email.strip():
            errors["email"] = "Email is required"
        elif not EMAIL_PATTERN.match(self.email.strip()):
            errors["email"] = "Enter a valid email address"

        if not self.phone_number.strip():
            errors["phone_number"] = "Phone number is required"
        elif not PHONE_PATTERN.match(self.phone_number.strip()):
            errors["phone_number"] = "Enter a valid phone number"

        if not self.gender:
            errors["gender"] = "Gender is required"
        if not self.national_id.strip():
            errors["national_id"] = "National ID is required"

        if self.emergency_contact.strip() and " - " not in self.emergency_contact:
            errors["emergency_contact"] = 'Use the format "Name - Relationship"'
        if self.emergency_contact_phone_number.strip() and not PHONE_PATTERN.match(
            self.emergency_contact_phone_number.strip()
        ):
            errors["emergency_contact_phone_number"] = "Enter a valid phone number"

        return errors

    def to_add_payload(self) -> Dict[str, Any]:
        return {
            "p_age": self.age,
            "p_email": self.email.strip(),
            "p_emergency_contact": self.emergency_contact.strip(),
            "p_emergency_contact_phone_number": self.emergency_contact_phone_number.strip(),
            "p_gender": self.gender,
            "p_last_name_1": self.last_name_1.strip(),
            "p_last_name_2": self.last_name_2.strip(),
            "p_names": self.names.strip(),
            "p_national_id": self.national_id.strip(),
            "p_phone_number": self.phone_number.strip(),
        }

    def to_update(self, current: Participant) -> PersonUpdate:
        # Check-in, check-out and signed flags are not editable from the form
        return PersonUpdate.from_participant(
            current,
            p_age=self.age,
            p_email=self.email.strip(),
            p_emergency_contact=self.emergency_contact.strip(),
            p_emergency_contact_phone_number=self.emergency_contact_phone_number.strip(),
            p_last_name_1=self.last_name_1.strip(),
            p_last_name_2=self.last_name_2.strip(),
            p_names=self.names.strip(),
            p_national_id=self.national_id.strip(),
            p_phone_number=self.phone_number.strip(),
        )


class ParticipantFilters(BaseModel):
    email: Optional[str] = None
    gender: Optional[str] = None
    name: Optional[str] = None
    national_id: Optional[str] = None
    checked_in: Optional[Literal["true", "false"]] = None
    age_group: Optional[Literal["adults", "minors"]] = None

    def rpc_filters(self) -> Dict[str, str]:
        """Filters understood by ``get_all_people``; age group is applied locally."""
        values = {
            "p_email": self.email,
            "p_gender": self.gender,
            "p_name": self.name,
            "p_national_id": self.national_id,
            "p_checked_in": self.checked_in,
        }
        return {key: value for key, value in values.items() if value not in (None, "")}


class CheckInToggle(BaseModel):
    checked_in: bool


class CheckOutToggle(BaseModel):
    checked_out: bool


class ParticipantEmailRequest(BaseModel):
    email_type: Literal["ticket", "contract"] = "contract"
    subject: Optional[str] = None


class ParticipantList(BaseModel):
    participants: List[ParticipantRow] = Field(default_factory=list)
    total: int = 0
