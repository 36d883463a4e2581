import asyncio
import os
import sys
import tempfile
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

# ensure project root is importable during pytest collection
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

os.environ.setdefault(
    "DATABASE_URL", "sqlite:///" + os.path.join(tempfile.gettempdir(), "camp_admin_test.db")
)
os.environ.setdefault("SUPABASE_URL", "http://directory.test")
os.environ.setdefault("SEND_EMAILS", "false")

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.exceptions import CameraUnavailableError, ParticipantLookupError, RemoteCallError
from app.db.database import Base
from app.models.consent_document import ConsentDocument  # noqa: F401
from app.schemas.participant import Participant, PersonUpdate
from app.services.confirmation_store import ConfirmationStore

PDF_BYTES = b"%PDF-1.4 consentimiento firmado"


def make_person(
    person_id: str,
    names: str,
    last_name_1: str = "",
    last_name_2: str = "",
    age: int = 25,
    national_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
    **fields,
) -> Participant:
    return Participant(
        id=person_id,
        names=names,
        last_name_1=last_name_1,
        last_name_2=last_name_2,
        age=age,
        national_id=national_id,
        email=fields.pop("email", f"{person_id}@example.com"),
        created_at=created_at or datetime(2025, 9, 1, tzinfo=timezone.utc),
        **fields,
    )


class FakeDirectory:
    """In-memory people directory with the fuzzy national-id search of the real backend."""

    def __init__(self, people: Optional[List[Participant]] = None):
        self.people: Dict[str, Participant] = {person.id: person for person in people or []}
        self.lookups: List[dict] = []
        self.updates: List[PersonUpdate] = []
        self.added: List[dict] = []
        self.deleted: List[str] = []
        self.lookup_delays: Dict[str, float] = {}
        self.fail_lookups: Optional[Exception] = None
        self.fail_updates: Optional[Exception] = None

    def add(self, person: Participant) -> Participant:
        self.people[person.id] = person
        return person

    async def get_all_people(self, **filters):
        self.lookups.append(filters)
        national_id = filters.get("p_national_id")
        if national_id in self.lookup_delays:
            await asyncio.sleep(self.lookup_delays[national_id])
        if self.fail_lookups is not None:
            raise self.fail_lookups

        results = list(self.people.values())
        if national_id:
            results = [p for p in results if p.national_id and p.national_id.startswith(national_id)]
        if filters.get("p_checked_in"):
            wanted = filters["p_checked_in"] == "true"
            results = [p for p in results if p.checked_in == wanted]
        return [person.model_copy() for person in results]

    async def get_person(self, person_id: str) -> Participant:
        if person_id not in self.people:
            raise ParticipantLookupError(f"Participant {person_id} not found")
        return self.people[person_id].model_copy()

    async def get_people_by_ids(self, person_ids):
        return [self.people[i].model_copy() for i in person_ids if i in self.people]

    async def update_person(self, update: PersonUpdate):
        if self.fail_updates is not None:
            raise self.fail_updates
        self.updates.append(update)
        person = self.people.get(update.p_id)
        if person is not None:
            for key, value in update.model_dump().items():
                if key != "p_id" and value is not None:
                    setattr(person, key[2:], value)
        return None

    async def add_person(self, payload: dict):
        self.added.append(payload)
        return {"id": "new-person"}

    async def delete_person(self, person_id: str) -> None:
        self.deleted.append(person_id)
        self.people.pop(person_id, None)


class FakeDocuments:
    def __init__(self, content: Optional[bytes] = PDF_BYTES):
        self.content = content
        self.calls: List[tuple] = []
        self.fail: Optional[RemoteCallError] = None
        self.gate: Optional[asyncio.Event] = None

    async def _record(self, name: str, payload: dict) -> Optional[bytes]:
        self.calls.append((name, payload))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail is not None:
            raise self.fail
        return self.content

    async def create_adult_consent(self, person_id, signature_png):
        return await self._record("adult", {"person_id": person_id, "png": signature_png})

    async def create_minor_consent(self, minor_id, manager_id, signature_png):
        return await self._record(
            "minor", {"minor_id": minor_id, "manager_id": manager_id, "png": signature_png}
        )

    async def create_delegate_consent(self, minor_id, manager_id, tutor_name, tutor_national_id, signature_png):
        return await self._record(
            "delegate",
            {
                "minor_id": minor_id,
                "manager_id": manager_id,
                "tutor_name": tutor_name,
                "tutor_national_id": tutor_national_id,
                "png": signature_png,
            },
        )


class FakeCamera:
    def __init__(self, available=("environment", "user")):
        self.available = set(available)
        self.attempts: List[str] = []
        self.active = False
        self.stops = 0

    async def open(self, facing_mode: str) -> None:
        self.attempts.append(facing_mode)
        if facing_mode not in self.available:
            raise CameraUnavailableError(f"{facing_mode} camera not allowed")
        self.active = True

    async def stop(self) -> None:
        if self.active:
            self.stops += 1
        self.active = False


@pytest.fixture
def adult():
    return make_person("p-adult", "Carlos", "Pérez", "Gómez", age=30, national_id="1010")


@pytest.fixture
def minor():
    return make_person("p-minor", "Sofía", "Ruiz", "Díaz", age=14, national_id="2020")


@pytest.fixture
def parent():
    return make_person("p-parent", "Ana María", "Ruiz", "López", age=45, national_id="3030")


@pytest.fixture
def delegate():
    return make_person("p-delegate", "Jane", "Doe", "", age=38, national_id="5555")


@pytest.fixture
def directory(adult, minor, parent, delegate):
    return FakeDirectory([adult, minor, parent, delegate])


@pytest.fixture
def documents():
    return FakeDocuments()


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.drop_all(engine)


@pytest.fixture
def confirmation_store(session_factory):
    return ConfirmationStore(session_factory=session_factory, ttl_minutes=60)
