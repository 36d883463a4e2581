"""
Participant administration for the dashboard: filtered listing with guardian
names, create/edit/delete, check-in and check-out toggles and participant emails.
"""

import asyncio
import logging
from datetime import datetime, timezone
from functools import partial
from typing import Dict, List, Optional

from app.core.config import settings
from app.core.email_service import EmailService
from app.core.exceptions import CampAdminError, ConsentValidationError
from app.schemas.participant import (
    ADULT_AGE,
    Participant,
    ParticipantFilters,
    ParticipantForm,
    ParticipantRow,
    PersonUpdate,
)
from app.services.people_directory import PeopleDirectory

logger = logging.getLogger(__name__)

CONTRACT_SUBJECT = "Firma de Consentimiento - Relevante Camp"
TICKET_SUBJECT = "Ticket de Embarque - Relevante Camp"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _matches_age_group(participant: Participant, age_group: Optional[str]) -> bool:
    if not age_group:
        return True
    if participant.age is None:
        return False
    if age_group == "minors":
        return participant.age < ADULT_AGE
    return participant.age >= ADULT_AGE


def _created_key(participant: Participant) -> datetime:
    created = participant.created_at
    if created is None:
        return _EPOCH
    if created.tzinfo is None:
        return created.replace(tzinfo=timezone.utc)
    return created


async def list_participants(directory: PeopleDirectory, filters: ParticipantFilters) -> List[ParticipantRow]:
    people = await directory.get_all_people(**filters.rpc_filters())
    people = [person for person in people if _matches_age_group(person, filters.age_group)]
    people.sort(key=_created_key, reverse=True)

    manager_names: Dict[str, str] = {}
    manager_ids = sorted({person.manager_id for person in people if person.manager_id})
    if manager_ids:
        try:
            managers = await directory.get_people_by_ids(manager_ids)
        except CampAdminError as e:
            logger.error(f"Failed to fetch managers: {e}")
        else:
            manager_names = {manager.id: manager.full_name for manager in managers}

    return [
        ParticipantRow(
            **person.model_dump(),
            manager_name=manager_names.get(person.manager_id) if person.manager_id else None,
        )
        for person in people
    ]


async def create_participant(directory: PeopleDirectory, form: ParticipantForm):
    errors = form.validation_errors()
    if errors:
        raise ConsentValidationError("Invalid participant data", detail=errors)
    result = await directory.add_person(form.to_add_payload())
    logger.info(f"Created participant {form.names} {form.last_name_1}")
    return result


async def update_participant(directory: PeopleDirectory, participant_id: str, form: ParticipantForm) -> Participant:
    errors = form.validation_errors()
    if errors:
        raise ConsentValidationError("Invalid participant data", detail=errors)
    current = await directory.get_person(participant_id)
    await directory.update_person(form.to_update(current))
    return await directory.get_person(participant_id)


async def delete_participant(directory: PeopleDirectory, participant_id: str) -> None:
    await directory.delete_person(participant_id)
    logger.info(f"Deleted participant {participant_id}")


async def set_checked_in(directory: PeopleDirectory, participant_id: str, checked_in: bool) -> Participant:
    participant = await directory.get_person(participant_id)
    await directory.update_person(PersonUpdate.from_participant(participant, p_checked_in=checked_in))
    participant.checked_in = checked_in
    return participant


async def set_checked_out(directory: PeopleDirectory, participant_id: str, checked_out: bool) -> Participant:
    participant = await directory.get_person(participant_id)
    if checked_out and not participant.checked_in:
        raise ConsentValidationError(
            f"Cannot check out {participant.names} {participant.last_name_1} - they are not checked in yet."
        )
    await directory.update_person(PersonUpdate.from_participant(participant, p_checked_out=checked_out))
    participant.checked_out = checked_out
    return participant


async def email_participant(
    directory: PeopleDirectory,
    email_service: EmailService,
    participant_id: str,
    email_type: str = "contract",
    subject: Optional[str] = None,
) -> bool:
    participant = await directory.get_person(participant_id)
    if not participant.email:
        raise ConsentValidationError(f"Participant {participant_id} has no email address")

    if email_type == "contract":
        signing_url = settings.signing_url(participant.id)
        send = partial(
            email_service.send_participant_email,
            participant.email,
            participant.full_name,
            participant.id,
            email_type="contract",
            subject=subject or CONTRACT_SUBJECT,
            text=f"Hola {participant.names}! Este es el link para firmar tu consentimiento: {signing_url}",
            contract_url=signing_url,
        )
    else:
        send = partial(
            email_service.send_participant_email,
            participant.email,
            participant.full_name,
            participant.id,
            email_type="ticket",
            subject=subject or TICKET_SUBJECT,
            text=f"Hola {participant.names}! Este es tu ticket de embarque para Relevante Camp.",
        )

    # smtplib blocks, keep it off the event loop
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, send)
