from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import Optional
import logging
from app.api.deps import get_email_service, get_people_directory, http_error
from app.core.email_service import EmailService
from app.core.exceptions import CampAdminError
from app.schemas.participant import (
    CheckInToggle,
    CheckOutToggle,
    Participant,
    ParticipantEmailRequest,
    ParticipantFilters,
    ParticipantForm,
    ParticipantList,
)
from app.services import participant_admin
from app.services.people_directory import PeopleDirectory

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=ParticipantList)
async def list_participants(
    email: Optional[str] = Query(None),
    gender: Optional[str] = Query(None),
    name: Optional[str] = Query(None),
    national_id: Optional[str] = Query(None),
    checked_in: Optional[str] = Query(None, pattern="^(true|false)$"),
    age_group: Optional[str] = Query(None, pattern="^(adults|minors)$"),
    directory: PeopleDirectory = Depends(get_people_directory),
):
    """Dashboard listing, newest registrations first"""
    filters = ParticipantFilters(
        email=email,
        gender=gender,
        name=name,
        national_id=national_id,
        checked_in=checked_in,
        age_group=age_group,
    )
    try:
        rows = await participant_admin.list_participants(directory, filters)
    except CampAdminError as e:
        logger.error(f"Failed to fetch participants: {e}")
        raise http_error(e)
    return ParticipantList(participants=rows, total=len(rows))


@router.get("/{participant_id}", response_model=Participant)
async def get_participant(
    participant_id: str,
    directory: PeopleDirectory = Depends(get_people_directory),
):
    try:
        return await directory.get_person(participant_id)
    except CampAdminError as e:
        raise http_error(e)


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_participant(
    form: ParticipantForm,
    directory: PeopleDirectory = Depends(get_people_directory),
):
    try:
        result = await participant_admin.create_participant(directory, form)
    except CampAdminError as e:
        raise http_error(e)
    return {"ok": True, "result": result}


@router.put("/{participant_id}", response_model=Participant)
async def update_participant(
    participant_id: str,
    form: ParticipantForm,
    directory: PeopleDirectory = Depends(get_people_directory),
):
    try:
        return await participant_admin.update_participant(directory, participant_id, form)
    except CampAdminError as e:
        raise http_error(e)


@router.delete("/{participant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_participant(
    participant_id: str,
    directory: PeopleDirectory = Depends(get_people_directory),
):
    try:
        await participant_admin.delete_participant(directory, participant_id)
    except CampAdminError as e:
        raise http_error(e)


@router.put("/{participant_id}/check-in", response_model=Participant)
async def toggle_check_in(
    participant_id: str,
    body: CheckInToggle,
    directory: PeopleDirectory = Depends(get_people_directory),
):
    try:
        return await participant_admin.set_checked_in(directory, participant_id, body.checked_in)
    except CampAdminError as e:
        logger.error(f"Error updating check-in status for {participant_id}: {e}")
        raise http_error(e)


@router.put("/{participant_id}/check-out", response_model=Participant)
async def toggle_check_out(
    participant_id: str,
    body: CheckOutToggle,
    directory: PeopleDirectory = Depends(get_people_directory),
):
    try:
        return await participant_admin.set_checked_out(directory, participant_id, body.checked_out)
    except CampAdminError as e:
        logger.error(f"Error updating check-out status for {participant_id}: {e}")
        raise http_error(e)


@router.post("/{participant_id}/email")
async def email_participant(
    participant_id: str,
    body: ParticipantEmailRequest,
    directory: PeopleDirectory = Depends(get_people_directory),
    emails: EmailService = Depends(get_email_service),
):
    if not emails.configured and emails.enabled:
        raise HTTPException(status_code=500, detail="SMTP env vars not configured")
    try:
        sent = await participant_admin.email_participant(
            directory, emails, participant_id, email_type=body.email_type, subject=body.subject
        )
    except CampAdminError as e:
        raise http_error(e)
    if not sent:
        raise HTTPException(status_code=500, detail="Failed to send")
    return {"ok": True}
