from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Literal, Optional
import logging
from app.api.deps import get_email_service
from app.core.email_service import EmailService

logger = logging.getLogger(__name__)

router = APIRouter()


class SendEmailRequest(BaseModel):
    to: Optional[str] = None
    subject: str = "Hello"
    text: str = "Hello"
    userId: Optional[str] = None
    fullName: Optional[str] = None
    emailType: Literal["ticket", "contract"] = "ticket"
    contractUrl: Optional[str] = None


@router.post("/send-email")
def send_email(body: SendEmailRequest, emails: EmailService = Depends(get_email_service)):
    """Ticket (inline QR) or contract-signing email for one participant"""
    if not body.to or not body.userId or not body.fullName:
        return JSONResponse(status_code=400, content={"error": "Missing 'to', 'userId' or 'fullName'"})

    if emails.enabled and not emails.configured:
        return JSONResponse(status_code=500, content={"error": "SMTP env vars not configured"})

    sent = emails.send_participant_email(
        body.to,
        body.fullName,
        body.userId,
        email_type=body.emailType,
        subject=body.subject,
        text=body.text,
        contract_url=body.contractUrl,
    )
    if not sent:
        logger.error(f"send-email failed for {body.to}")
        return JSONResponse(status_code=500, content={"error": "Failed to send"})
    return {"ok": True}
