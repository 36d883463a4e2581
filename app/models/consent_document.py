from sqlalchemy import Column, String, DateTime, LargeBinary
from app.models.base import BaseModel


class ConsentDocument(BaseModel):
    """Generated consent PDF kept just long enough for the confirmation view."""

    __tablename__ = "consent_documents"

    token = Column(String(64), nullable=False, unique=True, index=True)
    participant_national_id = Column(String(50), nullable=True)
    content = Column(LargeBinary, nullable=False)
    content_type = Column(String(100), nullable=False, default="application/pdf")
    filename = Column(String(255), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
