import logging
from typing import Callable, Optional
from sqlalchemy.orm import Session
from app.core.config import settings
from app.crud.consent_document import consent_document
from app.db.database import SessionLocal
from app.models.consent_document import ConsentDocument

logger = logging.getLogger(__name__)


class ConfirmationStore:
    """Short-lived storage read by the confirmation view after a signature."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal, ttl_minutes: Optional[int] = None):
        self.session_factory = session_factory
        self.ttl_minutes = ttl_minutes if ttl_minutes is not None else settings.CONSENT_DOCUMENT_TTL_MINUTES

    def save(self, content: bytes, national_id: Optional[str]) -> str:
        db = self.session_factory()
        try:
            document = consent_document.create_for_participant(
                db, content=content, national_id=national_id, ttl_minutes=self.ttl_minutes
            )
            logger.info(f"Stored consent document for {national_id} (expires {document.expires_at})")
            return document.token
        finally:
            db.close()

    def load(self, token: str) -> Optional[ConsentDocument]:
        db = self.session_factory()
        try:
            document = consent_document.get_active_by_token(db, token=token)
            if document is not None:
                db.expunge(document)
            return document
        finally:
            db.close()

    def purge_expired(self) -> int:
        db = self.session_factory()
        try:
            return consent_document.purge_expired(db)
        finally:
            db.close()


def document_url(token: str) -> str:
    return f"{settings.API_V1_STR}/confirmation/{token}/document"


def confirmation_url(token: str) -> str:
    return f"{settings.API_V1_STR}/confirmation/{token}"
