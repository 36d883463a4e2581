import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from sqlalchemy.orm import Session
from app.crud.base import CRUDBase
from app.models.consent_document import ConsentDocument


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class CRUDConsentDocument(CRUDBase[ConsentDocument]):
    def create_for_participant(
        self,
        db: Session,
        *,
        content: bytes,
        national_id: Optional[str],
        ttl_minutes: int,
        content_type: str = "application/pdf",
    ) -> ConsentDocument:
        db_obj = self.model(
            token=secrets.token_urlsafe(32),
            participant_national_id=national_id,
            content=content,
            content_type=content_type,
            filename=f"consentimiento_{national_id or 'documento'}.pdf",
            expires_at=_utcnow() + timedelta(minutes=ttl_minutes),
        )
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def get_active_by_token(self, db: Session, *, token: str) -> Optional[ConsentDocument]:
        document = db.query(self.model).filter(self.model.token == token).first()
        if document is None:
            return None
        if _as_aware(document.expires_at) <= _utcnow():
            self.remove(db, id=document.id)
            return None
        return document

    def purge_expired(self, db: Session) -> int:
        deleted = (
            db.query(self.model)
            .filter(self.model.expires_at <= _utcnow())
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted


consent_document = CRUDConsentDocument(ConsentDocument)
