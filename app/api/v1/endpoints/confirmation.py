from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from app.api.deps import get_confirmation_store
from app.schemas.signature import ConfirmationView
from app.services.confirmation_store import ConfirmationStore, document_url

router = APIRouter()


@router.get("/{token}", response_model=ConfirmationView)
def get_confirmation(token: str, store: ConfirmationStore = Depends(get_confirmation_store)):
    """What the success view shows after a signature"""
    document = store.load(token)
    if document is None:
        raise HTTPException(status_code=404, detail="Confirmation not found or expired")
    return ConfirmationView(
        pdf_url=document_url(token),
        participant_id=document.participant_national_id,
        download_filename=document.filename,
    )


@router.get("/{token}/document")
def download_document(token: str, store: ConfirmationStore = Depends(get_confirmation_store)):
    document = store.load(token)
    if document is None:
        raise HTTPException(status_code=404, detail="Confirmation not found or expired")
    return Response(
        content=document.content,
        media_type=document.content_type,
        headers={"Content-Disposition": f'inline; filename="{document.filename}"'},
    )
