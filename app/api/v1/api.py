# File: app/api/v1/api.py
from fastapi import APIRouter
from app.api.v1.endpoints import participants, consent_signing, confirmation, check_in, email

# Create main API router
api_router = APIRouter()

# Include all endpoint routers with proper configuration
api_router.include_router(
    participants.router,
    prefix="/participants",
    tags=["participants"]
)

api_router.include_router(
    consent_signing.router,
    prefix="/signing-sessions",
    tags=["consent-signing"]
)

api_router.include_router(
    confirmation.router,
    prefix="/confirmation",
    tags=["confirmation"]
)

api_router.include_router(
    check_in.router,
    prefix="/check-in",
    tags=["check-in"]
)

api_router.include_router(
    email.router,
    tags=["email"]
)
