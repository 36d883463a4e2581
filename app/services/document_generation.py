"""
Consent Document Generation

Client for the three remote functions that stamp a signature onto the consent
PDF: adult self-consent, minor consent signed by the parent, and minor consent
signed by a delegate.
"""

import logging
from typing import Any, Dict, Optional, Tuple

import httpx

from app.core.config import settings
from app.core.exceptions import RemoteCallError

logger = logging.getLogger(__name__)

ADULT_CONSENT_FUNCTION = "create-consent-pdf"
MINOR_CONSENT_FUNCTION = "create-minor-consent-pdf"
DELEGATE_CONSENT_FUNCTION = "minor-second-option-manager-assignment"


class DocumentGenerationService:
    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.SUPABASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.SUPABASE_ANON_KEY
        self.timeout = timeout if timeout is not None else settings.REMOTE_CALL_TIMEOUT
        self._transport = transport

    async def _call(
        self,
        function_name: str,
        data: Dict[str, Any],
        file_field: str,
        signature_png: bytes,
        default_error: str,
    ) -> Optional[bytes]:
        files: Dict[str, Tuple[str, bytes, str]] = {
            file_field: ("signature.png", signature_png, "image/png")
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "apikey": self.api_key,
        }

        logger.info(f"Calling document function {function_name}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/functions/v1/{function_name}",
                    data=data,
                    files=files,
                    headers=headers,
                )
        except httpx.HTTPError as e:
            logger.error(f"Document function {function_name} unreachable: {e}")
            raise RemoteCallError(default_error, detail=str(e))

        if response.is_error:
            body = response.text
            logger.error(f"Document function {function_name} returned {response.status_code}: {body}")
            raise RemoteCallError(body or default_error, status_code=response.status_code, detail=body)

        return response.content or None

    async def create_adult_consent(self, person_id: str, signature_png: bytes) -> Optional[bytes]:
        return await self._call(
            ADULT_CONSENT_FUNCTION,
            {"person_id": person_id},
            "signature",
            signature_png,
            "No se pudo generar el PDF",
        )

    async def create_minor_consent(
        self, minor_id: str, manager_id: str, signature_png: bytes
    ) -> Optional[bytes]:
        return await self._call(
            MINOR_CONSENT_FUNCTION,
            {"minor_id": minor_id, "manager_id": manager_id},
            "signature_file",
            signature_png,
            "No se pudo generar el PDF para menor",
        )

    async def create_delegate_consent(
        self,
        minor_id: str,
        manager_id: str,
        tutor_name: str,
        tutor_national_id: str,
        signature_png: bytes,
    ) -> Optional[bytes]:
        return await self._call(
            DELEGATE_CONSENT_FUNCTION,
            {
                "minor_id": minor_id,
                "manager_id": manager_id,
                "tutor_name": tutor_name,
                "tutor_national_id": tutor_national_id,
            },
            "signature_file",
            signature_png,
            "No se pudo generar el PDF para menor",
        )
