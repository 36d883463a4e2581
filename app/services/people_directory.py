"""
People Directory Client

Thin async client over the remote backend's People table and its stored
procedures (``get_all_people``, ``update_person``, ``add_person``). The remote
service is the only source of truth; nothing here caches records.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx
from pydantic import ValidationError

from app.core.config import settings
from app.core.exceptions import ParticipantLookupError, RemoteCallError
from app.schemas.participant import Participant, PersonUpdate

logger = logging.getLogger(__name__)


class PeopleDirectory:
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

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers(),
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"People directory {method} {path} failed: {e}")
            raise RemoteCallError("No se pudo contactar el directorio de participantes", detail=str(e))

        if response.is_error:
            logger.error(f"People directory {method} {path} returned {response.status_code}: {response.text}")
            raise RemoteCallError(
                response.text or f"Directory request failed ({response.status_code})",
                status_code=response.status_code,
                detail=response.text,
            )
        return response

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"People directory returned a non-JSON body: {response.text[:200]!r}")
            raise RemoteCallError(
                "Respuesta inválida del directorio de participantes",
                status_code=response.status_code,
                detail=str(e),
            )

    def _participants(self, rows: Any) -> List[Participant]:
        try:
            return [Participant.model_validate(row) for row in rows]
        except (ValidationError, TypeError) as e:
            logger.error(f"People directory returned malformed rows: {e}")
            raise RemoteCallError("Respuesta inválida del directorio de participantes", detail=str(e))

    async def _rpc(self, name: str, payload: Dict[str, Any]) -> Any:
        response = await self._request("POST", f"/rest/v1/rpc/{name}", json=payload)
        if not response.content:
            return None
        return self._json(response)

    async def get_all_people(self, **filters: Optional[str]) -> List[Participant]:
        """Filtered lookup; accepts p_email, p_gender, p_name, p_national_id, p_checked_in."""
        payload = {key: value for key, value in filters.items() if value not in (None, "")}
        data = await self._rpc("get_all_people", payload)
        if not isinstance(data, list):
            return []
        return self._participants(data)

    async def get_person(self, person_id: str) -> Participant:
        response = await self._request(
            "GET", "/rest/v1/People", params={"id": f"eq.{person_id}", "select": "*"}
        )
        rows = self._json(response)
        if not rows:
            raise ParticipantLookupError(f"Participant {person_id} not found")
        return self._participants(rows)[0]

    async def get_people_by_ids(self, person_ids: Iterable[str]) -> List[Participant]:
        ids = [person_id for person_id in person_ids if person_id]
        if not ids:
            return []
        response = await self._request(
            "GET",
            "/rest/v1/People",
            params={"id": f"in.({','.join(ids)})", "select": "id,names,last_name_1,last_name_2"},
        )
        return self._participants(self._json(response) or [])

    async def update_person(self, update: PersonUpdate) -> Any:
        return await self._rpc("update_person", update.model_dump())

    async def add_person(self, payload: Dict[str, Any]) -> Any:
        return await self._rpc("add_person", payload)

    async def delete_person(self, person_id: str) -> None:
        await self._request("DELETE", "/rest/v1/People", params={"id": f"eq.{person_id}"})


async def resolve_by_national_id(directory: PeopleDirectory, national_id: str) -> Optional[Participant]:
    """Exact-match lookup by national identity number.

    The backend filter is fuzzy, so the first record only counts when its
    national id is identical to what was typed.
    """
    value = national_id.strip()
    if not value:
        return None
    results = await directory.get_all_people(p_national_id=value)
    if not results:
        return None
    person = results[0]
    if person.national_id != value:
        return None
    return person
