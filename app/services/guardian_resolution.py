"""
Guardian Resolution

Turns a typed national identity number into a confirmed directory record.
Lookups only start once the input has been stable for the quiet period, and
every lookup carries a token so that a slow answer to an older input can never
overwrite the answer to a newer one.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from app.core.config import settings
from app.core.exceptions import CampAdminError
from app.schemas.signature import GuardianResolution, ResolutionStatus
from app.services.people_directory import PeopleDirectory, resolve_by_national_id

logger = logging.getLogger(__name__)

PARENT_NOT_REGISTERED = (
    "Para firmar el contrato debes ser un participante del campamento "
    "y estar registrado para el campamento."
)
LOOKUP_FAILED = "Error al validar la información. Intenta nuevamente."

ResolutionListener = Callable[[GuardianResolution], None]
Lookup = Callable[[str], Awaitable]


class DebouncedResolver:
    def __init__(
        self,
        directory: PeopleDirectory,
        on_result: ResolutionListener,
        quiet_period: Optional[float] = None,
        not_found_message: Optional[str] = None,
        lookup: Optional[Lookup] = None,
    ):
        self.directory = directory
        self.on_result = on_result
        self.quiet_period = (
            quiet_period if quiet_period is not None else settings.GUARDIAN_LOOKUP_DEBOUNCE_MS / 1000
        )
        self.not_found_message = not_found_message
        self._lookup = lookup or (lambda value: resolve_by_national_id(self.directory, value))
        self._token = 0
        self._timer: Optional[asyncio.Task] = None
        self._in_flight: set = set()

    @property
    def latest_token(self) -> int:
        return self._token

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def cancel(self) -> None:
        """Drop the pending wait and invalidate any lookup already in flight."""
        self._token += 1
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    def update(self, raw_value: str) -> None:
        """Register a new input value, restarting the quiet period."""
        self.cancel()
        value = raw_value.strip()
        if not value:
            self.on_result(GuardianResolution(status=ResolutionStatus.EMPTY))
            return

        token = self._token
        self.on_result(GuardianResolution(status=ResolutionStatus.PENDING, national_id=value))
        self._timer = asyncio.ensure_future(self._wait_then_resolve(value, token))

    async def _wait_then_resolve(self, value: str, token: int) -> None:
        try:
            await asyncio.sleep(self.quiet_period)
        except asyncio.CancelledError:
            return
        # Past this point the lookup is no longer cancellable, only discardable
        self._timer = None
        task = asyncio.ensure_future(self.resolve(value, token))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def resolve(self, value: str, token: Optional[int] = None) -> Optional[GuardianResolution]:
        if token is None:
            token = self._token
        if token == self._token:
            self.on_result(GuardianResolution(status=ResolutionStatus.SEARCHING, national_id=value))

        try:
            person = await self._lookup(value)
        except CampAdminError as e:
            logger.error(f"Guardian lookup for {value!r} failed: {e}")
            result = GuardianResolution(
                status=ResolutionStatus.ERROR, national_id=value, message=LOOKUP_FAILED
            )
        else:
            if person is None:
                result = GuardianResolution(
                    status=ResolutionStatus.NOT_FOUND,
                    national_id=value,
                    message=self.not_found_message,
                )
            else:
                result = GuardianResolution(
                    status=ResolutionStatus.RESOLVED,
                    national_id=value,
                    person_id=person.id,
                    display_name=person.full_name,
                )

        if token != self._token:
            logger.debug(f"Discarding stale guardian lookup for {value!r} (token {token} < {self._token})")
            return None
        self.on_result(result)
        return result

    async def wait_idle(self) -> None:
        """Wait until no timer or lookup is outstanding."""
        while self.has_pending_timer or self._in_flight:
            pending = [task for task in [self._timer, *self._in_flight] if task is not None]
            await asyncio.gather(*pending, return_exceptions=True)
