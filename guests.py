# guests.py
import asyncio
import logging
from datetime import timedelta
from typing import List, Optional

from access import AccessController
from data import JsonRepository
from device import GuestSession
from events import GUEST_ADDED, GUEST_REMOVED, EventBroadcaster
from scheduler import TaskScheduler
from utils import format_mac, isoformat, parse_timestamp, utc_now

logger = logging.getLogger(__name__)


class GuestExistsError(Exception):
    pass


class GuestManager:
    """Time-boxed guest access, persisted as a JSON array."""

    def __init__(self, repository: JsonRepository, access: AccessController,
                 broadcaster: Optional[EventBroadcaster] = None,
                 scheduler: Optional[TaskScheduler] = None):
        self.repository = repository
        self.access = access
        self.broadcaster = broadcaster
        self.scheduler = scheduler or access.scheduler

    async def _load(self) -> List[GuestSession]:
        guests = []
        for entry in await asyncio.to_thread(self.repository.load):
            try:
                guests.append(GuestSession.from_dict(entry))
            except (AttributeError, KeyError, TypeError) as e:
                logger.warning(f"Skipping malformed guest entry {entry!r}: {e}")
        return guests

    async def _save(self, guests: List[GuestSession]) -> None:
        if not await asyncio.to_thread(self.repository.save, [g.to_dict() for g in guests]):
            logger.error(f"Guest list not persisted to {self.repository.path}")

    def _publish(self, event_type: str, data) -> None:
        if self.broadcaster:
            self.broadcaster.publish(event_type, data)

    async def add(self, mac: str, name: Optional[str] = None,
                  time_limit_minutes: Optional[float] = None) -> GuestSession:
        mac = format_mac(mac)
        guests = await self._load()
        if any(g.mac == mac for g in guests):
            raise GuestExistsError(f"Guest {mac} already exists")

        now = utc_now()
        expires_at = None
        if time_limit_minutes and time_limit_minutes > 0:
            expires_at = isoformat(now + timedelta(minutes=time_limit_minutes))
        guest = GuestSession(mac=mac, name=name or mac, joined_at=isoformat(now), expires_at=expires_at)
        guests.append(guest)
        await self._save(guests)

        # unblock cancels any pending re-block for the MAC, so arm the expiry after it
        await self.access.unblock(mac)
        if expires_at:
            self.scheduler.schedule(mac, time_limit_minutes * 60, lambda: self.remove(mac))

        logger.info(f"Guest added: {guest.name} ({mac})")
        self._publish(GUEST_ADDED, guest.to_dict())
        return guest

    async def active(self) -> List[GuestSession]:
        now = utc_now()
        return [g for g in await self._load() if not g.expires_at or parse_timestamp(g.expires_at) > now]

    async def remove(self, mac: str) -> bool:
        """Removes a guest, blocking and disconnecting the device."""
        mac = format_mac(mac)
        guests = await self._load()
        remaining = [g for g in guests if g.mac != mac]
        if len(remaining) == len(guests):
            return False

        self.scheduler.cancel(mac)
        await self._save(remaining)
        result = await self.access.block(mac)
        if not result.ok:
            logger.warning(f"Guest {mac} removed but could not be blocked: {result.message}")

        logger.info(f"Guest removed: {mac}")
        self._publish(GUEST_REMOVED, {"mac": mac})
        return True

    async def restore(self) -> None:
        """Re-arms expiry timers after a restart; removes sessions that expired while down."""
        now = utc_now()
        for guest in await self._load():
            if not guest.expires_at:
                continue
            try:
                remaining = (parse_timestamp(guest.expires_at) - now).total_seconds()
            except ValueError:
                logger.warning(f"Guest {guest.mac} has an unreadable expiry {guest.expires_at!r}")
                continue
            if remaining <= 0:
                await self.remove(guest.mac)
            else:
                mac = guest.mac
                self.scheduler.schedule(mac, remaining, lambda mac=mac: self.remove(mac))

    def close(self) -> None:
        self.scheduler.cancel_all()
